# Overview: Fixed two-place decimal arithmetic for document totals.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def round2(value: Decimal) -> Decimal:
    """Round half away from zero to cents, matching NUMERIC(12, 2) storage."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return f"{round2(value):.2f}"


def decimal_str(value: Optional[Decimal]) -> Optional[str]:
    """Serialize a non-money decimal (quantity, amount) without padding noise."""
    if value is None:
        return None
    normalized = Decimal(value).normalize()
    # normalize() turns 100 into 1E+2
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")


def format_currency(value: Decimal, symbol: str = "$") -> str:
    """US-style currency text used in email bodies, e.g. $1,234.50."""
    amount = round2(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"
