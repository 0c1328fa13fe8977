# Overview: Totals Aggregator; derives subtotal, tax and total from a document's line items.

"""
Totals are a pure function of (line items, tax_rate):

    subtotal   = round2(sum(quantity * unit_price))
    tax_amount = round2(subtotal * tax_rate / 100)
    total      = subtotal + tax_amount

Per-line amounts are never rounded; only the two aggregates are. Every
service that changes a document's items or tax_rate calls
recalculate_totals() before committing, inside the same transaction, so a
committed document never carries stale totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..extensions import db
from smartbuild.money import HUNDRED, ZERO, round2


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


def compute_totals(items: Iterable, tax_rate) -> Totals:
    """
    Aggregate any iterable of objects exposing quantity and unit_price.

    An empty iterable yields all-zero totals.
    """
    raw = sum(
        (Decimal(item.quantity) * Decimal(item.unit_price) for item in items),
        Decimal(0),
    )
    subtotal = round2(raw)
    rate = Decimal(tax_rate) if tax_rate is not None else ZERO
    tax_amount = round2(subtotal * rate / HUNDRED)
    return Totals(subtotal=subtotal, tax_amount=tax_amount, total=subtotal + tax_amount)


def recalculate_totals(document) -> Totals:
    """
    Write derived totals onto an estimate or invoice from its current items.

    Works on the in-memory items collection, so pending (unflushed) item
    changes made through the collection are included. Idempotent.
    """
    totals = compute_totals(document.items, document.tax_rate)
    document.subtotal = totals.subtotal
    document.tax_amount = totals.tax_amount
    document.total = totals.total
    return totals


def recalculate_for_document_id(model, document_id: int) -> Totals | None:
    """
    Recompute totals for a document addressed by id.

    A document that no longer exists is a no-op (returns None): there is
    nothing left to keep consistent.
    """
    document = db.session.query(model).filter_by(id=document_id).first()
    if document is None:
        return None
    return recalculate_totals(document)


def totals_are_consistent(document) -> bool:
    """True when the stored totals match what the current items produce."""
    expected = compute_totals(document.items, document.tax_rate)
    return (
        Decimal(document.subtotal) == expected.subtotal
        and Decimal(document.tax_amount) == expected.tax_amount
        and Decimal(document.total) == expected.total
    )
