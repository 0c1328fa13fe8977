# Overview: Suggested document numbers and per-tenant number uniqueness.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Estimate, Invoice
from ..validation import UniquenessConflict, ValidationError
from smartbuild.time_utils import epoch_millis


ESTIMATE_PREFIX = "EST"
INVOICE_PREFIX = "INV"
SUFFIX_DIGITS = 6

_NUMBER_COLUMNS = {
    Estimate: "estimate_number",
    Invoice: "invoice_number",
}

_UNIQUE_CONSTRAINTS = {
    "uq_estimates_org_number": "estimate_number",
    "uq_invoices_org_number": "invoice_number",
}


def suggest_document_number(prefix: str, *, millis: int | None = None) -> str:
    """
    Default number shown on a new document form, e.g. "EST-482913".

    The suffix is the last six digits of the current epoch milliseconds.
    Two documents created within the same wrap window can collide; the
    suggestion is editable and uniqueness is only enforced on save.
    """
    if millis is None:
        millis = epoch_millis()
    suffix = str(millis)[-SUFFIX_DIGITS:].zfill(SUFFIX_DIGITS)
    return f"{prefix}-{suffix}"


def suggest_estimate_number(*, millis: int | None = None) -> str:
    return suggest_document_number(ESTIMATE_PREFIX, millis=millis)


def suggest_invoice_number(*, millis: int | None = None) -> str:
    return suggest_document_number(INVOICE_PREFIX, millis=millis)


def normalize_number(number) -> str:
    value = str(number).strip() if number is not None else ""
    if not value:
        raise ValidationError("Document number is required")
    return value


def ensure_number_available(model, *, org_id: int, number: str, exclude_id: int | None = None) -> None:
    """
    Fail with UniquenessConflict if another document of this kind in the
    organization already uses number. Other organizations never conflict.
    """
    column_name = _NUMBER_COLUMNS[model]
    column = getattr(model, column_name)

    query = db.session.query(model.id).filter(model.org_id == org_id, column == number)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)

    if query.first() is not None:
        raise UniquenessConflict(f"{column_name} '{number}' is already in use")


def flush_or_conflict() -> None:
    """
    Flush pending writes, translating the per-tenant unique constraint into
    UniquenessConflict. Covers the race the pre-check above cannot see.
    """
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        message = str(exc.orig)
        for constraint, column_name in _UNIQUE_CONSTRAINTS.items():
            if constraint in message or column_name in message:
                raise UniquenessConflict(f"{column_name} is already in use") from exc
        raise
