# Overview: Conversion Engine; builds a new invoice from an approved estimate.

"""
Estimate -> Invoice conversion.

The invoice header is copied from the estimate, its items are copied
field-for-field and its totals are recomputed from those copies. Invoice
row and items are written in one transaction, so a failure leaves no
invoice behind. The source estimate is read, never modified.

Converting the same estimate again produces another independent invoice.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Estimate, Invoice, InvoiceItem
from smartbuild.time_utils import epoch_millis, today
from .concurrency import run_with_retry
from .invoice_service import default_due_date
from .lifecycle_service import INVOICE_UNPAID, require_convertible
from .line_item_service import copy_items
from .numbering_service import flush_or_conflict, suggest_invoice_number
from .tenant_service import get_owned_or_404, scoped_query
from .totals_service import recalculate_totals

# How many consecutive suffixes are tried before giving up on a free number
NUMBER_ATTEMPTS = 20


def next_free_invoice_number(org_id: int, *, millis: int | None = None) -> str:
    """
    Suggested invoice number that is not yet used inside the organization.

    Starts from the time-based suggestion and walks forward one millisecond
    at a time. If every candidate is taken the last one is returned and the
    save reports the conflict.
    """
    if millis is None:
        millis = epoch_millis()

    candidate = suggest_invoice_number(millis=millis)
    for offset in range(NUMBER_ATTEMPTS):
        candidate = suggest_invoice_number(millis=millis + offset)
        taken = (
            scoped_query(Invoice, org_id)
            .filter(Invoice.invoice_number == candidate)
            .first()
        )
        if taken is None:
            return candidate
    return candidate


def build_invoice_from_estimate(estimate: Estimate, invoice_number: str) -> Invoice:
    """Unsaved invoice mirroring the estimate, with copied items and fresh totals."""
    issue_date = today()
    invoice = Invoice(
        org_id=estimate.org_id,
        client_id=estimate.client_id,
        source_estimate_id=estimate.id,
        invoice_number=invoice_number,
        title=estimate.title,
        description=estimate.description,
        tax_rate=estimate.tax_rate,
        notes=estimate.notes,
        job_site_address=estimate.job_site_address,
        status=INVOICE_UNPAID,
        issue_date=issue_date,
        due_date=default_due_date(issue_date),
        paid_date=None,
    )
    for item in copy_items(estimate.items, InvoiceItem):
        invoice.items.append(item)
    recalculate_totals(invoice)
    return invoice


def convert_estimate_to_invoice(org_id: int, estimate_id: int) -> Invoice:
    """
    Create an unpaid invoice from an approved estimate.

    Raises:
        NotFoundError if the estimate is not in the organization
        LifecycleError if the estimate is not approved
        UniquenessConflict if no free invoice number could be claimed
    """
    def _op():
        estimate = get_owned_or_404(Estimate, estimate_id, org_id)
        require_convertible(estimate)

        invoice = build_invoice_from_estimate(estimate, next_free_invoice_number(org_id))
        db.session.add(invoice)

        flush_or_conflict()
        db.session.commit()
        return invoice

    return run_with_retry(_op)
