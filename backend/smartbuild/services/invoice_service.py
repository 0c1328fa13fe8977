"""
Invoice Service - create, edit and settle invoices

Saves follow the same rule as estimates: header, replaced line items and
recomputed totals are committed together. Payment status is a free toggle;
paid_date is maintained here so it is set exactly when status is paid.
"""

from __future__ import annotations

from datetime import date

from flask import current_app, has_app_context

from ..extensions import db
from ..models import Invoice
from ..validation import INVOICE_POLICY, ValidationError
from smartbuild.time_utils import add_days, today
from . import document_service
from .concurrency import lock_for_update, run_with_retry
from .lifecycle_service import (
    INVOICE_PAID,
    INVOICE_STATUSES,
    INVOICE_UNPAID,
    validate_invoice_status,
)
from .line_item_service import normalize_items, replace_items
from .numbering_service import ensure_number_available, flush_or_conflict
from .tenant_service import get_owned_or_404, scoped_query
from .totals_service import recalculate_totals

DEFAULT_PAYMENT_TERMS_DAYS = 30


def payment_terms_days() -> int:
    if has_app_context():
        return int(current_app.config.get("INVOICE_PAYMENT_TERMS_DAYS", DEFAULT_PAYMENT_TERMS_DAYS))
    return DEFAULT_PAYMENT_TERMS_DAYS


def default_due_date(issue_date: date) -> date:
    return add_days(issue_date, payment_terms_days())


def is_overdue(invoice: Invoice, as_of: date | None = None) -> bool:
    """unpaid, has a due date, and the due date is before as_of (today)."""
    return invoice.is_overdue(as_of)


def _apply_payment_state(invoice: Invoice, status: str, paid_date: date | None, paid_date_given: bool) -> None:
    validate_invoice_status(status)
    if status == INVOICE_PAID:
        if paid_date_given and paid_date is not None:
            invoice.paid_date = paid_date
        elif invoice.status != INVOICE_PAID or invoice.paid_date is None:
            invoice.paid_date = today()
    else:
        if paid_date_given and paid_date is not None:
            raise ValidationError("paid_date can only be set on a paid invoice")
        invoice.paid_date = None
    invoice.status = status


def _prepare(org_id: int, data: dict, *, partial: bool) -> dict:
    patch = document_service.prepare_document_patch(
        Invoice,
        org_id=org_id,
        data=data,
        policy=INVOICE_POLICY,
        number_field="invoice_number",
        partial=partial,
    )
    if "status" in patch:
        validate_invoice_status(patch["status"])
    return patch


def create_invoice(org_id: int, data: dict, items: list) -> Invoice:
    """
    Create a standalone invoice with its line items.

    due_date defaults to issue_date plus the payment terms when the field is
    absent; an explicit null keeps the invoice without a due date.
    """
    patch = _prepare(org_id, data, partial=False)
    normalized = normalize_items(items)

    status = patch.pop("status", INVOICE_UNPAID)
    paid_date_given = "paid_date" in patch
    paid_date = patch.pop("paid_date", None)

    if patch.get("issue_date") is None:
        patch["issue_date"] = today()
    if "due_date" not in patch:
        patch["due_date"] = default_due_date(patch["issue_date"])

    def _op():
        ensure_number_available(Invoice, org_id=org_id, number=patch["invoice_number"])

        invoice = Invoice(org_id=org_id, **patch)
        invoice.status = INVOICE_UNPAID
        _apply_payment_state(invoice, status, paid_date, paid_date_given)
        db.session.add(invoice)
        replace_items(invoice, normalized)

        flush_or_conflict()
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def update_invoice(org_id: int, invoice_id: int, data: dict, items: list | None = None) -> Invoice:
    """Edit an invoice. When items is given the whole set is replaced."""
    patch = _prepare(org_id, data, partial=True)
    normalized = normalize_items(items) if items is not None else None

    status = patch.pop("status", None)
    paid_date_given = "paid_date" in patch
    paid_date = patch.pop("paid_date", None)

    def _op():
        invoice = lock_for_update(
            scoped_query(Invoice, org_id).filter(Invoice.id == invoice_id)
        ).first()
        if invoice is None:
            get_owned_or_404(Invoice, invoice_id, org_id)

        if "invoice_number" in patch and patch["invoice_number"] != invoice.invoice_number:
            ensure_number_available(
                Invoice, org_id=org_id, number=patch["invoice_number"], exclude_id=invoice.id
            )

        for key, value in patch.items():
            setattr(invoice, key, value)

        if status is not None or paid_date_given:
            _apply_payment_state(invoice, status or invoice.status, paid_date, paid_date_given)

        if normalized is not None:
            replace_items(invoice, normalized)
        else:
            recalculate_totals(invoice)

        flush_or_conflict()
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def get_invoice(org_id: int, invoice_id: int) -> Invoice:
    return get_owned_or_404(Invoice, invoice_id, org_id)


def list_invoices(
    org_id: int,
    *,
    include_archived: bool = False,
    archived_only: bool = False,
    status: str | None = None,
    client_id: int | None = None,
    overdue_only: bool = False,
    as_of: date | None = None,
) -> list[Invoice]:
    """Newest first. Archived invoices are hidden unless asked for."""
    query = scoped_query(Invoice, org_id)
    query = document_service.filter_archived(
        query, Invoice, include_archived=include_archived, archived_only=archived_only
    )
    if status:
        validate_invoice_status(status)
        query = query.filter(Invoice.status == status)
    if client_id is not None:
        query = query.filter(Invoice.client_id == client_id)
    if overdue_only:
        query = query.filter(
            Invoice.status == INVOICE_UNPAID,
            Invoice.due_date.isnot(None),
            Invoice.due_date < (as_of or today()),
        )
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def group_invoices_by_status(invoices) -> dict:
    return document_service.group_by_status(invoices, INVOICE_STATUSES)


def mark_invoice_paid(org_id: int, invoice_id: int, *, paid_date: date | None = None) -> Invoice:
    """unpaid -> paid. paid_date defaults to today; an already-paid invoice keeps its date."""
    def _op():
        invoice = get_owned_or_404(Invoice, invoice_id, org_id)
        if paid_date is not None:
            invoice.paid_date = paid_date
        elif invoice.status != INVOICE_PAID or invoice.paid_date is None:
            invoice.paid_date = today()
        invoice.status = INVOICE_PAID
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def mark_invoice_unpaid(org_id: int, invoice_id: int) -> Invoice:
    """paid -> unpaid. Clears paid_date."""
    def _op():
        invoice = get_owned_or_404(Invoice, invoice_id, org_id)
        invoice.status = INVOICE_UNPAID
        invoice.paid_date = None
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def toggle_invoice_paid(org_id: int, invoice_id: int) -> Invoice:
    invoice = get_owned_or_404(Invoice, invoice_id, org_id)
    if invoice.status == INVOICE_PAID:
        return mark_invoice_unpaid(org_id, invoice_id)
    return mark_invoice_paid(org_id, invoice_id)


def archive_invoice(org_id: int, invoice_id: int) -> Invoice:
    def _op():
        invoice = get_owned_or_404(Invoice, invoice_id, org_id)
        document_service.archive(invoice)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def unarchive_invoice(org_id: int, invoice_id: int) -> Invoice:
    def _op():
        invoice = get_owned_or_404(Invoice, invoice_id, org_id)
        document_service.unarchive(invoice)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def toggle_invoice_archive(org_id: int, invoice_id: int) -> Invoice:
    invoice = get_owned_or_404(Invoice, invoice_id, org_id)
    if invoice.archived_at is None:
        return archive_invoice(org_id, invoice_id)
    return unarchive_invoice(org_id, invoice_id)


def delete_invoice(org_id: int, invoice_id: int, *, confirm: bool = False) -> None:
    """Hard delete, cascading to line items."""
    document_service.require_delete_confirmation(confirm, "invoice")

    def _op():
        invoice = get_owned_or_404(Invoice, invoice_id, org_id)
        db.session.delete(invoice)
        db.session.commit()

    run_with_retry(_op)
