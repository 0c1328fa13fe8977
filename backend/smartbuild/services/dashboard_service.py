# Overview: Dashboard counts and money figures for one organization.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Client, Estimate, Invoice
from smartbuild.money import ZERO, round2
from smartbuild.time_utils import today
from .lifecycle_service import ESTIMATE_APPROVED, ESTIMATE_SENT, INVOICE_PAID, INVOICE_UNPAID


def _count(model, org_id: int, *criteria) -> int:
    return (
        db.session.query(func.count(model.id))
        .filter(model.org_id == org_id, *criteria)
        .scalar()
    ) or 0


def _sum_total(model, org_id: int, *criteria) -> Decimal:
    value = (
        db.session.query(func.coalesce(func.sum(model.total), 0))
        .filter(model.org_id == org_id, *criteria)
        .scalar()
    )
    return round2(Decimal(str(value))) if value is not None else ZERO


def dashboard_summary(org_id: int, *, as_of=None) -> dict:
    """
    Headline numbers for the dashboard.

    Archived documents count too; archiving only hides them from lists.
    """
    as_of = as_of or today()
    return {
        "total_estimates": _count(Estimate, org_id),
        "pending_estimates": _count(Estimate, org_id, Estimate.status == ESTIMATE_SENT),
        "approved_estimates": _count(Estimate, org_id, Estimate.status == ESTIMATE_APPROVED),
        "total_estimate_value": _sum_total(Estimate, org_id),
        "total_invoices": _count(Invoice, org_id),
        "unpaid_invoices": _count(Invoice, org_id, Invoice.status == INVOICE_UNPAID),
        "paid_invoices": _count(Invoice, org_id, Invoice.status == INVOICE_PAID),
        "overdue_invoices": _count(
            Invoice,
            org_id,
            Invoice.status == INVOICE_UNPAID,
            Invoice.due_date.isnot(None),
            Invoice.due_date < as_of,
        ),
        "revenue": _sum_total(Invoice, org_id, Invoice.status == INVOICE_PAID),
        "outstanding": _sum_total(Invoice, org_id, Invoice.status == INVOICE_UNPAID),
        "total_clients": _count(Client, org_id),
    }


def recent_documents(org_id: int, *, limit: int = 5) -> dict:
    """Latest estimates and invoices, newest first."""
    estimates = (
        db.session.query(Estimate)
        .filter(Estimate.org_id == org_id)
        .order_by(Estimate.created_at.desc(), Estimate.id.desc())
        .limit(limit)
        .all()
    )
    invoices = (
        db.session.query(Invoice)
        .filter(Invoice.org_id == org_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(limit)
        .all()
    )
    return {"estimates": estimates, "invoices": invoices}
