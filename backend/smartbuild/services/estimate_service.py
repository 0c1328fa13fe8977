"""
Estimate Service - create, edit, send and manage estimates

Every save writes the estimate row, replaces its whole line-item set and
recomputes totals in ONE transaction. Emailing happens only after that
commit: a failed send is reported through SendResult and never rolls the
saved estimate back.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Estimate, Invoice, Organization
from ..validation import ESTIMATE_POLICY, ValidationError
from smartbuild.time_utils import today
from . import document_service
from .concurrency import lock_for_update, run_with_retry
from .line_item_service import normalize_items, replace_items
from .lifecycle_service import (
    ESTIMATE_APPROVED,
    ESTIMATE_DECLINED,
    ESTIMATE_DRAFT,
    ESTIMATE_SENT,
    ESTIMATE_STATUSES,
    can_transition_estimate,
    validate_estimate_status,
)
from .notification_service import Notifier, SendResult, build_estimate_email, dispatch
from .numbering_service import ensure_number_available, flush_or_conflict
from .tenant_service import get_owned_or_404, scoped_query
from .totals_service import recalculate_totals


def _prepare(org_id: int, data: dict, *, partial: bool) -> dict:
    patch = document_service.prepare_document_patch(
        Estimate,
        org_id=org_id,
        data=data,
        policy=ESTIMATE_POLICY,
        number_field="estimate_number",
        partial=partial,
    )
    if "status" in patch:
        if patch["status"] is None:
            raise ValidationError("status cannot be null")
        validate_estimate_status(patch["status"])
    return patch


def create_estimate(org_id: int, data: dict, items: list, *, for_send: bool = False) -> Estimate:
    """
    Create an estimate with its line items.

    for_send=True applies the send preconditions before writing and stores
    the estimate as draft; the dispatch itself is done by the caller.
    """
    patch = _prepare(org_id, data, partial=False)
    normalized = normalize_items(items)

    if for_send:
        document_service.require_client_email(patch.get("client_id"), org_id)
        patch["status"] = ESTIMATE_DRAFT

    patch.setdefault("status", ESTIMATE_DRAFT)
    if patch.get("issue_date") is None:
        patch["issue_date"] = today()

    def _op():
        ensure_number_available(Estimate, org_id=org_id, number=patch["estimate_number"])

        estimate = Estimate(org_id=org_id, **patch)
        db.session.add(estimate)
        replace_items(estimate, normalized)

        flush_or_conflict()
        db.session.commit()
        return estimate

    return run_with_retry(_op)


def update_estimate(
    org_id: int,
    estimate_id: int,
    data: dict,
    items: list | None = None,
    *,
    for_send: bool = False,
) -> Estimate:
    """
    Edit an estimate. When items is given the whole set is replaced.

    for_send=True keeps the stored status untouched (only a successful
    dispatch moves it to sent) and enforces the client email precondition.
    """
    patch = _prepare(org_id, data, partial=True)
    normalized = normalize_items(items) if items is not None else None

    def _op():
        estimate = lock_for_update(
            scoped_query(Estimate, org_id).filter(Estimate.id == estimate_id)
        ).first()
        if estimate is None:
            get_owned_or_404(Estimate, estimate_id, org_id)

        if for_send:
            client_id = patch["client_id"] if "client_id" in patch else estimate.client_id
            document_service.require_client_email(client_id, org_id)
            patch.pop("status", None)

        if "estimate_number" in patch and patch["estimate_number"] != estimate.estimate_number:
            ensure_number_available(
                Estimate, org_id=org_id, number=patch["estimate_number"], exclude_id=estimate.id
            )

        for key, value in patch.items():
            setattr(estimate, key, value)

        if normalized is not None:
            replace_items(estimate, normalized)
        else:
            recalculate_totals(estimate)

        flush_or_conflict()
        db.session.commit()
        return estimate

    return run_with_retry(_op)


def get_estimate(org_id: int, estimate_id: int) -> Estimate:
    return get_owned_or_404(Estimate, estimate_id, org_id)


def list_estimates(
    org_id: int,
    *,
    include_archived: bool = False,
    archived_only: bool = False,
    status: str | None = None,
    client_id: int | None = None,
) -> list[Estimate]:
    """Newest first. Archived estimates are hidden unless asked for."""
    query = scoped_query(Estimate, org_id)
    query = document_service.filter_archived(
        query, Estimate, include_archived=include_archived, archived_only=archived_only
    )
    if status:
        validate_estimate_status(status)
        query = query.filter(Estimate.status == status)
    if client_id is not None:
        query = query.filter(Estimate.client_id == client_id)
    return query.order_by(Estimate.created_at.desc(), Estimate.id.desc()).all()


def group_estimates_by_status(estimates) -> dict:
    return document_service.group_by_status(estimates, ESTIMATE_STATUSES)


def set_estimate_status(org_id: int, estimate_id: int, status: str) -> Estimate:
    """
    Manual status override. Any status may follow any other; only the
    value itself is validated. Totals, items and archive state are untouched.
    """
    validate_estimate_status(status)

    def _op():
        estimate = get_owned_or_404(Estimate, estimate_id, org_id)
        can_transition_estimate(estimate.status, status)
        estimate.status = status
        db.session.commit()
        return estimate

    return run_with_retry(_op)


def mark_estimate_sent(org_id: int, estimate_id: int) -> Estimate:
    return set_estimate_status(org_id, estimate_id, ESTIMATE_SENT)


def approve_estimate(org_id: int, estimate_id: int) -> Estimate:
    return set_estimate_status(org_id, estimate_id, ESTIMATE_APPROVED)


def decline_estimate(org_id: int, estimate_id: int) -> Estimate:
    return set_estimate_status(org_id, estimate_id, ESTIMATE_DECLINED)


def archive_estimate(org_id: int, estimate_id: int) -> Estimate:
    def _op():
        estimate = get_owned_or_404(Estimate, estimate_id, org_id)
        document_service.archive(estimate)
        db.session.commit()
        return estimate

    return run_with_retry(_op)


def unarchive_estimate(org_id: int, estimate_id: int) -> Estimate:
    def _op():
        estimate = get_owned_or_404(Estimate, estimate_id, org_id)
        document_service.unarchive(estimate)
        db.session.commit()
        return estimate

    return run_with_retry(_op)


def toggle_estimate_archive(org_id: int, estimate_id: int) -> Estimate:
    estimate = get_owned_or_404(Estimate, estimate_id, org_id)
    if estimate.archived_at is None:
        return archive_estimate(org_id, estimate_id)
    return unarchive_estimate(org_id, estimate_id)


def delete_estimate(org_id: int, estimate_id: int, *, confirm: bool = False) -> None:
    """
    Hard delete, cascading to line items. Invoices converted from this
    estimate are kept and lose their back-reference.
    """
    document_service.require_delete_confirmation(confirm, "estimate")

    def _op():
        estimate = get_owned_or_404(Estimate, estimate_id, org_id)
        (
            db.session.query(Invoice)
            .filter(Invoice.org_id == org_id, Invoice.source_estimate_id == estimate.id)
            .update({Invoice.source_estimate_id: None}, synchronize_session="fetch")
        )
        db.session.delete(estimate)
        db.session.commit()

    run_with_retry(_op)


# =============================================================================
# Sending
# =============================================================================

def send_estimate(org_id: int, estimate_id: int, *, notifier: Notifier | None = None) -> SendResult:
    """
    Email the estimate to its client and, on success, mark it sent.

    Raises ValidationError when the client or its email is missing.
    Delivery failure leaves status unchanged and returns sent=False.
    """
    estimate = get_owned_or_404(Estimate, estimate_id, org_id)
    if estimate.client is None or not (estimate.client.email or "").strip():
        raise ValidationError("Client does not have an email address")

    organization = db.session.query(Organization).filter_by(id=org_id).first()
    message = build_estimate_email(estimate, organization)

    result = dispatch(message, notifier)
    if result.sent:
        mark_estimate_sent(org_id, estimate_id)
    return result


def create_and_send_estimate(
    org_id: int,
    data: dict,
    items: list,
    *,
    notifier: Notifier | None = None,
) -> tuple[Estimate, SendResult]:
    """Save as draft, then send. The estimate exists whatever the send outcome."""
    estimate = create_estimate(org_id, data, items, for_send=True)
    result = send_estimate(org_id, estimate.id, notifier=notifier)
    return estimate, result


def update_and_send_estimate(
    org_id: int,
    estimate_id: int,
    data: dict,
    items: list | None = None,
    *,
    notifier: Notifier | None = None,
) -> tuple[Estimate, SendResult]:
    """Save the edit, then send. A failed send keeps the pre-save status."""
    estimate = update_estimate(org_id, estimate_id, data, items, for_send=True)
    result = send_estimate(org_id, estimate.id, notifier=notifier)
    return estimate, result
