# Overview: Status rules for estimates and invoices; no database work happens here.

"""
SmartBuild Document Lifecycle Service

================================================================================
PURPOSE: Single source of truth for estimate and invoice status values
================================================================================

ESTIMATE STATES:
    draft -> sent -> approved
                  -> declined

    draft:    Being prepared. "Send to client" is available when the client
              has an email address.
    sent:     Emailed (or marked sent by hand). Awaiting the client's answer.
    approved: Accepted by the client. Precondition for invoice conversion.
    declined: Lost deal. Terminal by convention only.

    Manual overrides are allowed between ANY two states, including back to
    draft and out of declined. The forward path above describes which
    actions are offered, not which writes are permitted.

INVOICE STATES:
    unpaid <-> paid

    Toggled freely in both directions. paid_date is non-null exactly when
    status is paid. Overdue is derived (unpaid, has due date, due date in the
    past) and never stored.

ARCHIVE:
    archived_at is orthogonal to both machines. Archiving never touches
    status and status changes never touch archived_at.

================================================================================
"""

from __future__ import annotations
from typing import Literal

from ..validation import ValidationError


ESTIMATE_DRAFT = "draft"
ESTIMATE_SENT = "sent"
ESTIMATE_APPROVED = "approved"
ESTIMATE_DECLINED = "declined"

# Display order, also used for grouped listings
ESTIMATE_STATUSES = (ESTIMATE_DRAFT, ESTIMATE_SENT, ESTIMATE_APPROVED, ESTIMATE_DECLINED)
EstimateStatus = Literal["draft", "sent", "approved", "declined"]

INVOICE_UNPAID = "unpaid"
INVOICE_PAID = "paid"
INVOICE_STATUSES = (INVOICE_UNPAID, INVOICE_PAID)
InvoiceStatus = Literal["unpaid", "paid"]

# The path the UI walks a document along. Anything else is a manual override.
ESTIMATE_FORWARD_TRANSITIONS = {
    (ESTIMATE_DRAFT, ESTIMATE_SENT),
    (ESTIMATE_SENT, ESTIMATE_APPROVED),
    (ESTIMATE_SENT, ESTIMATE_DECLINED),
}


class LifecycleError(ValidationError):
    """
    Raised when a status value is unknown or an action's precondition fails.

    This is a domain error, not a technical error.
    """
    pass


def validate_estimate_status(status: str) -> str:
    if status not in ESTIMATE_STATUSES:
        raise LifecycleError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ESTIMATE_STATUSES)}"
        )
    return status


def validate_invoice_status(status: str) -> str:
    if status not in INVOICE_STATUSES:
        raise LifecycleError(
            f"Invalid status '{status}'. Must be one of: {', '.join(INVOICE_STATUSES)}"
        )
    return status


def can_transition_estimate(from_status: str, to_status: str) -> bool:
    """Every pair of valid estimate statuses is an allowed transition."""
    validate_estimate_status(from_status)
    validate_estimate_status(to_status)
    return True


def is_forward_transition(from_status: str, to_status: str) -> bool:
    """True for the transitions the normal workflow offers as actions."""
    return (from_status, to_status) in ESTIMATE_FORWARD_TRANSITIONS


def can_convert_estimate(estimate) -> bool:
    return estimate.status == ESTIMATE_APPROVED


def require_convertible(estimate) -> None:
    if not can_convert_estimate(estimate):
        raise LifecycleError(
            f"Cannot convert estimate {estimate.estimate_number}: "
            f"current status is '{estimate.status}', must be '{ESTIMATE_APPROVED}'"
        )


def can_send_estimate(estimate) -> bool:
    """The "send to client" action needs a client with an email address."""
    client = estimate.client
    return bool(client is not None and client.email and client.email.strip())


def available_estimate_actions(estimate) -> list[str]:
    """
    Actions a detail view should offer for an estimate.

    Mirrors the workflow: send from draft, approve/decline from sent,
    convert from approved, and archive/unarchive always.
    """
    actions: list[str] = []
    if estimate.status == ESTIMATE_DRAFT and can_send_estimate(estimate):
        actions.append("send")
    if estimate.status == ESTIMATE_SENT:
        actions.extend(["approve", "decline"])
    if can_convert_estimate(estimate):
        actions.append("convert")
    actions.append("unarchive" if estimate.archived_at is not None else "archive")
    actions.append("delete")
    return actions


def paid_date_consistent(status: str, paid_date) -> bool:
    """Invoice invariant: paid_date non-null iff status == paid."""
    return (status == INVOICE_PAID) == (paid_date is not None)
