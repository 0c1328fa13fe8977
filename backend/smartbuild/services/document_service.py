# Overview: Behaviour shared by estimates and invoices (validation, archive, delete, grouping, unified index).

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Estimate, Invoice
from ..validation import ModelValidationPolicy, ValidationError, enforce_rules_document, validate_payload
from smartbuild.money import ZERO, round2
from smartbuild.time_utils import utcnow
from .tenant_service import require_client_in_org, scoped_query


def prepare_document_patch(
    model,
    *,
    org_id: int,
    data: dict,
    policy: ModelValidationPolicy,
    number_field: str,
    partial: bool,
) -> dict:
    """
    Validate header fields of an estimate or invoice.

    Checks column types, required title/number, tax_rate range and that a
    client_id (if any) belongs to the organization. No writes happen here.
    """
    patch = validate_payload(model=model, payload=data, policy=policy, partial=partial)
    enforce_rules_document(patch)

    if "client_id" in patch:
        require_client_in_org(patch["client_id"], org_id)

    if number_field in patch:
        number = patch[number_field]
        if number is None or not str(number).strip():
            raise ValidationError(f"{number_field} is required")

    return patch


def require_client_email(client_id: int | None, org_id: int) -> None:
    """Precondition for emailing a document: a client with an email address."""
    client = require_client_in_org(client_id, org_id) if client_id is not None else None
    if client is None:
        raise ValidationError("Please select a client to send the estimate")
    if not (client.email or "").strip():
        raise ValidationError("Client does not have an email address")


def archive(document) -> None:
    """Set archived_at once; archiving an archived document keeps the first timestamp."""
    if document.archived_at is None:
        document.archived_at = utcnow()


def unarchive(document) -> None:
    document.archived_at = None


def require_delete_confirmation(confirm: bool, label: str) -> None:
    if not confirm:
        raise ValidationError(
            f"Deleting this {label} cannot be undone; pass confirm=true to proceed"
        )


def filter_archived(query, model, *, include_archived: bool, archived_only: bool):
    if archived_only:
        return query.filter(model.archived_at.isnot(None))
    if not include_archived:
        return query.filter(model.archived_at.is_(None))
    return query


def group_by_status(documents, statuses) -> dict:
    """
    Board view: documents bucketed by status with count and total value.

    Buckets are present for every status, in workflow order, even when empty.
    """
    groups = {status: {"count": 0, "total_value": ZERO, "documents": []} for status in statuses}
    for document in documents:
        bucket = groups.get(document.status)
        if bucket is None:
            continue
        bucket["count"] += 1
        bucket["total_value"] = round2(bucket["total_value"] + Decimal(document.total or 0))
        bucket["documents"].append(document)
    return groups


# =============================================================================
# Unified Documents Index
# =============================================================================

DOCUMENT_TYPES = {
    "ESTIMATES": Estimate,
    "INVOICES": Invoice,
}


def _document_to_index_row(doc_type: str, doc) -> dict:
    number = doc.estimate_number if doc_type == "ESTIMATES" else doc.invoice_number
    return {
        "id": doc.id,
        "type": doc_type,
        "document_number": number,
        "title": doc.title,
        "client_id": doc.client_id,
        "status": doc.status,
        "total": doc.total,
        "issue_date": doc.issue_date,
        "archived": doc.archived_at is not None,
        "created_at": doc.created_at,
    }


def list_documents(
    org_id: int,
    *,
    doc_type: str | None = None,
    client_id: int | None = None,
    include_archived: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """
    List estimates and invoices together, newest first.

    Used for a client's history page.
    """
    types = [doc_type] if doc_type else list(DOCUMENT_TYPES.keys())
    rows: list[dict] = []

    for dtype in types:
        model = DOCUMENT_TYPES.get(dtype)
        if not model:
            continue

        query = scoped_query(model, org_id)
        query = filter_archived(query, model, include_archived=include_archived, archived_only=False)
        if client_id is not None:
            query = query.filter(model.client_id == client_id)

        docs = query.order_by(model.id.desc()).all()
        rows.extend([_document_to_index_row(dtype, doc) for doc in docs])

    rows.sort(key=lambda r: (r["created_at"] is not None, r["created_at"], r["id"]), reverse=True)
    total = len(rows)

    if offset < 0:
        offset = 0
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500

    return rows[offset: offset + limit], total


def detach_client(model, org_id: int, client_id: int) -> int:
    return (
        db.session.query(model)
        .filter(model.org_id == org_id, model.client_id == client_id)
        .update({model.client_id: None}, synchronize_session="fetch")
    )
