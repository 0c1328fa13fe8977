"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Every request is scoped to a tenant (organization), and cross-tenant access
must be denied. Service functions receive org_id explicitly; the only place
that reads the ambient Flask context is get_current_org_id(), used by routes.

INVARIANTS:
1. Every tenant-facing request has g.org_id set by @require_tenant
2. Client IDs from input must be validated against org_id
3. Record lookups by id always filter by org_id as well
4. A record owned by another org is reported exactly like a missing one

USAGE:
    from smartbuild.services.tenant_service import get_owned_or_404

    estimate = get_owned_or_404(Estimate, estimate_id, org_id)
"""

from flask import current_app, g, has_app_context

from ..extensions import db
from ..models import Client, Organization
from ..validation import NotFoundError, ValidationError


class TenantAccessError(Exception):
    """Raised when tenant context is missing or the tenant is unusable."""
    pass


def get_current_org_id() -> int:
    """
    Get current tenant's org_id from Flask g context.

    Raises TenantAccessError if org_id not set. This should never happen
    after @require_tenant, but is a safety check.
    """
    if not hasattr(g, 'org_id') or g.org_id is None:
        raise TenantAccessError("Tenant context not established")
    return g.org_id


def validate_org_active(org_id: int) -> Organization:
    """
    Validate that an organization exists and is active.

    Raises:
        TenantAccessError if org doesn't exist or is inactive
    """
    org = db.session.query(Organization).filter_by(id=org_id).first()

    if not org:
        raise TenantAccessError("Organization not found")

    if not org.is_active:
        raise TenantAccessError("Organization is not active")

    return org


def scoped_query(model, org_id: int | None = None):
    """
    Base query for an org-owned model, filtered to the tenant.

    Usage:
        clients = scoped_query(Client, org_id).order_by(Client.name).all()
    """
    if org_id is None:
        org_id = get_current_org_id()
    return db.session.query(model).filter(model.org_id == org_id)


def get_owned(model, record_id: int, org_id: int):
    """Return the record if it exists inside the tenant, else None."""
    record = scoped_query(model, org_id).filter(model.id == record_id).first()
    if record is None:
        _log_cross_tenant_attempt(model, record_id, org_id)
    return record


def get_owned_or_404(model, record_id: int, org_id: int):
    """
    Tenant-scoped lookup for user-initiated operations.

    Raises NotFoundError for both "missing" and "belongs to another org",
    so the existence of other tenants' data is never revealed.
    """
    record = get_owned(model, record_id, org_id)
    if record is None:
        raise NotFoundError(f"{model.__name__} not found")
    return record


def require_client_in_org(client_id: int | None, org_id: int) -> Client | None:
    """
    Validate an optional client reference supplied on a document.

    None is allowed (documents may have no client). A client id that is
    unknown to this tenant is an input error, not a 404 on the document.
    """
    if client_id is None:
        return None
    client = get_owned(Client, client_id, org_id)
    if client is None:
        raise ValidationError("client_id does not refer to a client of this organization")
    return client


def _log_cross_tenant_attempt(model, record_id: int, org_id: int) -> None:
    """Record lookups of ids that exist under a different organization."""
    if not has_app_context():
        return
    owner = (
        db.session.query(model.org_id)
        .filter(model.id == record_id)
        .scalar()
    )
    if owner is not None and owner != org_id:
        current_app.logger.warning(
            "Cross-tenant access denied: %s %s belongs to org %s, requested by org %s",
            model.__name__, record_id, owner, org_id,
        )
