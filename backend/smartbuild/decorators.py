# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services.tenant_service import TenantAccessError, validate_org_active

TENANT_HEADER = "X-Org-Id"


def require_tenant(f):
    """
    Establish tenant context for a request.

    MULTI-TENANT: Sets g.org_id from the X-Org-Id header after checking the
    organization exists and is active. Authentication is handled in front of
    this service; the header carries the already-authenticated tenant.

    Returns 401 if the header is missing or malformed, 403 if the
    organization is unknown or deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(TENANT_HEADER)
        if not raw:
            return jsonify({"error": "Tenant context required"}), 401

        try:
            org_id = int(raw)
        except (TypeError, ValueError):
            return jsonify({"error": f"Invalid {TENANT_HEADER} header"}), 401

        try:
            validate_org_active(org_id)
        except TenantAccessError as e:
            current_app.logger.warning(
                "Rejected tenant context org_id=%s path=%s: %s", org_id, request.path, e
            )
            return jsonify({"error": str(e)}), 403

        g.org_id = org_id
        return f(*args, **kwargs)

    return decorated_function


def query_flag(name: str, default: bool = False) -> bool:
    """Read a boolean query-string flag (?archived=true)."""
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
