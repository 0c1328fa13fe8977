# Overview: Flask API route for the dashboard summary.

from flask import Blueprint, jsonify

from ..decorators import require_tenant
from ..money import money_str
from ..services import dashboard_service
from ..services.tenant_service import get_current_org_id


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")

MONEY_FIELDS = ("total_estimate_value", "revenue", "outstanding")


@dashboard_bp.get("/")
@require_tenant
def dashboard_route():
    """Counts, revenue and the latest documents for the current organization."""
    org_id = get_current_org_id()

    stats = dashboard_service.dashboard_summary(org_id)
    for key in MONEY_FIELDS:
        stats[key] = money_str(stats[key])

    recent = dashboard_service.recent_documents(org_id)
    return jsonify({
        "stats": stats,
        "recent_estimates": [e.to_dict() for e in recent["estimates"]],
        "recent_invoices": [i.to_dict() for i in recent["invoices"]],
    }), 200
