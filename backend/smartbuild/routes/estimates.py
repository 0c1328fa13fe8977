# Overview: Flask API routes for estimates; parses input and returns JSON responses.

"""Estimate API routes (tenant-scoped)"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_tenant, query_flag
from ..money import money_str
from ..services import conversion_service, estimate_service, line_item_service
from ..services.lifecycle_service import LifecycleError, available_estimate_actions
from ..services.numbering_service import suggest_estimate_number
from ..services.tenant_service import get_current_org_id
from ..validation import NotFoundError, UniquenessConflict, ValidationError


estimates_bp = Blueprint("estimates", __name__, url_prefix="/api/estimates")


def _estimate_detail(estimate) -> dict:
    data = estimate.to_dict(include_items=True)
    data["actions"] = available_estimate_actions(estimate)
    return data


def _split_payload(data: dict):
    """Separate header fields from the item list and the send flag."""
    data = dict(data)
    items = data.pop("items", None)
    send = data.pop("send", False)
    if send is None:
        send = False
    if not isinstance(send, bool):
        raise ValidationError("send must be true or false")
    return data, items, send


@estimates_bp.get("/")
@require_tenant
def list_estimates_route():
    """
    List estimates, newest first.

    Query params:
        archived=true   only archived estimates
        all=true        active and archived
        status          filter by status
        client_id       filter by client
        grouped=true    bucket by status with count and total value
    """
    try:
        estimates = estimate_service.list_estimates(
            get_current_org_id(),
            include_archived=query_flag("all"),
            archived_only=query_flag("archived"),
            status=request.args.get("status") or None,
            client_id=request.args.get("client_id", type=int),
        )

        if query_flag("grouped"):
            groups = estimate_service.group_estimates_by_status(estimates)
            return jsonify({
                "groups": {
                    status: {
                        "count": bucket["count"],
                        "total_value": money_str(bucket["total_value"]),
                        "estimates": [e.to_dict() for e in bucket["documents"]],
                    }
                    for status, bucket in groups.items()
                }
            }), 200

        return jsonify({"estimates": [e.to_dict() for e in estimates]}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list estimates")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.get("/next-number")
@require_tenant
def next_estimate_number_route():
    """Suggested number for the new-estimate form. Not reserved."""
    return jsonify({"estimate_number": suggest_estimate_number()}), 200


@estimates_bp.post("/")
@require_tenant
def create_estimate_route():
    """
    Create an estimate with its line items.

    Body: estimate fields plus "items" (list, at least one) and optional
    "send": true to email the client right after saving. A failed email
    still returns 201; the "email" key reports the outcome.
    """
    try:
        data, items, send = _split_payload(request.get_json() or {})
        org_id = get_current_org_id()

        if send:
            estimate, result = estimate_service.create_and_send_estimate(org_id, data, items)
            return jsonify({"estimate": _estimate_detail(estimate), "email": result.to_dict()}), 201

        estimate = estimate_service.create_estimate(org_id, data, items)
        return jsonify({"estimate": _estimate_detail(estimate)}), 201

    except UniquenessConflict as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create estimate")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.get("/<int:estimate_id>")
@require_tenant
def get_estimate_route(estimate_id: int):
    try:
        estimate = estimate_service.get_estimate(get_current_org_id(), estimate_id)
        return jsonify({"estimate": _estimate_detail(estimate)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@estimates_bp.put("/<int:estimate_id>")
@require_tenant
def update_estimate_route(estimate_id: int):
    """
    Save an edited estimate. "items", when present, replaces the whole set.

    With "send": true the estimate is emailed after the save; the status
    only becomes sent if the email goes out.
    """
    try:
        data, items, send = _split_payload(request.get_json() or {})
        org_id = get_current_org_id()

        if send:
            estimate, result = estimate_service.update_and_send_estimate(org_id, estimate_id, data, items)
            return jsonify({"estimate": _estimate_detail(estimate), "email": result.to_dict()}), 200

        estimate = estimate_service.update_estimate(org_id, estimate_id, data, items)
        return jsonify({"estimate": _estimate_detail(estimate)}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except UniquenessConflict as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update estimate")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.post("/<int:estimate_id>/send")
@require_tenant
def send_estimate_route(estimate_id: int):
    """
    Email the estimate to its client.

    Returns 200 when sent (status is now sent), 502 when the mail backend
    rejected the message (status unchanged).
    """
    try:
        org_id = get_current_org_id()
        result = estimate_service.send_estimate(org_id, estimate_id)
        estimate = estimate_service.get_estimate(org_id, estimate_id)

        body = {"estimate": _estimate_detail(estimate), "email": result.to_dict()}
        return jsonify(body), 200 if result.sent else 502

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to send estimate")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.post("/<int:estimate_id>/status")
@require_tenant
def set_estimate_status_route(estimate_id: int):
    """Manual status change. Body: {"status": "approved"}"""
    try:
        data = request.get_json() or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        estimate = estimate_service.set_estimate_status(get_current_org_id(), estimate_id, status)
        return jsonify({"estimate": _estimate_detail(estimate)}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to change estimate status")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.post("/<int:estimate_id>/archive")
@require_tenant
def archive_estimate_route(estimate_id: int):
    try:
        estimate = estimate_service.archive_estimate(get_current_org_id(), estimate_id)
        return jsonify({"estimate": estimate.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to archive estimate")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.post("/<int:estimate_id>/unarchive")
@require_tenant
def unarchive_estimate_route(estimate_id: int):
    try:
        estimate = estimate_service.unarchive_estimate(get_current_org_id(), estimate_id)
        return jsonify({"estimate": estimate.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to unarchive estimate")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.post("/<int:estimate_id>/convert")
@require_tenant
def convert_estimate_route(estimate_id: int):
    """
    Create an invoice from an approved estimate.

    Returns 409 if the estimate is not approved.
    """
    try:
        invoice = conversion_service.convert_estimate_to_invoice(get_current_org_id(), estimate_id)
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 201

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (LifecycleError, UniquenessConflict) as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to convert estimate")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.delete("/<int:estimate_id>")
@require_tenant
def delete_estimate_route(estimate_id: int):
    """Permanent delete. Requires ?confirm=true."""
    try:
        estimate_service.delete_estimate(
            get_current_org_id(), estimate_id, confirm=query_flag("confirm")
        )
        return jsonify({"deleted": True}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to delete estimate")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LINE ITEMS
# =============================================================================

@estimates_bp.post("/<int:estimate_id>/items")
@require_tenant
def add_estimate_item_route(estimate_id: int):
    try:
        org_id = get_current_org_id()
        item = line_item_service.add_item(org_id, "estimate", estimate_id, request.get_json() or {})
        estimate = estimate_service.get_estimate(org_id, estimate_id)
        return jsonify({"item": item.to_dict(), "estimate": estimate.to_dict()}), 201

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to add estimate item")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.patch("/<int:estimate_id>/items/<int:item_id>")
@require_tenant
def update_estimate_item_route(estimate_id: int, item_id: int):
    try:
        org_id = get_current_org_id()
        item = line_item_service.update_item(
            org_id, "estimate", estimate_id, item_id, request.get_json() or {}
        )
        estimate = estimate_service.get_estimate(org_id, estimate_id)
        return jsonify({"item": item.to_dict(), "estimate": estimate.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update estimate item")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.delete("/<int:estimate_id>/items/<int:item_id>")
@require_tenant
def remove_estimate_item_route(estimate_id: int, item_id: int):
    try:
        estimate = line_item_service.remove_item(get_current_org_id(), "estimate", estimate_id, item_id)
        return jsonify({"estimate": estimate.to_dict(include_items=True)}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to remove estimate item")
        return jsonify({"error": "Internal server error"}), 500
