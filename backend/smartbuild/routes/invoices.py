# Overview: Flask API routes for invoices; parses input and returns JSON responses.

"""Invoice API routes (tenant-scoped)"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_tenant, query_flag
from ..money import money_str
from ..services import invoice_service, line_item_service
from ..services.numbering_service import suggest_invoice_number
from ..services.tenant_service import get_current_org_id
from ..time_utils import parse_iso_date
from ..validation import NotFoundError, UniquenessConflict, ValidationError


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _split_payload(data: dict):
    data = dict(data)
    items = data.pop("items", None)
    return data, items


@invoices_bp.get("/")
@require_tenant
def list_invoices_route():
    """
    List invoices, newest first.

    Query params:
        archived=true   only archived invoices
        all=true        active and archived
        status          unpaid | paid
        client_id       filter by client
        overdue=true    unpaid invoices past their due date
        grouped=true    bucket by status with count and total value
    """
    try:
        invoices = invoice_service.list_invoices(
            get_current_org_id(),
            include_archived=query_flag("all"),
            archived_only=query_flag("archived"),
            status=request.args.get("status") or None,
            client_id=request.args.get("client_id", type=int),
            overdue_only=query_flag("overdue"),
        )

        if query_flag("grouped"):
            groups = invoice_service.group_invoices_by_status(invoices)
            return jsonify({
                "groups": {
                    status: {
                        "count": bucket["count"],
                        "total_value": money_str(bucket["total_value"]),
                        "invoices": [i.to_dict() for i in bucket["documents"]],
                    }
                    for status, bucket in groups.items()
                }
            }), 200

        return jsonify({"invoices": [i.to_dict() for i in invoices]}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/next-number")
@require_tenant
def next_invoice_number_route():
    """Suggested number for the new-invoice form. Not reserved."""
    return jsonify({"invoice_number": suggest_invoice_number()}), 200


@invoices_bp.post("/")
@require_tenant
def create_invoice_route():
    """
    Create a standalone invoice with its line items.

    due_date defaults to issue_date + INVOICE_PAYMENT_TERMS_DAYS when omitted.
    """
    try:
        data, items = _split_payload(request.get_json() or {})
        invoice = invoice_service.create_invoice(get_current_org_id(), data, items)
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 201

    except UniquenessConflict as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_tenant
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(get_current_org_id(), invoice_id)
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@invoices_bp.put("/<int:invoice_id>")
@require_tenant
def update_invoice_route(invoice_id: int):
    """Save an edited invoice. "items", when present, replaces the whole set."""
    try:
        data, items = _split_payload(request.get_json() or {})
        invoice = invoice_service.update_invoice(get_current_org_id(), invoice_id, data, items)
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except UniquenessConflict as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/paid")
@require_tenant
def mark_paid_route(invoice_id: int):
    """Mark paid. Optional body: {"paid_date": "2026-03-01"} (defaults to today)."""
    try:
        data = request.get_json(silent=True) or {}
        paid_date = None
        if data.get("paid_date"):
            try:
                paid_date = parse_iso_date(data["paid_date"])
            except ValueError:
                return jsonify({"error": "paid_date must be an ISO date"}), 400

        invoice = invoice_service.mark_invoice_paid(
            get_current_org_id(), invoice_id, paid_date=paid_date
        )
        return jsonify({"invoice": invoice.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to mark invoice paid")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/unpaid")
@require_tenant
def mark_unpaid_route(invoice_id: int):
    try:
        invoice = invoice_service.mark_invoice_unpaid(get_current_org_id(), invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to mark invoice unpaid")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/toggle-paid")
@require_tenant
def toggle_paid_route(invoice_id: int):
    try:
        invoice = invoice_service.toggle_invoice_paid(get_current_org_id(), invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to toggle invoice payment status")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/archive")
@require_tenant
def archive_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.archive_invoice(get_current_org_id(), invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to archive invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/unarchive")
@require_tenant
def unarchive_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.unarchive_invoice(get_current_org_id(), invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to unarchive invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>")
@require_tenant
def delete_invoice_route(invoice_id: int):
    """Permanent delete. Requires ?confirm=true."""
    try:
        invoice_service.delete_invoice(
            get_current_org_id(), invoice_id, confirm=query_flag("confirm")
        )
        return jsonify({"deleted": True}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LINE ITEMS
# =============================================================================

@invoices_bp.post("/<int:invoice_id>/items")
@require_tenant
def add_invoice_item_route(invoice_id: int):
    try:
        org_id = get_current_org_id()
        item = line_item_service.add_item(org_id, "invoice", invoice_id, request.get_json() or {})
        invoice = invoice_service.get_invoice(org_id, invoice_id)
        return jsonify({"item": item.to_dict(), "invoice": invoice.to_dict()}), 201

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to add invoice item")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.patch("/<int:invoice_id>/items/<int:item_id>")
@require_tenant
def update_invoice_item_route(invoice_id: int, item_id: int):
    try:
        org_id = get_current_org_id()
        item = line_item_service.update_item(
            org_id, "invoice", invoice_id, item_id, request.get_json() or {}
        )
        invoice = invoice_service.get_invoice(org_id, invoice_id)
        return jsonify({"item": item.to_dict(), "invoice": invoice.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update invoice item")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>/items/<int:item_id>")
@require_tenant
def remove_invoice_item_route(invoice_id: int, item_id: int):
    try:
        invoice = line_item_service.remove_item(get_current_org_id(), "invoice", invoice_id, item_id)
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to remove invoice item")
        return jsonify({"error": "Internal server error"}), 500
