# Overview: Flask API routes for clients; parses input and returns JSON responses.

"""Client API routes (tenant-scoped)"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_tenant, query_flag
from ..money import money_str
from ..services import client_service, document_service
from ..services.tenant_service import get_current_org_id
from ..time_utils import to_iso_date, to_utc_z
from ..validation import NotFoundError, ValidationError


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("/")
@require_tenant
def list_clients_route():
    """
    List clients.

    Query params:
        search      case-insensitive match on name or email
        order       "recent" (default) or "name"
    """
    clients = client_service.list_clients(
        get_current_org_id(),
        search=request.args.get("search") or None,
        order=request.args.get("order", "recent"),
    )
    return jsonify({"clients": [c.to_dict() for c in clients]}), 200


@clients_bp.post("/")
@require_tenant
def create_client_route():
    try:
        client = client_service.create_client(get_current_org_id(), request.get_json() or {})
        return jsonify({"client": client.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("/<int:client_id>")
@require_tenant
def get_client_route(client_id: int):
    try:
        client = client_service.get_client(get_current_org_id(), client_id)
        return jsonify({"client": client.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@clients_bp.put("/<int:client_id>")
@require_tenant
def update_client_route(client_id: int):
    try:
        client = client_service.update_client(get_current_org_id(), client_id, request.get_json() or {})
        return jsonify({"client": client.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.delete("/<int:client_id>")
@require_tenant
def delete_client_route(client_id: int):
    """Delete a client. Its estimates and invoices are kept without a client."""
    try:
        client_service.delete_client(get_current_org_id(), client_id)
        return jsonify({"deleted": True}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("/<int:client_id>/documents")
@require_tenant
def client_documents_route(client_id: int):
    """
    Estimates and invoices for one client, newest first.

    Query params: type (ESTIMATES | INVOICES), all=true, limit, offset
    """
    try:
        org_id = get_current_org_id()
        client_service.get_client(org_id, client_id)

        doc_type = request.args.get("type") or None
        if doc_type and doc_type not in document_service.DOCUMENT_TYPES:
            return jsonify({"error": f"Invalid document type: {doc_type}"}), 400

        rows, total = document_service.list_documents(
            org_id,
            doc_type=doc_type,
            client_id=client_id,
            include_archived=query_flag("all"),
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        documents = [
            {
                **row,
                "total": money_str(row["total"]),
                "issue_date": to_iso_date(row["issue_date"]),
                "created_at": to_utc_z(row["created_at"]),
            }
            for row in rows
        ]
        return jsonify({"documents": documents, "total": total}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
