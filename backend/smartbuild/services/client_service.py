# Overview: Service-layer operations for clients; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Client, Estimate, Invoice
from ..validation import CLIENT_POLICY, validate_payload
from .concurrency import run_with_retry
from .document_service import detach_client
from .tenant_service import get_owned_or_404, scoped_query


def create_client(org_id: int, data: dict) -> Client:
    patch = validate_payload(model=Client, payload=data, policy=CLIENT_POLICY, partial=False)

    client = Client(org_id=org_id, **patch)
    db.session.add(client)
    db.session.commit()
    return client


def update_client(org_id: int, client_id: int, data: dict) -> Client:
    patch = validate_payload(model=Client, payload=data, policy=CLIENT_POLICY, partial=True)

    def _op():
        client = get_owned_or_404(Client, client_id, org_id)
        for key, value in patch.items():
            setattr(client, key, value)
        db.session.commit()
        return client

    return run_with_retry(_op)


def get_client(org_id: int, client_id: int) -> Client:
    return get_owned_or_404(Client, client_id, org_id)


def list_clients(org_id: int, *, search: str | None = None, order: str = "recent") -> list[Client]:
    """
    Clients for a tenant.

    order="recent" is newest first (the client list); order="name" is
    alphabetical (the client picker on document forms).
    """
    query = scoped_query(Client, org_id)

    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Client.name).like(pattern),
            func.lower(func.coalesce(Client.email, "")).like(pattern),
        ))

    if order == "name":
        query = query.order_by(Client.name.asc(), Client.id.asc())
    else:
        query = query.order_by(Client.created_at.desc(), Client.id.desc())
    return query.all()


def delete_client(org_id: int, client_id: int) -> None:
    """
    Delete a client. Its estimates and invoices survive with client_id nulled.

    The FK is ON DELETE SET NULL; the explicit update keeps the behaviour
    identical on SQLite connections that don't enforce foreign keys.
    """
    def _op():
        client = get_owned_or_404(Client, client_id, org_id)
        for model in (Estimate, Invoice):
            detach_client(model, org_id, client.id)
        db.session.delete(client)
        db.session.commit()

    run_with_retry(_op)
