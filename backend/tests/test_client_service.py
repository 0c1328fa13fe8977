"""Client CRUD tests."""

import pytest

from smartbuild.models import Client
from smartbuild.services import client_service, document_service, estimate_service, invoice_service
from smartbuild.validation import NotFoundError, ValidationError


def test_create_and_update(db_session, org_a):
    c = client_service.create_client(org_a.id, {"name": "  Sam Carter ", "email": "sam@example.test"})
    assert c.name == "Sam Carter"
    assert c.org_id == org_a.id

    c = client_service.update_client(org_a.id, c.id, {"phone": "555-0199", "email": ""})
    assert c.phone == "555-0199"
    assert c.email is None


def test_name_required(db_session, org_a):
    with pytest.raises(ValidationError, match="name"):
        client_service.create_client(org_a.id, {"email": "nameless@example.test"})


def test_unknown_field(db_session, org_a):
    with pytest.raises(ValidationError, match="Field not allowed: org_id"):
        client_service.create_client(org_a.id, {"name": "X", "org_id": 99})


def test_search_and_order(db_session, org_a):
    client_service.create_client(org_a.id, {"name": "Zed Roofing", "email": "zed@roof.test"})
    client_service.create_client(org_a.id, {"name": "Amy Plumbing"})

    names = [c.name for c in client_service.list_clients(org_a.id, order="name")]
    assert names == ["Amy Plumbing", "Zed Roofing"]

    recent = [c.name for c in client_service.list_clients(org_a.id)]
    assert recent == ["Amy Plumbing", "Zed Roofing"]

    assert [c.name for c in client_service.list_clients(org_a.id, search="ROOF")] == ["Zed Roofing"]


def test_delete_keeps_documents(db_session, org_a, client_a, make_estimate, make_invoice):
    estimate = make_estimate(org_a, client_id=client_a.id)
    invoice = make_invoice(org_a, client_id=client_a.id)

    client_service.delete_client(org_a.id, client_a.id)

    assert db_session.query(Client).count() == 0
    assert estimate_service.get_estimate(org_a.id, estimate.id).client_id is None
    assert invoice_service.get_invoice(org_a.id, invoice.id).client_id is None


def test_delete_other_tenant_client(db_session, org_b, client_a):
    with pytest.raises(NotFoundError):
        client_service.delete_client(org_b.id, client_a.id)


def test_client_document_history(db_session, org_a, client_a, make_estimate, make_invoice):
    make_estimate(org_a, client_id=client_a.id)
    make_invoice(org_a, client_id=client_a.id)
    make_invoice(org_a, number="INV-2")

    rows, total = document_service.list_documents(org_a.id, client_id=client_a.id)
    assert total == 2
    assert {r["type"] for r in rows} == {"ESTIMATES", "INVOICES"}

    rows, total = document_service.list_documents(org_a.id, doc_type="INVOICES")
    assert total == 2
