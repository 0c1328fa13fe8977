"""
Multi-tenant isolation tests.

Every lookup is scoped by org_id; another tenant's record behaves exactly
like a missing one.
"""

import pytest

from smartbuild.models import Client, Estimate
from smartbuild.services import client_service, estimate_service, invoice_service
from smartbuild.services.tenant_service import (
    TenantAccessError,
    get_current_org_id,
    require_client_in_org,
    scoped_query,
    validate_org_active,
)
from smartbuild.validation import NotFoundError, ValidationError


class TestScopedQueries:
    def test_scoped_query_filters_estimates(self, db_session, org_a, org_b, make_estimate):
        est_a = make_estimate(org_a)
        est_b = make_estimate(org_b)

        assert [e.id for e in scoped_query(Estimate, org_a.id).all()] == [est_a.id]
        assert [e.id for e in scoped_query(Estimate, org_b.id).all()] == [est_b.id]

    def test_cross_tenant_read_is_not_found(self, db_session, org_a, org_b, make_estimate):
        estimate = make_estimate(org_a)
        with pytest.raises(NotFoundError):
            estimate_service.get_estimate(org_b.id, estimate.id)

    def test_cross_tenant_write_is_not_found(self, db_session, org_a, org_b, make_estimate, make_invoice):
        estimate = make_estimate(org_a)
        invoice = make_invoice(org_a)

        with pytest.raises(NotFoundError):
            estimate_service.update_estimate(org_b.id, estimate.id, {"title": "Hijacked"})
        with pytest.raises(NotFoundError):
            estimate_service.delete_estimate(org_b.id, estimate.id, confirm=True)
        with pytest.raises(NotFoundError):
            invoice_service.mark_invoice_paid(org_b.id, invoice.id)

        assert estimate_service.get_estimate(org_a.id, estimate.id).title == "Kitchen Remodel"
        assert invoice_service.get_invoice(org_a.id, invoice.id).status == "unpaid"

    def test_lists_are_per_tenant(self, db_session, org_a, org_b, client_a, client_b):
        assert [c.id for c in client_service.list_clients(org_a.id)] == [client_a.id]
        assert [c.id for c in client_service.list_clients(org_b.id)] == [client_b.id]


class TestClientReferences:
    def test_document_cannot_reference_other_tenant_client(self, db_session, org_a, client_b, make_estimate):
        with pytest.raises(ValidationError, match="client_id"):
            make_estimate(org_a, client_id=client_b.id)

    def test_require_client_in_org(self, db_session, org_a, client_a, client_b):
        assert require_client_in_org(None, org_a.id) is None
        assert require_client_in_org(client_a.id, org_a.id).id == client_a.id
        with pytest.raises(ValidationError):
            require_client_in_org(client_b.id, org_a.id)


class TestTenantContext:
    def test_inactive_org_rejected(self, db_session, org_b):
        org_b.is_active = False
        db_session.commit()
        with pytest.raises(TenantAccessError, match="not active"):
            validate_org_active(org_b.id)

    def test_unknown_org_rejected(self, db_session):
        with pytest.raises(TenantAccessError, match="not found"):
            validate_org_active(99999)

    def test_missing_context(self, app):
        with app.test_request_context("/"):
            with pytest.raises(TenantAccessError):
                get_current_org_id()

    def test_same_client_name_in_two_orgs(self, db_session, org_a, org_b):
        db_session.add(Client(org_id=org_a.id, name="Pat Smith"))
        db_session.add(Client(org_id=org_b.id, name="Pat Smith"))
        db_session.commit()
        assert db_session.query(Client).filter_by(name="Pat Smith").count() == 2
