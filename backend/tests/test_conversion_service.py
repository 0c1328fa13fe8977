"""Conversion Engine tests: approved estimate -> new unpaid invoice."""

from datetime import timedelta
from decimal import Decimal

import pytest

from smartbuild.extensions import db
from smartbuild.models import Estimate, Invoice, InvoiceItem
from smartbuild.services import conversion_service, estimate_service, line_item_service
from smartbuild.services.conversion_service import next_free_invoice_number
from smartbuild.services.lifecycle_service import LifecycleError
from smartbuild.time_utils import today
from smartbuild.validation import NotFoundError

from conftest import money


@pytest.fixture
def approved_estimate(db_session, org_a, client_a, make_estimate):
    return make_estimate(
        org_a,
        status="approved",
        client_id=client_a.id,
        description="Full kitchen remodel",
        notes="50% deposit",
        job_site_address="12 Oak St",
    )


class TestConversion:
    def test_labor_and_materials_fidelity(self, db_session, org_a, approved_estimate):
        invoice = conversion_service.convert_estimate_to_invoice(org_a.id, approved_estimate.id)

        assert [(i.description, i.quantity, i.unit, i.unit_price) for i in invoice.items] == [
            ("Labor", Decimal("10.00"), "hr", Decimal("50.00")),
            ("Materials", Decimal("1.00"), "each", Decimal("200.00")),
        ]
        assert money(invoice.total) == Decimal("756.00")

    def test_header_copy(self, db_session, org_a, client_a, approved_estimate):
        invoice = conversion_service.convert_estimate_to_invoice(org_a.id, approved_estimate.id)

        assert invoice.client_id == client_a.id
        assert invoice.source_estimate_id == approved_estimate.id
        assert invoice.title == "Kitchen Remodel"
        assert invoice.description == "Full kitchen remodel"
        assert invoice.notes == "50% deposit"
        assert invoice.job_site_address == "12 Oak St"
        assert money(invoice.tax_rate) == Decimal("8.00")
        assert invoice.status == "unpaid"
        assert invoice.paid_date is None
        assert invoice.issue_date == today()
        assert invoice.due_date == today() + timedelta(days=30)
        assert invoice.invoice_number.startswith("INV-")

    def test_items_are_copies_with_new_ids(self, db_session, org_a, approved_estimate):
        invoice = conversion_service.convert_estimate_to_invoice(org_a.id, approved_estimate.id)
        assert [i.sort_order for i in invoice.items] == [i.sort_order for i in approved_estimate.items]
        assert all(isinstance(i, InvoiceItem) for i in invoice.items)

    def test_totals_come_from_items_not_estimate_columns(self, db_session, org_a, approved_estimate):
        # Corrupt the stored estimate total; the invoice must not inherit it
        db.session.query(Estimate).filter_by(id=approved_estimate.id).update({"total": Decimal("1.00")})
        db.session.commit()

        invoice = conversion_service.convert_estimate_to_invoice(org_a.id, approved_estimate.id)
        assert money(invoice.total) == Decimal("756.00")

    def test_reflects_latest_estimate_edits(self, db_session, org_a, approved_estimate):
        line_item_service.add_item(
            org_a.id, "estimate", approved_estimate.id,
            {"description": "Permit", "quantity": 1, "unit_price": 100},
        )
        estimate_service.update_estimate(org_a.id, approved_estimate.id, {"tax_rate": 0})

        invoice = conversion_service.convert_estimate_to_invoice(org_a.id, approved_estimate.id)
        assert len(invoice.items) == 3
        assert money(invoice.total) == Decimal("800.00")

    def test_source_estimate_unchanged(self, db_session, org_a, approved_estimate):
        before = approved_estimate.to_dict(include_items=True)
        conversion_service.convert_estimate_to_invoice(org_a.id, approved_estimate.id)

        after = estimate_service.get_estimate(org_a.id, approved_estimate.id).to_dict(include_items=True)
        assert after == before

    @pytest.mark.parametrize("status", ["draft", "sent", "declined"])
    def test_only_approved_estimates_convert(self, db_session, org_a, make_estimate, status):
        estimate = make_estimate(org_a, status=status)
        with pytest.raises(LifecycleError, match="must be 'approved'"):
            conversion_service.convert_estimate_to_invoice(org_a.id, estimate.id)
        assert db_session.query(Invoice).count() == 0

    def test_duplicate_conversion_yields_independent_invoices(self, db_session, org_a, approved_estimate):
        first = conversion_service.convert_estimate_to_invoice(org_a.id, approved_estimate.id)
        second = conversion_service.convert_estimate_to_invoice(org_a.id, approved_estimate.id)

        assert first.id != second.id
        assert first.invoice_number != second.invoice_number
        assert first.source_estimate_id == second.source_estimate_id == approved_estimate.id
        assert len(approved_estimate.invoices) == 2

    def test_other_tenant_cannot_convert(self, db_session, org_b, approved_estimate):
        with pytest.raises(NotFoundError):
            conversion_service.convert_estimate_to_invoice(org_b.id, approved_estimate.id)


class TestInvoiceNumberForConversion:
    def test_skips_taken_numbers(self, db_session, org_a, make_invoice):
        make_invoice(org_a, number="INV-000100")
        make_invoice(org_a, number="INV-000101")
        assert next_free_invoice_number(org_a.id, millis=100) == "INV-000102"

    def test_other_tenants_numbers_do_not_count(self, db_session, org_a, org_b, make_invoice):
        make_invoice(org_b, number="INV-000100")
        assert next_free_invoice_number(org_a.id, millis=100) == "INV-000100"
