"""
Sending estimates: preconditions, message content and failure isolation.

A failed email never rolls back the saved estimate and never marks it sent.
"""

from decimal import Decimal
from email.message import EmailMessage

import pytest

from smartbuild.models import Estimate
from smartbuild.services import estimate_service
from smartbuild.services.notification_service import (
    LogNotifier,
    SmtpNotifier,
    build_estimate_email,
    get_notifier,
)
from smartbuild.validation import ValidationError

from conftest import money


class TestSend:
    def test_successful_send_marks_sent(self, db_session, org_a, client_a, make_estimate, notifier):
        estimate = make_estimate(org_a, client_id=client_a.id, valid_until="2026-03-05")

        result = estimate_service.send_estimate(org_a.id, estimate.id)

        assert result.sent is True
        assert result.error is None
        assert estimate_service.get_estimate(org_a.id, estimate.id).status == "sent"

        [message] = notifier.sent
        assert message.to == "jane@example.test"
        assert message.subject == "Estimate EST-000001 from Acme Builders"
        assert message.body == {
            "client_name": "Jane Homeowner",
            "estimate_number": "EST-000001",
            "estimate_title": "Kitchen Remodel",
            "total": "$756.00",
            "valid_until": "March 5, 2026",
            "view_url": f"https://app.smartbuild.test/estimates/{estimate.id}",
            "business_name": "Acme Builders",
        }
        assert "$756.00" in message.text
        assert message.reply_to == "office@acme.test"

    def test_failed_send_leaves_status(self, db_session, org_a, client_a, make_estimate, notifier):
        estimate = make_estimate(org_a, client_id=client_a.id)
        notifier.fail = True

        result = estimate_service.send_estimate(org_a.id, estimate.id)

        assert result.sent is False
        assert "email configuration" in result.error
        assert estimate_service.get_estimate(org_a.id, estimate.id).status == "draft"

    def test_client_without_email(self, db_session, org_a, client_no_email, make_estimate, notifier):
        estimate = make_estimate(org_a, client_id=client_no_email.id)
        with pytest.raises(ValidationError, match="email"):
            estimate_service.send_estimate(org_a.id, estimate.id)
        assert notifier.sent == []

    def test_estimate_without_client(self, db_session, org_a, make_estimate, notifier):
        estimate = make_estimate(org_a)
        with pytest.raises(ValidationError):
            estimate_service.send_estimate(org_a.id, estimate.id)

    def test_missing_business_name_falls_back(self, db_session, org_b, client_b, make_estimate, notifier):
        estimate = make_estimate(org_b, client_id=client_b.id)
        estimate_service.send_estimate(org_b.id, estimate.id)
        assert notifier.sent[0].subject == "Estimate EST-000001 from Your Business"
        assert notifier.sent[0].body["valid_until"] is None


class TestSaveAndSend:
    def test_create_and_send(self, db_session, org_a, client_a, items, notifier):
        estimate, result = estimate_service.create_and_send_estimate(
            org_a.id,
            {"estimate_number": "EST-200001", "title": "Porch", "client_id": client_a.id, "status": "approved"},
            items,
        )
        assert result.sent is True
        assert estimate_service.get_estimate(org_a.id, estimate.id).status == "sent"

    def test_create_and_send_failure_keeps_draft(self, db_session, org_a, client_a, items, notifier):
        notifier.fail = True
        estimate, result = estimate_service.create_and_send_estimate(
            org_a.id,
            {"estimate_number": "EST-200001", "title": "Porch", "client_id": client_a.id},
            items,
        )
        assert result.sent is False
        saved = estimate_service.get_estimate(org_a.id, estimate.id)
        assert saved.status == "draft"
        assert len(saved.items) == 2
        assert money(saved.total) == Decimal("700.00")

    def test_update_and_send_failure_persists_edit(self, db_session, org_a, client_a, make_estimate, notifier):
        estimate = make_estimate(org_a, client_id=client_a.id, status="declined")
        notifier.fail = True

        estimate, result = estimate_service.update_and_send_estimate(
            org_a.id,
            estimate.id,
            {"title": "Revised remodel", "status": "sent"},
            [{"description": "Labor", "quantity": 12, "unit": "hr", "unit_price": 50}],
        )

        assert result.sent is False
        saved = estimate_service.get_estimate(org_a.id, estimate.id)
        assert saved.title == "Revised remodel"
        assert [i.description for i in saved.items] == ["Labor"]
        assert money(saved.total) == Decimal("648.00")
        assert saved.status == "declined"

    def test_send_requested_without_email_writes_nothing(self, db_session, org_a, client_no_email, items, notifier):
        with pytest.raises(ValidationError, match="email"):
            estimate_service.create_and_send_estimate(
                org_a.id,
                {"estimate_number": "EST-200001", "title": "Porch", "client_id": client_no_email.id},
                items,
            )
        assert db_session.query(Estimate).count() == 0

    def test_send_requested_without_client(self, db_session, org_a, items, notifier):
        with pytest.raises(ValidationError, match="select a client"):
            estimate_service.create_and_send_estimate(
                org_a.id, {"estimate_number": "EST-200001", "title": "Porch"}, items
            )


class TestNotifiers:
    def test_default_backend_is_log(self, app):
        app.extensions.pop("smartbuild.notifier", None)
        assert isinstance(get_notifier(), LogNotifier)
        app.extensions.pop("smartbuild.notifier", None)

    def test_unknown_backend(self, app):
        app.extensions.pop("smartbuild.notifier", None)
        app.config["MAIL_BACKEND"] = "pigeon"
        try:
            with pytest.raises(ValueError, match="pigeon"):
                get_notifier()
        finally:
            app.config["MAIL_BACKEND"] = "log"

    def test_smtp_message_layout(self, db_session, org_a, client_a, make_estimate):
        estimate = make_estimate(org_a, client_id=client_a.id)
        smtp = SmtpNotifier(
            host="smtp.test", port=587, username=None, password=None,
            use_tls=True, default_sender="estimates@smartbuild.test",
        )

        msg = smtp.build_message(build_estimate_email(estimate, org_a))

        assert isinstance(msg, EmailMessage)
        assert msg["To"] == "jane@example.test"
        assert msg["From"] == "Acme Builders <estimates@smartbuild.test>"
        assert msg["Reply-To"] == "office@acme.test"
        assert msg.is_multipart()
