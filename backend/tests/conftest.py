"""
Pytest fixtures for SmartBuild backend tests.

Provides test database setup, two tenants, clients, a recording notifier,
and the Flask test client.
"""

from decimal import Decimal

import pytest

from smartbuild import create_app
from smartbuild.extensions import db
from smartbuild.models import Client, Organization
from smartbuild.services import estimate_service, invoice_service
from smartbuild.services.notification_service import NotificationError, Notifier, set_notifier


class RecordingNotifier(Notifier):
    """Keeps sent messages in memory; set fail=True to simulate an outage."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, message):
        if self.fail:
            raise NotificationError("SMTP unavailable", details={"reason": "connection refused"})
        self.sent.append(message)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'APP_BASE_URL': 'https://app.smartbuild.test',
        'MAIL_BACKEND': 'log',
        'INVOICE_PAYMENT_TERMS_DAYS': 30,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def notifier(app):
    """Install a recording notifier for the duration of a test."""
    recorder = RecordingNotifier()
    set_notifier(app, recorder)
    yield recorder
    app.extensions.pop("smartbuild.notifier", None)


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(
        name="Org A - Acme Builders",
        code="ACME",
        business_name="Acme Builders",
        business_email="office@acme.test",
        is_active=True,
    )
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Renovations", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def client_a(db_session, org_a):
    """Client with an email address in Organization A."""
    c = Client(org_id=org_a.id, name="Jane Homeowner", email="jane@example.test", phone="555-0100")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def client_no_email(db_session, org_a):
    """Client without an email address in Organization A."""
    c = Client(org_id=org_a.id, name="Walk-in Customer")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def client_b(db_session, org_b):
    """Client in Organization B."""
    c = Client(org_id=org_b.id, name="Bob Beta", email="bob@example.test")
    db_session.add(c)
    db_session.commit()
    return c


LABOR_AND_MATERIALS = [
    {"description": "Labor", "quantity": 10, "unit": "hr", "unit_price": 50},
    {"description": "Materials", "quantity": 1, "unit": "each", "unit_price": 200},
]


@pytest.fixture
def items():
    """Two-line item set: 10 hr labor at 50 and materials at 200."""
    return [dict(item) for item in LABOR_AND_MATERIALS]


@pytest.fixture
def make_estimate(db_session):
    """Factory: make_estimate(org, number="EST-000001", **fields)."""
    def _make(org, number="EST-000001", items=None, **fields):
        data = {"estimate_number": number, "title": "Kitchen Remodel", "tax_rate": 8}
        data.update(fields)
        return estimate_service.create_estimate(
            org.id, data, items if items is not None else [dict(i) for i in LABOR_AND_MATERIALS]
        )
    return _make


@pytest.fixture
def make_invoice(db_session):
    """Factory: make_invoice(org, number="INV-000001", **fields)."""
    def _make(org, number="INV-000001", items=None, **fields):
        data = {"invoice_number": number, "title": "Deck Repair", "tax_rate": 0}
        data.update(fields)
        return invoice_service.create_invoice(
            org.id,
            data,
            items if items is not None else [{"description": "Boards", "quantity": 4, "unit_price": "25.50"}],
        )
    return _make


def tenant_headers(org) -> dict:
    return {"X-Org-Id": str(org.id)}


def money(value) -> Decimal:
    return Decimal(str(value))
