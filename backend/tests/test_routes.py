"""HTTP API tests through Flask's test client."""

import pytest

from conftest import tenant_headers


@pytest.fixture
def estimate_payload(client_a):
    return {
        "estimate_number": "EST-300001",
        "title": "Kitchen Remodel",
        "client_id": client_a.id,
        "tax_rate": "8",
        "items": [
            {"description": "Labor", "quantity": 10, "unit": "hr", "unit_price": 50},
            {"description": "Materials", "quantity": 1, "unit": "each", "unit_price": 200},
        ],
    }


class TestTenantHeader:
    def test_missing_header(self, client, db_session):
        resp = client.get("/api/estimates/")
        assert resp.status_code == 401

    def test_garbage_header(self, client, db_session):
        resp = client.get("/api/estimates/", headers={"X-Org-Id": "acme"})
        assert resp.status_code == 401

    def test_unknown_org(self, client, db_session):
        resp = client.get("/api/estimates/", headers={"X-Org-Id": "4242"})
        assert resp.status_code == 403


class TestEstimateRoutes:
    def test_create_get_list(self, client, org_a, estimate_payload):
        resp = client.post("/api/estimates/", json=estimate_payload, headers=tenant_headers(org_a))
        assert resp.status_code == 201
        body = resp.get_json()["estimate"]
        assert body["total"] == "756.00"
        assert body["status"] == "draft"
        assert [i["description"] for i in body["items"]] == ["Labor", "Materials"]
        assert body["actions"] == ["send", "archive", "delete"]

        resp = client.get(f"/api/estimates/{body['id']}", headers=tenant_headers(org_a))
        assert resp.status_code == 200
        assert resp.get_json()["estimate"]["client"]["name"] == "Jane Homeowner"

        resp = client.get("/api/estimates/", headers=tenant_headers(org_a))
        assert [e["id"] for e in resp.get_json()["estimates"]] == [body["id"]]

    def test_duplicate_number_is_409(self, client, org_a, estimate_payload):
        assert client.post("/api/estimates/", json=estimate_payload, headers=tenant_headers(org_a)).status_code == 201
        resp = client.post("/api/estimates/", json=estimate_payload, headers=tenant_headers(org_a))
        assert resp.status_code == 409

    def test_validation_is_400(self, client, org_a, estimate_payload):
        estimate_payload["items"] = []
        resp = client.post("/api/estimates/", json=estimate_payload, headers=tenant_headers(org_a))
        assert resp.status_code == 400
        assert "line item" in resp.get_json()["error"]

    def test_other_tenant_gets_404(self, client, org_a, org_b, estimate_payload):
        created = client.post("/api/estimates/", json=estimate_payload, headers=tenant_headers(org_a)).get_json()
        resp = client.get(f"/api/estimates/{created['estimate']['id']}", headers=tenant_headers(org_b))
        assert resp.status_code == 404

    def test_save_and_send_failure(self, client, org_a, estimate_payload, notifier):
        notifier.fail = True
        estimate_payload["send"] = True

        resp = client.post("/api/estimates/", json=estimate_payload, headers=tenant_headers(org_a))

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["email"]["sent"] is False
        assert body["estimate"]["status"] == "draft"

    def test_send_flag_must_be_boolean(self, client, org_a, estimate_payload, notifier):
        estimate_payload["send"] = "false"

        resp = client.post("/api/estimates/", json=estimate_payload, headers=tenant_headers(org_a))

        assert resp.status_code == 400
        assert "send" in resp.get_json()["error"]
        assert notifier.sent == []
        resp = client.get("/api/estimates/", headers=tenant_headers(org_a))
        assert resp.get_json()["estimates"] == []

    def test_send_endpoint(self, client, org_a, estimate_payload, notifier):
        estimate_id = client.post(
            "/api/estimates/", json=estimate_payload, headers=tenant_headers(org_a)
        ).get_json()["estimate"]["id"]

        notifier.fail = True
        resp = client.post(f"/api/estimates/{estimate_id}/send", headers=tenant_headers(org_a))
        assert resp.status_code == 502
        assert resp.get_json()["estimate"]["status"] == "draft"

        notifier.fail = False
        resp = client.post(f"/api/estimates/{estimate_id}/send", headers=tenant_headers(org_a))
        assert resp.status_code == 200
        assert resp.get_json()["estimate"]["status"] == "sent"
        assert len(notifier.sent) == 1

    def test_status_archive_convert_delete(self, client, org_a, estimate_payload):
        headers = tenant_headers(org_a)
        estimate_id = client.post("/api/estimates/", json=estimate_payload, headers=headers).get_json()["estimate"]["id"]

        assert client.post(f"/api/estimates/{estimate_id}/convert", headers=headers).status_code == 409

        resp = client.post(f"/api/estimates/{estimate_id}/status", json={"status": "approved"}, headers=headers)
        assert resp.get_json()["estimate"]["status"] == "approved"

        resp = client.post(f"/api/estimates/{estimate_id}/archive", headers=headers)
        assert resp.get_json()["estimate"]["archived_at"] is not None
        assert client.get("/api/estimates/", headers=headers).get_json()["estimates"] == []
        archived = client.get("/api/estimates/?archived=true", headers=headers).get_json()["estimates"]
        assert archived[0]["status"] == "approved"

        resp = client.post(f"/api/estimates/{estimate_id}/convert", headers=headers)
        assert resp.status_code == 201
        invoice = resp.get_json()["invoice"]
        assert invoice["total"] == "756.00"
        assert invoice["source_estimate_id"] == estimate_id

        assert client.delete(f"/api/estimates/{estimate_id}", headers=headers).status_code == 400
        assert client.delete(f"/api/estimates/{estimate_id}?confirm=true", headers=headers).status_code == 200
        assert client.get(f"/api/estimates/{estimate_id}", headers=headers).status_code == 404

    def test_grouped_listing(self, client, org_a, estimate_payload):
        headers = tenant_headers(org_a)
        client.post("/api/estimates/", json=estimate_payload, headers=headers)
        resp = client.get("/api/estimates/?grouped=true", headers=headers)
        groups = resp.get_json()["groups"]
        assert groups["draft"]["count"] == 1
        assert groups["draft"]["total_value"] == "756.00"

    def test_next_number(self, client, org_a):
        resp = client.get("/api/estimates/next-number", headers=tenant_headers(org_a))
        assert resp.get_json()["estimate_number"].startswith("EST-")

    def test_item_endpoints(self, client, org_a, estimate_payload):
        headers = tenant_headers(org_a)
        estimate_id = client.post("/api/estimates/", json=estimate_payload, headers=headers).get_json()["estimate"]["id"]

        resp = client.post(
            f"/api/estimates/{estimate_id}/items",
            json={"description": "Permit", "unit_price": 100},
            headers=headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["estimate"]["total"] == "864.00"
        item_id = resp.get_json()["item"]["id"]

        resp = client.delete(f"/api/estimates/{estimate_id}/items/{item_id}", headers=headers)
        assert resp.get_json()["estimate"]["total"] == "756.00"


class TestInvoiceRoutes:
    def _create(self, client, org, **extra):
        payload = {
            "invoice_number": "INV-300001",
            "title": "Deck Repair",
            "items": [{"description": "Boards", "quantity": 4, "unit_price": "25.50"}],
        }
        payload.update(extra)
        return client.post("/api/invoices/", json=payload, headers=tenant_headers(org))

    def test_create_and_toggle(self, client, org_a):
        resp = self._create(client, org_a)
        assert resp.status_code == 201
        invoice = resp.get_json()["invoice"]
        assert invoice["status"] == "unpaid"
        assert invoice["due_date"] is not None

        resp = client.post(f"/api/invoices/{invoice['id']}/toggle-paid", headers=tenant_headers(org_a))
        assert resp.get_json()["invoice"]["status"] == "paid"
        assert resp.get_json()["invoice"]["paid_date"] is not None

        resp = client.post(f"/api/invoices/{invoice['id']}/unpaid", headers=tenant_headers(org_a))
        assert resp.get_json()["invoice"]["paid_date"] is None

    def test_mark_paid_with_date(self, client, org_a):
        invoice_id = self._create(client, org_a).get_json()["invoice"]["id"]
        resp = client.post(
            f"/api/invoices/{invoice_id}/paid", json={"paid_date": "2026-02-03"}, headers=tenant_headers(org_a)
        )
        assert resp.get_json()["invoice"]["paid_date"] == "2026-02-03"

        resp = client.post(
            f"/api/invoices/{invoice_id}/paid", json={"paid_date": "someday"}, headers=tenant_headers(org_a)
        )
        assert resp.status_code == 400

    def test_overdue_filter(self, client, org_a):
        self._create(client, org_a, due_date="2020-01-01")
        resp = client.get("/api/invoices/?overdue=true", headers=tenant_headers(org_a))
        [invoice] = resp.get_json()["invoices"]
        assert invoice["overdue"] is True

    def test_update_replaces_items(self, client, org_a):
        invoice_id = self._create(client, org_a).get_json()["invoice"]["id"]
        resp = client.put(
            f"/api/invoices/{invoice_id}",
            json={"tax_rate": 10, "items": [{"description": "Railing", "unit_price": 300}]},
            headers=tenant_headers(org_a),
        )
        assert resp.status_code == 200
        body = resp.get_json()["invoice"]
        assert [i["description"] for i in body["items"]] == ["Railing"]
        assert body["total"] == "330.00"

    def test_delete_requires_confirm(self, client, org_a):
        invoice_id = self._create(client, org_a).get_json()["invoice"]["id"]
        assert client.delete(f"/api/invoices/{invoice_id}", headers=tenant_headers(org_a)).status_code == 400
        assert client.delete(f"/api/invoices/{invoice_id}?confirm=true", headers=tenant_headers(org_a)).status_code == 200


class TestClientAndDashboardRoutes:
    def test_client_crud(self, client, org_a):
        headers = tenant_headers(org_a)
        resp = client.post("/api/clients/", json={"name": "Lee Owner", "email": "lee@example.test"}, headers=headers)
        assert resp.status_code == 201
        client_id = resp.get_json()["client"]["id"]

        resp = client.put(f"/api/clients/{client_id}", json={"phone": "555-0101"}, headers=headers)
        assert resp.get_json()["client"]["phone"] == "555-0101"

        assert client.post("/api/clients/", json={}, headers=headers).status_code == 400
        assert client.delete(f"/api/clients/{client_id}", headers=headers).status_code == 200
        assert client.get(f"/api/clients/{client_id}", headers=headers).status_code == 404

    def test_client_documents(self, client, org_a, client_a, estimate_payload):
        headers = tenant_headers(org_a)
        client.post("/api/estimates/", json=estimate_payload, headers=headers)

        resp = client.get(f"/api/clients/{client_a.id}/documents", headers=headers)
        body = resp.get_json()
        assert body["total"] == 1
        assert body["documents"][0]["document_number"] == "EST-300001"
        assert body["documents"][0]["total"] == "756.00"

    def test_dashboard(self, client, org_a, estimate_payload):
        headers = tenant_headers(org_a)
        client.post("/api/estimates/", json=estimate_payload, headers=headers)

        resp = client.get("/api/dashboard/", headers=headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["stats"]["total_estimates"] == 1
        assert body["stats"]["total_estimate_value"] == "756.00"
        assert len(body["recent_estimates"]) == 1


class TestSystemRoutes:
    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["status"] in {"healthy", "degraded"}

    def test_version(self, client):
        assert client.get("/version").status_code == 200
