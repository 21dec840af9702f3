"""Tests for GET /api/data unified read endpoint."""

from datetime import timedelta
from uuid import uuid4

import pytest

from utils.timezone import today_utc


@pytest.fixture
def invoices(seller_client, act, payload):
    """One draft, one sent and one sent-but-past-due invoice, as JSON."""
    past = today_utc() - timedelta(days=40)
    draft = act(seller_client, "invoice", "create", **payload()).json()["data"]
    sent = act(seller_client, "invoice", "create", target_status="SENT", **payload()).json()["data"]
    late = act(
        seller_client, "invoice", "create", target_status="SENT",
        **payload(invoice_date=past.isoformat(), due_date=(past + timedelta(days=10)).isoformat()),
    ).json()["data"]
    return {"draft": draft, "sent": sent, "late": late}


class TestDataValidation:

    def test_unauthenticated_returns_401(self, unauthed_client):
        response = unauthed_client.get("/api/data", params={"type": "invoices"})
        assert response.status_code == 401

    def test_type_required(self, seller_client):
        response = seller_client.get("/api/data")

        assert response.status_code == 400
        assert "'type'" in response.json()["error"]["message"]

    def test_unknown_type(self, seller_client):
        response = seller_client.get("/api/data", params={"type": "payments"})

        assert response.status_code == 400
        assert "payments" in response.json()["error"]["message"]

    def test_unknown_filter(self, seller_client):
        response = seller_client.get("/api/data", params={"type": "invoices", "filter": "mine"})
        assert response.status_code == 400

    def test_limit_bounds(self, seller_client):
        response = seller_client.get("/api/data", params={"type": "invoices", "limit": 0})
        assert response.status_code == 422


class TestInvoiceReads:

    def test_list_includes_effective_status(self, seller_client, invoices):
        response = seller_client.get("/api/data", params={"type": "invoices"})

        assert response.status_code == 200
        by_id = {i["id"]: i for i in response.json()["data"]}
        assert by_id[invoices["draft"]["id"]]["effective_status"] == "DRAFT"
        assert by_id[invoices["sent"]["id"]]["effective_status"] == "SENT"
        late = by_id[invoices["late"]["id"]]
        assert late["status"] == "SENT"
        assert late["effective_status"] == "OVERDUE"

    def test_overdue_filter(self, seller_client, invoices):
        response = seller_client.get("/api/data", params={"type": "invoices", "filter": "overdue"})
        assert [i["id"] for i in response.json()["data"]] == [invoices["late"]["id"]]

    def test_open_filter(self, seller_client, invoices):
        response = seller_client.get("/api/data", params={"type": "invoices", "filter": "open"})
        ids = {i["id"] for i in response.json()["data"]}
        assert ids == {invoices["sent"]["id"], invoices["late"]["id"]}

    def test_filters_apply_before_limit(self, seller_client, act, payload, invoices):
        for _ in range(3):
            act(seller_client, "invoice", "create", **payload())

        open_page = seller_client.get("/api/data", params={"type": "invoices", "filter": "open", "limit": 2})
        overdue_page = seller_client.get("/api/data", params={"type": "invoices", "filter": "overdue", "limit": 1})

        assert {i["id"] for i in open_page.json()["data"]} == {invoices["sent"]["id"], invoices["late"]["id"]}
        assert [i["id"] for i in overdue_page.json()["data"]] == [invoices["late"]["id"]]

    def test_get_by_id(self, seller_client, invoices):
        response = seller_client.get("/api/data", params={"type": "invoices", "id": invoices["sent"]["id"]})

        assert response.status_code == 200
        assert response.json()["data"]["invoice_number"] == invoices["sent"]["invoice_number"]

    def test_get_missing_returns_404(self, seller_client):
        response = seller_client.get("/api/data", params={"type": "invoices", "id": str(uuid4())})
        assert response.status_code == 404

    def test_get_bad_id_returns_400(self, seller_client):
        response = seller_client.get("/api/data", params={"type": "invoices", "id": "abc"})
        assert response.status_code == 400

    def test_other_seller_sees_nothing(self, client_for, seller_b, invoices):
        client = client_for(seller_b)

        response = client.get("/api/data", params={"type": "invoices"})
        assert response.json()["data"] == []

        response = client.get("/api/data", params={"type": "invoices", "id": invoices["draft"]["id"]})
        assert response.status_code == 404

    def test_financier_list_is_empty_until_buyer_accepts(self, financier_client, invoices):
        response = financier_client.get("/api/data", params={"type": "invoices"})
        assert response.json()["data"] == []
