"""Tests for POST /api/actions unified mutation endpoint."""

import pytest


# =============================================================================
# TEST DATA FIXTURES
# =============================================================================


@pytest.fixture
def sent(seller_client, act, payload):
    """A SENT invoice created through the API, as JSON."""
    response = act(seller_client, "invoice", "create", target_status="SENT", **payload())
    assert response.status_code == 200
    return response.json()["data"]


@pytest.fixture
def bidding(sent, seller_client, buyer_client, financier_client, act):
    """Invoice in BIDDING with one pending bid. Returns (invoice_id, bid JSON)."""
    act(seller_client, "factoring", "request", id=sent["id"])
    act(buyer_client, "factoring", "respond", id=sent["id"], accept=True)
    response = act(
        financier_client, "bid", "place",
        invoice_id=sent["id"], amount_cents=54000, discount_fee_percentage="4.0",
    )
    assert response.status_code == 200
    return sent["id"], response.json()["data"]


# =============================================================================
# AUTHENTICATION & VALIDATION
# =============================================================================


class TestActionsAuthentication:

    def test_unauthenticated_returns_401(self, unauthed_client, act, payload):
        response = act(unauthed_client, "invoice", "create", **payload())

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"

    def test_unknown_profile_returns_401(self, client_for, act, payload):
        from uuid import uuid4
        from core.models import Actor, UserRole

        stranger = Actor(id=uuid4(), role=UserRole.MSME)
        response = act(client_for(stranger), "invoice", "create", **payload())

        assert response.status_code == 401


class TestActionsValidation:

    def test_missing_domain_returns_422(self, seller_client):
        response = seller_client.post("/api/actions", json={"action": "create", "data": {}})
        assert response.status_code == 422

    def test_unknown_domain_returns_400(self, seller_client, act):
        response = act(seller_client, "spaceship", "launch")

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["code"] == "INVALID_REQUEST"
        assert "spaceship" in body["error"]["message"]

    def test_disallowed_action_returns_400(self, seller_client, act):
        response = act(seller_client, "invoice", "hack")

        assert response.status_code == 400
        assert "hack" in response.json()["error"]["message"]

    def test_bad_uuid_returns_400(self, seller_client, act):
        response = act(seller_client, "invoice", "mark_paid", id="not-a-uuid")

        assert response.status_code == 400
        assert "UUID" in response.json()["error"]["message"]

    def test_missing_field_returns_400(self, buyer_client, sent, act):
        response = act(buyer_client, "factoring", "respond", id=sent["id"])

        assert response.status_code == 400
        assert "'accept' is required" in response.json()["error"]["message"]

    def test_domain_validation_returns_422(self, seller_client, act, payload):
        response = act(seller_client, "invoice", "create", **payload(items=[]))

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


# =============================================================================
# INVOICE ACTIONS
# =============================================================================


class TestInvoiceActions:

    def test_create_draft(self, seller_client, act, payload, seller):
        response = act(seller_client, "invoice", "create", **payload())

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "DRAFT"
        assert data["factoring_status"] == "NONE"
        assert data["total_amount_cents"] == 60000
        assert data["user_id"] == str(seller.id)
        assert data["invoice_number"] == "INV-000001"

    def test_update_and_send(self, seller_client, act, payload):
        draft = act(seller_client, "invoice", "create", **payload()).json()["data"]

        response = act(
            seller_client, "invoice", "update",
            id=draft["id"], target_status="SENT", tax_amount_cents=600,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "SENT"
        assert data["total_amount_cents"] == 60600

    def test_buyer_cannot_create(self, buyer_client, act, payload):
        response = act(buyer_client, "invoice", "create", **payload())

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "NOT_AUTHORIZED"

    def test_mark_draft_paid_is_invalid_state(self, seller_client, act, payload):
        draft = act(seller_client, "invoice", "create", **payload()).json()["data"]

        response = act(seller_client, "invoice", "mark_paid", id=draft["id"])

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_STATE"

    def test_voided_invoice_can_be_deleted(self, seller_client, act, sent):
        response = act(seller_client, "invoice", "mark_void", id=sent["id"])
        assert response.json()["data"]["status"] == "VOID"

        response = act(seller_client, "invoice", "delete", id=sent["id"])
        assert response.status_code == 200
        assert response.json()["data"] == {"deleted": True}

    def test_delete_financed_refused(self, seller_client, act, bidding):
        invoice_id, bid = bidding
        act(seller_client, "bid", "resolve", invoice_id=invoice_id, bid_id=bid["id"], accept=True)

        response = act(seller_client, "invoice", "delete", id=invoice_id)

        assert response.status_code == 409
        assert "financed" in response.json()["error"]["message"]

    def test_missing_invoice_returns_404(self, seller_client, act):
        from uuid import uuid4

        response = act(seller_client, "invoice", "mark_paid", id=str(uuid4()))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


# =============================================================================
# FACTORING AND BID ACTIONS
# =============================================================================


class TestFactoringActions:

    def test_request_and_reject(self, seller_client, buyer_client, act, sent):
        response = act(seller_client, "factoring", "request", id=sent["id"])
        assert response.json()["data"]["factoring_status"] == "REQUESTED"

        response = act(buyer_client, "factoring", "respond", id=sent["id"], accept=False)
        assert response.status_code == 200
        assert response.json()["data"]["factoring_status"] == "REJECTED"

    def test_accept_must_be_boolean(self, seller_client, buyer_client, act, sent):
        act(seller_client, "factoring", "request", id=sent["id"])

        response = act(buyer_client, "factoring", "respond", id=sent["id"], accept="yes")

        assert response.status_code == 400

    def test_request_twice_is_invalid_state(self, seller_client, act, sent):
        act(seller_client, "factoring", "request", id=sent["id"])
        response = act(seller_client, "factoring", "request", id=sent["id"])
        assert response.status_code == 409


class TestBidActions:

    def test_place_bid(self, bidding, financier):
        _, bid = bidding
        assert bid["status"] == "PENDING"
        assert bid["financier_id"] == str(financier.id)
        assert bid["amount_cents"] == 54000

    def test_accept_finances_invoice(self, seller_client, act, bidding, financier):
        invoice_id, bid = bidding

        response = act(seller_client, "bid", "resolve", invoice_id=invoice_id, bid_id=bid["id"], accept=True)

        data = response.json()["data"]
        assert data["factoring_status"] == "FINANCED"
        assert data["accepted_bid_id"] == bid["id"]
        assert data["assigned_financier_id"] == str(financier.id)

    def test_withdraw_and_repayment(self, seller_client, financier_client, client_for, financier_b, act, bidding):
        invoice_id, first = bidding
        second = act(
            client_for(financier_b), "bid", "place",
            invoice_id=invoice_id, amount_cents=50000, discount_fee_percentage="3",
        ).json()["data"]

        response = act(financier_client, "bid", "withdraw", invoice_id=invoice_id, bid_id=first["id"])
        assert response.json()["data"]["status"] == "WITHDRAWN_BY_FINANCIER"

        act(seller_client, "bid", "resolve", invoice_id=invoice_id, bid_id=second["id"], accept=True)

        response = act(financier_client, "factoring", "record_repayment", id=invoice_id)
        assert response.status_code == 403

        response = act(client_for(financier_b), "factoring", "record_repayment", id=invoice_id)
        assert response.json()["data"]["factoring_status"] == "REPAID"

    def test_fee_out_of_range_returns_422(self, client_for, financier_b, act, bidding):
        invoice_id, _ = bidding
        response = act(
            client_for(financier_b), "bid", "place",
            invoice_id=invoice_id, amount_cents=50000, discount_fee_percentage="150",
        )
        assert response.status_code == 422
