"""API test fixtures: TestClient over the in-memory invoice service."""

from uuid import UUID

import pytest
from starlette.testclient import TestClient

from api.app import create_app


def header_authenticator(request) -> UUID | None:
    """Trust X-User-ID as the caller's identity. Test use only."""
    value = request.headers.get("X-User-ID")
    return UUID(value) if value else None


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def services(invoice_service):
    return {"invoice": invoice_service}


@pytest.fixture
def app(services):
    """FastAPI app with auth middleware, error handlers, and data/actions routes."""
    return create_app(services, authenticate=header_authenticator)


@pytest.fixture
def unauthed_client(app):
    """Unauthenticated test client (no identity header)."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def client_for(app):
    """Factory for a client authenticated as the given actor."""

    def make(actor) -> TestClient:
        c = TestClient(app, raise_server_exceptions=False)
        c.headers["X-User-ID"] = str(actor.id)
        return c

    return make


@pytest.fixture
def seller_client(client_for, seller):
    return client_for(seller)


@pytest.fixture
def buyer_client(client_for, buyer):
    return client_for(buyer)


@pytest.fixture
def financier_client(client_for, financier):
    return client_for(financier)


@pytest.fixture
def act():
    """POST an action and return the response."""

    def post(client, domain: str, action: str, **data):
        return client.post("/api/actions", json={"domain": domain, "action": action, "data": data})

    return post
