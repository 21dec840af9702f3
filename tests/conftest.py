"""Shared test fixtures for the invoicing test suite."""

import pytest
from decimal import Decimal
from uuid import UUID
from pathlib import Path
from unittest.mock import Mock

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from auth.identity import DirectoryIdentityProvider
from core import bid_ledger, factoring, lifecycle
from core.audit import AuditLogger
from core.config import InvoicingConfig
from core.event_bus import EventBus
from core.models import Actor, BidCreate, InvoiceCreate, InvoiceStatus, UserRole
from core.services.invoice_service import InvoiceService
from core.stores.memory import InMemoryInvoiceStore
from utils.user_context import user_context, clear_current_user_id


# =============================================================================
# TEST ACTOR CONSTANTS
# =============================================================================

SELLER_ID = UUID("00000000-0000-0000-0000-000000000001")
SELLER_EMAIL = "seller@example.com"

# Second seller - use for ownership tests
SELLER_B_ID = UUID("00000000-0000-0000-0000-000000000002")

BUYER_ID = UUID("00000000-0000-0000-0000-000000000003")
BUYER_EMAIL = "buyer@example.com"

# Buyer whose email is not on the test invoices
BUYER_B_ID = UUID("00000000-0000-0000-0000-000000000004")

FINANCIER_ID = UUID("00000000-0000-0000-0000-000000000005")
FINANCIER_B_ID = UUID("00000000-0000-0000-0000-000000000006")

SELLER = Actor(id=SELLER_ID, role=UserRole.MSME, email=SELLER_EMAIL, display_name="Seller Co")
SELLER_B = Actor(id=SELLER_B_ID, role=UserRole.MSME, email="other-seller@example.com")
BUYER = Actor(id=BUYER_ID, role=UserRole.BUYER, email=BUYER_EMAIL, display_name="Acme Buyer")
BUYER_B = Actor(id=BUYER_B_ID, role=UserRole.BUYER, email="someone-else@example.com")
FINANCIER = Actor(id=FINANCIER_ID, role=UserRole.FINANCIER, email="fin@example.com", display_name="First Capital")
FINANCIER_B = Actor(id=FINANCIER_B_ID, role=UserRole.FINANCIER, email="fin-b@example.com", display_name="Second Capital")

ALL_ACTORS = [SELLER, SELLER_B, BUYER, BUYER_B, FINANCIER, FINANCIER_B]


def invoice_payload(**overrides) -> dict:
    """
    Creation payload: 2 x 150.00 + 1 x 300.00, no tax.

    Subtotal and total are both 60000 cents.
    """
    data = {
        "client_name": "Acme Buyer Ltd",
        "client_email": BUYER_EMAIL,
        "client_address": "1 Market Street",
        "payment_terms": "Net 30",
        "items": [
            {"description": "Consulting", "quantity": "2", "unit_price_cents": 15000},
            {"description": "Setup fee", "quantity": "1", "unit_price_cents": 30000},
        ],
    }
    data.update(overrides)
    return data


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user_id()
    yield
    clear_current_user_id()


@pytest.fixture
def as_seller():
    with user_context(SELLER_ID):
        yield SELLER


# =============================================================================
# ACTOR FIXTURES
# =============================================================================


@pytest.fixture
def seller() -> Actor:
    return SELLER


@pytest.fixture
def seller_b() -> Actor:
    return SELLER_B


@pytest.fixture
def buyer() -> Actor:
    return BUYER


@pytest.fixture
def buyer_b() -> Actor:
    return BUYER_B


@pytest.fixture
def financier() -> Actor:
    return FINANCIER


@pytest.fixture
def financier_b() -> Actor:
    return FINANCIER_B


@pytest.fixture
def payload():
    """Factory for creation payloads; keyword overrides replace fields."""
    return invoice_payload


# =============================================================================
# PURE SNAPSHOT FIXTURES (no store)
# =============================================================================


@pytest.fixture
def config() -> InvoicingConfig:
    return InvoicingConfig()


@pytest.fixture
def draft_invoice(config):
    """DRAFT invoice owned by SELLER, addressed to BUYER."""
    return lifecycle.new_invoice(
        SELLER, InvoiceCreate(**invoice_payload()), InvoiceStatus.DRAFT, "INV-000001", config
    )


@pytest.fixture
def sent_invoice(config):
    """SENT invoice, factoring NONE."""
    return lifecycle.new_invoice(
        SELLER, InvoiceCreate(**invoice_payload()), InvoiceStatus.SENT, "INV-000002", config
    )


@pytest.fixture
def requested_invoice(sent_invoice):
    return factoring.request_factoring(sent_invoice)


@pytest.fixture
def accepted_invoice(requested_invoice):
    """Buyer agreed to factoring; open for a first bid."""
    return factoring.respond_to_request(requested_invoice, accept=True)


@pytest.fixture
def bidding_invoice(accepted_invoice, config):
    """BIDDING invoice with one PENDING bid from FINANCIER (54000 cents at 4%)."""
    invoice, _ = bid_ledger.submit_bid(
        accepted_invoice,
        FINANCIER,
        BidCreate(amount_cents=54000, discount_fee_percentage=Decimal("4.0")),
        config,
    )
    return invoice


@pytest.fixture
def financed_invoice(bidding_invoice):
    invoice, _ = bid_ledger.accept_bid(bidding_invoice, bidding_invoice.bids[0].id)
    return invoice


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def store() -> InMemoryInvoiceStore:
    return InMemoryInvoiceStore()


@pytest.fixture
def identity() -> DirectoryIdentityProvider:
    return DirectoryIdentityProvider(ALL_ACTORS)


@pytest.fixture
def audit():
    return Mock(spec=AuditLogger)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def invoice_service(store, identity, audit, event_bus, config) -> InvoiceService:
    return InvoiceService(store, identity, audit, event_bus, config)
