"""
Domain events for invoicing and factoring.

Immutable event objects that represent state changes. A service publishes
what happened after the store write has committed, and handlers react
without the publisher knowing who's listening.

Event Categories:
- InvoiceEvent: Invoice lifecycle (create, send, paid, void, delete)
- FactoringEvent: Factoring progress (request, buyer response, repayment)
- BidEvent: Bid ledger (placed, accepted, rejected, withdrawn)

Events carry the full invoice snapshot as written, so handlers don't need
to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class InvoicingEvent:
    """Base class for all invoicing domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)
    actor_id: UUID | None = None


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(InvoicingEvent):
    """Events related to invoice lifecycle."""
    invoice: Any = None  # Invoice - using Any to avoid circular import

    @classmethod
    def create(cls, invoice: Any, actor_id: UUID | None = None):
        return cls(invoice=invoice, actor_id=actor_id)


@dataclass(frozen=True)
class InvoiceCreated(InvoiceEvent):
    """A seller saved a new invoice (DRAFT or SENT)."""


@dataclass(frozen=True)
class InvoiceUpdated(InvoiceEvent):
    """A draft was edited and saved as a draft again."""


@dataclass(frozen=True)
class InvoiceSent(InvoiceEvent):
    """Invoice reached SENT, at creation or from a draft."""


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Seller marked the invoice paid."""


@dataclass(frozen=True)
class InvoiceVoided(InvoiceEvent):
    """Seller voided the invoice."""


@dataclass(frozen=True)
class InvoiceDeleted(InvoiceEvent):
    """Invoice was deleted with its items and bids. Carries the last snapshot."""


# =============================================================================
# FACTORING EVENTS
# =============================================================================


@dataclass(frozen=True)
class FactoringEvent(InvoicingEvent):
    """Events related to an invoice's factoring status."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any, actor_id: UUID | None = None):
        return cls(invoice=invoice, actor_id=actor_id)


@dataclass(frozen=True)
class FactoringRequested(FactoringEvent):
    """Seller asked the buyer to agree to factoring."""


@dataclass(frozen=True)
class FactoringResponded(FactoringEvent):
    """Buyer accepted or rejected the factoring request."""
    accepted: bool = False

    @classmethod
    def create(cls, invoice: Any, accepted: bool, actor_id: UUID | None = None) -> "FactoringResponded":
        return cls(invoice=invoice, accepted=accepted, actor_id=actor_id)


@dataclass(frozen=True)
class FactoringRepaid(FactoringEvent):
    """Assigned financier recorded repayment."""


# =============================================================================
# BID EVENTS
# =============================================================================


@dataclass(frozen=True)
class BidEvent(InvoicingEvent):
    """Events related to a single bid."""
    invoice: Any = None
    bid: Any = None  # FactoringBid

    @classmethod
    def create(cls, invoice: Any, bid: Any, actor_id: UUID | None = None):
        return cls(invoice=invoice, bid=bid, actor_id=actor_id)


@dataclass(frozen=True)
class BidPlaced(BidEvent):
    """A financier placed a PENDING bid."""


@dataclass(frozen=True)
class BidAccepted(BidEvent):
    """Seller accepted a bid; the invoice is now FINANCED."""


@dataclass(frozen=True)
class BidRejected(BidEvent):
    """Seller rejected a bid; factoring stays BIDDING."""


@dataclass(frozen=True)
class BidWithdrawn(BidEvent):
    """Financier withdrew their bid; factoring stays BIDDING."""
