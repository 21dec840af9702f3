"""
Bid ledger.

Manages the bids on a factoring-eligible invoice. Three rules hold:

1. Bids are admitted only while factoring is ACCEPTED or BIDDING. The
   first bid moves ACCEPTED to BIDDING; nothing else does.
2. Every bid resolution (accept, reject, withdraw) requires factoring to be
   exactly BIDDING and the bid to be PENDING.
3. Accepting a bid moves the invoice to FINANCED, which closes the window.
   Rule 2 then refuses every further bid mutation, so at most one bid per
   invoice can ever be ACCEPTED_BY_MSME.

Sibling bids left PENDING after an acceptance are moot; they are not
rewritten. Rejecting or withdrawing a bid leaves factoring in BIDDING even
when no pending bid remains (see core.handlers.stranded_bidding_handler).

Functions return the new invoice snapshot together with the bid they
created or changed; the caller persists both in one store write.
"""

import logging
from dataclasses import replace
from datetime import datetime
from uuid import UUID, uuid4

from core.config import InvoicingConfig
from core.exceptions import (
    InvalidStateError,
    InvoiceValidationError,
    NotAuthorizedError,
    NotFoundError,
)
from core.factoring import require_sent
from core.models import Actor, BidCreate, BidStatus, FactoringBid, Invoice
from core.state import Bidding, BuyerAccepted, Financed, Sent, with_state
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def submit_bid(
    invoice: Invoice,
    financier: Actor,
    data: BidCreate,
    config: InvoicingConfig | None = None,
    now: datetime | None = None,
) -> tuple[Invoice, FactoringBid]:
    """
    Admit a new PENDING bid.

    Args:
        invoice: Target invoice snapshot
        financier: Bidding financier
        data: Amount and discount fee
        config: Admission limits
        now: Bid timestamp

    Returns:
        (invoice in BIDDING with the bid appended, the new bid)

    Raises:
        InvalidStateError: Invoice not open for bids, or the financier
            already has a pending bid on it
        InvoiceValidationError: Fee or amount outside configured limits
    """
    config = config or InvoicingConfig()
    now = now or now_utc()

    state = require_sent(invoice, "accept bids")
    if not isinstance(state.factoring, (BuyerAccepted, Bidding)):
        raise InvalidStateError(
            f"Invoice {invoice.invoice_number} is not open for bids "
            f"(factoring status {invoice.factoring_status.value})"
        )

    if data.discount_fee_percentage >= config.max_discount_fee_percentage:
        raise InvoiceValidationError(
            f"Discount fee must be below {config.max_discount_fee_percentage}%"
        )
    if not config.allow_bids_above_total and data.amount_cents > invoice.total_amount_cents:
        raise InvoiceValidationError(
            f"Bid amount {data.amount_cents} exceeds invoice total {invoice.total_amount_cents}"
        )

    if any(b.financier_id == financier.id for b in invoice.pending_bids):
        raise InvalidStateError(
            f"You already have a pending bid on invoice {invoice.invoice_number}; "
            "withdraw it before bidding again"
        )

    bid = FactoringBid(
        id=uuid4(),
        invoice_id=invoice.id,
        financier_id=financier.id,
        financier_name=financier.display_name,
        amount_cents=data.amount_cents,
        discount_fee_percentage=data.discount_fee_percentage,
        status=BidStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
    updated = with_state(invoice, replace(state, factoring=Bidding()), now, bids=[*invoice.bids, bid])
    return updated, bid


def _open_bid(invoice: Invoice, bid_id: UUID, action: str) -> tuple[Sent, FactoringBid]:
    bid = invoice.find_bid(bid_id)
    if bid is None:
        raise NotFoundError(f"Bid {bid_id} not found on invoice {invoice.invoice_number}")

    state = require_sent(invoice, action)
    if not isinstance(state.factoring, Bidding):
        raise InvalidStateError(
            f"Invoice {invoice.invoice_number} is not in bidding "
            f"(factoring status {invoice.factoring_status.value})"
        )
    if not bid.is_pending:
        raise InvalidStateError(f"Bid {bid_id} is already {bid.status.value}")
    return state, bid


def _resolved(bid: FactoringBid, status: BidStatus, now: datetime) -> FactoringBid:
    return bid.model_copy(update={"status": status, "updated_at": now})


def _with_bid(invoice: Invoice, changed: FactoringBid) -> list[FactoringBid]:
    return [changed if b.id == changed.id else b for b in invoice.bids]


def accept_bid(
    invoice: Invoice, bid_id: UUID, now: datetime | None = None
) -> tuple[Invoice, FactoringBid]:
    """
    Seller accepts a pending bid: BIDDING -> FINANCED.

    Stamps the invoice with the accepted bid and its financier.

    Raises:
        NotFoundError: No such bid on this invoice
        InvalidStateError: Not BIDDING, or bid not PENDING
    """
    now = now or now_utc()
    state, bid = _open_bid(invoice, bid_id, "accept a bid")
    accepted = _resolved(bid, BidStatus.ACCEPTED_BY_MSME, now)
    financed = Financed(bid_id=bid.id, financier_id=bid.financier_id)
    updated = with_state(invoice, replace(state, factoring=financed), now, bids=_with_bid(invoice, accepted))
    return updated, accepted


def reject_bid(
    invoice: Invoice, bid_id: UUID, now: datetime | None = None
) -> tuple[Invoice, FactoringBid]:
    """
    Seller rejects a pending bid. Factoring stays BIDDING.

    Raises:
        NotFoundError: No such bid on this invoice
        InvalidStateError: Not BIDDING, or bid not PENDING
    """
    now = now or now_utc()
    state, bid = _open_bid(invoice, bid_id, "reject a bid")
    rejected = _resolved(bid, BidStatus.REJECTED_BY_MSME, now)
    updated = with_state(invoice, state, now, bids=_with_bid(invoice, rejected))
    return updated, rejected


def withdraw_bid(
    invoice: Invoice, financier: Actor, bid_id: UUID, now: datetime | None = None
) -> tuple[Invoice, FactoringBid]:
    """
    Financier withdraws their own pending bid. Factoring stays BIDDING.

    Raises:
        NotFoundError: No such bid on this invoice
        NotAuthorizedError: Bid belongs to another financier
        InvalidStateError: Not BIDDING, or bid not PENDING
    """
    now = now or now_utc()
    state, bid = _open_bid(invoice, bid_id, "withdraw a bid")
    if bid.financier_id != financier.id:
        raise NotAuthorizedError("Only the financier who placed a bid can withdraw it")
    withdrawn = _resolved(bid, BidStatus.WITHDRAWN_BY_FINANCIER, now)
    updated = with_state(invoice, state, now, bids=_with_bid(invoice, withdrawn))
    return updated, withdrawn
