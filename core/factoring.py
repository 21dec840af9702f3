"""
Factoring state machine.

Factoring is a sub-state of a SENT invoice:

    NONE ──request──> REQUESTED ──buyer accepts──> ACCEPTED ──first bid──> BIDDING
                          │                                                   │
                          └──buyer rejects──> REJECTED        seller accepts a bid
                                                                              │
                                                   REPAID <──repayment── FINANCED

Bid placement and resolution live in core.bid_ledger; this module owns the
transitions that do not touch individual bids. Like core.lifecycle, every
function is pure and raises before building anything.
"""

import logging
from dataclasses import replace
from datetime import datetime

from core.exceptions import InvalidStateError, InvoiceValidationError
from core.models import Invoice
from core.state import (
    BuyerAccepted,
    BuyerRejected,
    Financed,
    NotFactored,
    Repaid,
    Requested,
    Sent,
    is_terminal,
    with_state,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def require_sent(invoice: Invoice, action: str) -> Sent:
    """
    The invoice's Sent state, or InvalidStateError.

    Factoring only ever moves while the invoice is SENT (or stored OVERDUE).
    """
    state = invoice.state
    if isinstance(state, Sent):
        return state
    if is_terminal(state):
        raise InvalidStateError(
            f"Invoice {invoice.invoice_number} is {invoice.status.value}; "
            f"factoring can no longer {action}"
        )
    raise InvalidStateError(
        f"Invoice {invoice.invoice_number} is still a draft; send it before factoring can {action}"
    )


def _not_in(invoice: Invoice, expected: str) -> InvalidStateError:
    return InvalidStateError(
        f"Invoice {invoice.invoice_number} has factoring status "
        f"{invoice.factoring_status.value}, expected {expected}"
    )


def request_factoring(invoice: Invoice, now: datetime | None = None) -> Invoice:
    """
    Seller asks for factoring: NONE -> REQUESTED.

    Raises:
        InvalidStateError: Not SENT, or factoring already started
        InvoiceValidationError: Nothing to finance (zero total)
    """
    state = require_sent(invoice, "be requested")
    if not isinstance(state.factoring, NotFactored):
        raise _not_in(invoice, "NONE")
    if invoice.total_amount_cents <= 0:
        raise InvoiceValidationError(
            f"Invoice {invoice.invoice_number} has a zero total and cannot be factored"
        )
    return with_state(invoice, replace(state, factoring=Requested()), now or now_utc())


def respond_to_request(invoice: Invoice, accept: bool, now: datetime | None = None) -> Invoice:
    """
    Buyer answers a factoring request: REQUESTED -> ACCEPTED | REJECTED.

    A second answer is refused; the buyer's response is final.

    Raises:
        InvalidStateError: Not SENT, or no open request
    """
    state = require_sent(invoice, "be answered")
    if not isinstance(state.factoring, Requested):
        raise _not_in(invoice, "REQUESTED")
    factoring = BuyerAccepted() if accept else BuyerRejected()
    return with_state(invoice, replace(state, factoring=factoring), now or now_utc())


def record_repayment(invoice: Invoice, now: datetime | None = None) -> Invoice:
    """
    Assigned financier confirms repayment: FINANCED -> REPAID.

    The financing record (accepted bid and financier) carries over.

    Raises:
        InvalidStateError: Not SENT, or not FINANCED
    """
    state = require_sent(invoice, "be repaid")
    factoring = state.factoring
    if not isinstance(factoring, Financed):
        raise _not_in(invoice, "FINANCED")
    repaid = Repaid(bid_id=factoring.bid_id, financier_id=factoring.financier_id)
    return with_state(invoice, replace(state, factoring=repaid), now or now_utc())
