"""
Handler for bids that leave an invoice in BIDDING with nothing to act on.

Rejecting or withdrawing a bid never moves factoring out of BIDDING, even
when it was the last pending bid. The invoice then waits for a new bid
indefinitely. This handler makes that visible in the logs until the
product decides whether such invoices should reopen or close.
"""

import logging
from typing import Callable

from core.event_bus import EventBus
from core.events import BidRejected, BidWithdrawn
from core.models import FactoringStatus

logger = logging.getLogger(__name__)


def handle_stranded_bidding() -> Callable:
    """
    Factory that returns a BidRejected/BidWithdrawn handler.

    Returns:
        Handler callable that warns when no pending bids remain
    """

    def handler(event: BidRejected | BidWithdrawn):
        invoice = event.invoice
        if invoice.factoring_status != FactoringStatus.BIDDING:
            return
        if invoice.pending_bids:
            return

        logger.warning(
            "Invoice %s (%s) is BIDDING with no pending bids after bid %s was %s",
            invoice.id,
            invoice.invoice_number,
            event.bid.id,
            event.bid.status.value,
        )

    return handler


def register(event_bus: EventBus) -> None:
    """Subscribe the stranded-bidding handler to bid resolutions."""
    handler = handle_stranded_bidding()
    event_bus.subscribe(BidRejected, handler)
    event_bus.subscribe(BidWithdrawn, handler)
