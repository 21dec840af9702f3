"""
Persistence interface for invoices.

The state machines never write; they hand the service a new snapshot, and
the service persists it through ``InvoiceStore.apply``. That one
compare-and-swap primitive is where optimistic concurrency lives: every
write names the lifecycle and factoring status it was computed from (and
the prior status of every bid it touches). If anything moved underneath,
the whole write is refused with ConflictError and nothing is stored.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Protocol
from uuid import UUID

from core.models import BidStatus, FactoringBid, FactoringStatus, Invoice, InvoiceStatus


@dataclass(frozen=True)
class ExpectedState:
    """Invoice status pair a write was computed from."""

    status: InvoiceStatus
    factoring_status: FactoringStatus

    @classmethod
    def of(cls, invoice: Invoice) -> "ExpectedState":
        return cls(status=invoice.status, factoring_status=invoice.factoring_status)

    def matches(self, invoice: Invoice) -> bool:
        return self.status == invoice.status and self.factoring_status == invoice.factoring_status


@dataclass(frozen=True)
class BidStatusChange:
    """A bid moving from one status to another within a write."""

    bid_id: UUID
    expected: BidStatus
    new: BidStatus


@dataclass(frozen=True)
class InvoiceWrite:
    """
    One atomic change to an invoice aggregate.

    invoice is the full desired snapshot. The store writes its header
    columns, replaces all items when replace_items is set, inserts
    new_bids and applies bid_changes. Bids not named in either are left
    exactly as stored.
    """

    invoice: Invoice
    expected: ExpectedState
    replace_items: bool = False
    new_bids: tuple[FactoringBid, ...] = ()
    bid_changes: tuple[BidStatusChange, ...] = ()


class InvoiceStore(Protocol):
    """Data access for invoice aggregates (header, items and bids)."""

    def next_invoice_number(self) -> int:
        """Next value of the invoice number sequence."""
        ...

    def get(self, invoice_id: UUID) -> Invoice | None:
        """Invoice with its items and bids, or None."""
        ...

    def insert(self, invoice: Invoice) -> Invoice:
        """Store a new invoice with its items (and bids, normally none)."""
        ...

    def apply(self, write: InvoiceWrite) -> Invoice:
        """
        Compare-and-swap write.

        Raises:
            NotFoundError: Invoice no longer exists
            ConflictError: Stored status or a bid status differs from expected
        """
        ...

    def delete(self, invoice_id: UUID, expected: ExpectedState) -> None:
        """
        Remove bids, items and header in one atomic step.

        Raises:
            NotFoundError: Invoice no longer exists
            ConflictError: Stored status differs from expected
        """
        ...

    def list_invoices(
        self,
        *,
        owner_id: UUID | None = None,
        client_email: str | None = None,
        factoring_statuses: Iterable[FactoringStatus] | None = None,
        statuses: Iterable[InvoiceStatus] | None = None,
        overdue_as_of: date | None = None,
        limit: int = 50,
    ) -> list[Invoice]:
        """
        Invoices matching every given filter, newest first.

        overdue_as_of keeps invoices stored OVERDUE plus SENT invoices due
        before that day. Filters are applied before the limit.
        """
        ...
