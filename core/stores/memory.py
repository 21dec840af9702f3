"""
In-memory invoice store.

Thread-safe implementation of core.store.InvoiceStore. Snapshots are
deep-copied in and out so callers can never mutate stored state. Used by
the test suite and for local tooling without a database.
"""

import itertools
import logging
import threading
from datetime import date
from typing import Iterable
from uuid import UUID

from core.exceptions import ConflictError, NotFoundError
from core.models import FactoringStatus, Invoice, InvoiceStatus
from core.store import ExpectedState, InvoiceWrite

logger = logging.getLogger(__name__)


def _overdue(invoice: Invoice, today: date) -> bool:
    if invoice.status == InvoiceStatus.OVERDUE:
        return True
    return invoice.status == InvoiceStatus.SENT and invoice.due_date < today


class InMemoryInvoiceStore:
    """Dict-backed InvoiceStore guarded by a single lock."""

    def __init__(self, start: int = 1):
        self._invoices: dict[UUID, Invoice] = {}
        self._sequence = itertools.count(start)
        self._lock = threading.Lock()

    def next_invoice_number(self) -> int:
        with self._lock:
            return next(self._sequence)

    def get(self, invoice_id: UUID) -> Invoice | None:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
            return invoice.model_copy(deep=True) if invoice else None

    def insert(self, invoice: Invoice) -> Invoice:
        with self._lock:
            if invoice.id in self._invoices:
                raise ConflictError(f"Invoice {invoice.id} already exists")
            if any(i.invoice_number == invoice.invoice_number for i in self._invoices.values()):
                raise ConflictError(f"Invoice number {invoice.invoice_number} is already in use")
            self._invoices[invoice.id] = invoice.model_copy(deep=True)
            return invoice.model_copy(deep=True)

    def apply(self, write: InvoiceWrite) -> Invoice:
        target = write.invoice
        with self._lock:
            stored = self._invoices.get(target.id)
            if stored is None:
                raise NotFoundError(f"Invoice {target.id} not found")

            if not write.expected.matches(stored):
                logger.warning(
                    "CAS failed for invoice %s: expected %s/%s, found %s/%s",
                    target.id,
                    write.expected.status.value, write.expected.factoring_status.value,
                    stored.status.value, stored.factoring_status.value,
                )
                raise ConflictError(
                    f"Invoice {stored.invoice_number} changed while you were working on it; please refresh"
                )

            bids = {bid.id: bid for bid in stored.bids}
            for change in write.bid_changes:
                current = bids.get(change.bid_id)
                if current is None or current.status != change.expected:
                    raise ConflictError(
                        f"Bid {change.bid_id} changed while you were working on it; please refresh"
                    )
                bids[change.bid_id] = target.find_bid(change.bid_id) or current.model_copy(
                    update={"status": change.new}
                )
            for bid in write.new_bids:
                if bid.id in bids:
                    raise ConflictError(f"Bid {bid.id} already exists")
                bids[bid.id] = bid

            merged = target.evolve(
                items=target.items if write.replace_items else stored.items,
                bids=list(bids.values()),
            )
            self._invoices[target.id] = merged.model_copy(deep=True)
            return merged

    def delete(self, invoice_id: UUID, expected: ExpectedState) -> None:
        with self._lock:
            stored = self._invoices.get(invoice_id)
            if stored is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            if not expected.matches(stored):
                raise ConflictError(
                    f"Invoice {stored.invoice_number} changed while you were working on it; please refresh"
                )
            del self._invoices[invoice_id]

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
        factoring = set(factoring_statuses) if factoring_statuses is not None else None
        lifecycle = set(statuses) if statuses is not None else None
        email = client_email.lower() if client_email else None

        with self._lock:
            matches = [
                invoice for invoice in self._invoices.values()
                if (owner_id is None or invoice.user_id == owner_id)
                and (email is None or invoice.client_email.lower() == email)
                and (factoring is None or invoice.factoring_status in factoring)
                and (lifecycle is None or invoice.status in lifecycle)
                and (overdue_as_of is None or _overdue(invoice, overdue_as_of))
            ]
            matches.sort(key=lambda i: i.created_at, reverse=True)
            return [invoice.model_copy(deep=True) for invoice in matches[:limit]]
