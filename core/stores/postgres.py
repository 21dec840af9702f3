"""
PostgreSQL invoice store.

Three tables back one aggregate: invoices (header), invoice_items and
factoring_bids. Every write goes through PostgresClient.transaction(), so
header, items and bids commit or roll back together.

Compare-and-swap is a predicate on the UPDATE itself:

    UPDATE invoices SET ... WHERE id = %s AND status = %s AND factoring_status = %s

and, for each bid being resolved,

    UPDATE factoring_bids SET ... WHERE id = %s AND invoice_id = %s AND status = %s

A rowcount other than 1 means someone else got there first; raising inside
the transaction rolls back whatever this write had already done.
"""

import logging
from datetime import date
from typing import Any, Iterable
from uuid import UUID

from psycopg2 import errors as pg_errors

from clients.postgres_client import PostgresClient
from core.exceptions import ConflictError, NotFoundError
from core.models import FactoringBid, FactoringStatus, Invoice, InvoiceItem, InvoiceStatus
from core.store import ExpectedState, InvoiceWrite

logger = logging.getLogger(__name__)

_HEADER_COLUMNS = (
    "client_name",
    "client_email",
    "client_address",
    "invoice_date",
    "due_date",
    "payment_terms",
    "notes",
    "subtotal_cents",
    "tax_amount_cents",
    "total_amount_cents",
    "status",
    "factoring_status",
    "is_factoring_requested",
    "accepted_bid_id",
    "assigned_financier_id",
    "updated_at",
)


def _db_value(value: Any) -> Any:
    """Enum members are stored by value."""
    return getattr(value, "value", value)


class PostgresInvoiceStore:
    """InvoiceStore backed by PostgreSQL."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    # =========================================================================
    # Reads
    # =========================================================================

    def next_invoice_number(self) -> int:
        return self.postgres.execute_scalar("SELECT nextval('invoice_number_seq')")

    def get(self, invoice_id: UUID) -> Invoice | None:
        row = self.postgres.execute_single(
            "SELECT * FROM invoices WHERE id = %s",
            (invoice_id,)
        )
        if row is None:
            return None
        return self._assemble([row])[0]

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
        conditions = []
        params: list[Any] = []

        if owner_id is not None:
            conditions.append("user_id = %s")
            params.append(owner_id)
        if client_email is not None:
            conditions.append("LOWER(client_email) = LOWER(%s)")
            params.append(client_email)
        if factoring_statuses is not None:
            conditions.append("factoring_status = ANY(%s)")
            params.append([_db_value(s) for s in factoring_statuses])
        if statuses is not None:
            conditions.append("status = ANY(%s)")
            params.append([_db_value(s) for s in statuses])
        if overdue_as_of is not None:
            conditions.append("(status = %s OR (status = %s AND due_date < %s))")
            params.extend([InvoiceStatus.OVERDUE.value, InvoiceStatus.SENT.value, overdue_as_of])

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)

        rows = self.postgres.execute(
            f"""
            SELECT * FROM invoices
            {where}
            ORDER BY created_at DESC
            LIMIT %s
            """,
            tuple(params)
        )
        return self._assemble(rows)

    def _assemble(self, rows: list[dict[str, Any]]) -> list[Invoice]:
        """Attach items and bids to header rows with one query per child table."""
        if not rows:
            return []

        ids = [row["id"] for row in rows]
        item_rows = self.postgres.execute(
            """
            SELECT * FROM invoice_items
            WHERE invoice_id = ANY(%s::uuid[])
            ORDER BY invoice_id, position
            """,
            (ids,)
        )
        bid_rows = self.postgres.execute(
            """
            SELECT * FROM factoring_bids
            WHERE invoice_id = ANY(%s::uuid[])
            ORDER BY created_at
            """,
            (ids,)
        )

        items_by_invoice: dict[str, list[dict]] = {}
        for item in item_rows:
            items_by_invoice.setdefault(str(item["invoice_id"]), []).append(item)
        bids_by_invoice: dict[str, list[dict]] = {}
        for bid in bid_rows:
            bids_by_invoice.setdefault(str(bid["invoice_id"]), []).append(bid)

        return [
            Invoice.model_validate({
                **row,
                "items": items_by_invoice.get(str(row["id"]), []),
                "bids": bids_by_invoice.get(str(row["id"]), []),
            })
            for row in rows
        ]

    # =========================================================================
    # Writes
    # =========================================================================

    def insert(self, invoice: Invoice) -> Invoice:
        columns = ("id", "user_id", "invoice_number", *_HEADER_COLUMNS, "created_at")
        placeholders = ", ".join(["%s"] * len(columns))

        try:
            with self.postgres.transaction() as cur:
                cur.execute(
                    f"INSERT INTO invoices ({', '.join(columns)}) VALUES ({placeholders})",
                    tuple(_db_value(getattr(invoice, name)) for name in columns)
                )
                self._insert_items(cur, invoice.items)
                for bid in invoice.bids:
                    self._insert_bid(cur, bid)
        except pg_errors.UniqueViolation as e:
            raise ConflictError(
                f"Invoice {invoice.id} or number {invoice.invoice_number} already exists"
            ) from e

        logger.debug("Inserted invoice %s (%s)", invoice.id, invoice.invoice_number)
        return invoice

    def apply(self, write: InvoiceWrite) -> Invoice:
        invoice = write.invoice
        assignments = ", ".join(f"{name} = %s" for name in _HEADER_COLUMNS)

        with self.postgres.transaction() as cur:
            cur.execute(
                f"""
                UPDATE invoices SET {assignments}
                WHERE id = %s AND status = %s AND factoring_status = %s
                """,
                (
                    *(_db_value(getattr(invoice, name)) for name in _HEADER_COLUMNS),
                    invoice.id,
                    write.expected.status.value,
                    write.expected.factoring_status.value,
                )
            )
            if cur.rowcount != 1:
                self._raise_missing_or_conflict(cur, invoice.id, write.expected)

            if write.replace_items:
                cur.execute("DELETE FROM invoice_items WHERE invoice_id = %s", (invoice.id,))
                self._insert_items(cur, invoice.items)

            for change in write.bid_changes:
                bid = invoice.find_bid(change.bid_id)
                cur.execute(
                    """
                    UPDATE factoring_bids SET status = %s, updated_at = %s
                    WHERE id = %s AND invoice_id = %s AND status = %s
                    """,
                    (
                        change.new.value,
                        bid.updated_at if bid else invoice.updated_at,
                        change.bid_id,
                        invoice.id,
                        change.expected.value,
                    )
                )
                if cur.rowcount != 1:
                    logger.warning("CAS failed for bid %s on invoice %s", change.bid_id, invoice.id)
                    raise ConflictError(
                        f"Bid {change.bid_id} changed while you were working on it; please refresh"
                    )

            for bid in write.new_bids:
                self._insert_bid(cur, bid)

        stored = self.get(invoice.id)
        if stored is None:
            raise NotFoundError(f"Invoice {invoice.id} not found")
        return stored

    def delete(self, invoice_id: UUID, expected: ExpectedState) -> None:
        with self.postgres.transaction() as cur:
            cur.execute(
                "SELECT status, factoring_status FROM invoices WHERE id = %s FOR UPDATE",
                (invoice_id,)
            )
            row = cur.fetchone()
            if row is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            if (row["status"], row["factoring_status"]) != (
                expected.status.value, expected.factoring_status.value
            ):
                raise ConflictError(
                    f"Invoice {invoice_id} changed while you were working on it; please refresh"
                )

            cur.execute("DELETE FROM factoring_bids WHERE invoice_id = %s", (invoice_id,))
            cur.execute("DELETE FROM invoice_items WHERE invoice_id = %s", (invoice_id,))
            cur.execute("DELETE FROM invoices WHERE id = %s", (invoice_id,))

        logger.debug("Deleted invoice %s with its items and bids", invoice_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _raise_missing_or_conflict(self, cur, invoice_id: UUID, expected: ExpectedState) -> None:
        cur.execute(
            "SELECT status, factoring_status FROM invoices WHERE id = %s",
            (invoice_id,)
        )
        row = cur.fetchone()
        if row is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        logger.warning(
            "CAS failed for invoice %s: expected %s/%s, found %s/%s",
            invoice_id,
            expected.status.value, expected.factoring_status.value,
            row["status"], row["factoring_status"],
        )
        raise ConflictError(
            f"Invoice {invoice_id} changed while you were working on it; please refresh"
        )

    def _insert_items(self, cur, items: list[InvoiceItem]) -> None:
        if not items:
            return
        cur.executemany(
            """
            INSERT INTO invoice_items (
                id, invoice_id, position, description, quantity, unit_price_cents, total_cents
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            [
                (
                    item.id, item.invoice_id, item.position, item.description,
                    item.quantity, item.unit_price_cents, item.total_cents,
                )
                for item in items
            ]
        )

    def _insert_bid(self, cur, bid: FactoringBid) -> None:
        cur.execute(
            """
            INSERT INTO factoring_bids (
                id, invoice_id, financier_id, financier_name,
                amount_cents, discount_fee_percentage, status,
                created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                bid.id, bid.invoice_id, bid.financier_id, bid.financier_name,
                bid.amount_cents, bid.discount_fee_percentage, bid.status.value,
                bid.created_at, bid.updated_at,
            )
        )
