"""Core domain models."""

from core.models.actor import Actor, UserRole
from core.models.line_item import InvoiceItem, InvoiceItemCreate, line_total_cents
from core.models.bid import BidCreate, BidStatus, FactoringBid
from core.models.invoice import (
    Invoice,
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceStatus,
    InvoiceTotals,
    FactoringStatus,
    SETTLED_FACTORING_STATUSES,
    compute_totals,
)

__all__ = [
    # Actor
    "Actor", "UserRole",
    # Line items
    "InvoiceItem", "InvoiceItemCreate", "line_total_cents",
    # Bids
    "BidCreate", "BidStatus", "FactoringBid",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceUpdate", "InvoiceStatus", "InvoiceTotals",
    "FactoringStatus", "SETTLED_FACTORING_STATUSES", "compute_totals",
]
