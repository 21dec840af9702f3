"""Invoice domain models.

All amounts are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents.

An invoice carries two status columns, lifecycle (status) and factoring
(factoring_status). They are a flat projection of one compound state;
core.state owns the rules for which combinations exist. Constructing an
Invoice re-checks those rules and the financial invariants, so a snapshot
that validates is always internally consistent.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator

from core.models.bid import BidStatus, FactoringBid
from core.models.line_item import InvoiceItem, InvoiceItemCreate


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    VOID = "VOID"


class FactoringStatus(str, Enum):
    """Factoring progress. Only advances while the invoice is SENT."""

    NONE = "NONE"
    REQUESTED = "REQUESTED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    BIDDING = "BIDDING"
    FINANCED = "FINANCED"
    REPAID = "REPAID"


# Money has changed hands once factoring reaches one of these.
SETTLED_FACTORING_STATUSES = frozenset({FactoringStatus.FINANCED, FactoringStatus.REPAID})


class InvoiceTotals(BaseModel):
    """Server-side derived totals."""

    subtotal_cents: int = Field(..., ge=0)
    tax_amount_cents: int = Field(..., ge=0)
    total_amount_cents: int = Field(..., ge=0)


def compute_totals(items: list[InvoiceItemCreate] | list[InvoiceItem], tax_amount_cents: int) -> InvoiceTotals:
    """
    Recompute totals from line items.

    Idempotent: feeding the result back in with the same items always
    yields the same totals.
    """
    subtotal = sum(item.total_cents for item in items)
    return InvoiceTotals(
        subtotal_cents=subtotal,
        tax_amount_cents=tax_amount_cents,
        total_amount_cents=subtotal + tax_amount_cents,
    )


def check_supplied_totals(
    totals: InvoiceTotals,
    subtotal_cents: int | None,
    total_amount_cents: int | None,
) -> None:
    """Raise ValueError if caller-supplied totals disagree with the computed ones."""
    if subtotal_cents is not None and subtotal_cents != totals.subtotal_cents:
        raise ValueError(
            f"Subtotal {subtotal_cents} does not match sum of line items ({totals.subtotal_cents})"
        )
    if total_amount_cents is not None and total_amount_cents != totals.total_amount_cents:
        raise ValueError(
            f"Total {total_amount_cents} does not match subtotal plus tax ({totals.total_amount_cents})"
        )


class InvoiceCreate(BaseModel):
    """
    Data a seller submits to create an invoice.

    subtotal_cents and total_amount_cents are accepted only to be checked
    against the server-side computation; they are never stored as given.
    """

    client_name: str = Field(..., min_length=1, max_length=200)
    client_email: EmailStr
    client_address: str = Field(..., min_length=1, max_length=500)
    invoice_date: date | None = None
    due_date: date | None = None
    payment_terms: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=2000)
    items: list[InvoiceItemCreate] = Field(..., min_length=1)
    tax_amount_cents: int = Field(0, ge=0)
    subtotal_cents: int | None = Field(None, ge=0)
    total_amount_cents: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def check_dates_and_totals(self) -> "InvoiceCreate":
        if self.invoice_date and self.due_date and self.due_date < self.invoice_date:
            raise ValueError("Due date cannot be before the invoice date")
        check_supplied_totals(self.totals(), self.subtotal_cents, self.total_amount_cents)
        return self

    def totals(self) -> InvoiceTotals:
        return compute_totals(self.items, self.tax_amount_cents)


class InvoiceUpdate(BaseModel):
    """
    Data that can be updated on a draft invoice. All fields optional.

    When items is given it replaces the existing items wholesale.
    """

    client_name: str | None = Field(None, min_length=1, max_length=200)
    client_email: EmailStr | None = None
    client_address: str | None = Field(None, min_length=1, max_length=500)
    invoice_date: date | None = None
    due_date: date | None = None
    payment_terms: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=2000)
    items: list[InvoiceItemCreate] | None = Field(None, min_length=1)
    tax_amount_cents: int | None = Field(None, ge=0)
    subtotal_cents: int | None = Field(None, ge=0)
    total_amount_cents: int | None = Field(None, ge=0)


class Invoice(BaseModel):
    """Full invoice snapshot as stored, including its items and bids."""

    id: UUID
    user_id: UUID
    invoice_number: str
    client_name: str
    client_email: EmailStr
    client_address: str
    invoice_date: date
    due_date: date
    payment_terms: str | None = None
    notes: str | None = None
    items: list[InvoiceItem] = Field(..., min_length=1)
    subtotal_cents: int = Field(..., ge=0)
    tax_amount_cents: int = Field(..., ge=0)
    total_amount_cents: int = Field(..., ge=0)
    status: InvoiceStatus
    factoring_status: FactoringStatus = FactoringStatus.NONE
    is_factoring_requested: bool = False
    accepted_bid_id: UUID | None = None
    assigned_financier_id: UUID | None = None
    bids: list[FactoringBid] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_invariants(self) -> "Invoice":
        from core.state import state_from_columns

        totals = compute_totals(self.items, self.tax_amount_cents)
        check_supplied_totals(totals, self.subtotal_cents, self.total_amount_cents)

        if self.is_factoring_requested != (self.factoring_status != FactoringStatus.NONE):
            raise ValueError(
                "is_factoring_requested must be true exactly when factoring_status is not NONE"
            )

        state_from_columns(
            self.status,
            self.factoring_status,
            self.accepted_bid_id,
            self.assigned_financier_id,
        )

        self._check_bids()
        return self

    def _check_bids(self) -> None:
        accepted = [b for b in self.bids if b.status == BidStatus.ACCEPTED_BY_MSME]
        if len(accepted) > 1:
            raise ValueError("At most one bid per invoice can be accepted")

        for bid in self.bids:
            if bid.invoice_id != self.id:
                raise ValueError(f"Bid {bid.id} belongs to a different invoice")

        if accepted:
            bid = accepted[0]
            if self.accepted_bid_id != bid.id or self.assigned_financier_id != bid.financier_id:
                raise ValueError("Accepted bid does not match the invoice's financing record")
        elif self.accepted_bid_id is not None and self.bids:
            raise ValueError(f"Accepted bid {self.accepted_bid_id} is not among the invoice's bids")

    @property
    def state(self):
        """Compound lifecycle + factoring state (see core.state)."""
        from core.state import state_of

        return state_of(self)

    @property
    def is_settled(self) -> bool:
        """Whether money has changed hands through factoring."""
        return self.factoring_status in SETTLED_FACTORING_STATUSES

    @property
    def pending_bids(self) -> list[FactoringBid]:
        return [b for b in self.bids if b.is_pending]

    @property
    def accepted_bid(self) -> FactoringBid | None:
        for bid in self.bids:
            if bid.status == BidStatus.ACCEPTED_BY_MSME:
                return bid
        return None

    def find_bid(self, bid_id: UUID) -> FactoringBid | None:
        for bid in self.bids:
            if bid.id == bid_id:
                return bid
        return None

    def evolve(self, **changes) -> "Invoice":
        """
        Copy with changes applied, re-running every validator.

        Unlike model_copy(update=...), an inconsistent result raises
        pydantic.ValidationError instead of silently producing a bad snapshot.
        """
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)
