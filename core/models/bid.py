"""Factoring bid domain models.

Amounts are cents. The discount fee is a percentage strictly between 0
and 100 (2.5 means 2.5%).
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class BidStatus(str, Enum):
    """Bid resolution status."""

    PENDING = "PENDING"
    ACCEPTED_BY_MSME = "ACCEPTED_BY_MSME"
    REJECTED_BY_MSME = "REJECTED_BY_MSME"
    WITHDRAWN_BY_FINANCIER = "WITHDRAWN_BY_FINANCIER"


class BidCreate(BaseModel):
    """A financier's offer to finance an invoice."""

    amount_cents: int = Field(..., gt=0)
    discount_fee_percentage: Decimal = Field(..., gt=0, lt=100, max_digits=5, decimal_places=2)


class FactoringBid(BaseModel):
    """Full bid entity as stored."""

    id: UUID
    invoice_id: UUID
    financier_id: UUID
    financier_name: str | None = None
    amount_cents: int = Field(..., gt=0)
    discount_fee_percentage: Decimal = Field(..., gt=0, lt=100)
    status: BidStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_pending(self) -> bool:
        return self.status == BidStatus.PENDING

    @property
    def fee_amount_cents(self) -> int:
        """Discount the financier keeps, in cents."""
        fee = Decimal(self.amount_cents) * self.discount_fee_percentage / Decimal(100)
        return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @property
    def net_amount_cents(self) -> int:
        """What the seller actually receives if this bid is accepted."""
        return self.amount_cents - self.fee_amount_cents
