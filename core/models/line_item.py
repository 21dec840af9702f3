"""Invoice line item domain models.

Prices are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents. Quantities are decimals (e.g. 1.5 hours) and line
totals are rounded half-up to the nearest cent.
"""

from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


def line_total_cents(quantity: Decimal, unit_price_cents: int) -> int:
    """quantity x unit price, rounded half-up to whole cents."""
    return int((quantity * unit_price_cents).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class InvoiceItemCreate(BaseModel):
    """
    A line item as submitted by the seller.

    total_cents is optional. When supplied it must agree with the
    recomputed quantity x unit price; it is never used as-is.
    """

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    unit_price_cents: int = Field(..., ge=0)
    total_cents: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def check_supplied_total(self) -> "InvoiceItemCreate":
        """Reject a caller-supplied line total that disagrees with the computed one."""
        computed = line_total_cents(self.quantity, self.unit_price_cents)
        if self.total_cents is not None and self.total_cents != computed:
            raise ValueError(
                f"Line total {self.total_cents} does not match "
                f"quantity x unit price ({computed})"
            )
        self.total_cents = computed
        return self


class InvoiceItem(BaseModel):
    """Full line item as stored. Owned exclusively by one invoice."""

    id: UUID
    invoice_id: UUID
    position: int = Field(..., ge=0)
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=0)
    unit_price_cents: int = Field(..., ge=0)
    total_cents: int = Field(..., ge=0)

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_total(self) -> "InvoiceItem":
        if self.total_cents != line_total_cents(self.quantity, self.unit_price_cents):
            raise ValueError(
                f"Stored line total {self.total_cents} does not match quantity x unit price"
            )
        return self
