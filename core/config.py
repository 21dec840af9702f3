"""Invoicing configuration."""

from decimal import Decimal

from pydantic import BaseModel, Field


class InvoicingConfig(BaseModel):
    """
    Tunable invoicing and factoring settings.

    Authorization rules (who may see or act on what) are deliberately not
    configurable; they live in core.policy.
    """

    # Invoice numbering
    invoice_number_prefix: str = Field(
        default="INV",
        description="Prefix for human-readable invoice numbers",
        min_length=1,
        max_length=10,
    )
    invoice_number_width: int = Field(
        default=6,
        description="Zero-padded width of the sequence part of invoice numbers",
        ge=1,
        le=12,
    )

    # Dates
    default_due_days: int = Field(
        default=30,
        description="Days after invoice date used when no due date is given",
        ge=0,
        le=365,
    )

    # Bidding
    max_discount_fee_percentage: Decimal = Field(
        default=Decimal("100"),
        description="Bids must carry a discount fee strictly below this",
        gt=0,
        le=100,
    )
    allow_bids_above_total: bool = Field(
        default=False,
        description="Whether a bid amount may exceed the invoice total",
    )

    # Listing
    list_limit: int = Field(
        default=50,
        description="Default page size for role-specific invoice listings",
        ge=1,
        le=500,
    )

    def format_invoice_number(self, sequence: int) -> str:
        """Render a store-generated sequence value, e.g. 42 -> 'INV-000042'."""
        return f"{self.invoice_number_prefix}-{sequence:0{self.invoice_number_width}d}"
