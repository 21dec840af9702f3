"""Tests for invoice, line item, bid and actor models."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from core.models import (
    Actor,
    BidCreate,
    BidStatus,
    FactoringBid,
    FactoringStatus,
    InvoiceCreate,
    InvoiceItemCreate,
    InvoiceStatus,
    UserRole,
    compute_totals,
    line_total_cents,
)
from utils.timezone import now_utc


class TestLineItems:

    def test_line_total_is_quantity_times_price(self):
        item = InvoiceItemCreate(description="Consulting", quantity=Decimal("2"), unit_price_cents=15000)
        assert item.total_cents == 30000

    def test_fractional_quantity_rounds_half_up(self):
        assert line_total_cents(Decimal("1.5"), 333) == 500
        assert line_total_cents(Decimal("0.01"), 49) == 0
        assert line_total_cents(Decimal("0.01"), 50) == 1

    def test_matching_supplied_total_accepted(self):
        item = InvoiceItemCreate(description="x", quantity=Decimal("3"), unit_price_cents=100, total_cents=300)
        assert item.total_cents == 300

    def test_mismatched_supplied_total_rejected(self):
        with pytest.raises(ValidationError, match="does not match"):
            InvoiceItemCreate(description="x", quantity=Decimal("3"), unit_price_cents=100, total_cents=299)

    @pytest.mark.parametrize("quantity", ["0", "-1"])
    def test_non_positive_quantity_rejected(self, quantity):
        with pytest.raises(ValidationError):
            InvoiceItemCreate(description="x", quantity=Decimal(quantity), unit_price_cents=100)

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            InvoiceItemCreate(description="x", quantity=Decimal("1"), unit_price_cents=-1)

    def test_empty_description_rejected(self):
        with pytest.raises(ValidationError):
            InvoiceItemCreate(description="", quantity=Decimal("1"), unit_price_cents=100)

    def test_zero_price_allowed(self):
        item = InvoiceItemCreate(description="Free setup", quantity=Decimal("1"), unit_price_cents=0)
        assert item.total_cents == 0


class TestInvoiceCreate:

    def test_totals_computed_from_items(self, payload):
        data = InvoiceCreate(**payload(tax_amount_cents=500))
        totals = data.totals()
        assert totals.subtotal_cents == 60000
        assert totals.tax_amount_cents == 500
        assert totals.total_amount_cents == 60500

    def test_no_items_rejected(self, payload):
        with pytest.raises(ValidationError):
            InvoiceCreate(**payload(items=[]))

    def test_supplied_matching_totals_accepted(self, payload):
        data = InvoiceCreate(**payload(subtotal_cents=60000, total_amount_cents=60000))
        assert data.totals().total_amount_cents == 60000

    def test_supplied_wrong_subtotal_rejected(self, payload):
        with pytest.raises(ValidationError, match="Subtotal"):
            InvoiceCreate(**payload(subtotal_cents=59999))

    def test_supplied_wrong_total_rejected(self, payload):
        with pytest.raises(ValidationError, match="Total"):
            InvoiceCreate(**payload(tax_amount_cents=100, total_amount_cents=60000))

    def test_negative_tax_rejected(self, payload):
        with pytest.raises(ValidationError):
            InvoiceCreate(**payload(tax_amount_cents=-1))

    def test_due_before_invoice_date_rejected(self, payload):
        with pytest.raises(ValidationError, match="Due date"):
            InvoiceCreate(**payload(invoice_date=date(2024, 5, 10), due_date=date(2024, 5, 1)))

    def test_invalid_client_email_rejected(self, payload):
        with pytest.raises(ValidationError):
            InvoiceCreate(**payload(client_email="not-an-email"))

    def test_compute_totals_is_idempotent(self, payload):
        data = InvoiceCreate(**payload(tax_amount_cents=250))
        first = compute_totals(data.items, data.tax_amount_cents)
        second = compute_totals(data.items, first.tax_amount_cents)
        assert first == second


class TestInvoiceInvariants:

    def test_snapshot_satisfies_financial_invariants(self, draft_invoice):
        assert draft_invoice.subtotal_cents == sum(i.total_cents for i in draft_invoice.items)
        assert draft_invoice.total_amount_cents == draft_invoice.subtotal_cents + draft_invoice.tax_amount_cents

    def test_tampered_total_rejected(self, draft_invoice):
        with pytest.raises(ValidationError, match="Total"):
            draft_invoice.evolve(total_amount_cents=1)

    def test_flag_must_track_factoring_status(self, sent_invoice):
        with pytest.raises(ValidationError, match="is_factoring_requested"):
            sent_invoice.evolve(is_factoring_requested=True)

    def test_draft_cannot_carry_factoring(self, draft_invoice):
        with pytest.raises(ValidationError, match="draft"):
            draft_invoice.evolve(
                factoring_status=FactoringStatus.REQUESTED, is_factoring_requested=True
            )

    def test_financed_requires_accepted_bid(self, sent_invoice):
        with pytest.raises(ValidationError, match="accepted bid"):
            sent_invoice.evolve(
                factoring_status=FactoringStatus.FINANCED, is_factoring_requested=True
            )

    def test_paid_cannot_keep_open_bidding(self, bidding_invoice):
        with pytest.raises(ValidationError, match="PAID"):
            bidding_invoice.evolve(status=InvoiceStatus.PAID)

    def test_two_accepted_bids_rejected(self, financed_invoice):
        accepted = financed_invoice.bids[0]
        second = accepted.model_copy(update={"id": uuid4()})
        with pytest.raises(ValidationError, match="At most one"):
            financed_invoice.evolve(bids=[accepted, second])

    def test_bid_from_other_invoice_rejected(self, bidding_invoice):
        foreign = bidding_invoice.bids[0].model_copy(update={"id": uuid4(), "invoice_id": uuid4()})
        with pytest.raises(ValidationError, match="different invoice"):
            bidding_invoice.evolve(bids=[*bidding_invoice.bids, foreign])

    def test_evolve_returns_new_snapshot(self, draft_invoice):
        changed = draft_invoice.evolve(notes="Updated")
        assert changed.notes == "Updated"
        assert draft_invoice.notes is None


class TestBids:

    def _bid(self, amount_cents=54000, fee="4.0"):
        now = now_utc()
        return FactoringBid(
            id=uuid4(), invoice_id=uuid4(), financier_id=uuid4(),
            amount_cents=amount_cents, discount_fee_percentage=Decimal(fee),
            status=BidStatus.PENDING, created_at=now, updated_at=now,
        )

    def test_fee_and_net_amounts(self):
        bid = self._bid(amount_cents=54000, fee="4.0")
        assert bid.fee_amount_cents == 2160
        assert bid.net_amount_cents == 51840

    def test_fee_rounds_half_up(self):
        bid = self._bid(amount_cents=1, fee="50")
        assert bid.fee_amount_cents == 1

    @pytest.mark.parametrize("fee", ["0", "100", "-1", "150"])
    def test_fee_must_be_strictly_between_0_and_100(self, fee):
        with pytest.raises(ValidationError):
            BidCreate(amount_cents=100, discount_fee_percentage=Decimal(fee))

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            BidCreate(amount_cents=0, discount_fee_percentage=Decimal("1"))

    def test_fee_limited_to_two_decimals(self):
        with pytest.raises(ValidationError):
            BidCreate(amount_cents=100, discount_fee_percentage=Decimal("1.005"))


class TestActor:

    def test_email_match_is_case_insensitive(self):
        actor = Actor(id=uuid4(), role=UserRole.BUYER, email="Buyer@Example.com")
        assert actor.has_email("buyer@example.COM")

    def test_missing_email_never_matches(self):
        actor = Actor(id=uuid4(), role=UserRole.BUYER)
        assert not actor.has_email("buyer@example.com")
        assert not actor.has_email(None)

    def test_actor_is_immutable(self):
        actor = Actor(id=uuid4(), role=UserRole.MSME)
        with pytest.raises(ValidationError):
            actor.role = UserRole.FINANCIER
