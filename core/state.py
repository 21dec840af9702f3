"""
Compound invoice state.

Lifecycle status and factoring status are not independent: factoring only
exists on a sent invoice, and a paid or voided invoice keeps nothing but a
settled financing record. Modelling them as two enums means every caller
has to re-check the pairing. Here they are one algebraic type instead:

    Draft
    Sent(factoring)       factoring is any FactoringState
    Paid(factoring)       factoring is NotFactored, Financed or Repaid
    Void(factoring)       same as Paid

Financed and Repaid carry the accepted bid and the assigned financier, so
those two columns cannot be set on any other state.

The flat columns stored on Invoice are a projection of this type
(``columns``), and ``state_from_columns`` is the only way back. It rejects
every combination the type cannot express.
"""

from dataclasses import dataclass, field
from typing import Union
from uuid import UUID

from core.models.invoice import FactoringStatus, InvoiceStatus


# =============================================================================
# FACTORING SUB-STATES
# =============================================================================


@dataclass(frozen=True)
class NotFactored:
    """No factoring in progress."""

    status = FactoringStatus.NONE


@dataclass(frozen=True)
class Requested:
    """Seller asked for factoring; waiting on the buyer."""

    status = FactoringStatus.REQUESTED


@dataclass(frozen=True)
class BuyerAccepted:
    """Buyer agreed; open to a first bid."""

    status = FactoringStatus.ACCEPTED


@dataclass(frozen=True)
class BuyerRejected:
    """Buyer declined the factoring request."""

    status = FactoringStatus.REJECTED


@dataclass(frozen=True)
class Bidding:
    """At least one bid has been placed; the bidding window is open."""

    status = FactoringStatus.BIDDING


@dataclass(frozen=True)
class Financed:
    """Seller accepted a bid. The bidding window is closed for good."""

    bid_id: UUID
    financier_id: UUID
    status = FactoringStatus.FINANCED


@dataclass(frozen=True)
class Repaid:
    """The financier confirmed repayment of a financed invoice."""

    bid_id: UUID
    financier_id: UUID
    status = FactoringStatus.REPAID


FactoringState = Union[NotFactored, Requested, BuyerAccepted, BuyerRejected, Bidding, Financed, Repaid]
SettledFactoring = Union[Financed, Repaid]
RetainedFactoring = Union[NotFactored, Financed, Repaid]


# =============================================================================
# LIFECYCLE STATES
# =============================================================================


@dataclass(frozen=True)
class Draft:
    """Editable, not yet sent. Never carries factoring."""

    status = InvoiceStatus.DRAFT

    @property
    def factoring(self) -> NotFactored:
        return NotFactored()


@dataclass(frozen=True)
class Sent:
    """
    Sent to the buyer.

    overdue mirrors a stored OVERDUE status written by an external
    scheduler. It changes nothing about which transitions are allowed.
    """

    factoring: FactoringState = field(default_factory=NotFactored)
    overdue: bool = False

    @property
    def status(self) -> InvoiceStatus:
        return InvoiceStatus.OVERDUE if self.overdue else InvoiceStatus.SENT


@dataclass(frozen=True)
class Paid:
    """Terminal. Keeps a settled financing record if there was one."""

    factoring: RetainedFactoring = field(default_factory=NotFactored)
    status = InvoiceStatus.PAID


@dataclass(frozen=True)
class Void:
    """Terminal. Keeps a settled financing record if there was one."""

    factoring: RetainedFactoring = field(default_factory=NotFactored)
    status = InvoiceStatus.VOID


InvoiceState = Union[Draft, Sent, Paid, Void]


# =============================================================================
# PROJECTION
# =============================================================================


def is_terminal(state: InvoiceState) -> bool:
    return isinstance(state, (Paid, Void))


def is_settled(factoring: FactoringState) -> bool:
    return isinstance(factoring, (Financed, Repaid))


def retained_on_close(factoring: FactoringState) -> RetainedFactoring:
    """What survives when a sent invoice is marked paid or void."""
    if is_settled(factoring):
        return factoring
    return NotFactored()


def columns(state: InvoiceState) -> dict:
    """Flatten a state into the invoice's stored status columns."""
    factoring = state.factoring
    settled = is_settled(factoring)
    return {
        "status": state.status,
        "factoring_status": factoring.status,
        "is_factoring_requested": factoring.status != FactoringStatus.NONE,
        "accepted_bid_id": factoring.bid_id if settled else None,
        "assigned_financier_id": factoring.financier_id if settled else None,
    }


_UNSETTLED = {
    FactoringStatus.NONE: NotFactored,
    FactoringStatus.REQUESTED: Requested,
    FactoringStatus.ACCEPTED: BuyerAccepted,
    FactoringStatus.REJECTED: BuyerRejected,
    FactoringStatus.BIDDING: Bidding,
}

_SETTLED = {
    FactoringStatus.FINANCED: Financed,
    FactoringStatus.REPAID: Repaid,
}


def _factoring_from_columns(
    factoring_status: FactoringStatus,
    accepted_bid_id: UUID | None,
    assigned_financier_id: UUID | None,
) -> FactoringState:
    if factoring_status in _SETTLED:
        if accepted_bid_id is None or assigned_financier_id is None:
            raise ValueError(
                f"Factoring status {factoring_status.value} requires an accepted bid and assigned financier"
            )
        return _SETTLED[factoring_status](bid_id=accepted_bid_id, financier_id=assigned_financier_id)

    if accepted_bid_id is not None or assigned_financier_id is not None:
        raise ValueError(
            f"Factoring status {factoring_status.value} cannot carry an accepted bid or financier"
        )
    return _UNSETTLED[factoring_status]()


def state_from_columns(
    status: InvoiceStatus,
    factoring_status: FactoringStatus,
    accepted_bid_id: UUID | None = None,
    assigned_financier_id: UUID | None = None,
) -> InvoiceState:
    """
    Rebuild the compound state from stored columns.

    Raises:
        ValueError: If the columns describe a combination that cannot exist
            (e.g. a DRAFT with a factoring request, or a PAID invoice still
            in BIDDING).
    """
    status = InvoiceStatus(status)
    factoring = _factoring_from_columns(
        FactoringStatus(factoring_status), accepted_bid_id, assigned_financier_id
    )

    if status == InvoiceStatus.DRAFT:
        if not isinstance(factoring, NotFactored):
            raise ValueError("A draft invoice cannot have factoring in progress")
        return Draft()

    if status in (InvoiceStatus.SENT, InvoiceStatus.OVERDUE):
        return Sent(factoring=factoring, overdue=status == InvoiceStatus.OVERDUE)

    if not isinstance(factoring, (NotFactored, Financed, Repaid)):
        raise ValueError(
            f"A {status.value} invoice can only keep a settled financing record, "
            f"not factoring status {factoring.status.value}"
        )
    if status == InvoiceStatus.PAID:
        return Paid(factoring=factoring)
    return Void(factoring=factoring)


def state_of(invoice) -> InvoiceState:
    """Compound state of an Invoice snapshot."""
    return state_from_columns(
        invoice.status,
        invoice.factoring_status,
        invoice.accepted_bid_id,
        invoice.assigned_financier_id,
    )


def with_state(invoice, state: InvoiceState, now, **changes):
    """
    Copy of invoice moved to state, stamped updated_at=now.

    Extra keyword changes (items, bids, totals...) are applied in the same
    step so the result is validated once, as a whole.

    Raises:
        InvoiceValidationError: If the resulting snapshot breaks an invariant
    """
    from pydantic import ValidationError

    from core.exceptions import InvoiceValidationError

    try:
        return invoice.evolve(**columns(state), updated_at=now, **changes)
    except ValidationError as exc:
        raise InvoiceValidationError.from_pydantic(exc) from exc
