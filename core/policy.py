"""
Authorization policy for invoice operations.

A pure decision function consulted before every transition. It answers
"may this actor attempt this operation on this invoice?" and knows nothing
about statuses beyond the financier visibility filter. Whether the
invoice is in the right state for the operation is the state machines'
job.

Rules:
- Sellers (MSME) act only on invoices they own.
- Buyers act only when their email matches the invoice's client email,
  case-insensitively.
- Financiers act only on invoices whose factoring status is in the
  financier-visible set.

Role and ownership are both required. Holding the right role without
owning (or being the recipient of) the invoice is a denial.
"""

from dataclasses import dataclass
from enum import Enum

from core.exceptions import NotAuthorizedError, NotFoundError
from core.models import Actor, FactoringBid, FactoringStatus, Invoice, UserRole


FINANCIER_VISIBLE_STATUSES = frozenset({
    FactoringStatus.ACCEPTED,
    FactoringStatus.BIDDING,
    FactoringStatus.FINANCED,
})


class Operation(str, Enum):
    """Every operation the policy can gate."""

    VIEW_INVOICE = "view_invoice"
    CREATE_INVOICE = "create_invoice"
    UPDATE_INVOICE = "update_invoice"
    DELETE_INVOICE = "delete_invoice"
    MARK_PAID = "mark_paid"
    MARK_VOID = "mark_void"
    REQUEST_FACTORING = "request_factoring"
    RESPOND_TO_FACTORING = "respond_to_factoring"
    PLACE_BID = "place_bid"
    RESOLVE_BID = "resolve_bid"
    WITHDRAW_BID = "withdraw_bid"
    RECORD_REPAYMENT = "record_repayment"


SELLER_OPERATIONS = frozenset({
    Operation.CREATE_INVOICE,
    Operation.UPDATE_INVOICE,
    Operation.DELETE_INVOICE,
    Operation.MARK_PAID,
    Operation.MARK_VOID,
    Operation.REQUEST_FACTORING,
    Operation.RESOLVE_BID,
})

BUYER_OPERATIONS = frozenset({Operation.RESPOND_TO_FACTORING})

FINANCIER_OPERATIONS = frozenset({
    Operation.PLACE_BID,
    Operation.WITHDRAW_BID,
    Operation.RECORD_REPAYMENT,
})

_ROLE_OPERATIONS = {
    UserRole.MSME: SELLER_OPERATIONS,
    UserRole.BUYER: BUYER_OPERATIONS,
    UserRole.FINANCIER: FINANCIER_OPERATIONS,
}


@dataclass(frozen=True)
class Decision:
    """
    Outcome of a policy check.

    visible is False when the actor may not even know the invoice exists;
    callers report that as NotFound rather than NotAuthorized.
    """

    allowed: bool
    reason: str | None = None
    visible: bool = True

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, visible: bool = True) -> "Decision":
        return cls(allowed=False, reason=reason, visible=visible)

    def __bool__(self) -> bool:
        return self.allowed


def is_owner(actor: Actor, invoice: Invoice) -> bool:
    return actor.role == UserRole.MSME and invoice.user_id == actor.id


def is_recipient(actor: Actor, invoice: Invoice) -> bool:
    return actor.role == UserRole.BUYER and actor.has_email(invoice.client_email)


def financier_can_see(invoice: Invoice) -> bool:
    return invoice.factoring_status in FINANCIER_VISIBLE_STATUSES


def can_view(actor: Actor, invoice: Invoice) -> bool:
    """Whether the invoice shows up for this actor at all."""
    if actor.role == UserRole.MSME:
        return is_owner(actor, invoice)
    if actor.role == UserRole.BUYER:
        return is_recipient(actor, invoice)
    if actor.role == UserRole.FINANCIER:
        return financier_can_see(invoice)
    return False


def visible_bids(actor: Actor, invoice: Invoice) -> list[FactoringBid]:
    """
    Bids the actor may see on an invoice they can view.

    Sellers see every bid on their invoice, financiers see only their own,
    and buyers see none.
    """
    if actor.role == UserRole.MSME and is_owner(actor, invoice):
        return list(invoice.bids)
    if actor.role == UserRole.FINANCIER:
        return [b for b in invoice.bids if b.financier_id == actor.id]
    return []


def can_perform(actor: Actor, operation: Operation, invoice: Invoice | None = None) -> Decision:
    """
    Decide whether actor may attempt operation on invoice.

    Args:
        actor: Authenticated actor
        operation: Operation being attempted
        invoice: Target invoice snapshot (None only for CREATE_INVOICE)

    Returns:
        Decision.allow(), or Decision.deny(reason) with a human-readable reason
    """
    if operation == Operation.VIEW_INVOICE:
        if invoice is not None and can_view(actor, invoice):
            return Decision.allow()
        return Decision.deny("Invoice not found", visible=False)

    allowed_ops = _ROLE_OPERATIONS.get(actor.role, frozenset())
    if operation not in allowed_ops:
        return Decision.deny(
            f"Role {actor.role.value} is not permitted to {operation.value.replace('_', ' ')}"
        )

    if operation == Operation.CREATE_INVOICE:
        return Decision.allow()

    if invoice is None:
        raise ValueError(f"Operation {operation.value} requires an invoice")

    if actor.role == UserRole.MSME:
        if not is_owner(actor, invoice):
            return Decision.deny(f"You do not own invoice {invoice.invoice_number}")
        return Decision.allow()

    if actor.role == UserRole.BUYER:
        if not is_recipient(actor, invoice):
            return Decision.deny(f"You are not the recipient of invoice {invoice.invoice_number}")
        return Decision.allow()

    # Financier
    if not financier_can_see(invoice):
        return Decision.deny("Invoice not found", visible=False)
    if operation == Operation.RECORD_REPAYMENT and invoice.assigned_financier_id != actor.id:
        return Decision.deny(
            f"Only the financier assigned to invoice {invoice.invoice_number} can record repayment"
        )
    return Decision.allow()


def authorize(actor: Actor, operation: Operation, invoice: Invoice | None = None) -> None:
    """
    Raise unless the policy allows the operation.

    Raises:
        NotFoundError: Invoice is invisible to the actor
        NotAuthorizedError: Role or ownership mismatch
    """
    decision = can_perform(actor, operation, invoice)
    if decision.allowed:
        return
    if not decision.visible:
        raise NotFoundError(decision.reason or "Invoice not found")
    raise NotAuthorizedError(decision.reason or "Not authorized")
