"""
Invoice service: the caller-facing invoicing and factoring operations.

Each operation follows the same steps:

1. Resolve the actor from the identity provider.
2. Load the invoice snapshot (with items and bids) from the store.
3. Ask the authorization policy whether the actor may attempt it.
4. Run the pure state machine transition (lifecycle, factoring, bid ledger).
5. Persist the result with one compare-and-swap store write.
6. Audit, publish a domain event, and return the stored snapshot.

Everything that can reject (authentication, authorization, state,
validation) happens in steps 1-4, before any write. Step 5 can still fail
with ConflictError if another request changed the invoice in between.
"""

import logging
from datetime import date
from typing import Any, Iterable, TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError

from auth.identity import IdentityProvider
from core import bid_ledger, factoring, lifecycle
from core.audit import AuditAction, AuditEntity, AuditLogger, compute_changes
from core.config import InvoicingConfig
from core.event_bus import EventBus
from core.events import (
    BidAccepted,
    BidPlaced,
    BidRejected,
    BidWithdrawn,
    FactoringRepaid,
    FactoringRequested,
    FactoringResponded,
    InvoiceCreated,
    InvoiceDeleted,
    InvoicePaid,
    InvoiceSent,
    InvoiceUpdated,
    InvoiceVoided,
    InvoicingEvent,
)
from core.exceptions import ConflictError, InvoiceValidationError, InvoicingError, NotFoundError
from core.models import (
    Actor,
    BidCreate,
    BidStatus,
    FactoringBid,
    Invoice,
    InvoiceCreate,
    InvoiceStatus,
    InvoiceUpdate,
    UserRole,
)
from core.policy import FINANCIER_VISIBLE_STATUSES, Operation, authorize, visible_bids
from core.store import BidStatusChange, ExpectedState, InvoiceStore, InvoiceWrite

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _parse(model: type[M], data: M | dict[str, Any]) -> M:
    """Accept a model instance or raw dict; raise InvoiceValidationError on bad input."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvoiceValidationError.from_pydantic(exc) from exc


def _target_status(value: InvoiceStatus | str) -> InvoiceStatus:
    try:
        return InvoiceStatus(value)
    except ValueError as exc:
        raise InvoiceValidationError(f"Unknown invoice status: {value}") from exc


def _audit_snapshot(invoice: Invoice) -> dict[str, Any]:
    """Header and items as JSON; bids are audited as their own entities."""
    return invoice.model_dump(mode="json", exclude={"bids"})


class InvoiceService:
    """Service for invoice lifecycle, factoring and bid operations."""

    def __init__(
        self,
        store: InvoiceStore,
        identity: IdentityProvider,
        audit: AuditLogger,
        event_bus: EventBus,
        config: InvoicingConfig | None = None,
    ):
        self.store = store
        self.identity = identity
        self.audit = audit
        self.event_bus = event_bus
        self.config = config or InvoicingConfig()

    # =========================================================================
    # Internals
    # =========================================================================

    def _authorize(self, actor: Actor, operation: Operation, invoice: Invoice | None = None) -> None:
        try:
            authorize(actor, operation, invoice)
        except InvoicingError as exc:
            logger.info(
                "Denied %s for %s %s on invoice %s: %s",
                operation.value, actor.role.value, actor.id,
                invoice.id if invoice else None, exc.message,
            )
            raise

    def _load(self, actor: Actor, operation: Operation, invoice_id: UUID) -> Invoice:
        """Fetch the snapshot and check the actor may attempt operation on it."""
        invoice = self.store.get(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        self._authorize(actor, operation, invoice)
        return invoice

    def _commit(
        self,
        actor: Actor,
        before: Invoice,
        after: Invoice,
        *,
        replace_items: bool = False,
        new_bids: Iterable[FactoringBid] = (),
        changed_bids: Iterable[FactoringBid] = (),
    ) -> Invoice:
        """Persist a transition with compare-and-swap, then audit it."""
        new_bids = tuple(new_bids)
        changed_bids = tuple(changed_bids)
        write = InvoiceWrite(
            invoice=after,
            expected=ExpectedState.of(before),
            replace_items=replace_items,
            new_bids=new_bids,
            bid_changes=tuple(
                BidStatusChange(bid_id=bid.id, expected=BidStatus.PENDING, new=bid.status)
                for bid in changed_bids
            ),
        )

        try:
            stored = self.store.apply(write)
        except ConflictError:
            logger.warning(
                "Lost race on invoice %s (%s/%s) for %s",
                before.id, before.status.value, before.factoring_status.value, actor.id,
            )
            raise

        changes = compute_changes(_audit_snapshot(before), _audit_snapshot(stored))
        if changes:
            self.audit.log_change(
                entity_type=AuditEntity.INVOICE,
                entity_id=stored.id,
                action=AuditAction.UPDATE,
                changes=changes,
                user_id=actor.id,
            )
        for bid in new_bids:
            self.audit.log_change(
                entity_type=AuditEntity.BID,
                entity_id=bid.id,
                action=AuditAction.CREATE,
                changes={"created": bid.model_dump(mode="json")},
                user_id=actor.id,
            )
        for bid in changed_bids:
            self.audit.log_change(
                entity_type=AuditEntity.BID,
                entity_id=bid.id,
                action=AuditAction.UPDATE,
                changes={"status": {"old": BidStatus.PENDING.value, "new": bid.status.value}},
                user_id=actor.id,
            )

        logger.info(
            "Invoice %s: %s/%s -> %s/%s by %s %s",
            stored.id,
            before.status.value, before.factoring_status.value,
            stored.status.value, stored.factoring_status.value,
            actor.role.value, actor.id,
        )
        return stored

    def _publish(self, event: InvoicingEvent) -> None:
        self.event_bus.publish(event)

    @staticmethod
    def _present(actor: Actor, invoice: Invoice) -> Invoice:
        """The invoice as this actor may see it (bids filtered by role)."""
        return invoice.model_copy(update={"bids": visible_bids(actor, invoice)})

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_invoice(
        self,
        data: InvoiceCreate | dict[str, Any],
        target_status: InvoiceStatus = InvoiceStatus.DRAFT,
    ) -> Invoice:
        """
        Create an invoice as a draft or send it immediately.

        Args:
            data: Client details, dates and line items
            target_status: DRAFT or SENT

        Returns:
            Created invoice with server-computed totals and a fresh
            invoice number

        Raises:
            NotAuthenticatedError: No actor
            NotAuthorizedError: Actor is not a seller
            InvoiceValidationError: Bad input or target status
        """
        actor = self.identity.current_actor()
        self._authorize(actor, Operation.CREATE_INVOICE)
        data = _parse(InvoiceCreate, data)
        target_status = _target_status(target_status)

        number = self.config.format_invoice_number(self.store.next_invoice_number())
        invoice = lifecycle.new_invoice(actor, data, target_status, number, self.config)

        stored = self.store.insert(invoice)

        self.audit.log_change(
            entity_type=AuditEntity.INVOICE,
            entity_id=stored.id,
            action=AuditAction.CREATE,
            changes={"created": _audit_snapshot(stored)},
            user_id=actor.id,
        )
        logger.info(
            "Created invoice %s (%s) as %s, total %d cents",
            stored.id, stored.invoice_number, stored.status.value, stored.total_amount_cents,
        )

        self._publish(InvoiceCreated.create(invoice=stored, actor_id=actor.id))
        if stored.status == InvoiceStatus.SENT:
            self._publish(InvoiceSent.create(invoice=stored, actor_id=actor.id))
        return stored

    def update_invoice(
        self,
        invoice_id: UUID,
        patch: InvoiceUpdate | dict[str, Any],
        target_status: InvoiceStatus = InvoiceStatus.DRAFT,
    ) -> Invoice:
        """
        Edit a draft; target SENT sends it in the same step.

        Raises:
            NotFoundError: No such invoice
            NotAuthorizedError: Actor does not own it
            InvalidStateError: Invoice is no longer a draft
            InvoiceValidationError: Bad input or totals
            ConflictError: Invoice changed concurrently
        """
        actor = self.identity.current_actor()
        current = self._load(actor, Operation.UPDATE_INVOICE, invoice_id)
        patch = _parse(InvoiceUpdate, patch)

        updated = lifecycle.apply_update(current, patch, _target_status(target_status))
        stored = self._commit(actor, current, updated, replace_items=True)

        if stored.status == InvoiceStatus.SENT:
            self._publish(InvoiceSent.create(invoice=stored, actor_id=actor.id))
        else:
            self._publish(InvoiceUpdated.create(invoice=stored, actor_id=actor.id))
        return stored

    def delete_invoice(self, invoice_id: UUID) -> None:
        """
        Delete an invoice with its items and bids.

        Raises:
            NotFoundError: No such invoice
            NotAuthorizedError: Actor does not own it
            InvalidStateError: Invoice has been financed
            ConflictError: Invoice changed concurrently
        """
        actor = self.identity.current_actor()
        current = self._load(actor, Operation.DELETE_INVOICE, invoice_id)
        lifecycle.ensure_deletable(current)

        self.store.delete(current.id, ExpectedState.of(current))

        self.audit.log_change(
            entity_type=AuditEntity.INVOICE,
            entity_id=current.id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")},
            user_id=actor.id,
        )
        logger.info("Deleted invoice %s (%s)", current.id, current.invoice_number)
        self._publish(InvoiceDeleted.create(invoice=current, actor_id=actor.id))

    def mark_paid(self, invoice_id: UUID) -> Invoice:
        """SENT -> PAID. See core.lifecycle.mark_paid."""
        actor = self.identity.current_actor()
        current = self._load(actor, Operation.MARK_PAID, invoice_id)
        stored = self._commit(actor, current, lifecycle.mark_paid(current))
        self._publish(InvoicePaid.create(invoice=stored, actor_id=actor.id))
        return stored

    def mark_void(self, invoice_id: UUID) -> Invoice:
        """SENT -> VOID. See core.lifecycle.mark_void."""
        actor = self.identity.current_actor()
        current = self._load(actor, Operation.MARK_VOID, invoice_id)
        stored = self._commit(actor, current, lifecycle.mark_void(current))
        self._publish(InvoiceVoided.create(invoice=stored, actor_id=actor.id))
        return stored

    # =========================================================================
    # Factoring
    # =========================================================================

    def request_factoring(self, invoice_id: UUID) -> Invoice:
        """
        Seller asks for factoring on a sent invoice.

        Raises:
            NotFoundError / NotAuthorizedError: Not the owner
            InvalidStateError: Not SENT, or factoring already started
            InvoiceValidationError: Zero total
            ConflictError: Invoice changed concurrently
        """
        actor = self.identity.current_actor()
        current = self._load(actor, Operation.REQUEST_FACTORING, invoice_id)
        stored = self._commit(actor, current, factoring.request_factoring(current))
        self._publish(FactoringRequested.create(invoice=stored, actor_id=actor.id))
        return stored

    def respond_to_factoring_request(self, invoice_id: UUID, accept: bool) -> Invoice:
        """
        Buyer accepts or rejects a factoring request.

        Raises:
            NotFoundError: No such invoice
            NotAuthorizedError: Actor is not the invoice's recipient
            InvalidStateError: No open request
            ConflictError: Invoice changed concurrently
        """
        actor = self.identity.current_actor()
        current = self._load(actor, Operation.RESPOND_TO_FACTORING, invoice_id)
        stored = self._commit(actor, current, factoring.respond_to_request(current, accept))
        self._publish(FactoringResponded.create(invoice=stored, accepted=accept, actor_id=actor.id))
        return self._present(actor, stored)

    def record_repayment(self, invoice_id: UUID) -> Invoice:
        """
        Assigned financier records repayment: FINANCED -> REPAID.

        Raises:
            NotFoundError: Invoice not visible to the financier
            NotAuthorizedError: Actor is not the assigned financier
            InvalidStateError: Not FINANCED
            ConflictError: Invoice changed concurrently
        """
        actor = self.identity.current_actor()
        current = self._load(actor, Operation.RECORD_REPAYMENT, invoice_id)
        stored = self._commit(actor, current, factoring.record_repayment(current))
        self._publish(FactoringRepaid.create(invoice=stored, actor_id=actor.id))
        return self._present(actor, stored)

    # =========================================================================
    # Bids
    # =========================================================================

    def place_bid(self, invoice_id: UUID, amount_cents: int, fee_percentage) -> FactoringBid:
        """
        Financier places a bid.

        Args:
            invoice_id: Target invoice
            amount_cents: Offered amount, > 0
            fee_percentage: Discount fee, strictly between 0 and 100

        Returns:
            The new PENDING bid

        Raises:
            NotFoundError: Invoice not visible to financiers
            NotAuthorizedError: Actor is not a financier
            InvalidStateError: Invoice not open for bids
            InvoiceValidationError: Bad amount or fee
            ConflictError: Invoice changed concurrently
        """
        actor = self.identity.current_actor()
        current = self._load(actor, Operation.PLACE_BID, invoice_id)
        data = _parse(BidCreate, {"amount_cents": amount_cents, "discount_fee_percentage": fee_percentage})

        updated, bid = bid_ledger.submit_bid(current, actor, data, self.config)
        stored = self._commit(actor, current, updated, new_bids=[bid])

        self._publish(BidPlaced.create(invoice=stored, bid=bid, actor_id=actor.id))
        return stored.find_bid(bid.id) or bid

    def resolve_bid(self, invoice_id: UUID, bid_id: UUID, accept: bool) -> Invoice:
        """
        Seller accepts (financing the invoice) or rejects a pending bid.

        Raises:
            NotFoundError: No such invoice or bid
            NotAuthorizedError: Actor does not own the invoice
            InvalidStateError: Not BIDDING, or bid not PENDING
            ConflictError: Invoice or bid changed concurrently
        """
        actor = self.identity.current_actor()
        current = self._load(actor, Operation.RESOLVE_BID, invoice_id)

        if accept:
            updated, bid = bid_ledger.accept_bid(current, bid_id)
        else:
            updated, bid = bid_ledger.reject_bid(current, bid_id)
        stored = self._commit(actor, current, updated, changed_bids=[bid])

        event = BidAccepted if accept else BidRejected
        self._publish(event.create(invoice=stored, bid=bid, actor_id=actor.id))
        return stored

    def withdraw_bid(self, invoice_id: UUID, bid_id: UUID) -> FactoringBid:
        """
        Financier withdraws their own pending bid.

        Raises:
            NotFoundError: Invoice not visible, or no such bid
            NotAuthorizedError: Bid belongs to another financier
            InvalidStateError: Not BIDDING, or bid not PENDING
            ConflictError: Invoice or bid changed concurrently
        """
        actor = self.identity.current_actor()
        current = self._load(actor, Operation.WITHDRAW_BID, invoice_id)

        updated, bid = bid_ledger.withdraw_bid(current, actor, bid_id)
        stored = self._commit(actor, current, updated, changed_bids=[bid])

        self._publish(BidWithdrawn.create(invoice=stored, bid=bid, actor_id=actor.id))
        return stored.find_bid(bid.id) or bid

    # =========================================================================
    # Reads
    # =========================================================================

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        """
        Invoice with items and the bids the actor may see.

        Raises:
            NotFoundError: Missing, or not visible to the actor
        """
        actor = self.identity.current_actor()
        invoice = self._load(actor, Operation.VIEW_INVOICE, invoice_id)
        return self._present(actor, invoice)

    def list_invoices(
        self,
        limit: int | None = None,
        statuses: Iterable[InvoiceStatus] | None = None,
        overdue_as_of: date | None = None,
    ) -> list[Invoice]:
        """
        The actor's invoice list, newest first.

        Sellers see invoices they own, buyers those addressed to their
        email, financiers those open to or financed through factoring.

        Args:
            limit: Maximum rows (defaults to the configured list size)
            statuses: Only these lifecycle statuses
            overdue_as_of: Only invoices that read as OVERDUE on this day
        """
        actor = self.identity.current_actor()
        limit = limit or self.config.list_limit
        filters = {"statuses": statuses, "overdue_as_of": overdue_as_of, "limit": limit}

        if actor.role == UserRole.MSME:
            invoices = self.store.list_invoices(owner_id=actor.id, **filters)
        elif actor.role == UserRole.BUYER:
            if not actor.email:
                return []
            invoices = self.store.list_invoices(client_email=actor.email, **filters)
        else:
            invoices = self.store.list_invoices(
                factoring_statuses=FINANCIER_VISIBLE_STATUSES, **filters
            )

        return [self._present(actor, invoice) for invoice in invoices]
