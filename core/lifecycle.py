"""
Invoice lifecycle state machine.

    create ──> DRAFT ──update(SENT)──> SENT ──> PAID
                 │ ▲                     │
                 └─┘ update(DRAFT)       └────> VOID

PAID and VOID are terminal. OVERDUE is never a transition target: it is
observed at read time (``effective_status``) for SENT invoices past their
due date. A stored OVERDUE behaves exactly like SENT.

Every function here is pure: it takes a snapshot and returns a new one,
or raises before anything is built. Authorization is checked by the
caller (core.policy) before these run.
"""

import logging
from datetime import date, datetime, timedelta
from uuid import uuid4

from pydantic import ValidationError

from core.config import InvoicingConfig
from core.exceptions import InvalidStateError, InvoiceValidationError
from core.models import (
    Actor,
    Invoice,
    InvoiceCreate,
    InvoiceItem,
    InvoiceItemCreate,
    InvoiceStatus,
    InvoiceUpdate,
    compute_totals,
)
from core.models.invoice import check_supplied_totals
from core.state import (
    Draft,
    InvoiceState,
    NotFactored,
    Paid,
    Sent,
    Void,
    columns,
    is_settled,
    is_terminal,
    retained_on_close,
    with_state,
)
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)

CREATABLE_STATUSES = frozenset({InvoiceStatus.DRAFT, InvoiceStatus.SENT})


def _initial_state(target_status: InvoiceStatus) -> InvoiceState:
    if target_status not in CREATABLE_STATUSES:
        raise InvoiceValidationError(
            f"Invoices can only be saved as DRAFT or SENT, not {InvoiceStatus(target_status).value}"
        )
    if target_status == InvoiceStatus.DRAFT:
        return Draft()
    return Sent(factoring=NotFactored())


def build_items(invoice_id, items: list[InvoiceItemCreate]) -> list[InvoiceItem]:
    """Fresh stored items for an invoice, in submitted order."""
    return [
        InvoiceItem(
            id=uuid4(),
            invoice_id=invoice_id,
            position=position,
            description=item.description,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            total_cents=item.total_cents,
        )
        for position, item in enumerate(items)
    ]


def new_invoice(
    actor: Actor,
    data: InvoiceCreate,
    target_status: InvoiceStatus,
    invoice_number: str,
    config: InvoicingConfig | None = None,
    now: datetime | None = None,
) -> Invoice:
    """
    Build a new invoice owned by actor.

    Totals are derived from the items; any totals on data were already
    checked against the same computation when data was validated.

    Args:
        actor: Owning seller
        data: Validated creation payload
        target_status: DRAFT (save draft) or SENT (create and send)
        invoice_number: Display number, already formatted
        config: Supplies the default due date offset
        now: Creation timestamp (defaults to current UTC time)

    Returns:
        Invoice in the requested initial state with factoring NONE

    Raises:
        InvoiceValidationError: Bad target status or inconsistent dates
    """
    config = config or InvoicingConfig()
    now = now or now_utc()
    state = _initial_state(target_status)

    invoice_date = data.invoice_date or now.date()
    due_date = data.due_date or invoice_date + timedelta(days=config.default_due_days)
    if due_date < invoice_date:
        raise InvoiceValidationError("Due date cannot be before the invoice date")

    invoice_id = uuid4()
    totals = data.totals()

    try:
        return Invoice(
            id=invoice_id,
            user_id=actor.id,
            invoice_number=invoice_number,
            client_name=data.client_name,
            client_email=data.client_email,
            client_address=data.client_address,
            invoice_date=invoice_date,
            due_date=due_date,
            payment_terms=data.payment_terms,
            notes=data.notes,
            items=build_items(invoice_id, data.items),
            subtotal_cents=totals.subtotal_cents,
            tax_amount_cents=totals.tax_amount_cents,
            total_amount_cents=totals.total_amount_cents,
            bids=[],
            created_at=now,
            updated_at=now,
            **columns(state),
        )
    except ValidationError as exc:
        raise InvoiceValidationError.from_pydantic(exc) from exc


_PATCHABLE_FIELDS = (
    "client_name",
    "client_email",
    "client_address",
    "invoice_date",
    "due_date",
    "payment_terms",
    "notes",
)

_CLEARABLE_FIELDS = frozenset({"payment_terms", "notes"})


def apply_update(
    invoice: Invoice,
    patch: InvoiceUpdate,
    target_status: InvoiceStatus,
    now: datetime | None = None,
) -> Invoice:
    """
    Edit a draft, optionally sending it in the same step.

    Only drafts are editable. Items given in the patch replace the existing
    items wholesale. Totals are always re-derived from the resulting items.
    An explicit null clears payment_terms or notes; on any other field it
    is ignored.
    Whatever factoring intent existed is reset to NONE: factoring has to be
    requested against the version that was actually sent.

    Raises:
        InvalidStateError: Invoice is not a draft
        InvoiceValidationError: Bad target status, dates or totals
    """
    now = now or now_utc()
    current = invoice.state
    if not isinstance(current, Draft):
        raise InvalidStateError(
            f"Invoice {invoice.invoice_number} is {invoice.status.value} and can no longer be edited"
        )
    new_state = _initial_state(target_status)

    changes = {
        name: getattr(patch, name)
        for name in _PATCHABLE_FIELDS
        if name in patch.model_fields_set
        and (getattr(patch, name) is not None or name in _CLEARABLE_FIELDS)
    }

    invoice_date = changes.get("invoice_date", invoice.invoice_date)
    due_date = changes.get("due_date", invoice.due_date)
    if due_date < invoice_date:
        raise InvoiceValidationError("Due date cannot be before the invoice date")

    items = build_items(invoice.id, patch.items) if patch.items is not None else invoice.items
    tax_amount_cents = (
        patch.tax_amount_cents if patch.tax_amount_cents is not None else invoice.tax_amount_cents
    )
    totals = compute_totals(items, tax_amount_cents)
    try:
        check_supplied_totals(totals, patch.subtotal_cents, patch.total_amount_cents)
    except ValueError as exc:
        raise InvoiceValidationError(str(exc)) from exc

    logger.debug(
        "Updating draft %s (target %s, items replaced: %s)",
        invoice.id, new_state.status.value, patch.items is not None,
    )

    return with_state(
        invoice,
        new_state,
        now,
        items=items,
        subtotal_cents=totals.subtotal_cents,
        tax_amount_cents=totals.tax_amount_cents,
        total_amount_cents=totals.total_amount_cents,
        **changes,
    )


def _require_sent(invoice: Invoice, action: str) -> Sent:
    state = invoice.state
    if isinstance(state, Sent):
        return state
    if is_terminal(state):
        raise InvalidStateError(
            f"Invoice {invoice.invoice_number} is {invoice.status.value}; no further changes are allowed"
        )
    raise InvalidStateError(
        f"Invoice {invoice.invoice_number} must be sent before it can be {action}"
    )


def mark_paid(invoice: Invoice, now: datetime | None = None) -> Invoice:
    """
    SENT -> PAID.

    An unsettled factoring request is dropped; a FINANCED or REPAID record
    is kept on the paid invoice.
    Bids still PENDING on a BIDDING invoice are left as they are. They are
    moot once the invoice is closed, since every bid change needs BIDDING.

    Raises:
        InvalidStateError: Invoice is not SENT/OVERDUE
    """
    state = _require_sent(invoice, "marked paid")
    return with_state(invoice, Paid(factoring=retained_on_close(state.factoring)), now or now_utc())


def mark_void(invoice: Invoice, now: datetime | None = None) -> Invoice:
    """
    SENT -> VOID. Same factoring retention and pending-bid handling as mark_paid.

    Raises:
        InvalidStateError: Invoice is not SENT/OVERDUE
    """
    state = _require_sent(invoice, "voided")
    return with_state(invoice, Void(factoring=retained_on_close(state.factoring)), now or now_utc())


def ensure_deletable(invoice: Invoice) -> None:
    """
    Refuse to delete an invoice once money has changed hands.

    Raises:
        InvalidStateError: Factoring reached FINANCED or REPAID
    """
    if is_settled(invoice.state.factoring):
        raise InvalidStateError(
            f"Invoice {invoice.invoice_number} has been financed and cannot be deleted"
        )


def effective_status(invoice: Invoice, today: date | None = None) -> InvoiceStatus:
    """
    Lifecycle status as observed on a given day.

    A SENT invoice past its due date reads as OVERDUE. Nothing is written.
    """
    today = today or today_utc()
    if invoice.status == InvoiceStatus.SENT and invoice.due_date < today:
        return InvoiceStatus.OVERDUE
    return invoice.status
