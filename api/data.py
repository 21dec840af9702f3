"""GET /api/data - unified read endpoint."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.lifecycle import effective_status
from core.models import Invoice, InvoiceStatus
from utils.timezone import today_utc


VALID_TYPES = {"invoices"}
VALID_INVOICE_FILTERS = {"overdue", "open"}
OPEN_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.OVERDUE)


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        filter: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        return _handle_invoices(invoice_svc, id, filter, limit)

    return router


def _serialize(invoice: Invoice, today) -> dict:
    """Invoice as JSON plus the status it reads as today."""
    data = invoice.model_dump(mode="json")
    data["effective_status"] = effective_status(invoice, today).value
    return data


def _handle_invoices(invoice_svc, id, filter, limit):
    today = today_utc()

    if id:
        try:
            invoice_id = UUID(id)
        except ValueError:
            raise ValueError(f"'id' must be a UUID, got '{id}'")
        invoice = invoice_svc.get_invoice(invoice_id)
        return success_response(_serialize(invoice, today)).model_dump(mode="json")

    if filter is not None and filter not in VALID_INVOICE_FILTERS:
        raise ValueError(
            f"Unknown filter '{filter}'. Valid filters: {', '.join(sorted(VALID_INVOICE_FILTERS))}"
        )

    if filter == "overdue":
        invoices = invoice_svc.list_invoices(limit, overdue_as_of=today)
    elif filter == "open":
        invoices = invoice_svc.list_invoices(limit, statuses=OPEN_STATUSES)
    else:
        invoices = invoice_svc.list_invoices(limit)

    return success_response(
        [_serialize(i, today) for i in invoices]
    ).model_dump(mode="json")
