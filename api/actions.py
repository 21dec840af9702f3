"""POST /api/actions - unified mutation endpoint."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from core.models import InvoiceStatus


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    handlers = {
        "invoice": InvoiceHandler(invoice_svc),
        "factoring": FactoringHandler(invoice_svc),
        "bid": BidHandler(invoice_svc),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(dict(body.data))
        return success_response(result).model_dump(mode="json")

    return router


def _require(data: dict, key: str):
    if key not in data:
        raise ValueError(f"'{key}' is required")
    return data[key]


def _uuid(data: dict, key: str = "id") -> UUID:
    value = _require(data, key)
    try:
        return UUID(str(value))
    except ValueError:
        raise ValueError(f"'{key}' must be a UUID, got '{value}'")


def _flag(data: dict, key: str) -> bool:
    value = _require(data, key)
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be true or false")
    return value


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class InvoiceHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete", "mark_paid", "mark_void"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        target_status = data.pop("target_status", InvoiceStatus.DRAFT.value)
        invoice = self.service.create_invoice(data, target_status)
        return invoice.model_dump(mode="json")

    def _handle_update(self, data: dict):
        invoice_id = _uuid(data)
        data.pop("id")
        target_status = data.pop("target_status", InvoiceStatus.DRAFT.value)
        invoice = self.service.update_invoice(invoice_id, data, target_status)
        return invoice.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        self.service.delete_invoice(_uuid(data))
        return {"deleted": True}

    def _handle_mark_paid(self, data: dict):
        invoice = self.service.mark_paid(_uuid(data))
        return invoice.model_dump(mode="json")

    def _handle_mark_void(self, data: dict):
        invoice = self.service.mark_void(_uuid(data))
        return invoice.model_dump(mode="json")


class FactoringHandler:
    ALLOWED_ACTIONS = {"request", "respond", "record_repayment"}

    def __init__(self, service):
        self.service = service

    def _handle_request(self, data: dict):
        invoice = self.service.request_factoring(_uuid(data))
        return invoice.model_dump(mode="json")

    def _handle_respond(self, data: dict):
        invoice = self.service.respond_to_factoring_request(_uuid(data), _flag(data, "accept"))
        return invoice.model_dump(mode="json")

    def _handle_record_repayment(self, data: dict):
        invoice = self.service.record_repayment(_uuid(data))
        return invoice.model_dump(mode="json")


class BidHandler:
    ALLOWED_ACTIONS = {"place", "resolve", "withdraw"}

    def __init__(self, service):
        self.service = service

    def _handle_place(self, data: dict):
        bid = self.service.place_bid(
            _uuid(data, "invoice_id"),
            _require(data, "amount_cents"),
            _require(data, "discount_fee_percentage"),
        )
        return bid.model_dump(mode="json")

    def _handle_resolve(self, data: dict):
        invoice = self.service.resolve_bid(
            _uuid(data, "invoice_id"), _uuid(data, "bid_id"), _flag(data, "accept")
        )
        return invoice.model_dump(mode="json")

    def _handle_withdraw(self, data: dict):
        bid = self.service.withdraw_bid(_uuid(data, "invoice_id"), _uuid(data, "bid_id"))
        return bid.model_dump(mode="json")
