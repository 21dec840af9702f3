"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.exceptions import InvoicingError

logger = logging.getLogger(__name__)

# HTTP status for each domain error code.
STATUS_BY_CODE = {
    ErrorCodes.NOT_AUTHENTICATED: 401,
    ErrorCodes.NOT_AUTHORIZED: 403,
    ErrorCodes.NOT_FOUND: 404,
    ErrorCodes.INVALID_STATE: 409,
    ErrorCodes.CONFLICT: 409,
    ErrorCodes.VALIDATION_ERROR: 422,
}


def _json(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(InvoicingError)
    async def invoicing_error_handler(request: Request, exc: InvoicingError):
        status_code = STATUS_BY_CODE.get(exc.code, 400)
        if status_code == 409:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return _json(status_code, exc.code, exc.message)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return _json(404, ErrorCodes.NOT_FOUND, message)
        return _json(400, ErrorCodes.INVALID_REQUEST, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _json(422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _json(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
