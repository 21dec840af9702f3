"""Security middleware for FastAPI - authentication and user context."""

import logging
from typing import Callable
from uuid import UUID

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.user_context import set_current_user_id, clear_current_user_id

logger = logging.getLogger(__name__)

# Resolves a request to a user ID, or None when it carries no valid credentials.
Authenticator = Callable[[Request], UUID | None]


def bearer_token_authenticator(resolve_token: Callable[[str], UUID | None]) -> Authenticator:
    """
    Authenticator for 'Authorization: Bearer <token>' headers.

    Token issuance and validation belong to the platform's session service;
    resolve_token is its lookup.
    """

    def authenticate(request: Request) -> UUID | None:
        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return resolve_token(token.strip())

    return authenticate


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that authenticates the request and sets user context.

    For protected routes:
    1. Resolves the caller's user ID with the injected authenticator
    2. Sets user_id in request.state and user context
    3. Clears context after request completes

    Public paths bypass authentication entirely.
    """

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, authenticate: Authenticator):
        super().__init__(app)
        self._authenticate = authenticate

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        path = request.url.path

        if self._is_public_path(path):
            return await call_next(request)

        user_id = self._authenticate(request)

        if user_id is None:
            logger.info("Rejected unauthenticated request to %s", path)
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                ).model_dump(mode="json"),
            )

        set_current_user_id(user_id)
        request.state.user_id = user_id

        try:
            response = await call_next(request)
            return response
        finally:
            # Always clear context
            clear_current_user_id()
