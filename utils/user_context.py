"""Propagate the authenticated user's identity through the call stack using contextvars."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)


def get_current_user_id() -> UUID:
    """
    Get current user ID from context.

    Raises RuntimeError if no user context is set. Invoice operations
    always act on behalf of someone; reaching one without a user is a bug
    in the calling layer.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "user-scoped code outside of an authenticated request."
        )
    return user_id


def find_current_user_id() -> UUID | None:
    """Current user ID, or None when the call is unauthenticated."""
    return _current_user_id.get()


def set_current_user_id(user_id: UUID) -> None:
    """Set current user ID in context. Called by the auth middleware."""
    _current_user_id.set(user_id)


def clear_current_user_id() -> None:
    """
    Clear user context.

    Must be called in a finally block so one request's identity never
    leaks into the next.
    """
    _current_user_id.set(None)


@contextmanager
def user_context(user_id: UUID):
    """
    Context manager for temporarily acting as a user.

    Useful for tests and for scripts that replay actions on behalf of a
    seller, buyer or financier.

    Example:
        with user_context(seller_id):
            invoice = invoice_service.request_factoring(invoice_id)
    """
    previous = _current_user_id.get()
    set_current_user_id(user_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_user_id()
        else:
            set_current_user_id(previous)
