"""Typed exceptions for rejected invoice and factoring operations.

Every rejection carries a machine-readable ``code`` and a human-readable
``message``. All of them are raised before any mutation reaches the store,
except ConflictError, which the store raises when its compare-and-swap
predicate fails at write time.
"""

from pydantic import ValidationError


class InvoicingError(Exception):
    """Base class for all rejected invoicing operations."""

    code = "INVOICING_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotAuthenticatedError(InvoicingError):
    """No authenticated actor is attached to the call."""

    code = "NOT_AUTHENTICATED"


class NotAuthorizedError(InvoicingError):
    """Actor's role or ownership does not permit the operation."""

    code = "NOT_AUTHORIZED"


class NotFoundError(InvoicingError):
    """Invoice or bid is missing, or invisible to the actor."""

    code = "NOT_FOUND"


class InvalidStateError(InvoicingError):
    """
    A status precondition is not met.

    Example: bidding on an invoice whose factoring status is not ACCEPTED
    or BIDDING, or editing an invoice that has already been sent.
    Bids on invoices a financier cannot see (REQUESTED, REPAID and the
    like) surface as NotFoundError instead, so they do not leak existence.
    """

    code = "INVALID_STATE"


class InvoiceValidationError(InvoicingError):
    """Malformed financial fields, bad bid percentages and similar input errors."""

    code = "VALIDATION_ERROR"

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "InvoiceValidationError":
        """Flatten a pydantic ValidationError into one readable message."""
        parts = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()))
            message = error.get("msg", "invalid value")
            parts.append(f"{location}: {message}" if location else message)
        return cls("; ".join(parts) or "Invalid input")


class ConflictError(InvoicingError):
    """
    The invoice changed between read and write.

    Raised by the store when the expected prior status no longer matches.
    Callers should re-fetch and retry, or tell the user to refresh.
    """

    code = "CONFLICT"
