"""Tests for the invoicing error taxonomy."""

import pytest
from pydantic import ValidationError

from core.exceptions import (
    ConflictError,
    InvalidStateError,
    InvoiceValidationError,
    InvoicingError,
    NotAuthenticatedError,
    NotAuthorizedError,
    NotFoundError,
)
from core.models import BidCreate


class TestTaxonomy:

    @pytest.mark.parametrize("cls,code", [
        (NotAuthenticatedError, "NOT_AUTHENTICATED"),
        (NotAuthorizedError, "NOT_AUTHORIZED"),
        (NotFoundError, "NOT_FOUND"),
        (InvalidStateError, "INVALID_STATE"),
        (InvoiceValidationError, "VALIDATION_ERROR"),
        (ConflictError, "CONFLICT"),
    ])
    def test_codes(self, cls, code):
        error = cls("something happened")

        assert isinstance(error, InvoicingError)
        assert error.code == code
        assert error.message == "something happened"
        assert str(error) == "something happened"


class TestFromPydantic:

    def test_flattens_field_errors(self):
        with pytest.raises(ValidationError) as exc_info:
            BidCreate(amount_cents=0, discount_fee_percentage="4")

        error = InvoiceValidationError.from_pydantic(exc_info.value)

        assert error.code == "VALIDATION_ERROR"
        assert error.message.startswith("amount_cents: ")
