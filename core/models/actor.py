"""Actor models: who is performing an invoicing operation."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr


class UserRole(str, Enum):
    """Platform role of an authenticated user."""

    MSME = "MSME"
    BUYER = "BUYER"
    FINANCIER = "FINANCIER"


class Actor(BaseModel):
    """The authenticated user an operation runs on behalf of."""

    id: UUID
    role: UserRole
    email: EmailStr | None = None
    display_name: str | None = None

    model_config = {"frozen": True, "from_attributes": True}

    def has_email(self, email: str | None) -> bool:
        """Case-insensitive email match. False when either side is missing."""
        if not self.email or not email:
            return False
        return self.email.strip().lower() == email.strip().lower()
