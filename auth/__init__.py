"""Authentication and identity modules."""

from auth.identity import (
    IdentityProvider,
    ProfileIdentityProvider,
    DirectoryIdentityProvider,
)
from auth.security_middleware import (
    AuthMiddleware,
    Authenticator,
    bearer_token_authenticator,
)
