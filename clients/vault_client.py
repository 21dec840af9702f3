"""
HashiCorp Vault client for invoicing secret management.

Uses AppRole authentication. Fails fast on missing configuration.
All paths scoped to the 'invoicing/' prefix - no escape to other secrets.
"""

import os
import logging
from typing import Dict

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

# Project scope - all secrets under this path
_SECRET_PREFIX = "invoicing"

# Singleton instance and cache
_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, str] = {}


def _ensure_vault_client() -> "VaultClient":
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


class VaultClient:
    """Vault client with AppRole auth, env-based config, and fail-fast behavior."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
    ):
        """Initialize with environment variables. Fails fast on missing config."""
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        self.vault_role_id = os.getenv("VAULT_ROLE_ID")
        self.vault_secret_id = os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")

        if not self.vault_role_id or not self.vault_secret_id:
            raise ValueError(
                "VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required"
            )

        client_kwargs = {"url": self.vault_addr}
        if self.vault_namespace:
            client_kwargs["namespace"] = self.vault_namespace

        self.client = hvac.Client(**client_kwargs)
        self._authenticate_approle()

        if not self.client.is_authenticated():
            raise PermissionError("Vault authentication failed")

        logger.info("Vault client initialized: %s", self.vault_addr)

    def _authenticate_approle(self) -> None:
        """Authenticate using AppRole credentials."""
        try:
            auth_response = self.client.auth.approle.login(
                role_id=self.vault_role_id,
                secret_id=self.vault_secret_id,
            )
            self.client.token = auth_response["auth"]["client_token"]
            logger.info("AppRole authentication successful")
        except Exception as e:
            logger.error("AppRole authentication failed: %s", e)
            raise PermissionError(f"AppRole authentication failed: {e}") from e

    def read_secret(self, path: str) -> Dict[str, str]:
        """
        Read every field of a KV v2 secret in one round trip.

        Path is automatically scoped to the 'invoicing/' prefix.
        Caller passes 'database', we access 'invoicing/database'.

        Raises:
            PermissionError: Path not accessible or doesn't exist.
        """
        full_path = f"{_SECRET_PREFIX}/{path}"

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath as e:
            logger.error("Secret path not found: %s", full_path)
            raise PermissionError(f"Secret path '{full_path}' not found in Vault") from e
        except (Unauthorized, Forbidden) as e:
            logger.error("Access denied to secret %s: %s", full_path, e)
            raise PermissionError(f"Access denied to secret '{full_path}': {e}") from e

        return response["data"]["data"]

    def get_secret(self, path: str, field: str) -> str:
        """
        Retrieve single field from KV v2 secret.

        Args:
            path: Secret path relative to invoicing/ (e.g., 'database')
            field: Field name within secret (e.g., 'url')

        Returns:
            Field value as string.

        Raises:
            PermissionError: Path not accessible or doesn't exist.
            KeyError: Field not found in secret.
        """
        secret_data = self.read_secret(path)
        if field not in secret_data:
            raise KeyError(
                f"Field '{field}' not found in secret '{_SECRET_PREFIX}/{path}'. "
                f"Available: {', '.join(secret_data.keys())}"
            )
        return secret_data[field]


# Convenience functions


def get_secret_fields(path: str, fields: list[str]) -> Dict[str, str]:
    """
    Read several fields of one secret, caching each value.

    Fields missing from the cache are fetched with a single read of the
    secret.

    Args:
        path: Secret path relative to invoicing/
        fields: Field names to read

    Returns:
        Dict of field name to value

    Raises:
        KeyError: A requested field is not in the secret
    """
    missing = [f for f in fields if f"{_SECRET_PREFIX}/{path}/{f}" not in _secret_cache]
    if missing:
        secret_data = _ensure_vault_client().read_secret(path)
        for field in missing:
            if field not in secret_data:
                raise KeyError(f"Field '{field}' not found in secret '{_SECRET_PREFIX}/{path}'")
            _secret_cache[f"{_SECRET_PREFIX}/{path}/{field}"] = secret_data[field]

    return {field: _secret_cache[f"{_SECRET_PREFIX}/{path}/{field}"] for field in fields}


def get_database_url() -> str:
    """Get PostgreSQL connection URL from Vault."""
    return get_secret_fields("database", ["url"])["url"]


def clear_secret_cache() -> None:
    """Forget cached secrets and the client, e.g. after credentials rotate."""
    global _vault_client_instance
    _secret_cache.clear()
    _vault_client_instance = None
