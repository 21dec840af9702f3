# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    get_database_url,
    get_secret_fields,
    clear_secret_cache,
)
from clients.postgres_client import PostgresClient
