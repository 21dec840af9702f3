"""
FastAPI application factory and production wiring.

    app = create_app(build_services(), authenticate=bearer_token_authenticator(sessions.lookup))
"""

import logging

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.identity import ProfileIdentityProvider
from auth.security_middleware import AuthMiddleware, Authenticator
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url
from core.audit import AuditLogger
from core.config import InvoicingConfig
from core.event_bus import EventBus
from core.handlers import stranded_bidding_handler
from core.services.invoice_service import InvoiceService
from core.stores.postgres import PostgresInvoiceStore

logger = logging.getLogger(__name__)


def build_services(config: InvoicingConfig | None = None, database_url: str | None = None) -> dict:
    """
    Wire the invoice service against PostgreSQL.

    The database URL comes from Vault unless given explicitly.
    """
    postgres = PostgresClient(database_url or get_database_url())
    event_bus = EventBus()
    stranded_bidding_handler.register(event_bus)

    invoice_service = InvoiceService(
        store=PostgresInvoiceStore(postgres),
        identity=ProfileIdentityProvider(postgres),
        audit=AuditLogger(postgres),
        event_bus=event_bus,
        config=config,
    )
    return {"invoice": invoice_service}


def create_app(services: dict, authenticate: Authenticator) -> FastAPI:
    """
    Build the HTTP app around already-wired services.

    Args:
        services: {"invoice": InvoiceService}
        authenticate: Resolves a request to a user ID (see auth.security_middleware)
    """
    app = FastAPI(title="Invoicing")

    register_error_handlers(app)
    app.include_router(create_actions_router(services), prefix="/api")
    app.include_router(create_data_router(services), prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # Starlette runs the last-added middleware first: request IDs wrap auth.
    app.add_middleware(AuthMiddleware, authenticate=authenticate)
    app.add_middleware(RequestIDMiddleware)

    logger.info("Invoicing API created")
    return app
