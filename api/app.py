"""Application wiring: services, event handlers, middleware and routes."""

import logging
from typing import Callable

from fastapi import FastAPI

from api.errors import register_error_handlers
from api.invoices import create_invoices_router
from api.middleware import MerchantContextMiddleware, RequestIDMiddleware
from api.settings import create_settings_router
from api.webhooks import create_webhooks_router
from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from core.config import GSTConfig
from core.event_bus import EventBus
from core.handlers.invoice_generated_handler import handle_invoice_generated
from core.handlers.order_fulfilled_handler import handle_order_fulfilled
from core.services.hsn_mapping_service import HSNMappingService
from core.services.invoice_service import InvoiceService
from core.services.sequence_service import SequenceService
from core.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


def build_services(postgres: PostgresClient, event_bus: EventBus, config: GSTConfig | None = None) -> dict:
    """Construct the service graph over one Postgres client."""
    config = config or GSTConfig()
    audit = AuditLogger(postgres)

    settings = SettingsService(postgres, audit)
    hsn = HSNMappingService(postgres, audit)
    sequence = SequenceService(postgres, audit, config)
    invoice = InvoiceService(postgres, audit, event_bus, settings, hsn, sequence, config)

    return {
        "settings": settings,
        "hsn": hsn,
        "sequence": sequence,
        "invoice": invoice,
    }


def wire_handlers(event_bus: EventBus, services: dict, renderer: Callable | None = None) -> None:
    """Subscribe domain event handlers."""
    event_bus.subscribe(
        "OrderFulfilled",
        handle_order_fulfilled(services["settings"], services["invoice"]),
    )
    if renderer is not None:
        event_bus.subscribe("InvoiceGenerated", handle_invoice_generated(renderer))
    else:
        logger.info("No invoice renderer configured; generated invoices are stored only")


def create_app(
    services: dict,
    event_bus: EventBus,
) -> FastAPI:
    """FastAPI app with merchant context, error handlers and invoicing routes."""
    app = FastAPI(title="GST Invoicing")

    # Last added runs first: request IDs exist before the shop check
    app.add_middleware(MerchantContextMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(create_invoices_router(services), prefix="/api")
    app.include_router(create_settings_router(services), prefix="/api")
    app.include_router(create_webhooks_router(event_bus), prefix="/api")

    return app


def create_default_app(renderer: Callable | None = None) -> FastAPI:
    """Production app: database URL from Vault (or DATABASE_URL), default config."""
    from clients.vault_client import get_database_url

    event_bus = EventBus()
    services = build_services(PostgresClient(get_database_url()), event_bus)
    wire_handlers(event_bus, services, renderer)
    return create_app(services, event_bus)
