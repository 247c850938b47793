"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import error_handler_middleware
from src.api.middleware.latency_logging import latency_logging_middleware
from src.api.middleware.request_size import request_size_limit_middleware
from src.api.routes import admin, health, webhooks
from src.api.routes.checkout import orders_router, router as checkout_router
from src.core.config import Settings, get_settings
from src.core.payapp import get_payapp_client
from src.core.stripe import configure_stripe
from src.gateways.registry import build_gateway_adapters
from src.services.fulfillment_service import FulfillmentService
from src.services.order_ledger import OrderLedger
from src.services.receipt_service import ReceiptService
from src.services.reconciliation_service import ReconciliationService
from src.services.retry_worker import SideEffectRetryWorker
from src.services.side_effects import SideEffectDispatcher
from src.stores.factory import build_stores

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def wire_services(app: FastAPI, settings: Settings) -> ReconciliationService:
    """Build stores and services and attach them to ``app.state``.

    Returns:
        ReconciliationService: The orchestrator, for the retry worker.
    """
    stores = build_stores(settings)
    payapp_client = get_payapp_client()

    ledger = OrderLedger(stores.orders)
    receipt_service = ReceiptService(payapp_client)
    fulfillment = FulfillmentService(
        ledger=ledger,
        dispatcher=SideEffectDispatcher(stores.effects),
        receipt_service=receipt_service,
        delivery_base_url=settings.delivery_base_url,
        signing_secret=settings.delivery_signing_secret,
    )
    reconciliation = ReconciliationService(
        adapters=build_gateway_adapters(settings, payapp_client),
        event_store=stores.events,
        ledger=ledger,
        fulfillment=fulfillment,
        public_base_url=settings.public_base_url,
    )

    app.state.stores = stores
    app.state.ledger = ledger
    app.state.receipt_service = receipt_service
    app.state.reconciliation = reconciliation
    return reconciliation


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Wire services on startup and run the side-effect retry worker.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to the application.
    """
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    configure_stripe(settings)
    reconciliation = wire_services(app, settings)
    logger.info("Providers enabled: %s", ", ".join(sorted(reconciliation.adapters)))

    retry_worker = SideEffectRetryWorker(reconciliation, settings.side_effect_retry_interval_seconds)
    await retry_worker.start()

    yield

    await retry_worker.stop()
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Datamarket Payments API",
        description="Payment and order reconciliation for dataset sales",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-User-Id", "X-Admin-Key", "X-Request-ID"],
    )

    # Added innermost first: request size runs before latency logging and
    # error handling wraps the route handlers directly
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)
    app.add_middleware(BaseHTTPMiddleware, dispatch=latency_logging_middleware)
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_size_limit_middleware)

    # Probes stay unversioned
    app.include_router(health.router)

    api_v1_router = APIRouter(prefix="/api/v1")
    for router in (checkout_router, orders_router, webhooks.router, admin.router):
        api_v1_router.include_router(router)
    app.include_router(api_v1_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
