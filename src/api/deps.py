"""FastAPI dependency injection functions.

Services are built once in the application lifespan and stored on
``app.state``; these dependencies hand them to route handlers.
"""

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, Request

from src.api.middleware.error_handler import AuthorizationError
from src.core.config import get_settings
from src.services.order_ledger import OrderLedger
from src.services.receipt_service import ReceiptService
from src.services.reconciliation_service import ReconciliationService
from src.stores.factory import Stores

logger = logging.getLogger(__name__)


def get_reconciliation_service(request: Request) -> ReconciliationService:
    """Get the reconciliation orchestrator built at startup."""
    return request.app.state.reconciliation


def get_order_ledger(request: Request) -> OrderLedger:
    """Get the order ledger built at startup."""
    return request.app.state.ledger


def get_receipt_service(request: Request) -> ReceiptService:
    """Get the cash receipt service built at startup."""
    return request.app.state.receipt_service


def get_stores(request: Request) -> Stores:
    """Get the configured stores."""
    return request.app.state.stores


async def get_user_id(
    x_user_id: Annotated[str | None, Header(description="Buyer account identifier")] = None,
) -> str | None:
    """Read the optional buyer identity forwarded by the storefront."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


async def require_admin(
    x_admin_key: Annotated[str | None, Header(description="Admin API key")] = None,
) -> None:
    """Require a valid X-Admin-Key header.

    Raises:
        AuthorizationError: If admin access is not configured or the key is wrong.
    """
    settings = get_settings()
    if not settings.admin_api_key:
        logger.warning("Admin endpoint called but ADMIN_API_KEY is not configured")
        raise AuthorizationError("Admin access is not configured")

    if not x_admin_key or not secrets.compare_digest(
        x_admin_key.encode("utf-8"), settings.admin_api_key.encode("utf-8")
    ):
        logger.warning("Rejected admin request with invalid X-Admin-Key")
        raise AuthorizationError("Invalid admin key")


# Type aliases for cleaner route signatures
Reconciliation = Annotated[ReconciliationService, Depends(get_reconciliation_service)]
Ledger = Annotated[OrderLedger, Depends(get_order_ledger)]
Receipts = Annotated[ReceiptService, Depends(get_receipt_service)]
StoreSet = Annotated[Stores, Depends(get_stores)]
UserId = Annotated[str | None, Depends(get_user_id)]
AdminAccess = Depends(require_admin)
