"""Admin API routes: order overview and manual cash receipts."""

import logging

from fastapi import APIRouter, status

from src.api.deps import AdminAccess, Ledger, Receipts
from src.api.middleware.error_handler import GatewayError, GatewayUnavailableError
from src.core.exceptions import GatewayTimeoutError, SideEffectFailure
from src.schemas.checkout import (
    AdminOrderListResponse,
    AdminOrderResponse,
    CashReceiptCreate,
    CashReceiptResponse,
    OrderStatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[AdminAccess])


@router.get(
    "/orders",
    response_model=AdminOrderListResponse,
    summary="List all orders",
    description="Returns every order, newest first. Requires X-Admin-Key.",
)
async def list_all_orders(ledger: Ledger) -> AdminOrderListResponse:
    """List all orders with buyer details."""
    orders = await ledger.list_orders()
    return AdminOrderListResponse(items=[AdminOrderResponse(**order) for order in orders])


@router.get(
    "/orders/stats",
    response_model=OrderStatsResponse,
    summary="Order statistics",
    description="Total revenue from completed orders plus order counts. Requires X-Admin-Key.",
)
async def order_stats(ledger: Ledger) -> OrderStatsResponse:
    """Return revenue and order counts."""
    stats = await ledger.get_order_stats()
    return OrderStatsResponse(**stats)


@router.post(
    "/receipts",
    response_model=CashReceiptResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a cash receipt manually",
    description="Issues a cash receipt through PayApp outside the payment flow. Requires X-Admin-Key.",
    responses={
        502: {"description": "PayApp refused the receipt"},
        504: {"description": "PayApp timed out"},
    },
)
async def issue_cash_receipt(data: CashReceiptCreate, receipts: Receipts) -> CashReceiptResponse:
    """Issue a cash receipt for a payment settled outside this service.

    Args:
        data: Receipt details.
        receipts: Cash receipt service.

    Returns:
        CashReceiptResponse: Confirmation of issuance.

    Raises:
        GatewayError: 502 if PayApp refuses the receipt.
        GatewayUnavailableError: 504 if PayApp does not answer.
    """
    try:
        await receipts.issue_cash_receipt(
            id_info=data.id_info,
            price=data.price,
            receipt_type=data.receipt_type,
            good_name=data.good_name,
            buyer_phone=data.buyer_phone,
        )
    except SideEffectFailure as e:
        raise GatewayError(f"Cash receipt was refused: {e.message}") from e
    except GatewayTimeoutError as e:
        raise GatewayUnavailableError("PayApp timed out issuing the cash receipt") from e

    logger.info("Manual %s cash receipt issued for %d", data.receipt_type, data.price)
    return CashReceiptResponse(issued=True, receipt_type=data.receipt_type, price=data.price)
