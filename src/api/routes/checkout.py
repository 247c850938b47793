"""Checkout and order API routes."""

from fastapi import APIRouter, status

from src.api.deps import Ledger, Reconciliation, UserId
from src.api.middleware.error_handler import AuthorizationError, NotFoundError
from src.schemas.checkout import (
    CheckoutCreate,
    CheckoutResponse,
    OrderListResponse,
    OrderResponse,
)

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post(
    "/{provider_id}",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a checkout",
    description="Registers the order and starts a payment with the chosen provider (payapp or stripe).",
    responses={
        404: {"description": "Unknown payment provider"},
        422: {"description": "Invalid checkout input"},
        502: {"description": "Provider rejected the payment request"},
        504: {"description": "Provider timed out"},
    },
)
async def create_checkout(
    provider_id: str,
    data: CheckoutCreate,
    service: Reconciliation,
    user_id: UserId,
) -> CheckoutResponse:
    """Start a checkout for one dataset.

    The frontend should send the buyer to the returned pay_url. The order
    stays pending until the provider's callback settles it.

    Args:
        provider_id: Payment provider identifier.
        data: Checkout input.
        service: Reconciliation orchestrator.
        user_id: Optional buyer account from X-User-Id.

    Returns:
        CheckoutResponse: The order and where to pay.
    """
    result = await service.create_checkout(
        provider_id=provider_id,
        dataset_id=data.dataset_id,
        display_name=data.display_name,
        price=data.price,
        buyer_phone=data.buyer_phone,
        receipt_type=data.receipt_type,
        business_number=data.business_number,
        user_id=user_id,
        success_url=data.success_url,
        cancel_url=data.cancel_url,
    )
    return CheckoutResponse(
        order_id=result.order["id"],
        provider=result.order["provider"],
        provider_ref=result.order["provider_ref"],
        pay_url=result.pay_url,
    )


# Orders router - mounted separately at /orders
orders_router = APIRouter(prefix="/orders", tags=["orders"])


@orders_router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
    description="Returns all orders for the buyer identified by X-User-Id.",
)
async def list_orders(ledger: Ledger, user_id: UserId) -> OrderListResponse:
    """List orders for the current buyer, newest first.

    Args:
        ledger: Order ledger.
        user_id: Buyer account from X-User-Id.

    Returns:
        OrderListResponse: The buyer's orders; empty without X-User-Id.
    """
    if not user_id:
        return OrderListResponse(items=[])
    orders = await ledger.list_orders_for_user(user_id)
    return OrderListResponse(items=[OrderResponse(**order) for order in orders])


@orders_router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
    description="Returns a single order. Orders tied to an account are only visible to that account.",
)
async def get_order(order_id: str, ledger: Ledger, user_id: UserId) -> OrderResponse:
    """Get a single order by ID.

    Raises:
        NotFoundError: 404 if the order does not exist.
        AuthorizationError: 403 if the order belongs to another account.
    """
    order = await ledger.get_order(order_id)
    if order is None:
        raise NotFoundError("Order not found")

    if order.get("user_id") and order["user_id"] != user_id:
        raise AuthorizationError("Not authorized to view this order")

    return OrderResponse(**order)
