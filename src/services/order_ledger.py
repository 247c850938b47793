"""Order Ledger: the only component that mutates orders.

Payment status moves ``pending -> completed`` or ``pending -> failed`` and
never leaves a terminal state. Delivery moves ``pending -> delivered`` and
only for completed payments. Every write is a compare-and-set against the
state it was decided on, so concurrent callbacks cannot overwrite each other.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from src.api.middleware.error_handler import ValidationError
from src.core.exceptions import DuplicateOrderError, ReconciliationError, TransitionConflict
from src.models.gateway import GatewayEvent
from src.models.order import TERMINAL_PAYMENT_STATUSES, Order, OrderStats
from src.stores.base import OrderRepository

logger = logging.getLogger(__name__)

# Re-reads allowed when a guarded write loses a race
MAX_CAS_ATTEMPTS = 3


@dataclass
class TransitionResult:
    """Outcome of a guarded payment transition."""

    order: Order | None
    changed: bool
    created: bool = False


class OrderLedger:
    """State machine over an OrderRepository."""

    def __init__(self, repository: OrderRepository) -> None:
        self.repository = repository

    async def create_pending_order(
        self,
        provider: str,
        provider_ref: str,
        dataset_id: str,
        display_name: str,
        price: int,
        buyer_contact: str,
        user_id: str | None = None,
        receipt_type: str = "none",
        business_number: str | None = None,
    ) -> Order:
        """Register an order awaiting its payment callback.

        Raises:
            ValidationError: If price is not a positive integer.
            DuplicateOrderError: If provider_ref is already taken.
        """
        if price <= 0:
            raise ValidationError("Price must be a positive integer")

        order = await self.repository.insert({
            "provider": provider,
            "provider_ref": provider_ref,
            "user_id": user_id,
            "dataset_id": dataset_id,
            "display_name": display_name,
            "price": price,
            "buyer_contact": buyer_contact,
            "payment_status": "pending",
            "receipt_type": receipt_type,
            "business_number": business_number,
            "completed_at": None,
        })
        logger.info("Order %s created pending (%s %s)", order["id"], provider, provider_ref)
        return order

    async def apply_payment_outcome(
        self,
        provider_ref: str,
        status: Literal["completed", "failed"],
        completed_at: datetime | None = None,
        event: GatewayEvent | None = None,
        allow_create: bool = False,
    ) -> TransitionResult:
        """Apply a payment outcome as a guarded upsert.

        - No order and a completion on a channel that allows it: create the
          order directly in ``completed`` from the event's fields.
        - Order already in ``status``: no-op.
        - Order in the other terminal state: TransitionConflict.
        - Otherwise ``pending -> status``; completed_at is only set here.

        Args:
            provider_ref: Gateway reference of the order.
            status: Target payment status.
            completed_at: Completion time; defaults to now.
            event: Source event, needed for late creation.
            allow_create: Whether the channel may create unknown orders.

        Returns:
            TransitionResult: The resulting order and whether it changed.

        Raises:
            TransitionConflict: If a terminal state would be contradicted.
        """
        completed_at = completed_at or datetime.now(timezone.utc)

        for _ in range(MAX_CAS_ATTEMPTS):
            order = await self.repository.get_by_provider_ref(provider_ref)

            if order is None:
                if status != "completed" or not allow_create or event is None:
                    logger.warning(
                        "No order for provider_ref %s; %s outcome not applied",
                        provider_ref,
                        status,
                    )
                    return TransitionResult(order=None, changed=False)
                if not event.amount or event.amount <= 0:
                    logger.warning(
                        "Cannot create order for provider_ref %s: callback carries no amount",
                        provider_ref,
                    )
                    return TransitionResult(order=None, changed=False)
                try:
                    created = await self.repository.insert({
                        "provider": event.provider,
                        "provider_ref": provider_ref,
                        "user_id": None,
                        "dataset_id": event.dataset_id,
                        "display_name": event.display_name,
                        "price": event.amount,
                        "buyer_contact": event.buyer_contact,
                        "payment_status": "completed",
                        "receipt_type": event.receipt_type,
                        "business_number": event.business_number,
                        "completed_at": completed_at,
                    })
                except DuplicateOrderError:
                    # Checkout or another callback registered it first
                    continue
                logger.info(
                    "Order %s created completed from unregistered %s payment %s",
                    created["id"],
                    event.provider,
                    provider_ref,
                )
                return TransitionResult(order=created, changed=True, created=True)

            current = order["payment_status"]
            if current == status:
                logger.info("Order %s already %s; nothing to do", order["id"], status)
                return TransitionResult(order=order, changed=False)

            if current in TERMINAL_PAYMENT_STATUSES:
                logger.error(
                    "TRANSITION CONFLICT: order %s is %s, rejected %s from provider_ref %s",
                    order["id"],
                    current,
                    status,
                    provider_ref,
                )
                raise TransitionConflict(order["id"], current, status)

            if event is not None and event.amount is not None and event.amount != order["price"]:
                logger.warning(
                    "Amount mismatch for order %s: ordered %d, provider reported %d",
                    order["id"],
                    order["price"],
                    event.amount,
                )

            changes = {"payment_status": status}
            if status == "completed":
                changes["completed_at"] = completed_at

            updated = await self.repository.update_where(
                order["id"], {"payment_status": "pending"}, changes
            )
            if updated is not None:
                logger.info("Order %s payment %s -> %s", order["id"], current, status)
                return TransitionResult(order=updated, changed=True)

            logger.debug("Guarded update lost a race for order %s; re-reading", order["id"])

        raise ReconciliationError(f"Could not settle payment outcome for provider_ref {provider_ref}")

    async def apply_delivery_mint(self, order_id: str, delivery_url: str) -> Order | None:
        """Mark a completed order delivered; no-op in any other state."""
        updated = await self.repository.update_where(
            order_id,
            {"payment_status": "completed", "delivery_status": "pending"},
            {"delivery_status": "delivered", "delivery_url": delivery_url},
        )
        if updated is None:
            logger.info("Delivery mint for order %s ignored (not completed or already delivered)", order_id)
        else:
            logger.info("Order %s delivered", order_id)
        return updated

    async def get_order(self, order_id: str) -> Order | None:
        return await self.repository.get(order_id)

    async def get_order_by_provider_ref(self, provider_ref: str) -> Order | None:
        return await self.repository.get_by_provider_ref(provider_ref)

    async def list_orders_for_user(self, user_id: str) -> list[Order]:
        return await self.repository.list_by_user(user_id)

    async def list_orders(self) -> list[Order]:
        return await self.repository.list_all()

    async def get_order_stats(self) -> OrderStats:
        """Revenue and counts for the admin dashboard."""
        orders = await self.repository.list_all()
        completed = [o for o in orders if o["payment_status"] == "completed"]
        return {
            "total_revenue": sum(o["price"] for o in completed),
            "total_orders": len(orders),
            "completed_orders": len(completed),
        }
