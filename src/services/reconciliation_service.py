"""Reconciliation Orchestrator: checkout initiation and callback handling.

Callback path: resolve adapter -> parse -> verify -> dedupe -> ledger ->
side effects -> ack. Only an authenticity failure (or an unknown provider)
produces a non-success response; everything after authentication is
absorbed so the provider is not pushed into retrying a recorded event.
"""

import logging
from dataclasses import dataclass
from uuid import uuid4

from src.api.middleware.error_handler import (
    AuthenticityError,
    GatewayUnavailableError,
    NotFoundError,
    ValidationError,
)
from src.core.exceptions import DuplicateOrderError, GatewayTimeoutError, ParseError, TransitionConflict
from src.gateways.base import GatewayAdapter
from src.models.gateway import CheckoutRequest, GatewayAck, GatewayEvent, RawCallback
from src.models.order import Order
from src.services.fulfillment_service import FulfillmentService
from src.services.order_ledger import OrderLedger
from src.stores.base import EventStore

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    """An order registered for checkout plus where to send the buyer."""

    order: Order
    pay_url: str | None


class ReconciliationService:
    """Glues gateway adapters, the event store, the ledger and fulfillment."""

    def __init__(
        self,
        adapters: dict[str, GatewayAdapter],
        event_store: EventStore,
        ledger: OrderLedger,
        fulfillment: FulfillmentService,
        public_base_url: str,
    ) -> None:
        self.adapters = adapters
        self.event_store = event_store
        self.ledger = ledger
        self.fulfillment = fulfillment
        self.public_base_url = public_base_url.rstrip("/")

    def get_adapter(self, provider_id: str) -> GatewayAdapter:
        """Resolve an adapter or raise NotFoundError."""
        adapter = self.adapters.get(provider_id)
        if adapter is None:
            raise NotFoundError(f"Unknown payment provider: {provider_id}")
        return adapter

    def feedback_url(self, provider_id: str) -> str:
        return f"{self.public_base_url}/api/v1/webhooks/{provider_id}"

    async def create_checkout(
        self,
        provider_id: str,
        dataset_id: str,
        display_name: str,
        price: int,
        buyer_phone: str,
        receipt_type: str = "none",
        business_number: str | None = None,
        user_id: str | None = None,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> CheckoutResult:
        """Start a checkout with the given provider.

        Providers that echo our request id get a pending order before the
        call, so a callback can never arrive for an unknown order. Providers
        that assign their own reference get the order after the call; if the
        callback won that race the order it created is returned.

        Raises:
            NotFoundError: Unknown provider.
            ValidationError: Bad input; nothing is recorded.
            GatewayError: The provider rejected the checkout.
            GatewayUnavailableError: The provider timed out. The payment may
                still complete and will be reconciled by its callback.
        """
        adapter = self.get_adapter(provider_id)
        if price <= 0:
            raise ValidationError("Price must be a positive integer")

        request = CheckoutRequest(
            request_id=str(uuid4()),
            dataset_id=dataset_id,
            display_name=display_name,
            price=price,
            buyer_contact=buyer_phone,
            feedback_url=self.feedback_url(provider_id),
            receipt_type=receipt_type,
            business_number=business_number,
            user_id=user_id,
            success_url=success_url,
            cancel_url=cancel_url,
        )
        adapter.validate_checkout(request)

        if adapter.client_chosen_reference:
            order = await self._register_order(adapter, request, request.request_id, display_name)
            try:
                initiation = await adapter.initiate_checkout(request)
            except GatewayTimeoutError as e:
                logger.warning("Checkout %s timed out at %s; order stays pending", order["id"], provider_id)
                raise GatewayUnavailableError(
                    "Payment provider timed out; the order will update if the payment completes"
                ) from e
            except Exception:
                await self._abandon(order)
                raise
            return CheckoutResult(order=order, pay_url=initiation.pay_url)

        try:
            initiation = await adapter.initiate_checkout(request)
        except GatewayTimeoutError as e:
            logger.warning("Checkout for %s timed out at %s; no order recorded", dataset_id, provider_id)
            raise GatewayUnavailableError(
                "Payment provider timed out; please retry the checkout"
            ) from e

        order = await self._register_order(adapter, request, initiation.provider_ref, initiation.display_name)
        return CheckoutResult(order=order, pay_url=initiation.pay_url)

    async def _register_order(
        self,
        adapter: GatewayAdapter,
        request: CheckoutRequest,
        provider_ref: str,
        display_name: str,
    ) -> Order:
        try:
            return await self.ledger.create_pending_order(
                provider=adapter.provider_id,
                provider_ref=provider_ref,
                dataset_id=request.dataset_id,
                display_name=display_name,
                price=request.price,
                buyer_contact=request.buyer_contact,
                user_id=request.user_id,
                receipt_type=request.receipt_type,
                business_number=request.business_number,
            )
        except DuplicateOrderError as e:
            existing = e.existing or await self.ledger.get_order_by_provider_ref(provider_ref)
            if existing is None:
                raise
            logger.info(
                "Callback for %s %s arrived before checkout returned; using order %s",
                adapter.provider_id,
                provider_ref,
                existing["id"],
            )
            return existing

    async def _abandon(self, order: Order) -> None:
        """Fail a pre-registered order whose checkout was rejected."""
        try:
            await self.ledger.apply_payment_outcome(order["provider_ref"], "failed")
        except TransitionConflict as e:
            logger.info("Order %s settled before its checkout failed: %s", order["id"], e.message)

    async def handle_callback(self, provider_id: str, raw: RawCallback) -> GatewayAck:
        """Reconcile one provider callback and return the ack owed to it.

        Raises:
            NotFoundError: Unknown provider.
            AuthenticityError: Signature or token mismatch; nothing recorded.
        """
        adapter = self.get_adapter(provider_id)

        try:
            event = adapter.parse_callback(raw)
        except ParseError as e:
            logger.warning("Unparseable %s callback (%d bytes): %s", provider_id, len(raw.body), e.message)
            return adapter.parse_failure_response()

        if not adapter.verify_authenticity(raw, event):
            raise AuthenticityError(f"{provider_id} callback failed authenticity check")

        if not await self.event_store.record_if_new(event):
            logger.info("Duplicate %s callback %s acknowledged", provider_id, event.event_key)
            return adapter.ack_response(event)

        try:
            await self._apply(adapter, event)
        except Exception:
            # Unrecord so the provider's retry is processed, not deduped
            await self.event_store.release(event.event_key)
            raise

        return adapter.ack_response(event)

    async def _apply(self, adapter: GatewayAdapter, event: GatewayEvent) -> None:
        if event.outcome == "success":
            try:
                result = await self.ledger.apply_payment_outcome(
                    event.provider_ref,
                    "completed",
                    event=event,
                    allow_create=adapter.allows_adhoc_orders,
                )
            except TransitionConflict:
                return
            if result.order is not None and result.order["payment_status"] == "completed":
                await self.fulfillment.fulfill(result.order)

        elif event.outcome == "failure":
            try:
                await self.ledger.apply_payment_outcome(event.provider_ref, "failed", event=event)
            except TransitionConflict:
                return

        else:
            logger.info("%s event %s needs no ledger change", event.provider, event.event_type or event.event_key)

    async def retry_side_effects(self) -> int:
        """Retry failed or stalled receipts and deliveries; returns how many succeeded."""
        return await self.fulfillment.retry_failed_effects()
