"""Stripe Checkout gateway adapter.

Checkout sessions carry our own request id as ``client_reference_id``, which
Stripe echoes back on every webhook and which therefore serves as the
provider reference. Webhooks are signed JSON (``Stripe-Signature``).
"""

import json
import logging
from typing import Any

import stripe

from src.api.middleware.error_handler import GatewayError, ValidationError
from src.core.exceptions import GatewayTimeoutError, ParseError
from src.gateways.base import decode_callback_body, parse_amount, sanitize_display_name
from src.models.gateway import (
    CheckoutInitiation,
    CheckoutRequest,
    GatewayAck,
    GatewayEvent,
    Outcome,
    RawCallback,
)

logger = logging.getLogger(__name__)

PROVIDER_ID = "stripe"

PRODUCT_NAME_MAX_LENGTH = 120
SIGNATURE_HEADER = "Stripe-Signature"

SUCCESS_EVENT_TYPES = frozenset({"checkout.session.async_payment_succeeded"})
FAILURE_EVENT_TYPES = frozenset({
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
})


def classify_event(event_type: str, session: dict[str, Any]) -> Outcome:
    """Map a Stripe event type onto a canonical outcome.

    ``checkout.session.completed`` only counts as paid when the session's
    payment_status says so; delayed methods (bank debits) complete the
    session first and report the money later via async_payment_*.
    """
    if event_type == "checkout.session.completed":
        return "success" if session.get("payment_status") == "paid" else "other"
    if event_type in SUCCESS_EVENT_TYPES:
        return "success"
    if event_type in FAILURE_EVENT_TYPES:
        return "failure"
    return "other"


class StripeAdapter:
    """Gateway adapter for Stripe Checkout."""

    provider_id = PROVIDER_ID
    # Every Stripe session is created through checkout, so an unknown
    # client_reference_id is never turned into an order.
    allows_adhoc_orders = False
    client_chosen_reference = True

    def __init__(
        self,
        stripe_client: Any,
        secret_key: str,
        webhook_secret: str = "",
        currency: str = "krw",
        success_url: str = "",
        cancel_url: str = "",
        tolerance_seconds: int = 300,
    ) -> None:
        self.stripe = stripe_client
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.tolerance_seconds = tolerance_seconds

    def validate_checkout(self, request: CheckoutRequest) -> None:
        """Raises ValidationError if Stripe is unconfigured or the name is empty."""
        if not self.secret_key:
            raise ValidationError("Stripe is not configured. Please set STRIPE_SECRET_KEY environment variable.")
        if not sanitize_display_name(request.display_name, PRODUCT_NAME_MAX_LENGTH):
            raise ValidationError("Display name is empty after sanitizing")

    async def initiate_checkout(self, request: CheckoutRequest) -> CheckoutInitiation:
        """Create a Stripe Checkout Session for a single dataset.

        Raises:
            ValidationError: See validate_checkout.
            GatewayTimeoutError: If Stripe could not be reached.
            GatewayError: If Stripe rejected the session.
        """
        self.validate_checkout(request)
        name = sanitize_display_name(request.display_name, PRODUCT_NAME_MAX_LENGTH)

        metadata = {
            "dataset_id": request.dataset_id,
            "buyer_contact": request.buyer_contact,
            "receipt_type": request.receipt_type or "none",
            "business_number": request.business_number or "",
            "user_id": request.user_id or "",
        }

        try:
            session = self.stripe.checkout.Session.create(
                mode="payment",
                client_reference_id=request.request_id,
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "unit_amount": request.price,
                            "product_data": {"name": name},
                        },
                        "quantity": 1,
                    }
                ],
                success_url=request.success_url or self.success_url,
                cancel_url=request.cancel_url or self.cancel_url,
                metadata=metadata,
            )
        except stripe.APIConnectionError as e:
            logger.warning("Stripe unreachable creating checkout session: %s", str(e))
            raise GatewayTimeoutError("Stripe checkout session creation timed out") from e
        except stripe.StripeError as e:
            logger.error("Stripe error creating checkout session: %s", str(e))
            raise GatewayError(f"Stripe rejected the checkout session: {e.user_message or str(e)}") from e

        logger.info("Stripe checkout session %s created for request %s", session.id, request.request_id)
        return CheckoutInitiation(
            provider_ref=request.request_id,
            pay_url=session.url,
            display_name=name,
            raw={"session_id": session.id},
        )

    def parse_callback(self, raw: RawCallback) -> GatewayEvent:
        """Normalize a Stripe webhook into a GatewayEvent.

        Event types this engine does not act on still parse, with outcome
        ``other``, so they are acknowledged rather than retried.
        """
        payload = decode_callback_body(raw)

        event_id = str(payload.get("id") or "").strip()
        if not event_id:
            raise ParseError("Stripe event is missing id")

        event_type = str(payload.get("type") or "")
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        session = data.get("object") if isinstance(data.get("object"), dict) else {}
        metadata = session.get("metadata") if isinstance(session.get("metadata"), dict) else {}
        customer = session.get("customer_details") if isinstance(session.get("customer_details"), dict) else {}

        provider_ref = str(session.get("client_reference_id") or "")
        buyer_contact = metadata.get("buyer_contact") or customer.get("phone") or customer.get("email") or ""

        return GatewayEvent(
            provider=PROVIDER_ID,
            event_key=f"{PROVIDER_ID}:{event_id}",
            provider_ref=provider_ref,
            outcome=classify_event(event_type, session) if provider_ref else "other",
            event_type=event_type,
            amount=parse_amount(session.get("amount_total")),
            buyer_contact=str(buyer_contact),
            dataset_id=str(metadata.get("dataset_id") or ""),
            display_name="",
            receipt_type=str(metadata.get("receipt_type") or "none"),
            business_number=str(metadata.get("business_number") or "") or None,
            raw={"id": event_id, "type": event_type, "session_id": session.get("id")},
        )

    def verify_authenticity(self, raw: RawCallback, event: GatewayEvent) -> bool:
        """Recompute the HMAC-SHA256 over the exact raw body.

        With no webhook secret configured, verification is disabled and the
        event is accepted. That mode weakens authenticity and is logged on
        every callback.
        """
        if not self.webhook_secret:
            logger.warning(
                "Stripe webhook verification DISABLED (STRIPE_WEBHOOK_SECRET unset); "
                "accepting %s unverified",
                event.event_key,
            )
            return True

        sig_header = raw.header(SIGNATURE_HEADER)
        if not sig_header:
            logger.warning("Stripe webhook missing %s header", SIGNATURE_HEADER)
            return False

        try:
            stripe.WebhookSignature.verify_header(
                raw.body.decode("utf-8"),
                sig_header,
                self.webhook_secret,
                self.tolerance_seconds,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid Stripe webhook signature: %s", str(e))
            return False
        return True

    def ack_response(self, event: GatewayEvent | None) -> GatewayAck:
        """Any 2xx stops Stripe retrying; the body is informational."""
        return GatewayAck(
            status_code=200,
            body=json.dumps({"status": "received"}),
            media_type="application/json",
        )

    def parse_failure_response(self) -> GatewayAck:
        return GatewayAck(
            status_code=400,
            body=json.dumps({"status": "invalid_payload"}),
            media_type="application/json",
        )
