"""Unit tests for the Stripe gateway adapter."""

import json
import time
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest
import stripe

from src.api.middleware.error_handler import GatewayError, ValidationError
from src.core.exceptions import GatewayTimeoutError, ParseError
from src.gateways.stripe_gateway import StripeAdapter, classify_event
from src.models.gateway import CheckoutRequest, RawCallback

WEBHOOK_SECRET = "whsec_unit_test_secret"


@pytest.fixture
def mock_stripe() -> MagicMock:
    """Create a mock Stripe client."""
    client = MagicMock()
    client.checkout.Session.create.return_value = MagicMock(
        id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123"
    )
    return client


@pytest.fixture
def adapter(mock_stripe: MagicMock) -> StripeAdapter:
    """Create a StripeAdapter with a webhook secret configured."""
    return StripeAdapter(
        stripe_client=mock_stripe,
        secret_key="sk_test_123",
        webhook_secret=WEBHOOK_SECRET,
        success_url="https://shop.test/payment/success",
        cancel_url="https://shop.test/payment/cancel",
    )


@pytest.fixture
def checkout_request() -> CheckoutRequest:
    """Create a sample checkout request."""
    return CheckoutRequest(
        request_id="req-abc",
        dataset_id="ds-traffic",
        display_name="Traffic Dataset",
        price=50000,
        buyer_contact="010-1234-5678",
        feedback_url="https://api.datamarket.test/api/v1/webhooks/stripe",
        receipt_type="personal",
    )


def session_event(
    event_type: str = "checkout.session.completed",
    payment_status: str = "paid",
    client_reference_id: str | None = "req-abc",
    event_id: str = "evt_1",
) -> str:
    return json.dumps({
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": "cs_test_123",
                "client_reference_id": client_reference_id,
                "payment_status": payment_status,
                "amount_total": 50000,
                "metadata": {
                    "dataset_id": "ds-traffic",
                    "buyer_contact": "010-1234-5678",
                    "receipt_type": "personal",
                },
            }
        },
    })


class TestClassifyEvent:
    """Tests for classify_event."""

    def test_completed_and_paid_is_success(self) -> None:
        assert classify_event("checkout.session.completed", {"payment_status": "paid"}) == "success"

    def test_completed_but_unpaid_is_other(self) -> None:
        assert classify_event("checkout.session.completed", {"payment_status": "unpaid"}) == "other"

    def test_async_outcomes(self) -> None:
        assert classify_event("checkout.session.async_payment_succeeded", {}) == "success"
        assert classify_event("checkout.session.async_payment_failed", {}) == "failure"
        assert classify_event("checkout.session.expired", {}) == "failure"

    def test_unrelated_event_is_other(self) -> None:
        assert classify_event("customer.created", {}) == "other"


class TestInitiateCheckout:
    """Tests for initiate_checkout."""

    @pytest.mark.asyncio
    async def test_creates_session_with_request_id_as_reference(
        self,
        adapter: StripeAdapter,
        mock_stripe: MagicMock,
        checkout_request: CheckoutRequest,
    ) -> None:
        result = await adapter.initiate_checkout(checkout_request)

        assert result.provider_ref == "req-abc"
        assert result.pay_url == "https://checkout.stripe.com/c/pay/cs_test_123"
        assert result.raw == {"session_id": "cs_test_123"}

        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["client_reference_id"] == "req-abc"
        assert kwargs["mode"] == "payment"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 50000
        assert kwargs["line_items"][0]["price_data"]["currency"] == "krw"
        assert kwargs["metadata"]["dataset_id"] == "ds-traffic"
        assert kwargs["success_url"] == "https://shop.test/payment/success"

    @pytest.mark.asyncio
    async def test_connection_error_becomes_timeout(
        self,
        adapter: StripeAdapter,
        mock_stripe: MagicMock,
        checkout_request: CheckoutRequest,
    ) -> None:
        mock_stripe.checkout.Session.create.side_effect = stripe.APIConnectionError("unreachable")

        with pytest.raises(GatewayTimeoutError):
            await adapter.initiate_checkout(checkout_request)

    @pytest.mark.asyncio
    async def test_stripe_error_becomes_gateway_error(
        self,
        adapter: StripeAdapter,
        mock_stripe: MagicMock,
        checkout_request: CheckoutRequest,
    ) -> None:
        mock_stripe.checkout.Session.create.side_effect = stripe.InvalidRequestError("bad currency", "currency")

        with pytest.raises(GatewayError):
            await adapter.initiate_checkout(checkout_request)

    def test_validate_requires_secret_key(self, mock_stripe: MagicMock, checkout_request: CheckoutRequest) -> None:
        adapter = StripeAdapter(stripe_client=mock_stripe, secret_key="")
        with pytest.raises(ValidationError):
            adapter.validate_checkout(checkout_request)


class TestParseCallback:
    """Tests for parse_callback."""

    def test_parses_paid_session(self, adapter: StripeAdapter) -> None:
        event = adapter.parse_callback(RawCallback(body=session_event().encode("utf-8")))

        assert event.provider == "stripe"
        assert event.event_key == "stripe:evt_1"
        assert event.provider_ref == "req-abc"
        assert event.outcome == "success"
        assert event.amount == 50000
        assert event.buyer_contact == "010-1234-5678"
        assert event.dataset_id == "ds-traffic"

    def test_session_without_reference_is_other(self, adapter: StripeAdapter) -> None:
        raw = RawCallback(body=session_event(client_reference_id=None).encode("utf-8"))
        assert adapter.parse_callback(raw).outcome == "other"

    def test_missing_event_id_raises(self, adapter: StripeAdapter) -> None:
        with pytest.raises(ParseError):
            adapter.parse_callback(RawCallback(body=b'{"type": "checkout.session.completed"}'))

    def test_invalid_json_raises(self, adapter: StripeAdapter) -> None:
        with pytest.raises(ParseError):
            adapter.parse_callback(RawCallback(body=b'{"id": ', content_type="application/json"))


class TestVerifyAuthenticity:
    """Tests for verify_authenticity against real Stripe signatures."""

    def test_valid_signature(self, adapter: StripeAdapter, sign_stripe_payload: Callable[..., str]) -> None:
        payload = session_event()
        raw = RawCallback(
            body=payload.encode("utf-8"),
            headers={"stripe-signature": sign_stripe_payload(payload, secret=WEBHOOK_SECRET)},
        )
        assert adapter.verify_authenticity(raw, adapter.parse_callback(raw)) is True

    def test_signature_with_wrong_secret(
        self, adapter: StripeAdapter, sign_stripe_payload: Callable[..., str]
    ) -> None:
        payload = session_event()
        raw = RawCallback(
            body=payload.encode("utf-8"),
            headers={"Stripe-Signature": sign_stripe_payload(payload, secret="whsec_other")},
        )
        assert adapter.verify_authenticity(raw, adapter.parse_callback(raw)) is False

    def test_tampered_body(self, adapter: StripeAdapter, sign_stripe_payload: Callable[..., str]) -> None:
        header = sign_stripe_payload(session_event(), secret=WEBHOOK_SECRET)
        tampered = session_event(event_id="evt_forged")
        raw = RawCallback(body=tampered.encode("utf-8"), headers={"Stripe-Signature": header})
        assert adapter.verify_authenticity(raw, adapter.parse_callback(raw)) is False

    def test_expired_timestamp(self, adapter: StripeAdapter, sign_stripe_payload: Callable[..., str]) -> None:
        payload = session_event()
        header = sign_stripe_payload(payload, secret=WEBHOOK_SECRET, timestamp=int(time.time()) - 3600)
        raw = RawCallback(body=payload.encode("utf-8"), headers={"Stripe-Signature": header})
        assert adapter.verify_authenticity(raw, adapter.parse_callback(raw)) is False

    def test_missing_header(self, adapter: StripeAdapter) -> None:
        raw = RawCallback(body=session_event().encode("utf-8"))
        assert adapter.verify_authenticity(raw, adapter.parse_callback(raw)) is False

    def test_disabled_verification_accepts(self, mock_stripe: MagicMock, caplog: pytest.LogCaptureFixture) -> None:
        adapter = StripeAdapter(stripe_client=mock_stripe, secret_key="sk_test_123", webhook_secret="")
        raw = RawCallback(body=session_event().encode("utf-8"))

        assert adapter.verify_authenticity(raw, adapter.parse_callback(raw)) is True
        assert "verification DISABLED" in caplog.text


class TestAcknowledgement:
    """Tests for ack responses."""

    def test_ack_is_json(self, adapter: StripeAdapter) -> None:
        ack = adapter.ack_response(None)
        assert ack.status_code == 200
        assert json.loads(ack.body) == {"status": "received"}

    def test_parse_failure_is_400(self, adapter: StripeAdapter) -> None:
        assert adapter.parse_failure_response().status_code == 400
