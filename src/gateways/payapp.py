"""PayApp gateway adapter.

PayApp speaks form-encoded text in both directions. Callbacks ("feedback")
carry a static ``linkval`` token instead of a signature, and PayApp keeps
retrying a callback until it receives the literal body ``SUCCESS``.
"""

import hmac
import logging
import re

from src.api.middleware.error_handler import GatewayError, ValidationError
from src.core.exceptions import ParseError
from src.core.payapp import PayAppClient
from src.gateways.base import (
    decode_callback_body,
    parse_amount,
    sanitize_display_name,
)
from src.models.gateway import (
    CheckoutInitiation,
    CheckoutRequest,
    GatewayAck,
    GatewayEvent,
    Outcome,
    RawCallback,
)

logger = logging.getLogger(__name__)

PROVIDER_ID = "payapp"

PHONE_PATTERN = re.compile(r"^01[0-9]-?[0-9]{3,4}-?[0-9]{4}$")
GOODNAME_MAX_LENGTH = 20
ACK_BODY = "SUCCESS"

# pay_state values reported on the feedback URL
PAID_STATES = frozenset({"4"})
CANCELLED_STATES = frozenset({"8", "9", "16", "32", "64"})

RECEIPT_TYPES = frozenset({"none", "personal", "business"})

# Never persisted with the event
_SECRET_FIELDS = frozenset({"linkkey", "linkval"})


def normalize_phone(phone: str) -> str:
    """Validate a Korean mobile number and return it as digits only.

    Raises:
        ValidationError: If the number does not look like 01X-XXXX-XXXX.
    """
    candidate = (phone or "").replace(" ", "")
    if not PHONE_PATTERN.match(candidate):
        raise ValidationError(
            "Invalid buyer phone number",
            details=[{"loc": ["buyer_phone"], "msg": "Expected 01X-XXXX-XXXX", "type": "value_error"}],
        )
    return candidate.replace("-", "")


def classify_pay_state(pay_state: str) -> Outcome:
    """Map a PayApp pay_state code onto a canonical outcome."""
    if pay_state in PAID_STATES:
        return "success"
    if pay_state in CANCELLED_STATES:
        return "failure"
    return "other"


class PayAppAdapter:
    """Gateway adapter for PayApp (payapp.kr)."""

    provider_id = PROVIDER_ID
    client_chosen_reference = False

    def __init__(
        self,
        client: PayAppClient,
        link_value: str = "",
        allow_adhoc_orders: bool = True,
    ) -> None:
        self.client = client
        self.link_value = link_value
        self.allows_adhoc_orders = allow_adhoc_orders

    def validate_checkout(self, request: CheckoutRequest) -> None:
        """Reject requests PayApp would refuse, before anything is recorded.

        Raises:
            ValidationError: Missing merchant id, bad phone, missing business
                number or an empty display name.
        """
        if not self.client.user_id:
            raise ValidationError("PayApp merchant id is not configured")

        normalize_phone(request.buyer_contact)

        if request.receipt_type == "business" and not (request.business_number or "").strip():
            raise ValidationError(
                "Business receipts require a business number",
                details=[{"loc": ["business_number"], "msg": "Field required", "type": "missing"}],
            )

        if not sanitize_display_name(request.display_name, GOODNAME_MAX_LENGTH, forbidden="&="):
            raise ValidationError("Display name is empty after sanitizing")

    async def initiate_checkout(self, request: CheckoutRequest) -> CheckoutInitiation:
        """Register a payment request with PayApp and return its payurl.

        Args:
            request: Canonical checkout request.

        Returns:
            CheckoutInitiation: ``mul_no`` as provider reference and the payurl.

        Raises:
            ValidationError: See validate_checkout.
            GatewayError: If PayApp answers with a non-success state.
            GatewayTimeoutError: If PayApp does not answer in time.
        """
        self.validate_checkout(request)
        phone = normalize_phone(request.buyer_contact)
        goodname = sanitize_display_name(request.display_name, GOODNAME_MAX_LENGTH, forbidden="&=")

        result = await self.client.call(
            "payrequest",
            {
                "goodname": goodname,
                "price": str(request.price),
                "recvphone": phone,
                "smsuse": "n",
                "feedbackurl": request.feedback_url,
                "var1": request.dataset_id,
                "var2": request.receipt_type or "none",
                "var3": (request.business_number or "").replace("-", ""),
            },
        )

        if result.get("state") != "1":
            message = result.get("errorMessage") or result.get("msg") or "PayApp rejected the payment request"
            logger.warning("PayApp payrequest rejected: %s", message)
            raise GatewayError(message)

        mul_no = result.get("mul_no", "")
        if not mul_no:
            raise GatewayError("PayApp response did not include mul_no")

        logger.info("PayApp payment request created: mul_no=%s", mul_no)
        return CheckoutInitiation(
            provider_ref=mul_no,
            pay_url=result.get("payurl") or None,
            display_name=goodname,
            raw=result,
        )

    def parse_callback(self, raw: RawCallback) -> GatewayEvent:
        """Normalize a PayApp feedback request.

        Missing optional fields map to empty strings or None; only a missing
        ``mul_no`` makes the callback unusable.
        """
        payload = decode_callback_body(raw)

        mul_no = str(payload.get("mul_no") or "").strip()
        if not mul_no:
            raise ParseError("PayApp callback is missing mul_no")

        pay_state = str(payload.get("pay_state") or "").strip()
        receipt_type = str(payload.get("var2") or "none").strip()
        if receipt_type not in RECEIPT_TYPES:
            receipt_type = "none"

        return GatewayEvent(
            provider=PROVIDER_ID,
            event_key=f"{PROVIDER_ID}:{mul_no}:{pay_state}",
            provider_ref=mul_no,
            outcome=classify_pay_state(pay_state),
            event_type=f"pay_state.{pay_state or 'unknown'}",
            amount=parse_amount(payload.get("price")),
            buyer_contact=str(payload.get("recvphone") or ""),
            dataset_id=str(payload.get("var1") or ""),
            display_name=str(payload.get("goodname") or ""),
            receipt_type=receipt_type,
            business_number=str(payload.get("var3") or "") or None,
            raw={k: v for k, v in payload.items() if k not in _SECRET_FIELDS},
        )

    def verify_authenticity(self, raw: RawCallback, event: GatewayEvent) -> bool:
        """Compare the callback's linkval with the configured link value.

        With no link value configured, verification is disabled and every
        callback is accepted. That mode only exists for legacy merchants and
        leaves the endpoint open to forged callbacks.
        """
        if not self.link_value:
            logger.warning(
                "PayApp callback verification DISABLED (PAYAPP_LINK_VALUE unset); "
                "accepting mul_no=%s unverified",
                event.provider_ref,
            )
            return True

        provided = str(decode_callback_body(raw).get("linkval") or "")
        return hmac.compare_digest(provided.encode("utf-8"), self.link_value.encode("utf-8"))

    def ack_response(self, event: GatewayEvent | None) -> GatewayAck:
        """PayApp retries until it sees the literal SUCCESS body."""
        return GatewayAck(status_code=200, body=ACK_BODY, media_type="text/plain")

    def parse_failure_response(self) -> GatewayAck:
        """Acked like any other callback; PayApp would otherwise retry forever."""
        return self.ack_response(None)
