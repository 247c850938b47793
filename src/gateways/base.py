"""Capability set shared by every payment gateway adapter.

Adapters do not inherit from a common base; each implements this protocol
on its own and the orchestrator depends only on the protocol.
"""

import json
import re
from typing import Any, Protocol, runtime_checkable
from urllib.parse import parse_qsl

from src.core.exceptions import ParseError
from src.models.gateway import (
    CheckoutInitiation,
    CheckoutRequest,
    GatewayAck,
    GatewayEvent,
    RawCallback,
)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


@runtime_checkable
class GatewayAdapter(Protocol):
    """Operations the reconciliation engine needs from a payment provider."""

    provider_id: str
    allows_adhoc_orders: bool
    # True when the provider echoes our request id instead of assigning its own
    client_chosen_reference: bool

    def validate_checkout(self, request: CheckoutRequest) -> None:
        """Raise ValidationError for input the provider would refuse."""
        ...

    async def initiate_checkout(self, request: CheckoutRequest) -> CheckoutInitiation:
        """Build and send the provider-specific checkout call."""
        ...

    def parse_callback(self, raw: RawCallback) -> GatewayEvent:
        """Normalize a callback into a GatewayEvent or raise ParseError."""
        ...

    def verify_authenticity(self, raw: RawCallback, event: GatewayEvent) -> bool:
        """Check the callback's signature or shared token."""
        ...

    def ack_response(self, event: GatewayEvent | None) -> GatewayAck:
        """Acknowledgement that stops the provider from retrying."""
        ...

    def parse_failure_response(self) -> GatewayAck:
        """Response for a body that could not be parsed."""
        ...


def decode_callback_body(raw: RawCallback) -> dict[str, Any]:
    """Decode a callback body that is either JSON or ``key=value&...`` text.

    The content type is only a hint: providers are inconsistent about it, so
    a body that looks like a JSON object is decoded as JSON regardless.

    Raises:
        ParseError: If the body is empty, not UTF-8, or neither format.
    """
    try:
        text = raw.body.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise ParseError("Callback body is not valid UTF-8") from e

    if not text:
        raise ParseError("Callback body is empty")

    if text.startswith("{") or "json" in raw.content_type.lower():
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"Callback body is not valid JSON: {e.msg}") from e
        if not isinstance(payload, dict):
            raise ParseError("Callback JSON body is not an object")
        return payload

    if "=" not in text:
        raise ParseError("Callback body is neither JSON nor form-encoded")
    return dict(parse_qsl(text, keep_blank_values=True))


def sanitize_display_name(name: str, max_length: int, forbidden: str = "") -> str:
    """Strip control and forbidden characters, then truncate to max_length."""
    cleaned = _CONTROL_CHARS.sub("", name)
    for char in forbidden:
        cleaned = cleaned.replace(char, "")
    cleaned = " ".join(cleaned.split())
    return cleaned[:max_length]


def parse_amount(value: Any) -> int | None:
    """Parse a provider-reported amount; missing or malformed maps to None."""
    if value is None or value == "":
        return None
    try:
        return int(str(value).replace(",", "").strip())
    except ValueError:
        return None
