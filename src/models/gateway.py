"""Canonical values exchanged with payment gateway adapters."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Mapping, TypedDict

Outcome = Literal["success", "failure", "other"]


@dataclass(frozen=True)
class CheckoutRequest:
    """Provider-neutral purchase intent handed to an adapter.

    ``request_id`` is generated by the orchestrator; providers that echo a
    client-chosen reference use it as the provider reference.
    """

    request_id: str
    dataset_id: str
    display_name: str
    price: int
    buyer_contact: str
    feedback_url: str
    receipt_type: str = "none"
    business_number: str | None = None
    user_id: str | None = None
    success_url: str | None = None
    cancel_url: str | None = None


@dataclass(frozen=True)
class CheckoutInitiation:
    """What a provider returned for a checkout request."""

    provider_ref: str
    pay_url: str | None
    display_name: str
    raw: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RawCallback:
    """An inbound gateway request exactly as it arrived."""

    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    content_type: str = ""

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass(frozen=True)
class GatewayEvent:
    """An immutable fact reported by a provider.

    ``event_key`` is scoped by provider and is what the event store dedupes
    on. Optional fields are ``None`` or empty when the provider omitted them.
    """

    provider: str
    event_key: str
    provider_ref: str
    outcome: Outcome
    event_type: str = ""
    amount: int | None = None
    buyer_contact: str = ""
    dataset_id: str = ""
    display_name: str = ""
    receipt_type: str = "none"
    business_number: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayAck:
    """HTTP acknowledgement owed to a provider for one callback."""

    status_code: int
    body: str
    media_type: str = "text/plain"


class GatewayEventRecord(TypedDict):
    """Row in the gateway_events table, keyed by event_key."""

    event_key: str
    provider: str
    provider_ref: str
    outcome: str
    event_type: str
    received_at: datetime
