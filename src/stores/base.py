"""Storage contracts for orders, gateway events and side-effect bookkeeping.

Every backend must make ``EventStore.record_if_new``, ``EffectStore.claim``
and ``OrderRepository.update_where`` atomic: they are the only
serialization points between concurrent callback handlers.
"""

from typing import Any, Protocol

from src.models.gateway import GatewayEvent
from src.models.order import Order, OrderCreate, OrderUpdate
from src.models.side_effect import EffectRecord

# Longer than a PayApp call with all its retries
DEFAULT_EFFECT_LEASE_SECONDS = 600


class OrderRepository(Protocol):
    """Persistence for Order rows with a unique provider_ref."""

    async def insert(self, data: OrderCreate) -> Order:
        """Insert a new order; raises DuplicateOrderError on provider_ref clash."""
        ...

    async def get(self, order_id: str) -> Order | None: ...

    async def get_by_provider_ref(self, provider_ref: str) -> Order | None: ...

    async def update_where(
        self,
        order_id: str,
        expected: dict[str, Any],
        changes: OrderUpdate,
    ) -> Order | None:
        """Apply changes only if every expected field still holds.

        Returns the updated row, or None when the guard did not match.
        """
        ...

    async def list_by_user(self, user_id: str) -> list[Order]: ...

    async def list_all(self) -> list[Order]: ...

    async def ping(self) -> None: ...


class EventStore(Protocol):
    """Durable record of accepted gateway events, keyed by event_key."""

    async def record_if_new(self, event: GatewayEvent) -> bool:
        """Record the event; True only for the first caller with this key."""
        ...

    async def release(self, event_key: str) -> None:
        """Forget an event whose processing failed so a retry is treated as new."""
        ...

    async def count(self) -> int: ...

    async def ping(self) -> None: ...


class EffectStore(Protocol):
    """Claim/complete bookkeeping per (order_id, effect_type).

    A claim is a lease: ``running`` rows older than the store's lease are
    treated as abandoned by their worker and can be claimed again.
    """

    async def claim(self, order_id: str, effect_type: str) -> bool:
        """Take the effect if it never ran, its last attempt failed, or its lease expired."""
        ...

    async def complete(self, order_id: str, effect_type: str) -> None: ...

    async def fail(self, order_id: str, effect_type: str, error: str, retryable: bool = True) -> None:
        """Record a failed attempt; non-retryable failures are parked as ``abandoned``."""
        ...

    async def get(self, order_id: str, effect_type: str) -> EffectRecord | None: ...

    async def list_retryable(self) -> list[EffectRecord]:
        """Failed effects plus running ones whose lease has expired."""
        ...

    async def ping(self) -> None: ...
