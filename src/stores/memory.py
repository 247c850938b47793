"""In-memory stores for single-process deployments and tests."""

import logging
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any
from uuid import uuid4

from src.core.exceptions import DuplicateOrderError
from src.models.gateway import GatewayEvent, GatewayEventRecord
from src.models.order import Order, OrderCreate, OrderUpdate
from src.models.side_effect import EffectRecord
from src.stores.base import DEFAULT_EFFECT_LEASE_SECONDS

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryOrderRepository:
    """Thread-safe order table with a unique provider_ref index."""

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._by_provider_ref: dict[str, str] = {}
        self._lock = Lock()

    async def insert(self, data: OrderCreate) -> Order:
        provider_ref = data["provider_ref"]
        with self._lock:
            existing_id = self._by_provider_ref.get(provider_ref)
            if existing_id is not None:
                raise DuplicateOrderError(provider_ref, dict(self._orders[existing_id]))

            order: Order = {
                "id": str(uuid4()),
                "provider": data["provider"],
                "provider_ref": provider_ref,
                "user_id": data.get("user_id"),
                "dataset_id": data.get("dataset_id", ""),
                "display_name": data.get("display_name", ""),
                "price": data["price"],
                "buyer_contact": data.get("buyer_contact", ""),
                "payment_status": data.get("payment_status", "pending"),
                "delivery_status": "pending",
                "delivery_url": None,
                "receipt_type": data.get("receipt_type", "none"),
                "business_number": data.get("business_number"),
                "created_at": _now(),
                "completed_at": data.get("completed_at"),
            }
            self._orders[order["id"]] = order
            self._by_provider_ref[provider_ref] = order["id"]
            return dict(order)

    async def get(self, order_id: str) -> Order | None:
        with self._lock:
            order = self._orders.get(order_id)
            return dict(order) if order else None

    async def get_by_provider_ref(self, provider_ref: str) -> Order | None:
        with self._lock:
            order_id = self._by_provider_ref.get(provider_ref)
            return dict(self._orders[order_id]) if order_id else None

    async def update_where(
        self,
        order_id: str,
        expected: dict[str, Any],
        changes: OrderUpdate,
    ) -> Order | None:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            if any(order.get(field) != value for field, value in expected.items()):
                return None
            order.update(changes)
            return dict(order)

    async def list_by_user(self, user_id: str) -> list[Order]:
        with self._lock:
            orders = [dict(o) for o in self._orders.values() if o["user_id"] == user_id]
        return sorted(orders, key=lambda o: o["created_at"], reverse=True)

    async def list_all(self) -> list[Order]:
        with self._lock:
            orders = [dict(o) for o in self._orders.values()]
        return sorted(orders, key=lambda o: o["created_at"], reverse=True)

    async def ping(self) -> None:
        return None


class InMemoryEventStore:
    """Thread-safe set of seen event keys."""

    def __init__(self) -> None:
        self._events: dict[str, GatewayEventRecord] = {}
        self._lock = Lock()

    async def record_if_new(self, event: GatewayEvent) -> bool:
        with self._lock:
            if event.event_key in self._events:
                return False
            self._events[event.event_key] = {
                "event_key": event.event_key,
                "provider": event.provider,
                "provider_ref": event.provider_ref,
                "outcome": event.outcome,
                "event_type": event.event_type,
                "received_at": _now(),
            }
            return True

    async def release(self, event_key: str) -> None:
        with self._lock:
            self._events.pop(event_key, None)

    async def count(self) -> int:
        with self._lock:
            return len(self._events)

    async def ping(self) -> None:
        return None


class InMemoryEffectStore:
    """Thread-safe claim table keyed by (order_id, effect_type)."""

    def __init__(self, lease_seconds: float = DEFAULT_EFFECT_LEASE_SECONDS) -> None:
        self._effects: dict[tuple[str, str], EffectRecord] = {}
        self._lock = Lock()
        self.lease = timedelta(seconds=lease_seconds)

    def _claimable(self, record: EffectRecord | None, now: datetime) -> bool:
        if record is None or record["status"] == "failed":
            return True
        if record["status"] != "running":
            return False
        claimed_at = record.get("claimed_at")
        return claimed_at is None or now - claimed_at >= self.lease

    async def claim(self, order_id: str, effect_type: str) -> bool:
        key = (order_id, effect_type)
        now = _now()
        with self._lock:
            record = self._effects.get(key)
            if not self._claimable(record, now):
                return False
            if record is not None and record["status"] == "running":
                logger.warning(
                    "Lease on effect %s for order %s expired; reclaiming", effect_type, order_id
                )
            self._effects[key] = {
                "order_id": order_id,
                "effect_type": effect_type,
                "status": "running",
                "attempts": (record["attempts"] if record else 0) + 1,
                "last_error": record["last_error"] if record else None,
                "claimed_at": now,
                "updated_at": now,
            }
            return True

    async def complete(self, order_id: str, effect_type: str) -> None:
        self._set_status(order_id, effect_type, "done", None)

    async def fail(self, order_id: str, effect_type: str, error: str, retryable: bool = True) -> None:
        self._set_status(order_id, effect_type, "failed" if retryable else "abandoned", error)

    def _set_status(self, order_id: str, effect_type: str, status: str, error: str | None) -> None:
        with self._lock:
            record = self._effects.get((order_id, effect_type))
            if record is None:
                logger.warning("No claim for effect %s on order %s", effect_type, order_id)
                return
            record["status"] = status
            record["last_error"] = error
            record["updated_at"] = _now()

    async def get(self, order_id: str, effect_type: str) -> EffectRecord | None:
        with self._lock:
            record = self._effects.get((order_id, effect_type))
            return dict(record) if record else None

    async def list_retryable(self) -> list[EffectRecord]:
        now = _now()
        with self._lock:
            return [
                dict(r)
                for r in self._effects.values()
                if r["status"] in ("failed", "running") and self._claimable(r, now)
            ]

    async def ping(self) -> None:
        return None
