"""Supabase (PostgREST) stores for multi-instance deployments.

Atomicity comes from Postgres itself: unique constraints on
``orders.provider_ref``, ``gateway_events.event_key`` and
``side_effects(order_id, effect_type)``, and conditional ``UPDATE ... WHERE``
filters for state transitions.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from postgrest.exceptions import APIError
from supabase import Client

from src.core.exceptions import DuplicateOrderError
from src.models.gateway import GatewayEvent
from src.models.order import Order, OrderCreate, OrderUpdate
from src.models.side_effect import EffectRecord
from src.stores.base import DEFAULT_EFFECT_LEASE_SECONDS

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def _is_unique_violation(error: APIError) -> bool:
    return getattr(error, "code", None) == UNIQUE_VIOLATION


def _serialize(values: dict[str, Any]) -> dict[str, Any]:
    """Convert datetimes to ISO strings for the JSON body."""
    return {k: v.isoformat() if isinstance(v, datetime) else v for k, v in values.items()}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SupabaseOrderRepository:
    """Order rows in the ``orders`` table."""

    table_name = "orders"

    def __init__(self, client: Client) -> None:
        self.client = client

    async def insert(self, data: OrderCreate) -> Order:
        row = _serialize({
            "delivery_status": "pending",
            "payment_status": "pending",
            "receipt_type": "none",
            **data,
        })
        try:
            response = self.client.table(self.table_name).insert(row).execute()
        except APIError as e:
            if _is_unique_violation(e):
                existing = await self.get_by_provider_ref(data["provider_ref"])
                raise DuplicateOrderError(data["provider_ref"], existing) from e
            raise
        return response.data[0]

    async def get(self, order_id: str) -> Order | None:
        response = (
            self.client.table(self.table_name)
            .select("*")
            .eq("id", order_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    async def get_by_provider_ref(self, provider_ref: str) -> Order | None:
        response = (
            self.client.table(self.table_name)
            .select("*")
            .eq("provider_ref", provider_ref)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    async def update_where(
        self,
        order_id: str,
        expected: dict[str, Any],
        changes: OrderUpdate,
    ) -> Order | None:
        query = self.client.table(self.table_name).update(_serialize(dict(changes))).eq("id", order_id)
        for field, value in expected.items():
            query = query.is_(field, "null") if value is None else query.eq(field, value)
        response = query.execute()
        return response.data[0] if response.data else None

    async def list_by_user(self, user_id: str) -> list[Order]:
        response = (
            self.client.table(self.table_name)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []

    async def list_all(self) -> list[Order]:
        response = (
            self.client.table(self.table_name)
            .select("*")
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []

    async def ping(self) -> None:
        self.client.table(self.table_name).select("id").limit(1).execute()


class SupabaseEventStore:
    """Accepted gateway events in the ``gateway_events`` table."""

    table_name = "gateway_events"

    def __init__(self, client: Client) -> None:
        self.client = client

    async def record_if_new(self, event: GatewayEvent) -> bool:
        row = {
            "event_key": event.event_key,
            "provider": event.provider,
            "provider_ref": event.provider_ref,
            "outcome": event.outcome,
            "event_type": event.event_type,
            "received_at": _now_iso(),
        }
        try:
            self.client.table(self.table_name).insert(row).execute()
        except APIError as e:
            if _is_unique_violation(e):
                return False
            raise
        return True

    async def release(self, event_key: str) -> None:
        self.client.table(self.table_name).delete().eq("event_key", event_key).execute()

    async def count(self) -> int:
        response = self.client.table(self.table_name).select("event_key", count="exact").execute()
        return response.count or 0

    async def ping(self) -> None:
        self.client.table(self.table_name).select("event_key").limit(1).execute()


class SupabaseEffectStore:
    """Side-effect claims in the ``side_effects`` table."""

    table_name = "side_effects"

    def __init__(self, client: Client, lease_seconds: float = DEFAULT_EFFECT_LEASE_SECONDS) -> None:
        self.client = client
        self.lease = timedelta(seconds=lease_seconds)

    def _lease_expired(self, claimed_at: str | datetime | None) -> bool:
        if claimed_at is None:
            return True
        if isinstance(claimed_at, str):
            claimed_at = datetime.fromisoformat(claimed_at)
        return datetime.now(timezone.utc) - claimed_at >= self.lease

    async def claim(self, order_id: str, effect_type: str) -> bool:
        now = _now_iso()
        row = {
            "order_id": order_id,
            "effect_type": effect_type,
            "status": "running",
            "attempts": 1,
            "claimed_at": now,
            "updated_at": now,
        }
        try:
            self.client.table(self.table_name).insert(row).execute()
            return True
        except APIError as e:
            if not _is_unique_violation(e):
                raise

        existing = await self.get(order_id, effect_type)
        if existing is None:
            return False
        if existing["status"] == "running":
            if not self._lease_expired(existing.get("claimed_at")):
                return False
            logger.warning("Lease on effect %s for order %s expired; reclaiming", effect_type, order_id)
        elif existing["status"] != "failed":
            return False

        # status and attempts filters make this a compare-and-set
        response = (
            self.client.table(self.table_name)
            .update({
                "status": "running",
                "attempts": existing["attempts"] + 1,
                "claimed_at": now,
                "updated_at": now,
            })
            .eq("order_id", order_id)
            .eq("effect_type", effect_type)
            .eq("status", existing["status"])
            .eq("attempts", existing["attempts"])
            .execute()
        )
        return bool(response.data)

    async def complete(self, order_id: str, effect_type: str) -> None:
        self._set_status(order_id, effect_type, "done", None)

    async def fail(self, order_id: str, effect_type: str, error: str, retryable: bool = True) -> None:
        self._set_status(order_id, effect_type, "failed" if retryable else "abandoned", error)

    def _set_status(self, order_id: str, effect_type: str, status: str, error: str | None) -> None:
        (
            self.client.table(self.table_name)
            .update({"status": status, "last_error": error, "updated_at": _now_iso()})
            .eq("order_id", order_id)
            .eq("effect_type", effect_type)
            .execute()
        )

    async def get(self, order_id: str, effect_type: str) -> EffectRecord | None:
        response = (
            self.client.table(self.table_name)
            .select("*")
            .eq("order_id", order_id)
            .eq("effect_type", effect_type)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    async def list_retryable(self) -> list[EffectRecord]:
        failed = (
            self.client.table(self.table_name)
            .select("*")
            .eq("status", "failed")
            .execute()
        )
        cutoff = (datetime.now(timezone.utc) - self.lease).isoformat()
        stale = (
            self.client.table(self.table_name)
            .select("*")
            .eq("status", "running")
            .lt("claimed_at", cutoff)
            .execute()
        )
        return (failed.data or []) + (stale.data or [])

    async def ping(self) -> None:
        self.client.table(self.table_name).select("order_id").limit(1).execute()
