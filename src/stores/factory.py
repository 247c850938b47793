"""Selects the storage backend from configuration at startup."""

import logging
from dataclasses import dataclass

from src.core.config import Settings
from src.stores.base import EffectStore, EventStore, OrderRepository
from src.stores.memory import InMemoryEffectStore, InMemoryEventStore, InMemoryOrderRepository

logger = logging.getLogger(__name__)


@dataclass
class Stores:
    """The three stores the engine needs, from one backend."""

    backend: str
    orders: OrderRepository
    events: EventStore
    effects: EffectStore


def build_stores(settings: Settings) -> Stores:
    """Construct stores for ``settings.store_backend``.

    The memory backend is only correct for a single process; with several
    workers each would keep its own dedupe table.
    """
    if settings.store_backend == "supabase":
        from src.core.supabase import get_supabase_client
        from src.stores.supabase_store import (
            SupabaseEffectStore,
            SupabaseEventStore,
            SupabaseOrderRepository,
        )

        client = get_supabase_client()
        logger.info("Using Supabase stores")
        return Stores(
            backend="supabase",
            orders=SupabaseOrderRepository(client),
            events=SupabaseEventStore(client),
            effects=SupabaseEffectStore(client, lease_seconds=settings.side_effect_lease_seconds),
        )

    if settings.is_production:
        logger.warning("In-memory stores in production: state is lost on restart and not shared across workers")
    else:
        logger.info("Using in-memory stores")
    return Stores(
        backend="memory",
        orders=InMemoryOrderRepository(),
        events=InMemoryEventStore(),
        effects=InMemoryEffectStore(lease_seconds=settings.side_effect_lease_seconds),
    )
