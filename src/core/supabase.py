"""Supabase client used by the shared store backend."""

from functools import lru_cache

from supabase import Client, create_client

from src.core.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    """Build the service-side Supabase client once.

    The secret key bypasses row level security; orders, gateway events and
    side-effect claims are only written by this service.
    """
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_secret_key)
