"""Stripe SDK setup.

The SDK is configured through module globals, so it is set up once at
startup and the module itself is handed to the Stripe adapter.
"""

import logging

import stripe

from src.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_stripe(settings: Settings | None = None) -> None:
    """Set the API key and network retry policy on the Stripe SDK.

    Without a secret key the Stripe adapter refuses checkouts with a
    validation error; PayApp is unaffected.
    """
    settings = settings or get_settings()
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY unset; Stripe checkouts are disabled")
        return

    stripe.api_key = settings.stripe_secret_key
    stripe.max_network_retries = settings.gateway_max_retries
    logger.info(
        "Stripe configured (%s mode)",
        "test" if settings.is_stripe_test_mode else "live",
    )
    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET unset; Stripe webhook signatures will NOT be verified")


def get_stripe():
    """Return the configured ``stripe`` module."""
    return stripe
