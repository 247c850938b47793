"""Construction of the configured gateway adapters."""

from src.core.config import Settings
from src.core.payapp import PayAppClient
from src.core.stripe import get_stripe
from src.gateways.base import GatewayAdapter
from src.gateways.payapp import PayAppAdapter
from src.gateways.stripe_gateway import StripeAdapter


def build_gateway_adapters(
    settings: Settings,
    payapp_client: PayAppClient,
) -> dict[str, GatewayAdapter]:
    """Build one adapter per supported provider, keyed by provider id.

    Args:
        settings: Application settings.
        payapp_client: Client used for PayApp commands.

    Returns:
        dict: Adapters keyed by ``provider_id``.
    """
    base_url = settings.public_base_url.rstrip("/")
    adapters: list[GatewayAdapter] = [
        PayAppAdapter(
            client=payapp_client,
            link_value=settings.payapp_link_value,
            allow_adhoc_orders=settings.payapp_allow_adhoc_orders,
        ),
        StripeAdapter(
            stripe_client=get_stripe(),
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            currency=settings.stripe_currency,
            success_url=f"{base_url}/payment/success",
            cancel_url=f"{base_url}/payment/cancel",
            tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
        ),
    ]
    return {adapter.provider_id: adapter for adapter in adapters}
