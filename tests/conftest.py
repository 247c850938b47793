"""Pytest configuration and fixtures."""

import hashlib
import hmac
import os
import time
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("PUBLIC_BASE_URL", "https://api.datamarket.test")
os.environ.setdefault("PAYAPP_USER_ID", "test-merchant")
os.environ.setdefault("PAYAPP_LINK_KEY", "test-link-key")
os.environ.setdefault("PAYAPP_LINK_VALUE", "test-link-value")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("DELIVERY_BASE_URL", "https://downloads.datamarket.test/datasets")
os.environ.setdefault("DELIVERY_SIGNING_SECRET", "test-delivery-secret")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

LINK_VALUE = "test-link-value"
STRIPE_WEBHOOK_SECRET = "whsec_test_webhook_secret"
ADMIN_KEY = "test-admin-key"


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def payapp_responses() -> list[str]:
    """Form-encoded bodies the fake PayApp endpoint answers with, in order.

    Defaults to a successful payrequest when the list runs out.
    """
    return []


@pytest.fixture
def payapp_requests() -> list[dict[str, str]]:
    """Form fields of every request sent to the fake PayApp endpoint."""
    return []


@pytest.fixture
def payapp_transport(payapp_responses: list[str], payapp_requests: list[dict[str, str]]) -> httpx.MockTransport:
    """httpx transport standing in for the PayApp API."""
    from src.core.payapp import parse_form_response

    def handler(request: httpx.Request) -> httpx.Response:
        payapp_requests.append(parse_form_response(request.content.decode("utf-8")))
        if payapp_responses:
            return httpx.Response(200, text=payapp_responses.pop(0))
        return httpx.Response(200, text="state=1&mul_no=90001&payurl=https%3A%2F%2Fpayapp.kr%2Fpay%2F90001")

    return httpx.MockTransport(handler)


@pytest.fixture
def client(payapp_transport: httpx.MockTransport) -> Generator[TestClient, None, None]:
    """Provide a test client with in-memory stores and a fake PayApp.

    Args:
        payapp_transport: Fake PayApp transport fixture.

    Yields:
        TestClient: FastAPI test client. Each client gets fresh stores.
    """
    from src.core.payapp import PayAppClient
    from src.main import app

    payapp_client = PayAppClient(
        api_url="https://api.payapp.test/oapi/apiLoad.html",
        user_id="test-merchant",
        link_key="test-link-key",
        max_attempts=1,
        transport=payapp_transport,
    )

    with patch("src.main.get_payapp_client", return_value=payapp_client):
        with TestClient(app) as test_client:
            test_client.app.state.reconciliation.adapters["stripe"].stripe = MagicMock()
            yield test_client


@pytest.fixture
def sign_stripe_payload() -> Callable[..., str]:
    """Build a Stripe-Signature header for a payload.

    Returns:
        Callable: ``sign(payload, secret=..., timestamp=None) -> header``.
    """

    def sign(payload: str, secret: str = STRIPE_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
        timestamp = timestamp or int(time.time())
        signed = f"{timestamp}.{payload}".encode("utf-8")
        signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={signature}"

    return sign
