"""PayApp HTTP API client.

PayApp exposes a single form-encoded endpoint; the ``cmd`` field selects the
operation and the response body is itself form-encoded
(``state=1&mul_no=...``).
"""

import logging
import time
from functools import lru_cache
from urllib.parse import parse_qsl

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.api.middleware.error_handler import GatewayError
from src.core.config import get_settings
from src.core.exceptions import GatewayTimeoutError, GatewayUnreachableError

logger = logging.getLogger(__name__)

MIN_WAIT_SECONDS = 0.5
MAX_WAIT_SECONDS = 5

SLOW_CALL_THRESHOLD_MS = 3000


def parse_form_response(text: str) -> dict[str, str]:
    """Decode a ``key=value&...`` body into a dict, keeping blank values."""
    return dict(parse_qsl(text.strip(), keep_blank_values=True))


class PayAppClient:
    """Async client for the PayApp command endpoint."""

    def __init__(
        self,
        api_url: str,
        user_id: str,
        link_key: str = "",
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self.user_id = user_id
        self.link_key = link_key
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self._transport = transport

    async def call(self, cmd: str, fields: dict[str, str]) -> dict[str, str]:
        """Send one PayApp command and return the decoded response fields.

        Only connection failures are retried, since the request never reached
        PayApp. A timeout is raised as GatewayTimeoutError without retrying:
        PayApp may already have acted on it.

        Args:
            cmd: PayApp command name (e.g. ``payrequest``).
            fields: Command-specific form fields.

        Returns:
            dict: Decoded response fields.

        Raises:
            GatewayTimeoutError: If PayApp did not answer within the timeout.
            GatewayUnreachableError: If the request still failed in transport
                after the retries.
            GatewayError: If PayApp answered with an HTTP error status.
        """
        form = {"cmd": cmd, "userid": self.user_id, **fields}
        if self.link_key:
            form["linkkey"] = self.link_key

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.max_attempts),
                    wait=wait_exponential(multiplier=1, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
                    retry=retry_if_exception_type(httpx.ConnectError),
                    reraise=True,
                ):
                    with attempt:
                        response = await client.post(
                            self.api_url,
                            data=form,
                            headers={"Content-Type": "application/x-www-form-urlencoded"},
                        )
                        response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning("PayApp %s timed out after %.1fs", cmd, self.timeout_seconds)
            raise GatewayTimeoutError(f"PayApp {cmd} timed out") from e
        except httpx.TransportError as e:
            logger.warning("PayApp %s unreachable after %d attempts: %s", cmd, self.max_attempts, e)
            raise GatewayUnreachableError(f"PayApp {cmd} could not be reached") from e
        except httpx.HTTPStatusError as e:
            logger.warning("PayApp %s answered HTTP %d", cmd, e.response.status_code)
            raise GatewayError(f"PayApp answered HTTP {e.response.status_code}") from e

        latency_ms = (time.perf_counter() - start) * 1000
        if latency_ms > SLOW_CALL_THRESHOLD_MS:
            logger.warning("Slow PayApp call: %s took %.0fms", cmd, latency_ms)
        else:
            logger.debug("PayApp %s completed in %.0fms", cmd, latency_ms)

        return parse_form_response(response.text)


@lru_cache
def get_payapp_client() -> PayAppClient:
    """Get cached PayApp client configured from settings.

    Returns:
        PayAppClient: Shared client instance.
    """
    settings = get_settings()
    return PayAppClient(
        api_url=settings.payapp_api_url,
        user_id=settings.payapp_user_id,
        link_key=settings.payapp_link_key,
        timeout_seconds=settings.gateway_timeout_seconds,
        max_attempts=settings.gateway_max_retries,
    )
