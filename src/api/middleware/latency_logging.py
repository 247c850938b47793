"""Per-request latency logging."""

import logging
import time
from typing import Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)

SLOW_REQUEST_THRESHOLD_MS = 1000
VERY_SLOW_REQUEST_THRESHOLD_MS = 3000
SLOW_PROBE_THRESHOLD_MS = 100

HEALTH_PATHS = frozenset({"/health", "/health/ready"})


def _level_and_prefix(path: str, status_code: int, latency_ms: float, failed: bool) -> tuple[int, str] | None:
    """Pick the log level for a finished request; None means don't log."""
    if path in HEALTH_PATHS:
        return (logging.DEBUG, "") if latency_ms > SLOW_PROBE_THRESHOLD_MS else None
    if failed or status_code >= 500:
        return logging.ERROR, ""
    if latency_ms > VERY_SLOW_REQUEST_THRESHOLD_MS:
        return logging.ERROR, "VERY SLOW REQUEST: "
    if latency_ms > SLOW_REQUEST_THRESHOLD_MS:
        return logging.WARNING, "SLOW REQUEST: "
    if status_code >= 400:
        return logging.WARNING, ""
    return logging.INFO, ""


async def latency_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log method, path, status and latency of every request.

    Health probes are only logged when slow. 401s on callback routes show up
    at WARNING next to the security event logged by the error handler.
    """
    start = time.perf_counter()
    response = None
    failed = False

    try:
        response = await call_next(request)
        return response
    except Exception:
        failed = True
        raise
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        status_code = response.status_code if response else 500
        decision = _level_and_prefix(request.url.path, status_code, latency_ms, failed)
        if decision is not None:
            level, prefix = decision
            logger.log(
                level,
                "%s%s %s - %d - %.2fms",
                prefix,
                request.method,
                request.url.path,
                status_code,
                latency_ms,
            )
