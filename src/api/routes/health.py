"""Health check endpoints for monitoring and deployment verification."""

import time

from fastapi import APIRouter, Response, status

from src.api.deps import StoreSet
from src.schemas.common import CheckResult, HealthResponse, HealthStatus, ReadinessResponse

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Basic health check to verify the service is running. Used for liveness probes.",
)
async def health_check() -> HealthResponse:
    """Return basic health status.

    This endpoint should always return 200 if the service is running.
    It does not check the stores.

    Returns:
        HealthResponse: Current health status with timestamp.
    """
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "All stores reachable"},
        503: {"description": "One or more stores unreachable"},
    },
    summary="Readiness check",
    description="Check that the order, event and effect stores answer. Used for readiness probes.",
)
async def readiness_check(response: Response, stores: StoreSet) -> ReadinessResponse:
    """Ping each store and report latency.

    Returns 503 if any store is unhealthy.

    Args:
        response: FastAPI response object for setting status code.
        stores: Configured stores.

    Returns:
        ReadinessResponse: Status of all store checks.
    """
    checks: list[CheckResult] = []

    for name, store in (("orders", stores.orders), ("events", stores.events), ("effects", stores.effects)):
        start_time = time.perf_counter()
        error = None
        try:
            await store.ping()
        except Exception as e:
            error = str(e)
        latency_ms = (time.perf_counter() - start_time) * 1000

        checks.append(
            CheckResult(
                name=name,
                healthy=error is None,
                latency_ms=round(latency_ms, 2),
                error=error,
            )
        )

    all_healthy = all(check.healthy for check in checks)
    overall_status = HealthStatus.HEALTHY if all_healthy else HealthStatus.UNHEALTHY

    if not all_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(status=overall_status, backend=stores.backend, checks=checks)
