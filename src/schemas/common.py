"""Shared response schemas: health probes and the error envelope."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Liveness probe body."""

    status: HealthStatus
    timestamp: datetime = Field(default_factory=_utcnow)
    version: str = "0.1.0"


class CheckResult(BaseModel):
    """Outcome of pinging one store."""

    name: str = Field(description="orders, events or effects")
    healthy: bool
    latency_ms: float | None = Field(default=None, description="Round trip of the ping")
    error: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness probe body; unhealthy when any store fails its ping."""

    status: HealthStatus
    backend: str = Field(description="Configured store backend (memory or supabase)")
    timestamp: datetime = Field(default_factory=_utcnow)
    checks: list[CheckResult] = Field(default_factory=list)


class ErrorDetail(BaseModel):
    loc: list[str] | None = Field(default=None, description="Path of the offending field")
    msg: str
    type: str


class ErrorResponse(BaseModel):
    """JSON envelope for every API error.

    Gateway acknowledgements follow each provider's own contract instead,
    apart from the 401 sent when authenticity fails.
    """

    error: str = Field(description="Machine-readable error code")
    message: str
    details: list[ErrorDetail] | None = None
    request_id: str | None = Field(default=None, description="Echo of X-Request-ID")
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_exception(
        cls,
        error_type: str,
        message: str,
        details: list[dict[str, Any]] | None = None,
        request_id: str | None = None,
    ) -> "ErrorResponse":
        """Build the envelope from an APIError's fields."""
        return cls(
            error=error_type,
            message=message,
            details=[
                ErrorDetail(loc=d.get("loc"), msg=d.get("msg", str(d)), type=d.get("type", "error"))
                for d in details
            ] if details else None,
            request_id=request_id,
        )
