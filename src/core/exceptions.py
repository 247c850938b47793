"""Reconciliation error taxonomy that never maps directly to an HTTP status.

These errors are raised after a callback has been authenticated, or inside
background work, and are absorbed by the orchestrator so providers are not
driven into retry storms. Errors that are reported to callers live in
``src.api.middleware.error_handler``.
"""

from typing import Any


class ReconciliationError(Exception):
    """Base class for reconciliation engine errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ParseError(ReconciliationError):
    """A callback body could not be decoded into a gateway event."""


class TransitionConflict(ReconciliationError):
    """A terminal payment state was contradicted by a later outcome."""

    def __init__(self, order_id: str, current: str, requested: str) -> None:
        self.order_id = order_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Order {order_id} is already {current}; refusing transition to {requested}"
        )


class SideEffectFailure(ReconciliationError):
    """A receipt or delivery action failed and should be retried later."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)


class GatewayTimeoutError(ReconciliationError):
    """An outbound gateway call timed out; the outcome is unknown, not failed."""


class GatewayUnreachableError(GatewayTimeoutError):
    """An outbound gateway call failed in transport after its retries; retry later."""


class DuplicateOrderError(ReconciliationError):
    """An order already exists for the provider reference."""

    def __init__(self, provider_ref: str, existing: dict[str, Any] | None = None) -> None:
        self.provider_ref = provider_ref
        self.existing = existing
        super().__init__(f"Order already exists for provider reference {provider_ref}")
