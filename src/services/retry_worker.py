"""Background loop that retries failed receipts and deliveries."""

import asyncio
import logging

from src.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


class SideEffectRetryWorker:
    """Periodically calls ReconciliationService.retry_side_effects."""

    def __init__(self, service: ReconciliationService, interval_seconds: float = 300) -> None:
        self.service = service
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the background task."""
        if self._task is None:
            self._task = asyncio.create_task(self._loop())
            logger.info("Side-effect retry worker started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        """Stop the background task."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Side-effect retry worker stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.service.retry_side_effects()
            except Exception as e:
                logger.error("Side-effect retry pass failed: %s", str(e))
