"""Unit tests for the side-effect retry worker."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.services.retry_worker import SideEffectRetryWorker


@pytest.mark.asyncio
async def test_worker_retries_until_stopped() -> None:
    service = MagicMock()
    service.retry_side_effects = AsyncMock(return_value=0)
    worker = SideEffectRetryWorker(service, interval_seconds=0.01)

    await worker.start()
    await asyncio.sleep(0.05)
    await worker.stop()

    assert service.retry_side_effects.await_count >= 1
    assert worker._task is None


@pytest.mark.asyncio
async def test_worker_survives_failed_pass() -> None:
    service = MagicMock()
    service.retry_side_effects = AsyncMock(side_effect=[RuntimeError("store down")] + [0] * 100)
    worker = SideEffectRetryWorker(service, interval_seconds=0.01)

    await worker.start()
    await asyncio.sleep(0.05)
    await worker.stop()

    assert service.retry_side_effects.await_count >= 2
