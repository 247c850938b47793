"""Side-Effect Dispatcher: runs each (order, effect) action at most once.

Idempotency here is keyed by order and effect type, independent of the
gateway event that triggered it. A failed action releases its claim so a
later event or the background retry can run it again; a finished or
in-flight action is never started twice. An action whose worker vanished
without recording anything is picked up again once its claim lease expires.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from src.core.exceptions import SideEffectFailure
from src.models.side_effect import EffectRecord
from src.stores.base import EffectStore

logger = logging.getLogger(__name__)


@dataclass
class EffectResult:
    """What happened on one run_once call."""

    ran: bool
    succeeded: bool = False
    error: str | None = None


class SideEffectDispatcher:
    """Claims effects in an EffectStore before running them."""

    def __init__(self, store: EffectStore) -> None:
        self.store = store

    async def run_once(
        self,
        order_id: str,
        effect_type: str,
        action: Callable[[], Awaitable[None]],
    ) -> EffectResult:
        """Run ``action`` if this caller wins the claim for the effect.

        Failures are recorded and logged, never raised: the payment they
        follow is already settled and must still be acknowledged. A
        cancelled action is recorded as failed before the cancellation
        propagates.

        Args:
            order_id: Order the effect belongs to.
            effect_type: ``cash_receipt`` or ``delivery``.
            action: Coroutine factory performing the effect.

        Returns:
            EffectResult: ``ran=False`` when another caller owns the effect.
        """
        if not await self.store.claim(order_id, effect_type):
            logger.info("Effect %s for order %s already done or in progress", effect_type, order_id)
            return EffectResult(ran=False)

        try:
            await action()
        except Exception as e:
            error_msg = f"{type(e).__name__}: {str(e)}"
            retryable = not isinstance(e, SideEffectFailure) or e.retryable
            if retryable:
                logger.error("Effect %s for order %s failed, will retry: %s", effect_type, order_id, error_msg)
            else:
                logger.error(
                    "Effect %s for order %s failed and needs manual handling: %s",
                    effect_type,
                    order_id,
                    error_msg,
                )
            await self._record_failure(order_id, effect_type, error_msg, retryable)
            return EffectResult(ran=True, succeeded=False, error=error_msg)
        except BaseException as e:
            logger.warning("Effect %s for order %s interrupted by %s", effect_type, order_id, type(e).__name__)
            await self._record_failure(order_id, effect_type, f"{type(e).__name__}: interrupted", True)
            raise

        await self.store.complete(order_id, effect_type)
        logger.info("Effect %s for order %s done", effect_type, order_id)
        return EffectResult(ran=True, succeeded=True)

    async def _record_failure(self, order_id: str, effect_type: str, error: str, retryable: bool) -> None:
        try:
            await self.store.fail(order_id, effect_type, error, retryable=retryable)
        except Exception:
            # The claim stays running; its lease expiry hands it to the retry worker
            logger.exception("Could not record failure of effect %s for order %s", effect_type, order_id)

    async def retryable_effects(self) -> list[EffectRecord]:
        """Failed effects and claims whose lease has expired."""
        return await self.store.list_retryable()
