"""Side-effect bookkeeping row types."""

from datetime import datetime
from typing import Literal, TypedDict

EffectType = Literal["cash_receipt", "delivery"]
# abandoned: failed in a way retrying cannot fix; needs an operator
EffectStatus = Literal["running", "done", "failed", "abandoned"]


class EffectRecord(TypedDict):
    """One row per (order_id, effect_type); the pair is unique.

    ``claimed_at`` is the start of the current lease. A ``running`` row whose
    lease has expired belongs to a worker that died or was cancelled and may
    be claimed again.
    """

    order_id: str
    effect_type: EffectType
    status: EffectStatus
    attempts: int
    last_error: str | None
    claimed_at: datetime | None
    updated_at: datetime
