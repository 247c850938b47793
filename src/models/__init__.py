"""Database model type definitions."""

from src.models.gateway import (
    CheckoutInitiation,
    CheckoutRequest,
    GatewayAck,
    GatewayEvent,
    GatewayEventRecord,
    RawCallback,
)
from src.models.order import Order, OrderCreate, OrderStats, OrderUpdate
from src.models.side_effect import EffectRecord

__all__ = [
    "CheckoutInitiation",
    "CheckoutRequest",
    "EffectRecord",
    "GatewayAck",
    "GatewayEvent",
    "GatewayEventRecord",
    "Order",
    "OrderCreate",
    "OrderStats",
    "OrderUpdate",
    "RawCallback",
]
