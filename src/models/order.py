"""Order model type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict


PaymentStatus = Literal["pending", "completed", "failed"]
DeliveryStatus = Literal["pending", "delivered"]
ReceiptType = Literal["none", "personal", "business"]

TERMINAL_PAYMENT_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class Order(TypedDict):
    """Order table row representation.

    The orders table is keyed by ``id`` and carries a unique index on
    ``provider_ref`` so a gateway reference maps to at most one order.
    ``completed_at`` is set iff ``payment_status`` is ``completed``, and
    ``delivery_status`` can only be ``delivered`` for a completed payment.
    """

    id: str
    provider: str
    provider_ref: str
    user_id: str | None
    dataset_id: str
    display_name: str
    price: int
    buyer_contact: str
    payment_status: PaymentStatus
    delivery_status: DeliveryStatus
    delivery_url: str | None
    receipt_type: ReceiptType
    business_number: str | None
    created_at: datetime
    completed_at: datetime | None


class OrderCreate(TypedDict, total=False):
    """Data required to create a new order.

    Used both by checkout initiation (pending orders) and by the late
    creation path for callbacks that arrive for unregistered payments.
    """

    provider: str
    provider_ref: str
    user_id: str | None
    dataset_id: str
    display_name: str
    price: int
    buyer_contact: str
    payment_status: PaymentStatus
    receipt_type: ReceiptType
    business_number: str | None
    completed_at: datetime | None


class OrderUpdate(TypedDict, total=False):
    """Fields the ledger may change after creation."""

    payment_status: PaymentStatus
    delivery_status: DeliveryStatus
    delivery_url: str
    completed_at: datetime


class OrderStats(TypedDict):
    """Aggregate figures for the admin dashboard."""

    total_revenue: int
    total_orders: int
    completed_orders: int
