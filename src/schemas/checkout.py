"""Checkout and order Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.models.order import DeliveryStatus, PaymentStatus

ReceiptTypeField = Literal["none", "personal", "business"]

PHONE_REGEX = r"^01[0-9]-?[0-9]{3,4}-?[0-9]{4}$"


class CheckoutCreate(BaseModel):
    """Schema for starting a checkout via POST /checkout/{provider_id}."""

    dataset_id: str = Field(min_length=1, max_length=200, description="Dataset being purchased")
    display_name: str = Field(min_length=1, max_length=200, description="Product name shown to the buyer")
    price: int = Field(gt=0, description="Price in KRW")
    buyer_phone: str = Field(pattern=PHONE_REGEX, description="Buyer mobile number (01X-XXXX-XXXX)")
    receipt_type: ReceiptTypeField = Field(default="none", description="Cash receipt requested by the buyer")
    business_number: str | None = Field(
        default=None, max_length=20, description="Business registration number for business receipts"
    )
    success_url: str | None = Field(default=None, description="Redirect after a successful hosted checkout")
    cancel_url: str | None = Field(default=None, description="Redirect after a cancelled hosted checkout")

    @model_validator(mode="after")
    def require_business_number(self) -> "CheckoutCreate":
        """Business receipts need a business number."""
        if self.receipt_type == "business" and not (self.business_number or "").strip():
            raise ValueError("business_number is required when receipt_type is business")
        return self


class CheckoutResponse(BaseModel):
    """Schema for checkout creation response."""

    order_id: str = Field(description="Order identifier")
    provider: str = Field(description="Payment provider")
    provider_ref: str = Field(description="Provider's reference for the payment")
    pay_url: str | None = Field(default=None, description="URL to send the buyer to")


class OrderResponse(BaseModel):
    """Read-only projection of an order."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Order unique identifier")
    provider: str = Field(description="Payment provider")
    provider_ref: str = Field(description="Provider's reference for the payment")
    user_id: str | None = Field(default=None, description="Buyer account, when known")
    dataset_id: str = Field(description="Purchased dataset")
    display_name: str = Field(description="Product name")
    price: int = Field(description="Price in KRW")
    payment_status: PaymentStatus = Field(description="Payment status")
    delivery_status: DeliveryStatus = Field(description="Delivery status")
    delivery_url: str | None = Field(default=None, description="Download link once delivered")
    receipt_type: ReceiptTypeField = Field(default="none", description="Requested cash receipt")
    created_at: datetime = Field(description="Creation timestamp")
    completed_at: datetime | None = Field(default=None, description="Payment completion timestamp")


class AdminOrderResponse(OrderResponse):
    """Order projection with buyer details, for admins."""

    buyer_contact: str = Field(default="", description="Buyer phone or email")
    business_number: str | None = Field(default=None, description="Business registration number")


class OrderListResponse(BaseModel):
    """Schema for order list API responses."""

    items: list[OrderResponse] = Field(description="List of orders")


class AdminOrderListResponse(BaseModel):
    """Schema for the admin order list."""

    items: list[AdminOrderResponse] = Field(description="List of orders")


class OrderStatsResponse(BaseModel):
    """Revenue and order counts."""

    total_revenue: int = Field(description="Sum of completed order prices")
    total_orders: int = Field(description="All orders")
    completed_orders: int = Field(description="Orders with completed payment")


class CashReceiptCreate(BaseModel):
    """Schema for manual cash receipt issuance via POST /admin/receipts."""

    id_info: str = Field(min_length=1, max_length=20, description="Phone number or business number")
    price: int = Field(gt=0, description="Amount to declare")
    receipt_type: Literal["personal", "business"] = Field(description="Receipt type")
    good_name: str = Field(min_length=1, max_length=100, description="Product name on the receipt")
    buyer_phone: str = Field(pattern=PHONE_REGEX, description="Buyer mobile number")


class CashReceiptResponse(BaseModel):
    """Result of a manual cash receipt issuance."""

    issued: bool = Field(description="Whether PayApp accepted the receipt")
    receipt_type: Literal["personal", "business"] = Field(description="Receipt type")
    price: int = Field(description="Declared amount")
