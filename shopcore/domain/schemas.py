# shopcore/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field

from shopcore.domain.state import OrderStatus


class ItemIn(BaseModel):
    """Schema for adding a product to the cart."""

    product_id: int = Field(..., gt=0, description="Product ID (must be > 0)")
    quantity: int = Field(..., gt=0, description="Quantity (must be > 0)")


class ItemQuantityIn(BaseModel):
    """Schema for changing the quantity of a cart line."""

    quantity: int = Field(..., gt=0, description="New quantity (must be > 0)")


class CartItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: Decimal


class CartOut(BaseModel):
    """Schema for the cart (response)."""

    cart_id: int | None
    user_id: int
    status: str
    items: List[CartItemOut]
    total_amount: Decimal
    version: int | None = None

    model_config = ConfigDict(from_attributes=True)


class ShippingAddress(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str | None = None


class OrderLineIn(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)


class OrderCreate(BaseModel):
    """Schema for creating an order from an explicit list of items.

    Prices are never taken from the client.
    """

    items: List[OrderLineIn] = Field(..., min_length=1)
    shipping_address: ShippingAddress


class OrderFromCartIn(BaseModel):
    """Schema for converting the active cart into an order."""

    shipping_address: ShippingAddress


class OrderStatusIn(BaseModel):
    status: OrderStatus


class OrderPaymentStatusIn(BaseModel):
    payment_status: Literal["pending", "paid", "failed"]


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: Decimal


class OrderOut(BaseModel):
    """Schema for an order (response)."""

    id: int
    user_id: int
    cart_id: int | None = None
    status: str
    payment_status: str
    total_amount: Decimal
    shipping_address: dict
    items: List[OrderItemOut]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class GatewayMetadata(BaseModel):
    """What the core remembers about the gateway's view of a payment."""

    version: int = 1
    raw_gateway_payload: dict = Field(default_factory=dict)
    last_event_type: str | None = None
    last_event_timestamp: datetime | None = None
    refund_reason: str | None = None


class WebhookEventType(str, Enum):
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    CHARGE_REFUNDED = "charge_refunded"
    OTHER = "other"


class WebhookEvent(BaseModel):
    """A gateway callback, normalized from the gateway's own event shape."""

    type: WebhookEventType
    intent_id: str | None = None
    payload: dict = Field(default_factory=dict)
    event_id: str | None = None
    occurred_at: datetime | None = None
    error_message: str | None = None
    refund_id: str | None = None


class RefundIn(BaseModel):
    """Optional body of a refund request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    reason: str | None = Field(default=None, min_length=1, max_length=500)


class PaymentIntentOut(BaseModel):
    payment_id: int
    payment_intent_id: str
    client_secret: str | None
    amount: Decimal
    currency: str


class PaymentOrderOut(BaseModel):
    id: int
    status: str
    payment_status: str
    total_amount: Decimal


class PaymentOut(BaseModel):
    """Schema for a payment (response)."""

    id: int
    order_id: int
    user_id: int
    amount: Decimal
    currency: str
    status: str
    payment_method: str
    payment_intent_id: str | None = None
    refund_id: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any]
    order: PaymentOrderOut | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class WebhookAck(BaseModel):
    received: bool = True
    queued: bool = False
    applied: bool = False
