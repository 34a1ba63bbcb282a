# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, List, Literal, Optional
from decimal import Decimal
from datetime import datetime


# ---------------------------------------------------------------- catalog

class ProductSnapshot(BaseModel):
    """Read view of a catalog product. Always fetched live, never cached."""

    id: int
    name: str = ""
    price: Decimal
    stock: int
    status: str
    seller_id: Optional[int] = None


# ---------------------------------------------------------------- cart

class CartItem(BaseModel):
    """Stored cart line. Price, name and seller are cached at add time."""

    product_id: int
    quantity: int = Field(..., ge=1)
    price: Decimal
    name: str = ""
    seller_id: Optional[int] = None
    added_at: datetime
    updated_at: datetime


class ItemIn(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)


class ItemUpdateIn(BaseModel):
    # 0 removes the line
    quantity: int = Field(..., ge=0)


class MergeIn(BaseModel):
    guest_id: str = Field(..., min_length=1, max_length=100)


class CartItemOut(BaseModel):
    product_id: int
    quantity: int
    price: Decimal
    name: str
    seller_id: Optional[int] = None
    subtotal: Decimal
    added_at: datetime
    updated_at: datetime


class CartOut(BaseModel):
    owner: str
    items: List[CartItemOut]
    total: Decimal
    item_count: int


class CartIssue(BaseModel):
    product_id: int
    # not_found, inactive, insufficient_stock, price_changed
    code: str
    message: str
    current_stock: Optional[int] = None
    new_price: Optional[Decimal] = None


class CartValidationOut(BaseModel):
    valid: bool
    errors: List[CartIssue]
    cart: CartOut


# ---------------------------------------------------------------- checkout / orders

class ShippingAddress(BaseModel):
    line1: str = Field(..., min_length=1, max_length=255)
    line2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field("USA", min_length=1, max_length=100)


class CheckoutIn(BaseModel):
    shipping_address: ShippingAddress
    payment_method: Literal["card", "stripe"] = "card"
    payment_details: Dict[str, Any] = Field(default_factory=dict)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class CheckoutOut(BaseModel):
    order_id: int
    order_number: str
    total: Decimal
    payment_reference: str
    provider_intent_id: str
    state: str


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    seller_id: Optional[int] = None
    product_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    order_number: str
    buyer_id: int
    status: str
    payment_status: str
    payment_intent_id: Optional[str] = None
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    total: Decimal
    shipping_address: ShippingAddress
    payment_method: str
    items: List[OrderItemOut]
    created_at: datetime
    updated_at: datetime


class OrderStatusIn(BaseModel):
    status: str = Field(..., min_length=1, max_length=20)
    notes: Optional[str] = Field(None, max_length=1000)


class PaymentStatusIn(BaseModel):
    payment_status: str = Field(..., min_length=1, max_length=20)
    payment_intent_id: Optional[str] = None


class StatusHistoryOut(BaseModel):
    id: int
    old_status: Optional[str] = None
    new_status: str
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class OrderListOut(BaseModel):
    data: List[OrderOut]
    pagination: Pagination


# ---------------------------------------------------------------- payments

class RefundOut(BaseModel):
    id: int
    payment_transaction_id: int
    amount: Decimal
    reason: Optional[str] = None
    provider_refund_id: Optional[str] = None
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    id: int
    transaction_id: str
    order_id: Optional[int] = None
    buyer_id: int
    amount: Decimal
    currency: str
    payment_method: str
    provider_intent_id: str
    status: str
    metadata: Optional[Dict[str, Any]] = None
    refunds: List[RefundOut] = []
    created_at: datetime
    updated_at: datetime


class PaymentListOut(BaseModel):
    data: List[PaymentOut]
    pagination: Pagination


class TempIntentIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    items: List[ItemIn] = Field(..., min_length=1)


class TempIntentOut(BaseModel):
    payment_id: int
    transaction_id: str
    provider_intent_id: str
    client_secret: str


class LinkPaymentIn(BaseModel):
    order_id: int = Field(..., gt=0)


class RefundIn(BaseModel):
    # full remaining amount when omitted
    amount: Optional[Decimal] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=255)


class WebhookEventData(BaseModel):
    intent_id: str
    refund_id: Optional[str] = None
    amount: Optional[Decimal] = None
    reason: Optional[str] = None
    failure_message: Optional[str] = None


class WebhookEvent(BaseModel):
    id: str
    type: str
    data: WebhookEventData


class OrderIntentIn(BaseModel):
    order_id: int = Field(..., gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class OrderIntentOut(BaseModel):
    payment: PaymentOut
    client_secret: str


class ConfirmPaymentIn(BaseModel):
    provider_intent_id: str = Field(..., min_length=1)
    order_id: int = Field(..., gt=0)
    payment_details: Dict[str, Any] = Field(default_factory=dict)
