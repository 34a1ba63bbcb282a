# storefront/domain/statuses.py
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderPaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class RefundStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class CheckoutState(str, Enum):
    STARTED = "started"
    INTENT_CREATED = "intent_created"
    PAYMENT_CONFIRMED = "payment_confirmed"
    ORDER_CREATED = "order_created"
    STOCK_RESERVED = "stock_reserved"
    CART_CLEARED = "cart_cleared"
    LINKED = "linked"
