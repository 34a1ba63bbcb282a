# storefront/domain/errors.py
"""
Error taxonomy for the checkout core.

Exceptions subclass the built-ins the routers already translate
(ValueError -> 400, PermissionError -> 403, LookupError -> 404), so
callers that only know the built-ins keep working.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional


class ValidationError(ValueError):
    """Bad input shape, rejected before any side effect."""


class EmptyCart(ValidationError):
    def __init__(self, owner: str):
        super().__init__("Cart is empty")
        self.owner = owner


class ProductNotFound(LookupError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class ProductUnavailable(ValueError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} is not available")
        self.product_id = product_id


class InsufficientStock(ValueError):
    def __init__(self, product_id: int, available: Optional[int] = None):
        if available is None:
            msg = f"Not enough stock for product {product_id}"
        else:
            msg = f"Only {available} items of product {product_id} available in stock"
        super().__init__(msg)
        self.product_id = product_id
        self.available = available


class ItemNotInCart(LookupError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} is not in cart")
        self.product_id = product_id


class CartInvalid(ValueError):
    """Cart lines went stale against the catalog. Nothing was mutated."""

    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__("Cart validation failed")
        self.errors = errors


class PaymentProviderError(RuntimeError):
    """Raised by payment provider adapters."""


class PaymentIntentFailed(RuntimeError):
    pass


class PaymentDeclined(RuntimeError):
    def __init__(self, payment_reference: str, provider_intent_id: str, reason: Optional[str]):
        super().__init__(f"Payment declined: {reason or 'unknown reason'}")
        self.payment_reference = payment_reference
        self.provider_intent_id = provider_intent_id
        self.reason = reason


class PostPaymentInconsistency(RuntimeError):
    """The provider charged the buyer but no order could be persisted."""

    def __init__(self, payment_reference: str, provider_intent_id: str, amount: Decimal):
        super().__init__(
            f"Payment {payment_reference} succeeded but the order could not be created"
        )
        self.payment_reference = payment_reference
        self.provider_intent_id = provider_intent_id
        self.amount = amount


@dataclass(frozen=True)
class BestEffortFailure:
    """A post-commit step that failed; logged and reported, never raised."""

    step: str
    target: Any
    error: str


class OrderNotFound(LookupError):
    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class PaymentNotFound(LookupError):
    def __init__(self, payment_id):
        super().__init__(f"Payment {payment_id} not found")
        self.payment_id = payment_id


class InvalidStatus(ValueError):
    def __init__(self, status: str):
        super().__init__(f"Invalid status: {status}")
        self.status = status


class InvalidState(ValueError):
    pass


class AccessDenied(PermissionError):
    def __init__(self, message: str = "Access denied"):
        super().__init__(message)
