# storefront/services/checkout_service.py
"""
Checkout orchestration.

Cart -> payment intent -> payment confirmation -> order -> stock -> cart
clear -> payment link, as a sequential saga:

    IntentCreated -> PaymentConfirmed -> OrderCreated -> StockReserved
        -> CartCleared -> Linked

Everything before order creation aborts the checkout with no effect on
orders, stock or the cart. Order creation is the single commit point: if
it fails after the buyer was charged, PostPaymentInconsistency carries the
payment reference for manual reconciliation (no automatic refund). Steps
after the commit are best effort: each failure is logged and recorded on
the result, and none of them undoes the order.
"""
import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from storefront.domain.errors import (
    BestEffortFailure,
    CartInvalid,
    EmptyCart,
    InsufficientStock,
    PaymentDeclined,
    PaymentIntentFailed,
    PostPaymentInconsistency,
    ValidationError,
)
from storefront.domain.pricing import compute_totals
from storefront.domain.schemas import CartItem, ProductSnapshot, ShippingAddress
from storefront.domain.statuses import CheckoutState, OrderPaymentStatus, PaymentStatus
from storefront.services.cart_service import CartService
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService, generate_order_number
from storefront.services.payment_provider import PaymentProvider
from storefront.services.payment_service import PaymentService
from storefront.services.product_client import ProductClient
from storefront.utils.settings import DEFAULT_CURRENCY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CheckoutResult:
    order_id: int
    order_number: str
    total: Decimal
    payment_reference: str
    provider_intent_id: str
    state: CheckoutState
    failures: List[BestEffortFailure] = field(default_factory=list)


class _Saga:
    def __init__(self, buyer_id: int, order_number: str):
        self.buyer_id = buyer_id
        self.order_number = order_number
        self.state = CheckoutState.STARTED
        self.failures: List[BestEffortFailure] = []

    def advance(self, state: CheckoutState):
        logger.info(f"Checkout {self.order_number} (buyer {self.buyer_id}): {self.state.value} -> {state.value}")
        self.state = state

    def failed(self, step: str, target: Any, error: Exception):
        self.failures.append(BestEffortFailure(step=step, target=target, error=str(error)))
        logger.error(f"Checkout {self.order_number}: best-effort step '{step}' failed for {target}: {error}")


class CheckoutService:
    def __init__(
        self,
        cart_service: CartService,
        order_service: OrderService,
        payment_service: PaymentService,
        provider: PaymentProvider,
        product_client: ProductClient,
        notification_service: Optional[NotificationService] = None,
    ):
        self.cart_service = cart_service
        self.order_service = order_service
        self.payment_service = payment_service
        self.provider = provider
        self.product_client = product_client
        self.notification_service = notification_service

    def checkout(
        self,
        buyer_id: int,
        shipping_address: ShippingAddress | Dict[str, Any],
        payment_method: str = "card",
        payment_details: Optional[Dict[str, Any]] = None,
        currency: Optional[str] = None,
    ) -> CheckoutResult:
        shipping_address = self._check_input(buyer_id, shipping_address, currency)
        currency = (currency or DEFAULT_CURRENCY).upper()
        owner = str(buyer_id)

        # 1. cart must exist and still match the catalog
        items = self.cart_service.get_items(owner)
        if not items:
            raise EmptyCart(owner)

        validation = self.cart_service.validate(owner, items=items)
        if not validation["valid"]:
            raise CartInvalid(validation["errors"])

        lines = self._order_lines(items, validation["products"])

        # 2. totals from live prices
        totals = compute_totals((line["unit_price"], line["quantity"]) for line in lines)

        saga = _Saga(buyer_id, generate_order_number())

        # 3. intent before any order exists
        payment = self._create_intent(saga, buyer_id, lines, totals.total, currency, payment_method)
        saga.advance(CheckoutState.INTENT_CREATED)

        # 4. collect the money
        confirmation_reference = self._confirm(payment, payment_details or {})
        saga.advance(CheckoutState.PAYMENT_CONFIRMED)

        # 5. commit point
        try:
            order = self.order_service.create_order(
                buyer_id=buyer_id,
                items=lines,
                totals=totals,
                shipping_address=shipping_address,
                payment_method=payment_method,
                order_number=saga.order_number,
            )
        except Exception as e:
            logger.error(
                f"Checkout {saga.order_number}: payment {payment['transaction_id']} "
                f"(intent {payment['provider_intent_id']}) succeeded but order creation failed: {e}",
                exc_info=True,
            )
            raise PostPaymentInconsistency(
                payment_reference=payment["transaction_id"],
                provider_intent_id=payment["provider_intent_id"],
                amount=totals.total,
            ) from e
        saga.advance(CheckoutState.ORDER_CREATED)

        # 6..8 never undo the order
        self._decrement_stock(saga, lines)
        saga.advance(CheckoutState.STOCK_RESERVED)

        self._clear_cart(saga, owner, lines)
        saga.advance(CheckoutState.CART_CLEARED)

        self._link(saga, payment, order, confirmation_reference)
        saga.advance(CheckoutState.LINKED)

        self._notify(saga, buyer_id, order)

        if saga.failures:
            logger.warning(
                f"Checkout {saga.order_number} committed order {order['id']} "
                f"with {len(saga.failures)} best-effort failure(s)"
            )
        else:
            logger.info(f"Checkout {saga.order_number} completed: order {order['id']}, total {order['total']}")

        return CheckoutResult(
            order_id=order["id"],
            order_number=order["order_number"],
            total=order["total"],
            payment_reference=payment["transaction_id"],
            provider_intent_id=payment["provider_intent_id"],
            state=saga.state,
            failures=saga.failures,
        )

    @staticmethod
    def _check_input(buyer_id, shipping_address, currency) -> ShippingAddress:
        if not isinstance(buyer_id, int) or buyer_id <= 0:
            raise ValidationError("buyer_id must be a positive integer")
        if currency is not None and len(currency) != 3:
            raise ValidationError("currency must be a 3-letter code")
        if isinstance(shipping_address, ShippingAddress):
            return shipping_address
        try:
            return ShippingAddress.model_validate(shipping_address or {})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid shipping address: {e}") from e

    def _order_lines(self, items: Dict[int, CartItem], products: Dict[int, ProductSnapshot]) -> List[Dict[str, Any]]:
        lines = []
        for product_id, item in sorted(items.items()):
            product = products[product_id]
            lines.append({
                "product_id": product_id,
                "seller_id": self._resolve_seller_id(item, product),
                "product_name": product.name or item.name,
                "quantity": item.quantity,
                "unit_price": product.price,
            })
        return lines

    def _resolve_seller_id(self, item: CartItem, product: ProductSnapshot) -> Optional[int]:
        """A missing seller id never blocks a paid order."""
        if item.seller_id is not None:
            return item.seller_id
        if product.seller_id is not None:
            return product.seller_id
        try:
            fresh = self.product_client.get_product(item.product_id)
        except Exception as e:
            logger.warning(f"Could not fetch seller id for product {item.product_id}: {e}")
            return None
        if fresh is None or fresh.seller_id is None:
            logger.warning(f"No seller id for product {item.product_id}, order item stored without one")
            return None
        return fresh.seller_id

    def _create_intent(self, saga: _Saga, buyer_id, lines, total, currency, payment_method) -> Dict[str, Any]:
        metadata = {
            "buyer_id": str(buyer_id),
            "order_number": saga.order_number,
            "items": json.dumps([{"product_id": l["product_id"], "quantity": l["quantity"]} for l in lines]),
        }
        try:
            intent = self.provider.create_intent(
                amount=total,
                currency=currency,
                metadata=metadata,
                idempotency_key=saga.order_number,
            )
        except Exception as e:
            logger.error(f"Checkout {saga.order_number}: payment intent creation failed: {e}")
            raise PaymentIntentFailed(f"Could not create payment intent: {e}") from e

        try:
            return self.payment_service.create_pending(
                buyer_id=buyer_id,
                order_id=None,
                amount=total,
                currency=currency,
                payment_method=payment_method,
                provider_intent_id=intent.intent_id,
                metadata={"order_number": saga.order_number},
            )
        except Exception as e:
            logger.error(f"Checkout {saga.order_number}: could not record payment for intent {intent.intent_id}: {e}")
            raise PaymentIntentFailed(f"Could not record payment: {e}") from e

    def _confirm(self, payment: Dict[str, Any], payment_details: Dict[str, Any]) -> Optional[str]:
        """The pending payment record is kept on failure for audit and retry."""
        try:
            result = self.provider.confirm(payment["provider_intent_id"], payment_details)
        except Exception as e:
            logger.error(f"Payment {payment['transaction_id']}: confirmation call failed: {e}")
            raise PaymentDeclined(payment["transaction_id"], payment["provider_intent_id"], str(e)) from e

        if not result.succeeded:
            logger.info(f"Payment {payment['transaction_id']} declined: {result.failure_reason}")
            raise PaymentDeclined(payment["transaction_id"], payment["provider_intent_id"], result.failure_reason)
        return result.reference

    def _decrement_stock(self, saga: _Saga, lines: List[Dict[str, Any]]):
        # each line independently; no rollback of earlier decrements or of the order
        for line in lines:
            try:
                self.product_client.adjust_stock(line["product_id"], -line["quantity"])
            except InsufficientStock as e:
                logger.error(f"Checkout {saga.order_number}: oversold product {line['product_id']}, needs reconciliation")
                saga.failed("stock", line["product_id"], e)
            except Exception as e:
                saga.failed("stock", line["product_id"], e)

    def _clear_cart(self, saga: _Saga, owner: str, lines: List[Dict[str, Any]]):
        for line in lines:
            try:
                self.cart_service.discard(owner, line["product_id"])
            except Exception as e:
                saga.failed("cart", line["product_id"], e)

    def _link(self, saga: _Saga, payment: Dict[str, Any], order: Dict[str, Any], reference: Optional[str]):
        try:
            self.payment_service.link_to_order(payment["id"], order["id"])
        except Exception as e:
            saga.failed("link_payment", payment["id"], e)

        try:
            self.payment_service.update_status(
                payment["id"],
                PaymentStatus.SUCCEEDED.value,
                {"order_id": order["id"], "confirmation_reference": reference},
            )
        except Exception as e:
            saga.failed("payment_status", payment["id"], e)

        try:
            self.order_service.update_payment_status(
                order["id"], OrderPaymentStatus.COMPLETED.value, payment["provider_intent_id"]
            )
        except Exception as e:
            saga.failed("order_payment_status", order["id"], e)

    def _notify(self, saga: _Saga, buyer_id: int, order: Dict[str, Any]):
        if self.notification_service is None:
            return
        try:
            self.notification_service.send_order_notification(buyer_id, order["id"], order["order_number"])
        except Exception as e:
            saga.failed("notify", order["id"], e)
