# storefront/services/payment_service.py
import json
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentTransactionModel, PaymentRefundModel
from storefront.domain.errors import (
    AccessDenied,
    InvalidState,
    InvalidStatus,
    PaymentDeclined,
    PaymentNotFound,
    PaymentProviderError,
    ValidationError,
)
from storefront.domain.pricing import to_money
from storefront.domain.schemas import WebhookEvent
from storefront.domain.statuses import OrderPaymentStatus, PaymentStatus, RefundStatus, Role
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.order_service import OrderService, paginate
from storefront.services.payment_provider import PaymentProvider
from storefront.utils.settings import DEFAULT_CURRENCY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PAYMENT_STATUSES = {s.value for s in PaymentStatus}


def generate_transaction_id() -> str:
    return f"TXN-{int(time.time() * 1000)}-{uuid4().hex[:9].upper()}"


class PaymentService:
    """
    Payment record store.

    A payment row is written before any order exists (order_id is NULL) and
    linked afterwards, so collecting money never depends on order
    persistence.
    """

    def __init__(self, db: Session, provider: PaymentProvider, order_service: OrderService | None = None):
        self.repo = PaymentRepo(db)
        self.provider = provider
        self.order_service = order_service

    #commands
    def create_pending(
        self,
        buyer_id: int,
        order_id: Optional[int],
        amount: Decimal,
        currency: str,
        payment_method: str,
        provider_intent_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payment = self.repo.create_payment(
            PaymentTransactionModel(
                transaction_id=generate_transaction_id(),
                order_id=order_id,
                buyer_id=buyer_id,
                amount=to_money(amount),
                currency=currency.upper(),
                payment_method=payment_method or "card",
                provider_intent_id=provider_intent_id,
                status=PaymentStatus.PENDING.value,
                details=metadata,
            )
        )
        logger.info(
            f"Payment {payment.id} ({payment.transaction_id}) pending for buyer {buyer_id}, "
            f"intent {provider_intent_id}, amount {payment.amount} {payment.currency}"
        )
        return self._as_dict(payment)

    def create_temp_intent(
        self,
        buyer_id: int,
        amount: Decimal,
        currency: Optional[str],
        items: List[Dict[str, int]],
    ) -> Dict[str, Any]:
        """Use Case: intent for a client-confirmed payment, before any order exists."""
        currency = (currency or DEFAULT_CURRENCY).upper()
        amount = to_money(amount)
        intent = self.provider.create_intent(
            amount=amount,
            currency=currency,
            metadata={"buyer_id": str(buyer_id), "items": json.dumps(items)},
            idempotency_key=f"temp-{buyer_id}-{uuid4().hex}",
        )
        payment = self.create_pending(buyer_id, None, amount, currency, "card", intent.intent_id)
        return {
            "payment_id": payment["id"],
            "transaction_id": payment["transaction_id"],
            "provider_intent_id": intent.intent_id,
            "client_secret": intent.client_secret,
        }

    def update_status(
        self, payment_id: int, status: str, metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if status not in PAYMENT_STATUSES:
            raise InvalidStatus(status)

        payment = self._require(payment_id)
        payment.status = status
        if metadata:
            payment.details = {**(payment.details or {}), **metadata}
        payment = self.repo.save_payment(payment)

        logger.info(f"Payment {payment_id} status updated to {status}")
        return self._as_dict(payment)

    def link_to_order(self, payment_id: int, order_id: int) -> Dict[str, Any]:
        payment = self._require(payment_id)
        payment.order_id = order_id
        payment = self.repo.save_payment(payment)

        logger.info(f"Payment {payment_id} linked to order {order_id}")
        return self._as_dict(payment)

    def link_payment_to_order(self, payment_id: int, order_id: int, user_id: int) -> Dict[str, Any]:
        """
        Use Case: client-driven link after the buyer confirmed the intent.

        Marks the payment succeeded and propagates a completed payment status
        to the order; the order update is best effort.
        """
        payment = self._require(payment_id)
        if payment.buyer_id != user_id:
            raise AccessDenied("Access denied to payment")

        self.link_to_order(payment_id, order_id)
        result = self.update_status(payment_id, PaymentStatus.SUCCEEDED.value, {"linked_order_id": order_id})
        self._notify_order(order_id, OrderPaymentStatus.COMPLETED.value, payment.provider_intent_id)
        return result

    def create_order_intent(self, order_id: int, user_id: int, currency: Optional[str] = None) -> Dict[str, Any]:
        """
        Use Case: new intent for an existing order, e.g. to retry a payment
        that never went through. Rejected once any payment of the order succeeded.
        """
        order = self.order_service.get_order(order_id, user_id, Role.BUYER.value)

        paid = [
            p for p in self.repo.list_by_order(order_id)
            if p.status in (PaymentStatus.SUCCEEDED.value, PaymentStatus.REFUNDED.value)
        ]
        if paid:
            raise InvalidState("Order already paid")

        currency = (currency or DEFAULT_CURRENCY).upper()
        intent = self.provider.create_intent(
            amount=order["total"],
            currency=currency,
            metadata={
                "order_id": str(order_id),
                "buyer_id": str(user_id),
                "order_number": order["order_number"],
            },
            idempotency_key=f"order-{order_id}-{uuid4().hex}",
        )
        payment = self.create_pending(
            user_id,
            order_id,
            order["total"],
            currency,
            order["payment_method"],
            intent.intent_id,
            {"order_number": order["order_number"]},
        )
        return {"payment": payment, "client_secret": intent.client_secret}

    def confirm_payment(
        self,
        provider_intent_id: str,
        order_id: int,
        user_id: int,
        payment_details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Use Case: confirm an order intent. A decline leaves the payment
        pending so the buyer can retry; a success is linked and propagated to
        the order (best effort).
        """
        payment = self.repo.get_by_provider_intent_id(provider_intent_id)
        if not payment:
            raise PaymentNotFound(provider_intent_id)
        if payment.buyer_id != user_id:
            raise AccessDenied("Access denied to payment")
        if payment.order_id is not None and payment.order_id != order_id:
            raise ValidationError(f"Payment {payment.id} belongs to another order")

        if payment.status == PaymentStatus.SUCCEEDED.value:
            return self._as_dict(payment)
        if payment.status != PaymentStatus.PENDING.value:
            raise InvalidState(f"Payment {payment.id} is {payment.status}")

        result = self.provider.confirm(provider_intent_id, payment_details or {})
        if not result.succeeded:
            logger.info(f"Payment {payment.id} declined: {result.failure_reason}")
            raise PaymentDeclined(payment.transaction_id, provider_intent_id, result.failure_reason)

        if payment.order_id is None:
            self.link_to_order(payment.id, order_id)
        confirmed = self.update_status(
            payment.id,
            PaymentStatus.SUCCEEDED.value,
            {"confirmation_reference": result.reference},
        )
        self._notify_order(order_id, OrderPaymentStatus.COMPLETED.value, provider_intent_id)
        return confirmed

    def record_refund(
        self,
        payment_id: int,
        amount: Decimal,
        reason: Optional[str],
        provider_refund_id: Optional[str],
        status: str = RefundStatus.SUCCEEDED.value,
    ) -> Dict[str, Any]:
        """
        Store a refund against a succeeded payment.

        Refunds accumulate; once succeeded refunds cover the payment amount
        the payment becomes refunded.
        """
        payment = self._require(payment_id)
        amount = self._check_refund(payment, amount)

        refund = self.repo.create_refund(
            PaymentRefundModel(
                payment=payment,
                amount=amount,
                reason=reason,
                provider_refund_id=provider_refund_id,
                status=status,
            )
        )
        logger.info(f"Refund {refund.id} of {amount} recorded for payment {payment_id}")

        if self.repo.refunded_total(payment_id) >= to_money(payment.amount):
            self.update_status(payment_id, PaymentStatus.REFUNDED.value)
            if payment.order_id:
                self._notify_order(payment.order_id, OrderPaymentStatus.REFUNDED.value, payment.provider_intent_id)

        return self._refund_as_dict(refund)

    def refund(self, payment_id: int, amount: Optional[Decimal] = None, reason: Optional[str] = None):
        """Use Case: operator refund through the provider. Defaults to the remaining amount."""
        payment = self._require(payment_id)
        if amount is None:
            amount = self._remaining(payment)
        # nothing reaches the provider unless the ledger can record it
        amount = self._check_refund(payment, amount)

        result = self.provider.create_refund(payment.provider_intent_id, amount, reason)
        if not result.success:
            raise PaymentProviderError(result.failure_reason or "Refund failed")

        return self.record_refund(payment_id, amount, reason, result.refund_id, RefundStatus.SUCCEEDED.value)

    def handle_webhook_event(self, event: WebhookEvent) -> Dict[str, Any]:
        """
        Apply a provider event. Redelivered events are no-ops, keyed by the
        provider intent id and, for refunds, the provider refund id.
        """
        payment = self.repo.get_by_provider_intent_id(event.data.intent_id)
        if not payment:
            logger.warning(f"Webhook {event.id}: payment not found for intent {event.data.intent_id}")
            return {"handled": False, "action": "unknown_intent"}

        if event.type == "payment_intent.succeeded":
            if payment.status in (PaymentStatus.SUCCEEDED.value, PaymentStatus.REFUNDED.value):
                return {"handled": True, "action": "duplicate"}
            self.update_status(payment.id, PaymentStatus.SUCCEEDED.value, {"webhook_event_id": event.id})
            if payment.order_id:
                self._notify_order(payment.order_id, OrderPaymentStatus.COMPLETED.value, payment.provider_intent_id)
            return {"handled": True, "action": "succeeded"}

        if event.type == "payment_intent.payment_failed":
            if payment.status != PaymentStatus.PENDING.value:
                logger.warning(f"Webhook {event.id}: ignoring failure for payment {payment.id} in status {payment.status}")
                return {"handled": True, "action": "ignored"}
            self.update_status(
                payment.id,
                PaymentStatus.FAILED.value,
                {"failure_message": event.data.failure_message, "webhook_event_id": event.id},
            )
            if payment.order_id:
                self._notify_order(payment.order_id, OrderPaymentStatus.FAILED.value, payment.provider_intent_id)
            return {"handled": True, "action": "failed"}

        if event.type == "charge.refunded":
            if event.data.refund_id and self.repo.get_refund_by_provider_id(event.data.refund_id):
                return {"handled": True, "action": "duplicate"}
            if payment.status != PaymentStatus.SUCCEEDED.value:
                logger.warning(f"Webhook {event.id}: refund for payment {payment.id} in status {payment.status}")
                return {"handled": True, "action": "ignored"}
            remaining = self._remaining(payment)
            if remaining <= 0:
                logger.warning(f"Webhook {event.id}: payment {payment.id} has nothing left to refund")
                return {"handled": True, "action": "ignored"}
            amount = remaining if event.data.amount is None else to_money(event.data.amount)
            if amount <= 0:
                logger.warning(f"Webhook {event.id}: non-positive refund amount {amount} for payment {payment.id}")
                return {"handled": True, "action": "ignored"}
            if amount > remaining:
                # the provider already moved the money; book what the ledger can hold
                logger.warning(
                    f"Webhook {event.id}: refund {amount} exceeds remaining {remaining} "
                    f"for payment {payment.id}, recorded as {remaining}"
                )
                amount = remaining
            self.record_refund(payment.id, amount, event.data.reason, event.data.refund_id)
            return {"handled": True, "action": "refunded"}

        logger.info(f"Webhook {event.id}: unhandled event type {event.type}")
        return {"handled": False, "action": "unhandled"}

    #query
    def get_payment(self, payment_id: int, user_id: int, role: str) -> Dict[str, Any]:
        payment = self._require(payment_id)
        if role == Role.BUYER.value and payment.buyer_id != user_id:
            raise AccessDenied("Access denied to payment")
        return self._as_dict(payment)

    def find_by_provider_intent_id(self, intent_id: str) -> Dict[str, Any] | None:
        payment = self.repo.get_by_provider_intent_id(intent_id)
        return self._as_dict(payment) if payment else None

    def get_payment_history(self, buyer_id: int, page: int = 1, limit: int = 20, status: Optional[str] = None):
        payments, total = self.repo.list_by_buyer(buyer_id, page, limit, status)
        return {
            "data": [self._as_dict(p) for p in payments],
            "pagination": paginate(total, page, limit),
        }

    def _require(self, payment_id: int) -> PaymentTransactionModel:
        payment = self.repo.get_payment(payment_id)
        if not payment:
            raise PaymentNotFound(payment_id)
        return payment

    def _remaining(self, payment: PaymentTransactionModel) -> Decimal:
        return to_money(payment.amount) - self.repo.refunded_total(payment.id)

    def _check_refund(self, payment: PaymentTransactionModel, amount) -> Decimal:
        if payment.status != PaymentStatus.SUCCEEDED.value:
            raise InvalidState(f"Only succeeded payments can be refunded (payment {payment.id} is {payment.status})")

        amount = to_money(amount)
        remaining = self._remaining(payment)
        if amount <= 0 or amount > remaining:
            raise ValidationError(f"Refund amount must be between 0.01 and {remaining}")
        return amount

    def _notify_order(self, order_id: int, payment_status: str, intent_id: str):
        if self.order_service is None:
            return
        try:
            self.order_service.update_payment_status(order_id, payment_status, intent_id)
        except Exception as e:
            logger.error(f"Failed to update payment status of order {order_id} to {payment_status}: {e}")

    @staticmethod
    def _refund_as_dict(refund: PaymentRefundModel) -> Dict[str, Any]:
        return {
            "id": refund.id,
            "payment_transaction_id": refund.payment_transaction_id,
            "amount": refund.amount,
            "reason": refund.reason,
            "provider_refund_id": refund.provider_refund_id,
            "status": refund.status,
            "created_at": refund.created_at,
        }

    @classmethod
    def _as_dict(cls, payment: PaymentTransactionModel) -> Dict[str, Any]:
        return {
            "id": payment.id,
            "transaction_id": payment.transaction_id,
            "order_id": payment.order_id,
            "buyer_id": payment.buyer_id,
            "amount": payment.amount,
            "currency": payment.currency,
            "payment_method": payment.payment_method,
            "provider_intent_id": payment.provider_intent_id,
            "status": payment.status,
            "metadata": payment.details,
            "refunds": [cls._refund_as_dict(r) for r in payment.refunds],
            "created_at": payment.created_at,
            "updated_at": payment.updated_at,
        }
