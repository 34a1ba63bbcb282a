# storefront/services/payment_provider.py
"""
Payment provider port.

The checkout core only talks to PaymentProvider. DemoPaymentProvider
simulates a provider in-process for development and tests, the same way
the hosted provider behaves in test mode: intents are created up front,
confirmation succeeds unless the card token is a decline token or the
adapter is configured to fail.
"""
import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from storefront.domain.errors import PaymentProviderError
from storefront.utils.settings import PAYMENT_WEBHOOK_SECRET

DECLINE_TOKENS = {"tok_chargeDeclined", "tok_insufficientFunds"}


@dataclass(frozen=True)
class PaymentIntent:
    intent_id: str
    client_secret: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class ConfirmationResult:
    status: str
    reference: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass(frozen=True)
class RefundResult:
    success: bool
    refund_id: Optional[str] = None
    status: Optional[str] = None
    failure_reason: Optional[str] = None


class PaymentProvider(ABC):
    @abstractmethod
    def create_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> PaymentIntent:
        """Reserve a provider-side handle for collecting ``amount``."""
        ...

    @abstractmethod
    def confirm(self, intent_id: str, payment_method_details: Dict[str, Any]) -> ConfirmationResult:
        """Attempt to collect the funds of an intent."""
        ...

    @abstractmethod
    def create_refund(self, intent_id: str, amount: Decimal, reason: Optional[str]) -> RefundResult:
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        ...


class DemoPaymentProvider(PaymentProvider):
    def __init__(self, webhook_secret: str = PAYMENT_WEBHOOK_SECRET) -> None:
        self.webhook_secret = webhook_secret
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.intent_error: Optional[str] = None
        self.calls: List[Dict[str, Any]] = []
        self._intents: Dict[str, PaymentIntent] = {}
        self._by_key: Dict[str, str] = {}

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Card declined",
        intent_error: Optional[str] = None,
    ) -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.intent_error = intent_error

    def create_intent(self, amount, currency, metadata, idempotency_key):
        self.calls.append({
            "method": "create_intent",
            "amount": amount,
            "currency": currency,
            "metadata": metadata,
            "idempotency_key": idempotency_key,
        })
        if self.intent_error:
            raise PaymentProviderError(self.intent_error)

        if idempotency_key in self._by_key:
            return self._intents[self._by_key[idempotency_key]]

        intent_id = f"pi_demo_{uuid4().hex[:16]}"
        intent = PaymentIntent(
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid4().hex[:8]}",
            amount=amount,
            currency=currency.lower(),
        )
        self._intents[intent_id] = intent
        self._by_key[idempotency_key] = intent_id
        return intent

    def confirm(self, intent_id, payment_method_details):
        self.calls.append({
            "method": "confirm",
            "intent_id": intent_id,
            "payment_method_details": payment_method_details,
        })
        if intent_id not in self._intents:
            raise PaymentProviderError(f"Unknown payment intent {intent_id}")

        token = (payment_method_details or {}).get("token")
        if not self.should_succeed or token in DECLINE_TOKENS:
            return ConfirmationResult(status="failed", failure_reason=self.failure_reason)
        return ConfirmationResult(status="succeeded", reference=f"ch_demo_{uuid4().hex[:12]}")

    def create_refund(self, intent_id, amount, reason):
        self.calls.append({
            "method": "create_refund",
            "intent_id": intent_id,
            "amount": amount,
            "reason": reason,
        })
        if not self.should_succeed:
            return RefundResult(success=False, status="failed", failure_reason=self.failure_reason)
        return RefundResult(success=True, refund_id=f"re_demo_{uuid4().hex[:12]}", status="succeeded")

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()

    def verify_webhook_signature(self, payload, signature):
        return hmac.compare_digest(self.sign(payload), signature or "")


_current_provider: PaymentProvider | None = None


def get_payment_provider() -> PaymentProvider:
    """Return the active provider. Defaults to the demo adapter."""
    global _current_provider
    if _current_provider is None:
        _current_provider = DemoPaymentProvider()
    return _current_provider


def set_payment_provider(provider: PaymentProvider) -> None:
    global _current_provider
    _current_provider = provider


def reset_payment_provider() -> None:
    global _current_provider
    _current_provider = None
