# storefront/api/routers/payments.py
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from storefront.api.deps import Caller, get_caller, require_role
from storefront.data.database import get_db
from storefront.domain.errors import PaymentDeclined, PaymentProviderError
from storefront.domain.schemas import (
    ConfirmPaymentIn,
    LinkPaymentIn,
    OrderIntentIn,
    OrderIntentOut,
    PaymentListOut,
    PaymentOut,
    RefundIn,
    RefundOut,
    TempIntentIn,
    TempIntentOut,
    WebhookEvent,
)
from storefront.domain.statuses import Role
from storefront.services.order_service import OrderService
from storefront.services.payment_provider import PaymentProvider, get_payment_provider
from storefront.services.payment_service import PaymentService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def get_service(
    db: Session = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
) -> PaymentService:
    return PaymentService(db, provider, OrderService(db))


@router.post("/webhook")
async def handle_webhook(
    request: Request,
    x_provider_signature: Optional[str] = Header(None),
    provider: PaymentProvider = Depends(get_payment_provider),
    svc: PaymentService = Depends(get_service),
):
    """
    Provider events. No user identity; authenticated by signature.
    """
    payload = await request.body()
    if not provider.verify_webhook_signature(payload, x_provider_signature or ""):
        logger.error("Webhook signature verification failed")
        raise HTTPException(status_code=400, detail="Webhook signature verification failed")

    try:
        event = WebhookEvent.model_validate_json(payload)
    except PydanticValidationError as e:
        raise HTTPException(status_code=400, detail=f"Malformed event: {e.error_count()} error(s)")

    try:
        result = svc.handle_webhook_event(event)
    except ValueError as e:
        # acknowledged so the provider stops redelivering an event that can never apply
        logger.error(f"Webhook {event.id} ({event.type}) rejected: {e}")
        return {"received": True, "handled": False, "action": "rejected"}
    return {"received": True, **result}


@router.post("/intents", response_model=TempIntentOut, status_code=201)
def create_temp_intent(
    payload: TempIntentIn,
    caller: Caller = Depends(get_caller),
    svc: PaymentService = Depends(get_service),
):
    require_role(caller, Role.BUYER)
    try:
        return svc.create_temp_intent(
            caller.user_id,
            payload.amount,
            payload.currency,
            [i.model_dump() for i in payload.items],
        )
    except PaymentProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/intent", response_model=OrderIntentOut, status_code=201)
def create_order_intent(
    payload: OrderIntentIn,
    caller: Caller = Depends(get_caller),
    svc: PaymentService = Depends(get_service),
):
    """
    Intent for an existing, still unpaid order.
    """
    require_role(caller, Role.BUYER)
    try:
        return svc.create_order_intent(payload.order_id, caller.user_id, payload.currency)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/confirm", response_model=PaymentOut)
def confirm_payment(
    payload: ConfirmPaymentIn,
    caller: Caller = Depends(get_caller),
    svc: PaymentService = Depends(get_service),
):
    require_role(caller, Role.BUYER)
    try:
        return svc.confirm_payment(
            payload.provider_intent_id,
            payload.order_id,
            caller.user_id,
            payload.payment_details,
        )
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentDeclined as e:
        raise HTTPException(
            status_code=402,
            detail={"message": str(e), "reason": e.reason, "payment_reference": e.payment_reference},
        )
    except PaymentProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/history", response_model=PaymentListOut)
def get_payment_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    caller: Caller = Depends(get_caller),
    svc: PaymentService = Depends(get_service),
):
    require_role(caller, Role.BUYER)
    return svc.get_payment_history(caller.user_id, page, limit, status)


@router.post("/{payment_id}/link", response_model=PaymentOut)
def link_payment_to_order(
    payment_id: int,
    payload: LinkPaymentIn,
    caller: Caller = Depends(get_caller),
    svc: PaymentService = Depends(get_service),
):
    require_role(caller, Role.BUYER)
    try:
        return svc.link_payment_to_order(payment_id, payload.order_id, caller.user_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(
    payment_id: int,
    caller: Caller = Depends(get_caller),
    svc: PaymentService = Depends(get_service),
):
    try:
        return svc.get_payment(payment_id, caller.user_id, caller.role)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{payment_id}/refund", response_model=RefundOut, status_code=201)
def create_refund(
    payment_id: int,
    payload: RefundIn,
    caller: Caller = Depends(get_caller),
    svc: PaymentService = Depends(get_service),
):
    require_role(caller, Role.ADMIN)
    try:
        return svc.refund(payment_id, payload.amount, payload.reason)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))
