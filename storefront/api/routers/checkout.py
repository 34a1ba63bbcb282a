# storefront/api/routers/checkout.py
from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from storefront.api.deps import Caller, get_caller, require_role
from storefront.data.database import get_db
from storefront.domain.errors import (
    CartInvalid,
    EmptyCart,
    PaymentDeclined,
    PaymentIntentFailed,
    PostPaymentInconsistency,
)
from storefront.domain.schemas import CheckoutIn, CheckoutOut
from storefront.domain.statuses import Role
from storefront.services.cart_service import CartService
from storefront.services.cart_store import CartStore, get_cart_store
from storefront.services.checkout_service import CheckoutService
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService
from storefront.services.payment_provider import PaymentProvider, get_payment_provider
from storefront.services.payment_service import PaymentService
from storefront.services.product_client import ProductClient, get_product_client

router = APIRouter(prefix="/checkout", tags=["checkout"])


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_service(
    db: Session = Depends(get_db),
    store: CartStore = Depends(get_cart_store),
    product_client: ProductClient = Depends(get_product_client),
    provider: PaymentProvider = Depends(get_payment_provider),
    notification_service: NotificationService = Depends(get_notification_service),
) -> CheckoutService:
    order_service = OrderService(db)
    return CheckoutService(
        cart_service=CartService(store=store, product_client=product_client),
        order_service=order_service,
        payment_service=PaymentService(db, provider, order_service),
        provider=provider,
        product_client=product_client,
        notification_service=notification_service,
    )


@router.post("/", response_model=CheckoutOut, status_code=201)
def checkout(
    payload: CheckoutIn,
    caller: Caller = Depends(get_caller),
    svc: CheckoutService = Depends(get_service),
):
    """
    Creates an order from the caller's cart: pays first, then commits the order.
    """
    require_role(caller, Role.BUYER)
    try:
        result = svc.checkout(
            buyer_id=caller.user_id,
            shipping_address=payload.shipping_address,
            payment_method=payload.payment_method,
            payment_details=payload.payment_details,
            currency=payload.currency,
        )
    except EmptyCart as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "errors": []})
    except CartInvalid as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "errors": jsonable_encoder(e.errors)})
    except PaymentIntentFailed as e:
        raise HTTPException(status_code=502, detail={"message": str(e)})
    except PaymentDeclined as e:
        raise HTTPException(
            status_code=402,
            detail={
                "message": str(e),
                "reason": e.reason,
                "payment_reference": e.payment_reference,
                "provider_intent_id": e.provider_intent_id,
            },
        )
    except PostPaymentInconsistency as e:
        raise HTTPException(
            status_code=500,
            detail={
                "message": str(e),
                "payment_reference": e.payment_reference,
                "provider_intent_id": e.provider_intent_id,
                "amount": str(e.amount),
            },
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "errors": []})

    return {
        "order_id": result.order_id,
        "order_number": result.order_number,
        "total": result.total,
        "payment_reference": result.payment_reference,
        "provider_intent_id": result.provider_intent_id,
        "state": result.state.value,
    }


