# storefront/api/routers/orders.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.api.deps import Caller, get_caller, require_role
from storefront.data.database import get_db
from storefront.domain.schemas import (
    OrderListOut,
    OrderOut,
    OrderStatusIn,
    PaymentStatusIn,
    StatusHistoryOut,
)
from storefront.domain.statuses import Role
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)


@router.get("/my", response_model=OrderListOut)
def get_my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    caller: Caller = Depends(get_caller),
    svc: OrderService = Depends(get_service),
):
    require_role(caller, Role.BUYER)
    return svc.list_buyer_orders(caller.user_id, page, limit, status)


@router.get("/seller", response_model=OrderListOut)
def get_seller_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    caller: Caller = Depends(get_caller),
    svc: OrderService = Depends(get_service),
):
    require_role(caller, Role.SELLER, Role.ADMIN)
    return svc.list_seller_orders(caller.user_id, page, limit, status)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    caller: Caller = Depends(get_caller),
    svc: OrderService = Depends(get_service),
):
    """
    Visible to the buying user, to sellers with an item in the order and to admins.
    """
    try:
        return svc.get_order(order_id, caller.user_id, caller.role)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{order_id}/history", response_model=List[StatusHistoryOut])
def get_order_history(
    order_id: int,
    caller: Caller = Depends(get_caller),
    svc: OrderService = Depends(get_service),
):
    try:
        return svc.get_status_history(order_id, caller.user_id, caller.role)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    payload: OrderStatusIn,
    caller: Caller = Depends(get_caller),
    svc: OrderService = Depends(get_service),
):
    require_role(caller, Role.SELLER, Role.ADMIN)
    try:
        return svc.update_status(order_id, payload.status, payload.notes)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/{order_id}/payment-status", response_model=OrderOut)
def update_payment_status(
    order_id: int,
    payload: PaymentStatusIn,
    svc: OrderService = Depends(get_service),
):
    """
    Internal: called by the payment side, no user identity.
    """
    try:
        return svc.update_payment_status(order_id, payload.payment_status, payload.payment_intent_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
