# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException

from storefront.api.deps import Caller, get_caller, get_cart_owner, guest_owner
from storefront.domain.schemas import CartOut, CartValidationOut, ItemIn, ItemUpdateIn, MergeIn
from storefront.services.cart_service import CartService
from storefront.services.cart_store import CartStore, get_cart_store
from storefront.services.product_client import ProductClient, get_product_client

router = APIRouter(prefix="/carts", tags=["carts"])


def get_service(
    store: CartStore = Depends(get_cart_store),
    product_client: ProductClient = Depends(get_product_client),
) -> CartService:
    return CartService(store=store, product_client=product_client)


@router.get("/", response_model=CartOut)
def get_cart(owner: str = Depends(get_cart_owner), svc: CartService = Depends(get_service)):
    return svc.get_cart(owner)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    owner: str = Depends(get_cart_owner),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.add_item(owner, payload.product_id, payload.quantity)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/items/{product_id}", response_model=CartOut)
def update_item(
    product_id: int,
    payload: ItemUpdateIn,
    owner: str = Depends(get_cart_owner),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.update_item(owner, product_id, payload.quantity)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/items/{product_id}", response_model=CartOut)
def remove_item(
    product_id: int,
    owner: str = Depends(get_cart_owner),
    svc: CartService = Depends(get_service),
):
    return svc.remove_item(owner, product_id)


@router.delete("/", response_model=CartOut)
def clear_cart(owner: str = Depends(get_cart_owner), svc: CartService = Depends(get_service)):
    return svc.clear(owner)


@router.post("/merge", response_model=CartOut)
def merge_cart(
    payload: MergeIn,
    caller: Caller = Depends(get_caller),
    svc: CartService = Depends(get_service),
):
    """
    Moves a guest cart into the caller's cart after login.
    """
    try:
        return svc.merge(guest_owner(payload.guest_id), str(caller.user_id))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/validate", response_model=CartValidationOut)
def validate_cart(owner: str = Depends(get_cart_owner), svc: CartService = Depends(get_service)):
    return svc.validate(owner)
