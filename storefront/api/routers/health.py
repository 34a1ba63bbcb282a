# storefront/api/routers/health.py
from fastapi import APIRouter, Depends

from storefront.services.cart_store import CartStore, get_cart_store

router = APIRouter(tags=["health"])


@router.get("/health")
def health(store: CartStore = Depends(get_cart_store)):
    return {"status": "ok", "cart_backend": store.backend}
