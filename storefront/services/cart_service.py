# storefront/services/cart_service.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List

from storefront.domain.errors import (
    InsufficientStock,
    ItemNotInCart,
    ProductNotFound,
    ProductUnavailable,
    ValidationError,
)
from storefront.domain.schemas import CartItem, ProductSnapshot
from storefront.domain.statuses import ProductStatus
from storefront.services.cart_store import CartStore
from storefront.services.product_client import ProductClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def _now():
    return datetime.now(timezone.utc)


class CartService:
    """
    Cart use cases on top of a CartStore.

    Every stock check re-reads the live catalog snapshot; the price cached
    on a line is only used to detect price changes at validation time.
    """

    def __init__(self, store: CartStore, product_client: ProductClient):
        self.store = store
        self.product_client = product_client

    #query
    def get_cart(self, owner: str) -> Dict[str, Any]:
        items = self.store.get_items(owner)
        return self._as_dict(owner, items)

    def get_items(self, owner: str) -> Dict[int, CartItem]:
        return self.store.get_items(owner)

    #commands
    def add_item(self, owner: str, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        product = self._require_product(product_id)
        if product.status != ProductStatus.ACTIVE.value:
            raise ProductUnavailable(product_id)

        existing = self.store.get_items(owner).get(product_id)
        new_quantity = quantity + (existing.quantity if existing else 0)

        if new_quantity > product.stock:
            raise InsufficientStock(product_id, product.stock)

        now = _now()
        # price, name and seller refreshed on every add
        self.store.put_item(
            owner,
            CartItem(
                product_id=product_id,
                quantity=new_quantity,
                price=product.price,
                name=product.name,
                seller_id=product.seller_id,
                added_at=existing.added_at if existing else now,
                updated_at=now,
            ),
        )
        logger.info(f"Cart {owner}: product {product_id} quantity set to {new_quantity}")
        return self.get_cart(owner)

    def update_item(self, owner: str, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            return self.remove_item(owner, product_id)

        product = self._require_product(product_id)
        if quantity > product.stock:
            raise InsufficientStock(product_id, product.stock)

        existing = self.store.get_items(owner).get(product_id)
        if not existing:
            raise ItemNotInCart(product_id)

        self.store.put_item(
            owner,
            existing.model_copy(update={"quantity": quantity, "updated_at": _now()}),
        )
        logger.info(f"Cart {owner}: product {product_id} updated to quantity {quantity}")
        return self.get_cart(owner)

    def remove_item(self, owner: str, product_id: int) -> Dict[str, Any]:
        self.store.delete_item(owner, product_id)
        logger.info(f"Cart {owner}: product {product_id} removed")
        return self.get_cart(owner)

    def discard(self, owner: str, product_id: int) -> None:
        self.store.delete_item(owner, product_id)

    def clear(self, owner: str) -> Dict[str, Any]:
        self.store.delete(owner)
        logger.info(f"Cart {owner} cleared")
        return self._as_dict(owner, {})

    def merge(self, guest_owner: str, user_owner: str) -> Dict[str, Any]:
        """
        Fold a guest cart into a user cart and drop the guest cart.

        Quantities are summed and capped at the current stock; the earlier
        added_at wins. A product gone from the catalog or out of stock is
        dropped from both carts.
        """
        if guest_owner == user_owner:
            raise ValidationError("Cannot merge a cart into itself")

        guest_items = self.store.get_items(guest_owner)
        if not guest_items:
            return self.get_cart(user_owner)

        user_items = self.store.get_items(user_owner)
        now = _now()

        for product_id, guest_item in guest_items.items():
            product = self.product_client.get_product(product_id)
            if product is None:
                logger.warning(f"Merge {guest_owner} -> {user_owner}: product {product_id} no longer exists")
                self.store.delete_item(user_owner, product_id)
                continue

            existing = user_items.get(product_id)
            if existing:
                summed = existing.quantity + guest_item.quantity
                added_at = min(existing.added_at, guest_item.added_at)
                base = existing
            else:
                summed = guest_item.quantity
                added_at = guest_item.added_at
                base = guest_item

            quantity = min(summed, product.stock)
            if quantity < 1:
                logger.warning(f"Merge {guest_owner} -> {user_owner}: product {product_id} out of stock")
                self.store.delete_item(user_owner, product_id)
                continue

            self.store.put_item(
                user_owner,
                base.model_copy(update={"quantity": quantity, "added_at": added_at, "updated_at": now}),
            )

        self.store.delete(guest_owner)
        logger.info(f"Cart {guest_owner} merged into {user_owner}")
        return self.get_cart(user_owner)

    def validate(self, owner: str, items: Dict[int, CartItem] | None = None) -> Dict[str, Any]:
        """
        Re-check every line against the live catalog. Never mutates the cart.

        Returns the public report plus the snapshots that were consulted,
        keyed by product id, for callers that price the cart.
        """
        if items is None:
            items = self.store.get_items(owner)
        errors: List[Dict[str, Any]] = []
        products: Dict[int, ProductSnapshot] = {}

        for product_id, item in items.items():
            product = self.product_client.get_product(product_id)

            if product is None:
                errors.append({
                    "product_id": product_id,
                    "code": "not_found",
                    "message": "Product no longer available",
                })
                continue

            products[product_id] = product

            if product.status != ProductStatus.ACTIVE.value:
                errors.append({
                    "product_id": product_id,
                    "code": "inactive",
                    "message": "Product is no longer active",
                })

            if item.quantity > product.stock:
                errors.append({
                    "product_id": product_id,
                    "code": "insufficient_stock",
                    "message": f"Only {product.stock} items in stock, but cart has {item.quantity}",
                    "current_stock": product.stock,
                })

            if product.price != item.price:
                errors.append({
                    "product_id": product_id,
                    "code": "price_changed",
                    "message": f"Price changed from {item.price} to {product.price}",
                    "new_price": product.price,
                })

        if errors:
            logger.info(f"Cart {owner} failed validation with {len(errors)} issue(s)")

        return {
            "valid": not errors,
            "errors": errors,
            "cart": self._as_dict(owner, items),
            "products": products,
        }

    def _require_product(self, product_id: int) -> ProductSnapshot:
        product = self.product_client.get_product(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    @staticmethod
    def _as_dict(owner: str, items: Dict[int, CartItem]) -> Dict[str, Any]:
        lines = sorted(items.values(), key=lambda i: (i.added_at, i.product_id))
        total = sum((i.price * i.quantity for i in lines), Decimal("0.00"))

        #plain dict, serialized by the router
        return {
            "owner": owner,
            "items": [
                {
                    "product_id": i.product_id,
                    "quantity": i.quantity,
                    "price": i.price,
                    "name": i.name,
                    "seller_id": i.seller_id,
                    "subtotal": i.price * i.quantity,
                    "added_at": i.added_at,
                    "updated_at": i.updated_at,
                }
                for i in lines
            ],
            "total": total,
            "item_count": sum(i.quantity for i in lines),
        }
