# storefront/services/order_service.py
import math
import time
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.domain.errors import AccessDenied, InvalidStatus, OrderNotFound
from storefront.domain.pricing import Totals, to_money
from storefront.domain.schemas import ShippingAddress
from storefront.domain.statuses import OrderPaymentStatus, OrderStatus, Role
from storefront.repos.order_repo import OrderRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_STATUSES = {s.value for s in OrderStatus}
ORDER_PAYMENT_STATUSES = {s.value for s in OrderPaymentStatus}


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{uuid4().hex[:9].upper()}"


def paginate(total: int, page: int, limit: int) -> Dict[str, int]:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


class OrderService:
    """
    Order store: creation, visibility and the status state machine.

    Transitions are permissive on purpose: any known status may follow any
    other (delivered -> processing is accepted). Only unknown values are
    rejected.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepo(db)

    def create_order(
        self,
        buyer_id: int,
        items: List[Dict[str, Any]],
        totals: Totals,
        shipping_address: ShippingAddress,
        payment_method: str = "card",
        order_number: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Use Case: persist an order with its item snapshots.

        items: dicts with product_id, seller_id, product_name, quantity,
        unit_price.
        """
        order = OrderModel(
            order_number=order_number or generate_order_number(),
            buyer_id=buyer_id,
            status=OrderStatus.PENDING.value,
            payment_status=OrderPaymentStatus.PENDING.value,
            subtotal=totals.subtotal,
            tax=totals.tax,
            shipping_cost=totals.shipping_cost,
            total=totals.total,
            shipping_address_line1=shipping_address.line1,
            shipping_address_line2=shipping_address.line2,
            shipping_city=shipping_address.city,
            shipping_state=shipping_address.state,
            shipping_postal_code=shipping_address.postal_code,
            shipping_country=shipping_address.country,
            payment_method=payment_method,
        )
        order_items = [
            OrderItemModel(
                product_id=i["product_id"],
                seller_id=i.get("seller_id"),
                product_name=i.get("product_name") or "",
                quantity=i["quantity"],
                unit_price=to_money(i["unit_price"]),
                subtotal=to_money(i["unit_price"] * i["quantity"]),
            )
            for i in items
        ]

        created = self.repo.create_order(order, order_items, notes="Order created")
        logger.info(f"Order {created.id} ({created.order_number}) created for buyer {buyer_id}, total {created.total}")
        return self._as_dict(created)

    #query
    def get_order(self, order_id: int, user_id: int, role: str) -> Dict[str, Any]:
        order = self._visible_order(order_id, user_id, role)
        return self._as_dict(order)

    def get_order_by_number(self, order_number: str) -> Dict[str, Any]:
        order = self.repo.get_by_order_number(order_number)
        if not order:
            raise OrderNotFound(order_number)
        return self._as_dict(order)

    def list_buyer_orders(self, buyer_id: int, page: int = 1, limit: int = 20, status: Optional[str] = None):
        orders, total = self.repo.list_by_buyer(buyer_id, page, limit, status)
        return {
            "data": [self._as_dict(o) for o in orders],
            "pagination": paginate(total, page, limit),
        }

    def list_seller_orders(self, seller_id: int, page: int = 1, limit: int = 20, status: Optional[str] = None):
        """Orders holding at least one of the seller's items, showing only those items."""
        orders, total = self.repo.list_by_seller(seller_id, page, limit, status)
        data = []
        for o in orders:
            entry = self._as_dict(o)
            entry["items"] = [i for i in entry["items"] if i["seller_id"] == seller_id]
            data.append(entry)
        return {"data": data, "pagination": paginate(total, page, limit)}

    def get_status_history(self, order_id: int, user_id: int, role: str):
        self._visible_order(order_id, user_id, role)
        return self.repo.get_status_history(order_id)

    #commands
    def update_status(self, order_id: int, status: str, notes: Optional[str] = None) -> Dict[str, Any]:
        if status not in ORDER_STATUSES:
            raise InvalidStatus(status)

        order = self.repo.update_order_status(order_id, status, notes)
        if not order:
            raise OrderNotFound(order_id)

        logger.info(f"Order {order_id} status updated to {status}")
        return self._as_dict(order)

    def update_payment_status(
        self,
        order_id: int,
        payment_status: str,
        payment_intent_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """A completed payment force-advances the order to processing, whatever its status."""
        if payment_status not in ORDER_PAYMENT_STATUSES:
            raise InvalidStatus(payment_status)

        completed = payment_status == OrderPaymentStatus.COMPLETED.value
        order = self.repo.update_payment_status(
            order_id,
            payment_status,
            payment_intent_id=payment_intent_id,
            advance_to=OrderStatus.PROCESSING.value if completed else None,
            notes="Payment received" if completed else None,
        )
        if not order:
            raise OrderNotFound(order_id)

        logger.info(f"Order {order_id} payment status updated to {payment_status}")
        return self._as_dict(order)

    def _visible_order(self, order_id: int, user_id: int, role: str) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFound(order_id)

        if role == Role.ADMIN.value:
            return order
        if role == Role.SELLER.value:
            # sellers see orders that contain at least one of their items
            if any(i.seller_id == user_id for i in order.items):
                return order
            raise AccessDenied("Access denied to order")
        if order.buyer_id != user_id:
            raise AccessDenied("Access denied to order")
        return order

    @staticmethod
    def _as_dict(order: OrderModel) -> Dict[str, Any]:
        return {
            "id": order.id,
            "order_number": order.order_number,
            "buyer_id": order.buyer_id,
            "status": order.status,
            "payment_status": order.payment_status,
            "payment_intent_id": order.payment_intent_id,
            "subtotal": order.subtotal,
            "tax": order.tax,
            "shipping_cost": order.shipping_cost,
            "total": order.total,
            "shipping_address": {
                "line1": order.shipping_address_line1,
                "line2": order.shipping_address_line2,
                "city": order.shipping_city,
                "state": order.shipping_state,
                "postal_code": order.shipping_postal_code,
                "country": order.shipping_country,
            },
            "payment_method": order.payment_method,
            "items": [
                {
                    "id": i.id,
                    "product_id": i.product_id,
                    "seller_id": i.seller_id,
                    "product_name": i.product_name,
                    "quantity": i.quantity,
                    "unit_price": i.unit_price,
                    "subtotal": i.subtotal,
                }
                for i in order.items
            ],
            "created_at": order.created_at,
            "updated_at": order.updated_at,
        }
