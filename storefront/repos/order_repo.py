# storefront/repos/order_repo.py
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.order_status_history import OrderStatusHistoryModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel, items: List[OrderItemModel], notes: str) -> OrderModel:
        """Order, items and the first history row go in one transaction."""
        try:
            order.items = items
            self.db.add(order)
            self.db.flush()
            self.db.add(
                OrderStatusHistoryModel(
                    order_id=order.id,
                    old_status=None,
                    new_status=order.status,
                    notes=notes,
                )
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(order)
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_by_order_number(self, order_number: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.order_number == order_number)
        ).scalar_one_or_none()

    def list_by_buyer(
        self, buyer_id: int, page: int, limit: int, status: Optional[str] = None
    ) -> Tuple[List[OrderModel], int]:
        where = [OrderModel.buyer_id == buyer_id]
        if status:
            where.append(OrderModel.status == status)

        total = self.db.execute(select(func.count(OrderModel.id)).where(*where)).scalar_one()
        orders = self.db.execute(
            select(OrderModel)
            .where(*where)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()
        return list(orders), total

    def list_by_seller(
        self, seller_id: int, page: int, limit: int, status: Optional[str] = None
    ) -> Tuple[List[OrderModel], int]:
        seller_orders = (
            select(OrderItemModel.order_id)
            .where(OrderItemModel.seller_id == seller_id)
            .distinct()
        )
        where = [OrderModel.id.in_(seller_orders)]
        if status:
            where.append(OrderModel.status == status)

        total = self.db.execute(select(func.count(OrderModel.id)).where(*where)).scalar_one()
        orders = self.db.execute(
            select(OrderModel)
            .where(*where)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()
        return list(orders), total

    def update_order_status(self, order_id: int, status: str, notes: str | None = None) -> OrderModel | None:
        """Status column and history row commit together or not at all."""
        try:
            order = self.db.get(OrderModel, order_id, with_for_update=True)
            if not order:
                return None
            self._move_status(order, status, notes)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(order)
        return order

    def update_payment_status(
        self,
        order_id: int,
        payment_status: str,
        payment_intent_id: str | None = None,
        advance_to: str | None = None,
        notes: str | None = None,
    ) -> OrderModel | None:
        try:
            order = self.db.get(OrderModel, order_id, with_for_update=True)
            if not order:
                return None
            order.payment_status = payment_status
            if payment_intent_id:
                order.payment_intent_id = payment_intent_id
            if advance_to:
                self._move_status(order, advance_to, notes)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(order)
        return order

    def get_status_history(self, order_id: int) -> List[OrderStatusHistoryModel]:
        rows = self.db.execute(
            select(OrderStatusHistoryModel)
            .where(OrderStatusHistoryModel.order_id == order_id)
            .order_by(OrderStatusHistoryModel.created_at.asc(), OrderStatusHistoryModel.id.asc())
        ).scalars().all()
        return list(rows)

    def _move_status(self, order: OrderModel, status: str, notes: str | None):
        old_status = order.status
        order.status = status
        self.db.add(
            OrderStatusHistoryModel(
                order_id=order.id,
                old_status=old_status,
                new_status=status,
                notes=notes,
            )
        )
