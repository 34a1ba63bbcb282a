# storefront/repos/payment_repo.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentTransactionModel, PaymentRefundModel
from storefront.domain.pricing import to_money


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def _save(self, obj):
        try:
            self.db.add(obj)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(obj)
        return obj

    def create_payment(self, payment: PaymentTransactionModel) -> PaymentTransactionModel:
        return self._save(payment)

    def save_payment(self, payment: PaymentTransactionModel) -> PaymentTransactionModel:
        return self._save(payment)

    def get_payment(self, payment_id: int) -> PaymentTransactionModel | None:
        return self.db.get(PaymentTransactionModel, payment_id)

    def get_by_provider_intent_id(self, intent_id: str) -> PaymentTransactionModel | None:
        return self.db.execute(
            select(PaymentTransactionModel).where(PaymentTransactionModel.provider_intent_id == intent_id)
        ).scalar_one_or_none()

    def list_by_order(self, order_id: int) -> List[PaymentTransactionModel]:
        rows = self.db.execute(
            select(PaymentTransactionModel)
            .where(PaymentTransactionModel.order_id == order_id)
            .order_by(PaymentTransactionModel.created_at.desc())
        ).scalars().all()
        return list(rows)

    def list_by_buyer(
        self, buyer_id: int, page: int, limit: int, status: Optional[str] = None
    ) -> Tuple[List[PaymentTransactionModel], int]:
        where = [PaymentTransactionModel.buyer_id == buyer_id]
        if status:
            where.append(PaymentTransactionModel.status == status)

        total = self.db.execute(select(func.count(PaymentTransactionModel.id)).where(*where)).scalar_one()
        rows = self.db.execute(
            select(PaymentTransactionModel)
            .where(*where)
            .order_by(PaymentTransactionModel.created_at.desc(), PaymentTransactionModel.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()
        return list(rows), total

    def list_unlinked_before(self, cutoff: datetime) -> List[PaymentTransactionModel]:
        rows = self.db.execute(
            select(PaymentTransactionModel)
            .where(
                PaymentTransactionModel.order_id.is_(None),
                PaymentTransactionModel.created_at < cutoff,
            )
            .order_by(PaymentTransactionModel.created_at.asc())
        ).scalars().all()
        return list(rows)

    def create_refund(self, refund: PaymentRefundModel) -> PaymentRefundModel:
        return self._save(refund)

    def get_refund_by_provider_id(self, provider_refund_id: str) -> PaymentRefundModel | None:
        return self.db.execute(
            select(PaymentRefundModel).where(PaymentRefundModel.provider_refund_id == provider_refund_id)
        ).scalar_one_or_none()

    def refunded_total(self, payment_id: int) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(PaymentRefundModel.amount), 0)).where(
                PaymentRefundModel.payment_transaction_id == payment_id,
                PaymentRefundModel.status == "succeeded",
            )
        ).scalar_one()
        return to_money(total)
