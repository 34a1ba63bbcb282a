from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from storefront.data.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class PaymentTransactionModel(Base):
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(String(40), nullable=False, unique=True, index=True)
    # set after the order exists; no FK so payments never depend on order persistence
    order_id = Column(Integer, nullable=True, index=True)
    buyer_id = Column(Integer, nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    payment_method = Column(String(20), nullable=False, default="card")
    provider_intent_id = Column(String(120), nullable=False, unique=True, index=True)

    # pending, succeeded, failed, refunded
    status = Column(String(20), nullable=False, default="pending")
    details = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    refunds = relationship(
        "PaymentRefundModel",
        back_populates="payment",
        lazy="selectin",
        order_by="PaymentRefundModel.id",
    )


class PaymentRefundModel(Base):
    __tablename__ = "payment_refunds"

    id = Column(Integer, primary_key=True)
    payment_transaction_id = Column(
        Integer, ForeignKey("payment_transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(String(255), nullable=True)
    provider_refund_id = Column(String(120), nullable=True, unique=True)
    # pending, succeeded, failed
    status = Column(String(20), nullable=False, default="pending")

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    payment = relationship("PaymentTransactionModel", back_populates="refunds")
