from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentTransactionModel
from storefront.services import notification_service
from storefront.services.notification_service import NotificationService, send_order_notification_task
from storefront.tasks import reconcile
from storefront.tasks.reconcile import find_unlinked_payments, flag_unlinked_payments_task


def _payment(db, transaction_id, status="pending", order_id=None, age=timedelta(hours=2)):
    payment = PaymentTransactionModel(
        transaction_id=transaction_id,
        order_id=order_id,
        buyer_id=1,
        amount=Decimal("10.00"),
        currency="USD",
        payment_method="card",
        provider_intent_id=f"pi_{transaction_id}",
        status=status,
        created_at=datetime.now(timezone.utc) - age,
    )
    db.add(payment)
    db.commit()
    return payment


class TestReconcile:
    def test_flags_only_old_unlinked_payments(self, db):
        _payment(db, "TXN-old-succeeded", status="succeeded")
        _payment(db, "TXN-old-pending")
        _payment(db, "TXN-linked", status="succeeded", order_id=5)
        _payment(db, "TXN-fresh", age=timedelta(seconds=0))

        flagged = find_unlinked_payments(db, older_than_seconds=3600)

        assert {p["transaction_id"] for p in flagged} == {"TXN-old-succeeded", "TXN-old-pending"}

    def test_reporting_does_not_modify(self, db):
        payment = _payment(db, "TXN-old", status="succeeded")

        find_unlinked_payments(db, older_than_seconds=60)

        db.refresh(payment)
        assert payment.status == "succeeded"
        assert payment.order_id is None

    def test_task_uses_its_own_session(self, engine, db, monkeypatch):
        _payment(db, "TXN-old")
        monkeypatch.setattr(reconcile, "SessionLocal", lambda: Session(bind=engine))

        flagged = flag_unlinked_payments_task.apply().get()

        assert [p["transaction_id"] for p in flagged] == ["TXN-old"]


class TestNotifications:
    def test_task_result(self):
        result = send_order_notification_task.apply(args=(1, 2, "ORD-1")).get()

        assert result == {"buyer_id": 1, "order_id": 2, "order_number": "ORD-1", "status": "sent"}

    def test_service_dispatches_task(self, monkeypatch):
        task = FakeTask()
        monkeypatch.setattr(notification_service, "send_order_notification_task", task)

        NotificationService.send_order_notification(1, 2, "ORD-1")

        assert task.sent == [(1, 2, "ORD-1")]


class FakeTask:
    def __init__(self):
        self.sent = []

    def delay(self, *args):
        self.sent.append(args)
