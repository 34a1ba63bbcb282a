# storefront/tasks/reconcile.py
from datetime import datetime, timezone, timedelta
from typing import List

from sqlalchemy.orm import Session

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.repos.payment_repo import PaymentRepo
from storefront.utils.settings import RECONCILE_AFTER_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def find_unlinked_payments(db: Session, older_than_seconds: int = RECONCILE_AFTER_SECONDS) -> List[dict]:
    """
    Payments still without an order after the grace period.

    Succeeded ones are charges whose order never got created or linked;
    pending ones are abandoned or declined attempts. Both are only reported,
    never modified.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=older_than_seconds)
    payments = PaymentRepo(db).list_unlinked_before(cutoff)

    flagged = []
    for p in payments:
        level = logger.warning if p.status == "succeeded" else logger.info
        level(
            f"Unlinked payment {p.transaction_id} (intent {p.provider_intent_id}) "
            f"status={p.status} amount={p.amount} {p.currency} buyer={p.buyer_id}"
        )
        flagged.append({
            "id": p.id,
            "transaction_id": p.transaction_id,
            "provider_intent_id": p.provider_intent_id,
            "status": p.status,
            "amount": str(p.amount),
        })
    return flagged


@celery_app.task(name="storefront.tasks.reconcile.flag_unlinked_payments_task")
def flag_unlinked_payments_task():
    logger.info("Unlinked payments check started")

    db = SessionLocal()
    try:
        flagged = find_unlinked_payments(db)
        logger.info(f"Found {len(flagged)} unlinked payments")
        return flagged
    finally:
        db.close()
