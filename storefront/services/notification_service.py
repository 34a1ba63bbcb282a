# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Buyer notifications, processed asynchronously by Celery.
    """

    @staticmethod
    def send_order_notification(buyer_id: int, order_id: int, order_number: str):
        send_order_notification_task.delay(buyer_id, order_id, order_number)


@celery_app.task(name="storefront.services.notification_service.send_order_notification_task")
def send_order_notification_task(buyer_id: int, order_id: int, order_number: str):
    """
    Delivery channel (email, push) plugs in here; for now the message is logged.
    """
    logger.info(f"[NOTIFICATION] Buyer {buyer_id}: order {order_number} (id {order_id}) received and is being processed")
    return {"buyer_id": buyer_id, "order_id": order_id, "order_number": order_number, "status": "sent"}
