# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks have to be imported explicitly for the worker to register them
celery_app.conf.imports = (
    "storefront.tasks.reconcile",
    "storefront.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "flag-unlinked-payments-every-15-minutes": {
        "task": "storefront.tasks.reconcile.flag_unlinked_payments_task",
        "schedule": 15 * 60.0,
    },
}

celery_app.conf.timezone = "UTC"
