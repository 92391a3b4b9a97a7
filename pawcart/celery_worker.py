# pawcart/celery_worker.py
from celery import Celery

from pawcart.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "pawcart",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

#explicit task imports so the worker registers them
celery_app.conf.imports = (
    "pawcart.tasks.loyalty",
    "pawcart.services.notification_service",
)

celery_app.conf.timezone = "UTC"
