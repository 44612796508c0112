# app/celery_worker.py
from celery import Celery

from app.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    EXPIRE_SWEEP_INTERVAL_SECONDS,
)

celery_app = Celery(
    "shop",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# WAŻNE: Explicite importuj taski, żeby Celery je zarejestrował
celery_app.conf.imports = (
    "app.tasks.expire",
)

# Konfiguracja beat schedule
celery_app.conf.beat_schedule = {
    "expire-pending-orders": {
        "task": "app.tasks.expire.expire_pending_orders_task",
        "schedule": EXPIRE_SWEEP_INTERVAL_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
