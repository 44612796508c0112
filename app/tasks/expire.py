# app/tasks/expire.py
from app.celery_worker import celery_app
from app.data.database import SessionLocal
from app.services.order_service import OrderService
from app.utils.settings import PENDING_ORDER_TTL_SECONDS
from app.utils.logging import get_logger

logger = get_logger(__name__)


def expire_pending_orders(db, now=None, ttl_seconds: int = PENDING_ORDER_TTL_SECONDS) -> list[int]:
    """porzucone checkouty: pending starsze niz TTL -> failed + zwrot stanu"""
    return OrderService(db).expire_stale_orders(now=now, ttl_seconds=ttl_seconds)


@celery_app.task(name="app.tasks.expire.expire_pending_orders_task")
def expire_pending_orders_task():
    logger.info("Expire pending orders task started")

    db = SessionLocal()
    try:
        expired = expire_pending_orders(db)
        logger.info(f"Expired {len(expired)} pending orders")
        return {"expired": expired}
    finally:
        db.close()
