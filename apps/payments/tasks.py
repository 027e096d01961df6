from celery import shared_task
import logging

from .services import reconcile_pending_attempts

logger = logging.getLogger(__name__)


@shared_task
def reconcile_pending_attempts_task():
    """Periodic re-check of payment attempts the gateway has not settled yet."""
    count = reconcile_pending_attempts()
    logger.info(f"Payment reconciliation done: {count} attempt(s) checked")
    return count
