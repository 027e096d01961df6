"""
Celery Task Backend - Async execution via Celery + Redis.

Usage:
    Set TASK_BACKEND=celery.
    Requires Redis and a Celery worker running.
"""

import uuid
import logging
from typing import Any, Dict
from apps.core.task_service import TaskServiceInterface

logger = logging.getLogger(__name__)


# Task name -> (Celery task path, ordered payload keys passed as args)
CELERY_TASKS = {
    "store_billing_pdf": ("apps.billing.tasks.store_billing_pdf_task", ["kind", "document_id"]),
    "mark_overdue_invoices": ("apps.billing.tasks.mark_overdue_invoices_task", []),
    "expire_quotes": ("apps.billing.tasks.expire_quotes_task", []),
    "reconcile_payments": ("apps.payments.tasks.reconcile_pending_attempts_task", []),
    "run_sla_sweep": ("apps.support.tasks.run_sla_sweep_task", []),
}


def _get_celery_task(task_name: str):
    """Get the Celery task function for a task name."""
    entry = CELERY_TASKS.get(task_name)
    if not entry:
        raise ValueError(f"No Celery task mapped for: {task_name}")

    from celery import current_app
    return current_app.tasks.get(entry[0])


class CeleryTaskService(TaskServiceInterface):
    """
    Execute tasks via Celery + Redis.
    """

    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """Queue task via Celery."""
        task_id = str(uuid.uuid4())

        logger.info(f"[CELERY] Queueing task {task_name} (id={task_id})")

        task = _get_celery_task(task_name)

        if task is None:
            logger.error(f"[CELERY] Task not found: {task_name}")
            raise ValueError(f"Celery task not found: {task_name}")

        args = [payload.get(key) for key in CELERY_TASKS[task_name][1]]

        if delay_seconds > 0:
            task.apply_async(args=args, countdown=delay_seconds, task_id=task_id)
        else:
            task.apply_async(args=args, task_id=task_id)

        return task_id
