"""
Local Task Backend - Synchronous execution for development.

Tasks run immediately in the same process. No Redis, SQS or other
external dependency required. The handler registry is shared with the
SQS consumer in lambda_handlers.py.

Usage:
    Set TASK_BACKEND=local (the default).
"""

import uuid
import logging
from typing import Any, Dict
from apps.core.task_service import TaskServiceInterface

logger = logging.getLogger(__name__)


# Task handler registry - maps task names to handler functions
TASK_HANDLERS = {}


def register_handler(task_name: str):
    """Decorator to register a task handler."""
    def decorator(func):
        TASK_HANDLERS[task_name] = func
        return func
    return decorator


class LocalTaskService(TaskServiceInterface):
    """
    Execute tasks synchronously in the same process.

    Note: Tasks run in the same request cycle, so they block
    the response. Only use for development.
    """

    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """Execute task synchronously."""
        task_id = str(uuid.uuid4())

        logger.info(f"[LOCAL] Executing task {task_name} (id={task_id})")

        if delay_seconds > 0:
            logger.warning(
                f"[LOCAL] delay_seconds={delay_seconds} ignored in local backend"
            )

        handler = TASK_HANDLERS.get(task_name)
        if handler:
            try:
                result = handler(**payload)
                logger.info(f"[LOCAL] Task {task_name} completed: {result}")
            except Exception as e:
                logger.exception(f"[LOCAL] Task {task_name} failed: {e}")
                raise
        else:
            logger.warning(f"[LOCAL] No handler registered for task: {task_name}")

        return task_id


# =============================================================================
# Task Handlers
# =============================================================================

@register_handler("store_billing_pdf")
def handle_store_billing_pdf(kind: str, document_id: str):
    from uuid import UUID
    from apps.billing.pdf_service import store_billing_pdf

    url = store_billing_pdf(kind, UUID(document_id))
    return f"Stored {kind} PDF: {url}"


@register_handler("mark_overdue_invoices")
def handle_mark_overdue_invoices():
    from apps.billing import services
    count = services.mark_overdue_invoices()
    return f"Marked {count} invoices overdue"


@register_handler("expire_quotes")
def handle_expire_quotes():
    from apps.billing import services
    count = services.expire_quotes()
    return f"Expired {count} quotes"


@register_handler("reconcile_payments")
def handle_reconcile_payments():
    from apps.payments import services
    count = services.reconcile_pending_attempts()
    return f"Reconciled {count} payment attempts"


@register_handler("run_sla_sweep")
def handle_run_sla_sweep():
    from apps.support import services
    result = services.run_sla_sweep()
    return f"SLA sweep: {result.warnings_sent} warnings, {result.breaches_sent} breaches"
