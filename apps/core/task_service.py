"""
TaskService - Abstraction layer for async task execution.

The backend is chosen by the TASK_BACKEND environment variable.

Usage:
    from apps.core.task_service import TaskService

    # Render and store an invoice PDF
    TaskService.store_billing_pdf(kind="invoice", document_id=invoice.id)

    # Re-check payments stuck at the gateway
    TaskService.reconcile_payments()

Environment Configuration:
    TASK_BACKEND=local   # Sync execution (development, tests)
    TASK_BACKEND=lambda  # AWS Lambda + SQS (production)
    TASK_BACKEND=celery  # Celery + Redis
"""

import os
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict
from uuid import UUID

logger = logging.getLogger(__name__)


class TaskServiceInterface(ABC):
    """
    Abstract interface for async task execution.

    Implementations:
    - LocalTaskService: Sync execution for development/testing
    - LambdaTaskService: AWS Lambda + SQS for production
    - CeleryTaskService: Celery + Redis
    """

    @abstractmethod
    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """
        Queue a task for async execution.

        Args:
            task_name: Identifier for the task handler
            payload: Data to pass to the task
            delay_seconds: Delay before execution (0 = immediate)

        Returns:
            Task ID for tracking
        """
        pass


def _get_backend() -> TaskServiceInterface:
    """Get the configured task backend based on TASK_BACKEND env var."""
    backend = os.getenv('TASK_BACKEND', 'local')

    if backend == 'local':
        from apps.core.backends.local_backend import LocalTaskService
        return LocalTaskService()
    elif backend == 'lambda':
        from apps.core.backends.lambda_backend import LambdaTaskService
        return LambdaTaskService()
    elif backend == 'celery':
        from apps.core.backends.celery_backend import CeleryTaskService
        return CeleryTaskService()
    else:
        raise ValueError(f"Unknown TASK_BACKEND: {backend}")


class TaskService:
    """
    Facade for sending async tasks, one static method per task type.
    """

    @staticmethod
    def store_billing_pdf(kind: str, document_id: UUID) -> str:
        """
        Queue PDF rendering + storage for a quote or invoice.

        Used by: the billing API "pdf/store" endpoints for quotes and invoices.
        """
        logger.info(f"Queueing store_billing_pdf for {kind} {document_id}")
        return _get_backend().send_task(
            task_name="store_billing_pdf",
            payload={"kind": kind, "document_id": str(document_id)}
        )

    @staticmethod
    def run_sla_sweep() -> str:
        """Queue the support SLA reminder sweep."""
        logger.info("Queueing run_sla_sweep task")
        return _get_backend().send_task(task_name="run_sla_sweep", payload={})

    @staticmethod
    def mark_overdue_invoices() -> str:
        logger.info("Queueing mark_overdue_invoices task")
        return _get_backend().send_task(task_name="mark_overdue_invoices", payload={})

    @staticmethod
    def expire_quotes() -> str:
        logger.info("Queueing expire_quotes task")
        return _get_backend().send_task(task_name="expire_quotes", payload={})

    @staticmethod
    def reconcile_payments() -> str:
        """
        Queue the re-check of payment attempts the gateway never confirmed.

        Used by: scheduled job, and the payment return page when the
        gateway answers late.
        """
        logger.info("Queueing reconcile_payments task")
        return _get_backend().send_task(task_name="reconcile_payments", payload={})
