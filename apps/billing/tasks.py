from celery import shared_task
import logging

from . import services
from .pdf_service import store_billing_pdf

logger = logging.getLogger(__name__)


@shared_task
def store_billing_pdf_task(kind, document_id):
    """Render and store the PDF of a quote or invoice."""
    try:
        return store_billing_pdf(kind, document_id)
    except Exception as e:
        logger.exception(f"Error storing PDF for {kind} {document_id}: {e}")
        raise


@shared_task
def mark_overdue_invoices_task():
    count = services.mark_overdue_invoices()
    logger.info(f"Overdue sweep done: {count} invoice(s)")
    return count


@shared_task
def expire_quotes_task():
    count = services.expire_quotes()
    logger.info(f"Quote expiry sweep done: {count} quote(s)")
    return count
