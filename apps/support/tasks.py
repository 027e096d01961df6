from celery import shared_task
import logging

from .services import run_sla_sweep

logger = logging.getLogger(__name__)


@shared_task
def run_sla_sweep_task():
    """Periodic SLA reminders for open tickets."""
    result = run_sla_sweep()
    logger.info(f"SLA sweep done: {result.warnings_sent} warning(s), {result.breaches_sent} breach(es)")
    return {"warnings_sent": result.warnings_sent, "breaches_sent": result.breaches_sent}
