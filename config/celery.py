"""
Celery configuration for CPMS.
"""
import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('cpms')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

# Celery Beat Schedule
app.conf.beat_schedule = {
    'support-sla-sweep': {
        'task': 'apps.support.tasks.run_sla_sweep_task',
        'schedule': crontab(minute='*/5'),
    },
    'payments-reconcile-pending': {
        'task': 'apps.payments.tasks.reconcile_pending_attempts_task',
        'schedule': crontab(minute='*/15'),
    },
    'billing-mark-overdue-invoices': {
        'task': 'apps.billing.tasks.mark_overdue_invoices_task',
        'schedule': crontab(hour='1', minute='0'),
    },
    'billing-expire-quotes': {
        'task': 'apps.billing.tasks.expire_quotes_task',
        'schedule': crontab(hour='1', minute='10'),
    },
}
