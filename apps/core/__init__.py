"""
Shared plumbing for the portal apps.

TaskService hands background work (billing PDFs, SLA sweep, payment
reconciliation, quote expiry, overdue invoices) to the backend selected
by TASK_BACKEND: local, lambda or celery.
"""
