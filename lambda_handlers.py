"""
Lambda Handlers - Entry points for AWS Lambda functions.

1. SQS task consumer (messages produced by the lambda task backend)
2. Django API through Mangum (API Gateway)
3. EventBridge scheduled jobs: SLA sweep, payment reconciliation,
   overdue invoices and quote expiry
"""

import os
import sys
import json
import logging

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# Configure Django before importing any models
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

import django
django.setup()

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def sqs_task_handler(event, context):
    """
    AWS Lambda handler for SQS task messages.

    Event structure:
    {
        "Records": [
            {"body": "{\"task_id\": \"...\", \"task_name\": \"...\", \"payload\": {...}}"}
        ]
    }

    A failing message is re-raised so SQS retries it and eventually moves
    it to the dead-letter queue.
    """
    from apps.core.backends.local_backend import TASK_HANDLERS

    processed = 0
    skipped = 0

    for record in event.get('Records', []):
        message = json.loads(record['body'])
        task_id = message.get('task_id', 'unknown')
        task_name = message['task_name']

        handler = TASK_HANDLERS.get(task_name)
        if not handler:
            logger.error(f"No handler for task: {task_name} (id={task_id})")
            skipped += 1
            continue

        logger.info(f"Processing task {task_name} (id={task_id})")
        try:
            result = handler(**message.get('payload', {}))
        except Exception as e:
            logger.exception(f"Task {task_name} (id={task_id}) failed: {e}")
            raise
        logger.info(f"Task {task_name} completed: {result}")
        processed += 1

    return {
        'statusCode': 200,
        'body': json.dumps({'processed': processed, 'skipped': skipped})
    }


def _scheduled(name, func):
    logger.info(f"Running scheduled {name}")
    result = func()
    return {'statusCode': 200, 'body': json.dumps({name: result})}


def scheduled_sla_sweep(event, context):
    """EventBridge: every 5 minutes."""
    from apps.support import services

    result = services.run_sla_sweep()
    return {
        'statusCode': 200,
        'body': json.dumps({
            'warnings_sent': result.warnings_sent,
            'breaches_sent': result.breaches_sent,
        })
    }


def scheduled_reconcile_payments(event, context):
    """EventBridge: every 15 minutes."""
    from apps.payments import services
    return _scheduled('reconciled_count', services.reconcile_pending_attempts)


def scheduled_mark_overdue_invoices(event, context):
    """EventBridge: daily."""
    from apps.billing import services
    return _scheduled('overdue_count', services.mark_overdue_invoices)


def scheduled_expire_quotes(event, context):
    """EventBridge: daily."""
    from apps.billing import services
    return _scheduled('expired_count', services.expire_quotes)


# =============================================================================
# Django API Handler (Mangum)
# =============================================================================

def api_handler(event, context):
    """AWS Lambda handler for HTTP requests via API Gateway."""
    from config.asgi import lambda_handler
    return lambda_handler(event, context)
