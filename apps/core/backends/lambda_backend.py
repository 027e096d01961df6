"""
Lambda Task Backend - Async execution via AWS SQS + Lambda.

Messages go to an SQS queue consumed by lambda_handlers.sqs_task_handler.

Usage:
    Set TASK_BACKEND=lambda.
    Requires AWS credentials and an SQS queue.

Environment Variables:
    TASK_QUEUE_URL: SQS queue URL for task messages
    AWS_REGION: AWS region (default: eu-west-3)
"""

import os
import json
import uuid
import logging
from typing import Any, Dict
from apps.core.task_service import TaskServiceInterface

logger = logging.getLogger(__name__)

SQS_MAX_DELAY_SECONDS = 900


def build_message(task_id: str, task_name: str, payload: Dict[str, Any], delay_seconds: int = 0) -> dict:
    """SQS send_message kwargs (without QueueUrl) for a task."""
    return {
        'MessageBody': json.dumps({
            "task_id": task_id,
            "task_name": task_name,
            "payload": payload,
        }),
        'DelaySeconds': max(0, min(delay_seconds, SQS_MAX_DELAY_SECONDS)),
        'MessageAttributes': {
            'TaskName': {'DataType': 'String', 'StringValue': task_name},
            'TaskId': {'DataType': 'String', 'StringValue': task_id},
        },
    }


class LambdaTaskService(TaskServiceInterface):
    """
    Execute tasks via AWS SQS + Lambda.
    """

    def __init__(self):
        self._sqs_client = None
        self._queue_url = os.getenv('TASK_QUEUE_URL')

        if not self._queue_url:
            logger.warning("[LAMBDA] TASK_QUEUE_URL not set. send_task will fail.")

    @property
    def sqs_client(self):
        """Lazy initialization of SQS client."""
        if self._sqs_client is None:
            import boto3
            self._sqs_client = boto3.client(
                'sqs',
                region_name=os.getenv('AWS_REGION', 'eu-west-3')
            )
        return self._sqs_client

    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """Queue task via SQS."""
        if not self._queue_url:
            raise RuntimeError("TASK_QUEUE_URL is not set, cannot send tasks to the Lambda backend")

        task_id = str(uuid.uuid4())
        logger.info(f"[LAMBDA] Sending task {task_name} to SQS (id={task_id})")

        try:
            response = self.sqs_client.send_message(
                QueueUrl=self._queue_url,
                **build_message(task_id, task_name, payload, delay_seconds),
            )
        except Exception as e:
            logger.exception(f"[LAMBDA] Failed to send task {task_name}: {e}")
            raise

        logger.info(f"[LAMBDA] Task {task_name} queued, SQS MessageId: {response['MessageId']}")
        return task_id
