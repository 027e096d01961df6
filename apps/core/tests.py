import json
import os
from unittest import mock

from django.test import TestCase

from apps.core.task_service import TaskService, _get_backend
from apps.core.backends import local_backend
from apps.core.backends.local_backend import LocalTaskService
from apps.core.backends.lambda_backend import LambdaTaskService, build_message, SQS_MAX_DELAY_SECONDS
from apps.core.backends.celery_backend import CeleryTaskService, CELERY_TASKS


class LocalBackendTest(TestCase):

    def test_runs_registered_handler_with_payload(self):
        handler = mock.Mock(return_value="done")
        with mock.patch.dict(local_backend.TASK_HANDLERS, {"ping": handler}):
            task_id = LocalTaskService().send_task("ping", {"value": 3})

        handler.assert_called_once_with(value=3)
        self.assertTrue(task_id)

    def test_unknown_task_is_skipped(self):
        task_id = LocalTaskService().send_task("does_not_exist", {})
        self.assertTrue(task_id)

    def test_handler_failure_propagates(self):
        handler = mock.Mock(side_effect=RuntimeError("boom"))
        with mock.patch.dict(local_backend.TASK_HANDLERS, {"ping": handler}):
            with self.assertRaises(RuntimeError):
                LocalTaskService().send_task("ping", {})

    def test_every_celery_task_has_a_local_handler(self):
        for name in CELERY_TASKS:
            self.assertIn(name, local_backend.TASK_HANDLERS)


class TaskServiceFacadeTest(TestCase):

    @mock.patch.dict(os.environ, {"TASK_BACKEND": "local"})
    def test_expire_quotes_runs_locally(self):
        with mock.patch("apps.billing.services.expire_quotes", return_value=2) as expire:
            TaskService.expire_quotes()
        expire.assert_called_once_with()

    @mock.patch.dict(os.environ, {"TASK_BACKEND": "local"})
    def test_reconcile_payments_runs_locally(self):
        with mock.patch("apps.payments.services.reconcile_pending_attempts", return_value=0) as reconcile:
            TaskService.reconcile_payments()
        reconcile.assert_called_once_with()

    @mock.patch.dict(os.environ, {"TASK_BACKEND": "carrier-pigeon"})
    def test_unknown_backend_raises(self):
        with self.assertRaises(ValueError):
            _get_backend()


class LambdaBackendTest(TestCase):

    def test_build_message_clamps_delay(self):
        message = build_message("t1", "expire_quotes", {}, delay_seconds=5000)
        self.assertEqual(message["DelaySeconds"], SQS_MAX_DELAY_SECONDS)
        self.assertEqual(build_message("t1", "expire_quotes", {}, delay_seconds=-3)["DelaySeconds"], 0)

    def test_build_message_body(self):
        message = build_message("t1", "store_billing_pdf", {"kind": "invoice", "document_id": "abc"})
        body = json.loads(message["MessageBody"])
        self.assertEqual(body["task_name"], "store_billing_pdf")
        self.assertEqual(body["payload"]["kind"], "invoice")
        self.assertEqual(message["MessageAttributes"]["TaskId"]["StringValue"], "t1")

    @mock.patch.dict(os.environ, {"TASK_QUEUE_URL": "https://sqs.test/queue"})
    def test_send_task_posts_to_queue(self):
        service = LambdaTaskService()
        service._sqs_client = mock.Mock()
        service._sqs_client.send_message.return_value = {"MessageId": "m-1"}

        task_id = service.send_task("run_sla_sweep", {})

        kwargs = service._sqs_client.send_message.call_args.kwargs
        self.assertEqual(kwargs["QueueUrl"], "https://sqs.test/queue")
        self.assertEqual(json.loads(kwargs["MessageBody"])["task_id"], task_id)

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_send_task_without_queue_fails(self):
        with self.assertRaises(RuntimeError):
            LambdaTaskService().send_task("run_sla_sweep", {})


class CeleryBackendTest(TestCase):

    def test_payload_is_passed_as_ordered_args(self):
        task = mock.Mock()
        with mock.patch("apps.core.backends.celery_backend._get_celery_task", return_value=task):
            task_id = CeleryTaskService().send_task(
                "store_billing_pdf", {"document_id": "abc", "kind": "quote"}, delay_seconds=10,
            )

        task.apply_async.assert_called_once_with(args=["quote", "abc"], countdown=10, task_id=task_id)

    def test_unmapped_task_raises(self):
        with self.assertRaises(ValueError):
            CeleryTaskService().send_task("unknown", {})
