import json
from datetime import date, timedelta
from decimal import Decimal
from unittest import mock

import requests
from django.test import TestCase, SimpleTestCase, Client as HttpClient, override_settings
from django.utils import timezone

from apps.core.testing import make_org, make_user, make_client, make_client_user
from apps.identity.models import UserRole
from apps.billing import services as billing_services
from apps.billing.models import Invoice, InvoiceStatus
from apps.audit.models import AuditLog
from apps.payments import services
from apps.payments.gateway import (
    CinetPayClient, PaymentGatewayError, PaymentSession, TransactionCheck,
)
from apps.payments.models import Payment, PaymentAttempt, PaymentAttemptStatus, PaymentStatus

SECRET = "webhook-secret"


def make_invoice(org, client, unit_price="100000", currency="XOF", **kwargs):
    data = {
        "client_id": client.id,
        "currency": currency,
        "items": [{"label": "Site vitrine", "qty": 1, "unit_price": unit_price, "vat_rate": 18}],
    }
    data.update(kwargs)
    return billing_services.create_invoice(org.id, data)


def fake_gateway(status="ACCEPTED", amount="118000", currency="XOF"):
    gateway = mock.Mock(spec=CinetPayClient)
    gateway.init_payment.return_value = PaymentSession(
        payment_token="tok_123", payment_url="https://checkout.cinetpay.test/pay/tok_123",
    )
    gateway.check_payment.return_value = TransactionCheck(
        status=status,
        amount=amount,
        currency=currency,
        payment_method="OM",
        operator_id="OP-42",
        raw={"code": "00", "data": {"status": status, "amount": amount}},
    )
    return gateway


def signed_form(transaction_id, **extra):
    form = {
        "cpm_site_id": "12345",
        "cpm_trans_id": transaction_id,
        "cpm_trans_date": "2026-03-01 10:00:00",
        "cpm_amount": "118000",
        "cpm_currency": "XOF",
        "payment_method": "OM",
    }
    form.update(extra)
    return form, services.compute_notification_signature(form, SECRET)


class PayableAmountTest(SimpleTestCase):
    def _invoice(self, ttc, currency="XOF"):
        return Invoice(total_ttc=Decimal(ttc), currency=currency, status=InvoiceStatus.ISSUED)

    def test_rounds_half_up(self):
        self.assertEqual(services.payable_amount(self._invoice("117999.50")), 118000)

    def test_multiple_of_five_required_outside_usd(self):
        with self.assertRaises(ValueError):
            services.payable_amount(self._invoice("118001"))
        self.assertEqual(services.payable_amount(self._invoice("118001", "USD")), 118001)

    def test_unsupported_currency(self):
        with self.assertRaises(ValueError):
            services.payable_amount(self._invoice("100", "GBP"))

    def test_zero_amount(self):
        with self.assertRaises(ValueError):
            services.payable_amount(self._invoice("0"))


@override_settings(CINETPAY_SECRET_KEY=SECRET)
class SignatureTest(SimpleTestCase):
    def test_valid_signature(self):
        form, token = signed_form("F-2026-0001")
        self.assertTrue(services.verify_notification_signature(form, token))

    def test_tampered_field(self):
        form, token = signed_form("F-2026-0001")
        form["cpm_amount"] = "5"
        self.assertFalse(services.verify_notification_signature(form, token))

    def test_missing_token(self):
        form, _ = signed_form("F-2026-0001")
        self.assertFalse(services.verify_notification_signature(form, None))
        self.assertFalse(services.verify_notification_signature(form, ""))

    def test_missing_fields_count_as_empty(self):
        form = {"cpm_trans_id": "F-1"}
        token = services.compute_notification_signature({"cpm_trans_id": "F-1", "cpm_custom": ""}, SECRET)
        self.assertTrue(services.verify_notification_signature(form, token))


class InitiatePaymentTest(TestCase):
    def setUp(self):
        self.org = make_org()
        self.client_account = make_client(self.org)
        self.user = make_client_user(self.org, self.client_account)
        self.invoice = make_invoice(self.org, self.client_account)

    def test_opens_session_and_upserts_attempt(self):
        gateway = fake_gateway()
        result = services.initiate_payment(self.invoice.id, self.user, client=gateway)

        self.assertEqual(result.payment_url, "https://checkout.cinetpay.test/pay/tok_123")
        self.assertTrue(result.transaction_id.startswith(self.invoice.number))
        kwargs = gateway.init_payment.call_args.kwargs
        self.assertEqual(kwargs["amount"], 118000)
        self.assertEqual(kwargs["currency"], "XOF")
        self.assertEqual(kwargs["description"], f"Facture {self.invoice.number}")

        services.initiate_payment(self.invoice.id, self.user, client=gateway)
        attempt = PaymentAttempt.objects.get()
        self.assertEqual(attempt.status, PaymentAttemptStatus.REDIRECTED)
        self.assertEqual(attempt.amount, Decimal("118000"))
        self.assertTrue(AuditLog.objects.filter(action="INITIATE_PAYMENT").exists())

    def test_only_issued_invoices(self):
        billing_services.cancel_invoice(self.invoice)
        with self.assertRaises(ValueError):
            services.initiate_payment(self.invoice.id, self.user, client=fake_gateway())

    def test_past_due_date_rejected(self):
        self.invoice.due_date = date(2026, 1, 10)
        self.invoice.save()
        with self.assertRaises(ValueError):
            services.initiate_payment(self.invoice.id, self.user, today=date(2026, 2, 1), client=fake_gateway())

    def test_other_client_invoice_not_found(self):
        other = make_invoice(self.org, make_client(self.org))
        with self.assertRaises(LookupError):
            services.initiate_payment(other.id, self.user, client=fake_gateway())

    def test_gateway_failure_leaves_no_attempt(self):
        gateway = fake_gateway()
        gateway.init_payment.side_effect = PaymentGatewayError("down")
        with self.assertRaises(PaymentGatewayError):
            services.initiate_payment(self.invoice.id, self.user, client=gateway)
        self.assertFalse(PaymentAttempt.objects.exists())

    def test_transaction_ids_do_not_collide_across_orgs(self):
        other_org = make_org()
        other_invoice = make_invoice(other_org, make_client(other_org))
        self.assertEqual(self.invoice.number, other_invoice.number)
        self.assertNotEqual(services.transaction_id_for(self.invoice), services.transaction_id_for(other_invoice))


class ReconcileTest(TestCase):
    def setUp(self):
        self.org = make_org()
        client_account = make_client(self.org)
        self.user = make_client_user(self.org, client_account)
        self.invoice = make_invoice(self.org, client_account)
        self.tx = services.initiate_payment(self.invoice.id, self.user, client=fake_gateway()).transaction_id

    def test_accepted_marks_invoice_paid_once(self):
        gateway = fake_gateway("ACCEPTED")
        self.assertEqual(services.reconcile_transaction(self.tx, client=gateway), "ACCEPTED")
        services.reconcile_transaction(self.tx, client=gateway)

        payment = Payment.objects.get()
        self.assertEqual(payment.status, PaymentStatus.ACCEPTED)
        self.assertEqual(payment.operator_id, "OP-42")
        self.assertIsNotNone(payment.paid_at)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, InvoiceStatus.PAID)
        self.assertEqual(PaymentAttempt.objects.get().status, PaymentAttemptStatus.COMPLETED)
        self.assertEqual(AuditLog.objects.filter(action="RECORD_PAYMENT").count(), 1)

    def test_short_payment_leaves_invoice_open(self):
        services.reconcile_transaction(self.tx, client=fake_gateway("ACCEPTED", amount="50000"))
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, InvoiceStatus.ISSUED)
        self.assertEqual(Payment.objects.get().amount, Decimal("50000"))

    def test_currency_mismatch_leaves_invoice_open(self):
        services.reconcile_transaction(self.tx, client=fake_gateway("ACCEPTED", currency="EUR"))
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, InvoiceStatus.ISSUED)

    def test_late_acceptance_keeps_canceled_invoice(self):
        billing_services.cancel_invoice(self.invoice)
        with self.assertLogs("apps.billing.services", level="WARNING"):
            services.reconcile_transaction(self.tx, client=fake_gateway("ACCEPTED"))

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, InvoiceStatus.CANCELED)
        self.assertIsNone(self.invoice.paid_at)
        self.assertEqual(Payment.objects.get().status, PaymentStatus.ACCEPTED)
        self.assertEqual(PaymentAttempt.objects.get().status, PaymentAttemptStatus.COMPLETED)

    def test_refused_records_single_row(self):
        gateway = fake_gateway("REFUSED")
        services.reconcile_transaction(self.tx, client=gateway)
        services.reconcile_transaction(self.tx, client=gateway)
        self.assertEqual(Payment.objects.filter(status=PaymentStatus.REFUSED).count(), 1)
        self.assertEqual(PaymentAttempt.objects.get().status, PaymentAttemptStatus.FAILED)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, InvoiceStatus.ISSUED)

    def test_waiting_marks_checked(self):
        services.reconcile_transaction(self.tx, client=fake_gateway("WAITING_FOR_CUSTOMER"))
        attempt = PaymentAttempt.objects.get()
        self.assertEqual(attempt.status, PaymentAttemptStatus.CHECKED)
        self.assertIsNotNone(attempt.last_checked_at)
        self.assertFalse(Payment.objects.exists())

    def test_unknown_transaction(self):
        gateway = fake_gateway()
        self.assertIsNone(services.reconcile_transaction("nope", client=gateway))
        gateway.check_payment.assert_not_called()

    def test_pending_sweep_only_picks_stale_attempts(self):
        PaymentAttempt.objects.update(updated_at=timezone.now() - timedelta(hours=1))
        gateway = fake_gateway("ACCEPTED")
        self.assertEqual(services.reconcile_pending_attempts(client=gateway), 1)
        self.assertEqual(services.reconcile_pending_attempts(client=gateway), 0)

    def test_pending_sweep_skips_recent_attempts(self):
        self.assertEqual(services.reconcile_pending_attempts(client=fake_gateway()), 0)

    def test_return_redirects_with_outcome(self):
        url = services.handle_return(self.tx, client=fake_gateway("ACCEPTED"))
        self.assertIn("/factures-devis?success=1", url)
        self.assertIn(f"invoice_id={self.invoice.id}", url)

    def test_return_stays_pending_when_check_fails(self):
        gateway = fake_gateway()
        gateway.check_payment.side_effect = PaymentGatewayError("timeout")
        url = services.handle_return(self.tx, client=gateway)
        self.assertIn("pending=1", url)

    def test_return_without_transaction(self):
        self.assertTrue(services.handle_return(None).endswith("/factures-devis?error=1"))
        self.assertTrue(services.handle_return("unknown").endswith("/factures-devis?error=1"))


@override_settings(CINETPAY_SECRET_KEY=SECRET)
class PaymentAPITest(TestCase):
    def setUp(self):
        self.http = HttpClient()
        self.org = make_org()
        client_account = make_client(self.org)
        self.user = make_client_user(self.org, client_account)
        self.admin = make_user(self.org, role=UserRole.ADMIN)
        self.invoice = make_invoice(self.org, client_account)

    def _open_attempt(self):
        return services.initiate_payment(self.invoice.id, self.user, client=fake_gateway()).transaction_id

    @mock.patch("apps.payments.services.get_client")
    def test_client_pays_invoice(self, get_client):
        get_client.return_value = fake_gateway()
        self.http.force_login(self.user)
        response = self.http.post(f"/api/payments/invoices/{self.invoice.id}/pay")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["payment_token"], "tok_123")

    def test_admin_cannot_initiate_payment(self):
        self.http.force_login(self.admin)
        response = self.http.post(f"/api/payments/invoices/{self.invoice.id}/pay")
        self.assertEqual(response.status_code, 403)

    @mock.patch("apps.payments.services.get_client")
    def test_gateway_refusal_is_400(self, get_client):
        gateway = fake_gateway()
        gateway.init_payment.side_effect = PaymentGatewayError("bad apikey")
        get_client.return_value = gateway
        self.http.force_login(self.user)
        response = self.http.post(f"/api/payments/invoices/{self.invoice.id}/pay")
        self.assertEqual(response.status_code, 400)

    @mock.patch("apps.payments.services.get_client")
    def test_webhook_reconciles(self, get_client):
        tx = self._open_attempt()
        get_client.return_value = fake_gateway("ACCEPTED")
        form, token = signed_form(tx)

        response = self.http.post("/api/payments/webhooks/cinetpay", data=form, HTTP_X_TOKEN=token)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True})
        attempt = PaymentAttempt.objects.get()
        self.assertEqual(attempt.notify_count, 1)
        self.assertEqual(attempt.status, PaymentAttemptStatus.COMPLETED)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, InvoiceStatus.PAID)

    def test_webhook_bad_signature(self):
        form, _ = signed_form(self._open_attempt())
        response = self.http.post("/api/payments/webhooks/cinetpay", data=form, HTTP_X_TOKEN="0" * 64)
        self.assertEqual(response.status_code, 401)
        self.assertEqual(PaymentAttempt.objects.get().notify_count, 0)

    def test_webhook_bad_transaction_id(self):
        form, token = signed_form("x" * 129)
        response = self.http.post("/api/payments/webhooks/cinetpay", data=form, HTTP_X_TOKEN=token)
        self.assertEqual(response.status_code, 400)

    def test_webhook_unknown_attempt(self):
        form, token = signed_form("F-2099-9999")
        response = self.http.post("/api/payments/webhooks/cinetpay", data=form, HTTP_X_TOKEN=token)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": False, "reason": "attempt_not_found"})

    @mock.patch("apps.payments.services.get_client")
    def test_return_redirects(self, get_client):
        tx = self._open_attempt()
        get_client.return_value = fake_gateway("REFUSED")
        response = self.http.get("/api/payments/return", {"transaction_id": tx})
        self.assertEqual(response.status_code, 302)
        self.assertIn("error=1", response["Location"])

    def test_payments_listed_for_invoice(self):
        services.reconcile_transaction(self._open_attempt(), client=fake_gateway("ACCEPTED"))
        self.http.force_login(self.user)
        response = self.http.get(f"/api/payments/invoices/{self.invoice.id}/payments")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 1)


class GatewayClientTest(SimpleTestCase):
    def _response(self, status_code, body):
        response = mock.Mock(status_code=status_code, ok=status_code < 400, text=json.dumps(body))
        response.json.return_value = body
        return response

    @mock.patch("apps.payments.gateway.requests.post")
    def test_init_payment(self, post):
        post.return_value = self._response(200, {
            "code": "201", "data": {"payment_token": "t", "payment_url": "https://pay.test/t"},
        })
        client = CinetPayClient(base_url="https://gw.test/v2", apikey="k", site_id="s", timeout=5)
        session = client.init_payment("F-1", 1000, "XOF", "Facture F-1")
        self.assertEqual(session.payment_url, "https://pay.test/t")
        url = post.call_args.args[0]
        self.assertEqual(url, "https://gw.test/v2/payment")
        self.assertEqual(post.call_args.kwargs["json"]["channels"], "ALL")
        self.assertEqual(post.call_args.kwargs["timeout"], 5)

    @mock.patch("apps.payments.gateway.requests.post")
    def test_http_error_raises(self, post):
        post.return_value = self._response(400, {"message": "INVALID_API_KEY"})
        client = CinetPayClient(base_url="https://gw.test/v2", apikey="k", site_id="s")
        with self.assertRaises(PaymentGatewayError):
            client.check_payment("F-1")

    @mock.patch("apps.payments.gateway.requests.post")
    def test_network_error_raises(self, post):
        post.side_effect = requests.exceptions.ConnectionError("refused")
        client = CinetPayClient(base_url="https://gw.test/v2", apikey="k", site_id="s")
        with self.assertRaises(PaymentGatewayError):
            client.check_payment("F-1")

    @mock.patch("apps.payments.gateway.requests.post")
    def test_check_payment_parses_status(self, post):
        post.return_value = self._response(200, {
            "code": "00", "data": {"status": "accepted", "amount": 1000, "currency": "XOF", "operator_id": "OP"},
        })
        client = CinetPayClient(base_url="https://gw.test/v2", apikey="k", site_id="s")
        check = client.check_payment("F-1")
        self.assertEqual(check.status, "ACCEPTED")
        self.assertEqual(check.amount, "1000")
