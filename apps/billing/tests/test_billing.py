import json
from datetime import date, timedelta
from decimal import Decimal
from unittest import mock

from django.core import mail
from django.db import transaction
from django.test import TestCase, Client as HttpClient, override_settings
from django.utils import timezone

from apps.core.testing import make_org, make_user, make_client, make_client_user, make_project
from apps.identity.models import UserRole
from apps.billing.models import (
    Quote, QuoteStatus, Invoice, InvoiceItem, InvoiceStatus, DocumentSequence,
)
from apps.billing import services, pdf_service
from apps.notifications.models import EmailEvent


def make_quote(org, client, items=None, **kwargs):
    data = {"client_id": client.id, "items": items or [
        {"label": "Site vitrine", "qty": 1, "unit_price": "500000", "vat_rate": 18},
        {"label": "Hébergement", "qty": 12, "unit_price": "5000", "vat_rate": 18},
    ]}
    data.update(kwargs)
    return services.create_quote(org.id, data)


class NumberingTest(TestCase):
    def test_sequential_per_org_and_prefix(self):
        org = make_org()
        other = make_org()
        today = date(2026, 3, 1)
        with transaction.atomic():
            self.assertEqual(services.next_number(org.id, "D", today), "D-2026-0001")
            self.assertEqual(services.next_number(org.id, "D", today), "D-2026-0002")
            self.assertEqual(services.next_number(org.id, "F", today), "F-2026-0001")
            self.assertEqual(services.next_number(other.id, "D", today), "D-2026-0001")
            self.assertEqual(services.next_number(org.id, "D", date(2027, 1, 2)), "D-2027-0001")
        self.assertEqual(DocumentSequence.objects.filter(org_id=org.id).count(), 3)

    def test_created_documents_get_numbers(self):
        org = make_org()
        client = make_client(org)
        year = timezone.localdate().year
        first = make_quote(org, client)
        second = make_quote(org, client)
        self.assertEqual(first.number, f"D-{year}-0001")
        self.assertEqual(second.number, f"D-{year}-0002")


class QuoteServiceTest(TestCase):
    def setUp(self):
        self.org = make_org()
        self.client_account = make_client(self.org, contact_email="compta@client.test")

    def test_create_computes_totals(self):
        quote = make_quote(self.org, self.client_account)
        self.assertEqual(quote.status, QuoteStatus.DRAFT)
        self.assertEqual(quote.total_ht, Decimal("560000.00"))
        self.assertEqual(quote.total_tva, Decimal("100800.00"))
        self.assertEqual(quote.total_ttc, Decimal("660800.00"))
        self.assertEqual(quote.currency, "XOF")

    def test_item_changes_recompute_totals(self):
        quote = make_quote(self.org, self.client_account)
        item = services.add_quote_item(quote, {"label": "Logo", "unit_price": "100000", "vat_rate": 0})
        quote.refresh_from_db()
        self.assertEqual(quote.total_ttc, Decimal("760800.00"))

        services.update_quote_item(item, {"qty": 2})
        quote.refresh_from_db()
        self.assertEqual(quote.total_ttc, Decimal("860800.00"))

        services.delete_quote_item(item)
        quote.refresh_from_db()
        self.assertEqual(quote.total_ttc, Decimal("660800.00"))

    def test_invalid_item_rejected(self):
        quote = make_quote(self.org, self.client_account)
        with self.assertRaises(ValueError):
            services.add_quote_item(quote, {"label": "X", "unit_price": "-1"})

    def test_project_must_belong_to_client(self):
        other_client = make_client(self.org)
        project = make_project(self.org, other_client)
        with self.assertRaises(ValueError):
            make_quote(self.org, self.client_account, project_id=project.id)

    def test_client_from_other_org_rejected(self):
        with self.assertRaises(ValueError):
            make_quote(self.org, make_client(make_org()))

    def test_send_sets_default_expiry_and_emails(self):
        quote = make_quote(self.org, self.client_account)
        today = date(2026, 5, 4)
        services.send_quote(quote, today=today)

        quote.refresh_from_db()
        self.assertEqual(quote.status, QuoteStatus.SENT)
        self.assertEqual(quote.expires_at, today + timedelta(days=14))
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["compta@client.test"])
        self.assertIn(quote.number, mail.outbox[0].subject)
        self.assertTrue(EmailEvent.objects.filter(event_type="quote.sent").exists())

    def test_send_keeps_existing_expiry(self):
        quote = make_quote(self.org, self.client_account, expires_at=date(2026, 12, 31))
        services.send_quote(quote, today=date(2026, 5, 4))
        self.assertEqual(quote.expires_at, date(2026, 12, 31))

    def test_send_survives_mail_failure(self):
        quote = make_quote(self.org, self.client_account)
        with mock.patch(
            "apps.notifications.email_service.EmailMultiAlternatives.send",
            side_effect=OSError("smtp down"),
        ):
            services.send_quote(quote)
        quote.refresh_from_db()
        self.assertEqual(quote.status, QuoteStatus.SENT)

    def test_accept_creates_issued_invoice(self):
        quote = make_quote(self.org, self.client_account)
        services.send_quote(quote, today=date(2026, 5, 4))

        invoice = services.accept_quote(quote, today=date(2026, 5, 10))

        quote.refresh_from_db()
        self.assertEqual(quote.status, QuoteStatus.ACCEPTED)
        self.assertEqual(invoice.status, InvoiceStatus.ISSUED)
        self.assertEqual(invoice.source_quote_id, quote.id)
        self.assertEqual(invoice.due_date, date(2026, 6, 9))
        self.assertEqual(invoice.total_ttc, quote.total_ttc)
        self.assertTrue(invoice.number.startswith("F-2026-"))
        self.assertEqual(
            list(InvoiceItem.objects.filter(invoice=invoice).values_list("label", flat=True)),
            ["Site vitrine", "Hébergement"],
        )

    def test_accept_requires_sent(self):
        quote = make_quote(self.org, self.client_account)
        with self.assertRaises(ValueError):
            services.accept_quote(quote)
        self.assertFalse(Invoice.objects.exists())

    def test_accept_expired_quote_rejected(self):
        quote = make_quote(self.org, self.client_account, expires_at=date(2026, 5, 1))
        services.send_quote(quote, today=date(2026, 4, 20))
        with self.assertRaises(ValueError):
            services.accept_quote(quote, today=date(2026, 5, 2))
        quote.refresh_from_db()
        self.assertEqual(quote.status, QuoteStatus.SENT)

    def test_accept_is_atomic(self):
        quote = make_quote(self.org, self.client_account)
        services.send_quote(quote)
        with mock.patch.object(InvoiceItem.objects, "bulk_create", side_effect=RuntimeError("db down")):
            with self.assertRaises(RuntimeError):
                services.accept_quote(quote)
        quote.refresh_from_db()
        self.assertEqual(quote.status, QuoteStatus.SENT)
        self.assertFalse(Invoice.objects.exists())

    def test_expire_quotes(self):
        old = make_quote(self.org, self.client_account, expires_at=date(2026, 1, 1))
        fresh = make_quote(self.org, self.client_account, expires_at=date(2026, 12, 31))
        services.send_quote(old)
        services.send_quote(fresh)

        self.assertEqual(services.expire_quotes(today=date(2026, 6, 1)), 1)
        old.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(old.status, QuoteStatus.EXPIRED)
        self.assertEqual(fresh.status, QuoteStatus.SENT)

    def test_only_draft_quotes_deleted(self):
        quote = make_quote(self.org, self.client_account)
        services.send_quote(quote)
        with self.assertRaises(ValueError):
            services.delete_quote(quote)


class InvoiceServiceTest(TestCase):
    def setUp(self):
        self.org = make_org()
        self.client_account = make_client(self.org)

    def make_invoice(self, **kwargs):
        data = {
            "client_id": self.client_account.id,
            "items": [{"label": "Maintenance", "qty": 1, "unit_price": "150000", "vat_rate": 18}],
        }
        data.update(kwargs)
        return services.create_invoice(self.org.id, data)

    def test_defaults_to_issued(self):
        invoice = self.make_invoice()
        self.assertEqual(invoice.status, InvoiceStatus.ISSUED)
        self.assertEqual(invoice.total_ttc, Decimal("177000.00"))

    def test_cannot_create_paid_invoice(self):
        with self.assertRaises(ValueError):
            self.make_invoice(status="paid")

    def test_mark_overdue(self):
        late = self.make_invoice(due_date=date(2026, 1, 10))
        sent_late = self.make_invoice(due_date=date(2026, 1, 10))
        services.update_invoice(sent_late, {"status": "sent"})
        on_time = self.make_invoice(due_date=date(2026, 3, 1))

        self.assertEqual(services.mark_overdue_invoices(today=date(2026, 2, 1)), 2)
        for invoice, expected in ((late, "overdue"), (sent_late, "overdue"), (on_time, "issued")):
            invoice.refresh_from_db()
            self.assertEqual(invoice.status, expected)

    def test_paid_invoice_is_locked(self):
        invoice = self.make_invoice()
        services.mark_invoice_paid(invoice)
        self.assertIsNotNone(invoice.paid_at)
        with self.assertRaises(ValueError):
            services.cancel_invoice(invoice)
        with self.assertRaises(ValueError):
            services.add_invoice_item(invoice, {"label": "Extra", "unit_price": "1"})
        with self.assertRaises(ValueError):
            services.delete_invoice(invoice)

    def test_delete_blocked_by_payments(self):
        from apps.payments.models import Payment, PaymentStatus
        invoice = self.make_invoice()
        Payment.objects.create(
            org_id=self.org.id, invoice_id=invoice.id, amount=invoice.total_ttc,
            currency="XOF", status=PaymentStatus.REFUSED,
        )
        with self.assertRaises(ValueError):
            services.delete_invoice(invoice)


class PdfServiceTest(TestCase):
    def setUp(self):
        self.org = make_org(name="Studio Lagune", legal_notice="RCCM CI-ABJ-2026")
        self.client_account = make_client(self.org, name="Acme")
        self.invoice = services.create_invoice(self.org.id, {
            "client_id": self.client_account.id,
            "items": [{"label": "Maintenance", "qty": 1, "unit_price": "1000", "vat_rate": 18}],
        })

    def test_invoice_context(self):
        context = pdf_service.build_invoice_context(self.invoice)
        self.assertEqual(context["organization"], self.org)
        self.assertEqual(context["client"], self.client_account)
        self.assertTrue(context["payable"])
        self.assertEqual(len(context["items"]), 1)

    def test_overdue_invoice_has_no_payment_prompt(self):
        services.update_invoice(self.invoice, {"due_date": date(2026, 1, 10)})
        services.mark_overdue_invoices(today=date(2026, 2, 1))
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, InvoiceStatus.OVERDUE)
        self.assertFalse(pdf_service.build_invoice_context(self.invoice)["payable"])

    def test_past_due_issued_invoice_has_no_payment_prompt(self):
        self.invoice.due_date = timezone.localdate() - timedelta(days=1)
        self.invoice.save(update_fields=["due_date"])
        self.assertFalse(pdf_service.build_invoice_context(self.invoice)["payable"])

    def test_generate_uses_weasyprint(self):
        html_class = mock.MagicMock()
        html_class.return_value.write_pdf.side_effect = lambda target: target.write(b"%PDF-1.7 fake")
        with mock.patch.object(pdf_service, "_get_weasyprint", return_value=html_class):
            content = pdf_service.generate_invoice_pdf(self.invoice)

        self.assertEqual(content, b"%PDF-1.7 fake")
        html = html_class.call_args.kwargs["string"]
        self.assertIn("FACTURE", html)
        self.assertIn(self.invoice.number, html)
        self.assertIn("RCCM CI-ABJ-2026", html)
        self.assertIn("Paiement en ligne disponible", html)

    @override_settings(STORAGES={
        "default": {"BACKEND": "django.core.files.storage.InMemoryStorage"},
        "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
    })
    def test_store_billing_pdf_records_url(self):
        with mock.patch.object(pdf_service, "generate_invoice_pdf", return_value=b"%PDF"):
            url = pdf_service.store_billing_pdf("invoice", self.invoice.id)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.pdf_url, url)
        self.assertIn(f"facture-{self.invoice.number}", url)

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            pdf_service.store_billing_pdf("receipt", self.invoice.id)


class BillingAPITest(TestCase):
    def setUp(self):
        self.http = HttpClient()
        self.org = make_org()
        self.admin = make_user(self.org, role=UserRole.ADMIN)
        self.staff = make_user(self.org, role=UserRole.STAFF)
        self.acme = make_client(self.org, name="Acme")
        self.globex = make_client(self.org, name="Globex")
        self.acme_user = make_client_user(self.org, self.acme)

    def _post(self, url, payload=None):
        return self.http.post(url, data=json.dumps(payload or {}), content_type="application/json")

    def test_admin_builds_and_sends_quote(self):
        self.http.force_login(self.admin)
        response = self._post("/api/billing/quotes", {
            "client_id": str(self.acme.id),
            "items": [{"label": "Audit SEO", "qty": 1, "unit_price": "250000", "vat_rate": 18}],
        })
        self.assertEqual(response.status_code, 200)
        quote_id = response.json()["id"]
        self.assertEqual(Decimal(str(response.json()["total_ttc"])), Decimal("295000"))
        self.assertEqual(len(response.json()["items"]), 1)

        response = self._post(f"/api/billing/quotes/{quote_id}/items",
                              {"label": "Rapport", "unit_price": "50000", "vat_rate": 0})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(str(response.json()["line_ttc"])), Decimal("50000"))

        response = self._post(f"/api/billing/quotes/{quote_id}/send")
        self.assertEqual(response.json()["status"], "sent")

    def test_item_amounts_must_fit_columns(self):
        quote = make_quote(self.org, self.acme)
        item = quote.items.first()
        self.http.force_login(self.admin)

        too_large = self._post(f"/api/billing/quotes/{quote.id}/items",
                               {"label": "Licence", "unit_price": "1000000000000000", "vat_rate": 18})
        self.assertEqual(too_large.status_code, 422)
        too_precise = self._post(f"/api/billing/quotes/{quote.id}/items",
                                 {"label": "Licence", "qty": "1.125", "unit_price": "1000"})
        self.assertEqual(too_precise.status_code, 422)
        response = self.http.patch(f"/api/billing/quote-items/{item.id}",
                                   data=json.dumps({"vat_rate": "1000"}), content_type="application/json")
        self.assertEqual(response.status_code, 422)
        self.assertEqual(quote.items.count(), 2)

    def test_store_pdf_endpoint_queues_task(self):
        invoice = services.create_invoice(self.org.id, {
            "client_id": self.acme.id,
            "items": [{"label": "Maintenance", "qty": 1, "unit_price": "1000", "vat_rate": 18}],
        })
        self.http.force_login(self.admin)
        with mock.patch("apps.billing.api.TaskService.store_billing_pdf", return_value="task-1") as queue:
            response = self._post(f"/api/billing/invoices/{invoice.id}/pdf/store")

        self.assertEqual(response.json(), {"task_id": "task-1"})
        queue.assert_called_once_with(kind="invoice", document_id=invoice.id)

    def test_staff_cannot_create_quote(self):
        self.http.force_login(self.staff)
        response = self._post("/api/billing/quotes", {"client_id": str(self.acme.id)})
        self.assertEqual(response.status_code, 403)

    def test_client_accepts_own_quote(self):
        quote = make_quote(self.org, self.acme)
        services.send_quote(quote)
        self.http.force_login(self.acme_user)

        response = self._post(f"/api/billing/quotes/{quote.id}/accept")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "issued")
        self.assertEqual(response.json()["source_quote_id"], str(quote.id))

    def test_client_cannot_see_other_client_invoices(self):
        services.create_invoice(self.org.id, {"client_id": self.globex.id})
        own = services.create_invoice(self.org.id, {"client_id": self.acme.id})
        self.http.force_login(self.acme_user)

        response = self.http.get("/api/billing/invoices")
        self.assertEqual([i["id"] for i in response.json()], [str(own.id)])

    def test_accept_draft_is_400(self):
        quote = make_quote(self.org, self.acme)
        self.http.force_login(self.admin)
        self.assertEqual(self._post(f"/api/billing/quotes/{quote.id}/accept").status_code, 400)

    def test_invoice_pdf_inline(self):
        invoice = services.create_invoice(self.org.id, {"client_id": self.acme.id})
        self.http.force_login(self.acme_user)
        with mock.patch.object(pdf_service, "generate_invoice_pdf", return_value=b"%PDF-1.7"):
            response = self.http.get(f"/api/billing/invoices/{invoice.id}/pdf")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "application/pdf")
        self.assertTrue(response["Content-Disposition"].startswith("inline;"))
        self.assertEqual(response.content, b"%PDF-1.7")
