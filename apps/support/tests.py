import json
import shutil
import tempfile
from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from types import SimpleNamespace

from django.core import mail
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import TestCase, SimpleTestCase, Client as HttpClient, override_settings
from django.utils import timezone

from apps.core.testing import make_org, make_user, make_client, make_client_user, make_project
from apps.identity.models import UserRole
from apps.notifications.models import EmailEvent
from apps.support import services, sla
from apps.support.defaults import seed_support_defaults
from apps.support.models import (
    MessageVisibility, Ticket, TicketAttachment, TicketCategory, TicketPriority, TicketStatus,
)

OPENED = datetime(2026, 3, 2, 9, 0, tzinfo=dt_timezone.utc)


class SlaEngineTest(SimpleTestCase):
    window = timedelta(minutes=60)

    def _ticket(self, **kwargs):
        fields = dict(first_response_due_at=None, resolve_due_at=None, first_response_at=None, resolved_at=None)
        fields.update(kwargs)
        return SimpleNamespace(**fields)

    def test_deadlines_from_priority(self):
        priority = SimpleNamespace(response_sla_minutes=120, resolve_sla_minutes=1440)
        first, resolve = sla.compute_sla_deadlines(priority, OPENED)
        self.assertEqual(first, OPENED + timedelta(hours=2))
        self.assertEqual(resolve, OPENED + timedelta(days=1))

    def test_no_priority_no_deadlines(self):
        self.assertEqual(sla.compute_sla_deadlines(None, OPENED), (None, None))

    def test_states(self):
        due = OPENED + timedelta(hours=2)
        ticket = self._ticket(first_response_due_at=due)
        self.assertEqual(sla.get_sla_state(ticket, OPENED, self.window).first_response, sla.OK)
        self.assertEqual(
            sla.get_sla_state(ticket, due - timedelta(minutes=30), self.window).first_response, sla.DUE_SOON
        )
        self.assertEqual(
            sla.get_sla_state(ticket, due + timedelta(minutes=1), self.window).first_response, sla.BREACHED
        )
        self.assertIsNone(sla.get_sla_state(ticket, OPENED, self.window).resolution)

    def test_done_on_time_is_met_and_late_is_breached(self):
        due = OPENED + timedelta(hours=2)
        on_time = self._ticket(first_response_due_at=due, first_response_at=due - timedelta(minutes=5))
        late = self._ticket(first_response_due_at=due, first_response_at=due + timedelta(minutes=5))
        now = due + timedelta(days=1)
        self.assertEqual(sla.get_sla_state(on_time, now, self.window).first_response, sla.MET)
        self.assertTrue(sla.get_sla_state(late, now, self.window).breached)


class SeedDefaultsTest(TestCase):
    def test_seed_is_idempotent(self):
        org = make_org()
        self.assertEqual(seed_support_defaults(org.id), (4, 5))
        self.assertEqual(seed_support_defaults(org.id), (0, 0))
        urgent = TicketPriority.objects.get(org_id=org.id, code="urgent")
        self.assertEqual((urgent.response_sla_minutes, urgent.resolve_sla_minutes), (30, 480))

    def test_command(self):
        org = make_org()
        out = StringIO()
        call_command("seed_support_defaults", "--org-id", str(org.id), stdout=out)
        self.assertEqual(TicketPriority.objects.filter(org_id=org.id).count(), 4)
        self.assertEqual(TicketCategory.objects.filter(org_id=org.id).count(), 5)
        self.assertIn("Seeded support defaults", out.getvalue())


class TicketServiceTest(TestCase):
    def setUp(self):
        self.org = make_org()
        seed_support_defaults(self.org.id)
        self.acme = make_client(self.org, name="Acme", contact_email="support@acme.test")
        self.customer = make_client_user(self.org, self.acme)
        self.staff = make_user(self.org, role=UserRole.STAFF)
        self.high = TicketPriority.objects.get(org_id=self.org.id, code="high")

    def _ticket(self, **kwargs):
        data = {"client_id": self.acme.id, "subject": "Site en panne", "priority_id": self.high.id}
        data.update(kwargs)
        return services.create_ticket(self.customer, data)

    def test_create_sets_deadlines_and_acknowledges(self):
        ticket = self._ticket(message="Le site ne répond plus")
        self.assertEqual(ticket.status, TicketStatus.OPEN)
        self.assertEqual(ticket.first_response_due_at - ticket.created_at, timedelta(minutes=120))
        self.assertIsNotNone(ticket.last_customer_activity)
        self.assertEqual(ticket.messages.get().visibility, MessageVisibility.PUBLIC)
        self.assertTrue(EmailEvent.objects.filter(ticket_id=ticket.id, event_type="ticket.created").exists())

    def test_create_without_priority_has_no_deadlines(self):
        ticket = self._ticket(priority_id=None)
        self.assertIsNone(ticket.first_response_due_at)
        self.assertIsNone(ticket.resolve_due_at)

    def test_create_for_foreign_client_rejected(self):
        other = make_client(self.org)
        with self.assertRaises(LookupError):
            self._ticket(client_id=other.id)

    def test_project_must_belong_to_client(self):
        other_project = make_project(self.org, make_client(self.org))
        with self.assertRaises(ValueError):
            self._ticket(project_id=other_project.id)

    def test_first_public_staff_reply_stamps_first_response(self):
        ticket = self._ticket()
        services.reply_ticket(ticket, self.staff, "Note interne", MessageVisibility.INTERNAL)
        self.assertIsNone(ticket.first_response_at)

        services.reply_ticket(ticket, self.staff, "Nous regardons")
        first = ticket.first_response_at
        self.assertIsNotNone(first)
        services.reply_ticket(ticket, self.staff, "Corrigé")
        self.assertEqual(ticket.first_response_at, first)

    def test_client_cannot_post_internal(self):
        ticket = self._ticket()
        with self.assertRaises(PermissionError):
            services.reply_ticket(ticket, self.customer, "secret", MessageVisibility.INTERNAL)

    def test_client_never_sees_internal_messages(self):
        ticket = self._ticket()
        services.reply_ticket(ticket, self.staff, "Note interne", MessageVisibility.INTERNAL)
        services.reply_ticket(ticket, self.staff, "Réponse")
        self.assertEqual([m.body for m in services.list_messages(ticket, self.customer)], ["Réponse"])
        self.assertEqual(len(services.list_messages(ticket, self.staff)), 2)

    def test_public_reply_emails_client(self):
        ticket = self._ticket()
        mail.outbox.clear()
        services.reply_ticket(ticket, self.staff, "Nous regardons")
        self.assertIn("support@acme.test", [m.to[0] for m in mail.outbox])
        event = EmailEvent.objects.filter(event_type="ticket.message.created").first()
        self.assertEqual(event.payload_excerpt, "Nous regardons")

    def test_reply_body_is_escaped_once_in_email(self):
        ticket = self._ticket()
        mail.outbox.clear()
        services.reply_ticket(ticket, self.staff, "Tarif <b>A</b> & B\nligne 2")
        html = mail.outbox[0].alternatives[0][0]
        self.assertIn("Tarif &lt;b&gt;A&lt;/b&gt; &amp; B<br>ligne 2", html)
        self.assertNotIn("&amp;amp;", html)
        self.assertNotIn("&amp;lt;", html)

    def test_customer_reply_resumes_waiting_ticket(self):
        ticket = self._ticket()
        services.change_ticket_status(ticket, TicketStatus.WAITING_CUSTOMER)
        services.reply_ticket(ticket, self.customer, "Voici les accès")
        self.assertEqual(ticket.status, TicketStatus.IN_PROGRESS)

    def test_status_transitions(self):
        ticket = self._ticket()
        services.change_ticket_status(ticket, TicketStatus.RESOLVED)
        self.assertIsNotNone(ticket.resolved_at)
        self.assertTrue(EmailEvent.objects.filter(event_type="ticket.status.changed", payload_excerpt="resolved").exists())

        services.change_ticket_status(ticket, TicketStatus.CLOSED)
        with self.assertRaises(ValueError):
            services.change_ticket_status(ticket, TicketStatus.IN_PROGRESS)

        services.change_ticket_status(ticket, TicketStatus.OPEN)
        self.assertIsNone(ticket.resolved_at)

    def test_invalid_status(self):
        with self.assertRaises(ValueError):
            services.change_ticket_status(self._ticket(), "archived")

    def test_closed_ticket_rejects_replies(self):
        ticket = self._ticket()
        services.change_ticket_status(ticket, TicketStatus.CLOSED)
        with self.assertRaises(ValueError):
            services.reply_ticket(ticket, self.customer, "Encore moi")

    def test_priority_change_recomputes_deadlines(self):
        ticket = self._ticket(priority_id=None)
        urgent = TicketPriority.objects.get(org_id=self.org.id, code="urgent")
        services.update_ticket(ticket, {"priority_id": urgent.id})
        self.assertEqual(ticket.first_response_due_at, ticket.created_at + timedelta(minutes=30))
        self.assertEqual(ticket.resolve_due_at, ticket.created_at + timedelta(minutes=480))


class SlaSweepTest(TestCase):
    def setUp(self):
        self.org = make_org()
        self.client_account = make_client(self.org, contact_email="support@acme.test")

    def _ticket(self, first_due, status=TicketStatus.OPEN, **kwargs):
        return Ticket.objects.create(
            org_id=self.org.id,
            client_id=self.client_account.id,
            subject="Site en panne",
            status=status,
            first_response_due_at=first_due,
            **kwargs,
        )

    def test_warns_then_breaches_once_each(self):
        now = timezone.now()
        ticket = self._ticket(now + timedelta(minutes=30))

        result = services.run_sla_sweep(now)
        self.assertEqual((result.warnings_sent, result.breaches_sent), (1, 0))
        self.assertEqual(services.run_sla_sweep(now).warnings_sent, 0)

        later = now + timedelta(hours=1)
        self.assertEqual(services.run_sla_sweep(later).breaches_sent, 1)
        self.assertEqual(services.run_sla_sweep(later).breaches_sent, 0)

        ticket.refresh_from_db()
        self.assertIsNotNone(ticket.sla_warning_sent_at)
        self.assertIsNotNone(ticket.sla_breach_sent_at)
        excerpts = list(
            EmailEvent.objects.filter(ticket_id=ticket.id, event_type="sla.reminder")
            .order_by("created_at").values_list("payload_excerpt", flat=True)
        )
        self.assertEqual(excerpts, ["pre", "over"])

    def test_skips_answered_and_inactive_tickets(self):
        now = timezone.now()
        self._ticket(now - timedelta(minutes=5), first_response_at=now - timedelta(minutes=30))
        self._ticket(now - timedelta(minutes=5), status=TicketStatus.WAITING_CUSTOMER)
        self._ticket(now - timedelta(minutes=5), status=TicketStatus.RESOLVED)
        self._ticket(None)
        result = services.run_sla_sweep(now)
        self.assertEqual((result.warnings_sent, result.breaches_sent), (0, 0))


@override_settings(CRON_SECRET="cron-secret")
class SupportAPITest(TestCase):
    def setUp(self):
        self.http = HttpClient()
        self.org = make_org()
        seed_support_defaults(self.org.id)
        self.acme = make_client(self.org, name="Acme")
        self.globex = make_client(self.org, name="Globex")
        self.customer = make_client_user(self.org, self.acme)
        self.admin = make_user(self.org, role=UserRole.ADMIN)
        self.media_root = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.media_root, ignore_errors=True)

    def _post(self, url, payload, **extra):
        return self.http.post(url, data=json.dumps(payload), content_type="application/json", **extra)

    def test_client_opens_ticket_and_reads_public_thread(self):
        self.http.force_login(self.customer)
        response = self._post("/api/support/tickets", {
            "client_id": str(self.acme.id), "subject": "Erreur 500", "message": "Depuis ce matin",
        })
        self.assertEqual(response.status_code, 200)
        ticket = Ticket.objects.get(id=response.json()["id"])
        services.reply_ticket(ticket, self.admin, "Note interne", MessageVisibility.INTERNAL)

        detail = self.http.get(f"/api/support/tickets/{ticket.id}").json()
        self.assertEqual([m["body"] for m in detail["messages"]], ["Depuis ce matin"])
        self.assertEqual(detail["sla"], {"first_response": None, "resolution": None})

    def test_client_cannot_open_ticket_for_other_client(self):
        self.http.force_login(self.customer)
        response = self._post("/api/support/tickets", {"client_id": str(self.globex.id), "subject": "Test"})
        self.assertEqual(response.status_code, 404)

    def test_client_cannot_change_status(self):
        ticket = services.create_ticket(self.customer, {"client_id": self.acme.id, "subject": "Test"})
        self.http.force_login(self.customer)
        response = self._post(f"/api/support/tickets/{ticket.id}/status", {"status": "closed"})
        self.assertEqual(response.status_code, 403)

    def test_admin_changes_status(self):
        ticket = services.create_ticket(self.customer, {"client_id": self.acme.id, "subject": "Test"})
        self.http.force_login(self.admin)
        response = self._post(f"/api/support/tickets/{ticket.id}/status", {"status": "resolved"})
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.json()["resolved_at"])

    def test_client_internal_message_forbidden(self):
        ticket = services.create_ticket(self.customer, {"client_id": self.acme.id, "subject": "Test"})
        self.http.force_login(self.customer)
        response = self._post(
            f"/api/support/tickets/{ticket.id}/messages", {"body": "x", "visibility": "internal"}
        )
        self.assertEqual(response.status_code, 403)

    def test_attachment_upload_and_download(self):
        ticket = services.create_ticket(self.customer, {"client_id": self.acme.id, "subject": "Test"})
        self.http.force_login(self.customer)
        upload = SimpleUploadedFile("capture.png", b"\x89PNG fake", content_type="image/png")
        with self.settings(MEDIA_ROOT=self.media_root):
            response = self.http.post(f"/api/support/tickets/{ticket.id}/attachments", {"file": upload})
            self.assertEqual(response.status_code, 200)
            attachment = TicketAttachment.objects.get()
            self.assertTrue(attachment.storage_path.startswith(f"tickets/{ticket.id}/"))
            self.assertEqual(response.json()["label"], "capture.png")

            response = self.http.get(
                f"/api/support/tickets/{ticket.id}/attachments/{attachment.id}/download"
            )
        self.assertEqual(response.status_code, 200)
        self.assertIn(attachment.storage_path, response.json()["download_url"])

    def test_attachment_rejects_bad_type(self):
        ticket = services.create_ticket(self.customer, {"client_id": self.acme.id, "subject": "Test"})
        self.http.force_login(self.customer)
        upload = SimpleUploadedFile("script.sh", b"echo", content_type="application/x-sh")
        with self.settings(MEDIA_ROOT=self.media_root):
            response = self.http.post(f"/api/support/tickets/{ticket.id}/attachments", {"file": upload})
        self.assertEqual(response.status_code, 400)

    def test_sla_notify_requires_secret(self):
        self.assertEqual(self._post("/api/support/sla/notify", {}).status_code, 401)
        response = self._post("/api/support/sla/notify", {}, HTTP_X_CRON_SECRET="wrong")
        self.assertEqual(response.status_code, 401)

    def test_sla_notify_batches(self):
        ticket = services.create_ticket(self.customer, {"client_id": self.acme.id, "subject": "Test"})
        response = self._post(
            "/api/support/sla/notify",
            {"dueSoon": [{"id": str(ticket.id), "subject": ticket.subject, "client_id": str(self.acme.id)}]},
            HTTP_X_CRON_SECRET="cron-secret",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["warnings_sent"], 1)
        self.assertTrue(
            EmailEvent.objects.filter(ticket_id=ticket.id, event_type="sla.reminder", payload_excerpt="pre").exists()
        )

    def test_sla_notify_without_batches_runs_sweep(self):
        Ticket.objects.create(
            org_id=self.org.id, client_id=self.acme.id, subject="Panne",
            first_response_due_at=timezone.now() - timedelta(minutes=1),
        )
        response = self._post("/api/support/sla/notify", {}, HTTP_X_CRON_SECRET="cron-secret")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["breaches_sent"], 1)
