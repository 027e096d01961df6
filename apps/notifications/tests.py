from unittest import mock
from uuid import uuid4

from django.core import mail
from django.test import TestCase

from apps.notifications.models import EmailEvent, EmailStatus
from apps.notifications import email_service


class RenderEmailTest(TestCase):
    def test_layout_contains_title_content_and_footer(self):
        html = email_service.render_email(
            "Nouveau devis", "<p>Votre devis D-2026-0001</p>", preheader="Devis", footer="Agence"
        )
        self.assertIn("Nouveau devis", html)
        self.assertIn("<p>Votre devis D-2026-0001</p>", html)
        self.assertIn("Agence", html)

    def test_default_footer(self):
        html = email_service.render_email("Titre", "Corps")
        self.assertIn("Tous droits réservés", html)


class SendEmailTest(TestCase):
    def test_send_returns_message_id(self):
        result = email_service.send_email("client@test.com", "Bonjour", "<p>Bonjour</p>")
        self.assertTrue(result.ok)
        self.assertTrue(result.message_id)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["client@test.com"])
        self.assertEqual(mail.outbox[0].alternatives[0][1], "text/html")

    def test_backend_failure_never_raises(self):
        with mock.patch.object(
            email_service.EmailMultiAlternatives, "send", side_effect=OSError("smtp down")
        ):
            result = email_service.send_email("client@test.com", "Bonjour", "<p>Bonjour</p>")
        self.assertFalse(result.ok)
        self.assertIn("smtp down", result.error)

    def test_no_recipient(self):
        result = email_service.send_email([], "Bonjour", "<p>Bonjour</p>")
        self.assertFalse(result.ok)
        self.assertEqual(len(mail.outbox), 0)


class NotifyTest(TestCase):
    def test_one_event_per_distinct_recipient(self):
        org_id = uuid4()
        ticket_id = uuid4()
        results = email_service.notify(
            org_id=org_id,
            recipients=["a@test.com", "b@test.com", "a@test.com", ""],
            subject="Ticket",
            html="<p>Réponse</p>",
            event_type="ticket.message.created",
            ticket_id=ticket_id,
            excerpt="x" * 500,
        )
        self.assertEqual(len(results), 2)
        events = EmailEvent.objects.filter(ticket_id=ticket_id)
        self.assertEqual(events.count(), 2)
        self.assertTrue(all(e.status == EmailStatus.SENT for e in events))
        self.assertEqual(len(events[0].payload_excerpt), 200)

    def test_failed_send_recorded_as_failed(self):
        org_id = uuid4()
        with mock.patch.object(
            email_service.EmailMultiAlternatives, "send", side_effect=OSError("smtp down")
        ):
            email_service.notify(
                org_id=org_id, recipients=["a@test.com"], subject="S", html="<p>x</p>",
                event_type="sla.reminder",
            )
        self.assertEqual(EmailEvent.objects.get(org_id=org_id).status, EmailStatus.FAILED)
