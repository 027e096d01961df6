"""
Outgoing e-mail for quotes, tickets and SLA reminders.

Sending goes through Django's mail framework (SMTP in production, the
console or locmem backend elsewhere). Nothing in here raises: callers get
an EmailResult and the business operation carries on.
"""
import logging
from email.utils import make_msgid
from typing import Iterable, List, Optional, Union
from uuid import UUID

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils.html import strip_tags

from .dtos import EmailResult
from .models import EmailEvent, EmailStatus

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 200


def render_email(title: str, content: str, preheader: str = "", footer: Optional[str] = None) -> str:
    """Wrap an HTML fragment in the shared e-mail layout."""
    brand = getattr(settings, 'EMAIL_BRAND_NAME', 'CPMS')
    return render_to_string('notifications/email.html', {
        'title': title,
        'content': content,
        'preheader': preheader,
        'footer': footer or f"© {brand}. Tous droits réservés.",
        'brand': brand,
        'base_url': settings.APP_BASE_URL,
    })


def send_email(to: Union[str, Iterable[str]], subject: str, html: str) -> EmailResult:
    recipients = [to] if isinstance(to, str) else [r for r in to if r]
    if not recipients:
        return EmailResult(ok=False, error="No recipient")

    message_id = make_msgid(domain='cpms')
    try:
        message = EmailMultiAlternatives(
            subject=subject,
            body=strip_tags(html),
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=recipients,
            headers={'Message-ID': message_id},
        )
        message.attach_alternative(html, 'text/html')
        message.send(fail_silently=False)
    except Exception as e:
        logger.error(f"E-mail '{subject}' to {recipients} failed: {e}")
        return EmailResult(ok=False, error=str(e))

    logger.info(f"E-mail '{subject}' sent to {len(recipients)} recipient(s)")
    return EmailResult(ok=True, message_id=message_id)


def record_email_event(
    *,
    org_id: UUID,
    event_type: str,
    recipient: str,
    result: EmailResult,
    ticket_id: Optional[UUID] = None,
    excerpt: str = "",
) -> Optional[EmailEvent]:
    try:
        return EmailEvent.objects.create(
            org_id=org_id,
            ticket_id=ticket_id,
            event_type=event_type,
            recipient=recipient,
            status=EmailStatus.SENT if result.ok else EmailStatus.FAILED,
            provider_id=result.message_id or "",
            payload_excerpt=(excerpt or "")[:EXCERPT_LENGTH],
        )
    except Exception as e:
        logger.error(f"Could not record e-mail event {event_type} for {recipient}: {e}")
        return None


def notify(
    *,
    org_id: UUID,
    recipients: Iterable[str],
    subject: str,
    html: str,
    event_type: str,
    ticket_id: Optional[UUID] = None,
    excerpt: str = "",
) -> List[EmailResult]:
    """Send one e-mail per recipient and keep an EmailEvent for each."""
    results = []
    for recipient in dict.fromkeys(r for r in recipients if r):
        result = send_email(recipient, subject, html)
        record_email_event(
            org_id=org_id,
            event_type=event_type,
            recipient=recipient,
            result=result,
            ticket_id=ticket_id,
            excerpt=excerpt,
        )
        results.append(result)
    return results
