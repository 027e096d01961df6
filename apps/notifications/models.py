import uuid
from django.db import models


class EmailStatus(models.TextChoices):
    SENT = 'sent', 'Sent'
    FAILED = 'failed', 'Failed'


class EmailEvent(models.Model):
    """
    One outgoing e-mail: who got it, why, and whether the backend accepted it.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)
    ticket_id = models.UUIDField(null=True, blank=True, db_index=True)  # Support ticket reference

    event_type = models.CharField(max_length=64, db_index=True)
    recipient = models.EmailField()
    status = models.CharField(max_length=10, choices=EmailStatus.choices)
    provider_id = models.CharField(max_length=255, blank=True, default="")
    payload_excerpt = models.CharField(max_length=200, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.event_type} -> {self.recipient} ({self.status})"
