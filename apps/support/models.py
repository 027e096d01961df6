import uuid
from django.db import models
from django.conf import settings


class TicketStatus(models.TextChoices):
    OPEN = 'open', 'Open'
    IN_PROGRESS = 'in_progress', 'In progress'
    WAITING_CUSTOMER = 'waiting_customer', 'Waiting for customer'
    RESOLVED = 'resolved', 'Resolved'
    CLOSED = 'closed', 'Closed'


class MessageVisibility(models.TextChoices):
    PUBLIC = 'public', 'Public'
    INTERNAL = 'internal', 'Internal'


class PriorityCode(models.TextChoices):
    LOW = 'low', 'Low'
    NORMAL = 'normal', 'Normal'
    HIGH = 'high', 'High'
    URGENT = 'urgent', 'Urgent'


class TicketCategory(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)
    label = models.CharField(max_length=100)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['label']
        verbose_name_plural = 'Ticket categories'
        unique_together = ['org_id', 'label']

    def __str__(self):
        return self.label


class TicketPriority(models.Model):
    """SLA targets, in minutes from ticket creation."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)
    code = models.CharField(max_length=20, choices=PriorityCode.choices)
    response_sla_minutes = models.PositiveIntegerField()
    resolve_sla_minutes = models.PositiveIntegerField()

    class Meta:
        ordering = ['resolve_sla_minutes']
        verbose_name_plural = 'Ticket priorities'
        unique_together = ['org_id', 'code']

    def __str__(self):
        return self.get_code_display()


class Ticket(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)
    client_id = models.UUIDField(db_index=True)  # clients.Client reference
    project_id = models.UUIDField(null=True, blank=True)  # projects.Project reference

    category = models.ForeignKey(
        TicketCategory, on_delete=models.SET_NULL, null=True, blank=True, related_name='tickets'
    )
    priority = models.ForeignKey(
        TicketPriority, on_delete=models.SET_NULL, null=True, blank=True, related_name='tickets'
    )
    subject = models.CharField(max_length=255)
    status = models.CharField(max_length=20, choices=TicketStatus.choices, default=TicketStatus.OPEN)

    # SLA
    first_response_due_at = models.DateTimeField(null=True, blank=True)
    resolve_due_at = models.DateTimeField(null=True, blank=True)
    first_response_at = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    sla_warning_sent_at = models.DateTimeField(null=True, blank=True)
    sla_breach_sent_at = models.DateTimeField(null=True, blank=True)

    last_customer_activity = models.DateTimeField(null=True, blank=True)
    last_admin_activity = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='tickets'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['org_id', 'status']),
        ]

    def __str__(self):
        return self.subject


class TicketMessage(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name='messages')
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='ticket_messages'
    )
    body = models.TextField()
    visibility = models.CharField(
        max_length=10, choices=MessageVisibility.choices, default=MessageVisibility.PUBLIC
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']


class TicketAttachment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name='attachments')
    label = models.CharField(max_length=255)
    original_name = models.CharField(max_length=255, blank=True, default="")
    storage_path = models.CharField(max_length=500, unique=True)
    mime_type = models.CharField(max_length=100)
    size_bytes = models.PositiveIntegerField()
    created_by_id = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']

    def __str__(self):
        return self.label
