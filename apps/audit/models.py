import uuid
from django.db import models


class AuditLog(models.Model):
    """
    Trail of critical mutations: who did what, on which record, and when.
    System actions (webhooks, scheduled jobs) have no performer.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)

    action = models.CharField(max_length=50, help_text="Action performed (e.g., ACCEPT_QUOTE)")
    target_type = models.CharField(max_length=50, help_text="Type of object acted on (e.g., Invoice)")
    target_id = models.UUIDField(help_text="ID of the object acted on")
    target_label = models.CharField(max_length=255, blank=True, help_text="Human-readable label of the object")

    performed_by = models.ForeignKey(
        'identity.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    performed_at = models.DateTimeField(auto_now_add=True)
    context = models.JSONField(default=dict, blank=True, help_text="Additional context/metadata")

    class Meta:
        ordering = ['-performed_at']
        verbose_name = "Audit Log"
        verbose_name_plural = "Audit Logs"
        indexes = [models.Index(fields=['org_id', 'target_type', 'target_id'])]

    def __str__(self):
        return f"{self.action} on {self.target_type} by {self.performed_by or 'system'}"
