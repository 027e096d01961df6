import uuid
from django.db import models


class Client(models.Model):
    """
    A customer company of the agency. Projects, quotes, invoices and
    tickets all hang off a client.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)

    name = models.CharField(max_length=255)
    contact_email = models.EmailField(blank=True, default="", help_text="Recipient of quotes, invoices and ticket e-mails")
    phone = models.CharField(max_length=50, blank=True, default="")
    address = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class ClientMember(models.Model):
    """Grants a CLIENT user access to one client account."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    client = models.ForeignKey(Client, on_delete=models.CASCADE, related_name='members')
    user_id = models.UUIDField(db_index=True)
    is_primary = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['client', 'user_id']

    def __str__(self):
        return f"{self.user_id} @ {self.client}"


class ProspectStatus(models.TextChoices):
    NEW = 'new', 'New'
    CONTACTED = 'contacted', 'Contacted'
    QUALIFIED = 'qualified', 'Qualified'


class Prospect(models.Model):
    """Lead that has not signed yet. Converted prospects become clients."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)

    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    status = models.CharField(max_length=20, choices=ProspectStatus.choices, default=ProspectStatus.NEW)
    source = models.CharField(max_length=100, blank=True, default="", help_text="Where the lead came from (referral, website...)")
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.name} ({self.status})"
