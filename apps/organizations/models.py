import uuid
from django.db import models


class Organization(models.Model):
    """
    Represents a tenant: the agency operating the portal.
    All data is isolated per organization. The contact and legal fields
    are printed on quotes, invoices and e-mails.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    address = models.TextField(blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    website = models.URLField(blank=True, default="")
    legal_notice = models.TextField(
        blank=True,
        default="",
        help_text="Legal mentions printed at the bottom of quotes and invoices"
    )
    logo = models.URLField(blank=True, null=True)
    default_currency = models.CharField(max_length=3, default='XOF')
    settings = models.JSONField(
        default=dict,
        blank=True,
        help_text="Flexible metadata (e.g. e-mail footer, branding colors)"
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name
