import uuid
from django.db import models
from django.contrib.auth.models import AbstractUser


class UserRole(models.TextChoices):
    ADMIN = 'ADMIN', 'Administrator'
    STAFF = 'STAFF', 'Staff'
    CLIENT = 'CLIENT', 'Client'


class User(AbstractUser):
    """
    Portal user. Agency members (ADMIN/STAFF) see the whole organization;
    CLIENT users only see the client accounts they are members of.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Store org_id as UUID field (no FK to maintain app independence)
    org_id = models.UUIDField(null=True, blank=True, db_index=True)
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CLIENT
    )
    full_name = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=30, blank=True)
    avatar_url = models.URLField(blank=True)
    preferences = models.JSONField(
        default=dict,
        blank=True,
        help_text="UI and notification preferences (e.g. email_notifications, language)"
    )

    class Meta:
        ordering = ['username']

    def __str__(self):
        return self.email or self.username

    @property
    def is_agency_member(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.STAFF)

    @property
    def display_name(self) -> str:
        return self.full_name or self.get_full_name() or self.username
