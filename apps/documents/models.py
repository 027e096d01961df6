import uuid
from django.db import models


class DocumentVisibility(models.TextChoices):
    PRIVATE = 'private', 'Private'
    PUBLIC = 'public', 'Public'


class Document(models.Model):
    """
    A file attached to a project. The bytes live in the default storage,
    this row only keeps the path and metadata.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org_id = models.UUIDField(db_index=True)
    project_id = models.UUIDField(db_index=True)  # Project reference

    label = models.CharField(max_length=255)
    original_name = models.CharField(max_length=255, blank=True, default="")
    storage_path = models.CharField(max_length=500, unique=True)
    mime_type = models.CharField(max_length=100)
    size_bytes = models.PositiveIntegerField()
    visibility = models.CharField(
        max_length=10,
        choices=DocumentVisibility.choices,
        default=DocumentVisibility.PRIVATE,
    )

    created_by_id = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.label
