from django.contrib import admin
from .models import Document


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    list_display = ['label', 'project_id', 'mime_type', 'size_bytes', 'visibility', 'created_at']
    list_filter = ['visibility', 'mime_type']
    search_fields = ['label', 'original_name']
    readonly_fields = ['storage_path', 'size_bytes', 'created_at']
