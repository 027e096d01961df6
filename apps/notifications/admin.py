from django.contrib import admin
from .models import EmailEvent


@admin.register(EmailEvent)
class EmailEventAdmin(admin.ModelAdmin):
    list_display = ['event_type', 'recipient', 'status', 'ticket_id', 'created_at']
    list_filter = ['status', 'event_type']
    search_fields = ['recipient', 'provider_id']
    readonly_fields = [f.name for f in EmailEvent._meta.fields]
