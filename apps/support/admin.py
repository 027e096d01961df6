from django.contrib import admin
from .models import Ticket, TicketMessage, TicketAttachment, TicketCategory, TicketPriority


class TicketMessageInline(admin.TabularInline):
    model = TicketMessage
    extra = 0
    fields = ['author', 'visibility', 'body', 'created_at']
    readonly_fields = ['created_at']


class TicketAttachmentInline(admin.TabularInline):
    model = TicketAttachment
    extra = 0
    readonly_fields = ['storage_path', 'mime_type', 'size_bytes', 'created_at']


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ['subject', 'client_id', 'status', 'priority', 'first_response_due_at', 'resolve_due_at', 'created_at']
    list_filter = ['status', 'priority__code']
    search_fields = ['subject']
    readonly_fields = ['first_response_at', 'resolved_at', 'sla_warning_sent_at', 'sla_breach_sent_at']
    inlines = [TicketMessageInline, TicketAttachmentInline]


@admin.register(TicketPriority)
class TicketPriorityAdmin(admin.ModelAdmin):
    list_display = ['code', 'org_id', 'response_sla_minutes', 'resolve_sla_minutes']


@admin.register(TicketCategory)
class TicketCategoryAdmin(admin.ModelAdmin):
    list_display = ['label', 'org_id', 'is_active']
    list_filter = ['is_active']
