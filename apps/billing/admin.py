from django.contrib import admin
from .models import Quote, QuoteItem, Invoice, InvoiceItem, DocumentSequence


class QuoteItemInline(admin.TabularInline):
    model = QuoteItem
    extra = 0


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0


@admin.register(Quote)
class QuoteAdmin(admin.ModelAdmin):
    list_display = ['number', 'client_id', 'status', 'total_ttc', 'currency', 'expires_at', 'created_at']
    list_filter = ['status', 'currency']
    search_fields = ['number']
    readonly_fields = ['number', 'total_ht', 'total_tva', 'total_ttc']
    inlines = [QuoteItemInline]


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['number', 'client_id', 'status', 'total_ttc', 'currency', 'due_date', 'paid_at']
    list_filter = ['status', 'currency']
    search_fields = ['number', 'external_ref']
    readonly_fields = ['number', 'total_ht', 'total_tva', 'total_ttc', 'paid_at']
    inlines = [InvoiceItemInline]


@admin.register(DocumentSequence)
class DocumentSequenceAdmin(admin.ModelAdmin):
    list_display = ['org_id', 'prefix', 'year', 'last_value']
