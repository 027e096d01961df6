from django.contrib import admin
from .models import Payment, PaymentAttempt


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(admin.ModelAdmin):
    list_display = ['transaction_id', 'invoice_id', 'status', 'amount', 'currency', 'notify_count', 'last_checked_at']
    list_filter = ['status', 'currency']
    search_fields = ['transaction_id', 'payment_token']
    readonly_fields = ['transaction_id', 'payment_token', 'payment_url', 'notify_count', 'last_checked_at']


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['gateway_transaction_id', 'invoice_id', 'status', 'amount', 'currency', 'method', 'paid_at']
    list_filter = ['status', 'currency', 'method']
    search_fields = ['gateway_transaction_id', 'operator_id']
    readonly_fields = ['raw_payload']
