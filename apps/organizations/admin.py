from django.contrib import admin
from .models import Organization


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'default_currency', 'is_active', 'created_at']
    list_filter = ['is_active', 'default_currency']
    search_fields = ['name', 'email', 'website']
