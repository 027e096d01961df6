from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import User


@admin.register(User)
class PortalUserAdmin(UserAdmin):
    list_display = ['username', 'email', 'full_name', 'role', 'org_id', 'is_active']
    list_filter = ['role', 'is_active']
    search_fields = ['username', 'email', 'full_name']
    fieldsets = UserAdmin.fieldsets + (
        ('Portal', {'fields': ('org_id', 'role', 'full_name', 'phone', 'avatar_url', 'preferences')}),
    )
