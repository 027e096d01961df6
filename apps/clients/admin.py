from django.contrib import admin
from .models import Client, ClientMember, Prospect


class ClientMemberInline(admin.TabularInline):
    model = ClientMember
    extra = 0


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ['name', 'contact_email', 'org_id', 'created_at']
    search_fields = ['name', 'contact_email']
    inlines = [ClientMemberInline]


@admin.register(Prospect)
class ProspectAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'status', 'source', 'created_at']
    list_filter = ['status']
    search_fields = ['name', 'email']
