"""
Admin configuration for Tenant model.
"""

from django.contrib import admin
from simple_history.admin import SimpleHistoryAdmin

from .models import Tenant


@admin.register(Tenant)
class TenantAdmin(SimpleHistoryAdmin):
    list_display = ['name', 'slug', 'status', 'schema_name', 'trial_ends_at', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['name', 'slug', 'company_name', 'contact_email']
    readonly_fields = ['id', 'schema_name', 'created_at', 'updated_at', 'deleted_at']

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'name', 'slug', 'schema_name', 'company_name')
        }),
        ('Contact', {
            'fields': ('contact_email', 'contact_phone', 'website', 'logo_url')
        }),
        ('Status', {
            'fields': ('status', 'trial_ends_at', 'deleted_at')
        }),
        ('Configuration', {
            'fields': ('settings',),
            'classes': ('collapse',),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    actions = ['activate_tenants', 'suspend_tenants']

    @admin.action(description='Activate selected tenants')
    def activate_tenants(self, request, queryset):
        count = queryset.exclude(status=Tenant.STATUS_DEACTIVATED).update(status=Tenant.STATUS_ACTIVE)
        self.message_user(request, f'{count} tenant(s) activated.')

    @admin.action(description='Suspend selected tenants')
    def suspend_tenants(self, request, queryset):
        count = queryset.exclude(status=Tenant.STATUS_DEACTIVATED).update(status=Tenant.STATUS_SUSPENDED)
        self.message_user(request, f'{count} tenant(s) suspended.')
