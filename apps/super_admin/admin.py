from django.contrib import admin
from simple_history.admin import SimpleHistoryAdmin

from .models import PlatformAdmin, PlatformConfig, PlatformSettings, TenantActivityLog


@admin.register(PlatformAdmin)
class PlatformAdminAdmin(admin.ModelAdmin):
    list_display = ('email', 'full_name', 'is_super_admin', 'is_active', 'last_login_at')
    list_filter = ('is_super_admin', 'is_active')
    search_fields = ('email', 'first_name', 'last_name')
    exclude = ('password',)
    readonly_fields = ('last_login_at', 'failed_login_attempts', 'lockout_ends_at')


@admin.register(PlatformConfig)
class PlatformConfigAdmin(SimpleHistoryAdmin):
    list_display = ('maintenance_mode', 'support_email', 'updated_at')


@admin.register(PlatformSettings)
class PlatformSettingsAdmin(admin.ModelAdmin):
    list_display = ('key', 'category', 'is_public', 'updated_at')
    list_filter = ('category', 'is_public')
    search_fields = ('key', 'description')


@admin.register(TenantActivityLog)
class TenantActivityLogAdmin(admin.ModelAdmin):
    list_display = ('tenant', 'action', 'performed_by', 'ip_address', 'performed_at')
    list_filter = ('action',)
    search_fields = ('tenant__slug', 'performed_by__email')
    readonly_fields = ('tenant', 'performed_by', 'action', 'details', 'ip_address', 'performed_at')
