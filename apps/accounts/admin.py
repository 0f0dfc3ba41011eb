"""
Admin configuration for identity models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from simple_history.admin import SimpleHistoryAdmin

from .models import Permission, RefreshToken, Role, User


@admin.register(User)
class UserAdmin(SimpleHistoryAdmin, BaseUserAdmin):
    """
    Admin interface for tenant users with history tracking.
    """
    list_display = [
        'email', 'get_full_name', 'tenant', 'is_active', 'email_verified',
        'failed_login_attempts', 'created_at'
    ]
    list_filter = ['is_active', 'is_staff', 'email_verified', 'tenant', 'created_at']
    search_fields = ['username', 'email', 'first_name', 'last_name']
    ordering = ['-created_at']
    filter_horizontal = ('roles', 'groups', 'user_permissions')

    fieldsets = BaseUserAdmin.fieldsets + (
        ('Tenant Information', {
            'fields': ('tenant', 'roles')
        }),
        ('Additional Information', {
            'fields': ('phone', 'avatar_url', 'email_verified')
        }),
        ('Login Tracking', {
            'fields': ('last_login_at', 'failed_login_attempts', 'lockout_ends_at'),
            'classes': ('collapse',),
        }),
    )

    readonly_fields = ['created_at', 'updated_at', 'last_login_at']

    actions = ['unlock_users']

    def unlock_users(self, request, queryset):
        """Clear failed-login lockouts."""
        count = queryset.update(failed_login_attempts=0, lockout_ends_at=None)
        self.message_user(request, f'{count} user(s) unlocked.')
    unlock_users.short_description = 'Unlock selected users'


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name', 'tenant', 'is_system', 'created_at']
    list_filter = ['is_system', 'tenant']
    search_fields = ['name']
    filter_horizontal = ('permissions',)


@admin.register(Permission)
class PermissionAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'module']
    list_filter = ['module']
    search_fields = ['code', 'name']


@admin.register(RefreshToken)
class RefreshTokenAdmin(admin.ModelAdmin):
    list_display = ['user', 'tenant', 'created_at', 'expires_at', 'revoked_at', 'revoked_reason']
    list_filter = ['revoked_reason']
    raw_id_fields = ['user']
    readonly_fields = ['token_hash', 'replaced_by_token_hash']
