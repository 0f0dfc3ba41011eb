"""
Platform-level models: administrators, settings and the tenant activity log.

All of these live in the shared schema and are never tenant scoped.
"""

import hashlib
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.db import models
from django.utils import timezone
from simple_history.models import HistoricalRecords
from auditlog.registry import auditlog

from apps.core.history import history_user


class PlatformAdmin(models.Model):
    """
    Operator of the platform itself (not a member of any tenant).

    Authenticates with its own JWTs (``type=platform_admin``); super admins
    may additionally manage other administrators.
    """

    email = models.EmailField(unique=True)
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)
    password = models.CharField(max_length=128)
    is_super_admin = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    last_login_at = models.DateTimeField(null=True, blank=True)
    failed_login_attempts = models.PositiveIntegerField(default=0)
    lockout_ends_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['email']

    def __str__(self):
        return self.email

    # Marks this principal for permission classes and the handler pipeline
    is_authenticated = True
    is_anonymous = False
    is_platform_admin = True
    tenant_id = None

    @classmethod
    def create(cls, *, email, password, first_name='', last_name='', is_super_admin=False):
        admin = cls(
            email=email.strip().lower(),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            is_super_admin=is_super_admin,
        )
        admin.set_password(password)
        admin.save()
        return admin

    def save(self, *args, **kwargs):
        self.email = (self.email or '').strip().lower()
        super().save(*args, **kwargs)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip() or self.email

    def set_password(self, raw_password):
        self.password = make_password(raw_password)

    def check_password(self, raw_password):
        return check_password(raw_password, self.password)

    def has_tenant_permission(self, code):
        return False

    def promote_to_super_admin(self):
        self.is_super_admin = True
        self.save(update_fields=['is_super_admin', 'updated_at'])

    def demote_from_super_admin(self):
        self.is_super_admin = False
        self.save(update_fields=['is_super_admin', 'updated_at'])

    @property
    def is_locked_out(self):
        return bool(self.lockout_ends_at and self.lockout_ends_at > timezone.now())

    def record_login(self):
        self.last_login_at = timezone.now()
        self.failed_login_attempts = 0
        self.lockout_ends_at = None
        self.save(update_fields=['last_login_at', 'failed_login_attempts', 'lockout_ends_at', 'updated_at'])

    def record_failed_login(self, max_attempts=None, lockout_minutes=None):
        max_attempts = max_attempts or getattr(settings, 'LOGIN_LOCKOUT_ATTEMPTS', 5)
        lockout_minutes = lockout_minutes or getattr(settings, 'LOGIN_LOCKOUT_MINUTES', 30)
        self.failed_login_attempts += 1
        if self.failed_login_attempts >= max_attempts:
            self.lockout_ends_at = timezone.now() + timedelta(minutes=lockout_minutes)
        self.save(update_fields=['failed_login_attempts', 'lockout_ends_at', 'updated_at'])


class PlatformAdminRefreshTokenQuerySet(models.QuerySet):

    def active(self):
        return self.filter(revoked_at__isnull=True, expires_at__gt=timezone.now())


class PlatformAdminRefreshToken(models.Model):
    admin = models.ForeignKey(PlatformAdmin, on_delete=models.CASCADE, related_name='refresh_tokens')
    token_hash = models.CharField(max_length=64, unique=True)
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)
    created_by_ip = models.GenericIPAddressField(null=True, blank=True)

    revoked_at = models.DateTimeField(null=True, blank=True)
    revoked_by_ip = models.GenericIPAddressField(null=True, blank=True)
    revoked_reason = models.CharField(max_length=255, blank=True)
    replaced_by_token_hash = models.CharField(max_length=64, blank=True)

    objects = PlatformAdminRefreshTokenQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']

    @staticmethod
    def hash_token(raw_token: str) -> str:
        return hashlib.sha256(raw_token.encode('utf-8')).hexdigest()

    @property
    def is_active(self):
        return self.revoked_at is None and timezone.now() < self.expires_at

    def revoke(self, *, ip=None, reason='', replaced_by_hash=''):
        self.revoked_at = timezone.now()
        self.revoked_by_ip = ip
        self.revoked_reason = reason
        self.replaced_by_token_hash = replaced_by_hash
        self.save(update_fields=['revoked_at', 'revoked_by_ip', 'revoked_reason', 'replaced_by_token_hash'])


class PlatformConfig(models.Model):
    maintenance_mode = models.BooleanField(default=False, db_index=True)
    support_email = models.EmailField(blank=True)
    announcement_message = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    history = HistoricalRecords(get_user=history_user)

    class Meta:
        verbose_name = "Platform Configuration"
        verbose_name_plural = "Platform Configuration"

    def __str__(self):
        return "Platform Configuration"

    @classmethod
    def get_solo(cls):
        obj = cls.objects.first()
        if not obj:
            obj = cls.objects.create()
        return obj


class PlatformSettings(models.Model):
    """Free-form key/value platform setting."""

    CATEGORY_GENERAL = 'general'
    CATEGORY_CHOICES = [
        ('general', 'General'),
        ('email', 'Email'),
        ('security', 'Security'),
        ('payment', 'Payment'),
        ('notification', 'Notification'),
        ('integration', 'Integration'),
        ('feature', 'Feature'),
    ]

    key = models.CharField(max_length=100, unique=True)
    value = models.TextField(blank=True)
    description = models.CharField(max_length=255, blank=True)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default=CATEGORY_GENERAL)
    is_public = models.BooleanField(default=False)
    updated_by = models.ForeignKey(PlatformAdmin, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='+')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['category', 'key']
        verbose_name_plural = 'Platform settings'

    def __str__(self):
        return self.key


class TenantActivityLog(models.Model):
    """Append-only record of platform actions taken on a tenant."""

    TENANT_CREATED = 'TENANT_CREATED'
    TENANT_ACTIVATED = 'TENANT_ACTIVATED'
    TENANT_SUSPENDED = 'TENANT_SUSPENDED'
    TENANT_REACTIVATED = 'TENANT_REACTIVATED'
    TENANT_DEACTIVATED = 'TENANT_DEACTIVATED'
    TENANT_DELETED = 'TENANT_DELETED'
    TRIAL_EXTENDED = 'TRIAL_EXTENDED'
    PLAN_CHANGED = 'PLAN_CHANGED'
    PROFILE_UPDATED = 'PROFILE_UPDATED'
    SUBSCRIPTION_ACTIVATED = 'SUBSCRIPTION_ACTIVATED'
    SUBSCRIPTION_CANCELLED = 'SUBSCRIPTION_CANCELLED'
    SUBSCRIPTION_RENEWED = 'SUBSCRIPTION_RENEWED'
    SUBSCRIPTION_PAUSED = 'SUBSCRIPTION_PAUSED'
    SUBSCRIPTION_RESUMED = 'SUBSCRIPTION_RESUMED'

    ACTION_CHOICES = [(a, a.replace('_', ' ').title()) for a in (
        TENANT_CREATED, TENANT_ACTIVATED, TENANT_SUSPENDED, TENANT_REACTIVATED,
        TENANT_DEACTIVATED, TENANT_DELETED, TRIAL_EXTENDED, PLAN_CHANGED, PROFILE_UPDATED,
        SUBSCRIPTION_ACTIVATED, SUBSCRIPTION_CANCELLED, SUBSCRIPTION_RENEWED,
        SUBSCRIPTION_PAUSED, SUBSCRIPTION_RESUMED,
    )]

    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='activity_logs')
    performed_by = models.ForeignKey(PlatformAdmin, on_delete=models.SET_NULL, null=True, blank=True,
                                     related_name='tenant_activity')
    action = models.CharField(max_length=40, choices=ACTION_CHOICES, db_index=True)
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    performed_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-performed_at']

    def __str__(self):
        return f"{self.action} on {self.tenant_id}"

    @classmethod
    def record(cls, tenant, actor, action, details=None, ip_address=None):
        """Write a log row when `actor` is a platform admin; otherwise a no-op."""
        if not getattr(actor, 'is_platform_admin', False):
            return None
        return cls.objects.create(
            tenant=tenant,
            performed_by=actor,
            action=action,
            details=details or {},
            ip_address=ip_address,
        )


auditlog.register(PlatformConfig)
