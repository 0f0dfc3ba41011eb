"""
Identity models: users, roles, permissions and refresh tokens.

Tenant users belong to exactly one tenant and are unique by email within
it. Authorization is role based: a user's permission codes are the union
of the permissions of their roles. Platform administrators are a separate
model (`apps.super_admin.models.PlatformAdmin`).
"""

import hashlib
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.models import AbstractUser, UserManager
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from simple_history.models import HistoricalRecords
from auditlog.registry import auditlog

from apps.core.history import history_user
from apps.tenants.managers import TenantAwareManager


def permission_cache_key(user_id) -> str:
    return f"permissions:user:{user_id}"


class Permission(models.Model):
    """A named capability, e.g. ``orders.create``. Shared across tenants."""

    code = models.CharField(max_length=100, unique=True)
    name = models.CharField(max_length=150)
    module = models.CharField(max_length=50, db_index=True)
    description = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['module', 'code']

    def __str__(self):
        return self.code


class Role(models.Model):
    """
    Tenant-defined bundle of permissions.

    System roles (Owner, Admin, Manager, Operator, NDR Agent, Viewer) are
    seeded for every tenant and cannot be modified.
    """

    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='roles')
    name = models.CharField(max_length=100)
    description = models.CharField(max_length=255, blank=True)
    is_system = models.BooleanField(default=False)
    permissions = models.ManyToManyField(Permission, related_name='roles', blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantAwareManager()

    class Meta:
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'name'], name='unique_role_name_per_tenant'),
        ]

    def __str__(self):
        return f"{self.name} ({self.tenant_id})"

    def get_additional_data(self):
        return {'tenant_id': str(self.tenant_id)}

    def ensure_editable(self):
        if self.is_system:
            raise ValidationError({'role': 'System roles cannot be modified.'})

    def permission_codes(self):
        return set(self.permissions.values_list('code', flat=True))


class TenantUserManager(UserManager):

    def for_tenant(self, tenant):
        if not tenant:
            return self.none()
        return self.filter(tenant=tenant)

    def create_tenant_user(self, *, tenant, email, password=None, **extra_fields):
        email = self.normalize_email(email).strip().lower()
        username = User.username_for(tenant, email)
        return self.create_user(username=username, email=email, password=password,
                                tenant=tenant, **extra_fields)


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    **Key Features:**
    - Multi-tenancy via foreign key to Tenant (NULL only for Django admin staff)
    - Email unique per tenant, username derived as ``<slug>.<email>``
    - Role-based permissions with a cached permission set
    - Failed-login lockout counters stored on the row
    - History tracking for compliance
    """

    tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='users',
        help_text="Merchant this user belongs to (NULL for Django admin staff)"
    )

    phone = models.CharField(max_length=20, blank=True)
    avatar_url = models.URLField(blank=True)
    email_verified = models.BooleanField(default=False)

    roles = models.ManyToManyField(Role, related_name='users', blank=True)

    # Login tracking
    last_login_at = models.DateTimeField(null=True, blank=True)
    failed_login_attempts = models.PositiveIntegerField(default=0)
    lockout_ends_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    history = HistoricalRecords(get_user=history_user)

    objects = TenantUserManager()

    class Meta:
        ordering = ['email']
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        indexes = [
            models.Index(fields=['tenant', 'is_active']),
            models.Index(fields=['email']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'email'],
                condition=models.Q(tenant__isnull=False),
                name='unique_user_email_per_tenant',
            ),
        ]

    def __str__(self):
        return f"{self.get_full_name() or self.email} - {self.tenant.name if self.tenant else 'No Tenant'}"

    @staticmethod
    def username_for(tenant, email):
        return f"{tenant.slug}.{email.strip().lower()}"[:150]

    def clean(self):
        super().clean()
        if self.email:
            self.email = self.email.strip().lower()
        if not self.tenant_id and not self.is_superuser:
            raise ValidationError({'tenant': 'Users must be assigned to a tenant.'})

    @property
    def is_platform_admin(self):
        return False

    @property
    def full_name(self):
        return self.get_full_name() or self.email

    # Lockout

    @property
    def is_locked_out(self):
        return bool(self.lockout_ends_at and self.lockout_ends_at > timezone.now())

    def record_login(self):
        self.last_login_at = timezone.now()
        self.last_login = self.last_login_at
        self.failed_login_attempts = 0
        self.lockout_ends_at = None
        self.save(update_fields=['last_login_at', 'last_login', 'failed_login_attempts',
                                 'lockout_ends_at', 'updated_at'])

    def record_failed_login(self, max_attempts=None, lockout_minutes=None):
        max_attempts = max_attempts or getattr(settings, 'LOGIN_LOCKOUT_ATTEMPTS', 5)
        lockout_minutes = lockout_minutes or getattr(settings, 'LOGIN_LOCKOUT_MINUTES', 30)
        self.failed_login_attempts += 1
        if self.failed_login_attempts >= max_attempts:
            self.lockout_ends_at = timezone.now() + timedelta(minutes=lockout_minutes)
        self.save(update_fields=['failed_login_attempts', 'lockout_ends_at', 'updated_at'])

    # Permissions

    def get_role_names(self):
        return sorted(self.roles.values_list('name', flat=True))

    def get_permission_codes(self):
        """Permission codes granted by the user's roles, cached per user."""
        key = permission_cache_key(self.pk)
        codes = cache.get(key)
        if codes is None:
            codes = sorted(set(
                Permission.objects.filter(roles__users=self).values_list('code', flat=True)
            ))
            cache.set(key, codes, getattr(settings, 'PERMISSION_CACHE_TIMEOUT', 900))
        return set(codes)

    def invalidate_permission_cache(self):
        cache.delete(permission_cache_key(self.pk))

    def has_tenant_permission(self, permission_code):
        if not self.is_active or not self.tenant_id:
            return False
        if self.tenant is None or not self.tenant.is_active:
            return False
        return permission_code in self.get_permission_codes()


class RefreshTokenQuerySet(models.QuerySet):

    def active(self):
        return self.filter(revoked_at__isnull=True, expires_at__gt=timezone.now())


class RefreshToken(models.Model):
    """
    Opaque refresh token issued alongside an access token.

    Only the SHA-256 digest is stored. Refreshing revokes the presented token
    and records the digest of its replacement (rotation).
    """

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='refresh_tokens')
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='refresh_tokens')
    token_hash = models.CharField(max_length=64, unique=True)
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)
    created_by_ip = models.GenericIPAddressField(null=True, blank=True)

    revoked_at = models.DateTimeField(null=True, blank=True)
    revoked_by_ip = models.GenericIPAddressField(null=True, blank=True)
    revoked_reason = models.CharField(max_length=255, blank=True)
    replaced_by_token_hash = models.CharField(max_length=64, blank=True)

    objects = RefreshTokenQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'revoked_at']),
            models.Index(fields=['expires_at']),
        ]

    def __str__(self):
        return f"RefreshToken(user={self.user_id}, active={self.is_active})"

    @staticmethod
    def hash_token(raw_token: str) -> str:
        return hashlib.sha256(raw_token.encode('utf-8')).hexdigest()

    @property
    def is_expired(self):
        return timezone.now() >= self.expires_at

    @property
    def is_revoked(self):
        return self.revoked_at is not None

    @property
    def is_active(self):
        return not self.is_revoked and not self.is_expired

    def revoke(self, *, ip=None, reason='', replaced_by_hash=''):
        self.revoked_at = timezone.now()
        self.revoked_by_ip = ip
        self.revoked_reason = reason
        self.replaced_by_token_hash = replaced_by_hash
        self.save(update_fields=['revoked_at', 'revoked_by_ip', 'revoked_reason', 'replaced_by_token_hash'])


auditlog.register(Role)
