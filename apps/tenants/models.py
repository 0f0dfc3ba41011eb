"""
Tenant model for multi-tenancy support.

A tenant is one merchant account on the platform. Tenant rows live in the
shared schema; everything a merchant owns is scoped to exactly one tenant.
"""

import uuid
from datetime import timedelta

from django.conf import settings as django_settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from django.utils.text import slugify
from simple_history.models import HistoricalRecords
from auditlog.registry import auditlog

from apps.core.history import history_user


def default_trial_end():
    return timezone.now() + timedelta(days=getattr(django_settings, 'TENANT_TRIAL_DAYS', 14))


def schema_name_for_slug(slug: str) -> str:
    return f"tenant_{slug.replace('-', '_')}"


class Tenant(models.Model):
    """
    Represents a merchant (tenant) in the multi-tenant system.

    **Key Design Decisions:**
    - UUID primary key so the id can travel in the X-Tenant-Id header
    - 'slug' for URL-safe identification (subdomains, X-Tenant-Slug, login)
    - 'schema_name' names the PostgreSQL schema used in per-tenant schema mode
    - Soft delete via 'deleted_at'
    """

    STATUS_PENDING = 'Pending'
    STATUS_ACTIVE = 'Active'
    STATUS_SUSPENDED = 'Suspended'
    STATUS_DEACTIVATED = 'Deactivated'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_SUSPENDED, 'Suspended'),
        (STATUS_DEACTIVATED, 'Deactivated'),
    ]

    # Statuses that may still use the tenant API
    USABLE_STATUSES = (STATUS_PENDING, STATUS_ACTIVE)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Basic Information
    name = models.CharField(
        max_length=255,
        help_text="Display name of the merchant"
    )

    slug = models.SlugField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="URL-safe identifier for the tenant"
    )

    schema_name = models.CharField(
        max_length=120,
        unique=True,
        help_text="PostgreSQL schema holding this tenant's data in schema mode"
    )

    company_name = models.CharField(max_length=255, blank=True)
    logo_url = models.URLField(blank=True)
    website = models.URLField(blank=True)

    # Status and Configuration
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        db_index=True,
    )

    trial_ends_at = models.DateTimeField(null=True, blank=True, default=default_trial_end)

    settings = models.JSONField(
        default=dict,
        blank=True,
        help_text="Tenant-specific configuration (e.g., default pickup address, NDR follow-up hours)"
    )

    # Contact Information
    contact_email = models.EmailField(blank=True)
    contact_phone = models.CharField(max_length=20, blank=True)

    # Soft Delete Support
    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Timestamp when tenant was soft-deleted"
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    history = HistoricalRecords(get_user=history_user)

    class Meta:
        ordering = ['name']
        verbose_name = 'Tenant'
        verbose_name_plural = 'Tenants'
        indexes = [
            models.Index(fields=['slug', 'status']),
            models.Index(fields=['deleted_at']),
        ]

    def __str__(self):
        return self.name

    def get_additional_data(self):
        return {'tenant_id': str(self.pk)}

    def save(self, *args, **kwargs):
        """Normalise the slug and derive the schema name."""
        self.slug = slugify(self.slug or self.name).lower()
        if not self.schema_name:
            self.schema_name = schema_name_for_slug(self.slug)
        super().save(*args, **kwargs)

    @property
    def is_active(self):
        return self.status in self.USABLE_STATUSES and self.deleted_at is None

    @property
    def is_deleted(self):
        """Check if tenant is soft-deleted."""
        return self.deleted_at is not None

    @property
    def is_trial_active(self):
        return bool(self.trial_ends_at and self.trial_ends_at > timezone.now())

    def activate(self):
        if self.status == self.STATUS_DEACTIVATED:
            raise ValidationError({'status': 'Cannot activate a deactivated tenant.'})
        self.status = self.STATUS_ACTIVE
        self.save(update_fields=['status', 'updated_at'])

    def suspend(self, reason: str = ''):
        if self.status == self.STATUS_DEACTIVATED:
            raise ValidationError({'status': 'Cannot suspend a deactivated tenant.'})
        self.status = self.STATUS_SUSPENDED
        if reason:
            self.settings = {**(self.settings or {}), 'suspension_reason': reason}
        self.save(update_fields=['status', 'settings', 'updated_at'])

    def deactivate(self):
        self.status = self.STATUS_DEACTIVATED
        self.save(update_fields=['status', 'updated_at'])

    def extend_trial(self, days: int):
        if days <= 0:
            raise ValidationError({'days': 'Trial extension must be positive.'})
        base = max(self.trial_ends_at or timezone.now(), timezone.now())
        self.trial_ends_at = base + timedelta(days=days)
        self.save(update_fields=['trial_ends_at', 'updated_at'])

    def update_profile(self, *, name=None, company_name=None, contact_email=None,
                       contact_phone=None, logo_url=None, website=None):
        for field, value in (
            ('name', name),
            ('company_name', company_name),
            ('contact_email', contact_email),
            ('contact_phone', contact_phone),
            ('logo_url', logo_url),
            ('website', website),
        ):
            if value is not None:
                setattr(self, field, value.strip())
        self.save()

    def soft_delete(self):
        self.deleted_at = timezone.now()
        self.status = self.STATUS_DEACTIVATED
        self.save(update_fields=['deleted_at', 'status', 'updated_at'])

    def get_setting(self, key, default=None):
        return (self.settings or {}).get(key, default)

    def set_setting(self, key, value):
        self.settings = {**(self.settings or {}), key: value}
        self.save(update_fields=['settings', 'updated_at'])


auditlog.register(Tenant)
