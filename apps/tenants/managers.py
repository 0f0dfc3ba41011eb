"""
Tenant-aware managers and querysets.

Every tenant-scoped model uses `TenantAwareSoftDeleteManager` (via
`apps.core.models.base.BaseModel`), which hides soft-deleted rows and
offers explicit tenant filtering.
"""

import logging
from datetime import timedelta

from django.db import models
from django.utils import timezone

logger = logging.getLogger(__name__)


class TenantAwareQuerySet(models.QuerySet):
    """QuerySet with tenant filtering and soft-delete helpers."""

    def for_tenant(self, tenant):
        """Rows belonging to `tenant`; empty when no tenant is given."""
        if not tenant:
            return self.none()
        return self.filter(tenant=tenant)

    def for_current_tenant(self):
        from .context import get_current_tenant
        return self.for_tenant(get_current_tenant())

    def active(self):
        """Filter for non-deleted records."""
        return self.filter(deleted_at__isnull=True)

    def deleted(self):
        """Filter for soft-deleted records."""
        return self.filter(deleted_at__isnull=False)

    def with_audit_info(self):
        return self.select_related('created_by', 'updated_by')

    def recent(self, days=30):
        """Filter for recently created records."""
        cutoff = timezone.now() - timedelta(days=days)
        return self.filter(created_at__gte=cutoff)


class TenantAwareManager(models.Manager):
    """Manager exposing the tenant-aware queryset helpers."""

    def get_queryset(self):
        return TenantAwareQuerySet(self.model, using=self._db)

    def for_tenant(self, tenant):
        return self.get_queryset().for_tenant(tenant)

    def for_current_tenant(self):
        return self.get_queryset().for_current_tenant()

    def active(self):
        return self.get_queryset().active()

    def create_for_tenant(self, tenant, **kwargs):
        """Create record with tenant explicitly set."""
        kwargs['tenant'] = tenant
        return self.create(**kwargs)


class TenantAwareSoftDeleteManager(TenantAwareManager):
    """Manager combining tenant awareness with soft delete."""

    def get_queryset(self):
        """Exclude soft-deleted records by default."""
        return super().get_queryset().active()

    def all_with_deleted(self):
        return TenantAwareQuerySet(self.model, using=self._db)

    def deleted_only(self):
        return self.all_with_deleted().deleted()

    def hard_delete(self, **kwargs):
        """Permanently delete records (use with extreme caution)."""
        logger.warning("Hard delete requested for %s: %s", self.model._meta.label, kwargs)
        return self.all_with_deleted().filter(**kwargs).delete()
