"""
Base abstract models for the SuperEcom back-office.

These models provide common functionality for all tenant-scoped models:
- Tenant awareness
- Soft delete support
- Audit tracking (who created/modified)
- Timestamps
"""

from django.conf import settings
from django.db import models
from django.utils import timezone

from apps.tenants.context import get_current_tenant
from apps.tenants.managers import TenantAwareSoftDeleteManager


class TenantAwareModel(models.Model):
    """
    Abstract base model for tenant-scoped entities.

    **Usage:**
    ```python
    class Order(TenantAwareModel):
        order_number = models.CharField(max_length=40)
    ```

    The tenant field is populated from the request context when it is not
    assigned explicitly.
    """

    tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.PROTECT,
        related_name='%(class)s_set',
        db_index=True,
        help_text="Merchant this record belongs to"
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self.tenant_id:
            tenant = get_current_tenant()
            if tenant is None:
                raise ValueError(
                    f"Cannot save {self.__class__.__name__} without a tenant. "
                    f"Set request context or assign tenant explicitly."
                )
            self.tenant = tenant
        super().save(*args, **kwargs)

    def get_additional_data(self):
        """Stored on every auditlog entry so the log can be queried per tenant."""
        return {'tenant_id': str(self.tenant_id)}


class AuditableModel(models.Model):
    """
    Abstract base model for audit tracking.

    **Tracks:**
    - Who created the record
    - When it was created
    - Who last modified it
    - When it was last modified
    """

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_created_set',
        help_text="User who created this record"
    )

    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_updated_set',
        help_text="User who last updated this record"
    )

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def touch(self, user=None):
        """Stamp the modifier; `updated_at` follows on save."""
        if user is not None and getattr(user, 'pk', None):
            self.updated_by = user


class SoftDeleteModel(models.Model):
    """
    Abstract base model for soft delete support.

    **How it works:**
    - Instead of DELETE, we set deleted_at (and deleted_by)
    - Default manager filters out deleted records
    - `all_with_deleted()` / `deleted_only()` reach deleted records
    """

    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Timestamp when record was soft-deleted"
    )

    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_deleted_set',
    )

    objects = TenantAwareSoftDeleteManager()

    class Meta:
        abstract = True

    def soft_delete(self, user=None):
        self.deleted_at = timezone.now()
        if user is not None and getattr(user, 'pk', None):
            self.deleted_by = user
        self.save(update_fields=['deleted_at', 'deleted_by'])

    def restore(self):
        self.deleted_at = None
        self.deleted_by = None
        self.save(update_fields=['deleted_at', 'deleted_by'])

    @property
    def is_deleted(self):
        return self.deleted_at is not None


class BaseModel(TenantAwareModel, AuditableModel, SoftDeleteModel):
    """
    Base model combining all common functionality.

    Most tenant-scoped domain models inherit from this and get tenant
    isolation, audit trail and soft delete for free.
    """

    class Meta:
        abstract = True
