"""
Sales channels: marketplaces and storefronts a tenant sells through.
"""

from django.db import models
from django.utils import timezone
from auditlog.registry import auditlog

from apps.core.models import BaseModel


class SalesChannel(BaseModel):
    TYPE_SHOPIFY = 'Shopify'
    TYPE_AMAZON = 'Amazon'
    TYPE_FLIPKART = 'Flipkart'
    TYPE_MEESHO = 'Meesho'
    TYPE_WOOCOMMERCE = 'WooCommerce'
    TYPE_CUSTOM = 'Custom'
    TYPE_CHOICES = [(t, t) for t in (
        TYPE_SHOPIFY, TYPE_AMAZON, TYPE_FLIPKART, TYPE_MEESHO, TYPE_WOOCOMMERCE, TYPE_CUSTOM,
    )]

    SYNC_SUCCESS = 'Success'
    SYNC_FAILED = 'Failed'
    SYNC_PARTIAL = 'Partial'

    name = models.CharField(max_length=150)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, db_index=True)
    store_url = models.URLField(blank=True)
    store_name = models.CharField(max_length=255, blank=True)
    external_shop_id = models.CharField(max_length=255, blank=True, db_index=True,
                                        help_text="Shop domain or seller id on the marketplace")
    is_active = models.BooleanField(default=True)

    auto_sync_orders = models.BooleanField(default=True)
    auto_sync_inventory = models.BooleanField(default=False)
    initial_sync_days = models.PositiveIntegerField(default=7)
    last_sync_at = models.DateTimeField(null=True, blank=True)
    last_sync_status = models.CharField(max_length=20, blank=True)

    # Credentials
    webhook_secret = models.CharField(max_length=255, blank=True)
    api_key = models.CharField(max_length=255, blank=True)
    api_secret = models.CharField(max_length=255, blank=True)
    access_token = models.CharField(max_length=500, blank=True)
    scopes = models.CharField(max_length=500, blank=True)

    is_connected = models.BooleanField(default=False)
    last_connected_at = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['tenant', 'type']),
        ]

    def __str__(self):
        return f"{self.name} ({self.type})"

    @property
    def signing_secret(self):
        """Secret used to verify inbound webhooks."""
        return self.webhook_secret or self.api_secret

    def record_sync(self, status, error=''):
        self.last_sync_at = timezone.now()
        self.last_sync_status = status
        self.last_error = error or ''
        self.save(update_fields=['last_sync_at', 'last_sync_status', 'last_error', 'updated_at'])

    def mark_connected(self):
        self.is_connected = True
        self.is_active = True
        self.last_connected_at = timezone.now()
        self.last_error = ''
        self.save(update_fields=['is_connected', 'is_active', 'last_connected_at', 'last_error', 'updated_at'])

    def mark_disconnected(self, error=''):
        self.is_connected = False
        self.last_error = error or ''
        self.save(update_fields=['is_connected', 'last_error', 'updated_at'])

    def clear_credentials(self):
        self.api_key = ''
        self.api_secret = ''
        self.access_token = ''
        self.webhook_secret = ''
        self.scopes = ''
        self.is_connected = False
        self.save(update_fields=['api_key', 'api_secret', 'access_token', 'webhook_secret', 'scopes',
                                 'is_connected', 'updated_at'])


auditlog.register(SalesChannel, exclude_fields=['api_key', 'api_secret', 'access_token', 'webhook_secret'])
