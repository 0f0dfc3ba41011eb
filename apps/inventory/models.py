"""
Products, stock levels and the stock movement ledger.
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from auditlog.registry import auditlog

from apps.core.models import BaseModel, TenantAwareModel
from apps.tenants.managers import TenantAwareManager


class Product(BaseModel):
    SYNC_SYNCED = 'Synced'
    SYNC_PENDING = 'Pending'
    SYNC_LOCAL_ONLY = 'LocalOnly'
    SYNC_CONFLICT = 'Conflict'
    SYNC_CHOICES = [
        (SYNC_SYNCED, 'Synced'),
        (SYNC_PENDING, 'Pending'),
        (SYNC_LOCAL_ONLY, 'Local Only'),
        (SYNC_CONFLICT, 'Conflict'),
    ]

    sku = models.CharField(max_length=100)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=100, blank=True)
    brand = models.CharField(max_length=100, blank=True)
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    selling_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default='INR')
    weight = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True,
                                 help_text="Weight in kg")
    image_url = models.URLField(blank=True)
    is_active = models.BooleanField(default=True)

    # Channel linkage
    sync_status = models.CharField(max_length=20, choices=SYNC_CHOICES, default=SYNC_LOCAL_ONLY)
    channel = models.ForeignKey('channels.SalesChannel', on_delete=models.SET_NULL,
                                null=True, blank=True, related_name='products')
    external_product_id = models.CharField(max_length=100, blank=True)
    external_variant_id = models.CharField(max_length=100, blank=True)
    last_synced_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'sku'], name='unique_product_sku_per_tenant'),
        ]

    def __str__(self):
        return f"{self.sku} - {self.name}"

    def save(self, *args, **kwargs):
        self.sku = (self.sku or '').strip().upper()
        self.currency = (self.currency or 'INR').upper()
        super().save(*args, **kwargs)

    def clean(self):
        if not (self.sku or '').strip():
            raise ValidationError({'sku': 'SKU is required.'})
        if self.cost_price is not None and self.cost_price < 0:
            raise ValidationError({'cost_price': 'Cost price cannot be negative.'})
        if self.selling_price is not None and self.selling_price < 0:
            raise ValidationError({'selling_price': 'Selling price cannot be negative.'})

    def link_channel(self, channel, external_product_id, external_variant_id=''):
        self.channel = channel
        self.external_product_id = external_product_id
        self.external_variant_id = external_variant_id or ''
        self.sync_status = self.SYNC_SYNCED
        self.last_synced_at = timezone.now()
        self.save()


class InventoryItem(TenantAwareModel):
    """Stock position for one product."""

    product = models.OneToOneField(Product, on_delete=models.CASCADE, related_name='inventory')
    sku = models.CharField(max_length=100, db_index=True)
    quantity_on_hand = models.IntegerField(default=0)
    quantity_reserved = models.IntegerField(default=0)
    reorder_point = models.PositiveIntegerField(default=10)
    reorder_quantity = models.PositiveIntegerField(default=50)
    location = models.CharField(max_length=100, blank=True)
    last_restocked_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantAwareManager()

    class Meta:
        ordering = ['sku']

    def __str__(self):
        return f"{self.sku}: {self.quantity_on_hand} on hand"

    @property
    def quantity_available(self):
        return self.quantity_on_hand - self.quantity_reserved

    @property
    def is_low_stock(self):
        return self.quantity_on_hand <= self.reorder_point

    @property
    def is_out_of_stock(self):
        return self.quantity_available <= 0

    # Stock operations return (quantity_before, quantity_after) of on-hand stock.

    def add_stock(self, quantity):
        if quantity <= 0:
            raise ValidationError({'quantity': 'Quantity must be positive.'})
        before = self.quantity_on_hand
        self.quantity_on_hand += quantity
        self.last_restocked_at = timezone.now()
        self.save()
        return before, self.quantity_on_hand

    def remove_stock(self, quantity):
        if quantity <= 0:
            raise ValidationError({'quantity': 'Quantity must be positive.'})
        if quantity > self.quantity_available:
            raise ValidationError({'quantity': f'Insufficient stock. Available: {self.quantity_available}.'})
        before = self.quantity_on_hand
        self.quantity_on_hand -= quantity
        self.save()
        return before, self.quantity_on_hand

    def reserve(self, quantity):
        if quantity <= 0:
            raise ValidationError({'quantity': 'Quantity must be positive.'})
        if quantity > self.quantity_available:
            raise ValidationError({'quantity': f'Cannot reserve {quantity}. Available: {self.quantity_available}.'})
        self.quantity_reserved += quantity
        self.save()
        return self.quantity_on_hand, self.quantity_on_hand

    def release(self, quantity):
        """Release up to `quantity` reserved units; returns the amount released."""
        if quantity <= 0:
            raise ValidationError({'quantity': 'Quantity must be positive.'})
        released = min(quantity, self.quantity_reserved)
        self.quantity_reserved -= released
        self.save()
        return released

    def adjust(self, new_quantity):
        if new_quantity < 0:
            raise ValidationError({'quantity': 'Stock cannot be negative.'})
        before = self.quantity_on_hand
        self.quantity_on_hand = new_quantity
        self.save()
        return before, self.quantity_on_hand


class StockMovement(TenantAwareModel):
    TYPE_INITIAL = 'InitialStock'
    TYPE_STOCK_IN = 'StockIn'
    TYPE_STOCK_OUT = 'StockOut'
    TYPE_ADJUSTMENT = 'Adjustment'
    TYPE_RESERVED = 'Reserved'
    TYPE_RELEASED = 'Released'
    TYPE_RETURN = 'Return'
    TYPE_DAMAGED = 'Damaged'
    TYPE_TRANSFER = 'Transfer'
    TYPE_CHOICES = [(t, t) for t in (
        TYPE_INITIAL, TYPE_STOCK_IN, TYPE_STOCK_OUT, TYPE_ADJUSTMENT, TYPE_RESERVED,
        TYPE_RELEASED, TYPE_RETURN, TYPE_DAMAGED, TYPE_TRANSFER,
    )]

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='movements')
    movement_type = models.CharField(max_length=20, choices=TYPE_CHOICES, db_index=True)
    quantity = models.IntegerField()
    quantity_before = models.IntegerField()
    quantity_after = models.IntegerField()
    reference_type = models.CharField(max_length=50, blank=True)
    reference_id = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    performed_by = models.ForeignKey('accounts.User', on_delete=models.SET_NULL, null=True, blank=True,
                                     related_name='stock_movements')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    objects = TenantAwareManager()

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.movement_type} {self.quantity} of {self.product_id}"


auditlog.register(Product)
auditlog.register(InventoryItem)
