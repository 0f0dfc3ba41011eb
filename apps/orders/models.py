"""
Orders, their line items and status history.

Status changes go through `Order.change_status`, which enforces the
transition rules, stamps the lifecycle timestamps and appends an
`OrderStatusHistory` row.
"""

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from auditlog.registry import auditlog

from apps.core.models import BaseModel, TenantAwareModel
from apps.core.numbering import generate_number
from apps.tenants.managers import TenantAwareManager

ZERO = Decimal('0.00')


def generate_order_number():
    return generate_number('ORD')


class Order(BaseModel):
    STATUS_PENDING = 'Pending'
    STATUS_CONFIRMED = 'Confirmed'
    STATUS_PROCESSING = 'Processing'
    STATUS_SHIPPED = 'Shipped'
    STATUS_DELIVERED = 'Delivered'
    STATUS_CANCELLED = 'Cancelled'
    STATUS_RETURNED = 'Returned'
    STATUS_RTO = 'RTO'
    STATUS_CHOICES = [(s, s) for s in (
        STATUS_PENDING, STATUS_CONFIRMED, STATUS_PROCESSING, STATUS_SHIPPED,
        STATUS_DELIVERED, STATUS_CANCELLED, STATUS_RETURNED, STATUS_RTO,
    )]

    PAYMENT_PENDING = 'Pending'
    PAYMENT_PAID = 'Paid'
    PAYMENT_PARTIALLY_PAID = 'PartiallyPaid'
    PAYMENT_FAILED = 'Failed'
    PAYMENT_REFUNDED = 'Refunded'
    PAYMENT_PARTIALLY_REFUNDED = 'PartiallyRefunded'
    PAYMENT_STATUS_CHOICES = [(s, s) for s in (
        PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_PARTIALLY_PAID, PAYMENT_FAILED,
        PAYMENT_REFUNDED, PAYMENT_PARTIALLY_REFUNDED,
    )]

    FULFILLMENT_UNFULFILLED = 'Unfulfilled'
    FULFILLMENT_PARTIAL = 'PartiallyFulfilled'
    FULFILLMENT_FULFILLED = 'Fulfilled'
    FULFILLMENT_CHOICES = [(s, s) for s in (
        FULFILLMENT_UNFULFILLED, FULFILLMENT_PARTIAL, FULFILLMENT_FULFILLED,
    )]

    # What the order currently holds in inventory
    STOCK_NONE = 'None'
    STOCK_RESERVED = 'Reserved'
    STOCK_SHIPPED = 'Shipped'
    STOCK_STATUS_CHOICES = [(s, s) for s in (STOCK_NONE, STOCK_RESERVED, STOCK_SHIPPED)]

    METHOD_COD = 'COD'
    METHOD_PREPAID = 'Prepaid'
    METHOD_UPI = 'UPI'
    METHOD_CARD = 'Card'
    METHOD_NET_BANKING = 'NetBanking'
    METHOD_WALLET = 'Wallet'
    METHOD_EMI = 'EMI'
    METHOD_OTHER = 'Other'
    PAYMENT_METHOD_CHOICES = [(m, m) for m in (
        METHOD_COD, METHOD_PREPAID, METHOD_UPI, METHOD_CARD, METHOD_NET_BANKING,
        METHOD_WALLET, METHOD_EMI, METHOD_OTHER,
    )]

    order_number = models.CharField(max_length=40, unique=True, default=generate_order_number, editable=False)
    channel = models.ForeignKey('channels.SalesChannel', on_delete=models.SET_NULL, null=True, blank=True,
                                related_name='orders')
    external_order_id = models.CharField(max_length=100, blank=True, db_index=True)
    external_order_number = models.CharField(max_length=100, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING,
                                      db_index=True)
    fulfillment_status = models.CharField(max_length=20, choices=FULFILLMENT_CHOICES,
                                          default=FULFILLMENT_UNFULFILLED)
    stock_status = models.CharField(max_length=20, choices=STOCK_STATUS_CHOICES, default=STOCK_NONE,
                                    editable=False)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, blank=True)
    is_cod = models.BooleanField(default=False)

    # Customer
    customer_name = models.CharField(max_length=255)
    customer_email = models.EmailField(blank=True)
    customer_phone = models.CharField(max_length=20, blank=True)
    shipping_address = models.JSONField(default=dict, blank=True)
    billing_address = models.JSONField(null=True, blank=True)

    # Amounts
    currency = models.CharField(max_length=3, default='INR')
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    shipping_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    # Lifecycle
    order_date = models.DateTimeField(default=timezone.now, db_index=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=500, blank=True)

    notes = models.TextField(blank=True, help_text="Customer notes")
    internal_notes = models.TextField(blank=True)
    tags = models.JSONField(default=list, blank=True)
    platform_data = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ['-order_date']
        indexes = [
            models.Index(fields=['tenant', 'status']),
            models.Index(fields=['tenant', 'order_date']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['channel', 'external_order_id'],
                condition=models.Q(channel__isnull=False) & ~models.Q(external_order_id=''),
                name='unique_external_order_per_channel',
            ),
        ]

    def __str__(self):
        return self.order_number

    def save(self, *args, **kwargs):
        self.currency = (self.currency or 'INR').upper()
        self.is_cod = self.payment_method == self.METHOD_COD
        super().save(*args, **kwargs)

    def clean(self):
        if not (self.customer_name or '').strip():
            raise ValidationError({'customer_name': 'Customer name is required.'})
        for field in ('subtotal', 'discount_amount', 'tax_amount', 'shipping_amount', 'total_amount'):
            value = getattr(self, field)
            if value is not None and value < 0:
                raise ValidationError({field: 'Amount cannot be negative.'})

    # Totals

    def recalculate_totals(self, save=True):
        """subtotal = sum of item totals; total = subtotal - discount + tax + shipping."""
        if self.pk and self.items.exists():
            self.subtotal = sum((item.total_amount for item in self.items.all()), ZERO)
        total = self.subtotal - self.discount_amount + self.tax_amount + self.shipping_amount
        if total < 0:
            raise ValidationError({'total_amount': 'Order total cannot be negative.'})
        self.total_amount = total
        if save:
            self.save(update_fields=['subtotal', 'total_amount', 'updated_at'])
        return self.total_amount

    def add_item(self, *, sku, name, quantity, unit_price, discount_amount=ZERO, tax_amount=ZERO,
                 product=None, external_product_id='', variant_name=''):
        item = OrderItem(
            tenant_id=self.tenant_id,
            order=self,
            product=product,
            sku=sku,
            name=name,
            quantity=quantity,
            unit_price=unit_price,
            discount_amount=discount_amount or ZERO,
            tax_amount=tax_amount or ZERO,
            external_product_id=external_product_id or '',
            variant_name=variant_name or '',
        )
        item.full_clean(exclude=['tenant', 'order', 'product'])
        item.save()
        self.recalculate_totals()
        return item

    # Status

    @property
    def is_cancellable(self):
        return self.status not in (self.STATUS_CANCELLED, self.STATUS_DELIVERED,
                                   self.STATUS_RETURNED, self.STATUS_RTO)

    def validate_transition(self, new_status):
        if self.status == self.STATUS_CANCELLED:
            raise ValidationError({'status': 'Cannot change status of a cancelled order.'})
        if self.status == self.STATUS_DELIVERED and new_status not in (self.STATUS_RETURNED, self.STATUS_RTO):
            raise ValidationError({'status': 'Delivered order can only transition to Returned or RTO.'})

    def change_status(self, new_status, user=None, reason=''):
        """Move to `new_status`. Returns False when the order already has that status."""
        if new_status not in dict(self.STATUS_CHOICES):
            raise ValidationError({'status': f'Unknown order status: {new_status}'})
        if self.status == new_status:
            return False
        self.validate_transition(new_status)

        previous = self.status
        now = timezone.now()
        self.status = new_status
        if new_status == self.STATUS_CONFIRMED:
            self.confirmed_at = now
        elif new_status == self.STATUS_SHIPPED:
            self.shipped_at = now
            self.fulfillment_status = self.FULFILLMENT_FULFILLED
        elif new_status == self.STATUS_DELIVERED:
            self.delivered_at = now
            if self.is_cod:
                self.payment_status = self.PAYMENT_PAID
        elif new_status == self.STATUS_CANCELLED:
            self.cancelled_at = now
            self.cancellation_reason = reason or ''
        if user is not None:
            self.updated_by = user
        self.save()

        OrderStatusHistory.objects.create(
            tenant_id=self.tenant_id,
            order=self,
            from_status=previous,
            to_status=new_status,
            reason=reason or '',
            changed_by=user,
        )
        return True

    def cancel(self, user=None, reason=''):
        if self.status == self.STATUS_CANCELLED:
            return False
        if self.status == self.STATUS_DELIVERED:
            raise ValidationError({'status': 'Cannot cancel a delivered order.'})
        return self.change_status(self.STATUS_CANCELLED, user, reason or 'Order cancelled')

    def update_payment_status(self, payment_status):
        if payment_status not in dict(self.PAYMENT_STATUS_CHOICES):
            raise ValidationError({'payment_status': f'Unknown payment status: {payment_status}'})
        self.payment_status = payment_status
        self.save(update_fields=['payment_status', 'updated_at'])


class OrderItem(TenantAwareModel):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey('inventory.Product', on_delete=models.SET_NULL, null=True, blank=True,
                                related_name='order_items')
    sku = models.CharField(max_length=100)
    name = models.CharField(max_length=255)
    variant_name = models.CharField(max_length=255, blank=True)
    external_product_id = models.CharField(max_length=100, blank=True)
    quantity = models.PositiveIntegerField()
    reserved_quantity = models.PositiveIntegerField(default=0, editable=False)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    objects = TenantAwareManager()

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.sku} x {self.quantity}"

    def clean(self):
        if not (self.sku or '').strip():
            raise ValidationError({'sku': 'SKU is required.'})
        if not (self.name or '').strip():
            raise ValidationError({'name': 'Item name is required.'})
        if not self.quantity or self.quantity <= 0:
            raise ValidationError({'quantity': 'Quantity must be greater than zero.'})
        if self.unit_price is not None and self.unit_price < 0:
            raise ValidationError({'unit_price': 'Unit price cannot be negative.'})

    def compute_total(self):
        return self.unit_price * self.quantity - self.discount_amount + self.tax_amount

    def save(self, *args, **kwargs):
        self.total_amount = self.compute_total()
        super().save(*args, **kwargs)


class OrderStatusHistory(TenantAwareModel):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='status_history')
    from_status = models.CharField(max_length=20, blank=True)
    to_status = models.CharField(max_length=20)
    reason = models.CharField(max_length=500, blank=True)
    changed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='order_status_changes')
    changed_at = models.DateTimeField(auto_now_add=True)

    objects = TenantAwareManager()

    class Meta:
        ordering = ['changed_at', 'id']
        verbose_name_plural = 'Order status history'

    def __str__(self):
        return f"{self.order_id}: {self.from_status or '-'} -> {self.to_status}"


auditlog.register(Order)
