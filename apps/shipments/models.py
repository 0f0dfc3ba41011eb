"""
Shipments, their tracking events and the tenant's courier accounts.
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from auditlog.registry import auditlog

from apps.core.models import BaseModel, TenantAwareModel
from apps.core.numbering import generate_number
from apps.core.value_objects import Awb, Dimensions
from apps.tenants.context import get_current_tenant
from apps.tenants.managers import TenantAwareManager


def generate_shipment_number():
    return generate_number('SHP')


class CourierType:
    SHIPROCKET = 'Shiprocket'
    DELHIVERY = 'Delhivery'
    BLUEDART = 'BlueDart'
    DTDC = 'DTDC'
    MANUAL = 'Manual'

    CHOICES = [(c, c) for c in (SHIPROCKET, DELHIVERY, BLUEDART, DTDC, MANUAL)]


class ShipmentStatus:
    CREATED = 'Created'
    MANIFESTED = 'Manifested'
    PICKED_UP = 'PickedUp'
    IN_TRANSIT = 'InTransit'
    OUT_FOR_DELIVERY = 'OutForDelivery'
    REACHED_DESTINATION = 'ReachedDestination'
    DELIVERED = 'Delivered'
    DELIVERY_FAILED = 'DeliveryFailed'
    RTO_INITIATED = 'RTOInitiated'
    RTO_IN_TRANSIT = 'RTOInTransit'
    RTO_DELIVERED = 'RTODelivered'
    CANCELLED = 'Cancelled'
    LOST = 'Lost'

    CHOICES = [(s, s) for s in (
        CREATED, MANIFESTED, PICKED_UP, IN_TRANSIT, OUT_FOR_DELIVERY, REACHED_DESTINATION,
        DELIVERED, DELIVERY_FAILED, RTO_INITIATED, RTO_IN_TRANSIT, RTO_DELIVERED, CANCELLED, LOST,
    )]

    TERMINAL = (DELIVERED, RTO_DELIVERED, CANCELLED, LOST)
    CANCELLABLE = (CREATED, MANIFESTED)

    # Moves allowed for manual status updates; couriers may skip steps.
    TRANSITIONS = {
        CREATED: (MANIFESTED, CANCELLED),
        MANIFESTED: (PICKED_UP, CANCELLED),
        PICKED_UP: (IN_TRANSIT,),
        IN_TRANSIT: (REACHED_DESTINATION, OUT_FOR_DELIVERY),
        REACHED_DESTINATION: (OUT_FOR_DELIVERY,),
        OUT_FOR_DELIVERY: (DELIVERED, DELIVERY_FAILED),
        DELIVERY_FAILED: (OUT_FOR_DELIVERY, RTO_INITIATED),
        RTO_INITIATED: (RTO_IN_TRANSIT,),
        RTO_IN_TRANSIT: (RTO_DELIVERED,),
    }

    @classmethod
    def can_transition(cls, current, new):
        if new == cls.LOST:
            return current not in cls.TERMINAL
        return new in cls.TRANSITIONS.get(current, ())


class CourierAccount(BaseModel):
    name = models.CharField(max_length=150)
    courier_type = models.CharField(max_length=20, choices=CourierType.CHOICES)
    is_active = models.BooleanField(default=True)
    is_default = models.BooleanField(default=False)

    api_key = models.CharField(max_length=255, blank=True)
    api_secret = models.CharField(max_length=255, blank=True)
    access_token = models.CharField(max_length=1000, blank=True)
    account_id = models.CharField(max_length=100, blank=True)
    settings = models.JSONField(default=dict, blank=True)

    is_connected = models.BooleanField(default=False)
    last_error = models.TextField(blank=True)
    priority = models.PositiveIntegerField(default=100, help_text="Lower is preferred")
    supports_cod = models.BooleanField(default=True)
    supports_reverse = models.BooleanField(default=False)
    supports_express = models.BooleanField(default=False)

    class Meta:
        ordering = ['priority', 'name']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant'],
                condition=models.Q(is_default=True, deleted_at__isnull=True),
                name='one_default_courier_account_per_tenant',
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.courier_type})"

    def save(self, *args, **kwargs):
        if self.is_default:
            tenant_id = self.tenant_id or getattr(get_current_tenant(), 'pk', None)
            (CourierAccount.objects.filter(tenant_id=tenant_id, is_default=True)
             .exclude(pk=self.pk).update(is_default=False))
        super().save(*args, **kwargs)

    def make_default(self):
        self.is_default = True
        self.save()


class Shipment(BaseModel):
    shipment_number = models.CharField(max_length=40, unique=True, default=generate_shipment_number,
                                       editable=False)
    order = models.ForeignKey('orders.Order', on_delete=models.PROTECT, related_name='shipments')
    awb_number = models.CharField(max_length=30, blank=True, db_index=True)
    courier_type = models.CharField(max_length=20, choices=CourierType.CHOICES, default=CourierType.MANUAL)
    courier_name = models.CharField(max_length=100, blank=True)
    courier_account = models.ForeignKey(CourierAccount, on_delete=models.SET_NULL, null=True, blank=True,
                                        related_name='shipments')
    status = models.CharField(max_length=20, choices=ShipmentStatus.CHOICES, default=ShipmentStatus.CREATED,
                              db_index=True)

    pickup_address = models.JSONField(default=dict)
    delivery_address = models.JSONField(default=dict)

    # Parcel, centimetres and kilograms
    length = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    width = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    height = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    weight = models.DecimalField(max_digits=8, decimal_places=3, null=True, blank=True)

    is_cod = models.BooleanField(default=False)
    cod_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, default='INR')

    label_url = models.URLField(blank=True)
    tracking_url = models.URLField(blank=True)
    courier_response = models.JSONField(default=dict, blank=True)
    expected_delivery_date = models.DateField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['tenant', 'status']),
            models.Index(fields=['courier_type', 'awb_number']),
        ]

    def __str__(self):
        return self.shipment_number

    @property
    def dimensions(self):
        if None in (self.length, self.width, self.height, self.weight):
            return None
        return Dimensions(self.length, self.width, self.height, self.weight)

    @property
    def volumetric_weight(self):
        dims = self.dimensions
        return dims.volumetric_weight if dims else None

    @property
    def chargeable_weight(self):
        dims = self.dimensions
        if dims:
            return dims.chargeable_weight
        return self.weight

    @property
    def is_active(self):
        return self.status not in (ShipmentStatus.CANCELLED, ShipmentStatus.LOST)

    @property
    def can_cancel(self):
        return self.status in ShipmentStatus.CANCELLABLE

    def set_dimensions(self, length, width, height, weight):
        try:
            dims = Dimensions(length, width, height, weight)
        except ValueError as exc:
            raise ValidationError({'dimensions': str(exc)})
        self.length, self.width, self.height, self.weight = dims.length, dims.width, dims.height, dims.weight

    def set_awb(self, awb_number, courier_name='', label_url='', tracking_url=''):
        """Record the courier's AWB; the shipment becomes Manifested."""
        if self.status not in ShipmentStatus.CANCELLABLE:
            raise ValidationError({'awb_number': f'Cannot assign an AWB to a shipment that is {self.status}.'})
        try:
            awb = Awb(awb_number, self.courier_type)
        except ValueError as exc:
            raise ValidationError({'awb_number': str(exc)})
        self.awb_number = awb.number
        self.courier_name = courier_name or self.courier_name or self.courier_type
        self.label_url = label_url or self.label_url
        self.tracking_url = tracking_url or self.tracking_url
        previous = self.status
        self.status = ShipmentStatus.MANIFESTED
        self.save()
        if previous != ShipmentStatus.MANIFESTED:
            self._track(ShipmentStatus.MANIFESTED, remarks=f'AWB {awb.number} assigned')

    def update_status(self, new_status, location='', remarks='', raw_status='', event_time=None):
        if new_status not in dict(ShipmentStatus.CHOICES):
            raise ValidationError({'status': f'Unknown shipment status: {new_status}'})
        now = timezone.now()
        self.status = new_status
        if new_status == ShipmentStatus.PICKED_UP and self.picked_up_at is None:
            self.picked_up_at = event_time or now
        elif new_status == ShipmentStatus.DELIVERED:
            self.delivered_at = event_time or now
        self.save()
        return self._track(new_status, location, remarks, raw_status, event_time)

    def _track(self, status, location='', remarks='', raw_status='', event_time=None):
        return ShipmentTracking.objects.create(
            tenant_id=self.tenant_id,
            shipment=self,
            status=status,
            location=location or '',
            remarks=remarks or '',
            raw_status=raw_status or '',
            event_time=event_time or timezone.now(),
        )


class ShipmentItem(TenantAwareModel):
    shipment = models.ForeignKey(Shipment, on_delete=models.CASCADE, related_name='items')
    order_item = models.ForeignKey('orders.OrderItem', on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='shipment_items')
    sku = models.CharField(max_length=100)
    name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()

    objects = TenantAwareManager()

    def __str__(self):
        return f"{self.sku} x {self.quantity}"


class ShipmentTracking(TenantAwareModel):
    shipment = models.ForeignKey(Shipment, on_delete=models.CASCADE, related_name='tracking_events')
    status = models.CharField(max_length=20, choices=ShipmentStatus.CHOICES)
    location = models.CharField(max_length=255, blank=True)
    remarks = models.TextField(blank=True)
    raw_status = models.CharField(max_length=100, blank=True, help_text="Courier's own status code")
    event_time = models.DateTimeField(default=timezone.now)

    objects = TenantAwareManager()

    class Meta:
        ordering = ['-event_time', '-id']

    def __str__(self):
        return f"{self.shipment_id}: {self.status}"


auditlog.register(Shipment)
auditlog.register(CourierAccount, exclude_fields=['api_key', 'api_secret', 'access_token'])
