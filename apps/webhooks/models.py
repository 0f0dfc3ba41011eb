"""
Outbound webhook subscriptions and their delivery log.
"""

import secrets
import uuid
from urllib.parse import urlparse

from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone
from auditlog.registry import auditlog

from apps.core.models import BaseModel, TenantAwareModel
from apps.tenants.managers import TenantAwareManager


class WebhookEvent:
    ORDER_CREATED = 'order.created'
    ORDER_CONFIRMED = 'order.confirmed'
    ORDER_SHIPPED = 'order.shipped'
    ORDER_DELIVERED = 'order.delivered'
    ORDER_CANCELLED = 'order.cancelled'
    SHIPMENT_CREATED = 'shipment.created'
    SHIPMENT_IN_TRANSIT = 'shipment.in_transit'
    SHIPMENT_DELIVERED = 'shipment.delivered'
    SHIPMENT_RTO = 'shipment.rto'
    NDR_CREATED = 'ndr.created'
    NDR_RESOLVED = 'ndr.resolved'
    NDR_ESCALATED = 'ndr.escalated'
    INVENTORY_LOW = 'inventory.low'
    INVENTORY_OUT_OF_STOCK = 'inventory.out_of_stock'

    ALL = (
        ORDER_CREATED, ORDER_CONFIRMED, ORDER_SHIPPED, ORDER_DELIVERED, ORDER_CANCELLED,
        SHIPMENT_CREATED, SHIPMENT_IN_TRANSIT, SHIPMENT_DELIVERED, SHIPMENT_RTO,
        NDR_CREATED, NDR_RESOLVED, NDR_ESCALATED,
        INVENTORY_LOW, INVENTORY_OUT_OF_STOCK,
    )


def generate_secret():
    return secrets.token_hex(32)


def validate_webhook_url(value):
    parsed = urlparse(value or '')
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ValidationError('Webhook URL must be an absolute http or https URL.')


def validate_events(value):
    if not isinstance(value, list) or not value:
        raise ValidationError('At least one event is required.')
    unknown = sorted(set(value) - set(WebhookEvent.ALL))
    if unknown:
        raise ValidationError(f"Unknown events: {', '.join(unknown)}")


class WebhookSubscription(BaseModel):
    name = models.CharField(max_length=100)
    url = models.URLField(max_length=500, validators=[validate_webhook_url])
    secret = models.CharField(max_length=128, blank=True)
    events = models.JSONField(default=list, validators=[validate_events])
    headers = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)
    max_retries = models.PositiveSmallIntegerField(default=3)
    timeout_seconds = models.PositiveSmallIntegerField(default=30)

    total_deliveries = models.PositiveIntegerField(default=0)
    successful_deliveries = models.PositiveIntegerField(default=0)
    failed_deliveries = models.PositiveIntegerField(default=0)
    last_triggered_at = models.DateTimeField(null=True, blank=True)
    last_success_at = models.DateTimeField(null=True, blank=True)
    last_failure_at = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [models.Index(fields=['tenant', 'is_active'])]

    def __str__(self):
        return f"{self.name} -> {self.url}"

    def save(self, *args, **kwargs):
        if not self.secret:
            self.secret = generate_secret()
        super().save(*args, **kwargs)

    def subscribes_to(self, event):
        return self.is_active and event in (self.events or [])

    def regenerate_secret(self):
        self.secret = generate_secret()
        self.save(update_fields=['secret', 'updated_at'])
        return self.secret

    def record_delivery(self, success, error=''):
        now = timezone.now()
        self.total_deliveries += 1
        self.last_triggered_at = now
        if success:
            self.successful_deliveries += 1
            self.last_success_at = now
            self.last_error = ''
        else:
            self.failed_deliveries += 1
            self.last_failure_at = now
            self.last_error = (error or '')[:1000]
        self.save(update_fields=[
            'total_deliveries', 'successful_deliveries', 'failed_deliveries',
            'last_triggered_at', 'last_success_at', 'last_failure_at', 'last_error', 'updated_at',
        ])

    @property
    def success_rate(self):
        if not self.total_deliveries:
            return 0.0
        return round(self.successful_deliveries * 100.0 / self.total_deliveries, 2)


class WebhookDelivery(TenantAwareModel):
    STATUS_PENDING = 'Pending'
    STATUS_DELIVERED = 'Delivered'
    STATUS_FAILED = 'Failed'
    STATUS_RETRYING = 'Retrying'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_RETRYING, 'Retrying'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    subscription = models.ForeignKey(WebhookSubscription, on_delete=models.CASCADE, related_name='deliveries')
    event = models.CharField(max_length=50, db_index=True)
    payload = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    attempt_count = models.PositiveSmallIntegerField(default=0)
    http_status_code = models.PositiveSmallIntegerField(null=True, blank=True)
    response_body = models.TextField(blank=True)
    error_message = models.TextField(blank=True)
    duration_ms = models.PositiveIntegerField(null=True, blank=True)
    next_retry_at = models.DateTimeField(null=True, blank=True, db_index=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantAwareManager()

    class Meta:
        ordering = ['-created_at']
        verbose_name_plural = 'Webhook deliveries'

    def __str__(self):
        return f"{self.event} -> {self.subscription_id} ({self.status})"


auditlog.register(WebhookSubscription)
