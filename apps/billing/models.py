"""
Plans, features and tenant subscriptions.

These rows live in the shared schema. A tenant has one subscription; the
plan behind it decides which features the tenant may use and the limits
that apply (users, channels, monthly orders; 0 means unlimited).
"""

from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from auditlog.registry import auditlog


class Feature(models.Model):
    """A plan-gated capability, e.g. ``orders_management``."""

    ORDERS_MANAGEMENT = 'orders_management'
    SHIPMENTS_MANAGEMENT = 'shipments_management'
    NDR_MANAGEMENT = 'ndr_management'
    INVENTORY_MANAGEMENT = 'inventory_management'
    MULTI_CHANNEL = 'multi_channel'
    ANALYTICS_BASIC = 'analytics_basic'
    ANALYTICS_ADVANCED = 'analytics_advanced'
    TEAM_MANAGEMENT = 'team_management'
    BULK_OPERATIONS = 'bulk_operations'
    API_ACCESS = 'api_access'
    WEBHOOKS = 'webhooks'
    CUSTOM_BRANDING = 'custom_branding'
    PRIORITY_SUPPORT = 'priority_support'

    code = models.CharField(max_length=100, unique=True)
    name = models.CharField(max_length=150)
    description = models.CharField(max_length=255, blank=True)
    module = models.CharField(max_length=50, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['module', 'code']

    def __str__(self):
        return self.code


class Plan(models.Model):
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    price_monthly = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    price_yearly = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default='INR')

    # Limits (0 = unlimited)
    max_users = models.PositiveIntegerField(default=0)
    max_orders_per_month = models.PositiveIntegerField(default=0)
    max_channels = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)
    sort_order = models.IntegerField(default=0)
    features = models.ManyToManyField(Feature, related_name='plans', blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['sort_order', 'price_monthly']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().lower()
        self.currency = (self.currency or 'INR').upper()
        super().save(*args, **kwargs)

    def clean(self):
        if self.price_monthly < 0 or self.price_yearly < 0:
            raise ValidationError({'price_monthly': 'Plan prices cannot be negative.'})

    def feature_codes(self):
        return set(self.features.filter(is_active=True).values_list('code', flat=True))

    def price_for(self, yearly=False):
        return self.price_yearly if yearly else self.price_monthly


class Subscription(models.Model):
    """
    A tenant's subscription to a plan.

    State machine::

        Trial -> Active -> (PastDue | Paused | Cancelled | Expired)
        Paused -> Active (resume)
        PastDue -> Active (activate / renew)
    """

    STATUS_TRIAL = 'Trial'
    STATUS_ACTIVE = 'Active'
    STATUS_PAST_DUE = 'PastDue'
    STATUS_CANCELLED = 'Cancelled'
    STATUS_EXPIRED = 'Expired'
    STATUS_PAUSED = 'Paused'

    STATUS_CHOICES = [
        (STATUS_TRIAL, 'Trial'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_PAST_DUE, 'Past Due'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_EXPIRED, 'Expired'),
        (STATUS_PAUSED, 'Paused'),
    ]

    CYCLE_MONTHLY = 'Monthly'
    CYCLE_YEARLY = 'Yearly'
    CYCLE_CHOICES = [(CYCLE_MONTHLY, 'Monthly'), (CYCLE_YEARLY, 'Yearly')]

    tenant = models.OneToOneField('tenants.Tenant', on_delete=models.CASCADE, related_name='subscription')
    plan = models.ForeignKey(Plan, on_delete=models.PROTECT, related_name='subscriptions')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_TRIAL, db_index=True)
    billing_cycle = models.CharField(max_length=10, choices=CYCLE_CHOICES, default=CYCLE_MONTHLY)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default='INR')

    trial_ends_at = models.DateTimeField(null=True, blank=True)
    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.CharField(max_length=500, blank=True)
    paused_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.tenant_id} on {self.plan_id} ({self.status})"

    def get_additional_data(self):
        return {'tenant_id': str(self.tenant_id)}

    @classmethod
    def create_trial(cls, tenant, plan, days=None):
        days = days if days is not None else getattr(settings, 'TENANT_TRIAL_DAYS', 14)
        now = timezone.now()
        return cls.objects.create(
            tenant=tenant,
            plan=plan,
            status=cls.STATUS_TRIAL,
            price=Decimal('0.00'),
            currency=plan.currency,
            trial_ends_at=now + timedelta(days=days),
            current_period_start=now,
            current_period_end=now + timedelta(days=days),
        )

    # Properties

    @property
    def is_yearly(self):
        return self.billing_cycle == self.CYCLE_YEARLY

    @property
    def is_in_trial(self):
        return self.status == self.STATUS_TRIAL and bool(self.trial_ends_at and self.trial_ends_at > timezone.now())

    @property
    def is_expired(self):
        if self.status == self.STATUS_EXPIRED:
            return True
        if self.status == self.STATUS_TRIAL:
            return bool(self.trial_ends_at and self.trial_ends_at <= timezone.now())
        return bool(self.current_period_end and self.current_period_end <= timezone.now()
                    and self.status != self.STATUS_CANCELLED)

    @property
    def is_usable(self):
        if self.status == self.STATUS_TRIAL:
            return self.is_in_trial
        return self.status in (self.STATUS_ACTIVE, self.STATUS_PAST_DUE) and not self.is_expired

    # Transitions

    def _period_length(self):
        return timedelta(days=365) if self.is_yearly else timedelta(days=30)

    def activate(self, price=None, yearly=False):
        if self.status == self.STATUS_CANCELLED:
            self.cancelled_at = None
            self.cancel_reason = ''
        now = timezone.now()
        self.billing_cycle = self.CYCLE_YEARLY if yearly else self.CYCLE_MONTHLY
        self.price = price if price is not None else self.plan.price_for(yearly)
        if self.price < 0:
            raise ValidationError({'price': 'Price cannot be negative.'})
        self.status = self.STATUS_ACTIVE
        self.current_period_start = now
        self.current_period_end = now + self._period_length()
        self.paused_at = None
        self.save()

    def cancel(self, reason=''):
        if self.status in (self.STATUS_CANCELLED, self.STATUS_EXPIRED):
            raise ValidationError({'status': f'Subscription is already {self.status.lower()}.'})
        self.status = self.STATUS_CANCELLED
        self.cancelled_at = timezone.now()
        self.cancel_reason = reason or ''
        self.save()

    def renew(self):
        if self.status not in (self.STATUS_ACTIVE, self.STATUS_PAST_DUE):
            raise ValidationError({'status': 'Only active or past-due subscriptions can be renewed.'})
        start = max(self.current_period_end or timezone.now(), timezone.now())
        self.current_period_start = start
        self.current_period_end = start + self._period_length()
        self.status = self.STATUS_ACTIVE
        self.save()

    def change_plan(self, plan, price=None):
        if self.status in (self.STATUS_CANCELLED, self.STATUS_EXPIRED):
            raise ValidationError({'plan': 'Cannot change the plan of an inactive subscription.'})
        self.plan = plan
        if price is not None:
            self.price = price
        elif self.status != self.STATUS_TRIAL:
            self.price = plan.price_for(self.is_yearly)
        self.currency = plan.currency
        self.save()

    def pause(self):
        if self.status != self.STATUS_ACTIVE:
            raise ValidationError({'status': 'Only active subscriptions can be paused.'})
        self.status = self.STATUS_PAUSED
        self.paused_at = timezone.now()
        self.save()

    def resume(self):
        if self.status != self.STATUS_PAUSED:
            raise ValidationError({'status': 'Only paused subscriptions can be resumed.'})
        # The paused interval is added back to the current period
        if self.paused_at and self.current_period_end:
            self.current_period_end += timezone.now() - self.paused_at
        self.status = self.STATUS_ACTIVE
        self.paused_at = None
        self.save()

    def mark_past_due(self):
        if self.status != self.STATUS_ACTIVE:
            raise ValidationError({'status': 'Only active subscriptions can become past due.'})
        self.status = self.STATUS_PAST_DUE
        self.save()

    def expire(self):
        self.status = self.STATUS_EXPIRED
        self.save()


auditlog.register(Plan)
auditlog.register(Subscription)
