"""
Non-delivery reports (NDR).

An `NdrRecord` is opened when a courier reports a failed delivery. Agents
work it through calls, reattempts and escalation until it is closed as
delivered, returned to origin or delivered to an updated address.
"""

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from auditlog.registry import auditlog

from apps.core.models import BaseModel, TenantAwareModel
from apps.tenants.managers import TenantAwareManager


class NdrStatus:
    OPEN = 'Open'
    ASSIGNED = 'Assigned'
    CUSTOMER_CONTACTED = 'CustomerContacted'
    REATTEMPT_SCHEDULED = 'ReattemptScheduled'
    REATTEMPT_IN_PROGRESS = 'ReattemptInProgress'
    DELIVERED = 'Delivered'
    RTO_INITIATED = 'RTOInitiated'
    ESCALATED = 'Escalated'
    CLOSED_DELIVERED = 'ClosedDelivered'
    CLOSED_RTO = 'ClosedRTO'
    CLOSED_ADDRESS_UPDATED = 'ClosedAddressUpdated'

    CHOICES = [(s, s) for s in (
        OPEN, ASSIGNED, CUSTOMER_CONTACTED, REATTEMPT_SCHEDULED, REATTEMPT_IN_PROGRESS, DELIVERED,
        RTO_INITIATED, ESCALATED, CLOSED_DELIVERED, CLOSED_RTO, CLOSED_ADDRESS_UPDATED,
    )]
    CLOSED = (CLOSED_DELIVERED, CLOSED_RTO, CLOSED_ADDRESS_UPDATED)


class NdrReason:
    CUSTOMER_NOT_AVAILABLE = 'CustomerNotAvailable'
    CUSTOMER_REFUSED = 'CustomerRefused'
    INCORRECT_ADDRESS = 'IncorrectAddress'
    CUSTOMER_UNREACHABLE = 'CustomerUnreachable'
    COD_NOT_READY = 'CODNotReady'
    FUTURE_DELIVERY_REQUESTED = 'FutureDeliveryRequested'
    OPEN_DELIVERY_REQUESTED = 'OpenDeliveryRequested'
    ADDRESS_CHANGE_REQUESTED = 'AddressChangeRequested'
    PREMISES_CLOSED = 'PremisesClosed'
    CUSTOMER_OUT_OF_STATION = 'CustomerOutOfStation'
    PRODUCT_DAMAGED = 'ProductDamaged'
    SECURITY_RESTRICTION = 'SecurityRestriction'
    WEATHER_ISSUE = 'WeatherIssue'
    OTHER = 'Other'

    CHOICES = [(r, r) for r in (
        CUSTOMER_NOT_AVAILABLE, CUSTOMER_REFUSED, INCORRECT_ADDRESS, CUSTOMER_UNREACHABLE, COD_NOT_READY,
        FUTURE_DELIVERY_REQUESTED, OPEN_DELIVERY_REQUESTED, ADDRESS_CHANGE_REQUESTED, PREMISES_CLOSED,
        CUSTOMER_OUT_OF_STATION, PRODUCT_DAMAGED, SECURITY_RESTRICTION, WEATHER_ISSUE, OTHER,
    )]


class NdrActionType:
    PHONE_CALL = 'PhoneCall'
    WHATSAPP_MESSAGE = 'WhatsAppMessage'
    SMS = 'SMS'
    EMAIL = 'Email'
    CALLBACK_SCHEDULED = 'CallbackScheduled'
    REATTEMPT_REQUESTED = 'ReattemptRequested'
    ADDRESS_UPDATED = 'AddressUpdated'
    ESCALATED = 'Escalated'
    RTO_INITIATED = 'RTOInitiated'
    REASSIGNED = 'Reassigned'
    REMARK_ADDED = 'RemarkAdded'

    CHOICES = [(a, a) for a in (
        PHONE_CALL, WHATSAPP_MESSAGE, SMS, EMAIL, CALLBACK_SCHEDULED, REATTEMPT_REQUESTED,
        ADDRESS_UPDATED, ESCALATED, RTO_INITIATED, REASSIGNED, REMARK_ADDED,
    )]


class NdrRecord(BaseModel):
    RESOLUTION_DELIVERED = 'Delivered'
    RESOLUTION_RTO = 'RTO'
    RESOLUTION_ADDRESS_UPDATED = 'AddressUpdated'
    RESOLUTION_STATUSES = {
        RESOLUTION_DELIVERED: NdrStatus.CLOSED_DELIVERED,
        RESOLUTION_RTO: NdrStatus.CLOSED_RTO,
        RESOLUTION_ADDRESS_UPDATED: NdrStatus.CLOSED_ADDRESS_UPDATED,
    }
    RESOLUTION_CHOICES = [(r, r) for r in RESOLUTION_STATUSES]

    shipment = models.ForeignKey('shipments.Shipment', on_delete=models.PROTECT, related_name='ndr_records')
    order = models.ForeignKey('orders.Order', on_delete=models.PROTECT, related_name='ndr_records')
    awb_number = models.CharField(max_length=30, db_index=True)
    status = models.CharField(max_length=25, choices=NdrStatus.CHOICES, default=NdrStatus.OPEN, db_index=True)
    reason_code = models.CharField(max_length=30, choices=NdrReason.CHOICES, default=NdrReason.OTHER)
    reason_description = models.TextField(blank=True)
    ndr_date = models.DateTimeField(default=timezone.now)

    assigned_to = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='assigned_ndrs')
    assigned_at = models.DateTimeField(null=True, blank=True)
    attempt_count = models.PositiveIntegerField(default=1)
    next_follow_up_at = models.DateTimeField(null=True, blank=True, db_index=True)

    resolved_at = models.DateTimeField(null=True, blank=True)
    resolution = models.CharField(max_length=20, choices=RESOLUTION_CHOICES, blank=True)
    resolution_notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-ndr_date']
        verbose_name = 'NDR record'
        indexes = [
            models.Index(fields=['tenant', 'status']),
        ]

    def __str__(self):
        return f"NDR {self.awb_number} ({self.status})"

    @property
    def is_closed(self):
        return self.status in NdrStatus.CLOSED

    @property
    def is_overdue(self):
        return (not self.is_closed and self.next_follow_up_at is not None
                and self.next_follow_up_at < timezone.now())

    def ensure_open(self):
        if self.is_closed:
            raise ValidationError({'status': f'NDR is closed ({self.status}).'})

    def _set_status(self, status, user=None):
        self.status = status
        self.touch(user)
        self.save()

    def add_action(self, action_type, performed_by=None, details='', outcome='', call_duration_seconds=None):
        self.ensure_open()
        if action_type not in dict(NdrActionType.CHOICES):
            raise ValidationError({'action_type': f'Unknown action type: {action_type}'})
        action = NdrAction.objects.create(
            tenant_id=self.tenant_id,
            ndr=self,
            action_type=action_type,
            performed_by=performed_by,
            details=details or '',
            outcome=outcome or '',
            call_duration_seconds=call_duration_seconds,
        )
        if action_type == NdrActionType.PHONE_CALL and self.status in (NdrStatus.OPEN, NdrStatus.ASSIGNED):
            self._set_status(NdrStatus.CUSTOMER_CONTACTED, performed_by)
        else:
            self.touch(performed_by)
            self.save(update_fields=['updated_by', 'updated_at'])
        return action

    def add_remark(self, content, author=None, is_internal=True):
        content = (content or '').strip()
        if not content:
            raise ValidationError({'content': 'Remark cannot be empty.'})
        return NdrRemark.objects.create(
            tenant_id=self.tenant_id, ndr=self, content=content, author=author, is_internal=is_internal,
        )

    def assign_to(self, user, performed_by=None):
        self.ensure_open()
        previous = self.assigned_to
        self.assigned_to = user
        self.assigned_at = timezone.now()
        self._set_status(NdrStatus.ASSIGNED, performed_by)
        details = f"Assigned to {user.email}"
        if previous is not None and previous.pk != user.pk:
            details = f"Reassigned from {previous.email} to {user.email}"
        NdrAction.objects.create(
            tenant_id=self.tenant_id, ndr=self, action_type=NdrActionType.REASSIGNED,
            performed_by=performed_by, details=details,
        )

    def schedule_reattempt(self, reattempt_at, performed_by=None, notes=''):
        self.ensure_open()
        if reattempt_at <= timezone.now():
            raise ValidationError({'reattempt_date': 'Reattempt date must be in the future.'})
        self.attempt_count += 1
        self.next_follow_up_at = reattempt_at
        self._set_status(NdrStatus.REATTEMPT_SCHEDULED, performed_by)
        NdrAction.objects.create(
            tenant_id=self.tenant_id, ndr=self, action_type=NdrActionType.REATTEMPT_REQUESTED,
            performed_by=performed_by, details=notes or f"Reattempt scheduled for {reattempt_at:%Y-%m-%d}",
        )

    def escalate(self, reason, performed_by=None):
        self.ensure_open()
        self._set_status(NdrStatus.ESCALATED, performed_by)
        NdrAction.objects.create(
            tenant_id=self.tenant_id, ndr=self, action_type=NdrActionType.ESCALATED,
            performed_by=performed_by, details=reason or '',
        )

    def initiate_rto(self, performed_by=None, reason=''):
        self.ensure_open()
        self._set_status(NdrStatus.RTO_INITIATED, performed_by)
        NdrAction.objects.create(
            tenant_id=self.tenant_id, ndr=self, action_type=NdrActionType.RTO_INITIATED,
            performed_by=performed_by, details=reason or '',
        )

    def resolve(self, resolution, notes='', performed_by=None):
        self.ensure_open()
        status = self.RESOLUTION_STATUSES.get(resolution)
        if status is None:
            raise ValidationError({'resolution': f'Unknown resolution: {resolution}'})
        self.resolution = resolution
        self.resolution_notes = notes or ''
        self.resolved_at = timezone.now()
        self.next_follow_up_at = None
        self._set_status(status, performed_by)


class NdrAction(TenantAwareModel):
    ndr = models.ForeignKey(NdrRecord, on_delete=models.CASCADE, related_name='actions')
    action_type = models.CharField(max_length=25, choices=NdrActionType.CHOICES)
    performed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                     related_name='ndr_actions')
    details = models.TextField(blank=True)
    outcome = models.CharField(max_length=255, blank=True)
    call_duration_seconds = models.PositiveIntegerField(null=True, blank=True)
    performed_at = models.DateTimeField(auto_now_add=True)

    objects = TenantAwareManager()

    class Meta:
        ordering = ['-performed_at', '-id']

    def __str__(self):
        return f"{self.action_type} on {self.ndr_id}"


class NdrRemark(TenantAwareModel):
    ndr = models.ForeignKey(NdrRecord, on_delete=models.CASCADE, related_name='remarks')
    content = models.TextField()
    is_internal = models.BooleanField(default=True)
    author = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                               related_name='ndr_remarks')
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantAwareManager()

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return self.content[:50]


auditlog.register(NdrRecord)
