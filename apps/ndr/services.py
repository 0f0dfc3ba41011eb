import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db.models import Count, Q
from django.utils import timezone

from apps.core.exceptions import ConflictError, NotFoundError
from apps.core.pipeline import audit_user, handler
from apps.tenants.context import get_current_tenant
from apps.webhooks.dispatcher import dispatch_event
from apps.webhooks.models import WebhookEvent

from .models import NdrReason, NdrRecord, NdrStatus

logger = logging.getLogger(__name__)


def get_ndr(ndr_id):
    ndr = NdrRecord.objects.for_tenant(get_current_tenant()).select_related('order', 'shipment').filter(
        pk=ndr_id).first()
    if ndr is None:
        raise NotFoundError(resource='NDR', key=ndr_id)
    return ndr


def ndr_payload(ndr):
    return {
        'ndr_id': ndr.pk,
        'awb_number': ndr.awb_number,
        'order_number': ndr.order.order_number,
        'shipment_number': ndr.shipment.shipment_number,
        'status': ndr.status,
        'reason_code': ndr.reason_code,
        'attempt_count': ndr.attempt_count,
        'resolution': ndr.resolution or None,
    }


def open_ndr_for_shipment(shipment, *, reason_code=NdrReason.OTHER, reason_description='', actor=None):
    """Open an NDR for a failed delivery. Returns None when one is already open."""
    if NdrRecord.objects.filter(shipment=shipment).exclude(status__in=NdrStatus.CLOSED).exists():
        return None
    if reason_code not in dict(NdrReason.CHOICES):
        reason_code = NdrReason.OTHER
    ndr = NdrRecord.objects.create(
        tenant_id=shipment.tenant_id,
        shipment=shipment,
        order_id=shipment.order_id,
        awb_number=shipment.awb_number or shipment.shipment_number,
        reason_code=reason_code,
        reason_description=reason_description or '',
        created_by=audit_user(actor),
    )
    logger.info("Opened NDR %s for shipment %s (%s)", ndr.pk, shipment.shipment_number, reason_code)
    dispatch_event(shipment.tenant, WebhookEvent.NDR_CREATED, ndr_payload(ndr))
    return ndr


@handler('CreateNdr', permissions='ndr.action', feature='ndr_management')
def create_ndr(*, actor, shipment_id, reason_code=NdrReason.OTHER, reason_description=''):
    from apps.shipments.models import Shipment

    shipment = Shipment.objects.for_tenant(get_current_tenant()).filter(pk=shipment_id).first()
    if shipment is None:
        raise NotFoundError(resource='Shipment', key=shipment_id)
    if reason_code not in dict(NdrReason.CHOICES):
        raise ValidationError({'reason_code': f'Unknown reason code: {reason_code}'})
    ndr = open_ndr_for_shipment(shipment, reason_code=reason_code, reason_description=reason_description,
                                actor=actor)
    if ndr is None:
        raise ConflictError("An open NDR already exists for this shipment.")
    return ndr


@handler('AssignNdr', permissions='ndr.assign', feature='ndr_management')
def assign_ndr(*, actor, ndr_id, user_id):
    ndr = get_ndr(ndr_id)
    user = get_user_model().objects.filter(tenant=ndr.tenant, pk=user_id, is_active=True).first()
    if user is None:
        raise NotFoundError(resource='User', key=user_id)
    ndr.assign_to(user, performed_by=audit_user(actor))
    return ndr


@handler('RecordNdrAction', permissions='ndr.action', feature='ndr_management')
def record_ndr_action(*, actor, ndr_id, action_type, details='', outcome='', call_duration_seconds=None):
    ndr = get_ndr(ndr_id)
    return ndr.add_action(action_type, performed_by=audit_user(actor), details=details, outcome=outcome,
                          call_duration_seconds=call_duration_seconds)


@handler('AddNdrRemark', permissions='ndr.action', feature='ndr_management')
def add_ndr_remark(*, actor, ndr_id, content, is_internal=True):
    ndr = get_ndr(ndr_id)
    return ndr.add_remark(content, author=audit_user(actor), is_internal=is_internal)


@handler('ScheduleReattempt', permissions='ndr.reattempt', feature='ndr_management')
def schedule_reattempt(*, actor, ndr_id, reattempt_at, notes=''):
    ndr = get_ndr(ndr_id)
    ndr.schedule_reattempt(reattempt_at, performed_by=audit_user(actor), notes=notes)
    return ndr


@handler('EscalateNdr', permissions='ndr.action', feature='ndr_management')
def escalate_ndr(*, actor, ndr_id, reason):
    ndr = get_ndr(ndr_id)
    ndr.escalate(reason, performed_by=audit_user(actor))
    dispatch_event(ndr.tenant, WebhookEvent.NDR_ESCALATED, ndr_payload(ndr))
    return ndr


@handler('InitiateNdrRto', permissions='ndr.action', feature='ndr_management')
def initiate_rto(*, actor, ndr_id, reason=''):
    ndr = get_ndr(ndr_id)
    ndr.initiate_rto(performed_by=audit_user(actor), reason=reason)
    return ndr


@handler('ResolveNdr', permissions='ndr.action', feature='ndr_management')
def resolve_ndr(*, actor, ndr_id, resolution, notes=''):
    ndr = get_ndr(ndr_id)
    ndr.resolve(resolution, notes, performed_by=audit_user(actor))
    dispatch_event(ndr.tenant, WebhookEvent.NDR_RESOLVED, ndr_payload(ndr))
    return ndr


def close_open_ndrs(shipment, resolution, notes=''):
    """Close any open NDR for a shipment the courier finally delivered or returned."""
    closed = []
    for ndr in NdrRecord.objects.filter(shipment=shipment).exclude(status__in=NdrStatus.CLOSED):
        ndr.resolve(resolution, notes)
        dispatch_event(ndr.tenant, WebhookEvent.NDR_RESOLVED, ndr_payload(ndr))
        closed.append(ndr)
    return closed


def get_ndr_stats(tenant):
    qs = NdrRecord.objects.for_tenant(tenant)
    by_status = dict(qs.order_by().values('status').annotate(n=Count('id')).values_list('status', 'n'))
    by_reason = dict(qs.order_by().values('reason_code').annotate(n=Count('id')).values_list('reason_code', 'n'))
    closed = sum(by_status.get(s, 0) for s in NdrStatus.CLOSED)
    delivered = by_status.get(NdrStatus.CLOSED_DELIVERED, 0)
    return {
        'total': sum(by_status.values()),
        'open': sum(by_status.values()) - closed,
        'closed': closed,
        'unassigned': qs.filter(assigned_to__isnull=True).exclude(status__in=NdrStatus.CLOSED).count(),
        'overdue': qs.exclude(status__in=NdrStatus.CLOSED).filter(
            Q(next_follow_up_at__isnull=False) & Q(next_follow_up_at__lt=timezone.now())).count(),
        'by_status': by_status,
        'by_reason': by_reason,
        'delivery_success_rate': round(delivered * 100.0 / closed, 1) if closed else 0.0,
    }
