"""
Shipment services.

Manual commands run as pipeline handlers and use the strict transition
table. Courier webhooks go through `apply_courier_update`, which accepts
whatever status the courier reports and cascades it onto the order and
the NDR workflow.
"""

import logging

from django.core.exceptions import ValidationError
from django.db.models import Count, Q

from apps.core.exceptions import IntegrationError, NotFoundError
from apps.core.pipeline import audit_user, handler
from apps.core.value_objects import Address
from apps.ndr.models import NdrRecord
from apps.ndr.services import close_open_ndrs, open_ndr_for_shipment
from apps.orders.models import Order
from apps.orders.services import apply_external_status, get_order
from apps.tenants.configuration import tenant_setting
from apps.tenants.context import get_current_tenant, tenant_context
from apps.webhooks.dispatcher import dispatch_event
from apps.webhooks.models import WebhookEvent

from .couriers import CourierResult, get_courier_adapter
from .models import CourierAccount, CourierType, Shipment, ShipmentItem, ShipmentStatus

logger = logging.getLogger(__name__)

SHIPPABLE_ORDER_STATUSES = (Order.STATUS_CONFIRMED, Order.STATUS_PROCESSING)

STATUS_EVENTS = {
    ShipmentStatus.PICKED_UP: WebhookEvent.SHIPMENT_IN_TRANSIT,
    ShipmentStatus.IN_TRANSIT: WebhookEvent.SHIPMENT_IN_TRANSIT,
    ShipmentStatus.DELIVERED: WebhookEvent.SHIPMENT_DELIVERED,
    ShipmentStatus.RTO_INITIATED: WebhookEvent.SHIPMENT_RTO,
    ShipmentStatus.RTO_IN_TRANSIT: WebhookEvent.SHIPMENT_RTO,
    ShipmentStatus.RTO_DELIVERED: WebhookEvent.SHIPMENT_RTO,
}

# Order status implied by a shipment status.
ORDER_CASCADE = {
    ShipmentStatus.PICKED_UP: Order.STATUS_SHIPPED,
    ShipmentStatus.IN_TRANSIT: Order.STATUS_SHIPPED,
    ShipmentStatus.REACHED_DESTINATION: Order.STATUS_SHIPPED,
    ShipmentStatus.OUT_FOR_DELIVERY: Order.STATUS_SHIPPED,
    ShipmentStatus.DELIVERED: Order.STATUS_DELIVERED,
    ShipmentStatus.RTO_DELIVERED: Order.STATUS_RTO,
}


def get_shipment(shipment_id, tenant=None):
    shipment = Shipment.objects.for_tenant(tenant or get_current_tenant()).select_related('order').filter(
        pk=shipment_id).first()
    if shipment is None:
        raise NotFoundError(resource='Shipment', key=shipment_id)
    return shipment


def shipment_payload(shipment):
    return {
        'shipment_id': shipment.pk,
        'shipment_number': shipment.shipment_number,
        'order_number': shipment.order.order_number,
        'awb_number': shipment.awb_number,
        'courier_type': shipment.courier_type,
        'status': shipment.status,
        'tracking_url': shipment.tracking_url,
    }


def _courier_account(tenant, courier_account_id, courier_type):
    if courier_account_id:
        account = CourierAccount.objects.for_tenant(tenant).filter(pk=courier_account_id, is_active=True).first()
        if account is None:
            raise NotFoundError(resource='Courier account', key=courier_account_id)
        return account
    if courier_type == CourierType.MANUAL:
        return None
    return (CourierAccount.objects.for_tenant(tenant)
            .filter(courier_type=courier_type, is_active=True)
            .order_by('-is_default', 'priority').first())


def _shipment_items(order, items):
    order_items = {item.pk: item for item in order.items.all()}
    if not items:
        return [(item, item.quantity) for item in order_items.values()]
    selected = []
    for entry in items:
        item = order_items.get(entry.get('order_item_id'))
        if item is None:
            raise ValidationError({'items': f"Order item {entry.get('order_item_id')} is not part of this order."})
        quantity = int(entry.get('quantity') or item.quantity)
        if quantity <= 0 or quantity > item.quantity:
            raise ValidationError({'items': f"Invalid quantity {quantity} for {item.sku}."})
        selected.append((item, quantity))
    return selected


def _adapter(shipment, transport=None):
    return get_courier_adapter(shipment.courier_type, shipment.courier_account, transport=transport)


def _book_with_courier(shipment, transport=None):
    adapter = _adapter(shipment, transport)
    if not adapter.has_credentials():
        return None
    result = adapter.create_shipment(shipment)
    if not result.success:
        logger.warning("Booking %s with %s failed: %s", shipment.shipment_number, shipment.courier_type,
                       result.message)
        shipment.courier_response = {'error': result.message, 'errors': result.errors}
        shipment.save(update_fields=['courier_response', 'updated_at'])
        return result

    booking = result.data
    shipment.courier_response = dict(booking, message=result.message)
    shipment.save(update_fields=['courier_response', 'updated_at'])
    if booking.get('awb_number'):
        shipment.set_awb(booking['awb_number'], courier_name=booking.get('courier_name', ''),
                         label_url=booking.get('label_url', ''), tracking_url=booking.get('tracking_url', ''))
    return result


@handler('CreateShipment', permissions='shipments.create', feature='shipments_management')
def create_shipment(*, actor, order_id, courier_type=CourierType.MANUAL, courier_account_id=None,
                    pickup_address=None, items=None, length=None, width=None, height=None, weight=None,
                    shipping_cost=None, expected_delivery_date=None, transport=None):
    """
    Create a shipment for a confirmed order.

    When the courier account has credentials the shipment is booked with
    the courier straight away and comes back Manifested with its AWB. A
    failed booking leaves it Created with the courier's error in
    ``courier_response``, ready for `assign_courier`.
    """
    tenant = get_current_tenant()
    order = get_order(order_id, tenant)
    if order.status not in SHIPPABLE_ORDER_STATUSES:
        raise ValidationError({'order': f'Cannot ship an order that is {order.status}.'})
    active = [s for s in order.shipments.all() if s.is_active and not s.is_deleted]
    if active:
        raise ValidationError({'order': f'Order already has an active shipment ({active[0].shipment_number}).'})
    if courier_type not in dict(CourierType.CHOICES):
        raise ValidationError({'courier_type': f'Unsupported courier: {courier_type}'})

    account = _courier_account(tenant, courier_account_id, courier_type)
    pickup_address = pickup_address or tenant_setting(tenant, 'shipments', 'pickup_address')
    if pickup_address:
        try:
            pickup_address = Address.from_dict(pickup_address).to_dict()
        except ValueError as exc:
            raise ValidationError({'pickup_address': str(exc)})

    shipment = Shipment(
        tenant=tenant,
        order=order,
        courier_type=courier_type,
        courier_account=account,
        courier_name=account.name if account else '',
        pickup_address=pickup_address or {},
        delivery_address=order.shipping_address,
        is_cod=order.is_cod,
        cod_amount=order.total_amount if order.is_cod else 0,
        shipping_cost=shipping_cost,
        currency=order.currency,
        expected_delivery_date=expected_delivery_date,
        created_by=audit_user(actor),
    )
    if None not in (length, width, height, weight):
        shipment.set_dimensions(length, width, height, weight)
    elif weight is not None:
        shipment.weight = weight
    shipment.save()

    for order_item, quantity in _shipment_items(order, items):
        ShipmentItem.objects.create(
            tenant=tenant, shipment=shipment, order_item=order_item,
            sku=order_item.sku, name=order_item.name, quantity=quantity,
        )
    shipment._track(ShipmentStatus.CREATED, remarks='Shipment created')
    if account is not None and courier_type != CourierType.MANUAL:
        _book_with_courier(shipment, transport)
    if order.status == Order.STATUS_CONFIRMED:
        apply_external_status(order, Order.STATUS_PROCESSING, actor=actor,
                              reason=f'Shipment {shipment.shipment_number} created')

    logger.info("Created shipment %s for order %s via %s", shipment.shipment_number, order.order_number,
                courier_type)
    dispatch_event(tenant, WebhookEvent.SHIPMENT_CREATED, shipment_payload(shipment))
    return shipment


@handler('AssignCourier', permissions='shipments.create', feature='shipments_management')
def assign_courier(*, actor, shipment_id, awb_number, courier_account_id=None, courier_name='',
                   label_url='', tracking_url=''):
    """Record the AWB the courier issued and move the shipment to Manifested."""
    shipment = get_shipment(shipment_id)
    if courier_account_id:
        account = _courier_account(shipment.tenant, courier_account_id, shipment.courier_type)
        shipment.courier_account = account
        shipment.courier_type = account.courier_type
        courier_name = courier_name or account.name
    if Shipment.objects.for_tenant(shipment.tenant).filter(
            courier_type=shipment.courier_type, awb_number=str(awb_number).strip().upper(),
    ).exclude(pk=shipment.pk).exists():
        raise ValidationError({'awb_number': 'This AWB is already used by another shipment.'})
    shipment.touch(audit_user(actor))
    shipment.set_awb(awb_number, courier_name=courier_name, label_url=label_url, tracking_url=tracking_url)
    return shipment


def _after_status_change(shipment, status, *, actor, remarks=''):
    order = shipment.order
    target = ORDER_CASCADE.get(status)
    if target and order.status != target:
        apply_external_status(order, target, actor=actor,
                              reason=f'Shipment {shipment.shipment_number} {status}')

    if status == ShipmentStatus.DELIVERY_FAILED:
        open_ndr_for_shipment(shipment, reason_description=remarks, actor=actor)
    elif status == ShipmentStatus.DELIVERED:
        close_open_ndrs(shipment, NdrRecord.RESOLUTION_DELIVERED, 'Delivered by courier')
    elif status in (ShipmentStatus.RTO_INITIATED, ShipmentStatus.RTO_DELIVERED):
        close_open_ndrs(shipment, NdrRecord.RESOLUTION_RTO, 'Returned to origin')

    if status in STATUS_EVENTS:
        dispatch_event(shipment.tenant, STATUS_EVENTS[status], shipment_payload(shipment))


@handler('UpdateShipmentStatus', permissions='shipments.track', feature='shipments_management')
def update_shipment_status(*, actor, shipment_id, status, location='', remarks=''):
    shipment = get_shipment(shipment_id)
    if not ShipmentStatus.can_transition(shipment.status, status):
        raise ValidationError({'status': f'Cannot move shipment from {shipment.status} to {status}.'})
    shipment.touch(audit_user(actor))
    shipment.update_status(status, location=location, remarks=remarks)
    _after_status_change(shipment, status, actor=actor, remarks=remarks)
    return shipment


@handler('CancelShipment', permissions='shipments.cancel', feature='shipments_management')
def cancel_shipment(*, actor, shipment_id, reason='', transport=None):
    shipment = get_shipment(shipment_id)
    if not shipment.can_cancel:
        raise ValidationError({'status': f'Cannot cancel a shipment that is {shipment.status}.'})
    if shipment.courier_account_id and shipment.courier_type != CourierType.MANUAL:
        result = _adapter(shipment, transport).cancel_shipment(shipment)
        if not result.success:
            logger.warning("Courier cancellation for %s failed: %s", shipment.awb_number, result.message)
    shipment.touch(audit_user(actor))
    shipment.update_status(ShipmentStatus.CANCELLED, remarks=reason or 'Shipment cancelled')
    logger.info("Cancelled shipment %s", shipment.shipment_number)
    return shipment


def _courier_call(result):
    if not result.success:
        raise IntegrationError(result.message, result.errors)
    return result


@handler('GetShippingRates', permissions='shipments.create', feature='shipments_management')
def get_shipping_rates(*, actor, courier_account_id, pickup_postal_code, delivery_postal_code, weight,
                       is_cod=False, cod_amount=None, transport=None):
    """Quotes from one courier account, cheapest first."""
    account = get_courier_account(courier_account_id)
    adapter = get_courier_adapter(account.courier_type, account, transport=transport)
    return _courier_call(adapter.get_rates(pickup_postal_code, delivery_postal_code, weight, is_cod=is_cod,
                                           cod_amount=cod_amount)).data


@handler('GenerateShippingLabel', permissions='shipments.create', feature='shipments_management')
def generate_label(*, actor, shipment_id, transport=None):
    shipment = get_shipment(shipment_id)
    if shipment.courier_type == CourierType.MANUAL or shipment.courier_account is None:
        raise ValidationError({'shipment': 'Labels are only available for shipments booked with a courier.'})
    result = _courier_call(_adapter(shipment, transport).get_label(shipment))
    shipment.label_url = result.data['label_url']
    shipment.touch(audit_user(actor))
    shipment.save(update_fields=['label_url', 'updated_by', 'updated_at'])
    return shipment


@handler('SchedulePickup', permissions='shipments.create', feature='shipments_management')
def schedule_pickup(*, actor, shipment_ids, pickup_date, transport=None):
    """Ask the courier to collect manifested shipments. They must share a courier account."""
    shipments = list(Shipment.objects.for_tenant(get_current_tenant())
                     .select_related('courier_account').filter(pk__in=shipment_ids))
    if len(shipments) != len(set(shipment_ids)):
        raise NotFoundError(resource='Shipment')
    if any(shipment.status != ShipmentStatus.MANIFESTED for shipment in shipments):
        raise ValidationError({'shipment_ids': 'Only manifested shipments can be picked up.'})
    accounts = {shipment.courier_account_id for shipment in shipments}
    if len(accounts) != 1 or None in accounts:
        raise ValidationError({'shipment_ids': 'Shipments must belong to one courier account.'})

    result = _courier_call(_adapter(shipments[0], transport).schedule_pickup(shipments, pickup_date))
    for shipment in shipments:
        shipment.courier_response = dict(shipment.courier_response or {}, **result.data)
        shipment.touch(audit_user(actor))
        shipment.save(update_fields=['courier_response', 'updated_by', 'updated_at'])
        shipment._track(ShipmentStatus.MANIFESTED, remarks=f"Pickup scheduled for {pickup_date}")
    logger.info("Scheduled pickup %s for %d shipments", result.data.get('pickup_reference'), len(shipments))
    return result.data


def apply_courier_update(courier, awb_number, status_code, *, actor, location='', remarks='', status_text='',
                         event_time=None):
    """
    Apply one courier status event. Returns a label describing the outcome:
    ``not_found``, ``unmapped``, ``unchanged``, ``terminal`` or ``updated``.
    """
    adapter_class = type(get_courier_adapter(courier))
    awb = str(awb_number or '').strip().upper()
    shipment = (Shipment.objects.select_related('order', 'tenant')
                .filter(courier_type=adapter_class.courier_type, awb_number=awb, deleted_at__isnull=True)
                .order_by('-created_at').first())
    if shipment is None:
        logger.warning("%s update for unknown AWB %s", adapter_class.courier_type, awb)
        return 'not_found'

    status = adapter_class.map_status(status_code)
    if status is None:
        logger.info("Unmapped %s status %r for AWB %s", adapter_class.courier_type, status_code, awb)
        return 'unmapped'
    if status == shipment.status:
        return 'unchanged'
    if shipment.status in ShipmentStatus.TERMINAL:
        logger.warning("Ignored %s for AWB %s, shipment already %s", status, awb, shipment.status)
        return 'terminal'

    with tenant_context(shipment.tenant):
        shipment.update_status(status, location=location, remarks=remarks or status_text,
                               raw_status=str(status_code), event_time=event_time)
        _after_status_change(shipment, status, actor=actor, remarks=remarks or status_text)
    logger.info("Shipment %s moved to %s by %s webhook", shipment.shipment_number, status,
                adapter_class.courier_type)
    return 'updated'


def get_shipment_stats(tenant, date_from=None, date_to=None):
    qs = Shipment.objects.for_tenant(tenant)
    if date_from:
        qs = qs.filter(created_at__gte=date_from)
    if date_to:
        qs = qs.filter(created_at__lte=date_to)
    by_status = dict(qs.order_by().values('status').annotate(n=Count('id')).values_list('status', 'n'))
    by_courier = dict(qs.order_by().values('courier_type').annotate(n=Count('id'))
                      .values_list('courier_type', 'n'))
    rto = qs.filter(status__in=(ShipmentStatus.RTO_INITIATED, ShipmentStatus.RTO_IN_TRANSIT,
                                ShipmentStatus.RTO_DELIVERED)).count()
    delivered = by_status.get(ShipmentStatus.DELIVERED, 0)
    finished = delivered + rto
    return {
        'total_shipments': sum(by_status.values()),
        'by_status': {status: by_status.get(status, 0) for status, _ in ShipmentStatus.CHOICES},
        'by_courier': by_courier,
        'in_transit': qs.filter(Q(status__in=(
            ShipmentStatus.PICKED_UP, ShipmentStatus.IN_TRANSIT, ShipmentStatus.REACHED_DESTINATION,
            ShipmentStatus.OUT_FOR_DELIVERY))).count(),
        'cod_shipments': qs.filter(is_cod=True).count(),
        'delivery_rate': round(delivered * 100.0 / finished, 1) if finished else 0.0,
        'rto_rate': round(rto * 100.0 / finished, 1) if finished else 0.0,
    }


# Courier accounts

COURIER_ACCOUNT_FIELDS = (
    'name', 'is_active', 'api_key', 'api_secret', 'access_token', 'account_id', 'settings', 'priority',
    'supports_cod', 'supports_reverse', 'supports_express',
)


def get_courier_account(account_id, tenant=None):
    account = CourierAccount.objects.for_tenant(tenant or get_current_tenant()).filter(pk=account_id).first()
    if account is None:
        raise NotFoundError(resource='Courier account', key=account_id)
    return account


def _check_credentials(account, transport=None):
    if account.courier_type == CourierType.MANUAL:
        result = CourierResult.ok(message="Manual shipping needs no credentials")
    else:
        result = get_courier_adapter(account.courier_type, account, transport=transport).validate_credentials()
    account.is_connected = result.success
    account.last_error = '' if result.success else result.message
    account.save(update_fields=['is_connected', 'last_error', 'updated_at'])
    return result


@handler('CreateCourierAccount', permissions='settings.edit', feature='shipments_management')
def create_courier_account(*, actor, name, courier_type, is_default=False, validate=True, transport=None,
                           **fields):
    if courier_type not in dict(CourierType.CHOICES):
        raise ValidationError({'courier_type': f'Unsupported courier: {courier_type}'})
    account = CourierAccount(
        tenant=get_current_tenant(),
        name=(name or '').strip(),
        courier_type=courier_type,
        is_default=is_default,
        created_by=audit_user(actor),
        **{k: v for k, v in fields.items() if k in COURIER_ACCOUNT_FIELDS and v is not None},
    )
    account.full_clean(exclude=['tenant'])
    account.save()
    if validate and courier_type != CourierType.MANUAL:
        _check_credentials(account, transport)
    return account


@handler('UpdateCourierAccount', permissions='settings.edit', feature='shipments_management')
def update_courier_account(*, actor, account_id, is_default=None, **changes):
    account = get_courier_account(account_id)
    for field in COURIER_ACCOUNT_FIELDS:
        if changes.get(field) is not None:
            setattr(account, field, changes[field])
    if is_default is not None:
        account.is_default = is_default
    account.touch(audit_user(actor))
    account.full_clean(exclude=['tenant'])
    account.save()
    return account


@handler('TestCourierAccount', permissions='settings.edit', feature='shipments_management')
def test_courier_account(*, actor, account_id, transport=None):
    return _check_credentials(get_courier_account(account_id), transport)


@handler('DeleteCourierAccount', permissions='settings.edit', feature='shipments_management')
def delete_courier_account(*, actor, account_id):
    account = get_courier_account(account_id)
    account.is_active = False
    account.is_default = False
    account.save(update_fields=['is_active', 'is_default', 'updated_at'])
    account.soft_delete(audit_user(actor))
