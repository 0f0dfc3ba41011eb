"""
Order services.

Commands are pipeline handlers; `import_channel_order` is the entry point
used by marketplace sync and inbound webhooks, which run as the system
actor.
"""

import csv
import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from apps.billing.limits import check_monthly_order_limit
from apps.core.exceptions import DomainError, NotFoundError
from apps.core.pipeline import audit_user, handler
from apps.core.value_objects import Address
from apps.inventory.models import Product
from apps.inventory.services import release_stock, reserve_stock, ship_stock
from apps.tenants.configuration import tenant_setting
from apps.tenants.context import get_current_tenant
from apps.webhooks.dispatcher import dispatch_event
from apps.webhooks.models import WebhookEvent

from .models import ZERO, Order, OrderStatusHistory

logger = logging.getLogger(__name__)

STATUS_EVENTS = {
    Order.STATUS_CONFIRMED: WebhookEvent.ORDER_CONFIRMED,
    Order.STATUS_SHIPPED: WebhookEvent.ORDER_SHIPPED,
    Order.STATUS_DELIVERED: WebhookEvent.ORDER_DELIVERED,
    Order.STATUS_CANCELLED: WebhookEvent.ORDER_CANCELLED,
}

# Entering these statuses reserves stock, or takes it out of stock once shipped.
RESERVING_STATUSES = (Order.STATUS_CONFIRMED, Order.STATUS_PROCESSING)
SHIPPING_STATUSES = (Order.STATUS_SHIPPED, Order.STATUS_DELIVERED)

BULK_ORDER_LIMIT = 100
EXPORT_ORDER_LIMIT = 10000


def get_order(order_id, tenant=None):
    tenant = tenant or get_current_tenant()
    order = Order.objects.for_tenant(tenant).filter(pk=order_id).first()
    if order is None:
        raise NotFoundError(resource='Order', key=order_id)
    return order


def order_payload(order):
    return {
        'order_id': order.pk,
        'order_number': order.order_number,
        'external_order_id': order.external_order_id,
        'channel_id': order.channel_id,
        'status': order.status,
        'payment_status': order.payment_status,
        'payment_method': order.payment_method,
        'customer_name': order.customer_name,
        'total_amount': str(order.total_amount),
        'currency': order.currency,
    }


def _clean_address(value, field):
    try:
        return Address.from_dict(value).to_dict()
    except ValueError as exc:
        raise ValidationError({field: str(exc)})


def _build_order(tenant, *, actor, customer_name, shipping_address, items=(), channel=None,
                 external_order_id='', external_order_number='', customer_email='', customer_phone='',
                 billing_address=None, payment_method='', payment_status=Order.PAYMENT_PENDING,
                 currency='INR', subtotal=ZERO, discount_amount=ZERO, tax_amount=ZERO,
                 shipping_amount=ZERO, order_date=None, notes='', tags=None, platform_data=None):
    check_monthly_order_limit(tenant)
    order = Order(
        tenant=tenant,
        channel=channel,
        external_order_id=str(external_order_id or ''),
        external_order_number=external_order_number or '',
        customer_name=(customer_name or '').strip(),
        customer_email=(customer_email or '').strip().lower(),
        customer_phone=customer_phone or '',
        shipping_address=shipping_address or {},
        billing_address=billing_address,
        payment_method=payment_method or '',
        payment_status=payment_status or Order.PAYMENT_PENDING,
        currency=currency or 'INR',
        subtotal=Decimal(str(subtotal or 0)),
        discount_amount=Decimal(str(discount_amount or 0)),
        tax_amount=Decimal(str(tax_amount or 0)),
        shipping_amount=Decimal(str(shipping_amount or 0)),
        order_date=order_date or timezone.now(),
        notes=notes or '',
        tags=list(tags or []),
        platform_data=platform_data or {},
        created_by=audit_user(actor),
    )
    order.full_clean(exclude=['tenant', 'channel', 'order_number'])
    order.save()

    products = {
        p.sku: p for p in Product.objects.for_tenant(tenant).filter(
            sku__in=[(i.get('sku') or '').strip().upper() for i in items]
        )
    }
    for item in items:
        sku = (item.get('sku') or '').strip()
        order.add_item(
            sku=sku,
            name=item.get('name', ''),
            quantity=item.get('quantity') or 0,
            unit_price=Decimal(str(item.get('unit_price') or 0)),
            discount_amount=Decimal(str(item.get('discount_amount') or 0)),
            tax_amount=Decimal(str(item.get('tax_amount') or 0)),
            product=products.get(sku.upper()),
            external_product_id=item.get('external_product_id', ''),
            variant_name=item.get('variant_name', ''),
        )
    order.recalculate_totals()

    OrderStatusHistory.objects.create(
        tenant=tenant, order=order, from_status='', to_status=order.status,
        reason='Order created', changed_by=audit_user(actor),
    )
    dispatch_event(tenant, WebhookEvent.ORDER_CREATED, order_payload(order))
    logger.info("Created order %s for tenant %s (%s)", order.order_number, tenant.slug,
                channel.type if channel else 'manual')
    return order


@handler('CreateOrder', permissions='orders.create', feature='orders_management')
def create_order(*, actor, customer_name, shipping_address, items, billing_address=None, **fields):
    """Create a manual order. `items` is a list of dicts with sku, name, quantity and unit_price."""
    if not items:
        raise ValidationError({'items': 'An order needs at least one item.'})
    shipping_address = _clean_address(shipping_address, 'shipping_address')
    if billing_address:
        billing_address = _clean_address(billing_address, 'billing_address')
    channel_id = fields.pop('channel_id', None)
    channel = None
    if channel_id:
        from apps.channels.models import SalesChannel
        channel = SalesChannel.objects.for_tenant(get_current_tenant()).filter(pk=channel_id).first()
        if channel is None:
            raise NotFoundError(resource='Sales channel', key=channel_id)
    return _build_order(get_current_tenant(), actor=actor, customer_name=customer_name,
                        shipping_address=shipping_address, billing_address=billing_address,
                        items=items, channel=channel, **fields)


def _set_stock_status(order, stock_status):
    order.stock_status = stock_status
    order.save(update_fields=['stock_status', 'updated_at'])


def _reserve_order_stock(order, *, actor):
    if order.stock_status != Order.STOCK_NONE:
        return
    for item in order.items.all():
        if reserve_stock(order.tenant, item.sku, item.quantity, actor=actor,
                         reference_id=order.order_number) is not None:
            item.reserved_quantity = item.quantity
            item.save(update_fields=['reserved_quantity'])
    _set_stock_status(order, Order.STOCK_RESERVED)


def _release_order_stock(order, *, actor):
    """Give back only the units this order reserved."""
    if order.stock_status != Order.STOCK_RESERVED:
        return
    for item in order.items.filter(reserved_quantity__gt=0):
        release_stock(order.tenant, item.sku, item.reserved_quantity, actor=actor,
                      reference_id=order.order_number)
        item.reserved_quantity = 0
        item.save(update_fields=['reserved_quantity'])
    _set_stock_status(order, Order.STOCK_NONE)


def _ship_order_stock(order, *, actor):
    if order.stock_status == Order.STOCK_SHIPPED:
        return
    for item in order.items.all():
        ship_stock(order.tenant, item.sku, item.quantity, reserved=item.reserved_quantity, actor=actor,
                   reference_id=order.order_number)
        if item.reserved_quantity:
            item.reserved_quantity = 0
            item.save(update_fields=['reserved_quantity'])
    _set_stock_status(order, Order.STOCK_SHIPPED)


def _transition(order, status, *, actor, reason=''):
    if status not in dict(Order.STATUS_CHOICES):
        raise ValidationError({'status': f'Unknown order status: {status}'})
    if order.status == status:
        return False
    order.validate_transition(status)
    with transaction.atomic():
        if status in RESERVING_STATUSES:
            _reserve_order_stock(order, actor=actor)
        elif status in SHIPPING_STATUSES:
            _ship_order_stock(order, actor=actor)
        else:
            _release_order_stock(order, actor=actor)
        changed = order.change_status(status, audit_user(actor), reason)
    if changed and status in STATUS_EVENTS:
        dispatch_event(order.tenant, STATUS_EVENTS[status], order_payload(order))
    return changed


def _cancel(order, *, actor, reason=''):
    if not order.is_cancellable:
        if order.status == Order.STATUS_CANCELLED:
            return order
        raise ValidationError({'status': f'Cannot cancel an order that is {order.status}.'})
    with transaction.atomic():
        _release_order_stock(order, actor=actor)
        order.cancel(audit_user(actor), reason or 'Order cancelled')
    dispatch_event(order.tenant, WebhookEvent.ORDER_CANCELLED, order_payload(order))
    return order


def _apply_status(order, status, *, actor, reason=''):
    if status == Order.STATUS_CANCELLED:
        return _cancel(order, actor=actor, reason=reason)
    if status == Order.STATUS_CONFIRMED and order.status == Order.STATUS_PENDING:
        return _confirm(order, actor=actor, reason=reason)
    _transition(order, status, actor=actor, reason=reason)
    return order


@handler('UpdateOrderStatus', permissions='orders.edit', feature='orders_management')
def update_order_status(*, actor, order_id, status, reason=''):
    return _apply_status(get_order(order_id), status, actor=actor, reason=reason)


@handler('CancelOrder', permissions='orders.cancel', feature='orders_management')
def cancel_order(*, actor, order_id, reason=''):
    return _cancel(get_order(order_id), actor=actor, reason=reason)


def _confirm(order, *, actor, reason=''):
    if order.status != Order.STATUS_PENDING:
        raise ValidationError({'status': f'Only pending orders can be confirmed (order is {order.status}).'})
    _transition(order, Order.STATUS_CONFIRMED, actor=actor, reason=reason or 'Order confirmed')
    return order


@handler('ConfirmOrder', permissions='orders.edit', feature='orders_management')
def confirm_order(*, actor, order_id, reason=''):
    """Confirm a pending order and reserve stock for SKUs that map to products."""
    return _confirm(get_order(order_id), actor=actor, reason=reason)


@handler('UpdatePaymentStatus', permissions='orders.edit', feature='orders_management')
def update_payment_status(*, actor, order_id, payment_status):
    order = get_order(order_id)
    order.update_payment_status(payment_status)
    return order


@handler('AddOrderNote', permissions='orders.edit', feature='orders_management')
def add_order_note(*, actor, order_id, note):
    note = (note or '').strip()
    if not note:
        raise ValidationError({'note': 'Note cannot be empty.'})
    order = get_order(order_id)
    stamp = timezone.now().strftime('%Y-%m-%d %H:%M')
    author = getattr(actor, 'email', None) or 'system'
    entry = f"[{stamp} {author}] {note}"
    order.internal_notes = f"{order.internal_notes}\n{entry}" if order.internal_notes else entry
    order.touch(audit_user(actor))
    order.save(update_fields=['internal_notes', 'updated_by', 'updated_at'])
    return order


@handler('BulkUpdateOrderStatus', permissions='orders.bulk', feature='bulk_operations')
def bulk_update_order_status(*, actor, order_ids, status, reason=''):
    """
    Move up to ``BULK_ORDER_LIMIT`` orders to one status.

    Every order changes inside its own savepoint, so an order that cannot
    make the move is reported under ``failed`` and the rest still go
    through. Ids that do not belong to the tenant are reported as not found.
    """
    order_ids = list(dict.fromkeys(order_ids))
    if not order_ids:
        raise ValidationError({'order_ids': 'Select at least one order.'})
    if len(order_ids) > BULK_ORDER_LIMIT:
        raise ValidationError({'order_ids': f'At most {BULK_ORDER_LIMIT} orders can be updated at once.'})
    if status not in dict(Order.STATUS_CHOICES):
        raise ValidationError({'status': f'Unknown order status: {status}'})

    orders = Order.objects.for_tenant(get_current_tenant()).in_bulk(order_ids)
    updated, failed = [], []
    for order_id in order_ids:
        order = orders.get(order_id)
        if order is None:
            failed.append({'order_id': order_id, 'order_number': None, 'error': 'Order not found.'})
            continue
        try:
            with transaction.atomic():
                _apply_status(order, status, actor=actor, reason=reason or 'Bulk status update')
        except ValidationError as exc:
            failed.append({'order_id': order_id, 'order_number': order.order_number,
                           'error': '; '.join(exc.messages)})
        except DomainError as exc:
            failed.append({'order_id': order_id, 'order_number': order.order_number, 'error': exc.message})
        else:
            updated.append(order_id)

    logger.info("Bulk status %s: %d updated, %d failed", status, len(updated), len(failed))
    return {'requested': len(order_ids), 'updated': updated, 'failed': failed}


EXPORT_COLUMNS = [
    'OrderNumber', 'ExternalOrderId', 'OrderDate', 'Status', 'CustomerName', 'CustomerEmail', 'CustomerPhone',
    'ShippingAddress', 'ShippingCity', 'ShippingState', 'ShippingPostalCode', 'Subtotal', 'Discount', 'Tax',
    'Shipping', 'Total', 'PaymentMethod', 'PaymentStatus', 'ItemCount',
]


def export_orders_csv(orders, out):
    """Write ``orders`` to the file-like ``out`` as CSV, newest first."""
    writer = csv.writer(out)
    writer.writerow(EXPORT_COLUMNS)
    count = 0
    for order in orders.annotate(item_count=Count('items')).order_by('-order_date')[:EXPORT_ORDER_LIMIT]:
        address = order.shipping_address or {}
        writer.writerow([
            order.order_number,
            order.external_order_id,
            timezone.localtime(order.order_date).strftime('%Y-%m-%d %H:%M:%S'),
            order.status,
            order.customer_name,
            order.customer_email,
            order.customer_phone,
            address.get('line1', ''),
            address.get('city', ''),
            address.get('state', ''),
            address.get('postal_code', ''),
            f"{order.subtotal:.2f}",
            f"{order.discount_amount:.2f}",
            f"{order.tax_amount:.2f}",
            f"{order.shipping_amount:.2f}",
            f"{order.total_amount:.2f}",
            order.payment_method,
            order.payment_status,
            order.item_count,
        ])
        count += 1
    return count


def get_order_stats(tenant, date_from=None, date_to=None):
    qs = Order.objects.for_tenant(tenant)
    if date_from:
        qs = qs.filter(order_date__gte=date_from)
    if date_to:
        qs = qs.filter(order_date__lte=date_to)
    by_status = dict(qs.order_by().values('status').annotate(n=Count('id')).values_list('status', 'n'))
    totals = qs.exclude(status=Order.STATUS_CANCELLED).aggregate(
        revenue=Sum('total_amount'),
        count=Count('id'),
        cod=Count('id', filter=Q(is_cod=True)),
    )
    revenue = totals['revenue'] or ZERO
    count = totals['count'] or 0
    return {
        'total_orders': sum(by_status.values()),
        'by_status': {status: by_status.get(status, 0) for status, _ in Order.STATUS_CHOICES},
        'total_revenue': revenue,
        'average_order_value': (revenue / count).quantize(Decimal('0.01')) if count else ZERO,
        'cod_orders': totals['cod'] or 0,
    }


# Channel imports

def find_channel_order(channel, external_order_id):
    return Order.objects.all_with_deleted().filter(
        channel=channel, external_order_id=str(external_order_id)
    ).first()


def import_channel_order(channel, data, *, actor):
    """
    Create or update an order from normalised marketplace data.

    Returns ``(order, created)``. Status moves the order cannot make are
    logged and skipped so one bad transition does not abort a sync.
    """
    existing = find_channel_order(channel, data['external_order_id'])
    if existing is None:
        fields = dict(data)
        status = fields.pop('status', Order.STATUS_PENDING)
        items = fields.pop('items', [])
        order = _build_order(channel.tenant, actor=actor, channel=channel, items=items, **fields)
        if status and status != Order.STATUS_PENDING:
            apply_external_status(order, status, actor=actor, reason=f"Imported from {channel.type}")
        elif tenant_setting(channel.tenant, 'orders', 'auto_confirm_orders'):
            _confirm(order, actor=actor, reason='Auto-confirmed on import')
        return order, True

    if existing.is_deleted:
        return existing, False
    status = data.get('status')
    if status and status != existing.status:
        apply_external_status(existing, status, actor=actor, reason=f"Updated from {channel.type}")
    payment_status = data.get('payment_status')
    if payment_status and payment_status != existing.payment_status:
        existing.update_payment_status(payment_status)
    return existing, False


def apply_external_status(order, status, *, actor, reason=''):
    try:
        if status == Order.STATUS_CANCELLED:
            _cancel(order, actor=actor, reason=reason)
        else:
            _transition(order, status, actor=actor, reason=reason)
    except ValidationError as exc:
        logger.warning("Skipped %s -> %s for order %s: %s", order.status, status, order.order_number,
                       exc.messages)
    return order


def cancel_channel_order(channel, external_order_id, *, actor, reason):
    order = find_channel_order(channel, external_order_id)
    if order is None or order.is_deleted:
        return None
    return _cancel(order, actor=actor, reason=reason)
