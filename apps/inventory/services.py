"""
Inventory services.

Every stock change goes through `_apply`, which locks the inventory row,
writes a `StockMovement` and fires the low/out-of-stock webhooks when the
change crosses those thresholds.
"""

import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db.models import F

from apps.core.exceptions import NotFoundError
from apps.core.pipeline import audit_user, handler
from apps.tenants.context import get_current_tenant
from apps.webhooks.dispatcher import dispatch_event
from apps.webhooks.models import WebhookEvent

from .models import InventoryItem, Product, StockMovement

logger = logging.getLogger(__name__)


def _locked_item(tenant, *, sku=None, product_id=None):
    qs = InventoryItem.objects.for_tenant(tenant).select_for_update().select_related('product')
    item = qs.filter(sku=sku.strip().upper()).first() if sku else qs.filter(product_id=product_id).first()
    if item is None:
        raise NotFoundError(resource='Inventory item', key=sku or product_id)
    return item


def _stock_payload(item):
    return {
        'product_id': item.product_id,
        'sku': item.sku,
        'name': item.product.name,
        'quantity_on_hand': item.quantity_on_hand,
        'quantity_available': item.quantity_available,
        'reorder_point': item.reorder_point,
    }


def _apply(item, movement_type, operation, quantity, *, actor=None, reference_type='',
           reference_id='', notes=''):
    was_low, was_out = item.is_low_stock, item.is_out_of_stock
    before = item.quantity_on_hand
    result = operation(quantity)
    if movement_type == StockMovement.TYPE_ADJUSTMENT:
        recorded = item.quantity_on_hand - before
    elif movement_type == StockMovement.TYPE_RELEASED:
        recorded = result
    else:
        recorded = quantity
    StockMovement.objects.create(
        tenant_id=item.tenant_id,
        product_id=item.product_id,
        movement_type=movement_type,
        quantity=recorded,
        quantity_before=before,
        quantity_after=item.quantity_on_hand,
        reference_type=reference_type,
        reference_id=str(reference_id or ''),
        notes=notes or '',
        performed_by=audit_user(actor),
    )
    if item.is_out_of_stock and not was_out:
        dispatch_event(item.tenant, WebhookEvent.INVENTORY_OUT_OF_STOCK, _stock_payload(item))
    elif item.is_low_stock and not was_low:
        dispatch_event(item.tenant, WebhookEvent.INVENTORY_LOW, _stock_payload(item))
    return item


@handler('CreateProduct', permissions='inventory.create', feature='inventory_management')
def create_product(*, actor, sku, name, selling_price=Decimal('0'), cost_price=Decimal('0'),
                   description='', category='', brand='', currency='INR', weight=None,
                   image_url='', initial_quantity=0, reorder_point=10, reorder_quantity=50,
                   location=''):
    tenant = get_current_tenant()
    sku = (sku or '').strip().upper()
    if Product.objects.all_with_deleted().for_tenant(tenant).filter(sku=sku).exists():
        raise ValidationError({'sku': 'A product with this SKU already exists.'})
    if initial_quantity < 0:
        raise ValidationError({'initial_quantity': 'Initial quantity cannot be negative.'})

    product = Product(
        tenant=tenant,
        sku=sku,
        name=(name or '').strip(),
        description=description,
        category=category,
        brand=brand,
        cost_price=cost_price,
        selling_price=selling_price,
        currency=currency,
        weight=weight,
        image_url=image_url,
        created_by=audit_user(actor),
    )
    product.full_clean(exclude=['tenant', 'channel'])
    product.save()

    item = InventoryItem.objects.create(
        tenant=tenant,
        product=product,
        sku=product.sku,
        quantity_on_hand=initial_quantity,
        reorder_point=reorder_point,
        reorder_quantity=reorder_quantity,
        location=location,
    )
    StockMovement.objects.create(
        tenant=tenant,
        product=product,
        movement_type=StockMovement.TYPE_INITIAL,
        quantity=initial_quantity,
        quantity_before=0,
        quantity_after=item.quantity_on_hand,
        notes='Initial stock',
        performed_by=audit_user(actor),
    )
    logger.info("Created product %s with %d units", product.sku, initial_quantity)
    return product


PRODUCT_UPDATABLE_FIELDS = (
    'name', 'description', 'category', 'brand', 'cost_price', 'selling_price',
    'weight', 'image_url', 'is_active',
)


@handler('UpdateProduct', permissions='inventory.edit', feature='inventory_management')
def update_product(*, actor, product_id, **changes):
    product = Product.objects.for_tenant(get_current_tenant()).filter(pk=product_id).first()
    if product is None:
        raise NotFoundError(resource='Product', key=product_id)
    for field in PRODUCT_UPDATABLE_FIELDS:
        if changes.get(field) is not None:
            setattr(product, field, changes[field])
    if product.channel_id and product.sync_status == Product.SYNC_SYNCED:
        product.sync_status = Product.SYNC_PENDING
    product.touch(audit_user(actor))
    product.full_clean(exclude=['tenant', 'channel'])
    product.save()
    return product


@handler('DeleteProduct', permissions='inventory.edit', feature='inventory_management')
def delete_product(*, actor, product_id):
    product = Product.objects.for_tenant(get_current_tenant()).filter(pk=product_id).first()
    if product is None:
        raise NotFoundError(resource='Product', key=product_id)
    inventory = getattr(product, 'inventory', None)
    if inventory is not None and inventory.quantity_reserved > 0:
        raise ValidationError({'product': 'Product has reserved stock and cannot be deleted.'})
    product.is_active = False
    product.save(update_fields=['is_active', 'updated_at'])
    product.soft_delete(audit_user(actor))


ADJUSTMENT_TYPES = {
    StockMovement.TYPE_STOCK_IN: 'add_stock',
    StockMovement.TYPE_RETURN: 'add_stock',
    StockMovement.TYPE_STOCK_OUT: 'remove_stock',
    StockMovement.TYPE_DAMAGED: 'remove_stock',
    StockMovement.TYPE_TRANSFER: 'remove_stock',
    StockMovement.TYPE_ADJUSTMENT: 'adjust',
}


@handler('AdjustStock', permissions='inventory.adjust', feature='inventory_management')
def adjust_stock(*, actor, product_id, movement_type, quantity, notes='', reference_type='', reference_id=''):
    """Apply a manual stock change. For ``Adjustment`` `quantity` is the new on-hand level."""
    method = ADJUSTMENT_TYPES.get(movement_type)
    if method is None:
        raise ValidationError({'movement_type': f'Unsupported movement type: {movement_type}'})
    item = _locked_item(get_current_tenant(), product_id=product_id)
    return _apply(item, movement_type, getattr(item, method), quantity, actor=actor, notes=notes,
                  reference_type=reference_type, reference_id=reference_id)


def reserve_stock(tenant, sku, quantity, *, actor=None, reference_type='Order', reference_id=''):
    """Reserve stock by SKU for an order. Returns the item, or None for unmapped SKUs."""
    try:
        item = _locked_item(tenant, sku=sku)
    except NotFoundError:
        return None
    return _apply(item, StockMovement.TYPE_RESERVED, item.reserve, quantity, actor=actor,
                  reference_type=reference_type, reference_id=reference_id)


def release_stock(tenant, sku, quantity, *, actor=None, reference_type='Order', reference_id=''):
    try:
        item = _locked_item(tenant, sku=sku)
    except NotFoundError:
        return None
    if item.quantity_reserved <= 0:
        return item
    return _apply(item, StockMovement.TYPE_RELEASED, item.release, quantity, actor=actor,
                  reference_type=reference_type, reference_id=reference_id)


def ship_stock(tenant, sku, quantity, *, reserved=0, actor=None, reference_type='Order', reference_id=''):
    """
    Take shipped units out of stock by SKU.

    `reserved` is how many of them this order had reserved; those are
    released first so the stock-out comes out of the order's own hold.
    Units beyond what is available are logged and left on the books.
    """
    try:
        item = _locked_item(tenant, sku=sku)
    except NotFoundError:
        return None
    reserved = min(reserved, item.quantity_reserved, quantity)
    if reserved > 0:
        _apply(item, StockMovement.TYPE_RELEASED, item.release, reserved, actor=actor,
               reference_type=reference_type, reference_id=reference_id, notes='Released for shipment')
    shipped = min(quantity, max(item.quantity_available, 0))
    if shipped < quantity:
        logger.warning("Shipped %d of %s for %s but only %d were available", quantity, item.sku,
                       reference_id, shipped)
    if shipped <= 0:
        return item
    return _apply(item, StockMovement.TYPE_STOCK_OUT, item.remove_stock, shipped, actor=actor,
                  reference_type=reference_type, reference_id=reference_id, notes='Shipped')


def get_low_stock_items(tenant):
    return (InventoryItem.objects.for_tenant(tenant)
            .select_related('product')
            .filter(product__deleted_at__isnull=True, product__is_active=True,
                    quantity_on_hand__lte=F('reorder_point'))
            .order_by('quantity_on_hand'))


def get_inventory_summary(tenant):
    items = InventoryItem.objects.for_tenant(tenant).filter(product__deleted_at__isnull=True)
    total_value = sum(
        (item.quantity_on_hand * item.product.cost_price for item in items.select_related('product')),
        Decimal('0.00'),
    )
    return {
        'total_products': items.count(),
        'low_stock': items.filter(quantity_on_hand__lte=F('reorder_point')).count(),
        'out_of_stock': items.filter(quantity_on_hand__lte=F('quantity_reserved')).count(),
        'total_units': sum(items.values_list('quantity_on_hand', flat=True)),
        'total_value': total_value,
    }
