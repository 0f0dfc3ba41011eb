"""
Shopify order mapping and inbound webhook processing.

`map_order` turns a Shopify order resource into the normalised dict that
`apps.orders.services.import_channel_order` accepts. `process_webhook`
applies one verified webhook to the channel's tenant.
"""

import base64
import hashlib
import hmac
import logging
from decimal import Decimal, InvalidOperation
from urllib.parse import urlsplit

from django.db.models import Q
from django.utils.dateparse import parse_datetime

from apps.orders.models import Order
from apps.orders.services import cancel_channel_order, find_channel_order, import_channel_order

from .models import SalesChannel

logger = logging.getLogger(__name__)

HMAC_HEADER = 'X-Shopify-Hmac-SHA256'
SHOP_HEADER = 'X-Shopify-Shop-Domain'
TOPIC_HEADER = 'X-Shopify-Topic'

CANCEL_REASON = 'Cancelled via Shopify'

PAYMENT_STATUSES = {
    'paid': Order.PAYMENT_PAID,
    'partially_paid': Order.PAYMENT_PARTIALLY_PAID,
    'pending': Order.PAYMENT_PENDING,
    'refunded': Order.PAYMENT_REFUNDED,
    'partially_refunded': Order.PAYMENT_PARTIALLY_REFUNDED,
    'voided': Order.PAYMENT_FAILED,
}

# Checked in order; the first gateway keyword match wins.
GATEWAY_KEYWORDS = (
    (Order.METHOD_COD, ('cod', 'cash on delivery')),
    (Order.METHOD_UPI, ('upi', 'razorpay', 'phonepe', 'gpay')),
    (Order.METHOD_CARD, ('card', 'stripe', 'visa', 'mastercard')),
    (Order.METHOD_NET_BANKING, ('netbanking', 'net banking')),
    (Order.METHOD_WALLET, ('wallet', 'paytm')),
    (Order.METHOD_EMI, ('emi', 'bnpl')),
)


def compute_hmac(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode('utf-8'), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode('ascii')


def verify_hmac(body: bytes, secret: str, received: str) -> bool:
    if not secret or not received:
        return False
    return hmac.compare_digest(compute_hmac(body, secret), received.strip())


def shop_host(store_url):
    """Lower-cased host of a store URL; bare domains are accepted."""
    url = (store_url or '').strip()
    if not url:
        return ''
    return (urlsplit(url if '//' in url else f'//{url}').hostname or '').lower()


def find_channel_for_shop(shop_domain):
    """The active Shopify channel whose shop id or store host is exactly `shop_domain`."""
    domain = (shop_domain or '').strip().lower()
    if not domain:
        return None
    candidates = (SalesChannel.objects
                  .select_related('tenant')
                  .filter(type=SalesChannel.TYPE_SHOPIFY, is_active=True, tenant__deleted_at__isnull=True)
                  .filter(Q(external_shop_id__iexact=domain) | Q(store_url__icontains=domain))
                  .order_by('created_at'))
    by_host = None
    for channel in candidates:
        if channel.external_shop_id.strip().lower() == domain:
            return channel
        if by_host is None and shop_host(channel.store_url) == domain:
            by_host = channel
    return by_host


# Mapping

def _decimal(value):
    try:
        return Decimal(str(value)) if value not in (None, '') else Decimal('0')
    except (InvalidOperation, ValueError):
        return Decimal('0')


def _customer_name(data):
    customer = data.get('customer') or {}
    name = f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()
    if name:
        return name
    shipping = data.get('shipping_address') or {}
    name = shipping.get('name') or f"{shipping.get('first_name') or ''} {shipping.get('last_name') or ''}".strip()
    return name or 'Unknown Customer'


def map_address(address, fallback_name, fallback_phone=''):
    if not address:
        return {
            'name': fallback_name, 'phone': fallback_phone, 'line1': 'Unknown', 'line2': '',
            'city': 'Unknown', 'state': 'Unknown', 'postal_code': '000000', 'country': 'India',
        }
    name = address.get('name') or f"{address.get('first_name') or ''} {address.get('last_name') or ''}".strip()
    line2 = ', '.join(part for part in (address.get('address2'), address.get('company')) if part)
    return {
        'name': name or fallback_name,
        'phone': address.get('phone') or fallback_phone,
        'line1': (address.get('address1') or '').strip() or 'Unknown',
        'line2': line2,
        'city': (address.get('city') or '').strip() or 'Unknown',
        'state': (address.get('province') or address.get('province_code') or '').strip() or 'Unknown',
        'postal_code': (address.get('zip') or '').strip() or '000000',
        'country': address.get('country') or 'India',
    }


def map_payment_status(financial_status):
    return PAYMENT_STATUSES.get((financial_status or '').lower(), Order.PAYMENT_PENDING)


def map_payment_method(data):
    gateways = list(data.get('payment_gateway_names') or [])
    if data.get('gateway'):
        gateways.append(data['gateway'])
    gateways = [g.lower() for g in gateways if g]
    if not gateways:
        if (data.get('financial_status') or '').lower() == 'paid':
            return Order.METHOD_PREPAID
        return Order.METHOD_OTHER
    for gateway in gateways:
        for method, keywords in GATEWAY_KEYWORDS:
            if any(keyword in gateway for keyword in keywords):
                return method
    return Order.METHOD_OTHER


def map_order_status(data):
    if data.get('cancelled_at'):
        return Order.STATUS_CANCELLED
    if data.get('closed_at'):
        return Order.STATUS_DELIVERED
    fulfillment = (data.get('fulfillment_status') or '').lower()
    if fulfillment == 'fulfilled':
        return Order.STATUS_SHIPPED
    if fulfillment:
        return Order.STATUS_PROCESSING
    if (data.get('financial_status') or '').lower() == 'paid':
        return Order.STATUS_CONFIRMED
    return Order.STATUS_PENDING


def map_line_item(item):
    sku = (item.get('sku') or '').strip() or f"SHOPIFY-{item.get('product_id')}"
    return {
        'sku': sku,
        'name': item.get('title') or item.get('name') or sku,
        'quantity': int(item.get('quantity') or 0),
        'unit_price': _decimal(item.get('price')),
        'discount_amount': _decimal(item.get('total_discount')),
        'external_product_id': str(item.get('product_id') or ''),
        'variant_name': item.get('variant_title') or '',
    }


def map_order(data):
    customer = data.get('customer') or {}
    name = _customer_name(data)
    phone = data.get('phone') or (data.get('shipping_address') or {}).get('phone') or customer.get('phone') or ''
    shipping_set = ((data.get('total_shipping_price_set') or {}).get('shop_money') or {})
    order_date = parse_datetime(data['created_at']) if data.get('created_at') else None
    return {
        'external_order_id': str(data['id']),
        'external_order_number': data.get('name') or str(data.get('order_number') or ''),
        'customer_name': name,
        'customer_email': data.get('email') or customer.get('email') or '',
        'customer_phone': phone,
        'shipping_address': map_address(data.get('shipping_address'), name, phone),
        'billing_address': map_address(data['billing_address'], name, phone) if data.get('billing_address') else None,
        'payment_method': map_payment_method(data),
        'payment_status': map_payment_status(data.get('financial_status')),
        'status': map_order_status(data),
        'currency': data.get('currency') or 'INR',
        'subtotal': _decimal(data.get('subtotal_price')),
        'discount_amount': _decimal(data.get('total_discounts')),
        'tax_amount': _decimal(data.get('total_tax')),
        'shipping_amount': _decimal(shipping_set.get('amount')),
        'order_date': order_date,
        'notes': data.get('note') or '',
        'tags': [t.strip() for t in (data.get('tags') or '').split(',') if t.strip()],
        'platform_data': {
            'id': data.get('id'),
            'name': data.get('name'),
            'financial_status': data.get('financial_status'),
            'fulfillment_status': data.get('fulfillment_status'),
            'payment_gateway_names': data.get('payment_gateway_names') or [],
        },
        'items': [map_line_item(item) for item in data.get('line_items') or []],
    }


# Webhook topics

def _orders_create(channel, payload, actor):
    if find_channel_order(channel, payload.get('id')) is not None:
        logger.info("Shopify order %s already imported for channel %s; skipping", payload.get('id'), channel.pk)
        return 'duplicate'
    import_channel_order(channel, map_order(payload), actor=actor)
    return 'created'


def _orders_upsert(channel, payload, actor):
    _, created = import_channel_order(channel, map_order(payload), actor=actor)
    return 'created' if created else 'updated'


def _orders_cancelled(channel, payload, actor):
    order = cancel_channel_order(channel, payload.get('id'), actor=actor, reason=CANCEL_REASON)
    return 'cancelled' if order is not None else 'not_found'


def _app_uninstalled(channel, payload, actor):
    channel.is_active = False
    channel.save(update_fields=['is_active', 'updated_at'])
    channel.clear_credentials()
    logger.warning("Shopify app uninstalled from %s; channel %s deactivated", channel.external_shop_id, channel.pk)
    return 'uninstalled'


TOPIC_HANDLERS = {
    'orders/create': _orders_create,
    'orders/updated': _orders_upsert,
    'orders/paid': _orders_upsert,
    'orders/fulfilled': _orders_upsert,
    'orders/cancelled': _orders_cancelled,
    'app/uninstalled': _app_uninstalled,
}


def process_webhook(channel, topic, payload, *, actor):
    """Apply one webhook to `channel`. Returns a short outcome label."""
    topic_handler = TOPIC_HANDLERS.get((topic or '').lower())
    if topic_handler is None:
        logger.info("Ignoring Shopify webhook topic %s for channel %s", topic, channel.pk)
        return 'ignored'
    if topic != 'app/uninstalled' and not payload.get('id'):
        logger.warning("Shopify %s webhook without an order id for channel %s", topic, channel.pk)
        return 'ignored'
    return topic_handler(channel, payload, actor)
