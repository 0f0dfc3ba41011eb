import json
from decimal import Decimal

from django.test import SimpleTestCase

from apps.channels.models import SalesChannel
from apps.channels.shopify import (
    compute_hmac,
    map_order,
    map_payment_method,
    map_order_status,
    shop_host,
    verify_hmac,
)
from apps.orders.models import Order
from tests.factories import BaseAPITestCase, SalesChannelFactory, TenantFactory

WEBHOOK_URL = '/api/v1/webhooks/shopify'


def shopify_order(**overrides):
    order = {
        'id': 820982911946154508,
        'name': '#1001',
        'email': 'asha@example.com',
        'created_at': '2024-05-20T10:00:00+05:30',
        'financial_status': 'pending',
        'fulfillment_status': None,
        'payment_gateway_names': ['Cash on Delivery (COD)'],
        'currency': 'INR',
        'subtotal_price': '998.00',
        'total_discounts': '0.00',
        'total_tax': '0.00',
        'total_shipping_price_set': {'shop_money': {'amount': '50.00', 'currency_code': 'INR'}},
        'tags': 'vip, repeat',
        'customer': {'first_name': 'Asha', 'last_name': 'Verma', 'email': 'asha@example.com'},
        'shipping_address': {
            'first_name': 'Asha', 'last_name': 'Verma', 'address1': '12 MG Road', 'address2': 'Flat 4',
            'city': 'Bengaluru', 'province': 'Karnataka', 'zip': '560001', 'country': 'India',
            'phone': '9876543210',
        },
        'line_items': [
            {'product_id': 632910392, 'sku': 'TEE-01', 'title': 'Cotton Tee', 'variant_title': 'M',
             'quantity': 2, 'price': '499.00', 'total_discount': '0.00'},
        ],
    }
    order.update(overrides)
    return order


class ShopifyMappingTests(SimpleTestCase):

    def test_hmac(self):
        body = b'{"id":1}'
        signature = compute_hmac(body, 'shpss_test_secret')
        self.assertTrue(verify_hmac(body, 'shpss_test_secret', signature))
        self.assertFalse(verify_hmac(body, 'shpss_test_secret', 'bm90IGEgc2lnbmF0dXJl'))
        self.assertFalse(verify_hmac(body, '', signature))

    def test_map_order(self):
        data = map_order(shopify_order())

        self.assertEqual(data['external_order_id'], '820982911946154508')
        self.assertEqual(data['external_order_number'], '#1001')
        self.assertEqual(data['customer_name'], 'Asha Verma')
        self.assertEqual(data['customer_phone'], '9876543210')
        self.assertEqual(data['shipping_address']['postal_code'], '560001')
        self.assertEqual(data['shipping_address']['line2'], 'Flat 4')
        self.assertIsNone(data['billing_address'])
        self.assertEqual(data['payment_method'], Order.METHOD_COD)
        self.assertEqual(data['status'], Order.STATUS_PENDING)
        self.assertEqual(data['shipping_amount'], Decimal('50.00'))
        self.assertEqual(data['tags'], ['vip', 'repeat'])
        self.assertEqual(data['items'][0]['quantity'], 2)
        self.assertEqual(data['items'][0]['unit_price'], Decimal('499.00'))

    def test_missing_address_gets_placeholders(self):
        data = map_order(shopify_order(shipping_address=None, customer=None))
        self.assertEqual(data['customer_name'], 'Unknown Customer')
        self.assertEqual(data['shipping_address']['city'], 'Unknown')

    def test_line_without_sku(self):
        data = map_order(shopify_order(line_items=[{'product_id': 77, 'title': 'Gift card', 'quantity': 1,
                                                    'price': '500'}]))
        self.assertEqual(data['items'][0]['sku'], 'SHOPIFY-77')

    def test_payment_methods(self):
        self.assertEqual(map_payment_method({'payment_gateway_names': ['Razorpay']}), Order.METHOD_UPI)
        self.assertEqual(map_payment_method({'gateway': 'stripe'}), Order.METHOD_CARD)
        self.assertEqual(map_payment_method({'financial_status': 'paid'}), Order.METHOD_PREPAID)
        self.assertEqual(map_payment_method({'payment_gateway_names': ['manual']}), Order.METHOD_OTHER)

    def test_shop_host(self):
        self.assertEqual(shop_host('https://Acme.myshopify.com/admin'), 'acme.myshopify.com')
        self.assertEqual(shop_host('acme.myshopify.com'), 'acme.myshopify.com')
        self.assertEqual(shop_host(''), '')

    def test_order_statuses(self):
        self.assertEqual(map_order_status({'cancelled_at': '2024-05-21T10:00:00Z'}), Order.STATUS_CANCELLED)
        self.assertEqual(map_order_status({'fulfillment_status': 'fulfilled'}), Order.STATUS_SHIPPED)
        self.assertEqual(map_order_status({'fulfillment_status': 'partial'}), Order.STATUS_PROCESSING)
        self.assertEqual(map_order_status({'financial_status': 'paid'}), Order.STATUS_CONFIRMED)
        self.assertEqual(map_order_status({'closed_at': '2024-05-25T10:00:00Z'}), Order.STATUS_DELIVERED)


class ShopifyWebhookTests(BaseAPITestCase):

    def setUp(self):
        super().setUp()
        self.channel = SalesChannelFactory(tenant=self.tenant, external_shop_id='acme.myshopify.com')

    def post(self, topic, payload, shop='acme.myshopify.com', secret='shpss_test_secret', signature=None):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        headers = {'HTTP_X_SHOPIFY_TOPIC': topic, 'HTTP_X_SHOPIFY_SHOP_DOMAIN': shop}
        if signature is not False:
            headers['HTTP_X_SHOPIFY_HMAC_SHA256'] = signature or compute_hmac(body, secret)
        return self.client.post(WEBHOOK_URL, data=body, content_type='application/json', **headers)

    def test_orders_create_imports_once(self):
        response = self.post('orders/create', shopify_order())

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['outcome'], 'created')
        order = Order.objects.get(channel=self.channel)
        self.assertEqual(order.tenant, self.tenant)
        self.assertEqual(order.total_amount, Decimal('1048.00'))
        self.assertTrue(order.is_cod)
        self.assertEqual(order.items.get().variant_name, 'M')

        again = self.post('orders/create', shopify_order())
        self.assertEqual(again.data['outcome'], 'duplicate')
        self.assertEqual(Order.objects.filter(channel=self.channel).count(), 1)

    def test_orders_updated_and_cancelled(self):
        self.post('orders/create', shopify_order())

        response = self.post('orders/updated', shopify_order(financial_status='paid'))
        self.assertEqual(response.data['outcome'], 'updated')
        order = Order.objects.get(channel=self.channel)
        self.assertEqual(order.payment_status, Order.PAYMENT_PAID)

        response = self.post('orders/cancelled', shopify_order(cancelled_at='2024-05-21T10:00:00Z'))
        self.assertEqual(response.data['outcome'], 'cancelled')
        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_CANCELLED)
        self.assertEqual(order.cancellation_reason, 'Cancelled via Shopify')

    def test_cancel_for_unknown_order(self):
        response = self.post('orders/cancelled', {'id': 999})
        self.assertEqual(response.data['outcome'], 'not_found')

    def test_app_uninstalled_deactivates_channel(self):
        response = self.post('app/uninstalled', {'domain': 'acme.myshopify.com'})

        self.assertEqual(response.data['outcome'], 'uninstalled')
        self.channel.refresh_from_db()
        self.assertFalse(self.channel.is_active)
        self.assertEqual(self.channel.access_token, '')
        self.assertEqual(self.channel.webhook_secret, '')

    def test_unhandled_topic_is_acknowledged(self):
        response = self.post('products/create', {'id': 1})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['outcome'], 'ignored')

    def test_missing_headers(self):
        response = self.post('orders/create', shopify_order(), signature=False)
        self.assertEqual(response.status_code, 400)

    def test_unknown_shop(self):
        response = self.post('orders/create', shopify_order(), shop='nobody.myshopify.com')
        self.assertEqual(response.status_code, 404)

    def test_bad_signature(self):
        response = self.post('orders/create', shopify_order(), secret='wrong-secret')
        self.assertEqual(response.status_code, 401)
        self.assertFalse(Order.objects.exists())

    def test_unparseable_body(self):
        response = self.post('orders/create', b'{not json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['outcome'], 'invalid_payload')

    def test_inactive_channel_is_not_found(self):
        SalesChannel.objects.filter(pk=self.channel.pk).update(is_active=False)
        response = self.post('orders/create', shopify_order())
        self.assertEqual(response.status_code, 404)

    def test_processing_error_still_answers_200(self):
        order = shopify_order(line_items=[{'product_id': 1, 'sku': 'X', 'title': 'Broken', 'quantity': 0,
                                           'price': '10'}])
        response = self.post('orders/create', order)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['outcome'], 'error')
        self.assertFalse(Order.objects.exists())

    def test_shop_of_other_tenant_routes_to_that_tenant(self):
        other = SalesChannelFactory(tenant=TenantFactory(), external_shop_id='other.myshopify.com')
        self.post('orders/create', shopify_order(), shop='other.myshopify.com')
        self.assertEqual(Order.objects.get().tenant, other.tenant)

    def test_similar_shop_domains_are_not_confused(self):
        longer = SalesChannelFactory(tenant=TenantFactory(), external_shop_id='',
                                     store_url='https://ba.myshopify.com/')
        shorter = SalesChannelFactory(tenant=TenantFactory(), external_shop_id='',
                                      store_url='https://a.myshopify.com')

        self.post('orders/create', shopify_order(), shop='a.myshopify.com')
        self.assertEqual(Order.objects.get().tenant, shorter.tenant)

        self.post('orders/create', shopify_order(), shop='ba.myshopify.com')
        self.assertEqual(Order.objects.get(channel=longer).tenant, longer.tenant)

        response = self.post('orders/create', shopify_order(), shop='myshopify.com')
        self.assertEqual(response.status_code, 404)

    def test_shop_id_is_preferred_over_store_url(self):
        SalesChannelFactory(tenant=TenantFactory(), external_shop_id='legacy-id',
                            store_url='https://acme.myshopify.com')
        self.post('orders/create', shopify_order())
        self.assertEqual(Order.objects.get().tenant, self.tenant)
