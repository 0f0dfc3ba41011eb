import httpx
from django.core.exceptions import ValidationError

from apps.billing.features import FeatureFlagService
from apps.billing.models import Subscription
from apps.channels import services
from apps.channels.adapters import ShopifyAdapter, get_channel_adapter
from apps.channels.models import SalesChannel
from apps.core.exceptions import FeatureDisabledError, ForbiddenError
from apps.orders.models import Order
from tests.factories import BaseTestCase, PlanFactory, SalesChannelFactory

from .test_shopify import shopify_order


def shopify_transport(orders=(), status=200):
    requests = []

    def handler(request):
        requests.append(request)
        if status != 200:
            return httpx.Response(status)
        if request.url.path.endswith('/shop.json'):
            return httpx.Response(200, json={'shop': {'name': 'Acme Store'}})
        if request.url.path.endswith('/orders.json'):
            return httpx.Response(200, json={'orders': list(orders)})
        return httpx.Response(404)

    return httpx.MockTransport(handler), requests


class ConnectChannelTests(BaseTestCase):

    def connect(self, actor=None, **kwargs):
        kwargs.setdefault('name', 'Acme Shopify')
        kwargs.setdefault('channel_type', SalesChannel.TYPE_SHOPIFY)
        kwargs.setdefault('external_shop_id', 'Acme.myshopify.com')
        kwargs.setdefault('access_token', 'shpat_live')
        return services.connect_channel(actor=actor or self.owner, **kwargs)

    def test_connect_validates_with_shopify(self):
        transport, requests = shopify_transport()
        channel = self.connect(transport=transport)

        self.assertEqual(channel.external_shop_id, 'acme.myshopify.com')
        self.assertTrue(channel.is_connected)
        self.assertIsNotNone(channel.last_connected_at)
        self.assertEqual(requests[0].headers['X-Shopify-Access-Token'], 'shpat_live')
        self.assertEqual(str(requests[0].url), 'https://acme.myshopify.com/admin/api/2024-01/shop.json')

    def test_rejected_token_leaves_channel_disconnected(self):
        transport, _ = shopify_transport(status=401)
        channel = self.connect(transport=transport)
        self.assertFalse(channel.is_connected)
        self.assertEqual(channel.last_error, 'Shopify rejected the access token')

    def test_same_store_cannot_be_connected_twice(self):
        self.connect(validate=False)
        with self.assertRaises(ValidationError):
            self.connect(validate=False, name='Again')

    def test_unknown_channel_type(self):
        with self.assertRaises(ValidationError):
            self.connect(channel_type='Etsy', validate=False)

    def test_second_channel_needs_multi_channel_feature(self):
        Subscription.objects.filter(tenant=self.tenant).update(
            plan=PlanFactory(features=['orders_management', 'shipments_management']))
        FeatureFlagService.invalidate(self.tenant)
        self.connect(validate=False)
        with self.assertRaises(FeatureDisabledError):
            self.connect(validate=False, external_shop_id='second.myshopify.com')

    def test_channel_limit(self):
        Subscription.objects.filter(tenant=self.tenant).update(plan=PlanFactory(max_channels=1))
        FeatureFlagService.invalidate(self.tenant)
        self.connect(validate=False)
        with self.assertRaises(ValidationError):
            self.connect(validate=False, external_shop_id='second.myshopify.com')

    def test_viewer_cannot_connect(self):
        with self.assertRaises(ForbiddenError):
            self.connect(actor=self.create_user('Viewer'), validate=False)

    def test_disconnect_clears_credentials(self):
        channel = SalesChannelFactory(tenant=self.tenant)
        services.disconnect_channel(actor=self.owner, channel_id=channel.pk)
        channel.refresh_from_db()
        self.assertFalse(channel.is_active)
        self.assertFalse(channel.is_connected)
        self.assertEqual(channel.access_token, '')

    def test_update_settings(self):
        channel = SalesChannelFactory(tenant=self.tenant)
        services.update_channel_settings(actor=self.owner, channel_id=channel.pk, auto_sync_inventory=True,
                                         initial_sync_days=30)
        channel.refresh_from_db()
        self.assertTrue(channel.auto_sync_inventory)
        self.assertEqual(channel.initial_sync_days, 30)


class SyncChannelTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.channel = SalesChannelFactory(tenant=self.tenant, external_shop_id='acme.myshopify.com')

    def test_sync_upserts_orders(self):
        transport, requests = shopify_transport([
            shopify_order(id=1001),
            shopify_order(id=1002, financial_status='paid'),
            shopify_order(id=1003, line_items=[{'sku': 'X', 'title': 'Broken', 'quantity': 0, 'price': '1'}]),
        ])
        summary = services.sync_channel(actor=self.owner, channel_id=self.channel.pk, transport=transport)

        self.assertTrue(summary['synced'])
        self.assertEqual((summary['created'], summary['updated'], summary['failed']), (2, 0, 1))
        self.assertEqual(requests[0].url.params['status'], 'any')
        self.assertEqual(Order.objects.get(external_order_id='1002').status, Order.STATUS_CONFIRMED)
        self.channel.refresh_from_db()
        self.assertEqual(self.channel.last_sync_status, SalesChannel.SYNC_PARTIAL)

        transport, _ = shopify_transport([shopify_order(id=1001, fulfillment_status='fulfilled')])
        summary = services.sync_channel(actor=self.owner, channel_id=self.channel.pk, transport=transport)
        self.assertEqual(summary['updated'], 1)
        self.assertEqual(Order.objects.get(external_order_id='1001').status, Order.STATUS_SHIPPED)

    def test_failed_fetch_is_recorded(self):
        transport, _ = shopify_transport(status=500)
        summary = services.sync_channel(actor=self.owner, channel_id=self.channel.pk, transport=transport)
        self.assertFalse(summary['synced'])
        self.channel.refresh_from_db()
        self.assertEqual(self.channel.last_sync_status, SalesChannel.SYNC_FAILED)

    def test_inactive_channel_cannot_sync(self):
        SalesChannel.objects.filter(pk=self.channel.pk).update(is_active=False)
        with self.assertRaises(ValidationError):
            services.sync_channel(actor=self.owner, channel_id=self.channel.pk)

    def test_marketplaces_without_integration_fail_softly(self):
        adapter = get_channel_adapter(SalesChannel.TYPE_AMAZON)
        self.assertFalse(adapter.validate_connection().success)
        self.assertIsInstance(get_channel_adapter(SalesChannel.TYPE_SHOPIFY, self.channel), ShopifyAdapter)
