import csv
import io

from apps.billing.features import FeatureFlagService
from apps.billing.models import Subscription
from apps.channels.models import SalesChannel
from apps.orders.models import Order
from tests.factories import (
    PASSWORD, BaseAPITestCase, OrderFactory, PlanFactory, SalesChannelFactory, TenantFactory, sample_address,
)

ORDER_PAYLOAD = {
    'customer_name': 'Asha Verma',
    'customer_phone': '9876543210',
    'shipping_address': sample_address(),
    'payment_method': Order.METHOD_COD,
    'shipping_amount': '40.00',
    'items': [{'sku': 'TEE-01', 'name': 'Cotton Tee', 'quantity': 2, 'unit_price': '250.00'}],
}


class AuthApiTests(BaseAPITestCase):

    def test_login_returns_enveloped_tokens(self):
        response = self.client.post('/api/v1/auth/login/', {
            'tenant_slug': self.tenant.slug, 'email': self.owner.email, 'password': PASSWORD,
        }, format='json')

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['token_type'], 'Bearer')
        self.assertEqual(body['data']['user']['email'], self.owner.email)

    def test_bad_password_is_401(self):
        response = self.client.post('/api/v1/auth/login/', {
            'tenant_slug': self.tenant.slug, 'email': self.owner.email, 'password': 'wrong',
        }, format='json')
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.json()['success'])

    def test_anonymous_request_is_401(self):
        response = self.client.get('/api/v1/orders/', HTTP_X_TENANT_SLUG=self.tenant.slug)
        self.assertEqual(response.status_code, 401)

    def test_me(self):
        self.authenticate()
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, 200)
        self.assertIn('orders.view', response.json()['data']['permissions'])


class OrderApiTests(BaseAPITestCase):

    def setUp(self):
        super().setUp()
        self.authenticate()

    def test_create_order(self):
        response = self.client.post('/api/v1/orders/', ORDER_PAYLOAD, format='json')

        self.assertEqual(response.status_code, 201)
        data = response.json()['data']
        self.assertTrue(data['order_number'].startswith('ORD-'))
        self.assertEqual(data['total_amount'], '540.00')
        self.assertTrue(data['is_cod'])
        self.assertEqual(len(data['items']), 1)

    def test_validation_errors_are_flattened(self):
        response = self.client.post('/api/v1/orders/', {**ORDER_PAYLOAD, 'items': []}, format='json')

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertEqual(body['message'], 'Validation failed')
        self.assertTrue(any(error.startswith('items:') for error in body['errors']))

    def test_list_is_paginated_and_tenant_scoped(self):
        OrderFactory.create_batch(3, tenant=self.tenant)
        OrderFactory(tenant=TenantFactory())

        response = self.client.get('/api/v1/orders/', {'page_size': 2})

        body = response.json()
        self.assertEqual(len(body['data']), 2)
        self.assertEqual(body['pagination']['total_count'], 3)
        self.assertEqual(body['pagination']['total_pages'], 2)
        self.assertTrue(body['pagination']['has_next'])

    def test_order_of_another_tenant_is_404(self):
        foreign = OrderFactory(tenant=TenantFactory())
        self.assertEqual(self.client.get(f'/api/v1/orders/{foreign.pk}/').status_code, 404)

    def test_missing_permission_is_403(self):
        self.authenticate(self.create_user('Viewer'))
        response = self.client.post('/api/v1/orders/', ORDER_PAYLOAD, format='json')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['message'], 'Missing permission: orders.create')

    def test_cancel_action(self):
        order = OrderFactory(tenant=self.tenant)
        response = self.client.post(f'/api/v1/orders/{order.pk}/cancel/', {'reason': 'Changed mind'},
                                    format='json')
        body = response.json()
        self.assertEqual(body['message'], 'Order cancelled.')
        self.assertEqual(body['data']['status'], Order.STATUS_CANCELLED)


class FeatureGateApiTests(BaseAPITestCase):

    def setUp(self):
        super().setUp()
        Subscription.objects.filter(tenant=self.tenant).update(
            plan=PlanFactory(features=['orders_management', 'shipments_management']))
        FeatureFlagService.invalidate(self.tenant)
        self.authenticate()

    def test_disabled_feature_is_402(self):
        response = self.client.get('/api/v1/ndr/')
        self.assertEqual(response.status_code, 402)
        self.assertIn('ndr_management', response.json()['message'])

    def test_dashboard_only_reports_enabled_modules(self):
        response = self.client.get('/api/v1/dashboard/')

        data = response.json()['data']
        self.assertIn('orders', data)
        self.assertIn('shipments', data)
        self.assertNotIn('ndr', data)
        self.assertNotIn('inventory', data)

    def test_subscription_lists_enabled_features(self):
        response = self.client.get('/api/v1/subscription/')
        self.assertEqual(response.json()['data']['enabled_features'],
                         ['orders_management', 'shipments_management'])


class ChannelApiTests(BaseAPITestCase):

    def setUp(self):
        super().setUp()
        self.authenticate()

    def test_sync_summary_is_enveloped(self):
        channel = SalesChannelFactory(tenant=self.tenant, type=SalesChannel.TYPE_AMAZON, name='Amazon IN')

        response = self.client.post(f'/api/v1/channels/{channel.pk}/sync/', {}, format='json')

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(set(body), {'success', 'data', 'message', 'errors'})
        self.assertTrue(body['success'])
        self.assertFalse(body['data']['synced'])
        self.assertIn('not implemented', body['data']['message'])
        self.assertEqual(body['data']['created'], 0)
        channel.refresh_from_db()
        self.assertEqual(channel.last_sync_status, SalesChannel.SYNC_FAILED)


class OrderBulkApiTests(BaseAPITestCase):

    def setUp(self):
        super().setUp()
        self.authenticate()

    def test_export_is_a_csv_of_the_filtered_orders(self):
        pending = OrderFactory(tenant=self.tenant, customer_name='Asha Verma')
        OrderFactory(tenant=self.tenant).cancel()
        OrderFactory(tenant=TenantFactory())

        response = self.client.get('/api/v1/orders/export/', {'status': Order.STATUS_PENDING})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response['Content-Type'].startswith('text/csv'))
        self.assertIn('attachment; filename="orders_export_', response['Content-Disposition'])
        rows = list(csv.reader(io.StringIO(response.content.decode())))
        self.assertEqual(rows[0][:4], ['OrderNumber', 'ExternalOrderId', 'OrderDate', 'Status'])
        self.assertEqual([row[0] for row in rows[1:]], [pending.order_number])

    def test_export_needs_permission(self):
        self.authenticate(self.create_user('Operator'))
        response = self.client.get('/api/v1/orders/export/')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['message'], 'Missing permission: orders.export')

    def test_bulk_status_reports_each_order(self):
        order = OrderFactory(tenant=self.tenant)
        cancelled = OrderFactory(tenant=self.tenant)
        cancelled.cancel()

        response = self.client.post('/api/v1/orders/bulk-status/', {
            'order_ids': [order.pk, cancelled.pk], 'status': Order.STATUS_CONFIRMED,
        }, format='json')

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(set(body), {'success', 'data', 'message', 'errors'})
        self.assertEqual(body['message'], '1 of 2 orders updated.')
        self.assertEqual(body['data']['updated'], [order.pk])
        self.assertEqual(body['data']['failed'][0]['order_id'], cancelled.pk)
        self.assertIn('cancelled', body['data']['failed'][0]['error'])

    def test_bulk_status_input_is_validated(self):
        for payload in ({'order_ids': [], 'status': Order.STATUS_CONFIRMED},
                        {'order_ids': list(range(1, 102)), 'status': Order.STATUS_CONFIRMED},
                        {'order_ids': [1], 'status': 'Teleported'}):
            with self.subTest(payload=payload):
                response = self.client.post('/api/v1/orders/bulk-status/', payload, format='json')
                self.assertEqual(response.status_code, 400)


class TenantSettingsApiTests(BaseAPITestCase):

    def setUp(self):
        super().setUp()
        self.authenticate()

    def test_read_all_and_one_section(self):
        response = self.client.get('/api/v1/settings/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['general']['timezone'], 'Asia/Kolkata')

        response = self.client.get('/api/v1/settings/inventory/')
        self.assertEqual(response.json()['data']['low_stock_threshold'], 10)
        self.assertEqual(self.client.get('/api/v1/settings/finance/').status_code, 404)

    def test_patch_one_section(self):
        response = self.client.patch('/api/v1/settings/orders/', {
            'auto_confirm_orders': True, 'max_cod_amount': '5000.00',
        }, format='json')

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['message'], 'Settings saved.')
        self.assertTrue(body['data']['auto_confirm_orders'])
        self.assertEqual(body['data']['max_cod_amount'], '5000.00')
        self.assertTrue(body['data']['enable_cod'])

    def test_invalid_values_are_rejected(self):
        for section, payload in (('orders', {'order_processing_cutoff_hour': 30}),
                                 ('general', {'timezone': 'Mars/Olympus'}),
                                 ('branding', {'primary_color': 'blue'})):
            with self.subTest(section=section):
                response = self.client.patch(f'/api/v1/settings/{section}/', payload, format='json')
                self.assertEqual(response.status_code, 400)
                self.assertFalse(response.json()['success'])

    def test_viewer_cannot_read_settings(self):
        self.authenticate(self.create_user('Viewer'))
        self.assertEqual(self.client.get('/api/v1/settings/').status_code, 403)


class AuditLogApiTests(BaseAPITestCase):

    def setUp(self):
        super().setUp()
        self.authenticate()

    def test_changes_are_listed_for_the_tenant_only(self):
        order_id = self.client.post('/api/v1/orders/', ORDER_PAYLOAD, format='json').json()['data']['id']
        OrderFactory(tenant=TenantFactory())

        response = self.client.get('/api/v1/audit-logs/', {'model': 'order', 'action': 'create'})

        self.assertEqual(response.status_code, 200)
        entries = response.json()['data']
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0]['object_id'], str(order_id))
        self.assertEqual(entries[0]['action'], 'create')
        self.assertEqual(entries[0]['actor'], self.owner.email)
        self.assertIn('customer_name', entries[0]['changes'])

    def test_filter_by_object(self):
        order = OrderFactory(tenant=self.tenant)
        other = OrderFactory(tenant=self.tenant)
        self.client.post(f'/api/v1/orders/{order.pk}/cancel/', {'reason': 'Duplicate'}, format='json')

        response = self.client.get('/api/v1/audit-logs/', {'model': 'order', 'object_id': order.pk})

        object_ids = {entry['object_id'] for entry in response.json()['data']}
        self.assertEqual(object_ids, {str(order.pk)})
        self.assertNotIn(str(other.pk), object_ids)
        self.assertTrue(any(entry['action'] == 'update' for entry in response.json()['data']))

    def test_needs_audit_permission(self):
        self.authenticate(self.create_user('Manager'))
        self.assertEqual(self.client.get('/api/v1/audit-logs/').status_code, 403)
