import json
from decimal import Decimal
from urllib.parse import parse_qs

import httpx
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from apps.core.exceptions import ForbiddenError, IntegrationError
from apps.core.pipeline import SYSTEM_ACTOR
from apps.ndr.models import NdrRecord, NdrStatus
from apps.orders.models import Order
from apps.shipments import services
from apps.shipments.couriers import BlueDartAdapter, DelhiveryAdapter, ShiprocketAdapter, get_courier_adapter
from apps.shipments.models import CourierAccount, CourierType, ShipmentStatus
from tests.factories import (
    BaseAPITestCase, BaseTestCase, OrderFactory, ShipmentFactory, TenantFactory, sample_address,
)


def confirmed_order(tenant, **kwargs):
    order = OrderFactory(tenant=tenant, **kwargs)
    order.change_status(Order.STATUS_CONFIRMED)
    return order


class ShipmentStatusTests(SimpleTestCase):

    def test_manual_transitions(self):
        self.assertTrue(ShipmentStatus.can_transition(ShipmentStatus.CREATED, ShipmentStatus.MANIFESTED))
        self.assertTrue(ShipmentStatus.can_transition(ShipmentStatus.DELIVERY_FAILED,
                                                      ShipmentStatus.OUT_FOR_DELIVERY))
        self.assertFalse(ShipmentStatus.can_transition(ShipmentStatus.CREATED, ShipmentStatus.DELIVERED))
        self.assertFalse(ShipmentStatus.can_transition(ShipmentStatus.DELIVERED, ShipmentStatus.IN_TRANSIT))

    def test_lost_from_any_open_status(self):
        self.assertTrue(ShipmentStatus.can_transition(ShipmentStatus.IN_TRANSIT, ShipmentStatus.LOST))
        self.assertFalse(ShipmentStatus.can_transition(ShipmentStatus.CANCELLED, ShipmentStatus.LOST))


class CourierAdapterTests(SimpleTestCase):

    def test_status_maps(self):
        self.assertEqual(DelhiveryAdapter.map_status('dl'), ShipmentStatus.DELIVERED)
        self.assertEqual(DelhiveryAdapter.map_status(' ND '), ShipmentStatus.DELIVERY_FAILED)
        self.assertEqual(ShiprocketAdapter.map_status(17), ShipmentStatus.PICKED_UP)
        self.assertIsNone(DelhiveryAdapter.map_status('ZZ'))
        self.assertIsNone(DelhiveryAdapter.map_status(None))

    def test_lookup_by_slug(self):
        self.assertIsInstance(get_courier_adapter('delhivery'), DelhiveryAdapter)
        with self.assertRaises(ValueError):
            get_courier_adapter('pigeon')

    def test_parse_shiprocket_webhook(self):
        update = ShiprocketAdapter().parse_webhook({
            'awb': 19041211125783,
            'current_status': 'OUT FOR DELIVERY',
            'current_status_id': 13,
            'current_timestamp': '2024-05-23 10:15:00',
            'order_id': '1001',
            'scans': [{'location': 'Bengaluru Hub', 'activity': 'Out for delivery'}],
        })
        self.assertEqual(update.awb_number, '19041211125783')
        self.assertEqual(update.status_code, '13')
        self.assertEqual(update.location, 'Bengaluru Hub')
        self.assertEqual(update.remarks, 'Out for delivery')
        self.assertEqual(update.event_time.hour, 10)

    def test_unimplemented_operations_fail_softly(self):
        result = BlueDartAdapter(CourierAccount(api_key='bd-key')).get_label(None)
        self.assertFalse(result.success)
        self.assertIn('not implemented', result.message)

    def test_missing_credentials_never_reach_the_courier(self):
        def refuse(request):
            raise AssertionError(f"unexpected request to {request.url}")

        adapter = DelhiveryAdapter(CourierAccount(), transport=httpx.MockTransport(refuse))
        result = adapter.get_rates('560001', '110001', '1.0')
        self.assertFalse(result.success)
        self.assertIn('credentials are not configured', result.message)

    def test_shiprocket_rates_skip_blocked_couriers(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={'data': {'available_courier_companies': [
                {'courier_company_id': 1, 'courier_name': 'Air Express', 'rate': 120, 'blocked': 0},
                {'courier_company_id': 2, 'courier_name': 'Surface Saver', 'rate': 80, 'blocked': 0,
                 'is_surface': True, 'estimated_delivery_days': '5'},
                {'courier_company_id': 3, 'courier_name': 'Suspended Co', 'rate': 50, 'blocked': 1},
            ]}})

        adapter = ShiprocketAdapter(CourierAccount(access_token='sr-token'), transport=httpx.MockTransport(handler))
        result = adapter.get_rates('560001', '110001', Decimal('1.2'), is_cod=True)

        self.assertTrue(result.success)
        self.assertEqual([rate['courier_id'] for rate in result.data], [2, 1])
        self.assertEqual(result.data[0]['mode'], 'Surface')
        self.assertEqual(requests[0].url.params['cod'], '1')
        self.assertEqual(requests[0].headers['Authorization'], 'Bearer sr-token')

    def test_delhivery_rates_come_from_the_rate_card(self):
        def handler(request):
            return httpx.Response(200, json={'delivery_codes': [{'postal_code': {'pin': 110001, 'cod': 'Y'}}]})

        adapter = DelhiveryAdapter(CourierAccount(api_key='dlv-token'), transport=httpx.MockTransport(handler))
        result = adapter.get_rates('560001', '110001', Decimal('1.2'), is_cod=True, cod_amount=Decimal('1000'))

        self.assertTrue(result.success)
        surface, express = result.data
        # 1.2 kg is charged as 1.5 kg; COD costs the 50 minimum on 1000
        self.assertEqual(surface['freight_charge'], 57.5)
        self.assertEqual(surface['rate'], 107.5)
        self.assertEqual(express['rate'], 137.5)

    def test_delhivery_rates_for_unserviceable_pincode(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={'delivery_codes': []}))
        result = DelhiveryAdapter(CourierAccount(api_key='dlv-token'), transport=transport).get_rates(
            '560001', '999999', 1)
        self.assertFalse(result.success)
        self.assertIn('999999', result.message)


class CreateShipmentTests(BaseTestCase):

    def test_create_shipment(self):
        order = confirmed_order(self.tenant, payment_method=Order.METHOD_COD)

        shipment = services.create_shipment(actor=self.owner, order_id=order.pk,
                                            pickup_address=sample_address(name='Warehouse'),
                                            length=30, width=20, height=10, weight='0.5')

        order.refresh_from_db()
        self.assertEqual(shipment.status, ShipmentStatus.CREATED)
        self.assertRegex(shipment.shipment_number, r'^SHP-\d{14}-[0-9A-F]{6}$')
        self.assertTrue(shipment.is_cod)
        self.assertEqual(shipment.cod_amount, order.total_amount)
        self.assertEqual(shipment.items.get().quantity, 2)
        self.assertEqual(shipment.chargeable_weight, Decimal('1.2'))
        self.assertEqual(shipment.tracking_events.get().status, ShipmentStatus.CREATED)
        self.assertEqual(order.status, Order.STATUS_PROCESSING)

    def test_pending_order_cannot_ship(self):
        order = OrderFactory(tenant=self.tenant)
        with self.assertRaises(ValidationError):
            services.create_shipment(actor=self.owner, order_id=order.pk)

    def test_one_active_shipment_per_order(self):
        order = confirmed_order(self.tenant)
        services.create_shipment(actor=self.owner, order_id=order.pk)
        with self.assertRaises(ValidationError):
            services.create_shipment(actor=self.owner, order_id=order.pk)

    def test_partial_shipment_items(self):
        order = confirmed_order(self.tenant)
        item = order.items.get()
        shipment = services.create_shipment(actor=self.owner, order_id=order.pk,
                                            items=[{'order_item_id': item.pk, 'quantity': 1}])
        self.assertEqual(shipment.items.get().quantity, 1)
        with self.assertRaises(ValidationError):
            services.create_shipment(actor=self.owner, order_id=confirmed_order(self.tenant).pk,
                                     items=[{'order_item_id': item.pk, 'quantity': 1}])

    def test_default_courier_account_is_used(self):
        account = CourierAccount.objects.create(tenant=self.tenant, name='Delhivery Surface',
                                                courier_type=CourierType.DELHIVERY, is_default=True)
        shipment = services.create_shipment(actor=self.owner, order_id=confirmed_order(self.tenant).pk,
                                            courier_type=CourierType.DELHIVERY)
        self.assertEqual(shipment.courier_account, account)
        self.assertEqual(shipment.courier_name, 'Delhivery Surface')

    def test_viewer_cannot_create_shipments(self):
        viewer = self.create_user('Viewer')
        with self.assertRaises(ForbiddenError):
            services.create_shipment(actor=viewer, order_id=confirmed_order(self.tenant).pk)


class ShipmentLifecycleTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.order = confirmed_order(self.tenant)
        self.shipment = services.create_shipment(actor=self.owner, order_id=self.order.pk,
                                                 courier_type=CourierType.DELHIVERY)

    def move(self, *statuses, remarks=''):
        for status in statuses:
            services.update_shipment_status(actor=self.owner, shipment_id=self.shipment.pk, status=status,
                                            remarks=remarks)
        self.shipment.refresh_from_db()
        self.order.refresh_from_db()

    def test_assign_courier(self):
        services.assign_courier(actor=self.owner, shipment_id=self.shipment.pk, awb_number=' awb 1234 5678 ')
        self.shipment.refresh_from_db()
        self.assertEqual(self.shipment.awb_number, 'AWB12345678')
        self.assertEqual(self.shipment.status, ShipmentStatus.MANIFESTED)

    def test_awb_must_be_unique_per_courier(self):
        ShipmentFactory(order=confirmed_order(self.tenant), awb_number='AWB55555555')
        with self.assertRaises(ValidationError):
            services.assign_courier(actor=self.owner, shipment_id=self.shipment.pk, awb_number='AWB55555555')

    def test_invalid_awb(self):
        with self.assertRaises(ValidationError):
            services.assign_courier(actor=self.owner, shipment_id=self.shipment.pk, awb_number='12#')

    def test_invalid_manual_transition(self):
        with self.assertRaises(ValidationError):
            self.move(ShipmentStatus.DELIVERED)

    def test_delivery_cascades_to_order(self):
        services.assign_courier(actor=self.owner, shipment_id=self.shipment.pk, awb_number='AWB10000001')
        self.move(ShipmentStatus.PICKED_UP)
        self.assertEqual(self.order.status, Order.STATUS_SHIPPED)
        self.assertIsNotNone(self.shipment.picked_up_at)

        self.move(ShipmentStatus.IN_TRANSIT, ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.DELIVERED)
        self.assertEqual(self.order.status, Order.STATUS_DELIVERED)
        self.assertIsNotNone(self.shipment.delivered_at)
        self.assertEqual(self.shipment.tracking_events.count(), 6)

    def test_failed_delivery_opens_one_ndr_and_delivery_closes_it(self):
        services.assign_courier(actor=self.owner, shipment_id=self.shipment.pk, awb_number='AWB10000002')
        self.move(ShipmentStatus.PICKED_UP, ShipmentStatus.IN_TRANSIT, ShipmentStatus.OUT_FOR_DELIVERY)
        self.move(ShipmentStatus.DELIVERY_FAILED, remarks='Door locked')
        self.move(ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.DELIVERY_FAILED)

        ndr = NdrRecord.objects.get(shipment=self.shipment)
        self.assertEqual(ndr.reason_description, 'Door locked')
        self.assertEqual(ndr.awb_number, 'AWB10000002')

        self.move(ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.DELIVERED)
        ndr.refresh_from_db()
        self.assertEqual(ndr.status, NdrStatus.CLOSED_DELIVERED)

    def test_rto_closes_ndr_and_marks_order(self):
        services.assign_courier(actor=self.owner, shipment_id=self.shipment.pk, awb_number='AWB10000003')
        self.move(ShipmentStatus.PICKED_UP, ShipmentStatus.IN_TRANSIT, ShipmentStatus.OUT_FOR_DELIVERY,
                  ShipmentStatus.DELIVERY_FAILED, ShipmentStatus.RTO_INITIATED)
        self.assertEqual(NdrRecord.objects.get(shipment=self.shipment).status, NdrStatus.CLOSED_RTO)

        self.move(ShipmentStatus.RTO_IN_TRANSIT, ShipmentStatus.RTO_DELIVERED)
        self.assertEqual(self.order.status, Order.STATUS_RTO)

    def test_cancel_before_pickup(self):
        services.assign_courier(actor=self.owner, shipment_id=self.shipment.pk, awb_number='AWB10000004')
        services.cancel_shipment(actor=self.owner, shipment_id=self.shipment.pk, reason='Customer changed mind')
        self.shipment.refresh_from_db()
        self.assertEqual(self.shipment.status, ShipmentStatus.CANCELLED)
        # a cancelled shipment frees the order for a new one
        self.assertTrue(services.create_shipment(actor=self.owner, order_id=self.order.pk))

    def test_cannot_cancel_after_pickup(self):
        services.assign_courier(actor=self.owner, shipment_id=self.shipment.pk, awb_number='AWB10000005')
        self.move(ShipmentStatus.PICKED_UP)
        with self.assertRaises(ValidationError):
            services.cancel_shipment(actor=self.owner, shipment_id=self.shipment.pk)

    def test_stats(self):
        services.assign_courier(actor=self.owner, shipment_id=self.shipment.pk, awb_number='AWB10000006')
        self.move(ShipmentStatus.PICKED_UP, ShipmentStatus.IN_TRANSIT)
        ShipmentFactory(order=OrderFactory(tenant=TenantFactory()))

        stats = services.get_shipment_stats(self.tenant)

        self.assertEqual(stats['total_shipments'], 1)
        self.assertEqual(stats['in_transit'], 1)
        self.assertEqual(stats['by_courier'], {CourierType.DELHIVERY: 1})
        self.assertEqual(stats['delivery_rate'], 0.0)


class CourierUpdateTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.shipment = ShipmentFactory(order=confirmed_order(self.tenant), awb_number='DLV000111',
                                        status=ShipmentStatus.OUT_FOR_DELIVERY)

    def apply(self, code, awb='DLV000111', courier='delhivery'):
        return services.apply_courier_update(courier, awb, code, actor=SYSTEM_ACTOR, remarks='Consignee unavailable')

    def test_outcomes(self):
        self.assertEqual(self.apply('DL', awb='UNKNOWN999'), 'not_found')
        self.assertEqual(self.apply('ZZ'), 'unmapped')
        self.assertEqual(self.apply('OC'), 'unchanged')
        self.assertEqual(self.apply('ND'), 'updated')
        self.assertEqual(NdrRecord.objects.get(shipment=self.shipment).reason_description, 'Consignee unavailable')

    def test_courier_may_skip_steps(self):
        self.shipment.status = ShipmentStatus.MANIFESTED
        self.shipment.save()
        self.assertEqual(self.apply('DL'), 'updated')
        self.shipment.refresh_from_db()
        self.assertEqual(self.shipment.status, ShipmentStatus.DELIVERED)
        self.assertEqual(self.shipment.tracking_events.get().raw_status, 'DL')

    def test_terminal_shipments_are_left_alone(self):
        self.apply('DL')
        self.assertEqual(self.apply('RTO'), 'terminal')

    def test_awb_of_another_courier_is_not_matched(self):
        self.assertEqual(self.apply('17', courier='shiprocket'), 'not_found')


class CourierWebhookApiTests(BaseAPITestCase):

    def setUp(self):
        super().setUp()
        order = OrderFactory(tenant=self.tenant)
        order.change_status(Order.STATUS_SHIPPED)
        self.shipment = ShipmentFactory(order=order, awb_number='DLV000222', status=ShipmentStatus.IN_TRANSIT)

    def test_delivered_callback(self):
        response = self.client.post('/api/v1/webhooks/couriers/delhivery', {
            'waybill': 'DLV000222', 'status_code': 'DL', 'location': 'Bengaluru',
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['outcome'], 'updated')
        self.shipment.refresh_from_db()
        self.assertEqual(self.shipment.status, ShipmentStatus.DELIVERED)
        self.assertEqual(self.shipment.order.status, Order.STATUS_DELIVERED)

    def test_unknown_courier(self):
        response = self.client.post('/api/v1/webhooks/couriers/pigeon/', {'x': 1}, format='json')
        self.assertEqual(response.status_code, 404)

    def test_empty_payload(self):
        response = self.client.post('/api/v1/webhooks/couriers/delhivery/', {}, format='json')
        self.assertEqual(response.status_code, 400)


class CourierAccountTests(BaseTestCase):

    def test_shiprocket_credentials_are_checked(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={'token': 'sr-token'})

        account = services.create_courier_account(
            actor=self.owner, name='Shiprocket', courier_type=CourierType.SHIPROCKET,
            api_key='ops@acme.example.com', api_secret='secret', transport=httpx.MockTransport(handler),
        )

        self.assertTrue(account.is_connected)
        self.assertTrue(str(requests[0].url).endswith('/auth/login'))

    def test_failed_credentials_are_recorded(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={'message': 'Bad login'}))
        account = services.create_courier_account(
            actor=self.owner, name='Shiprocket', courier_type=CourierType.SHIPROCKET,
            api_key='ops@acme.example.com', api_secret='wrong', transport=transport,
        )
        self.assertFalse(account.is_connected)
        self.assertIn('HTTP 401', account.last_error)

    def test_only_one_default_account(self):
        first = services.create_courier_account(actor=self.owner, name='Manual A', courier_type=CourierType.MANUAL,
                                                is_default=True)
        services.create_courier_account(actor=self.owner, name='Manual B', courier_type=CourierType.MANUAL,
                                        is_default=True)
        first.refresh_from_db()
        self.assertFalse(first.is_default)

    def test_operator_cannot_manage_accounts(self):
        operator = self.create_user('Operator')
        with self.assertRaises(ForbiddenError):
            services.create_courier_account(actor=operator, name='Manual', courier_type=CourierType.MANUAL)

    def test_delete_account(self):
        account = services.create_courier_account(actor=self.owner, name='Manual', courier_type=CourierType.MANUAL)
        services.delete_courier_account(actor=self.owner, account_id=account.pk)
        self.assertFalse(CourierAccount.objects.filter(pk=account.pk).exists())


class CourierStub:
    """Routes mocked courier calls by URL path and keeps what was sent."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        for suffix, response in self.routes.items():
            if request.url.path.rstrip('/').endswith(suffix):
                return response if isinstance(response, httpx.Response) else httpx.Response(200, json=response)
        return httpx.Response(404, json={'message': 'Not found'})

    @property
    def transport(self):
        return httpx.MockTransport(self)

    def sent_to(self, suffix):
        return [r for r in self.requests if r.url.path.rstrip('/').endswith(suffix)]


class CourierBookingTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.order = confirmed_order(self.tenant)

    def shiprocket_account(self, **kwargs):
        return CourierAccount.objects.create(
            tenant=self.tenant, name='Shiprocket', courier_type=CourierType.SHIPROCKET,
            api_key='ops@acme.example.com', api_secret='secret', settings={'pickup_location': 'Warehouse A'},
            **kwargs)

    def delhivery_account(self):
        return CourierAccount.objects.create(tenant=self.tenant, name='Delhivery', api_key='dlv-token',
                                             courier_type=CourierType.DELHIVERY)

    def book(self, courier_type, stub, **kwargs):
        return services.create_shipment(actor=self.owner, order_id=self.order.pk, courier_type=courier_type,
                                        pickup_address=sample_address(name='Warehouse A'),
                                        transport=stub.transport, **kwargs)

    def shiprocket_stub(self, **routes):
        stub = CourierStub({
            'auth/login': {'token': 'sr-token'},
            'orders/create/adhoc': {'order_id': 9001, 'shipment_id': 7001, 'status': 'NEW', 'awb_code': ''},
            'courier/assign/awb': {'awb_assign_status': 1, 'response': {'data': {
                'awb_code': '19041211125783', 'courier_name': 'Xpressbees'}}},
        })
        stub.routes.update(routes)
        return stub

    def test_shiprocket_booking_assigns_the_awb(self):
        account = self.shiprocket_account()
        stub = self.shiprocket_stub()

        shipment = self.book(CourierType.SHIPROCKET, stub)

        self.assertEqual(shipment.status, ShipmentStatus.MANIFESTED)
        self.assertEqual(shipment.awb_number, '19041211125783')
        self.assertEqual(shipment.courier_name, 'Xpressbees')
        self.assertEqual(shipment.tracking_url, 'https://shiprocket.co/tracking/19041211125783')
        self.assertEqual(shipment.courier_response['order_id'], 9001)
        account.refresh_from_db()
        self.assertEqual(account.access_token, 'sr-token')

        created = stub.sent_to('orders/create/adhoc')[0]
        payload = json.loads(created.content)
        self.assertEqual(created.headers['Authorization'], 'Bearer sr-token')
        self.assertEqual(payload['order_id'], self.order.order_number)
        self.assertEqual(payload['pickup_location'], 'Warehouse A')
        self.assertEqual(payload['payment_method'], 'Prepaid')
        self.assertEqual(payload['order_items'][0]['sku'], 'SKU-DEFAULT')
        self.assertEqual(payload['order_items'][0]['units'], 2)
        self.assertEqual(json.loads(stub.sent_to('courier/assign/awb')[0].content), {'shipment_id': 7001})

    def test_shiprocket_order_without_awb_stays_created(self):
        self.shiprocket_account()
        stub = self.shiprocket_stub(**{'courier/assign/awb': {'awb_assign_status': 0, 'response': {'data': {}}}})

        shipment = self.book(CourierType.SHIPROCKET, stub)

        self.assertEqual(shipment.status, ShipmentStatus.CREATED)
        self.assertEqual(shipment.awb_number, '')
        self.assertEqual(shipment.courier_response['shipment_id'], 7001)
        self.assertNotIn('error', shipment.courier_response)

    def test_delhivery_booking_sends_a_form_encoded_manifest(self):
        self.order = confirmed_order(self.tenant, payment_method=Order.METHOD_COD)
        self.delhivery_account()
        stub = CourierStub({
            'waybill/api/fetch/json': httpx.Response(200, json='1234567890123'),
            'api/cmu/create.json': {'success': True, 'packages': [
                {'waybill': '1234567890123', 'refnum': self.order.order_number, 'status': 'Success'}]},
        })

        shipment = self.book(CourierType.DELHIVERY, stub)

        self.assertEqual(shipment.status, ShipmentStatus.MANIFESTED)
        self.assertEqual(shipment.awb_number, '1234567890123')
        self.assertEqual(shipment.tracking_url, 'https://www.delhivery.com/track/package/1234567890123')
        created = stub.sent_to('api/cmu/create.json')[0]
        self.assertEqual(created.headers['Authorization'], 'Token dlv-token')
        form = parse_qs(created.content.decode())
        self.assertEqual(form['format'], ['json'])
        manifest = json.loads(form['data'][0])['shipments'][0]
        self.assertEqual(manifest['waybill'], '1234567890123')
        self.assertEqual(manifest['payment_mode'], 'COD')
        self.assertEqual(manifest['cod_amount'], float(self.order.total_amount))
        self.assertEqual(manifest['weight'], 500)
        self.assertEqual(manifest['pin'], '560001')

    def test_rejected_booking_is_recorded(self):
        self.delhivery_account()
        stub = CourierStub({
            'waybill/api/fetch/json': httpx.Response(500),
            'api/cmu/create.json': {'success': False, 'rmk': 'Pincode not serviceable', 'packages': []},
        })

        shipment = self.book(CourierType.DELHIVERY, stub)

        self.assertEqual(shipment.status, ShipmentStatus.CREATED)
        self.assertEqual(shipment.courier_response['error'], 'Pincode not serviceable')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PROCESSING)

    def test_account_without_credentials_is_not_booked(self):
        CourierAccount.objects.create(tenant=self.tenant, name='Delhivery', courier_type=CourierType.DELHIVERY)
        stub = CourierStub({})

        shipment = self.book(CourierType.DELHIVERY, stub)

        self.assertEqual(stub.requests, [])
        self.assertEqual(shipment.status, ShipmentStatus.CREATED)

    def test_shiprocket_cancel_uses_the_courier_order_id(self):
        self.shiprocket_account()
        stub = self.shiprocket_stub(**{'orders/cancel': {'message': 'Order cancelled'}})
        shipment = self.book(CourierType.SHIPROCKET, stub)

        services.cancel_shipment(actor=self.owner, shipment_id=shipment.pk, transport=stub.transport)

        shipment.refresh_from_db()
        self.assertEqual(shipment.status, ShipmentStatus.CANCELLED)
        self.assertEqual(json.loads(stub.sent_to('orders/cancel')[0].content), {'ids': [9001]})

    def test_delhivery_cancel_sends_the_waybill(self):
        self.delhivery_account()
        stub = CourierStub({
            'waybill/api/fetch/json': httpx.Response(200, json='1234567890124'),
            'api/cmu/create.json': {'success': True, 'packages': [{'waybill': '1234567890124'}]},
            'api/p/edit': {'status': True, 'remarks': 'Shipment has been cancelled'},
        })
        shipment = self.book(CourierType.DELHIVERY, stub)

        services.cancel_shipment(actor=self.owner, shipment_id=shipment.pk, transport=stub.transport)

        body = json.loads(stub.sent_to('api/p/edit')[0].content)
        self.assertEqual(body, {'waybill': '1234567890124', 'cancellation': 'true'})

    def test_shiprocket_label(self):
        self.shiprocket_account()
        stub = self.shiprocket_stub(**{'courier/generate/label': {
            'label_created': 1, 'label_url': 'https://labels.example.com/7001.pdf'}})
        shipment = self.book(CourierType.SHIPROCKET, stub)

        shipment = services.generate_label(actor=self.owner, shipment_id=shipment.pk, transport=stub.transport)

        self.assertEqual(shipment.label_url, 'https://labels.example.com/7001.pdf')
        self.assertEqual(stub.sent_to('courier/generate/label')[0].url.params['shipment_id'], '7001')

    def test_label_failure_is_an_integration_error(self):
        self.delhivery_account()
        stub = CourierStub({
            'waybill/api/fetch/json': httpx.Response(200, json='1234567890125'),
            'api/cmu/create.json': {'success': True, 'packages': [{'waybill': '1234567890125'}]},
            'api/p/packing_slip': httpx.Response(500),
        })
        shipment = self.book(CourierType.DELHIVERY, stub)

        with self.assertRaises(IntegrationError):
            services.generate_label(actor=self.owner, shipment_id=shipment.pk, transport=stub.transport)

    def test_shiprocket_pickup(self):
        self.shiprocket_account()
        stub = self.shiprocket_stub(**{'courier/generate/pickup': {
            'pickup_status': 1, 'response': {'pickup_token_number': 'Reference No: 194_BIGFOOT 387'}}})
        shipment = self.book(CourierType.SHIPROCKET, stub)

        pickup = services.schedule_pickup(actor=self.owner, shipment_ids=[shipment.pk], pickup_date='2026-10-20',
                                          transport=stub.transport)

        self.assertEqual(pickup['pickup_reference'], 'Reference No: 194_BIGFOOT 387')
        self.assertEqual(json.loads(stub.sent_to('courier/generate/pickup')[0].content)['shipment_id'], [7001])
        shipment.refresh_from_db()
        self.assertEqual(shipment.courier_response['pickup_date'], '2026-10-20')

    def test_pickup_needs_manifested_shipments(self):
        shipment = services.create_shipment(actor=self.owner, order_id=self.order.pk)
        with self.assertRaises(ValidationError):
            services.schedule_pickup(actor=self.owner, shipment_ids=[shipment.pk], pickup_date='2026-10-20')


class CourierAccountApiTests(BaseAPITestCase):

    def setUp(self):
        super().setUp()
        self.authenticate()

    def test_connection_check_reports_the_result(self):
        account = CourierAccount.objects.create(tenant=self.tenant, name='Shiprocket',
                                                courier_type=CourierType.SHIPROCKET)

        response = self.client.post(f'/api/v1/courier-accounts/{account.pk}/test/')

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data'], {
            'connected': False, 'message': 'Shiprocket email and password are required', 'errors': [],
        })
        self.assertEqual(body['message'], 'Shiprocket email and password are required')
        account.refresh_from_db()
        self.assertFalse(account.is_connected)

    def test_manual_account_check(self):
        account = CourierAccount.objects.create(tenant=self.tenant, name='Own fleet', courier_type=CourierType.MANUAL)

        response = self.client.post(f'/api/v1/courier-accounts/{account.pk}/test/')

        self.assertTrue(response.json()['data']['connected'])

    def test_rate_lookup_input_is_validated(self):
        account = CourierAccount.objects.create(tenant=self.tenant, name='Delhivery',
                                                courier_type=CourierType.DELHIVERY)
        response = self.client.post(f'/api/v1/courier-accounts/{account.pk}/rates/',
                                    {'pickup_postal_code': '5600', 'delivery_postal_code': '110001', 'weight': '0'},
                                    format='json')
        self.assertEqual(response.status_code, 400)

    def test_rate_lookup_failure_is_502(self):
        account = CourierAccount.objects.create(tenant=self.tenant, name='Delhivery',
                                                courier_type=CourierType.DELHIVERY)
        response = self.client.post(f'/api/v1/courier-accounts/{account.pk}/rates/',
                                    {'pickup_postal_code': '560001', 'delivery_postal_code': '110001',
                                     'weight': '1.5'}, format='json')
        self.assertEqual(response.status_code, 502)
        self.assertIn('credentials are not configured', response.json()['message'])
