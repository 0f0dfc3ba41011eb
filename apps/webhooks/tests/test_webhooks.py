import json
from datetime import timedelta
from unittest import mock

import httpx
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, override_settings
from django.utils import timezone

from apps.core.exceptions import ForbiddenError
from apps.webhooks import services
from apps.webhooks.dispatcher import (
    DELIVERY_HEADER,
    EVENT_HEADER,
    SIGNATURE_HEADER,
    deliver,
    dispatch_event,
    retry_delay,
    sign_payload,
    verify_signature,
)
from apps.webhooks.models import WebhookDelivery, WebhookEvent
from apps.webhooks.tasks import retry_pending_deliveries
from tests.factories import BaseTestCase, TenantFactory, WebhookSubscriptionFactory

REAL_CLIENT = httpx.Client


def client_for(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


class SignatureTests(SimpleTestCase):

    def test_sign_and_verify(self):
        body = b'{"event":"order.created"}'
        signature = sign_payload(body, 'whsec_test_secret')
        self.assertTrue(signature.startswith('sha256='))
        self.assertTrue(verify_signature(body, 'whsec_test_secret', signature))
        self.assertFalse(verify_signature(body + b' ', 'whsec_test_secret', signature))
        self.assertFalse(verify_signature(body, 'other', signature))
        self.assertFalse(verify_signature(body, 'whsec_test_secret', None))

    def test_backoff_doubles(self):
        self.assertEqual(retry_delay(1), timedelta(minutes=2))
        self.assertEqual(retry_delay(3), timedelta(minutes=8))


class DispatchTests(BaseTestCase):

    def test_only_matching_active_subscribers_get_a_delivery(self):
        WebhookSubscriptionFactory(tenant=self.tenant, events=[WebhookEvent.ORDER_CREATED])
        WebhookSubscriptionFactory(tenant=self.tenant, events=[WebhookEvent.ORDER_SHIPPED])
        WebhookSubscriptionFactory(tenant=self.tenant, is_active=False)
        WebhookSubscriptionFactory(tenant=TenantFactory())

        deliveries = dispatch_event(self.tenant, WebhookEvent.ORDER_CREATED, {'order_number': 'ORD-1'})

        self.assertEqual(len(deliveries), 1)
        payload = deliveries[0].payload
        self.assertEqual(payload['event'], WebhookEvent.ORDER_CREATED)
        self.assertEqual(payload['tenant_id'], str(self.tenant.pk))
        self.assertEqual(payload['data'], {'order_number': 'ORD-1'})

    def test_no_tenant_no_dispatch(self):
        self.assertEqual(dispatch_event(None, WebhookEvent.ORDER_CREATED, {}), [])

    def test_delivery_is_sent_after_commit(self):
        subscription = WebhookSubscriptionFactory(tenant=self.tenant)
        received = []

        def handler(request):
            received.append(request)
            return httpx.Response(200, text='ok')

        with mock.patch('apps.webhooks.dispatcher.httpx.Client', lambda **kwargs: REAL_CLIENT(
                transport=httpx.MockTransport(handler))):
            with self.captureOnCommitCallbacks(execute=True):
                dispatch_event(self.tenant, WebhookEvent.ORDER_CREATED, {'order_number': 'ORD-2'})

        self.assertEqual(len(received), 1)
        delivery = WebhookDelivery.objects.get(subscription=subscription)
        self.assertEqual(delivery.status, WebhookDelivery.STATUS_DELIVERED)


class DeliverTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.subscription = WebhookSubscriptionFactory(tenant=self.tenant, headers={'X-Api-Key': 'erp-key'},
                                                       max_retries=3)
        self.delivery = dispatch_event(self.tenant, WebhookEvent.ORDER_CREATED, {'order_number': 'ORD-3'})[0]

    def test_successful_delivery_is_signed(self):
        seen = {}

        def handler(request):
            seen['headers'] = request.headers
            seen['body'] = request.content
            return httpx.Response(204)

        self.assertTrue(deliver(self.delivery, client=client_for(handler)))

        self.assertEqual(seen['headers'][EVENT_HEADER], WebhookEvent.ORDER_CREATED)
        self.assertEqual(seen['headers'][DELIVERY_HEADER], str(self.delivery.pk))
        self.assertEqual(seen['headers']['X-Api-Key'], 'erp-key')
        self.assertTrue(verify_signature(seen['body'], 'whsec_test_secret', seen['headers'][SIGNATURE_HEADER]))
        self.assertEqual(json.loads(seen['body'])['data']['order_number'], 'ORD-3')

        self.delivery.refresh_from_db()
        self.subscription.refresh_from_db()
        self.assertEqual(self.delivery.status, WebhookDelivery.STATUS_DELIVERED)
        self.assertEqual(self.delivery.http_status_code, 204)
        self.assertIsNotNone(self.delivery.delivered_at)
        self.assertEqual(self.subscription.successful_deliveries, 1)
        self.assertEqual(self.subscription.success_rate, 100.0)

    def test_failure_schedules_retry_with_backoff(self):
        before = timezone.now()
        self.assertFalse(deliver(self.delivery, client=client_for(lambda r: httpx.Response(500, text='boom'))))

        self.delivery.refresh_from_db()
        self.assertEqual(self.delivery.status, WebhookDelivery.STATUS_RETRYING)
        self.assertEqual(self.delivery.attempt_count, 1)
        self.assertEqual(self.delivery.error_message, 'HTTP 500')
        self.assertGreaterEqual(self.delivery.next_retry_at, before + timedelta(minutes=2))

    def test_gives_up_after_max_retries(self):
        failing = client_for(lambda r: httpx.Response(503))
        for _ in range(3):
            deliver(self.delivery, client=failing)
        self.delivery.refresh_from_db()
        self.subscription.refresh_from_db()
        self.assertEqual(self.delivery.status, WebhookDelivery.STATUS_FAILED)
        self.assertIsNone(self.delivery.next_retry_at)
        self.assertEqual(self.subscription.failed_deliveries, 3)

    def test_connection_error_is_recorded(self):
        def handler(request):
            raise httpx.ConnectError('connection refused', request=request)

        self.assertFalse(deliver(self.delivery, client=client_for(handler)))
        self.delivery.refresh_from_db()
        self.assertIsNone(self.delivery.http_status_code)
        self.assertIn('ConnectError', self.delivery.error_message)

    @override_settings(WEBHOOK_RESPONSE_BODY_LIMIT=10)
    def test_response_body_is_truncated(self):
        deliver(self.delivery, client=client_for(lambda r: httpx.Response(200, text='x' * 50)))
        self.delivery.refresh_from_db()
        self.assertEqual(self.delivery.response_body, 'x' * 10)

    def test_due_retries_are_requeued(self):
        WebhookDelivery.objects.filter(pk=self.delivery.pk).update(
            status=WebhookDelivery.STATUS_RETRYING, next_retry_at=timezone.now() - timedelta(minutes=1))
        with mock.patch('apps.webhooks.tasks.deliver_webhook.delay') as delay:
            self.assertEqual(retry_pending_deliveries(), 1)
        delay.assert_called_once_with(str(self.delivery.pk))


class SubscriptionServiceTests(BaseTestCase):

    def test_create_subscription_generates_secret(self):
        subscription = services.create_subscription(
            actor=self.owner, name='ERP', url='https://erp.example.com/hooks',
            events=[WebhookEvent.ORDER_CREATED, WebhookEvent.SHIPMENT_DELIVERED],
        )
        self.assertEqual(len(subscription.secret), 64)
        old = subscription.secret
        services.regenerate_secret(actor=self.owner, subscription_id=subscription.pk)
        subscription.refresh_from_db()
        self.assertNotEqual(subscription.secret, old)

    def test_events_and_url_are_validated(self):
        with self.assertRaises(ValidationError):
            services.create_subscription(actor=self.owner, name='ERP', url='https://erp.example.com',
                                         events=['order.exploded'])
        with self.assertRaises(ValidationError):
            services.create_subscription(actor=self.owner, name='ERP', url='ftp://erp.example.com',
                                         events=[WebhookEvent.ORDER_CREATED])
        with self.assertRaises(ValidationError):
            services.create_subscription(actor=self.owner, name='ERP', url='https://erp.example.com', events=[])

    def test_manager_cannot_manage_webhooks(self):
        manager = self.create_user('Manager')
        with self.assertRaises(ForbiddenError):
            services.create_subscription(actor=manager, name='ERP', url='https://erp.example.com',
                                         events=[WebhookEvent.ORDER_CREATED])

    def test_send_test_event(self):
        subscription = WebhookSubscriptionFactory(tenant=self.tenant)
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text='received'))
        with mock.patch('apps.webhooks.dispatcher.httpx.Client',
                        lambda **kwargs: REAL_CLIENT(transport=transport)):
            delivery = services.send_test_event(actor=self.owner, subscription_id=subscription.pk)
        self.assertEqual(delivery.status, WebhookDelivery.STATUS_DELIVERED)
        self.assertTrue(delivery.payload['data']['test'])

    def test_inactive_subscription_cannot_be_tested(self):
        subscription = WebhookSubscriptionFactory(tenant=self.tenant, is_active=False)
        with self.assertRaises(ValidationError):
            services.send_test_event(actor=self.owner, subscription_id=subscription.pk)

    def test_delete_subscription(self):
        subscription = WebhookSubscriptionFactory(tenant=self.tenant)
        services.delete_subscription(actor=self.owner, subscription_id=subscription.pk)
        self.assertEqual(dispatch_event(self.tenant, WebhookEvent.ORDER_CREATED, {}), [])
