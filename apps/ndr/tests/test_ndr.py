from datetime import timedelta

from django.core.exceptions import ValidationError
from django.utils import timezone

from apps.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from apps.ndr import services
from apps.ndr.models import NdrAction, NdrActionType, NdrReason, NdrRecord, NdrStatus
from apps.webhooks.models import WebhookDelivery, WebhookEvent
from tests.factories import (
    BaseTestCase, NdrRecordFactory, OrderFactory, ShipmentFactory, TenantFactory, WebhookSubscriptionFactory,
)


class NdrWorkflowTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.shipment = ShipmentFactory(order=OrderFactory(tenant=self.tenant))
        self.ndr = NdrRecordFactory(shipment=self.shipment)
        self.agent = self.create_user('NDR Agent')

    def test_create_ndr(self):
        WebhookSubscriptionFactory(tenant=self.tenant, events=[WebhookEvent.NDR_CREATED])
        shipment = ShipmentFactory(order=OrderFactory(tenant=self.tenant))

        ndr = services.create_ndr(actor=self.owner, shipment_id=shipment.pk,
                                  reason_code=NdrReason.INCORRECT_ADDRESS, reason_description='No such flat')

        self.assertEqual(ndr.status, NdrStatus.OPEN)
        self.assertEqual(ndr.awb_number, shipment.awb_number)
        self.assertEqual(ndr.order, shipment.order)
        self.assertEqual(WebhookDelivery.objects.get().event, WebhookEvent.NDR_CREATED)

    def test_only_one_open_ndr_per_shipment(self):
        with self.assertRaises(ConflictError):
            services.create_ndr(actor=self.owner, shipment_id=self.shipment.pk)

    def test_unknown_reason_code(self):
        shipment = ShipmentFactory(order=OrderFactory(tenant=self.tenant))
        with self.assertRaises(ValidationError):
            services.create_ndr(actor=self.owner, shipment_id=shipment.pk, reason_code='Aliens')

    def test_assign_and_reassign(self):
        manager = self.create_user('Manager')
        services.assign_ndr(actor=self.owner, ndr_id=self.ndr.pk, user_id=self.agent.pk)
        services.assign_ndr(actor=self.owner, ndr_id=self.ndr.pk, user_id=manager.pk)

        self.ndr.refresh_from_db()
        self.assertEqual(self.ndr.status, NdrStatus.ASSIGNED)
        self.assertEqual(self.ndr.assigned_to, manager)
        last = NdrAction.objects.filter(ndr=self.ndr).first()
        self.assertEqual(last.action_type, NdrActionType.REASSIGNED)
        self.assertIn(f'from {self.agent.email} to {manager.email}', last.details)

    def test_cannot_assign_user_of_another_tenant(self):
        from tests.factories import UserFactory

        stranger = UserFactory(tenant=TenantFactory())
        with self.assertRaises(NotFoundError):
            services.assign_ndr(actor=self.owner, ndr_id=self.ndr.pk, user_id=stranger.pk)

    def test_agent_cannot_assign(self):
        with self.assertRaises(ForbiddenError):
            services.assign_ndr(actor=self.agent, ndr_id=self.ndr.pk, user_id=self.agent.pk)

    def test_phone_call_marks_customer_contacted(self):
        services.record_ndr_action(actor=self.agent, ndr_id=self.ndr.pk, action_type=NdrActionType.PHONE_CALL,
                                   outcome='Will be home tomorrow', call_duration_seconds=95)
        self.ndr.refresh_from_db()
        self.assertEqual(self.ndr.status, NdrStatus.CUSTOMER_CONTACTED)

    def test_other_actions_keep_status(self):
        services.record_ndr_action(actor=self.agent, ndr_id=self.ndr.pk, action_type=NdrActionType.SMS)
        self.ndr.refresh_from_db()
        self.assertEqual(self.ndr.status, NdrStatus.OPEN)
        with self.assertRaises(ValidationError):
            services.record_ndr_action(actor=self.agent, ndr_id=self.ndr.pk, action_type='Telegram')

    def test_schedule_reattempt(self):
        when = timezone.now() + timedelta(days=1)
        services.schedule_reattempt(actor=self.agent, ndr_id=self.ndr.pk, reattempt_at=when)

        self.ndr.refresh_from_db()
        self.assertEqual(self.ndr.status, NdrStatus.REATTEMPT_SCHEDULED)
        self.assertEqual(self.ndr.attempt_count, 2)
        self.assertEqual(self.ndr.next_follow_up_at, when)

    def test_reattempt_must_be_in_future(self):
        with self.assertRaises(ValidationError):
            services.schedule_reattempt(actor=self.agent, ndr_id=self.ndr.pk,
                                        reattempt_at=timezone.now() - timedelta(hours=1))

    def test_overdue_follow_up(self):
        NdrRecord.objects.filter(pk=self.ndr.pk).update(next_follow_up_at=timezone.now() - timedelta(hours=2))
        self.ndr.refresh_from_db()
        self.assertTrue(self.ndr.is_overdue)
        self.assertEqual(services.get_ndr_stats(self.tenant)['overdue'], 1)

    def test_escalate_queues_webhook(self):
        WebhookSubscriptionFactory(tenant=self.tenant, events=[WebhookEvent.NDR_ESCALATED])
        services.escalate_ndr(actor=self.owner, ndr_id=self.ndr.pk, reason='Third failed attempt')
        self.ndr.refresh_from_db()
        self.assertEqual(self.ndr.status, NdrStatus.ESCALATED)
        self.assertEqual(WebhookDelivery.objects.get().event, WebhookEvent.NDR_ESCALATED)

    def test_resolve_closes_the_ndr(self):
        services.resolve_ndr(actor=self.owner, ndr_id=self.ndr.pk,
                             resolution=NdrRecord.RESOLUTION_ADDRESS_UPDATED, notes='New flat number')
        self.ndr.refresh_from_db()
        self.assertEqual(self.ndr.status, NdrStatus.CLOSED_ADDRESS_UPDATED)
        self.assertIsNotNone(self.ndr.resolved_at)

        with self.assertRaises(ValidationError):
            services.record_ndr_action(actor=self.owner, ndr_id=self.ndr.pk, action_type=NdrActionType.SMS)
        with self.assertRaises(ValidationError):
            services.resolve_ndr(actor=self.owner, ndr_id=self.ndr.pk, resolution=NdrRecord.RESOLUTION_RTO)

    def test_unknown_resolution(self):
        with self.assertRaises(ValidationError):
            services.resolve_ndr(actor=self.owner, ndr_id=self.ndr.pk, resolution='Vanished')

    def test_initiate_rto(self):
        services.initiate_rto(actor=self.owner, ndr_id=self.ndr.pk, reason='Customer refused twice')
        self.ndr.refresh_from_db()
        self.assertEqual(self.ndr.status, NdrStatus.RTO_INITIATED)

    def test_remarks(self):
        remark = services.add_ndr_remark(actor=self.agent, ndr_id=self.ndr.pk, content='  Prefers evening  ')
        self.assertEqual(remark.content, 'Prefers evening')
        self.assertEqual(remark.author, self.agent)
        with self.assertRaises(ValidationError):
            services.add_ndr_remark(actor=self.agent, ndr_id=self.ndr.pk, content=' ')

    def test_ndr_of_another_tenant_is_not_found(self):
        other = ShipmentFactory(order=OrderFactory(tenant=TenantFactory()))
        foreign = NdrRecordFactory(shipment=other)
        with self.assertRaises(NotFoundError):
            services.escalate_ndr(actor=self.owner, ndr_id=foreign.pk, reason='x')

    def test_stats(self):
        closed = NdrRecordFactory(shipment=ShipmentFactory(order=OrderFactory(tenant=self.tenant)))
        closed.resolve(NdrRecord.RESOLUTION_DELIVERED)

        stats = services.get_ndr_stats(self.tenant)

        self.assertEqual(stats['total'], 2)
        self.assertEqual(stats['open'], 1)
        self.assertEqual(stats['unassigned'], 1)
        self.assertEqual(stats['delivery_success_rate'], 100.0)

    def test_overdue_follow_ups_task(self):
        from apps.ndr.tasks import flag_overdue_follow_ups

        NdrRecord.objects.filter(pk=self.ndr.pk).update(next_follow_up_at=timezone.now() - timedelta(hours=1))
        with self.assertLogs('apps.ndr.tasks', level='WARNING'):
            self.assertEqual(flag_overdue_follow_ups(), {self.tenant.slug: 1})

        self.ndr.resolve(NdrRecord.RESOLUTION_DELIVERED)
        self.assertEqual(flag_overdue_follow_ups(), {})
