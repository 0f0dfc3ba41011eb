from django.core.exceptions import ValidationError
from django.test import override_settings

from apps.billing.features import FeatureFlagService
from apps.core.exceptions import (
    FeatureDisabledError,
    ForbiddenError,
    TenantNotFoundError,
    UnauthorizedError,
)
from apps.core.pipeline import SYSTEM_ACTOR, audit_user, handler
from apps.orders.models import Order
from apps.tenants.context import tenant_context
from tests.factories import BaseTestCase, PlanFactory, PlatformAdminFactory, TenantFactory, UserFactory


@handler('EchoOrders', permissions='orders.view', feature='orders_management')
def echo_orders(*, actor, value):
    return value


@handler('PlatformOnly', tenant_required=False, platform_admin=True)
def platform_only(*, actor):
    return 'ok'


@handler('SuperOnly', tenant_required=False, super_admin=True)
def super_only(*, actor):
    return 'ok'


@handler('WriteThenFail', permissions='orders.create')
def write_then_fail(*, actor, tenant):
    Order.objects.create(tenant=tenant, customer_name='Rolled Back', shipping_address={})
    raise ValidationError('boom')


@handler()
def snake_case_name(*, actor):
    return actor


class PipelineTests(BaseTestCase):

    def test_runs_handler_for_permitted_actor(self):
        self.assertEqual(echo_orders(actor=self.owner, value=42), 42)

    def test_missing_actor_is_unauthorized(self):
        with self.assertRaises(UnauthorizedError):
            echo_orders(actor=None, value=1)

    def test_missing_permission_is_forbidden(self):
        viewer = UserFactory(tenant=self.tenant)
        with self.assertRaises(ForbiddenError) as ctx:
            echo_orders(actor=viewer, value=1)
        self.assertIn('orders.view', str(ctx.exception))

    def test_disabled_feature_is_checked_before_permissions(self):
        plan = PlanFactory(features=['shipments_management'])
        subscription = self.tenant.subscription
        subscription.plan = plan
        subscription.save()
        FeatureFlagService.invalidate(self.tenant)

        with self.assertRaises(FeatureDisabledError) as ctx:
            echo_orders(actor=None, value=1)
        self.assertEqual(ctx.exception.feature, 'orders_management')
        self.assertEqual(ctx.exception.status_code, 402)

    def test_tenant_required_without_context(self):
        with tenant_context(None):
            with self.assertRaises(TenantNotFoundError):
                echo_orders(actor=self.owner, value=1)

    def test_actor_from_other_tenant_is_forbidden(self):
        outsider = UserFactory(tenant=TenantFactory())
        with self.assertRaises(ForbiddenError):
            echo_orders(actor=outsider, value=1)

    def test_system_actor_passes_permission_checks(self):
        self.assertEqual(echo_orders(actor=SYSTEM_ACTOR, value='sys'), 'sys')

    def test_platform_admin_handlers(self):
        admin = PlatformAdminFactory()
        self.assertEqual(platform_only(actor=admin), 'ok')
        with self.assertRaises(ForbiddenError):
            platform_only(actor=self.owner)
        with self.assertRaises(UnauthorizedError):
            platform_only(actor=None)
        with self.assertRaises(ForbiddenError):
            super_only(actor=admin)
        self.assertEqual(super_only(actor=PlatformAdminFactory(is_super_admin=True)), 'ok')

    def test_failed_handler_rolls_back_its_writes(self):
        with self.assertRaises(ValidationError):
            write_then_fail(actor=self.owner, tenant=self.tenant)
        self.assertFalse(Order.objects.filter(customer_name='Rolled Back').exists())

    @override_settings(PIPELINE_SLOW_HANDLER_MS=-1)
    def test_slow_handler_logs_warning(self):
        with self.assertLogs('apps.core.pipeline', level='WARNING') as logs:
            echo_orders(actor=self.owner, value=1)
        self.assertTrue(any('Long running handler: EchoOrders' in line for line in logs.output))

    def test_failure_is_logged_and_reraised(self):
        with self.assertLogs('apps.core.pipeline', level='ERROR') as logs:
            with self.assertRaises(ValidationError):
                write_then_fail(actor=self.owner, tenant=self.tenant)
        self.assertIn('Error handling WriteThenFail', logs.output[0])

    def test_handler_name_defaults_to_function_name(self):
        self.assertEqual(snake_case_name.handler_name, 'SnakeCaseName')
        self.assertEqual(echo_orders.required_permissions, ('orders.view',))
        self.assertEqual(echo_orders.required_feature, 'orders_management')

    def test_audit_user_only_keeps_tenant_users(self):
        self.assertEqual(audit_user(self.owner), self.owner)
        self.assertIsNone(audit_user(SYSTEM_ACTOR))
        self.assertIsNone(audit_user(PlatformAdminFactory()))
