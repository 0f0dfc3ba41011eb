from datetime import timedelta

from django.core.exceptions import ValidationError
from django.test import TestCase
from django.utils import timezone

from apps.accounts.catalog import ROLE_OWNER, SYSTEM_ROLES
from apps.accounts.models import Role
from apps.billing.models import Subscription
from apps.super_admin.models import TenantActivityLog
from apps.tenants import services
from apps.tenants.models import Tenant
from tests.factories import PlatformAdminFactory, TenantFactory, create_merchant


class CreateTenantTests(TestCase):

    def test_provisions_subscription_roles_and_owner(self):
        tenant, owner = create_merchant(name='Blue Kite Apparel')

        self.assertEqual(tenant.slug, 'blue-kite-apparel')
        self.assertEqual(tenant.status, Tenant.STATUS_PENDING)
        self.assertEqual(tenant.schema_name, 'tenant_blue_kite_apparel')
        self.assertEqual(tenant.subscription.status, Subscription.STATUS_TRIAL)
        self.assertTrue(tenant.subscription.is_in_trial)
        self.assertEqual(
            set(Role.objects.filter(tenant=tenant, is_system=True).values_list('name', flat=True)),
            set(SYSTEM_ROLES),
        )
        self.assertEqual(owner.get_role_names(), [ROLE_OWNER])
        self.assertEqual(owner.username, 'blue-kite-apparel.owner@acme.example.com')
        self.assertFalse(TenantActivityLog.objects.filter(tenant=tenant).exists())

    def test_duplicate_slug_is_rejected(self):
        create_merchant(name='Acme', slug='acme')
        with self.assertRaises(ValidationError) as ctx:
            create_merchant(name='Acme Two', slug='acme', email='other@acme.example.com')
        self.assertIn('slug', ctx.exception.message_dict)

    def test_unknown_plan_is_rejected(self):
        with self.assertRaises(ValidationError):
            services.create_tenant(name='Acme', owner_email='o@acme.example.com',
                                   owner_password='x', plan_code='platinum')


class TenantLifecycleTests(TestCase):

    def test_suspend_and_reactivate(self):
        tenant = TenantFactory()
        services.suspend_tenant(tenant, reason='Chargeback')
        tenant.refresh_from_db()
        self.assertFalse(tenant.is_active)
        self.assertEqual(tenant.get_setting('suspension_reason'), 'Chargeback')

        admin = PlatformAdminFactory()
        services.activate_tenant(tenant, actor=admin, ip_address='10.1.1.1')
        tenant.refresh_from_db()
        self.assertTrue(tenant.is_active)
        log = TenantActivityLog.objects.get(tenant=tenant, action=TenantActivityLog.TENANT_REACTIVATED)
        self.assertEqual(log.performed_by, admin)
        self.assertEqual(log.ip_address, '10.1.1.1')

    def test_deactivated_tenant_cannot_be_reactivated(self):
        tenant = TenantFactory()
        services.deactivate_tenant(tenant)
        with self.assertRaises(ValidationError):
            services.activate_tenant(tenant)

    def test_extend_trial_moves_subscription_dates(self):
        tenant, _ = create_merchant()
        before = tenant.subscription.trial_ends_at
        services.extend_trial(tenant, days=10)
        tenant.subscription.refresh_from_db()
        self.assertGreaterEqual(tenant.subscription.trial_ends_at - before, timedelta(days=9))
        self.assertGreater(tenant.trial_ends_at, timezone.now())

    def test_extend_trial_requires_positive_days(self):
        with self.assertRaises(ValidationError):
            services.extend_trial(TenantFactory(), days=0)

    def test_soft_delete_hides_tenant_from_slug_lookup(self):
        tenant = TenantFactory(slug='closing-down')
        services.soft_delete_tenant(tenant)
        self.assertIsNone(services.get_tenant_by_slug('closing-down'))
        self.assertEqual(Tenant.objects.get(pk=tenant.pk).status, Tenant.STATUS_DEACTIVATED)
