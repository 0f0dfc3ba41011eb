from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.utils import timezone

from apps.billing.models import Subscription
from apps.core.exceptions import ForbiddenError, UnauthorizedError
from apps.super_admin import services
from apps.super_admin.models import PlatformAdmin, PlatformAdminRefreshToken, TenantActivityLog
from apps.tenants.models import Tenant
from tests.factories import (
    PASSWORD, BaseAPITestCase, BaseAPITransactionTestCase, PlanFactory, PlatformAdminFactory, TenantFactory,
)


class PlatformLoginMixin:

    def setUp(self):
        super().setUp()
        self.admin = PlatformAdminFactory()

    def login(self, password=PASSWORD):
        return self.client.post('/api/v1/platform/auth/login/',
                                {'email': self.admin.email.upper(), 'password': password}, format='json')


class PlatformAuthTests(PlatformLoginMixin, BaseAPITestCase):

    def test_login_issues_token_pair(self):
        response = self.login()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['token_type'], 'Bearer')
        self.assertEqual(response.data['admin']['email'], self.admin.email)
        self.assertEqual(PlatformAdminRefreshToken.objects.filter(admin=self.admin).count(), 1)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access_token']}")
        me = self.client.get('/api/v1/platform/auth/me/')
        self.assertEqual(me.data['email'], self.admin.email)

    def test_refresh_rotates_the_token(self):
        first = self.login().data['refresh_token']

        response = self.client.post('/api/v1/platform/auth/refresh/', {'refresh_token': first}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertNotEqual(response.data['refresh_token'], first)

        reused = self.client.post('/api/v1/platform/auth/refresh/', {'refresh_token': first}, format='json')
        self.assertEqual(reused.status_code, 401)

    def test_logout_revokes_refresh_token(self):
        tokens = self.login().data
        self.authenticate_platform_admin(self.admin)
        response = self.client.post('/api/v1/platform/auth/logout/', {'refresh_token': tokens['refresh_token']},
                                    format='json')
        self.assertTrue(response.data['revoked'])
        self.assertFalse(PlatformAdminRefreshToken.objects.get().is_active)

    def test_tenant_token_cannot_reach_platform_api(self):
        self.authenticate()
        self.assertEqual(self.client.get('/api/v1/platform/overview/').status_code, 401)

    def test_platform_token_cannot_reach_tenant_api(self):
        self.authenticate_platform_admin(self.admin)
        self.assertEqual(self.client.get('/api/v1/orders/').status_code, 400)


class PlatformLockoutTests(PlatformLoginMixin, BaseAPITransactionTestCase):

    def test_wrong_password_counts_towards_lockout(self):
        for _ in range(5):
            self.assertEqual(self.login('nope').status_code, 401)
        self.admin.refresh_from_db()
        self.assertTrue(self.admin.is_locked_out)

        response = self.login()
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['message'], services.ACCOUNT_LOCKED)


class PlatformAdminManagementTests(BaseAPITestCase):

    def test_only_super_admins_create_admins(self):
        creator = PlatformAdminFactory(is_super_admin=True)
        admin = services.create_platform_admin(actor=creator, email=' Ops@Platform.example.com ',
                                               password=PASSWORD)
        self.assertEqual(admin.email, 'ops@platform.example.com')
        self.assertTrue(admin.check_password(PASSWORD))

        with self.assertRaises(ValidationError):
            services.create_platform_admin(actor=creator, email='ops@platform.example.com', password=PASSWORD)
        with self.assertRaises(ForbiddenError):
            services.create_platform_admin(actor=admin, email='other@platform.example.com', password=PASSWORD)

    def test_super_admin_cannot_demote_themselves(self):
        creator = PlatformAdminFactory(is_super_admin=True)
        with self.assertRaises(ValidationError):
            services.set_super_admin(actor=creator, admin_id=creator.pk, is_super_admin=False)

        other = PlatformAdminFactory()
        services.set_super_admin(actor=creator, admin_id=other.pk, is_super_admin=True)
        self.assertTrue(PlatformAdmin.objects.get(pk=other.pk).is_super_admin)

    def test_unknown_credentials(self):
        with self.assertRaises(UnauthorizedError):
            services.platform_login(email='ghost@platform.example.com', password=PASSWORD)


class TenantAdministrationTests(BaseAPITestCase):

    def setUp(self):
        super().setUp()
        self.admin = PlatformAdminFactory()
        self.authenticate_platform_admin(self.admin)

    def url(self, suffix=''):
        return f'/api/v1/platform/tenants/{self.tenant.pk}/{suffix}'

    def test_list_and_search_tenants(self):
        TenantFactory(name='Other Shop')
        response = self.client.get('/api/v1/platform/tenants/', {'search': 'acme'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['pagination']['total_count'], 1)
        self.assertEqual(response.data['data'][0]['slug'], self.tenant.slug)

    def test_tenant_detail(self):
        response = self.client.get(self.url())
        self.assertEqual(response.data['tenant']['id'], str(self.tenant.pk))
        self.assertEqual(response.data['user_count'], 1)
        self.assertEqual(response.data['subscription']['status'], Subscription.STATUS_TRIAL)

    def test_suspend_blocks_the_tenant_api(self):
        response = self.client.post(self.url('suspend/'), {'reason': 'Chargebacks'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['status'], Tenant.STATUS_SUSPENDED)
        log = TenantActivityLog.objects.get(tenant=self.tenant)
        self.assertEqual(log.action, TenantActivityLog.TENANT_SUSPENDED)
        self.assertEqual(log.performed_by, self.admin)
        self.assertEqual(log.details['reason'], 'Chargebacks')

        self.authenticate()
        self.assertEqual(self.client.get('/api/v1/orders/').status_code, 403)

    def test_reactivate_only_suspended_tenants(self):
        response = self.client.post(self.url('reactivate/'))
        self.assertEqual(response.status_code, 400)

        self.client.post(self.url('suspend/'), {'reason': 'Review'}, format='json')
        response = self.client.post(self.url('reactivate/'))
        self.assertEqual(response.data['data']['status'], Tenant.STATUS_ACTIVE)
        self.assertTrue(self.tenant.activity_logs.filter(action=TenantActivityLog.TENANT_REACTIVATED).exists())

    def test_deactivated_tenant_cannot_be_activated(self):
        self.client.post(self.url('deactivate/'))
        response = self.client.post(self.url('activate/'))
        self.assertEqual(response.status_code, 400)

    def test_extend_trial(self):
        before = timezone.now()
        response = self.client.post(self.url('extend-trial/'), {'days': 7}, format='json')
        self.assertEqual(response.status_code, 200)
        self.tenant.refresh_from_db()
        self.assertGreaterEqual(self.tenant.trial_ends_at, before + timedelta(days=7))

    def test_change_plan(self):
        plan = PlanFactory(code='growth')
        response = self.client.post(self.url('change-plan/'), {'plan_code': 'growth'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Subscription.objects.get(tenant=self.tenant).plan, plan)

    def test_subscription_actions(self):
        response = self.client.post(self.url('subscription/'), {'action': 'activate', 'price': '1999.00'},
                                    format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], Subscription.STATUS_ACTIVE)
        self.assertEqual(Decimal(response.data['price']), Decimal('1999.00'))

        response = self.client.post(self.url('subscription/'), {'action': 'explode'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_subscription_action_input_is_validated(self):
        for payload in ({'action': 'activate', 'price': '-5'}, {'action': 'activate', 'price': 'lots'},
                        {'action': 'activate', 'yearly': 'sometimes'}, {}):
            with self.subTest(payload=payload):
                response = self.client.post(self.url('subscription/'), payload, format='json')
                self.assertEqual(response.status_code, 400)
                self.assertFalse(response.json()['success'])

        response = self.client.post(self.url('subscription/'), {'action': 'cancel', 'reason': 'Closing shop'},
                                    format='json')
        self.assertEqual(response.data['status'], Subscription.STATUS_CANCELLED)

    def test_unknown_tenant(self):
        response = self.client.post('/api/v1/platform/tenants/00000000-0000-0000-0000-000000000000/suspend/')
        self.assertEqual(response.status_code, 404)

    def test_create_tenant(self):
        response = self.client.post('/api/v1/platform/tenants/', {
            'name': 'Bright Goods',
            'owner_email': 'owner@bright.example.com',
            'owner_password': PASSWORD,
            'owner_first_name': 'Ravi',
            'owner_last_name': 'Kumar',
            'contact_phone': '',
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['slug'], 'bright-goods')
        self.assertEqual(response.data['owner']['email'], 'owner@bright.example.com')
        tenant = Tenant.objects.get(slug='bright-goods')
        self.assertEqual(tenant.activity_logs.get().action, TenantActivityLog.TENANT_CREATED)


class PlatformOverviewTests(BaseAPITestCase):

    def test_overview_counts_and_mrr(self):
        admin = PlatformAdminFactory()
        yearly = TenantFactory()
        Subscription.objects.create(tenant=yearly, plan=PlanFactory(), status=Subscription.STATUS_ACTIVE,
                                    billing_cycle=Subscription.CYCLE_YEARLY, price=Decimal('12000.00'))
        self.authenticate_platform_admin(admin)

        response = self.client.get('/api/v1/platform/overview/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['tenants_total'], 2)
        self.assertEqual(response.data['active_subscriptions'], 1)
        self.assertEqual(response.data['trial_subscriptions'], 1)
        self.assertEqual(response.data['mrr'], Decimal('1000.00'))
        self.assertFalse(response.data['maintenance_mode'])
