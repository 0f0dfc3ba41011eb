from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import TestCase
from django.utils import timezone

from apps.billing import services
from apps.billing.catalog import DEFAULT_PLANS, seed_plans
from apps.billing.features import FeatureFlagService, feature_cache_key
from apps.billing.models import Feature, Plan, Subscription
from apps.billing.tasks import expire_lapsed_subscriptions
from apps.core.exceptions import ForbiddenError
from apps.super_admin.models import TenantActivityLog
from tests.factories import PlanFactory, PlatformAdminFactory, SubscriptionFactory, create_merchant


class SubscriptionStateMachineTests(TestCase):

    def setUp(self):
        self.subscription = SubscriptionFactory(plan=PlanFactory(price_monthly=Decimal('999'),
                                                                 price_yearly=Decimal('9990')))

    def test_activate_sets_period_and_price(self):
        self.subscription.activate(yearly=True)
        self.assertEqual(self.subscription.price, Decimal('9990'))
        self.assertEqual(self.subscription.billing_cycle, Subscription.CYCLE_YEARLY)
        length = self.subscription.current_period_end - self.subscription.current_period_start
        self.assertEqual(length, timedelta(days=365))

    def test_activate_rejects_negative_price(self):
        with self.assertRaises(ValidationError):
            self.subscription.activate(price=Decimal('-1'))

    def test_cancel_then_reactivate_clears_cancellation(self):
        self.subscription.cancel('Too expensive')
        self.assertFalse(self.subscription.is_usable)
        with self.assertRaises(ValidationError):
            self.subscription.cancel()

        self.subscription.activate()
        self.assertEqual(self.subscription.status, Subscription.STATUS_ACTIVE)
        self.assertIsNone(self.subscription.cancelled_at)
        self.assertEqual(self.subscription.cancel_reason, '')

    def test_renew_extends_from_period_end(self):
        end = self.subscription.current_period_end
        self.subscription.renew()
        self.assertEqual(self.subscription.current_period_start, end)
        self.assertEqual(self.subscription.current_period_end, end + timedelta(days=30))

    def test_only_active_or_past_due_can_renew(self):
        self.subscription.pause()
        with self.assertRaises(ValidationError):
            self.subscription.renew()

    def test_pause_and_resume_adds_paused_time_back(self):
        end = self.subscription.current_period_end
        self.subscription.pause()
        self.assertFalse(self.subscription.is_usable)
        self.subscription.paused_at = timezone.now() - timedelta(days=3)
        self.subscription.resume()
        self.assertGreaterEqual(self.subscription.current_period_end - end, timedelta(days=3))
        self.assertTrue(self.subscription.is_usable)

    def test_resume_requires_paused(self):
        with self.assertRaises(ValidationError):
            self.subscription.resume()

    def test_past_due_stays_usable(self):
        self.subscription.mark_past_due()
        self.assertTrue(self.subscription.is_usable)
        self.subscription.renew()
        self.assertEqual(self.subscription.status, Subscription.STATUS_ACTIVE)

    def test_change_plan_keeps_trial_price(self):
        trial = SubscriptionFactory(status=Subscription.STATUS_TRIAL, price=Decimal('0'),
                                    trial_ends_at=timezone.now() + timedelta(days=5))
        trial.change_plan(PlanFactory(price_monthly=Decimal('2499')))
        self.assertEqual(trial.price, Decimal('0'))

        self.subscription.change_plan(PlanFactory(price_monthly=Decimal('2499')))
        self.assertEqual(self.subscription.price, Decimal('2499'))

    def test_expired_subscription_cannot_change_plan(self):
        self.subscription.expire()
        with self.assertRaises(ValidationError):
            self.subscription.change_plan(PlanFactory())

    def test_lapsed_trial_is_not_usable(self):
        trial = SubscriptionFactory(status=Subscription.STATUS_TRIAL,
                                    trial_ends_at=timezone.now() - timedelta(minutes=1))
        self.assertTrue(trial.is_expired)
        self.assertFalse(trial.is_usable)


class SubscriptionServiceTests(TestCase):

    def setUp(self):
        cache.clear()
        self.tenant, _ = create_merchant()
        self.admin = PlatformAdminFactory()

    def test_operations_require_platform_admin(self):
        _, owner = create_merchant(name='Other', email='o@other.example.com')
        with self.assertRaises(ForbiddenError):
            services.activate_subscription(actor=owner, tenant=self.tenant)

    def test_activation_invalidates_cached_features_and_logs(self):
        FeatureFlagService.get_enabled_features(self.tenant)
        self.assertIsNotNone(cache.get(feature_cache_key(self.tenant.pk)))

        services.activate_subscription(actor=self.admin, tenant=self.tenant)

        self.assertIsNone(cache.get(feature_cache_key(self.tenant.pk)))
        log = TenantActivityLog.objects.get(tenant=self.tenant, action=TenantActivityLog.SUBSCRIPTION_ACTIVATED)
        self.assertEqual(log.performed_by, self.admin)

    def test_change_plan_changes_enabled_features(self):
        self.assertTrue(FeatureFlagService.is_enabled(self.tenant, Feature.WEBHOOKS))
        services.change_subscription_plan(actor=self.admin, tenant=self.tenant, plan_code='free')
        self.assertFalse(FeatureFlagService.is_enabled(self.tenant, Feature.WEBHOOKS))
        self.assertTrue(FeatureFlagService.is_enabled(self.tenant, Feature.ORDERS_MANAGEMENT))

    def test_cancelled_subscription_disables_every_feature(self):
        services.cancel_subscription(actor=self.admin, tenant=self.tenant, reason='Closing')
        self.assertEqual(FeatureFlagService.get_enabled_features(self.tenant), set())

    def test_plan_update_invalidates_subscribers(self):
        plan = self.tenant.subscription.plan
        FeatureFlagService.get_enabled_features(self.tenant)
        services.update_plan(actor=self.admin, plan=plan, feature_codes=[Feature.ORDERS_MANAGEMENT])
        self.assertEqual(FeatureFlagService.get_enabled_features(self.tenant), {Feature.ORDERS_MANAGEMENT})

    def test_plan_with_subscribers_cannot_be_deleted(self):
        with self.assertRaises(ValidationError):
            services.delete_plan(actor=self.admin, plan=self.tenant.subscription.plan)

    def test_create_plan_rejects_duplicate_code(self):
        services.create_plan(actor=self.admin, code='Growth', name='Growth', feature_codes=[Feature.WEBHOOKS])
        self.assertEqual(Plan.objects.get(code='growth').feature_codes(), {Feature.WEBHOOKS})
        with self.assertRaises(ValidationError):
            services.create_plan(actor=self.admin, code='growth', name='Growth again')

    def test_toggled_off_feature_is_not_enabled(self):
        feature = Feature.objects.get(code=Feature.WEBHOOKS)
        services.toggle_feature(actor=self.admin, feature=feature, is_active=False)
        self.assertFalse(FeatureFlagService.is_enabled(self.tenant, Feature.WEBHOOKS))


class CatalogAndTaskTests(TestCase):

    def test_seed_plans_is_idempotent(self):
        seed_plans()
        seed_plans()
        self.assertEqual(Plan.objects.count(), len(DEFAULT_PLANS))
        enterprise = Plan.objects.get(code='enterprise')
        self.assertEqual(enterprise.features.count(), Feature.objects.count())

    def test_expire_lapsed_subscriptions(self):
        lapsed = SubscriptionFactory(current_period_end=timezone.now() - timedelta(days=1))
        current = SubscriptionFactory()
        self.assertEqual(expire_lapsed_subscriptions(), 1)
        lapsed.refresh_from_db()
        current.refresh_from_db()
        self.assertEqual(lapsed.status, Subscription.STATUS_EXPIRED)
        self.assertEqual(current.status, Subscription.STATUS_ACTIVE)
