"""
Subscription and plan management.

Subscription changes are platform operations (no tenant context required);
each one invalidates the tenant's cached feature set and is recorded in the
tenant activity log.
"""

import logging

from django.core.exceptions import ValidationError

from apps.core.exceptions import NotFoundError
from apps.core.pipeline import handler
from apps.super_admin.models import TenantActivityLog

from .features import FeatureFlagService
from .models import Feature, Plan, Subscription

logger = logging.getLogger(__name__)


def get_subscription(tenant):
    subscription = Subscription.objects.select_related('plan').filter(tenant=tenant).first()
    if subscription is None:
        raise NotFoundError(resource='Subscription', key=tenant.pk)
    return subscription


def get_plan(code):
    plan = Plan.objects.filter(code=(code or '').strip().lower()).first()
    if plan is None:
        raise NotFoundError(resource='Plan', key=code)
    return plan


def _log(subscription, actor, action, **details):
    FeatureFlagService.invalidate(subscription.tenant)
    TenantActivityLog.record(subscription.tenant, actor, action, details)
    logger.info("Subscription %s for tenant %s: %s", subscription.pk, subscription.tenant_id, action)


@handler('ActivateSubscription', platform_admin=True, tenant_required=False)
def activate_subscription(*, actor, tenant, yearly=False, price=None):
    subscription = get_subscription(tenant)
    subscription.activate(price=price, yearly=yearly)
    _log(subscription, actor, TenantActivityLog.SUBSCRIPTION_ACTIVATED,
         billing_cycle=subscription.billing_cycle, price=str(subscription.price))
    return subscription


@handler('CancelSubscription', platform_admin=True, tenant_required=False)
def cancel_subscription(*, actor, tenant, reason=''):
    subscription = get_subscription(tenant)
    subscription.cancel(reason)
    _log(subscription, actor, TenantActivityLog.SUBSCRIPTION_CANCELLED, reason=reason)
    return subscription


@handler('RenewSubscription', platform_admin=True, tenant_required=False)
def renew_subscription(*, actor, tenant):
    subscription = get_subscription(tenant)
    subscription.renew()
    _log(subscription, actor, TenantActivityLog.SUBSCRIPTION_RENEWED,
         current_period_end=subscription.current_period_end.isoformat())
    return subscription


@handler('PauseSubscription', platform_admin=True, tenant_required=False)
def pause_subscription(*, actor, tenant):
    subscription = get_subscription(tenant)
    subscription.pause()
    _log(subscription, actor, TenantActivityLog.SUBSCRIPTION_PAUSED)
    return subscription


@handler('ResumeSubscription', platform_admin=True, tenant_required=False)
def resume_subscription(*, actor, tenant):
    subscription = get_subscription(tenant)
    subscription.resume()
    _log(subscription, actor, TenantActivityLog.SUBSCRIPTION_RESUMED)
    return subscription


@handler('ChangeTenantPlan', platform_admin=True, tenant_required=False)
def change_subscription_plan(*, actor, tenant, plan_code, price=None):
    subscription = get_subscription(tenant)
    plan = get_plan(plan_code)
    if not plan.is_active:
        raise ValidationError({'plan': 'This plan is not available.'})
    previous = subscription.plan.code
    subscription.change_plan(plan, price)
    _log(subscription, actor, TenantActivityLog.PLAN_CHANGED, from_plan=previous, to_plan=plan.code)
    return subscription


# Plans and features

@handler('CreatePlan', platform_admin=True, tenant_required=False)
def create_plan(*, actor, code, name, description='', price_monthly=0, price_yearly=0,
                currency='INR', max_users=0, max_orders_per_month=0, max_channels=0,
                sort_order=0, feature_codes=()):
    code = (code or '').strip().lower()
    if not code:
        raise ValidationError({'code': 'Plan code is required.'})
    if Plan.objects.filter(code=code).exists():
        raise ValidationError({'code': 'A plan with this code already exists.'})
    plan = Plan(
        code=code,
        name=name.strip(),
        description=description,
        price_monthly=price_monthly,
        price_yearly=price_yearly,
        currency=currency,
        max_users=max_users,
        max_orders_per_month=max_orders_per_month,
        max_channels=max_channels,
        sort_order=sort_order,
    )
    plan.full_clean()
    plan.save()
    if feature_codes:
        plan.features.set(Feature.objects.filter(code__in=feature_codes))
    return plan


PLAN_UPDATABLE_FIELDS = (
    'name', 'description', 'price_monthly', 'price_yearly', 'currency',
    'max_users', 'max_orders_per_month', 'max_channels', 'is_active', 'sort_order',
)


@handler('UpdatePlan', platform_admin=True, tenant_required=False)
def update_plan(*, actor, plan, feature_codes=None, **changes):
    for field in PLAN_UPDATABLE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(plan, field, changes[field])
    plan.full_clean()
    plan.save()
    if feature_codes is not None:
        plan.features.set(Feature.objects.filter(code__in=feature_codes))
    FeatureFlagService.invalidate_plan(plan)
    return plan


@handler('DeletePlan', platform_admin=True, tenant_required=False)
def delete_plan(*, actor, plan):
    if plan.subscriptions.exists():
        raise ValidationError({'plan': 'Plans with subscribers cannot be deleted; deactivate it instead.'})
    plan.delete()


@handler('ToggleFeature', platform_admin=True, tenant_required=False)
def toggle_feature(*, actor, feature, is_active):
    feature.is_active = bool(is_active)
    feature.save(update_fields=['is_active'])
    for plan in feature.plans.all():
        FeatureFlagService.invalidate_plan(plan)
    return feature
