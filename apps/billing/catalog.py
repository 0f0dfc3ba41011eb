"""
Default features and plans seeded for a fresh platform.
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.db import transaction

from .models import Feature, Plan

logger = logging.getLogger(__name__)

FEATURES = [
    # (code, name, module)
    (Feature.ORDERS_MANAGEMENT, 'Orders Management', 'orders'),
    (Feature.SHIPMENTS_MANAGEMENT, 'Shipments Management', 'shipments'),
    (Feature.NDR_MANAGEMENT, 'NDR Management', 'ndr'),
    (Feature.INVENTORY_MANAGEMENT, 'Inventory Management', 'inventory'),
    (Feature.MULTI_CHANNEL, 'Multi-Channel Selling', 'channels'),
    (Feature.ANALYTICS_BASIC, 'Basic Analytics', 'analytics'),
    (Feature.ANALYTICS_ADVANCED, 'Advanced Analytics', 'analytics'),
    (Feature.TEAM_MANAGEMENT, 'Team Management', 'team'),
    (Feature.BULK_OPERATIONS, 'Bulk Operations', 'orders'),
    (Feature.API_ACCESS, 'API Access', 'platform'),
    (Feature.WEBHOOKS, 'Webhooks', 'platform'),
    (Feature.CUSTOM_BRANDING, 'Custom Branding', 'platform'),
    (Feature.PRIORITY_SUPPORT, 'Priority Support', 'platform'),
]

_FREE = [Feature.ORDERS_MANAGEMENT, Feature.SHIPMENTS_MANAGEMENT, Feature.ANALYTICS_BASIC]
_BASIC = _FREE + [Feature.NDR_MANAGEMENT, Feature.INVENTORY_MANAGEMENT, Feature.TEAM_MANAGEMENT]
_PROFESSIONAL = _BASIC + [
    Feature.ANALYTICS_ADVANCED, Feature.MULTI_CHANNEL,
    Feature.BULK_OPERATIONS, Feature.API_ACCESS, Feature.WEBHOOKS,
]

DEFAULT_PLANS = [
    # code, name, description, monthly, yearly, users, orders, channels, features
    ('free', 'Free', 'Perfect for getting started', '0', '0', 2, 100, 1, _FREE),
    ('basic', 'Basic', 'For small businesses', '999', '9990', 5, 1000, 2, _BASIC),
    ('professional', 'Professional', 'For growing businesses', '2499', '24990', 15, 5000, 5, _PROFESSIONAL),
    ('enterprise', 'Enterprise', 'For large enterprises', '9999', '99990', 0, 0, 0, None),
]


def ensure_features():
    existing = {f.code: f for f in Feature.objects.all()}
    for code, name, module in FEATURES:
        if code not in existing:
            existing[code] = Feature.objects.create(code=code, name=name, module=module)
    return existing


@transaction.atomic
def seed_plans():
    """Create the default plans when no plan exists yet."""
    features = ensure_features()
    if Plan.objects.exists():
        return list(Plan.objects.all())

    plans = []
    for sort_order, (code, name, description, monthly, yearly, users, orders, channels, codes) in enumerate(DEFAULT_PLANS, start=1):
        plan = Plan.objects.create(
            code=code,
            name=name,
            description=description,
            price_monthly=Decimal(monthly),
            price_yearly=Decimal(yearly),
            max_users=users,
            max_orders_per_month=orders,
            max_channels=channels,
            sort_order=sort_order,
        )
        plan.features.set(features.values() if codes is None else [features[c] for c in codes])
        plans.append(plan)
    logger.info("Seeded %d plans with features", len(plans))
    return plans


def get_trial_plan():
    """Plan new tenants trial on: ``BILLING_TRIAL_PLAN_CODE`` or the first active plan."""
    seed_plans()
    code = getattr(settings, 'BILLING_TRIAL_PLAN_CODE', 'professional')
    plan = Plan.objects.filter(code=code, is_active=True).first()
    return plan or Plan.objects.filter(is_active=True).first()
