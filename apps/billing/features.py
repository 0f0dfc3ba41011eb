"""
Feature flags derived from the tenant's subscription plan.
"""

import logging

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)


def feature_cache_key(tenant_id) -> str:
    return f"features:tenant:{tenant_id}"


class FeatureFlagService:
    """Resolve enabled feature codes for a tenant, cached per tenant."""

    @staticmethod
    def get_enabled_features(tenant):
        if tenant is None:
            return set()

        key = feature_cache_key(tenant.pk)
        codes = cache.get(key)
        if codes is None:
            from .models import Subscription

            subscription = (Subscription.objects.select_related('plan')
                            .filter(tenant_id=tenant.pk).first())
            if subscription is None or not subscription.is_usable:
                codes = []
            else:
                codes = sorted(subscription.plan.feature_codes())
            cache.set(key, codes, getattr(settings, 'FEATURE_CACHE_TIMEOUT', 1800))
            logger.debug("Cached %d features for tenant %s", len(codes), tenant.pk)
        return set(codes)

    @classmethod
    def is_enabled(cls, tenant, code):
        return code in cls.get_enabled_features(tenant)

    @staticmethod
    def invalidate(tenant):
        if tenant is not None:
            cache.delete(feature_cache_key(tenant.pk))

    @staticmethod
    def invalidate_plan(plan):
        """Drop cached features for every tenant subscribed to `plan`."""
        from .models import Subscription

        tenant_ids = Subscription.objects.filter(plan=plan).values_list('tenant_id', flat=True)
        cache.delete_many([feature_cache_key(tid) for tid in tenant_ids])
