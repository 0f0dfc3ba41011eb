import logging

from celery import shared_task
from django.utils import timezone

from .features import FeatureFlagService
from .models import Subscription

logger = logging.getLogger(__name__)


@shared_task
def expire_lapsed_subscriptions():
    """Expire trials and paid periods that ended without renewal."""
    now = timezone.now()
    lapsed = Subscription.objects.select_related('tenant').filter(
        status__in=[Subscription.STATUS_TRIAL, Subscription.STATUS_ACTIVE, Subscription.STATUS_PAST_DUE],
    )
    expired = 0
    for subscription in lapsed:
        if subscription.status == Subscription.STATUS_TRIAL:
            ended = subscription.trial_ends_at and subscription.trial_ends_at <= now
        else:
            ended = subscription.current_period_end and subscription.current_period_end <= now
        if ended:
            subscription.expire()
            FeatureFlagService.invalidate(subscription.tenant)
            expired += 1
    logger.info("Expired %d lapsed subscriptions", expired)
    return expired
