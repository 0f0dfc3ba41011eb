import logging
from datetime import timedelta

from celery import shared_task
from django.db.models import Q
from django.utils import timezone

from .models import RefreshToken

logger = logging.getLogger(__name__)


@shared_task
def purge_expired_refresh_tokens(retention_days=30):
    """Delete refresh tokens that expired or were revoked more than `retention_days` ago."""
    cutoff = timezone.now() - timedelta(days=retention_days)
    deleted, _ = RefreshToken.objects.filter(
        Q(expires_at__lt=cutoff) | Q(revoked_at__lt=cutoff)
    ).delete()
    logger.info("Purged %d stale refresh tokens", deleted)
    return deleted
