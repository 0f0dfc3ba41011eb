import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from .models import ChatConversation

logger = logging.getLogger(__name__)


@shared_task
def archive_stale_conversations():
    """Archive active conversations with no messages in ``CHAT_ARCHIVE_AFTER_DAYS``."""
    cutoff = timezone.now() - timedelta(days=settings.CHAT_ARCHIVE_AFTER_DAYS)
    archived = ChatConversation.objects.filter(status=ChatConversation.STATUS_ACTIVE).filter(
        Q(last_message_at__lt=cutoff) | Q(last_message_at__isnull=True, created_at__lt=cutoff)
    ).update(status=ChatConversation.STATUS_ARCHIVED, updated_at=timezone.now())
    if archived:
        logger.info("Archived %d stale chat conversations", archived)
    return archived
