import logging

from celery import shared_task
from django.utils import timezone

from apps.tenants.context import tenant_context

from .dispatcher import deliver
from .models import WebhookDelivery

logger = logging.getLogger(__name__)


@shared_task
def deliver_webhook(delivery_id):
    delivery = (WebhookDelivery.objects.select_related('subscription', 'tenant')
                .filter(pk=delivery_id).first())
    if delivery is None:
        logger.warning("Webhook delivery %s no longer exists", delivery_id)
        return False
    if delivery.status in (WebhookDelivery.STATUS_DELIVERED, WebhookDelivery.STATUS_FAILED):
        return delivery.status == WebhookDelivery.STATUS_DELIVERED
    with tenant_context(delivery.tenant):
        return deliver(delivery)


@shared_task
def retry_pending_deliveries(batch_size=100):
    """Re-attempt deliveries whose backoff has elapsed."""
    due = (WebhookDelivery.objects
           .filter(status=WebhookDelivery.STATUS_RETRYING, next_retry_at__lte=timezone.now())
           .order_by('next_retry_at')
           .values_list('pk', flat=True)[:batch_size])
    count = 0
    for delivery_id in due:
        deliver_webhook.delay(str(delivery_id))
        count += 1
    if count:
        logger.info("Queued %d webhook retries", count)
    return count
