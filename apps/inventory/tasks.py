import logging

from celery import shared_task

from apps.tenants.context import tenant_context
from apps.tenants.models import Tenant

from .services import get_low_stock_items

logger = logging.getLogger(__name__)


@shared_task
def send_low_stock_alerts():
    """Log a low-stock summary per tenant. Returns ``{tenant_slug: count}``."""
    summary = {}
    for tenant in Tenant.objects.filter(status__in=Tenant.USABLE_STATUSES, deleted_at__isnull=True):
        with tenant_context(tenant):
            items = list(get_low_stock_items(tenant)[:50])
        if not items:
            continue
        summary[tenant.slug] = len(items)
        logger.warning(
            "Tenant %s has %d low-stock product(s): %s",
            tenant.slug, len(items), ', '.join(f"{i.sku} ({i.quantity_on_hand})" for i in items[:10]),
        )
    return summary
