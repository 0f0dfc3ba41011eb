import logging

from celery import shared_task
from django.utils import timezone

from apps.tenants.models import Tenant

from .models import NdrRecord, NdrStatus

logger = logging.getLogger(__name__)


@shared_task
def flag_overdue_follow_ups():
    """Log open NDRs whose follow-up time has passed. Returns ``{tenant_slug: count}``."""
    now = timezone.now()
    overdue = (NdrRecord.objects.filter(
        tenant__status__in=Tenant.USABLE_STATUSES,
        next_follow_up_at__lt=now,
    ).exclude(status__in=NdrStatus.CLOSED).select_related('tenant', 'assigned_to'))

    summary = {}
    for ndr in overdue:
        slug = ndr.tenant.slug
        summary[slug] = summary.get(slug, 0) + 1
        logger.warning(
            "Overdue NDR %s (AWB %s) for tenant %s, follow-up was due %s, assigned to %s",
            ndr.pk, ndr.awb_number, slug, ndr.next_follow_up_at.isoformat(),
            ndr.assigned_to.email if ndr.assigned_to else 'nobody',
        )
    if summary:
        logger.info("Flagged %d overdue NDR follow-ups", sum(summary.values()))
    return summary
