from django.core.exceptions import ValidationError

from apps.core.exceptions import NotFoundError
from apps.core.pipeline import audit_user, handler
from apps.tenants.context import get_current_tenant

from .dispatcher import build_payload, create_delivery, deliver
from .models import WebhookDelivery, WebhookEvent, WebhookSubscription


def _subscription(subscription_id):
    subscription = WebhookSubscription.objects.for_tenant(get_current_tenant()).filter(pk=subscription_id).first()
    if subscription is None:
        raise NotFoundError(resource="Webhook subscription", key=subscription_id)
    return subscription


@handler("CreateWebhookSubscription", permissions="webhooks.manage", feature="webhooks")
def create_subscription(*, actor, name, url, events, headers=None, secret="",
                        max_retries=3, timeout_seconds=30):
    subscription = WebhookSubscription(
        tenant=get_current_tenant(),
        name=(name or "").strip(),
        url=(url or "").strip(),
        events=list(events or []),
        headers=headers or {},
        secret=secret or "",
        max_retries=max_retries,
        timeout_seconds=timeout_seconds,
        created_by=audit_user(actor),
    )
    subscription.full_clean(exclude=["secret"])
    subscription.save()
    return subscription


@handler("UpdateWebhookSubscription", permissions="webhooks.manage", feature="webhooks")
def update_subscription(*, actor, subscription_id, **changes):
    subscription = _subscription(subscription_id)
    for field in ("name", "url", "events", "headers", "is_active", "max_retries", "timeout_seconds"):
        if changes.get(field) is not None:
            setattr(subscription, field, changes[field])
    subscription.touch(audit_user(actor))
    subscription.full_clean(exclude=["secret"])
    subscription.save()
    return subscription


@handler("RegenerateWebhookSecret", permissions="webhooks.manage", feature="webhooks")
def regenerate_secret(*, actor, subscription_id):
    subscription = _subscription(subscription_id)
    subscription.regenerate_secret()
    return subscription


@handler("DeleteWebhookSubscription", permissions="webhooks.manage", feature="webhooks")
def delete_subscription(*, actor, subscription_id):
    subscription = _subscription(subscription_id)
    subscription.is_active = False
    subscription.save(update_fields=["is_active", "updated_at"])
    subscription.soft_delete(audit_user(actor))


@handler("SendTestWebhook", permissions="webhooks.manage", feature="webhooks")
def send_test_event(*, actor, subscription_id, event=WebhookEvent.ORDER_CREATED):
    """Deliver a sample event synchronously and return the delivery."""
    subscription = _subscription(subscription_id)
    if event not in WebhookEvent.ALL:
        raise ValidationError({"event": "Unknown event."})
    if not subscription.is_active:
        raise ValidationError({"subscription": "Subscription is inactive."})
    data = {"test": True, "message": "This is a test webhook from SuperEcom"}
    delivery = create_delivery(subscription, event, build_payload(subscription.tenant, event, data))
    deliver(delivery)
    return delivery


def list_deliveries(subscription_id, status=None):
    qs = WebhookDelivery.objects.for_tenant(get_current_tenant()).filter(subscription_id=subscription_id)
    if status:
        qs = qs.filter(status=status)
    return qs
