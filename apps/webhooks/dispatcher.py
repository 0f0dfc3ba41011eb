"""
Outbound webhook dispatch and delivery.

`dispatch_event` records one pending delivery per subscriber and queues the
`deliver_webhook` task once the surrounding transaction commits. `deliver`
performs a single HTTP attempt and schedules the next one with exponential
backoff (2**attempt minutes) until the subscription's retry budget is spent.
"""

import hashlib
import hmac
import json
import logging
import time
from datetime import timedelta

import httpx
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.utils import timezone

from .models import WebhookDelivery, WebhookSubscription

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'X-Webhook-Signature'
EVENT_HEADER = 'X-Webhook-Event'
DELIVERY_HEADER = 'X-Webhook-Delivery'


def sign_payload(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode('utf-8'), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(body: bytes, secret: str, signature: str) -> bool:
    return hmac.compare_digest(sign_payload(body, secret), signature or '')


def build_payload(tenant, event, data):
    return {
        'event': event,
        'timestamp': timezone.now().isoformat(),
        'tenant_id': str(tenant.pk),
        'data': data,
    }


def encode_body(payload) -> bytes:
    return json.dumps(payload, cls=DjangoJSONEncoder, separators=(',', ':')).encode('utf-8')


def create_delivery(subscription, event, payload):
    return WebhookDelivery.objects.create(
        tenant_id=subscription.tenant_id,
        subscription=subscription,
        event=event,
        payload=json.loads(encode_body(payload)),
    )


def dispatch_event(tenant, event, data, subscriptions=None):
    """Queue `event` for every active subscriber of `tenant`. Returns the deliveries."""
    if tenant is None:
        return []
    if subscriptions is None:
        subscriptions = WebhookSubscription.objects.for_tenant(tenant).filter(is_active=True)
    payload = build_payload(tenant, event, data)
    deliveries = [
        create_delivery(subscription, event, payload)
        for subscription in subscriptions
        if subscription.subscribes_to(event)
    ]
    if deliveries:
        logger.info("Dispatching %s to %d subscriber(s) for tenant %s", event, len(deliveries), tenant.slug)
        ids = [str(d.pk) for d in deliveries]
        transaction.on_commit(lambda: _enqueue(ids))
    return deliveries


def _enqueue(delivery_ids):
    from .tasks import deliver_webhook

    for delivery_id in delivery_ids:
        deliver_webhook.delay(delivery_id)


def _headers(delivery, body):
    subscription = delivery.subscription
    headers = {
        'Content-Type': 'application/json',
        'User-Agent': getattr(settings, 'WEBHOOK_USER_AGENT', 'SuperEcom-Webhooks'),
        EVENT_HEADER: delivery.event,
        DELIVERY_HEADER: str(delivery.pk),
        SIGNATURE_HEADER: sign_payload(body, subscription.secret),
    }
    for name, value in (subscription.headers or {}).items():
        headers[str(name)] = str(value)
    return headers


def retry_delay(attempt: int) -> timedelta:
    return timedelta(minutes=2 ** attempt)


def deliver(delivery, client=None):
    """Make one delivery attempt and record its outcome. Returns True on 2xx."""
    subscription = delivery.subscription
    body = encode_body(delivery.payload)
    limit = getattr(settings, 'WEBHOOK_RESPONSE_BODY_LIMIT', 1000)

    delivery.attempt_count += 1
    started = time.perf_counter()
    status_code = None
    response_body = ''
    error = ''
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=subscription.timeout_seconds)
    try:
        response = client.post(subscription.url, content=body, headers=_headers(delivery, body))
        status_code = response.status_code
        response_body = response.text[:limit]
        if not 200 <= status_code < 300:
            error = f"HTTP {status_code}"
    except httpx.HTTPError as exc:
        error = f"{exc.__class__.__name__}: {exc}"
    finally:
        if owns_client:
            client.close()

    delivery.duration_ms = int((time.perf_counter() - started) * 1000)
    delivery.http_status_code = status_code
    delivery.response_body = response_body
    success = not error

    if success:
        delivery.status = WebhookDelivery.STATUS_DELIVERED
        delivery.delivered_at = timezone.now()
        delivery.next_retry_at = None
        delivery.error_message = ''
    elif delivery.attempt_count < subscription.max_retries:
        delivery.status = WebhookDelivery.STATUS_RETRYING
        delivery.next_retry_at = timezone.now() + retry_delay(delivery.attempt_count)
        delivery.error_message = error
    else:
        delivery.status = WebhookDelivery.STATUS_FAILED
        delivery.next_retry_at = None
        delivery.error_message = error
    delivery.save()
    subscription.record_delivery(success, error)

    if success:
        logger.info("Delivered %s to %s in %dms", delivery.event, subscription.url, delivery.duration_ms)
    else:
        logger.warning("Webhook %s to %s failed (attempt %d/%d): %s", delivery.event, subscription.url,
                       delivery.attempt_count, subscription.max_retries, error)
    return success
