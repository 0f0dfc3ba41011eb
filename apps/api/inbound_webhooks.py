"""
Inbound webhooks from marketplaces and couriers.

These endpoints are public and tenant-less: the tenant is derived from the
payload (shop domain or AWB) and the work runs as the system actor.
"""

import json
import logging

from django.db import transaction
from django.utils import timezone
from rest_framework import status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.channels.shopify import (
    HMAC_HEADER,
    SHOP_HEADER,
    TOPIC_HEADER,
    find_channel_for_shop,
    process_webhook,
    verify_hmac,
)
from apps.core.pipeline import SYSTEM_ACTOR
from apps.shipments.couriers import COURIER_SLUGS, get_courier_adapter
from apps.shipments.services import apply_courier_update
from apps.tenants.context import tenant_context

logger = logging.getLogger(__name__)


def _fail(message, status_code):
    return Response({'success': False, 'data': None, 'message': message, 'errors': None}, status=status_code)


class InboundWebhookView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = []
    tenant_required = False


class ShopifyWebhookView(InboundWebhookView):
    """Verify and apply one Shopify webhook. Processing errors still answer 200."""

    def post(self, request):
        # The HMAC covers the raw bytes, so read them before DRF parses anything
        body = request.body
        signature = request.headers.get(HMAC_HEADER)
        shop_domain = request.headers.get(SHOP_HEADER)
        topic = request.headers.get(TOPIC_HEADER)
        if not (signature and shop_domain and topic):
            logger.warning("Shopify webhook missing headers from %s", request.META.get('REMOTE_ADDR'))
            return _fail("Missing required headers", status.HTTP_400_BAD_REQUEST)

        channel = find_channel_for_shop(shop_domain)
        if channel is None:
            logger.warning("Shopify webhook for unknown shop %s", shop_domain)
            return _fail("Channel not found", status.HTTP_404_NOT_FOUND)

        if not verify_hmac(body, channel.signing_secret, signature):
            logger.warning("Invalid Shopify signature for shop %s topic %s", shop_domain, topic)
            return _fail("Invalid signature", status.HTTP_401_UNAUTHORIZED)

        try:
            payload = json.loads(body or b'{}')
        except ValueError:
            logger.warning("Unparseable Shopify %s payload from %s", topic, shop_domain)
            return Response({'received': True, 'outcome': 'invalid_payload'})

        try:
            with tenant_context(channel.tenant), transaction.atomic():
                outcome = process_webhook(channel, topic, payload, actor=SYSTEM_ACTOR)
        except Exception:
            logger.exception("Failed to process Shopify %s webhook for shop %s", topic, shop_domain)
            outcome = 'error'
        else:
            logger.info("Shopify %s webhook for shop %s: %s", topic, shop_domain, outcome)
        return Response({'received': True, 'outcome': outcome})


class CourierWebhookView(InboundWebhookView):
    """Status callbacks from courier partners, matched to shipments by AWB."""

    parser_classes = [JSONParser]

    def post(self, request, courier):
        courier_type = COURIER_SLUGS.get(courier.lower())
        if courier_type is None:
            return _fail(f"Unknown courier: {courier}", status.HTTP_404_NOT_FOUND)

        payload = request.data
        if not payload or not isinstance(payload, dict):
            return _fail("Empty payload", status.HTTP_400_BAD_REQUEST)

        update = get_courier_adapter(courier_type).parse_webhook(payload)
        if update is None:
            logger.warning("Could not parse %s webhook payload", courier_type)
            return _fail("Unrecognised payload", status.HTTP_400_BAD_REQUEST)

        try:
            with transaction.atomic():
                outcome = apply_courier_update(
                    courier_type,
                    update.awb_number,
                    update.status_code,
                    actor=SYSTEM_ACTOR,
                    location=update.location,
                    remarks=update.remarks,
                    status_text=update.status_text,
                    event_time=update.event_time,
                )
        except Exception:
            logger.exception("Failed to apply %s update for AWB %s", courier_type, update.awb_number)
            outcome = 'error'
        return Response({'received': True, 'awb_number': update.awb_number, 'outcome': outcome})


class WebhookHealthView(InboundWebhookView):

    def get(self, request):
        return Response({'status': 'healthy', 'timestamp': timezone.now().isoformat()})
