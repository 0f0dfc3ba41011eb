"""
Marketplace adapters.

One thin HTTP client per marketplace. Shopify talks to the Admin REST API;
the other marketplaces have no live integration yet and answer every call
with an unsuccessful `ChannelResult` saying so.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional

import httpx
from django.conf import settings
from django.utils import timezone

from .models import SalesChannel

logger = logging.getLogger(__name__)


@dataclass
class ChannelResult:
    success: bool
    message: str = ''
    data: Any = None
    errors: list = field(default_factory=list)

    @classmethod
    def ok(cls, data=None, message=''):
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, message, errors=None):
        return cls(success=False, message=message, errors=list(errors or []))


class BaseChannelAdapter:
    """Common plumbing for marketplace clients."""

    channel_type = None
    display_name = 'Channel'

    def __init__(self, channel: Optional[SalesChannel] = None, transport=None):
        self.channel = channel
        self.transport = transport

    def base_url(self):
        return ''

    def default_headers(self):
        return {'Accept': 'application/json'}

    def client(self):
        return httpx.Client(
            base_url=self.base_url(),
            headers=self.default_headers(),
            timeout=getattr(settings, 'INTEGRATION_HTTP_TIMEOUT', 30.0),
            transport=self.transport,
        )

    def not_implemented(self, operation):
        return ChannelResult.fail(f"{self.display_name} {operation} is not implemented")

    def validate_connection(self) -> ChannelResult:
        return self.not_implemented('connection validation')

    def sync_orders(self, since=None) -> ChannelResult:
        return self.not_implemented('order sync')

    def sync_inventory(self, items) -> ChannelResult:
        return self.not_implemented('inventory sync')

    def update_shipment(self, external_order_id, awb_number, courier_name, tracking_url='') -> ChannelResult:
        return self.not_implemented('shipment update')

    def cancel_order(self, external_order_id, reason='') -> ChannelResult:
        return self.not_implemented('order cancellation')

    def get_order(self, external_order_id) -> ChannelResult:
        return self.not_implemented('order lookup')


class ShopifyAdapter(BaseChannelAdapter):
    channel_type = SalesChannel.TYPE_SHOPIFY
    display_name = 'Shopify'
    page_size = 250

    def shop_domain(self):
        domain = (self.channel.external_shop_id or self.channel.store_url or '').strip()
        domain = domain.replace('https://', '').replace('http://', '')
        return domain.rstrip('/')

    def base_url(self):
        version = getattr(settings, 'SHOPIFY_API_VERSION', '2024-01')
        return f"https://{self.shop_domain()}/admin/api/{version}/"

    def default_headers(self):
        headers = super().default_headers()
        headers['X-Shopify-Access-Token'] = self.channel.access_token
        return headers

    def _get(self, path, params=None):
        if not self.channel or not self.channel.access_token or not self.shop_domain():
            return ChannelResult.fail("Shopify channel is missing its shop domain or access token")
        try:
            with self.client() as client:
                response = client.get(path, params=params)
        except httpx.HTTPError as exc:
            logger.warning("Shopify request %s failed for %s: %s", path, self.shop_domain(), exc)
            return ChannelResult.fail(f"Shopify request failed: {exc}")
        if response.status_code == 401:
            return ChannelResult.fail("Shopify rejected the access token")
        if response.status_code == 404:
            return ChannelResult.fail("Not found on Shopify")
        if response.status_code >= 400:
            return ChannelResult.fail(f"Shopify returned HTTP {response.status_code}")
        return ChannelResult.ok(response.json())

    def validate_connection(self):
        result = self._get('shop.json')
        if result.success:
            shop = (result.data or {}).get('shop', {})
            result.data = shop
            result.message = f"Connected to {shop.get('name') or self.shop_domain()}"
        return result

    def get_order(self, external_order_id):
        result = self._get(f'orders/{external_order_id}.json')
        if result.success:
            result.data = (result.data or {}).get('order')
        return result

    def sync_orders(self, since=None):
        """Fetch orders created since `since` (default: the channel's initial sync window)."""
        if since is None:
            since = self.channel.last_sync_at or (
                timezone.now() - timedelta(days=self.channel.initial_sync_days)
            )
        result = self._get('orders.json', params={
            'status': 'any',
            'created_at_min': since.isoformat(),
            'limit': self.page_size,
        })
        if result.success:
            result.data = (result.data or {}).get('orders', [])
            result.message = f"Fetched {len(result.data)} orders"
        return result


class AmazonAdapter(BaseChannelAdapter):
    channel_type = SalesChannel.TYPE_AMAZON
    display_name = 'Amazon'


class FlipkartAdapter(BaseChannelAdapter):
    channel_type = SalesChannel.TYPE_FLIPKART
    display_name = 'Flipkart'


class MeeshoAdapter(BaseChannelAdapter):
    channel_type = SalesChannel.TYPE_MEESHO
    display_name = 'Meesho'


ADAPTERS = {
    adapter.channel_type: adapter
    for adapter in (ShopifyAdapter, AmazonAdapter, FlipkartAdapter, MeeshoAdapter)
}


def get_channel_adapter(channel_type, channel=None, transport=None):
    adapter_class = ADAPTERS.get(channel_type)
    if adapter_class is None:
        raise ValueError(f"No adapter available for channel type '{channel_type}'")
    return adapter_class(channel, transport=transport)
