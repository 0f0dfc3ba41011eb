import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from apps.billing.features import FeatureFlagService
from apps.billing.limits import check_channel_limit
from apps.billing.models import Feature
from apps.core.exceptions import FeatureDisabledError, NotFoundError
from apps.core.pipeline import audit_user, handler
from apps.tenants.context import get_current_tenant

from .adapters import ADAPTERS, get_channel_adapter
from .models import SalesChannel

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = ('name', 'store_name', 'auto_sync_orders', 'auto_sync_inventory', 'initial_sync_days', 'is_active')
CREDENTIAL_FIELDS = ('api_key', 'api_secret', 'access_token', 'webhook_secret', 'scopes')


def get_channel(channel_id, tenant=None):
    channel = SalesChannel.objects.for_tenant(tenant or get_current_tenant()).filter(pk=channel_id).first()
    if channel is None:
        raise NotFoundError(resource='Sales channel', key=channel_id)
    return channel


@handler('ConnectChannel', permissions='channels.connect')
def connect_channel(*, actor, name, channel_type, store_url='', store_name='', external_shop_id='',
                    api_key='', api_secret='', access_token='', webhook_secret='', scopes='',
                    auto_sync_orders=True, auto_sync_inventory=False, initial_sync_days=7,
                    validate=True, transport=None):
    """
    Register a sales channel and check its credentials.

    A second connected channel needs the ``multi_channel`` plan feature.
    """
    tenant = get_current_tenant()
    if channel_type not in dict(SalesChannel.TYPE_CHOICES):
        raise ValidationError({'type': f'Unsupported channel type: {channel_type}'})
    existing = SalesChannel.objects.for_tenant(tenant).filter(is_active=True).count()
    if existing >= 1 and not FeatureFlagService.is_enabled(tenant, Feature.MULTI_CHANNEL):
        raise FeatureDisabledError(Feature.MULTI_CHANNEL)
    check_channel_limit(tenant)

    external_shop_id = (external_shop_id or '').strip().lower()
    if external_shop_id and SalesChannel.objects.for_tenant(tenant).filter(
            type=channel_type, external_shop_id__iexact=external_shop_id).exists():
        raise ValidationError({'external_shop_id': 'This store is already connected.'})

    channel = SalesChannel(
        tenant=tenant,
        name=(name or '').strip(),
        type=channel_type,
        store_url=store_url,
        store_name=store_name,
        external_shop_id=external_shop_id,
        api_key=api_key,
        api_secret=api_secret,
        access_token=access_token,
        webhook_secret=webhook_secret,
        scopes=scopes,
        auto_sync_orders=auto_sync_orders,
        auto_sync_inventory=auto_sync_inventory,
        initial_sync_days=initial_sync_days,
        created_by=audit_user(actor),
    )
    channel.full_clean(exclude=['tenant'])
    channel.save()

    if validate and channel.type in ADAPTERS:
        result = get_channel_adapter(channel.type, channel, transport=transport).validate_connection()
        if result.success:
            channel.mark_connected()
        else:
            channel.mark_disconnected(result.message)
            logger.warning("Channel %s saved but not connected: %s", channel.pk, result.message)
    return channel


@handler('UpdateChannelSettings', permissions='channels.settings')
def update_channel_settings(*, actor, channel_id, **changes):
    channel = get_channel(channel_id)
    for field in SETTINGS_FIELDS + CREDENTIAL_FIELDS:
        if changes.get(field) is not None:
            setattr(channel, field, changes[field])
    channel.touch(audit_user(actor))
    channel.full_clean(exclude=['tenant'])
    channel.save()
    return channel


@handler('DisconnectChannel', permissions='channels.disconnect')
def disconnect_channel(*, actor, channel_id):
    channel = get_channel(channel_id)
    channel.is_active = False
    channel.save(update_fields=['is_active', 'updated_at'])
    channel.clear_credentials()
    logger.info("Disconnected channel %s (%s) for tenant %s", channel.pk, channel.type, channel.tenant.slug)
    return channel


@handler('SyncChannel', permissions='channels.sync')
def sync_channel(*, actor, channel_id, since=None, transport=None):
    """Pull orders from the marketplace and upsert them. Returns a summary dict."""
    from apps.orders.services import import_channel_order
    from .shopify import map_order

    channel = get_channel(channel_id)
    if not channel.is_active:
        raise ValidationError({'channel': 'Channel is not active.'})
    adapter = get_channel_adapter(channel.type, channel, transport=transport)
    result = adapter.sync_orders(since=since)
    if not result.success:
        channel.record_sync(SalesChannel.SYNC_FAILED, result.message)
        return {'synced': False, 'message': result.message, 'created': 0, 'updated': 0, 'failed': 0,
                'errors': []}

    created = updated = failed = 0
    errors = []
    for raw in result.data or []:
        try:
            with transaction.atomic():
                _, was_created = import_channel_order(channel, map_order(raw), actor=actor)
        except ValidationError as exc:
            failed += 1
            errors.append(f"{raw.get('id')}: {'; '.join(exc.messages)}")
            continue
        if was_created:
            created += 1
        else:
            updated += 1

    status = SalesChannel.SYNC_PARTIAL if failed else SalesChannel.SYNC_SUCCESS
    channel.record_sync(status, '\n'.join(errors[:10]))
    logger.info("Synced channel %s: %d created, %d updated, %d failed", channel.pk, created, updated, failed)
    return {'synced': True, 'message': result.message, 'created': created, 'updated': updated,
            'failed': failed, 'errors': errors}
