"""
Per-tenant settings.

Settings live in ``Tenant.settings`` grouped by section. Values a tenant
never saved fall back to ``DEFAULT_SETTINGS``; keys outside a section
(such as ``suspension_reason``) are left alone.
"""

import copy
import logging
import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError

from apps.core.pipeline import handler
from apps.tenants.context import get_current_tenant

from .models import Tenant

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    'general': {
        'currency': 'INR',
        'timezone': 'Asia/Kolkata',
        'date_format': 'dd/MM/yyyy',
        'time_format': 'HH:mm',
    },
    'orders': {
        'auto_confirm_orders': False,
        'default_courier_account_id': None,
        'order_processing_cutoff_hour': 18,
        'enable_cod': True,
        'max_cod_amount': None,
    },
    'shipments': {
        'auto_create_shipment': False,
        'restock_on_rto': True,
        'pickup_address': None,
        'default_package_weight': 500,
        'default_package_length': 20,
        'default_package_width': 15,
        'default_package_height': 10,
    },
    'ndr': {
        'default_ndr_agent_id': None,
        'follow_up_interval_hours': 24,
        'max_attempts': 3,
        'escalate_after_max_attempts': True,
    },
    'inventory': {
        'low_stock_threshold': 10,
        'alert_on_low_stock': True,
        'prevent_overselling': True,
    },
    'branding': {
        'primary_color': None,
        'secondary_color': None,
        'invoice_logo_url': None,
        'invoice_footer_text': None,
    },
}

SECTIONS = tuple(DEFAULT_SETTINGS)


def get_tenant_settings(tenant):
    """Every section with stored values laid over the defaults."""
    stored = tenant.settings or {}
    result = {}
    for section, defaults in DEFAULT_SETTINGS.items():
        values = stored.get(section)
        result[section] = {**copy.deepcopy(defaults), **(values if isinstance(values, dict) else {})}
    return result


def tenant_setting(tenant, section, key):
    return get_tenant_settings(tenant)[section][key]


def _plain(value):
    if isinstance(value, (uuid.UUID, Decimal)):
        return str(value)
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value


def _check_references(tenant, section, values):
    from apps.accounts.models import User
    from apps.shipments.models import CourierAccount

    account_id = values.get('default_courier_account_id')
    if section == 'orders' and account_id:
        if not CourierAccount.objects.for_tenant(tenant).filter(pk=account_id).exists():
            raise ValidationError({'default_courier_account_id': 'Courier account not found.'})
    agent_id = values.get('default_ndr_agent_id')
    if section == 'ndr' and agent_id:
        if not User.objects.filter(tenant=tenant, pk=agent_id, is_active=True).exists():
            raise ValidationError({'default_ndr_agent_id': 'NDR agent not found.'})


@handler('UpdateTenantSettings', permissions='settings.edit')
def update_tenant_settings(*, actor, section, values):
    """Merge ``values`` into one section and return the full settings."""
    if section not in DEFAULT_SETTINGS:
        raise ValidationError({'section': f'Unknown settings section: {section}'})
    unknown = sorted(set(values) - set(DEFAULT_SETTINGS[section]))
    if unknown:
        raise ValidationError({section: f"Unknown settings: {', '.join(unknown)}"})

    values = {key: _plain(value) for key, value in values.items()}
    tenant = Tenant.objects.select_for_update().get(pk=get_current_tenant().pk)
    _check_references(tenant, section, values)
    current = get_tenant_settings(tenant)[section]
    tenant.set_setting(section, {**current, **values})
    logger.info("Tenant %s updated %s settings: %s", tenant.slug, section, ', '.join(sorted(values)))
    return get_tenant_settings(tenant)
