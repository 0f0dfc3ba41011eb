"""
Platform administration: admin authentication, tenant lifecycle, the
platform overview and platform settings.

Everything here works across tenants, so handlers are declared with
``tenant_required=False`` and ``platform_admin=True``.
"""

import logging
from decimal import Decimal
from typing import Any, Dict

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from apps.accounts.tokens import generate_refresh_token, issue_platform_access_token, refresh_token_lifetime
from apps.core.exceptions import NotFoundError, UnauthorizedError
from apps.core.pipeline import handler
from apps.tenants import services as tenant_services
from apps.tenants.models import Tenant

from .models import PlatformAdmin, PlatformAdminRefreshToken, PlatformConfig, PlatformSettings

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
ACCOUNT_LOCKED = "Account is locked. Please try again later."
INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"


# Authentication

def issue_platform_token_pair(admin, ip_address=None):
    access_token, expires_at = issue_platform_access_token(admin)
    raw_refresh = generate_refresh_token()
    PlatformAdminRefreshToken.objects.create(
        admin=admin,
        token_hash=PlatformAdminRefreshToken.hash_token(raw_refresh),
        expires_at=timezone.now() + refresh_token_lifetime(),
        created_by_ip=ip_address,
    )
    return {
        'access_token': access_token,
        'refresh_token': raw_refresh,
        'expires_at': expires_at,
        'admin': admin,
    }


@handler('PlatformLogin', tenant_required=False, atomic=False)
def platform_login(*, email, password, ip_address=None, actor=None):
    email = (email or '').strip().lower()
    failure = None
    with transaction.atomic():
        admin = PlatformAdmin.objects.select_for_update().filter(email=email, is_active=True).first()
        if admin is None:
            failure = INVALID_CREDENTIALS
        elif admin.is_locked_out:
            failure = ACCOUNT_LOCKED
        elif not admin.check_password(password):
            admin.record_failed_login()
            failure = INVALID_CREDENTIALS
        else:
            admin.record_login()

    if failure:
        logger.warning("Failed platform login for %s from %s: %s", email, ip_address, failure)
        raise UnauthorizedError(failure)

    with transaction.atomic():
        result = issue_platform_token_pair(admin, ip_address)
    logger.info("Platform admin %s logged in", admin.email)
    return result


@handler('PlatformRefreshToken', tenant_required=False, atomic=False)
def platform_refresh(*, token, ip_address=None, actor=None):
    token_hash = PlatformAdminRefreshToken.hash_token(token or '')
    failure = None
    with transaction.atomic():
        stored = (PlatformAdminRefreshToken.objects.select_for_update().select_related('admin')
                  .filter(token_hash=token_hash).first())
        if stored is None or not stored.is_active:
            failure = INVALID_REFRESH_TOKEN
        elif not stored.admin.is_active:
            stored.revoke(ip=ip_address, reason="Admin inactive")
            failure = "Administrator account is inactive"
        else:
            result = issue_platform_token_pair(stored.admin, ip_address)
            stored.revoke(
                ip=ip_address,
                reason="Replaced by new token",
                replaced_by_hash=PlatformAdminRefreshToken.hash_token(result['refresh_token']),
            )

    if failure:
        logger.warning("Platform refresh token rejected from %s: %s", ip_address, failure)
        raise UnauthorizedError(failure)
    return result


@handler('PlatformLogout', tenant_required=False, platform_admin=True)
def platform_logout(*, actor, token, ip_address=None):
    stored = (PlatformAdminRefreshToken.objects.select_for_update()
              .filter(token_hash=PlatformAdminRefreshToken.hash_token(token or ''), admin=actor).first())
    if stored is None or not stored.is_active:
        return False
    stored.revoke(ip=ip_address, reason="Logout")
    return True


@handler('CreatePlatformAdmin', tenant_required=False, super_admin=True)
def create_platform_admin(*, actor, email, password, first_name='', last_name='', is_super_admin=False):
    from django.contrib.auth.password_validation import validate_password

    email = (email or '').strip().lower()
    if not email:
        raise ValidationError({'email': 'Email is required.'})
    if PlatformAdmin.objects.filter(email=email).exists():
        raise ValidationError({'email': 'An administrator with this email already exists.'})
    validate_password(password)
    admin = PlatformAdmin.create(email=email, password=password, first_name=first_name,
                                 last_name=last_name, is_super_admin=is_super_admin)
    logger.info("Platform admin %s created by %s", admin.email, actor.email)
    return admin


@handler('SetSuperAdmin', tenant_required=False, super_admin=True)
def set_super_admin(*, actor, admin_id, is_super_admin):
    admin = PlatformAdmin.objects.filter(pk=admin_id).first()
    if admin is None:
        raise NotFoundError(resource='Platform admin', key=admin_id)
    if admin.pk == actor.pk and not is_super_admin:
        raise ValidationError({'is_super_admin': 'You cannot demote yourself.'})
    if is_super_admin:
        admin.promote_to_super_admin()
    else:
        admin.demote_from_super_admin()
    return admin


# Tenants

def get_tenant(tenant_id):
    tenant = Tenant.objects.filter(pk=tenant_id).first()
    if tenant is None:
        raise NotFoundError(resource='Tenant', key=tenant_id)
    return tenant


def list_tenants(status=None, search=None, include_deleted=False):
    qs = Tenant.objects.select_related('subscription__plan').order_by('-created_at')
    if not include_deleted:
        qs = qs.filter(deleted_at__isnull=True)
    if status:
        qs = qs.filter(status=status)
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(slug__icontains=search) | Q(contact_email__icontains=search))
    return qs


def get_tenant_detail(tenant) -> Dict[str, Any]:
    from apps.accounts.models import User
    from apps.channels.models import SalesChannel
    from apps.orders.models import Order

    subscription = getattr(tenant, 'subscription', None)
    return {
        'tenant': tenant,
        'subscription': subscription,
        'user_count': User.objects.filter(tenant=tenant, is_active=True).count(),
        'channel_count': SalesChannel.objects.for_tenant(tenant).filter(is_active=True).count(),
        'order_count': Order.objects.for_tenant(tenant).count(),
        'recent_activity': list(tenant.activity_logs.all()[:20]),
    }


@handler('PlatformCreateTenant', tenant_required=False, platform_admin=True)
def create_tenant(*, actor, name, owner_email, owner_password, slug=None, plan_code=None,
                  owner_first_name='', owner_last_name='', contact_phone='', ip_address=None):
    return tenant_services.create_tenant(
        name=name, slug=slug, owner_email=owner_email, owner_password=owner_password,
        owner_first_name=owner_first_name, owner_last_name=owner_last_name,
        company_name=name, contact_email=owner_email, contact_phone=contact_phone,
        plan_code=plan_code, actor=actor, ip_address=ip_address,
    )


@handler('ActivateTenant', tenant_required=False, platform_admin=True)
def activate_tenant(*, actor, tenant_id, ip_address=None):
    return tenant_services.activate_tenant(get_tenant(tenant_id), actor=actor, ip_address=ip_address)


@handler('SuspendTenant', tenant_required=False, platform_admin=True)
def suspend_tenant(*, actor, tenant_id, reason='', ip_address=None):
    return tenant_services.suspend_tenant(get_tenant(tenant_id), reason=reason, actor=actor,
                                          ip_address=ip_address)


@handler('ReactivateTenant', tenant_required=False, platform_admin=True)
def reactivate_tenant(*, actor, tenant_id, ip_address=None):
    tenant = get_tenant(tenant_id)
    if tenant.status != Tenant.STATUS_SUSPENDED:
        raise ValidationError({'status': 'Only suspended tenants can be reactivated.'})
    return tenant_services.activate_tenant(tenant, actor=actor, ip_address=ip_address)


@handler('DeactivateTenant', tenant_required=False, platform_admin=True)
def deactivate_tenant(*, actor, tenant_id, ip_address=None):
    return tenant_services.deactivate_tenant(get_tenant(tenant_id), actor=actor, ip_address=ip_address)


@handler('ExtendTrial', tenant_required=False, platform_admin=True)
def extend_trial(*, actor, tenant_id, days, ip_address=None):
    return tenant_services.extend_trial(get_tenant(tenant_id), days=days, actor=actor, ip_address=ip_address)


@handler('PlatformChangeTenantPlan', tenant_required=False, platform_admin=True)
def change_tenant_plan(*, actor, tenant_id, plan_code, price=None):
    from apps.billing.services import change_subscription_plan

    return change_subscription_plan(actor=actor, tenant=get_tenant(tenant_id), plan_code=plan_code, price=price)


# Overview and settings

def get_platform_overview() -> Dict[str, Any]:
    """Cross-tenant counts, subscription totals and monthly recurring revenue."""
    from apps.billing.models import Subscription

    tenants = Tenant.objects.filter(deleted_at__isnull=True)
    by_status = dict(tenants.order_by().values('status').annotate(n=Count('id')).values_list('status', 'n'))
    subs_by_status = dict(Subscription.objects.order_by().values('status').annotate(n=Count('id'))
                          .values_list('status', 'n'))

    mrr = Decimal('0')
    paying = Subscription.objects.filter(status__in=(Subscription.STATUS_ACTIVE, Subscription.STATUS_PAST_DUE))
    for subscription in paying.only('price', 'billing_cycle'):
        price = subscription.price or Decimal('0')
        mrr += price / 12 if subscription.is_yearly else price

    cfg = PlatformConfig.get_solo()
    return {
        'tenants_total': sum(by_status.values()),
        'tenants_by_status': {status: by_status.get(status, 0) for status, _ in Tenant.STATUS_CHOICES},
        'tenants_deleted': Tenant.objects.filter(deleted_at__isnull=False).count(),
        'subscriptions_by_status': subs_by_status,
        'active_subscriptions': subs_by_status.get(Subscription.STATUS_ACTIVE, 0),
        'trial_subscriptions': subs_by_status.get(Subscription.STATUS_TRIAL, 0),
        'mrr': mrr.quantize(Decimal('0.01')),
        'maintenance_mode': cfg.maintenance_mode,
    }


CONFIG_FIELDS = ('maintenance_mode', 'support_email', 'announcement_message')


@handler('UpdatePlatformConfig', tenant_required=False, super_admin=True)
def update_platform_config(*, actor, **changes):
    cfg = PlatformConfig.get_solo()
    for field in CONFIG_FIELDS:
        if changes.get(field) is not None:
            setattr(cfg, field, changes[field])
    cfg.full_clean()
    cfg.save()
    if 'maintenance_mode' in changes:
        logger.warning("Maintenance mode set to %s by %s", cfg.maintenance_mode, actor.email)
    return cfg


@handler('UpdatePlatformSetting', tenant_required=False, platform_admin=True)
def update_platform_setting(*, actor, key, value, category=None, description=None, is_public=None):
    key = (key or '').strip()
    if not key:
        raise ValidationError({'key': 'Setting key is required.'})
    setting, created = PlatformSettings.objects.get_or_create(key=key)
    setting.value = '' if value is None else str(value)
    if category is not None:
        setting.category = category
    if description is not None:
        setting.description = description
    if is_public is not None:
        setting.is_public = is_public
    setting.updated_by = actor
    setting.full_clean()
    setting.save()
    logger.info("Platform setting %s %s by %s", key, 'created' if created else 'updated', actor.email)
    return setting


def get_public_settings():
    return dict(PlatformSettings.objects.filter(is_public=True).values_list('key', 'value'))
