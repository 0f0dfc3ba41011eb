"""
Tenant lifecycle services.

`create_tenant` provisions everything a new merchant needs: the tenant
row, a trial subscription, the system roles and the owner account. The
lifecycle operations log to `TenantActivityLog` when a platform admin
performs them.
"""

import logging
from typing import Optional, Dict

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils.text import slugify

from .models import Tenant
from .schema import provision_schema

logger = logging.getLogger(__name__)


def _log(tenant, actor, action, ip_address=None, **details):
    from apps.super_admin.models import TenantActivityLog

    TenantActivityLog.record(tenant, actor, action, details, ip_address=ip_address)


def get_tenant_by_slug(slug: str) -> Optional[Tenant]:
    return Tenant.objects.filter(slug=(slug or '').strip().lower(), deleted_at__isnull=True).first()


@transaction.atomic
def create_tenant(*, name: str, owner_email: str, owner_password: str, slug: Optional[str] = None,
                  owner_first_name: str = "", owner_last_name: str = "", company_name: str = "",
                  contact_email: str = "", contact_phone: str = "", plan_code: Optional[str] = None,
                  settings: Optional[Dict] = None, actor=None, ip_address=None):
    """Create a tenant with its trial subscription, system roles and owner.

    Returns ``(tenant, owner)``.
    """
    from apps.accounts.catalog import ROLE_OWNER, seed_system_roles
    from apps.accounts.models import User
    from apps.billing.catalog import get_trial_plan
    from apps.billing.models import Plan, Subscription
    from apps.super_admin.models import TenantActivityLog

    name = (name or "").strip()
    if not name:
        raise ValidationError({"name": "Tenant name is required."})
    slug = slugify(slug or name).lower()
    if not slug:
        raise ValidationError({"slug": "A valid slug is required."})
    if Tenant.objects.filter(slug=slug).exists():
        raise ValidationError({"slug": "This slug is already taken."})
    owner_email = (owner_email or "").strip().lower()
    if not owner_email:
        raise ValidationError({"owner_email": "Owner email is required."})

    tenant = Tenant(
        name=name,
        slug=slug,
        company_name=(company_name or name).strip(),
        contact_email=(contact_email or owner_email).strip(),
        contact_phone=(contact_phone or "").strip(),
        settings=settings or {},
    )
    tenant.full_clean(exclude=['schema_name'])
    tenant.save()

    if plan_code:
        plan = Plan.objects.filter(code=plan_code.strip().lower(), is_active=True).first()
        if plan is None:
            raise ValidationError({"plan_code": "Unknown plan."})
    else:
        plan = get_trial_plan()
    Subscription.create_trial(tenant, plan)

    roles = seed_system_roles(tenant)

    owner = User.objects.create_tenant_user(
        tenant=tenant,
        email=owner_email,
        password=owner_password,
        first_name=(owner_first_name or "").strip(),
        last_name=(owner_last_name or "").strip(),
    )
    owner.roles.add(roles[ROLE_OWNER])

    provision_schema(tenant)

    _log(tenant, actor, TenantActivityLog.TENANT_CREATED, ip_address=ip_address,
         slug=tenant.slug, plan=plan.code, owner_email=owner_email)
    logger.info("Created tenant %s (%s) on plan %s", tenant.slug, tenant.pk, plan.code)
    return tenant, owner


def activate_tenant(tenant: Tenant, *, actor=None, ip_address=None) -> Tenant:
    from apps.super_admin.models import TenantActivityLog

    was_suspended = tenant.status == Tenant.STATUS_SUSPENDED
    tenant.activate()
    action = TenantActivityLog.TENANT_REACTIVATED if was_suspended else TenantActivityLog.TENANT_ACTIVATED
    _log(tenant, actor, action, ip_address=ip_address)
    return tenant


def suspend_tenant(tenant: Tenant, *, reason: str = "", actor=None, ip_address=None) -> Tenant:
    from apps.super_admin.models import TenantActivityLog

    tenant.suspend(reason)
    _log(tenant, actor, TenantActivityLog.TENANT_SUSPENDED, ip_address=ip_address, reason=reason)
    return tenant


def deactivate_tenant(tenant: Tenant, *, actor=None, ip_address=None) -> Tenant:
    from apps.super_admin.models import TenantActivityLog

    tenant.deactivate()
    _log(tenant, actor, TenantActivityLog.TENANT_DEACTIVATED, ip_address=ip_address)
    return tenant


def extend_trial(tenant: Tenant, *, days: int, actor=None, ip_address=None) -> Tenant:
    from apps.billing.models import Subscription
    from apps.billing.features import FeatureFlagService
    from apps.super_admin.models import TenantActivityLog

    tenant.extend_trial(days)
    subscription = Subscription.objects.filter(tenant=tenant, status=Subscription.STATUS_TRIAL).first()
    if subscription is not None:
        subscription.trial_ends_at = tenant.trial_ends_at
        subscription.current_period_end = tenant.trial_ends_at
        subscription.save(update_fields=['trial_ends_at', 'current_period_end', 'updated_at'])
        FeatureFlagService.invalidate(tenant)
    _log(tenant, actor, TenantActivityLog.TRIAL_EXTENDED, ip_address=ip_address,
         days=days, trial_ends_at=tenant.trial_ends_at.isoformat())
    return tenant


def soft_delete_tenant(tenant: Tenant, *, actor=None, ip_address=None) -> Tenant:
    from apps.super_admin.models import TenantActivityLog

    tenant.soft_delete()
    _log(tenant, actor, TenantActivityLog.TENANT_DELETED, ip_address=ip_address)
    return tenant


@transaction.atomic
def update_tenant_profile(tenant: Tenant, *, actor=None, ip_address=None, **changes) -> Tenant:
    from apps.super_admin.models import TenantActivityLog

    tenant.update_profile(**changes)
    _log(tenant, actor, TenantActivityLog.PROFILE_UPDATED, ip_address=ip_address,
         fields=sorted(k for k, v in changes.items() if v is not None))
    return tenant
