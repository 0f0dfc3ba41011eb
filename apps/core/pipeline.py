"""
Cross-cutting behaviours wrapped around service handlers.

Service functions that change state are declared with ``@handler``::

    @handler('CreateOrder', permissions='orders.create', feature='orders_management')
    def create_order(*, actor, ...):
        ...

Each call then runs through, outermost first:

1. logging        - start/finish/failure log lines with timing
2. tenant check   - a tenant must be resolved and match the actor's tenant
3. authorization  - plan feature, then actor permissions
4. performance    - warning when the handler is slower than the threshold
5. audit actor    - changes recorded by auditlog are attributed to the actor

and finally the handler itself inside ``transaction.atomic``. Handlers take
the acting principal as the ``actor`` keyword argument.
"""

import functools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple

from auditlog.context import set_actor
from django.conf import settings
from django.db import transaction

from apps.tenants.context import get_current_tenant
from .exceptions import (
    FeatureDisabledError,
    ForbiddenError,
    TenantNotFoundError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)


class SystemActor:
    """Principal used by inbound webhooks and background jobs."""

    pk = None
    id = None
    email = 'system'
    is_authenticated = True
    is_system = True
    is_platform_admin = False

    def has_tenant_permission(self, code):
        return True

    def __str__(self):
        return 'system'


SYSTEM_ACTOR = SystemActor()


def audit_user(actor):
    """Return `actor` when it can be stored in a user foreign key, else None."""
    from django.contrib.auth import get_user_model
    return actor if isinstance(actor, get_user_model()) else None


@dataclass
class HandlerContext:
    name: str
    actor: Any
    tenant: Any
    permissions: Tuple[str, ...] = ()
    feature: Optional[str] = None
    tenant_required: bool = True
    platform_admin: bool = False
    super_admin: bool = False
    extra: dict = field(default_factory=dict)

    @property
    def tenant_label(self):
        return getattr(self.tenant, 'slug', None) or 'none'

    @property
    def actor_label(self):
        if self.actor is None:
            return 'anonymous'
        return getattr(self.actor, 'email', None) or str(self.actor)


def logging_behaviour(ctx: HandlerContext, next_: Callable):
    logger.info("Handling %s for Tenant %s by User %s", ctx.name, ctx.tenant_label, ctx.actor_label)
    started = time.perf_counter()
    try:
        result = next_()
    except Exception as exc:
        elapsed = (time.perf_counter() - started) * 1000
        logger.error(
            "Error handling %s for Tenant %s after %.0fms: %s",
            ctx.name, ctx.tenant_label, elapsed, exc,
        )
        raise
    elapsed = (time.perf_counter() - started) * 1000
    logger.info("Handled %s in %.0fms", ctx.name, elapsed)
    return result


def tenant_check_behaviour(ctx: HandlerContext, next_: Callable):
    if ctx.tenant_required:
        if ctx.tenant is None:
            raise TenantNotFoundError()
        actor_tenant_id = getattr(ctx.actor, 'tenant_id', None)
        if actor_tenant_id is not None and actor_tenant_id != ctx.tenant.pk:
            logger.warning(
                "Actor %s of tenant %s attempted %s on tenant %s",
                ctx.actor_label, actor_tenant_id, ctx.name, ctx.tenant.pk,
            )
            raise ForbiddenError("You do not have access to this tenant.")
    return next_()


def authorization_behaviour(ctx: HandlerContext, next_: Callable):
    if ctx.feature:
        from apps.billing.features import FeatureFlagService

        if not FeatureFlagService.is_enabled(ctx.tenant, ctx.feature):
            raise FeatureDisabledError(ctx.feature)

    if ctx.platform_admin or ctx.super_admin:
        if ctx.actor is None:
            raise UnauthorizedError()
        if not getattr(ctx.actor, 'is_platform_admin', False):
            raise ForbiddenError("Platform administrator access required.")
        if ctx.super_admin and not getattr(ctx.actor, 'is_super_admin', False):
            raise ForbiddenError("Super administrator access required.")

    if ctx.permissions:
        if ctx.actor is None or not getattr(ctx.actor, 'is_authenticated', False):
            raise UnauthorizedError()
        for code in ctx.permissions:
            if not ctx.actor.has_tenant_permission(code):
                raise ForbiddenError(f"Missing permission: {code}")
    return next_()


def performance_behaviour(ctx: HandlerContext, next_: Callable):
    started = time.perf_counter()
    result = next_()
    elapsed = (time.perf_counter() - started) * 1000
    threshold = getattr(settings, 'PIPELINE_SLOW_HANDLER_MS', 500)
    if elapsed > threshold:
        logger.warning(
            "Long running handler: %s (%.0fms) for Tenant %s by User %s",
            ctx.name, elapsed, ctx.tenant_label, ctx.actor_label,
        )
    return result


def audit_actor_behaviour(ctx: HandlerContext, next_: Callable):
    user = audit_user(ctx.actor)
    if user is None:
        return next_()
    with set_actor(user):
        return next_()


PIPELINE_BEHAVIOURS = (
    logging_behaviour,
    tenant_check_behaviour,
    authorization_behaviour,
    performance_behaviour,
    audit_actor_behaviour,
)


def handler(name=None, *, permissions=(), feature=None, tenant_required=True,
            platform_admin=False, super_admin=False, atomic=True):
    """Declare a service function as a pipeline handler."""
    if isinstance(permissions, str):
        permissions = (permissions,)
    permissions = tuple(permissions)

    def decorator(func):
        handler_name = name or ''.join(part.title() for part in func.__name__.split('_'))
        target = transaction.atomic(func) if atomic else func

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            ctx = HandlerContext(
                name=handler_name,
                actor=kwargs.get('actor'),
                tenant=get_current_tenant(),
                permissions=permissions,
                feature=feature,
                tenant_required=tenant_required,
                platform_admin=platform_admin,
                super_admin=super_admin,
            )

            def call():
                return target(*args, **kwargs)

            for behaviour in reversed(PIPELINE_BEHAVIOURS):
                call = functools.partial(behaviour, ctx, call)
            return call()

        wrapper.handler_name = handler_name
        wrapper.required_permissions = permissions
        wrapper.required_feature = feature
        return wrapper

    return decorator
