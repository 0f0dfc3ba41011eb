"""
Thread-local storage for the current tenant.

The request middleware sets the tenant once it has been resolved; services,
base models and the handler pipeline read it from here. Background jobs
use `tenant_context()` to run work on behalf of one tenant.
"""

import threading
from contextlib import contextmanager
from typing import Optional

from .models import Tenant

_thread_locals = threading.local()


def get_current_tenant() -> Optional[Tenant]:
    """
    Get the current tenant, or None when no tenant has been resolved.

    Usage:
        >>> tenant = get_current_tenant()
        >>> if tenant:
        >>>     print(f"Current tenant: {tenant.slug}")
    """
    return getattr(_thread_locals, 'tenant', None)


def set_current_tenant(tenant: Optional[Tenant]) -> None:
    _thread_locals.tenant = tenant


def clear_current_tenant() -> None:
    if hasattr(_thread_locals, 'tenant'):
        del _thread_locals.tenant


@contextmanager
def tenant_context(tenant: Optional[Tenant]):
    """
    Run a block with `tenant` as the current tenant, restoring the previous one.

    Usage:
        >>> with tenant_context(tenant):
        >>>     create_order(actor=SYSTEM_ACTOR, ...)
    """
    previous = get_current_tenant()
    set_current_tenant(tenant)
    try:
        yield tenant
    finally:
        set_current_tenant(previous)
