"""
Tenant middleware for multi-tenancy support.

Resolves the tenant for each request (see `apps.tenants.resolution`), stores
it in thread-local context and on ``request.tenant``, and switches the
database schema when per-tenant schema mode is enabled.
"""

import logging

from django.conf import settings
from django.utils.deprecation import MiddlewareMixin

from apps.core.responses import error_response
from .context import set_current_tenant, clear_current_tenant
from .resolution import resolve_tenant_identifier, lookup_tenant
from .schema import activate_schema, deactivate_schema

logger = logging.getLogger(__name__)


def is_exempt_path(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in getattr(settings, 'TENANT_EXEMPT_PATHS', ()))


def view_requires_tenant(view_func) -> bool:
    """DRF views opt out with ``tenant_required = False`` on the class."""
    view_class = getattr(view_func, 'cls', None) or getattr(view_func, 'view_class', None)
    if view_class is not None and getattr(view_class, 'tenant_required', True) is False:
        return False
    return getattr(view_func, 'tenant_required', True)


class TenantMiddleware(MiddlewareMixin):
    """
    Resolve the tenant for every request.

    **How it works:**
    1. Tenant context is cleared at the start of every request
    2. After URL resolution the identifier is resolved (header, claim,
       subdomain, route) and looked up
    3. Tenant-required routes fail with 400 when no tenant is found
    4. Suspended or deactivated tenants are refused with 403
    5. Context and schema are reset after the response or on exceptions
    """

    def process_request(self, request):
        clear_current_tenant()
        request.tenant = None
        request.tenant_source = None
        return None

    def process_view(self, request, view_func, view_args, view_kwargs):
        path = request.path or ''
        required = not is_exempt_path(path) and view_requires_tenant(view_func)

        identifier, source = resolve_tenant_identifier(request, view_kwargs)
        tenant = lookup_tenant(identifier)

        if tenant is None:
            if identifier:
                logger.warning("Tenant '%s' from %s not found for %s", identifier, source, path)
            if required:
                return error_response("Tenant not found", status=400)
            return None

        if not tenant.is_active:
            if required:
                logger.warning("Refused request for inactive tenant %s (%s)", tenant.slug, tenant.status)
                return error_response(
                    "Your organization's account is not active. Please contact support.",
                    status=403,
                )
            return None

        set_current_tenant(tenant)
        request.tenant = tenant
        request.tenant_source = source
        activate_schema(tenant)
        return None

    def process_response(self, request, response):
        if getattr(request, 'tenant', None) is not None:
            deactivate_schema()
        clear_current_tenant()
        return response

    def process_exception(self, request, exception):
        clear_current_tenant()
        return None
