"""
Tenant identification for inbound requests.

Sources are tried in a fixed order and the first one that yields an
identifier wins:

1. ``X-Tenant-Id`` header
2. ``X-Tenant-Slug`` header
3. ``tenant_id`` claim of a valid bearer token
4. subdomain label (``acme.example.com`` -> ``acme``), ignoring ``www``/``api``
5. ``tenant_slug`` route parameter

An identifier is then looked up by primary key when it is a UUID, otherwise
by slug.
"""

import ipaddress
import logging
import uuid
from typing import Optional, Tuple

from django.conf import settings

from .models import Tenant

logger = logging.getLogger(__name__)

TENANT_ID_HEADER = 'HTTP_X_TENANT_ID'
TENANT_SLUG_HEADER = 'HTTP_X_TENANT_SLUG'
ROUTE_PARAMETER = 'tenant_slug'
IGNORED_SUBDOMAINS = frozenset({'www', 'api'})

SOURCE_HEADER_ID = 'header:X-Tenant-Id'
SOURCE_HEADER_SLUG = 'header:X-Tenant-Slug'
SOURCE_CLAIM = 'claim:tenant_id'
SOURCE_SUBDOMAIN = 'subdomain'
SOURCE_ROUTE = 'route:tenant_slug'


def _bearer_claim(request) -> Optional[str]:
    auth = request.META.get('HTTP_AUTHORIZATION', '')
    scheme, _, token = auth.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None

    # Imported lazily: accounts depends on tenants
    from apps.accounts.tokens import TokenError, decode_access_token

    try:
        claims = decode_access_token(token.strip())
    except TokenError:
        # Authentication rejects the token later with a 401
        return None
    return claims.get('tenant_id') or None


def _subdomain(request) -> Optional[str]:
    host = request.get_host().split(':', 1)[0].lower()
    if '.' not in host:
        return None
    try:
        ipaddress.ip_address(host)
        return None
    except ValueError:
        pass

    base_domain = (getattr(settings, 'TENANT_BASE_DOMAIN', '') or '').lower().lstrip('.')
    if base_domain:
        suffix = f'.{base_domain}'
        if not host.endswith(suffix):
            return None
        host = host[:-len(suffix)]

    label = host.split('.', 1)[0]
    if not label or label in IGNORED_SUBDOMAINS:
        return None
    return label


def resolve_tenant_identifier(request, route_kwargs=None) -> Tuple[Optional[str], Optional[str]]:
    """
    Return ``(identifier, source)`` for the first source that names a tenant,
    or ``(None, None)`` when the request carries no tenant.
    """
    header_id = request.META.get(TENANT_ID_HEADER, '').strip()
    if header_id:
        return header_id, SOURCE_HEADER_ID

    header_slug = request.META.get(TENANT_SLUG_HEADER, '').strip()
    if header_slug:
        return header_slug, SOURCE_HEADER_SLUG

    claim = _bearer_claim(request)
    if claim:
        return str(claim), SOURCE_CLAIM

    label = _subdomain(request)
    if label:
        return label, SOURCE_SUBDOMAIN

    route_slug = (route_kwargs or {}).get(ROUTE_PARAMETER)
    if route_slug:
        return str(route_slug), SOURCE_ROUTE

    return None, None


def lookup_tenant(identifier: Optional[str]) -> Optional[Tenant]:
    """Find a non-deleted tenant by UUID or slug."""
    if not identifier:
        return None

    queryset = Tenant.objects.filter(deleted_at__isnull=True)
    try:
        tenant_id = uuid.UUID(str(identifier))
    except ValueError:
        return queryset.filter(slug=str(identifier).lower()).first()
    return queryset.filter(pk=tenant_id).first()
