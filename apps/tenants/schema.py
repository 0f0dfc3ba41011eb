"""
PostgreSQL schema routing for tenants.

In ``shared`` mode (the default) every tenant lives in the public schema and
rows are told apart by their tenant foreign key. In ``schema`` mode each
request runs with ``search_path`` pointing at the tenant's own schema first,
then ``public`` for shared tables. Other database backends ignore routing.
"""

import logging

from django.conf import settings
from django.db import connection

logger = logging.getLogger(__name__)

MODE_SHARED = 'shared'
MODE_SCHEMA = 'schema'
PUBLIC_SCHEMA = 'public'


def schema_mode() -> str:
    return getattr(settings, 'TENANT_SCHEMA_MODE', MODE_SHARED)


def routing_enabled() -> bool:
    return schema_mode() == MODE_SCHEMA and connection.vendor == 'postgresql'


def _set_search_path(*schemas):
    with connection.cursor() as cursor:
        placeholders = ', '.join(['%s'] * len(schemas))
        cursor.execute(
            f"SELECT set_config('search_path', concat_ws(',', {placeholders}), false)",
            list(schemas),
        )


def activate_schema(tenant) -> bool:
    """Point the connection at the tenant's schema. Returns True when switched."""
    if tenant is None or not routing_enabled():
        return False
    _set_search_path(tenant.schema_name, PUBLIC_SCHEMA)
    logger.debug("search_path set to %s for tenant %s", tenant.schema_name, tenant.slug)
    return True


def deactivate_schema() -> None:
    if routing_enabled():
        _set_search_path(PUBLIC_SCHEMA)


def provision_schema(tenant) -> bool:
    """Create the tenant's schema when running in schema mode."""
    if not routing_enabled():
        return False
    with connection.cursor() as cursor:
        quoted = connection.ops.quote_name(tenant.schema_name)
        cursor.execute(f"CREATE SCHEMA IF NOT EXISTS {quoted}")
    logger.info("Provisioned schema %s for tenant %s", tenant.schema_name, tenant.slug)
    return True
