"""
Standard permission codes and the system roles seeded for every tenant.
"""

from django.db import transaction

from .models import Permission, Role

PERMISSIONS = [
    # (code, name, module)
    ('orders.view', 'View orders', 'orders'),
    ('orders.create', 'Create orders', 'orders'),
    ('orders.edit', 'Edit orders', 'orders'),
    ('orders.cancel', 'Cancel orders', 'orders'),
    ('orders.export', 'Export orders', 'orders'),
    ('orders.bulk', 'Bulk order operations', 'orders'),
    ('shipments.view', 'View shipments', 'shipments'),
    ('shipments.create', 'Create shipments', 'shipments'),
    ('shipments.cancel', 'Cancel shipments', 'shipments'),
    ('shipments.track', 'Track and update shipments', 'shipments'),
    ('ndr.view', 'View NDR cases', 'ndr'),
    ('ndr.action', 'Act on NDR cases', 'ndr'),
    ('ndr.assign', 'Assign NDR cases', 'ndr'),
    ('ndr.reattempt', 'Schedule delivery reattempts', 'ndr'),
    ('inventory.view', 'View inventory', 'inventory'),
    ('inventory.create', 'Create products', 'inventory'),
    ('inventory.edit', 'Edit products', 'inventory'),
    ('inventory.adjust', 'Adjust stock', 'inventory'),
    ('channels.view', 'View sales channels', 'channels'),
    ('channels.connect', 'Connect sales channels', 'channels'),
    ('channels.disconnect', 'Disconnect sales channels', 'channels'),
    ('channels.settings', 'Change channel settings', 'channels'),
    ('channels.sync', 'Sync sales channels', 'channels'),
    ('team.view', 'View team', 'team'),
    ('team.invite', 'Invite team members', 'team'),
    ('team.edit', 'Edit team members', 'team'),
    ('team.delete', 'Remove team members', 'team'),
    ('team.roles', 'Manage roles', 'team'),
    ('settings.view', 'View settings', 'settings'),
    ('settings.edit', 'Edit settings', 'settings'),
    ('analytics.view', 'View analytics', 'analytics'),
    ('webhooks.view', 'View webhooks', 'webhooks'),
    ('webhooks.manage', 'Manage webhooks', 'webhooks'),
    ('audit.view', 'View audit logs', 'audit'),
    ('chat.use', 'Use the assistant chat', 'chat'),
]

ALL_CODES = [code for code, _, _ in PERMISSIONS]

ROLE_OWNER = 'Owner'
ROLE_ADMIN = 'Admin'
ROLE_MANAGER = 'Manager'
ROLE_OPERATOR = 'Operator'
ROLE_NDR_AGENT = 'NDR Agent'
ROLE_VIEWER = 'Viewer'

SYSTEM_ROLES = {
    ROLE_OWNER: ('Full access to all features and settings', ALL_CODES),
    ROLE_ADMIN: (
        'Administrative access with most permissions',
        [code for code in ALL_CODES if code != 'team.roles'],
    ),
    ROLE_MANAGER: ('Can manage orders, shipments, and inventory', [
        'orders.view', 'orders.create', 'orders.edit', 'orders.cancel', 'orders.export',
        'shipments.view', 'shipments.create', 'shipments.cancel', 'shipments.track',
        'ndr.view', 'ndr.action', 'ndr.assign', 'ndr.reattempt',
        'inventory.view', 'inventory.create', 'inventory.edit', 'inventory.adjust',
        'channels.view', 'team.view', 'analytics.view', 'chat.use',
    ]),
    ROLE_OPERATOR: ('Can process orders and create shipments', [
        'orders.view', 'orders.create', 'orders.edit',
        'shipments.view', 'shipments.create', 'shipments.track',
        'ndr.view', 'ndr.action',
        'inventory.view', 'chat.use',
    ]),
    ROLE_NDR_AGENT: ('Handles NDR follow-ups and customer communication', [
        'orders.view', 'shipments.view', 'shipments.track',
        'ndr.view', 'ndr.action', 'ndr.reattempt',
    ]),
    ROLE_VIEWER: ('Read-only access to data', [
        'orders.view', 'shipments.view', 'ndr.view', 'inventory.view',
        'channels.view', 'analytics.view',
    ]),
}


def ensure_permissions():
    """Create any missing permission rows; returns them keyed by code."""
    existing = {p.code: p for p in Permission.objects.all()}
    missing = [
        Permission(code=code, name=name, module=module)
        for code, name, module in PERMISSIONS
        if code not in existing
    ]
    if missing:
        Permission.objects.bulk_create(missing, ignore_conflicts=True)
        existing = {p.code: p for p in Permission.objects.all()}
    return existing


@transaction.atomic
def seed_system_roles(tenant):
    """Create the system roles for `tenant` (idempotent). Returns roles by name."""
    permissions = ensure_permissions()
    roles = {}
    for name, (description, codes) in SYSTEM_ROLES.items():
        role, created = Role.objects.get_or_create(
            tenant=tenant,
            name=name,
            defaults={'description': description, 'is_system': True},
        )
        if created:
            role.permissions.set([permissions[code] for code in codes if code in permissions])
        roles[name] = role
    return roles
