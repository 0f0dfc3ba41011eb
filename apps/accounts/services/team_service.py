from django.core.exceptions import ValidationError
from django.utils.crypto import get_random_string

from apps.billing.limits import check_user_limit
from apps.core.exceptions import NotFoundError
from apps.core.pipeline import handler
from apps.tenants.context import get_current_tenant

from ..models import Permission, Role, User


def _tenant_roles(tenant, role_ids):
    role_ids = list(role_ids or [])
    roles = list(Role.objects.for_tenant(tenant).filter(pk__in=role_ids))
    if len(roles) != len(set(role_ids)):
        raise ValidationError({"role_ids": "One or more roles do not exist."})
    return roles


def _tenant_user(tenant, user_id):
    user = User.objects.for_tenant(tenant).filter(pk=user_id).first()
    if user is None:
        raise NotFoundError(resource="User", key=user_id)
    return user


@handler("InviteUser", permissions="team.invite", feature="team_management")
def invite_user(*, actor, email, first_name="", last_name="", phone="", role_ids=()):
    """Create a tenant user with a one-time password.

    The generated password is attached as ``_raw_password`` (not persisted)
    so the caller can show it once.
    """
    tenant = get_current_tenant()
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError({"email": "Email is required."})
    if User.objects.for_tenant(tenant).filter(email=email).exists():
        raise ValidationError({"email": "A user with this email already exists."})
    check_user_limit(tenant)
    roles = _tenant_roles(tenant, role_ids)

    temp_password = get_random_string(16)
    user = User.objects.create_tenant_user(
        tenant=tenant,
        email=email,
        password=temp_password,
        first_name=(first_name or "").strip(),
        last_name=(last_name or "").strip(),
        phone=(phone or "").strip(),
    )
    if roles:
        user.roles.set(roles)
    user._raw_password = temp_password
    return user


@handler("UpdateUser", permissions="team.edit")
def update_user(*, actor, user_id, first_name=None, last_name=None, phone=None, is_active=None):
    tenant = get_current_tenant()
    user = _tenant_user(tenant, user_id)
    if first_name is not None:
        user.first_name = first_name.strip()
    if last_name is not None:
        user.last_name = last_name.strip()
    if phone is not None:
        user.phone = phone.strip()
    if is_active is not None:
        if not is_active and user.pk == actor.pk:
            raise ValidationError({"is_active": "You cannot deactivate your own account."})
        if is_active and not user.is_active:
            check_user_limit(tenant)
        user.is_active = bool(is_active)
    user.save()
    return user


@handler("DeactivateUser", permissions="team.delete")
def deactivate_user(*, actor, user_id):
    from .auth_service import revoke_all_for_user

    tenant = get_current_tenant()
    user = _tenant_user(tenant, user_id)
    if user.pk == actor.pk:
        raise ValidationError({"user": "You cannot deactivate your own account."})
    user.is_active = False
    user.save(update_fields=["is_active", "updated_at"])
    revoke_all_for_user(user, reason="User deactivated")
    return user


@handler("AssignRoles", permissions="team.roles")
def assign_roles(*, actor, user_id, role_ids):
    tenant = get_current_tenant()
    user = _tenant_user(tenant, user_id)
    roles = _tenant_roles(tenant, role_ids)
    if not roles:
        raise ValidationError({"role_ids": "At least one role is required."})
    user.roles.set(roles)
    user.invalidate_permission_cache()
    return user


def _permissions_for(codes):
    codes = set(codes or [])
    permissions = list(Permission.objects.filter(code__in=codes))
    unknown = codes - {p.code for p in permissions}
    if unknown:
        raise ValidationError({"permissions": f"Unknown permission codes: {', '.join(sorted(unknown))}"})
    return permissions


def _invalidate_role_members(role):
    for user in role.users.all():
        user.invalidate_permission_cache()


@handler("CreateRole", permissions="team.roles")
def create_role(*, actor, name, description="", permission_codes=()):
    tenant = get_current_tenant()
    name = (name or "").strip()
    if not name:
        raise ValidationError({"name": "Role name is required."})
    if Role.objects.for_tenant(tenant).filter(name__iexact=name).exists():
        raise ValidationError({"name": "A role with this name already exists."})
    role = Role.objects.create(tenant=tenant, name=name, description=(description or "").strip())
    role.permissions.set(_permissions_for(permission_codes))
    return role


@handler("UpdateRole", permissions="team.roles")
def update_role(*, actor, role_id, name=None, description=None, permission_codes=None):
    tenant = get_current_tenant()
    role = Role.objects.for_tenant(tenant).filter(pk=role_id).first()
    if role is None:
        raise NotFoundError(resource="Role", key=role_id)
    role.ensure_editable()
    if name is not None:
        name = name.strip()
        if Role.objects.for_tenant(tenant).filter(name__iexact=name).exclude(pk=role.pk).exists():
            raise ValidationError({"name": "A role with this name already exists."})
        role.name = name
    if description is not None:
        role.description = description.strip()
    role.save()
    if permission_codes is not None:
        role.permissions.set(_permissions_for(permission_codes))
        _invalidate_role_members(role)
    return role


@handler("DeleteRole", permissions="team.roles")
def delete_role(*, actor, role_id):
    tenant = get_current_tenant()
    role = Role.objects.for_tenant(tenant).filter(pk=role_id).first()
    if role is None:
        raise NotFoundError(resource="Role", key=role_id)
    role.ensure_editable()
    if role.users.exists():
        raise ValidationError({"role": "Role is assigned to users; reassign them first."})
    role.delete()
