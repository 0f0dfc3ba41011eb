from rest_framework.permissions import BasePermission

from apps.core.exceptions import FeatureDisabledError, TenantNotFoundError


def _is_tenant_user(u):
    return bool(
        u and u.is_authenticated
        and not getattr(u, "is_platform_admin", False)
        and getattr(u, "tenant_id", None) is not None
        and getattr(getattr(u, "tenant", None), "is_active", False)
    )


class IsTenantUser(BasePermission):
    def has_permission(self, request, view):
        return _is_tenant_user(request.user)


class IsTenantMember(IsTenantUser):
    """Tenant user whose tenant is the one resolved for this request."""

    message = "You do not have access to this tenant."

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        tenant = getattr(request, "tenant", None)
        if tenant is None:
            raise TenantNotFoundError()
        return request.user.tenant_id == tenant.pk


class HasTenantPermission(IsTenantMember):
    """
    Checks ``view.required_permissions`` (a mapping of action -> code, with an
    optional ``'*'`` fallback) and ``view.required_feature``.
    """

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False

        feature = getattr(view, "required_feature", None)
        if feature:
            from apps.billing.features import FeatureFlagService

            if not FeatureFlagService.is_enabled(request.tenant, feature):
                raise FeatureDisabledError(feature)

        required = getattr(view, "required_permissions", None) or {}
        action = getattr(view, "action", None) or request.method.lower()
        code = required.get(action, required.get("*"))
        if code is None:
            return True
        self.message = f"Missing permission: {code}"
        return request.user.has_tenant_permission(code)


class IsPlatformAdmin(BasePermission):
    def has_permission(self, request, view):
        u = request.user
        return bool(u and getattr(u, "is_authenticated", False) and getattr(u, "is_platform_admin", False))


class IsSuperAdmin(IsPlatformAdmin):
    def has_permission(self, request, view):
        return bool(super().has_permission(request, view) and getattr(request.user, "is_super_admin", False))
