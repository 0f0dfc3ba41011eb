"""
Shared view plumbing for the tenant API.

Reads go through the tenant-scoped querysets and DRF permission classes;
writes are delegated to the ``@handler`` services, which repeat the
permission and feature checks inside the pipeline.
"""

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, status
from rest_framework.response import Response

from apps.accounts.permissions import HasTenantPermission, IsPlatformAdmin
from apps.accounts.authentication import PlatformAdminJWTAuthentication
from apps.core.http import client_ip
from apps.core.pagination import TenantAwarePagination


def validated(serializer_class, data, partial=False):
    serializer = serializer_class(data=data, partial=partial)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


class TenantViewMixin:
    """Tenant-scoped read access plus helpers for calling command handlers."""

    permission_classes = [HasTenantPermission]
    pagination_class = TenantAwarePagination
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    ordering = ['-created_at']
    required_permissions = {}
    required_feature = None

    def get_queryset(self):
        return self.queryset.model.objects.for_tenant(self.request.tenant)

    def ip(self):
        return client_ip(self.request)

    def respond(self, instance, serializer_class=None, status_code=status.HTTP_200_OK, message=None):
        serializer_class = serializer_class or self.get_serializer_class()
        data = serializer_class(instance, context=self.get_serializer_context()).data
        if message:
            return Response({'success': True, 'data': data, 'message': message, 'errors': None},
                            status=status_code)
        return Response(data, status=status_code)

    def list_response(self, queryset, serializer_class=None):
        serializer_class = serializer_class or self.get_serializer_class()
        page = self.paginate_queryset(queryset)
        if page is not None:
            data = serializer_class(page, many=True, context=self.get_serializer_context()).data
            return self.get_paginated_response(data)
        return Response(serializer_class(queryset, many=True, context=self.get_serializer_context()).data)


class PlatformViewMixin:
    """Cross-tenant views for platform administrators."""

    authentication_classes = [PlatformAdminJWTAuthentication]
    permission_classes = [IsPlatformAdmin]
    pagination_class = TenantAwarePagination
    tenant_required = False

    def ip(self):
        return client_ip(self.request)
