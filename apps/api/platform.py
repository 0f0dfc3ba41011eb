"""
Platform administration API under ``/api/v1/platform/``.

These views authenticate platform administrators only and run without a
tenant; tenant-specific operations take the tenant id from the URL.
"""

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils.decorators import method_decorator
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.permissions import IsSuperAdmin
from apps.billing import services as billing_services
from apps.billing.models import Feature, Plan
from apps.core.http import client_ip
from apps.super_admin import services as platform_services
from apps.super_admin.models import PlatformAdmin, PlatformConfig, PlatformSettings
from apps.tenants.models import Tenant

from . import serializers as s
from .base import PlatformViewMixin, validated


def platform_token_payload(result):
    return {
        'access_token': result['access_token'],
        'refresh_token': result['refresh_token'],
        'token_type': 'Bearer',
        'expires_at': result['expires_at'],
        'admin': s.PlatformAdminSerializer(result['admin']).data,
    }


@method_decorator(transaction.non_atomic_requests, name='dispatch')
class PlatformLoginView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    tenant_required = False

    def post(self, request):
        data = validated(s.PlatformLoginInputSerializer, request.data)
        result = platform_services.platform_login(email=data['email'], password=data['password'],
                                                  ip_address=client_ip(request))
        return Response(platform_token_payload(result))


@method_decorator(transaction.non_atomic_requests, name='dispatch')
class PlatformRefreshView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    tenant_required = False

    def post(self, request):
        data = validated(s.RefreshInputSerializer, request.data)
        result = platform_services.platform_refresh(token=data['refresh_token'], ip_address=client_ip(request))
        return Response(platform_token_payload(result))


class PlatformLogoutView(PlatformViewMixin, APIView):

    def post(self, request):
        data = validated(s.RefreshInputSerializer, request.data)
        revoked = platform_services.platform_logout(actor=request.user, token=data['refresh_token'],
                                                    ip_address=self.ip())
        return Response({'revoked': revoked})


class PlatformMeView(PlatformViewMixin, APIView):

    def get(self, request):
        return Response(s.PlatformAdminSerializer(request.user).data)


class PlatformAdminViewSet(PlatformViewMixin, viewsets.ReadOnlyModelViewSet):
    queryset = PlatformAdmin.objects.all()
    serializer_class = s.PlatformAdminSerializer
    filter_backends = [filters.SearchFilter]
    search_fields = ['email', 'first_name', 'last_name']

    def get_permissions(self):
        if self.action in ('create', 'promote', 'demote'):
            return [IsSuperAdmin()]
        return super().get_permissions()

    def create(self, request):
        data = validated(s.CreatePlatformAdminInputSerializer, request.data)
        admin = platform_services.create_platform_admin(actor=request.user, **data)
        return Response(s.PlatformAdminSerializer(admin).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def promote(self, request, pk=None):
        admin = platform_services.set_super_admin(actor=request.user, admin_id=pk, is_super_admin=True)
        return Response(s.PlatformAdminSerializer(admin).data)

    @action(detail=True, methods=['post'])
    def demote(self, request, pk=None):
        admin = platform_services.set_super_admin(actor=request.user, admin_id=pk, is_super_admin=False)
        return Response(s.PlatformAdminSerializer(admin).data)


class TenantAdminViewSet(PlatformViewMixin, viewsets.ReadOnlyModelViewSet):
    """Every tenant on the platform and its lifecycle actions."""

    queryset = Tenant.objects.all()
    serializer_class = s.TenantSerializer
    filter_backends = []

    def get_queryset(self):
        params = self.request.query_params
        return platform_services.list_tenants(
            status=params.get('status'),
            search=params.get('search'),
            include_deleted=params.get('include_deleted') in ('1', 'true', 'True'),
        )

    def retrieve(self, request, pk=None):
        detail = platform_services.get_tenant_detail(platform_services.get_tenant(pk))
        subscription = detail['subscription']
        return Response({
            'tenant': s.TenantSerializer(detail['tenant']).data,
            'subscription': s.SubscriptionSerializer(subscription).data if subscription else None,
            'user_count': detail['user_count'],
            'channel_count': detail['channel_count'],
            'order_count': detail['order_count'],
            'recent_activity': s.TenantActivityLogSerializer(detail['recent_activity'], many=True).data,
        })

    def create(self, request):
        data = validated(s.CreateTenantInputSerializer, request.data)
        tenant, owner = platform_services.create_tenant(
            actor=request.user,
            name=data['name'],
            slug=data.get('slug') or None,
            owner_email=data['owner_email'],
            owner_password=data['owner_password'],
            owner_first_name=data['owner_first_name'],
            owner_last_name=data['owner_last_name'],
            contact_phone=data['contact_phone'],
            plan_code=data.get('plan_code') or None,
            ip_address=self.ip(),
        )
        payload = s.TenantSerializer(tenant).data
        payload['owner'] = s.UserSerializer(owner).data
        return Response(payload, status=status.HTTP_201_CREATED)

    def _tenant_response(self, tenant, message):
        tenant.refresh_from_db()
        return Response({'success': True, 'data': s.TenantSerializer(tenant).data, 'message': message,
                         'errors': None})

    @action(detail=True, methods=['post'])
    def activate(self, request, pk=None):
        tenant = platform_services.activate_tenant(actor=request.user, tenant_id=pk, ip_address=self.ip())
        return self._tenant_response(tenant, "Tenant activated.")

    @action(detail=True, methods=['post'])
    def suspend(self, request, pk=None):
        data = validated(s.ReasonInputSerializer, request.data)
        tenant = platform_services.suspend_tenant(actor=request.user, tenant_id=pk, reason=data['reason'],
                                                  ip_address=self.ip())
        return self._tenant_response(tenant, "Tenant suspended.")

    @action(detail=True, methods=['post'])
    def reactivate(self, request, pk=None):
        tenant = platform_services.reactivate_tenant(actor=request.user, tenant_id=pk, ip_address=self.ip())
        return self._tenant_response(tenant, "Tenant reactivated.")

    @action(detail=True, methods=['post'])
    def deactivate(self, request, pk=None):
        tenant = platform_services.deactivate_tenant(actor=request.user, tenant_id=pk, ip_address=self.ip())
        return self._tenant_response(tenant, "Tenant deactivated.")

    @action(detail=True, methods=['post'], url_path='extend-trial')
    def extend_trial(self, request, pk=None):
        data = validated(s.ExtendTrialInputSerializer, request.data)
        tenant = platform_services.extend_trial(actor=request.user, tenant_id=pk, days=data['days'],
                                                ip_address=self.ip())
        return self._tenant_response(tenant, f"Trial extended by {data['days']} days.")

    @action(detail=True, methods=['post'], url_path='change-plan')
    def change_plan(self, request, pk=None):
        data = validated(s.ChangePlanInputSerializer, request.data)
        subscription = platform_services.change_tenant_plan(actor=request.user, tenant_id=pk,
                                                            plan_code=data['plan_code'], price=data.get('price'))
        return Response(s.SubscriptionSerializer(subscription).data)

    @action(detail=True, methods=['get', 'post'])
    def subscription(self, request, pk=None):
        """Read the subscription, or apply ``{"action": ...}`` to it."""
        tenant = platform_services.get_tenant(pk)
        if request.method == 'GET':
            return Response(s.SubscriptionSerializer(billing_services.get_subscription(tenant)).data)

        data = validated(s.SubscriptionActionInputSerializer, request.data)
        operation = data['action']
        if operation == 'activate':
            subscription = billing_services.activate_subscription(
                actor=request.user, tenant=tenant, yearly=data['yearly'], price=data['price'])
        elif operation == 'cancel':
            subscription = billing_services.cancel_subscription(actor=request.user, tenant=tenant,
                                                                reason=data['reason'])
        elif operation == 'renew':
            subscription = billing_services.renew_subscription(actor=request.user, tenant=tenant)
        elif operation == 'pause':
            subscription = billing_services.pause_subscription(actor=request.user, tenant=tenant)
        else:
            subscription = billing_services.resume_subscription(actor=request.user, tenant=tenant)
        return Response(s.SubscriptionSerializer(subscription).data)


class PlanViewSet(PlatformViewMixin, viewsets.ModelViewSet):
    queryset = Plan.objects.prefetch_related('features').order_by('sort_order', 'price_monthly')
    serializer_class = s.PlanSerializer
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    pagination_class = None
    filter_backends = []

    def create(self, request):
        data = dict(validated(s.PlanInputSerializer, request.data))
        data.pop('is_active', None)
        missing = [field for field in ('code', 'name') if not data.get(field)]
        if missing:
            raise ValidationError({field: 'This field is required.' for field in missing})
        plan = billing_services.create_plan(actor=request.user, **data)
        return Response(s.PlanSerializer(plan).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        data = dict(validated(s.PlanInputSerializer, request.data))
        feature_codes = data.pop('feature_codes', None)
        plan = billing_services.update_plan(actor=request.user, plan=self.get_object(),
                                            feature_codes=feature_codes, **data)
        return Response(s.PlanSerializer(plan).data)

    def destroy(self, request, pk=None):
        billing_services.delete_plan(actor=request.user, plan=self.get_object())
        return Response(status=status.HTTP_204_NO_CONTENT)


class FeatureViewSet(PlatformViewMixin, viewsets.ReadOnlyModelViewSet):
    queryset = Feature.objects.order_by('module', 'code')
    serializer_class = s.FeatureSerializer
    pagination_class = None
    filter_backends = []

    @action(detail=True, methods=['post'])
    def toggle(self, request, pk=None):
        is_active = request.data.get('is_active')
        if not isinstance(is_active, bool):
            raise ValidationError({'is_active': 'A boolean is required.'})
        feature = billing_services.toggle_feature(actor=request.user, feature=self.get_object(),
                                                  is_active=is_active)
        return Response(s.FeatureSerializer(feature).data)


class PlatformOverviewView(PlatformViewMixin, APIView):

    def get(self, request):
        return Response(platform_services.get_platform_overview())


class PlatformConfigView(PlatformViewMixin, APIView):

    def get_permissions(self):
        if self.request.method == 'PATCH':
            return [IsSuperAdmin()]
        return super().get_permissions()

    def get(self, request):
        return Response(s.PlatformConfigSerializer(PlatformConfig.get_solo()).data)

    def patch(self, request):
        serializer = s.PlatformConfigSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        cfg = platform_services.update_platform_config(actor=request.user, **serializer.validated_data)
        return Response(s.PlatformConfigSerializer(cfg).data)


class PlatformSettingsView(PlatformViewMixin, APIView):

    def get(self, request):
        qs = PlatformSettings.objects.order_by('category', 'key')
        category = request.query_params.get('category')
        if category:
            qs = qs.filter(category=category)
        return Response(s.PlatformSettingSerializer(qs, many=True).data)

    def put(self, request):
        serializer = s.PlatformSettingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        setting = platform_services.update_platform_setting(
            actor=request.user,
            key=data['key'],
            value=data.get('value', ''),
            category=data.get('category'),
            description=data.get('description'),
            is_public=data.get('is_public'),
        )
        return Response(s.PlatformSettingSerializer(setting).data)


class PublicSettingsView(APIView):
    """Settings flagged public, readable without authentication."""

    authentication_classes = []
    permission_classes = [AllowAny]
    tenant_required = False

    def get(self, request):
        cfg = PlatformConfig.get_solo()
        return Response({
            'settings': platform_services.get_public_settings(),
            'announcement_message': cfg.announcement_message,
            'support_email': cfg.support_email,
        })
