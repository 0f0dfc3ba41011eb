"""
RESTful API for SuperEcom tenant users.

Every viewset is tenant scoped: querysets are filtered to ``request.tenant``
and ``HasTenantPermission`` maps each action to a permission code. State
changes are delegated to the service handlers.
"""

import logging

from auditlog.models import LogEntry
from django.http import HttpResponse
from django.utils import timezone
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.models import Permission, Role, User
from apps.accounts.permissions import HasTenantPermission
from apps.accounts.services import team_service
from apps.billing.features import FeatureFlagService
from apps.billing.services import get_subscription
from apps.channels import services as channel_services
from apps.channels.models import SalesChannel
from apps.chat import services as chat_services
from apps.chat.models import ChatConversation
from apps.inventory import services as inventory_services
from apps.inventory.models import Product, StockMovement
from apps.ndr import services as ndr_services
from apps.ndr.models import NdrRecord
from apps.orders import services as order_services
from apps.orders.models import Order
from apps.shipments import services as shipment_services
from apps.shipments.models import CourierAccount, Shipment
from apps.tenants.configuration import get_tenant_settings, update_tenant_settings
from apps.webhooks import services as webhook_services
from apps.webhooks.models import WebhookSubscription

from . import serializers as s
from .base import TenantViewMixin, validated
from .filters import AuditLogFilter, NdrFilter, OrderFilter, ShipmentFilter

logger = logging.getLogger(__name__)

WRITE_METHODS = ['get', 'post', 'patch', 'delete', 'head', 'options']


class OrderViewSet(TenantViewMixin, viewsets.ReadOnlyModelViewSet):
    """Orders from every channel, plus manual order entry and status changes."""

    queryset = Order.objects.all()
    serializer_class = s.OrderListSerializer
    filterset_class = OrderFilter
    search_fields = ['order_number', 'external_order_number', 'customer_name', 'customer_email', 'customer_phone']
    ordering_fields = ['order_date', 'total_amount', 'status', 'created_at']
    ordering = ['-order_date']
    required_feature = 'orders_management'
    required_permissions = {
        'list': 'orders.view',
        'retrieve': 'orders.view',
        'stats': 'orders.view',
        'create': 'orders.create',
        'change_status': 'orders.edit',
        'confirm': 'orders.edit',
        'payment': 'orders.edit',
        'notes': 'orders.edit',
        'cancel': 'orders.cancel',
        'export': 'orders.export',
        'bulk_status': 'orders.bulk',
    }

    def get_queryset(self):
        return super().get_queryset().select_related('channel')

    def get_serializer_class(self):
        if self.action == 'list':
            return s.OrderListSerializer
        return s.OrderDetailSerializer

    def create(self, request):
        data = dict(validated(s.CreateOrderInputSerializer, request.data))
        order = order_services.create_order(
            actor=request.user,
            customer_name=data.pop('customer_name'),
            shipping_address=data.pop('shipping_address'),
            items=[dict(item) for item in data.pop('items')],
            billing_address=data.pop('billing_address', None),
            **data,
        )
        return self.respond(order, s.OrderDetailSerializer, status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        data = validated(s.OrderStatusInputSerializer, request.data)
        order = order_services.update_order_status(actor=request.user, order_id=pk, status=data['status'],
                                                   reason=data['reason'])
        return self.respond(order, s.OrderDetailSerializer)

    @action(detail=True, methods=['post'])
    def confirm(self, request, pk=None):
        order = order_services.confirm_order(actor=request.user, order_id=pk)
        return self.respond(order, s.OrderDetailSerializer, message="Order confirmed.")

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        data = validated(s.ReasonInputSerializer, request.data)
        order = order_services.cancel_order(actor=request.user, order_id=pk, reason=data['reason'])
        return self.respond(order, s.OrderDetailSerializer, message="Order cancelled.")

    @action(detail=True, methods=['post'])
    def payment(self, request, pk=None):
        data = validated(s.PaymentStatusInputSerializer, request.data)
        order = order_services.update_payment_status(actor=request.user, order_id=pk,
                                                     payment_status=data['payment_status'])
        return self.respond(order, s.OrderDetailSerializer)

    @action(detail=True, methods=['post'])
    def notes(self, request, pk=None):
        data = validated(s.NoteInputSerializer, request.data)
        order = order_services.add_order_note(actor=request.user, order_id=pk, note=data['note'])
        return self.respond(order, s.OrderDetailSerializer)

    @action(detail=False, methods=['get'])
    def export(self, request):
        """CSV of the orders matching the list filters."""
        response = HttpResponse(content_type='text/csv')
        filename = f"orders_export_{timezone.now():%Y%m%d_%H%M%S}.csv"
        response['Content-Disposition'] = f'attachment; filename="{filename}"'
        count = order_services.export_orders_csv(self.filter_queryset(self.get_queryset()), response)
        logger.info("Exported %d orders for tenant %s", count, request.tenant.slug)
        return response

    @action(detail=False, methods=['post'], url_path='bulk-status')
    def bulk_status(self, request):
        data = validated(s.BulkOrderStatusInputSerializer, request.data)
        result = order_services.bulk_update_order_status(actor=request.user, order_ids=data['order_ids'],
                                                         status=data['status'], reason=data['reason'])
        message = f"{len(result['updated'])} of {result['requested']} orders updated."
        return Response({'success': True, 'data': s.BulkOrderResultSerializer(result).data,
                         'message': message, 'errors': None})

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return Response(order_services.get_order_stats(
            request.tenant,
            date_from=request.query_params.get('date_from'),
            date_to=request.query_params.get('date_to'),
        ))


class ProductViewSet(TenantViewMixin, viewsets.ModelViewSet):
    """Product catalog with stock levels and movement history."""

    queryset = Product.objects.all()
    serializer_class = s.ProductSerializer
    http_method_names = WRITE_METHODS
    filterset_fields = ['category', 'brand', 'is_active', 'sync_status', 'channel']
    search_fields = ['sku', 'name', 'brand', 'category']
    ordering_fields = ['sku', 'name', 'selling_price', 'created_at']
    required_feature = 'inventory_management'
    required_permissions = {
        'list': 'inventory.view',
        'retrieve': 'inventory.view',
        'movements': 'inventory.view',
        'low_stock': 'inventory.view',
        'summary': 'inventory.view',
        'create': 'inventory.create',
        'partial_update': 'inventory.edit',
        'destroy': 'inventory.edit',
        'adjust': 'inventory.adjust',
    }

    def get_queryset(self):
        return super().get_queryset().select_related('inventory')

    def create(self, request):
        data = validated(s.ProductInputSerializer, request.data)
        product = inventory_services.create_product(actor=request.user, **data)
        return self.respond(product, status_code=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        data = validated(s.ProductUpdateInputSerializer, request.data)
        product = inventory_services.update_product(actor=request.user, product_id=pk, **data)
        return self.respond(product)

    def destroy(self, request, pk=None):
        inventory_services.delete_product(actor=request.user, product_id=pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def adjust(self, request, pk=None):
        data = validated(s.StockAdjustmentInputSerializer, request.data)
        inventory_services.adjust_stock(actor=request.user, product_id=pk, **data)
        return self.respond(self.get_queryset().get(pk=pk), message="Stock adjusted.")

    @action(detail=True, methods=['get'])
    def movements(self, request, pk=None):
        product = self.get_object()
        qs = (StockMovement.objects.for_tenant(request.tenant).filter(product=product)
              .select_related('product', 'performed_by').order_by('-created_at'))
        return self.list_response(qs, s.StockMovementSerializer)

    @action(detail=False, methods=['get'], url_path='low-stock')
    def low_stock(self, request):
        products = [item.product for item in inventory_services.get_low_stock_items(request.tenant)]
        return Response(s.ProductSerializer(products, many=True).data)

    @action(detail=False, methods=['get'])
    def summary(self, request):
        return Response(inventory_services.get_inventory_summary(request.tenant))


class ShipmentViewSet(TenantViewMixin, viewsets.ReadOnlyModelViewSet):
    queryset = Shipment.objects.all()
    serializer_class = s.ShipmentSerializer
    filterset_class = ShipmentFilter
    search_fields = ['shipment_number', 'awb_number', 'order__order_number', 'order__customer_name']
    ordering_fields = ['created_at', 'status', 'delivered_at']
    required_feature = 'shipments_management'
    required_permissions = {
        'list': 'shipments.view',
        'retrieve': 'shipments.view',
        'tracking': 'shipments.view',
        'stats': 'shipments.view',
        'create': 'shipments.create',
        'assign_courier': 'shipments.create',
        'change_status': 'shipments.track',
        'cancel': 'shipments.cancel',
        'label': 'shipments.create',
        'schedule_pickup': 'shipments.create',
    }

    def get_queryset(self):
        return super().get_queryset().select_related('order', 'courier_account')

    def get_serializer_class(self):
        if self.action == 'list':
            return s.ShipmentSerializer
        return s.ShipmentDetailSerializer

    def create(self, request):
        data = dict(validated(s.CreateShipmentInputSerializer, request.data))
        if 'items' in data:
            data['items'] = [dict(item) for item in data['items']]
        if 'pickup_address' in data:
            data['pickup_address'] = dict(data['pickup_address'])
        shipment = shipment_services.create_shipment(actor=request.user, **data)
        booking_error = (shipment.courier_response or {}).get('error')
        message = f"Shipment created; courier booking failed: {booking_error}" if booking_error else None
        return self.respond(shipment, s.ShipmentDetailSerializer, status.HTTP_201_CREATED, message=message)

    @action(detail=True, methods=['post'], url_path='assign-courier')
    def assign_courier(self, request, pk=None):
        data = validated(s.AssignCourierInputSerializer, request.data)
        shipment = shipment_services.assign_courier(actor=request.user, shipment_id=pk, **data)
        return self.respond(shipment, s.ShipmentDetailSerializer)

    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        data = validated(s.ShipmentStatusInputSerializer, request.data)
        shipment = shipment_services.update_shipment_status(actor=request.user, shipment_id=pk, **data)
        return self.respond(shipment, s.ShipmentDetailSerializer)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        data = validated(s.ReasonInputSerializer, request.data)
        shipment = shipment_services.cancel_shipment(actor=request.user, shipment_id=pk, reason=data['reason'])
        return self.respond(shipment, s.ShipmentDetailSerializer, message="Shipment cancelled.")

    @action(detail=True, methods=['post'])
    def label(self, request, pk=None):
        shipment = shipment_services.generate_label(actor=request.user, shipment_id=pk)
        return self.respond(shipment, s.ShipmentDetailSerializer)

    @action(detail=False, methods=['post'], url_path='schedule-pickup')
    def schedule_pickup(self, request):
        data = validated(s.SchedulePickupInputSerializer, request.data)
        pickup = shipment_services.schedule_pickup(actor=request.user, **data)
        return Response({'success': True, 'data': pickup, 'message': "Pickup scheduled.", 'errors': None})

    @action(detail=True, methods=['get'])
    def tracking(self, request, pk=None):
        shipment = self.get_object()
        return Response(s.ShipmentTrackingSerializer(shipment.tracking_events.all(), many=True).data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return Response(shipment_services.get_shipment_stats(
            request.tenant,
            date_from=request.query_params.get('date_from'),
            date_to=request.query_params.get('date_to'),
        ))


class CourierAccountViewSet(TenantViewMixin, viewsets.ModelViewSet):
    queryset = CourierAccount.objects.all()
    serializer_class = s.CourierAccountSerializer
    http_method_names = WRITE_METHODS
    filterset_fields = ['courier_type', 'is_active', 'is_default']
    ordering = ['priority', 'name']
    required_feature = 'shipments_management'
    required_permissions = {
        'list': 'settings.view',
        'retrieve': 'settings.view',
        'rates': 'shipments.create',
        '*': 'settings.edit',
    }

    def create(self, request):
        data = dict(validated(s.CourierAccountInputSerializer, request.data))
        missing = {field: "This field is required." for field in ("name", "courier_type") if not data.get(field)}
        if missing:
            raise ValidationError(missing)
        account = shipment_services.create_courier_account(actor=request.user, **data)
        return self.respond(account, status_code=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        data = validated(s.CourierAccountInputSerializer, request.data, partial=True)
        account = shipment_services.update_courier_account(actor=request.user, account_id=pk, **data)
        return self.respond(account)

    def destroy(self, request, pk=None):
        shipment_services.delete_courier_account(actor=request.user, account_id=pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def test(self, request, pk=None):
        result = shipment_services.test_courier_account(actor=request.user, account_id=pk)
        return self.respond(result, s.CourierCheckSerializer, message=result.message or "Credentials checked.")

    @action(detail=True, methods=['post'])
    def rates(self, request, pk=None):
        data = validated(s.ShippingRateInputSerializer, request.data)
        return Response(shipment_services.get_shipping_rates(actor=request.user, courier_account_id=pk, **data))


class NdrViewSet(TenantViewMixin, viewsets.ReadOnlyModelViewSet):
    """Failed-delivery cases and the agent workflow around them."""

    queryset = NdrRecord.objects.all()
    serializer_class = s.NdrRecordSerializer
    filterset_class = NdrFilter
    search_fields = ['awb_number', 'order__order_number', 'order__customer_name', 'order__customer_phone']
    ordering_fields = ['ndr_date', 'next_follow_up_at', 'attempt_count', 'status']
    ordering = ['-ndr_date']
    required_feature = 'ndr_management'
    required_permissions = {
        'list': 'ndr.view',
        'retrieve': 'ndr.view',
        'stats': 'ndr.view',
        'assign': 'ndr.assign',
        'reattempt': 'ndr.reattempt',
        '*': 'ndr.action',
    }

    def get_queryset(self):
        return super().get_queryset().select_related('order', 'shipment', 'assigned_to')

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return s.NdrDetailSerializer
        return s.NdrRecordSerializer

    def create(self, request):
        data = validated(s.CreateNdrInputSerializer, request.data)
        ndr = ndr_services.create_ndr(actor=request.user, **data)
        return self.respond(ndr, s.NdrDetailSerializer, status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def assign(self, request, pk=None):
        data = validated(s.AssignNdrInputSerializer, request.data)
        ndr = ndr_services.assign_ndr(actor=request.user, ndr_id=pk, user_id=data['user_id'])
        return self.respond(ndr, s.NdrDetailSerializer)

    @action(detail=True, methods=['post'])
    def actions(self, request, pk=None):
        data = validated(s.NdrActionInputSerializer, request.data)
        ndr_action = ndr_services.record_ndr_action(actor=request.user, ndr_id=pk, **data)
        return Response(s.NdrActionSerializer(ndr_action).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def remarks(self, request, pk=None):
        data = validated(s.NdrRemarkInputSerializer, request.data)
        remark = ndr_services.add_ndr_remark(actor=request.user, ndr_id=pk, **data)
        return Response(s.NdrRemarkSerializer(remark).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def reattempt(self, request, pk=None):
        data = validated(s.ReattemptInputSerializer, request.data)
        ndr = ndr_services.schedule_reattempt(actor=request.user, ndr_id=pk, **data)
        return self.respond(ndr, s.NdrDetailSerializer)

    @action(detail=True, methods=['post'])
    def escalate(self, request, pk=None):
        data = validated(s.ReasonInputSerializer, request.data)
        ndr = ndr_services.escalate_ndr(actor=request.user, ndr_id=pk, reason=data['reason'])
        return self.respond(ndr, s.NdrDetailSerializer)

    @action(detail=True, methods=['post'])
    def rto(self, request, pk=None):
        data = validated(s.ReasonInputSerializer, request.data)
        ndr = ndr_services.initiate_rto(actor=request.user, ndr_id=pk, reason=data['reason'])
        return self.respond(ndr, s.NdrDetailSerializer)

    @action(detail=True, methods=['post'])
    def resolve(self, request, pk=None):
        data = validated(s.ResolveNdrInputSerializer, request.data)
        ndr = ndr_services.resolve_ndr(actor=request.user, ndr_id=pk, **data)
        return self.respond(ndr, s.NdrDetailSerializer, message="NDR resolved.")

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return Response(ndr_services.get_ndr_stats(request.tenant))


class SalesChannelViewSet(TenantViewMixin, viewsets.ModelViewSet):
    queryset = SalesChannel.objects.all()
    serializer_class = s.SalesChannelSerializer
    http_method_names = WRITE_METHODS
    filterset_fields = ['type', 'is_active', 'is_connected']
    search_fields = ['name', 'store_name', 'store_url']
    required_permissions = {
        'list': 'channels.view',
        'retrieve': 'channels.view',
        'create': 'channels.connect',
        'partial_update': 'channels.settings',
        'destroy': 'channels.disconnect',
        'sync': 'channels.sync',
    }

    def create(self, request):
        data = dict(validated(s.ConnectChannelInputSerializer, request.data))
        channel = channel_services.connect_channel(actor=request.user, channel_type=data.pop('type'), **data)
        return self.respond(channel, status_code=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        data = validated(s.ChannelSettingsInputSerializer, request.data)
        channel = channel_services.update_channel_settings(actor=request.user, channel_id=pk, **data)
        return self.respond(channel)

    def destroy(self, request, pk=None):
        channel_services.disconnect_channel(actor=request.user, channel_id=pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def sync(self, request, pk=None):
        data = validated(s.SyncInputSerializer, request.data)
        return Response(channel_services.sync_channel(actor=request.user, channel_id=pk,
                                                      since=data.get('since')))


class WebhookSubscriptionViewSet(TenantViewMixin, viewsets.ModelViewSet):
    queryset = WebhookSubscription.objects.all()
    serializer_class = s.WebhookSubscriptionSerializer
    http_method_names = WRITE_METHODS
    filterset_fields = ['is_active']
    search_fields = ['name', 'url']
    required_feature = 'webhooks'
    required_permissions = {
        'list': 'webhooks.view',
        'retrieve': 'webhooks.view',
        'deliveries': 'webhooks.view',
        '*': 'webhooks.manage',
    }

    def create(self, request):
        data = validated(s.WebhookSubscriptionInputSerializer, request.data)
        subscription = webhook_services.create_subscription(
            actor=request.user,
            name=data.get('name', ''),
            url=data.get('url', ''),
            events=data.get('events', []),
            headers=data.get('headers'),
            secret=data.get('secret', ''),
            max_retries=data.get('max_retries', 3),
            timeout_seconds=data.get('timeout_seconds', 30),
        )
        return self.respond(subscription, s.WebhookSubscriptionWithSecretSerializer, status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        data = validated(s.WebhookSubscriptionInputSerializer, request.data, partial=True)
        subscription = webhook_services.update_subscription(actor=request.user, subscription_id=pk, **data)
        return self.respond(subscription)

    def destroy(self, request, pk=None):
        webhook_services.delete_subscription(actor=request.user, subscription_id=pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'], url_path='regenerate-secret')
    def regenerate_secret(self, request, pk=None):
        subscription = webhook_services.regenerate_secret(actor=request.user, subscription_id=pk)
        return self.respond(subscription, s.WebhookSubscriptionWithSecretSerializer)

    @action(detail=True, methods=['post'])
    def test(self, request, pk=None):
        data = validated(s.TestWebhookInputSerializer, request.data)
        delivery = webhook_services.send_test_event(actor=request.user, subscription_id=pk, event=data['event'])
        return Response(s.WebhookDeliverySerializer(delivery).data)

    @action(detail=True, methods=['get'])
    def deliveries(self, request, pk=None):
        subscription = self.get_object()
        qs = webhook_services.list_deliveries(subscription.pk, status=request.query_params.get('status'))
        return self.list_response(qs.order_by('-created_at'), s.WebhookDeliverySerializer)


class TeamUserViewSet(TenantViewMixin, viewsets.ModelViewSet):
    queryset = User.objects.all()
    serializer_class = s.UserSerializer
    http_method_names = WRITE_METHODS
    filterset_fields = ['is_active']
    search_fields = ['email', 'first_name', 'last_name']
    ordering_fields = ['email', 'created_at', 'last_login_at']
    required_permissions = {
        'list': 'team.view',
        'retrieve': 'team.view',
        'create': 'team.invite',
        'partial_update': 'team.edit',
        'destroy': 'team.delete',
        'roles': 'team.roles',
    }

    def get_queryset(self):
        return User.objects.for_tenant(self.request.tenant).prefetch_related('roles')

    def create(self, request):
        data = validated(s.InviteUserInputSerializer, request.data)
        user = team_service.invite_user(actor=request.user, **data)
        payload = s.UserSerializer(user).data
        payload['temporary_password'] = getattr(user, '_raw_password', None)
        return Response(payload, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        data = validated(s.UpdateUserInputSerializer, request.data)
        user = team_service.update_user(actor=request.user, user_id=pk, **data)
        return self.respond(user)

    def destroy(self, request, pk=None):
        team_service.deactivate_user(actor=request.user, user_id=pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def roles(self, request, pk=None):
        role_ids = request.data.get('role_ids')
        if not isinstance(role_ids, list):
            role_ids = []
        user = team_service.assign_roles(actor=request.user, user_id=pk, role_ids=role_ids)
        return self.respond(user)


class RoleViewSet(TenantViewMixin, viewsets.ModelViewSet):
    queryset = Role.objects.all()
    serializer_class = s.RoleSerializer
    http_method_names = WRITE_METHODS
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['name']
    ordering = ['name']
    required_permissions = {
        'list': 'team.view',
        'retrieve': 'team.view',
        'permissions': 'team.view',
        '*': 'team.roles',
    }

    def get_queryset(self):
        return Role.objects.filter(tenant=self.request.tenant).prefetch_related('permissions')

    def create(self, request):
        data = validated(s.RoleInputSerializer, request.data)
        role = team_service.create_role(actor=request.user, name=data.get('name', ''),
                                        description=data.get('description', ''),
                                        permission_codes=data.get('permission_codes', []))
        return self.respond(role, status_code=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        data = validated(s.RoleInputSerializer, request.data)
        role = team_service.update_role(actor=request.user, role_id=pk, **data)
        return self.respond(role)

    def destroy(self, request, pk=None):
        team_service.delete_role(actor=request.user, role_id=pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['get'])
    def permissions(self, request):
        catalog = Permission.objects.order_by('module', 'code').values('code', 'name', 'module', 'description')
        return Response(list(catalog))


class ChatConversationViewSet(TenantViewMixin, viewsets.ModelViewSet):
    queryset = ChatConversation.objects.all()
    serializer_class = s.ChatConversationSerializer
    http_method_names = WRITE_METHODS
    filter_backends = []
    pagination_class = None
    required_permissions = {'*': 'chat.use'}

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return s.ChatConversationDetailSerializer
        return s.ChatConversationSerializer

    def list(self, request):
        status_filter = request.query_params.get('status') or ChatConversation.STATUS_ACTIVE
        return Response(s.ChatConversationSerializer(
            chat_services.list_conversations(request.user, status=status_filter), many=True).data)

    def retrieve(self, request, pk=None):
        return self.respond(chat_services.get_conversation(request.user, pk), s.ChatConversationDetailSerializer)

    def create(self, request):
        title = request.data.get('title') if hasattr(request.data, 'get') else None
        conversation = chat_services.start_conversation(actor=request.user, title=title)
        return self.respond(conversation, status_code=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        data = validated(s.TitleInputSerializer, request.data)
        conversation = chat_services.rename_conversation(actor=request.user, conversation_id=pk,
                                                         title=data['title'])
        return self.respond(conversation)

    def destroy(self, request, pk=None):
        chat_services.delete_conversation(actor=request.user, conversation_id=pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['post'])
    def messages(self, request):
        """Post a message, starting a new conversation when no id is given."""
        data = validated(s.ChatMessageInputSerializer, request.data)
        message = chat_services.add_message(actor=request.user, content=data['content'],
                                            conversation_id=data.get('conversation_id'))
        payload = s.ChatMessageSerializer(message).data
        payload['conversation'] = s.ChatConversationSerializer(message.conversation).data
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def archive(self, request, pk=None):
        conversation = chat_services.archive_conversation(actor=request.user, conversation_id=pk)
        return self.respond(conversation)

    @action(detail=True, methods=['post'])
    def reactivate(self, request, pk=None):
        conversation = chat_services.reactivate_conversation(actor=request.user, conversation_id=pk)
        return self.respond(conversation)


class SubscriptionView(APIView):
    """The tenant's own plan, status and enabled features."""

    permission_classes = [HasTenantPermission]
    required_permissions = {'*': 'settings.view'}

    def get(self, request):
        subscription = get_subscription(request.tenant)
        data = s.SubscriptionSerializer(subscription).data
        data['enabled_features'] = sorted(FeatureFlagService.get_enabled_features(request.tenant))
        return Response(data)


class TenantSettingsView(APIView):
    """All settings sections, or one section updated with PATCH."""

    permission_classes = [HasTenantPermission]
    required_permissions = {'get': 'settings.view', 'patch': 'settings.edit'}

    def get(self, request, section=None):
        settings = get_tenant_settings(request.tenant)
        if section is None:
            return Response(settings)
        if section not in settings:
            raise NotFound(f"Unknown settings section: {section}")
        return Response(settings[section])

    def patch(self, request, section=None):
        serializer_class = s.SETTINGS_SECTION_SERIALIZERS.get(section)
        if serializer_class is None:
            raise NotFound(f"Unknown settings section: {section}")
        data = validated(serializer_class, request.data, partial=True)
        settings = update_tenant_settings(actor=request.user, section=section, values=dict(data))
        return Response({'success': True, 'data': settings[section], 'message': "Settings saved.",
                         'errors': None})


class AuditLogViewSet(TenantViewMixin, viewsets.ReadOnlyModelViewSet):
    """Change history recorded by auditlog for the tenant's own records."""

    queryset = LogEntry.objects.all()
    serializer_class = s.AuditLogSerializer
    filterset_class = AuditLogFilter
    search_fields = ['object_repr', 'object_pk']
    ordering_fields = ['timestamp']
    ordering = ['-timestamp']
    required_permissions = {'*': 'audit.view'}

    def get_queryset(self):
        return LogEntry.objects.filter(
            additional_data__tenant_id=str(self.request.tenant.pk),
        ).select_related('actor', 'content_type')


class DashboardView(APIView):
    """Headline numbers across orders, shipments, NDR and stock."""

    permission_classes = [HasTenantPermission]
    required_permissions = {'*': 'analytics.view'}

    def get(self, request):
        tenant = request.tenant
        date_from = request.query_params.get('date_from')
        date_to = request.query_params.get('date_to')
        features = FeatureFlagService.get_enabled_features(tenant)
        data = {'orders': order_services.get_order_stats(tenant, date_from=date_from, date_to=date_to)}
        if 'shipments_management' in features:
            data['shipments'] = shipment_services.get_shipment_stats(tenant, date_from=date_from, date_to=date_to)
        if 'ndr_management' in features:
            data['ndr'] = ndr_services.get_ndr_stats(tenant)
        if 'inventory_management' in features:
            data['inventory'] = inventory_services.get_inventory_summary(tenant)
        return Response(data)
