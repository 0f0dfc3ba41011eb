"""
Serializers for the SuperEcom REST API.

Read serializers are ModelSerializers; the ``*InputSerializer`` classes only
validate request bodies before they are handed to the service layer.
"""

import zoneinfo
from decimal import Decimal

from auditlog.models import LogEntry
from rest_framework import serializers

from apps.accounts.models import Role, User
from apps.billing.models import Feature, Plan, Subscription
from apps.channels.models import SalesChannel
from apps.chat.models import ChatConversation, ChatMessage
from apps.inventory.models import InventoryItem, Product, StockMovement
from apps.ndr.models import NdrAction, NdrActionType, NdrReason, NdrRecord, NdrRemark
from apps.orders.models import Order, OrderItem, OrderStatusHistory
from apps.shipments.models import CourierAccount, CourierType, Shipment, ShipmentItem, ShipmentTracking
from apps.super_admin.models import PlatformAdmin, PlatformConfig, PlatformSettings, TenantActivityLog
from apps.tenants.models import Tenant
from apps.webhooks.models import WebhookDelivery, WebhookEvent, WebhookSubscription


class AddressSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    phone = serializers.CharField(max_length=20)
    line1 = serializers.CharField(max_length=255)
    line2 = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    postal_code = serializers.CharField(max_length=20)
    country = serializers.CharField(max_length=100, required=False, default='India')


# Identity

class RoleSerializer(serializers.ModelSerializer):
    permissions = serializers.SerializerMethodField()

    class Meta:
        model = Role
        fields = ['id', 'name', 'description', 'is_system', 'permissions', 'created_at']
        read_only_fields = fields

    def get_permissions(self, obj):
        return obj.permission_codes()


class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)
    roles = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'full_name', 'phone', 'avatar_url',
                  'email_verified', 'is_active', 'roles', 'last_login_at', 'created_at']
        read_only_fields = fields

    def get_roles(self, obj):
        return obj.get_role_names()


class CurrentUserSerializer(UserSerializer):
    tenant = serializers.SerializerMethodField()
    permissions = serializers.SerializerMethodField()

    class Meta(UserSerializer.Meta):
        fields = UserSerializer.Meta.fields + ['tenant', 'permissions']
        read_only_fields = fields

    def get_tenant(self, obj):
        return {'id': str(obj.tenant_id), 'slug': obj.tenant.slug, 'name': obj.tenant.name}

    def get_permissions(self, obj):
        return sorted(obj.get_permission_codes())


class LoginInputSerializer(serializers.Serializer):
    tenant_slug = serializers.CharField(required=False, allow_blank=True)
    email = serializers.EmailField()
    password = serializers.CharField(trim_whitespace=False)


class RegisterInputSerializer(serializers.Serializer):
    company_name = serializers.CharField(max_length=255)
    slug = serializers.SlugField(max_length=100, required=False, allow_blank=True)
    email = serializers.EmailField()
    password = serializers.CharField(trim_whitespace=False, min_length=8)
    first_name = serializers.CharField(required=False, allow_blank=True, default='')
    last_name = serializers.CharField(required=False, allow_blank=True, default='')
    phone = serializers.CharField(required=False, allow_blank=True, default='')


class RefreshInputSerializer(serializers.Serializer):
    refresh_token = serializers.CharField()


class ForgotPasswordInputSerializer(serializers.Serializer):
    tenant_slug = serializers.CharField()
    email = serializers.EmailField()


class ResetPasswordInputSerializer(serializers.Serializer):
    uid = serializers.CharField()
    token = serializers.CharField()
    new_password = serializers.CharField(trim_whitespace=False, min_length=8)


class ChangePasswordInputSerializer(serializers.Serializer):
    current_password = serializers.CharField(trim_whitespace=False)
    new_password = serializers.CharField(trim_whitespace=False, min_length=8)


class InviteUserInputSerializer(serializers.Serializer):
    email = serializers.EmailField()
    first_name = serializers.CharField(required=False, allow_blank=True, default='')
    last_name = serializers.CharField(required=False, allow_blank=True, default='')
    phone = serializers.CharField(required=False, allow_blank=True, default='')
    role_ids = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)


class UpdateUserInputSerializer(serializers.Serializer):
    first_name = serializers.CharField(required=False, allow_blank=True)
    last_name = serializers.CharField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True)
    is_active = serializers.BooleanField(required=False)


class RoleInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100, required=False)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    permission_codes = serializers.ListField(child=serializers.CharField(), required=False)


# Orders

class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'sku', 'name', 'variant_name', 'external_product_id', 'quantity',
                  'unit_price', 'discount_amount', 'tax_amount', 'total_amount']
        read_only_fields = fields


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    changed_by = serializers.CharField(source='changed_by.email', default=None, read_only=True)

    class Meta:
        model = OrderStatusHistory
        fields = ['from_status', 'to_status', 'reason', 'changed_by', 'changed_at']
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    channel_name = serializers.CharField(source='channel.name', default=None, read_only=True)
    item_count = serializers.IntegerField(source='items.count', read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'external_order_number', 'channel', 'channel_name', 'status',
                  'payment_status', 'fulfillment_status', 'payment_method', 'is_cod', 'customer_name',
                  'customer_phone', 'total_amount', 'currency', 'item_count', 'order_date']
        read_only_fields = fields


class OrderDetailSerializer(OrderListSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    status_history = OrderStatusHistorySerializer(many=True, read_only=True)

    class Meta(OrderListSerializer.Meta):
        fields = OrderListSerializer.Meta.fields + [
            'external_order_id', 'customer_email', 'shipping_address', 'billing_address', 'subtotal',
            'discount_amount', 'tax_amount', 'shipping_amount', 'confirmed_at', 'shipped_at', 'delivered_at',
            'cancelled_at', 'cancellation_reason', 'notes', 'internal_notes', 'tags', 'items', 'status_history',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class OrderItemInputSerializer(serializers.Serializer):
    sku = serializers.CharField(max_length=100)
    name = serializers.CharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    tax_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    variant_name = serializers.CharField(max_length=255, required=False, allow_blank=True)


class CreateOrderInputSerializer(serializers.Serializer):
    customer_name = serializers.CharField(max_length=255)
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    customer_phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    shipping_address = AddressSerializer()
    billing_address = AddressSerializer(required=False)
    payment_method = serializers.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES, required=False)
    currency = serializers.CharField(max_length=3, required=False)
    shipping_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    channel_id = serializers.IntegerField(required=False)
    items = OrderItemInputSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("An order needs at least one item.")
        return value


class OrderStatusInputSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class ReasonInputSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class PaymentStatusInputSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=Order.PAYMENT_STATUS_CHOICES)


class NoteInputSerializer(serializers.Serializer):
    note = serializers.CharField()


class BulkOrderStatusInputSerializer(serializers.Serializer):
    order_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), min_length=1, max_length=100)
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class BulkOrderFailureSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    order_number = serializers.CharField(allow_null=True)
    error = serializers.CharField()


class BulkOrderResultSerializer(serializers.Serializer):
    requested = serializers.IntegerField()
    updated = serializers.ListField(child=serializers.IntegerField())
    failed = BulkOrderFailureSerializer(many=True)


# Inventory

class InventoryItemSerializer(serializers.ModelSerializer):
    quantity_available = serializers.IntegerField(read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = InventoryItem
        fields = ['quantity_on_hand', 'quantity_reserved', 'quantity_available', 'reorder_point',
                  'reorder_quantity', 'location', 'is_low_stock', 'last_restocked_at']
        read_only_fields = fields


class ProductSerializer(serializers.ModelSerializer):
    inventory = InventoryItemSerializer(read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'sku', 'name', 'description', 'category', 'brand', 'cost_price', 'selling_price',
                  'currency', 'weight', 'image_url', 'is_active', 'sync_status', 'channel', 'inventory',
                  'created_at', 'updated_at']
        read_only_fields = fields


class ProductInputSerializer(serializers.Serializer):
    sku = serializers.CharField(max_length=100)
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    category = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    brand = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    cost_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    selling_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    weight = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=0, required=False)
    image_url = serializers.URLField(required=False, allow_blank=True, default='')
    initial_quantity = serializers.IntegerField(min_value=0, required=False, default=0)
    reorder_point = serializers.IntegerField(min_value=0, required=False, default=10)
    reorder_quantity = serializers.IntegerField(min_value=0, required=False, default=50)
    location = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')


class ProductUpdateInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    category = serializers.CharField(max_length=100, required=False, allow_blank=True)
    brand = serializers.CharField(max_length=100, required=False, allow_blank=True)
    cost_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    selling_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    weight = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=0, required=False)
    image_url = serializers.URLField(required=False, allow_blank=True)
    is_active = serializers.BooleanField(required=False)


class StockAdjustmentInputSerializer(serializers.Serializer):
    movement_type = serializers.ChoiceField(choices=StockMovement.TYPE_CHOICES)
    quantity = serializers.IntegerField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    reference_type = serializers.CharField(required=False, allow_blank=True, default='')
    reference_id = serializers.CharField(required=False, allow_blank=True, default='')


class StockMovementSerializer(serializers.ModelSerializer):
    sku = serializers.CharField(source='product.sku', read_only=True)
    performed_by = serializers.CharField(source='performed_by.email', default=None, read_only=True)

    class Meta:
        model = StockMovement
        fields = ['id', 'sku', 'movement_type', 'quantity', 'quantity_before', 'quantity_after',
                  'reference_type', 'reference_id', 'notes', 'performed_by', 'created_at']
        read_only_fields = fields


# Channels

class SalesChannelSerializer(serializers.ModelSerializer):
    class Meta:
        model = SalesChannel
        fields = ['id', 'name', 'type', 'store_url', 'store_name', 'external_shop_id', 'is_active',
                  'auto_sync_orders', 'auto_sync_inventory', 'initial_sync_days', 'last_sync_at',
                  'last_sync_status', 'is_connected', 'last_connected_at', 'last_error', 'created_at']
        read_only_fields = fields


class ConnectChannelInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    type = serializers.ChoiceField(choices=SalesChannel.TYPE_CHOICES)
    store_url = serializers.URLField(required=False, allow_blank=True, default='')
    store_name = serializers.CharField(required=False, allow_blank=True, default='')
    external_shop_id = serializers.CharField(required=False, allow_blank=True, default='')
    api_key = serializers.CharField(required=False, allow_blank=True, default='')
    api_secret = serializers.CharField(required=False, allow_blank=True, default='')
    access_token = serializers.CharField(required=False, allow_blank=True, default='')
    webhook_secret = serializers.CharField(required=False, allow_blank=True, default='')
    scopes = serializers.CharField(required=False, allow_blank=True, default='')
    auto_sync_orders = serializers.BooleanField(required=False, default=True)
    auto_sync_inventory = serializers.BooleanField(required=False, default=False)
    initial_sync_days = serializers.IntegerField(min_value=1, max_value=90, required=False, default=7)


class ChannelSettingsInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150, required=False)
    store_name = serializers.CharField(required=False, allow_blank=True)
    auto_sync_orders = serializers.BooleanField(required=False)
    auto_sync_inventory = serializers.BooleanField(required=False)
    initial_sync_days = serializers.IntegerField(min_value=1, max_value=90, required=False)
    is_active = serializers.BooleanField(required=False)
    api_key = serializers.CharField(required=False, allow_blank=True)
    api_secret = serializers.CharField(required=False, allow_blank=True)
    access_token = serializers.CharField(required=False, allow_blank=True)
    webhook_secret = serializers.CharField(required=False, allow_blank=True)


class SyncInputSerializer(serializers.Serializer):
    since = serializers.DateTimeField(required=False)


# Shipments

class ShipmentItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = ShipmentItem
        fields = ['id', 'order_item', 'sku', 'name', 'quantity']
        read_only_fields = fields


class ShipmentTrackingSerializer(serializers.ModelSerializer):
    class Meta:
        model = ShipmentTracking
        fields = ['status', 'location', 'remarks', 'raw_status', 'event_time']
        read_only_fields = fields


class ShipmentSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    volumetric_weight = serializers.DecimalField(max_digits=10, decimal_places=3, read_only=True)
    chargeable_weight = serializers.DecimalField(max_digits=10, decimal_places=3, read_only=True)

    class Meta:
        model = Shipment
        fields = ['id', 'shipment_number', 'order', 'order_number', 'awb_number', 'courier_type', 'courier_name',
                  'courier_account', 'status', 'is_cod', 'cod_amount', 'shipping_cost', 'currency', 'weight',
                  'volumetric_weight', 'chargeable_weight', 'tracking_url', 'expected_delivery_date',
                  'picked_up_at', 'delivered_at', 'created_at']
        read_only_fields = fields


class ShipmentDetailSerializer(ShipmentSerializer):
    items = ShipmentItemSerializer(many=True, read_only=True)
    tracking_events = ShipmentTrackingSerializer(many=True, read_only=True)

    class Meta(ShipmentSerializer.Meta):
        fields = ShipmentSerializer.Meta.fields + [
            'pickup_address', 'delivery_address', 'length', 'width', 'height', 'label_url', 'courier_response',
            'items', 'tracking_events',
        ]
        read_only_fields = fields


class ShipmentItemInputSerializer(serializers.Serializer):
    order_item_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1, required=False)


class CreateShipmentInputSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    courier_type = serializers.ChoiceField(choices=CourierType.CHOICES, required=False, default=CourierType.MANUAL)
    courier_account_id = serializers.IntegerField(required=False)
    pickup_address = AddressSerializer(required=False)
    items = ShipmentItemInputSerializer(many=True, required=False)
    length = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
    width = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
    height = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
    weight = serializers.DecimalField(max_digits=8, decimal_places=3, min_value=0, required=False)
    shipping_cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    expected_delivery_date = serializers.DateField(required=False)


class AssignCourierInputSerializer(serializers.Serializer):
    awb_number = serializers.CharField(max_length=30)
    courier_account_id = serializers.IntegerField(required=False)
    courier_name = serializers.CharField(required=False, allow_blank=True, default='')
    label_url = serializers.URLField(required=False, allow_blank=True, default='')
    tracking_url = serializers.URLField(required=False, allow_blank=True, default='')


class ShipmentStatusInputSerializer(serializers.Serializer):
    status = serializers.CharField()
    location = serializers.CharField(required=False, allow_blank=True, default='')
    remarks = serializers.CharField(required=False, allow_blank=True, default='')


class SchedulePickupInputSerializer(serializers.Serializer):
    shipment_ids = serializers.ListField(child=serializers.IntegerField(), min_length=1, max_length=100)
    pickup_date = serializers.DateField()


class ShippingRateInputSerializer(serializers.Serializer):
    pickup_postal_code = serializers.RegexField(r'^\d{6}$')
    delivery_postal_code = serializers.RegexField(r'^\d{6}$')
    weight = serializers.DecimalField(max_digits=8, decimal_places=3, min_value=Decimal('0.001'))
    is_cod = serializers.BooleanField(default=False)
    cod_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)


class CourierCheckSerializer(serializers.Serializer):
    """Outcome of a courier credential check."""

    connected = serializers.BooleanField(source='success')
    message = serializers.CharField()
    errors = serializers.ListField(child=serializers.CharField())


class CourierAccountSerializer(serializers.ModelSerializer):
    class Meta:
        model = CourierAccount
        fields = ['id', 'name', 'courier_type', 'is_active', 'is_default', 'account_id', 'settings',
                  'is_connected', 'last_error', 'priority', 'supports_cod', 'supports_reverse',
                  'supports_express', 'created_at']
        read_only_fields = fields


class CourierAccountInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150, required=False)
    courier_type = serializers.ChoiceField(choices=CourierType.CHOICES, required=False)
    is_active = serializers.BooleanField(required=False)
    is_default = serializers.BooleanField(required=False)
    api_key = serializers.CharField(required=False, allow_blank=True)
    api_secret = serializers.CharField(required=False, allow_blank=True)
    access_token = serializers.CharField(required=False, allow_blank=True)
    account_id = serializers.CharField(required=False, allow_blank=True)
    settings = serializers.DictField(required=False)
    priority = serializers.IntegerField(min_value=0, required=False)
    supports_cod = serializers.BooleanField(required=False)
    supports_reverse = serializers.BooleanField(required=False)
    supports_express = serializers.BooleanField(required=False)


# NDR

class NdrActionSerializer(serializers.ModelSerializer):
    performed_by = serializers.CharField(source='performed_by.email', default=None, read_only=True)

    class Meta:
        model = NdrAction
        fields = ['id', 'action_type', 'performed_by', 'details', 'outcome', 'call_duration_seconds',
                  'performed_at']
        read_only_fields = fields


class NdrRemarkSerializer(serializers.ModelSerializer):
    author = serializers.CharField(source='author.email', default=None, read_only=True)

    class Meta:
        model = NdrRemark
        fields = ['id', 'content', 'is_internal', 'author', 'created_at']
        read_only_fields = fields


class NdrRecordSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    customer_name = serializers.CharField(source='order.customer_name', read_only=True)
    customer_phone = serializers.CharField(source='order.customer_phone', read_only=True)
    assigned_to_email = serializers.CharField(source='assigned_to.email', default=None, read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)

    class Meta:
        model = NdrRecord
        fields = ['id', 'shipment', 'order', 'order_number', 'customer_name', 'customer_phone', 'awb_number',
                  'status', 'reason_code', 'reason_description', 'ndr_date', 'assigned_to', 'assigned_to_email',
                  'assigned_at', 'attempt_count', 'next_follow_up_at', 'is_overdue', 'resolved_at', 'resolution',
                  'resolution_notes']
        read_only_fields = fields


class NdrDetailSerializer(NdrRecordSerializer):
    actions = NdrActionSerializer(many=True, read_only=True)
    remarks = NdrRemarkSerializer(many=True, read_only=True)

    class Meta(NdrRecordSerializer.Meta):
        fields = NdrRecordSerializer.Meta.fields + ['actions', 'remarks']
        read_only_fields = fields


class CreateNdrInputSerializer(serializers.Serializer):
    shipment_id = serializers.IntegerField()
    reason_code = serializers.ChoiceField(choices=NdrReason.CHOICES, required=False, default=NdrReason.OTHER)
    reason_description = serializers.CharField(required=False, allow_blank=True, default='')


class AssignNdrInputSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()


class NdrActionInputSerializer(serializers.Serializer):
    action_type = serializers.ChoiceField(choices=NdrActionType.CHOICES)
    details = serializers.CharField(required=False, allow_blank=True, default='')
    outcome = serializers.CharField(required=False, allow_blank=True, default='')
    call_duration_seconds = serializers.IntegerField(min_value=0, required=False)


class NdrRemarkInputSerializer(serializers.Serializer):
    content = serializers.CharField()
    is_internal = serializers.BooleanField(required=False, default=True)


class ReattemptInputSerializer(serializers.Serializer):
    reattempt_at = serializers.DateTimeField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ResolveNdrInputSerializer(serializers.Serializer):
    resolution = serializers.ChoiceField(choices=NdrRecord.RESOLUTION_CHOICES)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


# Webhooks

class WebhookSubscriptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = WebhookSubscription
        fields = ['id', 'name', 'url', 'events', 'headers', 'is_active', 'max_retries', 'timeout_seconds',
                  'total_deliveries', 'successful_deliveries', 'failed_deliveries', 'last_triggered_at',
                  'last_success_at', 'last_failure_at', 'last_error', 'created_at']
        read_only_fields = fields


class WebhookSubscriptionWithSecretSerializer(WebhookSubscriptionSerializer):
    class Meta(WebhookSubscriptionSerializer.Meta):
        fields = WebhookSubscriptionSerializer.Meta.fields + ['secret']
        read_only_fields = fields


class WebhookSubscriptionInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100, required=False)
    url = serializers.URLField(max_length=500, required=False)
    events = serializers.ListField(child=serializers.ChoiceField(choices=WebhookEvent.ALL), required=False)
    headers = serializers.DictField(child=serializers.CharField(), required=False)
    secret = serializers.CharField(required=False, allow_blank=True)
    is_active = serializers.BooleanField(required=False)
    max_retries = serializers.IntegerField(min_value=0, max_value=10, required=False)
    timeout_seconds = serializers.IntegerField(min_value=1, max_value=60, required=False)


class WebhookDeliverySerializer(serializers.ModelSerializer):
    class Meta:
        model = WebhookDelivery
        fields = ['id', 'event', 'status', 'attempt_count', 'http_status_code', 'response_body',
                  'error_message', 'duration_ms', 'next_retry_at', 'delivered_at', 'created_at']
        read_only_fields = fields


class TestWebhookInputSerializer(serializers.Serializer):
    event = serializers.ChoiceField(choices=WebhookEvent.ALL, required=False, default=WebhookEvent.ORDER_CREATED)


# Chat

class ChatMessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = ChatMessage
        fields = ['id', 'role', 'content', 'tool_name', 'token_count', 'sequence', 'created_at']
        read_only_fields = fields


class ChatConversationSerializer(serializers.ModelSerializer):
    class Meta:
        model = ChatConversation
        fields = ['id', 'title', 'status', 'message_count', 'last_message_at', 'created_at']
        read_only_fields = fields


class ChatConversationDetailSerializer(ChatConversationSerializer):
    messages = ChatMessageSerializer(many=True, read_only=True)

    class Meta(ChatConversationSerializer.Meta):
        fields = ChatConversationSerializer.Meta.fields + ['messages']
        read_only_fields = fields


class ChatMessageInputSerializer(serializers.Serializer):
    content = serializers.CharField()
    conversation_id = serializers.IntegerField(required=False)


class TitleInputSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=100)


# Settings

class GeneralSettingsSerializer(serializers.Serializer):
    currency = serializers.CharField(max_length=3, required=False)
    timezone = serializers.CharField(max_length=64, required=False)
    date_format = serializers.CharField(max_length=20, required=False)
    time_format = serializers.CharField(max_length=20, required=False)

    def validate_timezone(self, value):
        try:
            zoneinfo.ZoneInfo(value)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            raise serializers.ValidationError(f"Unknown time zone: {value}")
        return value


class OrderSettingsSerializer(serializers.Serializer):
    auto_confirm_orders = serializers.BooleanField(required=False)
    default_courier_account_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    order_processing_cutoff_hour = serializers.IntegerField(required=False, min_value=0, max_value=23)
    enable_cod = serializers.BooleanField(required=False)
    max_cod_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                              required=False, allow_null=True)


class ShipmentSettingsSerializer(serializers.Serializer):
    auto_create_shipment = serializers.BooleanField(required=False)
    restock_on_rto = serializers.BooleanField(required=False)
    pickup_address = AddressSerializer(required=False, allow_null=True)
    default_package_weight = serializers.IntegerField(required=False, min_value=1)
    default_package_length = serializers.IntegerField(required=False, min_value=1)
    default_package_width = serializers.IntegerField(required=False, min_value=1)
    default_package_height = serializers.IntegerField(required=False, min_value=1)


class NdrSettingsSerializer(serializers.Serializer):
    default_ndr_agent_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    follow_up_interval_hours = serializers.IntegerField(required=False, min_value=1, max_value=168)
    max_attempts = serializers.IntegerField(required=False, min_value=1, max_value=10)
    escalate_after_max_attempts = serializers.BooleanField(required=False)


class InventorySettingsSerializer(serializers.Serializer):
    low_stock_threshold = serializers.IntegerField(required=False, min_value=0)
    alert_on_low_stock = serializers.BooleanField(required=False)
    prevent_overselling = serializers.BooleanField(required=False)


class BrandingSettingsSerializer(serializers.Serializer):
    primary_color = serializers.RegexField(r'^#[0-9A-Fa-f]{6}$', required=False, allow_null=True)
    secondary_color = serializers.RegexField(r'^#[0-9A-Fa-f]{6}$', required=False, allow_null=True)
    invoice_logo_url = serializers.URLField(required=False, allow_null=True)
    invoice_footer_text = serializers.CharField(max_length=500, required=False, allow_null=True, allow_blank=True)


SETTINGS_SECTION_SERIALIZERS = {
    'general': GeneralSettingsSerializer,
    'orders': OrderSettingsSerializer,
    'shipments': ShipmentSettingsSerializer,
    'ndr': NdrSettingsSerializer,
    'inventory': InventorySettingsSerializer,
    'branding': BrandingSettingsSerializer,
}


class AuditLogSerializer(serializers.ModelSerializer):
    action = serializers.SerializerMethodField()
    model = serializers.CharField(source='content_type.model', read_only=True)
    object_id = serializers.CharField(source='object_pk', read_only=True)
    changes = serializers.SerializerMethodField()
    actor = serializers.CharField(source='actor.email', default=None, read_only=True)

    class Meta:
        model = LogEntry
        fields = ['id', 'action', 'model', 'object_id', 'object_repr', 'changes', 'actor', 'remote_addr',
                  'timestamp']
        read_only_fields = fields

    def get_action(self, obj):
        return obj.get_action_display().lower()

    def get_changes(self, obj):
        return obj.changes_dict


# Billing and platform

class FeatureSerializer(serializers.ModelSerializer):
    class Meta:
        model = Feature
        fields = ['id', 'code', 'name', 'description', 'module', 'is_active']
        read_only_fields = fields


class PlanSerializer(serializers.ModelSerializer):
    features = serializers.SlugRelatedField(many=True, read_only=True, slug_field='code')

    class Meta:
        model = Plan
        fields = ['id', 'code', 'name', 'description', 'price_monthly', 'price_yearly', 'currency', 'max_users',
                  'max_orders_per_month', 'max_channels', 'is_active', 'sort_order', 'features']
        read_only_fields = fields


class PlanInputSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50, required=False)
    name = serializers.CharField(max_length=100, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    price_monthly = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    price_yearly = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    currency = serializers.CharField(max_length=3, required=False)
    max_users = serializers.IntegerField(min_value=0, required=False)
    max_orders_per_month = serializers.IntegerField(min_value=0, required=False)
    max_channels = serializers.IntegerField(min_value=0, required=False)
    is_active = serializers.BooleanField(required=False)
    sort_order = serializers.IntegerField(required=False)
    feature_codes = serializers.ListField(child=serializers.CharField(), required=False)


class SubscriptionSerializer(serializers.ModelSerializer):
    plan = PlanSerializer(read_only=True)
    is_in_trial = serializers.BooleanField(read_only=True)
    is_usable = serializers.BooleanField(read_only=True)

    class Meta:
        model = Subscription
        fields = ['id', 'plan', 'status', 'billing_cycle', 'price', 'currency', 'trial_ends_at',
                  'current_period_start', 'current_period_end', 'cancelled_at', 'cancel_reason', 'paused_at',
                  'is_in_trial', 'is_usable']
        read_only_fields = fields


class TenantSerializer(serializers.ModelSerializer):
    plan = serializers.CharField(source='subscription.plan.code', default=None, read_only=True)
    subscription_status = serializers.CharField(source='subscription.status', default=None, read_only=True)

    class Meta:
        model = Tenant
        fields = ['id', 'name', 'slug', 'company_name', 'status', 'contact_email', 'contact_phone',
                  'trial_ends_at', 'plan', 'subscription_status', 'deleted_at', 'created_at']
        read_only_fields = fields


class TenantActivityLogSerializer(serializers.ModelSerializer):
    performed_by = serializers.CharField(source='performed_by.email', default=None, read_only=True)

    class Meta:
        model = TenantActivityLog
        fields = ['id', 'action', 'performed_by', 'details', 'ip_address', 'performed_at']
        read_only_fields = fields


class CreateTenantInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    slug = serializers.SlugField(required=False, allow_blank=True)
    owner_email = serializers.EmailField()
    owner_password = serializers.CharField(trim_whitespace=False, min_length=8)
    owner_first_name = serializers.CharField(required=False, allow_blank=True, default='')
    owner_last_name = serializers.CharField(required=False, allow_blank=True, default='')
    contact_phone = serializers.CharField(required=False, allow_blank=True, default='')
    plan_code = serializers.CharField(required=False, allow_blank=True)


class ExtendTrialInputSerializer(serializers.Serializer):
    days = serializers.IntegerField(min_value=1, max_value=365)


class ChangePlanInputSerializer(serializers.Serializer):
    plan_code = serializers.CharField()
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)


class SubscriptionActionInputSerializer(serializers.Serializer):
    ACTIONS = ('activate', 'cancel', 'renew', 'pause', 'resume')

    action = serializers.ChoiceField(choices=ACTIONS)
    yearly = serializers.BooleanField(required=False, default=False)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False,
                                     allow_null=True, default=None)
    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=500)


class PlatformLoginInputSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(trim_whitespace=False)


class PlatformAdminSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = PlatformAdmin
        fields = ['id', 'email', 'first_name', 'last_name', 'full_name', 'is_super_admin', 'is_active',
                  'last_login_at', 'created_at']
        read_only_fields = fields


class CreatePlatformAdminInputSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(trim_whitespace=False, min_length=8)
    first_name = serializers.CharField(required=False, allow_blank=True, default='')
    last_name = serializers.CharField(required=False, allow_blank=True, default='')
    is_super_admin = serializers.BooleanField(required=False, default=False)


class PlatformConfigSerializer(serializers.ModelSerializer):
    class Meta:
        model = PlatformConfig
        fields = ['maintenance_mode', 'support_email', 'announcement_message', 'updated_at']
        read_only_fields = ['updated_at']
        extra_kwargs = {
            'maintenance_mode': {'required': False},
            'support_email': {'required': False},
            'announcement_message': {'required': False},
        }


class PlatformSettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = PlatformSettings
        fields = ['key', 'value', 'description', 'category', 'is_public', 'updated_at']
        read_only_fields = ['updated_at']
        extra_kwargs = {'key': {'validators': []}}
