from django.contrib import admin

from .models import CourierAccount, Shipment, ShipmentItem, ShipmentTracking


class ShipmentItemInline(admin.TabularInline):
    model = ShipmentItem
    extra = 0
    exclude = ('tenant',)


class ShipmentTrackingInline(admin.TabularInline):
    model = ShipmentTracking
    extra = 0
    readonly_fields = ('status', 'location', 'remarks', 'raw_status', 'event_time')
    exclude = ('tenant',)
    can_delete = False


@admin.register(Shipment)
class ShipmentAdmin(admin.ModelAdmin):
    list_display = ('shipment_number', 'tenant', 'order', 'courier_type', 'awb_number', 'status', 'created_at')
    list_filter = ('status', 'courier_type', 'is_cod', 'tenant')
    search_fields = ('shipment_number', 'awb_number', 'order__order_number')
    raw_id_fields = ('order', 'courier_account')
    readonly_fields = ('shipment_number', 'picked_up_at', 'delivered_at')
    inlines = [ShipmentItemInline, ShipmentTrackingInline]


@admin.register(CourierAccount)
class CourierAccountAdmin(admin.ModelAdmin):
    list_display = ('name', 'tenant', 'courier_type', 'is_active', 'is_default', 'is_connected', 'priority')
    list_filter = ('courier_type', 'is_active', 'is_default', 'tenant')
    search_fields = ('name', 'account_id')
    exclude = ('api_secret', 'access_token')
