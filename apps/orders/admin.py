from django.contrib import admin

from .models import Order, OrderItem, OrderStatusHistory


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('total_amount',)
    exclude = ('tenant',)


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    extra = 0
    readonly_fields = ('from_status', 'to_status', 'reason', 'changed_by', 'changed_at')
    exclude = ('tenant',)
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ('order_number', 'tenant', 'customer_name', 'status', 'payment_status',
                    'total_amount', 'order_date')
    list_filter = ('status', 'payment_status', 'payment_method', 'tenant')
    search_fields = ('order_number', 'external_order_id', 'customer_name', 'customer_email', 'customer_phone')
    date_hierarchy = 'order_date'
    readonly_fields = ('order_number', 'subtotal', 'total_amount', 'confirmed_at', 'shipped_at',
                       'delivered_at', 'cancelled_at')
    inlines = [OrderItemInline, OrderStatusHistoryInline]
