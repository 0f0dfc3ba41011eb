from django.contrib import admin

from .models import InventoryItem, Product, StockMovement


class InventoryItemInline(admin.StackedInline):
    model = InventoryItem
    extra = 0
    readonly_fields = ('quantity_reserved', 'last_restocked_at')


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ('sku', 'name', 'tenant', 'selling_price', 'sync_status', 'is_active')
    list_filter = ('is_active', 'sync_status', 'tenant')
    search_fields = ('sku', 'name', 'brand')
    inlines = [InventoryItemInline]


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ('product', 'movement_type', 'quantity', 'quantity_before', 'quantity_after', 'created_at')
    list_filter = ('movement_type',)
    search_fields = ('product__sku', 'reference_id')
