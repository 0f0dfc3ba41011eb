from django.contrib import admin

from .models import SalesChannel


@admin.register(SalesChannel)
class SalesChannelAdmin(admin.ModelAdmin):
    list_display = ('name', 'type', 'tenant', 'is_active', 'is_connected', 'last_sync_at', 'last_sync_status')
    list_filter = ('type', 'is_active', 'is_connected')
    search_fields = ('name', 'store_name', 'external_shop_id')
    exclude = ('api_secret', 'access_token', 'webhook_secret')
    readonly_fields = ('last_sync_at', 'last_sync_status', 'last_connected_at', 'last_error')
