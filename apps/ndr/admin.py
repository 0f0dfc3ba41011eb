from django.contrib import admin

from .models import NdrAction, NdrRecord, NdrRemark


class NdrActionInline(admin.TabularInline):
    model = NdrAction
    extra = 0
    readonly_fields = ('action_type', 'performed_by', 'details', 'outcome', 'call_duration_seconds', 'performed_at')
    exclude = ('tenant',)
    can_delete = False


class NdrRemarkInline(admin.TabularInline):
    model = NdrRemark
    extra = 0
    exclude = ('tenant',)


@admin.register(NdrRecord)
class NdrRecordAdmin(admin.ModelAdmin):
    list_display = ('awb_number', 'tenant', 'status', 'reason_code', 'assigned_to', 'attempt_count',
                    'next_follow_up_at', 'ndr_date')
    list_filter = ('status', 'reason_code', 'tenant')
    search_fields = ('awb_number', 'order__order_number', 'shipment__shipment_number')
    raw_id_fields = ('shipment', 'order', 'assigned_to')
    inlines = [NdrActionInline, NdrRemarkInline]
