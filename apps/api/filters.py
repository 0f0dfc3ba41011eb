import django_filters
from auditlog.models import LogEntry
from django.utils import timezone

from apps.ndr.models import NdrRecord, NdrStatus
from apps.orders.models import Order
from apps.shipments.models import Shipment


class OrderFilter(django_filters.FilterSet):
    date_from = django_filters.DateTimeFilter(field_name='order_date', lookup_expr='gte')
    date_to = django_filters.DateTimeFilter(field_name='order_date', lookup_expr='lte')
    min_total = django_filters.NumberFilter(field_name='total_amount', lookup_expr='gte')
    max_total = django_filters.NumberFilter(field_name='total_amount', lookup_expr='lte')

    class Meta:
        model = Order
        fields = ['status', 'payment_status', 'fulfillment_status', 'payment_method', 'channel', 'is_cod']


class ShipmentFilter(django_filters.FilterSet):
    date_from = django_filters.DateTimeFilter(field_name='created_at', lookup_expr='gte')
    date_to = django_filters.DateTimeFilter(field_name='created_at', lookup_expr='lte')

    class Meta:
        model = Shipment
        fields = ['status', 'courier_type', 'order', 'is_cod']


class NdrFilter(django_filters.FilterSet):
    is_open = django_filters.BooleanFilter(method='filter_open')
    overdue = django_filters.BooleanFilter(method='filter_overdue')
    date_from = django_filters.DateTimeFilter(field_name='ndr_date', lookup_expr='gte')
    date_to = django_filters.DateTimeFilter(field_name='ndr_date', lookup_expr='lte')

    class Meta:
        model = NdrRecord
        fields = ['status', 'reason_code', 'assigned_to']

    def filter_open(self, queryset, name, value):
        if value:
            return queryset.exclude(status__in=NdrStatus.CLOSED)
        return queryset.filter(status__in=NdrStatus.CLOSED)

    def filter_overdue(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.exclude(status__in=NdrStatus.CLOSED).filter(next_follow_up_at__lt=timezone.now())


class AuditLogFilter(django_filters.FilterSet):
    ACTIONS = {'create': LogEntry.Action.CREATE, 'update': LogEntry.Action.UPDATE,
               'delete': LogEntry.Action.DELETE}

    model = django_filters.CharFilter(field_name='content_type__model', lookup_expr='iexact')
    object_id = django_filters.CharFilter(field_name='object_pk')
    actor = django_filters.CharFilter(method='filter_actor')
    action = django_filters.ChoiceFilter(choices=[(name, name) for name in ACTIONS], method='filter_action')
    date_from = django_filters.DateFilter(field_name='timestamp', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='timestamp', lookup_expr='date__lte')

    class Meta:
        model = LogEntry
        fields = ['model', 'object_id', 'actor', 'action']

    def filter_actor(self, queryset, name, value):
        if value.isdigit():
            return queryset.filter(actor_id=int(value))
        return queryset.filter(actor__email__icontains=value)

    def filter_action(self, queryset, name, value):
        return queryset.filter(action=self.ACTIONS[value])
