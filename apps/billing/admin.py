from django.contrib import admin

from .models import Feature, Plan, Subscription


@admin.register(Feature)
class FeatureAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'module', 'is_active')
    list_filter = ('module', 'is_active')
    search_fields = ('code', 'name')


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'price_monthly', 'price_yearly', 'max_users', 'is_active', 'sort_order')
    list_filter = ('is_active',)
    filter_horizontal = ('features',)


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ('tenant', 'plan', 'status', 'billing_cycle', 'current_period_end')
    list_filter = ('status', 'billing_cycle', 'plan')
    search_fields = ('tenant__name', 'tenant__slug')
    raw_id_fields = ('tenant',)
