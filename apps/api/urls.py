"""
API URL configuration for SuperEcom.
"""

from django.urls import include, path, re_path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView, SpectacularSwaggerView
from rest_framework.routers import DefaultRouter

from . import auth, inbound_webhooks, platform, views

app_name = 'api'

router = DefaultRouter()
router.register(r'orders', views.OrderViewSet, basename='order')
router.register(r'products', views.ProductViewSet, basename='product')
router.register(r'shipments', views.ShipmentViewSet, basename='shipment')
router.register(r'courier-accounts', views.CourierAccountViewSet, basename='courier-account')
router.register(r'ndr', views.NdrViewSet, basename='ndr')
router.register(r'channels', views.SalesChannelViewSet, basename='channel')
router.register(r'webhook-subscriptions', views.WebhookSubscriptionViewSet, basename='webhook-subscription')
router.register(r'team/users', views.TeamUserViewSet, basename='team-user')
router.register(r'team/roles', views.RoleViewSet, basename='team-role')
router.register(r'chat/conversations', views.ChatConversationViewSet, basename='chat-conversation')
router.register(r'audit-logs', views.AuditLogViewSet, basename='audit-log')

platform_router = DefaultRouter()
platform_router.register(r'tenants', platform.TenantAdminViewSet, basename='platform-tenant')
platform_router.register(r'plans', platform.PlanViewSet, basename='platform-plan')
platform_router.register(r'features', platform.FeatureViewSet, basename='platform-feature')
platform_router.register(r'admins', platform.PlatformAdminViewSet, basename='platform-admin')

auth_patterns = [
    path('login/', auth.LoginView.as_view(), name='login'),
    path('register/', auth.RegisterView.as_view(), name='register'),
    path('refresh/', auth.RefreshTokenView.as_view(), name='refresh'),
    path('logout/', auth.LogoutView.as_view(), name='logout'),
    path('forgot-password/', auth.ForgotPasswordView.as_view(), name='forgot-password'),
    path('reset-password/', auth.ResetPasswordView.as_view(), name='reset-password'),
    path('change-password/', auth.ChangePasswordView.as_view(), name='change-password'),
    path('me/', auth.MeView.as_view(), name='me'),
]

platform_patterns = [
    path('auth/login/', platform.PlatformLoginView.as_view(), name='platform-login'),
    path('auth/refresh/', platform.PlatformRefreshView.as_view(), name='platform-refresh'),
    path('auth/logout/', platform.PlatformLogoutView.as_view(), name='platform-logout'),
    path('auth/me/', platform.PlatformMeView.as_view(), name='platform-me'),
    path('overview/', platform.PlatformOverviewView.as_view(), name='platform-overview'),
    path('config/', platform.PlatformConfigView.as_view(), name='platform-config'),
    path('settings/', platform.PlatformSettingsView.as_view(), name='platform-settings'),
    path('settings/public/', platform.PublicSettingsView.as_view(), name='platform-public-settings'),
    path('', include(platform_router.urls)),
]

webhook_patterns = [
    re_path(r'^shopify/?$', inbound_webhooks.ShopifyWebhookView.as_view(), name='webhook-shopify'),
    re_path(r'^couriers/(?P<courier>[A-Za-z]+)/?$', inbound_webhooks.CourierWebhookView.as_view(),
            name='webhook-courier'),
    re_path(r'^health/?$', inbound_webhooks.WebhookHealthView.as_view(), name='webhook-health'),
]

urlpatterns = [
    path('v1/auth/', include(auth_patterns)),
    path('v1/platform/', include(platform_patterns)),
    path('v1/webhooks/', include(webhook_patterns)),
    path('v1/subscription/', views.SubscriptionView.as_view(), name='subscription'),
    path('v1/dashboard/', views.DashboardView.as_view(), name='dashboard'),
    path('v1/settings/', views.TenantSettingsView.as_view(), name='settings'),
    path('v1/settings/<str:section>/', views.TenantSettingsView.as_view(), name='settings-section'),
    path('v1/', include(router.urls)),
    path('schema/', SpectacularAPIView.as_view(), name='schema'),
    path('docs/', SpectacularSwaggerView.as_view(url_name='api:schema'), name='swagger-ui'),
    path('redoc/', SpectacularRedocView.as_view(url_name='api:schema'), name='redoc'),
]
