"""
Monitoring URLs configuration.
"""

from django.urls import path
from .views import HealthCheckView, ReadinessView, LivenessView

app_name = 'monitoring'

urlpatterns = [
    path('', HealthCheckView.as_view(), name='health'),
    path('ready/', ReadinessView.as_view(), name='readiness'),
    path('live/', LivenessView.as_view(), name='liveness'),
]
