"""
URL routing for notifications app.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    BriefingTriggerView,
    DeviceTokenViewSet,
    LocationUpdateView,
    NotificationPreferenceView,
    NotificationViewSet,
)

router = DefaultRouter()
router.register(r'notifications', NotificationViewSet, basename='notification')
router.register(r'device-tokens', DeviceTokenViewSet, basename='device-token')

app_name = 'notifications'

urlpatterns = [
    path('preferences/', NotificationPreferenceView.as_view(), name='preferences'),
    path('location/', LocationUpdateView.as_view(), name='location_update'),
    path('briefings/send/', BriefingTriggerView.as_view(), name='send_briefing'),
    path('', include(router.urls)),
]
