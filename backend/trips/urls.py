"""
URL routing for trips app.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import TripViewSet, TripSegmentViewSet

router = DefaultRouter()
router.register(r'trips', TripViewSet, basename='trip')
router.register(r'segments', TripSegmentViewSet, basename='segment')

app_name = 'trips'

urlpatterns = [
    path('', include(router.urls)),
]
