"""
URL routing for locations app.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import SavedPlaceViewSet

router = DefaultRouter()
router.register(r'places', SavedPlaceViewSet, basename='place')

app_name = 'locations'

urlpatterns = [
    path('', include(router.urls)),
]
