"""
URL configuration for the recommendations module.
"""
from django.urls import path
from recommendations.views import RankPlacesView, AlternativesView, TripContextView

app_name = 'recommendations'

urlpatterns = [
    path('rank/', RankPlacesView.as_view(), name='rank_places'),
    path('alternatives/', AlternativesView.as_view(), name='find_alternatives'),
    path('context/<uuid:trip_id>/', TripContextView.as_view(), name='trip_context'),
]
