"""
API views for locations app endpoints.
"""
from django.db.models import Q
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from trips.services import get_member_trip
from .geocoding import GeocodingService
from .models import SavedPlace
from .serializers import SavedPlaceSerializer, SavedPlaceListSerializer, NearbyQuerySerializer
from .services import GeoService


class SavedPlaceViewSet(viewsets.ModelViewSet):
    """
    ViewSet for SavedPlace CRUD operations and geospatial queries.

    Supported Query Parameters for LIST endpoint:
    - trip: Filter by trip id
    - category: Filter by category
    - status: Filter by status (saved, visited)
    """
    serializer_class = SavedPlaceSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        """Places of trips the user owns or has joined"""
        user = self.request.user
        queryset = SavedPlace.objects.filter(
            Q(trip__user=user) | Q(trip__members=user)
        ).distinct()

        params = self.request.query_params
        if params.get('trip'):
            queryset = queryset.filter(trip_id=params.get('trip'))
        if params.get('category'):
            queryset = queryset.filter(category=params.get('category').lower())
        if params.get('status'):
            queryset = queryset.filter(status=params.get('status'))
        return queryset.order_by('-created_at')

    def get_serializer_class(self):
        """Use lightweight serializer for list views"""
        if self.action == 'list':
            return SavedPlaceListSerializer
        return SavedPlaceSerializer

    def perform_create(self, serializer):
        trip = serializer.validated_data['trip']
        if not trip.is_member(self.request.user):
            raise PermissionDenied("You are not a member of this trip.")
        serializer.save(added_by=self.request.user)

    @action(detail=False, methods=['get'])
    def nearby(self, request):
        """
        Find saved places of a trip near a location.

        Query parameters:
        - trip: uuid (required)
        - latitude: float (required)
        - longitude: float (required)
        - radius: int in meters (default: 500)
        - category: str (optional filter)
        """
        query = NearbyQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return Response(
                {'error': 'Invalid parameters', 'details': query.errors},
                status=status.HTTP_400_BAD_REQUEST
            )
        params = query.validated_data

        trip = get_member_trip(request.user, params['trip'])
        if trip is None:
            return Response(
                {'error': 'Trip not found', 'code': 'not_found'},
                status=status.HTTP_404_NOT_FOUND
            )

        places = GeoService.find_nearby(
            GeoService.for_trips([trip.pk]),
            params['latitude'],
            params['longitude'],
            params['radius'],
            category=params.get('category'),
        )
        serializer = SavedPlaceListSerializer(places, many=True)
        return Response({
            'count': len(places),
            'results': serializer.data
        })

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """
        Visited/unvisited counts for a trip, optionally for one city.

        Query parameters:
        - trip: uuid (required)
        - city: str (optional)
        """
        trip = get_member_trip(request.user, request.query_params.get('trip'))
        if trip is None:
            return Response(
                {'error': 'Trip not found', 'code': 'not_found'},
                status=status.HTTP_404_NOT_FOUND
            )
        return Response(GeoService.city_stats(trip, request.query_params.get('city')))

    @action(detail=True, methods=['post'])
    def geocode(self, request, pk=None):
        """Re-resolve the coordinates of a saved place and score the result."""
        place = self.get_object()
        place = GeocodingService().regeocode(place)
        return Response(SavedPlaceSerializer(place).data)

    @action(detail=True, methods=['post'])
    def visit(self, request, pk=None):
        """Mark a saved place as visited."""
        place = GeoService.mark_visited(self.get_object())
        return Response(SavedPlaceSerializer(place).data)
