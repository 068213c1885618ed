"""
API views for trips app endpoints.
"""
from django.db.models import Q
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Trip, TripSegment
from .serializers import TripSerializer, TripSegmentSerializer, CurrentSegmentSerializer
from .services import SegmentService


class TripViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Trip CRUD operations.

    Custom actions:
    - GET /trips/{id}/current-segment/ - Segment covering today with day counters
    """
    serializer_class = TripSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        """Trips the user owns or has joined"""
        user = self.request.user
        return Trip.objects.filter(
            Q(user=user) | Q(members=user)
        ).order_by('-created_at').distinct()

    def perform_create(self, serializer):
        """Automatically set the owner to the current user"""
        serializer.save(user=self.request.user)

    def perform_update(self, serializer):
        """Only allow owner to update"""
        if serializer.instance.user != self.request.user:
            raise PermissionDenied("You can only update your own trips.")
        serializer.save()

    def perform_destroy(self, instance):
        """Only allow owner to delete"""
        if instance.user != self.request.user:
            raise PermissionDenied("You can only delete your own trips.")
        instance.delete()

    @action(detail=True, methods=['get'], url_path='current-segment')
    def current_segment(self, request, pk=None):
        """Return the segment covering today in the segment's local time"""
        trip = self.get_object()
        info = SegmentService.get_current_segment(trip)
        serializer = CurrentSegmentSerializer(info)
        return Response(serializer.data)


class TripSegmentViewSet(viewsets.ModelViewSet):
    """
    ViewSet for TripSegment CRUD operations.

    Supported Query Parameters for LIST endpoint:
    - trip: Filter by trip id
    """
    serializer_class = TripSegmentSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        user = self.request.user
        queryset = TripSegment.objects.filter(
            Q(trip__user=user) | Q(trip__members=user)
        ).distinct()

        trip_id = self.request.query_params.get('trip')
        if trip_id:
            queryset = queryset.filter(trip_id=trip_id)
        return queryset.order_by('start_date', 'order_index')

    def perform_create(self, serializer):
        trip = serializer.validated_data['trip']
        if not trip.is_member(self.request.user):
            raise PermissionDenied("You are not a member of this trip.")
        serializer.save()
