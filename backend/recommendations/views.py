"""
Views for the recommendations module.
"""
import random

from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import NotFound
from locations.serializers import SavedPlaceListSerializer
from locations.services import GeoService
from recommendations.alternatives_service import AlternativesService
from recommendations.context_service import ContextService
from recommendations.dtos import AlternativesIntent, PointDTO, SurpriseIntent, UserContextDTO
from recommendations.ranking_service import RankingService
from recommendations.serializers import (
    AlternativesRequestSerializer,
    AlternativesResultSerializer,
    ContextSnapshotSerializer,
    PointDTOSerializer,
    RankRequestSerializer,
    build_intent,
)
from trips.services import get_member_trip
from user.models import UserProfile


def trip_not_found(trip_id):
    return Response(
        NotFound(f"Trip {trip_id} not found").as_dict(),
        status=status.HTTP_404_NOT_FOUND
    )


def build_user_context(request, trip, location_data) -> UserContextDTO:
    profile = UserProfile.for_user(request.user)
    return UserContextDTO(
        user_id=request.user.pk,
        trip_id=trip.pk,
        now=timezone.now(),
        location=PointDTO(**location_data) if location_data else None,
        display_name=profile.get_display_name(),
        trip_name=trip.name,
        destination=trip.destination,
    )


class RankPlacesView(APIView):
    """
    API endpoint ranking a trip's saved places for a structured intent.

    POST /api/recommendations/rank/
    Body:
    {
        "trip": "uuid",
        "intent": {"type": "category", "category": "food", "sort_by": "rating", "limit": 3},
        "location": {"latitude": 35.66, "longitude": 139.70}
    }
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = RankRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )
        data = serializer.validated_data

        trip = get_member_trip(request.user, data['trip'])
        if trip is None:
            return trip_not_found(data['trip'])

        intent = build_intent(data['intent'])
        user_context = build_user_context(request, trip, data.get('location'))

        if isinstance(intent, AlternativesIntent):
            result = AlternativesService().find_alternatives(
                intent.referenced_place,
                GeoService.for_trips([trip.pk]),
                user_context,
                reason=intent.reason,
                limit=intent.limit,
            )
            return Response({
                'intent': intent.type.value,
                'alternatives': AlternativesResultSerializer(result).data,
            })

        candidates = list(GeoService.for_trips([trip.pk], exclude_visited=True).order_by('created_at'))
        if isinstance(intent, SurpriseIntent):
            random.shuffle(candidates)

        places = RankingService().rank(intent, candidates, user_context)
        return Response({
            'intent': intent.type.value,
            'count': len(places),
            'results': SavedPlaceListSerializer(places, many=True).data,
        })


class AlternativesView(APIView):
    """
    API endpoint for finding substitutes for a saved place.

    POST /api/recommendations/alternatives/
    Body:
    {
        "trip": "uuid",
        "referenced_place": "Ichiran Ramen",
        "reason": "closed",
        "location": {"latitude": 35.66, "longitude": 139.70}
    }
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = AlternativesRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )
        data = serializer.validated_data

        trip = get_member_trip(request.user, data['trip'])
        if trip is None:
            return trip_not_found(data['trip'])

        result = AlternativesService().find_alternatives(
            data['referenced_place'],
            GeoService.for_trips([trip.pk]),
            build_user_context(request, trip, data.get('location')),
            reason=data.get('reason') or None,
        )
        return Response(AlternativesResultSerializer(result).data, status=status.HTTP_200_OK)


class TripContextView(APIView):
    """
    API endpoint returning the context snapshot of a trip.

    GET /api/recommendations/context/<trip_id>/?latitude=35.66&longitude=139.70
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, trip_id):
        trip = get_member_trip(request.user, trip_id)
        if trip is None:
            return trip_not_found(trip_id)

        location = None
        if 'latitude' in request.query_params or 'longitude' in request.query_params:
            point = PointDTOSerializer(data=request.query_params)
            if not point.is_valid():
                return Response(
                    {'error': point.errors},
                    status=status.HTTP_400_BAD_REQUEST
                )
            location = point.to_dto()

        snapshot = ContextService().build_context(request.user, trip, location)
        return Response(ContextSnapshotSerializer(snapshot).data)
