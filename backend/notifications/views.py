from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import NotFound
from trips.services import get_member_trip

from .briefings import BriefingService
from .models import DeviceToken, Notification, NotificationKind
from .proximity import ProximityAlertService
from .serializers import (
    AlertResultSerializer,
    BriefingTriggerSerializer,
    DeviceTokenRegisterSerializer,
    DeviceTokenSerializer,
    LocationUpdateSerializer,
    NotificationPreferenceSerializer,
    NotificationSerializer,
)
from .services import PreferenceService, get_push_service


def trip_not_found(trip_id):
    return Response(
        NotFound(f"Trip {trip_id} not found").as_dict(),
        status=status.HTTP_404_NOT_FOUND
    )


class NotificationViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.UpdateModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    """
    ViewSet for the user's notification history.

    GET /notifications/ - List user's notifications (?is_read=, ?kind=, ?trip=)
    GET /notifications/{id}/ - Get notification detail
    PATCH /notifications/{id}/ - Mark as read/unread
    DELETE /notifications/{id}/ - Delete notification

    Custom actions:
    - POST /notifications/mark-all-as-read/ - Mark all as read
    - GET /notifications/unread-count/ - Get count of unread notifications
    """

    permission_classes = [IsAuthenticated]
    serializer_class = NotificationSerializer

    def get_queryset(self):
        """Return notifications for the current user"""
        queryset = Notification.objects.filter(recipient=self.request.user)

        is_read = self.request.query_params.get('is_read')
        if is_read is not None:
            queryset = queryset.filter(is_read=is_read.lower() == 'true')

        kind = self.request.query_params.get('kind')
        if kind and kind in NotificationKind.values:
            queryset = queryset.filter(kind=kind)

        trip_id = self.request.query_params.get('trip')
        if trip_id:
            queryset = queryset.filter(trip_id=trip_id)

        return queryset.order_by('-created_at')

    @action(detail=False, methods=['post'], url_path='mark-all-as-read')
    def mark_all_as_read(self, request):
        """Mark all unread notifications as read"""
        updated_count = Notification.objects.filter(
            recipient=request.user,
            is_read=False
        ).update(is_read=True)
        return Response(
            {'message': f'Marked {updated_count} notifications as read', 'count': updated_count},
            status=status.HTTP_200_OK
        )

    @action(detail=False, methods=['get'], url_path='unread-count')
    def unread_count(self, request):
        """Get count of unread notifications for current user"""
        count = Notification.objects.filter(recipient=request.user, is_read=False).count()
        return Response({'unread_count': count}, status=status.HTTP_200_OK)


class DeviceTokenViewSet(mixins.ListModelMixin,
                         mixins.DestroyModelMixin,
                         viewsets.GenericViewSet):
    """
    ViewSet for managing device tokens for push notifications.

    GET /device-tokens/ - List device tokens for current user
    DELETE /device-tokens/{id}/ - Remove a device token

    Custom actions:
    - POST /device-tokens/register/ - Register device with token and platform
    """

    permission_classes = [IsAuthenticated]
    serializer_class = DeviceTokenSerializer

    def get_queryset(self):
        """Return device tokens for the current user"""
        return DeviceToken.objects.filter(user=self.request.user)

    @action(detail=False, methods=['post'])
    def register(self, request):
        """
        Register a new device token for push notifications.

        Expected payload:
        {
            "token": "abc123xyz",
            "platform": "ANDROID" | "iOS" | "WEB"
        }
        """
        serializer = DeviceTokenRegisterSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        device_token = get_push_service().register_device(
            user=request.user,
            token=serializer.validated_data['token'],
            platform=serializer.validated_data['platform'],
        )
        return Response(
            {
                'message': 'Device registered successfully',
                'device_id': device_token.id
            },
            status=status.HTTP_201_CREATED
        )


class NotificationPreferenceView(APIView):
    """
    Notification preferences of the current user.

    GET /preferences/?trip=<uuid> - Effective preferences (trip override or default)
    PATCH /preferences/?trip=<uuid> - Update; a trip override is created on first use
    """
    permission_classes = [IsAuthenticated]

    def _trip(self, request):
        trip_id = request.query_params.get('trip')
        if not trip_id:
            return None, None
        trip = get_member_trip(request.user, trip_id)
        if trip is None:
            return None, trip_not_found(trip_id)
        return trip, None

    def get(self, request):
        trip, error = self._trip(request)
        if error:
            return error
        preferences = PreferenceService.get_for(request.user, trip)
        return Response(NotificationPreferenceSerializer(preferences).data)

    def patch(self, request):
        trip, error = self._trip(request)
        if error:
            return error

        serializer = NotificationPreferenceSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        preferences = PreferenceService.update(request.user, serializer.validated_data, trip)
        return Response(NotificationPreferenceSerializer(preferences).data)


class LocationUpdateView(APIView):
    """
    Location update from the device; may trigger a proximity alert.

    POST /location/
    Body:
    {
        "latitude": 35.6595,
        "longitude": 139.7005,
        "trip": "uuid"  (optional, all of the user's trips when omitted)
    }
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = LocationUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        trip = None
        if data.get('trip'):
            trip = get_member_trip(request.user, data['trip'])
            if trip is None:
                return trip_not_found(data['trip'])

        result = ProximityAlertService().on_location_update(
            request.user,
            data['latitude'],
            data['longitude'],
            trip=trip,
        )
        return Response(AlertResultSerializer(result).data, status=status.HTTP_200_OK)


class BriefingTriggerView(APIView):
    """
    Sends one briefing right away, bypassing the hour check (preferences,
    quiet hours and the daily cap still apply).

    POST /briefings/send/
    Body: {"trip": "uuid", "kind": "morning"}
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = BriefingTriggerSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        trip = get_member_trip(request.user, data['trip'])
        if trip is None:
            return trip_not_found(data['trip'])

        result = BriefingService().send_briefing(request.user, trip, data['kind'])
        return Response(AlertResultSerializer(result).data, status=status.HTTP_200_OK)
