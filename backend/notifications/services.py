"""
Push notification service using Firebase Cloud Messaging (FCM), the
notification dispatcher that records history, and the preference store.
"""
import logging
import os
from datetime import datetime
from typing import Dict, List, Optional

import firebase_admin
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from firebase_admin import credentials, exceptions as firebase_exceptions, messaging

from trips.models import Trip
from trips.services import SegmentService, local_now
from user.models import UserProfile

from .models import DeviceToken, Notification, NotificationPreference

logger = logging.getLogger(__name__)

# FCM errors meaning the token will never work again
REJECTED_TOKEN_ERRORS = (
    messaging.UnregisteredError,
    messaging.SenderIdMismatchError,
    firebase_exceptions.InvalidArgumentError,
)


class PushService:
    """
    Wrapper class for Firebase Cloud Messaging (FCM) Admin SDK.
    Handles the logic of finding user's active device tokens and dispatching messages.
    Delivery is fire-and-forget: failures are logged, never raised.
    """

    def __init__(self, credentials_path: Optional[str] = None, app=None):
        """
        Initialize the PushService with Firebase Admin SDK.

        Args:
            credentials_path: Path to Firebase service account JSON file.
                            If not provided, GOOGLE_APPLICATION_CREDENTIALS is used
                            when set; otherwise push delivery is disabled.
            app: An already initialized firebase_admin App
        """
        self.fcm_client = app
        if self.fcm_client is not None:
            return

        try:
            if firebase_admin._apps:
                self.fcm_client = firebase_admin.get_app()
            elif credentials_path:
                cred = credentials.Certificate(credentials_path)
                self.fcm_client = firebase_admin.initialize_app(cred)
            elif os.environ.get('GOOGLE_APPLICATION_CREDENTIALS'):
                self.fcm_client = firebase_admin.initialize_app(credentials.ApplicationDefault())
            else:
                logger.warning("No Firebase credentials configured. Push delivery disabled.")
                return
            logger.info("Firebase Admin SDK initialized successfully")
        except (ValueError, IOError) as e:
            logger.error(f"Failed to initialize Firebase Admin SDK: {str(e)}")
            self.fcm_client = None

    def register_device(self, user, token: str, platform: str) -> DeviceToken:
        """
        Saves or updates a DeviceToken record when a user logs in on a device.
        A token moving to another account is reassigned.
        """
        with transaction.atomic():
            device_token, created = DeviceToken.objects.update_or_create(
                token=token,
                defaults={
                    'user': user,
                    'platform': platform,
                    'is_active': True
                }
            )
        action = "created" if created else "updated"
        logger.info(f"Device token {action} for user {user.username}")
        return device_token

    def send_to_user(self, user_id, title: str, body: str, data: dict = None) -> int:
        """
        Sends a push notification to a specific user via all their active devices.

        Steps:
        1. Queries DeviceToken table for all active tokens belonging to user_id
        2. Sends a multicast message via FCM
        3. Deletes tokens FCM rejected
        4. Returns the number of successful deliveries

        Args:
            user_id: ID of the recipient user
            title: Notification title/header
            body: Notification body/content
            data: Optional dictionary with additional data payload

        Returns:
            int: Number of successfully delivered messages
        """
        if not self.fcm_client:
            logger.debug(f"FCM client not initialized. Skipping push for user {user_id}")
            return 0

        token_list = list(
            DeviceToken.objects.filter(user_id=user_id, is_active=True).values_list('token', flat=True)
        )
        if not token_list:
            logger.info(f"No active device tokens found for user {user_id}")
            return 0

        # FCM data payloads only accept string values
        payload = {key: str(value) for key, value in (data or {}).items() if value is not None}
        message = messaging.MulticastMessage(
            notification=messaging.Notification(title=title, body=body),
            data=payload,
            tokens=token_list,
        )

        try:
            response = messaging.send_each_for_multicast(message, app=self.fcm_client)
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            logger.error(f"Error sending notification to user {user_id}: {str(e)}")
            return 0

        if response.failure_count > 0:
            rejected = [
                token_list[idx]
                for idx, resp in enumerate(response.responses)
                if not resp.success and isinstance(resp.exception, REJECTED_TOKEN_ERRORS)
            ]
            self.cleanup_invalid_tokens(rejected)

        logger.info(
            f"Sent notification to user {user_id}: "
            f"{response.success_count} succeeded, {response.failure_count} failed"
        )
        return response.success_count

    def cleanup_invalid_tokens(self, failures: List[str]) -> None:
        """
        Removes invalid device tokens from the database when FCM returns an error.

        Args:
            failures: List of token strings that failed to deliver
        """
        if not failures:
            return
        deleted_count, _ = DeviceToken.objects.filter(token__in=failures).delete()
        logger.info(f"Cleaned up {deleted_count} invalid device tokens")


# Global instance for easy access
_push_service = None


def get_push_service(credentials_path: Optional[str] = None) -> PushService:
    """
    Get or create a global PushService instance.

    Args:
        credentials_path: Optional path to Firebase credentials file

    Returns:
        PushService: The push service instance
    """
    global _push_service
    if _push_service is None:
        _push_service = PushService(credentials_path or settings.FIREBASE_CREDENTIALS_PATH)
    return _push_service


def user_timezone(user, trip: Optional[Trip] = None, now: Optional[datetime] = None) -> str:
    """
    Timezone the user is living in right now: the active segment of the trip,
    then the trip's first segment, then the user's profile.
    """
    if trip is not None:
        info = SegmentService.get_current_segment(trip, now)
        if info.segment is not None:
            return info.segment.timezone
        return SegmentService.get_trip_timezone(trip)
    return UserProfile.for_user(user).get_timezone()


class NotificationService:
    """
    Notification dispatcher: stores every proactive notification in the
    user's history, then hands it to push delivery.
    """

    def __init__(self, push_service: PushService = None):
        self.push_service = push_service or get_push_service()

    def dispatch(
        self,
        user,
        kind: str,
        title: str,
        body: str,
        trip: Optional[Trip] = None,
        data: Optional[Dict] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        payload = {'type': kind}
        if trip is not None:
            payload['trip_id'] = str(trip.pk)
        payload.update(data or {})

        notification = Notification.objects.create(
            recipient=user,
            trip=trip,
            kind=kind,
            title=title,
            body=body,
            data=payload,
            created_at=now or timezone.now(),
        )
        delivered = self.push_service.send_to_user(
            user.pk,
            title,
            body,
            {**payload, 'notification_id': notification.id},
        )
        logger.info(f"Dispatched {kind} notification {notification.id} to user {user.pk} ({delivered} devices)")
        return notification

    @staticmethod
    def count_today(user, tz_name: str, now: Optional[datetime] = None) -> int:
        """Notifications recorded for the user since local midnight."""
        now = now or timezone.now()
        midnight = local_now(tz_name, now).replace(hour=0, minute=0, second=0, microsecond=0)
        return Notification.objects.filter(
            recipient=user,
            created_at__gte=midnight,
            created_at__lte=now,
        ).count()

    @staticmethod
    def is_over_daily_cap(user, preferences: NotificationPreference, tz_name: str,
                          now: Optional[datetime] = None) -> bool:
        return NotificationService.count_today(user, tz_name, now) >= preferences.max_daily_notifications


PREFERENCE_FIELDS = (
    'morning_briefing',
    'evening_recap',
    'nearby_alerts',
    'segment_alerts',
    'meal_suggestions',
    'quiet_start',
    'quiet_end',
    'max_daily_notifications',
)


class PreferenceService:
    """
    Preference store. A trip-specific row overrides the user's default row;
    rows are created lazily with defaults.
    """

    @staticmethod
    def get_default(user) -> NotificationPreference:
        preferences, created = NotificationPreference.objects.get_or_create(user=user, trip=None)
        if created:
            logger.info(f"Created default notification preferences for user {user.pk}")
        return preferences

    @staticmethod
    def get_for(user, trip: Optional[Trip] = None) -> NotificationPreference:
        """Effective preferences: the trip override when it exists, else the default row."""
        if trip is not None:
            override = NotificationPreference.objects.filter(user=user, trip=trip).first()
            if override is not None:
                return override
        return PreferenceService.get_default(user)

    @staticmethod
    def update(user, updates: Dict, trip: Optional[Trip] = None) -> NotificationPreference:
        """
        Applies the given fields. The first trip-scoped update creates the
        trip override, seeded from the default row.
        """
        if trip is None:
            preferences = PreferenceService.get_default(user)
        else:
            preferences = NotificationPreference.objects.filter(user=user, trip=trip).first()
            if preferences is None:
                base = PreferenceService.get_default(user)
                preferences = NotificationPreference(
                    user=user,
                    trip=trip,
                    **{field: getattr(base, field) for field in PREFERENCE_FIELDS}
                )

        for field in PREFERENCE_FIELDS:
            if field in updates:
                setattr(preferences, field, updates[field])
        preferences.save()
        logger.info(f"Updated notification preferences for user {user.pk} (trip={getattr(trip, 'pk', None)})")
        return preferences
