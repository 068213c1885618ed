import uuid
from datetime import time

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone


class NotificationKind(models.TextChoices):
    """Enumeration for proactive notification types"""
    MORNING = 'morning', 'Morning briefing'
    EVENING = 'evening', 'Evening recap'
    LAST_DAY = 'last_day', 'Last day warning'
    SEGMENT_TRANSITION = 'segment_transition', 'Segment transition'
    PROXIMITY = 'proximity', 'Nearby place'
    MEAL = 'meal', 'Meal suggestion'


class DevicePlatform(models.TextChoices):
    """Enumeration for device platforms"""
    iOS = 'iOS', 'iOS'
    ANDROID = 'ANDROID', 'Android'
    WEB = 'WEB', 'Web'


def in_quiet_window(moment: time, start: time, end: time) -> bool:
    """
    Minute-resolution check of a local time against a quiet window.
    A window whose start is after its end wraps midnight; an empty window
    (start == end) is never quiet.
    """
    moment = moment.replace(second=0, microsecond=0)
    if start > end:
        return moment >= start or moment < end
    return start <= moment < end


class Notification(models.Model):
    """
    A persistent record of a proactive alert sent to a user. This allows users
    to view an activity list inside the app even if they missed the push
    notification on their lock screen. The rows also back the daily cap.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    trip = models.ForeignKey(
        'trips.Trip',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notifications'
    )

    kind = models.CharField(
        max_length=20,
        choices=NotificationKind.choices,
        help_text="morning, evening, last_day, segment_transition, proximity, meal"
    )

    title = models.CharField(max_length=200)
    body = models.TextField()

    # Extra payload for frontend navigation (place id, trip id, city...)
    data = models.JSONField(default=dict, blank=True)

    is_read = models.BooleanField(default=False)

    # Set by the dispatcher so the daily cap can be evaluated at a given instant
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'notifications_notification'
        indexes = [
            models.Index(fields=['recipient', 'created_at'], name='notif_recipient_created_idx'),
            models.Index(fields=['recipient', 'is_read'], name='notif_recipient_read_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.kind} notification for {self.recipient.username}"

    def mark_as_read(self):
        """Updates is_read to True and saves the instance."""
        self.is_read = True
        self.save(update_fields=['is_read', 'updated_at'])

    def get_deep_link(self):
        """
        Mobile app schema URL: the highlighted place when the payload carries
        one, otherwise the trip home screen.
        """
        place_id = self.data.get('place_id')
        if place_id:
            return f'travelcompanion://place/{place_id}'
        if self.trip_id:
            return f'travelcompanion://trip/{self.trip_id}'
        return None


class DeviceToken(models.Model):
    """
    Stores Firebase Cloud Messaging (FCM) device tokens for push notifications.
    One user can have multiple active tokens across different devices.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='device_tokens'
    )

    token = models.CharField(max_length=500, unique=True)

    platform = models.CharField(
        max_length=20,
        choices=DevicePlatform.choices,
        default=DevicePlatform.ANDROID
    )

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'notifications_device_token'
        indexes = [
            models.Index(fields=['user', 'is_active'], name='device_user_active_idx'),
        ]

    def __str__(self):
        return f"Device token for {self.user.username} ({self.platform})"


class NotificationPreference(models.Model):
    """
    Per-user notification settings. The row without a trip is the user's
    default; a row with a trip overrides it for that trip only.
    """

    # Notification kind -> toggle field
    KIND_TOGGLES = {
        NotificationKind.MORNING: 'morning_briefing',
        NotificationKind.LAST_DAY: 'morning_briefing',
        NotificationKind.EVENING: 'evening_recap',
        NotificationKind.SEGMENT_TRANSITION: 'segment_alerts',
        NotificationKind.PROXIMITY: 'nearby_alerts',
        NotificationKind.MEAL: 'meal_suggestions',
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notification_preferences'
    )
    trip = models.ForeignKey(
        'trips.Trip',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notification_preferences',
        help_text="Empty for the user's default preferences"
    )

    morning_briefing = models.BooleanField(default=True)
    evening_recap = models.BooleanField(default=True)
    nearby_alerts = models.BooleanField(default=True)
    segment_alerts = models.BooleanField(default=True)
    meal_suggestions = models.BooleanField(default=True)

    # Local wall-clock times in the traveler's current timezone
    quiet_start = models.TimeField(default=time(22, 0))
    quiet_end = models.TimeField(default=time(7, 0))

    max_daily_notifications = models.PositiveIntegerField(default=10)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['user'],
                condition=Q(trip__isnull=True),
                name='pref_user_default_uniq',
            ),
            models.UniqueConstraint(
                fields=['user', 'trip'],
                condition=Q(trip__isnull=False),
                name='pref_user_trip_uniq',
            ),
        ]

    def __str__(self):
        scope = self.trip.name if self.trip_id else 'default'
        return f"Notification preferences for {self.user.username} ({scope})"

    def is_enabled(self, kind) -> bool:
        return getattr(self, self.KIND_TOGGLES[NotificationKind(kind)])

    def is_quiet_at(self, moment: time) -> bool:
        return in_quiet_window(moment, self.quiet_start, self.quiet_end)


class ProximityAlertRecord(models.Model):
    """
    Append-only log of dispatched proximity alerts. Only read back inside the
    cooldown window; rows are never updated.
    """
    id = models.BigAutoField(primary_key=True)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='proximity_alerts'
    )
    trip = models.ForeignKey(
        'trips.Trip',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='proximity_alerts'
    )
    place = models.ForeignKey(
        'locations.SavedPlace',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='proximity_alerts'
    )
    distance_m = models.FloatField()

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', '-created_at'], name='alert_user_created_idx'),
        ]

    def __str__(self):
        return f"Proximity alert for {self.user.username} at {self.created_at}"
