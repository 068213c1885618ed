"""
Proximity alerts: decides, for one location update, whether to tell the
traveler that a saved place is close by.

The cooldown is a read-then-write against ProximityAlertRecord with no lock.
Two updates for the same user processed at the same moment can both pass the
check and both alert; that duplicate is accepted.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from core.exceptions import InvalidInput
from locations.models import SavedPlace
from locations.services import GeoService
from trips.models import Trip

from .models import Notification, NotificationKind, ProximityAlertRecord
from .services import NotificationService, PreferenceService, user_timezone

logger = logging.getLogger(__name__)

RIGHT_HERE_M = 100


class AlertOutcome(str, Enum):
    """Result of one proactive notification attempt. Only FAILED is an error."""
    SENT = 'sent'
    NO_NEARBY_PLACES = 'no_nearby_places'
    DISABLED = 'disabled'
    COOLDOWN = 'cooldown'
    QUIET_HOURS = 'quiet_hours'
    DAILY_CAP = 'daily_cap'
    NOT_APPLICABLE = 'not_applicable'
    FAILED = 'failed'


@dataclass
class AlertResult:
    outcome: AlertOutcome
    notification: Optional[Notification] = None
    place: Optional[SavedPlace] = None
    distance: Optional[float] = None

    @property
    def sent(self) -> bool:
        return self.outcome == AlertOutcome.SENT

    @property
    def suppressed(self) -> bool:
        return self.outcome not in (AlertOutcome.SENT, AlertOutcome.FAILED)


def describe_distance(meters: float) -> str:
    if meters < RIGHT_HERE_M:
        return 'right here'
    return f"{round(meters)}m away"


def compose_proximity_message(place: SavedPlace, distance: float):
    title = f"{place.name} is {describe_distance(distance)}!"
    body = f"That's the {place.category} spot"
    if place.source_title:
        body += f' from "{place.source_title}"'
    body += ". Want to check it out?"
    return title, body


def user_trips(user) -> List[Trip]:
    return list(Trip.objects.filter(Q(user=user) | Q(members=user)).distinct())


class ProximityAlertService:
    """
    Domain Service for location updates. The cooldown is global per user:
    any proximity alert in the window suppresses the next one, whichever
    trip produced it. Quiet hours do not apply here.
    """

    def __init__(self, notification_service: NotificationService = None):
        self.notification_service = notification_service or NotificationService()
        self.radius_m = settings.TRAVEL_ENGINE['PROXIMITY_RADIUS_M']
        self.cooldown = timedelta(minutes=settings.TRAVEL_ENGINE['PROXIMITY_COOLDOWN_MINUTES'])

    def on_location_update(
        self,
        user,
        latitude: float,
        longitude: float,
        trip: Optional[Trip] = None,
        now: Optional[datetime] = None,
    ) -> AlertResult:
        """
        Args:
            user: Traveler whose device reported the location
            latitude, longitude: Reported position
            trip: Restrict the search to one trip; None searches all of the user's trips
            now: Evaluation instant (defaults to the current time)

        Returns:
            AlertResult; `sent` tells whether a notification went out
        """
        now = now or timezone.now()
        try:
            GeoService.require_valid_location(latitude, longitude)
        except InvalidInput as e:
            logger.warning(f"Ignoring location update for user {user.pk}: {e}")
            return AlertResult(AlertOutcome.FAILED)

        preferences = PreferenceService.get_for(user, trip)
        if not preferences.nearby_alerts:
            return self._suppressed(user, AlertOutcome.DISABLED)

        trips = [trip] if trip is not None else user_trips(user)
        nearby = GeoService.find_nearby(
            GeoService.for_trips([t.pk for t in trips], exclude_visited=True),
            latitude,
            longitude,
            self.radius_m,
        )
        if not nearby:
            return AlertResult(AlertOutcome.NO_NEARBY_PLACES)

        if self.in_cooldown(user, now):
            return self._suppressed(user, AlertOutcome.COOLDOWN)

        closest = nearby[0]
        place_trip = trip or closest.trip
        tz_name = user_timezone(user, place_trip, now)
        if NotificationService.is_over_daily_cap(user, preferences, tz_name, now):
            return self._suppressed(user, AlertOutcome.DAILY_CAP)

        # Recorded first: a failed dispatch still starts the cooldown
        ProximityAlertRecord.objects.create(
            user=user,
            trip=place_trip,
            place=closest,
            distance_m=closest.distance,
            created_at=now,
        )
        title, body = compose_proximity_message(closest, closest.distance)
        try:
            with transaction.atomic():
                notification = self.notification_service.dispatch(
                    user,
                    NotificationKind.PROXIMITY.value,
                    title,
                    body,
                    trip=place_trip,
                    data={'place_id': str(closest.pk), 'distance': round(closest.distance)},
                    now=now,
                )
        except Exception:
            logger.exception(f"Proximity alert dispatch failed for user {user.pk} and place {closest.pk}")
            return AlertResult(AlertOutcome.FAILED, place=closest, distance=closest.distance)

        logger.info(f"Proximity alert sent to user {user.pk} for place {closest.pk} ({round(closest.distance)}m)")
        return AlertResult(AlertOutcome.SENT, notification=notification, place=closest, distance=closest.distance)

    def in_cooldown(self, user, now: datetime) -> bool:
        return ProximityAlertRecord.objects.filter(
            user=user,
            created_at__gt=now - self.cooldown,
            created_at__lte=now,
        ).exists()

    @staticmethod
    def _suppressed(user, outcome: AlertOutcome) -> AlertResult:
        logger.info(f"Proximity alert for user {user.pk} suppressed: {outcome.value}")
        return AlertResult(outcome)
