"""
Domain services for trips app - segment lookup and local time resolution.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils import timezone

from .models import Trip, TripSegment

logger = logging.getLogger(__name__)


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """
    Returns a ZoneInfo for an IANA name, falling back to DEFAULT_TIMEZONE
    (and then UTC) when the name is empty or unknown.
    """
    for candidate in (name, settings.DEFAULT_TIMEZONE, 'UTC'):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone '{candidate}', falling back")
    return ZoneInfo('UTC')


def local_now(tz_name: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Current (or given) instant expressed in the named timezone."""
    now = now or timezone.now()
    return now.astimezone(resolve_timezone(tz_name))


@dataclass
class CurrentSegmentInfo:
    """Where a trip stands on a given local day."""
    segment: Optional[TripSegment]
    local_date: date
    day_number: int = 0
    total_days: int = 0
    days_remaining: int = 0
    is_transit_day: bool = False

    @property
    def is_last_day(self) -> bool:
        return self.segment is not None and self.days_remaining == 0


class SegmentService:
    """
    Domain service that works out the active and upcoming segment of a trip.
    Every segment is evaluated against the calendar date in its own timezone,
    so a single UTC instant can be "day 3 in Tokyo" and "day 2 in Lisbon".
    """

    @staticmethod
    def _candidates(trip: Trip, now: datetime) -> List[TripSegment]:
        # Any timezone is within +/- 1 calendar day of UTC
        utc_day = now.astimezone(ZoneInfo('UTC')).date()
        return list(
            TripSegment.objects.filter(
                trip=trip,
                start_date__lte=utc_day + timedelta(days=1),
                end_date__gte=utc_day - timedelta(days=1),
            ).order_by('start_date', 'order_index')
        )

    @staticmethod
    def get_current_segment(trip: Trip, now: Optional[datetime] = None) -> CurrentSegmentInfo:
        """
        Finds the segment whose [start_date, end_date] contains the local date.

        Returns:
            CurrentSegmentInfo with day counters; segment is None when no
            segment covers today (is_transit_day is set when today falls
            between two segments).
        """
        now = now or timezone.now()

        for segment in SegmentService._candidates(trip, now):
            today = local_now(segment.timezone, now).date()
            if segment.contains(today):
                day_number = (today - segment.start_date).days + 1
                total_days = (segment.end_date - segment.start_date).days + 1
                return CurrentSegmentInfo(
                    segment=segment,
                    local_date=today,
                    day_number=day_number,
                    total_days=total_days,
                    days_remaining=total_days - day_number,
                )

        today = local_now(SegmentService.get_trip_timezone(trip), now).date()
        has_previous = TripSegment.objects.filter(trip=trip, end_date__lt=today).exists()
        has_next = TripSegment.objects.filter(trip=trip, start_date__gt=today).exists()
        return CurrentSegmentInfo(
            segment=None,
            local_date=today,
            is_transit_day=has_previous and has_next,
        )

    @staticmethod
    def get_next_segment(trip: Trip, after: date) -> Optional[TripSegment]:
        """First segment starting strictly after the given date."""
        return TripSegment.objects.filter(
            trip=trip,
            start_date__gt=after,
        ).order_by('start_date', 'order_index').first()

    @staticmethod
    def get_trip_timezone(trip: Trip) -> str:
        """
        Timezone used for a trip when no segment is active: the first
        segment's timezone, then the owner's profile, then the default.
        """
        first = trip.segments.order_by('start_date', 'order_index').first()
        if first and first.timezone:
            return first.timezone
        profile = getattr(trip.user, 'profile', None)
        if profile is not None:
            return profile.get_timezone()
        return settings.DEFAULT_TIMEZONE

    @staticmethod
    def find_active_segments(now: Optional[datetime] = None) -> List[TripSegment]:
        """
        All segments (across trips) whose local date range includes today.
        Used by the briefing batch to find eligible trips.
        """
        now = now or timezone.now()
        utc_day = now.astimezone(ZoneInfo('UTC')).date()
        active = []
        queryset = TripSegment.objects.filter(
            start_date__lte=utc_day + timedelta(days=1),
            end_date__gte=utc_day - timedelta(days=1),
        ).select_related('trip', 'trip__user').order_by('start_date', 'order_index')
        for segment in queryset:
            if segment.contains(local_now(segment.timezone, now).date()):
                active.append(segment)
        return active


def get_member_trip(user, trip_id) -> Optional[Trip]:
    """Trip with the given id when the user owns or has joined it, else None."""
    if not trip_id:
        return None
    try:
        trip = Trip.objects.filter(pk=trip_id).first()
    except (ValueError, ValidationError):
        return None
    if trip is None or not trip.is_member(user):
        return None
    return trip
