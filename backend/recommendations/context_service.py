"""
ContextService: assembles the read-only snapshot of where a traveler stands
(time of day, current and next segment, city progress, picks and nearby
places). Rebuilt on every request and every scheduled run.
"""
import logging
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.utils import timezone

from locations.services import GeoService
from recommendations.dtos import ContextSnapshot, PointDTO, SegmentSnapshot
from trips.models import Trip, TripSegment
from trips.services import CurrentSegmentInfo, SegmentService, local_now

logger = logging.getLogger(__name__)

PICKS_LIMIT = 5


def time_of_day(hour: int) -> str:
    """morning 5-12, afternoon 12-17, evening 17-21, night otherwise."""
    if 5 <= hour < 12:
        return 'morning'
    if 12 <= hour < 17:
        return 'afternoon'
    if 17 <= hour < 21:
        return 'evening'
    return 'night'


def _accommodation(segment: TripSegment) -> Optional[PointDTO]:
    point = segment.get_accommodation_point()
    return PointDTO(*point) if point else None


def current_segment_snapshot(info: CurrentSegmentInfo) -> Optional[SegmentSnapshot]:
    if info.segment is None:
        return None
    segment = info.segment
    return SegmentSnapshot(
        segment_id=segment.id,
        city=segment.city,
        start_date=segment.start_date,
        end_date=segment.end_date,
        day_number=info.day_number,
        total_days=info.total_days,
        days_remaining=info.days_remaining,
        accommodation_name=segment.accommodation_name,
        accommodation=_accommodation(segment),
    )


def next_segment_snapshot(segment: Optional[TripSegment], today) -> Optional[SegmentSnapshot]:
    if segment is None:
        return None
    return SegmentSnapshot(
        segment_id=segment.id,
        city=segment.city,
        start_date=segment.start_date,
        end_date=segment.end_date,
        total_days=(segment.end_date - segment.start_date).days + 1,
        days_until=(segment.start_date - today).days,
        accommodation_name=segment.accommodation_name,
        accommodation=_accommodation(segment),
    )


class ContextService:
    """
    Domain Service combining the trip, segment and saved place stores into a
    ContextSnapshot. Top-rated and must-visit lists use the plain rating
    ordering of the place store, not the ranking pipeline.
    """

    def __init__(self):
        self.nearby_radius_m = settings.TRAVEL_ENGINE['CONTEXT_NEARBY_RADIUS_M']
        self.accommodation_radius_m = settings.TRAVEL_ENGINE['ACCOMMODATION_RADIUS_M']

    def build_context(
        self,
        user,
        trip: Trip,
        location: Optional[PointDTO] = None,
        now: Optional[datetime] = None,
    ) -> ContextSnapshot:
        now = now or timezone.now()
        info = SegmentService.get_current_segment(trip, now)
        tz_name = info.segment.timezone if info.segment else SegmentService.get_trip_timezone(trip)
        local_time = local_now(tz_name, now)

        current = current_segment_snapshot(info)
        next_segment = next_segment_snapshot(
            SegmentService.get_next_segment(trip, info.local_date),
            info.local_date,
        )

        city = current.city if current else None
        segment = info.segment
        stats = GeoService.city_stats(trip, city, segment)

        snapshot = ContextSnapshot(
            user_id=user.pk,
            trip_id=trip.pk,
            trip_name=trip.name,
            local_time=local_time,
            time_of_day=time_of_day(local_time.hour),
            current_segment=current,
            next_segment=next_segment,
            is_transit_day=info.is_transit_day,
            visited_count=stats['visited'],
            unvisited_count=stats['unvisited'],
            by_category=stats['by_category'],
            top_rated=GeoService.top_rated(trip, city=city, segment=segment, limit=PICKS_LIMIT),
            must_visit=GeoService.must_visit(trip, city=city, segment=segment, limit=PICKS_LIMIT),
        )

        unvisited = GeoService.for_trips([trip.pk], exclude_visited=True)
        if location is not None:
            snapshot.nearby = GeoService.find_nearby(
                unvisited, location.latitude, location.longitude, self.nearby_radius_m, limit=PICKS_LIMIT,
            )
            snapshot.nearby_origin = 'user'
        elif current is not None and current.accommodation is not None:
            snapshot.nearby = GeoService.find_nearby(
                unvisited,
                current.accommodation.latitude,
                current.accommodation.longitude,
                self.accommodation_radius_m,
                limit=PICKS_LIMIT,
            )
            snapshot.nearby_origin = 'accommodation'

        logger.debug(
            f"Built context for trip {trip.pk}: city={city} day={info.day_number} "
            f"unvisited={snapshot.unvisited_count} nearby={len(snapshot.nearby)}"
        )
        return snapshot
