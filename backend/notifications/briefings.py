"""
Scheduled briefings: morning briefing, evening recap, last-day warning,
segment transition and meal suggestion.

The batch is meant to run every hour. Each traveler is only handled when
their own local hour equals the target hour, so a single server-side
schedule serves every timezone.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from django.conf import settings
from django.utils import timezone

from locations.services import GeoService
from recommendations.context_service import ContextService
from recommendations.dtos import ContextSnapshot
from trips.models import Trip, TripSegment
from trips.services import SegmentService, local_now

from .models import NotificationKind
from .proximity import AlertOutcome, AlertResult
from .services import NotificationService, PreferenceService, user_timezone

logger = logging.getLogger(__name__)

MUST_VISIT_SHOWN = 3


def default_schedule() -> List[Tuple[int, NotificationKind]]:
    """
    (local hour, kind) pairs run when no kind is requested explicitly. The
    morning briefing already carries the must-visit list on a segment's last
    day, so the standalone last-day warning is only sent on request.
    """
    morning = settings.TRAVEL_ENGINE['MORNING_BRIEFING_HOUR']
    evening = settings.TRAVEL_ENGINE['EVENING_BRIEFING_HOUR']
    return [
        (morning, NotificationKind.MORNING),
        (evening, NotificationKind.EVENING),
        (evening, NotificationKind.SEGMENT_TRANSITION),
    ]


def meal_for_hour(hour: int) -> str:
    if hour < 11:
        return 'breakfast'
    if hour < 16:
        return 'lunch'
    return 'dinner'


@dataclass
class BriefingMessage:
    title: str
    body: str
    data: Dict = field(default_factory=dict)


@dataclass
class BriefingRunResult:
    """Counts of one batch run. `failed` counts travelers whose briefing raised."""
    kind: str
    target_hour: int
    sent: int = 0
    suppressed: int = 0
    failed: int = 0
    outcomes: Dict[str, int] = field(default_factory=dict)

    def record(self, outcome: AlertOutcome):
        self.outcomes[outcome.value] = self.outcomes.get(outcome.value, 0) + 1
        if outcome == AlertOutcome.SENT:
            self.sent += 1
        elif outcome == AlertOutcome.FAILED:
            self.failed += 1
        else:
            self.suppressed += 1


def compose_morning(snapshot: ContextSnapshot) -> Optional[BriefingMessage]:
    segment = snapshot.current_segment
    if segment is None:
        return None
    top_pick = snapshot.top_rated[0] if snapshot.top_rated else None

    if segment.days_remaining == 0:
        title = f"Last day in {segment.city}!"
        body = f"{snapshot.unvisited_count} places left to visit. "
        must_visit = snapshot.must_visit[:MUST_VISIT_SHOWN]
        if must_visit:
            body += "Don't miss: " + ', '.join(place.name for place in must_visit)
        elif top_pick:
            body += f"Don't miss {top_pick.name}!"
        else:
            body += "Make it count!"
    else:
        title = f"Day {segment.day_number} in {segment.city}"
        body = f"{snapshot.unvisited_count} places to explore."
        if top_pick:
            body += f" Try {top_pick.name} today!"

    return BriefingMessage(title, body, {
        'segment_id': str(segment.segment_id),
        'city': segment.city,
        'day_number': segment.day_number,
    })


def compose_evening(snapshot: ContextSnapshot) -> Optional[BriefingMessage]:
    segment = snapshot.current_segment
    if segment is None:
        return None

    if segment.days_remaining == 0:
        title = f"Last night in {segment.city}"
        body = (f"{snapshot.visited_count} places visited, {snapshot.unvisited_count} still on your list. "
                f"Make the most of tonight!")
    elif segment.days_remaining == 1:
        title = f"Evening in {segment.city}"
        body = f"One more day here! {snapshot.unvisited_count} places left to explore."
    else:
        title = f"Day {segment.day_number} complete!"
        body = f"{snapshot.visited_count} places visited in {segment.city}. {segment.days_remaining} days to go!"

    return BriefingMessage(title, body, {'city': segment.city, 'day_number': segment.day_number})


def compose_last_day(snapshot: ContextSnapshot) -> Optional[BriefingMessage]:
    segment = snapshot.current_segment
    if segment is None or segment.days_remaining != 0:
        return None

    must_visit = snapshot.must_visit[:MUST_VISIT_SHOWN]
    if must_visit:
        body = "Don't miss: " + ', '.join(place.name for place in must_visit)
    else:
        body = f"{snapshot.unvisited_count} places still on your list!"
    return BriefingMessage(f"Last day in {segment.city}!", body, {'city': segment.city})


def compose_segment_transition(trip: Trip, snapshot: ContextSnapshot) -> Optional[BriefingMessage]:
    upcoming = snapshot.next_segment
    if upcoming is None or upcoming.days_until != 1:
        return None

    segment = TripSegment.objects.filter(pk=upcoming.segment_id).first()
    stats = GeoService.city_stats(trip, upcoming.city, segment)
    body = f"You have {stats['total']} places saved there. "
    if upcoming.accommodation_name:
        body += f"Staying at {upcoming.accommodation_name}"
    else:
        body += "Get ready for adventure!"
    return BriefingMessage(f"{upcoming.city} tomorrow!", body, {
        'next_city': upcoming.city,
        'next_segment_id': str(upcoming.segment_id),
    })


def compose_meal(trip: Trip, snapshot: ContextSnapshot) -> Optional[BriefingMessage]:
    """Nearest unvisited food place around the accommodation, else the best rated one in the city."""
    segment = snapshot.current_segment
    if segment is None:
        return None

    places = []
    if segment.accommodation is not None:
        places = GeoService.find_nearby(
            GeoService.for_trips([trip.pk], exclude_visited=True),
            segment.accommodation.latitude,
            segment.accommodation.longitude,
            settings.TRAVEL_ENGINE['ACCOMMODATION_RADIUS_M'],
            category='food',
            limit=1,
        )
    if not places:
        city_segment = TripSegment.objects.filter(pk=segment.segment_id).first()
        places = GeoService.top_rated(trip, city=segment.city, segment=city_segment, category='food', limit=1)
    if not places:
        return None

    place = places[0]
    meal = meal_for_hour(snapshot.local_time.hour)
    body = f"How about {place.name}?"
    if place.rating:
        body += f" Rated {place.rating:.1f}."
    distance = getattr(place, 'distance', None)
    if distance is not None:
        body += f" ({round(distance)}m away)"
    return BriefingMessage(f"{meal.capitalize()} time!", body, {'place_id': str(place.pk), 'meal': meal})


class BriefingService:
    """
    Scheduled Briefing Dispatcher. Every traveler is handled independently;
    a failure for one of them is logged and counted, and the batch goes on.
    """

    def __init__(self, context_service: ContextService = None, notification_service: NotificationService = None):
        self.context_service = context_service or ContextService()
        self.notification_service = notification_service or NotificationService()

    def eligible_recipients(self, target_hour: int, now: datetime) -> Iterator[Tuple[object, Trip]]:
        """Trip participants whose active segment is at target_hour local time."""
        seen = set()
        for segment in SegmentService.find_active_segments(now):
            if local_now(segment.timezone, now).hour != target_hour:
                continue
            for user in segment.trip.participants():
                key = (user.pk, segment.trip_id)
                if key in seen:
                    continue
                seen.add(key)
                yield user, segment.trip

    def run_scheduled_briefings(self, target_hour: int, kind, now: Optional[datetime] = None) -> BriefingRunResult:
        """
        Sends one kind of briefing to every eligible traveler.

        Returns:
            BriefingRunResult with sent/suppressed/failed counts
        """
        kind = NotificationKind(kind)
        now = now or timezone.now()
        result = BriefingRunResult(kind=kind.value, target_hour=target_hour)

        for user, trip in self.eligible_recipients(target_hour, now):
            try:
                outcome = self.send_briefing(user, trip, kind, now).outcome
            except Exception:
                logger.exception(f"{kind.value} briefing failed for user {user.pk} on trip {trip.pk}")
                outcome = AlertOutcome.FAILED
            result.record(outcome)

        logger.info(
            f"Briefing run {kind.value}@{target_hour:02d}: "
            f"{result.sent} sent, {result.suppressed} suppressed, {result.failed} failed"
        )
        return result

    def send_briefing(self, user, trip: Trip, kind, now: Optional[datetime] = None) -> AlertResult:
        kind = NotificationKind(kind)
        now = now or timezone.now()

        preferences = PreferenceService.get_for(user, trip)
        if not preferences.is_enabled(kind):
            return self._suppressed(user, kind, AlertOutcome.DISABLED)

        tz_name = user_timezone(user, trip, now)
        if preferences.is_quiet_at(local_now(tz_name, now).time()):
            return self._suppressed(user, kind, AlertOutcome.QUIET_HOURS)
        if NotificationService.is_over_daily_cap(user, preferences, tz_name, now):
            return self._suppressed(user, kind, AlertOutcome.DAILY_CAP)

        snapshot = self.context_service.build_context(user, trip, now=now)
        message = self.compose(kind, trip, snapshot)
        if message is None:
            return AlertResult(AlertOutcome.NOT_APPLICABLE)

        notification = self.notification_service.dispatch(
            user,
            kind.value,
            message.title,
            message.body,
            trip=trip,
            data=message.data,
            now=now,
        )
        return AlertResult(AlertOutcome.SENT, notification=notification)

    @staticmethod
    def compose(kind: NotificationKind, trip: Trip, snapshot: ContextSnapshot) -> Optional[BriefingMessage]:
        if kind == NotificationKind.MORNING:
            return compose_morning(snapshot)
        if kind == NotificationKind.EVENING:
            return compose_evening(snapshot)
        if kind == NotificationKind.LAST_DAY:
            return compose_last_day(snapshot)
        if kind == NotificationKind.SEGMENT_TRANSITION:
            return compose_segment_transition(trip, snapshot)
        if kind == NotificationKind.MEAL:
            return compose_meal(trip, snapshot)
        raise ValueError(f"{kind} is not a briefing kind")

    @staticmethod
    def _suppressed(user, kind: NotificationKind, outcome: AlertOutcome) -> AlertResult:
        logger.info(f"{kind.value} briefing for user {user.pk} suppressed: {outcome.value}")
        return AlertResult(outcome)
