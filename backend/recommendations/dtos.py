"""
Data Transfer Objects (DTOs) for context passing and results in the recommendation engine.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from uuid import UUID


class IntentType(str, Enum):
    LOCATION_BASED = 'location_based'
    CATEGORY = 'category'
    SPECIFIC = 'specific'
    ALTERNATIVES = 'alternatives'
    SURPRISE = 'surprise'
    GENERAL = 'general'


class SortKey(str, Enum):
    RATING = 'rating'
    DISTANCE = 'distance'
    RECENT = 'recent'
    REVIEW_COUNT = 'review_count'


class SortOrder(str, Enum):
    ASC = 'asc'
    DESC = 'desc'


class DistancePreference(str, Enum):
    NEARBY = 'nearby'
    WALKING = 'walking'
    ANY = 'any'


@dataclass(frozen=True)
class PointDTO:
    """Represents a geographic point (latitude, longitude)"""
    latitude: float
    longitude: float


@dataclass(frozen=True)
class PlaceQuery:
    """
    Filter and sort fields shared by every intent that searches saved places.
    Produced by the external classifier; never mutated.
    """
    category: Optional[str] = None
    keywords: Tuple[str, ...] = ()
    cuisine: Optional[str] = None
    dish: Optional[str] = None
    limit: Optional[int] = None
    sort_by: Optional[SortKey] = None
    sort_order: Optional[SortOrder] = None
    distance: DistancePreference = DistancePreference.ANY


@dataclass(frozen=True)
class LocationBasedIntent(PlaceQuery):
    """'near me', 'closest ...'"""
    type = IntentType.LOCATION_BASED


@dataclass(frozen=True)
class CategoryIntent(PlaceQuery):
    type = IntentType.CATEGORY


@dataclass(frozen=True)
class SpecificIntent(PlaceQuery):
    """A named place or dish."""
    type = IntentType.SPECIFIC


@dataclass(frozen=True)
class SurpriseIntent(PlaceQuery):
    """Candidates are shuffled by the caller before ranking."""
    type = IntentType.SURPRISE


@dataclass(frozen=True)
class GeneralIntent(PlaceQuery):
    type = IntentType.GENERAL


@dataclass(frozen=True)
class AlternativesIntent:
    """'X is closed', 'alternative to X'"""
    referenced_place: str
    reason: Optional[str] = None
    limit: Optional[int] = None
    type = IntentType.ALTERNATIVES


StructuredIntent = Union[
    LocationBasedIntent,
    CategoryIntent,
    SpecificIntent,
    SurpriseIntent,
    GeneralIntent,
    AlternativesIntent,
]

INTENT_CLASSES = {
    IntentType.LOCATION_BASED: LocationBasedIntent,
    IntentType.CATEGORY: CategoryIntent,
    IntentType.SPECIFIC: SpecificIntent,
    IntentType.SURPRISE: SurpriseIntent,
    IntentType.GENERAL: GeneralIntent,
    IntentType.ALTERNATIVES: AlternativesIntent,
}


@dataclass
class UserContextDTO:
    """
    Who is asking, from where and when. Rebuilt for every request because
    location and time are volatile.
    """
    user_id: int
    trip_id: UUID
    now: datetime
    location: Optional[PointDTO] = None
    display_name: str = ''
    trip_name: str = ''
    destination: str = ''


@dataclass
class ExternalSuggestion:
    """A place found by the external place search, not saved by the user."""
    name: str
    address: str
    latitude: float
    longitude: float
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    distance: Optional[float] = None
    external_id: Optional[str] = None


@dataclass
class AlternativesResult:
    """
    Outcome of the alternative finder. `found` is False when the referenced
    place could not be matched, so the caller can ask for clarification.
    """
    found: bool
    referenced_name: str
    reason: Optional[str] = None
    referenced_place: Any = None
    saved: List[Any] = field(default_factory=list)
    discovered: List[ExternalSuggestion] = field(default_factory=list)
    message: str = ''

    @property
    def is_empty(self) -> bool:
        return not self.saved and not self.discovered


@dataclass
class SegmentSnapshot:
    """Read-only view of a trip segment used for display and ranking context."""
    segment_id: UUID
    city: str
    start_date: date
    end_date: date
    day_number: int = 0
    total_days: int = 0
    days_remaining: int = 0
    days_until: int = 0
    accommodation_name: str = ''
    accommodation: Optional[PointDTO] = None


@dataclass
class ContextSnapshot:
    """
    Everything the conversational layer and the scheduled briefings need to
    know about where a traveler stands. Never persisted.
    """
    user_id: int
    trip_id: UUID
    trip_name: str
    local_time: datetime
    time_of_day: str
    current_segment: Optional[SegmentSnapshot] = None
    next_segment: Optional[SegmentSnapshot] = None
    is_transit_day: bool = False
    visited_count: int = 0
    unvisited_count: int = 0
    by_category: Dict[str, int] = field(default_factory=dict)
    top_rated: List[Any] = field(default_factory=list)
    must_visit: List[Any] = field(default_factory=list)
    nearby: List[Any] = field(default_factory=list)
    nearby_origin: Optional[str] = None  # 'user' or 'accommodation'

    @property
    def city(self) -> Optional[str]:
        return self.current_segment.city if self.current_segment else None
