"""
RankingService: the relevance filter and ranking pipeline for saved places.

Each filtering stage narrows the candidate set but is skipped when it would
leave nothing, so an over-specific intent never produces an empty answer for
a non-empty trip.
"""
import logging
from typing import Callable, Iterable, List, Optional

from django.conf import settings

from locations.models import SavedPlace
from locations.services import GeoService
from recommendations.dtos import (
    AlternativesIntent,
    DistancePreference,
    PlaceQuery,
    SortKey,
    SortOrder,
    StructuredIntent,
    UserContextDTO,
)

logger = logging.getLogger(__name__)

DEFAULT_SORT_ORDER = {
    SortKey.DISTANCE: SortOrder.ASC,
    SortKey.RATING: SortOrder.DESC,
    SortKey.RECENT: SortOrder.DESC,
    SortKey.REVIEW_COUNT: SortOrder.DESC,
}


def query_for(intent: StructuredIntent) -> PlaceQuery:
    """Filter/sort fields of an intent; alternatives only carry a limit."""
    if isinstance(intent, PlaceQuery):
        return intent
    if isinstance(intent, AlternativesIntent):
        return PlaceQuery(limit=intent.limit)
    raise TypeError(f"Unsupported intent: {intent!r}")


class RankingService:
    """
    Algorithm Service: filters and orders a trip's saved places for a
    structured intent. Deterministic for identical inputs.
    """

    def __init__(self, default_limit: int = None):
        self.default_limit = default_limit or settings.TRAVEL_ENGINE['DEFAULT_RESULT_LIMIT']

    def rank(
        self,
        intent: StructuredIntent,
        candidates: Iterable[SavedPlace],
        user_context: Optional[UserContextDTO] = None,
    ) -> List[SavedPlace]:
        """
        Orchestrator method for the pipeline.

        Steps:
        1. Category filter
        2. Cuisine/dish filter
        3. Keyword filter (keywords not already used as cuisine terms)
        4. Distance annotation when the user location is known
        5. Sort by the requested key, or by distance for "nearby" intents
        6. Truncate to the requested limit (default 5)

        Returns:
            List of SavedPlace objects, each with a `distance` attribute
            (meters, or None when it could not be computed)
        """
        query = query_for(intent)
        places = list(candidates)
        texts = {id(place): place.search_text() for place in places}

        if query.category:
            category = query.category.lower()
            places = self._narrow(places, lambda p: (p.category or '').lower() == category, 'category')

        cuisine_terms = [t.strip().lower() for t in (query.cuisine, query.dish) if t and t.strip()]
        if cuisine_terms:
            places = self._narrow(
                places,
                lambda p: any(term in texts[id(p)] for term in cuisine_terms),
                'cuisine',
            )

        keywords = [
            k.strip().lower() for k in query.keywords
            if k and k.strip() and k.strip().lower() not in cuisine_terms
        ]
        if keywords:
            places = self._narrow(
                places,
                lambda p: any(keyword in texts[id(p)] for keyword in keywords),
                'keyword',
            )

        location = user_context.location if user_context else None
        if location is not None:
            GeoService.annotate_distances(places, location.latitude, location.longitude)
        else:
            for place in places:
                if not hasattr(place, 'distance'):
                    place.distance = None

        sort_by, sort_order = query.sort_by, query.sort_order
        if sort_by is None and query.distance == DistancePreference.NEARBY and location is not None:
            sort_by, sort_order = SortKey.DISTANCE, SortOrder.ASC
        if sort_by is not None:
            places = self.sort(places, sort_by, sort_order)

        limit = query.limit if query.limit and query.limit > 0 else self.default_limit
        return places[:limit]

    @staticmethod
    def _narrow(places: List[SavedPlace], predicate: Callable[[SavedPlace], bool], stage: str) -> List[SavedPlace]:
        narrowed = [place for place in places if predicate(place)]
        if not narrowed and places:
            logger.debug(f"Skipping {stage} filter: it would remove all {len(places)} candidates")
            return places
        return narrowed

    @staticmethod
    def sort(places: List[SavedPlace], sort_by: SortKey, sort_order: Optional[SortOrder] = None) -> List[SavedPlace]:
        """
        Stable sort on one key. Missing ratings and rating counts count as 0;
        places without a distance always come last.
        """
        descending = (sort_order or DEFAULT_SORT_ORDER[sort_by]) == SortOrder.DESC

        if sort_by == SortKey.DISTANCE:
            known = [p for p in places if getattr(p, 'distance', None) is not None]
            unknown = [p for p in places if getattr(p, 'distance', None) is None]
            return sorted(known, key=lambda p: p.distance, reverse=descending) + unknown

        if sort_by == SortKey.RATING:
            key = lambda p: p.rating or 0
        elif sort_by == SortKey.REVIEW_COUNT:
            key = lambda p: p.rating_count or 0
        else:
            key = lambda p: p.created_at.timestamp() if p.created_at else 0
        return sorted(places, key=key, reverse=descending)
