"""
AlternativeFinder: substitutes for a place the traveler cannot visit,
first from their own saved places, then from the external place search.
"""
import logging
from typing import Iterable, List, Optional, Tuple

from django.conf import settings

from core.exceptions import UpstreamUnavailable
from locations.models import SavedPlace
from locations.place_search import GooglePlacesClient, category_to_place_type
from locations.services import GeoService, haversine_distance
from recommendations.dtos import AlternativesResult, ExternalSuggestion, SortKey, SortOrder, UserContextDTO
from recommendations.ranking_service import RankingService

logger = logging.getLogger(__name__)

# Google returns at most 20 results per page; all of them are checked for
# duplicates before truncating.
EXTERNAL_FETCH_SIZE = 20


def names_overlap(a: str, b: str) -> bool:
    """Case-insensitive substring match in either direction."""
    a, b = (a or '').strip().lower(), (b or '').strip().lower()
    if not a or not b:
        return False
    return a in b or b in a


def format_distance(meters: Optional[float]) -> str:
    if meters is None:
        return ''
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"


class AlternativesService:
    """
    Domain Service for the "X is closed, what else?" flow.
    External search failures degrade to saved-only results.
    """

    def __init__(self, place_search: GooglePlacesClient = None):
        self.place_search = place_search or GooglePlacesClient()
        self.max_results = settings.TRAVEL_ENGINE['ALTERNATIVES_MAX_RESULTS']
        self.search_radius_m = settings.TRAVEL_ENGINE['ALTERNATIVES_SEARCH_RADIUS_M']

    @staticmethod
    def resolve_reference(referenced_name: str, places: List[SavedPlace]) -> Optional[SavedPlace]:
        """Exact name match first, then the first substring match either way."""
        needle = (referenced_name or '').strip().lower()
        if not needle:
            return None
        for place in places:
            if place.name.strip().lower() == needle:
                return place
        for place in places:
            if names_overlap(place.name, needle):
                return place
        return None

    def find_alternatives(
        self,
        referenced_name: str,
        candidates: Iterable[SavedPlace],
        user_context: Optional[UserContextDTO] = None,
        reason: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> AlternativesResult:
        """
        Args:
            referenced_name: Name of the place the user cannot visit (fuzzy)
            candidates: All saved places of the trip, visited ones included
            user_context: Optional; its location is the preferred search origin
            reason: Why the place is unavailable ('closed', 'crowded', ...)
            limit: Caps the number of suggestions; never more than ALTERNATIVES_MAX_RESULTS

        Returns:
            AlternativesResult; `found` is False when the name matched nothing
        """
        places = list(candidates)
        referenced = self.resolve_reference(referenced_name, places)
        if referenced is None:
            logger.info(f"Alternatives: no saved place matches '{referenced_name}'")
            return AlternativesResult(
                found=False,
                referenced_name=referenced_name,
                reason=reason,
                message=f"I couldn't find \"{referenced_name}\" in your saved places. Which place did you mean?",
            )

        pool = [
            p for p in places
            if p.category == referenced.category and p.pk != referenced.pk and not p.is_visited
        ]

        origin = self._origin(referenced, user_context)
        if origin is not None:
            GeoService.annotate_distances(pool, *origin)
            pool = RankingService.sort(pool, SortKey.DISTANCE, SortOrder.ASC)
        max_results = min(limit, self.max_results) if limit and limit > 0 else self.max_results
        saved = pool[:max_results]

        discovered = []
        if len(saved) < max_results and origin is not None:
            discovered = self._discover(referenced, origin, max_results - len(saved), places)

        result = AlternativesResult(
            found=True,
            referenced_name=referenced_name,
            reason=reason,
            referenced_place=referenced,
            saved=saved,
            discovered=discovered,
        )
        result.message = self.compose_message(result)
        return result

    @staticmethod
    def _origin(referenced: SavedPlace, user_context: Optional[UserContextDTO]) -> Optional[Tuple[float, float]]:
        if user_context is not None and user_context.location is not None:
            return user_context.location.latitude, user_context.location.longitude
        return referenced.get_lat_lon()

    def _discover(
        self,
        referenced: SavedPlace,
        origin: Tuple[float, float],
        needed: int,
        saved_places: List[SavedPlace],
    ) -> List[ExternalSuggestion]:
        try:
            results = self.place_search.search_nearby(
                origin[0],
                origin[1],
                place_type=category_to_place_type(referenced.category),
                keyword=referenced.cuisine_type or None,
                radius_m=self.search_radius_m,
                open_now=True,
                max_results=EXTERNAL_FETCH_SIZE,
            )
        except UpstreamUnavailable as e:
            logger.warning(f"Alternatives: place search unavailable, using saved places only: {e}")
            return []

        saved_names = [p.name for p in saved_places]
        discovered = []
        for dto in results:
            if any(names_overlap(dto.name, name) for name in saved_names):
                continue
            discovered.append(ExternalSuggestion(
                name=dto.name,
                address=dto.address,
                latitude=dto.lat,
                longitude=dto.lng,
                rating=dto.rating,
                rating_count=dto.rating_count,
                distance=haversine_distance(origin[0], origin[1], dto.lat, dto.lng),
                external_id=dto.external_id,
            ))
            if len(discovered) >= needed:
                break
        return discovered

    @staticmethod
    def compose_message(result: AlternativesResult) -> str:
        name = result.referenced_place.name if result.referenced_place else result.referenced_name
        if result.is_empty:
            category = result.referenced_place.category if result.referenced_place else 'similar'
            return (
                f"I couldn't find alternatives to {name} nearby. "
                f"Try a quick map search for {category} places around you."
            )

        lines = []
        if result.reason:
            lines.append(f"Since {name} is {result.reason}, here are some alternatives.")
        else:
            lines.append(f"Here are some alternatives to {name}.")

        if result.saved:
            entries = []
            for place in result.saved:
                distance = format_distance(getattr(place, 'distance', None))
                entries.append(f"{place.name} ({distance})" if distance else place.name)
            lines.append("From your saved places: " + ', '.join(entries))

        if result.discovered:
            entries = []
            for suggestion in result.discovered:
                details = [format_distance(suggestion.distance)]
                if suggestion.rating:
                    details.append(f"rated {suggestion.rating}")
                entries.append(f"{suggestion.name} ({', '.join(d for d in details if d)})")
            lines.append("New discoveries nearby: " + ', '.join(entries))

        return '\n'.join(lines)
