"""
Geocoding client and geocode confidence scoring.

The confidence score is persisted on saved places and compared over time,
so the weights and thresholds below are a fixed contract.
"""
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import requests
from django.conf import settings

from core.exceptions import UpstreamUnavailable
from .models import SavedPlace

logger = logging.getLogger(__name__)

# Result specificity (0-40)
ESTABLISHMENT_TYPES = ('establishment', 'point_of_interest')
STREET_TYPES = ('street_address', 'route')
AREA_TYPES = ('locality', 'neighborhood')
ESTABLISHMENT_POINTS = 40
STREET_POINTS = 25
AREA_POINTS = 10

# Name match (0-30)
NAME_MATCH_MAX_POINTS = 30
NAME_TOKEN_MIN_LENGTH = 3

# Address specificity (0-20)
DETAILED_ADDRESS_COMPONENTS = 5
PARTIAL_ADDRESS_COMPONENTS = 3
DETAILED_ADDRESS_POINTS = 20
PARTIAL_ADDRESS_POINTS = 10

# Uniqueness (0-10)
FEW_SIBLINGS_MAX = 3
UNIQUE_RESULT_POINTS = 10
FEW_RESULTS_POINTS = 5

# Tiers
HIGH_CONFIDENCE_MIN = 75
MEDIUM_CONFIDENCE_MIN = 50


@dataclass
class GeocodeCandidate:
    """One result returned by the external geocoder."""
    formatted_address: str
    lat: float
    lng: float
    types: List[str] = field(default_factory=list)
    address_component_count: int = 0

    @classmethod
    def from_google(cls, result: Dict) -> 'GeocodeCandidate':
        location = result['geometry']['location']
        return cls(
            formatted_address=result.get('formatted_address', ''),
            lat=location['lat'],
            lng=location['lng'],
            types=result.get('types') or [],
            address_component_count=len(result.get('address_components') or []),
        )


@dataclass(frozen=True)
class ConfidenceScore:
    score: int
    tier: str


@dataclass
class GeocodeResult:
    """What gets persisted onto a SavedPlace after a successful geocode."""
    lat: float
    lng: float
    formatted_address: str
    confidence: str
    confidence_score: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def specificity_points(types: Sequence[str]) -> int:
    if any(t in types for t in ESTABLISHMENT_TYPES):
        return ESTABLISHMENT_POINTS
    if any(t in types for t in STREET_TYPES):
        return STREET_POINTS
    if any(t in types for t in AREA_TYPES):
        return AREA_POINTS
    return 0


def name_match_points(search_string: str, formatted_address: str) -> int:
    """
    Share of the search string's words (first comma segment) that appear in
    the formatted address. Words shorter than three characters never match
    but still count towards the total.
    """
    tokens = search_string.lower().split(',')[0].strip().split(' ')
    address = formatted_address.lower()
    matched = [t for t in tokens if len(t) >= NAME_TOKEN_MIN_LENGTH and t in address]
    if not matched:
        return 0
    return _round_half_up(NAME_MATCH_MAX_POINTS * len(matched) / len(tokens))


def address_points(component_count: int) -> int:
    if component_count >= DETAILED_ADDRESS_COMPONENTS:
        return DETAILED_ADDRESS_POINTS
    if component_count >= PARTIAL_ADDRESS_COMPONENTS:
        return PARTIAL_ADDRESS_POINTS
    return 0


def uniqueness_points(sibling_count: int) -> int:
    if sibling_count == 1:
        return UNIQUE_RESULT_POINTS
    if sibling_count <= FEW_SIBLINGS_MAX:
        return FEW_RESULTS_POINTS
    return 0


def confidence_tier(score: int) -> str:
    if score >= HIGH_CONFIDENCE_MIN:
        return SavedPlace.Confidence.HIGH.value
    if score >= MEDIUM_CONFIDENCE_MIN:
        return SavedPlace.Confidence.MEDIUM.value
    return SavedPlace.Confidence.LOW.value


def score_geocode(candidate: GeocodeCandidate, search_string: str, sibling_count: int) -> ConfidenceScore:
    """
    Scores how much a geocode result can be trusted, 0-100.

    Args:
        candidate: The geocode result being scored
        search_string: The query that produced it
        sibling_count: Number of results the geocoder returned for the query

    Returns:
        ConfidenceScore with the additive score and its tier
    """
    score = (
        specificity_points(candidate.types)
        + name_match_points(search_string, candidate.formatted_address)
        + address_points(candidate.address_component_count)
        + uniqueness_points(sibling_count)
    )
    return ConfidenceScore(score=score, tier=confidence_tier(score))


class GeocodingService:
    """
    Integration Service wrapping the Google Geocoding API.
    Upstream failures are logged and turned into "no result" so callers
    can degrade instead of failing.
    """

    GEOCODE_URL = 'https://maps.googleapis.com/maps/api/geocode/json'

    def __init__(self, api_key: str = None, timeout: float = 10):
        self.api_key = api_key or settings.GOOGLE_MAPS_API_KEY
        self.timeout = timeout

    def fetch_candidates(self, query: str) -> List[GeocodeCandidate]:
        """
        Raises:
            UpstreamUnavailable: on transport errors or an error status
        """
        if not self.api_key:
            raise UpstreamUnavailable("Geocoding API key is not configured")

        try:
            response = requests.get(
                self.GEOCODE_URL,
                params={'address': query, 'key': self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise UpstreamUnavailable(f"Geocoding request failed: {e}", query=query) from e

        status = payload.get('status')
        if status == 'ZERO_RESULTS':
            return []
        if status != 'OK':
            raise UpstreamUnavailable(f"Geocoding returned status {status}", query=query)
        return [GeocodeCandidate.from_google(r) for r in payload.get('results', [])]

    def geocode_place(self, name: str, location_context: Optional[str] = None) -> Optional[GeocodeResult]:
        """
        Geocodes a place name, optionally disambiguated by a city or area.

        Returns:
            GeocodeResult for the first candidate, or None when nothing was
            found or the geocoder is unavailable
        """
        query = f"{name}, {location_context}" if location_context else name

        try:
            candidates = self.fetch_candidates(query)
        except UpstreamUnavailable as e:
            logger.warning(f"Geocoding unavailable for '{query}': {e}")
            return None

        if not candidates:
            logger.info(f"No geocoding results for '{query}'")
            return None

        best = candidates[0]
        confidence = score_geocode(best, query, len(candidates))
        logger.info(
            f"Geocoded '{query}' to {best.formatted_address} "
            f"[{confidence.tier} {confidence.score}]"
        )
        return GeocodeResult(
            lat=best.lat,
            lng=best.lng,
            formatted_address=best.formatted_address,
            confidence=confidence.tier,
            confidence_score=confidence.score,
        )

    def geocode_places(self, places: Sequence[Tuple[str, Optional[str]]]) -> List[Optional[GeocodeResult]]:
        """
        Geocodes several (name, location_context) pairs concurrently.
        Results keep the order of the input.
        """
        if not places:
            return []
        max_workers = settings.TRAVEL_ENGINE['GEOCODE_MAX_WORKERS']
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(self.geocode_place, name, context) for name, context in places]
            return [future.result() for future in futures]

    def regeocode(self, place: SavedPlace) -> SavedPlace:
        """
        Re-resolves a saved place and persists the outcome. When nothing can
        be resolved the place is marked low confidence; known coordinates
        are kept.
        """
        result = self.geocode_place(place.name, place.area_name or None)
        if result is None:
            place.location_confidence = SavedPlace.Confidence.LOW
            place.location_confidence_score = 0
            place.save(update_fields=['location_confidence', 'location_confidence_score', 'updated_at'])
            return place

        place.latitude = result.lat
        place.longitude = result.lng
        place.location_name = result.formatted_address
        place.location_confidence = result.confidence
        place.location_confidence_score = result.confidence_score
        place.save()
        return place
