"""
External place search (Google Places nearby search) used to discover
places the traveler has not saved yet.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import requests
from django.conf import settings
from django.core.cache import cache

from core.exceptions import UpstreamUnavailable
from .services import GeoService

logger = logging.getLogger(__name__)

CATEGORY_PLACE_TYPES = {
    'food': 'restaurant',
    'restaurant': 'restaurant',
    'cafe': 'cafe',
    'shopping': 'shopping_mall',
    'place': 'tourist_attraction',
    'activity': 'tourist_attraction',
    'accommodation': 'lodging',
    'bar': 'bar',
    'nightlife': 'night_club',
}
DEFAULT_PLACE_TYPE = 'point_of_interest'


def category_to_place_type(category: Optional[str]) -> str:
    """Normalizes an internal category to a Google Places type."""
    if not category:
        return DEFAULT_PLACE_TYPE
    return CATEGORY_PLACE_TYPES.get(category.lower(), DEFAULT_PLACE_TYPE)


class RateLimiter:
    """Utility to ensure the system does not exceed 3rd party API quota limits."""

    def __init__(self, calls_per_minute: int = 60):
        """
        Initialize rate limiter.

        Args:
            calls_per_minute: Maximum API calls allowed per minute
        """
        self.calls_per_minute = calls_per_minute
        self.call_times = []
        self._lock = threading.Lock()

    def check_limit(self) -> bool:
        """
        Check if API call is within rate limits and record it.

        Raises:
            UpstreamUnavailable: when the quota for the last minute is used up
        """
        now = datetime.now()
        with self._lock:
            # Remove calls older than 1 minute
            self.call_times = [t for t in self.call_times if now - t < timedelta(minutes=1)]

            if len(self.call_times) >= self.calls_per_minute:
                raise UpstreamUnavailable(
                    f"Rate limit exceeded: {self.calls_per_minute} calls per minute"
                )

            self.call_times.append(now)
        return True


class ExternalPlaceDTO:
    """Data Transfer Object for external place data"""

    def __init__(
        self,
        external_id: str,
        name: str,
        address: str,
        lat: float,
        lng: float,
        rating: float = None,
        rating_count: int = None,
        open_now: bool = None,
        types: List[str] = None,
    ):
        self.external_id = external_id
        self.name = name
        self.address = address
        self.lat = lat
        self.lng = lng
        self.rating = rating
        self.rating_count = rating_count
        self.open_now = open_now
        self.types = types or []

    @classmethod
    def from_google(cls, place_data: Dict) -> 'ExternalPlaceDTO':
        """Parse Google Places API response"""
        location = place_data['geometry']['location']
        return cls(
            external_id=place_data.get('place_id'),
            name=place_data.get('name', ''),
            address=place_data.get('vicinity', ''),
            lat=location['lat'],
            lng=location['lng'],
            rating=place_data.get('rating'),
            rating_count=place_data.get('user_ratings_total'),
            open_now=(place_data.get('opening_hours') or {}).get('open_now'),
            types=place_data.get('types', []),
        )

    def as_dict(self) -> Dict:
        return {
            'external_id': self.external_id,
            'name': self.name,
            'address': self.address,
            'lat': self.lat,
            'lng': self.lng,
            'rating': self.rating,
            'rating_count': self.rating_count,
            'open_now': self.open_now,
            'types': self.types,
        }


class GooglePlacesClient:
    """
    Integration Service for the Google Places nearby search.
    Results are cached per geohash cell and query for PLACE_SEARCH_CACHE_TTL
    seconds; all clients in the process share one rate limiter.
    """

    BASE_URL = 'https://maps.googleapis.com/maps/api/place'
    CACHE_GEOHASH_PRECISION = 7

    _shared_limiter = None
    _limiter_lock = threading.Lock()

    def __init__(self, api_key: str = None, timeout: float = 10, rate_limiter: RateLimiter = None):
        self.api_key = api_key or settings.GOOGLE_MAPS_API_KEY
        self.timeout = timeout
        self.rate_limiter = rate_limiter or self._default_limiter()

    @classmethod
    def _default_limiter(cls) -> RateLimiter:
        with cls._limiter_lock:
            if cls._shared_limiter is None:
                cls._shared_limiter = RateLimiter(
                    settings.TRAVEL_ENGINE['PLACE_SEARCH_CALLS_PER_MINUTE']
                )
            return cls._shared_limiter

    def _cache_key(self, lat, lng, place_type, keyword, radius_m, open_now) -> str:
        cell = GeoService.encode_geohash(lat, lng, self.CACHE_GEOHASH_PRECISION)
        keyword = (keyword or '').strip().lower().replace(' ', '_')
        return f"places:nearby:{cell}:{place_type or ''}:{keyword}:{int(radius_m)}:{int(bool(open_now))}"

    def search_nearby(
        self,
        lat: float,
        lng: float,
        place_type: Optional[str] = None,
        keyword: Optional[str] = None,
        radius_m: float = 1000,
        open_now: bool = False,
        max_results: int = 3,
    ) -> List[ExternalPlaceDTO]:
        """
        Finds places around an origin.

        Returns:
            Up to max_results ExternalPlaceDTO objects in Google's ranking order

        Raises:
            UpstreamUnavailable: missing API key, rate limit, transport error
                or an error status from the API
        """
        key = self._cache_key(lat, lng, place_type, keyword, radius_m, open_now)
        cached = cache.get(key)
        if cached is not None:
            logger.info(f"Place search cache hit: {key}")
            return [ExternalPlaceDTO(**item) for item in cached[:max_results]]

        if not self.api_key:
            raise UpstreamUnavailable("Google Places API key is not configured")

        params = {
            'location': f"{lat},{lng}",
            'radius': int(radius_m),
            'key': self.api_key,
        }
        if place_type:
            params['type'] = place_type
        if keyword:
            params['keyword'] = keyword
        if open_now:
            params['opennow'] = 'true'

        self.rate_limiter.check_limit()
        logger.info(f"Place search: type={place_type} keyword={keyword} radius={radius_m}m")

        try:
            response = requests.get(f"{self.BASE_URL}/nearbysearch/json", params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise UpstreamUnavailable(f"Place search request failed: {e}") from e

        status = payload.get('status')
        if status not in ('OK', 'ZERO_RESULTS'):
            raise UpstreamUnavailable(f"Place search returned status {status}")

        results = payload.get('results') or []
        places = []
        for result in results:
            try:
                places.append(ExternalPlaceDTO.from_google(result))
            except (KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed place search result: {e!r}")
        if results and not places:
            raise UpstreamUnavailable("Place search returned no usable results")

        cache.set(key, [p.as_dict() for p in places], settings.TRAVEL_ENGINE['PLACE_SEARCH_CACHE_TTL'])
        return places[:max_results]
