"""
Domain services for the locations app implementing the distance utility
and the saved place store queries.
"""
import logging
import math
from typing import Dict, Iterable, List, Optional, Tuple

import geohash2
from django.db.models import Count, F, Q, QuerySet
from django.utils import timezone

from core.exceptions import InvalidInput
from .models import SavedPlace

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000
METERS_PER_DEGREE = 111_000


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance in meters between two (lat, lng) points in degrees.
    Callers must exclude places with null coordinates before calling.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def bounding_box(lat: float, lng: float, radius_m: float) -> Tuple[float, float, Optional[float], Optional[float]]:
    """
    Returns (min_lat, max_lat, min_lng, max_lng) enclosing a circle of radius_m.
    The longitude bounds are None near the poles or across the antimeridian,
    where a longitude range cannot be expressed as a single interval.
    """
    lat_delta = radius_m / METERS_PER_DEGREE
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        return lat - lat_delta, lat + lat_delta, None, None

    lng_delta = radius_m / (METERS_PER_DEGREE * cos_lat)
    min_lng, max_lng = lng - lng_delta, lng + lng_delta
    if min_lng < -180 or max_lng > 180:
        return lat - lat_delta, lat + lat_delta, None, None
    return lat - lat_delta, lat + lat_delta, min_lng, max_lng


class GeoService:
    """
    Domain Service that encapsulates the saved place queries.
    Isolates direct database queries ensuring controllers/views and the
    recommendation engine interact with a clean API rather than raw ORM calls.
    """

    @staticmethod
    def for_trips(trip_ids: Iterable, exclude_visited: bool = False) -> QuerySet:
        queryset = SavedPlace.objects.filter(trip_id__in=list(trip_ids))
        if exclude_visited:
            queryset = queryset.exclude(status=SavedPlace.Status.VISITED)
        return queryset

    @staticmethod
    def scope_to_city(queryset: QuerySet, city: Optional[str], segment=None) -> QuerySet:
        """
        Narrows a queryset to one city: places linked to the segment, or whose
        area/location name mentions the city.
        """
        if not city:
            return queryset
        condition = Q(area_name__icontains=city) | Q(location_name__icontains=city)
        if segment is not None:
            condition |= Q(segment=segment)
        return queryset.filter(condition)

    @staticmethod
    def annotate_distances(places: Iterable[SavedPlace], lat: float, lng: float) -> List[SavedPlace]:
        """
        Sets a `distance` attribute (meters) on every place; places without
        coordinates get None and are kept.
        """
        annotated = []
        for place in places:
            if place.has_coordinates:
                place.distance = haversine_distance(lat, lng, place.latitude, place.longitude)
            else:
                place.distance = None
            annotated.append(place)
        return annotated

    @staticmethod
    def find_nearby(
        queryset: QuerySet,
        lat: float,
        lng: float,
        radius_m: float,
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[SavedPlace]:
        """
        Places of the queryset within radius_m of (lat, lng), closest first.

        A bounding box pre-filter is applied in SQL; the exact radius check
        uses the haversine distance.

        Returns:
            List of SavedPlace objects with a `distance` attribute in meters

        Raises:
            InvalidInput: the origin is outside the valid coordinate range
        """
        GeoService.require_valid_location(lat, lng)
        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_m)
        queryset = queryset.filter(
            latitude__isnull=False,
            longitude__isnull=False,
            latitude__range=(min_lat, max_lat),
        )
        if min_lng is not None:
            queryset = queryset.filter(longitude__range=(min_lng, max_lng))
        if category:
            queryset = queryset.filter(category=category.lower())

        nearby = [
            place for place in GeoService.annotate_distances(queryset, lat, lng)
            if place.distance <= radius_m
        ]
        nearby.sort(key=lambda place: place.distance)
        if limit:
            nearby = nearby[:limit]
        return nearby

    @staticmethod
    def top_rated(
        trip,
        city: Optional[str] = None,
        segment=None,
        category: Optional[str] = None,
        exclude_visited: bool = True,
        limit: int = 5,
    ) -> List[SavedPlace]:
        """Rated places ordered by rating, then by number of ratings."""
        queryset = GeoService.for_trips([trip.pk], exclude_visited=exclude_visited)
        queryset = GeoService.scope_to_city(queryset, city, segment)
        queryset = queryset.filter(rating__isnull=False)
        if category:
            queryset = queryset.filter(category=category.lower())
        queryset = queryset.order_by('-rating', F('rating_count').desc(nulls_last=True))
        return list(queryset[:limit])

    @staticmethod
    def must_visit(
        trip,
        city: Optional[str] = None,
        segment=None,
        exclude_visited: bool = True,
        limit: Optional[int] = None,
    ) -> List[SavedPlace]:
        """Places flagged as must-visit, best rated first, then oldest first."""
        queryset = GeoService.for_trips([trip.pk], exclude_visited=exclude_visited)
        queryset = GeoService.scope_to_city(queryset, city, segment)
        queryset = queryset.filter(is_must_visit=True).order_by(
            F('rating').desc(nulls_last=True),
            'created_at',
        )
        if limit:
            queryset = queryset[:limit]
        return list(queryset)

    @staticmethod
    def city_stats(trip, city: Optional[str] = None, segment=None) -> Dict:
        """
        Counts of saved places for a trip (optionally one city).

        Returns:
            Dictionary with total, visited, unvisited and by_category counts
        """
        queryset = GeoService.scope_to_city(GeoService.for_trips([trip.pk]), city, segment)
        total = queryset.count()
        visited = queryset.filter(status=SavedPlace.Status.VISITED).count()
        by_category = {
            row['category']: row['count']
            for row in queryset.values('category').annotate(count=Count('id')).order_by()
        }
        return {
            'total': total,
            'visited': visited,
            'unvisited': total - visited,
            'by_category': by_category,
        }

    @staticmethod
    def mark_visited(place: SavedPlace) -> SavedPlace:
        if place.status != SavedPlace.Status.VISITED:
            place.status = SavedPlace.Status.VISITED
            place.visited_at = timezone.now()
            place.save(update_fields=['status', 'visited_at', 'updated_at'])
            logger.info(f"Marked place {place.id} as visited")
        return place

    @staticmethod
    def encode_geohash(lat: float, lon: float, precision: int = 6) -> str:
        """
        Generates a Geohash string (precision 5-7) to be used as a cache key.

        Args:
            lat: Latitude coordinate
            lon: Longitude coordinate
            precision: Geohash precision (default 6)

        Returns:
            Geohash string for caching purposes
        """
        return geohash2.encode(lat, lon, precision)

    @staticmethod
    def is_location_valid(lat: float, lon: float) -> bool:
        """
        Validates if the coordinates fall within supported bounds.
        """
        return -90 <= lat <= 90 and -180 <= lon <= 180

    @staticmethod
    def require_valid_location(lat: float, lon: float) -> None:
        if lat is None or lon is None or not GeoService.is_location_valid(lat, lon):
            raise InvalidInput(f"Coordinates out of range: ({lat}, {lon})", latitude=lat, longitude=lon)
