"""
Tests for the recommendations module.
"""
from datetime import date, datetime, timezone as dt_timezone
from unittest.mock import MagicMock, patch

from django.contrib.auth.models import User
from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from core.exceptions import UpstreamUnavailable
from locations.models import SavedPlace
from locations.place_search import ExternalPlaceDTO, GooglePlacesClient, RateLimiter
from recommendations.alternatives_service import AlternativesService, names_overlap
from recommendations.context_service import ContextService, time_of_day
from recommendations.dtos import (
    AlternativesIntent,
    CategoryIntent,
    DistancePreference,
    GeneralIntent,
    LocationBasedIntent,
    PointDTO,
    SortKey,
    SortOrder,
    SpecificIntent,
    UserContextDTO,
)
from recommendations.ranking_service import RankingService
from recommendations.serializers import IntentSerializer
from trips.models import Trip, TripSegment


def place(name, category='food', lat=None, lng=None, rating=None, rating_count=None, **extra):
    """Unsaved SavedPlace for pure pipeline tests."""
    return SavedPlace(
        name=name,
        category=category,
        latitude=lat,
        longitude=lng,
        rating=rating,
        rating_count=rating_count,
        **extra
    )


def context_at(lat=None, lng=None):
    return UserContextDTO(
        user_id=1,
        trip_id=None,
        now=datetime(2026, 5, 2, 3, 0, tzinfo=dt_timezone.utc),
        location=PointDTO(lat, lng) if lat is not None else None,
    )


class RankingServiceTestCase(TestCase):
    """Test cases for RankingService"""

    def setUp(self):
        self.service = RankingService(default_limit=5)

    def test_rating_sort_with_category_and_limit(self):
        a = place('A', rating=4.5, lat=35.0, lng=139.0)
        b = place('B', rating=4.8)  # no coordinates
        c = place('C', rating=4.2, lat=35.0, lng=139.1)
        d = place('D', rating=4.5, lat=35.1, lng=139.0)
        e = place('E', rating=3.9, lat=35.2, lng=139.0)
        shop = place('Shop', category='shopping', rating=5.0)
        intent = CategoryIntent(category='food', sort_by=SortKey.RATING, sort_order=SortOrder.DESC, limit=3)

        results = self.service.rank(intent, [a, b, c, d, e, shop], context_at(35.0, 139.0))

        # Ties keep input order
        self.assertEqual([p.name for p in results], ['B', 'A', 'D'])
        self.assertIsNone(results[0].distance)
        self.assertEqual(results[1].distance, 0)

    def test_category_filter_is_case_insensitive(self):
        results = self.service.rank(CategoryIntent(category='FOOD'), [place('A'), place('S', category='shopping')])
        self.assertEqual([p.name for p in results], ['A'])

    def test_filter_skipped_when_it_would_empty_the_set(self):
        candidates = [place('A'), place('B')]
        results = self.service.rank(CategoryIntent(category='shopping', keywords=('museum',)), candidates)
        self.assertEqual([p.name for p in results], ['A', 'B'])

    def test_empty_input_stays_empty(self):
        self.assertEqual(self.service.rank(GeneralIntent(), []), [])

    def test_cuisine_filter_then_remaining_keywords(self):
        ichiran = place('Ichiran', cuisine_type='Ramen', description='Tonkotsu, rich and spicy')
        afuri = place('Afuri', cuisine_type='ramen', description='Yuzu shio broth')
        sushi = place('Sushi Dai', cuisine_type='sushi')
        intent = SpecificIntent(cuisine='ramen', keywords=('Ramen', 'spicy'))

        results = self.service.rank(intent, [sushi, afuri, ichiran])

        self.assertEqual([p.name for p in results], ['Ichiran'])

    def test_keyword_filter_skipped_when_nothing_matches(self):
        ichiran = place('Ichiran', cuisine_type='ramen')
        afuri = place('Afuri', tags=['ramen', 'yuzu'])
        sushi = place('Sushi Dai', cuisine_type='sushi')
        intent = SpecificIntent(cuisine='ramen', keywords=('michelin',))

        results = self.service.rank(intent, [sushi, afuri, ichiran])

        self.assertEqual([p.name for p in results], ['Afuri', 'Ichiran'])

    def test_default_limit(self):
        candidates = [place(str(i)) for i in range(8)]
        self.assertEqual(len(self.service.rank(GeneralIntent(), candidates)), 5)
        self.assertEqual(len(self.service.rank(GeneralIntent(limit=0), candidates)), 5)
        self.assertEqual(len(self.service.rank(GeneralIntent(limit=2), candidates)), 2)
        self.assertEqual(len(self.service.rank(GeneralIntent(limit=20), candidates)), 8)

    def test_distance_sort_puts_unknown_last(self):
        far = place('Far', lat=35.1, lng=139.0)
        unknown = place('Unknown')
        near = place('Near', lat=35.001, lng=139.0)
        for order in (SortOrder.ASC, SortOrder.DESC):
            intent = GeneralIntent(sort_by=SortKey.DISTANCE, sort_order=order)
            names = [p.name for p in self.service.rank(intent, [far, unknown, near], context_at(35.0, 139.0))]
            self.assertEqual(names[-1], 'Unknown')
        intent = GeneralIntent(sort_by=SortKey.DISTANCE)
        names = [p.name for p in self.service.rank(intent, [far, unknown, near], context_at(35.0, 139.0))]
        self.assertEqual(names, ['Near', 'Far', 'Unknown'])

    def test_distance_sort_without_location_keeps_everything(self):
        intent = GeneralIntent(sort_by=SortKey.DISTANCE)
        results = self.service.rank(intent, [place('A', lat=1.0, lng=1.0), place('B')])
        self.assertEqual([p.name for p in results], ['A', 'B'])

    def test_nearby_preference_falls_back_to_distance(self):
        far = place('Far', lat=35.1, lng=139.0)
        near = place('Near', lat=35.001, lng=139.0)
        intent = LocationBasedIntent(distance=DistancePreference.NEARBY)

        with_location = self.service.rank(intent, [far, near], context_at(35.0, 139.0))
        without_location = self.service.rank(intent, [far, near])

        self.assertEqual([p.name for p in with_location], ['Near', 'Far'])
        self.assertEqual([p.name for p in without_location], ['Far', 'Near'])

    def test_review_count_sort_treats_missing_as_zero(self):
        candidates = [place('None'), place('Many', rating_count=900), place('Few', rating_count=3)]
        results = self.service.rank(GeneralIntent(sort_by=SortKey.REVIEW_COUNT), candidates)
        self.assertEqual([p.name for p in results], ['Many', 'Few', 'None'])
        results = self.service.rank(
            GeneralIntent(sort_by=SortKey.REVIEW_COUNT, sort_order=SortOrder.ASC), candidates
        )
        self.assertEqual([p.name for p in results], ['None', 'Few', 'Many'])

    def test_recent_sort(self):
        user = User.objects.create_user(username='recent', password='x')
        trip = Trip.objects.create(user=user, name='Trip')
        first = SavedPlace.objects.create(trip=trip, name='First')
        second = SavedPlace.objects.create(trip=trip, name='Second')
        results = self.service.rank(GeneralIntent(sort_by=SortKey.RECENT), [first, second])
        self.assertEqual(results, [second, first])

    def test_alternatives_intent_only_limits(self):
        candidates = [place(str(i)) for i in range(4)]
        results = self.service.rank(AlternativesIntent(referenced_place='x', limit=2), candidates)
        self.assertEqual(len(results), 2)

    def test_deterministic(self):
        candidates = [place(n, rating=r) for n, r in [('A', 4.0), ('B', 4.0), ('C', 4.5), ('D', None)]]
        intent = GeneralIntent(sort_by=SortKey.RATING)
        first = [p.name for p in self.service.rank(intent, candidates)]
        second = [p.name for p in self.service.rank(intent, candidates)]
        self.assertEqual(first, second)
        self.assertEqual(first, ['C', 'A', 'B', 'D'])


class IntentSerializerTestCase(TestCase):

    def test_builds_tagged_variant(self):
        serializer = IntentSerializer(data={
            'type': 'category',
            'category': 'food',
            'keywords': ['ramen'],
            'sort_by': 'rating',
            'limit': 3,
        })
        self.assertTrue(serializer.is_valid(), serializer.errors)
        intent = serializer.build_intent()
        self.assertIsInstance(intent, CategoryIntent)
        self.assertEqual(intent.keywords, ('ramen',))
        self.assertEqual(intent.sort_by, SortKey.RATING)
        self.assertIsNone(intent.sort_order)

    def test_alternatives_requires_referenced_place(self):
        serializer = IntentSerializer(data={'type': 'alternatives'})
        self.assertFalse(serializer.is_valid())

        serializer = IntentSerializer(data={'type': 'alternatives', 'referenced_place': 'Ichiran', 'reason': 'closed'})
        self.assertTrue(serializer.is_valid(), serializer.errors)
        intent = serializer.build_intent()
        self.assertIsInstance(intent, AlternativesIntent)
        self.assertEqual(intent.reason, 'closed')


class AlternativesServiceTestCase(TestCase):
    """Test cases for AlternativesService"""

    def setUp(self):
        self.user = User.objects.create_user(username='alt', password='testpass')
        self.trip = Trip.objects.create(user=self.user, name='Tokyo')
        self.ichiran = SavedPlace.objects.create(
            trip=self.trip, name='Ichiran Ramen', category='food', cuisine_type='ramen',
            latitude=35.6600, longitude=139.7000,
        )
        self.near_ichiran = SavedPlace.objects.create(
            trip=self.trip, name='Fuunji', category='food', latitude=35.6610, longitude=139.7000,
        )
        self.near_user = SavedPlace.objects.create(
            trip=self.trip, name='Afuri', category='food', latitude=35.6700, longitude=139.7000,
        )
        SavedPlace.objects.create(trip=self.trip, name='Tokyo Tower', category='place', latitude=35.65, longitude=139.74)
        self.search = MagicMock()
        self.service = AlternativesService(place_search=self.search)
        # Roughly 10km north of Ichiran
        self.user_context = context_at(35.7500, 139.7000)

    def candidates(self):
        return SavedPlace.objects.filter(trip=self.trip)

    def test_saved_alternatives_sorted_by_distance_then_discoveries(self):
        self.search.search_nearby.return_value = [
            ExternalPlaceDTO('g1', 'Ichiran Ramen Shibuya', 'Shibuya', 35.66, 139.70, rating=4.1),
            ExternalPlaceDTO('g2', 'Menya Musashi', 'Shinjuku', 35.69, 139.70, rating=4.3),
            ExternalPlaceDTO('g3', 'Nagi', 'Golden Gai', 35.69, 139.70, rating=4.4),
        ]

        result = self.service.find_alternatives('ichiran', self.candidates(), self.user_context, reason='closed')

        self.assertTrue(result.found)
        self.assertEqual(result.referenced_place, self.ichiran)
        self.assertEqual([p.name for p in result.saved], ['Afuri', 'Fuunji'])
        self.assertEqual([s.name for s in result.discovered], ['Menya Musashi'])
        kwargs = self.search.search_nearby.call_args.kwargs
        self.assertTrue(kwargs['open_now'])
        self.assertEqual(kwargs['radius_m'], 1500)
        self.assertEqual(kwargs['place_type'], 'restaurant')
        self.assertEqual(kwargs['keyword'], 'ramen')
        self.assertIn('From your saved places', result.message)
        self.assertIn('New discoveries nearby', result.message)
        self.assertIn('closed', result.message)

    def test_unknown_place_is_not_an_error(self):
        result = self.service.find_alternatives('Sukiyabashi Jiro', self.candidates(), self.user_context)
        self.assertFalse(result.found)
        self.assertIn("couldn't find", result.message)
        self.search.search_nearby.assert_not_called()

    def test_reference_matches_in_either_direction(self):
        result = self.service.find_alternatives('the Fuunji tsukemen shop', self.candidates())
        self.assertEqual(result.referenced_place, self.near_ichiran)

    def test_search_failure_degrades_to_saved_only(self):
        self.search.search_nearby.side_effect = UpstreamUnavailable('quota')
        result = self.service.find_alternatives('Ichiran Ramen', self.candidates(), self.user_context)
        self.assertTrue(result.found)
        self.assertEqual(len(result.saved), 2)
        self.assertEqual(result.discovered, [])

    def test_referenced_place_coordinates_used_as_origin(self):
        self.search.search_nearby.return_value = []
        result = self.service.find_alternatives('Ichiran Ramen', self.candidates())
        self.assertEqual([p.name for p in result.saved], ['Fuunji', 'Afuri'])
        args = self.search.search_nearby.call_args.args
        self.assertEqual((args[0], args[1]), (35.6600, 139.7000))

    def test_no_origin_means_no_external_search(self):
        self.ichiran.latitude = None
        self.ichiran.longitude = None
        self.ichiran.save()
        result = self.service.find_alternatives('Ichiran Ramen', self.candidates())
        self.assertEqual(len(result.saved), 2)
        self.search.search_nearby.assert_not_called()

    def test_enough_saved_places_skips_external_search(self):
        SavedPlace.objects.create(trip=self.trip, name='Nakiryu', category='food', latitude=35.73, longitude=139.72)
        result = self.service.find_alternatives('Ichiran Ramen', self.candidates(), self.user_context)
        self.assertEqual(len(result.saved), 3)
        self.search.search_nearby.assert_not_called()

    def test_visited_places_are_not_suggested(self):
        self.near_user.status = SavedPlace.Status.VISITED
        self.near_user.save()
        self.search.search_nearby.return_value = []
        result = self.service.find_alternatives('Ichiran Ramen', self.candidates(), self.user_context)
        self.assertEqual([p.name for p in result.saved], ['Fuunji'])

    def test_graceful_fallback_when_nothing_found(self):
        self.search.search_nearby.return_value = []
        result = self.service.find_alternatives('Tokyo Tower', self.candidates(), self.user_context)
        self.assertTrue(result.found)
        self.assertTrue(result.is_empty)
        self.assertIn('search', result.message)

    def test_limit_caps_suggestions(self):
        self.search.search_nearby.return_value = []
        result = self.service.find_alternatives('Ichiran Ramen', self.candidates(), self.user_context, limit=1)
        self.assertEqual([p.name for p in result.saved], ['Afuri'])
        self.search.search_nearby.assert_not_called()

    def test_limit_never_exceeds_three(self):
        SavedPlace.objects.create(trip=self.trip, name='Nakiryu', category='food', latitude=35.73, longitude=139.72)
        SavedPlace.objects.create(trip=self.trip, name='Tsuta', category='food', latitude=35.74, longitude=139.72)
        result = self.service.find_alternatives('Ichiran Ramen', self.candidates(), self.user_context, limit=10)
        self.assertEqual(len(result.saved), 3)

    @patch('locations.place_search.requests.get')
    def test_malformed_search_results_are_skipped(self, mock_get):
        cache.clear()
        mock_get.return_value = MagicMock(status_code=200)
        mock_get.return_value.json.return_value = {
            'status': 'OK',
            'results': [
                {'name': 'No Geometry Ramen'},
                {'name': 'Broken Geometry', 'geometry': None},
                {
                    'place_id': 'g2',
                    'name': 'Menya Musashi',
                    'vicinity': 'Shinjuku',
                    'geometry': {'location': {'lat': 35.69, 'lng': 139.70}},
                },
            ],
        }
        client = GooglePlacesClient(api_key='test-key', rate_limiter=RateLimiter(60))
        service = AlternativesService(place_search=client)

        with self.assertLogs('locations.place_search', level='WARNING'):
            result = service.find_alternatives('Ichiran', self.candidates(), self.user_context, reason='closed')

        self.assertEqual([p.name for p in result.saved], ['Afuri', 'Fuunji'])
        self.assertEqual([s.name for s in result.discovered], ['Menya Musashi'])

    @patch('locations.place_search.requests.get')
    def test_unusable_search_payload_degrades_to_saved_only(self, mock_get):
        cache.clear()
        mock_get.return_value = MagicMock(status_code=200)
        mock_get.return_value.json.return_value = {'status': 'OK', 'results': [{'name': 'No Geometry Ramen'}]}
        service = AlternativesService(place_search=GooglePlacesClient(api_key='test-key', rate_limiter=RateLimiter(60)))

        result = service.find_alternatives('Ichiran', self.candidates(), self.user_context)

        self.assertTrue(result.found)
        self.assertEqual(len(result.saved), 2)
        self.assertEqual(result.discovered, [])

    def test_names_overlap(self):
        self.assertTrue(names_overlap('Ichiran', 'ICHIRAN Ramen Shibuya'))
        self.assertTrue(names_overlap('Ichiran Ramen Shibuya', 'ichiran'))
        self.assertFalse(names_overlap('', 'ichiran'))
        self.assertFalse(names_overlap('Afuri', 'Fuunji'))


class ContextServiceTestCase(TestCase):
    """Test cases for ContextService"""

    def setUp(self):
        self.user = User.objects.create_user(username='ctx', password='testpass')
        self.trip = Trip.objects.create(user=self.user, name='Japan')
        self.tokyo = TripSegment.objects.create(
            trip=self.trip, city='Tokyo', timezone='Asia/Tokyo',
            start_date=date(2026, 5, 1), end_date=date(2026, 5, 5),
            accommodation_name='Hotel Gracery', accommodation_lat=35.6950, accommodation_lng=139.7020,
        )
        self.kyoto = TripSegment.objects.create(
            trip=self.trip, city='Kyoto', timezone='Asia/Tokyo',
            start_date=date(2026, 5, 7), end_date=date(2026, 5, 9), order_index=1,
        )
        self.near_hotel = SavedPlace.objects.create(
            trip=self.trip, name='Omoide Yokocho', area_name='Shinjuku, Tokyo',
            latitude=35.6930, longitude=139.6995, rating=4.3, is_must_visit=True,
        )
        SavedPlace.objects.create(
            trip=self.trip, name='Senso-ji', category='place', area_name='Asakusa, Tokyo',
            latitude=35.7148, longitude=139.7967, rating=4.6, status='visited',
        )
        SavedPlace.objects.create(trip=self.trip, name='Fushimi Inari', area_name='Kyoto', rating=4.8)
        self.now = datetime(2026, 5, 2, 1, 0, tzinfo=dt_timezone.utc)  # 10:00 in Tokyo

    def test_time_of_day_buckets(self):
        expected = {4: 'night', 5: 'morning', 11: 'morning', 12: 'afternoon', 16: 'afternoon',
                    17: 'evening', 20: 'evening', 21: 'night', 0: 'night'}
        for hour, bucket in expected.items():
            self.assertEqual(time_of_day(hour), bucket, hour)

    def test_build_context(self):
        snapshot = ContextService().build_context(self.user, self.trip, now=self.now)

        self.assertEqual(snapshot.time_of_day, 'morning')
        self.assertEqual(snapshot.local_time.hour, 10)
        self.assertEqual(snapshot.city, 'Tokyo')
        self.assertEqual(snapshot.current_segment.day_number, 2)
        self.assertEqual(snapshot.current_segment.days_remaining, 3)
        self.assertEqual(snapshot.next_segment.city, 'Kyoto')
        self.assertEqual(snapshot.next_segment.days_until, 5)
        self.assertEqual(snapshot.visited_count, 1)
        self.assertEqual(snapshot.unvisited_count, 1)
        self.assertEqual([p.name for p in snapshot.top_rated], ['Omoide Yokocho'])
        self.assertEqual([p.name for p in snapshot.must_visit], ['Omoide Yokocho'])
        self.assertEqual(snapshot.nearby_origin, 'accommodation')
        self.assertEqual([p.name for p in snapshot.nearby], ['Omoide Yokocho'])

    def test_user_location_wins_over_accommodation(self):
        snapshot = ContextService().build_context(
            self.user, self.trip, location=PointDTO(35.6930, 139.6995), now=self.now,
        )
        self.assertEqual(snapshot.nearby_origin, 'user')
        self.assertEqual(snapshot.nearby[0].distance, 0)

    def test_transit_day(self):
        snapshot = ContextService().build_context(
            self.user, self.trip, now=datetime(2026, 5, 6, 3, 0, tzinfo=dt_timezone.utc),
        )
        self.assertIsNone(snapshot.current_segment)
        self.assertTrue(snapshot.is_transit_day)
        self.assertEqual(snapshot.next_segment.days_until, 1)
        self.assertEqual(snapshot.nearby, [])


class RecommendationsAPITestCase(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='api', password='testpass')
        self.client.force_authenticate(user=self.user)
        self.trip = Trip.objects.create(user=self.user, name='Tokyo')
        for name, rating in [('Ichiran Ramen', 4.1), ('Afuri', 4.6), ('Fuunji', 4.4)]:
            SavedPlace.objects.create(
                trip=self.trip, name=name, category='food', cuisine_type='ramen', rating=rating,
                latitude=35.66, longitude=139.70,
            )
        SavedPlace.objects.create(trip=self.trip, name='Done', category='food', rating=5.0, status='visited')

    def test_rank_endpoint(self):
        response = self.client.post(reverse('recommendations:rank_places'), {
            'trip': str(self.trip.id),
            'intent': {'type': 'category', 'category': 'food', 'sort_by': 'rating', 'limit': 2},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['intent'], 'category')
        self.assertEqual([p['name'] for p in response.data['results']], ['Afuri', 'Fuunji'])

    def test_rank_endpoint_routes_alternatives(self):
        with patch('recommendations.alternatives_service.GooglePlacesClient.search_nearby',
                   side_effect=UpstreamUnavailable('down')):
            response = self.client.post(reverse('recommendations:rank_places'), {
                'trip': str(self.trip.id),
                'intent': {'type': 'alternatives', 'referenced_place': 'Ichiran', 'reason': 'closed'},
            }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['intent'], 'alternatives')
        self.assertEqual(len(response.data['alternatives']['saved']), 2)

    def test_rank_unknown_trip_returns_structured_404(self):
        other = User.objects.create_user(username='other', password='testpass')
        foreign = Trip.objects.create(user=other, name='Private')
        response = self.client.post(reverse('recommendations:rank_places'), {
            'trip': str(foreign.id),
            'intent': {'type': 'general'},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

    def test_rank_rejects_invalid_intent(self):
        response = self.client.post(reverse('recommendations:rank_places'), {
            'trip': str(self.trip.id),
            'intent': {'type': 'teleport'},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_alternatives_endpoint_not_found_is_200(self):
        response = self.client.post(reverse('recommendations:find_alternatives'), {
            'trip': str(self.trip.id),
            'referenced_place': 'Sukiyabashi Jiro',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['found'])

    def test_context_endpoint(self):
        url = reverse('recommendations:trip_context', kwargs={'trip_id': self.trip.id})
        response = self.client.get(url, {'latitude': 35.66, 'longitude': 139.70})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['nearby_origin'], 'user')
        self.assertEqual(response.data['unvisited_count'], 3)
        self.assertEqual(len(response.data['nearby']), 3)
