from unittest.mock import patch, MagicMock

import requests
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from core.exceptions import InvalidInput, UpstreamUnavailable
from trips.models import Trip, TripSegment
from .geocoding import (
    GeocodeCandidate,
    GeocodingService,
    name_match_points,
    score_geocode,
    address_points,
    uniqueness_points,
)
from .models import SavedPlace
from .place_search import GooglePlacesClient, RateLimiter, category_to_place_type
from .services import GeoService, haversine_distance

User = get_user_model()


def make_trip(username='traveler'):
    user = User.objects.create_user(username=username, password='testpass')
    return user, Trip.objects.create(user=user, name='Test Trip')


def mock_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class SavedPlaceModelTests(TestCase):
    def setUp(self):
        self.user, self.trip = make_trip()

    def test_create_place(self):
        place = SavedPlace.objects.create(trip=self.trip, name="Ichiran", category='FOOD')
        self.assertEqual(place.category, SavedPlace.Category.FOOD)
        self.assertEqual(place.status, SavedPlace.Status.SAVED)
        self.assertIsNone(place.get_lat_lon())

    def test_invalid_coordinates(self):
        """Test that invalid coordinates raise a ValueError during save."""
        place = SavedPlace(trip=self.trip, name="Bad Location", latitude=100.0, longitude=200.0)
        with self.assertRaises(ValueError):
            place.save()

    def test_half_coordinates_rejected(self):
        place = SavedPlace(trip=self.trip, name="Half", latitude=10.0)
        with self.assertRaises(ValueError):
            place.save()

    def test_search_text_includes_tags_and_cuisine(self):
        place = SavedPlace(
            trip=self.trip,
            name="Fuunji",
            description="Tsukemen shop",
            cuisine_type="Ramen",
            tags=["Shinjuku", "noodles"],
        )
        text = place.search_text()
        self.assertIn("ramen", text)
        self.assertIn("shinjuku", text)
        self.assertIn("tsukemen", text)


class DistanceTests(TestCase):
    def test_distance_to_itself_is_zero(self):
        self.assertEqual(haversine_distance(35.6, 139.7, 35.6, 139.7), 0)

    def test_distance_is_symmetric(self):
        a = (35.6595, 139.7005)
        b = (34.6937, 135.5023)
        self.assertAlmostEqual(
            haversine_distance(*a, *b),
            haversine_distance(*b, *a),
            places=6,
        )

    def test_known_distance(self):
        # 0.009 degrees of longitude on the equator is roughly one kilometer
        distance = haversine_distance(0.0, 0.0, 0.0, 0.009)
        self.assertGreater(distance, 995)
        self.assertLess(distance, 1005)


class GeoServiceTests(TestCase):
    def setUp(self):
        self.user, self.trip = make_trip()
        self.center = SavedPlace.objects.create(
            trip=self.trip, name="Center", category='place', latitude=0.0, longitude=0.0,
        )
        self.nearby = SavedPlace.objects.create(
            trip=self.trip, name="Nearby", category='food', latitude=0.0, longitude=0.009,
        )
        self.far = SavedPlace.objects.create(
            trip=self.trip, name="Far", category='place', latitude=0.0, longitude=1.0,
        )
        self.unresolved = SavedPlace.objects.create(trip=self.trip, name="Somewhere", category='food')

    def test_find_nearby(self):
        """Test finding places within a specific radius."""
        results = GeoService.find_nearby(GeoService.for_trips([self.trip.pk]), 0.0, 0.0, 2000)
        self.assertEqual(results, [self.center, self.nearby])
        self.assertEqual(results[0].distance, 0)

    def test_find_nearby_rejects_out_of_range_origin(self):
        with self.assertRaises(InvalidInput):
            GeoService.find_nearby(GeoService.for_trips([self.trip.pk]), 95.0, 0.0, 2000)
        with self.assertRaises(InvalidInput):
            GeoService.find_nearby(GeoService.for_trips([self.trip.pk]), 0.0, 181.0, 2000)

    def test_find_nearby_with_category(self):
        results = GeoService.find_nearby(GeoService.for_trips([self.trip.pk]), 0.0, 0.0, 2000, category='FOOD')
        self.assertEqual(results, [self.nearby])

    def test_find_nearby_excludes_visited(self):
        GeoService.mark_visited(self.nearby)
        queryset = GeoService.for_trips([self.trip.pk], exclude_visited=True)
        self.assertEqual(GeoService.find_nearby(queryset, 0.0, 0.0, 2000), [self.center])

    def test_annotate_keeps_places_without_coordinates(self):
        places = GeoService.annotate_distances([self.unresolved, self.nearby], 0.0, 0.0)
        self.assertIsNone(places[0].distance)
        self.assertIsNotNone(places[1].distance)

    def test_mark_visited(self):
        GeoService.mark_visited(self.center)
        self.center.refresh_from_db()
        self.assertEqual(self.center.status, SavedPlace.Status.VISITED)
        self.assertIsNotNone(self.center.visited_at)

    def test_city_stats(self):
        GeoService.mark_visited(self.far)
        stats = GeoService.city_stats(self.trip)
        self.assertEqual(stats['total'], 4)
        self.assertEqual(stats['visited'], 1)
        self.assertEqual(stats['unvisited'], 3)
        self.assertEqual(stats['by_category'], {'place': 2, 'food': 2})

    def test_encode_geohash(self):
        self.assertEqual(len(GeoService.encode_geohash(35.6595, 139.7005, 7)), 7)


class StoreQueryTests(TestCase):
    def setUp(self):
        self.user, self.trip = make_trip()
        self.segment = TripSegment.objects.create(
            trip=self.trip, city='Osaka', start_date='2026-05-01', end_date='2026-05-03',
        )

    def test_top_rated_orders_by_rating_then_count(self):
        SavedPlace.objects.create(trip=self.trip, name="Unrated", area_name="Osaka")
        b = SavedPlace.objects.create(trip=self.trip, name="B", area_name="Osaka", rating=4.5, rating_count=10)
        a = SavedPlace.objects.create(trip=self.trip, name="A", area_name="Osaka", rating=4.5, rating_count=900)
        c = SavedPlace.objects.create(trip=self.trip, name="C", area_name="Osaka", rating=4.9, rating_count=5)
        SavedPlace.objects.create(trip=self.trip, name="Tokyo pick", area_name="Tokyo", rating=5.0)

        self.assertEqual(GeoService.top_rated(self.trip, city='osaka'), [c, a, b])

    def test_city_scope_includes_segment_places(self):
        linked = SavedPlace.objects.create(trip=self.trip, name="Linked", segment=self.segment, rating=4.0)
        results = GeoService.top_rated(self.trip, city='Osaka', segment=self.segment)
        self.assertEqual(results, [linked])

    def test_must_visit_unrated_last_then_oldest_first(self):
        unrated = SavedPlace.objects.create(trip=self.trip, name="Unrated", is_must_visit=True)
        old = SavedPlace.objects.create(trip=self.trip, name="Old", is_must_visit=True, rating=4.0)
        new = SavedPlace.objects.create(trip=self.trip, name="New", is_must_visit=True, rating=4.0)
        best = SavedPlace.objects.create(trip=self.trip, name="Best", is_must_visit=True, rating=4.8)
        SavedPlace.objects.create(trip=self.trip, name="Optional", rating=5.0)

        self.assertEqual(GeoService.must_visit(self.trip), [best, old, new, unrated])

    def test_must_visit_excludes_visited(self):
        place = SavedPlace.objects.create(trip=self.trip, name="Done", is_must_visit=True, status='visited')
        self.assertNotIn(place, GeoService.must_visit(self.trip))


class ConfidenceScoringTests(TestCase):
    def candidate(self, types=('establishment',), address='Ichiran Ramen, Jinnan, Shibuya, Tokyo, Japan', components=6):
        return GeocodeCandidate(
            formatted_address=address,
            lat=35.66,
            lng=139.70,
            types=list(types),
            address_component_count=components,
        )

    def test_perfect_match_scores_100(self):
        result = score_geocode(self.candidate(), 'Ichiran Ramen', 1)
        self.assertEqual(result.score, 100)
        self.assertEqual(result.tier, 'high')

    def test_specificity_levels(self):
        for types, expected in [
            (['point_of_interest'], 40),
            (['route'], 25),
            (['street_address'], 25),
            (['neighborhood'], 10),
            (['locality', 'political'], 10),
            (['country'], 0),
        ]:
            result = score_geocode(self.candidate(types=types, address='nowhere', components=0), 'xx', 5)
            self.assertEqual(result.score, expected, types)

    def test_name_match_counts_short_words_in_total(self):
        # "of" never matches but still counts: 2 of 3 words
        self.assertEqual(name_match_points('Museum of Art', 'Museum of Art, Tokyo'), 20)

    def test_name_match_uses_first_comma_segment(self):
        self.assertEqual(name_match_points('Ichiran Ramen, Tokyo', 'Ichiran Ramen, Shibuya'), 30)

    def test_name_match_rounds_half_up(self):
        # 3 of 4 words -> 22.5 points
        self.assertEqual(name_match_points('alpha beta gamma delta', 'Alpha Beta Gamma Street'), 23)

    def test_name_match_without_qualifying_tokens(self):
        self.assertEqual(name_match_points('', 'Anything'), 0)
        self.assertEqual(name_match_points('ab cd', 'ab cd street'), 0)

    def test_name_match_is_monotonic(self):
        address = 'Blue Bottle Coffee Kiyosumi Tokyo'
        previous = -1
        for search in ['blue xxxx yyyy zzzz', 'blue bottle yyyy zzzz', 'blue bottle coffee zzzz', 'blue bottle coffee kiyosumi']:
            points = name_match_points(search, address)
            self.assertGreaterEqual(points, previous)
            previous = points

    def test_address_component_boundaries(self):
        self.assertEqual(address_points(5), 20)
        self.assertEqual(address_points(4), 10)
        self.assertEqual(address_points(3), 10)
        self.assertEqual(address_points(2), 0)

    def test_uniqueness_boundaries(self):
        self.assertEqual(uniqueness_points(1), 10)
        self.assertEqual(uniqueness_points(3), 5)
        self.assertEqual(uniqueness_points(4), 0)
        self.assertGreaterEqual(uniqueness_points(1), uniqueness_points(4))

    def test_high_tier_boundary(self):
        # 40 + 5 (1 of 6 words) + 20 + 10
        at = score_geocode(self.candidate(address='Alpha Street'), 'alpha xx yy zz ww vv', 1)
        self.assertEqual(at.score, 75)
        self.assertEqual(at.tier, 'high')
        # 40 + 4 (1 of 7 words) + 20 + 10
        below = score_geocode(self.candidate(address='Alpha Street'), 'alpha xx yy zz ww vv uu', 1)
        self.assertEqual(below.score, 74)
        self.assertEqual(below.tier, 'medium')

    def test_medium_tier_boundary(self):
        at = score_geocode(self.candidate(address='Nowhere', components=3), 'xx', 4)
        self.assertEqual(at.score, 50)
        self.assertEqual(at.tier, 'medium')
        below = score_geocode(
            self.candidate(types=['route'], address='Alpha Street', components=5),
            'alpha xx yy zz ww vv uu',
            4,
        )
        self.assertEqual(below.score, 49)
        self.assertEqual(below.tier, 'low')


@override_settings(GOOGLE_MAPS_API_KEY='test-key')
class GeocodingServiceTests(TestCase):
    OK_PAYLOAD = {
        'status': 'OK',
        'results': [{
            'formatted_address': 'Ichiran Ramen, Jinnan, Shibuya City, Tokyo, Japan',
            'geometry': {'location': {'lat': 35.6614, 'lng': 139.7003}},
            'types': ['establishment', 'point_of_interest', 'restaurant'],
            'address_components': [{}, {}, {}, {}, {}, {}],
        }],
    }

    def setUp(self):
        self.user, self.trip = make_trip()
        self.service = GeocodingService()

    @patch('locations.geocoding.requests.get')
    def test_geocode_place_with_context(self, mock_get):
        mock_get.return_value = mock_response(self.OK_PAYLOAD)

        result = self.service.geocode_place('Ichiran Ramen', 'Tokyo')

        self.assertEqual(mock_get.call_args.kwargs['params']['address'], 'Ichiran Ramen, Tokyo')
        self.assertEqual(result.lat, 35.6614)
        self.assertEqual(result.confidence, 'high')
        self.assertEqual(result.confidence_score, 100)

    @patch('locations.geocoding.requests.get')
    def test_zero_results_returns_none(self, mock_get):
        mock_get.return_value = mock_response({'status': 'ZERO_RESULTS', 'results': []})
        self.assertIsNone(self.service.geocode_place('Nowhere at all'))

    @patch('locations.geocoding.requests.get')
    def test_upstream_failure_returns_none(self, mock_get):
        mock_get.side_effect = requests.ConnectionError('boom')
        self.assertIsNone(self.service.geocode_place('Ichiran Ramen'))

    @patch('locations.geocoding.requests.get')
    def test_error_status_raises_upstream_unavailable(self, mock_get):
        mock_get.return_value = mock_response({'status': 'OVER_QUERY_LIMIT'})
        with self.assertRaises(UpstreamUnavailable):
            self.service.fetch_candidates('Ichiran Ramen')

    @patch('locations.geocoding.requests.get')
    def test_batch_keeps_input_order(self, mock_get):
        def respond(url, params=None, timeout=None):
            if params['address'].startswith('Missing'):
                return mock_response({'status': 'ZERO_RESULTS', 'results': []})
            return mock_response(self.OK_PAYLOAD)
        mock_get.side_effect = respond

        results = self.service.geocode_places([('Ichiran Ramen', None), ('Missing place', 'Tokyo'), ('Ichiran', None)])

        self.assertEqual(len(results), 3)
        self.assertIsNotNone(results[0])
        self.assertIsNone(results[1])
        self.assertIsNotNone(results[2])

    @patch('locations.geocoding.requests.get')
    def test_regeocode_persists_result(self, mock_get):
        mock_get.return_value = mock_response(self.OK_PAYLOAD)
        place = SavedPlace.objects.create(trip=self.trip, name='Ichiran Ramen', area_name='Tokyo')

        self.service.regeocode(place)
        place.refresh_from_db()

        self.assertEqual(place.latitude, 35.6614)
        self.assertEqual(place.location_confidence, 'high')
        self.assertIn('Shibuya', place.location_name)

    @patch('locations.geocoding.requests.get')
    def test_regeocode_failure_keeps_coordinates(self, mock_get):
        mock_get.side_effect = requests.Timeout('slow')
        place = SavedPlace.objects.create(trip=self.trip, name='Ichiran Ramen', latitude=35.0, longitude=139.0)

        self.service.regeocode(place)
        place.refresh_from_db()

        self.assertEqual(place.latitude, 35.0)
        self.assertEqual(place.location_confidence, 'low')
        self.assertEqual(place.location_confidence_score, 0)


class PlaceSearchTests(TestCase):
    PAYLOAD = {
        'status': 'OK',
        'results': [
            {
                'place_id': f'id-{i}',
                'name': f'Ramen {i}',
                'vicinity': 'Shibuya',
                'rating': 4.0 + i / 10,
                'user_ratings_total': 100,
                'geometry': {'location': {'lat': 35.66, 'lng': 139.70}},
                'opening_hours': {'open_now': True},
                'types': ['restaurant'],
            }
            for i in range(5)
        ],
    }

    def setUp(self):
        cache.clear()
        self.client_ = GooglePlacesClient(api_key='test-key', rate_limiter=RateLimiter(100))

    def test_category_to_place_type(self):
        self.assertEqual(category_to_place_type('FOOD'), 'restaurant')
        self.assertEqual(category_to_place_type('shopping'), 'shopping_mall')
        self.assertEqual(category_to_place_type('activity'), 'tourist_attraction')
        self.assertEqual(category_to_place_type('accommodation'), 'lodging')
        self.assertEqual(category_to_place_type('tip'), 'point_of_interest')
        self.assertEqual(category_to_place_type(None), 'point_of_interest')

    @patch('locations.place_search.requests.get')
    def test_search_nearby_sends_filters_and_limits(self, mock_get):
        mock_get.return_value = mock_response(self.PAYLOAD)

        places = self.client_.search_nearby(35.66, 139.70, place_type='restaurant', keyword='ramen',
                                            radius_m=1500, open_now=True, max_results=2)

        params = mock_get.call_args.kwargs['params']
        self.assertEqual(params['type'], 'restaurant')
        self.assertEqual(params['keyword'], 'ramen')
        self.assertEqual(params['radius'], 1500)
        self.assertEqual(params['opennow'], 'true')
        self.assertEqual([p.name for p in places], ['Ramen 0', 'Ramen 1'])
        self.assertTrue(places[0].open_now)

    @patch('locations.place_search.requests.get')
    def test_results_are_cached(self, mock_get):
        mock_get.return_value = mock_response(self.PAYLOAD)

        self.client_.search_nearby(35.66, 139.70, keyword='ramen', max_results=1)
        places = self.client_.search_nearby(35.66, 139.70, keyword='ramen', max_results=3)

        self.assertEqual(mock_get.call_count, 1)
        self.assertEqual(len(places), 3)

    @patch('locations.place_search.requests.get')
    def test_error_status_raises(self, mock_get):
        mock_get.return_value = mock_response({'status': 'REQUEST_DENIED'})
        with self.assertRaises(UpstreamUnavailable):
            self.client_.search_nearby(35.66, 139.70)

    def test_missing_api_key_raises(self):
        client = GooglePlacesClient(rate_limiter=RateLimiter(100))
        client.api_key = ''
        with self.assertRaises(UpstreamUnavailable):
            client.search_nearby(1.0, 1.0)

    def test_rate_limiter(self):
        limiter = RateLimiter(calls_per_minute=2)
        self.assertTrue(limiter.check_limit())
        self.assertTrue(limiter.check_limit())
        with self.assertRaises(UpstreamUnavailable):
            limiter.check_limit()


class SavedPlaceAPITests(APITestCase):
    def setUp(self):
        self.user, self.trip = make_trip('apiuser')
        self.client.force_authenticate(user=self.user)
        self.place = SavedPlace.objects.create(
            trip=self.trip,
            name="API Test Place",
            category='food',
            latitude=40.0,
            longitude=30.0,
        )
        self.list_url = reverse('locations:place-list')
        self.nearby_url = reverse('locations:place-nearby')

    def test_list_places(self):
        response = self.client.get(self.list_url, {'trip': str(self.trip.id)})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['results']), 1)
        self.assertEqual(response.data['results'][0]['name'], "API Test Place")

    def test_other_users_cannot_see_places(self):
        other = User.objects.create_user(username='other', password='testpass')
        self.client.force_authenticate(user=other)
        response = self.client.get(self.list_url)
        self.assertEqual(response.data['count'], 0)

    def test_create_place_sets_added_by(self):
        response = self.client.post(self.list_url, {
            'trip': str(self.trip.id),
            'name': 'Kinkaku-ji',
            'category': 'Place',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        place = SavedPlace.objects.get(name='Kinkaku-ji')
        self.assertEqual(place.added_by, self.user)
        self.assertEqual(place.category, 'place')

    def test_nearby_endpoint(self):
        params = {
            'trip': str(self.trip.id),
            'latitude': 40.0,
            'longitude': 30.0,
            'radius': 1000,
        }
        response = self.client.get(self.nearby_url, params)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], str(self.place.id))
        self.assertEqual(response.data['results'][0]['distance'], 0)

    def test_nearby_endpoint_rejects_bad_params(self):
        response = self.client.get(self.nearby_url, {'trip': str(self.trip.id), 'latitude': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_visit_action(self):
        url = reverse('locations:place-visit', kwargs={'pk': self.place.id})
        response = self.client.post(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'visited')

    @patch('locations.views.GeocodingService.geocode_place', return_value=None)
    def test_geocode_action_degrades_to_low_confidence(self, mock_geocode):
        url = reverse('locations:place-geocode', kwargs={'pk': self.place.id})
        response = self.client.post(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['location_confidence'], 'low')
        self.assertEqual(response.data['latitude'], 40.0)
