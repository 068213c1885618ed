from datetime import date, datetime, timedelta, timezone as dt_timezone

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from .models import Trip, TripSegment
from .services import SegmentService, resolve_timezone


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


class TripModelTest(TestCase):
    """Test cases for Trip and TripSegment models"""

    def setUp(self):
        User = get_user_model()
        self.owner = User.objects.create_user(username='owner', password='testpass')
        self.friend = User.objects.create_user(username='friend', password='testpass')
        self.trip = Trip.objects.create(user=self.owner, name='Japan 2026')

    def test_participants_owner_first_without_duplicates(self):
        self.trip.members.add(self.friend, self.owner)
        people = self.trip.participants()
        self.assertEqual(people[0], self.owner)
        self.assertEqual(len(people), 2)

    def test_is_member(self):
        stranger = get_user_model().objects.create_user(username='stranger', password='x')
        self.trip.members.add(self.friend)
        self.assertTrue(self.trip.is_member(self.owner))
        self.assertTrue(self.trip.is_member(self.friend))
        self.assertFalse(self.trip.is_member(stranger))

    def test_segment_rejects_inverted_dates(self):
        with self.assertRaises(ValueError):
            TripSegment.objects.create(
                trip=self.trip,
                city='Tokyo',
                start_date=date(2026, 5, 5),
                end_date=date(2026, 5, 1),
            )

    def test_accommodation_point(self):
        segment = TripSegment.objects.create(
            trip=self.trip,
            city='Tokyo',
            start_date=date(2026, 5, 1),
            end_date=date(2026, 5, 5),
        )
        self.assertIsNone(segment.get_accommodation_point())
        segment.accommodation_lat = 35.6
        segment.accommodation_lng = 139.7
        self.assertEqual(segment.get_accommodation_point(), (35.6, 139.7))


class SegmentServiceTest(TestCase):
    """Test cases for SegmentService"""

    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username='traveler', password='testpass')
        self.trip = Trip.objects.create(user=self.user, name='Asia')
        self.tokyo = TripSegment.objects.create(
            trip=self.trip,
            city='Tokyo',
            timezone='Asia/Tokyo',
            start_date=date(2026, 5, 1),
            end_date=date(2026, 5, 5),
        )
        self.kyoto = TripSegment.objects.create(
            trip=self.trip,
            city='Kyoto',
            timezone='Asia/Tokyo',
            start_date=date(2026, 5, 7),
            end_date=date(2026, 5, 9),
            order_index=1,
        )

    def test_day_counters_use_segment_local_date(self):
        # 16:00 UTC on May 2nd is already 01:00 on May 3rd in Tokyo
        info = SegmentService.get_current_segment(self.trip, now=utc(2026, 5, 2, 16, 0))
        self.assertEqual(info.segment, self.tokyo)
        self.assertEqual(info.local_date, date(2026, 5, 3))
        self.assertEqual(info.day_number, 3)
        self.assertEqual(info.total_days, 5)
        self.assertEqual(info.days_remaining, 2)
        self.assertFalse(info.is_last_day)

    def test_last_day(self):
        info = SegmentService.get_current_segment(self.trip, now=utc(2026, 5, 5, 3, 0))
        self.assertEqual(info.segment, self.tokyo)
        self.assertEqual(info.days_remaining, 0)
        self.assertTrue(info.is_last_day)

    def test_transit_day_between_segments(self):
        info = SegmentService.get_current_segment(self.trip, now=utc(2026, 5, 6, 3, 0))
        self.assertIsNone(info.segment)
        self.assertTrue(info.is_transit_day)
        self.assertEqual(info.day_number, 0)

    def test_before_trip_is_not_transit(self):
        info = SegmentService.get_current_segment(self.trip, now=utc(2026, 4, 20, 3, 0))
        self.assertIsNone(info.segment)
        self.assertFalse(info.is_transit_day)

    def test_get_next_segment(self):
        self.assertEqual(SegmentService.get_next_segment(self.trip, date(2026, 5, 5)), self.kyoto)
        self.assertIsNone(SegmentService.get_next_segment(self.trip, date(2026, 5, 7)))

    def test_get_trip_timezone_prefers_first_segment(self):
        self.assertEqual(SegmentService.get_trip_timezone(self.trip), 'Asia/Tokyo')

    def test_find_active_segments_per_timezone(self):
        other_trip = Trip.objects.create(user=self.user, name='USA')
        new_york = TripSegment.objects.create(
            trip=other_trip,
            city='New York',
            timezone='America/New_York',
            start_date=date(2026, 5, 1),
            end_date=date(2026, 5, 5),
        )
        # 23:30 UTC on May 5th: Tokyo is on May 6th, New York still on May 5th
        active = SegmentService.find_active_segments(now=utc(2026, 5, 5, 23, 30))
        self.assertIn(new_york, active)
        self.assertNotIn(self.tokyo, active)


class ResolveTimezoneTest(TestCase):

    def test_unknown_name_falls_back(self):
        self.assertEqual(resolve_timezone('Mars/Olympus_Mons').key, 'UTC')
        self.assertEqual(resolve_timezone('').key, 'UTC')
        self.assertEqual(resolve_timezone('Europe/Lisbon').key, 'Europe/Lisbon')


class TripAPITest(APITestCase):
    """Test cases for Trip API endpoints"""

    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username='apiuser', password='testpass')
        self.other = User.objects.create_user(username='other', password='testpass')
        self.client.force_authenticate(user=self.user)
        self.trip = Trip.objects.create(user=self.user, name='Weekend in Porto')

    def test_list_only_own_or_joined_trips(self):
        Trip.objects.create(user=self.other, name='Not mine')
        shared = Trip.objects.create(user=self.other, name='Shared')
        shared.members.add(self.user)

        response = self.client.get(reverse('trips:trip-list'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = {item['name'] for item in response.data['results']}
        self.assertEqual(names, {'Weekend in Porto', 'Shared'})

    def test_create_trip_sets_owner(self):
        response = self.client.post(reverse('trips:trip-list'), {'name': 'Lisbon'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Trip.objects.get(name='Lisbon').user, self.user)

    def test_current_segment_endpoint(self):
        today = timezone.now().date()
        TripSegment.objects.create(
            trip=self.trip,
            city='Porto',
            timezone='UTC',
            start_date=today - timedelta(days=1),
            end_date=today + timedelta(days=1),
        )
        url = reverse('trips:trip-current-segment', kwargs={'pk': self.trip.id})
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['segment']['city'], 'Porto')
        self.assertEqual(response.data['day_number'], 2)
        self.assertEqual(response.data['total_days'], 3)

    def test_segment_with_inverted_dates_rejected(self):
        response = self.client.post(reverse('trips:segment-list'), {
            'trip': str(self.trip.id),
            'city': 'Porto',
            'start_date': '2026-05-05',
            'end_date': '2026-05-01',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_add_segment_to_foreign_trip(self):
        foreign = Trip.objects.create(user=self.other, name='Private')
        response = self.client.post(reverse('trips:segment-list'), {
            'trip': str(foreign.id),
            'city': 'Porto',
            'start_date': '2026-05-01',
            'end_date': '2026-05-02',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
