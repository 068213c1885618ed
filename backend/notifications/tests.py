from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from io import StringIO
from unittest.mock import MagicMock, patch

from django.contrib.auth.models import User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db.utils import IntegrityError
from django.test import TestCase
from django.urls import reverse
from firebase_admin import exceptions as firebase_exceptions, messaging
from rest_framework import status
from rest_framework.test import APITestCase

from locations.models import SavedPlace
from notifications.briefings import BriefingRunResult, BriefingService, compose_meal, meal_for_hour
from notifications.models import (
    DevicePlatform,
    DeviceToken,
    Notification,
    NotificationKind,
    NotificationPreference,
    ProximityAlertRecord,
    in_quiet_window,
)
from notifications.proximity import AlertOutcome, ProximityAlertService, describe_distance
from notifications.services import NotificationService, PreferenceService, PushService
from recommendations.context_service import ContextService
from trips.models import Trip, TripSegment


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


def quiet_push():
    push = MagicMock()
    push.send_to_user.return_value = 1
    return push


class QuietWindowTest(TestCase):
    """Quiet hours are compared as local HH:MM"""

    def test_wrapping_window(self):
        start, end = time(22, 0), time(7, 0)
        self.assertTrue(in_quiet_window(time(23, 0), start, end))
        self.assertTrue(in_quiet_window(time(3, 0), start, end))
        self.assertTrue(in_quiet_window(time(22, 0), start, end))
        self.assertFalse(in_quiet_window(time(8, 0), start, end))
        self.assertFalse(in_quiet_window(time(21, 59, 59), start, end))
        self.assertFalse(in_quiet_window(time(7, 0), start, end))

    def test_same_day_window(self):
        start, end = time(13, 0), time(15, 0)
        self.assertTrue(in_quiet_window(time(13, 0), start, end))
        self.assertTrue(in_quiet_window(time(14, 59), start, end))
        self.assertFalse(in_quiet_window(time(15, 0), start, end))
        self.assertFalse(in_quiet_window(time(23, 0), start, end))

    def test_empty_window_is_never_quiet(self):
        self.assertFalse(in_quiet_window(time(9, 0), time(9, 0), time(9, 0)))


class NotificationModelTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.trip = Trip.objects.create(user=self.user, name='Japan')

    def test_mark_as_read(self):
        notification = Notification.objects.create(
            recipient=self.user, kind=NotificationKind.MORNING, title='Day 1 in Tokyo', body='5 places',
        )
        self.assertFalse(notification.is_read)
        notification.mark_as_read()
        notification.refresh_from_db()
        self.assertTrue(notification.is_read)

    def test_deep_links(self):
        with_place = Notification(recipient=self.user, trip=self.trip, kind='proximity', data={'place_id': 'abc'})
        with_trip = Notification(recipient=self.user, trip=self.trip, kind='morning', data={})
        bare = Notification(recipient=self.user, kind='morning', data={})
        self.assertEqual(with_place.get_deep_link(), 'travelcompanion://place/abc')
        self.assertEqual(with_trip.get_deep_link(), f'travelcompanion://trip/{self.trip.id}')
        self.assertIsNone(bare.get_deep_link())

    def test_unique_device_token(self):
        DeviceToken.objects.create(user=self.user, token='same', platform=DevicePlatform.iOS)
        with self.assertRaises(IntegrityError):
            DeviceToken.objects.create(user=self.user, token='same', platform=DevicePlatform.ANDROID)

    def test_one_default_preference_row_per_user(self):
        NotificationPreference.objects.create(user=self.user)
        with self.assertRaises(IntegrityError):
            NotificationPreference.objects.create(user=self.user)

    def test_kind_toggles(self):
        preferences = NotificationPreference(user=self.user, evening_recap=False, nearby_alerts=False)
        self.assertTrue(preferences.is_enabled(NotificationKind.MORNING))
        self.assertTrue(preferences.is_enabled('last_day'))
        self.assertFalse(preferences.is_enabled(NotificationKind.EVENING))
        self.assertFalse(preferences.is_enabled(NotificationKind.PROXIMITY))


class PushServiceTest(TestCase):
    """Test cases for PushService"""

    def setUp(self):
        self.push_service = PushService(app=MagicMock())
        self.user = User.objects.create_user(username='pushuser', password='testpass123')

    def test_register_device_updates_existing_token(self):
        other = User.objects.create_user(username='previous', password='testpass123')
        DeviceToken.objects.create(user=other, token='existing', platform=DevicePlatform.ANDROID, is_active=False)

        device = self.push_service.register_device(self.user, 'existing', DevicePlatform.iOS)

        self.assertEqual(device.user, self.user)
        self.assertTrue(device.is_active)
        self.assertEqual(DeviceToken.objects.count(), 1)

    def test_send_deletes_rejected_tokens_only(self):
        for token in ('good', 'dead', 'busy'):
            DeviceToken.objects.create(user=self.user, token=token)

        def fake_send(message, app=None):
            responses = []
            for token in message.tokens:
                if token == 'dead':
                    responses.append(MagicMock(success=False, exception=messaging.UnregisteredError('gone')))
                elif token == 'busy':
                    responses.append(MagicMock(success=False, exception=firebase_exceptions.UnavailableError('busy')))
                else:
                    responses.append(MagicMock(success=True, exception=None))
            return MagicMock(success_count=1, failure_count=2, responses=responses)

        with patch('notifications.services.messaging.send_each_for_multicast', side_effect=fake_send) as send:
            delivered = self.push_service.send_to_user(self.user.pk, 'Title', 'Body', {'count': 3, 'skip': None})

        self.assertEqual(delivered, 1)
        message = send.call_args.args[0]
        self.assertEqual(message.data, {'count': '3'})
        self.assertEqual(
            set(DeviceToken.objects.values_list('token', flat=True)),
            {'good', 'busy'},
        )

    def test_send_without_tokens(self):
        with patch('notifications.services.messaging.send_each_for_multicast') as send:
            self.assertEqual(self.push_service.send_to_user(self.user.pk, 'Title', 'Body'), 0)
        send.assert_not_called()

    def test_send_failure_is_not_raised(self):
        DeviceToken.objects.create(user=self.user, token='good')
        with patch('notifications.services.messaging.send_each_for_multicast',
                   side_effect=firebase_exceptions.UnavailableError('down')):
            self.assertEqual(self.push_service.send_to_user(self.user.pk, 'Title', 'Body'), 0)

    def test_disabled_client_sends_nothing(self):
        service = PushService(app=MagicMock())
        service.fcm_client = None
        DeviceToken.objects.create(user=self.user, token='good')
        self.assertEqual(service.send_to_user(self.user.pk, 'Title', 'Body'), 0)


class PreferenceServiceTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='prefs', password='testpass123')
        self.trip = Trip.objects.create(user=self.user, name='Japan')
        self.other_trip = Trip.objects.create(user=self.user, name='Portugal')

    def test_defaults_created_lazily(self):
        preferences = PreferenceService.get_for(self.user)
        self.assertIsNone(preferences.trip)
        self.assertTrue(preferences.morning_briefing)
        self.assertEqual(preferences.quiet_start, time(22, 0))
        self.assertEqual(preferences.quiet_end, time(7, 0))
        self.assertEqual(preferences.max_daily_notifications, 10)
        self.assertEqual(PreferenceService.get_for(self.user).pk, preferences.pk)

    def test_trip_override_seeded_from_default(self):
        PreferenceService.update(self.user, {'max_daily_notifications': 4})
        override = PreferenceService.update(self.user, {'evening_recap': False}, trip=self.trip)

        self.assertEqual(override.trip, self.trip)
        self.assertEqual(override.max_daily_notifications, 4)
        self.assertFalse(override.evening_recap)
        self.assertFalse(PreferenceService.get_for(self.user, self.trip).evening_recap)
        # Other trips and the default keep the default row
        self.assertTrue(PreferenceService.get_for(self.user, self.other_trip).evening_recap)
        self.assertTrue(PreferenceService.get_for(self.user).evening_recap)
        self.assertEqual(NotificationPreference.objects.filter(user=self.user).count(), 2)

    def test_unknown_fields_are_ignored(self):
        preferences = PreferenceService.update(self.user, {'user': None, 'nearby_alerts': False})
        self.assertEqual(preferences.user, self.user)
        self.assertFalse(preferences.nearby_alerts)


class NotificationServiceTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='dispatch', password='testpass123')
        self.trip = Trip.objects.create(user=self.user, name='Japan')
        self.push = quiet_push()
        self.service = NotificationService(push_service=self.push)

    def test_dispatch_records_history_and_pushes(self):
        now = utc(2026, 5, 2, 3, 0)
        notification = self.service.dispatch(
            self.user, 'morning', 'Day 2 in Tokyo', 'Go', trip=self.trip, data={'city': 'Tokyo'}, now=now,
        )
        self.assertEqual(notification.created_at, now)
        self.assertEqual(notification.data, {'type': 'morning', 'trip_id': str(self.trip.pk), 'city': 'Tokyo'})
        args = self.push.send_to_user.call_args.args
        self.assertEqual(args[:3], (self.user.pk, 'Day 2 in Tokyo', 'Go'))
        self.assertEqual(args[3]['notification_id'], notification.id)

    def test_count_today_uses_local_midnight(self):
        # 00:30 on May 2 in Tokyo is 15:30 UTC on May 1
        now = utc(2026, 5, 2, 3, 0)
        for created in (utc(2026, 5, 1, 15, 30), utc(2026, 5, 1, 14, 30), utc(2026, 5, 2, 2, 0)):
            Notification.objects.create(recipient=self.user, kind='morning', title='t', body='b', created_at=created)
        self.assertEqual(NotificationService.count_today(self.user, 'Asia/Tokyo', now), 2)
        self.assertEqual(NotificationService.count_today(self.user, 'UTC', now), 1)


class ProximityFixtureMixin:

    def setUp(self):
        self.user = User.objects.create_user(username='walker', password='testpass123')
        self.trip = Trip.objects.create(user=self.user, name='Japan')
        TripSegment.objects.create(
            trip=self.trip, city='Tokyo', timezone='Asia/Tokyo',
            start_date=date(2026, 5, 1), end_date=date(2026, 5, 3),
        )
        self.hachiko = SavedPlace.objects.create(
            trip=self.trip, name='Hachiko', category='place', latitude=35.6591, longitude=139.7006,
            source_title='Shibuya walking tour',
        )
        self.sky = SavedPlace.objects.create(
            trip=self.trip, name='Shibuya Sky', category='activity', latitude=35.6585, longitude=139.7022,
        )
        SavedPlace.objects.create(
            trip=self.trip, name='Already seen', category='place', latitude=35.6595, longitude=139.7005,
            status=SavedPlace.Status.VISITED,
        )
        self.lat, self.lng = 35.6595, 139.7005
        # 12:00 in Tokyo
        self.now = utc(2026, 5, 2, 3, 0)
        self.push = quiet_push()
        self.service = ProximityAlertService(notification_service=NotificationService(push_service=self.push))


class ProximityAlertServiceTest(ProximityFixtureMixin, TestCase):
    """Test cases for ProximityAlertService"""

    def test_alerts_for_closest_unvisited_place(self):
        result = self.service.on_location_update(self.user, self.lat, self.lng, trip=self.trip, now=self.now)

        self.assertEqual(result.outcome, AlertOutcome.SENT)
        self.assertTrue(result.sent)
        self.assertEqual(result.place, self.hachiko)
        self.assertEqual(result.notification.title, 'Hachiko is right here!')
        self.assertEqual(
            result.notification.body,
            'That\'s the place spot from "Shibuya walking tour". Want to check it out?',
        )
        self.assertEqual(result.notification.data['place_id'], str(self.hachiko.pk))
        self.assertEqual(result.notification.data['trip_id'], str(self.trip.pk))
        record = ProximityAlertRecord.objects.get()
        self.assertEqual(record.place, self.hachiko)
        self.assertEqual(record.created_at, self.now)
        self.push.send_to_user.assert_called_once()

    def test_cooldown_allows_one_alert_per_window(self):
        first = self.service.on_location_update(self.user, self.lat, self.lng, trip=self.trip, now=self.now)
        second = self.service.on_location_update(
            self.user, self.lat, self.lng, trip=self.trip, now=self.now + timedelta(minutes=29),
        )
        third = self.service.on_location_update(
            self.user, self.lat, self.lng, trip=self.trip, now=self.now + timedelta(minutes=31),
        )

        self.assertTrue(first.sent)
        self.assertEqual(second.outcome, AlertOutcome.COOLDOWN)
        self.assertTrue(second.suppressed)
        self.assertTrue(third.sent)
        self.assertEqual(ProximityAlertRecord.objects.count(), 2)
        self.assertEqual(Notification.objects.count(), 2)

    def test_cooldown_is_global_per_user(self):
        other_trip = Trip.objects.create(user=self.user, name='Side trip')
        SavedPlace.objects.create(trip=other_trip, name='Tower Records', latitude=35.6610, longitude=139.7010)

        self.service.on_location_update(self.user, self.lat, self.lng, trip=self.trip, now=self.now)
        result = self.service.on_location_update(
            self.user, 35.6610, 139.7010, trip=other_trip, now=self.now + timedelta(minutes=5),
        )

        self.assertEqual(result.outcome, AlertOutcome.COOLDOWN)

    def test_global_mode_searches_joined_trips(self):
        owner = User.objects.create_user(username='friend', password='testpass123')
        shared = Trip.objects.create(user=owner, name='Shared')
        shared.members.add(self.user)
        far_away = SavedPlace.objects.create(trip=shared, name='Meiji Jingu', latitude=35.6764, longitude=139.6993)

        result = self.service.on_location_update(self.user, 35.6764, 139.6993, now=self.now)

        self.assertTrue(result.sent)
        self.assertEqual(result.place, far_away)
        self.assertEqual(result.notification.trip, shared)

    def test_nothing_nearby(self):
        result = self.service.on_location_update(self.user, 35.0, 135.0, trip=self.trip, now=self.now)
        self.assertEqual(result.outcome, AlertOutcome.NO_NEARBY_PLACES)
        self.assertFalse(ProximityAlertRecord.objects.exists())

    def test_disabled_by_preference(self):
        PreferenceService.update(self.user, {'nearby_alerts': False})
        result = self.service.on_location_update(self.user, self.lat, self.lng, trip=self.trip, now=self.now)
        self.assertEqual(result.outcome, AlertOutcome.DISABLED)
        self.push.send_to_user.assert_not_called()

    def test_quiet_hours_do_not_apply(self):
        PreferenceService.update(self.user, {'quiet_start': time(11, 0), 'quiet_end': time(13, 0)})
        result = self.service.on_location_update(self.user, self.lat, self.lng, trip=self.trip, now=self.now)
        self.assertTrue(result.sent)

    def test_daily_cap(self):
        PreferenceService.update(self.user, {'max_daily_notifications': 2})
        for _ in range(2):
            Notification.objects.create(
                recipient=self.user, kind='morning', title='t', body='b', created_at=self.now - timedelta(hours=1),
            )
        result = self.service.on_location_update(self.user, self.lat, self.lng, trip=self.trip, now=self.now)
        self.assertEqual(result.outcome, AlertOutcome.DAILY_CAP)
        self.assertFalse(ProximityAlertRecord.objects.exists())

    def test_invalid_coordinates(self):
        result = self.service.on_location_update(self.user, 95.0, 10.0, trip=self.trip, now=self.now)
        self.assertEqual(result.outcome, AlertOutcome.FAILED)

    def test_failed_dispatch_still_starts_cooldown(self):
        failing = MagicMock()
        failing.dispatch.side_effect = RuntimeError('push backend down')
        service = ProximityAlertService(notification_service=failing)

        with self.assertLogs('notifications.proximity', level='ERROR'):
            first = service.on_location_update(self.user, self.lat, self.lng, trip=self.trip, now=self.now)
        second = service.on_location_update(
            self.user, self.lat, self.lng, trip=self.trip, now=self.now + timedelta(minutes=5),
        )

        self.assertEqual(first.outcome, AlertOutcome.FAILED)
        self.assertEqual(first.place, self.hachiko)
        self.assertEqual(ProximityAlertRecord.objects.count(), 1)
        self.assertEqual(second.outcome, AlertOutcome.COOLDOWN)
        failing.dispatch.assert_called_once()

    def test_describe_distance(self):
        self.assertEqual(describe_distance(0), 'right here')
        self.assertEqual(describe_distance(99.4), 'right here')
        self.assertEqual(describe_distance(100), '100m away')
        self.assertEqual(describe_distance(250.4), '250m away')


class BriefingFixtureMixin:

    def setUp(self):
        self.user = User.objects.create_user(username='traveler', password='testpass123')
        self.trip = Trip.objects.create(user=self.user, name='Japan')
        self.tokyo = TripSegment.objects.create(
            trip=self.trip, city='Tokyo', timezone='Asia/Tokyo',
            start_date=date(2026, 5, 1), end_date=date(2026, 5, 3),
            accommodation_name='Hotel Gracery', accommodation_lat=35.6950, accommodation_lng=139.7020,
        )
        TripSegment.objects.create(
            trip=self.trip, city='Kyoto', timezone='Asia/Tokyo',
            start_date=date(2026, 5, 4), end_date=date(2026, 5, 6), order_index=1,
            accommodation_name='Ryokan Yachiyo',
        )
        SavedPlace.objects.create(
            trip=self.trip, name='Omoide Yokocho', category='food', area_name='Shinjuku, Tokyo',
            latitude=35.6930, longitude=139.6995, rating=4.3,
        )
        SavedPlace.objects.create(
            trip=self.trip, name='teamLab Planets', category='activity', area_name='Tokyo',
            rating=4.7, is_must_visit=True,
        )
        SavedPlace.objects.create(
            trip=self.trip, name='Senso-ji', category='place', area_name='Asakusa, Tokyo',
            status=SavedPlace.Status.VISITED,
        )
        SavedPlace.objects.create(trip=self.trip, name='Fushimi Inari', area_name='Kyoto')
        SavedPlace.objects.create(trip=self.trip, name='Nishiki Market', category='food', area_name='Kyoto')

        self.lisbon_user = User.objects.create_user(username='lisboeta', password='testpass123')
        self.lisbon_trip = Trip.objects.create(user=self.lisbon_user, name='Portugal')
        TripSegment.objects.create(
            trip=self.lisbon_trip, city='Lisbon', timezone='Europe/Lisbon',
            start_date=date(2026, 5, 1), end_date=date(2026, 5, 5),
        )
        SavedPlace.objects.create(trip=self.lisbon_trip, name='Time Out Market', area_name='Lisbon',
                                  status=SavedPlace.Status.VISITED)

        self.push = quiet_push()
        self.service = BriefingService(notification_service=NotificationService(push_service=self.push))


class BriefingServiceTest(BriefingFixtureMixin, TestCase):
    """Test cases for BriefingService"""

    def test_morning_briefing_only_where_it_is_8am(self):
        # 08:00 May 2 in Tokyo, midnight in Lisbon
        result = self.service.run_scheduled_briefings(8, 'morning', now=utc(2026, 5, 1, 23, 0))

        self.assertEqual((result.sent, result.suppressed, result.failed), (1, 0, 0))
        notification = Notification.objects.get()
        self.assertEqual(notification.recipient, self.user)
        self.assertEqual(notification.title, 'Day 2 in Tokyo')
        self.assertEqual(notification.body, '2 places to explore. Try teamLab Planets today!')
        self.assertEqual(notification.data['day_number'], 2)

    def test_not_due_travelers_are_not_counted(self):
        result = self.service.run_scheduled_briefings(8, 'morning', now=utc(2026, 5, 2, 0, 0))
        self.assertEqual((result.sent, result.suppressed, result.failed), (0, 0, 0))

    def test_trip_members_each_get_a_briefing(self):
        companion = User.objects.create_user(username='companion', password='testpass123')
        self.trip.members.add(companion)
        result = self.service.run_scheduled_briefings(8, 'morning', now=utc(2026, 5, 1, 23, 0))
        self.assertEqual(result.sent, 2)
        self.assertEqual(
            set(Notification.objects.values_list('recipient__username', flat=True)),
            {'traveler', 'companion'},
        )

    def test_last_day_morning(self):
        now = utc(2026, 5, 2, 23, 0)  # 08:00 May 3 in Tokyo
        result = self.service.run_scheduled_briefings(8, 'morning', now=now)

        self.assertEqual(result.sent, 1)
        morning = Notification.objects.get()
        self.assertEqual(morning.kind, 'morning')
        self.assertEqual(morning.title, 'Last day in Tokyo!')
        self.assertEqual(morning.body, "2 places left to visit. Don't miss: teamLab Planets")

    def test_last_day_warning_on_request(self):
        result = self.service.run_scheduled_briefings(8, 'last_day', now=utc(2026, 5, 2, 23, 0))
        self.assertEqual(result.sent, 1)
        self.assertEqual(Notification.objects.get(kind='last_day').body, "Don't miss: teamLab Planets")

    def test_last_day_warning_skipped_before_last_day(self):
        result = self.service.run_scheduled_briefings(8, 'last_day', now=utc(2026, 5, 1, 23, 0))
        self.assertEqual(result.sent, 0)
        self.assertEqual(result.outcomes, {'not_applicable': 1})

    def test_evening_recap_variants(self):
        # 20:00 May 2 in Tokyo (one day left) and 20:00 May 2 in Lisbon (three days left)
        self.service.run_scheduled_briefings(20, 'evening', now=utc(2026, 5, 2, 11, 0))
        self.service.run_scheduled_briefings(20, 'evening', now=utc(2026, 5, 2, 19, 0))
        # 20:00 May 3 in Tokyo (last night)
        self.service.run_scheduled_briefings(20, 'evening', now=utc(2026, 5, 3, 11, 0))

        titles = list(Notification.objects.order_by('created_at').values_list('title', 'body'))
        self.assertEqual(titles, [
            ('Evening in Tokyo', 'One more day here! 2 places left to explore.'),
            ('Day 2 complete!', '1 places visited in Lisbon. 3 days to go!'),
            ('Last night in Tokyo', '1 places visited, 2 still on your list. Make the most of tonight!'),
        ])

    def test_segment_transition_only_the_day_before(self):
        early = self.service.run_scheduled_briefings(20, 'segment_transition', now=utc(2026, 5, 2, 11, 0))
        due = self.service.run_scheduled_briefings(20, 'segment_transition', now=utc(2026, 5, 3, 11, 0))

        self.assertEqual(early.sent, 0)
        self.assertEqual(due.sent, 1)
        notification = Notification.objects.get()
        self.assertEqual(notification.title, 'Kyoto tomorrow!')
        self.assertEqual(notification.body, 'You have 2 places saved there. Staying at Ryokan Yachiyo')

    def test_quiet_hours_suppress_briefings(self):
        PreferenceService.update(self.user, {'quiet_start': time(19, 0), 'quiet_end': time(21, 0)})
        result = self.service.run_scheduled_briefings(20, 'evening', now=utc(2026, 5, 2, 11, 0))
        self.assertEqual(result.outcomes, {'quiet_hours': 1})
        self.assertFalse(Notification.objects.exists())

    def test_disabled_and_daily_cap(self):
        PreferenceService.update(self.user, {'evening_recap': False}, trip=self.trip)
        disabled = self.service.run_scheduled_briefings(20, 'evening', now=utc(2026, 5, 2, 11, 0))
        self.assertEqual(disabled.outcomes, {'disabled': 1})

        PreferenceService.update(self.user, {'max_daily_notifications': 1}, trip=self.trip)
        Notification.objects.create(recipient=self.user, kind='proximity', title='t', body='b',
                                    created_at=utc(2026, 5, 1, 23, 30))
        capped = self.service.run_scheduled_briefings(8, 'morning', now=utc(2026, 5, 1, 23, 45))
        self.assertEqual(capped.outcomes, {'daily_cap': 1})

    def test_one_failure_does_not_abort_the_batch(self):
        companion = User.objects.create_user(username='companion', password='testpass123')
        self.trip.members.add(companion)
        context = ContextService()

        def build_context(user, trip, location=None, now=None):
            if user == self.user:
                raise RuntimeError('database hiccup')
            return context.build_context(user, trip, location, now)

        service = BriefingService(
            context_service=MagicMock(build_context=MagicMock(side_effect=build_context)),
            notification_service=NotificationService(push_service=self.push),
        )
        with self.assertLogs('notifications.briefings', level='ERROR'):
            result = service.run_scheduled_briefings(8, 'morning', now=utc(2026, 5, 1, 23, 0))

        self.assertEqual((result.sent, result.failed), (1, 1))
        self.assertEqual(Notification.objects.get().recipient, companion)

    def test_meal_suggestion_near_accommodation(self):
        snapshot = ContextService().build_context(self.user, self.trip, now=utc(2026, 5, 2, 3, 0))
        message = compose_meal(self.trip, snapshot)
        self.assertEqual(message.title, 'Lunch time!')
        self.assertTrue(message.body.startswith('How about Omoide Yokocho? Rated 4.3.'))
        self.assertIn('m away)', message.body)

    def test_meal_for_hour(self):
        self.assertEqual(meal_for_hour(8), 'breakfast')
        self.assertEqual(meal_for_hour(12), 'lunch')
        self.assertEqual(meal_for_hour(19), 'dinner')


class RunBriefingsCommandTest(TestCase):

    @patch('notifications.management.commands.run_briefings.BriefingService.run_scheduled_briefings')
    def test_default_schedule(self, run):
        run.side_effect = lambda hour, kind: BriefingRunResult(kind=kind.value, target_hour=hour, sent=1)
        out = StringIO()
        call_command('run_briefings', stdout=out)

        called = [(c.args[0], c.args[1].value) for c in run.call_args_list]
        self.assertEqual(called, [(8, 'morning'), (20, 'evening'), (20, 'segment_transition')])
        self.assertIn('Done: 3 sent', out.getvalue())

    @patch('notifications.management.commands.run_briefings.BriefingService.run_scheduled_briefings')
    def test_single_kind(self, run):
        run.return_value = BriefingRunResult(kind='meal', target_hour=12)
        call_command('run_briefings', kind='meal', stdout=StringIO())
        run.assert_called_once_with(12, NotificationKind.MEAL)

    @patch('notifications.management.commands.run_briefings.BriefingService.run_scheduled_briefings')
    def test_last_day_warning_defaults_to_morning_hour(self, run):
        run.return_value = BriefingRunResult(kind='last_day', target_hour=8)
        call_command('run_briefings', kind='last_day', stdout=StringIO())
        run.assert_called_once_with(8, NotificationKind.LAST_DAY)

    def test_rejects_invalid_hour(self):
        with self.assertRaises(CommandError):
            call_command('run_briefings', hour=25, stdout=StringIO())


@patch('notifications.services.get_push_service', return_value=quiet_push())
class RunBriefingsLastDayTest(BriefingFixtureMixin, TestCase):

    def test_one_push_on_the_last_morning(self, _push):
        # 08:00 May 3 in Tokyo, the last day of the segment
        with patch('notifications.briefings.timezone.now', return_value=utc(2026, 5, 2, 23, 0)):
            call_command('run_briefings', hour=8, stdout=StringIO())

        self.assertEqual(
            list(Notification.objects.values_list('kind', 'title')),
            [('morning', 'Last day in Tokyo!')],
        )


@patch('notifications.services.get_push_service', return_value=quiet_push())
class NotificationAPITest(ProximityFixtureMixin, APITestCase):

    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=self.user)

    def test_location_update_sends_alert(self, _push):
        response = self.client.post(reverse('notifications:location_update'), {
            'latitude': self.lat,
            'longitude': self.lng,
            'trip': str(self.trip.id),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['outcome'], 'sent')
        self.assertEqual(response.data['place']['name'], 'Hachiko')

        response = self.client.post(reverse('notifications:location_update'), {
            'latitude': self.lat,
            'longitude': self.lng,
        }, format='json')
        self.assertEqual(response.data['outcome'], 'cooldown')
        self.assertFalse(response.data['sent'])

    def test_location_update_validation(self, _push):
        response = self.client.post(reverse('notifications:location_update'), {
            'latitude': 120,
            'longitude': 0,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_location_update_foreign_trip(self, _push):
        stranger = User.objects.create_user(username='stranger', password='testpass123')
        foreign = Trip.objects.create(user=stranger, name='Private')
        response = self.client.post(reverse('notifications:location_update'), {
            'latitude': self.lat,
            'longitude': self.lng,
            'trip': str(foreign.id),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

    def test_preferences_roundtrip(self, _push):
        url = reverse('notifications:preferences')
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quiet_start'], '22:00')
        self.assertIsNone(response.data['trip'])

        response = self.client.patch(f"{url}?trip={self.trip.id}", {
            'quiet_start': '21:30',
            'meal_suggestions': False,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quiet_start'], '21:30')
        self.assertEqual(response.data['trip'], str(self.trip.id))

        default = self.client.get(url)
        self.assertEqual(default.data['quiet_start'], '22:00')
        self.assertTrue(default.data['meal_suggestions'])

    def test_notification_history(self, _push):
        Notification.objects.create(recipient=self.user, trip=self.trip, kind='morning', title='a', body='b')
        Notification.objects.create(recipient=self.user, kind='proximity', title='c', body='d', is_read=True)

        response = self.client.get(reverse('notifications:notification-list'), {'is_read': 'false'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

        response = self.client.get(reverse('notifications:notification-unread-count'))
        self.assertEqual(response.data['unread_count'], 1)

        response = self.client.post(reverse('notifications:notification-mark-all-as-read'))
        self.assertEqual(response.data['count'], 1)
        self.assertFalse(Notification.objects.filter(is_read=False).exists())

    def test_register_device(self, _push):
        response = self.client.post(reverse('notifications:device-token-register'), {
            'token': 'fcm-token-1',
            'platform': 'iOS',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(DeviceToken.objects.get().platform, DevicePlatform.iOS)

    def test_send_briefing_now(self, _push):
        with patch('notifications.briefings.timezone.now', return_value=self.now):
            response = self.client.post(reverse('notifications:send_briefing'), {
                'trip': str(self.trip.id),
                'kind': 'morning',
            }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['outcome'], 'sent')
        self.assertEqual(response.data['notification']['title'], 'Day 2 in Tokyo')
