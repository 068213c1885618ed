from django.test import TestCase, override_settings
from django.contrib.auth import get_user_model
from .models import UserProfile

User = get_user_model()


class UserProfileTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username='mika', password='password123', first_name='Mika')

    def test_for_user_creates_once(self):
        """Test that for_user lazily creates a single profile."""
        profile = UserProfile.for_user(self.user)
        again = UserProfile.for_user(self.user)

        self.assertEqual(profile.id, again.id)
        self.assertEqual(UserProfile.objects.count(), 1)

    def test_display_name_fallbacks(self):
        """Test display name falls back to first name, then username."""
        profile = UserProfile.for_user(self.user)
        self.assertEqual(profile.get_display_name(), 'Mika')

        profile.display_name = 'Mika Tanaka'
        self.assertEqual(profile.get_display_name(), 'Mika Tanaka')
        self.assertEqual(profile.get_first_name(), 'Mika')

        bare = User.objects.create_user(username='anon', password='password123')
        self.assertEqual(UserProfile.for_user(bare).get_display_name(), 'anon')

    @override_settings(DEFAULT_TIMEZONE='Europe/Lisbon')
    def test_timezone_fallback(self):
        """Test that an empty profile timezone uses the configured default."""
        profile = UserProfile.for_user(self.user)
        self.assertEqual(profile.get_timezone(), 'Europe/Lisbon')

        profile.timezone = 'Asia/Tokyo'
        self.assertEqual(profile.get_timezone(), 'Asia/Tokyo')
