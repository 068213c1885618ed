import uuid

from django.db import models
from django.conf import settings


class UserProfile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile"
    )
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    display_name = models.CharField(max_length=150, blank=True, default="")
    avatar_url = models.URLField(max_length=500, blank=True, null=True)
    # IANA name, used when no trip segment provides a timezone
    timezone = models.CharField(max_length=64, blank=True, default="")

    def __str__(self):
        return self.get_display_name()

    @classmethod
    def for_user(cls, user) -> "UserProfile":
        profile, _ = cls.objects.get_or_create(user=user)
        return profile

    def get_display_name(self) -> str:
        return self.display_name or self.user.first_name or self.user.get_username()

    def get_first_name(self) -> str:
        return self.get_display_name().split(' ')[0]

    def get_timezone(self) -> str:
        return self.timezone or settings.DEFAULT_TIMEZONE
