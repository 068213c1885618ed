import uuid
from datetime import date

from django.db import models
from django.conf import settings


class Trip(models.Model):
    """
    Database entity representing a trip. Saved places, segments and
    notification preferences all hang off a trip. The owner and any invited
    members receive the trip's proactive notifications.
    """

    class Status(models.TextChoices):
        """Enum for trip status"""
        PLANNING = 'PLANNING', 'Planning'
        ACTIVE = 'ACTIVE', 'Active'
        COMPLETED = 'COMPLETED', 'Completed'

    # Primary Key
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Foreign Keys
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='owned_trips',
        help_text="Reference to the owner of the trip"
    )
    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        blank=True,
        related_name='joined_trips',
        help_text="Travel companions who share the trip's saved places"
    )

    # Basic Information
    name = models.CharField(
        max_length=255,
        help_text="User defined name for the trip"
    )
    destination = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Free text destination, e.g. 'Japan'"
    )

    # Dates
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PLANNING,
        help_text="PLANNING, ACTIVE, COMPLETED"
    )

    # Timestamp
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', '-created_at'], name='trip_user_created_idx'),
            models.Index(fields=['status'], name='trip_status_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.get_status_display()})"

    def participants(self) -> list:
        """Owner first, then members, without duplicates."""
        people = [self.user]
        for member in self.members.all():
            if member.pk != self.user_id:
                people.append(member)
        return people

    def is_member(self, user) -> bool:
        if user.pk == self.user_id:
            return True
        return self.members.filter(pk=user.pk).exists()


class TripSegment(models.Model):
    """
    A contiguous date range of a trip spent in one city. Segments drive the
    day counters of briefings and the timezone used for local-time checks.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    trip = models.ForeignKey(
        Trip,
        on_delete=models.CASCADE,
        related_name='segments',
        help_text="Reference to the parent trip"
    )

    # Location info
    city = models.CharField(max_length=255)
    area = models.CharField(max_length=255, blank=True, default="")
    country = models.CharField(max_length=100, blank=True, default="")
    timezone = models.CharField(
        max_length=64,
        default='UTC',
        help_text="IANA timezone name, e.g. 'Asia/Tokyo'"
    )

    # Dates (inclusive)
    start_date = models.DateField()
    end_date = models.DateField()

    # Accommodation
    accommodation_name = models.CharField(max_length=255, blank=True, default="")
    accommodation_address = models.TextField(blank=True, default="")
    accommodation_lat = models.FloatField(null=True, blank=True)
    accommodation_lng = models.FloatField(null=True, blank=True)

    order_index = models.IntegerField(default=0)
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['trip', 'start_date', 'order_index']
        indexes = [
            models.Index(fields=['trip', 'order_index'], name='segment_trip_order_idx'),
            models.Index(fields=['start_date', 'end_date'], name='segment_dates_idx'),
            models.Index(fields=['city'], name='segment_city_idx'),
        ]

    def __str__(self):
        return f"{self.trip.name} - {self.city} ({self.start_date} to {self.end_date})"

    def save(self, *args, **kwargs):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Segment end_date must not be before start_date")
        super().save(*args, **kwargs)

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def get_accommodation_point(self):
        """(lat, lng) of the accommodation, or None when it was never geocoded."""
        if self.accommodation_lat is None or self.accommodation_lng is None:
            return None
        return (self.accommodation_lat, self.accommodation_lng)
