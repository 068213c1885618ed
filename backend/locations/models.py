import uuid
from django.db import models
from django.conf import settings


class SavedPlace(models.Model):
    """
    SavedPlace - Primary database entity representing a place a traveler
    stored against a trip (usually extracted from a video or a post).
    Coordinates are plain float columns; they stay null until the place
    has been geocoded.
    """

    class Category(models.TextChoices):
        """Enumeration for saved place categories"""
        FOOD = 'food', 'Food'
        PLACE = 'place', 'Place'
        SHOPPING = 'shopping', 'Shopping'
        ACTIVITY = 'activity', 'Activity'
        ACCOMMODATION = 'accommodation', 'Accommodation'
        TIP = 'tip', 'Tip'

    class Status(models.TextChoices):
        SAVED = 'saved', 'Saved'
        VISITED = 'visited', 'Visited'

    class Confidence(models.TextChoices):
        """Geocode confidence tier, shown to users as a quality hint"""
        HIGH = 'high', 'High'
        MEDIUM = 'medium', 'Medium'
        LOW = 'low', 'Low'

    # Primary Key
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Foreign Keys
    trip = models.ForeignKey(
        'trips.Trip',
        on_delete=models.CASCADE,
        related_name='saved_places',
        help_text="Trip the place was saved to"
    )
    added_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='saved_places',
    )
    segment = models.ForeignKey(
        'trips.TripSegment',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='saved_places',
        help_text="City segment this place belongs to, if known"
    )

    # Basic Information
    name = models.CharField(max_length=255, help_text="The name of the place")
    category = models.CharField(
        max_length=20,
        choices=Category.choices,
        default=Category.PLACE,
        help_text="food, place, shopping, activity, accommodation, tip"
    )
    description = models.TextField(blank=True, default="")
    cuisine_type = models.CharField(max_length=100, blank=True, default="")
    tags = models.JSONField(
        default=list,
        blank=True,
        help_text="Free keywords used by the keyword filters of the ranking pipeline"
    )

    # Geospatial Data
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    location_name = models.CharField(
        max_length=512,
        blank=True,
        default="",
        help_text="Formatted address returned by the geocoder"
    )
    area_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="City or neighborhood the place was mentioned with"
    )
    location_confidence = models.CharField(
        max_length=10,
        choices=Confidence.choices,
        null=True,
        blank=True,
    )
    location_confidence_score = models.PositiveSmallIntegerField(null=True, blank=True)

    # Rating & Quality (from enrichment)
    rating = models.FloatField(null=True, blank=True)
    rating_count = models.PositiveIntegerField(null=True, blank=True)

    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.SAVED,
    )
    is_must_visit = models.BooleanField(default=False)
    visited_at = models.DateTimeField(null=True, blank=True)

    # Source attribution
    source_title = models.CharField(max_length=500, blank=True, default="")
    source_url = models.URLField(max_length=1000, blank=True, default="")

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['trip', 'status'], name='place_trip_status_idx'),
            models.Index(fields=['trip', 'category'], name='place_trip_category_idx'),
            models.Index(fields=['latitude', 'longitude'], name='place_coords_idx'),
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        """
        Overridden save method to ensure coordinates are valid and that the
        category is stored in its canonical lowercase form.
        """
        if self.category:
            self.category = self.category.lower()

        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("Latitude and longitude must be set together")
        if self.latitude is not None:
            if not (-90 <= self.latitude <= 90 and -180 <= self.longitude <= 180):
                raise ValueError("Invalid coordinates: latitude must be -90 to 90, longitude must be -180 to 180")

        super().save(*args, **kwargs)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def is_visited(self) -> bool:
        return self.status == self.Status.VISITED

    def get_lat_lon(self):
        """
        Helper method to return coordinates in a frontend-friendly format.

        Returns:
            Tuple of (latitude: float, longitude: float), or None when unresolved
        """
        if self.has_coordinates:
            return (self.latitude, self.longitude)
        return None

    def search_text(self) -> str:
        """Lowercased blob of name, description, cuisine and tags used for keyword matching."""
        parts = [self.name, self.description, self.cuisine_type]
        parts.extend(str(tag) for tag in (self.tags or []))
        return ' '.join(p for p in parts if p).lower()
