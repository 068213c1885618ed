"""
DRF Serializers for SavedPlace model and related data.
"""
from rest_framework import serializers
from .models import SavedPlace


class SavedPlaceSerializer(serializers.ModelSerializer):
    """Serializer for SavedPlace model"""

    # Accept any casing, stored lowercase
    category = serializers.CharField(max_length=20, required=False)

    class Meta:
        model = SavedPlace
        fields = [
            'id',
            'trip',
            'segment',
            'added_by',
            'name',
            'category',
            'description',
            'cuisine_type',
            'tags',
            'latitude',
            'longitude',
            'location_name',
            'area_name',
            'location_confidence',
            'location_confidence_score',
            'rating',
            'rating_count',
            'status',
            'is_must_visit',
            'visited_at',
            'source_title',
            'source_url',
            'created_at',
            'updated_at',
        ]
        read_only_fields = [
            'id',
            'added_by',
            'location_confidence',
            'location_confidence_score',
            'visited_at',
            'created_at',
            'updated_at',
        ]

    def validate_category(self, value):
        value = value.lower()
        if value not in SavedPlace.Category.values:
            raise serializers.ValidationError(f"Unknown category: {value}")
        return value

    def validate(self, attrs):
        lat = attrs.get('latitude', getattr(self.instance, 'latitude', None))
        lng = attrs.get('longitude', getattr(self.instance, 'longitude', None))
        if (lat is None) != (lng is None):
            raise serializers.ValidationError('latitude and longitude must be provided together')
        if lat is not None and not (-90 <= lat <= 90 and -180 <= lng <= 180):
            raise serializers.ValidationError('Invalid coordinates')
        return attrs


class SavedPlaceListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for list views, with the computed distance when present"""

    distance = serializers.SerializerMethodField()

    class Meta:
        model = SavedPlace
        fields = [
            'id',
            'name',
            'category',
            'latitude',
            'longitude',
            'rating',
            'status',
            'location_confidence',
            'distance',
        ]

    def get_distance(self, obj):
        distance = getattr(obj, 'distance', None)
        return round(distance) if distance is not None else None


class NearbyQuerySerializer(serializers.Serializer):
    """Query parameters of the nearby endpoint"""
    trip = serializers.UUIDField()
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    radius = serializers.IntegerField(min_value=1, max_value=50000, default=500)
    category = serializers.CharField(required=False)
