"""
Serializers for the recommendations module.
"""
from rest_framework import serializers

from locations.serializers import SavedPlaceListSerializer
from recommendations.dtos import (
    INTENT_CLASSES,
    AlternativesIntent,
    DistancePreference,
    IntentType,
    PointDTO,
    SortKey,
    SortOrder,
)


class PointDTOSerializer(serializers.Serializer):
    """Serializer for PointDTO"""
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)

    def to_dto(self) -> PointDTO:
        return PointDTO(**self.validated_data)


def _choices(enum):
    return [member.value for member in enum]


class IntentSerializer(serializers.Serializer):
    """
    Structured intent as produced by the external classifier.
    `build_intent()` returns the matching immutable intent variant.
    """
    type = serializers.ChoiceField(choices=_choices(IntentType), default=IntentType.GENERAL.value)
    category = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    keywords = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    cuisine = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    dish = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    limit = serializers.IntegerField(required=False, allow_null=True)
    sort_by = serializers.ChoiceField(choices=_choices(SortKey), required=False, allow_null=True)
    sort_order = serializers.ChoiceField(choices=_choices(SortOrder), required=False, allow_null=True)
    distance = serializers.ChoiceField(
        choices=_choices(DistancePreference),
        required=False,
        default=DistancePreference.ANY.value,
    )
    referenced_place = serializers.CharField(required=False, allow_blank=True)
    reason = serializers.CharField(required=False, allow_null=True, allow_blank=True)

    def validate(self, attrs):
        if attrs['type'] == IntentType.ALTERNATIVES.value and not attrs.get('referenced_place'):
            raise serializers.ValidationError({'referenced_place': 'Required for alternatives intents'})
        return attrs

    def build_intent(self):
        return build_intent(self.validated_data)


def build_intent(data):
    """Immutable intent variant for validated IntentSerializer data."""
    intent_type = IntentType(data['type'])
    intent_class = INTENT_CLASSES[intent_type]

    if intent_class is AlternativesIntent:
        return AlternativesIntent(
            referenced_place=data['referenced_place'],
            reason=data.get('reason') or None,
            limit=data.get('limit'),
        )

    return intent_class(
        category=data.get('category') or None,
        keywords=tuple(data.get('keywords') or ()),
        cuisine=data.get('cuisine') or None,
        dish=data.get('dish') or None,
        limit=data.get('limit'),
        sort_by=SortKey(data['sort_by']) if data.get('sort_by') else None,
        sort_order=SortOrder(data['sort_order']) if data.get('sort_order') else None,
        distance=DistancePreference(data.get('distance') or DistancePreference.ANY.value),
    )


class RankRequestSerializer(serializers.Serializer):
    trip = serializers.UUIDField()
    intent = IntentSerializer()
    location = PointDTOSerializer(required=False, allow_null=True)


class AlternativesRequestSerializer(serializers.Serializer):
    trip = serializers.UUIDField()
    referenced_place = serializers.CharField()
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    location = PointDTOSerializer(required=False, allow_null=True)


class ExternalSuggestionSerializer(serializers.Serializer):
    name = serializers.CharField()
    address = serializers.CharField(allow_blank=True)
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    rating = serializers.FloatField(allow_null=True)
    rating_count = serializers.IntegerField(allow_null=True)
    distance = serializers.SerializerMethodField()
    external_id = serializers.CharField(allow_null=True)

    def get_distance(self, obj):
        return round(obj.distance) if obj.distance is not None else None


class AlternativesResultSerializer(serializers.Serializer):
    """Serializer for AlternativesResult DTO"""
    found = serializers.BooleanField()
    referenced_name = serializers.CharField()
    reason = serializers.CharField(allow_null=True)
    referenced_place = SavedPlaceListSerializer(allow_null=True)
    saved = SavedPlaceListSerializer(many=True)
    discovered = ExternalSuggestionSerializer(many=True)
    message = serializers.CharField()


class SegmentSnapshotSerializer(serializers.Serializer):
    segment_id = serializers.UUIDField()
    city = serializers.CharField()
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    day_number = serializers.IntegerField()
    total_days = serializers.IntegerField()
    days_remaining = serializers.IntegerField()
    days_until = serializers.IntegerField()
    accommodation_name = serializers.CharField(allow_blank=True)
    accommodation = PointDTOSerializer(allow_null=True)


class ContextSnapshotSerializer(serializers.Serializer):
    """Serializer for ContextSnapshot DTO"""
    trip_id = serializers.UUIDField()
    trip_name = serializers.CharField()
    local_time = serializers.SerializerMethodField()
    time_of_day = serializers.CharField()
    current_segment = SegmentSnapshotSerializer(allow_null=True)
    next_segment = SegmentSnapshotSerializer(allow_null=True)
    is_transit_day = serializers.BooleanField()
    visited_count = serializers.IntegerField()
    unvisited_count = serializers.IntegerField()
    by_category = serializers.DictField(child=serializers.IntegerField())
    top_rated = SavedPlaceListSerializer(many=True)
    must_visit = SavedPlaceListSerializer(many=True)
    nearby = SavedPlaceListSerializer(many=True)
    nearby_origin = serializers.CharField(allow_null=True)

    def get_local_time(self, obj):
        # Keep the traveler's offset instead of converting to the server timezone
        return obj.local_time.isoformat()
