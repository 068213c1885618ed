"""
DRF Serializers for Trip and TripSegment models.
"""
from rest_framework import serializers
from .models import Trip, TripSegment
from .services import resolve_timezone


class TripSegmentSerializer(serializers.ModelSerializer):
    """Serializer for TripSegment model"""

    class Meta:
        model = TripSegment
        fields = [
            'id',
            'trip',
            'city',
            'area',
            'country',
            'timezone',
            'start_date',
            'end_date',
            'accommodation_name',
            'accommodation_address',
            'accommodation_lat',
            'accommodation_lng',
            'order_index',
            'notes',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_timezone(self, value):
        if resolve_timezone(value).key != value:
            raise serializers.ValidationError(f"Unknown timezone: {value}")
        return value

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'end_date must not be before start_date'})
        return attrs


class TripSerializer(serializers.ModelSerializer):
    """Serializer for Trip model"""
    segments = TripSegmentSerializer(many=True, read_only=True)
    username = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = Trip
        fields = [
            'id',
            'user',
            'username',
            'name',
            'destination',
            'start_date',
            'end_date',
            'status',
            'members',
            'segments',
            'created_at',
            'updated_at',
        ]
        read_only_fields = [
            'id',
            'user',
            'username',
            'segments',
            'created_at',
            'updated_at',
        ]


class CurrentSegmentSerializer(serializers.Serializer):
    """Serializer for SegmentService.get_current_segment() results"""
    segment = TripSegmentSerializer(allow_null=True)
    local_date = serializers.DateField()
    day_number = serializers.IntegerField()
    total_days = serializers.IntegerField()
    days_remaining = serializers.IntegerField()
    is_transit_day = serializers.BooleanField()
    is_last_day = serializers.BooleanField()
