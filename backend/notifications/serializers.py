from rest_framework import serializers

from locations.serializers import SavedPlaceListSerializer

from .models import DevicePlatform, DeviceToken, Notification, NotificationKind, NotificationPreference


class NotificationSerializer(serializers.ModelSerializer):
    """Serializer for Notification model; only the read flag is writable"""
    trip_id = serializers.UUIDField(read_only=True, allow_null=True)
    deep_link = serializers.SerializerMethodField(read_only=True)

    class Meta:
        model = Notification
        fields = [
            'id',
            'trip_id',
            'kind',
            'title',
            'body',
            'data',
            'is_read',
            'deep_link',
            'created_at',
        ]
        read_only_fields = [
            'id',
            'trip_id',
            'kind',
            'title',
            'body',
            'data',
            'deep_link',
            'created_at',
        ]

    def get_deep_link(self, obj):
        """Get the deep link for the notification"""
        return obj.get_deep_link()


class DeviceTokenSerializer(serializers.ModelSerializer):
    """Serializer for DeviceToken model"""
    user_id = serializers.IntegerField(
        source='user.id',
        read_only=True
    )

    class Meta:
        model = DeviceToken
        fields = [
            'id',
            'user_id',
            'token',
            'platform',
            'is_active',
            'created_at',
            'updated_at',
        ]
        read_only_fields = [
            'id',
            'user_id',
            'is_active',
            'created_at',
            'updated_at',
        ]
        extra_kwargs = {
            'token': {'write_only': True},
        }


class DeviceTokenRegisterSerializer(serializers.Serializer):
    """Serializer for registering new device tokens"""
    token = serializers.CharField(max_length=500)
    platform = serializers.ChoiceField(
        choices=DevicePlatform.choices,
        default=DevicePlatform.ANDROID
    )


class NotificationPreferenceSerializer(serializers.ModelSerializer):
    """Serializer for NotificationPreference; `trip` is null for the default row"""
    trip = serializers.UUIDField(source='trip_id', read_only=True, allow_null=True)
    quiet_start = serializers.TimeField(format='%H:%M', required=False)
    quiet_end = serializers.TimeField(format='%H:%M', required=False)

    class Meta:
        model = NotificationPreference
        fields = [
            'trip',
            'morning_briefing',
            'evening_recap',
            'nearby_alerts',
            'segment_alerts',
            'meal_suggestions',
            'quiet_start',
            'quiet_end',
            'max_daily_notifications',
            'updated_at',
        ]
        read_only_fields = ['trip', 'updated_at']


class LocationUpdateSerializer(serializers.Serializer):
    """Location reported by the device for proximity alerts"""
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    trip = serializers.UUIDField(required=False, allow_null=True)


class AlertResultSerializer(serializers.Serializer):
    outcome = serializers.CharField(source='outcome.value')
    sent = serializers.BooleanField()
    distance = serializers.SerializerMethodField()
    place = SavedPlaceListSerializer(allow_null=True)
    notification = NotificationSerializer(allow_null=True)

    def get_distance(self, obj):
        return round(obj.distance) if obj.distance is not None else None


class BriefingTriggerSerializer(serializers.Serializer):
    """Manual trigger of one briefing for one trip"""
    trip = serializers.UUIDField()
    kind = serializers.ChoiceField(
        choices=[kind.value for kind in NotificationKind if kind != NotificationKind.PROXIMITY]
    )
