from django.contrib import admin

from .models import DeviceToken, Notification, NotificationPreference, ProximityAlertRecord


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    """Admin interface for Notification model"""
    list_display = (
        'id',
        'recipient',
        'trip',
        'kind',
        'title',
        'is_read',
        'created_at',
    )
    list_filter = ('kind', 'is_read', 'created_at')
    search_fields = ('title', 'body', 'recipient__username')
    readonly_fields = ('id', 'created_at', 'updated_at')
    fieldsets = (
        ('Basic Info', {
            'fields': ('id', 'recipient', 'trip', 'kind')
        }),
        ('Content', {
            'fields': ('title', 'body', 'data')
        }),
        ('Status', {
            'fields': ('is_read',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def get_readonly_fields(self, request, obj=None):
        if obj:  # Editing an existing object
            return self.readonly_fields + ('recipient', 'trip', 'kind', 'title', 'body')
        return self.readonly_fields


@admin.register(DeviceToken)
class DeviceTokenAdmin(admin.ModelAdmin):
    """Admin interface for DeviceToken model"""
    list_display = ('id', 'user', 'platform', 'is_active', 'updated_at')
    list_filter = ('platform', 'is_active')
    search_fields = ('user__username', 'token')
    readonly_fields = ('id', 'token', 'created_at', 'updated_at')


@admin.register(NotificationPreference)
class NotificationPreferenceAdmin(admin.ModelAdmin):
    list_display = (
        'user',
        'trip',
        'morning_briefing',
        'evening_recap',
        'nearby_alerts',
        'quiet_start',
        'quiet_end',
        'max_daily_notifications',
    )
    list_filter = ('morning_briefing', 'evening_recap', 'nearby_alerts')
    search_fields = ('user__username', 'trip__name')
    fieldsets = (
        ('Scope', {
            'fields': ('user', 'trip')
        }),
        ('Toggles', {
            'fields': ('morning_briefing', 'evening_recap', 'nearby_alerts', 'segment_alerts', 'meal_suggestions')
        }),
        ('Limits', {
            'fields': ('quiet_start', 'quiet_end', 'max_daily_notifications')
        }),
    )


@admin.register(ProximityAlertRecord)
class ProximityAlertRecordAdmin(admin.ModelAdmin):
    """Read-only view of the alert log"""
    list_display = ('user', 'trip', 'place', 'distance_m', 'created_at')
    list_filter = ('created_at',)
    search_fields = ('user__username', 'place__name')

    def has_change_permission(self, request, obj=None):
        return False
