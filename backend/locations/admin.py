from django.contrib import admin
from .models import SavedPlace


@admin.register(SavedPlace)
class SavedPlaceAdmin(admin.ModelAdmin):
    """
    Admin interface for SavedPlace.
    """
    list_display = ['name', 'trip', 'category', 'status', 'rating', 'location_confidence', 'created_at']
    list_filter = ['category', 'status', 'location_confidence', 'is_must_visit', 'created_at']
    search_fields = ['name', 'location_name', 'area_name', 'trip__name']
    readonly_fields = ['id', 'created_at', 'updated_at']

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'trip', 'segment', 'added_by', 'name', 'description')
        }),
        ('Location', {
            'fields': ('latitude', 'longitude', 'location_name', 'area_name',
                       'location_confidence', 'location_confidence_score')
        }),
        ('Classification', {
            'fields': ('category', 'cuisine_type', 'tags', 'is_must_visit', 'status', 'visited_at')
        }),
        ('Rating & Quality', {
            'fields': ('rating', 'rating_count')
        }),
        ('Source', {
            'fields': ('source_title', 'source_url')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )
