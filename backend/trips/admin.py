from django.contrib import admin
from .models import Trip, TripSegment


class TripSegmentInline(admin.TabularInline):
    model = TripSegment
    extra = 0
    fields = ['city', 'timezone', 'start_date', 'end_date', 'accommodation_name', 'order_index']


@admin.register(Trip)
class TripAdmin(admin.ModelAdmin):
    """
    Admin interface for Trip model.
    """
    list_display = ['name', 'user', 'destination', 'status', 'start_date', 'end_date', 'created_at']
    list_filter = ['status', 'created_at', 'start_date']
    search_fields = ['name', 'destination', 'user__username']
    readonly_fields = ['id', 'created_at', 'updated_at']
    filter_horizontal = ['members']
    inlines = [TripSegmentInline]

    def get_queryset(self, request):
        """Optimize queryset with select_related"""
        queryset = super().get_queryset(request)
        return queryset.select_related('user')


@admin.register(TripSegment)
class TripSegmentAdmin(admin.ModelAdmin):
    """
    Admin interface for TripSegment model.
    """
    list_display = ['trip', 'city', 'timezone', 'start_date', 'end_date', 'order_index']
    list_filter = ['timezone', 'start_date']
    search_fields = ['trip__name', 'city', 'accommodation_name']
    readonly_fields = ['id', 'created_at', 'updated_at']
    ordering = ['trip', 'start_date', 'order_index']
