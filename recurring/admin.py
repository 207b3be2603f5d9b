"""
Admin configuration for the recurring app.
"""

from django.contrib import admin
from .models import RecurringSeries, SeriesExclusion, SeriesInstance


class SeriesExclusionInline(admin.TabularInline):
    """Exclusion rules edited on the series page."""

    model = SeriesExclusion
    extra = 0
    fields = ['exclusion_type', 'exclusion_date', 'day_of_week', 'start_date', 'end_date', 'reason']


@admin.register(RecurringSeries)
class RecurringSeriesAdmin(admin.ModelAdmin):
    """Admin interface for RecurringSeries model."""

    list_display = [
        'id', 'master_booking_id', 'pattern', 'start_date', 'end_date',
        'total_occurrences', 'max_occurrences', 'status',
    ]
    list_filter = ['status', 'pattern', 'created_at']
    search_fields = ['master_booking_id', 'customer_id']
    date_hierarchy = 'start_date'
    inlines = [SeriesExclusionInline]

    fieldsets = (
        ('Master Booking', {
            'fields': ('master_booking_id', 'customer_id', 'staff_id', 'service_id')
        }),
        ('Recurrence Rules', {
            'fields': ('pattern', 'pattern_options', 'start_date', 'end_date',
                       'start_time', 'end_time', 'timezone')
        }),
        ('Occurrences', {
            'fields': ('max_occurrences', 'total_occurrences', 'completed_occurrences',
                       'recurring_discount', 'status')
        }),
        ('Metadata', {
            'fields': ('metadata', 'last_generated_at', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    readonly_fields = ['total_occurrences', 'completed_occurrences', 'last_generated_at',
                       'created_at', 'updated_at']


@admin.register(SeriesInstance)
class SeriesInstanceAdmin(admin.ModelAdmin):
    """Admin interface for SeriesInstance model."""

    list_display = ['series', 'instance_number', 'scheduled_date', 'scheduled_time', 'status', 'booking_id']
    list_filter = ['status', 'scheduled_date']
    search_fields = ['series__id', 'booking_id']
    date_hierarchy = 'scheduled_date'

    fieldsets = (
        ('Schedule', {
            'fields': ('series', 'instance_number', 'scheduled_date', 'scheduled_time')
        }),
        ('Reschedule', {
            'fields': ('original_date', 'original_time', 'reschedule_reason')
        }),
        ('Status', {
            'fields': ('status', 'skip_reason', 'booking_id')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    readonly_fields = ['created_at', 'updated_at']
