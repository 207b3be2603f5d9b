"""
Admin configuration for the bookings app.
"""

from django.contrib import admin
from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Admin interface for Booking model."""

    list_display = ['id', 'booking_date', 'booking_time', 'customer_id', 'status', 'is_recurring_master', 'recurring_series_id']
    list_filter = ['status', 'is_recurring_master', 'booking_date']
    date_hierarchy = 'booking_date'
    readonly_fields = ['recurring_series_id', 'is_recurring_master', 'recurring_instance_id', 'created_at', 'updated_at']
