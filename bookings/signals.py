"""Signals for the bookings app."""

from django.dispatch import Signal

# kwargs: booking, reason
booking_cancelled = Signal()
