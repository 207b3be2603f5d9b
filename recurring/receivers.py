"""Receivers connecting booking events to the recurring engine."""

from django.dispatch import receiver

from bookings.models import Booking
from bookings.signals import booking_cancelled

from .engine import get_engine


@receiver(booking_cancelled, sender=Booking)
def cancel_series_of_master(sender, booking, reason='', **kwargs):
    """Cancel the series of a cancelled master booking when configured to."""
    if not booking.is_recurring_master:
        return
    get_engine().handle_master_cancellation(booking.pk, reason)
