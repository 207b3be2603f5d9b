"""
Tests for the booking record store.
"""

from datetime import date, time

from django.test import TestCase

from .models import Booking
from .signals import booking_cancelled


class BookingModelTests(TestCase):
    """Test Booking model."""

    def test_create_booking(self):
        """Test a new booking is not part of any series."""
        booking = Booking.objects.create(
            customer_id=7,
            booking_date=date(2024, 1, 1),
            booking_time=time(10, 0),
        )

        self.assertFalse(booking.is_recurring_master)
        self.assertIsNone(booking.recurring_series_id)
        self.assertIsNone(booking.recurring_instance_id)
        self.assertEqual(str(booking), f"Booking #{booking.pk} - 2024-01-01 10:00")

    def test_cancel_booking(self):
        """Test cancelling sends booking_cancelled once."""
        received = []

        def receiver(sender, booking, reason, **kwargs):
            received.append((booking.pk, reason))

        booking_cancelled.connect(receiver)
        self.addCleanup(booking_cancelled.disconnect, receiver)
        booking = Booking.objects.create(booking_date=date(2024, 1, 1), booking_time=time(10, 0))

        self.assertTrue(booking.cancel('No show'))
        self.assertFalse(booking.cancel('Again'))

        booking.refresh_from_db()
        self.assertEqual(booking.status, 'cancelled')
        self.assertEqual(received, [(booking.pk, 'No show')])

    def test_ordering(self):
        """Test bookings are ordered by date and time."""
        later = Booking.objects.create(booking_date=date(2024, 1, 2), booking_time=time(9, 0))
        earlier = Booking.objects.create(booking_date=date(2024, 1, 1), booking_time=time(15, 0))

        self.assertEqual(list(Booking.objects.all()), [earlier, later])
