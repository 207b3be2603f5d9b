"""
Booking record store.

Only the fields the recurring engine reads or writes back live here.
"""

from django.db import models

from .signals import booking_cancelled


class Booking(models.Model):
    """A single booking; the master of a recurring series or one of its instances."""

    class Status(models.TextChoices):
        CONFIRMED = 'confirmed', 'Confirmed'
        CANCELLED = 'cancelled', 'Cancelled'

    customer_id = models.BigIntegerField(null=True, blank=True, db_index=True)
    staff_id = models.BigIntegerField(null=True, blank=True)
    service_id = models.BigIntegerField(null=True, blank=True)

    booking_date = models.DateField()
    booking_time = models.TimeField()
    booking_time_end = models.TimeField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.CONFIRMED
    )

    recurring_series_id = models.BigIntegerField(null=True, blank=True)
    is_recurring_master = models.BooleanField(default=False)
    recurring_instance_id = models.BigIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['booking_date', 'booking_time']

    def __str__(self):
        return f"Booking #{self.pk} - {self.booking_date} {self.booking_time.strftime('%H:%M')}"

    def cancel(self, reason=''):
        """
        Cancel the booking and notify listeners.

        Cancelling an already cancelled booking does nothing.
        """
        if self.status == self.Status.CANCELLED:
            return False

        self.status = self.Status.CANCELLED
        self.save(update_fields=['status', 'updated_at'])
        booking_cancelled.send(sender=self.__class__, booking=self, reason=reason)
        return True
