"""
Collaborators the engine consumes: settings, clock and booking store.

Each one is a narrow interface with a Django-backed default so tests and
other hosts can hand the services their own implementation.
"""

from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal
from typing import List, Optional, Protocol

from django.conf import settings as django_settings
from django.utils import timezone

from .types import BookingRecord


@dataclass
class RecurringSettings:
    """Engine settings, read from settings.RECURRING_BOOKINGS."""
    max_occurrences: int = 52
    max_advance_days: int = 365
    generate_ahead_days: int = 30
    data_retention_days: int = 365
    recurring_discount: Decimal = Decimal('0')
    generation_batch_size: int = 1000
    cancel_future_on_master_cancel: bool = False
    disabled_patterns: List[str] = field(default_factory=list)

    @classmethod
    def from_django(cls) -> 'RecurringSettings':
        """Build from the RECURRING_BOOKINGS dict; missing keys keep defaults."""
        configured = getattr(django_settings, 'RECURRING_BOOKINGS', {}) or {}
        values = {}
        for setting in fields(cls):
            key = setting.name.upper()
            if key in configured:
                values[setting.name] = configured[key]
        if 'recurring_discount' in values:
            values['recurring_discount'] = Decimal(str(values['recurring_discount']))
        return cls(**values)


class Clock(Protocol):
    def today(self) -> date:
        ...


class SystemClock:
    """Current date in the active Django time zone."""

    def today(self) -> date:
        return timezone.localdate()


class FixedClock:
    """A clock pinned to one date."""

    def __init__(self, today: date):
        self._today = today

    def today(self) -> date:
        return self._today

    def set(self, today: date) -> None:
        self._today = today


class BookingStore(Protocol):
    def get(self, booking_id: int) -> Optional[BookingRecord]:
        ...

    def set_instance_reference(self, booking_id: int, instance_id: int) -> bool:
        ...

    def mark_series_master(self, booking_id: int, series_id: int) -> None:
        ...


class DjangoBookingStore:
    """BookingStore backed by the bookings.Booking model."""

    def _model(self):
        from bookings.models import Booking
        return Booking

    def get(self, booking_id: int) -> Optional[BookingRecord]:
        booking = self._model().objects.filter(pk=booking_id).first()
        if booking is None:
            return None
        return BookingRecord(
            id=booking.pk,
            booking_date=booking.booking_date,
            booking_time=booking.booking_time,
            booking_time_end=booking.booking_time_end,
            customer_id=booking.customer_id,
            staff_id=booking.staff_id,
            service_id=booking.service_id,
        )

    def set_instance_reference(self, booking_id: int, instance_id: int) -> bool:
        updated = self._model().objects.filter(pk=booking_id).update(
            recurring_instance_id=instance_id
        )
        return updated > 0

    def mark_series_master(self, booking_id: int, series_id: int) -> None:
        self._model().objects.filter(pk=booking_id).update(
            recurring_series_id=series_id,
            is_recurring_master=True,
        )
