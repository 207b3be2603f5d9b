"""
Wiring for the recurring bookings engine.

RecurringEngine builds the pattern registry once and hands the same
instance to the series service and the instance generator. The app config
creates one engine at startup; get_engine() returns it.
"""

import logging
from typing import Any, Dict

from django.apps import apps

from .collaborators import (
    BookingStore,
    Clock,
    DjangoBookingStore,
    RecurringSettings,
    SystemClock,
)
from .generator import InstanceGenerator
from .models import RecurringSeries
from .patterns import PatternRegistry, build_default_registry
from .services import SeriesService
from .types import SERIES_CANCELLED, Result

logger = logging.getLogger(__name__)


class RecurringEngine:
    """Registry, series service and instance generator wired together."""

    def __init__(
        self,
        registry: PatternRegistry = None,
        bookings: BookingStore = None,
        settings: RecurringSettings = None,
        clock: Clock = None,
    ):
        self.settings = settings or RecurringSettings.from_django()
        self.registry = registry or build_default_registry(self.settings.disabled_patterns)
        self.bookings = bookings or DjangoBookingStore()
        self.clock = clock or SystemClock()

        self.series = SeriesService(self.registry, self.bookings, self.settings, self.clock)
        self.generator = InstanceGenerator(self.series)

    def start_series(
        self,
        master_booking_id: int,
        pattern_key: str,
        options: Dict[str, Any] = None,
    ) -> Result[RecurringSeries]:
        """
        Turn a freshly created booking into the master of a series.

        Creates the series, materializes its first instances and flags the
        booking as the series master.
        """
        result = self.series.create_series(master_booking_id, pattern_key, options)
        if not result.ok:
            return result

        series = result.value
        self.bookings.mark_series_master(master_booking_id, series.pk)
        self.generator.generate_instances_for_series(series.pk)
        series.refresh_from_db()
        return Result.success(series)

    def handle_master_cancellation(
        self,
        booking_id: int,
        reason: str = '',
        cancel_future: bool = None,
    ) -> bool:
        """
        React to the cancellation of a booking.

        The series is cancelled only when the booking is a series master and
        cancel_future (default: CANCEL_FUTURE_ON_MASTER_CANCEL) is set.

        Returns:
            True when a series was cancelled
        """
        if cancel_future is None:
            cancel_future = self.settings.cancel_future_on_master_cancel
        if not cancel_future:
            return False

        cancelled = False
        for series in RecurringSeries.objects.for_master_booking(booking_id).exclude(
            status=SERIES_CANCELLED
        ):
            if self.series.cancel_series(series.pk, reason).ok:
                cancelled = True
        if cancelled:
            logger.info(f"Cancelled the series of master booking {booking_id}")
        return cancelled


def get_engine() -> RecurringEngine:
    """Return the engine built by the app config at startup."""
    return apps.get_app_config('recurring').engine
