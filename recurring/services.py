"""
Series lifecycle service.

Owns RecurringSeries creation, updates, cancellation and exclusion rules.
Every public operation returns a Result; expected failures (validation,
missing rows, illegal transitions) travel inside it. Database failures are
raised as StorageError.
"""

import logging
from contextlib import contextmanager
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional, Union

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from .collaborators import (
    BookingStore,
    Clock,
    DjangoBookingStore,
    RecurringSettings,
    SystemClock,
)
from .errors import NotFoundError, StateError, StorageError, ValidationError
from .models import RecurringSeries, SeriesExclusion, SeriesInstance
from .patterns import PatternRegistry, RecurrencePattern, parse_date
from .signals import emit, series_cancelled, series_created, series_updated
from .types import (
    DEFAULT_PREVIEW_COUNT,
    EXCLUSION_DATE,
    EXCLUSION_DAY_OF_WEEK,
    EXCLUSION_TYPES,
    INSTANCE_BOOKED,
    INSTANCE_SCHEDULED,
    MAX_PREVIEW_COUNT,
    SERIES_ACTIVE,
    SERIES_CANCELLED,
    SERIES_COMPLETED,
    SERIES_PAUSED,
    SERIES_STATUSES,
    WEEKDAY_NAMES,
    Result,
    SeriesUpdateData,
)

logger = logging.getLogger(__name__)


@contextmanager
def storage_errors(action: str):
    """Re-raise database failures as StorageError."""
    try:
        yield
    except DatabaseError as exc:
        logger.error(f"Storage failure while trying to {action}: {exc}")
        raise StorageError(f"Failed to {action}.") from exc


class SeriesService:
    """
    Series Lifecycle Manager.

    Args:
        registry: PatternRegistry shared with the InstanceGenerator
        bookings: BookingStore used to read the master booking
        settings: RecurringSettings
        clock: Clock providing today's date
    """

    def __init__(
        self,
        registry: PatternRegistry,
        bookings: BookingStore = None,
        settings: RecurringSettings = None,
        clock: Clock = None,
    ):
        self.registry = registry
        self.bookings = bookings or DjangoBookingStore()
        self.settings = settings or RecurringSettings.from_django()
        self.clock = clock or SystemClock()

    def get_pattern(self, key: str) -> Optional[RecurrencePattern]:
        return self.registry.get(key)

    # Series

    def get_series(self, series_id: int) -> Result[RecurringSeries]:
        series = RecurringSeries.objects.filter(pk=series_id).first()
        if series is None:
            return Result.failure(NotFoundError('Series not found.'))
        return Result.success(series)

    def list_series(
        self,
        status: Optional[str] = SERIES_ACTIVE,
        customer_id: Optional[int] = None,
        staff_id: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[RecurringSeries]:
        """
        List series, newest first.

        Args:
            status: Status filter (None or '' for every status)
            customer_id: Optional customer filter
            staff_id: Optional staff filter
            limit: Page size
            offset: Rows to skip
        """
        queryset = RecurringSeries.objects.all()
        if status:
            queryset = queryset.with_status(status)
        if customer_id:
            queryset = queryset.for_customer(customer_id)
        if staff_id:
            queryset = queryset.for_staff(staff_id)
        return list(queryset[offset:offset + limit])

    def create_series(
        self,
        master_booking_id: int,
        pattern_key: str,
        options: Dict[str, Any] = None,
    ) -> Result[RecurringSeries]:
        """
        Create a recurring series from a master booking.

        Args:
            master_booking_id: ID of the booking that becomes occurrence #1
            pattern_key: Registered pattern key (daily, weekly...)
            options: Series options:
                pattern_options: payload checked by the pattern
                end_date: last date the series may reach
                occurrences: total occurrences, master included
                end_after: cap on occurrences
                apply_discount: store the configured recurring discount
                metadata: free-form dict

        Returns:
            Result holding the created RecurringSeries, or a ValidationError
        """
        options = options or {}

        pattern = self.get_pattern(pattern_key)
        if pattern is None:
            return Result.failure(ValidationError('Invalid recurrence pattern.', 'invalid_pattern'))

        pattern_options = options.get('pattern_options') or {}
        if not pattern.validate_options(pattern_options):
            return Result.failure(ValidationError('Invalid pattern options.', 'invalid_options'))

        booking = self.bookings.get(master_booking_id)
        if booking is None:
            return Result.failure(ValidationError('Invalid booking.', 'invalid_booking'))

        end_date = None
        max_occurrences = options.get('occurrences') or self.settings.max_occurrences
        try:
            max_occurrences = int(max_occurrences)
            if options.get('end_date'):
                end_date = parse_date(options['end_date'])
            elif options.get('end_after'):
                max_occurrences = min(int(options['end_after']), max_occurrences)
        except (TypeError, ValueError):
            return Result.failure(ValidationError('Invalid series end condition.', 'invalid_options'))

        error = self._validate_bounds(booking.booking_date, end_date, max_occurrences)
        if error:
            return Result.failure(error)

        metadata = options.get('metadata') or {}
        if not isinstance(metadata, Mapping):
            return Result.failure(ValidationError('Invalid metadata.', 'invalid_options'))

        discount = self.settings.recurring_discount if options.get('apply_discount') else 0

        with storage_errors('create series'), transaction.atomic():
            series = RecurringSeries.objects.create(
                master_booking_id=master_booking_id,
                customer_id=booking.customer_id,
                staff_id=booking.staff_id,
                service_id=booking.service_id,
                pattern=pattern_key,
                pattern_options=pattern_options,
                start_date=booking.booking_date,
                end_date=end_date,
                start_time=booking.booking_time,
                end_time=booking.booking_time_end,
                timezone=timezone.get_current_timezone_name(),
                max_occurrences=max_occurrences,
                recurring_discount=discount,
                status=SERIES_ACTIVE,
                metadata=dict(metadata),
            )
            emit(series_created, self.__class__, series=series,
                 master_booking_id=master_booking_id, options=options)

        logger.info(
            f"Created {pattern_key} series {series.pk} for booking {master_booking_id} "
            f"({max_occurrences} occurrences)"
        )
        return Result.success(series)

    def update_series(
        self,
        series_id: int,
        data: Union[SeriesUpdateData, Dict[str, Any]],
    ) -> Result[RecurringSeries]:
        """
        Update the updatable fields of a series.

        Only end_date, max_occurrences, status, pattern_options and metadata
        can change; anything else in a dict payload is ignored.

        Returns:
            Result holding the updated RecurringSeries
        """
        if not isinstance(data, SeriesUpdateData):
            data = SeriesUpdateData.from_dict(data)
        changes = data.changes()

        with storage_errors('update series'), transaction.atomic():
            series = RecurringSeries.objects.select_for_update().filter(pk=series_id).first()
            if series is None:
                return Result.failure(NotFoundError('Series not found.'))
            if not changes:
                return Result.success(series)

            error = self._validate_changes(series, changes)
            if error:
                return Result.failure(error)

            if 'end_date' in changes:
                changes['end_date'] = parse_date(changes['end_date'])
            if 'max_occurrences' in changes:
                changes['max_occurrences'] = int(changes['max_occurrences'])
            for field_name, value in changes.items():
                setattr(series, field_name, value)
            series.save()
            emit(series_updated, self.__class__, series=series, changes=changes)

        return Result.success(series)

    def cancel_series(self, series_id: int, reason: str = '') -> Result[RecurringSeries]:
        """
        Cancel a series. Cancelling an already cancelled series is a no-op.

        Returns:
            Result holding the cancelled RecurringSeries
        """
        with storage_errors('cancel series'), transaction.atomic():
            series = RecurringSeries.objects.select_for_update().filter(pk=series_id).first()
            if series is None:
                return Result.failure(NotFoundError('Series not found.'))
            if series.status == SERIES_CANCELLED:
                return Result.success(series)

            series.status = SERIES_CANCELLED
            series.metadata = {
                **(series.metadata or {}),
                'cancellation_reason': reason,
                'cancelled_at': timezone.now().isoformat(),
            }
            series.save()
            emit(series_cancelled, self.__class__, series=series, reason=reason)

        logger.info(f"Cancelled series {series_id}: {reason or 'no reason given'}")
        return Result.success(series)

    def pause_series(self, series_id: int) -> Result[RecurringSeries]:
        return self._transition(series_id, SERIES_ACTIVE, SERIES_PAUSED)

    def resume_series(self, series_id: int) -> Result[RecurringSeries]:
        return self._transition(series_id, SERIES_PAUSED, SERIES_ACTIVE)

    def complete_series_if_finished(self, series_id: int) -> bool:
        """
        Move an active or paused series to completed once every instance
        slot is materialized and none is left scheduled or booked.
        """
        with storage_errors('complete series'), transaction.atomic():
            series = RecurringSeries.objects.select_for_update().filter(pk=series_id).first()
            if series is None or series.status not in (SERIES_ACTIVE, SERIES_PAUSED):
                return False
            if series.remaining_occurrences > 0:
                return False
            unresolved = SeriesInstance.objects.for_series(series_id).filter(
                status__in=[INSTANCE_SCHEDULED, INSTANCE_BOOKED]
            ).exists()
            if unresolved:
                return False

            series.status = SERIES_COMPLETED
            series.save()
            emit(series_updated, self.__class__, series=series,
                 changes={'status': SERIES_COMPLETED})

        logger.info(f"Series {series_id} completed")
        return True

    def increment_total(self, series_id: int, count: int = 1) -> None:
        """Atomically add count to total_occurrences."""
        with storage_errors('update series counters'):
            RecurringSeries.objects.filter(pk=series_id).update(
                total_occurrences=F('total_occurrences') + count
            )

    def increment_completed(self, series_id: int) -> None:
        """Atomically add one to completed_occurrences."""
        with storage_errors('update series counters'):
            RecurringSeries.objects.filter(pk=series_id).update(
                completed_occurrences=F('completed_occurrences') + 1
            )

    # Exclusions

    def add_exclusion(
        self,
        series_id: int,
        exclusion_type: str,
        data: Dict[str, Any],
    ) -> Result[SeriesExclusion]:
        """
        Add an exclusion rule to a series.

        Args:
            series_id: Series ID
            exclusion_type: 'date', 'day_of_week' or 'range'
            data: {'date'} | {'day'} | {'start_date', 'end_date'}, plus 'reason'

        Returns:
            Result holding the created SeriesExclusion
        """
        if not RecurringSeries.objects.filter(pk=series_id).exists():
            return Result.failure(NotFoundError('Series not found.'))
        if exclusion_type not in EXCLUSION_TYPES:
            return Result.failure(ValidationError('Invalid exclusion type.', 'invalid_exclusion'))

        fields = {'reason': data.get('reason') or None}
        try:
            if exclusion_type == EXCLUSION_DATE:
                fields['exclusion_date'] = parse_date(data['date'])
            elif exclusion_type == EXCLUSION_DAY_OF_WEEK:
                fields['day_of_week'] = int(data['day'])
                if not 0 <= fields['day_of_week'] <= 6:
                    raise ValueError(data['day'])
            else:
                fields['start_date'] = parse_date(data['start_date'])
                fields['end_date'] = parse_date(data['end_date'])
                if fields['end_date'] < fields['start_date']:
                    raise ValueError('range ends before it starts')
        except (KeyError, TypeError, ValueError):
            return Result.failure(ValidationError('Invalid exclusion data.', 'invalid_exclusion'))

        if None in (value for key, value in fields.items() if key != 'reason'):
            return Result.failure(ValidationError('Invalid exclusion data.', 'invalid_exclusion'))

        with storage_errors('add exclusion'):
            exclusion = SeriesExclusion.objects.create(
                series_id=series_id,
                exclusion_type=exclusion_type,
                **fields
            )
        return Result.success(exclusion)

    def get_exclusions(self, series_id: int) -> List[SeriesExclusion]:
        return list(SeriesExclusion.objects.for_series(series_id))

    def remove_exclusion(self, exclusion_id: int) -> Result[int]:
        with storage_errors('remove exclusion'):
            deleted, _ = SeriesExclusion.objects.filter(pk=exclusion_id).delete()
        if not deleted:
            return Result.failure(NotFoundError('Exclusion not found.'))
        return Result.success(exclusion_id)

    def is_date_excluded(self, series_id: int, day: date) -> bool:
        """True when any exclusion rule of the series matches the date."""
        return self.exclusion_predicate(series_id)(day)

    def exclusion_predicate(self, series_id: int):
        """Load the series' exclusion rules once and return a date -> bool check."""
        exclusions = self.get_exclusions(series_id)

        def is_excluded(day: date) -> bool:
            return any(exclusion.excludes(day) for exclusion in exclusions)

        return is_excluded

    # Preview

    def get_preview(
        self,
        pattern_key: str,
        start_date: Union[date, str],
        options: Dict[str, Any] = None,
    ) -> Result[Dict[str, Any]]:
        """
        Preview the dates a pattern produces, read-only.

        Uses the same registry as generation. options['preview_count']
        defaults to 5 and is capped at 12.
        """
        options = options or {}

        pattern = self.get_pattern(pattern_key)
        if pattern is None:
            return Result.failure(ValidationError('Invalid pattern.', 'invalid_pattern'))

        try:
            start = parse_date(start_date)
            count = int(options.get('preview_count') or DEFAULT_PREVIEW_COUNT)
        except (TypeError, ValueError):
            return Result.failure(ValidationError('Invalid start date.', 'invalid_date'))
        if start is None:
            return Result.failure(ValidationError('Invalid start date.', 'invalid_date'))

        if not pattern.validate_options(options):
            return Result.failure(ValidationError('Invalid pattern options.', 'invalid_options'))

        count = max(1, min(count, MAX_PREVIEW_COUNT))
        dates = pattern.generate(start, count, options)

        return Result.success({
            'pattern': pattern_key,
            'description': pattern.get_description(options),
            'dates': [
                {'date': day.isoformat(), 'day': WEEKDAY_NAMES[day.weekday()]}
                for day in dates
            ],
            'total_count': len(dates),
        })

    # Helpers

    def _transition(self, series_id: int, source: str, target: str) -> Result[RecurringSeries]:
        with storage_errors(f"move series to {target}"), transaction.atomic():
            series = RecurringSeries.objects.select_for_update().filter(pk=series_id).first()
            if series is None:
                return Result.failure(NotFoundError('Series not found.'))
            if series.status != source:
                return Result.failure(StateError(
                    f"Only {source} series can be moved to {target}."
                ))
            series.status = target
            series.save()
            emit(series_updated, self.__class__, series=series, changes={'status': target})
        return Result.success(series)

    def _validate_bounds(
        self,
        start_date: date,
        end_date: Optional[date],
        max_occurrences: int,
    ) -> Optional[ValidationError]:
        if max_occurrences < 1:
            return ValidationError('A series needs at least one occurrence.', 'invalid_options')
        if end_date is None:
            return None
        if end_date < start_date:
            return ValidationError('End date cannot be before the booking date.', 'invalid_end_date')
        if end_date > start_date + timedelta(days=self.settings.max_advance_days):
            return ValidationError(
                f"Series cannot extend more than {self.settings.max_advance_days} days ahead.",
                'invalid_end_date',
            )
        return None

    def _validate_changes(
        self,
        series: RecurringSeries,
        changes: Dict[str, Any],
    ) -> Optional[Union[ValidationError, StateError]]:
        status = changes.get('status')
        if status is not None:
            if status not in SERIES_STATUSES:
                return ValidationError('Invalid series status.', 'invalid_status')
            if series.status == SERIES_CANCELLED and status != SERIES_CANCELLED:
                return StateError('Cancelled series cannot be reactivated.')

        if 'metadata' in changes and not isinstance(changes['metadata'], Mapping):
            return ValidationError('Invalid metadata.', 'invalid_options')

        if 'pattern_options' in changes:
            pattern = self.get_pattern(series.pattern)
            if pattern is None or not pattern.validate_options(changes['pattern_options']):
                return ValidationError('Invalid pattern options.', 'invalid_options')

        try:
            end_date = parse_date(changes.get('end_date'))
            max_occurrences = int(changes.get('max_occurrences', series.max_occurrences))
        except (TypeError, ValueError):
            return ValidationError('Invalid series end condition.', 'invalid_options')

        if max_occurrences < series.total_occurrences + 1:
            return ValidationError(
                'max_occurrences cannot be lower than the occurrences already scheduled.',
                'invalid_options',
            )
        return self._validate_bounds(series.start_date, end_date, max_occurrences)
