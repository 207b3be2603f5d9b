"""
Instance generation and instance lifecycle.

generate_instances_for_series is safe to run any number of times, from any
number of workers: the series row is locked while its anchor is read and
new rows are inserted, and the (series, scheduled_date) unique constraint
turns an overlapping insert into a silent skip.
"""

import logging
from datetime import date, time, timedelta
from typing import Any, Dict, List, Optional, Union

from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_time

from .collaborators import BookingStore, Clock, RecurringSettings
from .errors import DuplicateError, NotFoundError, StateError, ValidationError
from .models import RecurringSeries, SeriesInstance
from .patterns import RecurrencePattern, parse_date
from .services import SeriesService, storage_errors
from .signals import (
    emit,
    instance_booked,
    instance_completed,
    instance_created,
    instance_rescheduled,
    instance_skipped,
    instances_generated,
)
from .types import (
    INSTANCE_BOOKED,
    INSTANCE_COMPLETED,
    INSTANCE_SCHEDULED,
    INSTANCE_SKIPPED,
    INSTANCE_STATUSES,
    SERIES_ACTIVE,
    GenerationSummary,
    Result,
)

logger = logging.getLogger(__name__)


class InstanceGenerator:
    """
    Materializes series instances and drives their status transitions.

    Args:
        series_service: SeriesService sharing the pattern registry
        bookings: BookingStore (defaults to the series service's)
        settings: RecurringSettings (defaults to the series service's)
        clock: Clock (defaults to the series service's)
    """

    def __init__(
        self,
        series_service: SeriesService,
        bookings: BookingStore = None,
        settings: RecurringSettings = None,
        clock: Clock = None,
    ):
        self.series_service = series_service
        self.registry = series_service.registry
        self.bookings = bookings or series_service.bookings
        self.settings = settings or series_service.settings
        self.clock = clock or series_service.clock

    # Generation

    def generate_instances_for_series(self, series_id: int) -> List[int]:
        """
        Materialize the next instances of a series up to the lookahead horizon.

        Args:
            series_id: Series ID

        Returns:
            IDs of the instances created by this call (empty when the series
            is not active, its pattern is unknown or it is fully scheduled)

        Raises:
            StorageError: If the database fails
        """
        with storage_errors('generate instances'), transaction.atomic():
            series = RecurringSeries.objects.select_for_update().filter(pk=series_id).first()
            if series is None or series.status != SERIES_ACTIVE:
                return []

            pattern = self.registry.get(series.pattern)
            if pattern is None:
                logger.warning(f"Series {series_id} uses unknown pattern '{series.pattern}'")
                return []

            RecurringSeries.objects.filter(pk=series_id).update(last_generated_at=timezone.now())

            remaining = series.remaining_occurrences
            if remaining <= 0:
                return []

            instances = SeriesInstance.objects.for_series(series_id)
            anchor = instances.latest_scheduled_date() or series.start_date
            horizon = self._horizon(series)

            candidates = self._walk(
                pattern,
                anchor,
                series.pattern_options or {},
                horizon,
                remaining,
                self.series_service.exclusion_predicate(series_id),
            )

            number = instances.latest_instance_number() or 1
            created = []
            for day in candidates:
                result = self.create_instance(series, day, series.start_time, number + 1)
                if not result.ok:
                    logger.debug(f"Series {series_id} already has an instance on {day}, skipping")
                    continue
                number += 1
                created.append(result.value)

            if created:
                self.series_service.increment_total(series_id, len(created))
                logger.info(f"Generated {len(created)} instance(s) for series {series_id}")

        return [instance.pk for instance in created]

    def generate_upcoming_instances(self) -> Dict[str, Any]:
        """
        Run generation for a batch of active series.

        Called by the daily cron job. Series that were processed least
        recently go first, so a batch limit never starves the tail.

        Returns:
            {'series_processed', 'instances_created', 'errors'}
        """
        summary = GenerationSummary()
        series_ids = list(
            RecurringSeries.objects.active()
            .least_recently_generated()
            .values_list('id', flat=True)[:self.settings.generation_batch_size]
        )

        for series_id in series_ids:
            summary.series_processed += 1
            try:
                instance_ids = self.generate_instances_for_series(series_id)
            except Exception as e:
                logger.error(f"Error generating instances for series {series_id}: {e}", exc_info=True)
                summary.errors.append({'series_id': series_id, 'error': str(e)})
                continue
            summary.instances_created += len(instance_ids)

        logger.info(
            f"Processed {summary.series_processed} series, created "
            f"{summary.instances_created} instance(s), {len(summary.errors)} error(s)"
        )
        result = summary.to_dict()
        emit(instances_generated, self.__class__, summary=result)
        return result

    def create_instance(
        self,
        series: RecurringSeries,
        day: date,
        scheduled_time: Optional[time],
        instance_number: int,
    ) -> Result[SeriesInstance]:
        """
        Insert one instance. A row already holding the date yields a
        DuplicateError result; the generator treats it as a no-op.
        """
        try:
            with transaction.atomic():
                instance = SeriesInstance.objects.create(
                    series=series,
                    instance_number=instance_number,
                    scheduled_date=day,
                    scheduled_time=scheduled_time,
                    status=INSTANCE_SCHEDULED,
                )
        except IntegrityError:
            return Result.failure(DuplicateError('Instance already exists for this date.'))

        emit(instance_created, self.__class__, instance=instance)
        return Result.success(instance)

    # Queries

    def get_instance(self, instance_id: int) -> Result[SeriesInstance]:
        instance = SeriesInstance.objects.filter(pk=instance_id).first()
        if instance is None:
            return Result.failure(NotFoundError('Instance not found.'))
        return Result.success(instance)

    def get_instances(
        self,
        series_id: int,
        status: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        limit: int = 50,
        offset: int = 0,
        order: str = 'ASC',
    ) -> List[SeriesInstance]:
        """
        List the instances of a series ordered by scheduled date.

        Args:
            series_id: Series ID
            status: Optional status filter
            from_date: Inclusive lower bound
            to_date: Inclusive upper bound
            limit: Page size
            offset: Rows to skip
            order: 'ASC' or 'DESC'
        """
        queryset = SeriesInstance.objects.for_series(series_id).in_range(from_date, to_date)
        if status:
            queryset = queryset.filter(status=status)
        if str(order).upper() == 'DESC':
            queryset = queryset.order_by('-scheduled_date', '-id')
        return list(queryset[offset:offset + limit])

    def get_series_stats(self, series_id: int) -> Result[Dict[str, int]]:
        """Count the instances of a series per status, plus a total."""
        if not RecurringSeries.objects.filter(pk=series_id).exists():
            return Result.failure(NotFoundError('Series not found.'))

        counts = SeriesInstance.objects.for_series(series_id).status_counts()
        stats = {status: counts.get(status, 0) for status in INSTANCE_STATUSES}
        stats['total'] = sum(counts.values())
        return Result.success(stats)

    def get_upcoming_for_customer(self, customer_id: int, limit: int = 10) -> List[SeriesInstance]:
        """Scheduled instances from today on, across a customer's series."""
        return list(
            SeriesInstance.objects.upcoming(self.clock.today())
            .for_customer(customer_id)
            .select_related('series')
            .order_by('scheduled_date', 'id')[:limit]
        )

    # Transitions

    def link_booking(self, instance_id: int, booking_id: int) -> Result[SeriesInstance]:
        """
        Attach a real booking to a scheduled instance (scheduled -> booked).

        The instance ID is written back onto the booking.
        """
        with storage_errors('link booking'), transaction.atomic():
            instance = SeriesInstance.objects.select_for_update().filter(pk=instance_id).first()
            if instance is None:
                return Result.failure(NotFoundError('Instance not found.'))
            if instance.status != INSTANCE_SCHEDULED:
                return Result.failure(StateError('Only scheduled instances can be booked.'))
            if self.bookings.get(booking_id) is None:
                return Result.failure(NotFoundError('Booking not found.'))

            instance.booking_id = booking_id
            instance.status = INSTANCE_BOOKED
            instance.save(update_fields=['booking_id', 'status', 'updated_at'])
            self.bookings.set_instance_reference(booking_id, instance.pk)
            emit(instance_booked, self.__class__, instance=instance, booking_id=booking_id)

        return Result.success(instance)

    def complete_instance(self, instance_id: int) -> Result[SeriesInstance]:
        """Mark a scheduled or booked instance as completed."""
        with storage_errors('complete instance'), transaction.atomic():
            instance = SeriesInstance.objects.select_for_update().filter(pk=instance_id).first()
            if instance is None:
                return Result.failure(NotFoundError('Instance not found.'))
            if instance.status not in (INSTANCE_SCHEDULED, INSTANCE_BOOKED):
                return Result.failure(StateError(
                    'Only scheduled or booked instances can be completed.'
                ))

            instance.status = INSTANCE_COMPLETED
            instance.save(update_fields=['status', 'updated_at'])
            self.series_service.increment_completed(instance.series_id)
            emit(instance_completed, self.__class__, instance=instance)

        self.series_service.complete_series_if_finished(instance.series_id)
        return Result.success(instance)

    def skip_instance(self, instance_id: int, reason: str = '') -> Result[SeriesInstance]:
        """Skip a scheduled instance. Any other status is left untouched."""
        with storage_errors('skip instance'), transaction.atomic():
            instance = SeriesInstance.objects.select_for_update().filter(pk=instance_id).first()
            if instance is None:
                return Result.failure(NotFoundError('Instance not found.'))
            if instance.status != INSTANCE_SCHEDULED:
                return Result.failure(StateError('Only scheduled instances can be skipped.'))

            instance.status = INSTANCE_SKIPPED
            instance.skip_reason = reason
            instance.save(update_fields=['status', 'skip_reason', 'updated_at'])
            emit(instance_skipped, self.__class__, instance=instance, reason=reason)

        return Result.success(instance)

    def reschedule_instance(
        self,
        instance_id: int,
        new_date: Union[date, str],
        new_time: Union[time, str, None] = None,
    ) -> Result[SeriesInstance]:
        """
        Move a scheduled instance to another date and optionally time.

        original_date/original_time keep the date before the first
        reschedule; later reschedules leave them alone.
        """
        try:
            new_date = parse_date(new_date)
        except (TypeError, ValueError):
            new_date = None
        if new_date is None:
            return Result.failure(ValidationError('Invalid date.', 'invalid_date'))

        if isinstance(new_time, str) and new_time:
            try:
                new_time = parse_time(new_time)
            except ValueError:
                new_time = None
            if new_time is None:
                return Result.failure(ValidationError('Invalid time.', 'invalid_time'))
        elif not new_time:
            new_time = None

        with storage_errors('reschedule instance'), transaction.atomic():
            instance = SeriesInstance.objects.select_for_update().filter(pk=instance_id).first()
            if instance is None:
                return Result.failure(NotFoundError('Instance not found.'))
            if instance.status != INSTANCE_SCHEDULED:
                return Result.failure(StateError('Only scheduled instances can be rescheduled.'))

            taken = SeriesInstance.objects.for_series(instance.series_id).filter(
                scheduled_date=new_date
            ).exclude(pk=instance.pk).exists()
            if taken:
                return Result.failure(DuplicateError('Instance already exists for this date.'))

            old_date = instance.scheduled_date
            if instance.original_date is None:
                instance.original_date = instance.scheduled_date
            if instance.original_time is None:
                instance.original_time = instance.scheduled_time
            instance.scheduled_date = new_date
            if new_time:
                instance.scheduled_time = new_time
            instance.reschedule_reason = f"Rescheduled from {old_date.isoformat()}"

            try:
                with transaction.atomic():
                    instance.save()
            except IntegrityError:
                return Result.failure(DuplicateError('Instance already exists for this date.'))
            emit(instance_rescheduled, self.__class__, instance=instance,
                 new_date=new_date, old_date=old_date)

        return Result.success(instance)

    # Maintenance

    def cleanup_expired(self, retention_days: int) -> int:
        """
        Delete completed and skipped instances older than the retention window.

        Cancelled instances are kept.

        Returns:
            Number of deleted instances
        """
        cutoff = self.clock.today() - timedelta(days=retention_days)
        with storage_errors('clean up instances'):
            deleted, _ = SeriesInstance.objects.reclaimable_before(cutoff).delete()
        logger.info(f"Removed {deleted} instance(s) dated before {cutoff}")
        return deleted

    # Helpers

    def _horizon(self, series: RecurringSeries) -> date:
        horizon = self.clock.today() + timedelta(days=self.settings.generate_ahead_days)
        if series.end_date and series.end_date < horizon:
            return series.end_date
        return horizon

    def _walk(
        self,
        pattern: RecurrencePattern,
        anchor: date,
        pattern_options: Dict[str, Any],
        horizon: date,
        remaining: int,
        is_excluded,
    ) -> List[date]:
        """
        Follow get_next() from the anchor, collecting up to `remaining`
        non-excluded dates no later than the horizon.
        """
        options = dict(pattern_options)
        own_end = parse_date(options.get('end_date'))
        options['end_date'] = min(own_end, horizon) if own_end else horizon

        dates = []
        current = anchor
        while len(dates) < remaining:
            current = pattern.get_next(current, options)
            if current is None or current > horizon:
                break
            if is_excluded(current):
                continue
            dates.append(current)
        return dates
