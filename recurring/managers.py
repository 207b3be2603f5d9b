"""
Custom managers and querysets for recurring booking models.

QuerySets define chainable query methods.
Managers use QuerySets to enable method chaining.
No business logic should be here - only query operations.
"""

from django.db import models

from .types import (
    INSTANCE_SCHEDULED,
    RECLAIMABLE_INSTANCE_STATUSES,
    SERIES_ACTIVE,
)


class RecurringSeriesQuerySet(models.QuerySet):
    """Custom queryset for RecurringSeries model with chainable methods."""

    def active(self):
        """Get all active series."""
        return self.filter(status=SERIES_ACTIVE)

    def with_status(self, status):
        return self.filter(status=status)

    def for_customer(self, customer_id):
        return self.filter(customer_id=customer_id)

    def for_staff(self, staff_id):
        return self.filter(staff_id=staff_id)

    def for_master_booking(self, booking_id):
        return self.filter(master_booking_id=booking_id)

    def least_recently_generated(self):
        """Order so that series never processed, then the stalest, come first."""
        return self.order_by(
            models.F('last_generated_at').asc(nulls_first=True),
            'id',
        )


class SeriesExclusionQuerySet(models.QuerySet):
    """Custom queryset for SeriesExclusion model with chainable methods."""

    def for_series(self, series_id):
        return self.filter(series_id=series_id)


class SeriesInstanceQuerySet(models.QuerySet):
    """Custom queryset for SeriesInstance model with chainable methods."""

    def for_series(self, series_id):
        """
        Get all instances of a series.

        Args:
            series_id: RecurringSeries primary key
        """
        return self.filter(series_id=series_id)

    def scheduled(self):
        """Get instances still waiting for a booking."""
        return self.filter(status=INSTANCE_SCHEDULED)

    def upcoming(self, today):
        """
        Get scheduled instances on or after a date.

        Args:
            today: date object
        """
        return self.scheduled().filter(scheduled_date__gte=today)

    def in_range(self, from_date=None, to_date=None):
        """
        Get instances within an inclusive date range; open ends are allowed.

        Args:
            from_date: date object or None
            to_date: date object or None
        """
        queryset = self
        if from_date:
            queryset = queryset.filter(scheduled_date__gte=from_date)
        if to_date:
            queryset = queryset.filter(scheduled_date__lte=to_date)
        return queryset

    def for_customer(self, customer_id):
        return self.filter(series__customer_id=customer_id)

    def reclaimable_before(self, cutoff):
        """
        Get resolved instances dated before the cutoff.

        Args:
            cutoff: date object
        """
        return self.filter(
            status__in=RECLAIMABLE_INSTANCE_STATUSES,
            scheduled_date__lt=cutoff,
        )

    def latest_scheduled_date(self):
        """Get the most recent scheduled_date, or None."""
        return self.aggregate(latest=models.Max('scheduled_date'))['latest']

    def latest_instance_number(self):
        return self.aggregate(latest=models.Max('instance_number'))['latest']

    def status_counts(self):
        """Get {status: count} for the queryset."""
        rows = self.order_by().values('status').annotate(count=models.Count('id'))
        return {row['status']: row['count'] for row in rows}


class RecurringSeriesManager(models.Manager):
    """Custom manager for RecurringSeries model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return RecurringSeriesQuerySet(self.model, using=self._db)

    def active(self):
        """Get all active series."""
        return self.get_queryset().active()

    def for_customer(self, customer_id):
        return self.get_queryset().for_customer(customer_id)

    def for_master_booking(self, booking_id):
        return self.get_queryset().for_master_booking(booking_id)


class SeriesExclusionManager(models.Manager):
    """Custom manager for SeriesExclusion model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return SeriesExclusionQuerySet(self.model, using=self._db)

    def for_series(self, series_id):
        return self.get_queryset().for_series(series_id)


class SeriesInstanceManager(models.Manager):
    """Custom manager for SeriesInstance model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return SeriesInstanceQuerySet(self.model, using=self._db)

    def for_series(self, series_id):
        """
        Get all instances of a series.

        Args:
            series_id: RecurringSeries primary key
        """
        return self.get_queryset().for_series(series_id)

    def scheduled(self):
        """Get instances still waiting for a booking."""
        return self.get_queryset().scheduled()

    def upcoming(self, today):
        """
        Get scheduled instances on or after a date.

        Args:
            today: date object
        """
        return self.get_queryset().upcoming(today)

    def reclaimable_before(self, cutoff):
        """
        Get resolved instances dated before the cutoff.

        Args:
            cutoff: date object
        """
        return self.get_queryset().reclaimable_before(cutoff)
