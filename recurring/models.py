"""
Models for the recurring bookings engine.

This implementation uses the Occurrence Materialization Pattern where:
- RecurringSeries stores the recurrence rule attached to a master booking
- SeriesExclusion stores the dates a series must never land on
- SeriesInstance stores every materialized future occurrence of a series

The master booking itself is occurrence #1 and is never stored as an instance.
"""

from decimal import Decimal

from django.db import models
from django.core.exceptions import ValidationError

from .managers import (
    RecurringSeriesManager,
    SeriesExclusionManager,
    SeriesInstanceManager,
)
from .types import WEEKDAY_NAMES


class RecurringSeries(models.Model):
    """
    A recurring booking definition spawned from a master booking.

    Bookings, customers, staff and services are referenced by ID only.
    """

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        PAUSED = 'paused', 'Paused'
        CANCELLED = 'cancelled', 'Cancelled'
        COMPLETED = 'completed', 'Completed'

    master_booking_id = models.BigIntegerField(db_index=True)
    customer_id = models.BigIntegerField(null=True, blank=True, db_index=True)
    staff_id = models.BigIntegerField(null=True, blank=True)
    service_id = models.BigIntegerField(null=True, blank=True)

    pattern = models.CharField(max_length=50)
    pattern_options = models.JSONField(default=dict, blank=True)

    start_date = models.DateField(help_text="Date of the master booking")
    end_date = models.DateField(
        null=True,
        blank=True,
        help_text="Last date the series may reach (null = no end date)"
    )
    start_time = models.TimeField(null=True, blank=True)
    end_time = models.TimeField(null=True, blank=True)
    timezone = models.CharField(max_length=64, default='UTC')

    max_occurrences = models.PositiveIntegerField(
        default=52,
        help_text="Occurrences in the series, the master booking included"
    )
    total_occurrences = models.PositiveIntegerField(
        default=0,
        help_text="Materialized instances"
    )
    completed_occurrences = models.PositiveIntegerField(default=0)
    recurring_discount = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Percentage discount applied to every instance"
    )

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE
    )
    metadata = models.JSONField(default=dict, blank=True)

    last_generated_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last time the generator processed this series"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = RecurringSeriesManager()

    class Meta:
        ordering = ['-created_at', '-id']
        verbose_name_plural = 'recurring series'
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['customer_id', 'status']),
            models.Index(fields=['staff_id']),
        ]

    def __str__(self):
        return f"Series #{self.pk} ({self.pattern}) from booking #{self.master_booking_id}"

    @property
    def is_active(self):
        return self.status == self.Status.ACTIVE

    @property
    def remaining_occurrences(self):
        """Instance slots left, the master booking taking the first one."""
        return max(self.max_occurrences - 1 - self.total_occurrences, 0)

    def clean(self):
        """Validate series data."""
        super().clean()

        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValidationError({
                'end_date': 'End date cannot be before the start date.'
            })

        if self.max_occurrences is not None and self.max_occurrences < 1:
            raise ValidationError({
                'max_occurrences': 'A series needs at least one occurrence.'
            })

    def save(self, *args, **kwargs):
        """Save with validation."""
        self.full_clean()
        super().save(*args, **kwargs)


class SeriesExclusion(models.Model):
    """A date, weekday or inclusive date range removed from a series."""

    class ExclusionType(models.TextChoices):
        DATE = 'date', 'Exact date'
        DAY_OF_WEEK = 'day_of_week', 'Day of week'
        RANGE = 'range', 'Date range'

    WEEKDAY_CHOICES = list(enumerate(WEEKDAY_NAMES))

    series = models.ForeignKey(
        RecurringSeries,
        on_delete=models.CASCADE,
        related_name='exclusions'
    )
    exclusion_type = models.CharField(max_length=20, choices=ExclusionType.choices)
    exclusion_date = models.DateField(null=True, blank=True)
    day_of_week = models.PositiveSmallIntegerField(
        choices=WEEKDAY_CHOICES,
        null=True,
        blank=True,
        help_text="0=Monday, 6=Sunday"
    )
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    reason = models.CharField(max_length=255, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    objects = SeriesExclusionManager()

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['series', 'exclusion_type']),
        ]

    def __str__(self):
        if self.exclusion_type == self.ExclusionType.DATE:
            detail = self.exclusion_date
        elif self.exclusion_type == self.ExclusionType.DAY_OF_WEEK:
            detail = WEEKDAY_NAMES[self.day_of_week]
        else:
            detail = f"{self.start_date} - {self.end_date}"
        return f"Exclusion ({self.exclusion_type}: {detail}) for series #{self.series_id}"

    def excludes(self, day):
        """Whether this rule removes the given date."""
        if self.exclusion_type == self.ExclusionType.DATE:
            return self.exclusion_date == day
        if self.exclusion_type == self.ExclusionType.DAY_OF_WEEK:
            return self.day_of_week == day.weekday()
        if self.exclusion_type == self.ExclusionType.RANGE:
            return self.start_date <= day <= self.end_date
        return False


class SeriesInstance(models.Model):
    """
    One materialized occurrence of a series.

    The (series, scheduled_date) unique constraint is what keeps concurrent
    generator runs from creating two instances on the same day.
    """

    class Status(models.TextChoices):
        SCHEDULED = 'scheduled', 'Scheduled'
        BOOKED = 'booked', 'Booked'
        COMPLETED = 'completed', 'Completed'
        SKIPPED = 'skipped', 'Skipped'
        CANCELLED = 'cancelled', 'Cancelled'

    series = models.ForeignKey(
        RecurringSeries,
        on_delete=models.CASCADE,
        related_name='instances'
    )
    instance_number = models.PositiveIntegerField()

    scheduled_date = models.DateField()
    scheduled_time = models.TimeField(null=True, blank=True)
    original_date = models.DateField(
        null=True,
        blank=True,
        help_text="Date before the first reschedule"
    )
    original_time = models.TimeField(null=True, blank=True)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.SCHEDULED
    )
    skip_reason = models.CharField(max_length=255, null=True, blank=True)
    reschedule_reason = models.CharField(max_length=255, null=True, blank=True)
    booking_id = models.BigIntegerField(null=True, blank=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = SeriesInstanceManager()

    class Meta:
        ordering = ['scheduled_date', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['series', 'scheduled_date'],
                name='unique_instance_per_series_date',
            ),
        ]
        indexes = [
            models.Index(fields=['scheduled_date', 'status']),
            models.Index(fields=['status']),
        ]

    def __str__(self):
        status_str = f" [{self.status}]" if self.status != self.Status.SCHEDULED else ""
        return f"Series #{self.series_id} instance {self.instance_number} - {self.scheduled_date}{status_str}"

    @property
    def is_rescheduled(self):
        return self.original_date is not None
