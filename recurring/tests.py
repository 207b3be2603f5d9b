"""
Tests for the recurring bookings engine.

Tests cover:
- Recurrence patterns and the pattern registry
- Models, managers and settings
- SeriesService (creation, updates, cancellation, exclusions, preview)
- InstanceGenerator (generation, batch runs, instance transitions, cleanup)
- Signals
- API endpoints
- Management commands
"""

from datetime import date, time, timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.apps import apps
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from bookings.models import Booking

from .collaborators import DjangoBookingStore, FixedClock, RecurringSettings
from .engine import RecurringEngine
from .errors import DuplicateError, NotFoundError, StateError, StorageError, ValidationError
from .managers import SeriesInstanceQuerySet
from .models import RecurringSeries, SeriesExclusion, SeriesInstance
from .patterns import (
    BiweeklyPattern,
    CustomPattern,
    DailyPattern,
    MonthlyPattern,
    WeeklyPattern,
    build_default_registry,
)
from .services import storage_errors
from .signals import instance_created, series_cancelled
from .types import Result


def make_engine(today=date(2024, 1, 1), **overrides):
    """Engine with a fixed clock and a 60 day lookahead unless overridden."""
    values = {'generate_ahead_days': 60}
    values.update(overrides)
    clock = FixedClock(today)
    return RecurringEngine(settings=RecurringSettings(**values), clock=clock), clock


def make_booking(booking_date=date(2024, 1, 1), customer_id=7):
    return Booking.objects.create(
        customer_id=customer_id,
        staff_id=3,
        service_id=5,
        booking_date=booking_date,
        booking_time=time(10, 0),
        booking_time_end=time(11, 0),
    )


def scheduled_dates(series):
    return list(
        SeriesInstance.objects.for_series(series.pk).values_list('scheduled_date', flat=True)
    )


class DailyPatternTests(TestCase):
    """Test the daily recurrence pattern."""

    def setUp(self):
        self.pattern = DailyPattern()

    def test_generate_every_day(self):
        """Test consecutive days starting on the start date."""
        dates = self.pattern.generate(date(2024, 1, 1), 3, {})
        self.assertEqual(dates, [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)])

    def test_generate_with_interval(self):
        """Test an interval of two days."""
        dates = self.pattern.generate(date(2024, 1, 1), 3, {'interval': 2})
        self.assertEqual(dates, [date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 5)])

    def test_skip_weekends(self):
        """Test that Saturdays and Sundays are skipped."""
        dates = self.pattern.generate(date(2024, 1, 5), 3, {'skip_weekends': True})
        self.assertEqual(dates, [date(2024, 1, 5), date(2024, 1, 8), date(2024, 1, 9)])

    def test_weekend_start_moves_to_monday(self):
        """Test a Saturday start with skip_weekends begins on Monday."""
        dates = self.pattern.generate(date(2024, 1, 6), 1, {'skip_weekends': True})
        self.assertEqual(dates, [date(2024, 1, 8)])

    def test_end_date_stops_sequence(self):
        """Test that end_date bounds the sequence."""
        dates = self.pattern.generate(date(2024, 1, 1), 10, {'end_date': '2024-01-03'})
        self.assertEqual(len(dates), 3)
        self.assertIsNone(self.pattern.get_next(date(2024, 1, 3), {'end_date': '2024-01-03'}))

    def test_zero_count(self):
        """Test that a zero count yields nothing."""
        self.assertEqual(self.pattern.generate(date(2024, 1, 1), 0, {}), [])

    def test_validate_options(self):
        """Test option validation."""
        self.assertTrue(self.pattern.validate_options({}))
        self.assertTrue(self.pattern.validate_options({'interval': 3}))
        self.assertFalse(self.pattern.validate_options({'interval': 0}))
        self.assertFalse(self.pattern.validate_options({'interval': 'abc'}))
        self.assertFalse(self.pattern.validate_options({'end_date': 'not-a-date'}))

    def test_description(self):
        self.assertEqual(self.pattern.get_description({}), 'Daily')
        self.assertEqual(
            self.pattern.get_description({'interval': 3, 'skip_weekends': True}),
            'Every 3 days (weekdays only)'
        )


class WeeklyPatternTests(TestCase):
    """Test the weekly and biweekly recurrence patterns."""

    def setUp(self):
        self.pattern = WeeklyPattern()

    def test_generate_selected_weekdays(self):
        """Test Monday and Wednesday occurrences."""
        dates = self.pattern.generate(date(2024, 1, 1), 4, {'days': [0, 2]})
        self.assertEqual(
            dates,
            [date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 8), date(2024, 1, 10)]
        )

    def test_generate_every_other_week(self):
        """Test an interval of two weeks."""
        dates = self.pattern.generate(date(2024, 1, 1), 3, {'days': [0], 'interval': 2})
        self.assertEqual(dates, [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 29)])

    def test_start_not_on_selected_day(self):
        """Test a Tuesday start with only Mondays selected."""
        dates = self.pattern.generate(date(2024, 1, 2), 1, {'days': [0]})
        self.assertEqual(dates, [date(2024, 1, 8)])

    def test_no_days_repeats_start_weekday(self):
        """Test that without days the start weekday repeats."""
        dates = self.pattern.generate(date(2024, 1, 3), 2, {})
        self.assertEqual(dates, [date(2024, 1, 3), date(2024, 1, 10)])

    def test_validate_options(self):
        """Test option validation."""
        self.assertTrue(self.pattern.validate_options({'days': [0, 6]}))
        self.assertFalse(self.pattern.validate_options({'days': [7]}))
        self.assertFalse(self.pattern.validate_options({'days': 'monday'}))
        self.assertFalse(self.pattern.validate_options({'interval': -1}))

    def test_description(self):
        self.assertEqual(self.pattern.get_description({'days': [0, 2]}), 'Weekly on Monday, Wednesday')
        self.assertEqual(self.pattern.get_description({'interval': 3}), 'Every 3 weeks')

    def test_biweekly_forces_two_week_interval(self):
        """Test that biweekly ignores any interval option."""
        pattern = BiweeklyPattern()
        dates = pattern.generate(date(2024, 1, 1), 3, {'days': [4], 'interval': 5})
        self.assertEqual(dates, [date(2024, 1, 5), date(2024, 1, 19), date(2024, 2, 2)])
        self.assertEqual(pattern.get_description({'days': [4]}), 'Every 2 weeks on Friday')


class MonthlyPatternTests(TestCase):
    """Test the monthly recurrence pattern."""

    def setUp(self):
        self.pattern = MonthlyPattern()

    def test_day_31_clamps_in_february(self):
        """Test that day 31 lands on the last day of shorter months."""
        dates = self.pattern.generate(date(2023, 1, 31), 3, {'day_of_month': 31})
        self.assertEqual(dates, [date(2023, 1, 31), date(2023, 2, 28), date(2023, 3, 31)])

    def test_day_31_in_leap_year(self):
        """Test that day 31 lands on Feb 29 in a leap year."""
        dates = self.pattern.generate(date(2024, 1, 31), 2, {'day_of_month': 31})
        self.assertEqual(dates, [date(2024, 1, 31), date(2024, 2, 29)])

    def test_first_monday(self):
        """Test the first Monday of each month."""
        options = {'type': 'day_of_week', 'week_number': 1, 'day_of_week': 0}
        dates = self.pattern.generate(date(2024, 1, 1), 3, options)
        self.assertEqual(dates, [date(2024, 1, 1), date(2024, 2, 5), date(2024, 3, 4)])

    def test_last_friday(self):
        """Test the last Friday of each month."""
        options = {'type': 'day_of_week', 'week_number': -1, 'day_of_week': 4}
        dates = self.pattern.generate(date(2024, 1, 1), 3, options)
        self.assertEqual(dates, [date(2024, 1, 26), date(2024, 2, 23), date(2024, 3, 29)])

    def test_interval(self):
        dates = self.pattern.generate(date(2024, 1, 15), 3, {'day_of_month': 15, 'interval': 3})
        self.assertEqual(dates, [date(2024, 1, 15), date(2024, 4, 15), date(2024, 7, 15)])

    def test_validate_options(self):
        """Test option validation."""
        self.assertTrue(self.pattern.validate_options({'day_of_month': 31}))
        self.assertFalse(self.pattern.validate_options({'day_of_month': 32}))
        self.assertFalse(self.pattern.validate_options({}))
        self.assertFalse(self.pattern.validate_options(
            {'type': 'day_of_week', 'week_number': 5, 'day_of_week': 0}
        ))
        self.assertFalse(self.pattern.validate_options({'type': 'yearly', 'day_of_month': 1}))

    def test_description(self):
        self.assertEqual(self.pattern.get_description({'day_of_month': 15}), 'Monthly on day 15')
        self.assertEqual(
            self.pattern.get_description({'type': 'day_of_week', 'week_number': -1, 'day_of_week': 4}),
            'Monthly on the last Friday'
        )


class CustomPatternTests(TestCase):
    """Test the custom interval pattern."""

    def setUp(self):
        self.pattern = CustomPattern()

    def test_every_three_weeks(self):
        options = {'unit': 'week', 'interval': 3, 'days': [1]}
        dates = self.pattern.generate(date(2024, 1, 2), 2, options)
        self.assertEqual(dates, [date(2024, 1, 2), date(2024, 1, 23)])

    def test_every_ten_days(self):
        dates = self.pattern.generate(date(2024, 1, 1), 2, {'unit': 'day', 'interval': 10})
        self.assertEqual(dates, [date(2024, 1, 1), date(2024, 1, 11)])

    def test_interval_required(self):
        """Test that custom patterns need an explicit interval and a known unit."""
        self.assertFalse(self.pattern.validate_options({'unit': 'day'}))
        self.assertFalse(self.pattern.validate_options({'unit': 'year', 'interval': 1}))
        self.assertTrue(self.pattern.validate_options({'unit': 'month', 'interval': 2, 'day_of_month': 1}))

    def test_description(self):
        self.assertEqual(
            self.pattern.get_description({'unit': 'week', 'interval': 3, 'days': [1]}),
            'Every 3 weeks on Tuesday'
        )
        self.assertEqual(self.pattern.get_description({'unit': 'day', 'interval': 1}), 'Every day')


class PatternContractTests(TestCase):
    """Test properties every registered pattern must satisfy."""

    CASES = [
        ('daily', {}),
        ('daily', {'interval': 3, 'skip_weekends': True}),
        ('weekly', {'days': [0, 3]}),
        ('weekly', {'interval': 2, 'days': [5]}),
        ('biweekly', {'days': [1, 4]}),
        ('monthly', {'day_of_month': 31}),
        ('monthly', {'type': 'day_of_week', 'week_number': -1, 'day_of_week': 6}),
        ('custom', {'unit': 'week', 'interval': 3, 'days': [2]}),
        ('custom', {'unit': 'month', 'interval': 2, 'day_of_month': 30}),
    ]

    def setUp(self):
        self.registry = build_default_registry()

    def test_generate_contract(self):
        """Test count bound, strict ordering and start bound."""
        start = date(2024, 1, 1)
        for key, options in self.CASES:
            with self.subTest(pattern=key, options=options):
                dates = self.registry.get(key).generate(start, 8, options)
                self.assertEqual(len(dates), 8)
                self.assertTrue(all(day >= start for day in dates))
                self.assertEqual(dates, sorted(set(dates)))

    def test_get_next_agrees_with_generate(self):
        """Test that get_next on each generated date yields the following one."""
        for key, options in self.CASES:
            with self.subTest(pattern=key, options=options):
                pattern = self.registry.get(key)
                dates = pattern.generate(date(2024, 1, 1), 6, options)
                for current, following in zip(dates, dates[1:]):
                    self.assertEqual(pattern.get_next(current, options), following)

    def test_end_date_respected(self):
        """Test that no generated date passes end_date."""
        for key, options in self.CASES:
            with self.subTest(pattern=key, options=options):
                bounded = dict(options, end_date='2024-03-01')
                dates = self.registry.get(key).generate(date(2024, 1, 1), 100, bounded)
                self.assertTrue(all(day <= date(2024, 3, 1) for day in dates))

    def test_disabled_patterns(self):
        """Test that disabled keys are left out of the registry."""
        registry = build_default_registry(['custom'])
        self.assertNotIn('custom', registry)
        self.assertEqual(len(registry), 4)
        self.assertIsNone(registry.get('custom'))


class ModelTests(TestCase):
    """Test recurring models."""

    def test_series_end_date_validation(self):
        """Test that end_date cannot precede start_date."""
        with self.assertRaises(DjangoValidationError):
            RecurringSeries.objects.create(
                master_booking_id=1,
                pattern='daily',
                start_date=date(2024, 2, 1),
                end_date=date(2024, 1, 1),
            )

    def test_remaining_occurrences_counts_master(self):
        """Test that the master booking takes the first slot."""
        series = RecurringSeries(max_occurrences=4, total_occurrences=1)
        self.assertEqual(series.remaining_occurrences, 2)
        series.total_occurrences = 10
        self.assertEqual(series.remaining_occurrences, 0)

    def test_exclusion_rules(self):
        """Test each exclusion type."""
        by_date = SeriesExclusion(exclusion_type='date', exclusion_date=date(2024, 1, 8))
        by_day = SeriesExclusion(exclusion_type='day_of_week', day_of_week=6)
        by_range = SeriesExclusion(
            exclusion_type='range', start_date=date(2024, 2, 1), end_date=date(2024, 2, 10)
        )

        self.assertTrue(by_date.excludes(date(2024, 1, 8)))
        self.assertFalse(by_date.excludes(date(2024, 1, 9)))
        self.assertTrue(by_day.excludes(date(2024, 1, 7)))
        self.assertFalse(by_day.excludes(date(2024, 1, 8)))
        self.assertTrue(by_range.excludes(date(2024, 2, 10)))
        self.assertFalse(by_range.excludes(date(2024, 2, 11)))

    @override_settings(RECURRING_BOOKINGS={'GENERATE_AHEAD_DAYS': 10, 'RECURRING_DISCOUNT': '5.5'})
    def test_settings_from_django(self):
        """Test that configured keys override defaults."""
        settings = RecurringSettings.from_django()
        self.assertEqual(settings.generate_ahead_days, 10)
        self.assertEqual(settings.recurring_discount, Decimal('5.5'))
        self.assertEqual(settings.max_occurrences, 52)

    def test_result_unwrap(self):
        self.assertEqual(Result.success(3).unwrap(), 3)
        with self.assertRaises(NotFoundError):
            Result.failure(NotFoundError('Series not found.')).unwrap()

    def test_storage_errors_wraps_database_errors(self):
        with self.assertRaises(StorageError):
            with storage_errors('do something'):
                raise DatabaseError('connection lost')


class SeriesServiceTests(TestCase):
    """Test SeriesService."""

    def setUp(self):
        self.engine, self.clock = make_engine(recurring_discount=Decimal('10'))
        self.service = self.engine.series
        self.booking = make_booking()

    def create(self, pattern='weekly', **options):
        options.setdefault('pattern_options', {'days': [0]})
        return self.service.create_series(self.booking.id, pattern, options)

    def test_create_series_copies_master_booking(self):
        """Test that the series is anchored on the master booking."""
        result = self.create(occurrences=4)

        self.assertTrue(result.ok)
        series = result.value
        self.assertEqual(series.start_date, date(2024, 1, 1))
        self.assertEqual(series.start_time, time(10, 0))
        self.assertEqual(series.customer_id, 7)
        self.assertEqual(series.max_occurrences, 4)
        self.assertEqual(series.status, 'active')
        self.assertEqual(series.total_occurrences, 0)

    def test_create_series_defaults_and_end_after(self):
        self.assertEqual(self.create().value.max_occurrences, 52)
        self.assertEqual(self.create(end_after=5).value.max_occurrences, 5)

    def test_apply_discount(self):
        self.assertEqual(self.create(apply_discount=True).value.recurring_discount, Decimal('10'))
        self.assertEqual(self.create().value.recurring_discount, 0)

    def test_create_series_validation(self):
        """Test each creation failure code."""
        cases = [
            (self.service.create_series(self.booking.id, 'yearly', {}), 'invalid_pattern'),
            (self.create(pattern_options={'days': [9]}), 'invalid_options'),
            (self.service.create_series(999, 'weekly', {}), 'invalid_booking'),
            (self.create(end_date='2023-12-01'), 'invalid_end_date'),
            (self.create(end_date='2026-01-01'), 'invalid_end_date'),
        ]
        for result, code in cases:
            with self.subTest(code=code):
                self.assertFalse(result.ok)
                self.assertIsInstance(result.error, ValidationError)
                self.assertEqual(result.error.code, code)

    def test_disabled_pattern_is_rejected(self):
        engine, _ = make_engine(disabled_patterns=['custom'])
        result = engine.series.create_series(
            self.booking.id, 'custom', {'pattern_options': {'unit': 'day', 'interval': 2}}
        )
        self.assertEqual(result.error.code, 'invalid_pattern')

    def test_cancel_series_is_idempotent(self):
        """Test that cancelling twice succeeds and keeps the first reason."""
        series = self.create().value

        first = self.service.cancel_series(series.pk, 'Moving away')
        second = self.service.cancel_series(series.pk, 'Again')

        self.assertTrue(first.ok)
        self.assertTrue(second.ok)
        series.refresh_from_db()
        self.assertEqual(series.status, 'cancelled')
        self.assertEqual(series.metadata['cancellation_reason'], 'Moving away')
        self.assertIn('cancelled_at', series.metadata)

    def test_cancel_missing_series(self):
        result = self.service.cancel_series(999)
        self.assertIsInstance(result.error, NotFoundError)

    def test_metadata_must_be_a_mapping(self):
        """Test that non-dict metadata is rejected and cancellation still works."""
        created = self.create(metadata=['note'])
        self.assertIsInstance(created.error, ValidationError)
        self.assertEqual(created.error.code, 'invalid_options')

        series = self.create(metadata={'source': 'web'}).value
        result = self.service.update_series(series.pk, {'metadata': ['note']})
        self.assertIsInstance(result.error, ValidationError)
        self.assertEqual(result.error.code, 'invalid_options')

        self.assertTrue(self.service.cancel_series(series.pk, 'Moving away').ok)
        series.refresh_from_db()
        self.assertEqual(series.metadata['source'], 'web')
        self.assertEqual(series.metadata['cancellation_reason'], 'Moving away')

    def test_update_series(self):
        """Test updating the end date and metadata."""
        series = self.create().value

        result = self.service.update_series(series.pk, {
            'end_date': '2024-06-30',
            'metadata': {'note': 'summer'},
            'pattern': 'daily',
        })

        self.assertTrue(result.ok)
        series.refresh_from_db()
        self.assertEqual(series.end_date, date(2024, 6, 30))
        self.assertEqual(series.metadata, {'note': 'summer'})
        self.assertEqual(series.pattern, 'weekly')

    def test_cancelled_series_cannot_be_reactivated(self):
        series = self.create().value
        self.service.cancel_series(series.pk)

        result = self.service.update_series(series.pk, {'status': 'active'})
        self.assertIsInstance(result.error, StateError)

    def test_max_occurrences_cannot_drop_below_scheduled(self):
        series = self.engine.start_series(self.booking.id, 'weekly', {
            'pattern_options': {'days': [0]},
            'occurrences': 5,
        }).value

        result = self.service.update_series(series.pk, {'max_occurrences': 3})
        self.assertIsInstance(result.error, ValidationError)
        self.assertTrue(self.service.update_series(series.pk, {'max_occurrences': 6}).ok)

    def test_pause_and_resume(self):
        """Test the active/paused transitions."""
        series = self.create().value

        self.assertTrue(self.service.pause_series(series.pk).ok)
        self.assertIsInstance(self.service.pause_series(series.pk).error, StateError)
        self.assertTrue(self.service.resume_series(series.pk).ok)
        series.refresh_from_db()
        self.assertEqual(series.status, 'active')

    def test_list_series(self):
        """Test status and customer filters."""
        first = self.create().value
        self.create()
        self.service.cancel_series(first.pk)

        self.assertEqual(len(self.service.list_series()), 1)
        self.assertEqual(len(self.service.list_series(status='cancelled')), 1)
        self.assertEqual(len(self.service.list_series(status=None)), 2)
        self.assertEqual(len(self.service.list_series(status=None, customer_id=8)), 0)

    def test_exclusions(self):
        """Test adding, checking and removing exclusions."""
        series = self.create().value

        by_day = self.service.add_exclusion(series.pk, 'day_of_week', {'day': 6, 'reason': 'Closed'})
        by_range = self.service.add_exclusion(
            series.pk, 'range', {'start_date': '2024-07-01', 'end_date': '2024-07-14'}
        )

        self.assertTrue(by_day.ok)
        self.assertTrue(by_range.ok)
        self.assertTrue(self.service.is_date_excluded(series.pk, date(2024, 1, 7)))
        self.assertTrue(self.service.is_date_excluded(series.pk, date(2024, 7, 3)))
        self.assertFalse(self.service.is_date_excluded(series.pk, date(2024, 1, 8)))
        self.assertEqual(len(self.service.get_exclusions(series.pk)), 2)

        self.assertTrue(self.service.remove_exclusion(by_range.value.pk).ok)
        self.assertFalse(self.service.is_date_excluded(series.pk, date(2024, 7, 3)))
        self.assertIsInstance(self.service.remove_exclusion(by_range.value.pk).error, NotFoundError)

    def test_invalid_exclusions(self):
        series = self.create().value
        cases = [
            ('holiday', {'date': '2024-01-08'}),
            ('day_of_week', {'day': 7}),
            ('date', {}),
            ('range', {'start_date': '2024-02-10', 'end_date': '2024-02-01'}),
        ]
        for exclusion_type, data in cases:
            with self.subTest(exclusion_type=exclusion_type, data=data):
                result = self.service.add_exclusion(series.pk, exclusion_type, data)
                self.assertIsInstance(result.error, ValidationError)
        self.assertIsInstance(
            self.service.add_exclusion(999, 'date', {'date': '2024-01-08'}).error, NotFoundError
        )

    def test_preview(self):
        """Test the preview payload."""
        result = self.service.get_preview('weekly', '2024-01-01', {'days': [0]})

        self.assertTrue(result.ok)
        self.assertEqual(result.value['description'], 'Weekly on Monday')
        self.assertEqual(result.value['total_count'], 5)
        self.assertEqual(result.value['dates'][0], {'date': '2024-01-01', 'day': 'Monday'})

    def test_preview_count_is_capped(self):
        result = self.service.get_preview('daily', date(2024, 1, 1), {'preview_count': 50})
        self.assertEqual(result.value['total_count'], 12)

    def test_preview_errors(self):
        self.assertEqual(self.service.get_preview('yearly', '2024-01-01').error.code, 'invalid_pattern')
        self.assertEqual(self.service.get_preview('daily', 'soon').error.code, 'invalid_date')
        self.assertEqual(
            self.service.get_preview('monthly', '2024-01-01', {'day_of_month': 40}).error.code,
            'invalid_options'
        )

    def test_handle_master_cancellation(self):
        """Test that only an opted-in master cancellation cancels the series."""
        series = self.create().value

        self.assertFalse(self.engine.handle_master_cancellation(self.booking.id))
        self.assertTrue(self.engine.handle_master_cancellation(self.booking.id, 'Gone', cancel_future=True))
        series.refresh_from_db()
        self.assertEqual(series.status, 'cancelled')


class InstanceGenerationTests(TestCase):
    """Test InstanceGenerator.generate_instances_for_series."""

    def setUp(self):
        self.engine, self.clock = make_engine()
        self.generator = self.engine.generator
        self.booking = make_booking()

    def start(self, pattern='weekly', pattern_options=None, **options):
        options['pattern_options'] = pattern_options if pattern_options is not None else {'days': [0]}
        result = self.engine.start_series(self.booking.id, pattern, options)
        self.assertTrue(result.ok, result.error)
        return result.value

    def test_weekly_series_with_four_occurrences(self):
        """Test that a 4 occurrence series yields three instances after the master."""
        series = self.start(occurrences=4)

        self.assertEqual(
            scheduled_dates(series),
            [date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)]
        )
        self.assertEqual(series.total_occurrences, 3)
        self.assertEqual(
            list(SeriesInstance.objects.for_series(series.pk).values_list('instance_number', flat=True)),
            [2, 3, 4]
        )
        self.assertEqual(self.generator.generate_instances_for_series(series.pk), [])
        self.assertEqual(SeriesInstance.objects.for_series(series.pk).count(), 3)

    def test_master_booking_is_flagged(self):
        series = self.start(occurrences=4)
        self.booking.refresh_from_db()
        self.assertTrue(self.booking.is_recurring_master)
        self.assertEqual(self.booking.recurring_series_id, series.pk)

    def test_generation_is_idempotent(self):
        """Test repeated and later runs never duplicate a date."""
        series = self.start()
        self.assertEqual(len(scheduled_dates(series)), 8)

        self.assertEqual(self.generator.generate_instances_for_series(series.pk), [])

        self.clock.set(date(2024, 2, 1))
        created = self.generator.generate_instances_for_series(series.pk)

        dates = scheduled_dates(series)
        self.assertEqual(len(created), 5)
        self.assertEqual(len(dates), 13)
        self.assertEqual(len(set(dates)), 13)
        self.assertEqual(dates[-1], date(2024, 4, 1))
        series.refresh_from_db()
        self.assertEqual(series.total_occurrences, 13)

    def test_sunday_exclusion(self):
        """Test that excluded Sundays never get an instance."""
        engine, _ = make_engine(generate_ahead_days=30)
        series = engine.series.create_series(self.booking.id, 'daily', {}).value
        engine.series.add_exclusion(series.pk, 'day_of_week', {'day': 6})

        engine.generator.generate_instances_for_series(series.pk)

        dates = scheduled_dates(series)
        self.assertEqual(len(dates), 26)
        self.assertTrue(all(day.weekday() != 6 for day in dates))

    def test_excluded_dates_do_not_use_slots(self):
        series = self.engine.series.create_series(self.booking.id, 'weekly', {
            'pattern_options': {'days': [0]},
            'occurrences': 4,
        }).value
        self.engine.series.add_exclusion(series.pk, 'date', {'date': '2024-01-15'})

        self.generator.generate_instances_for_series(series.pk)

        self.assertEqual(
            scheduled_dates(series),
            [date(2024, 1, 8), date(2024, 1, 22), date(2024, 1, 29)]
        )

    def test_max_occurrences_boundary(self):
        """Test that max_occurrences=3 yields two instances and never more."""
        series = self.start('daily', {}, occurrences=3)

        self.assertEqual(scheduled_dates(series), [date(2024, 1, 2), date(2024, 1, 3)])
        self.clock.set(date(2024, 3, 1))
        self.assertEqual(self.generator.generate_instances_for_series(series.pk), [])
        self.assertEqual(series.remaining_occurrences, 0)

    def test_end_date_bounds_generation(self):
        series = self.start('daily', {}, end_date='2024-01-05')
        self.assertEqual(
            scheduled_dates(series),
            [date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4), date(2024, 1, 5)]
        )

    def test_monthly_day_31(self):
        """Test month end clamping through the generator."""
        self.booking.booking_date = date(2023, 1, 31)
        self.booking.save()
        engine, _ = make_engine(today=date(2023, 1, 31))

        series = engine.start_series(self.booking.id, 'monthly', {
            'pattern_options': {'day_of_month': 31},
        }).value

        self.assertEqual(scheduled_dates(series), [date(2023, 2, 28), date(2023, 3, 31)])

    def test_inactive_series_generates_nothing(self):
        series = self.engine.series.create_series(
            self.booking.id, 'daily', {}
        ).value
        self.engine.series.pause_series(series.pk)

        self.assertEqual(self.generator.generate_instances_for_series(series.pk), [])
        self.assertEqual(self.generator.generate_instances_for_series(999), [])

    def test_unknown_pattern_generates_nothing(self):
        series = RecurringSeries.objects.create(
            master_booking_id=self.booking.id,
            pattern='yearly',
            start_date=date(2024, 1, 1),
        )
        self.assertEqual(self.generator.generate_instances_for_series(series.pk), [])

    def test_create_instance_duplicate(self):
        """Test that the unique constraint surfaces as a DuplicateError."""
        series = self.start(occurrences=4)

        result = self.generator.create_instance(series, date(2024, 1, 8), time(10, 0), 9)

        self.assertIsInstance(result.error, DuplicateError)
        self.assertEqual(SeriesInstance.objects.for_series(series.pk).count(), 3)

    def test_overlapping_run_skips_existing_dates(self):
        """Test that a run reading a stale anchor inserts nothing and keeps the counter."""
        series = self.start()
        before = list(
            SeriesInstance.objects.for_series(series.pk)
            .values_list('pk', 'scheduled_date', 'instance_number')
        )

        with mock.patch.object(SeriesInstanceQuerySet, 'latest_scheduled_date', return_value=None):
            created = self.generator.generate_instances_for_series(series.pk)

        self.assertEqual(created, [])
        after = list(
            SeriesInstance.objects.for_series(series.pk)
            .values_list('pk', 'scheduled_date', 'instance_number')
        )
        self.assertEqual(after, before)
        series.refresh_from_db()
        self.assertEqual(series.total_occurrences, len(before))


class BatchGenerationTests(TestCase):
    """Test InstanceGenerator.generate_upcoming_instances."""

    def setUp(self):
        self.engine, self.clock = make_engine()
        self.generator = self.engine.generator

    def create_series(self, customer_id):
        booking = make_booking(customer_id=customer_id)
        return self.engine.series.create_series(booking.id, 'weekly', {
            'pattern_options': {'days': [0]},
            'occurrences': 4,
        }).value

    def test_batch_summary(self):
        first = self.create_series(1)
        second = self.create_series(2)

        summary = self.generator.generate_upcoming_instances()

        self.assertEqual(summary['series_processed'], 2)
        self.assertEqual(summary['instances_created'], 6)
        self.assertEqual(summary['errors'], [])
        self.assertEqual(len(scheduled_dates(first)), 3)
        self.assertEqual(len(scheduled_dates(second)), 3)

    def test_failing_series_does_not_stop_batch(self):
        """Test that one failing series is reported and the rest still run."""
        broken = self.create_series(1)
        healthy = self.create_series(2)
        original = self.generator.generate_instances_for_series

        def flaky(series_id):
            if series_id == broken.pk:
                raise StorageError('Failed to generate instances.')
            return original(series_id)

        with mock.patch.object(self.generator, 'generate_instances_for_series', side_effect=flaky):
            summary = self.generator.generate_upcoming_instances()

        self.assertEqual(summary['series_processed'], 2)
        self.assertEqual(summary['instances_created'], 3)
        self.assertEqual(
            summary['errors'],
            [{'series_id': broken.pk, 'error': 'Failed to generate instances.'}]
        )
        self.assertEqual(len(scheduled_dates(healthy)), 3)

    def test_batch_limit_rotates_series(self):
        """Test that least recently processed series go first."""
        engine, _ = make_engine(generation_batch_size=1)
        first = self.create_series(1)
        second = self.create_series(2)

        engine.generator.generate_upcoming_instances()
        self.assertEqual(len(scheduled_dates(first)), 3)
        self.assertEqual(len(scheduled_dates(second)), 0)

        engine.generator.generate_upcoming_instances()
        self.assertEqual(len(scheduled_dates(second)), 3)

    def test_cancelled_series_are_skipped(self):
        series = self.create_series(1)
        self.engine.series.cancel_series(series.pk)

        summary = self.generator.generate_upcoming_instances()

        self.assertEqual(summary['series_processed'], 0)


class InstanceLifecycleTests(TestCase):
    """Test instance transitions, queries and cleanup."""

    def setUp(self):
        self.engine, self.clock = make_engine()
        self.generator = self.engine.generator
        self.booking = make_booking()
        self.series = self.engine.start_series(self.booking.id, 'weekly', {
            'pattern_options': {'days': [0]},
            'occurrences': 4,
        }).value
        self.instances = list(SeriesInstance.objects.for_series(self.series.pk))

    def test_reschedule_keeps_first_original_date(self):
        """Test that a second reschedule keeps the original date."""
        instance = self.instances[0]

        first = self.generator.reschedule_instance(instance.pk, '2024-01-09', '11:30')
        second = self.generator.reschedule_instance(instance.pk, date(2024, 1, 10))

        self.assertTrue(first.ok)
        self.assertTrue(second.ok)
        instance.refresh_from_db()
        self.assertEqual(instance.scheduled_date, date(2024, 1, 10))
        self.assertEqual(instance.scheduled_time, time(11, 30))
        self.assertEqual(instance.original_date, date(2024, 1, 8))
        self.assertEqual(instance.original_time, time(10, 0))
        self.assertEqual(instance.reschedule_reason, 'Rescheduled from 2024-01-09')
        self.assertTrue(instance.is_rescheduled)

    def test_reschedule_onto_taken_date(self):
        result = self.generator.reschedule_instance(self.instances[0].pk, date(2024, 1, 15))
        self.assertIsInstance(result.error, DuplicateError)

    def test_reschedule_invalid_input(self):
        self.assertEqual(
            self.generator.reschedule_instance(self.instances[0].pk, 'soon').error.code,
            'invalid_date'
        )
        self.assertIsInstance(
            self.generator.reschedule_instance(999, '2024-02-01').error, NotFoundError
        )

    def test_reschedule_invalid_time(self):
        """Test that an unreadable time is rejected and nothing moves."""
        instance = self.instances[0]

        result = self.generator.reschedule_instance(instance.pk, '2024-01-09', 'soon')

        self.assertEqual(result.error.code, 'invalid_time')
        instance.refresh_from_db()
        self.assertEqual(instance.scheduled_date, date(2024, 1, 8))
        self.assertEqual(instance.scheduled_time, time(10, 0))
        self.assertIsNone(instance.original_date)

    def test_skip_instance(self):
        result = self.generator.skip_instance(self.instances[0].pk, 'Holiday')

        self.assertTrue(result.ok)
        self.assertEqual(result.value.status, 'skipped')
        self.assertEqual(result.value.skip_reason, 'Holiday')

    def test_skip_completed_instance_is_rejected(self):
        """Test that skipping a completed instance changes nothing."""
        instance = self.instances[0]
        self.generator.complete_instance(instance.pk)

        result = self.generator.skip_instance(instance.pk, 'Too late')

        self.assertIsInstance(result.error, StateError)
        instance.refresh_from_db()
        self.assertEqual(instance.status, 'completed')
        self.assertIsNone(instance.skip_reason)

    def test_link_booking(self):
        """Test linking a booking writes the reference back."""
        other = make_booking(booking_date=date(2024, 1, 8))
        instance = self.instances[0]

        result = self.generator.link_booking(instance.pk, other.id)

        self.assertTrue(result.ok)
        self.assertEqual(result.value.status, 'booked')
        self.assertEqual(result.value.booking_id, other.id)
        other.refresh_from_db()
        self.assertEqual(other.recurring_instance_id, instance.pk)
        self.assertIsInstance(self.generator.link_booking(instance.pk, other.id).error, StateError)

    def test_link_missing_booking(self):
        result = self.generator.link_booking(self.instances[0].pk, 999)

        self.assertIsInstance(result.error, NotFoundError)
        self.instances[0].refresh_from_db()
        self.assertEqual(self.instances[0].status, 'scheduled')

    def test_complete_instance_updates_counter(self):
        self.generator.complete_instance(self.instances[0].pk)

        self.series.refresh_from_db()
        self.assertEqual(self.series.completed_occurrences, 1)
        self.assertEqual(self.series.status, 'active')

    def test_series_completes_when_all_instances_resolved(self):
        """Test that the series completes once nothing is left to do."""
        self.generator.skip_instance(self.instances[0].pk)
        self.generator.complete_instance(self.instances[1].pk)
        self.generator.complete_instance(self.instances[2].pk)

        self.series.refresh_from_db()
        self.assertEqual(self.series.status, 'completed')
        self.assertEqual(self.series.completed_occurrences, 2)

    def test_get_instances_filters(self):
        self.generator.skip_instance(self.instances[1].pk)

        self.assertEqual(len(self.generator.get_instances(self.series.pk)), 3)
        self.assertEqual(len(self.generator.get_instances(self.series.pk, status='skipped')), 1)
        self.assertEqual(
            len(self.generator.get_instances(self.series.pk, from_date=date(2024, 1, 10))), 2
        )
        latest = self.generator.get_instances(self.series.pk, order='DESC', limit=1)
        self.assertEqual(latest[0].scheduled_date, date(2024, 1, 22))

    def test_series_stats(self):
        self.generator.skip_instance(self.instances[0].pk)

        stats = self.generator.get_series_stats(self.series.pk).value

        self.assertEqual(stats['scheduled'], 2)
        self.assertEqual(stats['skipped'], 1)
        self.assertEqual(stats['booked'], 0)
        self.assertEqual(stats['total'], 3)
        self.assertIsInstance(self.generator.get_series_stats(999).error, NotFoundError)

    def test_upcoming_for_customer(self):
        self.clock.set(date(2024, 1, 10))

        upcoming = self.generator.get_upcoming_for_customer(7)

        self.assertEqual([i.scheduled_date for i in upcoming], [date(2024, 1, 15), date(2024, 1, 22)])
        self.assertEqual(self.generator.get_upcoming_for_customer(8), [])

    def test_cleanup_keeps_cancelled_instances(self):
        """Test that cleanup removes completed and skipped instances only."""
        completed, skipped, cancelled = self.instances
        SeriesInstance.objects.filter(pk=completed.pk).update(status='completed')
        SeriesInstance.objects.filter(pk=skipped.pk).update(status='skipped')
        SeriesInstance.objects.filter(pk=cancelled.pk).update(status='cancelled')

        self.assertEqual(self.generator.cleanup_expired(365), 0)

        self.clock.set(date(2025, 6, 1))
        self.assertEqual(self.generator.cleanup_expired(365), 2)
        self.assertEqual(
            list(SeriesInstance.objects.for_series(self.series.pk).values_list('pk', flat=True)),
            [cancelled.pk]
        )


class BookingStoreTests(TestCase):
    """Test the Django backed booking store."""

    def test_get_and_write_back(self):
        store = DjangoBookingStore()
        booking = make_booking()

        record = store.get(booking.id)
        self.assertEqual(record.booking_date, date(2024, 1, 1))
        self.assertEqual(record.customer_id, 7)
        self.assertIsNone(store.get(999))

        self.assertTrue(store.set_instance_reference(booking.id, 42))
        self.assertFalse(store.set_instance_reference(999, 42))
        store.mark_series_master(booking.id, 5)

        booking.refresh_from_db()
        self.assertEqual(booking.recurring_instance_id, 42)
        self.assertEqual(booking.recurring_series_id, 5)
        self.assertTrue(booking.is_recurring_master)


class SignalTests(TestCase):
    """Test events emitted after commit."""

    def setUp(self):
        self.engine, _ = make_engine()
        self.booking = make_booking()

    def connect(self, signal, receiver):
        signal.connect(receiver)
        self.addCleanup(signal.disconnect, receiver)

    def test_instance_created_sent_on_commit(self):
        received = []

        def receiver(sender, instance, **kwargs):
            received.append(instance.scheduled_date)

        self.connect(instance_created, receiver)

        with self.captureOnCommitCallbacks(execute=True):
            self.engine.start_series(self.booking.id, 'weekly', {
                'pattern_options': {'days': [0]},
                'occurrences': 4,
            })

        self.assertEqual(received, [date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)])

    def test_failing_receiver_is_isolated(self):
        """Test that a failing receiver is logged and the operation succeeds."""
        series = self.engine.series.create_series(self.booking.id, 'daily', {}).value

        def receiver(sender, **kwargs):
            raise RuntimeError('mail server down')

        self.connect(series_cancelled, receiver)

        with self.assertLogs('recurring.signals', level='ERROR'):
            with self.captureOnCommitCallbacks(execute=True):
                result = self.engine.series.cancel_series(series.pk, 'Moving away')

        self.assertTrue(result.ok)
        series.refresh_from_db()
        self.assertEqual(series.status, 'cancelled')


class RecurringAPITests(APITestCase):
    """Test the recurring bookings API endpoints."""

    def setUp(self):
        self.client = APIClient()
        self.engine, self.clock = make_engine()

        config = apps.get_app_config('recurring')
        self.addCleanup(setattr, config, 'engine', config.engine)
        config.engine = self.engine

        self.booking = make_booking()

    def create_series(self, **extra):
        data = {
            'master_booking_id': self.booking.id,
            'pattern': 'weekly',
            'pattern_options': {'days': [0]},
            'occurrences': 4,
        }
        data.update(extra)
        return self.client.post('/api/recurring/series/', data, format='json')

    def first_instance(self, series_id):
        return SeriesInstance.objects.for_series(series_id).first()

    def test_create_series(self):
        """Test creating a series generates its instances."""
        response = self.create_series()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['instances_created'], 3)
        self.assertEqual(response.data['series']['pattern'], 'weekly')
        self.assertEqual(response.data['series']['remaining_occurrences'], 0)

    def test_create_series_without_generation(self):
        response = self.create_series(generate_instances=False)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['instances_created'], 0)

    def test_create_series_invalid_pattern(self):
        response = self.create_series(pattern='yearly')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_pattern')

    def test_list_and_detail(self):
        series_id = self.create_series().data['series']['id']

        response = self.client.get('/api/recurring/series/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

        response = self.client.get('/api/recurring/series/', {'status': 'cancelled'})
        self.assertEqual(len(response.data), 0)

        response = self.client.get(f'/api/recurring/series/{series_id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['max_occurrences'], 4)

        response = self.client.get('/api/recurring/series/999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_and_cancel(self):
        """Test PATCH, cancel and the reactivation conflict."""
        series_id = self.create_series().data['series']['id']

        response = self.client.patch(
            f'/api/recurring/series/{series_id}/', {'end_date': '2024-06-30'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['end_date'], '2024-06-30')

        response = self.client.post(
            f'/api/recurring/series/{series_id}/cancel/', {'reason': 'Moving away'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.patch(
            f'/api/recurring/series/{series_id}/', {'status': 'active'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'invalid_status')

    def test_exclusions(self):
        series_id = self.create_series(generate_instances=False).data['series']['id']
        url = f'/api/recurring/series/{series_id}/exclusions/'

        response = self.client.post(url, {'exclusion_type': 'day_of_week', 'day': 6}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['day_of_week'], 6)

        response = self.client.post(url, {'exclusion_type': 'date'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get(url)
        self.assertEqual(len(response.data), 1)

    def test_instances_stats_and_generate(self):
        series_id = self.create_series().data['series']['id']

        response = self.client.get(f'/api/recurring/series/{series_id}/instances/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([i['scheduled_date'] for i in response.data],
                         ['2024-01-08', '2024-01-15', '2024-01-22'])

        response = self.client.get(f'/api/recurring/series/{series_id}/stats/')
        self.assertEqual(response.data['total'], 3)
        self.assertEqual(response.data['scheduled'], 3)

        response = self.client.post(f'/api/recurring/series/{series_id}/generate/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['instances_created'], 0)

        response = self.client.get('/api/recurring/series/999/stats/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_skip_instance(self):
        """Test skipping twice returns a conflict."""
        instance = self.first_instance(self.create_series().data['series']['id'])
        url = f'/api/recurring/instances/{instance.id}/skip/'

        response = self.client.post(url, {'reason': 'Holiday'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'skipped')

        response = self.client.post(url, {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_reschedule_instance(self):
        instance = self.first_instance(self.create_series().data['series']['id'])
        url = f'/api/recurring/instances/{instance.id}/reschedule/'

        response = self.client.post(url, {'new_date': '2024-01-09', 'new_time': '12:00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['original_date'], '2024-01-08')
        self.assertTrue(response.data['is_rescheduled'])

        response = self.client.post(url, {'new_date': '2024-01-15'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'duplicate')

    def test_link_and_complete_instance(self):
        instance = self.first_instance(self.create_series().data['series']['id'])
        other = make_booking(booking_date=date(2024, 1, 8))

        response = self.client.post(
            f'/api/recurring/instances/{instance.id}/link/', {'booking_id': 999}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.post(
            f'/api/recurring/instances/{instance.id}/link/', {'booking_id': other.id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'booked')

        response = self.client.post(f'/api/recurring/instances/{instance.id}/complete/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'completed')

    def test_customer_upcoming(self):
        self.create_series()

        response = self.client.get('/api/recurring/customers/7/upcoming/', {'limit': 2})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)
        self.assertEqual(response.data[0]['pattern'], 'weekly')
        self.assertEqual(response.data[0]['staff_id'], 3)

    def test_customer_upcoming_rejects_bad_limit(self):
        """Test that an out of range or malformed limit is a client error."""
        self.create_series()

        for limit in (-5, 0, 'abc', 500):
            with self.subTest(limit=limit):
                response = self.client.get('/api/recurring/customers/7/upcoming/', {'limit': limit})
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_preview(self):
        response = self.client.post('/api/recurring/preview/', {
            'pattern': 'monthly',
            'start_date': '2023-01-31',
            'options': {'day_of_month': 31, 'preview_count': 3},
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            [entry['date'] for entry in response.data['dates']],
            ['2023-01-31', '2023-02-28', '2023-03-31']
        )
        self.assertEqual(response.data['description'], 'Monthly on day 31')


class MasterCancellationTests(TestCase):
    """Test that cancelling a master booking reaches the engine."""

    def use_engine(self, **overrides):
        engine, _ = make_engine(**overrides)
        config = apps.get_app_config('recurring')
        self.addCleanup(setattr, config, 'engine', config.engine)
        config.engine = engine
        return engine

    def start_series(self, engine):
        booking = make_booking()
        series = engine.start_series(booking.id, 'weekly', {
            'pattern_options': {'days': [0]},
            'occurrences': 4,
        }).value
        booking.refresh_from_db()
        return booking, series

    def test_cancelling_master_cancels_series(self):
        """Test the series follows its master when configured to."""
        engine = self.use_engine(cancel_future_on_master_cancel=True)
        booking, series = self.start_series(engine)

        self.assertTrue(booking.cancel('Moving away'))

        series.refresh_from_db()
        self.assertEqual(series.status, 'cancelled')
        self.assertEqual(series.metadata['cancellation_reason'], 'Moving away')

    def test_series_kept_by_default(self):
        engine = self.use_engine()
        booking, series = self.start_series(engine)

        booking.cancel('Moving away')

        series.refresh_from_db()
        self.assertEqual(series.status, 'active')

    def test_non_master_booking_is_ignored(self):
        engine = self.use_engine(cancel_future_on_master_cancel=True)
        _, series = self.start_series(engine)
        other = make_booking(booking_date=date(2024, 1, 8))

        other.cancel()

        series.refresh_from_db()
        self.assertEqual(series.status, 'active')


class ManagementCommandTests(TestCase):
    """Test management commands."""

    def test_generate_instances_command(self):
        """Test the generate_instances management command."""
        booking = make_booking(booking_date=timezone.localdate())
        engine = apps.get_app_config('recurring').engine
        engine.series.create_series(booking.id, 'daily', {'occurrences': 5})

        out = StringIO()
        call_command('generate_instances', stdout=out)

        self.assertIn('Successfully generated 4 new instance(s)', out.getvalue())
        self.assertEqual(SeriesInstance.objects.count(), 4)

    def test_cleanup_instances_command(self):
        """Test the cleanup_instances management command."""
        series = RecurringSeries.objects.create(
            master_booking_id=1,
            pattern='daily',
            start_date=date(2020, 1, 1),
        )
        SeriesInstance.objects.create(
            series=series, instance_number=2, scheduled_date=date(2020, 1, 2), status='completed'
        )
        SeriesInstance.objects.create(
            series=series, instance_number=3, scheduled_date=date(2020, 1, 3), status='cancelled'
        )
        SeriesInstance.objects.create(
            series=series,
            instance_number=4,
            scheduled_date=timezone.localdate() + timedelta(days=1),
            status='scheduled',
        )

        out = StringIO()
        call_command('cleanup_instances', '--days=30', stdout=out)

        self.assertIn('Successfully removed 1 instance(s)', out.getvalue())
        self.assertEqual(SeriesInstance.objects.count(), 2)
