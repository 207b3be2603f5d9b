"""
Recurrence patterns and the registry that holds them.

Every pattern is a stateless strategy implementing the RecurrencePattern
capability. A sequence is defined as the start date (when it satisfies the
rule) followed by repeated get_next() calls, so generate() and get_next()
always agree and a run can resume from any date already in the sequence.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from dateutil.relativedelta import relativedelta

from .types import WEEKDAY_NAMES


Options = Mapping[str, Any]


class RecurrencePattern(Protocol):
    """Capability every recurrence strategy provides."""

    def generate(self, start: date, count: int, options: Options) -> List[date]:
        ...

    def get_next(self, after: date, options: Options) -> Optional[date]:
        ...

    def validate_options(self, options: Options) -> bool:
        ...

    def get_description(self, options: Options) -> str:
        ...


def parse_date(value) -> Optional[date]:
    """Accept a date or an ISO formatted string."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _end_date(options: Options) -> Optional[date]:
    return parse_date(options.get('end_date'))


def _positive_int(value, default: int = 1) -> Optional[int]:
    """Return value as a positive int, the default when missing, None when invalid."""
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number >= 1 else None


def _valid_end_date(options: Options) -> bool:
    try:
        parse_date(options.get('end_date'))
    except (TypeError, ValueError):
        return False
    return True


def _weekday_list(value) -> Optional[List[int]]:
    """Normalize a list of weekday numbers (0=Monday, 6=Sunday)."""
    if value is None or value == '':
        return []
    if not isinstance(value, (list, tuple, set)):
        return None
    days = []
    for item in value:
        if isinstance(item, bool):
            return None
        try:
            day = int(item)
        except (TypeError, ValueError):
            return None
        if not 0 <= day <= 6:
            return None
        days.append(day)
    return sorted(set(days))


def _within(candidate: Optional[date], options: Options) -> Optional[date]:
    end = _end_date(options)
    if candidate is None or (end and candidate > end):
        return None
    return candidate


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else f"{count} {plural}"


def _run_sequence(pattern, start: date, count: int, options: Options) -> List[date]:
    """Shared generate() body: start when it matches, then get_next() until done."""
    dates: List[date] = []
    if count <= 0:
        return dates

    end = _end_date(options)
    if end and start > end:
        return dates

    current = start if pattern.matches(start, options) else pattern.get_next(start, options)
    while current is not None and len(dates) < count:
        dates.append(current)
        current = pattern.get_next(current, options)
    return dates


class DailyPattern:
    """Every N days, optionally skipping Saturdays and Sundays."""

    key = 'daily'

    def matches(self, day: date, options: Options) -> bool:
        return not (options.get('skip_weekends') and day.weekday() >= 5)

    def generate(self, start: date, count: int, options: Options) -> List[date]:
        return _run_sequence(self, start, count, options)

    def get_next(self, after: date, options: Options) -> Optional[date]:
        interval = _positive_int(options.get('interval')) or 1
        candidate = after + timedelta(days=interval)
        while not self.matches(candidate, options):
            candidate += timedelta(days=1)
        return _within(candidate, options)

    def validate_options(self, options: Options) -> bool:
        if not isinstance(options, Mapping):
            return False
        return (
            _positive_int(options.get('interval')) is not None
            and _valid_end_date(options)
        )

    def get_description(self, options: Options) -> str:
        interval = _positive_int(options.get('interval')) or 1
        text = 'Daily' if interval == 1 else f"Every {interval} days"
        if options.get('skip_weekends'):
            text += ' (weekdays only)'
        return text


class WeeklyPattern:
    """
    Every N weeks on a set of weekdays.

    Weeks start on Monday. With no weekdays selected the pattern repeats on
    the weekday of the previous occurrence.
    """

    key = 'weekly'

    def _interval(self, options: Options) -> int:
        return _positive_int(options.get('interval')) or 1

    def matches(self, day: date, options: Options) -> bool:
        days = _weekday_list(options.get('days')) or []
        return not days or day.weekday() in days

    def generate(self, start: date, count: int, options: Options) -> List[date]:
        return _run_sequence(self, start, count, options)

    def get_next(self, after: date, options: Options) -> Optional[date]:
        days = _weekday_list(options.get('days')) or []
        interval = self._interval(options)

        if not days:
            return _within(after + timedelta(weeks=interval), options)

        later_this_week = [day for day in days if day > after.weekday()]
        week_start = after - timedelta(days=after.weekday())
        if later_this_week:
            candidate = week_start + timedelta(days=later_this_week[0])
        else:
            candidate = week_start + timedelta(weeks=interval, days=days[0])
        return _within(candidate, options)

    def validate_options(self, options: Options) -> bool:
        if not isinstance(options, Mapping):
            return False
        return (
            _positive_int(options.get('interval')) is not None
            and _weekday_list(options.get('days')) is not None
            and _valid_end_date(options)
        )

    def get_description(self, options: Options) -> str:
        interval = self._interval(options)
        if interval == 1:
            text = 'Weekly'
        elif interval == 2:
            text = 'Every 2 weeks'
        else:
            text = f"Every {interval} weeks"

        days = _weekday_list(options.get('days')) or []
        if days:
            text += ' on ' + ', '.join(WEEKDAY_NAMES[day] for day in days)
        return text


class BiweeklyPattern:
    """Every other week on a set of weekdays."""

    key = 'biweekly'

    def __init__(self, weekly: WeeklyPattern = None):
        self._weekly = weekly or WeeklyPattern()

    def _options(self, options: Options) -> Dict[str, Any]:
        merged = dict(options)
        merged['interval'] = 2
        return merged

    def matches(self, day: date, options: Options) -> bool:
        return self._weekly.matches(day, options)

    def generate(self, start: date, count: int, options: Options) -> List[date]:
        return self._weekly.generate(start, count, self._options(options))

    def get_next(self, after: date, options: Options) -> Optional[date]:
        return self._weekly.get_next(after, self._options(options))

    def validate_options(self, options: Options) -> bool:
        if not isinstance(options, Mapping):
            return False
        return self._weekly.validate_options(self._options(options))

    def get_description(self, options: Options) -> str:
        return self._weekly.get_description(self._options(options))


class MonthlyPattern:
    """
    Every N months on a day of the month or on the nth weekday.

    A day of month past the end of a shorter month is clamped to that
    month's last day, so day 31 lands on Feb 28 (Feb 29 in leap years).
    week_number -1 means the last such weekday of the month.
    """

    key = 'monthly'

    ORDINALS = {1: 'first', 2: 'second', 3: 'third', 4: 'fourth', -1: 'last'}

    def _interval(self, options: Options) -> int:
        return _positive_int(options.get('interval')) or 1

    def _type(self, options: Options) -> str:
        return options.get('type') or 'day_of_month'

    def _occurrence_in_month(self, year: int, month: int, options: Options) -> date:
        last_day = calendar.monthrange(year, month)[1]

        if self._type(options) == 'day_of_week':
            weekday = int(options['day_of_week'])
            week_number = int(options['week_number'])
            if week_number == -1:
                last = date(year, month, last_day)
                return last - timedelta(days=(last.weekday() - weekday) % 7)
            first = date(year, month, 1)
            offset = (weekday - first.weekday()) % 7
            return first + timedelta(days=offset, weeks=week_number - 1)

        day_of_month = int(options['day_of_month'])
        return date(year, month, min(day_of_month, last_day))

    def matches(self, day: date, options: Options) -> bool:
        return self._occurrence_in_month(day.year, day.month, options) == day

    def generate(self, start: date, count: int, options: Options) -> List[date]:
        return _run_sequence(self, start, count, options)

    def get_next(self, after: date, options: Options) -> Optional[date]:
        candidate = self._occurrence_in_month(after.year, after.month, options)
        if candidate <= after:
            month = date(after.year, after.month, 1) + relativedelta(
                months=self._interval(options)
            )
            candidate = self._occurrence_in_month(month.year, month.month, options)
        return _within(candidate, options)

    def validate_options(self, options: Options) -> bool:
        if not isinstance(options, Mapping):
            return False
        if _positive_int(options.get('interval')) is None or not _valid_end_date(options):
            return False

        try:
            if self._type(options) == 'day_of_month':
                return 1 <= int(options['day_of_month']) <= 31
            if self._type(options) == 'day_of_week':
                return (
                    int(options['week_number']) in self.ORDINALS
                    and 0 <= int(options['day_of_week']) <= 6
                )
        except (KeyError, TypeError, ValueError):
            return False
        return False

    def get_description(self, options: Options) -> str:
        interval = self._interval(options)
        text = 'Monthly' if interval == 1 else f"Every {interval} months"

        if self._type(options) == 'day_of_week':
            ordinal = self.ORDINALS.get(int(options.get('week_number', 1)), '')
            weekday = WEEKDAY_NAMES[int(options.get('day_of_week', 0))]
            return f"{text} on the {ordinal} {weekday}"

        return f"{text} on day {options.get('day_of_month')}"


class CustomPattern:
    """
    An explicit interval and unit combination, e.g. every 3 weeks.

    Delegates to the daily, weekly or monthly strategy with the given
    interval; the delegated unit's options (days, day_of_month...) apply.
    """

    key = 'custom'

    UNITS = ('day', 'week', 'month')

    def __init__(self, daily=None, weekly=None, monthly=None):
        self._delegates = {
            'day': daily or DailyPattern(),
            'week': weekly or WeeklyPattern(),
            'month': monthly or MonthlyPattern(),
        }

    def _delegate(self, options: Options):
        return self._delegates[options.get('unit') or 'day']

    def matches(self, day: date, options: Options) -> bool:
        return self._delegate(options).matches(day, options)

    def generate(self, start: date, count: int, options: Options) -> List[date]:
        return self._delegate(options).generate(start, count, options)

    def get_next(self, after: date, options: Options) -> Optional[date]:
        return self._delegate(options).get_next(after, options)

    def validate_options(self, options: Options) -> bool:
        if not isinstance(options, Mapping):
            return False
        if (options.get('unit') or 'day') not in self.UNITS:
            return False
        if _positive_int(options.get('interval'), default=None) is None:
            return False
        return self._delegate(options).validate_options(options)

    def get_description(self, options: Options) -> str:
        interval = _positive_int(options.get('interval')) or 1
        unit = options.get('unit') or 'day'
        text = 'Every ' + _plural(interval, unit, unit + 's')

        if unit == 'week':
            days = _weekday_list(options.get('days')) or []
            if days:
                text += ' on ' + ', '.join(WEEKDAY_NAMES[day] for day in days)
        return text


class PatternRegistry:
    """
    Key to pattern map handed to the services by reference.

    Built once at startup; extended by registering another implementation.
    """

    def __init__(self, patterns: Dict[str, RecurrencePattern] = None):
        self._patterns: Dict[str, RecurrencePattern] = dict(patterns or {})

    def register(self, key: str, pattern: RecurrencePattern) -> None:
        self._patterns[key] = pattern

    def get(self, key: str) -> Optional[RecurrencePattern]:
        return self._patterns.get(key)

    def keys(self) -> List[str]:
        return list(self._patterns)

    def __contains__(self, key: str) -> bool:
        return key in self._patterns

    def __len__(self) -> int:
        return len(self._patterns)


def build_default_registry(disabled: Iterable[str] = ()) -> PatternRegistry:
    """Registry with the built-in patterns, minus the disabled keys."""
    weekly = WeeklyPattern()
    daily = DailyPattern()
    monthly = MonthlyPattern()
    defaults = {
        'daily': daily,
        'weekly': weekly,
        'biweekly': BiweeklyPattern(weekly),
        'monthly': monthly,
        'custom': CustomPattern(daily, weekly, monthly),
    }
    disabled = set(disabled)
    return PatternRegistry({
        key: pattern for key, pattern in defaults.items() if key not in disabled
    })
