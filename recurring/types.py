"""
Data types and constants for the recurring bookings engine.

This module contains:
- Status and exclusion constants shared by models and services
- The Result type returned by every public service operation
- DTOs (Data Transfer Objects) for service layer operations
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar
from datetime import date

from .errors import RecurringError


SERIES_ACTIVE = 'active'
SERIES_PAUSED = 'paused'
SERIES_CANCELLED = 'cancelled'
SERIES_COMPLETED = 'completed'

SERIES_STATUSES = [SERIES_ACTIVE, SERIES_PAUSED, SERIES_CANCELLED, SERIES_COMPLETED]

INSTANCE_SCHEDULED = 'scheduled'
INSTANCE_BOOKED = 'booked'
INSTANCE_COMPLETED = 'completed'
INSTANCE_SKIPPED = 'skipped'
INSTANCE_CANCELLED = 'cancelled'

INSTANCE_STATUSES = [
    INSTANCE_SCHEDULED,
    INSTANCE_BOOKED,
    INSTANCE_COMPLETED,
    INSTANCE_SKIPPED,
    INSTANCE_CANCELLED,
]

# Statuses reclaimed by cleanup_expired. Cancelled instances are not listed.
RECLAIMABLE_INSTANCE_STATUSES = [INSTANCE_COMPLETED, INSTANCE_SKIPPED]

EXCLUSION_DATE = 'date'
EXCLUSION_DAY_OF_WEEK = 'day_of_week'
EXCLUSION_RANGE = 'range'

EXCLUSION_TYPES = [EXCLUSION_DATE, EXCLUSION_DAY_OF_WEEK, EXCLUSION_RANGE]

WEEKDAY_NAMES = [
    'Monday',
    'Tuesday',
    'Wednesday',
    'Thursday',
    'Friday',
    'Saturday',
    'Sunday',
]

DEFAULT_PREVIEW_COUNT = 5
MAX_PREVIEW_COUNT = 12

SERIES_UPDATABLE_FIELDS = [
    'end_date',
    'max_occurrences',
    'status',
    'pattern_options',
    'metadata',
]

T = TypeVar('T')


@dataclass
class Result(Generic[T]):
    """Outcome of a service operation: a value or a structured error."""
    value: Optional[T] = None
    error: Optional[RecurringError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T = None) -> 'Result[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, error: RecurringError) -> 'Result[T]':
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value


@dataclass
class BookingRecord:
    """The master booking fields the engine reads from the booking store."""
    id: int
    booking_date: date
    booking_time: Any
    booking_time_end: Any = None
    customer_id: Optional[int] = None
    staff_id: Optional[int] = None
    service_id: Optional[int] = None


@dataclass
class SeriesUpdateData:
    """DTO for series update operations. None leaves a field untouched."""
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = None
    status: Optional[str] = None
    pattern_options: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SeriesUpdateData':
        """Build from a partial mapping, ignoring fields that are not updatable."""
        return cls(**{
            name: data[name]
            for name in SERIES_UPDATABLE_FIELDS
            if name in data
        })

    def changes(self) -> Dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in SERIES_UPDATABLE_FIELDS
            if getattr(self, name) is not None
        }


@dataclass
class GenerationSummary:
    """Outcome of one batch generation run."""
    series_processed: int = 0
    instances_created: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'series_processed': self.series_processed,
            'instances_created': self.instances_created,
            'errors': list(self.errors),
        }
