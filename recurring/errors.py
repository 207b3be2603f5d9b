"""
Error taxonomy for the recurring bookings engine.

Validation, not-found, state and duplicate errors are expected outcomes and
travel inside a Result. StorageError is the unrecoverable path and is raised.
"""


class RecurringError(Exception):
    """Base class for all engine errors."""

    code = 'error'

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {
            'error': self.__class__.__name__,
            'code': self.code,
            'message': self.message,
        }

    def __eq__(self, other):
        if not isinstance(other, RecurringError):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.code == other.code
            and self.message == other.message
        )

    def __hash__(self):
        return hash((type(self), self.code, self.message))


class ValidationError(RecurringError):
    """Unknown pattern, invalid options or a missing master booking."""

    code = 'invalid'


class NotFoundError(RecurringError):
    """Unknown series, instance, exclusion or booking."""

    code = 'not_found'


class StateError(RecurringError):
    """Illegal status transition."""

    code = 'invalid_status'


class DuplicateError(RecurringError):
    """An instance already exists for the series on that date."""

    code = 'duplicate'


class StorageError(RecurringError):
    """Persistence failure."""

    code = 'db_error'
