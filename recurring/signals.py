"""
Events emitted by the recurring bookings engine.

Receivers (notification senders, calendar syncs...) connect to these
signals. Events are sent after the surrounding transaction commits and a
failing receiver is logged, never re-raised into the engine.
"""

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)


# kwargs: series, master_booking_id, options
series_created = Signal()
# kwargs: series, changes
series_updated = Signal()
# kwargs: series, reason
series_cancelled = Signal()

# kwargs: instance
instance_created = Signal()
# kwargs: instance, booking_id
instance_booked = Signal()
# kwargs: instance, reason
instance_skipped = Signal()
# kwargs: instance, new_date, old_date
instance_rescheduled = Signal()
# kwargs: instance
instance_completed = Signal()

# kwargs: summary
instances_generated = Signal()


def emit(signal, sender, **kwargs):
    """Send a signal once the current transaction commits."""
    transaction.on_commit(lambda: _dispatch(signal, sender, kwargs))


def _dispatch(signal, sender, kwargs):
    responses = signal.send_robust(sender=sender, **kwargs)
    for receiver, response in responses:
        if isinstance(response, Exception):
            logger.error(
                f"Receiver {getattr(receiver, '__name__', receiver)} failed: {response}",
                exc_info=(type(response), response, response.__traceback__),
            )
