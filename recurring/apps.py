from django.apps import AppConfig


class RecurringConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'recurring'
    verbose_name = 'Recurring Bookings'

    engine = None

    def ready(self):
        """Build the engine and connect booking receivers."""
        from .engine import RecurringEngine
        from . import receivers  # noqa

        self.engine = RecurringEngine()
