"""
Management command to delete old completed and skipped instances.

Cancelled instances are kept as an audit trail.
"""

from django.core.management.base import BaseCommand
from recurring.engine import get_engine


class Command(BaseCommand):
    help = 'Delete completed and skipped instances older than the retention window'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Retention window in days (default: DATA_RETENTION_DAYS)'
        )

    def handle(self, *args, **options):
        generator = get_engine().generator
        days = options['days']
        if days is None:
            days = generator.settings.data_retention_days

        self.stdout.write(f'Removing instances older than {days} days...')

        deleted = generator.cleanup_expired(days)

        self.stdout.write(
            self.style.SUCCESS(f'Successfully removed {deleted} instance(s)')
        )
