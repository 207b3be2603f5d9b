"""
Management command to materialize upcoming instances of recurring series.

This command should be run periodically (e.g., daily via cron) so every
active series always has its instances scheduled up to the lookahead
horizon.
"""

from django.core.management.base import BaseCommand
from recurring.engine import get_engine


class Command(BaseCommand):
    help = 'Generate upcoming instances for active recurring series'

    def handle(self, *args, **options):
        generator = get_engine().generator

        self.stdout.write(
            f'Generating instances up to {generator.settings.generate_ahead_days} days ahead...'
        )

        summary = generator.generate_upcoming_instances()

        for error in summary['errors']:
            self.stdout.write(
                self.style.WARNING(f"Series {error['series_id']} failed: {error['error']}")
            )

        self.stdout.write(
            self.style.SUCCESS(
                f"Successfully generated {summary['instances_created']} new instance(s) "
                f"across {summary['series_processed']} series"
            )
        )
