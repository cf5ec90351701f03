"""
Management command to upsert Source rows from the adapter registry.

Usage:
    python manage.py sync_sources
    python manage.py sync_sources --disable japscan --disable weebcentral
"""

from django.conf import settings
from django.core.management.base import BaseCommand

from catalog.services.source_sync import sync_sources
from catalog.sources import invalidate_registry


class Command(BaseCommand):
    help = 'Create or update one Source row per registered adapter'

    def add_arguments(self, parser):
        parser.add_argument(
            '--disable',
            action='append',
            default=[],
            help='Adapter id to disable (repeatable, added to FORCE_DISABLE_SOURCE)'
        )
        parser.add_argument(
            '--rebuild',
            action='store_true',
            help='Rebuild the adapter registry first (re-discovers Suwayomi extensions)'
        )

    def handle(self, *args, **options):
        if options['rebuild']:
            invalidate_registry()

        disabled = list(getattr(settings, 'FORCE_DISABLE_SOURCE', [])) + options['disable']
        summary = sync_sources(disabled_ids=disabled)

        for source_id in summary['created']:
            self.stdout.write(f"  Created: {source_id}")
        for source_id in summary['updated']:
            self.stdout.write(f"  Updated: {source_id}")
        for source_id in summary['disabled']:
            self.stdout.write(self.style.WARNING(f"  Disabled: {source_id}"))

        self.stdout.write(self.style.SUCCESS(
            f"Synced {len(summary['created']) + len(summary['updated'])} sources "
            f"({len(summary['created'])} new)"
        ))
