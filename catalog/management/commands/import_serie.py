"""
Management command to import one serie.

Usage:
    python manage.py import_serie mangadex 32d76d19-8a05-4db0-9fc2-e0b0648fe9d0
    python manage.py import_serie mangadex <id> --now
"""

from django.core.management.base import BaseCommand, CommandError

from catalog.exceptions import CatalogError
from catalog.services.importer import import_serie, request_import


class Command(BaseCommand):
    help = 'Queue (or run) the import of a serie from a source'

    def add_arguments(self, parser):
        parser.add_argument('source', type=str, help='Adapter id or Source primary key')
        parser.add_argument('external_id', type=str, help='Serie id on the catalog')
        parser.add_argument(
            '--now',
            action='store_true',
            help='Import in this process instead of queueing a serie-inserter job'
        )

    def handle(self, *args, **options):
        source = options['source']
        external_id = options['external_id']

        try:
            if options['now']:
                result = import_serie(source, external_id)
            else:
                result = request_import(source, external_id)
        except CatalogError as e:
            raise CommandError(str(e))

        self.stdout.write(self.style.SUCCESS(f"{source}/{external_id}: {result}"))
