"""
Management command to queue page retries for chapters with failed pages.

Usage:
    python manage.py retry_failed_pages
    python manage.py retry_failed_pages --serie <uuid> --limit 20
"""

from django.core.management.base import BaseCommand

from catalog.services.scheduler import RETRY_BATCH_SIZE, chapters_with_retryable_pages, retry_failed_pages


class Command(BaseCommand):
    help = 'Queue page-retry jobs for chapters that still have retryable pages'

    def add_arguments(self, parser):
        parser.add_argument('--serie', type=str, default=None, help='Only chapters of this serie')
        parser.add_argument('--limit', type=int, default=RETRY_BATCH_SIZE, help='Maximum chapters to queue')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the chapters without queueing anything'
        )

    def handle(self, *args, **options):
        if options['dry_run']:
            chapters = chapters_with_retryable_pages(options['serie'])[:options['limit']]
            for chapter in chapters:
                self.stdout.write(f"  {chapter.id} ({chapter.page_fetch_status})")
            self.stdout.write(f"{len(chapters)} chapter(s) would be queued")
            return

        result = retry_failed_pages(serie_id=options['serie'], limit=options['limit'])
        self.stdout.write(self.style.SUCCESS(f"Queued {result['queued']} chapter(s) for page retry"))
