"""
Management command to enqueue an update-scheduler job.

Usage:
    python manage.py trigger_update FETCH_LATEST
    python manage.py trigger_update REFRESH_ALL --source mangadex
"""

from django.core.management.base import BaseCommand

from catalog.queue.definitions import UpdateSchedulerType
from catalog.tasks import trigger_update


class Command(BaseCommand):
    help = 'Enqueue FETCH_LATEST, REFRESH_ALL or RETRY_FAILED_PAGES'

    def add_arguments(self, parser):
        parser.add_argument(
            'type',
            choices=[job_type.value for job_type in UpdateSchedulerType],
            help='Scheduler job type'
        )
        parser.add_argument('--source', type=str, default=None, help='Restrict to one source')

    def handle(self, *args, **options):
        result = trigger_update(options['type'], source_id=options['source'])
        self.stdout.write(self.style.SUCCESS(f"Queued {result['type']} as job {result['job_id']}"))
