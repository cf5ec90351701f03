"""
Celery configuration for the Dokusho catalog ingestion service.

Every job queue gets its own Celery queue so workers can be scaled (and
given their concurrency) per queue:

    celery -A config worker -Q chapter-data -c 2
    celery -A config worker -Q indexer -c 100
    celery -A config beat
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

from catalog.queue.definitions import QUEUES  # noqa: E402
from catalog.utils.scheduling import register_schedules  # noqa: E402

app = Celery("dokusho")

# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# One Celery queue per job queue, plus the default queue for housekeeping
app.conf.task_queues = {
    name: {"exchange": name, "routing_key": name} for name in QUEUES
}
app.conf.task_queues["default"] = {"exchange": "default", "routing_key": "default"}

# Default task routing
app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

# Route each queue task to its queue
app.conf.task_routes = {
    definition.task_name: {"queue": name} for name, definition in QUEUES.items()
}

# Celery Beat: the sweeper for pending jobs whose message was lost. The
# scheduler triggers come from settings, read once Celery is configured.
app.conf.beat_schedule = {
    "dispatch-stale-jobs-every-5-minutes": {
        "task": "catalog.tasks.dispatch_stale_jobs",
        "schedule": crontab(minute="*/5"),
    },
}


@app.on_after_configure.connect
def setup_scheduler_triggers(sender, **kwargs):
    from django.conf import settings

    sender.conf.beat_schedule.update(
        register_schedules(
            settings.SCHEDULER_FETCH_LATEST_CRON,
            settings.SCHEDULER_REFRESH_ALL_CRON,
        )
    )
