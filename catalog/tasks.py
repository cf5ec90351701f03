"""
Celery tasks for the catalog workers.

- run_<queue>: one task per job queue; the message carries only a job id
  and the task hands it to the job runtime
- trigger_update: enqueue an update-scheduler job (Celery Beat entry point)
- sync_sources: upsert Source rows from the adapter registry
- retry_failed_pages: enqueue a RETRY_FAILED_PAGES scheduler run
- dispatch_stale_jobs: re-send messages for overdue pending jobs
"""

import logging
from typing import Any, Dict, Optional

from celery import shared_task

from catalog.queue import jobs
from catalog.queue.definitions import QUEUES, QueueDefinition, UpdateSchedulerType

logger = logging.getLogger(__name__)


def _make_queue_task(definition: QueueDefinition):
    def run_queue_job(self, job_id: str) -> Dict[str, Any]:
        logger.debug(f"Running {definition.name} job {job_id} (task {self.request.id})")
        return jobs.run_job(job_id)

    run_queue_job.__name__ = definition.task_name.rsplit(".", 1)[-1]
    run_queue_job.__doc__ = f"Run one job of the {definition.display_name} queue."

    return shared_task(
        name=definition.task_name,
        bind=True,
        rate_limit=definition.rate_limit,
    )(run_queue_job)


QUEUE_TASKS = {name: _make_queue_task(definition) for name, definition in QUEUES.items()}


@shared_task(name="catalog.tasks.trigger_update")
def trigger_update(job_type: str, source_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Enqueue an update-scheduler job.

    Args:
        job_type: FETCH_LATEST, REFRESH_ALL or RETRY_FAILED_PAGES
        source_id: Restrict the run to one source

    Returns:
        Dict with the job id and type
    """
    job_type = UpdateSchedulerType(job_type)
    payload = {"type": job_type.value}
    if source_id:
        payload["source_id"] = source_id

    job = jobs.enqueue("update-scheduler", payload)
    logger.info(f"Triggered {job_type.value} as job {job.job_id}")
    return {"job_id": job.job_id, "type": job_type.value}


@shared_task(name="catalog.tasks.sync_sources")
def sync_sources() -> Dict[str, Any]:
    from catalog.services.source_sync import sync_sources as run_sync

    return run_sync()


@shared_task(name="catalog.tasks.retry_failed_pages")
def retry_failed_pages() -> Dict[str, Any]:
    return trigger_update(UpdateSchedulerType.RETRY_FAILED_PAGES.value)


@shared_task(name="catalog.tasks.dispatch_stale_jobs")
def dispatch_stale_jobs() -> Dict[str, Any]:
    """Periodic sweep for pending jobs whose message was lost."""
    return {"dispatched": jobs.dispatch_stale_jobs()}
