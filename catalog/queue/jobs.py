"""
Durable job runtime on top of Celery.

Job rows in the database are the source of truth. A Celery message only
carries the job id; the worker claims the row with a conditional update
(waiting/delayed -> active), so duplicate, stale or cancelled messages are
dropped without side effects.

Usage:
    from catalog.queue import jobs

    job = jobs.enqueue("indexer", {"serie_id": serie_id, "type": "UPDATE"})
    jobs.pause_queue("indexer")
    jobs.queue_counts("indexer")
"""

import logging
import uuid
from datetime import timedelta
from typing import Callable, Dict, Iterable, List, Optional

from django.db import transaction
from django.db.models import Count, F
from django.db.models.functions import TruncHour
from django.utils import timezone
from pydantic import ValidationError

from catalog.exceptions import NotFoundError
from catalog.models import Job, JobStatus, QueueState, TERMINAL_JOB_STATUSES
from catalog.queue.definitions import QUEUES, get_queue
from catalog.utils.scheduling import compute_retry_delay

logger = logging.getLogger(__name__)

# Messages may arrive slightly before run_at because of clock skew
DUE_TOLERANCE = timedelta(seconds=1)

# Jobs still waiting this long after run_at are re-dispatched by the sweeper
STALE_AFTER = timedelta(minutes=5)

PENDING_STATUSES = (JobStatus.WAITING, JobStatus.DELAYED)

Handler = Callable[[object, Job], Optional[Dict]]


def _queue_name(queue) -> str:
    return get_queue(queue).name


def dispatch(job: Job) -> None:
    """
    Send the Celery message for a job once the current transaction commits.

    The countdown is computed at send time from job.run_at.
    """
    job_id = job.job_id
    queue = job.queue
    run_at = job.run_at

    def _send():
        from catalog.tasks import QUEUE_TASKS

        countdown = max((run_at - timezone.now()).total_seconds(), 0)
        QUEUE_TASKS[queue].apply_async(
            args=[job_id],
            queue=queue,
            countdown=countdown or None,
        )

    transaction.on_commit(_send)


def build_job(
    queue,
    payload: Dict,
    job_id: Optional[str] = None,
    delay_ms: int = 0,
    name: Optional[str] = None,
    status: Optional[str] = None,
) -> Job:
    """Validate a payload and build an unsaved Job for a queue."""
    definition = get_queue(queue)
    data = definition.validate(payload)
    now = timezone.now()

    if name is None:
        name = data["type"] if isinstance(data.get("type"), str) else definition.name

    if status is None:
        status = JobStatus.DELAYED if delay_ms > 0 else JobStatus.WAITING

    return Job(
        job_id=job_id or str(uuid.uuid4()),
        queue=definition.name,
        name=name,
        payload=data,
        status=status,
        max_attempts=definition.attempts,
        backoff_type=definition.backoff_type,
        backoff_delay=definition.backoff_delay,
        run_at=now + timedelta(milliseconds=delay_ms),
        created_at=now,
    )


def enqueue(
    queue,
    payload: Dict,
    job_id: Optional[str] = None,
    delay_ms: int = 0,
    name: Optional[str] = None,
) -> Job:
    """
    Add a job to a queue.

    A pending or running job with the same job_id is returned unchanged, so
    deterministic ids de-duplicate work. A finished job with that id is
    replaced by the new one.

    Args:
        queue: Queue name
        payload: Job body, validated against the queue schema
        job_id: Optional deterministic id
        delay_ms: Delay before the job becomes runnable (milliseconds)
        name: Display name, defaults to the payload type or queue name

    Returns:
        The stored Job

    Raises:
        PayloadValidationError: If the payload does not match the schema
    """
    job = build_job(queue, payload, job_id=job_id, delay_ms=delay_ms, name=name)

    with transaction.atomic():
        existing = Job.objects.select_for_update().filter(pk=job.job_id).first()
        if existing is not None:
            if not existing.is_terminal:
                logger.debug(f"Job {job.job_id} already queued on {existing.queue}")
                return existing
            existing.delete()

        job.save(force_insert=True)
        dispatch(job)

    logger.debug(f"Enqueued {job.queue}:{job.job_id} (delay {delay_ms}ms)")
    return job


def is_paused(queue) -> bool:
    return QueueState.objects.filter(name=_queue_name(queue), paused=True).exists()


def get_handlers() -> Dict[str, Handler]:
    from catalog.queue.handlers import HANDLERS

    return HANDLERS


def run_job(job_id: str, handlers: Optional[Dict[str, Handler]] = None) -> Dict:
    """
    Execute one job.

    Claims the job, runs the queue handler and records the outcome:
    - success: completed, result stored
    - NotFoundError or invalid payload: failed without retry
    - other errors: delayed for a retry with backoff while attempts remain,
      failed otherwise

    A terminal outcome settles the job's flow barrier.

    Args:
        job_id: Job primary key
        handlers: Queue handlers (defaults to catalog.queue.handlers)

    Returns:
        Dict describing what happened, for the Celery result backend
    """
    job = Job.objects.filter(pk=job_id).first()
    if job is None:
        logger.info(f"Job {job_id} no longer exists, skipping")
        return {"job_id": job_id, "status": "missing"}

    if is_paused(job.queue):
        logger.info(f"Queue {job.queue} is paused, leaving job {job_id} pending")
        return {"job_id": job_id, "status": "paused"}

    now = timezone.now()
    if job.run_at > now + DUE_TOLERANCE:
        return {"job_id": job_id, "status": "not_due"}

    claimed = Job.objects.filter(pk=job_id, status__in=PENDING_STATUSES).update(
        status=JobStatus.ACTIVE,
        started_at=now,
        attempts_made=F("attempts_made") + 1,
    )
    if not claimed:
        logger.debug(f"Job {job_id} already claimed or not runnable ({job.status})")
        return {"job_id": job_id, "status": "skipped"}

    job.refresh_from_db()
    handler = (handlers or get_handlers())[job.queue]
    definition = get_queue(job.queue)

    try:
        payload = definition.parse(job.payload)
        result = handler(payload, job)
    except (NotFoundError, ValidationError) as e:
        logger.warning(f"Job {job.queue}:{job_id} failed permanently: {e}")
        _finish(job, JobStatus.FAILED, error=e)
        return {"job_id": job_id, "status": JobStatus.FAILED.value, "error": str(e)}
    except Exception as e:
        if job.attempts_made < job.max_attempts:
            delay = compute_retry_delay(job.attempts_made, job.backoff_type, job.backoff_delay)
            logger.warning(
                f"Job {job.queue}:{job_id} attempt {job.attempts_made}/{job.max_attempts} "
                f"failed, retrying in {delay}ms: {e}"
            )
            _schedule_retry(job, delay, e)
            return {"job_id": job_id, "status": JobStatus.DELAYED.value, "error": str(e)}

        _report_failure(job, e)
        _finish(job, JobStatus.FAILED, error=e)
        return {"job_id": job_id, "status": JobStatus.FAILED.value, "error": str(e)}

    _finish(job, JobStatus.COMPLETED, result=result)
    return {"job_id": job_id, "status": JobStatus.COMPLETED.value, "result": result}


def _finish(job: Job, status: str, result: Optional[Dict] = None, error: Exception = None):
    from catalog.queue.flows import settle_child

    job.status = status
    job.finished_at = timezone.now()
    job.result = result
    job.error_message = str(error) if error else ""
    job.save(update_fields=["status", "finished_at", "result", "error_message"])

    settle_child(job)


def _schedule_retry(job: Job, delay_ms: int, error: Exception):
    job.status = JobStatus.DELAYED
    job.run_at = timezone.now() + timedelta(milliseconds=delay_ms)
    job.error_message = str(error)
    job.save(update_fields=["status", "run_at", "error_message"])
    dispatch(job)


def _report_failure(job: Job, error: Exception):
    from catalog.monitoring import capture_job_error, log_error_with_context

    log_error_with_context(
        error,
        queue=job.queue,
        job_id=job.job_id,
        extra_context={"attempts": job.attempts_made, "payload": job.payload},
    )

    capture_job_error(
        error,
        queue=job.queue,
        job_id=job.job_id,
        attempts=job.attempts_made,
        payload=job.payload,
    )


def get_job(queue, job_id: str) -> Optional[Job]:
    return Job.objects.filter(pk=job_id, queue=_queue_name(queue)).first()


def remove_job(queue, job_id: str) -> bool:
    """
    Remove a job that is not running.

    A removed flow child counts as terminal for its flow.

    Returns:
        True if the job was removed
    """
    from catalog.queue.flows import settle_child

    job = get_job(queue, job_id)
    if job is None:
        return False

    if job.status == JobStatus.ACTIVE:
        logger.warning(f"Job {job.queue}:{job_id} is active and cannot be removed")
        return False

    with transaction.atomic():
        deleted, _ = Job.objects.filter(pk=job_id).exclude(status=JobStatus.ACTIVE).delete()
        if not deleted:
            return False
        settle_child(job)

    logger.info(f"Removed job {job.queue}:{job_id}")
    return True


def requeue_job(queue, job_id: str) -> bool:
    """
    Put a failed job back in its queue with a fresh attempt budget.

    Returns:
        True if the job was requeued
    """
    updated = Job.objects.filter(
        pk=job_id, queue=_queue_name(queue), status=JobStatus.FAILED
    ).update(
        status=JobStatus.WAITING,
        attempts_made=0,
        run_at=timezone.now(),
        started_at=None,
        finished_at=None,
        error_message="",
    )
    if not updated:
        return False

    dispatch(Job.objects.get(pk=job_id))
    logger.info(f"Requeued job {queue}:{job_id}")
    return True


def requeue_failed(queue) -> int:
    """Requeue every failed job of a queue."""
    job_ids = list(
        Job.objects.filter(queue=_queue_name(queue), status=JobStatus.FAILED).values_list(
            "job_id", flat=True
        )
    )
    return sum(1 for job_id in job_ids if requeue_job(queue, job_id))


def pause_queue(queue) -> None:
    name = _queue_name(queue)
    QueueState.objects.update_or_create(
        name=name, defaults={"paused": True, "updated_at": timezone.now()}
    )
    logger.info(f"Paused queue {name}")


def resume_queue(queue) -> int:
    """
    Resume a queue and re-dispatch its pending jobs.

    Returns:
        Number of jobs re-dispatched
    """
    name = _queue_name(queue)
    QueueState.objects.update_or_create(
        name=name, defaults={"paused": False, "updated_at": timezone.now()}
    )

    pending = list(Job.objects.filter(queue=name, status__in=PENDING_STATUSES))
    for job in pending:
        dispatch(job)

    logger.info(f"Resumed queue {name} ({len(pending)} pending jobs)")
    return len(pending)


def pause_all() -> List[str]:
    for name in QUEUES:
        pause_queue(name)
    return list(QUEUES)


def resume_all() -> List[str]:
    for name in QUEUES:
        resume_queue(name)
    return list(QUEUES)


def dispatch_stale_jobs(now=None) -> int:
    """
    Re-send messages for pending jobs whose run_at is long past.

    Covers messages lost by the broker; duplicates are harmless since
    claiming is conditional.
    """
    if now is None:
        now = timezone.now()

    paused = set(QueueState.objects.filter(paused=True).values_list("name", flat=True))
    stale = Job.objects.filter(
        status__in=PENDING_STATUSES, run_at__lte=now - STALE_AFTER
    ).exclude(queue__in=paused)

    count = 0
    for job in stale:
        dispatch(job)
        count += 1

    if count:
        logger.info(f"Re-dispatched {count} stale jobs")
    return count


def queue_counts(queue) -> Dict:
    """Aggregate job counts for one queue."""
    name = _queue_name(queue)
    rows = (
        Job.objects.filter(queue=name)
        .values("status")
        .annotate(total=Count("job_id"))
    )
    by_status = {row["status"]: row["total"] for row in rows}
    paused = is_paused(name)

    waiting = by_status.get(JobStatus.WAITING, 0)
    return {
        "queue": name,
        "display_name": get_queue(name).display_name,
        "is_paused": paused,
        "waiting": 0 if paused else waiting,
        "paused": waiting if paused else 0,
        "active": by_status.get(JobStatus.ACTIVE, 0),
        "completed": by_status.get(JobStatus.COMPLETED, 0),
        "failed": by_status.get(JobStatus.FAILED, 0),
        "delayed": by_status.get(JobStatus.DELAYED, 0),
        "waiting_children": by_status.get(JobStatus.WAITING_CHILDREN, 0),
    }


def all_queue_counts() -> List[Dict]:
    return [queue_counts(name) for name in QUEUES]


def list_jobs(
    queue,
    states: Optional[Iterable[str]] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Job]:
    """List jobs of a queue, newest first, optionally filtered by state."""
    qs = Job.objects.filter(queue=_queue_name(queue))
    if states:
        qs = qs.filter(status__in=list(states))
    return list(qs.order_by("-created_at")[offset:offset + limit])


def queue_metrics(queue, hours: int = 24, now=None) -> List[Dict]:
    """
    Hourly completed/failed counts for the last ``hours`` hours.

    Returns:
        One dict per hour, oldest first: {"hour", "completed", "failed"}
    """
    if now is None:
        now = timezone.now()

    end = now.replace(minute=0, second=0, microsecond=0)
    start = end - timedelta(hours=hours - 1)

    rows = (
        Job.objects.filter(
            queue=_queue_name(queue),
            status__in=TERMINAL_JOB_STATUSES,
            finished_at__gte=start,
        )
        .annotate(hour=TruncHour("finished_at"))
        .values("hour", "status")
        .annotate(total=Count("job_id"))
    )

    buckets = {
        start + timedelta(hours=i): {"completed": 0, "failed": 0} for i in range(hours)
    }
    for row in rows:
        bucket = buckets.get(row["hour"])
        if bucket is None:
            continue
        bucket[row["status"]] += row["total"]

    return [
        {"hour": hour.isoformat(), "completed": counts["completed"], "failed": counts["failed"]}
        for hour, counts in sorted(buckets.items())
    ]
