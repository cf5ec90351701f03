"""
Serie deletion lifecycle.

Deleting a serie is two-phase:

1. Soft delete stamps ``soft_deleted_at`` and schedules a HARD_DELETE job
   (id ``{serie_id}-hard_delete``) SOFT_DELETE_DELAY_DAYS later.
2. Until a worker claims that job, restore cancels it and clears the stamp.

The hard delete re-checks the serie on execution and does nothing when it
is gone or was restored, so a late message cannot resurrect or destroy a
restored serie.
"""

import logging
from datetime import timedelta
from typing import Dict, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from catalog.exceptions import DeletionStateError, NotFoundError
from catalog.models import Chapter, Serie, SerieSource
from catalog.queue import jobs
from catalog.services import storage

logger = logging.getLogger(__name__)

DELETE_QUEUE = "delete-serie"


def hard_delete_job_id(serie_id) -> str:
    return f"{serie_id}-hard_delete"


def _get_serie(serie_id) -> Serie:
    serie = Serie.objects.filter(pk=serie_id).first()
    if serie is None:
        raise NotFoundError(f"Serie {serie_id} not found")
    return serie


def request_soft_delete(serie_id) -> Dict:
    """
    Ask a worker to soft delete a serie.

    Raises:
        NotFoundError: If the serie does not exist
        DeletionStateError: If it is already soft deleted
    """
    serie = _get_serie(serie_id)
    if serie.is_soft_deleted:
        raise DeletionStateError("Serie is already marked for deletion")

    job = jobs.enqueue(DELETE_QUEUE, {"serie_id": str(serie.id), "type": "SOFT_DELETE"})
    return {"success": True, "job_id": job.job_id}


def soft_delete(serie_id) -> Dict:
    """
    Stamp a serie as deleted and schedule its hard delete.

    Raises:
        NotFoundError: If the serie does not exist
        DeletionStateError: If it is already soft deleted
    """
    delay_days = getattr(settings, "SOFT_DELETE_DELAY_DAYS", 7)

    with transaction.atomic():
        serie = Serie.objects.select_for_update().filter(pk=serie_id).first()
        if serie is None:
            raise NotFoundError(f"Serie {serie_id} not found")
        if serie.is_soft_deleted:
            raise DeletionStateError(f"Serie {serie_id} is already soft deleted")

        job = jobs.enqueue(
            DELETE_QUEUE,
            {"serie_id": str(serie.id), "type": "HARD_DELETE"},
            job_id=hard_delete_job_id(serie.id),
            delay_ms=int(timedelta(days=delay_days).total_seconds() * 1000),
        )

        serie.soft_deleted_at = timezone.now()
        serie.pending_delete_job_id = job.job_id
        serie.save(update_fields=["soft_deleted_at", "pending_delete_job_id"])

    logger.info(f"Soft deleted serie {serie.id}, hard delete {job.job_id} in {delay_days} days")
    return {"serie_id": str(serie.id), "hard_delete_job_id": job.job_id, "run_at": job.run_at.isoformat()}


def restore(serie_id) -> Dict:
    """
    Undo a soft delete and cancel the pending hard delete.

    Raises:
        NotFoundError: If the serie does not exist
        DeletionStateError: If it is not soft deleted
    """
    with transaction.atomic():
        serie = Serie.objects.select_for_update().filter(pk=serie_id).first()
        if serie is None:
            raise NotFoundError(f"Serie {serie_id} not found")
        if not serie.is_soft_deleted:
            raise DeletionStateError("Serie is not marked for deletion")

        job_id = serie.pending_delete_job_id
        if job_id and not jobs.remove_job(DELETE_QUEUE, job_id):
            logger.warning(f"Could not find job {job_id} to cancel")

        serie.soft_deleted_at = None
        serie.pending_delete_job_id = None
        serie.save(update_fields=["soft_deleted_at", "pending_delete_job_id"])

    logger.info(f"Restored serie {serie.id}")
    return {"success": True, "serie_id": str(serie.id)}


def hard_delete(serie_id) -> Dict:
    """
    Permanently remove a soft-deleted serie.

    Order: search document, stored objects, chapters (pages cascade),
    mirrors, serie. A serie that is gone or restored is left alone.
    """
    serie = Serie.objects.filter(pk=serie_id).first()
    if serie is None:
        logger.info(f"Serie {serie_id} not found, nothing to hard delete")
        return {"serie_id": str(serie_id), "status": "missing"}
    if not serie.is_soft_deleted:
        logger.info(f"Serie {serie_id} is not soft deleted, skipping hard delete (likely restored)")
        return {"serie_id": str(serie_id), "status": "restored"}

    jobs.enqueue("indexer", {"serie_id": str(serie.id), "type": "DELETE"})
    deleted_objects = storage.delete_prefix(storage.serie_prefix(serie.id))

    with transaction.atomic():
        chapters, _ = Chapter.objects.filter(serie=serie).delete()
        SerieSource.objects.filter(serie=serie).delete()
        serie.delete()

    logger.info(f"Hard deleted serie {serie_id}: {deleted_objects} objects, {chapters} chapter and page rows")
    return {"serie_id": str(serie_id), "status": "deleted", "objects": deleted_objects}


def deletion_status(serie_id) -> Dict:
    """Soft-delete state of a serie and when its hard delete is due."""
    serie = Serie.objects.filter(pk=serie_id).first()
    if serie is None:
        return {"is_deleted": False, "deleted_at": None, "pending_job_id": None, "scheduled_delete_at": None}

    scheduled: Optional[str] = None
    if serie.pending_delete_job_id:
        job = jobs.get_job(DELETE_QUEUE, serie.pending_delete_job_id)
        if job is not None and not job.is_terminal:
            scheduled = job.run_at.isoformat()

    return {
        "is_deleted": serie.is_soft_deleted,
        "deleted_at": serie.soft_deleted_at.isoformat() if serie.soft_deleted_at else None,
        "pending_job_id": serie.pending_delete_job_id,
        "scheduled_delete_at": scheduled,
    }
