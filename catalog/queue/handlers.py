"""
Queue handlers.

One function per queue, called by jobs.run_job with the parsed payload
and the claimed Job row. Handlers return a JSON-serialisable dict stored
as the job result; raising lets the runtime retry or fail the job.
"""

import logging
from typing import Dict

from catalog.exceptions import DeletionStateError
from catalog.models import Job
from catalog.queue.definitions import (
    ChapterDataPayload,
    CoverUpdatePayload,
    CoverUpdateType,
    DeleteSeriePayload,
    DeleteSerieType,
    EmailPayload,
    IndexerPayload,
    IndexerType,
    PageRetryPayload,
    QueueName,
    SerieInserterPayload,
    UpdateSchedulerPayload,
)
from catalog.services import covers, deletion, email, importer, page_pipeline, scheduler, search_index

logger = logging.getLogger(__name__)


def handle_chapter_data(payload: ChapterDataPayload, job: Job) -> Dict:
    return page_pipeline.process_chapter_data(payload.chapter_id, serie_id=payload.serie_id)


def handle_serie_inserter(payload: SerieInserterPayload, job: Job) -> Dict:
    return importer.import_serie(payload.source_id, payload.source_serie_id)


def handle_indexer(payload: IndexerPayload, job: Job) -> Dict:
    if payload.type == IndexerType.DELETE:
        return search_index.delete_serie(payload.serie_id)
    return search_index.update_serie(payload.serie_id)


def handle_cover_update(payload: CoverUpdatePayload, job: Job) -> Dict:
    if payload.type == CoverUpdateType.CUSTOM:
        return covers.process_custom_cover(payload.serie_id, payload.image_url)
    return covers.process_source_cover(payload.serie_source_id)


def handle_delete_serie(payload: DeleteSeriePayload, job: Job) -> Dict:
    if payload.type == DeleteSerieType.HARD_DELETE:
        return deletion.hard_delete(payload.serie_id)

    try:
        return deletion.soft_delete(payload.serie_id)
    except DeletionStateError as e:
        logger.info(f"Skipping soft delete of {payload.serie_id}: {e}")
        return {"serie_id": str(payload.serie_id), "status": "already_deleted"}


def handle_email(payload: EmailPayload, job: Job) -> Dict:
    return email.send_email(payload)


def handle_page_retry(payload: PageRetryPayload, job: Job) -> Dict:
    return page_pipeline.retry_failed_pages(payload.chapter_id)


def handle_update_scheduler(payload: UpdateSchedulerPayload, job: Job) -> Dict:
    return scheduler.run_scheduler_job(payload.type, source_id=payload.source_id)


HANDLERS = {
    QueueName.CHAPTER_DATA.value: handle_chapter_data,
    QueueName.SERIE_INSERTER.value: handle_serie_inserter,
    QueueName.INDEXER.value: handle_indexer,
    QueueName.COVER_UPDATE.value: handle_cover_update,
    QueueName.DELETE_SERIE.value: handle_delete_serie,
    QueueName.EMAIL.value: handle_email,
    QueueName.PAGE_RETRY.value: handle_page_retry,
    QueueName.UPDATE_SCHEDULER.value: handle_update_scheduler,
}
