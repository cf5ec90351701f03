"""
Chapter page pipeline.

chapter-data jobs resolve the page list of a chapter through its adapter,
mirror every image into storage and record one ChapterPage row per page.
page-retry jobs re-attempt only the pages that failed for a transient
reason. Both end by classifying the chapter:

    retryable = 0 and permanent = 0  -> Success
    success = 0 and permanent = 0    -> Failed
    success = 0 and retryable = 0    -> PermanentlyFailed
    permanent > 0                    -> Incomplete
    otherwise                        -> Partial

The ORM is only used from synchronous code; downloads and uploads run in
one event loop per job with at most PAGE_CONCURRENCY pages in flight.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx
from django.conf import settings
from django.db import transaction
from django.db.models import Q

from catalog.exceptions import NotFoundError, PermanentImageError, SourceFetchError, SourceNotFoundError
from catalog.models import Chapter, ChapterPage, PageFetchStatus, SerieSource
from catalog.services import images, storage
from catalog.sources import SourceRegistry, get_registry
from catalog.utils.loops import run_async

logger = logging.getLogger(__name__)

PAGE_CONCURRENCY = 2


def classify_page_status(success: int, retryable: int, permanent: int) -> str:
    """Chapter status from its page outcome counts (first matching rule wins)."""
    if retryable == 0 and permanent == 0:
        return PageFetchStatus.SUCCESS
    if success == 0 and permanent == 0:
        return PageFetchStatus.FAILED
    if success == 0 and retryable == 0:
        return PageFetchStatus.PERMANENTLY_FAILED
    if permanent > 0:
        return PageFetchStatus.INCOMPLETE
    return PageFetchStatus.PARTIAL


@dataclass
class PageOutcome:
    """Result of mirroring one page image."""

    index: int
    source_url: str
    url: Optional[str] = None
    permanent: bool = False
    quality: Optional[str] = None
    metadata: Dict = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return bool(self.url)

    @property
    def retryable(self) -> bool:
        return not self.success and not self.permanent


@dataclass
class PageTask:
    index: int
    source_url: str
    base_path: str
    page_id: Optional[str] = None


def count_outcomes(outcomes: List[PageOutcome]) -> Dict[str, int]:
    return {
        "success": sum(1 for outcome in outcomes if outcome.success),
        "retryable": sum(1 for outcome in outcomes if outcome.retryable),
        "permanent": sum(1 for outcome in outcomes if outcome.permanent),
    }


def page_base_path(chapter: Chapter, index: int) -> str:
    return storage.page_stem(chapter.serie_id, chapter.id, index)


async def _upload_one(
    task: PageTask,
    semaphore: asyncio.Semaphore,
    client: httpx.AsyncClient,
    headers: Dict[str, str],
) -> PageOutcome:
    async with semaphore:
        try:
            result = await images.upload_image(task.source_url, task.base_path, client=client, headers=headers)
        except PermanentImageError as e:
            logger.warning(f"Page {task.index} permanently failed: {e} ({task.source_url})")
            return PageOutcome(task.index, task.source_url, permanent=True, error=str(e))
        except Exception as e:
            logger.warning(f"Page {task.index} failed: {e} ({task.source_url})")
            return PageOutcome(task.index, task.source_url, error=str(e))

    meta = result.metadata
    logger.debug(f"Page {task.index}: {meta['width']}x{meta['height']} -> {result.format} ({result.quality})")
    return PageOutcome(
        task.index,
        task.source_url,
        url=result.url,
        quality=result.quality,
        metadata=meta,
    )


async def upload_pages(tasks: List[PageTask], headers: Optional[Dict[str, str]] = None) -> List[PageOutcome]:
    """Mirror page images with bounded concurrency; outcomes keep task order."""
    semaphore = asyncio.Semaphore(PAGE_CONCURRENCY)
    timeout = getattr(settings, "CATALOG_REQUEST_TIMEOUT", 30)

    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True) as client:
        return await asyncio.gather(
            *(_upload_one(task, semaphore, client, headers or {}) for task in tasks)
        )


async def _fetch_pages(adapter, serie_external_id: str, chapter_external_id: str):
    try:
        return await adapter.fetch_chapter_data(serie_external_id, chapter_external_id)
    finally:
        await adapter.close()


def _image_headers(adapter) -> Dict[str, str]:
    info = adapter.info()
    headers = dict(info.headers)
    if info.url:
        headers.setdefault("Referer", info.url.rstrip("/") + "/")
    return headers


def process_chapter_data(
    chapter_id,
    serie_id=None,
    registry: Optional[SourceRegistry] = None,
) -> Dict:
    """
    Fetch, mirror and record every page of a chapter.

    Args:
        chapter_id: Chapter primary key
        serie_id: Owning serie, checked when given
        registry: Adapters (defaults to the process registry)

    Returns:
        Dict with the final status and page counts

    Raises:
        NotFoundError: If the chapter, its mirror or its adapter is missing
        SourceFetchError: If the page list cannot be fetched or every page
            failed for a retryable reason
    """
    chapters = Chapter.objects.select_related("source")
    if serie_id is not None:
        chapters = chapters.filter(serie_id=serie_id)
    chapter = chapters.filter(pk=chapter_id).first()
    if chapter is None:
        raise NotFoundError(f"Chapter {chapter_id} of serie {serie_id} not found")

    chapter.set_page_fetch_status(PageFetchStatus.IN_PROGRESS)

    mirror = SerieSource.objects.filter(serie_id=chapter.serie_id, source_id=chapter.source_id).first()
    if mirror is None:
        chapter.set_page_fetch_status(PageFetchStatus.FAILED)
        raise NotFoundError(f"No mirror of serie {chapter.serie_id} for source {chapter.source.external_id}")

    registry = registry or get_registry()
    try:
        adapter = registry.get(chapter.source.external_id)
    except SourceNotFoundError:
        logger.error(f"No adapter for source {chapter.source.external_id} of chapter {chapter.id}")
        chapter.set_page_fetch_status(PageFetchStatus.FAILED)
        raise

    try:
        pages = run_async(_fetch_pages(adapter, mirror.external_id, chapter.external_id))
    except Exception as e:
        logger.error(f"Failed to fetch chapter data for chapter {chapter.id}: {e}")
        chapter.set_page_fetch_status(PageFetchStatus.FAILED)
        raise

    page_images = [page for page in pages if page.type == "image" and page.url]
    logger.info(f"Chapter {chapter.id}: {len(page_images)} pages to upload")

    if not page_images:
        logger.info(f"Chapter {chapter.id} has no images, disabling it")
        chapter.enabled = False
        chapter.page_fetch_status = PageFetchStatus.SUCCESS
        chapter.save(update_fields=["enabled", "page_fetch_status"])
        return {"chapter_id": str(chapter.id), "status": PageFetchStatus.SUCCESS.value, "pages": 0}

    # Start from a clean slate so re-runs are idempotent
    ChapterPage.objects.filter(chapter=chapter).delete()
    deleted = storage.delete_prefix(storage.chapter_prefix(chapter.serie_id, chapter.id))
    if deleted:
        logger.info(f"Chapter {chapter.id}: removed {deleted} previously stored pages")

    tasks = [PageTask(page.index, page.url, page_base_path(chapter, page.index)) for page in page_images]
    outcomes = run_async(upload_pages(tasks, headers=_image_headers(adapter)))

    ChapterPage.objects.bulk_create(
        [
            ChapterPage(
                chapter=chapter,
                index=outcome.index,
                type="image",
                url=outcome.url,
                source_url=outcome.source_url,
                permanently_failed=outcome.permanent,
                image_quality=outcome.quality,
                metadata=outcome.metadata,
            )
            for outcome in outcomes
        ]
    )

    counts = count_outcomes(outcomes)
    status = classify_page_status(counts["success"], counts["retryable"], counts["permanent"])
    chapter.set_page_fetch_status(status)

    logger.info(
        f"Chapter {chapter.id}: {status} ({counts['success']} uploaded, "
        f"{counts['retryable']} retryable, {counts['permanent']} permanent)"
    )

    if status == PageFetchStatus.FAILED:
        raise SourceFetchError(f"All {len(outcomes)} pages of chapter {chapter.id} failed to upload")

    return {"chapter_id": str(chapter.id), "status": str(status), "pages": len(outcomes), **counts}


def retryable_pages(chapter_id):
    """Pages without a stored image that still have a catalog URL."""
    return (
        ChapterPage.objects.filter(chapter_id=chapter_id, permanently_failed=False)
        .filter(Q(url__isnull=True) | Q(url=""))
        .exclude(Q(source_url__isnull=True) | Q(source_url=""))
        .order_by("index")
    )


def persisted_counts(chapter_id) -> Dict[str, int]:
    pages = ChapterPage.objects.filter(chapter_id=chapter_id)
    missing = Q(url__isnull=True) | Q(url="")
    return {
        "success": pages.exclude(missing).count(),
        "retryable": pages.filter(missing, permanently_failed=False).count(),
        "permanent": pages.filter(missing, permanently_failed=True).count(),
    }


def retry_failed_pages(chapter_id, registry: Optional[SourceRegistry] = None) -> Dict:
    """
    Re-attempt the retryable pages of one chapter and reclassify it.

    The status is recomputed from the persisted rows, so pages fixed by an
    earlier run count as successes. Downloads send the adapter's image
    headers, as the first attempt does.

    Raises:
        NotFoundError: If the chapter does not exist
    """
    chapter = Chapter.objects.select_related("source").filter(pk=chapter_id).first()
    if chapter is None:
        raise NotFoundError(f"Chapter {chapter_id} not found")

    pages = list(retryable_pages(chapter.id))
    if not pages:
        logger.info(f"Chapter {chapter.id}: no failed pages to retry")
        return {"chapter_id": str(chapter.id), "status": chapter.page_fetch_status, "retried": 0, "fixed": 0}

    logger.info(f"Chapter {chapter.id}: retrying {len(pages)} pages")
    tasks = [
        PageTask(page.index, page.source_url, page_base_path(chapter, page.index), page_id=page.id)
        for page in pages
    ]
    headers = None
    registry = registry or get_registry()
    try:
        headers = _image_headers(registry.get(chapter.source.external_id))
    except SourceNotFoundError:
        logger.warning(f"Chapter {chapter.id}: no adapter for {chapter.source.external_id}, retrying without its headers")
    outcomes = run_async(upload_pages(tasks, headers=headers))

    fixed = 0
    with transaction.atomic():
        for task, outcome in zip(tasks, outcomes):
            if outcome.success:
                fixed += 1
                ChapterPage.objects.filter(pk=task.page_id).update(
                    url=outcome.url,
                    image_quality=outcome.quality,
                    metadata=outcome.metadata,
                )
            elif outcome.permanent:
                ChapterPage.objects.filter(pk=task.page_id).update(permanently_failed=True)

    counts = persisted_counts(chapter.id)
    status = classify_page_status(counts["success"], counts["retryable"], counts["permanent"])
    chapter.set_page_fetch_status(status)

    logger.info(
        f"Chapter {chapter.id}: retry fixed {fixed}/{len(pages)} pages, status {status} "
        f"(success {counts['success']}, retryable {counts['retryable']}, permanent {counts['permanent']})"
    )
    return {"chapter_id": str(chapter.id), "status": str(status), "retried": len(pages), "fixed": fixed, **counts}


def set_page_permanently_failed(serie_id, chapter_id, index: int, permanently_failed: bool) -> Dict:
    """
    Flag or unflag one page as permanently failed and reclassify its chapter.

    Raises:
        NotFoundError: If the chapter is not part of the serie or has no such page
    """
    chapter = Chapter.objects.filter(pk=chapter_id, serie_id=serie_id).first()
    if chapter is None:
        raise NotFoundError(f"Chapter {chapter_id} of serie {serie_id} not found")

    updated = ChapterPage.objects.filter(chapter=chapter, index=index).update(permanently_failed=permanently_failed)
    if not updated:
        raise NotFoundError(f"Page {index} of chapter {chapter_id} not found")

    counts = persisted_counts(chapter.id)
    status = classify_page_status(counts["success"], counts["retryable"], counts["permanent"])
    chapter.set_page_fetch_status(status)
    logger.info(f"Chapter {chapter.id}: page {index} permanently_failed={permanently_failed}, status {status}")
    return {"success": True, "status": str(status), **counts}
