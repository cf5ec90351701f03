"""
Update scheduler (update-scheduler queue).

Three idempotent job types:

FETCH_LATEST
    Walk each source's "latest updates" listing until the ids stored from
    the previous run (the fingerprint) show up as a contiguous run, then
    re-import the tracked series listed before it. Listings are unreliable
    (entries move, pages shift), so the fingerprint is a sequence rather
    than a single marker and a miss simply means "everything is new".

REFRESH_ALL
    Re-import every tracked mirror, skipping failing ones according to the
    failure backoff table and spacing the jobs so a whole source is spread
    over SCHEDULER_REFRESH_SPREAD_MS without exceeding its rate limit.

RETRY_FAILED_PAGES
    Queue page-retry jobs for chapters that still have retryable pages.

Usage:
    from catalog.services.scheduler import run_scheduler_job

    run_scheduler_job("FETCH_LATEST")
"""

import logging
import uuid
from datetime import timedelta
from typing import Dict, List, Optional

from django.conf import settings
from django.db.models import Exists, OuterRef, Q
from django.utils import timezone

from catalog.exceptions import SourceNotFoundError
from catalog.models import Chapter, ChapterPage, PageFetchStatus, SerieSource, Source
from catalog.queue import jobs
from catalog.queue.definitions import UpdateSchedulerType
from catalog.sources import SourceRegistry, get_registry
from catalog.utils.loops import run_async
from catalog.utils.scheduling import (
    find_fingerprint,
    new_ids_since_fingerprint,
    refresh_stagger_ms,
    should_skip_for_backoff,
)

logger = logging.getLogger(__name__)

RETRY_BATCH_SIZE = 100
RETRY_STAGGER_MS = 5000


def _setting(name: str, default):
    return getattr(settings, name, default)


def _enabled_sources(source_id: Optional[str] = None):
    sources = Source.objects.filter(enabled=True)
    if source_id:
        match = Q(external_id=source_id)
        try:
            match |= Q(pk=uuid.UUID(str(source_id)))
        except ValueError:
            pass
        sources = sources.filter(match)
    return sources.order_by("name")


def _enqueue_import(source: Source, external_id: str, delay_ms: int = 0):
    return jobs.enqueue(
        "serie-inserter",
        {"source_id": str(source.id), "source_serie_id": external_id},
        delay_ms=int(delay_ms),
    )


async def collect_latest_ids(adapter, fingerprint: List[str], max_pages: int) -> Dict:
    """
    Page through an adapter's latest listing.

    Stops when the fingerprint is found, when the listing has no next
    page, after max_pages, or on the first fetch error.

    Returns:
        {"ids": collected ids, "position": fingerprint start or -1, "pages": pages read}
    """
    collected: List[str] = []
    position = -1
    pages = 0

    try:
        for page in range(1, max_pages + 1):
            try:
                result = await adapter.fetch_latest(page)
            except Exception as e:
                logger.warning(f"{adapter.id}: error fetching latest page {page}: {e}")
                break

            pages = page
            collected.extend(item.id for item in result.items)

            if fingerprint:
                position = find_fingerprint(collected, fingerprint)
                if position != -1:
                    logger.debug(f"{adapter.id}: fingerprint found at position {position}")
                    break

            if not result.has_next_page:
                break
    finally:
        await adapter.close()

    return {"ids": collected, "position": position, "pages": pages}


def fetch_latest(source_id: Optional[str] = None, registry: Optional[SourceRegistry] = None, now=None) -> Dict:
    """Run FETCH_LATEST for every enabled source with tracked series (or one source)."""
    registry = registry or get_registry()
    now = now or timezone.now()
    max_pages = _setting("SCHEDULER_MAX_PAGES", 5)
    fingerprint_size = _setting("SCHEDULER_FINGERPRINT_SIZE", 50)
    recently_checked = timedelta(milliseconds=_setting("SCHEDULER_RECENTLY_CHECKED_MS", 900000))

    tracked_sources = _enabled_sources(source_id).filter(
        Exists(SerieSource.objects.filter(source=OuterRef("pk")))
    )

    summary = {"sources": 0, "queued": 0}
    for source in tracked_sources:
        try:
            adapter = registry.get(source.external_id)
        except SourceNotFoundError:
            logger.warning(f"Source {source.external_id} has no adapter, skipping")
            continue

        summary["sources"] += 1
        fingerprint = list(source.last_fetch_fingerprint or [])
        listing = run_async(collect_latest_ids(adapter, fingerprint, max_pages))
        new_ids = new_ids_since_fingerprint(listing["ids"], listing["position"])

        Source.objects.filter(pk=source.pk).update(last_fetch_fingerprint=listing["ids"][:fingerprint_size])

        mirrors = {
            mirror.external_id: mirror
            for mirror in SerieSource.objects.filter(source=source, external_id__in=new_ids)
        }

        queued = 0
        for external_id in new_ids:
            mirror = mirrors.pop(external_id, None)
            if mirror is None:
                continue
            if mirror.last_checked_at and now - mirror.last_checked_at < recently_checked:
                continue
            _enqueue_import(source, external_id)
            queued += 1

        summary["queued"] += queued
        logger.info(
            f"FETCH_LATEST {source.external_id}: {len(listing['ids'])} ids over {listing['pages']} pages, "
            f"{len(new_ids)} new, {queued} queued"
        )

    logger.info(f"FETCH_LATEST complete: {summary['queued']} series queued")
    return summary


def refresh_all(source_id: Optional[str] = None, now=None) -> Dict:
    """Run REFRESH_ALL, honoring failure backoff and spreading the imports."""
    now = now or timezone.now()
    spread_ms = _setting("SCHEDULER_REFRESH_SPREAD_MS", 86400000)

    summary = {"sources": 0, "queued": 0, "skipped": 0}
    for source in _enabled_sources(source_id):
        summary["sources"] += 1
        mirrors = [
            mirror
            for mirror in SerieSource.objects.filter(source=source).order_by("last_checked_at", "created_at")
            if not should_skip_for_backoff(mirror.consecutive_failures, mirror.last_checked_at, now)
        ]
        skipped = SerieSource.objects.filter(source=source).count() - len(mirrors)

        interval = refresh_stagger_ms(source.rate_limit_max, source.rate_limit_duration, len(mirrors), spread_ms)
        for i, mirror in enumerate(mirrors):
            _enqueue_import(source, mirror.external_id, delay_ms=i * interval)

        summary["queued"] += len(mirrors)
        summary["skipped"] += skipped
        logger.info(
            f"REFRESH_ALL {source.external_id}: {len(mirrors)} queued, {skipped} in backoff, "
            f"stagger {round(interval / 1000)}s"
        )

    logger.info(f"REFRESH_ALL complete: {summary['queued']} series queued")
    return summary


def chapters_with_retryable_pages(serie_id=None):
    retryable = ChapterPage.objects.filter(
        chapter=OuterRef("pk"),
        permanently_failed=False,
    ).filter(Q(url__isnull=True) | Q(url="")).exclude(Q(source_url__isnull=True) | Q(source_url=""))

    chapters = Chapter.objects.filter(
        page_fetch_status__in=[PageFetchStatus.PARTIAL, PageFetchStatus.FAILED],
    ).filter(Exists(retryable))
    if serie_id is not None:
        chapters = chapters.filter(serie_id=serie_id)
    return chapters.order_by("updated_at")


def retry_failed_pages(serie_id=None, limit: int = RETRY_BATCH_SIZE) -> Dict:
    """Queue page-retry jobs, staggered, for at most ``limit`` chapters."""
    chapter_ids = list(chapters_with_retryable_pages(serie_id).values_list("id", flat=True)[:limit])

    for i, chapter_id in enumerate(chapter_ids):
        jobs.enqueue(
            "page-retry",
            {"chapter_id": str(chapter_id)},
            job_id=f"page-retry-{chapter_id}",
            delay_ms=i * RETRY_STAGGER_MS,
            name=f"scheduled-retry-{chapter_id}",
        )

    logger.info(f"RETRY_FAILED_PAGES: queued {len(chapter_ids)} chapters")
    return {"queued": len(chapter_ids)}


def run_scheduler_job(job_type, source_id: Optional[str] = None, registry: Optional[SourceRegistry] = None) -> Dict:
    job_type = UpdateSchedulerType(getattr(job_type, "value", job_type))

    if job_type == UpdateSchedulerType.FETCH_LATEST:
        return fetch_latest(source_id, registry=registry)
    if job_type == UpdateSchedulerType.REFRESH_ALL:
        return refresh_all(source_id)
    return retry_failed_pages()

