"""
Health aggregates for the admin API.

source_health() summarises every source: tracked mirrors, failing
mirrors, last check and the serie-inserter jobs waiting or running for it.
failed_chapter_stats() counts chapters by page fetch outcome.
"""

import logging
from typing import Dict, List

from django.db.models import Count, Max, Q

from catalog.models import Chapter, ChapterPage, Job, JobStatus, PageFetchStatus, Source

logger = logging.getLogger(__name__)

FAILED_STATUSES = (
    PageFetchStatus.PARTIAL,
    PageFetchStatus.FAILED,
    PageFetchStatus.PERMANENTLY_FAILED,
    PageFetchStatus.INCOMPLETE,
)


def _inserter_jobs_by_source() -> Dict[str, Dict[str, int]]:
    stats: Dict[str, Dict[str, int]] = {}
    pending = Job.objects.filter(
        queue="serie-inserter",
        status__in=[JobStatus.WAITING, JobStatus.DELAYED, JobStatus.ACTIVE],
    ).values_list("payload", "status")

    for payload, status in pending:
        source_id = (payload or {}).get("source_id")
        if not source_id:
            continue
        bucket = stats.setdefault(source_id, {"waiting": 0, "active": 0})
        bucket["active" if status == JobStatus.ACTIVE else "waiting"] += 1
    return stats


def source_health() -> Dict:
    """Per-source tracking and failure overview plus global totals."""
    sources = Source.objects.annotate(
        total_series=Count("serie_sources"),
        failing_count=Count("serie_sources", filter=Q(serie_sources__consecutive_failures__gt=0)),
        last_checked=Max("serie_sources__last_checked_at"),
    ).order_by("-enabled", "name")

    queue_stats = _inserter_jobs_by_source()

    entries: List[Dict] = []
    total_failing = 0
    most_recent = None
    enabled_count = 0

    for source in sources:
        if source.enabled:
            enabled_count += 1
            total_failing += source.failing_count
            if source.last_checked and (most_recent is None or source.last_checked > most_recent):
                most_recent = source.last_checked

        entries.append(
            {
                "source": {
                    "id": str(source.id),
                    "external_id": source.external_id,
                    "name": source.name,
                    "icon": source.icon,
                    "enabled": source.enabled,
                },
                "health": {
                    "total_series": source.total_series,
                    "failing_count": source.failing_count if source.enabled else 0,
                    "last_checked": source.last_checked.isoformat() if source.last_checked else None,
                },
                "queue_stats": queue_stats.get(str(source.id), {"waiting": 0, "active": 0}),
            }
        )

    return {
        "sources": entries,
        "stats": {
            "enabled_count": enabled_count,
            "total_count": len(entries),
            "total_failing_series": total_failing,
            "most_recent_activity": most_recent.isoformat() if most_recent else None,
        },
    }


def failed_chapter_stats(serie_id=None) -> Dict:
    """Chapters per failed status and the number of pages still retryable."""
    chapters = Chapter.objects.all()
    pages = ChapterPage.objects.all()
    if serie_id is not None:
        chapters = chapters.filter(serie_id=serie_id)
        pages = pages.filter(chapter__serie_id=serie_id)

    by_status = {
        row["page_fetch_status"]: row["total"]
        for row in chapters.filter(page_fetch_status__in=FAILED_STATUSES)
        .values("page_fetch_status")
        .annotate(total=Count("id"))
    }

    missing = Q(url__isnull=True) | Q(url="")
    return {
        "chapters": {status.value: by_status.get(status.value, 0) for status in FAILED_STATUSES},
        "total_chapters": sum(by_status.values()),
        "retryable_pages": pages.filter(missing, permanently_failed=False)
        .exclude(Q(source_url__isnull=True) | Q(source_url=""))
        .count(),
        "permanently_failed_pages": pages.filter(missing, permanently_failed=True).count(),
    }
