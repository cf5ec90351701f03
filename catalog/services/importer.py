"""
Import orchestrator (serie-inserter queue).

Fetches a serie's detail and chapter list from its catalog, upserts the
canonical records in one transaction, then submits a job flow:

    indexer UPDATE (parent)
      cover-update SOURCE
      chapter-data UPDATE  (one per new or re-uploaded chapter)

The indexer only runs once every child has settled, so the search
document always reflects the finished import.

Usage:
    from catalog.services.importer import request_import, import_serie

    request_import(source.id, "some-serie")   # from the API
    import_serie(str(source.id), "some-serie")  # inside the worker
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from catalog.exceptions import NotFoundError
from catalog.models import (
    Artist,
    Author,
    Chapter,
    Genre,
    ScanlationGroup,
    Serie,
    SerieSource,
    Source,
)
from catalog.monitoring.failure_tracker import get_failure_tracker
from catalog.queue import jobs
from catalog.queue.flows import FlowJob, add_flow
from catalog.sources import SourceRegistry, get_registry
from catalog.sources.core import SourceChapter, SourceChaptersResult, SourceSerie
from catalog.utils.loops import run_async
from catalog.utils.multilanguage import resolve_multi_language, unique

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    serie_id: str
    serie_source_id: str
    created: bool
    changed_chapter_ids: List[str] = field(default_factory=list)
    removed_chapters: int = 0

    def to_dict(self) -> Dict:
        return {
            "serie_id": self.serie_id,
            "serie_source_id": self.serie_source_id,
            "created": self.created,
            "chapters_queued": len(self.changed_chapter_ids),
            "chapters_removed": self.removed_chapters,
        }


def resolve_source(identifier) -> Source:
    """
    Find a Source row by primary key or adapter id.

    Raises:
        NotFoundError: If no such source exists
    """
    source = Source.objects.filter(external_id=str(identifier)).first()
    if source is None:
        try:
            source = Source.objects.filter(pk=uuid.UUID(str(identifier))).first()
        except ValueError:
            source = None
    if source is None:
        raise NotFoundError(f"Source {identifier} not found")
    return source


def request_import(source_id, external_id: str) -> Dict:
    """
    Import a serie unless it is already mirrored.

    Returns:
        {"status": "exists", "serie_id"} or {"status": "queued", "job_id"}
    """
    source = resolve_source(source_id)

    existing = SerieSource.objects.filter(source=source, external_id=external_id).first()
    if existing is not None:
        return {"status": "exists", "serie_id": str(existing.serie_id)}

    job = jobs.enqueue(
        "serie-inserter",
        {"source_id": str(source.id), "source_serie_id": external_id},
    )
    logger.info(f"Queued import of {source.external_id}/{external_id} as job {job.job_id}")
    return {"status": "queued", "job_id": job.job_id}


def refresh_serie(serie_id) -> List[str]:
    """
    Re-import every mirror of a serie.

    Returns:
        Job ids of the enqueued serie-inserter jobs

    Raises:
        NotFoundError: If the serie does not exist
    """
    serie = Serie.objects.filter(pk=serie_id).first()
    if serie is None:
        raise NotFoundError(f"Serie {serie_id} not found")

    job_ids = []
    for mirror in serie.sources.select_related("source"):
        job = jobs.enqueue(
            "serie-inserter",
            {"source_id": str(mirror.source_id), "source_serie_id": mirror.external_id},
            job_id=f"serie-inserter-{mirror.id}",
        )
        job_ids.append(job.job_id)

    logger.info(f"Queued refresh of serie {serie.id} ({len(job_ids)} mirrors)")
    return job_ids


def refresh_source(source_id) -> str:
    """Queue a REFRESH_ALL scoped to one source and return its job id."""
    source = resolve_source(source_id)
    job = jobs.enqueue("update-scheduler", {"type": "REFRESH_ALL", "source_id": source.external_id})
    return job.job_id


async def fetch_serie(adapter, external_id: str) -> Tuple[SourceSerie, SourceChaptersResult]:
    """Fetch detail and chapters concurrently, releasing the adapter afterwards."""
    try:
        return await asyncio.gather(
            adapter.fetch_serie_detail(external_id),
            adapter.fetch_serie_chapters(external_id),
        )
    finally:
        await adapter.close()


def _values(items: Iterable) -> List[str]:
    return [getattr(item, "value", item) for item in items]


def _upsert_named(model, field_name: str, values: List[str]):
    values = unique(values)
    if not values:
        return []
    model.objects.bulk_create(
        [model(**{field_name: value}) for value in values],
        ignore_conflicts=True,
    )
    return list(model.objects.filter(**{f"{field_name}__in": values}))


def _upsert_groups(source: Source, chapters: List[SourceChapter]) -> Dict[str, ScanlationGroup]:
    groups = {}
    for chapter in chapters:
        for group in chapter.groups:
            groups.setdefault(group.id, group)

    records = {}
    for group_id, group in groups.items():
        defaults = {"name": group.name}
        if group.url:
            defaults["url"] = group.url
        record, _ = ScanlationGroup.objects.update_or_create(
            source=source,
            external_id=group_id,
            defaults=defaults,
        )
        records[group_id] = record
    return records


def mirror_fields(detail: SourceSerie) -> Dict:
    fields = {
        "title": detail.title,
        "alternates_titles": detail.alternates_titles,
        "synopsis": detail.synopsis,
        "cover_source_url": detail.cover or "",
        "status": _values(detail.status),
        "type": getattr(detail.type, "value", detail.type),
    }
    if detail.external_url:
        fields["external_url"] = detail.external_url
    return fields


def _chapter_fields(chapter: SourceChapter) -> Dict:
    fields = {
        "title": resolve_multi_language(chapter.title, fallback="") or "",
        "chapter_number": chapter.chapter_number,
        "date_upload": chapter.date_upload,
    }
    if chapter.volume_number is not None:
        fields["volume_number"] = chapter.volume_number
    if chapter.volume_name is not None:
        fields["volume_name"] = chapter.volume_name
    if chapter.external_url:
        fields["external_url"] = chapter.external_url
    return fields


def save_serie(
    source: Source,
    external_id: str,
    detail: SourceSerie,
    chapters_result: SourceChaptersResult,
) -> ImportResult:
    """
    Persist one fetched serie in a single transaction.

    Creates the Serie and its primary mirror on first import, refreshes the
    mirror otherwise. Chapters are upserted by (source, external_id);
    chapters that vanished from the catalog are marked removed once.

    Returns:
        ImportResult listing the chapters that need their pages fetched
    """
    now = timezone.now()

    chapters: List[SourceChapter] = []
    seen = set()
    for chapter in chapters_result.chapters:
        if chapter.id not in seen:
            seen.add(chapter.id)
            chapters.append(chapter)

    with transaction.atomic():
        genres = _upsert_named(Genre, "title", _values(detail.genres))
        authors = _upsert_named(Author, "name", detail.authors)
        artists = _upsert_named(Artist, "name", detail.artists)
        groups = _upsert_groups(source, chapters)

        mirror = (
            SerieSource.objects.select_for_update()
            .filter(source=source, external_id=external_id)
            .first()
        )
        created = mirror is None

        if created:
            serie = Serie.objects.create(
                title=resolve_multi_language(detail.title),
                synopsis=resolve_multi_language(detail.synopsis, fallback="") or None,
                type=getattr(detail.type, "value", detail.type),
                status=_values(detail.status),
            )
            mirror = SerieSource.objects.create(
                serie=serie,
                source=source,
                external_id=external_id,
                is_primary=True,
                **mirror_fields(detail),
            )
        else:
            serie = mirror.serie
            for name, value in mirror_fields(detail).items():
                setattr(mirror, name, value)
            mirror.save()

        serie.genres.set(genres)
        serie.authors.set(authors)
        serie.artists.set(artists)

        existing = {
            chapter.external_id: chapter
            for chapter in Chapter.objects.filter(source=source, external_id__in=[c.id for c in chapters])
        }
        if any(chapter.id not in existing for chapter in chapters):
            serie.save(update_fields=["updated_at"])

        changed: List[str] = []
        for source_chapter in chapters:
            record = existing.get(source_chapter.id)
            fields = _chapter_fields(source_chapter)

            if record is None:
                record = Chapter.objects.create(
                    serie=serie,
                    source=source,
                    external_id=source_chapter.id,
                    language=getattr(source_chapter.language, "value", source_chapter.language),
                    **fields,
                )
                changed.append(str(record.id))
            else:
                upload_changed = record.date_upload != source_chapter.date_upload
                for name, value in fields.items():
                    setattr(record, name, value)
                record.source_removed_at = None
                record.source_removal_acknowledged_at = None
                record.save()
                if upload_changed:
                    changed.append(str(record.id))

            record.groups.set([groups[group.id] for group in source_chapter.groups if group.id in groups])

        removed = (
            Chapter.objects.filter(serie=serie, source=source, source_removed_at__isnull=True)
            .exclude(external_id__in=seen)
            .update(source_removed_at=now, source_removal_acknowledged_at=None, updated_at=now)
        )

    if removed:
        logger.info(f"Serie {serie.id}: marked {removed} chapters as removed from {source.external_id}")

    return ImportResult(
        serie_id=str(serie.id),
        serie_source_id=str(mirror.id),
        created=created,
        changed_chapter_ids=changed,
        removed_chapters=removed,
    )


def submit_import_flow(result: ImportResult, source: Source):
    """Queue the cover and chapter jobs, gated by a re-index of the serie."""
    children = [
        FlowJob(
            queue="cover-update",
            payload={"type": "SOURCE", "serie_source_id": result.serie_source_id},
            name=f"cover-source-{result.serie_source_id}",
        )
    ]
    children.extend(
        FlowJob(
            queue="chapter-data",
            payload={
                "serie_id": result.serie_id,
                "source_id": str(source.id),
                "chapter_id": chapter_id,
                "type": "UPDATE",
            },
            name=f"chapter-{result.serie_id}-{chapter_id}",
        )
        for chapter_id in result.changed_chapter_ids
    )

    return add_flow(
        FlowJob(
            queue="indexer",
            payload={"serie_id": result.serie_id, "type": "UPDATE"},
            name=f"indexer-{result.serie_id}",
        ),
        children,
    )


def import_serie(source_id, external_id: str, registry: Optional[SourceRegistry] = None) -> Dict:
    """
    Run one serie-inserter job.

    Args:
        source_id: Source primary key (or adapter id)
        external_id: Serie id on the catalog
        registry: Adapters (defaults to the process registry)

    Returns:
        Summary dict (serie id, chapters queued)

    Raises:
        NotFoundError: If the source or its adapter is unknown
        SourceFetchError: If the catalog could not be read
    """
    source = resolve_source(source_id)
    adapter = (registry or get_registry()).get(source.external_id)
    tracker = get_failure_tracker()

    existing = SerieSource.objects.filter(source=source, external_id=external_id).first()
    if existing is not None:
        logger.info(f"{source.external_id}/{external_id} already imported, running in update mode")

    try:
        detail, chapters_result = run_async(fetch_serie(adapter, external_id))
        logger.info(
            f"Fetched {source.external_id}/{external_id}: {resolve_multi_language(detail.title)} "
            f"with {len(chapters_result.chapters)} chapters"
        )

        result = save_serie(source, external_id, detail, chapters_result)
        submit_import_flow(result, source)
    except Exception as e:
        if existing is not None:
            SerieSource.objects.filter(pk=existing.pk).update(
                consecutive_failures=F("consecutive_failures") + 1,
                last_checked_at=timezone.now(),
            )
        tracker.record_failure(source.external_id, source_name=source.name)
        logger.error(f"Error importing {source.external_id}/{external_id}: {e}")
        raise

    SerieSource.objects.filter(pk=result.serie_source_id).update(
        consecutive_failures=0,
        last_checked_at=timezone.now(),
    )
    tracker.record_success(source.external_id)

    logger.info(
        f"{'Created' if result.created else 'Updated'} serie {result.serie_id} "
        f"with {len(result.changed_chapter_ids)} chapters to process"
    )
    return result.to_dict()
