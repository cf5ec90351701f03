"""
Admin edits on series, their mirrors and chapters.

Every edit that changes what the search document shows queues an indexer
UPDATE so the index is recomputed from the database.

Usage:
    from catalog.services import serie_admin

    serie_admin.update_field(serie_id, "lock", "title")
    serie_admin.set_primary_source(serie_id, serie_source_id)
    serie_admin.toggle_chapters(serie_id, [chapter_id], enabled=False)
"""

import logging
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.utils import timezone

from catalog.exceptions import NotFoundError, SerieEditError
from catalog.models import LOCKABLE_FIELDS, Chapter, Serie, SerieSource, Source
from catalog.queue import jobs
from catalog.services import storage
from catalog.services.importer import mirror_fields, resolve_source
from catalog.sources import SourceRegistry, get_registry
from catalog.sources.core import SourceSerieStatus, SourceSerieType
from catalog.utils.loops import run_async

logger = logging.getLogger(__name__)

FIELD_ACTIONS = ("lock", "unlock", "update")


def _get_serie(serie_id) -> Serie:
    serie = Serie.objects.filter(pk=serie_id).first()
    if serie is None:
        raise NotFoundError(f"Serie {serie_id} not found")
    return serie


def _reindex(serie_id) -> str:
    job = jobs.enqueue("indexer", {"serie_id": str(serie_id), "type": "UPDATE"})
    return job.job_id


def _clean_value(field: str, value: Any):
    if field == "title":
        if not isinstance(value, str) or not value.strip():
            raise SerieEditError("title must be a non-empty string")
        return value.strip()
    if field == "synopsis":
        if value is not None and not isinstance(value, str):
            raise SerieEditError("synopsis must be a string or null")
        return value or None
    if field == "status":
        accepted = {status.value for status in SourceSerieStatus}
        if not isinstance(value, list) or any(item not in accepted for item in value):
            raise SerieEditError(f"status must be a list of {sorted(accepted)}")
        return list(dict.fromkeys(value))
    if field == "type":
        accepted = {serie_type.value for serie_type in SourceSerieType}
        if value not in accepted:
            raise SerieEditError(f"type must be one of {sorted(accepted)}")
        return value
    raise SerieEditError(f"{field} cannot be edited directly, upload a custom cover instead")


def update_field(serie_id, action: str, field: str, value: Any = None) -> Dict:
    """
    Lock, unlock or edit one display field of a serie.

    Editing a field also locks it so the indexer keeps the admin's value.
    Unlocking the cover drops the custom cover.

    Raises:
        NotFoundError: If the serie does not exist
        SerieEditError: For an unknown action or field, or an invalid value
    """
    if action not in FIELD_ACTIONS:
        raise SerieEditError(f"Unknown action: {action}")
    if field not in LOCKABLE_FIELDS:
        raise SerieEditError(f"Unknown field: {field}")

    serie = _get_serie(serie_id)
    locked = list(serie.locked_fields or [])
    update_fields = ["locked_fields"]

    if action == "unlock":
        locked = [name for name in locked if name != field]
        if field == "cover":
            serie.custom_cover = None
            update_fields.append("custom_cover")
    else:
        if action == "update":
            setattr(serie, field, _clean_value(field, value))
            update_fields.append(field)
        if field not in locked:
            locked.append(field)

    serie.locked_fields = locked
    serie.save(update_fields=update_fields)
    logger.info(f"Serie {serie.id}: {action} {field} (locked: {locked})")

    result = {"success": True, "locked_fields": locked}
    if action != "lock":
        result["job_id"] = _reindex(serie.id)
    return result


def set_primary_source(serie_id, serie_source_id) -> Dict:
    """
    Make one mirror the primary source of its serie.

    Raises:
        NotFoundError: If the mirror does not belong to the serie
    """
    mirror = SerieSource.objects.filter(pk=serie_source_id, serie_id=serie_id).first()
    if mirror is None:
        raise NotFoundError(f"Mirror {serie_source_id} of serie {serie_id} not found")

    with transaction.atomic():
        SerieSource.objects.filter(serie_id=serie_id, is_primary=True).exclude(pk=mirror.pk).update(
            is_primary=False
        )
        if not mirror.is_primary:
            mirror.is_primary = True
            mirror.save(update_fields=["is_primary"])

    logger.info(f"Serie {serie_id}: primary mirror is now {mirror.id}")
    return {"success": True, "job_id": _reindex(serie_id)}


def _fetch_detail(source: Source, external_id: str, registry: SourceRegistry):
    adapter = registry.get(source.external_id)

    async def fetch():
        try:
            return await adapter.fetch_serie_detail(external_id)
        finally:
            await adapter.close()

    return run_async(fetch())


def _move_mirror(mirror: SerieSource, target: Serie) -> str:
    """Attach a mirror and its chapters to another serie."""
    previous_id = mirror.serie_id
    with transaction.atomic():
        Chapter.objects.filter(serie_id=previous_id, source_id=mirror.source_id).update(serie=target)
        was_primary = mirror.is_primary
        mirror.serie = target
        mirror.is_primary = False
        mirror.save(update_fields=["serie", "is_primary"])

        if was_primary:
            successor = SerieSource.objects.filter(serie_id=previous_id).order_by("created_at").first()
            if successor is not None:
                successor.is_primary = True
                successor.save(update_fields=["is_primary"])

    _reindex(previous_id)
    return str(previous_id)


def link_source(
    serie_id,
    source_id,
    external_id: str,
    relink: bool = False,
    registry: Optional[SourceRegistry] = None,
) -> Dict:
    """
    Attach a catalog entry to an existing serie as a secondary mirror.

    The mirror is created from the catalog's detail page, then a
    serie-inserter job imports its chapters. An entry already mirrored by
    another serie is only moved when relink is set.

    Raises:
        NotFoundError: If the serie or an enabled source is missing
        SerieEditError: If the entry belongs to another serie and relink is off
        SourceFetchError: If the catalog could not be reached
    """
    serie = _get_serie(serie_id)
    source = resolve_source(source_id)
    if not source.enabled:
        raise NotFoundError(f"Source {source.external_id} is disabled")

    existing = SerieSource.objects.filter(source=source, external_id=external_id).first()
    if existing is not None:
        if existing.serie_id == serie.id:
            return {"success": True, "status": "already_linked", "serie_source_id": str(existing.id)}
        if not relink:
            raise SerieEditError("This source entry is already linked to a different serie")
        previous = _move_mirror(existing, serie)
        logger.info(f"Relinked {source.external_id}/{external_id} from serie {previous} to {serie.id}")
        mirror = existing
        status = "relinked"
    else:
        detail = _fetch_detail(source, external_id, registry or get_registry())
        mirror = SerieSource.objects.create(
            serie=serie,
            source=source,
            external_id=external_id,
            is_primary=False,
            **mirror_fields(detail),
        )
        logger.info(f"Linked {source.external_id}/{external_id} to serie {serie.id}")
        status = "queued"

    job = jobs.enqueue(
        "serie-inserter",
        {"source_id": str(source.id), "source_serie_id": external_id},
        job_id=f"serie-inserter-{mirror.id}",
    )
    return {"success": True, "status": status, "serie_source_id": str(mirror.id), "job_id": job.job_id}


def _serie_chapters(serie_id, chapter_ids: List, removed_only: bool = False):
    if not chapter_ids:
        raise SerieEditError("chapter_ids must not be empty")
    chapter_ids = list(dict.fromkeys(str(chapter_id) for chapter_id in chapter_ids))
    chapters = Chapter.objects.filter(serie_id=serie_id, id__in=chapter_ids)
    if removed_only:
        chapters = chapters.filter(source_removed_at__isnull=False)
    if chapters.count() != len(chapter_ids):
        qualifier = " or are still listed by their source" if removed_only else ""
        raise SerieEditError(f"Some chapters were not found, belong to another serie{qualifier}")
    return chapters


def toggle_chapters(serie_id, chapter_ids: List, enabled: bool) -> Dict:
    """Enable or disable chapters of one serie."""
    count = _serie_chapters(serie_id, chapter_ids).update(enabled=enabled, updated_at=timezone.now())
    logger.info(f"Serie {serie_id}: {'enabled' if enabled else 'disabled'} {count} chapter(s)")
    return {"success": True, "count": count}


def acknowledge_removed_chapters(serie_id, chapter_ids: List) -> Dict:
    """Confirm that chapters no longer listed by their source were seen."""
    count = _serie_chapters(serie_id, chapter_ids, removed_only=True).update(
        source_removal_acknowledged_at=timezone.now()
    )
    return {"success": True, "count": count}


def delete_removed_chapters(serie_id, chapter_ids: List) -> Dict:
    """
    Delete chapters their source stopped listing, with their stored pages.

    Raises:
        SerieEditError: If a chapter is still listed by its source
    """
    chapters = _serie_chapters(serie_id, chapter_ids, removed_only=True)

    files_deleted = 0
    for chapter_id in chapters.values_list("id", flat=True):
        files_deleted += storage.delete_prefix(storage.chapter_prefix(serie_id, chapter_id))

    count = chapters.count()
    chapters.delete()
    logger.info(f"Serie {serie_id}: deleted {count} removed chapter(s), {files_deleted} stored files")
    return {"success": True, "count": count, "files_deleted": files_deleted}
