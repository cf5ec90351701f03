"""
Cover processing for the cover-update queue.

SOURCE covers mirror a catalog's cover into
``{serie_id}/covers/{source_id}.{ext}`` and record it on the SerieSource.
CUSTOM covers store an admin-provided image under
``{serie_id}/covers/custom.{ext}`` and require the cover field to be
locked. Images too large for every output format are skipped.
"""

import logging
from typing import Dict

from catalog.exceptions import CatalogError, NotFoundError, PermanentImageError
from catalog.models import ImageQuality, Serie, SerieSource
from catalog.services import images, storage
from catalog.utils.loops import run_async

logger = logging.getLogger(__name__)

CUSTOM_COVER_NAME = "custom"


def process_source_cover(serie_source_id) -> Dict:
    """
    Mirror the cover of one SerieSource.

    Raises:
        NotFoundError: If the SerieSource does not exist
    """
    mirror = SerieSource.objects.filter(pk=serie_source_id).first()
    if mirror is None:
        raise NotFoundError(f"SerieSource {serie_source_id} not found")

    if not mirror.cover_source_url:
        logger.info(f"SerieSource {mirror.id} has no cover URL, skipping")
        return {"serie_source_id": str(mirror.id), "status": "skipped"}

    base_path = storage.cover_stem(mirror.serie_id, mirror.source_id)
    try:
        result = run_async(images.upload_image(mirror.cover_source_url, base_path))
    except PermanentImageError as e:
        logger.warning(f"Source cover skipped for {mirror.id}: {e} ({mirror.cover_source_url})")
        return {"serie_source_id": str(mirror.id), "status": "skipped", "reason": str(e)}

    if result.quality != ImageQuality.HEALTHY:
        logger.warning(f"Cover quality {result.quality} for {mirror.id}: {', '.join(result.metadata['issues'])}")

    SerieSource.objects.filter(pk=mirror.pk).update(cover=result.url)
    logger.info(f"Source cover uploaded for {mirror.id}: {result.url}")
    return {"serie_source_id": str(mirror.id), "status": "uploaded", "url": result.url}


def process_custom_cover(serie_id, image_url: str) -> Dict:
    """
    Store a custom cover and re-index the serie.

    Raises:
        NotFoundError: If the serie does not exist
        CatalogError: If the cover field is not locked
    """
    from catalog.queue import jobs

    serie = Serie.objects.filter(pk=serie_id).first()
    if serie is None:
        raise NotFoundError(f"Serie {serie_id} not found")

    if not serie.is_locked("cover"):
        raise CatalogError("Cover field must be locked before uploading a custom cover")

    base_path = storage.cover_stem(serie.id, CUSTOM_COVER_NAME)
    try:
        result = run_async(images.upload_image(image_url, base_path))
    except PermanentImageError as e:
        logger.warning(f"Custom cover skipped for {serie.id}: {e} ({image_url})")
        return {"serie_id": str(serie.id), "status": "skipped", "reason": str(e)}

    if result.quality != ImageQuality.HEALTHY:
        logger.warning(f"Custom cover quality {result.quality}: {', '.join(result.metadata['issues'])}")

    Serie.objects.filter(pk=serie.pk).update(custom_cover=result.url)
    jobs.enqueue("indexer", {"serie_id": str(serie.id), "type": "UPDATE"})

    logger.info(f"Custom cover uploaded for {serie.id}: {result.url}")
    return {"serie_id": str(serie.id), "status": "uploaded", "url": result.url}
