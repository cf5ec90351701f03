"""
Object storage for covers and chapter pages.

Objects go through Django's storage API (the "catalog" entry of
settings.STORAGES), so the backend can be the local filesystem, an
S3-compatible bucket or the in-memory storage used by the tests.

Layout:
    {serie_id}/covers/{source_id|custom}.{ext}
    {serie_id}/chapters/{chapter_id}/page-{index}.{ext}
"""

import logging
import posixpath
from typing import List

from django.core.files.base import ContentFile
from django.core.files.storage import Storage, storages

from catalog.exceptions import StorageError

logger = logging.getLogger(__name__)

STORAGE_ALIAS = "catalog"


def get_storage() -> Storage:
    return storages[STORAGE_ALIAS]


def cover_stem(serie_id, name: str) -> str:
    return f"{serie_id}/covers/{name}"


def cover_path(serie_id, name: str, extension: str) -> str:
    return f"{cover_stem(serie_id, name)}.{extension}"


def page_stem(serie_id, chapter_id, index: int) -> str:
    return f"{serie_id}/chapters/{chapter_id}/page-{index}"


def page_path(serie_id, chapter_id, index: int, extension: str) -> str:
    return f"{page_stem(serie_id, chapter_id, index)}.{extension}"


def chapter_prefix(serie_id, chapter_id) -> str:
    return f"{serie_id}/chapters/{chapter_id}/"


def serie_prefix(serie_id) -> str:
    return f"{serie_id}/"


def save_object(path: str, data: bytes) -> str:
    """
    Write an object, replacing any previous one at the same path.

    Returns:
        Public URL of the stored object

    Raises:
        StorageError: If the backend rejects the write
    """
    storage = get_storage()
    try:
        if storage.exists(path):
            storage.delete(path)
        saved = storage.save(path, ContentFile(data))
        return storage.url(saved)
    except OSError as e:
        raise StorageError(f"Failed to store {path}: {e}") from e


def list_prefix(prefix: str) -> List[str]:
    """All object paths under a prefix, recursively."""
    storage = get_storage()
    directory = prefix.rstrip("/")
    try:
        directories, files = storage.listdir(directory)
    except (FileNotFoundError, NotADirectoryError):
        return []

    paths = [posixpath.join(directory, name) for name in files]
    for name in directories:
        paths.extend(list_prefix(posixpath.join(directory, name)))
    return paths


def delete_prefix(prefix: str) -> int:
    """
    Delete every object under a prefix.

    Returns:
        Number of deleted objects
    """
    storage = get_storage()
    paths = list_prefix(prefix)
    try:
        for path in paths:
            storage.delete(path)
    except OSError as e:
        raise StorageError(f"Failed to delete objects under {prefix}: {e}") from e

    if paths:
        logger.info(f"Deleted {len(paths)} objects under {prefix}")
    return len(paths)
