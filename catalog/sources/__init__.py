"""
Source registry.

The registry is built once per process: the native adapters plus, when
SUWAYOMI_URL is configured, one adapter per Suwayomi extension. Services
receive a SourceRegistry so tests can inject fakes.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from asgiref.sync import async_to_sync
from django.conf import settings

from catalog.exceptions import SourceNotFoundError
from catalog.sources.core import SourceProvider

logger = logging.getLogger(__name__)


class SourceRegistry:
    """Ordered collection of adapters keyed by their id."""

    def __init__(self, sources: Iterable[SourceProvider]):
        self._sources: Dict[str, SourceProvider] = {}
        for source in sources:
            self._sources[source.id] = source

    def __iter__(self):
        return iter(self._sources.values())

    def __len__(self):
        return len(self._sources)

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._sources

    def all(self) -> List[SourceProvider]:
        return list(self._sources.values())

    def ids(self) -> List[str]:
        return list(self._sources)

    def get(self, source_id: str) -> SourceProvider:
        """
        Get an adapter by id.

        Raises:
            SourceNotFoundError: If no adapter is registered under source_id
        """
        try:
            return self._sources[source_id]
        except KeyError:
            raise SourceNotFoundError(source_id) from None


_registry: Optional[SourceRegistry] = None
_registry_lock = threading.Lock()


def native_sources() -> List[SourceProvider]:
    from catalog.sources.japscan import Japscan
    from catalog.sources.mangadex import Mangadex
    from catalog.sources.weebcentral import WeebCentral

    return [WeebCentral(), Mangadex(), Japscan()]


def build_registry() -> SourceRegistry:
    """Instantiate every adapter; Suwayomi discovery errors keep the native list."""
    sources = native_sources()

    suwayomi_url = getattr(settings, "SUWAYOMI_URL", "")
    if suwayomi_url:
        from catalog.sources.suwayomi import create_suwayomi_sources
        from catalog.sources.suwayomi.client import SuwayomiClient

        client = SuwayomiClient(suwayomi_url)
        try:
            sources.extend(async_to_sync(create_suwayomi_sources)(client, sources))
        except Exception as e:
            logger.error(f"Failed to load Suwayomi sources from {suwayomi_url}: {e}")

    logger.info(f"Source registry built with {len(sources)} adapters")
    return SourceRegistry(sources)


def get_registry() -> SourceRegistry:
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = build_registry()
    return _registry


def set_registry(registry: Optional[SourceRegistry]):
    """Replace the process registry (used by tests and sync_sources)."""
    global _registry
    with _registry_lock:
        _registry = registry


def invalidate_registry():
    set_registry(None)


def get_source_by_id(source_id: str) -> SourceProvider:
    return get_registry().get(source_id)
