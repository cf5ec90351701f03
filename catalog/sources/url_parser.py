"""
Resolve catalog URLs pasted by an admin into (source, external id) pairs.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union
from urllib.parse import urlparse

from catalog.sources import SourceRegistry, get_registry

logger = logging.getLogger(__name__)

MAX_URLS = 100


@dataclass
class ParsedSerieUrl:
    source_id: str
    serie_id: str


def parse_source_url(url: str, registry: Optional[SourceRegistry] = None) -> Optional[ParsedSerieUrl]:
    """Ask every adapter in registry order; the first match wins."""
    registry = registry or get_registry()
    for source in registry:
        serie_id = source.parse_url(url)
        if serie_id:
            return ParsedSerieUrl(source_id=source.id, serie_id=serie_id)
    return None


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def parse_source_urls(
    urls: Union[str, Iterable[str]],
    registry: Optional[SourceRegistry] = None,
) -> Dict[str, List[Dict]]:
    """
    Parse a batch of URLs.

    Args:
        urls: A list of URLs or a multi-line text blob (one URL per line)
        registry: Adapters to parse against

    Returns:
        {"matched": [...], "unmatched": [...]}. Matched entries carry the
        source id and name, the external id and, when the serie was
        already imported, its canonical id.
    """
    from catalog.models import SerieSource

    if isinstance(urls, str):
        urls = urls.splitlines()
    urls = [url.strip() for url in urls if url and url.strip()][:MAX_URLS]

    registry = registry or get_registry()
    matched: List[Dict] = []
    unmatched: List[Dict] = []

    for url in urls:
        if not _is_url(url):
            unmatched.append({"url": url, "error": "Invalid URL format"})
            continue

        parsed = parse_source_url(url, registry)
        if parsed is None:
            unmatched.append({"url": url, "error": "URL does not match any enabled source"})
            continue

        matched.append(
            {
                "url": url,
                "source_id": parsed.source_id,
                "source_name": registry.get(parsed.source_id).info().name,
                "serie_id": parsed.serie_id,
                "imported": False,
                "existing_serie_id": None,
            }
        )

    if matched:
        existing = SerieSource.objects.filter(
            source__external_id__in={entry["source_id"] for entry in matched},
            external_id__in={entry["serie_id"] for entry in matched},
        ).values_list("source__external_id", "external_id", "serie_id")
        imported = {(source_id, external_id): serie_id for source_id, external_id, serie_id in existing}

        for entry in matched:
            serie_id = imported.get((entry["source_id"], entry["serie_id"]))
            if serie_id is not None:
                entry["imported"] = True
                entry["existing_serie_id"] = str(serie_id)

    logger.debug(f"Parsed {len(urls)} URLs: {len(matched)} matched, {len(unmatched)} unmatched")
    return {"matched": matched, "unmatched": unmatched}
