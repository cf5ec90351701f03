"""
Search index maintenance.

Series are indexed in a Meilisearch-compatible engine (index ``series``,
primary key ``id``). The indexer job recomputes the canonical display
fields of a Serie from its primary mirror, honoring locked fields, and
pushes one document built from every mirror.

Usage:
    from catalog.services.search_index import SearchIndexClient, update_serie

    result = update_serie(serie_id)
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from django.conf import settings
from django.utils import timezone

from catalog.exceptions import SearchIndexError
from catalog.models import Serie
from catalog.utils.loops import run_async
from catalog.utils.multilanguage import resolve_multi_language, resolve_multi_language_array, unique

logger = logging.getLogger(__name__)

SERIES_INDEX = "series"
PRIMARY_KEY = "id"


class SearchIndexClient:
    """
    Async HTTP client for the search engine's document API.

    Only the operations the catalog needs: add-or-update documents and
    delete one document.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        index: str = SERIES_INDEX,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the search index client.

        Args:
            host: Engine URL (defaults to settings.MEILI_HOST)
            api_key: Master key (defaults to settings.MEILI_MASTER_KEY)
            index: Index uid
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.host = (host or getattr(settings, "MEILI_HOST", "http://localhost:7700")).rstrip("/")
        self.api_key = api_key if api_key is not None else getattr(settings, "MEILI_MASTER_KEY", "")
        self.index = index
        self.timeout = timeout
        self.transport = transport

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.host}/indexes/{self.index}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=self._get_headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Search index request {method} {path} failed: {e}")
            raise SearchIndexError(f"Search index unreachable: {e}") from e

        if response.status_code >= 400:
            raise SearchIndexError(
                f"Search index returned HTTP {response.status_code} for {method} {path}: {response.text[:200]}"
            )

        try:
            return response.json()
        except ValueError:
            return {}

    async def update_documents(self, documents: List[Dict]) -> Dict[str, Any]:
        return await self._request(
            "PUT",
            "/documents",
            params={"primaryKey": PRIMARY_KEY},
            json=documents,
        )

    async def delete_document(self, document_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/documents/{document_id}")


def get_search_client() -> SearchIndexClient:
    return SearchIndexClient()


def refresh_display_fields(serie: Serie, primary) -> List[str]:
    """
    Recompute the canonical display fields from the primary mirror.

    Locked fields are left untouched. A locked cover shows the custom cover
    when there is one and is otherwise kept as is.

    Returns:
        Names of the fields assigned
    """
    changed = []

    if not serie.is_locked("title"):
        serie.title = resolve_multi_language(primary.title)
        changed.append("title")
    if not serie.is_locked("synopsis"):
        serie.synopsis = resolve_multi_language(primary.synopsis, fallback="") or None
        changed.append("synopsis")
    if not serie.is_locked("status"):
        serie.status = list(primary.status or [])
        changed.append("status")
    if not serie.is_locked("type"):
        serie.type = primary.type
        changed.append("type")

    if serie.is_locked("cover"):
        if serie.custom_cover:
            serie.cover = serie.custom_cover
            changed.append("cover")
    else:
        serie.cover = primary.cover or primary.cover_source_url or None
        changed.append("cover")

    return changed


def build_document(serie: Serie, mirrors: List) -> Dict[str, Any]:
    """Search document combining the canonical fields with every mirror's text."""
    primary = mirrors[0]

    titles: List[str] = []
    alternates: List[str] = []
    synopses: List[str] = []
    for mirror in mirrors:
        titles.extend(resolve_multi_language_array(mirror.title) or [])
        alternates.extend(resolve_multi_language_array(mirror.alternates_titles) or [])
        synopses.extend(resolve_multi_language_array(mirror.synopsis) or [])

    return {
        "id": str(serie.id),
        "title_En": [serie.title],
        "synopsis_En": unique(synopses),
        "title_Jp": [title for title in unique(titles) if title != serie.title],
        "alternates_titles_En": unique(alternates),
        "artists": [artist.name for artist in serie.artists.all()],
        "authors": [author.name for author in serie.authors.all()],
        "genres": [genre.title for genre in serie.genres.all()],
        "status": list(serie.status or []),
        "type": serie.type,
        "poster": serie.cover or "",
        "external_id": primary.external_id,
        "source_id": str(primary.source_id),
    }


def update_serie(serie_id, client: Optional[SearchIndexClient] = None) -> Dict:
    """
    Refresh a serie's display fields and push its search document.

    A serie that is gone or has no mirror is removed from the index.

    Raises:
        SearchIndexError: If the search engine rejects the request
    """
    client = client or get_search_client()
    serie = Serie.objects.filter(pk=serie_id).first()
    mirrors = list(serie.sources.order_by("-is_primary", "created_at")) if serie else []

    if serie is None or not mirrors:
        logger.info(f"Serie {serie_id} has no mirror, removing it from the index")
        run_async(client.delete_document(str(serie_id)))
        return {"serie_id": str(serie_id), "action": "removed"}

    changed = refresh_display_fields(serie, mirrors[0])
    serie.refreshed_at = timezone.now()
    serie.save(update_fields=changed + ["refreshed_at"])

    document = build_document(serie, mirrors)
    run_async(client.update_documents([document]))

    logger.info(f"Indexed serie {serie.id}: {serie.title}")
    return {"serie_id": str(serie.id), "action": "indexed"}


def delete_serie(serie_id, client: Optional[SearchIndexClient] = None) -> Dict:
    client = client or get_search_client()
    run_async(client.delete_document(str(serie_id)))
    logger.info(f"Removed serie {serie_id} from the index")
    return {"serie_id": str(serie_id), "action": "removed"}
