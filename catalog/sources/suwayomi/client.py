"""
Async GraphQL client for a self-hosted Suwayomi server.
"""

import asyncio
import logging
from typing import Any, Dict, List, Literal, Optional

import httpx
from pydantic import BaseModel, ValidationError

from catalog.exceptions import SourceFetchError, SourceSchemaError
from catalog.sources.suwayomi import queries

logger = logging.getLogger(__name__)


class SuwayomiSourceInfo(BaseModel):
    id: str
    name: str
    lang: str
    iconUrl: str = ""
    supportsLatest: bool = True
    isNsfw: bool = False


class SuwayomiManga(BaseModel):
    id: int
    title: str
    url: str
    realUrl: Optional[str] = None
    thumbnailUrl: Optional[str] = None
    author: Optional[str] = None
    artist: Optional[str] = None
    description: Optional[str] = None
    status: Literal[
        "UNKNOWN", "ONGOING", "COMPLETED", "LICENSED", "PUBLISHING_FINISHED", "CANCELLED", "ON_HIATUS"
    ] = "UNKNOWN"
    genre: List[str] = []


class SuwayomiMangaPage(BaseModel):
    mangas: List[SuwayomiManga]
    hasNextPage: bool


class SuwayomiChapter(BaseModel):
    id: int
    name: Optional[str] = None
    chapterNumber: float
    scanlator: Optional[str] = None
    uploadDate: str
    url: str
    realUrl: Optional[str] = None


class SuwayomiMangaRef(BaseModel):
    id: int
    title: str
    url: str


class SuwayomiClient:
    """
    Thin wrapper over ``POST {base}/api/graphql``.

    Every result is validated with pydantic; GraphQL errors and schema
    mismatches surface as SourceFetchError / SourceSchemaError.
    """

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client: Optional[httpx.AsyncClient] = None
        self._client_loop = None

    @property
    def client(self) -> httpx.AsyncClient:
        loop = asyncio.get_running_loop()
        if self._http_client is None or self._client_loop is not loop:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            self._client_loop = loop
        return self._http_client

    async def close(self):
        if self._http_client is not None and self._client_loop is asyncio.get_running_loop():
            await self._http_client.aclose()
        self._http_client = None
        self._client_loop = None

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self.client.post(
                f"{self.base_url}/api/graphql",
                json={"query": query, "variables": variables or {}},
            )
        except httpx.HTTPError as e:
            raise SourceFetchError(f"Suwayomi GraphQL request failed: {e}") from e

        if response.status_code >= 400:
            raise SourceFetchError(f"Suwayomi GraphQL request failed: HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise SourceSchemaError("Suwayomi returned invalid JSON") from e

        errors = body.get("errors") or []
        if errors:
            messages = ", ".join(error.get("message", "unknown") for error in errors)
            raise SourceFetchError(f"Suwayomi GraphQL error: {messages}")

        data = body.get("data")
        if not data:
            raise SourceSchemaError("Suwayomi GraphQL response missing data")
        return data

    @staticmethod
    def _parse(model, value):
        try:
            if isinstance(value, list):
                return [model.model_validate(item) for item in value]
            return model.model_validate(value)
        except ValidationError as e:
            raise SourceSchemaError(f"Unexpected Suwayomi response: {e}") from e

    async def get_sources(self) -> List[SuwayomiSourceInfo]:
        data = await self.graphql(queries.SOURCES)
        return self._parse(SuwayomiSourceInfo, data["sources"]["nodes"])

    async def search_manga(self, source_id: str, query: str, page: int, kind: str = "SEARCH") -> SuwayomiMangaPage:
        """
        List manga of one Suwayomi source.

        Args:
            kind: SEARCH, POPULAR or LATEST
        """
        data = await self.graphql(
            queries.FETCH_SOURCE_MANGA,
            {"input": {"source": source_id, "type": kind, "query": query, "page": page}},
        )
        return self._parse(SuwayomiMangaPage, data["fetchSourceManga"])

    async def fetch_manga(self, manga_id: int) -> SuwayomiManga:
        data = await self.graphql(queries.FETCH_MANGA, {"id": manga_id})
        return self._parse(SuwayomiManga, data["fetchManga"]["manga"])

    async def fetch_chapters(self, manga_id: int) -> List[SuwayomiChapter]:
        data = await self.graphql(queries.FETCH_CHAPTERS, {"mangaId": manga_id})
        return self._parse(SuwayomiChapter, data["fetchChapters"]["chapters"])

    async def fetch_chapter_pages(self, chapter_id: int) -> List[str]:
        data = await self.graphql(queries.FETCH_CHAPTER_PAGES, {"chapterId": chapter_id})
        return list(data["fetchChapterPages"]["pages"])

    async def find_manga_by_url(self, source_id: str, url: str) -> Optional[SuwayomiMangaRef]:
        """Look a manga up in Suwayomi's cache; None when it was never fetched."""
        data = await self.graphql(queries.MANGA_BY_URL, {"sourceId": source_id, "url": url})
        nodes = data["mangas"]["nodes"]
        return self._parse(SuwayomiMangaRef, nodes[0]) if nodes else None
