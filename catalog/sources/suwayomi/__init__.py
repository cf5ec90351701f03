"""
Suwayomi adapters.

A Suwayomi server hosts many catalog extensions; each extension becomes
one adapter with id ``suwayomi-{source id}``. Serie ids are
``{source id}:{url path}``, which stays stable when Suwayomi's own numeric
manga ids change (cache wipes, reinstalls). The numeric id is resolved
lazily and cached in-process.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone as dt_timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from django.conf import settings

from catalog.exceptions import NotFoundError
from catalog.sources.core import (
    SearchFilters,
    SourceChapter,
    SourceChaptersResult,
    SourceInfo,
    SourcePage,
    SourcePaginatedResponse,
    SourceProvider,
    SourceScanlationGroup,
    SourceSerie,
    SourceSerieSummary,
    SupportedFilters,
)
from catalog.sources.http import RateLimiter
from catalog.sources.suwayomi import vocabulary
from catalog.sources.suwayomi.client import (
    SuwayomiChapter,
    SuwayomiClient,
    SuwayomiManga,
    SuwayomiMangaPage,
    SuwayomiSourceInfo,
)

logger = logging.getLogger(__name__)

UNKNOWN_BASE_URL = "https://unknown.local"
LOCAL_SOURCE_ID = "0"
LOCAL_SOURCE_NAME = "Local source"


def split_serie_id(serie_id: str) -> Tuple[str, str]:
    source_id, _, url_path = serie_id.partition(":")
    return source_id, url_path


def search_term_from_path(url_path: str) -> str:
    """Turn the last slug of a path into a search query."""
    parts = [part for part in url_path.split("/") if part]
    slug = parts[-1] if parts else ""
    return slug.replace("-", " ").replace("_", " ")


class SuwayomiSource(SourceProvider):
    def __init__(self, client: SuwayomiClient, source: SuwayomiSourceInfo):
        self.client = client
        self.suwayomi_source_id = source.id
        self.language = vocabulary.language(source.lang)
        self.discovered_base_url: Optional[str] = None
        self._manga_ids: Dict[str, int] = {}

        self._info = SourceInfo(
            id=f"suwayomi-{source.id}",
            name=f"{source.name} (Suwayomi)",
            url=UNKNOWN_BASE_URL,
            icon=f"{client.base_url}{source.iconUrl}",
            version="1.0.0",
            nsfw=source.isNsfw,
            languages=[self.language],
            search_filters=SupportedFilters(query=True),
            api_url=client.base_url,
            minimum_update_interval=3600,
            timeout=30,
            can_block_scraping=False,
            rate_limit_max=10,
            rate_limit_duration=60_000,
        )
        self.rate_limiter = RateLimiter(self._info.rate_limit_max, self._info.rate_limit_duration)

    def info(self) -> SourceInfo:
        if self.discovered_base_url:
            return replace(self._info, url=self.discovered_base_url)
        return self._info

    def serie_url(self, serie_id: str) -> str:
        _, url_path = split_serie_id(serie_id)
        return urljoin(self.discovered_base_url or UNKNOWN_BASE_URL, url_path)

    def parse_url(self, url: str) -> Optional[str]:
        if not self.discovered_base_url:
            return None
        try:
            parsed = urlparse(url)
        except ValueError:
            return None
        if parsed.netloc and parsed.netloc == urlparse(self.discovered_base_url).netloc:
            return f"{self.suwayomi_source_id}:{parsed.path}"
        return None

    async def close(self):
        await self.client.close()

    def _absolute(self, path: Optional[str]) -> str:
        if not path:
            return ""
        return path if path.startswith("http") else f"{self.client.base_url}{path}"

    def _page(self, result: SuwayomiMangaPage) -> SourcePaginatedResponse:
        return SourcePaginatedResponse(
            items=[
                SourceSerieSummary(
                    id=f"{self.suwayomi_source_id}:{manga.url}",
                    title={self.language.value: [manga.title]},
                    cover=self._absolute(manga.thumbnailUrl),
                )
                for manga in result.mangas
            ],
            has_next_page=result.hasNextPage,
        )

    async def _search(self, query: str, page: int, kind: str) -> SourcePaginatedResponse:
        await self.rate_limiter.acquire()
        return self._page(await self.client.search_manga(self.suwayomi_source_id, query, page, kind))

    async def fetch_popular(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        return await self._search("", page, "POPULAR")

    async def fetch_latest(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        return await self._search("", page, "LATEST")

    async def fetch_search(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        query = filters.query if filters and filters.query else ""
        return await self._search(query, page, "SEARCH")

    async def resolve_manga_id(self, serie_id: str) -> int:
        """
        Map a stable serie id onto Suwayomi's numeric manga id.

        Order: in-process cache, exact URL lookup in Suwayomi's database,
        then a search by slug that must return the exact URL.

        Raises:
            NotFoundError: If no manga with this URL can be found
        """
        if serie_id in self._manga_ids:
            return self._manga_ids[serie_id]

        source_id, url_path = split_serie_id(serie_id)

        await self.rate_limiter.acquire()
        manga = await self.client.find_manga_by_url(source_id, url_path)
        if manga is not None and manga.url == url_path:
            self._manga_ids[serie_id] = manga.id
            return manga.id

        await self.rate_limiter.acquire()
        results = await self.client.search_manga(source_id, search_term_from_path(url_path), 1, "SEARCH")
        for candidate in results.mangas:
            if candidate.url == url_path:
                self._manga_ids[serie_id] = candidate.id
                return candidate.id

        raise NotFoundError(f"Could not resolve manga for {serie_id} - no exact URL match found")

    async def fetch_serie_detail(self, serie_id: str) -> SourceSerie:
        manga_id = await self.resolve_manga_id(serie_id)
        await self.rate_limiter.acquire()
        manga = await self.client.fetch_manga(manga_id)
        return self._serie(manga, serie_id)

    def _serie(self, manga: SuwayomiManga, serie_id: str) -> SourceSerie:
        lang = self.language.value

        if not self.discovered_base_url and manga.realUrl:
            parsed = urlparse(manga.realUrl)
            if parsed.scheme and parsed.netloc:
                self.discovered_base_url = f"{parsed.scheme}://{parsed.netloc}"

        genres = []
        for label in manga.genre:
            canonical = vocabulary.genre(label)
            if canonical not in genres:
                genres.append(canonical)

        return SourceSerie(
            id=serie_id,
            title={lang: [manga.title]},
            cover=self._absolute(manga.thumbnailUrl),
            synopsis={lang: [manga.description]} if manga.description else {},
            status=[vocabulary.status(manga.status)],
            type=vocabulary.infer_type(manga.genre),
            genres=genres,
            authors=[manga.author] if manga.author else [],
            artists=[manga.artist] if manga.artist else [],
            external_url=manga.realUrl,
        )

    async def fetch_serie_chapters(self, serie_id: str) -> SourceChaptersResult:
        manga_id = await self.resolve_manga_id(serie_id)
        await self.rate_limiter.acquire()
        chapters = await self.client.fetch_chapters(manga_id)
        return SourceChaptersResult(chapters=[self._chapter(chapter) for chapter in chapters], missing_chapters=[])

    def _chapter(self, chapter: SuwayomiChapter) -> SourceChapter:
        lang = self.language.value
        uploaded = datetime.fromtimestamp(int(chapter.uploadDate or 0) / 1000, tz=dt_timezone.utc)
        external_url = chapter.realUrl or urljoin(self.discovered_base_url or UNKNOWN_BASE_URL, chapter.url)

        return SourceChapter(
            id=str(chapter.id),
            title={lang: [chapter.name]} if chapter.name else {},
            chapter_number=chapter.chapterNumber,
            language=self.language,
            date_upload=uploaded,
            external_url=external_url,
            groups=[SourceScanlationGroup(id=chapter.scanlator, name=chapter.scanlator)] if chapter.scanlator else [],
        )

    async def fetch_chapter_data(self, serie_id: str, chapter_id: str) -> List[SourcePage]:
        await self.rate_limiter.acquire()
        pages = await self.client.fetch_chapter_pages(int(chapter_id))
        return [SourcePage(index=index, url=self._absolute(url)) for index, url in enumerate(pages, start=1)]


async def create_suwayomi_sources(
    client: SuwayomiClient,
    native_sources: List[SourceProvider],
) -> List[SuwayomiSource]:
    """
    Build one adapter per usable Suwayomi extension.

    Skips the local source, extensions named like a native adapter
    (case-insensitive), extensions outside ENABLED_LANGUAGES and ids listed
    in SUWAYOMI_DISABLED_SOURCES.
    """
    native_names = {source.info().name.lower() for source in native_sources}
    enabled = set(getattr(settings, "ENABLED_LANGUAGES", ["En"]))
    disabled = set(getattr(settings, "SUWAYOMI_DISABLED_SOURCES", []))

    sources = []
    for source in await client.get_sources():
        if source.id == LOCAL_SOURCE_ID or source.name == LOCAL_SOURCE_NAME:
            continue
        if source.name.lower() in native_names:
            continue
        if vocabulary.language(source.lang).value not in enabled:
            continue
        if source.id in disabled:
            continue
        sources.append(SuwayomiSource(client, source))

    logger.info(f"Loaded {len(sources)} Suwayomi sources from {client.base_url}")
    return sources
