"""
MangaDex adapter.

Talks to the public REST API at api.mangadex.org. Every response is
validated with the pydantic schemas in parser.py; a schema mismatch or a
non-"ok" result is reported as SourceSchemaError.
"""

import asyncio
import logging
import re
from typing import List, Optional
from urllib.parse import urlencode, urlparse

from pydantic import BaseModel, ValidationError

from catalog.exceptions import SourceSchemaError
from catalog.sources.core import (
    SearchFilters,
    SourceChaptersResult,
    SourceFilterOrder,
    SourceFilterSort,
    SourceInfo,
    SourcePage,
    SourcePaginatedResponse,
    SourceSerie,
    SourceSerieType,
    SupportedFilters,
    enabled_languages,
)
from catalog.sources.http import HttpSource
from catalog.sources.mangadex import parser, vocabulary
from catalog.utils.chapters import calculate_missing_chapters

logger = logging.getLogger(__name__)

API_URL = "https://api.mangadex.org"
SITE_URL = "https://mangadex.org"
SEARCH_LIMIT = 20
LATEST_LIMIT = 100
FEED_LIMIT = 500
FEED_PAUSE_SECONDS = 0.5
CONTENT_RATINGS = ("safe", "suggestive", "erotica")
TITLE_PATH = re.compile(r"^/title/([a-f0-9-]{36})(?:/|$)", re.IGNORECASE)


class Mangadex(HttpSource):
    def __init__(self, timeout: Optional[float] = None):
        self._info = SourceInfo(
            id="mangadex",
            name="Mangadex",
            url=SITE_URL,
            icon=f"{SITE_URL}/favicon.ico",
            version="1.0.0",
            nsfw=True,
            languages=vocabulary.LANGUAGES.accepted,
            search_filters=SupportedFilters(
                query=True,
                genres_include=True,
                genres_exclude=True,
                genres=vocabulary.GENRES.accepted,
                sort=vocabulary.SORT.accepted,
                order=vocabulary.ORDER.accepted,
                status=vocabulary.STATUS.accepted,
                types=[
                    SourceSerieType.DOUJINSHI,
                    SourceSerieType.MANGA,
                    SourceSerieType.MANHWA,
                    SourceSerieType.MANHUA,
                    SourceSerieType.COMIC,
                ],
            ),
            api_url=API_URL,
            headers={
                "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:71.0) Gecko/20100101 Firefox/77.0",
            },
            can_block_scraping=True,
            minimum_update_interval=300 * 60,
            timeout=30,
            rate_limit_max=5,
            rate_limit_duration=60_000,
        )
        super().__init__(timeout=timeout)

    def info(self) -> SourceInfo:
        return self._info

    @property
    def translated_languages(self) -> List[str]:
        return [vocabulary.LANGUAGES.to_native(lang) for lang in enabled_languages(self._info.languages)]

    def serie_url(self, serie_id: str) -> str:
        return f"{SITE_URL}/title/{serie_id}"

    def parse_url(self, url: str) -> Optional[str]:
        try:
            parsed = urlparse(url)
        except ValueError:
            return None
        if not parsed.hostname or not parsed.hostname.endswith("mangadex.org"):
            return None
        match = TITLE_PATH.match(parsed.path)
        return match.group(1) if match else None

    async def _get_model(self, path: str, params, model: type) -> BaseModel:
        data = await self.get_json(f"{API_URL}/{path}?{urlencode(params)}")
        try:
            response = model.model_validate(data)
        except ValidationError as e:
            raise SourceSchemaError(f"Unexpected MangaDex response for {path}: {e}") from e
        if response.result != "ok":
            raise SourceSchemaError(f"MangaDex API error: {response.result}")
        return response

    async def fetch_search(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        filters = filters or SearchFilters()
        params = [
            ("limit", SEARCH_LIMIT),
            ("offset", (page - 1) * SEARCH_LIMIT),
            ("includedTagsMode", "AND"),
            ("excludedTagsMode", "OR"),
            ("includes[]", "cover_art"),
        ]
        params.extend(("contentRating[]", rating) for rating in CONTENT_RATINGS)

        if filters.only_enabled_translation:
            params.extend(("availableTranslatedLanguage[]", lang) for lang in self.translated_languages)
        if filters.query:
            params.append(("title", filters.query))
        if filters.sort and filters.order:
            params.append(
                (f"order[{vocabulary.SORT.to_native(filters.sort)}]", vocabulary.ORDER.to_native(filters.order))
            )
        for genre in dict.fromkeys(filters.genres_include or []):
            params.append(("includedTags[]", vocabulary.GENRES.to_native(genre)))
        for genre in dict.fromkeys(filters.genres_exclude or []):
            params.append(("excludedTags[]", vocabulary.GENRES.to_native(genre)))
        for status in filters.status or []:
            params.append(("status[]", vocabulary.STATUS.to_native(status)))

        response = await self._get_model("manga", params, parser.MangaListResponse)
        return SourcePaginatedResponse(
            items=[parser.to_summary(manga) for manga in response.data],
            has_next_page=response.has_next_page,
        )

    async def fetch_popular(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        return await self.fetch_search(
            page, SearchFilters(sort=SourceFilterSort.POPULARITY, order=SourceFilterOrder.DESC)
        )

    async def fetch_latest(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        """
        Series ordered by their most recent chapter in an enabled language.

        The chapter feed is read first, then the distinct manga ids are
        resolved in one batch and returned in feed order.
        """
        chapter_params = [
            ("limit", LATEST_LIMIT),
            ("offset", (page - 1) * LATEST_LIMIT),
            ("order[publishAt]", "desc"),
            ("includeFutureUpdates", "0"),
            ("includeFuturePublishAt", "0"),
            ("includeEmptyPages", "0"),
        ]
        chapter_params.extend(("contentRating[]", rating) for rating in CONTENT_RATINGS)
        chapter_params.extend(("translatedLanguage[]", lang) for lang in self.translated_languages)

        chapters = await self._get_model("chapter", chapter_params, parser.LatestChaptersResponse)

        manga_ids = list(dict.fromkeys(c.manga_id for c in chapters.data if c.manga_id))
        if not manga_ids:
            return SourcePaginatedResponse(items=[], has_next_page=False)

        manga_params = [("includes[]", "cover_art"), ("limit", len(manga_ids))]
        manga_params.extend(("contentRating[]", rating) for rating in CONTENT_RATINGS)
        manga_params.extend(("ids[]", manga_id) for manga_id in manga_ids)

        mangas = await self._get_model("manga", manga_params, parser.MangaListResponse)
        by_id = {manga.id: manga for manga in mangas.data}

        return SourcePaginatedResponse(
            items=[parser.to_summary(by_id[manga_id]) for manga_id in manga_ids if manga_id in by_id],
            has_next_page=chapters.offset + chapters.limit < chapters.total,
        )

    async def fetch_serie_detail(self, serie_id: str) -> SourceSerie:
        params = [("includes[]", "author"), ("includes[]", "artist"), ("includes[]", "cover_art")]
        response = await self._get_model(f"manga/{serie_id}", params, parser.MangaResponse)
        return parser.to_serie(response.data, external_url=self.serie_url(serie_id))

    async def fetch_serie_chapters(self, serie_id: str) -> SourceChaptersResult:
        chapters = []
        offset = 0

        while True:
            params = [
                ("order[volume]", "desc"),
                ("order[chapter]", "desc"),
                ("limit", FEED_LIMIT),
                ("offset", offset),
                ("includes[]", "scanlation_group"),
            ]
            params.extend(("translatedLanguage[]", lang) for lang in self.translated_languages)

            response = await self._get_model(f"manga/{serie_id}/feed", params, parser.ChapterListResponse)
            for entry in response.data:
                chapter = parser.to_chapter(entry)
                if chapter is not None:
                    chapters.append(chapter)

            if offset + FEED_LIMIT >= response.total:
                break

            offset += FEED_LIMIT
            await asyncio.sleep(FEED_PAUSE_SECONDS)

        logger.debug(f"MangaDex {serie_id}: {len(chapters)} chapters")
        return SourceChaptersResult(
            chapters=chapters,
            missing_chapters=calculate_missing_chapters(c.chapter_number for c in chapters),
        )

    async def fetch_chapter_data(self, serie_id: str, chapter_id: str) -> List[SourcePage]:
        response = await self._get_model(
            f"at-home/server/{chapter_id}", [("forcePort443", "false")], parser.AtHomeResponse
        )
        if response.chapter is None:
            raise SourceSchemaError(f"MangaDex returned no pages for chapter {chapter_id}")
        return parser.to_pages(response)
