"""
WeebCentral adapter.

WeebCentral is an HTML-only catalog. Listings come from the HTMX search
endpoint, details and chapter lists from the series pages. Chapter titles
carry season markers ("S2 Episode 14") that are folded into cumulative
chapter numbers.

When WEEBCENTRAL_USE_BYPARR is set, every page is rendered through the
Byparr proxy instead of being fetched directly.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urlencode, urljoin, urlparse

from bs4 import BeautifulSoup
from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from catalog.exceptions import SourceSchemaError
from catalog.sources.byparr import ByparrClient
from catalog.sources.core import (
    SearchFilters,
    SourceChapter,
    SourceChaptersResult,
    SourceFilterOrder,
    SourceFilterSort,
    SourceInfo,
    SourceLanguage,
    SourcePage,
    SourcePaginatedResponse,
    SourceSerie,
    SourceSerieSummary,
    SourceSerieType,
    SupportedFilters,
)
from catalog.sources.http import HttpSource
from catalog.sources.weebcentral import vocabulary
from catalog.utils.chapters import assign_seasoned_chapter_numbers, calculate_missing_chapters

logger = logging.getLogger(__name__)

BASE_URL = "https://weebcentral.com"
SEARCH_LIMIT = 32
NEXT_PAGE_MARKER = "View More Results.."
SERIES_PATH = re.compile(r"^/series/([^/]+)(?:/|$)")
CHAPTER_PATH = re.compile(r"/chapters/([^/?#]+)")
PAGE_ALT = re.compile(r"Page (\d+)")


class WeebCentral(HttpSource):
    def __init__(self, timeout: Optional[float] = None, byparr: Optional[ByparrClient] = None):
        self._info = SourceInfo(
            id="weebcentral",
            name="WeebCentral",
            url=BASE_URL,
            icon=f"{BASE_URL}/favicon.ico",
            version="1.0.0",
            nsfw=True,
            languages=[SourceLanguage.EN],
            search_filters=SupportedFilters(
                query=True,
                artists=True,
                authors=True,
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
            api_url=BASE_URL,
            headers={
                "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:71.0) Gecko/20100101 Firefox/77.0",
            },
            can_block_scraping=True,
            minimum_update_interval=300 * 60,
            timeout=30,
            rate_limit_max=1,
            rate_limit_duration=10_000,
        )
        super().__init__(timeout=timeout)

        if byparr is None and getattr(settings, "WEEBCENTRAL_USE_BYPARR", False):
            byparr = ByparrClient()
        self.byparr = byparr

    def info(self) -> SourceInfo:
        return self._info

    def serie_url(self, serie_id: str) -> str:
        return f"{BASE_URL}/series/{serie_id}"

    def parse_url(self, url: str) -> Optional[str]:
        try:
            parsed = urlparse(url)
        except ValueError:
            return None
        if not parsed.hostname or not parsed.hostname.endswith("weebcentral.com"):
            return None
        match = SERIES_PATH.match(parsed.path)
        return match.group(1) if match else None

    async def close(self):
        await super().close()
        if self.byparr is not None:
            await self.byparr.close()

    async def _fetch_html(self, url: str) -> str:
        if self.byparr is None:
            return await self.get_text(url)

        await self.rate_limiter.acquire()
        solution = await self.byparr.get(url)
        return solution.response

    def _search_url(self, page: int, filters: SearchFilters) -> str:
        params = [
            ("limit", SEARCH_LIMIT),
            ("offset", (page - 1) * SEARCH_LIMIT),
            ("official", "Any"),
            ("display_mode", "Full Display"),
        ]

        if filters.query:
            params.append(("text", filters.query))
        if filters.sort:
            params.append(("sort", vocabulary.SORT.to_native(filters.sort)))
        if filters.order:
            params.append(("order", vocabulary.ORDER.to_native(filters.order)))
        for serie_type in filters.types or []:
            params.append(("included_type", vocabulary.TYPES.to_native(serie_type)))
        for status in filters.status or []:
            params.append(("included_status", vocabulary.STATUS.to_native(status)))
        for genre in dict.fromkeys(filters.genres_include or []):
            params.append(("included_tag", vocabulary.GENRES.to_native(genre)))
        for genre in dict.fromkeys(filters.genres_exclude or []):
            params.append(("excluded_tag", vocabulary.GENRES.to_native(genre)))
        for name in (filters.authors or []) + (filters.artists or []):
            params.append(("author", name))

        return f"{BASE_URL}/search/data?{urlencode(params)}"

    async def fetch_search(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        html = await self._fetch_html(self._search_url(page, filters or SearchFilters()))
        return self.parse_search(html)

    def parse_search(self, html: str) -> SourcePaginatedResponse:
        soup = BeautifulSoup(html, "html.parser")
        items: List[SourceSerieSummary] = []

        for article in soup.select("article.bg-base-300"):
            link = article.select_one("section.hidden.lg\\:block a[href*='/series/']")
            if link is None or not link.get("href"):
                continue

            match = re.search(r"/series/([^/]+)", link["href"])
            if not match:
                continue

            title = link.get_text(strip=True)
            if not title and link.parent is not None:
                title = link.parent.get("data-tip", "")

            picture = article.find("picture")
            cover = None
            if picture is not None:
                webp = picture.select_one("source[type='image/webp']")
                img = picture.find("img")
                if webp is not None and webp.get("srcset"):
                    cover = webp["srcset"]
                elif img is not None and img.get("src"):
                    cover = img["src"]
            if not cover:
                raise SourceSchemaError(f"WeebCentral listing without cover: {match.group(1)}")

            items.append(
                SourceSerieSummary(
                    id=match.group(1),
                    title={SourceLanguage.EN.value: [title or "Unknown"]},
                    cover=urljoin(BASE_URL, cover),
                )
            )

        return SourcePaginatedResponse(items=items, has_next_page=NEXT_PAGE_MARKER in html)

    async def fetch_popular(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        return await self.fetch_search(
            page, SearchFilters(sort=SourceFilterSort.POPULARITY, order=SourceFilterOrder.DESC)
        )

    async def fetch_latest(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        return await self.fetch_search(
            page, SearchFilters(sort=SourceFilterSort.LATEST, order=SourceFilterOrder.DESC)
        )

    async def fetch_serie_detail(self, serie_id: str) -> SourceSerie:
        html = await self._fetch_html(self.serie_url(serie_id))
        return self.parse_serie_detail(serie_id, html)

    def parse_serie_detail(self, serie_id: str, html: str) -> SourceSerie:
        soup = BeautifulSoup(html, "html.parser")
        en = SourceLanguage.EN.value

        h1 = soup.find("h1")
        title_text = h1.get_text(strip=True) if h1 else ""
        if not title_text:
            raise SourceSchemaError(f"WeebCentral serie page without title: {serie_id}")

        cover = None
        cover_img = soup.select_one("img[alt*='cover']")
        if cover_img is not None and cover_img.get("src"):
            cover = cover_img["src"]
        else:
            webp = soup.select_one("picture source[type='image/webp']")
            if webp is not None:
                cover = webp.get("srcset")

        synopsis_node = soup.select_one("p.whitespace-pre-wrap")
        synopsis_text = synopsis_node.get_text(strip=True) if synopsis_node else ""

        alternates = []
        alt_li = soup.select_one("li:-soup-contains('Associated Name(s)')")
        if alt_li is not None:
            alternates = [li.get_text(strip=True) for li in alt_li.select("ul.list-disc li")]
            alternates = [name for name in alternates if name]

        authors = []
        authors_li = soup.select_one("li:-soup-contains('Author(s):')")
        if authors_li is not None:
            for link in authors_li.select("a[href*='/search?author=']"):
                name = link.get_text(strip=True).rstrip(",")
                if name:
                    authors.append(name)

        genres = []
        tags_li = soup.select_one("li:-soup-contains('Tags(s):')")
        if tags_li is not None:
            for link in tags_li.select("a[href*='/search?included_tag=']"):
                genre = vocabulary.GENRES.get_canonical(link.get_text(strip=True))
                if genre is not None:
                    genres.append(genre)

        status = []
        status_li = soup.select_one("li:-soup-contains('Status:')")
        if status_li is not None:
            for link in status_li.find_all("a"):
                status.append(vocabulary.STATUS.to_canonical(link.get_text(strip=True)))

        serie_type = SourceSerieType.MANGA
        type_li = soup.select_one("li:-soup-contains('Type:')")
        if type_li is not None:
            for link in type_li.find_all("a"):
                serie_type = vocabulary.TYPES.to_canonical(link.get_text(strip=True))

        return SourceSerie(
            id=serie_id,
            title={en: [title_text]},
            cover=urljoin(BASE_URL, cover) if cover else "",
            alternates_titles={en: alternates} if alternates else {},
            synopsis={en: [synopsis_text]} if synopsis_text else {},
            status=status,
            type=serie_type,
            genres=genres,
            authors=authors,
            artists=list(authors),
            external_url=self.serie_url(serie_id),
        )

    async def fetch_serie_chapters(self, serie_id: str) -> SourceChaptersResult:
        html = await self._fetch_html(f"{BASE_URL}/series/{serie_id}/full-chapter-list")
        return self.parse_chapters(html)

    def parse_chapters(self, html: str) -> SourceChaptersResult:
        soup = BeautifulSoup(html, "html.parser")
        rows = []

        for row in soup.select("div.flex.items-center"):
            link = row.select_one("a[href*='/chapters/']")
            if link is None or not link.get("href"):
                continue
            match = CHAPTER_PATH.search(link["href"])
            if not match:
                continue

            title_span = link.select_one("span.grow span")
            title = title_span.get_text(strip=True) if title_span else ""

            time_node = row.find("time")
            uploaded = parse_datetime(time_node["datetime"]) if time_node and time_node.get("datetime") else None

            rows.append((match.group(1), title, uploaded or timezone.now(), urljoin(BASE_URL, link["href"])))

        numbering = assign_seasoned_chapter_numbers([title for _, title, _, _ in rows], len(rows))

        chapters = [
            SourceChapter(
                id=chapter_id,
                title={SourceLanguage.EN.value: [title]},
                chapter_number=numbers.chapter_number,
                language=SourceLanguage.EN,
                date_upload=uploaded,
                volume_number=numbers.volume_number,
                volume_name=numbers.volume_name,
                external_url=url,
            )
            for (chapter_id, title, uploaded, url), numbers in zip(rows, numbering)
        ]

        return SourceChaptersResult(
            chapters=chapters,
            missing_chapters=calculate_missing_chapters(c.chapter_number for c in chapters),
        )

    async def fetch_chapter_data(self, serie_id: str, chapter_id: str) -> List[SourcePage]:
        html = await self._fetch_html(f"{BASE_URL}/chapters/{chapter_id}/images?reading_style=long_strip")
        return self.parse_pages(html)

    def parse_pages(self, html: str) -> List[SourcePage]:
        soup = BeautifulSoup(html, "html.parser")
        pages: List[SourcePage] = []

        for img in soup.find_all("img"):
            src = img.get("src")
            if not src:
                continue
            index = len(pages) + 1
            match = PAGE_ALT.search(img.get("alt") or "")
            if match:
                index = int(match.group(1))
            pages.append(SourcePage(index=index, url=urljoin(BASE_URL, src)))

        return pages
