"""
JapScan adapter.

JapScan sits behind an anti-bot wall, so every request goes through the
Byparr browser proxy. Serie ids keep the type prefix of the site's paths
("manga/one-piece", "manhwa/solo-leveling").

Chapter image URLs are assembled by obfuscated page scripts. An init
script installs a setter on Object.prototype.imagesLink before any page
script runs and the captured list is read back once the page has loaded.
"""

import json
import logging
import re
from datetime import datetime
from typing import List, Optional
from urllib.parse import quote, urljoin, urlparse

from bs4 import BeautifulSoup
from django.utils import timezone

from catalog.exceptions import SourceFetchError, SourceSchemaError
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
    SourceProvider,
    SourceSerie,
    SourceSerieStatus,
    SourceSerieSummary,
    SupportedFilters,
)
from catalog.sources.http import RateLimiter
from catalog.sources.japscan import vocabulary
from catalog.utils.chapters import calculate_missing_chapters

logger = logging.getLogger(__name__)

BASE_URL = "https://www.japscan.vip"
CDN_HOST = "japscan.vip"
LISTING_TIMEOUT_MS = 30000
CHAPTER_TIMEOUT_MS = 60000
SERIE_PATH = re.compile(r"^/(manga|manhwa|manhua)/([^/]+)(?:/|$)")
SKIPPED_BADGES = ("SPOILER", "RAW", "VUS")
CHAPTER_PREFIXES = ("/manga/", "/manhua/", "/manhwa/")
NUMBER = re.compile(r"(\d+(?:\.\d+)?)")

CAPTURE_IMAGES_SCRIPT = """
window.__capturedImagesLink = null;
Object.defineProperty(Object.prototype, 'imagesLink', {
    set: function(value) {
        window.__capturedImagesLink = value;
        Object.defineProperty(this, '_imagesLink', {
            value: value, writable: true, enumerable: false, configurable: true
        });
    },
    get: function() { return this._imagesLink; },
    enumerable: false,
    configurable: true
});
"""
READ_IMAGES_SCRIPT = "window.__capturedImagesLink"


def _absolute(url: str) -> str:
    return url if url.startswith("http") else urljoin(BASE_URL, url)


def _path_id(href: str) -> str:
    return href.strip("/")


class Japscan(SourceProvider):
    def __init__(self, byparr: Optional[ByparrClient] = None):
        self._info = SourceInfo(
            id="japscan",
            name="Japscan",
            url=BASE_URL,
            icon="https://www.google.com/s2/favicons?domain=japscan.vip&sz=64",
            version="1.0.0",
            nsfw=False,
            languages=[SourceLanguage.FR],
            search_filters=SupportedFilters(
                query=True,
                genres=vocabulary.GENRES.accepted,
                sort=vocabulary.SORT.accepted,
                order=vocabulary.ORDER.accepted,
                status=vocabulary.STATUS.accepted,
            ),
            api_url=BASE_URL,
            headers={
                "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:71.0) Gecko/20100101 Firefox/77.0",
                "Referer": f"{BASE_URL}/",
            },
            can_block_scraping=True,
            minimum_update_interval=300 * 60,
            timeout=60,
            rate_limit_max=1,
            rate_limit_duration=5000,
        )
        self.byparr = byparr or ByparrClient()
        self.rate_limiter = RateLimiter(self._info.rate_limit_max, self._info.rate_limit_duration)

    def info(self) -> SourceInfo:
        return self._info

    def serie_url(self, serie_id: str) -> str:
        return f"{BASE_URL}/{serie_id}/"

    def parse_url(self, url: str) -> Optional[str]:
        try:
            parsed = urlparse(url)
        except ValueError:
            return None
        if not parsed.hostname or not parsed.hostname.endswith("japscan.vip"):
            return None
        match = SERIE_PATH.match(parsed.path)
        return f"{match.group(1)}/{match.group(2)}" if match else None

    async def close(self):
        await self.byparr.close()

    async def _render(self, url: str, **kwargs):
        await self.rate_limiter.acquire()
        return await self.byparr.get(url, **kwargs)

    async def fetch_search(
        self, page: int, filters: Optional[SearchFilters] = None
    ) -> SourcePaginatedResponse:
        filters = filters or SearchFilters()

        if filters.query:
            await self.rate_limiter.acquire()
            solution = await self.byparr.post(
                f"{BASE_URL}/ls/",
                f"search={quote(filters.query)}",
                max_timeout=LISTING_TIMEOUT_MS,
            )
            return self.parse_quick_search(solution.response)

        sort = vocabulary.SORT.to_native(filters.sort) if filters.sort else "popular"
        solution = await self._render(f"{BASE_URL}/mangas/?sort={sort}&p={page}", max_timeout=LISTING_TIMEOUT_MS)
        return self.parse_listing(solution.response)

    def parse_quick_search(self, body: str) -> SourcePaginatedResponse:
        try:
            results = json.loads(body)
        except ValueError as e:
            raise SourceSchemaError("JapScan quick search returned invalid JSON") from e

        items = [
            SourceSerieSummary(
                id=_path_id(result["url"]),
                title={SourceLanguage.FR.value: [result["name"]]},
                cover=_absolute(result["image"]),
            )
            for result in results
            if result.get("url") and result.get("image")
        ]
        return SourcePaginatedResponse(items=items, has_next_page=False)

    def parse_listing(self, html: str) -> SourcePaginatedResponse:
        soup = BeautifulSoup(html, "html.parser")
        items = []

        for block in soup.select(".mangas-list .manga-block"):
            link = block.find("a")
            if link is None or not link.get("href"):
                continue
            img = link.find("img")
            cover = (img.get("data-src") or img.get("src")) if img is not None else None
            serie_id = _path_id(link["href"])
            if not serie_id or not cover:
                continue
            items.append(
                SourceSerieSummary(
                    id=serie_id,
                    title={SourceLanguage.FR.value: [link.get_text(strip=True)]},
                    cover=_absolute(cover),
                )
            )

        has_next_page = bool(soup.select(".pagination > li:last-child:not(.disabled)"))
        return SourcePaginatedResponse(items=items, has_next_page=has_next_page)

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

    async def _serie_page(self, serie_id: str) -> BeautifulSoup:
        solution = await self._render(self.serie_url(serie_id), max_timeout=LISTING_TIMEOUT_MS)
        soup = BeautifulSoup(solution.response, "html.parser")

        page_title = soup.title.get_text(strip=True) if soup.title else ""
        h1 = soup.find("h1")
        h1_text = h1.get_text(strip=True) if h1 else ""
        if not page_title or h1_text == "Oops!" or "lost.gif" in solution.response:
            raise SourceFetchError(
                f'Japscan returned error page for {serie_id}. Title: "{page_title}", H1: "{h1_text}"'
            )
        return soup

    async def fetch_serie_detail(self, serie_id: str) -> SourceSerie:
        soup = await self._serie_page(serie_id)
        return self.parse_serie_detail(serie_id, soup)

    def parse_serie_detail(self, serie_id: str, soup: BeautifulSoup) -> SourceSerie:
        fr = SourceLanguage.FR.value
        card = soup.select_one("#main .card-body") or soup
        h1 = soup.find("h1")
        title = h1.get_text(strip=True) if h1 else ""

        img = card.find("img")
        cover = (img.get("data-src") or img.get("src")) if img is not None else None

        fields = {}
        genres = []
        alternates: List[str] = []
        for paragraph in card.find_all("p"):
            label, sep, value = paragraph.get_text(" ", strip=True).partition(":")
            if not sep:
                continue
            label, value = label.strip(), value.strip()

            if "Genre" in label:
                for name in value.split(","):
                    genre = vocabulary.GENRES.get_canonical(name.strip())
                    if genre is not None:
                        genres.append(genre)
            elif "Alternatif" in label:
                alternates.extend(name.strip() for name in value.split(",") if name.strip())
            else:
                for key in ("Auteur", "Artiste", "Statut", "Nom Original", "Synopsis"):
                    if key in label:
                        fields[key] = value
                        break

        if fields.get("Nom Original"):
            alternates.insert(0, fields["Nom Original"])

        status = vocabulary.STATUS.to_canonical(fields["Statut"]) if fields.get("Statut") else SourceSerieStatus.UNKNOWN
        serie_type = vocabulary.TYPES.to_canonical(serie_id.split("/", 1)[0])

        return SourceSerie(
            id=serie_id,
            title={fr: [title]} if title else {},
            cover=_absolute(cover) if cover else "",
            alternates_titles={fr: alternates} if alternates else {},
            synopsis={fr: [fields["Synopsis"]]} if fields.get("Synopsis") else {},
            status=[status],
            type=serie_type,
            genres=genres,
            authors=[fields["Auteur"]] if fields.get("Auteur") else [],
            artists=[fields["Artiste"]] if fields.get("Artiste") else [],
            external_url=self.serie_url(serie_id),
        )

    async def fetch_serie_chapters(self, serie_id: str) -> SourceChaptersResult:
        soup = await self._serie_page(serie_id)
        return self.parse_chapters(soup)

    def parse_chapters(self, soup: BeautifulSoup) -> SourceChaptersResult:
        chapters = {}

        for row in soup.select("#list_chapters .list_chapters"):
            badges = [badge.get_text(strip=True) for badge in row.select(".badge")]
            if any(skipped in badge for badge in badges for skipped in SKIPPED_BADGES):
                continue

            # Links may hide the real URL in a data attribute; those win over href,
            # then the shortest URL wins
            candidates = []
            for link in row.find_all("a"):
                name = link.get_text(strip=True) or link.get("title", "")
                for attribute, value in link.attrs.items():
                    if isinstance(value, str) and value.startswith(CHAPTER_PREFIXES):
                        candidates.append((attribute == "href", len(value), value, name))
            if not candidates:
                continue

            _, _, url, name = min(candidates)
            chapter_id = url.strip("/").split("/")[-1]
            if not chapter_id or chapter_id in chapters:
                continue

            title = name or f"Chapitre {chapter_id}"
            number = NUMBER.search(title) or re.fullmatch(r"(\d+(?:\.\d+)?)", chapter_id)

            date_node = row.find("span")
            chapters[chapter_id] = SourceChapter(
                id=chapter_id,
                title={SourceLanguage.FR.value: [title]},
                chapter_number=float(number.group(1)) if number else 0.0,
                language=SourceLanguage.FR,
                date_upload=self._parse_date(date_node.get_text(strip=True) if date_node else ""),
                external_url=urljoin(BASE_URL, url),
            )

        result = list(chapters.values())
        return SourceChaptersResult(
            chapters=result,
            missing_chapters=calculate_missing_chapters(c.chapter_number for c in result),
        )

    @staticmethod
    def _parse_date(text: str) -> datetime:
        for fmt in ("%d %b %Y", "%d %B %Y"):
            try:
                return timezone.make_aware(datetime.strptime(text, fmt))
            except ValueError:
                continue
        return timezone.now()

    async def fetch_chapter_data(self, serie_id: str, chapter_id: str) -> List[SourcePage]:
        solution = await self._render(
            f"{BASE_URL}/{serie_id}/{chapter_id}/",
            max_timeout=CHAPTER_TIMEOUT_MS,
            init_js=CAPTURE_IMAGES_SCRIPT,
            js=READ_IMAGES_SCRIPT,
        )
        return self.parse_pages(solution.js_result)

    def parse_pages(self, image_urls) -> List[SourcePage]:
        if not isinstance(image_urls, list) or not image_urls:
            raise SourceSchemaError("Could not extract chapter images. imagesLink not captured.")

        urls = []
        for url in image_urls:
            try:
                host = urlparse(url).hostname or ""
            except (TypeError, ValueError):
                continue
            if host.endswith(CDN_HOST):
                urls.append(url)

        if not urls:
            raise SourceSchemaError("No valid chapter images found from japscan CDN.")

        return [SourcePage(index=index, url=f"{url}?y=1") for index, url in enumerate(urls, start=1)]
