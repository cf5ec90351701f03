"""
Tests for the source registry, URL parsing and the native adapters.

Adapters never reach the network: HTML parsers are fed fixtures and HTTP
adapters get an httpx.MockTransport client.
"""

import httpx
import pytest

from catalog.exceptions import SourceFetchError, SourceNotFoundError, SourceSchemaError, VocabularyError

MANGA_ID = "a1c7c817-4e59-43b7-9365-09675a149a6f"
CHAPTER_ID = "0f2d8f3e-2a57-4c1a-8f0e-1b2c3d4e5f60"

MANGA_PAYLOAD = {
    "id": MANGA_ID,
    "type": "manga",
    "attributes": {
        "title": {"en": "One Piece"},
        "altTitles": [{"ja": "ワンピース"}, {"ja-ro": "Wan Pīsu"}],
        "description": {"en": "Pirates.", "fr": "Des pirates."},
        "originalLanguage": "ja",
        "status": "ongoing",
        "contentRating": "safe",
        "tags": [
            {"id": "391b0423-d847-456f-aff0-8b0cfc03066b", "type": "tag", "attributes": {"name": {"en": "Action"}, "group": "genre"}},
            {"id": "00000000-0000-0000-0000-000000000000", "type": "tag", "attributes": {"name": {"en": "New"}, "group": "theme"}},
        ],
    },
    "relationships": [
        {"id": "au-1", "type": "author", "attributes": {"name": "Oda Eiichiro"}},
        {"id": "ar-1", "type": "artist", "attributes": {"name": "Oda Eiichiro"}},
        {"id": "cv-1", "type": "cover_art", "attributes": {"fileName": "cover.jpg"}},
    ],
}


def _chapter_payload(chapter="1", external_url=None, pages=20, language="en"):
    return {
        "id": CHAPTER_ID,
        "type": "chapter",
        "attributes": {
            "volume": "1",
            "chapter": chapter,
            "title": None,
            "translatedLanguage": language,
            "externalUrl": external_url,
            "publishAt": "2024-03-01T10:00:00+00:00",
            "pages": pages,
        },
        "relationships": [
            {"id": "grp-1", "type": "scanlation_group", "attributes": {"name": "Team A", "website": ""}},
        ],
    }


class TestRegistry:
    def test_lookup(self, fake_source):
        from catalog.sources import SourceRegistry

        registry = SourceRegistry([fake_source])

        assert registry.get("fakesource") is fake_source
        assert "fakesource" in registry
        assert registry.ids() == ["fakesource"]

    def test_unknown_source(self):
        from catalog.sources import SourceRegistry

        with pytest.raises(SourceNotFoundError):
            SourceRegistry([]).get("nowhere")

    def test_native_sources(self):
        from catalog.sources import native_sources

        assert [source.id for source in native_sources()] == ["weebcentral", "mangadex", "japscan"]


class TestVocabulary:
    def test_round_trip_and_unmapped(self):
        from catalog.sources.core import SourceSerieStatus
        from catalog.sources.mangadex import vocabulary

        assert vocabulary.STATUS.to_native(SourceSerieStatus.ONGOING) == "ongoing"
        assert vocabulary.STATUS.to_canonical("hiatus") == SourceSerieStatus.HIATUS
        assert vocabulary.STATUS.get_canonical("nope") is None

        with pytest.raises(VocabularyError) as exc_info:
            vocabulary.STATUS.to_canonical("nope")
        assert exc_info.value.field == "status"


@pytest.mark.django_db
class TestUrlParser:
    """Resolving pasted URLs to (source, serie) pairs."""

    def test_native_adapters(self):
        from catalog.sources import SourceRegistry, native_sources
        from catalog.sources.url_parser import parse_source_url

        registry = SourceRegistry(native_sources())

        parsed = parse_source_url(f"https://mangadex.org/title/{MANGA_ID}/one-piece", registry)
        assert (parsed.source_id, parsed.serie_id) == ("mangadex", MANGA_ID)

        parsed = parse_source_url("https://weebcentral.com/series/01J76XY/One-Piece", registry)
        assert (parsed.source_id, parsed.serie_id) == ("weebcentral", "01J76XY")

        parsed = parse_source_url("https://www.japscan.vip/manga/one-piece/", registry)
        assert (parsed.source_id, parsed.serie_id) == ("japscan", "manga/one-piece")

        assert parse_source_url("https://example.com/title/x", registry) is None

    def test_batch(self, registry, mirror):
        from catalog.sources.url_parser import parse_source_urls

        result = parse_source_urls(
            "https://fake.test/serie/serie-1\nhttps://fake.test/serie/new-one\nnot a url\n\nhttps://other.test/x",
            registry,
        )

        matched = {entry["serie_id"]: entry for entry in result["matched"]}
        assert set(matched) == {"serie-1", "new-one"}
        assert matched["serie-1"]["imported"] is True
        assert matched["serie-1"]["existing_serie_id"] == str(mirror.serie_id)
        assert matched["new-one"]["imported"] is False
        assert matched["new-one"]["source_name"] == "Fake Source"
        assert [entry["error"] for entry in result["unmatched"]] == [
            "Invalid URL format",
            "URL does not match any enabled source",
        ]

    def test_batch_limit(self, registry):
        from catalog.sources.url_parser import MAX_URLS, parse_source_urls

        urls = [f"https://fake.test/serie/s{i}" for i in range(MAX_URLS + 5)]

        assert len(parse_source_urls(urls, registry)["matched"]) == MAX_URLS


class TestMangadexParser:
    """API payloads converted into canonical records."""

    def test_to_serie(self):
        from catalog.sources.core import SourceSerieGenre, SourceSerieStatus, SourceSerieType
        from catalog.sources.mangadex import parser

        serie = parser.to_serie(parser.Manga.model_validate(MANGA_PAYLOAD))

        assert serie.title == {"En": ["One Piece"]}
        assert serie.alternates_titles == {"Jp": ["ワンピース"], "JpRo": ["Wan Pīsu"]}
        assert serie.synopsis == {"En": ["Pirates."], "Fr": ["Des pirates."]}
        assert serie.status == [SourceSerieStatus.ONGOING]
        assert serie.genres == [SourceSerieGenre.ACTION]
        assert serie.type == SourceSerieType.MANGA
        assert serie.authors == ["Oda Eiichiro"]
        assert serie.artists == ["Oda Eiichiro"]
        assert serie.cover == f"https://uploads.mangadex.org/covers/{MANGA_ID}/cover.jpg"

    @pytest.mark.parametrize(
        "language,genres,expected",
        [
            ("Ko", [], "Manhwa"),
            ("Ko", ["Long Strip"], "Webtoon"),
            ("Zh", [], "Manhua"),
            ("En", [], "Comic"),
            ("Jp", ["Doujinshi"], "Doujinshi"),
        ],
    )
    def test_serie_type(self, language, genres, expected):
        from catalog.sources.core import SourceLanguage, SourceSerieGenre
        from catalog.sources.mangadex import parser

        result = parser.serie_type(SourceLanguage(language), [SourceSerieGenre(g) for g in genres])

        assert result.value == expected

    def test_to_chapter(self):
        from catalog.sources.mangadex import parser

        chapter = parser.to_chapter(parser.Chapter.model_validate(_chapter_payload("10.5")))

        assert chapter.chapter_number == 10.5
        assert chapter.title == {"En": ["Chapter 10.5"]}
        assert chapter.volume_number == 1
        assert chapter.groups[0].name == "Team A"
        assert chapter.groups[0].url is None
        assert chapter.date_upload.year == 2024

    def test_external_chapter_skipped(self):
        from catalog.sources.mangadex import parser

        entry = parser.Chapter.model_validate(_chapter_payload(external_url="https://mangaplus.test/1", pages=0))

        assert parser.to_chapter(entry) is None

    def test_unknown_language_rejected(self):
        from catalog.sources.mangadex import parser

        with pytest.raises(VocabularyError):
            parser.to_chapter(parser.Chapter.model_validate(_chapter_payload(language="xx")))

    def test_unknown_status_rejected(self):
        from catalog.sources.mangadex import parser

        payload = {**MANGA_PAYLOAD, "attributes": {**MANGA_PAYLOAD["attributes"], "status": "teleported"}}

        with pytest.raises(VocabularyError):
            parser.to_serie(parser.Manga.model_validate(payload))

    def test_to_pages(self):
        from catalog.sources.mangadex import parser

        response = parser.AtHomeResponse.model_validate(
            {"result": "ok", "baseUrl": "https://cdn.test/", "chapter": {"hash": "h", "data": ["a.png", "b.png"]}}
        )

        pages = parser.to_pages(response)

        assert [(page.index, page.url) for page in pages] == [
            (1, "https://cdn.test/data/h/a.png"),
            (2, "https://cdn.test/data/h/b.png"),
        ]


class TestMangadexAdapter:
    """HTTP behavior with a mocked API."""

    def _adapter(self, handler):
        from catalog.sources.mangadex import Mangadex

        adapter = Mangadex()
        adapter._build_client = lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return adapter

    async def test_fetch_serie_detail(self):
        adapter = self._adapter(lambda request: httpx.Response(200, json={"result": "ok", "data": MANGA_PAYLOAD}))

        async with adapter:
            serie = await adapter.fetch_serie_detail(MANGA_ID)

        assert serie.id == MANGA_ID
        assert serie.external_url == f"https://mangadex.org/title/{MANGA_ID}"

    async def test_fetch_serie_chapters(self, settings):
        settings.ENABLED_LANGUAGES = ["En"]
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={"result": "ok", "limit": 500, "offset": 0, "total": 1, "data": [_chapter_payload("3")]},
            )

        async with self._adapter(handler) as adapter:
            result = await adapter.fetch_serie_chapters(MANGA_ID)

        assert [chapter.chapter_number for chapter in result.chapters] == [3.0]
        assert result.missing_chapters == [1.0, 2.0]
        assert seen[0].url.params.get_list("translatedLanguage[]") == ["en"]

    async def test_schema_error(self):
        adapter = self._adapter(lambda request: httpx.Response(200, json={"result": "ok"}))

        with pytest.raises(SourceSchemaError):
            await adapter.fetch_serie_detail(MANGA_ID)

    async def test_http_error(self):
        adapter = self._adapter(lambda request: httpx.Response(503))

        with pytest.raises(SourceFetchError):
            await adapter.fetch_chapter_data(MANGA_ID, CHAPTER_ID)

    async def test_chapter_without_pages(self):
        adapter = self._adapter(
            lambda request: httpx.Response(200, json={"result": "ok", "baseUrl": "https://cdn.test"})
        )

        with pytest.raises(SourceSchemaError):
            await adapter.fetch_chapter_data(MANGA_ID, CHAPTER_ID)


CHAPTER_LIST_HTML = """
<div>
  <div class="flex items-center">
    <a href="https://weebcentral.com/chapters/CH3"><span class="grow"><span>S2 Episode 1</span></span></a>
    <time datetime="2024-02-03T00:00:00.000Z"></time>
  </div>
  <div class="flex items-center">
    <a href="https://weebcentral.com/chapters/CH2"><span class="grow"><span>S1 Episode 2</span></span></a>
    <time datetime="2024-02-02T00:00:00.000Z"></time>
  </div>
  <div class="flex items-center">
    <a href="https://weebcentral.com/chapters/CH1"><span class="grow"><span>S1 Episode 1</span></span></a>
    <time datetime="2024-02-01T00:00:00.000Z"></time>
  </div>
</div>
"""

PAGES_HTML = """
<section>
  <img src="https://cdn.weebcentral.test/p/001.png" alt="One Piece Page 1">
  <img src="https://cdn.weebcentral.test/p/002.png" alt="One Piece Page 2">
  <img alt="placeholder">
</section>
"""

SERIE_HTML = """
<main>
  <picture><source type="image/webp" srcset="https://cdn.weebcentral.test/cover/01J76XY.webp"></picture>
  <h1>One Piece</h1>
  <ul>
    <li><strong>Author(s): </strong><a href="/search?author=Oda">Oda Eiichiro</a></li>
    <li><strong>Tags(s): </strong><a href="/search?included_tag=Action">Action</a>, <a href="/search?included_tag=Nope">Nope</a></li>
    <li><strong>Type: </strong><a href="/search?included_type=Manga">Manga</a></li>
    <li><strong>Status: </strong><a href="/search?included_status=Ongoing">Ongoing</a></li>
  </ul>
  <p class="whitespace-pre-wrap">Pirates.</p>
</main>
"""


class TestWeebCentralParsing:
    """HTML parsing for the WeebCentral adapter."""

    def test_parse_chapters_with_seasons(self):
        from catalog.sources.weebcentral import WeebCentral

        result = WeebCentral().parse_chapters(CHAPTER_LIST_HTML)

        assert [(c.id, c.chapter_number) for c in result.chapters] == [("CH3", 3.0), ("CH2", 2.0), ("CH1", 1.0)]
        assert result.chapters[0].volume_name == "Season 2"
        assert result.chapters[0].date_upload.day == 3
        assert result.missing_chapters == []

    def test_parse_pages(self):
        from catalog.sources.weebcentral import WeebCentral

        pages = WeebCentral().parse_pages(PAGES_HTML)

        assert [(page.index, page.url) for page in pages] == [
            (1, "https://cdn.weebcentral.test/p/001.png"),
            (2, "https://cdn.weebcentral.test/p/002.png"),
        ]

    def test_parse_serie_detail(self):
        from catalog.sources.core import SourceSerieGenre, SourceSerieStatus, SourceSerieType
        from catalog.sources.weebcentral import WeebCentral

        serie = WeebCentral().parse_serie_detail("01J76XY", SERIE_HTML)

        assert serie.title == {"En": ["One Piece"]}
        assert serie.cover == "https://cdn.weebcentral.test/cover/01J76XY.webp"
        assert serie.synopsis == {"En": ["Pirates."]}
        assert serie.authors == ["Oda Eiichiro"]
        assert serie.genres == [SourceSerieGenre.ACTION]
        assert serie.status == [SourceSerieStatus.ONGOING]
        assert serie.type == SourceSerieType.MANGA

    def test_missing_title_is_schema_error(self):
        from catalog.sources.weebcentral import WeebCentral

        with pytest.raises(SourceSchemaError):
            WeebCentral().parse_serie_detail("x", "<main></main>")


JAPSCAN_SERIE_HTML = """
<html><head><title>One Piece - Japscan</title></head>
<body><div id="main"><div class="card-body">
  <h1>One Piece</h1>
  <img data-src="/imgs/mangas/one-piece.jpg">
  <p>Nom Original: ワンピース</p>
  <p>Auteur(s): Oda Eiichiro</p>
  <p>Genre(s): Action, Inconnu</p>
  <p>Statut: {status}</p>
</div></div></body></html>
"""


class TestJapscanParsing:
    """HTML parsing for the JapScan adapter."""

    def _soup(self, status):
        from bs4 import BeautifulSoup

        return BeautifulSoup(JAPSCAN_SERIE_HTML.format(status=status), "html.parser")

    def test_parse_serie_detail(self):
        from catalog.sources.core import SourceSerieGenre, SourceSerieStatus, SourceSerieType
        from catalog.sources.japscan import Japscan

        serie = Japscan().parse_serie_detail("manga/one-piece", self._soup("En Cours"))

        assert serie.title == {"Fr": ["One Piece"]}
        assert serie.alternates_titles == {"Fr": ["ワンピース"]}
        assert serie.genres == [SourceSerieGenre.ACTION]
        assert serie.status == [SourceSerieStatus.ONGOING]
        assert serie.type == SourceSerieType.MANGA

    def test_unknown_status_rejected(self):
        from catalog.sources.japscan import Japscan

        with pytest.raises(VocabularyError):
            Japscan().parse_serie_detail("manga/one-piece", self._soup("Abandonné"))

    def test_unknown_type_rejected(self):
        from catalog.sources.japscan import Japscan

        with pytest.raises(VocabularyError):
            Japscan().parse_serie_detail("novel/one-piece", self._soup("En Cours"))


class TestSuwayomiStatus:
    """Suwayomi manga statuses come from a closed enum."""

    MANGA = {"id": 7, "title": "One Piece", "url": "/manga/one-piece", "status": "ONGOING", "genre": []}

    def test_known_status(self):
        from catalog.sources.core import SourceSerieStatus
        from catalog.sources.suwayomi import vocabulary
        from catalog.sources.suwayomi.client import SuwayomiClient, SuwayomiManga

        manga = SuwayomiClient._parse(SuwayomiManga, {**self.MANGA, "status": "ON_HIATUS"})

        assert vocabulary.status(manga.status) == SourceSerieStatus.HIATUS

    def test_unknown_status_is_schema_error(self):
        from catalog.sources.suwayomi.client import SuwayomiClient, SuwayomiManga

        with pytest.raises(SourceSchemaError):
            SuwayomiClient._parse(SuwayomiManga, {**self.MANGA, "status": "BOGUS"})

    def test_unmapped_status_raises(self):
        from catalog.sources.suwayomi import vocabulary

        with pytest.raises(VocabularyError):
            vocabulary.status("BOGUS")


@pytest.mark.django_db
class TestSyncSources:
    """Source rows kept in line with the registry."""

    def test_creates_then_updates(self, fake_source):
        from catalog.models import Source
        from catalog.services.source_sync import sync_sources
        from catalog.sources import SourceRegistry

        registry = SourceRegistry([fake_source])

        assert sync_sources(registry, disabled_ids=[]) == {"created": ["fakesource"], "updated": [], "disabled": []}

        row = Source.objects.get(external_id="fakesource")
        assert row.name == "Fake Source"
        assert row.enabled is True
        assert row.languages == ["En"]
        assert row.rate_limit_max == 2

        fake_source.name = "Renamed"
        summary = sync_sources(registry, disabled_ids=["fakesource"])

        row.refresh_from_db()
        assert summary == {"created": [], "updated": ["fakesource"], "disabled": ["fakesource"]}
        assert row.name == "Renamed"
        assert row.enabled is False
