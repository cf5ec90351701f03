"""
Pytest configuration and fixtures for the catalog test suite.
"""

import io
from datetime import datetime, timezone as dt_timezone
from typing import Dict, List, Optional

import pytest
from PIL import Image

from catalog.sources.core import (
    SourceChapter,
    SourceChaptersResult,
    SourceInfo,
    SourceLanguage,
    SourcePage,
    SourcePaginatedResponse,
    SourceProvider,
    SourceSerie,
    SourceSerieGenre,
    SourceSerieStatus,
    SourceSerieSummary,
    SourceSerieType,
)


class FakeSource(SourceProvider):
    """
    In-memory catalog adapter.

    Series, chapters and pages are registered by the test; the "latest"
    listing is a list of pages of serie ids.
    """

    def __init__(self, source_id: str = "fakesource", name: str = "Fake Source"):
        self.source_id = source_id
        self.name = name
        self.series: Dict[str, SourceSerie] = {}
        self.chapters: Dict[str, List[SourceChapter]] = {}
        self.pages: Dict[str, List[SourcePage]] = {}
        self.latest_pages: List[List[str]] = []
        self.fail_with: Optional[Exception] = None
        self.latest_calls = 0
        self.closed = 0

    def info(self) -> SourceInfo:
        return SourceInfo(
            id=self.source_id,
            name=self.name,
            url="https://fake.test",
            icon="https://fake.test/icon.png",
            languages=[SourceLanguage.EN],
            rate_limit_max=2,
            rate_limit_duration=1000,
        )

    def serie_url(self, serie_id: str) -> str:
        return f"https://fake.test/serie/{serie_id}"

    def parse_url(self, url: str) -> Optional[str]:
        prefix = "https://fake.test/serie/"
        if url.startswith(prefix) and len(url) > len(prefix):
            return url[len(prefix):].strip("/").split("/")[0]
        return None

    def add_serie(self, serie_id: str, title: str = "Fake Serie", chapters: int = 2, **kwargs) -> SourceSerie:
        detail = SourceSerie(
            id=serie_id,
            title={"En": [title]},
            cover=f"https://fake.test/covers/{serie_id}.png",
            synopsis={"En": [f"About {title}"]},
            status=[SourceSerieStatus.ONGOING],
            type=SourceSerieType.MANGA,
            genres=[SourceSerieGenre.ACTION, SourceSerieGenre.COMEDY],
            authors=["Author A"],
            artists=["Artist B"],
            **kwargs,
        )
        self.series[serie_id] = detail
        self.chapters[serie_id] = [
            SourceChapter(
                id=f"{serie_id}-ch{number}",
                title={"En": [f"Chapter {number}"]},
                chapter_number=float(number),
                language=SourceLanguage.EN,
                date_upload=datetime(2024, 1, number, tzinfo=dt_timezone.utc),
            )
            for number in range(1, chapters + 1)
        ]
        return detail

    def set_pages(self, chapter_id: str, count: int):
        self.pages[chapter_id] = [
            SourcePage(index=i, url=f"https://fake.test/pages/{chapter_id}/{i}.png") for i in range(count)
        ]

    async def fetch_popular(self, page, filters=None):
        return SourcePaginatedResponse(items=[], has_next_page=False)

    async def fetch_latest(self, page, filters=None):
        self.latest_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        ids = self.latest_pages[page - 1] if page <= len(self.latest_pages) else []
        return SourcePaginatedResponse(
            items=[SourceSerieSummary(id=serie_id, title={"En": [serie_id]}, cover="") for serie_id in ids],
            has_next_page=page < len(self.latest_pages),
        )

    async def fetch_search(self, page, filters=None):
        return SourcePaginatedResponse(items=[], has_next_page=False)

    async def fetch_serie_detail(self, serie_id):
        if self.fail_with is not None:
            raise self.fail_with
        return self.series[serie_id]

    async def fetch_serie_chapters(self, serie_id):
        if self.fail_with is not None:
            raise self.fail_with
        return SourceChaptersResult(chapters=list(self.chapters.get(serie_id, [])))

    async def fetch_chapter_data(self, serie_id, chapter_id):
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.pages.get(chapter_id, []))

    async def close(self):
        self.closed += 1


def make_image_bytes(width: int = 120, height: int = 180, image_format: str = "PNG") -> bytes:
    """Noisy test image (noise keeps it out of the near-uniform check)."""
    image = Image.effect_noise((width, height), 64).convert("RGB")
    output = io.BytesIO()
    image.save(output, format=image_format)
    return output.getvalue()


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def admin_api_client(db, django_user_model):
    """API client authenticated as a staff user."""
    from rest_framework.test import APIClient

    user = django_user_model.objects.create_user(
        username="catalog-admin", password="secret", is_staff=True
    )
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def fake_source():
    """A fresh FakeSource adapter."""
    return FakeSource()


@pytest.fixture
def registry(fake_source):
    """Process registry holding only the fake adapter."""
    from catalog.sources import SourceRegistry, set_registry

    registry = SourceRegistry([fake_source])
    set_registry(registry)
    yield registry
    set_registry(None)


@pytest.fixture(autouse=True)
def failure_tracker():
    """Failure tracker without Redis, reset between tests."""
    from catalog.monitoring import failure_tracker as tracker_module

    tracker = tracker_module.FailureTracker(redis_client=None)
    tracker_module._failure_tracker = tracker
    yield tracker
    tracker_module.reset_failure_tracker()


@pytest.fixture
def source(db):
    """Create a test Source row for the fake adapter."""
    from catalog.models import Source

    return Source.objects.create(
        external_id="fakesource",
        name="Fake Source",
        url="https://fake.test",
        icon="https://fake.test/icon.png",
        languages=["En"],
        rate_limit_max=2,
        rate_limit_duration=1000,
    )


@pytest.fixture
def serie(db):
    """Create a test Serie."""
    from catalog.models import Serie

    return Serie.objects.create(title="Test Serie", status=["Ongoing"], type="Manga")


@pytest.fixture
def mirror(serie, source):
    """Primary SerieSource linking the test serie to the fake source."""
    from catalog.models import SerieSource

    return SerieSource.objects.create(
        serie=serie,
        source=source,
        external_id="serie-1",
        is_primary=True,
        title={"En": ["Test Serie"]},
        synopsis={"En": ["A test serie"]},
        cover_source_url="https://fake.test/covers/serie-1.png",
        status=["Ongoing"],
        type="Manga",
    )


@pytest.fixture
def chapter(mirror):
    """Chapter 1 of the test serie."""
    from catalog.models import Chapter

    return Chapter.objects.create(
        serie=mirror.serie,
        source=mirror.source,
        external_id="serie-1-ch1",
        title="Chapter 1",
        chapter_number=1,
    )
