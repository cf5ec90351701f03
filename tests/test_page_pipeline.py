"""
Tests for the chapter page pipeline.

Image uploads are mocked at catalog.services.images.upload_image; the
page list comes from the fake adapter.
"""

import itertools
from unittest.mock import patch

import pytest

from catalog.exceptions import ImageTooLargeError, SourceFetchError


def _upload_stub(failures=None, permanent=None):
    """Async upload_image replacement keyed on the page URL suffix."""
    from catalog.services.images import UploadResult

    failures = set(failures or [])
    permanent = set(permanent or [])

    async def upload(url, base_path, client=None, headers=None):
        index = int(url.rsplit("/", 1)[1].split(".")[0])
        if index in permanent:
            raise ImageTooLargeError(20000, 70000)
        if index in failures:
            raise SourceFetchError(f"HTTP 503 for {url}")
        return UploadResult(
            url=f"https://media.test/{base_path}.webp",
            format="webp",
            quality="healthy",
            metadata={"width": 800, "height": 1200, "format": "webp", "animated": False, "issues": []},
        )

    return upload


class TestClassifyPageStatus:
    """Chapter status from page outcome counts."""

    @pytest.mark.parametrize(
        "success,retryable,permanent,expected",
        [
            (3, 0, 0, "Success"),
            (0, 0, 0, "Success"),
            (0, 2, 0, "Failed"),
            (0, 0, 2, "PermanentlyFailed"),
            (2, 1, 0, "Partial"),
            (2, 0, 1, "Incomplete"),
            (2, 1, 1, "Incomplete"),
            (0, 1, 1, "Incomplete"),
            (1, 4, 0, "Partial"),
            (4, 0, 3, "Incomplete"),
        ],
    )
    def test_rules(self, success, retryable, permanent, expected):
        from catalog.services.page_pipeline import classify_page_status

        assert classify_page_status(success, retryable, permanent) == expected

    def test_every_combination_has_a_status(self):
        from catalog.models import PageFetchStatus
        from catalog.services.page_pipeline import classify_page_status

        statuses = {
            classify_page_status(success, retryable, permanent)
            for success, retryable, permanent in itertools.product(range(5), repeat=3)
        }

        assert statuses == {
            PageFetchStatus.SUCCESS,
            PageFetchStatus.FAILED,
            PageFetchStatus.PERMANENTLY_FAILED,
            PageFetchStatus.PARTIAL,
            PageFetchStatus.INCOMPLETE,
        }

    def test_examples(self):
        from catalog.services.page_pipeline import classify_page_status

        assert classify_page_status(10, 0, 0) == "Success"
        assert classify_page_status(0, 0, 0) == "Success"
        assert classify_page_status(0, 3, 0) == "Failed"
        assert classify_page_status(0, 0, 3) == "PermanentlyFailed"
        assert classify_page_status(5, 2, 1) == "Incomplete"
        assert classify_page_status(0, 2, 1) == "Incomplete"
        assert classify_page_status(5, 2, 0) == "Partial"


@pytest.mark.django_db
class TestProcessChapterData:
    """chapter-data job body."""

    def test_all_pages_uploaded(self, registry, fake_source, chapter):
        from catalog.models import ChapterPage, PageFetchStatus
        from catalog.services.page_pipeline import process_chapter_data

        fake_source.set_pages(chapter.external_id, 3)

        with patch("catalog.services.images.upload_image", side_effect=_upload_stub()):
            result = process_chapter_data(chapter.id, serie_id=chapter.serie_id, registry=registry)

        chapter.refresh_from_db()
        assert result["status"] == "Success"
        assert result["pages"] == 3
        assert chapter.page_fetch_status == PageFetchStatus.SUCCESS
        pages = list(ChapterPage.objects.filter(chapter=chapter).order_by("index"))
        assert [page.index for page in pages] == [0, 1, 2]
        assert all(page.url and page.source_url for page in pages)
        assert fake_source.closed == 1

    def test_partial_and_incomplete(self, registry, fake_source, chapter):
        from catalog.models import ChapterPage, PageFetchStatus
        from catalog.services.page_pipeline import process_chapter_data

        fake_source.set_pages(chapter.external_id, 4)

        with patch("catalog.services.images.upload_image", side_effect=_upload_stub(failures=[1], permanent=[3])):
            result = process_chapter_data(chapter.id, registry=registry)

        chapter.refresh_from_db()
        assert result["status"] == "Incomplete"
        assert (result["success"], result["retryable"], result["permanent"]) == (2, 1, 1)
        assert chapter.page_fetch_status == PageFetchStatus.INCOMPLETE

        failed = ChapterPage.objects.get(chapter=chapter, index=1)
        assert failed.url is None
        assert failed.permanently_failed is False
        assert ChapterPage.objects.get(chapter=chapter, index=3).permanently_failed is True

    def test_every_page_failing_raises(self, registry, fake_source, chapter):
        from catalog.models import PageFetchStatus
        from catalog.services.page_pipeline import process_chapter_data

        fake_source.set_pages(chapter.external_id, 2)

        with patch("catalog.services.images.upload_image", side_effect=_upload_stub(failures=[0, 1])):
            with pytest.raises(SourceFetchError):
                process_chapter_data(chapter.id, registry=registry)

        chapter.refresh_from_db()
        assert chapter.page_fetch_status == PageFetchStatus.FAILED

    def test_no_images_disables_chapter(self, registry, fake_source, chapter):
        from catalog.services.page_pipeline import process_chapter_data

        result = process_chapter_data(chapter.id, registry=registry)

        chapter.refresh_from_db()
        assert result["pages"] == 0
        assert chapter.enabled is False
        assert chapter.page_fetch_status == "Success"

    def test_fetch_error_marks_failed(self, registry, fake_source, chapter):
        from catalog.services.page_pipeline import process_chapter_data

        fake_source.fail_with = SourceFetchError("blocked")

        with pytest.raises(SourceFetchError):
            process_chapter_data(chapter.id, registry=registry)

        chapter.refresh_from_db()
        assert chapter.page_fetch_status == "Failed"

    def test_missing_adapter_marks_failed(self, chapter):
        from catalog.exceptions import NotFoundError
        from catalog.services.page_pipeline import process_chapter_data
        from catalog.sources import SourceRegistry

        with pytest.raises(NotFoundError):
            process_chapter_data(chapter.id, registry=SourceRegistry())

        chapter.refresh_from_db()
        assert chapter.page_fetch_status == "Failed"

    def test_unknown_chapter(self, registry, serie):
        import uuid

        from catalog.exceptions import NotFoundError
        from catalog.services.page_pipeline import process_chapter_data

        with pytest.raises(NotFoundError):
            process_chapter_data(uuid.uuid4(), serie_id=serie.id, registry=registry)

    def test_rerun_replaces_pages(self, registry, fake_source, chapter):
        from catalog.models import ChapterPage
        from catalog.services.page_pipeline import process_chapter_data

        fake_source.set_pages(chapter.external_id, 3)
        with patch("catalog.services.images.upload_image", side_effect=_upload_stub()):
            process_chapter_data(chapter.id, registry=registry)

        fake_source.set_pages(chapter.external_id, 2)
        with patch("catalog.services.images.upload_image", side_effect=_upload_stub()):
            process_chapter_data(chapter.id, registry=registry)

        assert ChapterPage.objects.filter(chapter=chapter).count() == 2


@pytest.mark.django_db
class TestRetryFailedPages:
    """page-retry job body."""

    @pytest.fixture(autouse=True)
    def _registry(self, registry):
        return registry

    def _seed(self, chapter, urls):
        from catalog.models import ChapterPage

        for index, url in enumerate(urls):
            ChapterPage.objects.create(
                chapter=chapter,
                index=index,
                url=url,
                source_url=f"https://fake.test/pages/{chapter.external_id}/{index}.png",
            )

    def test_retry_fixes_pages(self, chapter):
        from catalog.models import ChapterPage
        from catalog.services.page_pipeline import retry_failed_pages

        self._seed(chapter, ["https://media.test/0.webp", None, None])
        chapter.set_page_fetch_status("Partial")

        with patch("catalog.services.images.upload_image", side_effect=_upload_stub()):
            result = retry_failed_pages(chapter.id)

        chapter.refresh_from_db()
        assert result["retried"] == 2
        assert result["fixed"] == 2
        assert chapter.page_fetch_status == "Success"
        assert not ChapterPage.objects.filter(chapter=chapter, url__isnull=True).exists()

    def test_retry_marks_permanent_failures(self, chapter):
        from catalog.models import ChapterPage
        from catalog.services.page_pipeline import retry_failed_pages

        self._seed(chapter, ["https://media.test/0.webp", None, None])

        with patch("catalog.services.images.upload_image", side_effect=_upload_stub(permanent=[2])):
            result = retry_failed_pages(chapter.id)

        chapter.refresh_from_db()
        assert result["fixed"] == 1
        assert chapter.page_fetch_status == "Incomplete"
        assert ChapterPage.objects.get(chapter=chapter, index=2).permanently_failed is True

    def test_nothing_to_retry(self, chapter):
        from catalog.services.page_pipeline import retry_failed_pages

        self._seed(chapter, ["https://media.test/0.webp"])

        with patch("catalog.services.images.upload_image") as upload:
            result = retry_failed_pages(chapter.id)

        upload.assert_not_called()
        assert result["retried"] == 0

    def test_retry_sends_image_headers(self, chapter):
        from catalog.services.page_pipeline import retry_failed_pages

        self._seed(chapter, [None])
        stub = _upload_stub()
        seen = []

        async def upload(url, base_path, client=None, headers=None):
            seen.append(headers)
            return await stub(url, base_path, client=client, headers=headers)

        with patch("catalog.services.images.upload_image", side_effect=upload):
            retry_failed_pages(chapter.id)

        assert seen[0]["Referer"] == "https://fake.test/"

    def test_retry_without_adapter_still_runs(self, chapter):
        from catalog.services.page_pipeline import retry_failed_pages
        from catalog.sources import SourceRegistry

        self._seed(chapter, [None])

        with patch("catalog.services.images.upload_image", side_effect=_upload_stub()):
            result = retry_failed_pages(chapter.id, registry=SourceRegistry())

        assert result["fixed"] == 1

    def test_unknown_chapter(self, db):
        import uuid

        from catalog.exceptions import NotFoundError
        from catalog.services.page_pipeline import retry_failed_pages

        with pytest.raises(NotFoundError):
            retry_failed_pages(uuid.uuid4())
