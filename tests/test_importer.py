"""
Tests for the serie import orchestrator.
"""

from datetime import datetime, timezone as dt_timezone

import pytest

from catalog.exceptions import NotFoundError, SourceFetchError


@pytest.mark.django_db
class TestImportSerie:
    """serie-inserter job body."""

    def test_first_import_creates_records(self, registry, fake_source, source):
        from catalog.models import Chapter, Job, JobStatus, Serie, SerieSource
        from catalog.services.importer import import_serie

        fake_source.add_serie("one-piece", title="One Piece", chapters=3)

        result = import_serie(str(source.id), "one-piece", registry=registry)

        serie = Serie.objects.get(pk=result["serie_id"])
        mirror = SerieSource.objects.get(source=source, external_id="one-piece")
        assert result["created"] is True
        assert result["chapters_queued"] == 3
        assert serie.title == "One Piece"
        assert serie.synopsis == "About One Piece"
        assert serie.type == "Manga"
        assert mirror.is_primary is True
        assert mirror.consecutive_failures == 0
        assert mirror.last_checked_at is not None
        assert sorted(serie.genres.values_list("title", flat=True)) == ["Action", "Comedy"]
        assert list(serie.authors.values_list("name", flat=True)) == ["Author A"]
        assert Chapter.objects.filter(serie=serie).count() == 3

        parent = Job.objects.get(queue="indexer")
        assert parent.status == JobStatus.WAITING_CHILDREN
        assert Job.objects.filter(queue="chapter-data").count() == 3
        assert Job.objects.filter(queue="cover-update").count() == 1
        assert fake_source.closed == 1

    def test_reimport_is_idempotent(self, registry, fake_source, source):
        from catalog.models import Chapter, Serie, SerieSource
        from catalog.services.importer import import_serie

        fake_source.add_serie("one-piece", chapters=2)
        first = import_serie(str(source.id), "one-piece", registry=registry)
        second = import_serie(str(source.id), "one-piece", registry=registry)

        assert second["created"] is False
        assert second["serie_id"] == first["serie_id"]
        assert second["chapters_queued"] == 0
        assert Serie.objects.count() == 1
        assert SerieSource.objects.count() == 1
        assert Chapter.objects.count() == 2

    def test_reimport_keeps_volume_when_source_has_none(self, registry, fake_source, source):
        from catalog.models import Chapter
        from catalog.services.importer import import_serie

        fake_source.add_serie("one-piece", chapters=1)
        import_serie(str(source.id), "one-piece", registry=registry)
        Chapter.objects.filter(external_id="one-piece-ch1").update(volume_number=3, volume_name="East Blue")

        import_serie(str(source.id), "one-piece", registry=registry)

        chapter = Chapter.objects.get(external_id="one-piece-ch1")
        assert chapter.volume_number == 3
        assert chapter.volume_name == "East Blue"

    def test_new_and_reuploaded_chapters_queued(self, registry, fake_source, source):
        from catalog.services.importer import import_serie
        from catalog.sources.core import SourceChapter, SourceLanguage

        fake_source.add_serie("one-piece", chapters=2)
        import_serie(str(source.id), "one-piece", registry=registry)

        fake_source.chapters["one-piece"][0].date_upload = datetime(2024, 6, 1, tzinfo=dt_timezone.utc)
        fake_source.chapters["one-piece"].append(
            SourceChapter(
                id="one-piece-ch3",
                title={"En": ["Chapter 3"]},
                chapter_number=3.0,
                language=SourceLanguage.EN,
                date_upload=datetime(2024, 6, 2, tzinfo=dt_timezone.utc),
            )
        )

        result = import_serie(str(source.id), "one-piece", registry=registry)

        assert result["chapters_queued"] == 2

    def test_removed_chapter_marked_once(self, registry, fake_source, source):
        from catalog.models import Chapter
        from catalog.services.importer import import_serie

        fake_source.add_serie("one-piece", chapters=3)
        import_serie(str(source.id), "one-piece", registry=registry)

        fake_source.chapters["one-piece"].pop()
        result = import_serie(str(source.id), "one-piece", registry=registry)
        removed = Chapter.objects.get(external_id="one-piece-ch3")
        stamp = removed.source_removed_at

        again = import_serie(str(source.id), "one-piece", registry=registry)
        removed.refresh_from_db()

        assert result["chapters_removed"] == 1
        assert again["chapters_removed"] == 0
        assert removed.source_removed_at == stamp

    def test_duplicate_chapter_ids_collapsed(self, registry, fake_source, source):
        from catalog.models import Chapter
        from catalog.services.importer import import_serie

        fake_source.add_serie("one-piece", chapters=1)
        fake_source.chapters["one-piece"].append(fake_source.chapters["one-piece"][0])

        import_serie(str(source.id), "one-piece", registry=registry)

        assert Chapter.objects.count() == 1

    def test_failure_increments_mirror_counter(self, registry, fake_source, source):
        from catalog.models import SerieSource
        from catalog.services.importer import import_serie

        fake_source.add_serie("one-piece")
        import_serie(str(source.id), "one-piece", registry=registry)

        fake_source.fail_with = SourceFetchError("blocked")
        with pytest.raises(SourceFetchError):
            import_serie(str(source.id), "one-piece", registry=registry)

        mirror = SerieSource.objects.get(external_id="one-piece")
        assert mirror.consecutive_failures == 1

        fake_source.fail_with = None
        import_serie(str(source.id), "one-piece", registry=registry)
        mirror.refresh_from_db()
        assert mirror.consecutive_failures == 0

    def test_failure_recorded_by_tracker(self, registry, fake_source, source, failure_tracker):
        from unittest.mock import patch

        from catalog.services.importer import import_serie

        fake_source.fail_with = SourceFetchError("blocked")

        with patch.object(failure_tracker, "record_failure") as record:
            with pytest.raises(SourceFetchError):
                import_serie(str(source.id), "missing", registry=registry)

        record.assert_called_once_with("fakesource", source_name="Fake Source")

    def test_unknown_source(self, registry, db):
        from catalog.services.importer import import_serie

        with pytest.raises(NotFoundError):
            import_serie("nowhere", "x", registry=registry)


@pytest.mark.django_db
class TestImportRequests:
    """API-facing helpers."""

    def test_request_import_queues_job(self, source):
        from catalog.models import Job
        from catalog.services.importer import request_import

        result = request_import("fakesource", "one-piece")

        job = Job.objects.get(pk=result["job_id"])
        assert result["status"] == "queued"
        assert job.queue == "serie-inserter"
        assert job.payload == {"source_serie_id": "one-piece", "source_id": str(source.id)}

    def test_request_import_existing(self, mirror):
        from catalog.models import Job
        from catalog.services.importer import request_import

        result = request_import(str(mirror.source_id), mirror.external_id)

        assert result == {"status": "exists", "serie_id": str(mirror.serie_id)}
        assert Job.objects.count() == 0

    def test_refresh_serie_deduplicates(self, mirror):
        from catalog.models import Job
        from catalog.services.importer import refresh_serie

        first = refresh_serie(mirror.serie_id)
        second = refresh_serie(mirror.serie_id)

        assert first == second == [f"serie-inserter-{mirror.id}"]
        assert Job.objects.filter(queue="serie-inserter").count() == 1

    def test_refresh_missing_serie(self, db):
        import uuid

        from catalog.services.importer import refresh_serie

        with pytest.raises(NotFoundError):
            refresh_serie(uuid.uuid4())

    def test_refresh_source(self, source):
        from catalog.models import Job
        from catalog.services.importer import refresh_source

        job_id = refresh_source(str(source.id))

        assert Job.objects.get(pk=job_id).payload == {"type": "REFRESH_ALL", "source_id": "fakesource"}
