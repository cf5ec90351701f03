"""
Tests for the admin API endpoints.
"""

import uuid

import pytest
from rest_framework import status


@pytest.mark.django_db
class TestPermissions:
    def test_anonymous_rejected(self, api_client):
        response = api_client.get("/api/v1/jobs/")

        assert response.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN)

    def test_non_staff_rejected(self, api_client, django_user_model):
        user = django_user_model.objects.create_user(username="reader", password="secret")
        api_client.force_authenticate(user=user)

        response = api_client.get("/api/v1/jobs/")

        assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestSourceEndpoints:
    """Imports, refreshes, URL parsing and source health."""

    def test_import_queued(self, admin_api_client, source):
        response = admin_api_client.post(
            "/api/v1/sources/fakesource/import/", {"external_id": "one-piece"}, format="json"
        )

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.data["status"] == "queued"
        assert response.data["job_id"]

    def test_import_existing(self, admin_api_client, mirror):
        response = admin_api_client.post(
            "/api/v1/sources/fakesource/import/", {"external_id": "serie-1"}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"status": "exists", "serie_id": str(mirror.serie_id)}

    def test_import_requires_external_id(self, admin_api_client, source):
        response = admin_api_client.post("/api/v1/sources/fakesource/import/", {}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_import_unknown_source(self, admin_api_client):
        response = admin_api_client.post(
            "/api/v1/sources/nowhere/import/", {"external_id": "x"}, format="json"
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_refresh_source(self, admin_api_client, source):
        from catalog.models import Job

        response = admin_api_client.post("/api/v1/sources/fakesource/refresh/")

        assert response.status_code == status.HTTP_202_ACCEPTED
        job = Job.objects.get(pk=response.data["job_id"])
        assert job.payload == {"type": "REFRESH_ALL", "source_id": "fakesource"}

    def test_parse_url(self, admin_api_client, registry):
        response = admin_api_client.post(
            "/api/v1/sources/parse-url/", {"url": "https://fake.test/serie/abc"}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"source_id": "fakesource", "serie_id": "abc"}

    def test_parse_url_no_match(self, admin_api_client, registry):
        response = admin_api_client.post(
            "/api/v1/sources/parse-url/", {"url": "https://elsewhere.test/serie/abc"}, format="json"
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_parse_urls_text(self, admin_api_client, registry):
        response = admin_api_client.post(
            "/api/v1/sources/parse-urls/",
            {"text": "https://fake.test/serie/abc\nnope"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert [entry["serie_id"] for entry in response.data["matched"]] == ["abc"]
        assert response.data["unmatched"][0]["error"] == "Invalid URL format"

    def test_sources_health(self, admin_api_client, mirror):
        from catalog.models import SerieSource

        SerieSource.objects.filter(pk=mirror.pk).update(consecutive_failures=2)
        admin_api_client.post("/api/v1/sources/fakesource/import/", {"external_id": "new"}, format="json")

        response = admin_api_client.get("/api/v1/sources/health/")

        assert response.status_code == status.HTTP_200_OK
        entry = response.data["sources"][0]
        assert entry["source"]["external_id"] == "fakesource"
        assert entry["health"]["total_series"] == 1
        assert entry["health"]["failing_count"] == 1
        assert entry["queue_stats"]["waiting"] == 1
        assert response.data["stats"]["total_failing_series"] == 1


@pytest.mark.django_db
class TestSerieEndpoints:
    """Serie refresh, deletion lifecycle and custom covers."""

    def test_refresh_serie(self, admin_api_client, mirror):
        response = admin_api_client.post(f"/api/v1/series/{mirror.serie_id}/refresh/")

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.data["job_ids"] == [f"serie-inserter-{mirror.id}"]

    def test_refresh_unknown_serie(self, admin_api_client):
        response = admin_api_client.post(f"/api/v1/series/{uuid.uuid4()}/refresh/")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_delete_and_restore(self, admin_api_client, serie):
        from catalog.services.deletion import soft_delete

        response = admin_api_client.post(f"/api/v1/series/{serie.id}/delete/")
        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.data["job_id"]

        soft_delete(serie.id)

        response = admin_api_client.post(f"/api/v1/series/{serie.id}/delete/")
        assert response.status_code == status.HTTP_400_BAD_REQUEST

        response = admin_api_client.get(f"/api/v1/series/{serie.id}/deletion-status/")
        assert response.data["is_deleted"] is True

        response = admin_api_client.post(f"/api/v1/series/{serie.id}/restore/")
        assert response.status_code == status.HTTP_200_OK

        response = admin_api_client.post(f"/api/v1/series/{serie.id}/restore/")
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_delete_unknown_serie(self, admin_api_client):
        response = admin_api_client.post(f"/api/v1/series/{uuid.uuid4()}/delete/")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_custom_cover_requires_lock(self, admin_api_client, serie):
        url = f"/api/v1/series/{serie.id}/custom-cover/"
        body = {"image_url": "https://img.test/cover.png"}

        response = admin_api_client.post(url, body, format="json")
        assert response.status_code == status.HTTP_400_BAD_REQUEST

        serie.locked_fields = ["cover"]
        serie.save()

        response = admin_api_client.post(url, body, format="json")
        assert response.status_code == status.HTTP_202_ACCEPTED

        from catalog.models import Job

        job = Job.objects.get(pk=response.data["job_id"])
        assert job.queue == "cover-update"
        assert job.payload == {"type": "CUSTOM", "serie_id": str(serie.id), "image_url": "https://img.test/cover.png"}


@pytest.mark.django_db
class TestSerieEditEndpoints:
    """Field locks, mirrors and chapter management."""

    def test_lock_then_unlock(self, admin_api_client, serie):
        from catalog.models import Job

        url = f"/api/v1/series/{serie.id}/field/"
        response = admin_api_client.post(url, {"action": "lock", "field": "title"}, format="json")

        serie.refresh_from_db()
        assert response.status_code == status.HTTP_200_OK
        assert serie.locked_fields == ["title"]
        assert not Job.objects.filter(queue="indexer").exists()

        response = admin_api_client.post(url, {"action": "unlock", "field": "title"}, format="json")

        serie.refresh_from_db()
        assert serie.locked_fields == []
        assert Job.objects.get(pk=response.data["job_id"]).payload == {"serie_id": str(serie.id), "type": "UPDATE"}

    def test_update_sets_value_and_lock(self, admin_api_client, serie):
        response = admin_api_client.post(
            f"/api/v1/series/{serie.id}/field/",
            {"action": "update", "field": "status", "value": ["Completed"]},
            format="json",
        )

        serie.refresh_from_db()
        assert response.status_code == status.HTTP_200_OK
        assert serie.status == ["Completed"]
        assert serie.locked_fields == ["status"]

    def test_unlock_cover_drops_custom_cover(self, admin_api_client, serie):
        serie.locked_fields = ["cover"]
        serie.custom_cover = "https://media.test/custom.webp"
        serie.save()

        admin_api_client.post(
            f"/api/v1/series/{serie.id}/field/", {"action": "unlock", "field": "cover"}, format="json"
        )

        serie.refresh_from_db()
        assert serie.custom_cover is None
        assert serie.locked_fields == []

    @pytest.mark.parametrize(
        "body",
        [
            {"action": "update", "field": "type", "value": "Novel"},
            {"action": "update", "field": "title", "value": "   "},
            {"action": "update", "field": "cover", "value": "https://media.test/x.png"},
            {"action": "rename", "field": "title"},
            {"action": "lock", "field": "genres"},
        ],
    )
    def test_field_validation(self, admin_api_client, serie, body):
        response = admin_api_client.post(f"/api/v1/series/{serie.id}/field/", body, format="json")

        serie.refresh_from_db()
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert serie.locked_fields == []

    def test_field_unknown_serie(self, admin_api_client):
        response = admin_api_client.post(
            f"/api/v1/series/{uuid.uuid4()}/field/", {"action": "lock", "field": "title"}, format="json"
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_primary_source(self, admin_api_client, mirror):
        from catalog.models import Source, SerieSource

        other_source = Source.objects.create(external_id="othersource", name="Other", url="https://other.test")
        secondary = SerieSource.objects.create(serie=mirror.serie, source=other_source, external_id="s-2")

        response = admin_api_client.post(
            f"/api/v1/series/{mirror.serie_id}/primary-source/", {"serie_source_id": str(secondary.id)}, format="json"
        )

        mirror.refresh_from_db()
        secondary.refresh_from_db()
        assert response.status_code == status.HTTP_200_OK
        assert secondary.is_primary is True
        assert mirror.is_primary is False

    def test_primary_source_of_another_serie(self, admin_api_client, mirror):
        from catalog.models import Serie

        other = Serie.objects.create(title="Other")

        response = admin_api_client.post(
            f"/api/v1/series/{other.id}/primary-source/", {"serie_source_id": str(mirror.id)}, format="json"
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_link_source(self, admin_api_client, registry, fake_source, serie, source):
        from catalog.models import Job, SerieSource

        fake_source.add_serie("entry-2", title="Entry Two")

        response = admin_api_client.post(
            f"/api/v1/series/{serie.id}/link-source/",
            {"source_id": "fakesource", "external_id": "entry-2"},
            format="json",
        )

        assert response.status_code == status.HTTP_202_ACCEPTED
        linked = SerieSource.objects.get(source=source, external_id="entry-2")
        assert linked.serie_id == serie.id
        assert linked.is_primary is False
        assert linked.title == {"En": ["Entry Two"]}
        assert Job.objects.get(pk=response.data["job_id"]).queue == "serie-inserter"

    def test_link_already_linked(self, admin_api_client, registry, mirror):
        response = admin_api_client.post(
            f"/api/v1/series/{mirror.serie_id}/link-source/",
            {"source_id": "fakesource", "external_id": "serie-1"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == "already_linked"

    def test_relink_moves_mirror_and_chapters(self, admin_api_client, registry, chapter):
        from catalog.models import Serie

        mirror = chapter.serie.sources.get()
        target = Serie.objects.create(title="Target")
        url = f"/api/v1/series/{target.id}/link-source/"
        body = {"source_id": "fakesource", "external_id": "serie-1"}

        refused = admin_api_client.post(url, body, format="json")
        moved = admin_api_client.post(url, {**body, "relink": True}, format="json")

        mirror.refresh_from_db()
        chapter.refresh_from_db()
        assert refused.status_code == status.HTTP_400_BAD_REQUEST
        assert moved.status_code == status.HTTP_202_ACCEPTED
        assert moved.data["status"] == "relinked"
        assert mirror.serie_id == target.id
        assert mirror.is_primary is False
        assert chapter.serie_id == target.id

    def test_link_fetch_error(self, admin_api_client, registry, fake_source, serie, source):
        from catalog.exceptions import SourceFetchError

        fake_source.fail_with = SourceFetchError("blocked")

        response = admin_api_client.post(
            f"/api/v1/series/{serie.id}/link-source/",
            {"source_id": "fakesource", "external_id": "entry-2"},
            format="json",
        )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY

    def test_toggle_chapters(self, admin_api_client, chapter):
        url = f"/api/v1/series/{chapter.serie_id}/chapters/toggle/"

        response = admin_api_client.post(url, {"chapter_ids": [str(chapter.id)], "enabled": False}, format="json")

        chapter.refresh_from_db()
        assert response.data == {"success": True, "count": 1}
        assert chapter.enabled is False

    def test_toggle_foreign_chapter(self, admin_api_client, chapter):
        from catalog.models import Serie

        other = Serie.objects.create(title="Other")

        response = admin_api_client.post(
            f"/api/v1/series/{other.id}/chapters/toggle/",
            {"chapter_ids": [str(chapter.id)], "enabled": False},
            format="json",
        )

        chapter.refresh_from_db()
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert chapter.enabled is True

    def test_acknowledge_and_delete_removed_chapters(self, admin_api_client, chapter):
        from django.utils import timezone

        from catalog.models import Chapter
        from catalog.services import storage

        base = f"/api/v1/series/{chapter.serie_id}/chapters"
        body = {"chapter_ids": [str(chapter.id)]}

        still_listed = admin_api_client.post(f"{base}/delete/", body, format="json")
        assert still_listed.status_code == status.HTTP_400_BAD_REQUEST

        chapter.source_removed_at = timezone.now()
        chapter.save()
        storage.save_object(f"{storage.chapter_prefix(chapter.serie_id, chapter.id)}page-0.webp", b"data")

        acknowledged = admin_api_client.post(f"{base}/acknowledge/", body, format="json")
        chapter.refresh_from_db()
        assert acknowledged.data["count"] == 1
        assert chapter.source_removal_acknowledged_at is not None

        deleted = admin_api_client.post(f"{base}/delete/", body, format="json")
        assert deleted.data == {"success": True, "count": 1, "files_deleted": 1}
        assert not Chapter.objects.filter(pk=chapter.id).exists()

    def test_toggle_page_permanent_reclassifies(self, admin_api_client, chapter):
        from catalog.models import ChapterPage

        ChapterPage.objects.create(chapter=chapter, index=0, url="https://media.test/0.webp")
        ChapterPage.objects.create(chapter=chapter, index=1, url=None, source_url="https://fake.test/1.png")
        url = f"/api/v1/series/{chapter.serie_id}/chapters/{chapter.id}/pages/1/toggle-permanent/"

        flagged = admin_api_client.post(url, {"permanently_failed": True}, format="json")
        chapter.refresh_from_db()
        assert flagged.data["status"] == "Incomplete"
        assert chapter.page_fetch_status == "Incomplete"

        unflagged = admin_api_client.post(url, {"permanently_failed": False}, format="json")
        chapter.refresh_from_db()
        assert unflagged.data["status"] == "Partial"
        assert chapter.page_fetch_status == "Partial"

    def test_toggle_missing_page(self, admin_api_client, chapter):
        response = admin_api_client.post(
            f"/api/v1/series/{chapter.serie_id}/chapters/{chapter.id}/pages/9/toggle-permanent/",
            {"permanently_failed": True},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestChapterEndpoints:
    """Failed page retries and statistics."""

    def test_global_retry_goes_through_scheduler(self, admin_api_client):
        from catalog.models import Job

        response = admin_api_client.post("/api/v1/chapters/retry-failed/", {}, format="json")

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert Job.objects.get(pk=response.data["job_id"]).payload == {"type": "RETRY_FAILED_PAGES"}

    def test_serie_retry(self, admin_api_client, chapter):
        from catalog.models import ChapterPage

        chapter.page_fetch_status = "Partial"
        chapter.save()
        ChapterPage.objects.create(chapter=chapter, index=0, source_url="https://fake.test/p/0.png")

        response = admin_api_client.post(
            "/api/v1/chapters/retry-failed/",
            {"scope": "serie", "serie_id": str(chapter.serie_id)},
            format="json",
        )

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.data["queued"] == 1

    def test_serie_retry_validation(self, admin_api_client, db):
        response = admin_api_client.post(
            "/api/v1/chapters/retry-failed/", {"scope": "serie", "serie_id": "nope"}, format="json"
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

        response = admin_api_client.post(
            "/api/v1/chapters/retry-failed/", {"scope": "serie", "serie_id": str(uuid.uuid4())}, format="json"
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

        response = admin_api_client.post("/api/v1/chapters/retry-failed/", {"scope": "all"}, format="json")
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_failed_stats(self, admin_api_client, chapter):
        from catalog.models import ChapterPage

        chapter.page_fetch_status = "Partial"
        chapter.save()
        ChapterPage.objects.create(chapter=chapter, index=0, source_url="https://fake.test/p/0.png")
        ChapterPage.objects.create(
            chapter=chapter, index=1, source_url="https://fake.test/p/1.png", permanently_failed=True
        )

        response = admin_api_client.get("/api/v1/chapters/failed-stats/")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["chapters"]["Partial"] == 1
        assert response.data["retryable_pages"] == 1
        assert response.data["permanently_failed_pages"] == 1

    def test_failed_stats_bad_serie_id(self, admin_api_client):
        response = admin_api_client.get("/api/v1/chapters/failed-stats/?serie_id=nope")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestJobEndpoints:
    """Queue inspection and control."""

    def _enqueue_scheduler_job(self):
        from catalog.queue import jobs

        return jobs.enqueue("update-scheduler", {"type": "FETCH_LATEST"})

    def test_list_queues(self, admin_api_client):
        from catalog.queue.definitions import QUEUES

        response = admin_api_client.get("/api/v1/jobs/")

        assert response.status_code == status.HTTP_200_OK
        assert [entry["queue"] for entry in response.data["queues"]] == list(QUEUES)

    def test_list_queue_jobs(self, admin_api_client):
        job = self._enqueue_scheduler_job()

        response = admin_api_client.get("/api/v1/jobs/update-scheduler/?state=waiting")

        assert response.status_code == status.HTTP_200_OK
        assert [entry["job_id"] for entry in response.data["jobs"]] == [job.job_id]
        assert response.data["counts"]["waiting"] == 1

    def test_list_invalid_state(self, admin_api_client):
        response = admin_api_client.get("/api/v1/jobs/update-scheduler/?state=sleeping")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_queue(self, admin_api_client):
        assert admin_api_client.get("/api/v1/jobs/nope/").status_code == status.HTTP_404_NOT_FOUND
        assert admin_api_client.post("/api/v1/jobs/nope/pause/").status_code == status.HTTP_404_NOT_FOUND

    def test_remove_job(self, admin_api_client):
        from catalog.models import Job, JobStatus

        job = self._enqueue_scheduler_job()
        Job.objects.filter(pk=job.job_id).update(status=JobStatus.ACTIVE)

        response = admin_api_client.delete(f"/api/v1/jobs/update-scheduler/{job.job_id}/")
        assert response.status_code == status.HTTP_409_CONFLICT

        Job.objects.filter(pk=job.job_id).update(status=JobStatus.WAITING)
        response = admin_api_client.delete(f"/api/v1/jobs/update-scheduler/{job.job_id}/")
        assert response.status_code == status.HTTP_200_OK
        assert not Job.objects.filter(pk=job.job_id).exists()

        response = admin_api_client.delete(f"/api/v1/jobs/update-scheduler/{job.job_id}/")
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_requeue_only_failed(self, admin_api_client):
        from catalog.models import Job, JobStatus

        job = self._enqueue_scheduler_job()

        response = admin_api_client.post(f"/api/v1/jobs/update-scheduler/{job.job_id}/requeue/")
        assert response.status_code == status.HTTP_409_CONFLICT

        Job.objects.filter(pk=job.job_id).update(status=JobStatus.FAILED, attempts_made=1)
        response = admin_api_client.post(f"/api/v1/jobs/update-scheduler/{job.job_id}/requeue/")
        assert response.status_code == status.HTTP_200_OK
        assert Job.objects.get(pk=job.job_id).status == JobStatus.WAITING

    def test_pause_and_resume(self, admin_api_client):
        from catalog.queue import jobs

        response = admin_api_client.post("/api/v1/jobs/indexer/pause/")
        assert response.data["is_paused"] is True
        assert jobs.is_paused("indexer")

        response = admin_api_client.post("/api/v1/jobs/indexer/resume/")
        assert response.data["is_paused"] is False
        assert not jobs.is_paused("indexer")

    def test_pause_all_and_resume_all(self, admin_api_client):
        from catalog.queue import jobs
        from catalog.queue.definitions import QUEUES

        response = admin_api_client.post("/api/v1/jobs/pause-all/")
        assert response.data["queues"] == list(QUEUES)
        assert all(jobs.is_paused(name) for name in QUEUES)

        admin_api_client.post("/api/v1/jobs/resume-all/")
        assert not any(jobs.is_paused(name) for name in QUEUES)

    @pytest.mark.parametrize("hours,expected", [("0", 400), ("169", 400), ("abc", 400), ("2", 200)])
    def test_metrics_hours_bounds(self, admin_api_client, hours, expected):
        response = admin_api_client.get(f"/api/v1/jobs/indexer/metrics/?hours={hours}")

        assert response.status_code == expected
        if expected == 200:
            assert len(response.data["metrics"]) == 2
