"""
Django models for the catalog ingestion engine.

Models: Source, Genre, Author, Artist, Serie, SerieSource, ScanlationGroup,
        Chapter, ChapterPage, Job, JobFlow, QueueState

Serie is the canonical aggregate; SerieSource is one catalog's mirror of
it. Job/JobFlow/QueueState back the durable queue runtime in
catalog.queue.
"""

import uuid

from django.db import models
from django.db.models import Q
from django.utils import timezone

from catalog.sources.core import (
    SourceLanguage,
    SourceSerieType,
)


class PageFetchStatus(models.TextChoices):
    """Aggregate state of a chapter's page download."""

    PENDING = "Pending", "Pending"
    IN_PROGRESS = "InProgress", "In progress"
    SUCCESS = "Success", "Success"
    PARTIAL = "Partial", "Partial"
    FAILED = "Failed", "Failed"
    PERMANENTLY_FAILED = "PermanentlyFailed", "Permanently failed"
    INCOMPLETE = "Incomplete", "Incomplete"


class ImageQuality(models.TextChoices):
    """Result of the image quality assessment."""

    HEALTHY = "healthy", "Healthy"
    DEGRADED = "degraded", "Degraded"
    CORRUPTED = "corrupted", "Corrupted"


class JobStatus(models.TextChoices):
    """State of a queued job."""

    WAITING = "waiting", "Waiting"
    DELAYED = "delayed", "Delayed"
    WAITING_CHILDREN = "waiting-children", "Waiting for children"
    ACTIVE = "active", "Active"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


TERMINAL_JOB_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)

LANGUAGE_CHOICES = [(language.value, language.value) for language in SourceLanguage]
SERIE_TYPE_CHOICES = [(serie_type.value, serie_type.value) for serie_type in SourceSerieType]

# Serie fields an admin can pin against automated recalculation
LOCKABLE_FIELDS = ("title", "synopsis", "cover", "status", "type")


class Source(models.Model):
    """
    Registry row for one catalog adapter.

    Synced from the adapter's info() at startup; enablement is managed
    via Django Admin.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    external_id = models.CharField(max_length=100, unique=True, help_text="Adapter id")
    name = models.CharField(max_length=200)
    url = models.URLField(blank=True)
    icon = models.URLField(blank=True)
    version = models.CharField(max_length=20, blank=True)
    nsfw = models.BooleanField(default=False)
    enabled = models.BooleanField(default=True)
    languages = models.JSONField(default=list, blank=True)
    search_filters = models.JSONField(default=dict, blank=True)

    # Operating limits
    timeout = models.IntegerField(default=30, help_text="Request timeout (seconds)")
    can_block_scraping = models.BooleanField(default=False)
    minimum_update_interval = models.IntegerField(default=0)
    rate_limit_max = models.IntegerField(default=1, help_text="Requests per window")
    rate_limit_duration = models.IntegerField(default=1000, help_text="Window (ms)")

    # Incremental discovery
    last_fetch_fingerprint = models.JSONField(
        default=list,
        blank=True,
        help_text="Leading external ids of the last 'latest' listing",
    )

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    def save(self, *args, **kwargs):
        self.updated_at = timezone.now()
        super().save(*args, **kwargs)

    class Meta:
        db_table = "catalog_sources"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["enabled"], name="catalog_sou_enabled_9b1c2e_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.external_id})"


class Genre(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=100, unique=True)

    class Meta:
        db_table = "catalog_genres"
        ordering = ["title"]

    def __str__(self):
        return self.title


class Author(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)

    class Meta:
        db_table = "catalog_authors"
        ordering = ["name"]

    def __str__(self):
        return self.name


class Artist(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)

    class Meta:
        db_table = "catalog_artists"
        ordering = ["name"]

    def __str__(self):
        return self.name


class Serie(models.Model):
    """
    Canonical serie record.

    Display fields are recomputed from the primary mirror by the indexer
    unless listed in locked_fields.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=500)
    synopsis = models.TextField(null=True, blank=True)
    cover = models.URLField(max_length=1000, null=True, blank=True)
    custom_cover = models.URLField(max_length=1000, null=True, blank=True)
    status = models.JSONField(default=list, blank=True)
    type = models.CharField(
        max_length=20, choices=SERIE_TYPE_CHOICES, default=SourceSerieType.UNKNOWN.value
    )
    locked_fields = models.JSONField(default=list, blank=True)

    genres = models.ManyToManyField(Genre, related_name="series", blank=True)
    authors = models.ManyToManyField(Author, related_name="series", blank=True)
    artists = models.ManyToManyField(Artist, related_name="series", blank=True)

    # Deletion lifecycle
    soft_deleted_at = models.DateTimeField(null=True, blank=True)
    pending_delete_job_id = models.CharField(max_length=255, null=True, blank=True)

    refreshed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    def save(self, *args, **kwargs):
        self.updated_at = timezone.now()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["updated_at"]
        super().save(*args, **kwargs)

    class Meta:
        db_table = "catalog_series"
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["soft_deleted_at"], name="catalog_ser_soft_de_4f0a1d_idx"),
            models.Index(fields=["updated_at"], name="catalog_ser_updated_7c2b9e_idx"),
        ]

    def __str__(self):
        return self.title

    @property
    def is_soft_deleted(self) -> bool:
        return self.soft_deleted_at is not None

    def is_locked(self, field: str) -> bool:
        return field in (self.locked_fields or [])


class SerieSource(models.Model):
    """
    One catalog's view of a Serie.

    A (source, external_id) pair maps to at most one Serie, and a Serie
    has at most one primary mirror.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    serie = models.ForeignKey(Serie, on_delete=models.CASCADE, related_name="sources")
    source = models.ForeignKey(Source, on_delete=models.CASCADE, related_name="serie_sources")
    external_id = models.CharField(max_length=255)

    # Raw multi-language values as returned by the adapter
    title = models.JSONField(default=dict, blank=True)
    alternates_titles = models.JSONField(default=dict, blank=True)
    synopsis = models.JSONField(default=dict, blank=True)

    cover_source_url = models.URLField(max_length=1000, blank=True)
    cover = models.URLField(max_length=1000, null=True, blank=True)
    status = models.JSONField(default=list, blank=True)
    type = models.CharField(
        max_length=20, choices=SERIE_TYPE_CHOICES, default=SourceSerieType.UNKNOWN.value
    )
    external_url = models.URLField(max_length=1000, null=True, blank=True)

    is_primary = models.BooleanField(default=False)
    consecutive_failures = models.IntegerField(default=0)
    last_checked_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    def save(self, *args, **kwargs):
        self.updated_at = timezone.now()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["updated_at"]
        super().save(*args, **kwargs)

    class Meta:
        db_table = "catalog_serie_sources"
        ordering = ["-is_primary", "created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["source", "external_id"], name="unique_serie_source_external_id"
            ),
            models.UniqueConstraint(
                fields=["serie"],
                condition=Q(is_primary=True),
                name="unique_primary_serie_source",
            ),
        ]
        indexes = [
            models.Index(fields=["source", "last_checked_at"], name="catalog_ser_source__3d8e51_idx"),
            models.Index(fields=["consecutive_failures"], name="catalog_ser_consecu_a61f07_idx"),
        ]

    def __str__(self):
        return f"{self.source.external_id}:{self.external_id}"


class ScanlationGroup(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source = models.ForeignKey(
        Source, on_delete=models.CASCADE, related_name="scanlation_groups"
    )
    external_id = models.CharField(max_length=255)
    name = models.CharField(max_length=255)
    url = models.URLField(max_length=1000, null=True, blank=True)

    class Meta:
        db_table = "catalog_scanlation_groups"
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                fields=["source", "external_id"], name="unique_scanlation_group_external_id"
            ),
        ]

    def __str__(self):
        return self.name


class Chapter(models.Model):
    """
    A chapter of a serie as listed by one catalog.

    Removal is two-stage: source_removed_at is stamped when the catalog
    stops listing the chapter, source_removal_acknowledged_at when an
    admin confirms it.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    serie = models.ForeignKey(Serie, on_delete=models.CASCADE, related_name="chapters")
    source = models.ForeignKey(Source, on_delete=models.CASCADE, related_name="chapters")
    external_id = models.CharField(max_length=255)

    title = models.CharField(max_length=500, blank=True)
    chapter_number = models.FloatField(default=0)
    volume_number = models.IntegerField(null=True, blank=True)
    volume_name = models.CharField(max_length=255, null=True, blank=True)
    language = models.CharField(
        max_length=10, choices=LANGUAGE_CHOICES, default=SourceLanguage.EN.value
    )
    date_upload = models.DateTimeField(default=timezone.now)
    external_url = models.URLField(max_length=1000, null=True, blank=True)
    enabled = models.BooleanField(default=True)

    page_fetch_status = models.CharField(
        max_length=20, choices=PageFetchStatus.choices, default=PageFetchStatus.PENDING
    )
    source_removed_at = models.DateTimeField(null=True, blank=True)
    source_removal_acknowledged_at = models.DateTimeField(null=True, blank=True)

    groups = models.ManyToManyField(ScanlationGroup, related_name="chapters", blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    def save(self, *args, **kwargs):
        self.updated_at = timezone.now()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["updated_at"]
        super().save(*args, **kwargs)

    class Meta:
        db_table = "catalog_chapters"
        ordering = ["-chapter_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["source", "external_id"], name="unique_chapter_external_id"
            ),
        ]
        indexes = [
            models.Index(fields=["serie", "chapter_number"], name="catalog_cha_serie_i_5e7d42_idx"),
            models.Index(fields=["page_fetch_status"], name="catalog_cha_page_fe_0b9c13_idx"),
        ]

    def __str__(self):
        return f"{self.title} (#{self.chapter_number:g})"

    def set_page_fetch_status(self, status: str):
        """Persist a new page fetch status."""
        self.page_fetch_status = status
        self.save(update_fields=["page_fetch_status"])


class ChapterPage(models.Model):
    """
    One page image of a chapter.

    url is the processed (stored) image and stays null until the upload
    succeeds; source_url keeps the catalog URL for retries.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    chapter = models.ForeignKey(Chapter, on_delete=models.CASCADE, related_name="pages")
    index = models.IntegerField()
    type = models.CharField(max_length=10, default="image")
    url = models.URLField(max_length=1000, null=True, blank=True)
    source_url = models.URLField(max_length=2000, null=True, blank=True)
    permanently_failed = models.BooleanField(default=False)
    image_quality = models.CharField(
        max_length=20, choices=ImageQuality.choices, null=True, blank=True
    )
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "catalog_chapter_pages"
        ordering = ["chapter", "index"]
        constraints = [
            models.UniqueConstraint(fields=["chapter", "index"], name="unique_chapter_page_index"),
        ]

    def __str__(self):
        return f"Page {self.index} of {self.chapter_id}"

    @property
    def is_retryable(self) -> bool:
        return not self.url and bool(self.source_url) and not self.permanently_failed


class JobFlow(models.Model):
    """
    Barrier releasing a parent job once every child is terminal.

    pending_children is only ever decremented with a conditional update,
    so the release happens exactly once.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    pending_children = models.IntegerField(default=0)
    released_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "catalog_job_flows"
        ordering = ["-created_at"]

    def __str__(self):
        return f"Flow {self.id} ({self.pending_children} pending)"


class Job(models.Model):
    """
    Durable record of one unit of queued work.

    The row is the source of truth; the Celery message only carries the
    job id and is dropped if the row is gone or already claimed.
    """

    job_id = models.CharField(primary_key=True, max_length=255)
    queue = models.CharField(max_length=50)
    name = models.CharField(max_length=100)
    payload = models.JSONField(default=dict)
    status = models.CharField(
        max_length=20, choices=JobStatus.choices, default=JobStatus.WAITING
    )

    # Retry policy
    attempts_made = models.IntegerField(default=0)
    max_attempts = models.IntegerField(default=1)
    backoff_type = models.CharField(max_length=20, default="exponential")
    backoff_delay = models.IntegerField(default=0, help_text="Base backoff (ms)")
    run_at = models.DateTimeField(default=timezone.now)

    # Flow membership: parent_of is the flow this job gates, flow the one it belongs to
    flow = models.ForeignKey(
        JobFlow, on_delete=models.SET_NULL, null=True, blank=True, related_name="children"
    )
    parent_of = models.OneToOneField(
        JobFlow, on_delete=models.SET_NULL, null=True, blank=True, related_name="parent"
    )
    flow_settled = models.BooleanField(
        default=False, help_text="Already counted towards its flow barrier"
    )

    result = models.JSONField(null=True, blank=True)
    error_message = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    started_at = models.DateTimeField(null=True, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "catalog_jobs"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["queue", "status"], name="catalog_job_queue_s_8a4f2c_idx"),
            models.Index(fields=["queue", "finished_at"], name="catalog_job_queue_f_1e6d90_idx"),
        ]

    def __str__(self):
        return f"{self.queue}:{self.job_id} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    @property
    def duration_seconds(self):
        """Calculate job duration."""
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None


class QueueState(models.Model):
    """Pause flag per queue."""

    name = models.CharField(primary_key=True, max_length=50)
    paused = models.BooleanField(default=False)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "catalog_queue_states"
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({'paused' if self.paused else 'running'})"
