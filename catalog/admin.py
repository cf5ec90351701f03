"""
Django admin configuration for the catalog models.

Provides interfaces for managing sources, browsing series, mirrors,
chapters and pages, and inspecting the job queues, with colored status
badges and admin actions.
"""

from django.contrib import admin
from django.utils.html import format_html

from catalog.models import (
    Artist,
    Author,
    Chapter,
    ChapterPage,
    Genre,
    ImageQuality,
    Job,
    JobFlow,
    JobStatus,
    PageFetchStatus,
    QueueState,
    ScanlationGroup,
    Serie,
    SerieSource,
    Source,
)
from catalog.queue import jobs

BADGE_HTML = (
    '<span style="background-color: {}; color: white; '
    'padding: 2px 8px; border-radius: 4px;">{}</span>'
)

PAGE_STATUS_COLORS = {
    PageFetchStatus.PENDING: "#ffc107",
    PageFetchStatus.IN_PROGRESS: "#007bff",
    PageFetchStatus.SUCCESS: "#28a745",
    PageFetchStatus.PARTIAL: "#fd7e14",
    PageFetchStatus.FAILED: "#dc3545",
    PageFetchStatus.PERMANENTLY_FAILED: "#6f42c1",
    PageFetchStatus.INCOMPLETE: "#17a2b8",
}

JOB_STATUS_COLORS = {
    JobStatus.WAITING: "#ffc107",
    JobStatus.DELAYED: "#17a2b8",
    JobStatus.WAITING_CHILDREN: "#6f42c1",
    JobStatus.ACTIVE: "#007bff",
    JobStatus.COMPLETED: "#28a745",
    JobStatus.FAILED: "#dc3545",
}

QUALITY_COLORS = {
    ImageQuality.HEALTHY: "#28a745",
    ImageQuality.DEGRADED: "#ffc107",
    ImageQuality.CORRUPTED: "#dc3545",
}


def badge(color, text):
    return format_html(BADGE_HTML, color, text)


@admin.register(Source)
class SourceAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "external_id",
        "enabled_badge",
        "version",
        "nsfw",
        "rate_limit_max",
        "rate_limit_duration",
        "updated_at",
    ]
    list_filter = ["enabled", "nsfw", "can_block_scraping"]
    search_fields = ["name", "external_id", "url"]
    readonly_fields = ["id", "last_fetch_fingerprint", "created_at", "updated_at"]
    actions = ["enable_sources", "disable_sources", "refresh_sources", "reset_fingerprint"]

    def enabled_badge(self, obj):
        if obj.enabled:
            return badge("#28a745", "Enabled")
        return badge("#6c757d", "Disabled")
    enabled_badge.short_description = "Enabled"
    enabled_badge.admin_order_field = "enabled"

    @admin.action(description="Enable selected sources")
    def enable_sources(self, request, queryset):
        count = queryset.update(enabled=True)
        self.message_user(request, f"Enabled {count} source(s).")

    @admin.action(description="Disable selected sources")
    def disable_sources(self, request, queryset):
        count = queryset.update(enabled=False)
        self.message_user(request, f"Disabled {count} source(s).")

    @admin.action(description="Refresh every serie of the selected sources")
    def refresh_sources(self, request, queryset):
        for source in queryset.filter(enabled=True):
            jobs.enqueue("update-scheduler", {"type": "REFRESH_ALL", "source_id": source.external_id})
        self.message_user(request, "Queued REFRESH_ALL for the enabled selected sources.")

    @admin.action(description="Reset latest-updates fingerprint")
    def reset_fingerprint(self, request, queryset):
        count = queryset.update(last_fetch_fingerprint=[])
        self.message_user(request, f"Reset fingerprint of {count} source(s).")


@admin.register(Genre)
class GenreAdmin(admin.ModelAdmin):
    list_display = ["title"]
    search_fields = ["title"]


@admin.register(Author)
class AuthorAdmin(admin.ModelAdmin):
    list_display = ["name"]
    search_fields = ["name"]


@admin.register(Artist)
class ArtistAdmin(admin.ModelAdmin):
    list_display = ["name"]
    search_fields = ["name"]


class SerieSourceInline(admin.TabularInline):
    model = SerieSource
    extra = 0
    fields = ["source", "external_id", "is_primary", "consecutive_failures", "last_checked_at"]
    readonly_fields = fields
    can_delete = False
    show_change_link = True


@admin.register(Serie)
class SerieAdmin(admin.ModelAdmin):
    list_display = ["title", "type", "deletion_badge", "locked_fields", "refreshed_at", "updated_at"]
    list_filter = ["type", "soft_deleted_at"]
    search_fields = ["title", "id"]
    readonly_fields = ["id", "soft_deleted_at", "pending_delete_job_id", "refreshed_at", "created_at"]
    filter_horizontal = ["genres", "authors", "artists"]
    inlines = [SerieSourceInline]
    actions = ["refresh_series", "reindex_series"]

    def deletion_badge(self, obj):
        if obj.is_soft_deleted:
            return badge("#dc3545", "Deleted")
        return badge("#28a745", "Active")
    deletion_badge.short_description = "State"
    deletion_badge.admin_order_field = "soft_deleted_at"

    @admin.action(description="Re-import selected series")
    def refresh_series(self, request, queryset):
        from catalog.services.importer import refresh_serie

        count = sum(len(refresh_serie(serie.id)) for serie in queryset)
        self.message_user(request, f"Queued {count} import(s).")

    @admin.action(description="Re-index selected series")
    def reindex_series(self, request, queryset):
        for serie in queryset:
            jobs.enqueue("indexer", {"serie_id": str(serie.id), "type": "UPDATE"})
        self.message_user(request, f"Queued {queryset.count()} index update(s).")


@admin.register(SerieSource)
class SerieSourceAdmin(admin.ModelAdmin):
    list_display = [
        "serie",
        "source",
        "external_id",
        "is_primary",
        "failures_badge",
        "last_checked_at",
    ]
    list_filter = ["source", "is_primary"]
    search_fields = ["external_id", "serie__title"]
    readonly_fields = ["id", "created_at", "updated_at"]
    raw_id_fields = ["serie"]
    actions = ["reset_failures"]

    def failures_badge(self, obj):
        if obj.consecutive_failures == 0:
            return badge("#28a745", "OK")
        color = "#ffc107" if obj.consecutive_failures < 3 else "#dc3545"
        return badge(color, f"{obj.consecutive_failures} failures")
    failures_badge.short_description = "Health"
    failures_badge.admin_order_field = "consecutive_failures"

    @admin.action(description="Reset failure counter")
    def reset_failures(self, request, queryset):
        count = queryset.update(consecutive_failures=0)
        self.message_user(request, f"Reset {count} mirror(s).")


@admin.register(ScanlationGroup)
class ScanlationGroupAdmin(admin.ModelAdmin):
    list_display = ["name", "source", "external_id"]
    list_filter = ["source"]
    search_fields = ["name", "external_id"]


@admin.register(Chapter)
class ChapterAdmin(admin.ModelAdmin):
    list_display = [
        "serie",
        "chapter_number",
        "title",
        "language",
        "source",
        "page_status_badge",
        "enabled",
        "date_upload",
    ]
    list_filter = ["page_fetch_status", "language", "enabled", "source"]
    search_fields = ["title", "external_id", "serie__title"]
    readonly_fields = ["id", "source_removed_at", "created_at", "updated_at"]
    raw_id_fields = ["serie"]
    actions = ["retry_pages", "acknowledge_removal"]

    def page_status_badge(self, obj):
        return badge(PAGE_STATUS_COLORS.get(obj.page_fetch_status, "#6c757d"), obj.page_fetch_status)
    page_status_badge.short_description = "Pages"
    page_status_badge.admin_order_field = "page_fetch_status"

    @admin.action(description="Retry failed pages")
    def retry_pages(self, request, queryset):
        for chapter in queryset:
            jobs.enqueue("page-retry", {"chapter_id": str(chapter.id)}, job_id=f"page-retry-{chapter.id}")
        self.message_user(request, f"Queued page retry for {queryset.count()} chapter(s).")

    @admin.action(description="Acknowledge removal from source")
    def acknowledge_removal(self, request, queryset):
        from django.utils import timezone

        count = queryset.filter(source_removed_at__isnull=False).update(
            source_removal_acknowledged_at=timezone.now()
        )
        self.message_user(request, f"Acknowledged {count} removed chapter(s).")


@admin.register(ChapterPage)
class ChapterPageAdmin(admin.ModelAdmin):
    list_display = ["chapter", "index", "stored_badge", "quality_badge", "permanently_failed"]
    list_filter = ["permanently_failed", "image_quality"]
    readonly_fields = ["id", "created_at"]
    raw_id_fields = ["chapter"]

    def stored_badge(self, obj):
        if obj.url:
            return badge("#28a745", "Stored")
        if obj.permanently_failed:
            return badge("#6f42c1", "Permanent")
        return badge("#dc3545", "Missing")
    stored_badge.short_description = "Image"

    def quality_badge(self, obj):
        if not obj.image_quality:
            return "-"
        return badge(QUALITY_COLORS.get(obj.image_quality, "#6c757d"), obj.image_quality)
    quality_badge.short_description = "Quality"
    quality_badge.admin_order_field = "image_quality"


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    list_display = ["job_id", "queue", "name", "status_badge", "attempts_made", "run_at", "finished_at"]
    list_filter = ["queue", "status"]
    search_fields = ["job_id", "name"]
    readonly_fields = [field.name for field in Job._meta.fields]
    actions = ["requeue_jobs"]

    def status_badge(self, obj):
        return badge(JOB_STATUS_COLORS.get(obj.status, "#6c757d"), obj.get_status_display())
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    @admin.action(description="Requeue failed jobs")
    def requeue_jobs(self, request, queryset):
        count = sum(
            1
            for job in queryset.filter(status=JobStatus.FAILED)
            if jobs.requeue_job(job.queue, job.job_id)
        )
        self.message_user(request, f"Requeued {count} job(s).")


@admin.register(JobFlow)
class JobFlowAdmin(admin.ModelAdmin):
    list_display = ["id", "pending_children", "released_badge", "created_at"]
    readonly_fields = ["id", "pending_children", "released_at", "created_at"]

    def released_badge(self, obj):
        if obj.released_at:
            return badge("#28a745", "Released")
        return badge("#ffc107", "Waiting")
    released_badge.short_description = "Parent"


@admin.register(QueueState)
class QueueStateAdmin(admin.ModelAdmin):
    list_display = ["name", "paused_badge", "updated_at"]
    actions = ["pause", "resume"]

    def paused_badge(self, obj):
        if obj.paused:
            return badge("#dc3545", "Paused")
        return badge("#28a745", "Running")
    paused_badge.short_description = "State"

    @admin.action(description="Pause selected queues")
    def pause(self, request, queryset):
        for state in queryset:
            jobs.pause_queue(state.name)
        self.message_user(request, f"Paused {queryset.count()} queue(s).")

    @admin.action(description="Resume selected queues")
    def resume(self, request, queryset):
        for state in queryset:
            jobs.resume_queue(state.name)
        self.message_user(request, f"Resumed {queryset.count()} queue(s).")
