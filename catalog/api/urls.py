"""
Admin API URL configuration.

Endpoints (under /api/v1/):
- POST   sources/<id>/import/               - Import a serie
- POST   sources/<id>/refresh/              - Refresh every serie of a source
- GET    sources/health/                    - Source health
- POST   sources/parse-url/                 - Parse one catalog URL
- POST   sources/parse-urls/                - Parse a batch of catalog URLs
- POST   series/<id>/refresh/               - Refresh every mirror of a serie
- POST   series/<id>/delete/                - Soft delete
- POST   series/<id>/restore/               - Restore
- GET    series/<id>/deletion-status/       - Deletion status
- POST   series/<id>/custom-cover/          - Upload a custom cover
- POST   series/<id>/field/                 - Lock, unlock or edit a field
- POST   series/<id>/primary-source/        - Set the primary mirror
- POST   series/<id>/link-source/           - Link or relink a catalog entry
- POST   series/<id>/chapters/toggle/       - Enable or disable chapters
- POST   series/<id>/chapters/acknowledge/  - Acknowledge removed chapters
- POST   series/<id>/chapters/delete/       - Delete removed chapters
- POST   series/<id>/chapters/<cid>/pages/<n>/toggle-permanent/ - Flag a page
- POST   chapters/retry-failed/             - Retry failed pages
- GET    chapters/failed-stats/             - Failed chapter statistics
- GET    jobs/                              - Job counts per queue
- POST   jobs/pause-all/, jobs/resume-all/  - Pause or resume every queue
- GET    jobs/<queue>/                      - List jobs
- POST   jobs/<queue>/pause/, resume/       - Pause or resume a queue
- GET    jobs/<queue>/metrics/              - Hourly metrics
- DELETE jobs/<queue>/<job_id>/             - Remove a job
- POST   jobs/<queue>/<job_id>/requeue/     - Requeue a failed job
"""

from django.urls import path

from catalog.api import views

app_name = 'catalog_api'

urlpatterns = [
    # Source endpoints
    path('sources/health/', views.sources_health, name='sources_health'),
    path('sources/parse-url/', views.parse_url, name='parse_url'),
    path('sources/parse-urls/', views.parse_urls, name='parse_urls'),
    path('sources/<str:source_id>/import/', views.import_serie, name='import_serie'),
    path('sources/<str:source_id>/refresh/', views.refresh_source, name='refresh_source'),

    # Serie endpoints
    path('series/<uuid:serie_id>/refresh/', views.refresh_serie, name='refresh_serie'),
    path('series/<uuid:serie_id>/delete/', views.delete_serie, name='delete_serie'),
    path('series/<uuid:serie_id>/restore/', views.restore_serie, name='restore_serie'),
    path('series/<uuid:serie_id>/deletion-status/', views.deletion_status, name='deletion_status'),
    path('series/<uuid:serie_id>/custom-cover/', views.custom_cover, name='custom_cover'),
    path('series/<uuid:serie_id>/field/', views.serie_field, name='serie_field'),
    path('series/<uuid:serie_id>/primary-source/', views.primary_source, name='primary_source'),
    path('series/<uuid:serie_id>/link-source/', views.link_source, name='link_source'),
    path('series/<uuid:serie_id>/chapters/toggle/', views.toggle_chapters, name='toggle_chapters'),
    path('series/<uuid:serie_id>/chapters/acknowledge/', views.acknowledge_chapters, name='acknowledge_chapters'),
    path('series/<uuid:serie_id>/chapters/delete/', views.delete_chapters, name='delete_chapters'),
    path(
        'series/<uuid:serie_id>/chapters/<uuid:chapter_id>/pages/<int:page_index>/toggle-permanent/',
        views.toggle_page_permanent,
        name='toggle_page_permanent',
    ),

    # Chapter endpoints
    path('chapters/retry-failed/', views.retry_failed_chapters, name='retry_failed_chapters'),
    path('chapters/failed-stats/', views.failed_chapter_stats, name='failed_chapter_stats'),

    # Job endpoints
    path('jobs/', views.list_queues, name='list_queues'),
    path('jobs/pause-all/', views.pause_all, name='pause_all'),
    path('jobs/resume-all/', views.resume_all, name='resume_all'),
    path('jobs/<str:queue>/', views.list_queue_jobs, name='list_queue_jobs'),
    path('jobs/<str:queue>/pause/', views.pause_queue, name='pause_queue'),
    path('jobs/<str:queue>/resume/', views.resume_queue, name='resume_queue'),
    path('jobs/<str:queue>/metrics/', views.queue_metrics, name='queue_metrics'),
    path('jobs/<str:queue>/<str:job_id>/', views.remove_job, name='remove_job'),
    path('jobs/<str:queue>/<str:job_id>/requeue/', views.requeue_job, name='requeue_job'),
]
