"""
Admin API views.

REST endpoints for operating the ingestion engine:
- Imports and refreshes per source or serie
- Catalog URL parsing
- Serie soft delete, restore and deletion status
- Serie field locks and edits, primary source, source linking
- Chapter enable/disable, removal acknowledgement and deletion, page failure flags
- Failed page retries and statistics
- Job queue inspection and control (pause, resume, requeue, remove)
- Source health

All endpoints require an admin user.
"""

import logging
import uuid

from drf_spectacular.utils import OpenApiParameter, extend_schema
from drf_spectacular.types import OpenApiTypes
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from catalog.api.throttling import ImportTriggerThrottle, UrlParseThrottle
from catalog.exceptions import (
    DeletionStateError,
    NotFoundError,
    PayloadValidationError,
    SerieEditError,
    SourceFetchError,
)
from catalog.models import JobStatus, Serie
from catalog.queue import jobs
from catalog.queue.definitions import QUEUES
from catalog.services import deletion, health, importer, page_pipeline, scheduler, serie_admin
from catalog.sources.url_parser import parse_source_url, parse_source_urls

logger = logging.getLogger(__name__)

MAX_METRICS_HOURS = 24 * 7


def _error(message: str, code: int) -> Response:
    return Response({'error': message}, status=code)


def _parse_uuid(value):
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _unknown_queue(queue: str):
    if queue not in QUEUES:
        return _error(f'Unknown queue: {queue}', status.HTTP_404_NOT_FOUND)
    return None


def _serialize_job(job) -> dict:
    return {
        'job_id': job.job_id,
        'queue': job.queue,
        'name': job.name,
        'status': job.status,
        'payload': job.payload,
        'attempts_made': job.attempts_made,
        'max_attempts': job.max_attempts,
        'run_at': job.run_at.isoformat(),
        'created_at': job.created_at.isoformat(),
        'started_at': job.started_at.isoformat() if job.started_at else None,
        'finished_at': job.finished_at.isoformat() if job.finished_at else None,
        'result': job.result,
        'error': job.error_message or None,
    }


# ============================================================
# Source Endpoints
# ============================================================

@extend_schema(
    tags=['Sources'],
    summary='Import a serie from a source',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'external_id': {'type': 'string', 'description': 'Serie id on the catalog'},
            },
            'required': ['external_id'],
        }
    },
    responses={
        200: {'description': 'Serie already imported'},
        202: {'description': 'Import queued'},
        404: {'description': 'Unknown source'},
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
@throttle_classes([ImportTriggerThrottle])
def import_serie(request, source_id):
    """
    Import a serie unless one of its mirrors already exists.

    Response:
    {"status": "exists", "serie_id": "..."} or {"status": "queued", "job_id": "..."}
    """
    external_id = (request.data.get('external_id') or '').strip()
    if not external_id:
        return _error('external_id is required', status.HTTP_400_BAD_REQUEST)

    try:
        result = importer.request_import(source_id, external_id)
    except NotFoundError as e:
        return _error(str(e), status.HTTP_404_NOT_FOUND)

    code = status.HTTP_200_OK if result['status'] == 'exists' else status.HTTP_202_ACCEPTED
    return Response(result, status=code)


@extend_schema(
    tags=['Sources'],
    summary='Refresh every serie of a source',
    request=None,
    responses={202: {'description': 'REFRESH_ALL queued for the source'}, 404: {'description': 'Unknown source'}},
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
@throttle_classes([ImportTriggerThrottle])
def refresh_source(request, source_id):
    try:
        job_id = importer.refresh_source(source_id)
    except NotFoundError as e:
        return _error(str(e), status.HTTP_404_NOT_FOUND)
    return Response({'success': True, 'job_id': job_id}, status=status.HTTP_202_ACCEPTED)


@extend_schema(
    tags=['Sources'],
    summary='Source health',
    description='Tracked series, failing series, last check and queued imports per source.',
)
@api_view(['GET'])
@permission_classes([IsAdminUser])
def sources_health(request):
    return Response(health.source_health())


@extend_schema(
    tags=['Sources'],
    summary='Parse a catalog URL',
    request={
        'application/json': {
            'type': 'object',
            'properties': {'url': {'type': 'string', 'format': 'uri'}},
            'required': ['url'],
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
@throttle_classes([UrlParseThrottle])
def parse_url(request):
    """
    Resolve one URL to a source and serie id.

    Response: {"source_id": "...", "serie_id": "..."}, 404 when no source matches.
    """
    url = (request.data.get('url') or '').strip()
    if not url:
        return _error('url is required', status.HTTP_400_BAD_REQUEST)

    parsed = parse_source_url(url)
    if parsed is None:
        return _error('URL does not match any enabled source', status.HTTP_404_NOT_FOUND)
    return Response({'source_id': parsed.source_id, 'serie_id': parsed.serie_id})


@extend_schema(
    tags=['Sources'],
    summary='Parse a batch of catalog URLs',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'text': {'type': 'string', 'description': 'One URL per line'},
                'urls': {'type': 'array', 'items': {'type': 'string'}},
            },
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
@throttle_classes([UrlParseThrottle])
def parse_urls(request):
    """
    Resolve up to 100 URLs.

    Response: {"matched": [...], "unmatched": [...]}
    """
    urls = request.data.get('urls')
    if urls is None:
        urls = request.data.get('text') or ''
    if not isinstance(urls, (str, list)):
        return _error('text or urls is required', status.HTTP_400_BAD_REQUEST)
    return Response(parse_source_urls(urls))


# ============================================================
# Serie Endpoints
# ============================================================

@extend_schema(
    tags=['Series'],
    summary='Refresh every mirror of a serie',
    request=None,
    responses={202: {'description': 'Imports queued'}, 404: {'description': 'Unknown serie'}},
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
@throttle_classes([ImportTriggerThrottle])
def refresh_serie(request, serie_id):
    try:
        job_ids = importer.refresh_serie(serie_id)
    except NotFoundError as e:
        return _error(str(e), status.HTTP_404_NOT_FOUND)
    return Response({'success': True, 'job_ids': job_ids}, status=status.HTTP_202_ACCEPTED)


@extend_schema(
    tags=['Series'],
    summary='Soft delete a serie',
    request=None,
    responses={
        202: {'description': 'Soft delete queued'},
        400: {'description': 'Already marked for deletion'},
        404: {'description': 'Unknown serie'},
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def delete_serie(request, serie_id):
    try:
        result = deletion.request_soft_delete(serie_id)
    except NotFoundError as e:
        return _error(str(e), status.HTTP_404_NOT_FOUND)
    except DeletionStateError as e:
        return _error(str(e), status.HTTP_400_BAD_REQUEST)
    return Response(result, status=status.HTTP_202_ACCEPTED)


@extend_schema(
    tags=['Series'],
    summary='Restore a soft-deleted serie',
    request=None,
    responses={200: {'description': 'Restored'}, 400: {'description': 'Not marked for deletion'}},
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def restore_serie(request, serie_id):
    try:
        result = deletion.restore(serie_id)
    except NotFoundError as e:
        return _error(str(e), status.HTTP_404_NOT_FOUND)
    except DeletionStateError as e:
        return _error(str(e), status.HTTP_400_BAD_REQUEST)
    return Response(result)


@extend_schema(
    tags=['Series'],
    summary='Deletion status of a serie',
)
@api_view(['GET'])
@permission_classes([IsAdminUser])
def deletion_status(request, serie_id):
    return Response(deletion.deletion_status(serie_id))


@extend_schema(
    tags=['Series'],
    summary='Upload a custom cover',
    description='The cover field must be locked first.',
    request={
        'application/json': {
            'type': 'object',
            'properties': {'image_url': {'type': 'string', 'format': 'uri'}},
            'required': ['image_url'],
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def custom_cover(request, serie_id):
    image_url = (request.data.get('image_url') or '').strip()
    if not image_url:
        return _error('image_url is required', status.HTTP_400_BAD_REQUEST)

    serie = Serie.objects.filter(pk=serie_id).first()
    if serie is None:
        return _error('Serie not found', status.HTTP_404_NOT_FOUND)
    if not serie.is_locked('cover'):
        return _error('Cover field must be locked before uploading a custom cover', status.HTTP_400_BAD_REQUEST)

    try:
        job = jobs.enqueue(
            'cover-update',
            {'type': 'CUSTOM', 'serie_id': str(serie.id), 'image_url': image_url},
        )
    except PayloadValidationError as e:
        return _error(str(e), status.HTTP_400_BAD_REQUEST)
    return Response({'success': True, 'job_id': job.job_id}, status=status.HTTP_202_ACCEPTED)


def _chapter_ids(request):
    chapter_ids = request.data.get('chapter_ids')
    if not isinstance(chapter_ids, list) or not chapter_ids:
        return None
    if any(_parse_uuid(chapter_id) is None for chapter_id in chapter_ids):
        return None
    return chapter_ids


@extend_schema(
    tags=['Series'],
    summary='Lock, unlock or edit a display field',
    description='Editing a field also locks it. Unlocking the cover drops the custom cover.',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'action': {'type': 'string', 'enum': ['lock', 'unlock', 'update']},
                'field': {'type': 'string', 'enum': ['title', 'synopsis', 'status', 'type', 'cover']},
                'value': {'description': 'New value for update'},
            },
            'required': ['action', 'field'],
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def serie_field(request, serie_id):
    try:
        result = serie_admin.update_field(
            serie_id,
            request.data.get('action'),
            request.data.get('field'),
            request.data.get('value'),
        )
    except NotFoundError as e:
        return _error(str(e), status.HTTP_404_NOT_FOUND)
    except SerieEditError as e:
        return _error(str(e), status.HTTP_400_BAD_REQUEST)
    return Response(result)


@extend_schema(
    tags=['Series'],
    summary='Set the primary source of a serie',
    request={
        'application/json': {
            'type': 'object',
            'properties': {'serie_source_id': {'type': 'string', 'format': 'uuid'}},
            'required': ['serie_source_id'],
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def primary_source(request, serie_id):
    serie_source_id = _parse_uuid(request.data.get('serie_source_id'))
    if serie_source_id is None:
        return _error('serie_source_id must be a UUID', status.HTTP_400_BAD_REQUEST)

    try:
        result = serie_admin.set_primary_source(serie_id, serie_source_id)
    except NotFoundError as e:
        return _error(str(e), status.HTTP_404_NOT_FOUND)
    return Response(result)


@extend_schema(
    tags=['Series'],
    summary='Link a catalog entry to a serie',
    description='Set relink to move an entry currently mirrored by another serie.',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'source_id': {'type': 'string'},
                'external_id': {'type': 'string'},
                'relink': {'type': 'boolean', 'default': False},
            },
            'required': ['source_id', 'external_id'],
        }
    },
    responses={
        200: {'description': 'Already linked'},
        202: {'description': 'Linked, chapter import queued'},
        400: {'description': 'Linked to another serie'},
        404: {'description': 'Unknown serie or source'},
        502: {'description': 'Catalog unreachable'},
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
@throttle_classes([ImportTriggerThrottle])
def link_source(request, serie_id):
    source_id = str(request.data.get('source_id') or '').strip()
    external_id = str(request.data.get('external_id') or '').strip()
    if not source_id or not external_id:
        return _error('source_id and external_id are required', status.HTTP_400_BAD_REQUEST)

    try:
        result = serie_admin.link_source(
            serie_id, source_id, external_id, relink=bool(request.data.get('relink', False))
        )
    except NotFoundError as e:
        return _error(str(e), status.HTTP_404_NOT_FOUND)
    except SerieEditError as e:
        return _error(str(e), status.HTTP_400_BAD_REQUEST)
    except SourceFetchError as e:
        logger.error(f"Failed to fetch {source_id}/{external_id} for serie {serie_id}: {e}")
        return _error('Failed to fetch source data', status.HTTP_502_BAD_GATEWAY)

    code = status.HTTP_200_OK if result['status'] == 'already_linked' else status.HTTP_202_ACCEPTED
    return Response(result, status=code)


@extend_schema(
    tags=['Series'],
    summary='Enable or disable chapters',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'chapter_ids': {'type': 'array', 'items': {'type': 'string', 'format': 'uuid'}},
                'enabled': {'type': 'boolean'},
            },
            'required': ['chapter_ids', 'enabled'],
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def toggle_chapters(request, serie_id):
    chapter_ids = _chapter_ids(request)
    enabled = request.data.get('enabled')
    if chapter_ids is None or not isinstance(enabled, bool):
        return _error('chapter_ids (UUID list) and enabled (boolean) are required', status.HTTP_400_BAD_REQUEST)

    try:
        result = serie_admin.toggle_chapters(serie_id, chapter_ids, enabled)
    except SerieEditError as e:
        return _error(str(e), status.HTTP_400_BAD_REQUEST)
    return Response(result)


@extend_schema(
    tags=['Series'],
    summary='Acknowledge chapters removed from their source',
    request={
        'application/json': {
            'type': 'object',
            'properties': {'chapter_ids': {'type': 'array', 'items': {'type': 'string', 'format': 'uuid'}}},
            'required': ['chapter_ids'],
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def acknowledge_chapters(request, serie_id):
    chapter_ids = _chapter_ids(request)
    if chapter_ids is None:
        return _error('chapter_ids must be a non-empty UUID list', status.HTTP_400_BAD_REQUEST)

    try:
        result = serie_admin.acknowledge_removed_chapters(serie_id, chapter_ids)
    except SerieEditError as e:
        return _error(str(e), status.HTTP_400_BAD_REQUEST)
    return Response(result)


@extend_schema(
    tags=['Series'],
    summary='Delete chapters removed from their source',
    description='Only chapters their source stopped listing can be deleted. Stored pages are removed too.',
    request={
        'application/json': {
            'type': 'object',
            'properties': {'chapter_ids': {'type': 'array', 'items': {'type': 'string', 'format': 'uuid'}}},
            'required': ['chapter_ids'],
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def delete_chapters(request, serie_id):
    chapter_ids = _chapter_ids(request)
    if chapter_ids is None:
        return _error('chapter_ids must be a non-empty UUID list', status.HTTP_400_BAD_REQUEST)

    try:
        result = serie_admin.delete_removed_chapters(serie_id, chapter_ids)
    except SerieEditError as e:
        return _error(str(e), status.HTTP_400_BAD_REQUEST)
    return Response(result)


@extend_schema(
    tags=['Series'],
    summary='Flag a page as permanently failed',
    description='The chapter status is recomputed from its stored pages.',
    request={
        'application/json': {
            'type': 'object',
            'properties': {'permanently_failed': {'type': 'boolean'}},
            'required': ['permanently_failed'],
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def toggle_page_permanent(request, serie_id, chapter_id, page_index):
    permanently_failed = request.data.get('permanently_failed')
    if not isinstance(permanently_failed, bool):
        return _error('permanently_failed must be a boolean', status.HTTP_400_BAD_REQUEST)

    try:
        result = page_pipeline.set_page_permanently_failed(serie_id, chapter_id, page_index, permanently_failed)
    except NotFoundError as e:
        return _error(str(e), status.HTTP_404_NOT_FOUND)
    return Response(result)


# ============================================================
# Chapter Endpoints
# ============================================================

@extend_schema(
    tags=['Chapters'],
    summary='Retry failed pages',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'scope': {'type': 'string', 'enum': ['global', 'serie'], 'default': 'global'},
                'serie_id': {'type': 'string', 'format': 'uuid'},
            },
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def retry_failed_chapters(request):
    """
    Queue page-retry jobs for chapters with retryable pages.

    A global retry goes through the update scheduler; a serie retry queues
    that serie's chapters directly.
    """
    scope = request.data.get('scope', 'global')

    if scope == 'serie':
        serie_id = _parse_uuid(request.data.get('serie_id'))
        if serie_id is None:
            return _error('A valid serie_id is required for scope "serie"', status.HTTP_400_BAD_REQUEST)
        if not Serie.objects.filter(pk=serie_id).exists():
            return _error('Serie not found', status.HTTP_404_NOT_FOUND)
        result = scheduler.retry_failed_pages(serie_id=serie_id)
        return Response({'success': True, 'scope': 'serie', **result}, status=status.HTTP_202_ACCEPTED)

    if scope != 'global':
        return _error('scope must be "global" or "serie"', status.HTTP_400_BAD_REQUEST)

    job = jobs.enqueue('update-scheduler', {'type': 'RETRY_FAILED_PAGES'})
    return Response({'success': True, 'scope': 'global', 'job_id': job.job_id}, status=status.HTTP_202_ACCEPTED)


@extend_schema(
    tags=['Chapters'],
    summary='Failed chapter statistics',
    parameters=[OpenApiParameter('serie_id', OpenApiTypes.UUID, required=False)],
)
@api_view(['GET'])
@permission_classes([IsAdminUser])
def failed_chapter_stats(request):
    serie_id = request.query_params.get('serie_id')
    if serie_id:
        serie_id = _parse_uuid(serie_id)
        if serie_id is None:
            return _error('serie_id must be a UUID', status.HTTP_400_BAD_REQUEST)
    return Response(health.failed_chapter_stats(serie_id or None))


# ============================================================
# Job Endpoints
# ============================================================

@extend_schema(tags=['Jobs'], summary='Job counts per queue')
@api_view(['GET'])
@permission_classes([IsAdminUser])
def list_queues(request):
    return Response({'queues': jobs.all_queue_counts()})


@extend_schema(
    tags=['Jobs'],
    summary='List jobs of a queue',
    parameters=[
        OpenApiParameter('state', OpenApiTypes.STR, required=False, description='Comma separated states'),
        OpenApiParameter('limit', OpenApiTypes.INT, required=False),
        OpenApiParameter('offset', OpenApiTypes.INT, required=False),
    ],
)
@api_view(['GET'])
@permission_classes([IsAdminUser])
def list_queue_jobs(request, queue):
    error = _unknown_queue(queue)
    if error:
        return error

    states = [state for state in request.query_params.get('state', '').split(',') if state]
    invalid = [state for state in states if state not in JobStatus.values]
    if invalid:
        return _error(f'Unknown state: {", ".join(invalid)}', status.HTTP_400_BAD_REQUEST)

    try:
        limit = min(int(request.query_params.get('limit', 50)), 500)
        offset = max(int(request.query_params.get('offset', 0)), 0)
    except ValueError:
        return _error('limit and offset must be integers', status.HTTP_400_BAD_REQUEST)

    found = jobs.list_jobs(queue, states=states, limit=limit, offset=offset)
    return Response({
        'queue': queue,
        'counts': jobs.queue_counts(queue),
        'jobs': [_serialize_job(job) for job in found],
    })


@extend_schema(tags=['Jobs'], summary='Remove a job', request=None)
@api_view(['DELETE'])
@permission_classes([IsAdminUser])
def remove_job(request, queue, job_id):
    error = _unknown_queue(queue)
    if error:
        return error

    if jobs.get_job(queue, job_id) is None:
        return _error('Job not found', status.HTTP_404_NOT_FOUND)
    if not jobs.remove_job(queue, job_id):
        return _error('Job is running and cannot be removed', status.HTTP_409_CONFLICT)
    return Response({'success': True})


@extend_schema(tags=['Jobs'], summary='Requeue a failed job', request=None)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def requeue_job(request, queue, job_id):
    error = _unknown_queue(queue)
    if error:
        return error

    if jobs.get_job(queue, job_id) is None:
        return _error('Job not found', status.HTTP_404_NOT_FOUND)
    if not jobs.requeue_job(queue, job_id):
        return _error('Only failed jobs can be requeued', status.HTTP_409_CONFLICT)
    return Response({'success': True})


@extend_schema(tags=['Jobs'], summary='Pause a queue', request=None)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def pause_queue(request, queue):
    error = _unknown_queue(queue)
    if error:
        return error
    jobs.pause_queue(queue)
    return Response({'success': True, 'queue': queue, 'is_paused': True})


@extend_schema(tags=['Jobs'], summary='Resume a queue', request=None)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def resume_queue(request, queue):
    error = _unknown_queue(queue)
    if error:
        return error
    dispatched = jobs.resume_queue(queue)
    return Response({'success': True, 'queue': queue, 'is_paused': False, 'dispatched': dispatched})


@extend_schema(tags=['Jobs'], summary='Pause every queue', request=None)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def pause_all(request):
    return Response({'success': True, 'queues': jobs.pause_all()})


@extend_schema(tags=['Jobs'], summary='Resume every queue', request=None)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def resume_all(request):
    return Response({'success': True, 'queues': jobs.resume_all()})


@extend_schema(
    tags=['Jobs'],
    summary='Hourly completed and failed counts',
    parameters=[OpenApiParameter('hours', OpenApiTypes.INT, required=False, description='Default 24, max 168')],
)
@api_view(['GET'])
@permission_classes([IsAdminUser])
def queue_metrics(request, queue):
    error = _unknown_queue(queue)
    if error:
        return error

    try:
        hours = int(request.query_params.get('hours', 24))
    except ValueError:
        return _error('hours must be an integer', status.HTTP_400_BAD_REQUEST)
    if not 1 <= hours <= MAX_METRICS_HOURS:
        return _error(f'hours must be between 1 and {MAX_METRICS_HOURS}', status.HTTP_400_BAD_REQUEST)

    return Response({'queue': queue, 'hours': hours, 'metrics': jobs.queue_metrics(queue, hours=hours)})
