"""
Service health check.

Endpoint for monitoring and load balancer checks; no authentication.
"""

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.utils import timezone

logger = logging.getLogger(__name__)


def get_redis_connection():
    """
    Get the Redis client behind the cache, if the cache is django-redis.

    Returns:
        Redis client if available, None if not configured.
    """
    if hasattr(cache, "client") and hasattr(cache.client, "get_client"):
        return cache.client.get_client()
    return None


def get_celery_worker_count():
    """
    Get the count of responding Celery workers.

    Returns:
        int: Number of workers, 0 if none answered.
    """
    from config.celery import app as celery_app

    try:
        replies = celery_app.control.inspect(timeout=1.0).ping()
    except Exception as e:
        logger.warning(f"Celery inspect failed: {e}")
        return 0
    return len(replies or {})


def get_queue_depth():
    """Jobs waiting or delayed across every queue."""
    from catalog.models import Job, JobStatus

    return Job.objects.filter(status__in=[JobStatus.WAITING, JobStatus.DELAYED]).count()


def health_check(request):
    """
    Health check endpoint for the catalog service.

    Endpoint: GET /api/health/

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - redis: "connected", "not_configured", or "error"
        - celery_workers: integer count of responding workers
        - queue_depth: jobs waiting to run
        - timestamp: ISO timestamp of the check

    Returns:
        JsonResponse: HTTP 200 for healthy, HTTP 503 for unhealthy
    """
    status = "healthy"
    http_status = 200

    database_status = "connected"
    try:
        connection.ensure_connection()
    except DatabaseError as e:
        logger.error(f"Health check database error: {e}")
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    redis_status = "not_configured"
    try:
        redis_client = get_redis_connection()
        if redis_client is not None:
            redis_status = "connected" if redis_client.ping() else "error"
    except Exception as e:
        logger.warning(f"Health check redis error: {e}")
        redis_status = "error"

    celery_workers = get_celery_worker_count()

    queue_depth = None
    if database_status == "connected":
        queue_depth = get_queue_depth()

    return JsonResponse(
        {
            "status": status,
            "database": database_status,
            "redis": redis_status,
            "celery_workers": celery_workers,
            "queue_depth": queue_depth,
            "timestamp": timezone.now().isoformat(),
        },
        status=http_status,
    )
