"""
Tests for the service health check endpoint.
"""

from unittest.mock import patch

import pytest


@pytest.mark.django_db
class TestHealthCheck:
    def test_healthy(self, api_client):
        with patch("catalog.views.get_celery_worker_count", return_value=2):
            response = api_client.get("/api/health/")

        data = response.json()
        assert response.status_code == 200
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["redis"] == "not_configured"
        assert data["celery_workers"] == 2
        assert data["queue_depth"] == 0

    def test_queue_depth_counts_pending_jobs(self, api_client):
        from catalog.queue import jobs

        jobs.enqueue("update-scheduler", {"type": "FETCH_LATEST"})
        jobs.enqueue("update-scheduler", {"type": "REFRESH_ALL"}, delay_ms=60000)

        with patch("catalog.views.get_celery_worker_count", return_value=0):
            response = api_client.get("/api/health/")

        assert response.json()["queue_depth"] == 2

    def test_database_error_is_unhealthy(self, api_client):
        from django.db import DatabaseError

        with patch("catalog.views.get_celery_worker_count", return_value=0), patch(
            "catalog.views.connection"
        ) as connection:
            connection.ensure_connection.side_effect = DatabaseError("down")
            response = api_client.get("/api/health/")

        assert response.status_code == 503
        assert response.json()["database"] == "error"
        assert response.json()["queue_depth"] is None
