"""
Tests for the monitoring and alerting system.

- Sentry capture with job context and scrubbed payloads
- Consecutive import failure threshold per source
- Error classification for structured logs
"""

import logging

import httpx
import pytest
import redis
from unittest.mock import MagicMock, Mock, patch

from catalog.exceptions import (
    ByparrError,
    ImageTooLargeError,
    NotFoundError,
    PayloadValidationError,
    SourceFetchError,
    SourceSchemaError,
)


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis_mock = Mock()
    redis_mock.incr = Mock(return_value=1)
    redis_mock.get = Mock(return_value=b"0")
    redis_mock.delete = Mock(return_value=True)
    redis_mock.expire = Mock(return_value=True)
    return redis_mock


@pytest.fixture
def mock_sentry():
    """Replace the sentry_sdk module used by the integration."""
    sentry = Mock()
    sentry.push_scope = Mock(return_value=MagicMock())
    with patch("catalog.monitoring.sentry_integration.sentry_sdk", sentry):
        yield sentry


class TestFailureTracker:
    """Consecutive failure counting per source."""

    def test_first_failure_sets_ttl(self, mock_redis):
        from catalog.monitoring.failure_tracker import FAILURE_COUNTER_TTL, FailureTracker

        tracker = FailureTracker(redis_client=mock_redis)

        assert tracker.record_failure("mangadex") == 1
        mock_redis.incr.assert_called_once_with("catalog:failures:mangadex")
        mock_redis.expire.assert_called_once_with("catalog:failures:mangadex", FAILURE_COUNTER_TTL)

    def test_later_failures_keep_ttl(self, mock_redis):
        from catalog.monitoring.failure_tracker import FailureTracker

        mock_redis.incr.return_value = 2
        tracker = FailureTracker(redis_client=mock_redis)

        tracker.record_failure("mangadex")

        mock_redis.expire.assert_not_called()

    def test_alert_once_at_threshold(self, mock_redis):
        from catalog.monitoring.failure_tracker import FailureTracker

        tracker = FailureTracker(redis_client=mock_redis, threshold=3)

        with patch("catalog.monitoring.failure_tracker.trigger_threshold_alert") as alert:
            for count in (1, 2, 3, 4, 5):
                mock_redis.incr.return_value = count
                tracker.record_failure("mangadex", source_name="MangaDex")

        alert.assert_called_once_with(
            source_id="mangadex", failure_count=3, threshold=3, source_name="MangaDex"
        )

    def test_success_resets_counter(self, mock_redis):
        from catalog.monitoring.failure_tracker import FailureTracker

        FailureTracker(redis_client=mock_redis).record_success("mangadex")

        mock_redis.delete.assert_called_once_with("catalog:failures:mangadex")

    def test_get_failure_count(self, mock_redis):
        from catalog.monitoring.failure_tracker import FailureTracker

        mock_redis.get.return_value = b"4"

        assert FailureTracker(redis_client=mock_redis).get_failure_count("mangadex") == 4

    def test_redis_errors_are_logged_not_raised(self, mock_redis):
        from catalog.monitoring.failure_tracker import FailureTracker

        mock_redis.incr.side_effect = redis.ConnectionError("down")
        mock_redis.delete.side_effect = redis.ConnectionError("down")
        mock_redis.get.side_effect = redis.ConnectionError("down")
        tracker = FailureTracker(redis_client=mock_redis)

        assert tracker.record_failure("mangadex") == 0
        tracker.record_success("mangadex")
        assert tracker.get_failure_count("mangadex") == 0

    def test_without_redis_is_noop(self):
        from catalog.monitoring.failure_tracker import FailureTracker

        tracker = FailureTracker(redis_client=None)

        assert tracker.record_failure("mangadex") == 0
        assert tracker.get_failure_count("mangadex") == 0

    def test_memory_broker_means_no_redis(self, settings):
        from catalog.monitoring.failure_tracker import _get_redis_client

        settings.CELERY_BROKER_URL = "memory://"

        assert _get_redis_client() is None

    def test_threshold_alert_goes_to_sentry(self, mock_sentry):
        from catalog.monitoring.failure_tracker import trigger_threshold_alert

        trigger_threshold_alert("mangadex", 5, threshold=5, source_name="MangaDex")

        mock_sentry.capture_message.assert_called_once()
        message = mock_sentry.capture_message.call_args[0][0]
        assert "MangaDex" in message
        assert "5 in a row" in message


class TestSentryIntegration:
    """Sentry capture with job context."""

    def test_capture_job_error(self, mock_sentry):
        from catalog.monitoring import capture_job_error

        error = SourceFetchError("HTTP 503")

        capture_job_error(
            error,
            queue="serie-inserter",
            job_id="job-1",
            attempts=3,
            payload={"source_id": "abc", "api_key": "hidden"},
        )

        breadcrumb = mock_sentry.add_breadcrumb.call_args[1]
        assert breadcrumb["category"] == "job"
        assert breadcrumb["data"]["queue"] == "serie-inserter"
        assert breadcrumb["data"]["api_key"] == "[Filtered]"

        scope = mock_sentry.push_scope.return_value.__enter__.return_value
        scope.set_tag.assert_any_call("catalog.queue", "serie-inserter")
        scope.set_tag.assert_any_call("catalog.error_category", "fetch")
        scope.set_extra.assert_any_call("attempts", 3)
        scope.set_extra.assert_any_call("payload", {"source_id": "abc", "api_key": "[Filtered]"})
        mock_sentry.capture_exception.assert_called_once_with(error)

    def test_capture_failure_is_swallowed(self, mock_sentry):
        from catalog.monitoring import capture_job_error

        mock_sentry.capture_exception.side_effect = RuntimeError("transport down")

        capture_job_error(ValueError("boom"), queue="indexer", job_id="job-2")

    def test_filter_sensitive_data(self):
        from catalog.monitoring.sentry_integration import _filter_sensitive_data

        filtered = _filter_sensitive_data(
            {
                "to": "reader@example.com",
                "total": 3,
                "headers": {"Authorization": "Bearer x", "Accept": "json"},
                "reset_url": "https://app.test/reset?token=x",
            }
        )

        assert filtered == {
            "to": "[Filtered]",
            "total": 3,
            "headers": {"Authorization": "[Filtered]", "Accept": "json"},
            "reset_url": "[Filtered]",
        }

    def test_before_send_scrubs_request_and_extra(self):
        from catalog.monitoring.sentry_integration import before_send

        event = {
            "request": {"cookies": {"sessionid": "s"}, "headers": {"Cookie": "a=b", "Host": "x"}},
            "extra": {"password": "p", "job_id": "1"},
        }

        result = before_send(event, hint={})

        assert result["request"]["headers"] == {"Cookie": "[Filtered]", "Host": "x"}
        assert result["extra"] == {"password": "[Filtered]", "job_id": "1"}


class TestErrorClassification:
    """Error taxonomy used by logs and Sentry tags."""

    @pytest.mark.parametrize(
        "error,category",
        [
            (NotFoundError("gone"), "not_found"),
            (ByparrError("challenge"), "anti_bot"),
            (SourceSchemaError("bad json"), "schema"),
            (SourceFetchError("503"), "fetch"),
            (ImageTooLargeError(9000, 70000), "image"),
            (PayloadValidationError("bad"), "payload"),
            (httpx.ReadTimeout("slow"), "timeout"),
            (httpx.ConnectError("refused"), "network"),
            (KeyError("x"), "unknown"),
        ],
    )
    def test_classify_error(self, error, category):
        from catalog.monitoring import classify_error

        assert classify_error(error) == category

    def test_is_retryable(self):
        from catalog.monitoring.error_logger import is_retryable

        assert is_retryable(SourceFetchError("503"))
        assert not is_retryable(NotFoundError("gone"))
        assert not is_retryable(PayloadValidationError("bad"))

    def test_log_error_with_context(self, caplog):
        from catalog.monitoring import log_error_with_context

        with caplog.at_level(logging.WARNING, logger="catalog.monitoring.error_logger"):
            category = log_error_with_context(
                SourceFetchError("HTTP 503"),
                queue="chapter-data",
                job_id="job-3",
                extra_context={"token": "t"},
                level=logging.WARNING,
            )

        assert category == "fetch"
        record = caplog.records[0]
        assert record.getMessage() == "[fetch] SourceFetchError: HTTP 503"
        assert record.catalog == {"queue": "chapter-data", "job_id": "job-3", "category": "fetch", "token": "[Filtered]"}
