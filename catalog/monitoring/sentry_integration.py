"""
Sentry error tracking for catalog jobs.

- Breadcrumbs for job context (queue, job id, source)
- Filters sensitive data (cookies, API keys, emails) before sending
- Captures exceptions and threshold alerts with tags

The SDK itself is initialised in config/settings/base.py; with an empty
DSN every call below is a no-op.

Usage:
    from catalog.monitoring import capture_job_error

    capture_job_error(error, queue="chapter-data", job_id=job.job_id, attempts=3)
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

# Sensitive fields to filter from Sentry events
SENSITIVE_FIELDS = {
    "cookies",
    "cookie",
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "auth",
    "password",
    "secret",
    "token",
    "x-api-key",
    "master_key",
    "to",
    "new_email",
    "reset_url",
    "verification_url",
    "change_email_url",
}


def _is_sensitive(key: str) -> bool:
    key_lower = key.lower()
    if key_lower in SENSITIVE_FIELDS:
        return True
    # Short names only match exactly ("to" would hit "total")
    return any(len(field) > 3 and field in key_lower for field in SENSITIVE_FIELDS)


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Filter sensitive data from a dictionary.

    Replaces values for keys that match sensitive field names, recursing
    into nested dicts.
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        if _is_sensitive(str(key)):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value

    return filtered


def before_send(event, hint):
    """Sentry before_send hook scrubbing request data and extras."""
    request = event.get("request")
    if isinstance(request, dict):
        for key in ("cookies", "headers", "data"):
            if isinstance(request.get(key), dict):
                request[key] = _filter_sensitive_data(request[key])
    if isinstance(event.get("extra"), dict):
        event["extra"] = _filter_sensitive_data(event["extra"])
    return event


def add_job_breadcrumb(
    queue: str,
    job_id: str,
    message: str = "Job operation",
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add a breadcrumb to Sentry for job context.

    Args:
        queue: Queue name
        job_id: Job id
        message: Description of the operation
        level: Log level (info, warning, error)
        extra_data: Additional context data (filtered)
    """
    data = {"queue": queue, "job_id": job_id}
    if extra_data:
        data.update(_filter_sensitive_data(extra_data))

    try:
        sentry_sdk.add_breadcrumb(category="job", message=message, level=level, data=data)
    except Exception as e:
        logger.warning(f"Failed to add Sentry breadcrumb: {e}")


def capture_job_error(
    error: Exception,
    queue: str,
    job_id: str,
    attempts: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture a job that failed for good.

    Args:
        error: The exception raised by the last attempt
        queue: Queue name
        job_id: Job id
        attempts: Attempts made
        payload: Job payload (filtered before sending)
    """
    from catalog.monitoring.error_logger import classify_error

    category = classify_error(error)
    add_job_breadcrumb(
        queue=queue,
        job_id=job_id,
        message=f"Error: {type(error).__name__}",
        level="error",
        extra_data=payload,
    )

    try:
        with sentry_sdk.push_scope() as scope:
            scope.set_tag("catalog.queue", queue)
            scope.set_tag("catalog.error_category", category)
            scope.set_extra("job_id", job_id)
            if attempts is not None:
                scope.set_extra("attempts", attempts)
            if payload:
                scope.set_extra("payload", _filter_sensitive_data(payload))

            sentry_sdk.capture_exception(error)

    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")


def capture_alert(
    message: str,
    level: str = "warning",
    source_id: Optional[str] = None,
    source_name: Optional[str] = None,
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an alert message to Sentry.

    Used for threshold breaches.
    """
    try:
        with sentry_sdk.push_scope() as scope:
            scope.set_tag("alert.type", "threshold_breach")
            if source_name:
                scope.set_tag("catalog.source", source_name)
            if source_id:
                scope.set_extra("source_id", source_id)
            if extra_data:
                scope.set_extra("alert_data", _filter_sensitive_data(extra_data))

            sentry_sdk.capture_message(message, level=level)

    except Exception as e:
        logger.warning(f"Failed to capture alert to Sentry: {e}")
