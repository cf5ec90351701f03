"""
Structured error logging for job failures.

Maps exceptions onto the catalog error taxonomy so log lines and Sentry
tags can be filtered by category.

Usage:
    from catalog.monitoring import log_error_with_context

    log_error_with_context(error, queue="serie-inserter", job_id=job.job_id)
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from catalog.exceptions import (
    ByparrError,
    DeletionStateError,
    NotFoundError,
    PayloadValidationError,
    PermanentImageError,
    SearchIndexError,
    SerieEditError,
    SourceFetchError,
    SourceSchemaError,
    StorageError,
    VocabularyError,
)

logger = logging.getLogger(__name__)

# Most specific classes first
ERROR_CATEGORIES = (
    (NotFoundError, "not_found"),
    (ByparrError, "anti_bot"),
    (SourceSchemaError, "schema"),
    (SourceFetchError, "fetch"),
    (VocabularyError, "vocabulary"),
    (PermanentImageError, "image"),
    (PayloadValidationError, "payload"),
    (ValidationError, "payload"),
    (DeletionStateError, "deletion_state"),
    (SerieEditError, "serie_edit"),
    (SearchIndexError, "search_index"),
    (StorageError, "storage"),
    (httpx.TimeoutException, "timeout"),
    (httpx.HTTPError, "network"),
)


def classify_error(error: Exception) -> str:
    """Return the taxonomy category of an exception ("unknown" if none)."""
    for error_class, category in ERROR_CATEGORIES:
        if isinstance(error, error_class):
            return category
    return "unknown"


def is_retryable(error: Exception) -> bool:
    """Whether the job runtime retries a job that raised this error."""
    return not isinstance(error, (NotFoundError, PayloadValidationError, ValidationError))


def log_error_with_context(
    error: Exception,
    queue: Optional[str] = None,
    job_id: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None,
    level: int = logging.ERROR,
) -> str:
    """
    Log an error with its category and job context.

    Returns:
        The error category
    """
    from .sentry_integration import _filter_sensitive_data

    category = classify_error(error)
    context = {"queue": queue, "job_id": job_id, "category": category}
    if extra_context:
        context.update(_filter_sensitive_data(extra_context))

    logger.log(
        level,
        f"[{category}] {type(error).__name__}: {error}",
        extra={"catalog": context},
        exc_info=error if level >= logging.ERROR else None,
    )
    return category
