"""
Monitoring and alerting for the catalog workers.

- Sentry error tracking with job context
- Consecutive import failure tracking per source via Redis
- Error classification for structured logs

Thresholds (configurable):
- Consecutive import failures: 5 per source
"""

from .sentry_integration import add_job_breadcrumb, capture_alert, capture_job_error
from .failure_tracker import FailureTracker, get_failure_tracker
from .error_logger import classify_error, log_error_with_context

__all__ = [
    "add_job_breadcrumb",
    "capture_alert",
    "capture_job_error",
    "FailureTracker",
    "get_failure_tracker",
    "classify_error",
    "log_error_with_context",
]
