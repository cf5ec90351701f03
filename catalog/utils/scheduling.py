"""
Scheduling utilities for the update scheduler and the job runtime.

Provides the failure backoff table used by REFRESH_ALL, retry delay
calculation for queue backoff policies, refresh staggering and the
fingerprint search used by FETCH_LATEST.
"""

from datetime import timedelta
from typing import List, Optional, Sequence

from celery.schedules import crontab
from django.utils import timezone

# Days to wait since last check, keyed by consecutive failure count (5+ uses 5)
FAILURE_BACKOFF_DAYS = {
    1: 0,
    2: 1,
    3: 3,
    4: 7,
    5: 14,
}

BACKOFF_FIXED = "fixed"
BACKOFF_EXPONENTIAL = "exponential"


def failure_backoff_days(consecutive_failures: int) -> int:
    """Return the backoff (days) for a failure count, 0 when none."""
    if consecutive_failures <= 0:
        return 0
    return FAILURE_BACKOFF_DAYS[min(consecutive_failures, 5)]


def should_skip_for_backoff(consecutive_failures: int, last_checked_at, now=None) -> bool:
    """
    Decide whether a failing mirror must be skipped by REFRESH_ALL.

    Mirrors without failures or never checked are always refreshed.

    Args:
        consecutive_failures: Mirror failure counter
        last_checked_at: Last check timestamp (or None)
        now: Reference time (defaults to now)

    Returns:
        True if the mirror is still inside its backoff window
    """
    if consecutive_failures <= 0 or last_checked_at is None:
        return False

    if now is None:
        now = timezone.now()

    skip_days = failure_backoff_days(consecutive_failures)
    days_since_check = (now - last_checked_at) / timedelta(days=1)
    return days_since_check < skip_days


def compute_retry_delay(attempts_made: int, backoff_type: str, backoff_delay_ms: int) -> int:
    """
    Delay in milliseconds before the next attempt.

    Exponential backoff doubles the base delay per attempt already made:
    delay * 2^(attempts_made - 1).
    """
    if backoff_delay_ms <= 0:
        return 0
    if backoff_type == BACKOFF_EXPONENTIAL:
        return int(backoff_delay_ms * 2 ** max(attempts_made - 1, 0))
    return int(backoff_delay_ms)


def refresh_stagger_ms(
    rate_limit_max: int,
    rate_limit_duration_ms: int,
    entry_count: int,
    spread_ms: int,
) -> float:
    """
    Spacing between two refresh jobs of the same source.

    Large enough to respect the source's rate limit and to spread the whole
    backlog over the spread window.
    """
    min_interval = rate_limit_duration_ms / max(rate_limit_max, 1)
    spread_interval = spread_ms / max(entry_count, 1)
    return max(min_interval, spread_interval)


def find_fingerprint(collected: Sequence[str], fingerprint: Sequence[str]) -> int:
    """
    Find a fingerprint as a contiguous run inside the collected ids.

    Returns:
        Start index of the match, or -1 when absent (or fingerprint empty)
    """
    size = len(fingerprint)
    if size == 0 or size > len(collected):
        return -1

    fingerprint = list(fingerprint)
    for start in range(len(collected) - size + 1):
        if list(collected[start:start + size]) == fingerprint:
            return start
    return -1


def new_ids_since_fingerprint(collected: List[str], position: int) -> List[str]:
    """Ids listed before the fingerprint match, or every id when not found."""
    if position >= 0:
        return collected[:position]
    return list(collected)


def cron_to_crontab(expression: str) -> crontab:
    """
    Convert a five-field cron expression into a Celery crontab.

    Raises:
        ValueError: If the expression does not have five fields
    """
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Invalid cron expression: {expression!r}")

    minute, hour, day_of_month, month_of_year, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


def seconds(ms: Optional[float]) -> float:
    """Milliseconds to seconds (Celery countdowns are in seconds)."""
    return (ms or 0) / 1000.0


def register_schedules(fetch_latest_cron: str, refresh_all_cron: str) -> dict:
    """
    Celery beat entries for the periodic update-scheduler jobs.

    An empty cron expression disables the corresponding entry.
    """
    schedules = {}
    if fetch_latest_cron:
        schedules["fetch-latest-scheduler"] = {
            "task": "catalog.tasks.trigger_update",
            "schedule": cron_to_crontab(fetch_latest_cron),
            "args": ("FETCH_LATEST",),
        }
    if refresh_all_cron:
        schedules["refresh-all-scheduler"] = {
            "task": "catalog.tasks.trigger_update",
            "schedule": cron_to_crontab(refresh_all_cron),
            "args": ("REFRESH_ALL",),
        }
    return schedules
