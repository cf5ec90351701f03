"""
Consecutive import failure tracking per source.

- Counts failed serie-inserter runs per source in Redis
- Alert threshold: 5 consecutive failures (CATALOG_FAILURE_THRESHOLD)
- Sends a Sentry alert when the threshold is reached
- Resets the counter on a successful import

Per-mirror counters (SerieSource.consecutive_failures) drive the
scheduler's backoff; this counter only feeds alerting.

Usage:
    from catalog.monitoring import get_failure_tracker

    tracker = get_failure_tracker()
    tracker.record_failure("mangadex", source_name="MangaDex")
    tracker.record_success("mangadex")
"""

import logging
from typing import Optional

import redis
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5

# Counters expire after 24 hours without failures
FAILURE_COUNTER_TTL = 86400


def trigger_threshold_alert(
    source_id: str,
    failure_count: int,
    threshold: int = DEFAULT_FAILURE_THRESHOLD,
    source_name: Optional[str] = None,
) -> None:
    """
    Alert when a source reaches the failure threshold.

    Args:
        source_id: Adapter id of the source
        failure_count: Current consecutive failure count
        threshold: Configured threshold
        source_name: Display name of the source
    """
    from .sentry_integration import capture_alert

    message = (
        f"Consecutive import failures for source {source_name or source_id}: "
        f"{failure_count} in a row"
    )

    logger.warning(message)

    capture_alert(
        message=message,
        level="warning",
        source_id=source_id,
        source_name=source_name,
        extra_data={"failure_count": failure_count, "threshold": threshold},
    )


class FailureTracker:
    """Tracks consecutive import failures per source using Redis."""

    def __init__(
        self,
        redis_client=None,
        threshold: int = DEFAULT_FAILURE_THRESHOLD,
        key_prefix: str = "catalog:failures:",
    ):
        self.redis_client = redis_client
        self.threshold = threshold
        self.key_prefix = key_prefix

    def _get_key(self, source_id: str) -> str:
        return f"{self.key_prefix}{source_id}"

    def record_failure(self, source_id: str, source_name: Optional[str] = None) -> int:
        """
        Record a failed import for a source.

        Returns:
            Failure count after the increment (0 when Redis is unavailable)
        """
        if self.redis_client is None:
            logger.debug("Redis client not available, failure tracking disabled")
            return 0

        key = self._get_key(source_id)

        try:
            count = self.redis_client.incr(key)
            if count == 1:
                self.redis_client.expire(key, FAILURE_COUNTER_TTL)
        except redis.RedisError as e:
            logger.warning(f"Failed to record failure in Redis: {e}")
            return 0

        logger.debug(f"Recorded failure for source {source_id}: count={count}, threshold={self.threshold}")

        # Alert once when the threshold is crossed, not on every later failure
        if count == self.threshold:
            trigger_threshold_alert(
                source_id=source_id,
                failure_count=count,
                threshold=self.threshold,
                source_name=source_name,
            )

        return count

    def record_success(self, source_id: str) -> None:
        """Reset the failure counter of a source."""
        if self.redis_client is None:
            return

        try:
            self.redis_client.delete(self._get_key(source_id))
        except redis.RedisError as e:
            logger.warning(f"Failed to reset failure counter in Redis: {e}")

    def get_failure_count(self, source_id: str) -> int:
        if self.redis_client is None:
            return 0

        try:
            count = self.redis_client.get(self._get_key(source_id))
        except redis.RedisError as e:
            logger.warning(f"Failed to get failure count from Redis: {e}")
            return 0
        return int(count) if count else 0


_failure_tracker: Optional[FailureTracker] = None


def get_failure_tracker() -> FailureTracker:
    """
    Get the process-wide failure tracker.

    Connects to Redis on first call; without Redis the tracker is a no-op.
    """
    global _failure_tracker

    if _failure_tracker is None:
        _failure_tracker = FailureTracker(
            redis_client=_get_redis_client(),
            threshold=getattr(settings, "CATALOG_FAILURE_THRESHOLD", DEFAULT_FAILURE_THRESHOLD),
        )

    return _failure_tracker


def reset_failure_tracker() -> None:
    global _failure_tracker
    _failure_tracker = None


def _get_redis_client():
    """Redis client on the Celery broker URL, or None if unreachable."""
    broker_url = getattr(settings, "CELERY_BROKER_URL", "redis://localhost:6379/1")
    if not broker_url.startswith(("redis://", "rediss://")):
        return None

    try:
        client = redis.from_url(broker_url)
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"Failed to connect to Redis for failure tracking: {e}")
        return None
    return client
