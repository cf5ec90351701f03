"""
Shared HTTP plumbing for catalog adapters.

HttpSource owns one httpx.AsyncClient per event loop (Celery tasks run
each job on a fresh loop), applies the adapter's declared rate limit and
maps transport failures onto SourceFetchError.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Deque, Dict, Optional

import httpx
from django.conf import settings

from catalog.exceptions import SourceFetchError, SourceSchemaError
from catalog.sources.core import SourceProvider

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


class RateLimiter:
    """
    Sliding-window limiter: at most ``max_requests`` per ``duration_ms``.
    """

    def __init__(self, max_requests: int, duration_ms: int):
        self.max_requests = max(max_requests, 1)
        self.duration = duration_ms / 1000.0
        self._calls: Deque[float] = deque()
        self._lock: Optional[asyncio.Lock] = None
        self._loop = None

    def _get_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._loop is not loop:
            self._lock = asyncio.Lock()
            self._loop = loop
        return self._lock

    async def acquire(self):
        async with self._get_lock():
            while True:
                now = time.monotonic()
                while self._calls and now - self._calls[0] >= self.duration:
                    self._calls.popleft()
                if len(self._calls) < self.max_requests:
                    self._calls.append(now)
                    return
                await asyncio.sleep(self.duration - (now - self._calls[0]))


class HttpSource(SourceProvider):
    """Base class for adapters talking HTTP directly."""

    def __init__(self, timeout: Optional[float] = None):
        info = self.info()
        self.timeout = timeout or info.timeout or getattr(settings, "CATALOG_REQUEST_TIMEOUT", 30)
        self.rate_limiter = RateLimiter(info.rate_limit_max, info.rate_limit_duration)
        self._http_client: Optional[httpx.AsyncClient] = None
        self._client_loop = None

    def default_headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": DEFAULT_USER_AGENT,
            "Accept-Language": "en-US,en;q=0.9",
        }
        headers.update(self.info().headers)
        return headers

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers=self.default_headers(),
            follow_redirects=True,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        loop = asyncio.get_running_loop()
        if self._http_client is None or self._client_loop is not loop:
            self._http_client = self._build_client()
            self._client_loop = loop
        return self._http_client

    async def close(self):
        """Close HTTP client connection."""
        if self._http_client is not None and self._client_loop is asyncio.get_running_loop():
            await self._http_client.aclose()
        self._http_client = None
        self._client_loop = None

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Rate-limited request.

        Raises:
            SourceFetchError: On timeouts, connection errors and non-2xx answers
        """
        await self.rate_limiter.acquire()
        source_id = self.info().id

        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{source_id} timeout fetching {url}: {e}")
            raise SourceFetchError(f"Timeout fetching {url}") from e
        except httpx.HTTPError as e:
            logger.warning(f"{source_id} error fetching {url}: {e}")
            raise SourceFetchError(f"Error fetching {url}: {e}") from e

        if response.status_code >= 400:
            logger.warning(f"{source_id} HTTP {response.status_code} for {url}")
            raise SourceFetchError(f"HTTP {response.status_code} for {url}")

        return response

    async def get_text(self, url: str, **kwargs) -> str:
        response = await self.request("GET", url, **kwargs)
        return response.text

    async def get_json(self, url: str, **kwargs) -> Any:
        response = await self.request("GET", url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise SourceSchemaError(f"Invalid JSON from {url}") from e
