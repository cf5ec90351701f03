"""
Client for the Byparr browser-automation proxy.

Byparr renders pages in a real browser so catalogs that block plain HTTP
clients can still be scraped. Every command is a POST to ``{base}/v1``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from django.conf import settings

from catalog.exceptions import ByparrError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TIMEOUT_MS = 60000


@dataclass
class ByparrSolution:
    """Rendered page returned by Byparr."""

    url: str
    status: int
    response: str
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    user_agent: str = ""
    js_result: Any = None


class ByparrClient:
    """
    Async client for Byparr.

    Usage:
        async with ByparrClient() as byparr:
            solution = await byparr.get("https://example.com")
    """

    def __init__(self, base_url: Optional[str] = None, timeout: float = 90.0):
        """
        Initialize the Byparr client.

        Args:
            base_url: Byparr URL (defaults to settings.BYPARR_URL)
            timeout: HTTP timeout in seconds, above Byparr's own maxTimeout
        """
        self.base_url = (base_url or getattr(settings, "BYPARR_URL", "http://localhost:8191")).rstrip("/")
        self.timeout = timeout
        self._http_client: Optional[httpx.AsyncClient] = None
        self._client_loop = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def client(self) -> httpx.AsyncClient:
        loop = asyncio.get_running_loop()
        if self._http_client is None or self._client_loop is not loop:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            self._client_loop = loop
        return self._http_client

    async def close(self):
        if self._http_client is not None and self._client_loop is asyncio.get_running_loop():
            await self._http_client.aclose()
        self._http_client = None
        self._client_loop = None

    async def _command(self, body: Dict[str, Any]) -> Dict[str, Any]:
        body = {key: value for key, value in body.items() if value is not None}

        try:
            response = await self.client.post(f"{self.base_url}/v1", json=body)
        except httpx.TimeoutException as e:
            raise ByparrError(f"Byparr timeout for {body.get('url', body['cmd'])}") from e
        except httpx.HTTPError as e:
            raise ByparrError(f"Byparr connection error: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise ByparrError(f"Byparr returned invalid JSON (HTTP {response.status_code})") from e

        if data.get("status") != "ok":
            raise ByparrError(f"Byparr error: {data.get('message', 'unknown error')}")

        return data

    @staticmethod
    def _solution(data: Dict[str, Any]) -> ByparrSolution:
        solution = data.get("solution") or {}
        return ByparrSolution(
            url=solution.get("url", ""),
            status=solution.get("status", 0),
            response=solution.get("response", ""),
            headers=solution.get("headers") or {},
            cookies=solution.get("cookies") or [],
            user_agent=solution.get("userAgent", ""),
            js_result=solution.get("jsResult"),
        )

    async def get(
        self,
        url: str,
        max_timeout: int = DEFAULT_MAX_TIMEOUT_MS,
        session: Optional[str] = None,
        cookies: Optional[List[Dict[str, str]]] = None,
        js: Optional[str] = None,
        init_js: Optional[str] = None,
    ) -> ByparrSolution:
        """
        Render a page with a GET request.

        Args:
            url: Page to render
            max_timeout: Browser timeout in milliseconds
            session: Optional Byparr session id
            cookies: Cookies to set before navigation
            js: Script evaluated after load, returned as js_result
            init_js: Script injected before any page script runs

        Raises:
            ByparrError: If Byparr is unreachable or reports a failure
        """
        logger.debug(f"Byparr GET {url}")
        data = await self._command(
            {
                "cmd": "request.get",
                "url": url,
                "maxTimeout": max_timeout,
                "session": session,
                "cookies": cookies,
                "js": js,
                "init_js": init_js,
            }
        )
        return self._solution(data)

    async def post(
        self,
        url: str,
        post_data: str,
        max_timeout: int = DEFAULT_MAX_TIMEOUT_MS,
        session: Optional[str] = None,
        cookies: Optional[List[Dict[str, str]]] = None,
        js: Optional[str] = None,
    ) -> ByparrSolution:
        """Render the answer of a form-encoded POST request."""
        logger.debug(f"Byparr POST {url}")
        data = await self._command(
            {
                "cmd": "request.post",
                "url": url,
                "postData": post_data,
                "maxTimeout": max_timeout,
                "session": session,
                "cookies": cookies,
                "js": js,
            }
        )
        return self._solution(data)

    async def create_session(self, session_id: Optional[str] = None) -> str:
        data = await self._command({"cmd": "sessions.create", "session": session_id})
        return data["session"]

    async def list_sessions(self) -> List[str]:
        data = await self._command({"cmd": "sessions.list"})
        return data.get("sessions", [])

    async def destroy_session(self, session_id: str) -> None:
        await self._command({"cmd": "sessions.destroy", "session": session_id})
