"""Entry source that talks to the live blog HTTP API.

Handles retry with exponential backoff for connection failures, timeouts
and server errors. Client errors are raised immediately. Every failure,
including a response body that cannot be decoded, surfaces as SourceError.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, TypeVar

import httpx

from ..errors import SourceError
from ..store.models import LiveBlog, PollResult, TimelineEntry, format_ts
from .source import EntrySource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HttpEntrySource(EntrySource):
    """Entry source backed by the ``/api/live-blogs`` endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the source.

        Args:
            base_url: Base URL of the API (e.g., "http://localhost:8080").
            timeout: Request timeout in seconds.
            max_retries: Maximum attempts per request.
            backoff_seconds: Delay before the first retry, doubled each time.
            transport: Optional httpx transport, used in tests.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        json_data: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """Make HTTP request with exponential backoff retry.

        Args:
            method: HTTP method.
            path: URL path relative to base_url.
            json_data: Optional JSON body.
            params: Optional query parameters.

        Returns:
            Decoded JSON response body.

        Raises:
            SourceError: On a client error, or when retries are exhausted.
        """
        backoff = self.backoff_seconds
        last_error = "no attempts made"
        last_status: int | None = None

        async with self._client() as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.request(
                        method, path, json=json_data, params=params
                    )

                    if response.status_code < 400:
                        try:
                            return response.json()
                        except ValueError as e:
                            # e.g. an HTML page from a captive proxy
                            raise SourceError(
                                f"Invalid response body from {method} {path}: not JSON",
                                response.status_code,
                            ) from e

                    last_status = response.status_code
                    last_error = _error_message(response)
                    if response.status_code < 500:
                        # Client error, don't retry
                        raise SourceError(last_error, response.status_code)

                    logger.warning(
                        f"Server error {response.status_code} on {method} {path}, "
                        f"attempt {attempt + 1}/{self.max_retries}",
                        extra={"attempt": attempt + 1},
                    )

                except httpx.ConnectError:
                    last_status = None
                    last_error = f"Connection to {self.base_url} failed"
                    logger.warning(
                        f"Connection failed, attempt {attempt + 1}/{self.max_retries}",
                        extra={"attempt": attempt + 1},
                    )
                except httpx.TimeoutException:
                    last_status = None
                    last_error = f"Request to {path} timed out"
                    logger.warning(
                        f"Request timeout, attempt {attempt + 1}/{self.max_retries}",
                        extra={"attempt": attempt + 1},
                    )
                except httpx.HTTPError as e:
                    raise SourceError(f"Request error: {e}") from e

                # Exponential backoff
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(backoff)
                    backoff *= 2

        raise SourceError(
            f"{last_error} (after {self.max_retries} attempts)", last_status
        )

    async def load_blog(self, slug: str) -> tuple[LiveBlog, list[TimelineEntry]]:
        path = f"/api/live-blogs/by-slug/{slug}"
        data = await self._request_with_retry("GET", path)
        return _decode(
            path,
            lambda: (
                LiveBlog.from_dict(data["blog"]),
                [TimelineEntry.from_dict(e) for e in data.get("entries", [])],
            ),
        )

    async def poll_entries(
        self,
        blog_id: str,
        since: datetime | None = None,
        changed_since: datetime | None = None,
    ) -> PollResult:
        params = {}
        if since:
            params["since"] = format_ts(since)
        if changed_since:
            params["changed_since"] = format_ts(changed_since)
        path = f"/api/live-blogs/{blog_id}/entries"
        data = await self._request_with_retry("GET", path, params=params or None)
        return _decode(path, lambda: PollResult.from_dict(data))

    async def append_entry(
        self,
        blog_id: str,
        content: str,
        image_url: str | None = None,
        image_alt: str | None = None,
        author_name: str | None = None,
    ) -> TimelineEntry:
        payload = {
            "content": content,
            "image_url": image_url,
            "image_alt": image_alt,
            "author_name": author_name,
        }
        path = f"/api/live-blogs/{blog_id}/entries"
        data = await self._request_with_retry("POST", path, json_data=payload)
        return _decode(path, lambda: TimelineEntry.from_dict(data["entry"]))

    async def set_pinned(self, blog_id: str, entry_id: str, is_pinned: bool) -> None:
        await self._request_with_retry(
            "PATCH",
            f"/api/live-blogs/{blog_id}/entries/{entry_id}",
            json_data={"is_pinned": is_pinned},
        )

    async def delete_entry(self, blog_id: str, entry_id: str) -> None:
        await self._request_with_retry(
            "DELETE", f"/api/live-blogs/{blog_id}/entries/{entry_id}"
        )

    async def update_blog(self, blog_id: str, **fields: Any) -> None:
        await self._request_with_retry(
            "PATCH", f"/api/live-blogs/{blog_id}", json_data=fields
        )

    async def create_blog(self, title: str, **fields: Any) -> LiveBlog:
        data = await self._request_with_retry(
            "POST", "/api/live-blogs", json_data={"title": title, **fields}
        )
        return _decode("/api/live-blogs", lambda: LiveBlog.from_dict(data))

    async def list_blogs(self, status: str | None = None, limit: int = 50) -> list[LiveBlog]:
        params = {"limit": str(limit)}
        if status:
            params["status"] = status
        data = await self._request_with_retry("GET", "/api/live-blogs", params=params)
        return _decode("/api/live-blogs", lambda: [LiveBlog.from_dict(b) for b in data])

    async def check_connection(self) -> bool:
        """Return True if the API answers its health check."""
        try:
            await self._request_with_retry("GET", "/api/health")
            return True
        except SourceError:
            return False


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}"


def _decode(path: str, build: Callable[[], T]) -> T:
    """Build model objects from a decoded body, mapping shape errors to SourceError."""
    try:
        return build()
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise SourceError(f"Invalid response body from {path}: {e!r}") from e
