"""httpx client for the item JSON endpoint.

Every recognised item URL, whether the shop-subdomain form or the
language-path form, is resolved against ``<item_base_url>/<id>.json``.  The
response is mapped onto the fetch error taxonomy:

==========================  ==========================================
Outcome                     Raised
==========================  ==========================================
transport error             ``TransientFetchError("Failed to fetch: …")``
HTTP 429                    ``TransientFetchError`` (honours Retry-After)
HTTP 5xx                    ``TransientFetchError("HTTP <n>")``
other non-2xx               ``FetchError("HTTP <n>: <reason>")``
body is not JSON            ``FetchError``
no usable name in the body  ``FetchError``
==========================  ==========================================

Transient errors are retried up to ``max_attempts`` times using
:mod:`tenacity`.  The direct fetcher is built with one attempt so that the
fetch policy sees the first failure immediately; the privileged fallback gets
the configured attempt count.

Typical usage::

    async with MetadataHttpClient(max_attempts=1) as client:
        result = await client.fetch("https://shop.booth.pm/items/123")
"""

from __future__ import annotations

import logging
import random
from typing import Any, Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from clipkeeper.core.exceptions import FetchError, TransientFetchError
from clipkeeper.core.ids import DEFAULT_ITEM_BASE_URL, item_json_url
from clipkeeper.fetch.base import FetchResult, MetadataFetcher

__all__ = ["MetadataHttpClient", "extract_item_name"]

logger = logging.getLogger(__name__)

#: Keys tried in order when looking for an item's display name.
_NAME_PATHS: Final[tuple[tuple[str, ...], ...]] = (("name",), ("item", "name"), ("title",))

_BROWSER_AGENTS: Final[tuple[str, ...]] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_6) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0",
)

_backoff = wait_exponential_jitter(initial=1.0, max=30.0, jitter=2.0)


class _RateLimited(TransientFetchError):
    """HTTP 429; ``retry_after`` is the server's requested pause in seconds."""

    def __init__(self, url: str, retry_after: float) -> None:
        self.retry_after = retry_after
        super().__init__(url, f"HTTP 429 (retry after {retry_after:.1f} s)")


def _retry_wait(retry_state: RetryCallState) -> float:
    outcome = retry_state.outcome
    exc = outcome.exception() if outcome is not None else None
    if isinstance(exc, _RateLimited):
        return exc.retry_after
    return _backoff(retry_state)


def _retry_after_seconds(response: httpx.Response) -> float:
    try:
        return max(float(response.headers.get("retry-after", "")), 1.0)
    except ValueError:
        return 1.0


def extract_item_name(body: Any) -> str | None:
    """Return the first non-blank string found at ``name``, ``item.name`` or ``title``."""
    for path in _NAME_PATHS:
        value = body
        for key in path:
            value = value.get(key) if isinstance(value, dict) else None
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class MetadataHttpClient(MetadataFetcher):
    """Fetch item names over HTTP.

    Args:
        base_url: Item URL prefix; requests go to ``<base_url>/<id>.json``.
        connect_timeout: Seconds allowed to establish a connection.
        read_timeout: Seconds allowed to receive the response.
        max_attempts: Attempts per fetch, counting the first one (≥ 1).

    Raises:
        ValueError: If ``max_attempts`` < 1.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_ITEM_BASE_URL,
        connect_timeout: float = 10.0,
        read_timeout: float = 20.0,
        max_attempts: int = 3,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")
        self.base_url = base_url
        self.max_attempts = max_attempts
        self._timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self._http: httpx.AsyncClient | None = None
        self._closed = False

    async def fetch(self, url: str) -> FetchResult:
        try:
            return FetchResult.ok(await self.fetch_name(url))
        except TransientFetchError as exc:
            return FetchResult.failed(exc.reason, is_transient=True)
        except FetchError as exc:
            return FetchResult.failed(exc.reason)

    async def fetch_name(self, url: str) -> str:
        """Resolve the item name, raising on failure.

        Raises:
            TransientFetchError: Network error, 5xx or 429 on the last
                attempt.
            FetchError: Any other failure; never retried.
        """
        json_url = item_json_url(url, self.base_url)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=_retry_wait,
            retry=retry_if_exception_type(TransientFetchError),
            before_sleep=self._log_retry,
            reraise=True,
        )
        body: Any = None
        async for attempt in retrying:
            with attempt:
                body = await self._get_json(json_url)

        name = extract_item_name(body)
        if name is None:
            raise FetchError(json_url, "Could not find name field in JSON response")
        return name

    async def close(self) -> None:
        """Close the connection pool for good; calling it again is harmless.

        Fetches issued afterwards, such as a late retry of an abandoned
        fallback request, fail with :class:`FetchError`.
        """
        self._closed = True
        client, self._http = self._http, None
        if client is not None and not client.is_closed:
            await client.aclose()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        logger.warning(
            "Attempt %d/%d failed (%s); retrying",
            retry_state.attempt_number,
            self.max_attempts,
            outcome.exception() if outcome is not None else None,
        )

    def _client(self, json_url: str) -> httpx.AsyncClient:
        if self._closed:
            raise FetchError(json_url, "Client is closed")
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers={"Accept": "application/json"},
            )
        return self._http

    async def _get_json(self, json_url: str) -> Any:
        """One GET of *json_url*, mapped onto the fetch error types."""
        headers = {"User-Agent": random.choice(_BROWSER_AGENTS)}
        try:
            response = await self._client(json_url).get(json_url, headers=headers)
        except httpx.TransportError as exc:
            raise TransientFetchError(json_url, f"Failed to fetch: {exc}") from exc

        status = response.status_code
        logger.debug("GET %s -> %d", json_url, status)
        if status == 429:
            raise _RateLimited(json_url, _retry_after_seconds(response))
        if status >= 500:
            raise TransientFetchError(json_url, f"HTTP {status}")
        if not response.is_success:
            raise FetchError(json_url, f"HTTP {status}: {response.reason_phrase}")
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(json_url, f"Response is not JSON: {exc}") from exc
