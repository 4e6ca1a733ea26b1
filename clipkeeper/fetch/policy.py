"""Per-item fetch policy: direct request first, privileged fallback second.

1. The direct fetcher runs through the :class:`FetchDispatcher`.
2. If it fails in a CORS/network-shaped way, the privileged fallback
   fetcher is raced against a timer.  When the timer wins the item is
   reported as failed, but the fallback request is left running; its
   eventual outcome is logged and discarded.
3. Any other failure is surfaced as non-transient.

Fetch batches space their items ``item_delay`` seconds apart, independently
of the dispatcher's own slot delay.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Final

from clipkeeper.core import events
from clipkeeper.core.exceptions import TransientFetchError
from clipkeeper.fetch.base import FetchResult, MetadataFetcher
from clipkeeper.fetch.dispatcher import FetchDispatcher

__all__ = ["TRANSIENT_ERROR_MARKERS", "is_transient_error", "ItemFetchPolicy"]

logger = logging.getLogger(__name__)

#: Error-text fragments that mark a failure as CORS/network-shaped.
TRANSIENT_ERROR_MARKERS: Final[tuple[str, ...]] = (
    "CORS",
    "Failed to fetch",
    "Access to fetch",
    "Access-Control-Allow-Origin",
    "Cross-Origin Request Blocked",
    "net::ERR_FAILED",
)


def is_transient_error(result: FetchResult | str | None) -> bool:
    """Return ``True`` if *result* (or an error string) looks CORS/network-shaped."""
    if result is None:
        return False
    if isinstance(result, FetchResult):
        if result.success:
            return False
        if result.is_transient:
            return True
        message = result.error or ""
    else:
        message = result
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


class ItemFetchPolicy:
    """Resolve item names with a direct attempt and a timed fallback.

    Args:
        direct: Fetcher used for the first attempt (routed through
            *dispatcher*).
        dispatcher: Concurrency bound for direct requests.
        fallback: Privileged fetcher used after a transient failure.
            ``None`` disables the fallback.
        fallback_timeout: Seconds before the fallback race resolves to a
            failure.
        item_delay: Seconds a batch waits between successive items; applied
            by :func:`~clipkeeper.engine.reconcile.fetch_candidates`.
    """

    def __init__(
        self,
        direct: MetadataFetcher,
        dispatcher: FetchDispatcher,
        fallback: MetadataFetcher | None = None,
        *,
        fallback_timeout: float = 10.0,
        item_delay: float = 0.3,
    ) -> None:
        self._direct = direct
        self._dispatcher = dispatcher
        self._fallback = fallback
        self.fallback_timeout = fallback_timeout
        self.item_delay = item_delay
        self._orphans: set[asyncio.Task[FetchResult]] = set()

    async def fetch(self, url: str) -> FetchResult:
        """Resolve the name of the item at *url*; never raises for fetch failures."""
        try:
            result = await self._dispatcher.submit(lambda: self._direct.fetch(url))
        except TransientFetchError as exc:
            result = FetchResult.failed(exc.reason, is_transient=True)
        except Exception as exc:
            result = FetchResult.failed(str(exc), is_transient=is_transient_error(str(exc)))

        if result.success:
            return result

        if not is_transient_error(result) or self._fallback is None:
            return FetchResult.failed(result.error or "Unknown error")

        logger.debug(
            "Direct fetch of %s failed (%s); trying fallback",
            url,
            result.error,
            extra={"event": events.FETCH_FALLBACK},
        )
        return await self._fetch_via_fallback(url)

    async def _fetch_via_fallback(self, url: str) -> FetchResult:
        assert self._fallback is not None
        task = asyncio.ensure_future(self._fallback.fetch(url))
        done, _ = await asyncio.wait({task}, timeout=self.fallback_timeout)

        if task not in done:
            logger.warning(
                "Fallback fetch of %s did not finish within %.1f s",
                url,
                self.fallback_timeout,
                extra={"event": events.FETCH_FALLBACK_TIMEOUT},
            )
            self._orphans.add(task)
            task.add_done_callback(self._discard_orphan)
            return FetchResult.failed("Fallback fetch timeout")

        exc = task.exception()
        if exc is not None:
            return FetchResult.failed(f"Fallback fetch failed: {exc}")
        result = task.result()
        if result.success:
            return result
        return FetchResult.failed(result.error or "Fallback fetch failed")

    def _discard_orphan(self, task: asyncio.Task[FetchResult]) -> None:
        self._orphans.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Abandoned fallback fetch raised: %s", exc)
        else:
            logger.debug("Abandoned fallback fetch settled: success=%s", task.result().success)
