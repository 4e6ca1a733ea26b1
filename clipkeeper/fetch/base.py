"""Metadata fetcher interface.

A metadata fetcher turns an item URL into the item's display name.  It never
raises for expected failures: every outcome is reported as a
:class:`FetchResult`, with ``is_transient`` telling the fetch policy whether
the privileged fallback is worth trying.

Typical usage::

    from clipkeeper.fetch.base import FetchResult, MetadataFetcher


    class StaticFetcher(MetadataFetcher):
        async def fetch(self, url: str) -> FetchResult:
            return FetchResult.ok("Fixed name")

    async with StaticFetcher() as fetcher:
        result = await fetcher.fetch("https://booth.pm/ja/items/1")
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from types import TracebackType

__all__ = ["FetchResult", "MetadataFetcher"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one metadata fetch.

    Attributes:
        success: ``True`` if a display name was resolved.
        name: The resolved name (empty on failure).
        error: Failure description (``None`` on success).
        is_transient: ``True`` for CORS/network-shaped failures that a
            different fetch path may overcome.
    """

    success: bool
    name: str = ""
    error: str | None = None
    is_transient: bool = False

    @classmethod
    def ok(cls, name: str) -> FetchResult:
        return cls(success=True, name=name)

    @classmethod
    def failed(cls, error: str, *, is_transient: bool = False) -> FetchResult:
        return cls(success=False, error=error, is_transient=is_transient)


class MetadataFetcher(ABC):
    """Abstract base for every item metadata source.

    The async context manager protocol is provided for free; override
    :meth:`close` to release resources.
    """

    @abstractmethod
    async def fetch(self, url: str) -> FetchResult:
        """Resolve the display name of the item at *url*."""

    async def close(self) -> None:  # noqa: B027
        """Release any resources held by this fetcher (default: no-op)."""

    async def __aenter__(self) -> MetadataFetcher:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
