"""Clipkeeper exception taxonomy.

Every custom exception inherits from :class:`ClipkeeperError`.  Exceptions are
organised by architectural layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    ClipkeeperError
    ├── ConfigError
    ├── ItemValidationError
    ├── StorageError
    │   ├── StorageWriteError
    │   └── ItemAlreadyExistsError
    ├── FetchError
    │   └── TransientFetchError
    └── ExportError
        ├── EmptyExportError
        └── ClipboardError

There is deliberately no "not found" error: ``update`` and ``delete`` on an
absent item id follow the create-or-noop rule of the item store.

Usage:

    from clipkeeper.core.exceptions import FetchError

    raise FetchError(url, "HTTP 404") from exc
"""

from __future__ import annotations

import logging

__all__ = [
    "ClipkeeperError",
    # Config
    "ConfigError",
    # Validation
    "ItemValidationError",
    # Storage
    "StorageError",
    "StorageWriteError",
    "ItemAlreadyExistsError",
    # Fetch
    "FetchError",
    "TransientFetchError",
    # Export
    "ExportError",
    "EmptyExportError",
    "ClipboardError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class ClipkeeperError(Exception):
    """Root exception for all Clipkeeper errors.

    Catch this to handle any application-level error uniformly.  Prefer
    catching layer-specific subclasses wherever possible.
    """


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(ClipkeeperError):
    """Raised when the application configuration is invalid or incomplete."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ItemValidationError(ClipkeeperError):
    """Raised when an item id, name or field combination is malformed.

    Manual entries are validated *before* any storage access, so raising
    this never leaves a partial write behind.

    Args:
        message: Human-readable error description.
        item_id: The offending item id, if one was supplied.
    """

    def __init__(self, message: str, item_id: str | None = None) -> None:
        self.item_id = item_id
        super().__init__(message)


# ---------------------------------------------------------------------------
# Storage layer
# ---------------------------------------------------------------------------


class StorageError(ClipkeeperError):
    """Raised when the storage backend cannot be read."""


class StorageWriteError(StorageError):
    """Raised by a backend that rejected a write.

    The item store never lets this escape a write method: it logs the error
    and returns ``False`` so callers treat the write as not persisted.

    Args:
        key: The storage key that could not be written.
        message: Human-readable error description.
    """

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"Write to {key!r} rejected: {message}")


class ItemAlreadyExistsError(StorageError):
    """Raised when a manual add targets an id that is already stored.

    Args:
        item_id: The item id that already exists.
    """

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Item already exists: {item_id!r}")


# ---------------------------------------------------------------------------
# Fetch layer
# ---------------------------------------------------------------------------


class FetchError(ClipkeeperError):
    """Raised when item metadata cannot be fetched (non-transient).

    Covers explicit client errors (404, 403) and responses whose body does
    not contain a display name.  Items that fail this way are queued for
    manual entry.

    Args:
        url: The URL that was requested.
        message: Human-readable error description.
    """

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        self.reason = message
        super().__init__(f"[{url}] {message}")


class TransientFetchError(FetchError):
    """Raised for CORS/network-shaped failures.

    Transport errors and non-ok responses without an explicit 4xx reason
    land here; the fetch policy absorbs them by retrying through the
    privileged fallback fetcher.
    """


# ---------------------------------------------------------------------------
# Export layer
# ---------------------------------------------------------------------------


class ExportError(ClipkeeperError):
    """Base class for errors that abort an export before any mutation."""


class EmptyExportError(ExportError):
    """Raised when there is nothing to export.

    Args:
        scope: Description of what was empty (a page id or a category).
    """

    def __init__(self, scope: str) -> None:
        self.scope = scope
        super().__init__(f"Nothing to export for {scope}")


class ClipboardError(ExportError):
    """Raised when the clipboard sink refused the export text.

    Args:
        message: Error reported by the sink.
    """
