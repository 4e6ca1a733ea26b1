"""Core domain models, settings, logging configuration, and shared utilities."""

from clipkeeper.core.exceptions import (
    ClipboardError,
    ClipkeeperError,
    ConfigError,
    EmptyExportError,
    ExportError,
    FetchError,
    ItemAlreadyExistsError,
    ItemValidationError,
    StorageError,
    StorageWriteError,
    TransientFetchError,
)
from clipkeeper.core.logging_config import JsonFormatter, configure_logging, page_scope
from clipkeeper.core.models import (
    Candidate,
    Category,
    DismissedItem,
    HistoryEntry,
    Item,
    ItemPatch,
    KeptItem,
    PendingItem,
    make_item,
)
from clipkeeper.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    "page_scope",
    # Domain models
    "Category",
    "Item",
    "KeptItem",
    "PendingItem",
    "DismissedItem",
    "ItemPatch",
    "HistoryEntry",
    "Candidate",
    "make_item",
    # Settings
    "Settings",
    # Exceptions — base
    "ClipkeeperError",
    # Exceptions — config / validation
    "ConfigError",
    "ItemValidationError",
    # Exceptions — storage
    "StorageError",
    "StorageWriteError",
    "ItemAlreadyExistsError",
    # Exceptions — fetch
    "FetchError",
    "TransientFetchError",
    # Exceptions — export
    "ExportError",
    "EmptyExportError",
    "ClipboardError",
]
