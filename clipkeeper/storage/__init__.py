"""Key/value storage backends, the item store and the history log."""

from clipkeeper.storage.backend import MemoryBackend, SqliteBackend, StorageBackend
from clipkeeper.storage.database import DEFAULT_DB_PATH, create_schema, open_db
from clipkeeper.storage.history import HistoryLog, HistoryStats
from clipkeeper.storage.repository import (
    CategoryStats,
    ChangeKind,
    ImportMode,
    ImportSummary,
    ItemStore,
    StoreChange,
)

__all__ = [
    "DEFAULT_DB_PATH",
    "open_db",
    "create_schema",
    "StorageBackend",
    "MemoryBackend",
    "SqliteBackend",
    "HistoryLog",
    "HistoryStats",
    "ItemStore",
    "StoreChange",
    "ChangeKind",
    "CategoryStats",
    "ImportMode",
    "ImportSummary",
]
