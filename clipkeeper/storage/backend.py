"""Whole-value key/value storage backends.

The item store never talks to a database directly.  It reads and writes whole
JSON-compatible values by key through a :class:`StorageBackend`, which makes
the read-modify-write contract explicit: every mutation reads the full value,
changes it in memory, and writes the full value back.

Two implementations ship with the package:

* :class:`MemoryBackend` — an in-process dict, used by tests and embedders.
  Values are copied through JSON on the way in and out so callers never
  share mutable state with the backend.
* :class:`SqliteBackend` — one row per key in the ``kv_store`` table created
  by :func:`~clipkeeper.storage.database.open_db`.

Backends signal failures by raising :class:`~clipkeeper.core.exceptions.StorageError`
(reads) or :class:`~clipkeeper.core.exceptions.StorageWriteError` (writes).
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

import aiosqlite

from clipkeeper.core.exceptions import StorageError, StorageWriteError

__all__ = [
    "StorageBackend",
    "MemoryBackend",
    "SqliteBackend",
]

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Durable, asynchronous, whole-value get/set by key."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value stored under *key*, or ``None`` if absent.

        Raises:
            StorageError: If the backend cannot be read.
        """

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:  # noqa: A003
        """Replace the value stored under *key*.

        Raises:
            StorageWriteError: If the backend rejected the write.
        """

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete *key*; a missing key is not an error.

        Raises:
            StorageWriteError: If the backend rejected the write.
        """

    async def close(self) -> None:  # noqa: B027
        """Release any resources held by the backend (default: no-op)."""


class MemoryBackend(StorageBackend):
    """In-process backend with optional injected failures.

    Args:
        initial: Optional starting contents.

    Attributes:
        fail_reads: When ``True`` every :meth:`get` raises ``StorageError``.
        fail_writes: When ``True`` every :meth:`set`/:meth:`remove` raises
            ``StorageWriteError``.
        fail_write_keys: Keys whose writes are rejected even when
            :attr:`fail_writes` is ``False``.
        write_count: Number of successful writes, handy for asserting that
            an operation did not touch storage.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, str] = {
            key: json.dumps(value) for key, value in (initial or {}).items()
        }
        self.fail_reads = False
        self.fail_writes = False
        self.fail_write_keys: set[str] = set()
        self.write_count = 0

    async def get(self, key: str) -> Any | None:
        if self.fail_reads:
            raise StorageError(f"Read of {key!r} failed (injected)")
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any) -> None:  # noqa: A003
        self._check_writable(key)
        self._data[key] = json.dumps(value)
        self.write_count += 1

    async def remove(self, key: str) -> None:
        self._check_writable(key)
        self._data.pop(key, None)
        self.write_count += 1

    def _check_writable(self, key: str) -> None:
        if self.fail_writes or key in self.fail_write_keys:
            raise StorageWriteError(key, "injected failure")


class SqliteBackend(StorageBackend):
    """Backend storing one JSON document per key in SQLite.

    It owns no connection lifecycle unless :meth:`close` is called; the
    caller supplies a connection from
    :func:`~clipkeeper.storage.database.open_db`.

    Args:
        conn: Open, configured :class:`aiosqlite.Connection`.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get(self, key: str) -> Any | None:
        try:
            cursor = await self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ? LIMIT 1",
                (key,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Read of {key!r} failed: {exc}") from exc
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as exc:
            raise StorageError(f"Value under {key!r} is not valid JSON: {exc}") from exc

    async def set(self, key: str, value: Any) -> None:  # noqa: A003
        now_utc = datetime.now(UTC).isoformat()
        try:
            await self._conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value, ensure_ascii=False), now_utc),
            )
            await self._conn.commit()
        except (aiosqlite.Error, TypeError, ValueError) as exc:
            raise StorageWriteError(key, str(exc)) from exc
        logger.debug("kv_store[%s] written", key)

    async def remove(self, key: str) -> None:
        try:
            await self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StorageWriteError(key, str(exc)) from exc

    async def close(self) -> None:
        await self._conn.close()
