"""Append-only history of items that became kept.

The history lives under the ``history`` storage key as a JSON array of
:class:`~clipkeeper.core.models.HistoryEntry` records, in the same shape as
the download-history loggers write.  Entries are deduplicated by item id:
recording an id again replaces the earlier entry and moves it to the end.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from clipkeeper.core import events
from clipkeeper.core.exceptions import StorageError, StorageWriteError
from clipkeeper.core.ids import DEFAULT_ITEM_BASE_URL, item_url
from clipkeeper.core.models import HistoryEntry, KeptItem
from clipkeeper.storage.backend import StorageBackend

__all__ = ["HISTORY_KEY", "HistoryLog", "HistoryStats"]

logger = logging.getLogger(__name__)

HISTORY_KEY = "history"

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class HistoryStats:
    """Totals over the history log."""

    total: int = 0
    free: int = 0
    registered: int = 0


class HistoryLog:
    """Read/append access to the history log.

    Args:
        backend: Storage backend shared with the item store.
        base_url: Prefix used to build the ``url`` of each entry.
        dedup_by_filename: When ``True``, entries are unique per
            ``(id, filename)`` instead of per id, which is how the download
            loggers record several files of the same item.
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        base_url: str = DEFAULT_ITEM_BASE_URL,
        dedup_by_filename: bool = False,
    ) -> None:
        self._backend = backend
        self._base_url = base_url
        self._dedup_by_filename = dedup_by_filename

    async def _read_raw(self) -> list[Any]:
        raw = await self._backend.get(HISTORY_KEY)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise StorageError(f"History value has unexpected type {type(raw).__name__}")
        return raw

    async def entries(self) -> list[HistoryEntry]:
        """Return every valid entry, oldest first.

        Records in another shape stay in storage but are not returned.

        Raises:
            StorageError: If the backend cannot be read.
        """
        entries: list[HistoryEntry] = []
        for record in await self._read_raw():
            try:
                entries.append(HistoryEntry.model_validate(record))
            except ValidationError as exc:
                logger.warning("Skipping invalid history record %r: %s", record, exc)
        return entries

    async def append(self, entry: HistoryEntry) -> bool:
        """Append *entry*, replacing any entry with the same key.

        Records that are not valid entries are carried over unchanged.

        Returns:
            ``True`` if persisted, ``False`` if the backend rejected the write.
        """
        try:
            current = await self._read_raw()
        except StorageError:
            logger.exception("Could not read history before appending %s", entry.id)
            return False

        key = self._key(entry)
        kept = [record for record in current if self._raw_key(record) != key]
        kept.append(entry.model_dump(mode="json"))
        try:
            await self._backend.set(HISTORY_KEY, kept)
        except StorageWriteError:
            logger.exception(
                "History write failed for %s",
                entry.id,
                extra={"event": events.STORE_WRITE_FAILED},
            )
            return False

        logger.debug(
            "History entry recorded for %s",
            entry.id,
            extra={"event": events.HISTORY_APPENDED},
        )
        return True

    async def record_kept(self, item: KeptItem, *, at: datetime | None = None) -> bool:
        """Append the history entry for an item that just became kept."""
        when = at or datetime.now(UTC)
        entry = HistoryEntry(
            title=item.name,
            id=item.id,
            time=when.astimezone(UTC).strftime(_TIME_FORMAT),
            url=item_url(item.id, self._base_url),
        )
        return await self.append(entry)

    async def stats(self) -> HistoryStats:
        """Return totals over the log."""
        entries = await self.entries()
        return HistoryStats(
            total=len(entries),
            free=sum(1 for e in entries if e.free),
            registered=sum(1 for e in entries if e.registered),
        )

    async def clear(self) -> bool:
        """Remove the whole log."""
        try:
            await self._backend.remove(HISTORY_KEY)
        except StorageWriteError:
            logger.exception("History clear failed", extra={"event": events.STORE_WRITE_FAILED})
            return False
        return True

    def _key(self, entry: HistoryEntry) -> tuple[str, str]:
        return (entry.id, entry.filename if self._dedup_by_filename else "")

    def _raw_key(self, record: Any) -> tuple[str, str] | None:
        try:
            return self._key(HistoryEntry.model_validate(record))
        except ValidationError:
            return None
