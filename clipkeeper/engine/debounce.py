"""Per-item rename debouncing.

Typing into a name field produces a burst of edits; only the last one should
reach the store.  :class:`RenameDebouncer` keeps one timer per item id.
Scheduling a new name for an id replaces its pending timer, and once an id
has been quiet for ``quiet_period`` seconds its latest name is committed
exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

__all__ = ["RenameDebouncer"]

logger = logging.getLogger(__name__)

CommitFn = Callable[[str, str], Awaitable[Any]]


class RenameDebouncer:
    """Cancellable per-id debounce map around one commit callback.

    Args:
        commit: Awaited as ``commit(item_id, name)`` after the quiet period,
            typically :meth:`ItemCommands.rename`.
        quiet_period: Seconds without a new edit before committing.
    """

    def __init__(self, commit: CommitFn, quiet_period: float = 0.5) -> None:
        self._commit = commit
        self.quiet_period = quiet_period
        self._timers: dict[str, tuple[str, asyncio.Task[None]]] = {}

    @property
    def pending_ids(self) -> list[str]:
        return list(self._timers)

    def schedule(self, item_id: str, name: str) -> None:
        """(Re)start the timer for *item_id* with *name* as the latest value."""
        self.cancel(item_id)
        task = asyncio.ensure_future(self._fire(item_id, name))
        self._timers[item_id] = (name, task)

    def cancel(self, item_id: str) -> bool:
        """Drop the pending rename for *item_id*; ``False`` if there was none."""
        entry = self._timers.pop(item_id, None)
        if entry is None:
            return False
        entry[1].cancel()
        return True

    async def flush(self) -> None:
        """Commit every pending rename now, skipping the remaining wait."""
        entries = list(self._timers.items())
        self._timers.clear()
        for item_id, (name, task) in entries:
            task.cancel()
            await self._run_commit(item_id, name)

    async def _fire(self, item_id: str, name: str) -> None:
        await asyncio.sleep(self.quiet_period)
        entry = self._timers.get(item_id)
        if entry is None or entry[1] is not asyncio.current_task():
            return
        del self._timers[item_id]
        await self._run_commit(item_id, name)

    async def _run_commit(self, item_id: str, name: str) -> None:
        try:
            await self._commit(item_id, name)
        except Exception:
            logger.exception("Rename commit failed for %s", item_id)
