"""Bounded FIFO dispatcher for outbound metadata requests.

At most ``max_concurrent`` tasks run at once.  When a task settles, whether
it succeeded or failed, its slot stays busy for ``delay_between_requests``
seconds before the next queued task may start, which spaces requests out
without a global timer.

There is no priority and no cancellation: once submitted, a task runs to
completion even if the caller stops waiting for its future.

Typical usage::

    dispatcher = FetchDispatcher(max_concurrent=3, delay_between_requests=0.5)
    future = dispatcher.submit(lambda: client.fetch(url))
    result = await future
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

__all__ = ["DispatcherStatus", "FetchDispatcher"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class DispatcherStatus:
    """Point-in-time dispatcher counters."""

    active: int
    queued: int
    completed: int
    failed: int


class FetchDispatcher:
    """Run submitted coroutine factories with bounded concurrency.

    Args:
        max_concurrent: Maximum number of tasks holding a slot (≥ 1).
        delay_between_requests: Seconds a slot stays held after its task
            settles.

    Raises:
        ValueError: If ``max_concurrent`` < 1 or the delay is negative.
    """

    def __init__(self, max_concurrent: int = 3, delay_between_requests: float = 0.5) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be ≥ 1, got {max_concurrent!r}.")
        if delay_between_requests < 0:
            raise ValueError(
                f"delay_between_requests must be ≥ 0, got {delay_between_requests!r}."
            )
        self.max_concurrent = max_concurrent
        self.delay_between_requests = delay_between_requests

        self._queue: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]] = deque()
        self._tasks: set[asyncio.Task[None]] = set()
        self._active = 0
        self._completed = 0
        self._failed = 0
        self._idle = asyncio.Event()
        self._idle.set()

    def submit(self, factory: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """Queue *factory* and return a future for its result.

        *factory* is called only when a slot is free, so the request starts
        at dispatch time rather than at submission time.  Must be called from
        a running event loop.
        """
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._queue.append((factory, future))
        self._idle.clear()
        self._dispatch()
        return future

    def status(self) -> DispatcherStatus:
        return DispatcherStatus(
            active=self._active,
            queued=len(self._queue),
            completed=self._completed,
            failed=self._failed,
        )

    async def join(self) -> None:
        """Wait until the queue is drained and every slot is free."""
        await self._idle.wait()

    def _dispatch(self) -> None:
        while self._active < self.max_concurrent and self._queue:
            factory, future = self._queue.popleft()
            self._active += 1
            task = asyncio.ensure_future(self._run(factory, future))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, factory: Callable[[], Awaitable[Any]], future: asyncio.Future[Any]) -> None:
        try:
            result = await factory()
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as exc:
            self._failed += 1
            logger.debug("Dispatched task failed: %s", exc)
            if not future.done():
                future.set_exception(exc)
        else:
            self._completed += 1
            if not future.done():
                future.set_result(result)
        finally:
            await self._release()

    async def _release(self) -> None:
        try:
            if self.delay_between_requests > 0:
                await asyncio.sleep(self.delay_between_requests)
        finally:
            self._active -= 1
            self._dispatch()
            if self._active == 0 and not self._queue:
                self._idle.set()
