"""Clipboard sinks.

The export engine hands its text to a :class:`ClipboardSink` and only
mutates the store once the sink reports success.  Platform clipboards are
out of scope; two sinks ship with the package:

* :class:`MemoryClipboard` — keeps every written text, for tests and
  embedders that read the export back themselves.
* :class:`StreamClipboard` — writes the text to a text stream (stdout by
  default), which is what the CLI uses.

A sink may report failure either by returning an unsuccessful
:class:`ClipboardResult` or by raising; the engine treats both the same way.
"""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TextIO

__all__ = ["ClipboardResult", "ClipboardSink", "MemoryClipboard", "StreamClipboard"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClipboardResult:
    success: bool
    error: str | None = None


class ClipboardSink(ABC):
    """Destination for exported text."""

    @abstractmethod
    async def write(self, text: str) -> ClipboardResult:
        """Place *text* on the clipboard."""


class MemoryClipboard(ClipboardSink):
    """In-memory sink.

    Args:
        fail_with: When set, every write fails with this error message and
            nothing is recorded.

    Attributes:
        writes: Every successfully written text, oldest first.
    """

    def __init__(self, fail_with: str | None = None) -> None:
        self.fail_with = fail_with
        self.writes: list[str] = []

    @property
    def text(self) -> str | None:
        """The most recently written text, or ``None``."""
        return self.writes[-1] if self.writes else None

    async def write(self, text: str) -> ClipboardResult:
        if self.fail_with is not None:
            return ClipboardResult(success=False, error=self.fail_with)
        self.writes.append(text)
        return ClipboardResult(success=True)


class StreamClipboard(ClipboardSink):
    """Sink that writes the text, newline-terminated, to *stream*."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    async def write(self, text: str) -> ClipboardResult:
        stream = self._stream or sys.stdout
        try:
            stream.write(text if text.endswith("\n") else text + "\n")
            stream.flush()
        except OSError as exc:
            logger.error("Could not write export text: %s", exc)
            return ClipboardResult(success=False, error=str(exc))
        return ClipboardResult(success=True)
