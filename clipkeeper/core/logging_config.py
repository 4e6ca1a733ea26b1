"""Process-wide logging setup.

:func:`configure_logging` installs a single stderr handler on the root logger,
in either human-readable text or one-JSON-object-per-line form.  Modules never
configure handlers themselves; they only ask for a module-scoped logger::

    import logging
    logger = logging.getLogger(__name__)

Level and format fall back to the ``LOG_LEVEL`` / ``LOG_FORMAT`` environment
variables (``INFO`` / ``text``) when not passed explicitly.

Records emitted inside :func:`page_scope` carry the active page id as
``record.page_id``, so every line of an export or fetch batch can be traced
back to the page that triggered it.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Final

__all__ = [
    "configure_logging",
    "JsonFormatter",
    "PAGE_ID_CTX",
    "PageContextFilter",
    "page_scope",
]

#: Id of the page being processed; ``"-"`` outside :func:`page_scope`.
#: Being a ContextVar, it follows the current task and is copied into tasks
#: created while it is set.
PAGE_ID_CTX: ContextVar[str] = ContextVar("page_id", default="-")

LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
FORMATS: Final[tuple[str, ...]] = ("text", "json")

_TEXT_FORMAT: Final[str] = "%(asctime)s %(levelname)-8s [page=%(page_id)s] %(name)s: %(message)s"
_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Loggers that stay at WARNING unless DEBUG is requested.
_CHATTY_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore", "asyncio", "aiosqlite")


@contextmanager
def page_scope(page_id: str) -> Iterator[None]:
    """Bind *page_id* to :data:`PAGE_ID_CTX` for the duration of the block."""
    token = PAGE_ID_CTX.set(page_id)
    try:
        yield
    finally:
        PAGE_ID_CTX.reset(token)


class PageContextFilter(logging.Filter):
    """Stamp ``record.page_id`` from :data:`PAGE_ID_CTX`; never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.page_id = PAGE_ID_CTX.get()
        return True


def _pick(value: str | None, env_var: str, default: str, allowed: tuple[str, ...]) -> str:
    chosen = (value or os.environ.get(env_var) or default).strip()
    chosen = chosen.upper() if chosen.upper() in allowed else chosen.lower()
    if chosen not in allowed:
        raise ValueError(f"Unknown {env_var} {chosen!r}. Must be one of: {', '.join(allowed)}")
    return chosen


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Configure the root logger.

    Args:
        level: One of :data:`LEVELS`; defaults to ``$LOG_LEVEL`` or ``INFO``.
        fmt: ``"text"`` or ``"json"``; defaults to ``$LOG_FORMAT`` or ``text``.
        force: Replace existing root handlers.  Without it, an already
            configured root logger (pytest's, for instance) only gets its
            level changed.

    Raises:
        ValueError: On an unknown level or format.
    """
    resolved_level = _pick(level, "LOG_LEVEL", "INFO", LEVELS)
    resolved_fmt = _pick(fmt, "LOG_FORMAT", "text", FORMATS)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.addFilter(PageContextFilter())
    handler.setFormatter(
        JsonFormatter()
        if resolved_fmt == "json"
        else logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT)
    )
    root.handlers.clear()
    root.addHandler(handler)

    chatty_level = logging.DEBUG if resolved_level == "DEBUG" else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)


# Attributes every LogRecord has; anything else on a record came from ``extra``
# or a filter.
_STANDARD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON line.

    Shape::

        {"ts": "2026-02-28T12:34:56.789Z", "level": "INFO",
         "logger": "clipkeeper.engine.export", "message": "Export finished",
         "extra": {"page_id": "4242", "event": "EXPORT_COMPLETE"}}

    ``exc_info`` and ``stack_info`` are added when present.  Values that are
    not JSON-serialisable are rendered with ``str()``.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        created = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "ts": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "extra": {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS},
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(payload, default=str, ensure_ascii=False)
