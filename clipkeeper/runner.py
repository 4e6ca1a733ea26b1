"""Component wiring: assemble the store, fetch stack and engine from settings.

:func:`open_app` is the single place where concrete components are chosen.
It opens the SQLite store at ``STORE_PATH``, builds the direct and fallback
HTTP fetchers, the dispatcher and the fetch policy, and tears every resource
down again on exit, including on exceptions.

Typical usage::

    from clipkeeper.core.settings import Settings
    from clipkeeper.runner import open_app

    async with open_app(Settings()) as app:
        result = await app.engine.export_kept_and_pending("4242")
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from clipkeeper.core.exceptions import ConfigError
from clipkeeper.core.settings import Settings
from clipkeeper.engine.clipboard import ClipboardSink, StreamClipboard
from clipkeeper.engine.commands import ItemCommands
from clipkeeper.engine.debounce import RenameDebouncer
from clipkeeper.engine.export import ExportEngine
from clipkeeper.fetch.dispatcher import FetchDispatcher
from clipkeeper.fetch.http_client import MetadataHttpClient
from clipkeeper.fetch.policy import ItemFetchPolicy
from clipkeeper.storage.backend import SqliteBackend, StorageBackend
from clipkeeper.storage.database import open_db
from clipkeeper.storage.repository import ItemStore

__all__ = ["App", "build_policy", "load_import_file", "open_app"]

logger = logging.getLogger(__name__)


@dataclass
class App:
    """Fully wired components for one process run."""

    settings: Settings
    store: ItemStore
    engine: ExportEngine
    commands: ItemCommands
    policy: ItemFetchPolicy
    renames: RenameDebouncer


def build_policy(
    settings: Settings,
    direct: MetadataHttpClient,
    fallback: MetadataHttpClient | None,
) -> ItemFetchPolicy:
    dispatcher = FetchDispatcher(
        max_concurrent=settings.fetch_max_concurrent,
        delay_between_requests=settings.fetch_delay_between_requests,
    )
    return ItemFetchPolicy(
        direct,
        dispatcher,
        fallback,
        fallback_timeout=settings.fetch_fallback_timeout,
        item_delay=settings.fetch_item_delay,
    )


@asynccontextmanager
async def open_app(
    settings: Settings | None = None,
    *,
    backend: StorageBackend | None = None,
    clipboard: ClipboardSink | None = None,
) -> AsyncIterator[App]:
    """Open every component and yield an :class:`App`.

    Args:
        settings: Loaded settings; read from the environment when omitted.
        backend: Storage backend override (tests); defaults to SQLite at
            ``settings.store_path``.
        clipboard: Export sink; defaults to stdout.
    """
    settings = settings or Settings()

    async with AsyncExitStack() as stack:
        if backend is None:
            conn = await open_db(settings.store_path_resolved)
            backend = SqliteBackend(conn)
        stack.push_async_callback(backend.close)

        direct = await stack.enter_async_context(
            MetadataHttpClient(base_url=settings.item_base_url, max_attempts=1)
        )
        fallback = await stack.enter_async_context(
            MetadataHttpClient(
                base_url=settings.item_base_url,
                max_attempts=settings.fetch_max_attempts,
            )
        )

        store = ItemStore(backend, base_url=settings.item_base_url)
        commands = ItemCommands(store)
        renames = RenameDebouncer(commands.rename, quiet_period=settings.rename_debounce)
        # Flushed before the backend closes.
        stack.push_async_callback(renames.flush)

        app = App(
            settings=settings,
            store=store,
            engine=ExportEngine(
                store,
                clipboard or StreamClipboard(),
                base_url=settings.item_base_url,
            ),
            commands=commands,
            policy=build_policy(settings, direct, fallback),
            renames=renames,
        )
        logger.debug("Components ready (store=%s)", settings.store_path_resolved)
        yield app


def load_import_file(path: Path | str) -> list[Any]:
    """Read an export/backup file and return its ``items`` array.

    Raises:
        ConfigError: The file is missing, not JSON, or has no ``items`` array.
    """
    file_path = Path(path)
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read import file {file_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Import file {file_path} is not valid JSON: {exc}") from exc

    items = data.get("items") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise ConfigError(f"Import file {file_path} has no 'items' array")
    return items
