"""Unit tests for structured logging and component wiring.

Coverage
--------
* :class:`~clipkeeper.core.logging_config.PageContextFilter` and
  :func:`~clipkeeper.core.logging_config.page_scope`: ``record.page_id``
  defaults to ``"-"`` and follows the innermost scope.
* :class:`~clipkeeper.core.logging_config.JsonFormatter`: payload shape with
  ``event`` and ``page_id`` under ``extra``.
* :mod:`clipkeeper.core.events`: every exported constant equals its name.
* Event annotations on key records emitted by the export engine and the
  fetch batch.
* :func:`~clipkeeper.runner.open_app` with an in-memory backend, the CLI
  dispatcher and :func:`~clipkeeper.runner.load_import_file`.
"""

from __future__ import annotations

import argparse
import asyncio
import io
import json
import logging
from pathlib import Path

import pytest

from clipkeeper.__main__ import _build_parser, _dispatch
from clipkeeper.core import events
from clipkeeper.core.exceptions import ConfigError
from clipkeeper.core.logging_config import (
    PAGE_ID_CTX,
    JsonFormatter,
    PageContextFilter,
    page_scope,
)
from clipkeeper.core.models import Candidate, Category, KeptItem
from clipkeeper.core.settings import Settings
from clipkeeper.engine.clipboard import ClipboardResult, MemoryClipboard
from clipkeeper.engine.export import ExportEngine
from clipkeeper.engine.reconcile import fetch_candidates
from clipkeeper.fetch.base import FetchResult
from clipkeeper.runner import load_import_file, open_app
from clipkeeper.storage.backend import MemoryBackend
from clipkeeper.storage.repository import ItemStore

logger = logging.getLogger(__name__)


def _record(msg: str = "hello", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="clipkeeper.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ---------------------------------------------------------------------------
# Page context
# ---------------------------------------------------------------------------


class TestPageContext:
    def test_default_page_id(self) -> None:
        record = _record()
        assert PageContextFilter().filter(record) is True
        assert record.page_id == "-"  # type: ignore[attr-defined]

    def test_page_scope_sets_and_resets(self) -> None:
        with page_scope("42"):
            record = _record()
            PageContextFilter().filter(record)
            assert record.page_id == "42"  # type: ignore[attr-defined]
            with page_scope("7"):
                assert PAGE_ID_CTX.get() == "7"
            assert PAGE_ID_CTX.get() == "42"
        assert PAGE_ID_CTX.get() == "-"

    def test_page_scope_resets_on_error(self) -> None:
        with pytest.raises(RuntimeError), page_scope("42"):
            raise RuntimeError("boom")
        assert PAGE_ID_CTX.get() == "-"

    async def test_child_tasks_inherit_page_id(self) -> None:
        async def read() -> str:
            await asyncio.sleep(0)
            return PAGE_ID_CTX.get()

        with page_scope("42"):
            values = await asyncio.gather(read(), read())
        assert values == ["42", "42"]


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    def test_payload_shape(self) -> None:
        record = _record("Export finished", event=events.EXPORT_COMPLETE, page_id="42")
        payload = json.loads(JsonFormatter().format(record))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "clipkeeper.test"
        assert payload["message"] == "Export finished"
        assert payload["ts"].endswith("Z")
        assert payload["extra"]["event"] == "EXPORT_COMPLETE"
        assert payload["extra"]["page_id"] == "42"
        assert "exc_info" not in payload

    def test_exception_included(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError:
            import sys  # noqa: PLC0415

            record = _record("failed")
            record.exc_info = sys.exc_info()
        payload = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad" in payload["exc_info"]

    def test_unserialisable_extra_uses_str(self) -> None:
        payload = json.loads(JsonFormatter().format(_record(path=Path("/tmp/x"))))
        assert payload["extra"]["path"] == "/tmp/x"


# ---------------------------------------------------------------------------
# Event names
# ---------------------------------------------------------------------------


class TestEventConstants:
    def test_every_constant_matches_its_name(self) -> None:
        for name in events.__all__:
            value = getattr(events, name)
            assert isinstance(value, str)
            assert value == name

    def test_names_are_unique(self) -> None:
        values = [getattr(events, name) for name in events.__all__]
        assert len(values) == len(set(values))


class TestEventAnnotations:
    async def test_export_records_carry_page_and_event(
        self, store: ItemStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        class _ScopeRecordingClipboard(MemoryClipboard):
            def __init__(self) -> None:
                super().__init__()
                self.page_ids: list[str] = []

            async def write(self, text: str) -> ClipboardResult:
                self.page_ids.append(PAGE_ID_CTX.get())
                return await super().write(text)

        await store.save("1", {"name": "Hat", "category": "pending", "owner_page_id": "42"})
        clipboard = _ScopeRecordingClipboard()
        engine = ExportEngine(store, clipboard)

        caplog.set_level(logging.DEBUG)
        await engine.export_kept_and_pending("42")

        emitted = [getattr(r, "event", None) for r in caplog.records]
        assert events.EXPORT_START in emitted
        assert events.EXPORT_COMPLETE in emitted
        assert clipboard.page_ids == ["42"]
        assert PAGE_ID_CTX.get() == "-"

    async def test_fetch_batch_events(
        self, store: ItemStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        class _Policy:
            item_delay = 0.0

            async def fetch(self, url: str) -> FetchResult:
                return FetchResult.failed("HTTP 404: Not Found")

        caplog.set_level(logging.DEBUG)
        await fetch_candidates(
            store,
            _Policy(),  # type: ignore[arg-type]
            [Candidate(id="1", url="https://booth.pm/ja/items/1")],
            "42",
        )

        emitted = {getattr(r, "event", None) for r in caplog.records}
        assert {
            events.FETCH_BATCH_START,
            events.FETCH_ITEM_FAILED,
            events.FETCH_BATCH_DONE,
        } <= emitted


# ---------------------------------------------------------------------------
# Wiring and CLI
# ---------------------------------------------------------------------------


class TestOpenApp:
    async def test_components_share_store(self, clean_env: None) -> None:
        clipboard = MemoryClipboard()
        async with open_app(Settings(), backend=MemoryBackend(), clipboard=clipboard) as app:
            assert await app.commands.manual_add("5", "Hat", "42")
            result = await app.engine.export_kept_and_pending("42")

        assert result.item_count == 1
        assert clipboard.text == "Hat"
        assert app.policy.item_delay == Settings().fetch_item_delay

    async def test_pending_renames_flushed_on_exit(self, clean_env: None) -> None:
        backend = MemoryBackend()
        async with open_app(Settings(rename_debounce=60), backend=backend) as app:
            await app.store.save("1", {"name": "Old", "category": "kept"})
            app.renames.schedule("1", "New")
            assert app.renames.pending_ids == ["1"]

        item = await ItemStore(backend).get("1")
        assert item is not None
        assert item.name == "New"

    async def test_sqlite_store_created(self, clean_env: None, tmp_path: Path) -> None:
        settings = Settings(store_path=str(tmp_path / "nested" / "store.db"))
        async with open_app(settings) as app:
            assert await app.store.save("1", {"name": "Hat", "category": "kept"})

        async with open_app(settings) as app:
            item = await app.store.get("1")
        assert isinstance(item, KeptItem)
        assert (tmp_path / "nested" / "store.db").exists()

    async def test_relative_store_path_resolved_from_cwd(
        self, clean_env: None, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        settings = Settings(store_path="data/store.db")
        async with open_app(settings) as app:
            assert await app.store.save("1", {"name": "Hat", "category": "kept"})

        assert settings.store_path_resolved == tmp_path.resolve() / "data" / "store.db"
        assert settings.store_path_resolved.exists()


class TestCli:
    def _args(self, *argv: str) -> argparse.Namespace:
        return _build_parser().parse_args(list(argv))

    async def test_stats_command(
        self, clean_env: None, capsys: pytest.CaptureFixture[str]
    ) -> None:
        async with open_app(Settings(), backend=MemoryBackend()) as app:
            await app.store.save("1", {"category": "kept"})
            await app.store.save("2", {"category": "dismissed", "owner_page_id": "9"})
            code = await _dispatch(app, self._args("stats"))

        assert code == 0
        out = capsys.readouterr().out
        assert "kept=1 pending=0 dismissed=1 total=2 history=1" in out

    async def test_import_command(
        self, clean_env: None, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        backup = tmp_path / "backup.json"
        backup.write_text(
            json.dumps({"items": [{"id": "1", "name": "Hat"}, {"id": "2"}]}),
            encoding="utf-8",
        )
        async with open_app(Settings(), backend=MemoryBackend()) as app:
            code = await _dispatch(app, self._args("import", str(backup)))
            item = await app.store.get("1")

        assert code == 0
        assert isinstance(item, KeptItem)
        assert "added=1 replaced=0 skipped=0 invalid=1" in capsys.readouterr().out

    async def test_page_command_reports_failures(
        self, clean_env: None, capsys: pytest.CaptureFixture[str]
    ) -> None:
        class _Policy:
            item_delay = 0.0

            async def fetch(self, url: str) -> FetchResult:
                return FetchResult.failed("HTTP 404: Not Found")

        async with open_app(Settings(), backend=MemoryBackend()) as app:
            app.policy = _Policy()  # type: ignore[assignment]
            args = self._args("page", "42")
            args.input = io.StringIO("https://booth.pm/ja/items/7")
            code = await _dispatch(app, args)

        assert code == 1
        assert "7\tHTTP 404: Not Found" in capsys.readouterr().err

    async def test_export_category_command(self, clean_env: None) -> None:
        clipboard = MemoryClipboard()
        async with open_app(Settings(), backend=MemoryBackend(), clipboard=clipboard) as app:
            await app.store.save("1", {"name": "Hat", "category": "pending", "owner_page_id": "9"})
            code = await _dispatch(
                app, self._args("export-category", "pending", "--format", "urls", "--no-persist")
            )
            item = await app.store.get("1")

        assert code == 0
        assert clipboard.text == "https://booth.pm/ja/items/1"
        assert item is not None
        assert item.category == Category.PENDING

    def test_parser_rejects_unknown_category(self) -> None:
        with pytest.raises(SystemExit):
            self._args("export-category", "saved")


class TestLoadImportFile:
    def test_reads_items_array(self, tmp_path: Path) -> None:
        path = tmp_path / "items.json"
        path.write_text(json.dumps({"items": [{"id": "1", "name": "Hat"}]}), encoding="utf-8")
        assert load_import_file(path) == [{"id": "1", "name": "Hat"}]

    def test_missing_items_array(self, tmp_path: Path) -> None:
        path = tmp_path / "items.json"
        path.write_text(json.dumps([{"id": "1"}]), encoding="utf-8")
        with pytest.raises(ConfigError, match="items"):
            load_import_file(path)

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "items.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_import_file(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read"):
            load_import_file(tmp_path / "absent.json")
