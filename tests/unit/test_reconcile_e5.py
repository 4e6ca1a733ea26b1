"""Unit tests for candidate reconciliation, item commands and rename debouncing.

Covers:
- :func:`~clipkeeper.engine.reconcile.extract_candidates` and
  :func:`~clipkeeper.engine.reconcile.filter_new_candidates`.
- :func:`~clipkeeper.engine.reconcile.fetch_candidates` with a stub policy:
  saved, skipped and failed candidates, progress reporting and outcomes.
- :class:`~clipkeeper.engine.commands.ItemCommands`: exclude, restore,
  rename and manual add (including validation before any store access).
- :class:`~clipkeeper.engine.debounce.RenameDebouncer`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from clipkeeper.core.exceptions import ItemAlreadyExistsError, ItemValidationError
from clipkeeper.core.models import Candidate, Category, DismissedItem, KeptItem, PendingItem
from clipkeeper.engine.commands import ItemCommands
from clipkeeper.engine.debounce import RenameDebouncer
from clipkeeper.engine.reconcile import (
    BatchOutcome,
    FetchBatchSummary,
    extract_candidates,
    fetch_candidates,
    filter_new_candidates,
)
from clipkeeper.fetch.base import FetchResult
from clipkeeper.storage.backend import MemoryBackend
from clipkeeper.storage.repository import ITEMS_KEY, ItemStore

logger = logging.getLogger(__name__)

PAGE = "42"

#: A record written by an older release; it no longer parses as an item.
LEGACY_RECORD = {"id": "5", "category": "saved", "currentPageId": "1", "name": "Old"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _StubPolicy:
    """Resolve names from a url → result map; unknown urls fail."""

    item_delay = 0.0

    def __init__(self, results: dict[str, FetchResult] | None = None) -> None:
        self._results = results or {}
        self.calls: list[str] = []
        self.on_fetch: Any = None

    async def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        if self.on_fetch is not None:
            await self.on_fetch(url)
        return self._results.get(url, FetchResult.failed("HTTP 404: Not Found"))


def _url(item_id: str) -> str:
    return f"https://booth.pm/ja/items/{item_id}"


def _candidate(item_id: str) -> Candidate:
    return Candidate(id=item_id, url=_url(item_id))


# ===========================================================================
# Discovery and dedup
# ===========================================================================


class TestExtractCandidates:
    def test_both_url_shapes_in_order(self) -> None:
        text = (
            "<a href='https://shop.booth.pm/items/7?ref=top'>one</a>"
            "<a href='https://booth.pm/en/items/3'>two</a>"
        )
        candidates = extract_candidates(text)
        assert [(c.id, c.url) for c in candidates] == [
            ("7", "https://shop.booth.pm/items/7"),
            ("3", "https://booth.pm/en/items/3"),
        ]

    def test_page_own_id_excluded(self) -> None:
        text = f"{_url(PAGE)} {_url('1')}"
        assert [c.id for c in extract_candidates(text, PAGE)] == ["1"]

    def test_no_links(self) -> None:
        assert extract_candidates("nothing to see here") == []


class TestFilterNewCandidates:
    async def test_drops_stored_items_of_any_category(self, store: ItemStore) -> None:
        await store.save("1", {"category": "kept"})
        await store.save("2", {"category": "dismissed", "owner_page_id": "9"})
        await store.save("3", {"category": "pending", "owner_page_id": "9"})

        fresh = await filter_new_candidates(
            store, [_candidate(i) for i in ("1", "2", "3", "4")], PAGE
        )
        assert [c.id for c in fresh] == ["4"]

    async def test_drops_repeats_and_page_id(self, store: ItemStore) -> None:
        fresh = await filter_new_candidates(
            store, [_candidate("5"), _candidate(PAGE), _candidate("5")], PAGE
        )
        assert [c.id for c in fresh] == ["5"]

    async def test_never_writes(self, store: ItemStore, backend: MemoryBackend) -> None:
        await filter_new_candidates(store, [_candidate("5")], PAGE)
        assert backend.write_count == 0

    async def test_unreadable_record_counts_as_stored(self, backend: MemoryBackend) -> None:
        await backend.set(ITEMS_KEY, {"5": LEGACY_RECORD})

        fresh = await filter_new_candidates(
            ItemStore(backend), [_candidate("5"), _candidate("6")], PAGE
        )
        assert [c.id for c in fresh] == ["6"]


# ===========================================================================
# Fetch batch
# ===========================================================================


class TestFetchCandidates:
    async def test_all_saved(self, store: ItemStore) -> None:
        policy = _StubPolicy({_url("1"): FetchResult.ok("Hat"), _url("2"): FetchResult.ok("Cap")})

        summary = await fetch_candidates(
            store, policy, [_candidate("1"), _candidate("2")], PAGE  # type: ignore[arg-type]
        )

        assert summary.saved == ["1", "2"]
        assert summary.outcome is BatchOutcome.SUCCESS
        item = await store.get("1")
        assert isinstance(item, PendingItem)
        assert item.name == "Hat"
        assert item.owner_page_id == PAGE

    async def test_failures_go_to_manual_queue(self, store: ItemStore) -> None:
        policy = _StubPolicy({_url("1"): FetchResult.ok("Hat")})

        summary = await fetch_candidates(
            store, policy, [_candidate("1"), _candidate("2")], PAGE  # type: ignore[arg-type]
        )

        assert summary.outcome is BatchOutcome.PARTIAL
        assert [f.id for f in summary.failed] == ["2"]
        assert summary.failed[0].url == _url("2")
        assert summary.failed[0].error == "HTTP 404: Not Found"
        assert not await store.has("2")

    async def test_all_failed(self, store: ItemStore) -> None:
        summary = await fetch_candidates(
            store, _StubPolicy(), [_candidate("1")], PAGE  # type: ignore[arg-type]
        )
        assert summary.outcome is BatchOutcome.FAILURE

    async def test_empty_batch(self, store: ItemStore) -> None:
        summary = await fetch_candidates(store, _StubPolicy(), [], PAGE)  # type: ignore[arg-type]
        assert summary.total == 0
        assert summary.outcome is BatchOutcome.NOTHING

    async def test_existing_item_not_overwritten(self, store: ItemStore) -> None:
        await store.save("1", {"name": "Mine", "category": "kept"})
        policy = _StubPolicy({_url("1"): FetchResult.ok("Theirs")})

        summary = await fetch_candidates(
            store, policy, [_candidate("1")], PAGE  # type: ignore[arg-type]
        )

        assert summary.skipped == ["1"]
        assert policy.calls == []
        item = await store.get("1")
        assert isinstance(item, KeptItem)
        assert item.name == "Mine"

    async def test_item_stored_mid_batch_is_skipped(self, store: ItemStore) -> None:
        policy = _StubPolicy({_url("1"): FetchResult.ok("Hat"), _url("2"): FetchResult.ok("Cap")})

        async def sneak_in(url: str) -> None:
            if url == _url("1"):
                await store.save("2", {"name": "Manual", "category": "kept"})

        policy.on_fetch = sneak_in
        summary = await fetch_candidates(
            store, policy, [_candidate("1"), _candidate("2")], PAGE  # type: ignore[arg-type]
        )

        assert summary.saved == ["1"]
        assert summary.skipped == ["2"]
        assert (await store.get("2")).name == "Manual"  # type: ignore[union-attr]

    async def test_save_failure_recorded(self) -> None:
        backend = MemoryBackend()
        store = ItemStore(backend)
        backend.fail_writes = True
        policy = _StubPolicy({_url("1"): FetchResult.ok("Hat")})

        summary = await fetch_candidates(
            store, policy, [_candidate("1")], PAGE  # type: ignore[arg-type]
        )

        assert summary.failed[0].error == "Could not save item"
        assert summary.outcome is BatchOutcome.FAILURE

    async def test_policy_exception_isolated(self, store: ItemStore) -> None:
        policy = _StubPolicy({_url("2"): FetchResult.ok("Cap")})

        async def explode(url: str) -> None:
            if url == _url("1"):
                raise RuntimeError("boom")

        policy.on_fetch = explode
        summary = await fetch_candidates(
            store, policy, [_candidate("1"), _candidate("2")], PAGE  # type: ignore[arg-type]
        )

        assert [f.id for f in summary.failed] == ["1"]
        assert summary.failed[0].error == "boom"
        assert summary.saved == ["2"]

    async def test_progress_reported(self, store: ItemStore) -> None:
        policy = _StubPolicy({_url("1"): FetchResult.ok("Hat"), _url("2"): FetchResult.ok("Cap")})
        seen: list[tuple[int, int, str]] = []

        await fetch_candidates(
            store,
            policy,  # type: ignore[arg-type]
            [_candidate("1"), _candidate("2")],
            PAGE,
            on_progress=lambda done, total, item_id: seen.append((done, total, item_id)),
        )

        assert seen == [(0, 2, "1"), (1, 2, "2")]

    async def test_items_spaced_by_policy_delay(self, store: ItemStore) -> None:
        policy = _StubPolicy({_url(i): FetchResult.ok(f"n{i}") for i in ("1", "2", "3")})
        policy.item_delay = 0.3

        with patch("clipkeeper.engine.reconcile.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            summary = await fetch_candidates(
                store, policy, [_candidate(i) for i in ("1", "2", "3")], PAGE  # type: ignore[arg-type]
            )

        assert summary.saved == ["1", "2", "3"]
        assert mock_sleep.await_count == 2
        mock_sleep.assert_awaited_with(0.3)

    async def test_unreadable_record_skipped_not_overwritten(
        self, backend: MemoryBackend
    ) -> None:
        await backend.set(ITEMS_KEY, {"5": LEGACY_RECORD})
        policy = _StubPolicy({_url("5"): FetchResult.ok("New")})

        summary = await fetch_candidates(
            ItemStore(backend), policy, [_candidate("5")], PAGE  # type: ignore[arg-type]
        )

        assert summary.skipped == ["5"]
        assert policy.calls == []
        assert (await backend.get(ITEMS_KEY))["5"] == LEGACY_RECORD


class TestBatchOutcome:
    def test_outcomes(self) -> None:
        assert FetchBatchSummary().outcome is BatchOutcome.NOTHING
        assert FetchBatchSummary(saved=["1"]).outcome is BatchOutcome.SUCCESS


# ===========================================================================
# Commands
# ===========================================================================


class TestExcludeRestore:
    async def test_exclude_pending_remembers_category(self, store: ItemStore) -> None:
        await store.save("1", {"category": "pending", "owner_page_id": PAGE})
        commands = ItemCommands(store)

        assert await commands.exclude("1", PAGE)

        item = await store.get("1")
        assert isinstance(item, DismissedItem)
        assert item.previous_category == Category.PENDING
        assert item.owner_page_id == PAGE

    async def test_exclude_kept_then_restore(self, store: ItemStore) -> None:
        await store.save("1", {"name": "Hat", "category": "kept", "export_count": 2})
        commands = ItemCommands(store)

        assert await commands.exclude("1", PAGE)
        dismissed = await store.get("1")
        assert isinstance(dismissed, DismissedItem)
        assert dismissed.previous_category == Category.KEPT

        assert await commands.restore("1", PAGE)
        restored = await store.get("1")
        assert isinstance(restored, KeptItem)
        assert restored.name == "Hat"
        assert restored.export_count == 2

    async def test_restore_to_pending_takes_page(self, store: ItemStore) -> None:
        await store.save("1", {"category": "dismissed", "owner_page_id": "old"})
        commands = ItemCommands(store)

        assert await commands.restore("1", PAGE)

        item = await store.get("1")
        assert isinstance(item, PendingItem)
        assert item.owner_page_id == PAGE

    async def test_exclude_already_dismissed_is_noop(
        self, store: ItemStore, backend: MemoryBackend
    ) -> None:
        await store.save("1", {"category": "dismissed", "owner_page_id": "old"})
        writes = backend.write_count

        assert await ItemCommands(store).exclude("1", PAGE)
        assert backend.write_count == writes

    async def test_restore_non_dismissed_is_noop(
        self, store: ItemStore, backend: MemoryBackend
    ) -> None:
        await store.save("1", {"category": "kept"})
        writes = backend.write_count

        assert await ItemCommands(store).restore("1", PAGE)
        assert backend.write_count == writes

    async def test_unknown_ids(self, store: ItemStore) -> None:
        commands = ItemCommands(store)
        assert not await commands.exclude("9", PAGE)
        assert not await commands.restore("9", PAGE)
        assert not await commands.rename("9", "Name")


class TestRename:
    async def test_rename_keeps_other_fields(self, store: ItemStore) -> None:
        await store.save("1", {"name": "Old", "category": "pending", "owner_page_id": PAGE})

        assert await ItemCommands(store).rename("1", "New")

        item = await store.get("1")
        assert isinstance(item, PendingItem)
        assert item.name == "New"
        assert item.owner_page_id == PAGE


class TestManualAdd:
    async def test_adds_trimmed_pending_item(self, store: ItemStore) -> None:
        assert await ItemCommands(store).manual_add(" 123 ", "  Hat ", PAGE)

        item = await store.get("123")
        assert isinstance(item, PendingItem)
        assert item.name == "Hat"
        assert item.owner_page_id == PAGE

    @pytest.mark.parametrize(
        ("item_id", "name"),
        [("abc", "Hat"), ("", "Hat"), ("123", "   "), ("12 3", "Hat")],
    )
    async def test_invalid_input_rejected_before_store_access(
        self, item_id: str, name: str
    ) -> None:
        backend = MemoryBackend()
        backend.fail_reads = True
        store = ItemStore(backend)

        with pytest.raises(ItemValidationError):
            await ItemCommands(store).manual_add(item_id, name, PAGE)
        assert backend.write_count == 0

    async def test_existing_id_rejected(self, store: ItemStore) -> None:
        await store.save("123", {"category": "kept"})

        with pytest.raises(ItemAlreadyExistsError) as exc_info:
            await ItemCommands(store).manual_add("123", "Hat", PAGE)
        assert exc_info.value.item_id == "123"

    async def test_unreadable_record_rejected(self, backend: MemoryBackend) -> None:
        await backend.set(ITEMS_KEY, {"5": LEGACY_RECORD})

        with pytest.raises(ItemAlreadyExistsError):
            await ItemCommands(ItemStore(backend)).manual_add("5", "new", "9")
        assert (await backend.get(ITEMS_KEY))["5"] == LEGACY_RECORD

    async def test_write_failure_returns_false(self) -> None:
        backend = MemoryBackend()
        backend.fail_writes = True
        assert not await ItemCommands(ItemStore(backend)).manual_add("123", "Hat", PAGE)


# ===========================================================================
# Rename debouncing
# ===========================================================================


class TestRenameDebouncer:
    def _recorder(self) -> tuple[list[tuple[str, str]], Any]:
        commits: list[tuple[str, str]] = []

        async def commit(item_id: str, name: str) -> bool:
            commits.append((item_id, name))
            return True

        return commits, commit

    async def test_only_last_edit_committed(self) -> None:
        commits, commit = self._recorder()
        debouncer = RenameDebouncer(commit, quiet_period=0.02)

        for name in ("H", "Ha", "Hat"):
            debouncer.schedule("1", name)
            await asyncio.sleep(0.005)
        await asyncio.sleep(0.1)

        assert commits == [("1", "Hat")]
        assert debouncer.pending_ids == []

    async def test_ids_debounced_independently(self) -> None:
        commits, commit = self._recorder()
        debouncer = RenameDebouncer(commit, quiet_period=0.01)

        debouncer.schedule("1", "Hat")
        debouncer.schedule("2", "Cap")
        await asyncio.sleep(0.1)

        assert sorted(commits) == [("1", "Hat"), ("2", "Cap")]

    async def test_cancel(self) -> None:
        commits, commit = self._recorder()
        debouncer = RenameDebouncer(commit, quiet_period=0.01)

        debouncer.schedule("1", "Hat")
        assert debouncer.cancel("1")
        assert not debouncer.cancel("1")
        await asyncio.sleep(0.03)

        assert commits == []

    async def test_flush_commits_immediately(self) -> None:
        commits, commit = self._recorder()
        debouncer = RenameDebouncer(commit, quiet_period=10)

        debouncer.schedule("1", "Hat")
        await debouncer.flush()

        assert commits == [("1", "Hat")]
        assert debouncer.pending_ids == []

    async def test_commit_error_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        async def failing(item_id: str, name: str) -> None:
            raise RuntimeError("disk gone")

        debouncer = RenameDebouncer(failing, quiet_period=0)
        with caplog.at_level(logging.ERROR, logger="clipkeeper.engine.debounce"):
            debouncer.schedule("1", "Hat")
            await asyncio.sleep(0.01)

        assert any("Rename commit failed" in r.getMessage() for r in caplog.records)

    async def test_debounced_rename_reaches_store(self, store: ItemStore) -> None:
        await store.save("1", {"name": "Old", "category": "kept"})
        debouncer = RenameDebouncer(ItemCommands(store).rename, quiet_period=0.01)

        debouncer.schedule("1", "Ne")
        debouncer.schedule("1", "New")
        await asyncio.sleep(0.1)

        assert (await store.get("1")).name == "New"  # type: ignore[union-attr]
