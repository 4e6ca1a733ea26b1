"""Item store: the single owner of every item's category.

Provides :class:`ItemStore`, the only data-access object for the ``items``
storage key.  All application state about which items are kept, pending or
dismissed lives here, and every write goes through
:func:`~clipkeeper.core.models.make_item` so the category invariants hold for
everything that reaches the backend.

Every mutation is a read-modify-write over the whole ``items`` value.  There
is no locking: the store assumes a single logical writer, and two
interleaved writers resolve as last-write-wins.

Write methods return ``True`` when the new value was persisted and ``False``
when the backend rejected it.  They never retry.  Reads raise
:class:`~clipkeeper.core.exceptions.StorageError`.

Typical usage::

    from clipkeeper.storage import ItemStore, MemoryBackend

    async def run() -> None:
        store = ItemStore(MemoryBackend())
        await store.save("123", {"name": "Hat", "owner_page_id": "999"})
        page_items = await store.get_for_page("999")
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from clipkeeper.core import events
from clipkeeper.core.exceptions import ItemValidationError, StorageError, StorageWriteError
from clipkeeper.core.ids import DEFAULT_ITEM_BASE_URL
from clipkeeper.core.models import (
    Category,
    DismissedItem,
    ItemPatch,
    KeptItem,
    PendingItem,
    dump_item,
    make_item,
    parse_item,
)
from clipkeeper.storage.backend import StorageBackend
from clipkeeper.storage.history import HistoryLog, HistoryStats

__all__ = [
    "ITEMS_KEY",
    "ChangeKind",
    "StoreChange",
    "CategoryStats",
    "ImportMode",
    "ImportSummary",
    "ItemStore",
]

logger = logging.getLogger(__name__)

ITEMS_KEY = "items"

AnyItem = KeptItem | PendingItem | DismissedItem
ChangeListener = Callable[["StoreChange"], Awaitable[None] | None]

_SAVE_FIELDS = frozenset(
    {
        "id",
        "name",
        "category",
        "owner_page_id",
        "previous_category",
        "export_count",
        "last_exported_at",
    }
)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class ChangeKind(StrEnum):
    SAVED = "saved"
    UPDATED = "updated"
    DELETED = "deleted"
    CLEARED = "cleared"
    IMPORTED = "imported"


@dataclass(frozen=True)
class StoreChange:
    """Change notification delivered to subscribers after a persisted write."""

    kind: ChangeKind
    item_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class CategoryStats:
    """Per-category counts plus history totals.

    Records whose category is missing or unrecognised are counted as
    pending, matching how older stores were summarised.
    """

    kept: int = 0
    pending: int = 0
    dismissed: int = 0
    history: HistoryStats = field(default_factory=HistoryStats)

    @property
    def total(self) -> int:
        return self.kept + self.pending + self.dismissed


class ImportMode(StrEnum):
    SKIP = "skip"
    REPLACE = "replace"


@dataclass
class ImportSummary:
    """Outcome of :meth:`ItemStore.import_items`.

    Attributes:
        added: Ids added as kept items.
        replaced: Existing ids whose name was overwritten.
        skipped: Existing ids left untouched.
        invalid: Number of records missing an id or a name.
        success: ``False`` if the bulk write was rejected.
    """

    added: list[str] = field(default_factory=list)
    replaced: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    invalid: int = 0
    success: bool = True


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class ItemStore:
    """Data-access object for the ``items`` key.

    Args:
        backend: Whole-value storage backend.
        base_url: Item URL prefix used for history entries.
        history: Optional pre-built history log; by default one is created
            on the same backend.
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        base_url: str = DEFAULT_ITEM_BASE_URL,
        history: HistoryLog | None = None,
    ) -> None:
        self._backend = backend
        self.history = history or HistoryLog(backend, base_url=base_url)
        self._listeners: list[ChangeListener] = []

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register *listener* for change notifications.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def _notify(self, kind: ChangeKind, item_ids: Iterable[str]) -> None:
        change = StoreChange(kind=kind, item_ids=tuple(item_ids))
        for listener in list(self._listeners):
            try:
                result = listener(change)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Store change listener failed for %s", change.kind)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def _read_records(self) -> dict[str, Any]:
        raw = await self._backend.get(ITEMS_KEY)
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise StorageError(f"Items value has unexpected type {type(raw).__name__}")
        return raw

    @staticmethod
    def _parse(item_id: str, record: Any) -> AnyItem | None:
        try:
            item = parse_item(record)
        except ValidationError as exc:
            logger.warning("Skipping invalid stored item %s: %s", item_id, exc)
            return None
        if item.id != item_id:
            logger.warning("Skipping stored item %s: record id is %r", item_id, item.id)
            return None
        return item

    async def get(self, item_id: str) -> AnyItem | None:
        """Return the item stored under *item_id*, or ``None``."""
        records = await self._read_records()
        if item_id not in records:
            return None
        return self._parse(item_id, records[item_id])

    async def get_all(self) -> dict[str, AnyItem]:
        """Return every valid stored item keyed by id."""
        records = await self._read_records()
        items: dict[str, AnyItem] = {}
        for item_id, record in records.items():
            item = self._parse(item_id, record)
            if item is not None:
                items[item_id] = item
        return items

    async def has(self, item_id: str) -> bool:
        """Return ``True`` if a valid item is stored under *item_id*."""
        return await self.get(item_id) is not None

    async def contains(self, item_id: str) -> bool:
        """Return ``True`` if any record, readable or not, is stored under *item_id*."""
        return item_id in await self._read_records()

    async def get_for_page(self, page_id: str) -> dict[str, AnyItem]:
        """Return the page set: every kept item plus items owned by *page_id*."""
        return {
            item_id: item
            for item_id, item in (await self.get_all()).items()
            if isinstance(item, KeptItem) or item.owner_page_id == page_id
        }

    async def stats(self) -> CategoryStats:
        """Count stored records per category and summarise the history."""
        records = await self._read_records()
        counts = {Category.KEPT: 0, Category.PENDING: 0, Category.DISMISSED: 0}
        for record in records.values():
            raw_category = record.get("category") if isinstance(record, dict) else None
            try:
                counts[Category(raw_category)] += 1
            except ValueError:
                counts[Category.PENDING] += 1
        return CategoryStats(
            kept=counts[Category.KEPT],
            pending=counts[Category.PENDING],
            dismissed=counts[Category.DISMISSED],
            history=await self.history.stats(),
        )

    # ------------------------------------------------------------------
    # Write helpers
    # ------------------------------------------------------------------

    async def _write(self, records: dict[str, Any], op: str, item_ids: Iterable[str]) -> bool:
        try:
            await self._backend.set(ITEMS_KEY, records)
        except StorageWriteError:
            logger.exception(
                "Store %s failed for %s",
                op,
                ", ".join(item_ids) or "<all>",
                extra={"event": events.STORE_WRITE_FAILED},
            )
            return False
        return True

    async def save(self, item_id: str, data: Mapping[str, Any] | AnyItem) -> bool:
        """Create or replace the item stored under *item_id*.

        *data* is either a ready-made item or a mapping of item fields.  A
        missing category defaults to pending; fields the category does not
        carry are dropped.

        Raises:
            ItemValidationError: If the fields violate a category invariant.
        """
        item = self._build(item_id, data)
        records = await self._read_records()
        records[item_id] = dump_item(item)
        if not await self._write(records, "save", [item_id]):
            return False

        logger.debug(
            "Saved %s as %s", item_id, item.category, extra={"event": events.ITEM_SAVED}
        )
        if isinstance(item, KeptItem):
            await self.history.record_kept(item)
        await self._notify(ChangeKind.SAVED, [item_id])
        return True

    async def update(self, item_id: str, patch: ItemPatch | Mapping[str, Any]) -> bool:
        """Merge *patch* into the item stored under *item_id*.

        Fields absent from the patch keep their current value.  An absent
        item is created with the same defaults as :meth:`save`.  Moving an
        item to dismissed without an explicit previous category records the
        category it had before.

        Raises:
            ItemValidationError: If the merged item violates an invariant, or
                the record stored under *item_id* cannot be read.  An
                unreadable record is left untouched.
        """
        if not isinstance(patch, ItemPatch):
            try:
                patch = ItemPatch.model_validate(dict(patch))
            except ValidationError as exc:
                raise ItemValidationError(f"Invalid patch: {exc}", item_id) from exc

        records = await self._read_records()
        current = None
        if item_id in records:
            current = self._parse(item_id, records[item_id])
            if current is None:
                raise ItemValidationError(
                    f"Stored record {item_id!r} is unreadable; refusing to update it", item_id
                )
        item = self._merge(item_id, current, patch)

        records[item_id] = dump_item(item)
        if not await self._write(records, "update", [item_id]):
            return False

        logger.debug(
            "Updated %s (%s)",
            item_id,
            ", ".join(sorted(patch.model_fields_set)),
            extra={"event": events.ITEM_UPDATED},
        )
        if isinstance(item, KeptItem) and not isinstance(current, KeptItem):
            await self.history.record_kept(item)
        await self._notify(ChangeKind.UPDATED, [item_id])
        return True

    async def delete(self, item_id: str) -> bool:
        """Remove *item_id*; deleting an absent id is a successful no-op."""
        records = await self._read_records()
        if item_id not in records:
            return True
        del records[item_id]
        if not await self._write(records, "delete", [item_id]):
            return False
        logger.debug("Deleted %s", item_id, extra={"event": events.ITEM_DELETED})
        await self._notify(ChangeKind.DELETED, [item_id])
        return True

    async def clear_all(self) -> bool:
        """Remove every item.  The history log is left intact."""
        try:
            await self._backend.remove(ITEMS_KEY)
        except StorageWriteError:
            logger.exception("Store clear failed", extra={"event": events.STORE_WRITE_FAILED})
            return False
        logger.info("Cleared all items")
        await self._notify(ChangeKind.CLEARED, [])
        return True

    async def import_items(
        self,
        records: Iterable[Any],
        mode: ImportMode | str = ImportMode.SKIP,
    ) -> ImportSummary:
        """Bulk-import ``{id, name}`` records in one write.

        New ids are added as kept items (and recorded in the history).  For
        existing ids, ``skip`` leaves the item untouched and ``replace``
        overwrites only its name.  Ids whose stored record cannot be read are
        always skipped.
        """
        mode = ImportMode(mode)
        summary = ImportSummary()
        stored = await self._read_records()
        added_items: list[KeptItem] = []

        for record in records:
            if not isinstance(record, Mapping):
                summary.invalid += 1
                continue
            item_id = str(record.get("id") or "").strip()
            name = record.get("name")
            if not item_id or not isinstance(name, str) or not name.strip():
                summary.invalid += 1
                continue

            existing = None
            if item_id in stored:
                existing = self._parse(item_id, stored[item_id])
                if existing is None:
                    summary.skipped.append(item_id)
                    continue

            if existing is None:
                item = KeptItem(id=item_id, name=name)
                stored[item_id] = dump_item(item)
                added_items.append(item)
                summary.added.append(item_id)
            elif mode is ImportMode.REPLACE:
                stored[item_id] = dump_item(existing.model_copy(update={"name": name}))
                summary.replaced.append(item_id)
            else:
                summary.skipped.append(item_id)

        changed = summary.added + summary.replaced
        if not changed:
            return summary

        if not await self._write(stored, "import", changed):
            summary.success = False
            return summary

        for item in added_items:
            await self.history.record_kept(item)
        logger.info(
            "Imported %d item(s): %d added, %d replaced, %d skipped, %d invalid",
            len(changed),
            len(summary.added),
            len(summary.replaced),
            len(summary.skipped),
            summary.invalid,
        )
        await self._notify(ChangeKind.IMPORTED, changed)
        return summary

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @staticmethod
    def _build(item_id: str, data: Mapping[str, Any] | AnyItem) -> AnyItem:
        if isinstance(data, KeptItem | PendingItem | DismissedItem):
            if data.id != item_id:
                raise ItemValidationError(
                    f"Item id {data.id!r} does not match key {item_id!r}", item_id
                )
            return data

        unknown = set(data) - _SAVE_FIELDS
        if unknown:
            raise ItemValidationError(
                f"Unknown item field(s): {', '.join(sorted(unknown))}", item_id
            )
        if data.get("id", item_id) != item_id:
            raise ItemValidationError(
                f"Item id {data['id']!r} does not match key {item_id!r}", item_id
            )
        return make_item(
            item_id,
            name=data.get("name") or "",
            category=data.get("category") or Category.PENDING,
            owner_page_id=data.get("owner_page_id"),
            previous_category=data.get("previous_category"),
            export_count=data.get("export_count") or 0,
            last_exported_at=_as_datetime(data.get("last_exported_at"), item_id),
        )

    @staticmethod
    def _merge(item_id: str, current: AnyItem | None, patch: ItemPatch) -> AnyItem:
        given = {name: getattr(patch, name) for name in patch.model_fields_set}

        if current is None:
            return make_item(
                item_id,
                name=given.get("name") or "",
                category=given.get("category") or Category.PENDING,
                owner_page_id=given.get("owner_page_id"),
                previous_category=given.get("previous_category"),
                export_count=given.get("export_count") or 0,
                last_exported_at=given.get("last_exported_at"),
            )

        merged: dict[str, Any] = current.model_dump()
        merged.update(given)
        target = Category(merged.get("category") or current.category)

        if (
            target is Category.DISMISSED
            and not patch.has("previous_category")
            and current.category != Category.DISMISSED
        ):
            merged["previous_category"] = current.category

        return make_item(
            item_id,
            name=merged.get("name") or "",
            category=target,
            owner_page_id=merged.get("owner_page_id"),
            previous_category=merged.get("previous_category"),
            export_count=merged.get("export_count") or 0,
            last_exported_at=merged.get("last_exported_at"),
        )


def _as_datetime(value: Any, item_id: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ItemValidationError(f"Invalid last_exported_at {value!r}", item_id) from exc
