"""Export engine: copy a page's items to the clipboard, then persist.

An export has two phases:

1. **Copy** — read the page set, format the kept and pending items, and
   write the text to the clipboard sink.  Nothing is mutated if there is
   nothing to export or the sink refuses the text; both cases raise.
2. **Persist** — best effort, only after the copy succeeded:

   a. pending items in the export set become kept (owner page cleared) and
      every exported item gets ``export_count + 1`` and a fresh
      ``last_exported_at``;
   b. dismissed items owned by the exported page are deleted;
   c. pending and dismissed items owned by *any other* page are deleted.

   Each step is attempted independently and failures accumulate per item id
   in a :class:`PersistenceResult`.  There is no automatic rollback: the
   text is already on the clipboard.  :meth:`ExportEngine.rollback` is a
   separate, user-invoked recovery action.

Typical usage::

    engine = ExportEngine(store, MemoryClipboard())
    result = await engine.export_kept_and_pending("4242")
    if result.warning:
        logger.warning(result.warning)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from clipkeeper.core import events
from clipkeeper.core.exceptions import ClipboardError, EmptyExportError, StorageError
from clipkeeper.core.ids import DEFAULT_ITEM_BASE_URL
from clipkeeper.core.logging_config import page_scope
from clipkeeper.core.models import Category, DismissedItem, ItemPatch, KeptItem, PendingItem
from clipkeeper.engine.clipboard import ClipboardSink
from clipkeeper.engine.formatter import ExportFormat, format_items
from clipkeeper.storage.repository import ItemStore

__all__ = ["ExportEngine", "ExportResult", "PersistenceResult", "RollbackResult"]

logger = logging.getLogger(__name__)

AnyItem = KeptItem | PendingItem | DismissedItem

_PERSISTENCE_WARNING = "Export succeeded but some items could not be saved"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class PersistenceResult:
    """Aggregated outcome of the persistence phase.

    Attributes:
        success: ``True`` if every step succeeded for every item.
        success_count: Item writes/deletes that succeeded.
        failed_count: Item writes/deletes that failed.
        failed_ids: Ids of the failed items, in attempt order.
        processed_pending_count: Pending items in the export set.
        processed_dismissed_count: Dismissed items in the export set.
        timestamp: The ``last_exported_at`` stamped on exported items.
        error: Set when a step could not run at all (e.g. unreadable store).
        previous_categories: Category each item had before a per-category
            export changed it.
    """

    timestamp: datetime
    success_count: int = 0
    failed_ids: list[str] = field(default_factory=list)
    processed_pending_count: int = 0
    processed_dismissed_count: int = 0
    error: str | None = None
    previous_categories: dict[str, str] = field(default_factory=dict)

    @property
    def failed_count(self) -> int:
        return len(self.failed_ids)

    @property
    def success(self) -> bool:
        return not self.failed_ids and self.error is None

    def record(self, item_id: str, ok: bool) -> None:
        if ok:
            self.success_count += 1
        else:
            self.failed_ids.append(item_id)


@dataclass
class ExportResult:
    """Outcome of a completed copy phase.

    Attributes:
        item_count: Number of items placed on the clipboard.
        text: The exported text.
        persistence: Persistence-phase outcome; ``None`` when persistence
            was skipped.
        category: The exported category for per-category exports.
    """

    item_count: int
    text: str
    persistence: PersistenceResult | None = None
    category: Category | None = None

    @property
    def warning(self) -> str | None:
        """User-facing warning when the copy worked but persistence did not."""
        if self.persistence is None or self.persistence.success:
            return None
        return _PERSISTENCE_WARNING


@dataclass
class RollbackResult:
    rollback_count: int = 0
    failed_ids: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.rollback_count > 0 and not self.failed_ids


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ExportEngine:
    """Run exports against an :class:`ItemStore`.

    Args:
        store: The item store.
        clipboard: Sink receiving the exported text.
        base_url: Item URL prefix used by the URL-bearing formats.
    """

    def __init__(
        self,
        store: ItemStore,
        clipboard: ClipboardSink,
        *,
        base_url: str = DEFAULT_ITEM_BASE_URL,
    ) -> None:
        self._store = store
        self._clipboard = clipboard
        self._base_url = base_url

    # ------------------------------------------------------------------
    # Page export
    # ------------------------------------------------------------------

    async def export_kept_and_pending(self, page_id: str) -> ExportResult:
        """Export the kept and pending items visible on *page_id*.

        Raises:
            EmptyExportError: The page set has no kept and no pending items.
            ClipboardError: The sink refused the text.
            StorageError: The page set could not be read.
        """
        with page_scope(page_id):
            logger.info("Export started", extra={"event": events.EXPORT_START})

            page_items = await self._store.get_for_page(page_id)
            kept = [i for i in page_items.values() if isinstance(i, KeptItem)]
            pending = [i for i in page_items.values() if isinstance(i, PendingItem)]
            dismissed = [i for i in page_items.values() if isinstance(i, DismissedItem)]

            exported: list[AnyItem] = [*kept, *pending]
            if not exported:
                logger.info("Nothing to export", extra={"event": events.EXPORT_EMPTY})
                raise EmptyExportError(f"page {page_id}")

            text = format_items(exported, ExportFormat.LIST, base_url=self._base_url)
            await self._copy(text)

            persistence = PersistenceResult(
                timestamp=datetime.now(UTC),
                processed_pending_count=len(pending),
                processed_dismissed_count=len(dismissed),
            )
            await self._mark_exported(exported, persistence)
            await self._delete_each(dismissed, persistence)
            await self._delete_other_pages(page_id, persistence)

            self._log_outcome(len(exported), persistence)
            return ExportResult(item_count=len(exported), text=text, persistence=persistence)

    # ------------------------------------------------------------------
    # Per-category export
    # ------------------------------------------------------------------

    async def export_by_category(
        self,
        category: Category | str,
        fmt: ExportFormat | str = ExportFormat.LIST,
        *,
        persist: bool = True,
    ) -> ExportResult:
        """Export every item of *category* across all pages in *fmt*.

        When *persist* is set, pending items become kept, dismissed items
        are deleted and kept items only get their export counters refreshed.

        Raises:
            EmptyExportError: No item has that category.
            ClipboardError: The sink refused the text.
            ValueError: Unknown category or format.
        """
        category = Category(category)
        fmt = ExportFormat(fmt)
        logger.info(
            "Export of category %s started (format=%s)",
            category,
            fmt,
            extra={"event": events.EXPORT_START},
        )

        items = [i for i in (await self._store.get_all()).values() if i.category == category]
        if not items:
            logger.info("Nothing to export", extra={"event": events.EXPORT_EMPTY})
            raise EmptyExportError(f"category {category}")

        text = format_items(items, fmt, base_url=self._base_url)
        await self._copy(text)

        result = ExportResult(item_count=len(items), text=text, category=category)
        if not persist:
            logger.info(
                "Exported %d item(s) without persisting",
                len(items),
                extra={"event": events.EXPORT_COMPLETE},
            )
            return result

        persistence = PersistenceResult(timestamp=datetime.now(UTC))
        if category is Category.DISMISSED:
            persistence.processed_dismissed_count = len(items)
            await self._delete_each(items, persistence)
        else:
            if category is Category.PENDING:
                persistence.processed_pending_count = len(items)
                persistence.previous_categories = {i.id: i.category for i in items}
            await self._mark_exported(items, persistence)

        result.persistence = persistence
        self._log_outcome(len(items), persistence)
        return result

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    async def rollback(
        self,
        items: Iterable[AnyItem],
        target_category: Category | str,
        *,
        page_id: str | None = None,
    ) -> RollbackResult:
        """Write snapshot *items* back under *target_category*.

        Each item gets its snapshot name, ``export_count`` and
        ``last_exported_at`` back.  Items deleted by the export are
        recreated.  The owner page comes from *page_id* or the snapshot.
        Never called automatically.
        """
        target = Category(target_category)
        result = RollbackResult()
        for item in items:
            try:
                ok = await self._store.save(
                    item.id,
                    {
                        "name": item.name,
                        "category": target,
                        "owner_page_id": page_id or getattr(item, "owner_page_id", None),
                        "previous_category": getattr(item, "previous_category", None),
                        "export_count": item.export_count,
                        "last_exported_at": item.last_exported_at,
                    },
                )
            except Exception:
                logger.exception("Rollback failed for %s", item.id)
                ok = False
            if ok:
                result.rollback_count += 1
            else:
                result.failed_ids.append(item.id)

        logger.info(
            "Rolled back %d item(s) to %s (%d failed)",
            result.rollback_count,
            target,
            len(result.failed_ids),
            extra={"event": events.EXPORT_ROLLBACK},
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _copy(self, text: str) -> None:
        try:
            outcome = await self._clipboard.write(text)
        except Exception as exc:
            logger.error(
                "Clipboard write raised: %s",
                exc,
                extra={"event": events.EXPORT_CLIPBOARD_FAILED},
            )
            raise ClipboardError(str(exc)) from exc
        if not outcome.success:
            logger.error(
                "Clipboard write failed: %s",
                outcome.error,
                extra={"event": events.EXPORT_CLIPBOARD_FAILED},
            )
            raise ClipboardError(outcome.error or "clipboard write failed")

    async def _mark_exported(self, items: Iterable[AnyItem], persistence: PersistenceResult) -> None:
        for item in items:
            changes: dict[str, object] = {
                "export_count": item.export_count + 1,
                "last_exported_at": persistence.timestamp,
            }
            if isinstance(item, PendingItem):
                changes.update(category=Category.KEPT, owner_page_id=None)
            patch = ItemPatch(**changes)
            try:
                ok = await self._store.update(item.id, patch)
            except Exception:
                logger.exception("Could not mark %s as exported", item.id)
                ok = False
            persistence.record(item.id, ok)

    async def _delete_each(self, items: Iterable[AnyItem], persistence: PersistenceResult) -> None:
        for item in items:
            try:
                ok = await self._store.delete(item.id)
            except Exception:
                logger.exception("Could not delete %s", item.id)
                ok = False
            persistence.record(item.id, ok)

    async def _delete_other_pages(self, page_id: str, persistence: PersistenceResult) -> None:
        try:
            all_items = await self._store.get_all()
        except StorageError as exc:
            logger.exception("Could not read items for cross-page cleanup")
            persistence.error = str(exc)
            return
        stale = [
            item
            for item in all_items.values()
            if isinstance(item, PendingItem | DismissedItem) and item.owner_page_id != page_id
        ]
        if stale:
            logger.debug("Removing %d item(s) left over from other pages", len(stale))
        await self._delete_each(stale, persistence)

    @staticmethod
    def _log_outcome(item_count: int, persistence: PersistenceResult) -> None:
        if persistence.success:
            logger.info(
                "Export finished: %d item(s) copied, %d store change(s)",
                item_count,
                persistence.success_count,
                extra={"event": events.EXPORT_COMPLETE},
            )
        else:
            logger.warning(
                "Export copied %d item(s) but %d store change(s) failed: %s",
                item_count,
                persistence.failed_count,
                ", ".join(persistence.failed_ids) or persistence.error,
                extra={"event": events.EXPORT_PARTIAL},
            )
