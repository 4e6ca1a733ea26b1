"""Item commands issued by the presentation layer.

Every command is a thin, validated wrapper over one store write.  The return
value is the store's: ``False`` means the change was not persisted.
"""

from __future__ import annotations

import logging

from clipkeeper.core.exceptions import ItemAlreadyExistsError, ItemValidationError
from clipkeeper.core.ids import is_valid_item_id
from clipkeeper.core.models import Category, DismissedItem, ItemPatch
from clipkeeper.storage.repository import ItemStore

__all__ = ["ItemCommands"]

logger = logging.getLogger(__name__)


class ItemCommands:
    """Exclude, restore, rename and manually add items.

    Args:
        store: The item store.
    """

    def __init__(self, store: ItemStore) -> None:
        self._store = store

    async def exclude(self, item_id: str, page_id: str) -> bool:
        """Dismiss *item_id* on *page_id*, remembering its current category.

        Returns ``False`` if the item does not exist.  Dismissing an already
        dismissed item is a successful no-op.
        """
        item = await self._store.get(item_id)
        if item is None:
            logger.warning("Cannot exclude unknown item %s", item_id)
            return False
        if isinstance(item, DismissedItem):
            return True
        return await self._store.update(
            item_id,
            ItemPatch(
                category=Category.DISMISSED,
                previous_category=Category(item.category),
                owner_page_id=page_id,
            ),
        )

    async def restore(self, item_id: str, page_id: str) -> bool:
        """Send a dismissed item back to the category it was dismissed from.

        The owner page is set to *page_id* only when restoring to pending.
        Restoring an item that is not dismissed is a successful no-op.
        """
        item = await self._store.get(item_id)
        if item is None:
            logger.warning("Cannot restore unknown item %s", item_id)
            return False
        if not isinstance(item, DismissedItem):
            return True
        target = Category(item.previous_category)
        return await self._store.update(
            item_id,
            ItemPatch(
                category=target,
                previous_category=None,
                owner_page_id=page_id if target is Category.PENDING else None,
            ),
        )

    async def rename(self, item_id: str, name: str) -> bool:
        """Set the display name of an existing item."""
        if not await self._store.has(item_id):
            logger.warning("Cannot rename unknown item %s", item_id)
            return False
        return await self._store.update(item_id, ItemPatch(name=name))

    async def manual_add(self, item_id: str, name: str, page_id: str) -> bool:
        """Add a pending item the user typed in by hand.

        Input is trimmed and validated before the store is touched.

        Raises:
            ItemValidationError: Empty id, empty name, or a non-numeric id.
            ItemAlreadyExistsError: The id is already stored.
        """
        item_id = item_id.strip()
        name = name.strip()
        if not item_id:
            raise ItemValidationError("Item id is required")
        if not name:
            raise ItemValidationError("Item name is required", item_id)
        if not is_valid_item_id(item_id):
            raise ItemValidationError("Item id must contain digits only", item_id)

        if await self._store.contains(item_id):
            raise ItemAlreadyExistsError(item_id)

        saved = await self._store.save(
            item_id,
            {"name": name, "category": Category.PENDING, "owner_page_id": page_id},
        )
        if saved:
            logger.info("Manually added item %s: %s", item_id, name)
        return saved
