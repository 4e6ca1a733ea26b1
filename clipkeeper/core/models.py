"""Clipkeeper core domain models.

This module defines the tagged-variant :data:`Item` type and every related
record shared across the storage, fetch and export layers.

An item is exactly one of :class:`KeptItem`, :class:`PendingItem` or
:class:`DismissedItem`.  Each variant only carries the fields that are
meaningful for its category, so the invariants

* owner page present **iff** the item is pending or dismissed, and
* previous category present **iff** the item is dismissed

hold by construction.  All variants are frozen and forbid extra fields.

Typical usage::

    from clipkeeper.core.models import Category, make_item

    item = make_item("12345", name="Hair accessory", owner_page_id="999")
    assert item.category == Category.PENDING
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from clipkeeper.core.exceptions import ItemValidationError

__all__ = [
    "Category",
    "KeptItem",
    "PendingItem",
    "DismissedItem",
    "Item",
    "ItemPatch",
    "HistoryEntry",
    "Candidate",
    "make_item",
    "parse_item",
    "dump_item",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Category(StrEnum):
    """The three mutually exclusive item categories.

    Values serialise as plain strings, which keeps the persisted JSON free of
    enum plumbing.
    """

    KEPT = "kept"
    PENDING = "pending"
    DISMISSED = "dismissed"


#: Categories whose items are scoped to the page that created them.
PAGE_SCOPED: frozenset[Category] = frozenset({Category.PENDING, Category.DISMISSED})


# ---------------------------------------------------------------------------
# Item variants
# ---------------------------------------------------------------------------


class _ItemBase(BaseModel):
    """Fields shared by every item variant.

    Attributes:
        id: Opaque, unique, immutable item identifier.
        name: Display name; may be empty until the user fills it in.
        export_count: Number of exports that included this item.
        last_exported_at: Timestamp of the most recent export, if any.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    id: str = Field(..., min_length=1, description="Opaque item identifier.")
    name: str = Field(default="", description="Display name.")
    export_count: int = Field(default=0, ge=0, description="Times exported.")
    last_exported_at: datetime | None = Field(
        default=None,
        description="Most recent export timestamp; None if never exported.",
    )

    @property
    def display_name(self) -> str:
        """Name used in exports; blank names fall back to ``Item <id>``."""
        return self.name or f"Item {self.id}"


class KeptItem(_ItemBase):
    """An item the user committed to; visible on every page."""

    category: Literal["kept"] = "kept"


class PendingItem(_ItemBase):
    """A discovered or manually added item awaiting export.

    Attributes:
        owner_page_id: The page that created the item; the item is only
            visible while that page is active.
    """

    category: Literal["pending"] = "pending"
    owner_page_id: str = Field(..., min_length=1)


class DismissedItem(_ItemBase):
    """An item explicitly removed from consideration on one page.

    Attributes:
        owner_page_id: The page the dismissal applies to.
        previous_category: Where a restore sends the item back to.
    """

    category: Literal["dismissed"] = "dismissed"
    owner_page_id: str = Field(..., min_length=1)
    previous_category: Literal["kept", "pending"] = "pending"


Item = Annotated[KeptItem | PendingItem | DismissedItem, Field(discriminator="category")]

_ITEM_ADAPTER: TypeAdapter[KeptItem | PendingItem | DismissedItem] = TypeAdapter(Item)


# ---------------------------------------------------------------------------
# Constructors / (de)serialisation
# ---------------------------------------------------------------------------


def make_item(
    item_id: str,
    *,
    name: str = "",
    category: Category | str = Category.PENDING,
    owner_page_id: str | None = None,
    previous_category: Category | str | None = None,
    export_count: int = 0,
    last_exported_at: datetime | None = None,
) -> KeptItem | PendingItem | DismissedItem:
    """Build the variant for *category*, applying the storage defaults.

    Fields that the target category does not carry are dropped rather than
    rejected: an owner page is discarded for kept items and a previous
    category for anything but dismissed items.  A dismissed item without a
    previous category defaults to ``pending``.

    Raises:
        ItemValidationError: If the result would violate an invariant, e.g.
            a pending or dismissed item without an owner page.
    """
    try:
        cat = Category(category)
    except ValueError as exc:
        raise ItemValidationError(f"Unknown category {category!r}", item_id) from exc

    common: dict[str, Any] = {
        "id": item_id,
        "name": name,
        "export_count": export_count,
        "last_exported_at": last_exported_at,
    }
    if cat in PAGE_SCOPED and not owner_page_id:
        raise ItemValidationError(
            f"A {cat} item needs an owner page id", item_id
        )

    try:
        if cat is Category.KEPT:
            return KeptItem(**common)
        if cat is Category.PENDING:
            return PendingItem(**common, owner_page_id=owner_page_id)
        previous = Category(previous_category) if previous_category else Category.PENDING
        if previous is Category.DISMISSED:
            previous = Category.PENDING
        return DismissedItem(
            **common,
            owner_page_id=owner_page_id,
            previous_category=previous.value,
        )
    except (ValidationError, ValueError) as exc:
        raise ItemValidationError(f"Invalid item {item_id!r}: {exc}", item_id) from exc


def parse_item(record: dict[str, Any]) -> KeptItem | PendingItem | DismissedItem:
    """Validate a persisted record into its item variant.

    Raises:
        pydantic.ValidationError: If the record is malformed.
    """
    return _ITEM_ADAPTER.validate_python(record)


def dump_item(item: KeptItem | PendingItem | DismissedItem) -> dict[str, Any]:
    """Serialise *item* for storage; optional fields are omitted, not null."""
    return item.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# Partial update
# ---------------------------------------------------------------------------


class ItemPatch(BaseModel):
    """A partial item update.

    Only the fields explicitly set (see ``model_fields_set``) are applied,
    which lets callers tell "leave unchanged" apart from "clear" (``None``).
    """

    model_config = {"extra": "forbid"}

    name: str | None = None
    category: Category | None = None
    owner_page_id: str | None = None
    previous_category: Category | None = None
    export_count: int | None = Field(default=None, ge=0)
    last_exported_at: datetime | None = None

    def has(self, field: str) -> bool:
        """Return ``True`` if *field* was explicitly given."""
        return field in self.model_fields_set


# ---------------------------------------------------------------------------
# History log
# ---------------------------------------------------------------------------


class HistoryEntry(BaseModel):
    """One record of the append-only history log.

    A record is written every time an item becomes kept.  The field names
    follow the download-history format shared with the download loggers.

    Attributes:
        title: Item display name at the time it was kept.
        id: Item id.
        filename: Downloaded file name; empty for item-management entries.
        time: ``YYYY-MM-DD HH:MM:SS`` timestamp (UTC).
        url: Canonical item URL.
        free: Whether the item is free.
        registered: Whether the item has been registered with an external tool.
    """

    title: str = ""
    id: str = Field(..., min_length=1)
    filename: str = ""
    time: str
    url: str
    free: bool = True
    registered: bool = False


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


class Candidate(BaseModel):
    """An item reference found on a page, not yet stored.

    Attributes:
        id: Item id parsed from the URL.
        url: Cleaned item URL (no query string or fragment).
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)

    @field_validator("url", mode="before")
    @classmethod
    def _url_non_blank(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            raise ValueError("url must not be blank")
        return v
