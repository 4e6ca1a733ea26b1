"""Plain-text export formatting.

Converts a sequence of items into the text placed on the clipboard.

Formats
-------
``list``      One display name per line; blank names render as ``Item <id>``.
``urls``      One canonical item URL per line.
``detailed``  ``<name> - <url>`` per line; blank names render as ``Unnamed``.
``csv``       ``Name,URL,Category`` header, every field double-quoted with
              embedded quotes doubled.
``json``      Pretty-printed JSON array of the stored item records.

Typical usage::

    from clipkeeper.engine.formatter import ExportFormat, format_items

    text = format_items(items, ExportFormat.CSV)
"""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Sequence
from enum import StrEnum

from clipkeeper.core.ids import DEFAULT_ITEM_BASE_URL, item_url
from clipkeeper.core.models import DismissedItem, KeptItem, PendingItem, dump_item

__all__ = ["ExportFormat", "format_items"]

logger = logging.getLogger(__name__)

_CSV_HEADER = "Name,URL,Category"


class ExportFormat(StrEnum):
    LIST = "list"
    URLS = "urls"
    DETAILED = "detailed"
    CSV = "csv"
    JSON = "json"


def _to_csv(items: Sequence[KeptItem | PendingItem | DismissedItem], base_url: str) -> str:
    buffer = io.StringIO()
    buffer.write(_CSV_HEADER + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows((item.name, item_url(item.id, base_url), item.category) for item in items)
    # No newline after the last row.
    return buffer.getvalue()[:-1]


def format_items(
    items: Sequence[KeptItem | PendingItem | DismissedItem],
    fmt: ExportFormat | str = ExportFormat.LIST,
    *,
    base_url: str = DEFAULT_ITEM_BASE_URL,
) -> str:
    """Render *items* in *fmt*, preserving their order.

    Returns an empty string for an empty sequence.

    Raises:
        ValueError: If *fmt* is not a known format.
    """
    fmt = ExportFormat(fmt)
    if not items:
        return ""

    if fmt is ExportFormat.LIST:
        return "\n".join(item.display_name for item in items)

    if fmt is ExportFormat.URLS:
        return "\n".join(item_url(item.id, base_url) for item in items)

    if fmt is ExportFormat.DETAILED:
        return "\n".join(
            f"{item.name or 'Unnamed'} - {item_url(item.id, base_url)}" for item in items
        )

    if fmt is ExportFormat.CSV:
        return _to_csv(items, base_url)

    return json.dumps([dump_item(item) for item in items], indent=2, ensure_ascii=False)
