"""Item id and URL conventions for Clipkeeper.

This module defines the **id contract** shared by every layer:

Item ids
--------
An item id is the numeric identifier BOOTH assigns to a listing, kept as an
opaque string (``"1234567"``).  The store never interprets it beyond
equality; only manual entry insists on the numeric form.

Item URLs
---------
BOOTH serves the same item under two URL shapes:

+--------------+------------------------------------------+
| Form         | Example                                  |
+==============+==========================================+
| Subdomain    | ``https://shop-name.booth.pm/items/123`` |
+--------------+------------------------------------------+
| Path         | ``https://booth.pm/ja/items/123``        |
+--------------+------------------------------------------+

:func:`item_url` always produces the canonical path form and
:func:`item_json_url` the JSON metadata endpoint next to it.

Typical usage::

    from clipkeeper.core.ids import extract_item_id, item_json_url

    extract_item_id("https://shop.booth.pm/items/123?foo=1")   # "123"
    item_json_url("https://shop.booth.pm/items/123")           # ".../ja/items/123.json"
"""

from __future__ import annotations

import logging
import re
from typing import Final
from urllib.parse import urlsplit, urlunsplit

__all__ = [
    "DEFAULT_ITEM_BASE_URL",
    "is_valid_item_id",
    "extract_item_id",
    "find_item_urls",
    "clean_url",
    "item_url",
    "item_json_url",
]

logger = logging.getLogger(__name__)

#: Canonical prefix for item pages.
DEFAULT_ITEM_BASE_URL: Final[str] = "https://booth.pm/ja/items"

#: Matches both the subdomain and the path URL forms; group 1 is the id.
_ITEM_URL_RE: Final[re.Pattern[str]] = re.compile(
    r"https?://(?:[\w-]+\.)?booth\.pm/(?:[\w-]+/)?items/(\d+)"
)

_ITEM_ID_RE: Final[re.Pattern[str]] = re.compile(r"^\d+$")


def is_valid_item_id(item_id: str) -> bool:
    """Return ``True`` if *item_id* is a non-empty string of digits."""
    return bool(_ITEM_ID_RE.match(item_id))


def extract_item_id(url: str) -> str | None:
    """Return the item id embedded in a BOOTH item URL, or ``None``."""
    match = _ITEM_URL_RE.search(url)
    return match.group(1) if match else None


def clean_url(url: str) -> str:
    """Strip the query string and fragment from *url*.

    Unparseable input is returned unchanged.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def find_item_urls(text: str) -> list[tuple[str, str]]:
    """Find every item URL in *text*.

    Returns:
        ``(item_id, url)`` pairs in order of first appearance, one per
        distinct id.  Each URL ends at the item id.
    """
    found: dict[str, str] = {}
    for match in _ITEM_URL_RE.finditer(text):
        item_id = match.group(1)
        if item_id not in found:
            found[item_id] = clean_url(match.group(0))
    return list(found.items())


def item_url(item_id: str, base_url: str = DEFAULT_ITEM_BASE_URL) -> str:
    """Return the canonical page URL for *item_id*."""
    return f"{base_url.rstrip('/')}/{item_id}"


def item_json_url(url: str, base_url: str = DEFAULT_ITEM_BASE_URL) -> str:
    """Return the JSON metadata endpoint for an item URL.

    Any recognised item URL maps to ``<base_url>/<id>.json``.  Unrecognised
    URLs get ``.json`` appended (minus a trailing slash) so that callers can
    still point the client at a custom endpoint.
    """
    item_id = extract_item_id(url)
    if item_id is None:
        if url.endswith(".json"):
            return url
        return url.rstrip("/") + ".json"
    return f"{item_url(item_id, base_url)}.json"
