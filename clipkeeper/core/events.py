"""Structured log event name constants for Clipkeeper.

Every key transition emits a log record with an ``event`` field (passed via
``extra={"event": events.X}``).  In ``LOG_FORMAT=json`` mode the value
surfaces as ``extra.event``; in text mode the message is self-describing.

Usage example::

    import logging
    from clipkeeper.core import events

    logger = logging.getLogger(__name__)

    logger.info("Export started", extra={"event": events.EXPORT_START})
"""

from __future__ import annotations

__all__ = [
    # Store
    "ITEM_SAVED",
    "ITEM_UPDATED",
    "ITEM_DELETED",
    "STORE_WRITE_FAILED",
    "HISTORY_APPENDED",
    # Export
    "EXPORT_START",
    "EXPORT_EMPTY",
    "EXPORT_CLIPBOARD_FAILED",
    "EXPORT_COMPLETE",
    "EXPORT_PARTIAL",
    "EXPORT_ROLLBACK",
    # Fetch
    "FETCH_BATCH_START",
    "FETCH_BATCH_DONE",
    "FETCH_ITEM_OK",
    "FETCH_ITEM_FAILED",
    "FETCH_FALLBACK",
    "FETCH_FALLBACK_TIMEOUT",
    "CANDIDATE_DUPLICATE",
]

# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

#: An item was created or replaced through :meth:`ItemStore.save`.
ITEM_SAVED: str = "ITEM_SAVED"

#: An item was merged through :meth:`ItemStore.update`.
ITEM_UPDATED: str = "ITEM_UPDATED"

#: An item was removed from the store.
ITEM_DELETED: str = "ITEM_DELETED"

#: The backend rejected a write; the write method returned ``False``.
STORE_WRITE_FAILED: str = "STORE_WRITE_FAILED"

#: A history record was appended (or replaced) for a newly kept item.
HISTORY_APPENDED: str = "HISTORY_APPENDED"

# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

#: Emitted once at the start of every export.
EXPORT_START: str = "EXPORT_START"

#: Export aborted because there was nothing to export.
EXPORT_EMPTY: str = "EXPORT_EMPTY"

#: Export aborted because the clipboard sink refused the text.
EXPORT_CLIPBOARD_FAILED: str = "EXPORT_CLIPBOARD_FAILED"

#: Export copied and every persistence step succeeded.
EXPORT_COMPLETE: str = "EXPORT_COMPLETE"

#: Export copied but at least one persistence step failed.
EXPORT_PARTIAL: str = "EXPORT_PARTIAL"

#: A user-invoked rollback ran.
EXPORT_ROLLBACK: str = "EXPORT_ROLLBACK"

# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------

#: A batch of candidates started fetching.
FETCH_BATCH_START: str = "FETCH_BATCH_START"

#: A fetch batch finished; the summary is in the message.
FETCH_BATCH_DONE: str = "FETCH_BATCH_DONE"

#: An item name was resolved and the pending item stored.
FETCH_ITEM_OK: str = "FETCH_ITEM_OK"

#: An item name could not be resolved; queued for manual entry.
FETCH_ITEM_FAILED: str = "FETCH_ITEM_FAILED"

#: The direct request failed transiently; the fallback fetcher is used.
FETCH_FALLBACK: str = "FETCH_FALLBACK"

#: The fallback request did not settle within its timeout.
FETCH_FALLBACK_TIMEOUT: str = "FETCH_FALLBACK_TIMEOUT"

#: A discovered candidate was already stored and dropped.
CANDIDATE_DUPLICATE: str = "CANDIDATE_DUPLICATE"
