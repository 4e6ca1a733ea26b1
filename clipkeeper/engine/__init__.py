"""Export, reconciliation and item-command layer."""

from clipkeeper.engine.clipboard import (
    ClipboardResult,
    ClipboardSink,
    MemoryClipboard,
    StreamClipboard,
)
from clipkeeper.engine.commands import ItemCommands
from clipkeeper.engine.debounce import RenameDebouncer
from clipkeeper.engine.export import ExportEngine, ExportResult, PersistenceResult, RollbackResult
from clipkeeper.engine.formatter import ExportFormat, format_items
from clipkeeper.engine.reconcile import (
    BatchOutcome,
    FailedFetch,
    FetchBatchSummary,
    extract_candidates,
    fetch_candidates,
    filter_new_candidates,
)

__all__ = [
    "ClipboardResult",
    "ClipboardSink",
    "MemoryClipboard",
    "StreamClipboard",
    "ExportEngine",
    "ExportResult",
    "PersistenceResult",
    "RollbackResult",
    "ExportFormat",
    "format_items",
    "ItemCommands",
    "RenameDebouncer",
    "BatchOutcome",
    "FailedFetch",
    "FetchBatchSummary",
    "extract_candidates",
    "filter_new_candidates",
    "fetch_candidates",
]
