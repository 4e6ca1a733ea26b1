"""Candidate reconciliation: discover → dedup → fetch → store.

This module threads the item references found on a page through the
following stages:

1. **Discover** — :func:`extract_candidates` pulls item URLs out of page
   text (both URL shapes), drops query strings and the page's own id.
2. **Dedup** — :func:`filter_new_candidates` drops anything the store
   already holds under any category.  It never writes.
3. **Fetch** — :func:`fetch_candidates` resolves each remaining candidate's
   name through the :class:`~clipkeeper.fetch.policy.ItemFetchPolicy` and
   stores it as a pending item owned by the page.  Candidates whose name
   cannot be resolved are returned in the summary's manual-entry queue.

Per-candidate errors are isolated so a single bad reference cannot abort a
batch.  Candidates are processed one at a time; a candidate that appears in
the store while the batch runs is skipped rather than overwritten.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from clipkeeper.core import events
from clipkeeper.core.ids import find_item_urls
from clipkeeper.core.logging_config import page_scope
from clipkeeper.core.models import Candidate, Category
from clipkeeper.fetch.policy import ItemFetchPolicy
from clipkeeper.storage.repository import ItemStore

__all__ = [
    "BatchOutcome",
    "FailedFetch",
    "FetchBatchSummary",
    "extract_candidates",
    "filter_new_candidates",
    "fetch_candidates",
]

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


# ---------------------------------------------------------------------------
# Summary data classes
# ---------------------------------------------------------------------------


class BatchOutcome(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"
    NOTHING = "nothing"


@dataclass(frozen=True)
class FailedFetch:
    """A candidate queued for manual name entry."""

    id: str
    url: str
    error: str


@dataclass
class FetchBatchSummary:
    """Counters for one fetch batch.

    Attributes:
        total: Candidates handed to the batch.
        saved: Ids stored as pending items.
        skipped: Ids already present in the store when their turn came.
        failed: Candidates whose name could not be resolved or stored.
    """

    total: int = 0
    saved: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[FailedFetch] = field(default_factory=list)

    @property
    def outcome(self) -> BatchOutcome:
        if self.saved and not self.failed:
            return BatchOutcome.SUCCESS
        if self.saved:
            return BatchOutcome.PARTIAL
        if self.failed:
            return BatchOutcome.FAILURE
        return BatchOutcome.NOTHING


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def extract_candidates(text: str, page_id: str | None = None) -> list[Candidate]:
    """Return one candidate per distinct item URL in *text*, in page order.

    The page's own id is excluded so an item never lists itself.
    """
    return [
        Candidate(id=item_id, url=url)
        for item_id, url in find_item_urls(text)
        if item_id != page_id
    ]


async def filter_new_candidates(
    store: ItemStore,
    candidates: Iterable[Candidate],
    page_id: str | None = None,
) -> list[Candidate]:
    """Drop candidates that are already stored, repeated, or the page itself.

    A stored record counts even when it cannot be parsed.
    """
    seen: set[str] = set()
    fresh: list[Candidate] = []
    for candidate in candidates:
        if candidate.id == page_id or candidate.id in seen:
            continue
        seen.add(candidate.id)
        if await store.contains(candidate.id):
            logger.debug(
                "Candidate %s already stored",
                candidate.id,
                extra={"event": events.CANDIDATE_DUPLICATE},
            )
            continue
        fresh.append(candidate)
    return fresh


async def fetch_candidates(
    store: ItemStore,
    policy: ItemFetchPolicy,
    candidates: Iterable[Candidate],
    page_id: str,
    *,
    on_progress: ProgressCallback | None = None,
) -> FetchBatchSummary:
    """Resolve and store each candidate as a pending item owned by *page_id*.

    Args:
        store: The item store.
        policy: Fetch policy used to resolve names.
        candidates: Candidates to process, in order.
        page_id: The page the new items belong to.
        on_progress: Optional ``(done, total, item_id)`` callback invoked
            before each candidate is fetched.

    Returns:
        A :class:`FetchBatchSummary`; ``summary.failed`` is the manual-entry
        queue.
    """
    pending = list(candidates)
    summary = FetchBatchSummary(total=len(pending))

    with page_scope(page_id):
        logger.info(
            "Fetching %d candidate(s)",
            summary.total,
            extra={"event": events.FETCH_BATCH_START},
        )

        fetched_any = False
        for index, candidate in enumerate(pending):
            try:
                if await store.contains(candidate.id):
                    logger.debug("Item %s already exists, skipping", candidate.id)
                    summary.skipped.append(candidate.id)
                    continue

                if fetched_any:
                    await asyncio.sleep(policy.item_delay)
                fetched_any = True

                if on_progress is not None:
                    on_progress(index, summary.total, candidate.id)

                result = await policy.fetch(candidate.url)
                if not result.success:
                    _record_failure(summary, candidate, result.error or "Unknown error")
                    continue

                saved = await store.save(
                    candidate.id,
                    {
                        "name": result.name,
                        "category": Category.PENDING,
                        "owner_page_id": page_id,
                    },
                )
                if not saved:
                    _record_failure(summary, candidate, "Could not save item")
                    continue

                summary.saved.append(candidate.id)
                logger.info(
                    "Item %s stored: %s",
                    candidate.id,
                    result.name,
                    extra={"event": events.FETCH_ITEM_OK},
                )
            except Exception as exc:
                logger.error("Error processing candidate %s", candidate.id, exc_info=True)
                _record_failure(summary, candidate, str(exc))

        logger.info(
            "Fetch batch %s: %d saved, %d skipped, %d failed",
            summary.outcome,
            len(summary.saved),
            len(summary.skipped),
            len(summary.failed),
            extra={"event": events.FETCH_BATCH_DONE},
        )
    return summary


def _record_failure(summary: FetchBatchSummary, candidate: Candidate, error: str) -> None:
    logger.warning(
        "Could not resolve item %s: %s",
        candidate.id,
        error,
        extra={"event": events.FETCH_ITEM_FAILED},
    )
    summary.failed.append(FailedFetch(id=candidate.id, url=candidate.url, error=error))
