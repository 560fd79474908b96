"""Continuation-pattern worker: process one page of a partition per message."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, Sequence

from setproctitle import setproctitle

from partitionkit.tracking.progress_tracker import PartitionProgressTracker
from partitionkit.tracking.types import Number, ScanResult

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "PageSource",
    "WorkItem",
    "PageOutcome",
    "PageResult",
    "work_items_for",
    "resume_work_item",
    "process_page",
    "drain_partition",
]

DEFAULT_PAGE_SIZE = 30


class PageSource(Protocol):
    def fetch_page(
        self, min_value: Number, max_value: Number, offset: int, limit: int
    ) -> Sequence[Any]: ...


@dataclass(frozen=True)
class WorkItem:
    """Message asking a worker to process the page at ``offset`` of a partition."""

    run_id: str
    partition_id: str
    min_value: Number
    max_value: Number
    offset: int = 0

    def at_offset(self, offset: int) -> "WorkItem":
        return replace(self, offset=offset)


class PageOutcome(str, Enum):
    ADVANCED = "advanced"
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    STALE = "stale"


@dataclass(frozen=True)
class PageResult:
    outcome: PageOutcome
    records: int = 0
    next_item: Optional[WorkItem] = None


def work_items_for(run_id: str, result: ScanResult) -> List[WorkItem]:
    """One initial message per planned partition."""
    return [
        WorkItem(run_id, p.partition_id, p.min_value, p.max_value, 0)
        for p in result.partitions
    ]


def resume_work_item(tracker: PartitionProgressTracker, item: WorkItem) -> Optional[WorkItem]:
    """
    Rebuild the message for a stalled partition from its stored offset.

    Returns None if the partition already completed.

    Raises:
        PartitionProgressNotFound: If the partition was never initialized
    """
    progress = tracker.get(item.run_id, item.partition_id)
    if progress.completed:
        return None
    return item.at_offset(progress.next_offset)


def process_page(
    tracker: PartitionProgressTracker,
    source: PageSource,
    item: WorkItem,
    handler: Callable[[Sequence[Any]], None],
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> PageResult:
    """
    Run one continuation step for a partition.

    The handler sees a page before its offset transition is committed, so a
    redelivered message may hand the same records over again; handlers must
    be idempotent (e.g. upserts).

    Args:
        tracker: Progress tracker arbitrating duplicate deliveries
        source: Page source for the partition's value range
        item: The delivered message
        handler: Consumer for the fetched records
        page_size: Records requested per page

    Returns:
        PageResult; ``next_item`` is the continuation message to enqueue,
        or None when nothing further should be sent for this partition
    """
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")

    run_id, partition_id = item.run_id, item.partition_id
    progress = tracker.initialize(run_id, partition_id)

    if progress.completed:
        logger.info("Partition %s/%s already completed; skipping", run_id, partition_id)
        return PageResult(PageOutcome.ALREADY_COMPLETED)

    if item.offset != progress.next_offset:
        logger.info(
            "Skipping stale message for %s/%s: offset %d, stored %d",
            run_id,
            partition_id,
            item.offset,
            progress.next_offset,
        )
        return PageResult(PageOutcome.STALE)

    records = list(source.fetch_page(item.min_value, item.max_value, item.offset, page_size))

    if not records:
        applied = tracker.complete(run_id, partition_id, item.offset)
        return PageResult(PageOutcome.COMPLETED if applied else PageOutcome.STALE)

    handler(records)
    new_offset = item.offset + len(records)

    if len(records) < page_size:
        # Partial page: last one in this partition
        applied = tracker.complete(run_id, partition_id, item.offset, end_offset=new_offset)
        outcome = PageOutcome.COMPLETED if applied else PageOutcome.STALE
        return PageResult(outcome, records=len(records))

    if not tracker.advance(run_id, partition_id, item.offset, new_offset):
        return PageResult(PageOutcome.STALE, records=len(records))

    return PageResult(PageOutcome.ADVANCED, records=len(records), next_item=item.at_offset(new_offset))


def drain_partition(
    tracker: PartitionProgressTracker,
    source: PageSource,
    item: WorkItem,
    handler: Callable[[Sequence[Any]], None],
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> int:
    """
    Process a partition page by page in this process until it completes.

    Returns:
        Number of records handed to ``handler``
    """
    setproctitle(f"pk:worker[{item.partition_id}]")

    total = 0
    pages = 0
    current: Optional[WorkItem] = item
    while current is not None:
        result = process_page(tracker, source, current, handler, page_size=page_size)
        total += result.records
        pages += 1
        current = result.next_item

    logger.info(
        "Drained %s/%s: %d records in %d pages",
        item.run_id,
        item.partition_id,
        total,
        pages,
    )
    return total
