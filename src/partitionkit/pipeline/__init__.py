"""Scan triggers, continuation worker, reporting and logging setup."""

from .scan import ScanService
from .worker import (
    PageOutcome,
    PageResult,
    WorkItem,
    drain_partition,
    process_page,
    resume_work_item,
    work_items_for,
)

__all__ = [
    "ScanService",
    "PageOutcome",
    "PageResult",
    "WorkItem",
    "drain_partition",
    "process_page",
    "resume_work_item",
    "work_items_for",
]
