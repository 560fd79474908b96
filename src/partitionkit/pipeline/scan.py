"""Scan triggers: run or preview a density scan for a feed and record the result."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from partitionkit.errors import ScanError
from partitionkit.pipeline.report import log_scan_summary
from partitionkit.tracking.config import ScanConfig
from partitionkit.tracking.density_scan import CountSource
from partitionkit.tracking.partitioning import create_partition_plan
from partitionkit.tracking.scan_history import (
    SCAN_TYPE_PREVIEW,
    SCAN_TYPE_RUN,
    InMemoryScanHistoryStore,
    ScanHistory,
    ScanHistoryEntry,
    ScanHistoryStore,
)
from partitionkit.tracking.types import ScanResult

logger = logging.getLogger(__name__)

__all__ = ["ScanService"]


class ScanService:
    """
    Collaborator-facing entry point for the scheduler.

    Runs the scanner and planner synchronously to completion and records the
    result per (feed, scan type). A failed scan records nothing and
    propagates ScanError: the caller must not dispatch work for that run.
    """

    def __init__(
        self,
        sources: Mapping[str, CountSource],
        history: Optional[ScanHistoryStore] = None,
        *,
        show_progress: bool = False,
    ):
        """
        Args:
            sources: Count source per feed id
            history: Where results are recorded (in-memory if omitted)
            show_progress: Display a progress bar while scanning
        """
        self.sources = dict(sources)
        self.history = history if history is not None else InMemoryScanHistoryStore()
        self.show_progress = show_progress

    def _source(self, feed: str) -> CountSource:
        try:
            return self.sources[feed]
        except KeyError:
            raise ValueError(f"Unknown feed: {feed!r}") from None

    def run_scan(self, feed: str, config: Optional[ScanConfig] = None) -> ScanResult:
        """Full scan used to plan a run."""
        return self._scan(feed, SCAN_TYPE_RUN, config or ScanConfig())

    def preview_scan(self, feed: str, **overrides: Any) -> ScanResult:
        """Same algorithm with the cheaper preview configuration."""
        return self._scan(feed, SCAN_TYPE_PREVIEW, ScanConfig.preview(**overrides))

    def get_scan_history(self, feed: str) -> ScanHistory:
        """Latest run and preview results for a feed (either may be None)."""
        return self.history.history(feed)

    def _scan(self, feed: str, scan_type: str, config: ScanConfig) -> ScanResult:
        source = self._source(feed)
        started = datetime.now(timezone.utc)
        logger.info("Starting %s scan for feed %s", scan_type, feed)

        try:
            result = create_partition_plan(source, config, show_progress=self.show_progress)
        except ScanError:
            logger.error("%s scan failed for feed %s; no plan available", scan_type, feed)
            raise

        self.history.record(ScanHistoryEntry(
            feed=feed,
            scan_type=scan_type,
            result=result,
            config=config.to_dict(),
            scanned_at=started,
        ))
        log_scan_summary(
            feed=feed,
            scan_type=scan_type,
            config=config,
            result=result,
            start_time=started,
        )
        return result
