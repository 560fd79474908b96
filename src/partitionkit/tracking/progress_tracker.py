"""Idempotent per-partition progress tracking for the continuation pattern."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..errors import PartitionProgressNotFound
from .progress_store import OffsetExpectation, ProgressChange, ProgressStore
from .types import PartitionProgress

logger = logging.getLogger(__name__)

__all__ = ["PartitionProgressTracker"]


class PartitionProgressTracker:
    """
    Tracks a monotonic page offset and completion flag per (run, partition).

    Every mutation is a compare-and-swap against the offset the caller
    believes is current. Duplicate or out-of-order continuation messages
    therefore observe ``False`` instead of corrupting progress; a rejected
    call is an expected outcome under at-least-once delivery, not an error.

    States: uninitialized -> active(offset=0) -> active(offset=k) -> completed.
    There is no transition out of completed.
    """

    def __init__(self, store: ProgressStore):
        """
        Initialize the tracker.

        Args:
            store: Backend arbitrating concurrent updates
        """
        self.store = store

    def initialize(self, run_id: str, partition_id: str) -> PartitionProgress:
        """
        Create progress at offset 0, or return the existing row unchanged.

        Args:
            run_id: Run identifier
            partition_id: Partition identifier

        Returns:
            The stored progress
        """
        return self.store.insert_if_absent(run_id, partition_id)

    def get(self, run_id: str, partition_id: str) -> PartitionProgress:
        """
        Get current progress.

        Raises:
            PartitionProgressNotFound: If the partition was never initialized
        """
        progress = self.store.fetch(run_id, partition_id)
        if progress is None:
            raise PartitionProgressNotFound(run_id, partition_id)
        return progress

    def advance(self, run_id: str, partition_id: str, current_offset: int, new_offset: int) -> bool:
        """
        Move the offset from ``current_offset`` to ``new_offset`` after a page.

        Applies only if the stored offset equals ``current_offset`` and the
        partition is not completed.

        Returns:
            True if the transition was applied, False if it was stale
        """
        if current_offset < 0 or new_offset <= current_offset:
            logger.info(
                "Offset update rejected for %s/%s: %d -> %d does not move forward",
                run_id,
                partition_id,
                current_offset,
                new_offset,
            )
            return False

        applied = self.store.conditional_update(
            run_id,
            partition_id,
            OffsetExpectation(next_offset=current_offset),
            ProgressChange(next_offset=new_offset),
        )
        if applied:
            logger.debug("Advanced %s/%s: %d -> %d", run_id, partition_id, current_offset, new_offset)
        else:
            logger.info(
                "Offset update rejected for %s/%s (%d -> %d): already applied, out of order or completed",
                run_id,
                partition_id,
                current_offset,
                new_offset,
            )
        return applied

    def complete(
        self,
        run_id: str,
        partition_id: str,
        final_offset: int,
        *,
        end_offset: Optional[int] = None,
    ) -> bool:
        """
        Mark the partition completed at ``final_offset``.

        Args:
            run_id: Run identifier
            partition_id: Partition identifier
            final_offset: Offset the caller believes is current
            end_offset: Where the last page ended; recorded atomically with
                completion so a partial final page needs one round trip

        Returns:
            True if marked completed, False if already completed or the
            offset did not match
        """
        if final_offset < 0 or (end_offset is not None and end_offset < final_offset):
            logger.info(
                "Completion rejected for %s/%s: invalid offsets %d -> %s",
                run_id,
                partition_id,
                final_offset,
                end_offset,
            )
            return False

        applied = self.store.conditional_update(
            run_id,
            partition_id,
            OffsetExpectation(next_offset=final_offset),
            ProgressChange(next_offset=end_offset, completed=True),
        )
        if applied:
            logger.info("Partition %s/%s completed at offset %d", run_id, partition_id,
                        final_offset if end_offset is None else end_offset)
        else:
            logger.info(
                "Completion rejected for %s/%s at offset %d: already completed or offset mismatch",
                run_id,
                partition_id,
                final_offset,
            )
        return applied

    def is_completed(self, run_id: str, partition_id: str) -> bool:
        """
        Whether the partition has been completed.

        Raises:
            PartitionProgressNotFound: If the partition was never initialized
        """
        return self.get(run_id, partition_id).completed

    def list_partitions(self, run_id: str) -> List[PartitionProgress]:
        """All tracked partitions of a run, for monitoring and resumption."""
        return self.store.list_run(run_id)
