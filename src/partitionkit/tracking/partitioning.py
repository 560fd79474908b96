"""Balanced partition planning over a density map."""

from __future__ import annotations

import logging
import math
from typing import List, Sequence, Tuple

from .config import ScanConfig
from .types import DensityChunk, Partition, ScanResult

logger = logging.getLogger(__name__)

__all__ = [
    "make_partition_id",
    "calculate_worker_count",
    "create_partitions",
    "PartitionPlanner",
    "create_partition_plan",
]


def make_partition_id(index: int) -> str:
    """
    Create the identifier for the partition at a given position.

    Examples:
        >>> make_partition_id(0)
        'partition-0'
    """
    return f"partition-{index}"


def calculate_worker_count(
    total_records: int,
    max_workers: int,
    min_records_per_worker: int,
) -> int:
    """
    Number of workers worth spawning for a data volume.

    One worker is added per ``min_records_per_worker`` records, capped at
    ``max_workers``. An empty scan still gets a single worker so the plan
    covers the whole range.
    """
    if total_records <= 0:
        return 1
    workers_needed = math.ceil(total_records / min_records_per_worker)
    return max(1, min(workers_needed, max_workers))


def create_partitions(
    density_map: Sequence[DensityChunk],
    worker_count: int,
    *,
    max_total_records: int = 0,
) -> List[Partition]:
    """
    Partition a density map into contiguous, approximately equal buckets.

    Chunks are accumulated left to right; a partition is closed at a chunk
    boundary once its running total reaches ``ceil(total / worker_count)``.
    The last partition absorbs the remainder, including any trailing empty
    chunks, so no partition is empty unless the whole map is.

    Args:
        density_map: Sorted, contiguous density chunks
        worker_count: Maximum number of partitions to produce
        max_total_records: Stop once this many records are planned (0 = unlimited)

    Returns:
        Ordered list of partitions

    Example:
        >>> chunks = [DensityChunk(0, 10, 5), DensityChunk(10, 20, 5)]
        >>> [p.total_records for p in create_partitions(chunks, 2)]
        [5, 5]
    """
    if not density_map:
        raise ValueError("density_map must contain at least one chunk")
    if worker_count < 1:
        raise ValueError(f"worker_count must be >= 1, got {worker_count}")

    range_min = density_map[0].min_value
    range_max = density_map[-1].max_value
    total = sum(chunk.count for chunk in density_map)

    if total == 0:
        return [Partition(make_partition_id(0), range_min, range_max, 0)]

    capped = max_total_records > 0 and total > max_total_records
    effective_total = max_total_records if capped else total
    if capped:
        logger.info(
            "Applying max_total_records cap: %d -> %d records",
            total,
            effective_total,
        )

    target = math.ceil(effective_total / worker_count)
    logger.debug("Creating partitions: target=%d per worker, total=%d", target, effective_total)

    partitions: List[Partition] = []
    batch_sum = 0
    batch_start = range_min
    cumulative = 0
    last_index = len(density_map) - 1

    for i, chunk in enumerate(density_map):
        if capped and cumulative + chunk.count > effective_total:
            allowance = effective_total - cumulative
            if allowance > 0:
                batch_sum += allowance
                cumulative += allowance
                partitions.append(Partition(
                    make_partition_id(len(partitions)), batch_start, chunk.max_value, batch_sum
                ))
            elif batch_sum > 0:
                partitions.append(Partition(
                    make_partition_id(len(partitions)), batch_start, chunk.min_value, batch_sum
                ))
            logger.info(
                "Partitioning stopped at record cap: %d partitions, %d records",
                len(partitions),
                cumulative,
            )
            break

        batch_sum += chunk.count
        cumulative += chunk.count

        hit_target = batch_sum >= target
        has_remaining_workers = len(partitions) < worker_count - 1
        has_remaining_records = cumulative < effective_total

        if i == last_index or (hit_target and has_remaining_workers and has_remaining_records):
            partitions.append(Partition(
                make_partition_id(len(partitions)), batch_start, chunk.max_value, batch_sum
            ))
            logger.debug(
                "Partition created: %s [%s, %s) %d records",
                partitions[-1].partition_id,
                batch_start,
                chunk.max_value,
                batch_sum,
            )
            batch_sum = 0
            batch_start = chunk.max_value

    return partitions


class PartitionPlanner:
    """Turns a density map into a worker plan for one scan configuration."""

    def __init__(self, config: ScanConfig):
        self.config = config

    def plan(self, density_map: Sequence[DensityChunk]) -> Tuple[int, List[Partition]]:
        """
        Plan partitions for a density map.

        Returns:
            (total_records, partitions) where total_records is the sum of the
            planned partitions (the capped total when max_total_records applies)
        """
        cfg = self.config
        total = sum(chunk.count for chunk in density_map)
        if cfg.max_total_records > 0:
            total = min(total, cfg.max_total_records)

        worker_count = calculate_worker_count(total, cfg.max_workers, cfg.min_records_per_worker)
        logger.info("Worker count calculated: %d (max %d)", worker_count, cfg.max_workers)

        partitions = create_partitions(
            density_map,
            worker_count,
            max_total_records=cfg.max_total_records,
        )
        if len(partitions) != worker_count:
            logger.info(
                "Partition count differs from desired: actual=%d desired=%d",
                len(partitions),
                worker_count,
            )
        return sum(p.total_records for p in partitions), partitions


def create_partition_plan(source, config: ScanConfig, *, show_progress: bool = False) -> ScanResult:
    """
    Scan a count source and plan balanced partitions in one call.

    Args:
        source: Count source implementing ``get_count(min_value, max_value)``
        config: Scan configuration
        show_progress: Display a progress bar while scanning

    Returns:
        ScanResult with the density map, partitions and scan statistics

    Raises:
        ScanError: The scan failed; no plan is available for this run
    """
    from .density_scan import DensityScanner

    density_map, stats = DensityScanner(source, config, show_progress=show_progress).scan()
    total, partitions = PartitionPlanner(config).plan(density_map)

    return ScanResult(
        total_records=total,
        worker_count=len(partitions),
        stats=stats,
        density_map=density_map,
        partitions=partitions,
    )
