# tests/tracking/test_partitioning.py
from __future__ import annotations

from bisect import bisect_left

import pytest

from partitionkit.tracking.config import ScanConfig
from partitionkit.tracking.partitioning import (
    PartitionPlanner,
    calculate_worker_count,
    create_partition_plan,
    create_partitions,
    make_partition_id,
)
from partitionkit.tracking.types import DensityChunk, Partition, ScanResult


def _chunks(*rows):
    return [DensityChunk(lo, hi, n) for lo, hi, n in rows]


def _assert_covers(partitions, lo, hi):
    assert partitions[0].min_value == lo
    assert partitions[-1].max_value == hi
    for prev, nxt in zip(partitions, partitions[1:]):
        assert prev.max_value == nxt.min_value


def test_make_partition_id():
    assert make_partition_id(0) == "partition-0"
    assert make_partition_id(12) == "partition-12"


@pytest.mark.parametrize(
    "total, max_workers, min_rpw, expected",
    [
        (0, 10, 1000, 1),
        (1, 10, 1000, 1),
        (5000, 10, 1000, 5),
        (5001, 10, 1000, 6),
        (50_000, 10, 1000, 10),
    ],
)
def test_calculate_worker_count(total, max_workers, min_rpw, expected):
    assert calculate_worker_count(total, max_workers, min_rpw) == expected


def test_balanced_partitions_split_at_chunk_boundaries():
    chunks = _chunks((0, 10, 10), (10, 20, 10), (20, 30, 10), (30, 40, 10))
    parts = create_partitions(chunks, 2)

    assert parts == [
        Partition("partition-0", 0, 20, 20),
        Partition("partition-1", 20, 40, 20),
    ]


def test_never_exceeds_worker_count():
    chunks = _chunks(*[(i, i + 1, 1) for i in range(10)])
    parts = create_partitions(chunks, 3)

    assert [p.total_records for p in parts] == [4, 4, 2]
    _assert_covers(parts, 0, 10)
    assert [p.partition_id for p in parts] == ["partition-0", "partition-1", "partition-2"]


def test_last_partition_absorbs_trailing_empty_chunks():
    chunks = _chunks((0, 10, 5), (10, 20, 5), (20, 30, 0), (30, 40, 0))
    parts = create_partitions(chunks, 2)

    assert parts == [
        Partition("partition-0", 0, 10, 5),
        Partition("partition-1", 10, 40, 5),
    ]


def test_leading_empty_chunks_join_first_partition():
    chunks = _chunks((0, 10, 0), (10, 20, 6), (20, 30, 4))
    parts = create_partitions(chunks, 2)

    assert parts == [
        Partition("partition-0", 0, 20, 6),
        Partition("partition-1", 20, 30, 4),
    ]


def test_heavy_chunk_is_never_split():
    chunks = _chunks((0, 10, 100), (10, 20, 1))
    parts = create_partitions(chunks, 4)

    # Fewer partitions than workers is acceptable
    assert parts == [
        Partition("partition-0", 0, 10, 100),
        Partition("partition-1", 10, 20, 1),
    ]


def test_empty_map_yields_single_empty_partition():
    chunks = _chunks((0, 500, 0), (500, 1000, 0))
    assert create_partitions(chunks, 5) == [Partition("partition-0", 0, 1000, 0)]


def test_record_cap_truncates_plan():
    chunks = _chunks((0, 10, 25), (10, 20, 25), (20, 30, 25), (30, 40, 25))
    parts = create_partitions(chunks, 2, max_total_records=60)

    assert [p.total_records for p in parts] == [50, 10]
    assert parts[-1] == Partition("partition-1", 20, 30, 10)


def test_record_cap_at_chunk_boundary_closes_open_batch():
    chunks = _chunks((0, 10, 30), (10, 20, 30), (20, 30, 30))
    parts = create_partitions(chunks, 1, max_total_records=60)

    assert parts == [Partition("partition-0", 0, 20, 60)]


def test_record_cap_above_total_is_ignored():
    chunks = _chunks((0, 10, 5), (10, 20, 5))
    assert create_partitions(chunks, 2, max_total_records=1000) == create_partitions(chunks, 2)


def test_create_partitions_rejects_bad_input():
    with pytest.raises(ValueError):
        create_partitions([], 1)
    with pytest.raises(ValueError):
        create_partitions(_chunks((0, 1, 1)), 0)


def test_planner_reports_capped_total():
    chunks = _chunks((0, 10, 25), (10, 20, 25), (20, 30, 25), (30, 40, 25))
    cfg = ScanConfig(max_value=40, dense_zone_step=1, initial_step=10,
                     max_workers=10, min_records_per_worker=30, max_total_records=60)

    total, parts = PartitionPlanner(cfg).plan(chunks)

    assert total == 60
    assert len(parts) == 2


def test_planner_uses_min_records_per_worker():
    chunks = _chunks((0, 10, 1500), (10, 20, 1500), (20, 30, 1500))
    cfg = ScanConfig(max_value=30, dense_zone_step=1, initial_step=10)

    total, parts = PartitionPlanner(cfg).plan(chunks)

    assert total == 4500
    assert len(parts) == 3
    _assert_covers(parts, 0, 30)


class SortedValues:
    def __init__(self, values):
        self.values = sorted(values)

    def get_count(self, min_value, max_value):
        return bisect_left(self.values, max_value) - bisect_left(self.values, min_value)


def test_create_partition_plan_end_to_end():
    values = [i * 7 % 9000 for i in range(3000)]
    cfg = ScanConfig(
        max_value=10_000,
        dense_zone_threshold=2000,
        dense_zone_step=100,
        initial_step=1000,
        max_workers=4,
        min_records_per_worker=500,
        retry_delay=0.0,
    )

    result = create_partition_plan(SortedValues(values), cfg)

    assert result.total_records == 3000
    assert result.worker_count == len(result.partitions) <= 4
    assert sum(p.total_records for p in result.partitions) == 3000
    _assert_covers(result.partitions, 0, 10_000)
    assert sum(c.count for c in result.density_map) == 3000
    assert result.stats.api_calls > 0


def test_scan_result_round_trips_through_dict():
    values = [1, 2, 3, 4000]
    cfg = ScanConfig(max_value=5000, dense_zone_threshold=1000, dense_zone_step=100,
                     initial_step=1000, retry_delay=0.0)
    result = create_partition_plan(SortedValues(values), cfg)

    assert ScanResult.from_dict(result.to_dict()) == result
