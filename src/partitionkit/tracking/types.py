"""Shared types for density scanning, partition planning and progress tracking."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Union

__all__ = [
    "Number",
    "ScanMode",
    "DensityChunk",
    "Partition",
    "ScanStats",
    "ScanResult",
    "PartitionProgress",
]

Number = Union[int, float]


class ScanMode(str, Enum):
    """How the density scanner treats saturated probes."""

    SINGLE_PASS = "single-pass"
    TWO_PASS = "two-pass"


@dataclass(frozen=True)
class DensityChunk:
    """Record count observed in the half-open range [min_value, max_value)."""

    min_value: Number
    max_value: Number
    count: int

    @property
    def width(self) -> Number:
        return self.max_value - self.min_value

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DensityChunk":
        return cls(
            min_value=data["min_value"],
            max_value=data["max_value"],
            count=int(data["count"]),
        )


@dataclass(frozen=True)
class Partition:
    """A contiguous value range assigned to one worker."""

    partition_id: str
    """Stable identifier, ``partition-<index>``"""

    min_value: Number
    """Lower bound (inclusive)"""

    max_value: Number
    """Upper bound (exclusive)"""

    total_records: int
    """Estimated record count from the density map"""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Partition":
        return cls(
            partition_id=data["partition_id"],
            min_value=data["min_value"],
            max_value=data["max_value"],
            total_records=int(data["total_records"]),
        )


@dataclass
class ScanStats:
    """Scan statistics for monitoring and debugging."""

    api_calls: int = 0
    scan_duration_ms: int = 0
    ranges_scanned: int = 0
    non_empty_ranges: int = 0
    used_two_pass: bool = False
    budget_exhausted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanStats":
        return cls(
            api_calls=int(data.get("api_calls", 0)),
            scan_duration_ms=int(data.get("scan_duration_ms", 0)),
            ranges_scanned=int(data.get("ranges_scanned", 0)),
            non_empty_ranges=int(data.get("non_empty_ranges", 0)),
            used_two_pass=bool(data.get("used_two_pass", False)),
            budget_exhausted=bool(data.get("budget_exhausted", False)),
        )


@dataclass
class ScanResult:
    """Density map plus the partition plan derived from it."""

    total_records: int
    worker_count: int
    stats: ScanStats
    density_map: List[DensityChunk] = field(default_factory=list)
    partitions: List[Partition] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_records": self.total_records,
            "worker_count": self.worker_count,
            "stats": self.stats.to_dict(),
            "density_map": [chunk.to_dict() for chunk in self.density_map],
            "partitions": [p.to_dict() for p in self.partitions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanResult":
        return cls(
            total_records=int(data["total_records"]),
            worker_count=int(data["worker_count"]),
            stats=ScanStats.from_dict(data.get("stats", {})),
            density_map=[DensityChunk.from_dict(c) for c in data.get("density_map", [])],
            partitions=[Partition.from_dict(p) for p in data.get("partitions", [])],
        )


@dataclass(frozen=True)
class PartitionProgress:
    """Durable pagination state for one (run, partition) pair."""

    run_id: str
    partition_id: str
    next_offset: int
    completed: bool
    created_at: datetime
    updated_at: datetime
