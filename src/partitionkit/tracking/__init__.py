"""Density scanning, partition planning and partition progress tracking."""

from .types import (
    DensityChunk,
    Partition,
    PartitionProgress,
    ScanMode,
    ScanResult,
    ScanStats,
)
from .config import ScanConfig
from .density_scan import CountSource, DensityScanner
from .partitioning import (
    PartitionPlanner,
    calculate_worker_count,
    create_partition_plan,
    create_partitions,
    make_partition_id,
)
from .progress_store import (
    InMemoryProgressStore,
    OffsetExpectation,
    ProgressChange,
    ProgressStore,
    SqliteProgressStore,
)
from .progress_tracker import PartitionProgressTracker
from .scan_history import (
    SCAN_TYPE_PREVIEW,
    SCAN_TYPE_RUN,
    InMemoryScanHistoryStore,
    RocksScanHistoryStore,
    ScanHistory,
    ScanHistoryEntry,
    ScanHistoryStore,
)

__all__ = [
    "DensityChunk",
    "Partition",
    "PartitionProgress",
    "ScanMode",
    "ScanResult",
    "ScanStats",
    "ScanConfig",
    "CountSource",
    "DensityScanner",
    "PartitionPlanner",
    "calculate_worker_count",
    "create_partition_plan",
    "create_partitions",
    "make_partition_id",
    "InMemoryProgressStore",
    "OffsetExpectation",
    "ProgressChange",
    "ProgressStore",
    "SqliteProgressStore",
    "PartitionProgressTracker",
    "SCAN_TYPE_PREVIEW",
    "SCAN_TYPE_RUN",
    "InMemoryScanHistoryStore",
    "RocksScanHistoryStore",
    "ScanHistory",
    "ScanHistoryEntry",
    "ScanHistoryStore",
]
