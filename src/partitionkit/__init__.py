"""Adaptive density partitioning and idempotent partition progress tracking."""

from partitionkit.errors import PartitionProgressNotFound, ScanError

__version__ = "0.1.0"

__all__ = ["PartitionProgressNotFound", "ScanError", "__version__"]
