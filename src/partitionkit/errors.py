"""Exceptions raised by partitionkit."""

from __future__ import annotations

__all__ = ["PartitionProgressNotFound", "ScanError"]


class PartitionProgressNotFound(KeyError):
    """Raised when progress is requested for a partition that was never initialized."""

    def __init__(self, run_id: str, partition_id: str):
        self.run_id = run_id
        self.partition_id = partition_id
        super().__init__(
            f"Partition progress not found for run_id={run_id}, partition_id={partition_id}"
        )

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


class ScanError(RuntimeError):
    """Raised when a density scan cannot produce a plan."""
