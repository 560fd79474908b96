# partitionkit/pipeline/report.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from partitionkit.tracking.config import ScanConfig
from partitionkit.tracking.types import ScanResult

logger = logging.getLogger(__name__)


def _abbrev(s: str, width: int = 96) -> str:
    """Return s truncated with an ellipsis if it exceeds width."""
    return s if len(s) <= width else (s[: max(0, width - 1)] + "…")


def format_scan_summary(
    *,
    feed: str,
    scan_type: str,
    config: ScanConfig,
    result: ScanResult,
    start_time: Optional[datetime] = None,
    max_partitions: int = 10,
    color: bool = True,
) -> str:
    """
    Build a formatted, human-readable summary of a finished scan.
    """
    start_time = start_time or datetime.now()
    heading = f"Scan Time: {start_time:%Y-%m-%d %H:%M:%S}"
    if color:
        heading = f"\033[31m{heading}\033[0m"

    stats = result.stats
    title = f"Density Scan ({scan_type})"

    lines = [
        heading,
        f"\033[4m{title}\033[0m" if color else title,
        f"Feed:                       {_abbrev(feed)}",
        f"Value range:                [{config.min_value}, {config.max_value})",
        f"Mode:                       {config.mode.value}",
        f"Dense zone:                 < {config.dense_zone_threshold} "
        f"(step {config.dense_zone_step}, then {config.initial_step})",
        f"API calls:                  {stats.api_calls:,}",
        f"Ranges scanned:             {stats.ranges_scanned:,} "
        f"({stats.non_empty_ranges:,} non-empty)",
        f"Two-pass refinement used:   {stats.used_two_pass}",
        f"Scan duration:              {stats.scan_duration_ms:,} ms",
        f"Total records:              {result.total_records:,}",
        f"Workers:                    {result.worker_count} (max {config.max_workers})",
    ]

    if stats.budget_exhausted:
        lines.append(f"Probe budget exhausted:     {config.max_api_calls:,} calls")

    if config.max_total_records:
        lines.append(f"Record cap:                 {config.max_total_records:,}")

    for partition in result.partitions[:max_partitions]:
        lines.append(
            f"  {partition.partition_id:<24} [{partition.min_value}, {partition.max_value}) "
            f"{partition.total_records:,} records"
        )
    hidden = len(result.partitions) - max_partitions
    if hidden > 0:
        lines.append(f"  ... {hidden} more partitions")

    return "\n".join(lines) + "\n"


def print_scan_summary(**kwargs) -> None:
    """Print the scan summary to stdout."""
    print(format_scan_summary(**kwargs), end="")


def log_scan_summary(*, color: bool = False, **kwargs) -> None:
    """Log the scan summary at INFO level."""
    summary = format_scan_summary(color=color, **kwargs)
    for line in summary.rstrip("\n").splitlines():
        logger.info(line)
