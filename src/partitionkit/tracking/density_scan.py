"""Adaptive density scanning of a numeric value space through bounded count probes."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Protocol, Tuple

from tqdm import tqdm

from ..errors import ScanError
from .config import ScanConfig
from .types import DensityChunk, Number, ScanStats

logger = logging.getLogger(__name__)

__all__ = ["CountSource", "DensityScanner", "coalesce_empty_chunks"]


class CountSource(Protocol):
    """Anything that can count records in a half-open value range."""

    def get_count(self, min_value: Number, max_value: Number) -> int: ...


def _midpoint(low: Number, high: Number) -> Optional[Number]:
    """Midpoint strictly inside (low, high), or None if the range cannot be split."""
    if isinstance(low, int) and isinstance(high, int):
        mid = low + (high - low) // 2
    else:
        mid = low + (high - low) / 2
    if low < mid < high:
        return mid
    return None


def coalesce_empty_chunks(chunks: List[DensityChunk]) -> List[DensityChunk]:
    """Merge runs of adjacent zero-count chunks into a single chunk."""
    merged: List[DensityChunk] = []
    for chunk in chunks:
        if merged and chunk.count == 0 and merged[-1].count == 0:
            merged[-1] = DensityChunk(merged[-1].min_value, chunk.max_value, 0)
        else:
            merged.append(chunk)
    return merged


class DensityScanner:
    """
    Build a density histogram of a value space without visiting every record.

    The scanner walks [min_value, max_value) left to right issuing one count
    probe per step. Steps are fine below the dense-zone threshold and coarse
    above it. In two-pass mode a probe whose count exceeds the saturation
    threshold is bisected until each piece is under the threshold or the
    minimum width is reached.

    Probes are issued strictly sequentially: the next boundary depends on the
    previous result, and the probe count must stay bounded and deterministic.
    """

    def __init__(
        self,
        source: CountSource,
        config: ScanConfig,
        *,
        show_progress: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the scanner.

        Args:
            source: Count source queried for each probe
            config: Scan configuration
            show_progress: Display a tqdm progress bar over the value range
            sleep: Sleep function used between retries (injectable for tests)
        """
        self.source = source
        self.config = config
        self.show_progress = show_progress
        self._sleep = sleep
        self._stats = ScanStats()

    def scan(self) -> Tuple[List[DensityChunk], ScanStats]:
        """
        Scan the configured range.

        Returns:
            (density_map, stats). The density map is sorted, contiguous and
            covers [min_value, max_value) exactly.

        Raises:
            ScanError: A probe kept failing after all retries. No partial
                result is returned.
        """
        cfg = self.config
        self._stats = ScanStats()
        started = time.monotonic()

        logger.info(
            "Starting density scan: range=[%s, %s) mode=%s dense_zone<%s step=%s/%s",
            cfg.min_value,
            cfg.max_value,
            cfg.mode.value,
            cfg.dense_zone_threshold,
            cfg.dense_zone_step,
            cfg.initial_step,
        )

        chunks: List[DensityChunk] = []
        position = cfg.min_value
        step = cfg.initial_step

        with tqdm(
            total=cfg.max_value - cfg.min_value,
            desc="Scanning density",
            unit="value",
            disable=not self.show_progress,
        ) as pbar:
            while position < cfg.max_value:
                width = cfg.dense_zone_step if position < cfg.dense_zone_threshold else step
                end = min(position + width, cfg.max_value)

                # Last probe in the budget sweeps whatever remains
                if end < cfg.max_value and self._stats.api_calls + 1 >= cfg.max_api_calls:
                    end = cfg.max_value
                    self._stats.budget_exhausted = True
                    logger.warning(
                        "Probe budget of %d calls reached; sweeping [%s, %s) in one probe",
                        cfg.max_api_calls,
                        position,
                        end,
                    )

                count = self._probe(position, end)

                if cfg.two_pass and count > cfg.saturation_threshold:
                    chunks.extend(self._refine(position, end, count))
                else:
                    chunks.append(DensityChunk(position, end, count))

                if cfg.adaptive_step and position >= cfg.dense_zone_threshold:
                    step = self._next_step(step, count)

                pbar.update(end - position)
                position = end

        self._stats.ranges_scanned = len(chunks)
        density_map = coalesce_empty_chunks(chunks)
        self._stats.non_empty_ranges = sum(1 for c in density_map if c.count > 0)
        self._stats.scan_duration_ms = int((time.monotonic() - started) * 1000)

        logger.info(
            "Density scan complete: %d records, %d chunks (%d non-empty), %d api calls, %dms",
            sum(c.count for c in density_map),
            len(density_map),
            self._stats.non_empty_ranges,
            self._stats.api_calls,
            self._stats.scan_duration_ms,
        )
        return density_map, self._stats

    def _refine(self, low: Number, high: Number, count: int) -> List[DensityChunk]:
        """Bisect a saturated range using an explicit worklist."""
        cfg = self.config
        # Keep one probe in reserve for the remainder sweep
        reserve = 1 if high < cfg.max_value else 0

        out: List[DensityChunk] = []
        stack: List[Tuple[Number, Number, int]] = [(low, high, count)]

        while stack:
            lo, hi, n = stack.pop()
            mid = _midpoint(lo, hi)

            if n <= cfg.saturation_threshold or mid is None or hi - lo <= cfg.min_bisect_width:
                out.append(DensityChunk(lo, hi, n))
                continue

            if self._stats.api_calls + 1 + reserve > cfg.max_api_calls:
                self._stats.budget_exhausted = True
                out.append(DensityChunk(lo, hi, n))
                continue

            left = self._probe(lo, mid)
            right = max(0, n - left)
            self._stats.used_two_pass = True

            # Left half pops first so output stays sorted
            stack.append((mid, hi, right))
            stack.append((lo, mid, left))

        logger.debug("Refined [%s, %s) (%d records) into %d chunks", low, high, count, len(out))
        return out

    def _next_step(self, step: Number, count: int) -> Number:
        cfg = self.config
        if count == 0:
            new_step = min(step * 5, cfg.max_empty_step)
        else:
            new_step = step * cfg.target_records_per_chunk / count
            new_step = max(cfg.dense_zone_step * 2, min(new_step, cfg.max_step))
        if isinstance(cfg.initial_step, int):
            new_step = max(1, int(new_step))
        return new_step

    def _probe(self, low: Number, high: Number) -> int:
        """Count records in [low, high), retrying with identical bounds."""
        cfg = self.config
        self._stats.api_calls += 1
        delay = cfg.retry_delay
        attempt = 0

        while True:
            attempt += 1
            try:
                count = int(self.source.get_count(low, high))
            except Exception as exc:
                if attempt > cfg.max_retries:
                    logger.error(
                        "Count probe [%s, %s) failed after %d attempts: %s",
                        low,
                        high,
                        attempt,
                        exc,
                    )
                    raise ScanError(
                        f"Count probe [{low}, {high}) failed after {attempt} attempts"
                    ) from exc

                logger.warning(
                    "Count probe [%s, %s) failed (%s); retry %d/%d in %.1fs",
                    low,
                    high,
                    exc,
                    attempt,
                    cfg.max_retries,
                    delay,
                )
                self._sleep(delay)
                delay *= cfg.retry_backoff
                continue

            if count < 0:
                raise ScanError(f"Count probe [{low}, {high}) returned negative count {count}")

            logger.debug("Probe [%s, %s) -> %d", low, high, count)
            return count
