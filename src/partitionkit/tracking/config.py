# tracking/config.py
from __future__ import annotations

from dataclasses import dataclass, asdict, fields, replace
from typing import Any, Dict, Mapping

from .types import Number, ScanMode

__all__ = [
    "DEFAULT_MIN_VALUE",
    "DEFAULT_MAX_VALUE",
    "DEFAULT_DENSE_ZONE_THRESHOLD",
    "DEFAULT_DENSE_ZONE_STEP",
    "DEFAULT_INITIAL_STEP",
    "DEFAULT_MAX_WORKERS",
    "DEFAULT_MIN_RECORDS_PER_WORKER",
    "ScanConfig",
]

# Value space (price per carat, dollars)
DEFAULT_MIN_VALUE = 0
DEFAULT_MAX_VALUE = 250_000

# Below this value the inventory is dense and gets fixed fine steps
DEFAULT_DENSE_ZONE_THRESHOLD = 20_000
DEFAULT_DENSE_ZONE_STEP = 100
DEFAULT_INITIAL_STEP = 500

DEFAULT_TARGET_RECORDS_PER_CHUNK = 500
DEFAULT_MAX_STEP = 50_000
# Zooming through empty space may grow further than a count-driven rescale
DEFAULT_MAX_EMPTY_STEP = 100_000

DEFAULT_MAX_WORKERS = 1000
DEFAULT_MIN_RECORDS_PER_WORKER = 1000

DEFAULT_SATURATION_THRESHOLD = 5000
DEFAULT_MIN_BISECT_WIDTH = 1
DEFAULT_MAX_API_CALLS = 10_000

DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_DELAY = 2.0
DEFAULT_RETRY_BACKOFF = 2.0

# Preview runs trade resolution for a handful of probes
PREVIEW_OVERRIDES: Dict[str, Any] = {
    "mode": ScanMode.TWO_PASS,
    "max_value": 100_000,
    "max_workers": 10,
    "dense_zone_threshold": 20_000,
    "dense_zone_step": 500,
    "initial_step": 5000,
}


@dataclass(frozen=True)
class ScanConfig:
    """Density scan and partitioning configuration.

    Mode options:
        - "single-pass": accept every probe as one density chunk
        - "two-pass": bisect probes whose count exceeds saturation_threshold
    """
    mode: ScanMode = ScanMode.SINGLE_PASS

    # Value range, half-open [min_value, max_value)
    min_value: Number = DEFAULT_MIN_VALUE
    max_value: Number = DEFAULT_MAX_VALUE

    # Partitioning
    max_workers: int = DEFAULT_MAX_WORKERS
    min_records_per_worker: int = DEFAULT_MIN_RECORDS_PER_WORKER
    max_total_records: int = 0  # 0 = unlimited

    # Probe stepping
    dense_zone_threshold: Number = DEFAULT_DENSE_ZONE_THRESHOLD
    dense_zone_step: Number = DEFAULT_DENSE_ZONE_STEP
    initial_step: Number = DEFAULT_INITIAL_STEP
    adaptive_step: bool = False  # Rescale steps above the dense zone from observed counts
    target_records_per_chunk: int = DEFAULT_TARGET_RECORDS_PER_CHUNK
    max_step: Number = DEFAULT_MAX_STEP
    max_empty_step: Number = DEFAULT_MAX_EMPTY_STEP

    # Two-pass refinement
    saturation_threshold: int = DEFAULT_SATURATION_THRESHOLD
    min_bisect_width: Number = DEFAULT_MIN_BISECT_WIDTH

    # Probe budget and retry policy
    max_api_calls: int = DEFAULT_MAX_API_CALLS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    retry_backoff: float = DEFAULT_RETRY_BACKOFF

    def __post_init__(self) -> None:
        if not isinstance(self.mode, ScanMode):
            object.__setattr__(self, "mode", ScanMode(self.mode))

        if self.min_value >= self.max_value:
            raise ValueError(
                f"min_value must be < max_value, got {self.min_value} >= {self.max_value}"
            )
        if self.dense_zone_step <= 0 or self.initial_step <= 0:
            raise ValueError("dense_zone_step and initial_step must be > 0")
        if self.dense_zone_step >= self.initial_step:
            raise ValueError(
                f"dense_zone_step must be < initial_step, got "
                f"{self.dense_zone_step} >= {self.initial_step}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.min_records_per_worker < 1:
            raise ValueError(
                f"min_records_per_worker must be >= 1, got {self.min_records_per_worker}"
            )
        if self.max_total_records < 0:
            raise ValueError(f"max_total_records must be >= 0, got {self.max_total_records}")
        if self.saturation_threshold < 1:
            raise ValueError(
                f"saturation_threshold must be >= 1, got {self.saturation_threshold}"
            )
        if self.min_bisect_width <= 0:
            raise ValueError(f"min_bisect_width must be > 0, got {self.min_bisect_width}")
        if self.max_api_calls < 1:
            raise ValueError(f"max_api_calls must be >= 1, got {self.max_api_calls}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.target_records_per_chunk < 1:
            raise ValueError("target_records_per_chunk must be >= 1")
        if self.max_step < self.initial_step:
            raise ValueError("max_step must be >= initial_step")
        if self.max_empty_step < self.initial_step:
            raise ValueError("max_empty_step must be >= initial_step")

    @property
    def two_pass(self) -> bool:
        return self.mode is ScanMode.TWO_PASS

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ScanConfig":
        """
        Build a config from snake_case keys, e.g. a decoded request body.

        Unknown keys raise ValueError rather than being silently dropped.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown scan config keys: {', '.join(unknown)}")
        return cls(**dict(values))

    @classmethod
    def preview(cls, **overrides: Any) -> "ScanConfig":
        """Cheap configuration for fast iteration, with caller overrides on top."""
        values = dict(PREVIEW_OVERRIDES)
        values.update(overrides)
        return cls.from_mapping(values)

    def with_overrides(self, **overrides: Any) -> "ScanConfig":
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        return data
