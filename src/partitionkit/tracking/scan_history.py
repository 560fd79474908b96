"""Last-write-wins history of scan results per (feed, scan type)."""

from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from rocksdict import Options, Rdict

from .types import ScanResult

logger = logging.getLogger(__name__)

__all__ = [
    "SCAN_TYPE_RUN",
    "SCAN_TYPE_PREVIEW",
    "ScanHistoryEntry",
    "ScanHistory",
    "ScanHistoryStore",
    "InMemoryScanHistoryStore",
    "RocksScanHistoryStore",
]

SCAN_TYPE_RUN = "run"
SCAN_TYPE_PREVIEW = "preview"
SCAN_TYPES = (SCAN_TYPE_RUN, SCAN_TYPE_PREVIEW)

HISTORY_PREFIX = b"__scan__/"


def _check_scan_type(scan_type: str) -> None:
    if scan_type not in SCAN_TYPES:
        raise ValueError(f"scan_type must be one of {SCAN_TYPES}, got {scan_type!r}")


@dataclass
class ScanHistoryEntry:
    """One recorded scan."""

    feed: str
    scan_type: str
    result: ScanResult
    config: Dict[str, Any] = field(default_factory=dict)
    scanned_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        _check_scan_type(self.scan_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feed": self.feed,
            "scan_type": self.scan_type,
            "scanned_at": self.scanned_at.isoformat(),
            "config": self.config,
            "result": self.result.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanHistoryEntry":
        return cls(
            feed=data["feed"],
            scan_type=data["scan_type"],
            scanned_at=datetime.fromisoformat(data["scanned_at"]),
            config=data.get("config", {}),
            result=ScanResult.from_dict(data["result"]),
        )


@dataclass
class ScanHistory:
    """Latest full run and latest preview for a feed."""

    run: Optional[ScanHistoryEntry] = None
    preview: Optional[ScanHistoryEntry] = None


class ScanHistoryStore(ABC):
    """Persists the most recent scan per (feed, scan type)."""

    @abstractmethod
    def record(self, entry: ScanHistoryEntry) -> None:
        """Store an entry, replacing any previous one for the same key."""

    @abstractmethod
    def latest(self, feed: str, scan_type: str) -> Optional[ScanHistoryEntry]:
        """Most recent entry for the key, or None."""

    def history(self, feed: str) -> ScanHistory:
        return ScanHistory(
            run=self.latest(feed, SCAN_TYPE_RUN),
            preview=self.latest(feed, SCAN_TYPE_PREVIEW),
        )


class InMemoryScanHistoryStore(ScanHistoryStore):
    """Process-local history, mainly for tests and previews."""

    def __init__(self):
        self._entries: Dict[Tuple[str, str], ScanHistoryEntry] = {}
        self._lock = threading.Lock()

    def record(self, entry: ScanHistoryEntry) -> None:
        with self._lock:
            self._entries[(entry.feed, entry.scan_type)] = entry

    def latest(self, feed: str, scan_type: str) -> Optional[ScanHistoryEntry]:
        _check_scan_type(scan_type)
        with self._lock:
            return self._entries.get((feed, scan_type))


def history_key(feed: str, scan_type: str) -> bytes:
    return HISTORY_PREFIX + f"{feed}/{scan_type}".encode("utf-8")


class RocksScanHistoryStore(ScanHistoryStore):
    """RocksDB-backed history; one JSON value per (feed, scan type) key."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        retries: int = 1,
        delay_seconds: float = 0.2,
        backoff: float = 2.0,
    ):
        """
        Open (or create) the history database.

        Args:
            db_path: Directory for the RocksDB instance
            retries: Additional open attempts on lock errors (left by crashed processes)
            delay_seconds: Initial sleep between attempts
            backoff: Multiplicative backoff factor
        """
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        opts = Options()
        opts.create_if_missing(True)

        attempt = 1
        delay = delay_seconds
        while True:
            try:
                self._db = Rdict(str(self.db_path), opts)
                break
            except Exception as exc:
                if "lock" not in str(exc).lower() or attempt > retries:
                    logger.error("Failed to open scan history at %s: %s", self.db_path, exc)
                    raise
                logger.warning(
                    "Lock issue opening scan history %s (attempt %d/%d): %s",
                    self.db_path,
                    attempt,
                    retries + 1,
                    exc,
                )
                time.sleep(delay)
                delay *= backoff
                attempt += 1

    def record(self, entry: ScanHistoryEntry) -> None:
        payload = json.dumps(entry.to_dict()).encode("utf-8")
        self._db[history_key(entry.feed, entry.scan_type)] = payload
        logger.info("Recorded %s scan for feed %s", entry.scan_type, entry.feed)

    def latest(self, feed: str, scan_type: str) -> Optional[ScanHistoryEntry]:
        _check_scan_type(scan_type)
        raw = self._db.get(history_key(feed, scan_type))
        if raw is None:
            return None
        try:
            return ScanHistoryEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding unreadable %s history for feed %s: %s", scan_type, feed, exc)
            return None

    def close(self) -> None:
        self._db.close()

    def __enter__(self) -> "RocksScanHistoryStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
