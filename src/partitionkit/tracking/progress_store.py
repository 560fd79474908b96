"""Durable storage for partition progress with atomic conditional updates."""

from __future__ import annotations

import logging
import random
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, TypeVar

from .database import connect, init_progress_database
from .types import PartitionProgress

logger = logging.getLogger(__name__)

__all__ = [
    "OffsetExpectation",
    "ProgressChange",
    "ProgressStore",
    "InMemoryProgressStore",
    "SqliteProgressStore",
    "progress_key",
]

T = TypeVar("T")


def progress_key(run_id: str, partition_id: str) -> str:
    return f"{run_id}:{partition_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OffsetExpectation:
    """What the caller believes the stored row looks like."""

    next_offset: int
    completed: bool = False


@dataclass(frozen=True)
class ProgressChange:
    """Fields to set when the expectation holds. None leaves a field untouched."""

    next_offset: Optional[int] = None
    completed: Optional[bool] = None


class ProgressStore(ABC):
    """
    Storage backend for partition progress rows.

    Implementations must apply ``conditional_update`` atomically: the
    comparison against the stored row and the write happen as one step, so
    two callers presenting the same expectation cannot both succeed.
    """

    @abstractmethod
    def insert_if_absent(self, run_id: str, partition_id: str) -> PartitionProgress:
        """Create the row at offset 0 unless it exists; return the stored row."""

    @abstractmethod
    def fetch(self, run_id: str, partition_id: str) -> Optional[PartitionProgress]:
        """Return the stored row, or None if it was never created."""

    @abstractmethod
    def conditional_update(
        self,
        run_id: str,
        partition_id: str,
        expected: OffsetExpectation,
        change: ProgressChange,
    ) -> bool:
        """Apply ``change`` iff the stored row matches ``expected``. Returns whether it applied."""

    @abstractmethod
    def list_run(self, run_id: str) -> List[PartitionProgress]:
        """All rows for a run, ordered by partition id."""


class InMemoryProgressStore(ProgressStore):
    """Process-local store keyed by ``run_id:partition_id``."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._rows: Dict[str, PartitionProgress] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def insert_if_absent(self, run_id: str, partition_id: str) -> PartitionProgress:
        key = progress_key(run_id, partition_id)
        with self._lock:
            row = self._rows.get(key)
            if row is None:
                now = self._clock()
                row = PartitionProgress(run_id, partition_id, 0, False, now, now)
                self._rows[key] = row
            return row

    def fetch(self, run_id: str, partition_id: str) -> Optional[PartitionProgress]:
        with self._lock:
            return self._rows.get(progress_key(run_id, partition_id))

    def conditional_update(
        self,
        run_id: str,
        partition_id: str,
        expected: OffsetExpectation,
        change: ProgressChange,
    ) -> bool:
        key = progress_key(run_id, partition_id)
        with self._lock:
            row = self._rows.get(key)
            if row is None:
                return False
            if row.next_offset != expected.next_offset or row.completed != expected.completed:
                return False

            self._rows[key] = replace(
                row,
                next_offset=row.next_offset if change.next_offset is None else change.next_offset,
                completed=row.completed if change.completed is None else change.completed,
                updated_at=self._clock(),
            )
            return True

    def list_run(self, run_id: str) -> List[PartitionProgress]:
        with self._lock:
            rows = [row for row in self._rows.values() if row.run_id == run_id]
        return sorted(rows, key=lambda r: r.partition_id)


class SqliteProgressStore(ProgressStore):
    """SQLite-backed store; one row per (run_id, partition_id)."""

    _COLUMNS = "run_id, partition_id, next_offset, completed, created_at, updated_at"

    def __init__(self, db_path: Path, *, timeout: float = 10.0, max_retries: int = 5):
        """
        Initialize the store, creating the schema if needed.

        Args:
            db_path: Path to SQLite tracking database
            timeout: Seconds SQLite waits on a locked database per attempt
            max_retries: Maximum number of attempts when the database stays locked
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.max_retries = max_retries
        init_progress_database(self.db_path)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = connect(self.db_path, timeout=self.timeout)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _with_retry(self, operation: Callable[[], T]) -> T:
        for attempt in range(self.max_retries):
            try:
                return operation()
            except sqlite3.OperationalError as e:
                if "locked" in str(e) and attempt < self.max_retries - 1:
                    # Exponential backoff with jitter to avoid thundering herd
                    base_delay = 0.1 * (2 ** attempt)
                    jitter = random.uniform(0, base_delay * 0.5)
                    logger.debug("Progress database locked; retrying in %.2fs", base_delay + jitter)
                    time.sleep(base_delay + jitter)
                    continue
                raise
        raise sqlite3.OperationalError("database is locked")

    @staticmethod
    def _row_to_progress(row) -> PartitionProgress:
        return PartitionProgress(
            run_id=row[0],
            partition_id=row[1],
            next_offset=int(row[2]),
            completed=bool(row[3]),
            created_at=datetime.fromtimestamp(row[4], tz=timezone.utc),
            updated_at=datetime.fromtimestamp(row[5], tz=timezone.utc),
        )

    def _select(self, conn: sqlite3.Connection, run_id: str, partition_id: str):
        cursor = conn.execute(
            f"SELECT {self._COLUMNS} FROM partition_progress WHERE run_id = ? AND partition_id = ?",
            (run_id, partition_id),
        )
        return cursor.fetchone()

    def insert_if_absent(self, run_id: str, partition_id: str) -> PartitionProgress:
        def op() -> PartitionProgress:
            now = time.time()
            with self._connection() as conn:
                conn.execute(
                    """
                    INSERT OR IGNORE INTO partition_progress
                    (run_id, partition_id, next_offset, completed, created_at, updated_at)
                    VALUES (?, ?, 0, 0, ?, ?)
                    """,
                    (run_id, partition_id, now, now),
                )
                return self._row_to_progress(self._select(conn, run_id, partition_id))

        return self._with_retry(op)

    def fetch(self, run_id: str, partition_id: str) -> Optional[PartitionProgress]:
        def op() -> Optional[PartitionProgress]:
            with self._connection() as conn:
                row = self._select(conn, run_id, partition_id)
            return self._row_to_progress(row) if row else None

        return self._with_retry(op)

    def conditional_update(
        self,
        run_id: str,
        partition_id: str,
        expected: OffsetExpectation,
        change: ProgressChange,
    ) -> bool:
        assignments = ["updated_at = ?"]
        params: list = [time.time()]
        if change.next_offset is not None:
            assignments.append("next_offset = ?")
            params.append(change.next_offset)
        if change.completed is not None:
            assignments.append("completed = ?")
            params.append(int(change.completed))

        params.extend([run_id, partition_id, expected.next_offset, int(expected.completed)])
        sql = f"""
            UPDATE partition_progress
            SET {", ".join(assignments)}
            WHERE run_id = ? AND partition_id = ? AND next_offset = ? AND completed = ?
        """

        def op() -> bool:
            with self._connection() as conn:
                cursor = conn.execute(sql, params)
                return cursor.rowcount == 1

        return self._with_retry(op)

    def list_run(self, run_id: str) -> List[PartitionProgress]:
        def op() -> List[PartitionProgress]:
            with self._connection() as conn:
                cursor = conn.execute(
                    f"""
                    SELECT {self._COLUMNS} FROM partition_progress
                    WHERE run_id = ?
                    ORDER BY partition_id
                    """,
                    (run_id,),
                )
                return [self._row_to_progress(row) for row in cursor]

        return self._with_retry(op)
