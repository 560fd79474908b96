"""Database schema and connection management for partition progress."""

from __future__ import annotations

import sqlite3
from pathlib import Path

__all__ = ["init_progress_database", "connect"]


def connect(db_path: Path, timeout: float = 10.0) -> sqlite3.Connection:
    """Open a connection to the progress database."""
    return sqlite3.connect(str(db_path), timeout=timeout)


def init_progress_database(db_path: Path) -> None:
    """
    Initialize the partition progress schema.

    Creates the table and indexes if they don't exist.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with connect(db_path) as conn:
        # WAL lets readers proceed while a worker commits an offset
        conn.execute("PRAGMA journal_mode=WAL")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS partition_progress (
                run_id TEXT NOT NULL,
                partition_id TEXT NOT NULL,
                next_offset INTEGER NOT NULL DEFAULT 0,
                completed INTEGER NOT NULL DEFAULT 0,
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL,
                PRIMARY KEY (run_id, partition_id)
            )
        """)

        # Incomplete partitions per run (resumption queries)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_partition_progress_incomplete
            ON partition_progress(run_id, completed)
            WHERE completed = 0
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_partition_progress_updated
            ON partition_progress(updated_at DESC)
        """)

        conn.commit()
    conn.close()
