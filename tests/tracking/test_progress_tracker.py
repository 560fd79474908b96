# tests/tracking/test_progress_tracker.py
from __future__ import annotations

import threading

import pytest

from partitionkit.errors import PartitionProgressNotFound
from partitionkit.tracking.progress_store import InMemoryProgressStore, SqliteProgressStore
from partitionkit.tracking.progress_tracker import PartitionProgressTracker


@pytest.fixture(params=["memory", "sqlite"])
def tracker(request, tmp_path):
    if request.param == "memory":
        store = InMemoryProgressStore()
    else:
        store = SqliteProgressStore(tmp_path / "progress.db")
    return PartitionProgressTracker(store)


def test_initialize_is_idempotent(tracker):
    first = tracker.initialize("run-1", "partition-0")
    assert first.next_offset == 0
    assert first.completed is False

    assert tracker.advance("run-1", "partition-0", 0, 30)

    again = tracker.initialize("run-1", "partition-0")
    assert again.next_offset == 30
    assert again.created_at == first.created_at


def test_get_unknown_partition_raises(tracker):
    with pytest.raises(PartitionProgressNotFound) as excinfo:
        tracker.get("run-1", "missing")
    assert "run-1" in str(excinfo.value)

    with pytest.raises(PartitionProgressNotFound):
        tracker.is_completed("run-1", "missing")


def test_not_found_is_a_key_error(tracker):
    with pytest.raises(KeyError):
        tracker.get("nope", "nope")


def test_advance_requires_matching_offset(tracker):
    tracker.initialize("r", "p")

    assert tracker.advance("r", "p", 0, 30) is True
    assert tracker.advance("r", "p", 0, 30) is False  # duplicate delivery
    assert tracker.advance("r", "p", 60, 90) is False  # ahead of stored offset
    assert tracker.get("r", "p").next_offset == 30


def test_advance_uninitialized_partition_is_rejected(tracker):
    assert tracker.advance("r", "p", 0, 30) is False


def test_advance_ignores_non_increasing_offsets(tracker):
    tracker.initialize("r", "p")
    assert tracker.advance("r", "p", 0, 30)
    before = tracker.get("r", "p")

    assert tracker.advance("r", "p", 30, 30) is False
    assert tracker.advance("r", "p", 30, 10) is False
    assert tracker.advance("r", "p", -1, 10) is False

    after = tracker.get("r", "p")
    assert after.next_offset == 30
    assert after.completed is False
    assert after.updated_at == before.updated_at


def test_complete_is_terminal(tracker):
    tracker.initialize("r", "p")
    assert tracker.advance("r", "p", 0, 30)

    assert tracker.complete("r", "p", 30) is True
    assert tracker.is_completed("r", "p") is True

    assert tracker.complete("r", "p", 30) is False
    assert tracker.advance("r", "p", 30, 60) is False
    assert tracker.get("r", "p").next_offset == 30


def test_complete_with_wrong_offset_is_rejected(tracker):
    tracker.initialize("r", "p")
    assert tracker.complete("r", "p", 10) is False
    assert tracker.is_completed("r", "p") is False


def test_complete_records_end_offset(tracker):
    tracker.initialize("r", "p")
    assert tracker.advance("r", "p", 0, 30)

    assert tracker.complete("r", "p", 30, end_offset=42) is True

    progress = tracker.get("r", "p")
    assert progress.completed is True
    assert progress.next_offset == 42


def test_complete_ignores_end_offset_before_final(tracker):
    tracker.initialize("r", "p")
    assert tracker.advance("r", "p", 0, 30)

    assert tracker.complete("r", "p", 30, end_offset=20) is False
    assert tracker.complete("r", "p", -5) is False

    progress = tracker.get("r", "p")
    assert progress.next_offset == 30
    assert progress.completed is False


def test_continuation_sequence_with_duplicates(tracker):
    run, part = "run-42", "partition-3"
    tracker.initialize(run, part)

    assert tracker.advance(run, part, 0, 30)
    assert tracker.advance(run, part, 30, 60)
    assert not tracker.advance(run, part, 30, 60)  # redelivered message
    assert tracker.complete(run, part, 60, end_offset=80)
    assert tracker.is_completed(run, part)
    assert not tracker.advance(run, part, 80, 110)

    progress = tracker.get(run, part)
    assert progress.next_offset == 80
    assert progress.updated_at >= progress.created_at


def test_runs_are_isolated(tracker):
    tracker.initialize("run-a", "partition-0")
    tracker.initialize("run-b", "partition-0")

    assert tracker.complete("run-a", "partition-0", 0)
    assert tracker.is_completed("run-a", "partition-0")
    assert not tracker.is_completed("run-b", "partition-0")


def test_list_partitions(tracker):
    for pid in ("partition-1", "partition-0", "partition-2"):
        tracker.initialize("run", pid)
    tracker.initialize("other", "partition-9")
    tracker.complete("run", "partition-1", 0)

    rows = tracker.list_partitions("run")

    assert [r.partition_id for r in rows] == ["partition-0", "partition-1", "partition-2"]
    assert [r.completed for r in rows] == [False, True, False]
    assert tracker.list_partitions("unknown") == []


def test_concurrent_advance_has_single_winner(tracker):
    tracker.initialize("r", "p")
    barrier = threading.Barrier(8)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        applied = tracker.advance("r", "p", 0, 30)
        with lock:
            results.append(applied)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert tracker.get("r", "p").next_offset == 30
