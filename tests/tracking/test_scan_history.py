# tests/tracking/test_scan_history.py
from datetime import datetime, timezone

import pytest

from partitionkit.tracking.scan_history import (
    SCAN_TYPE_PREVIEW,
    SCAN_TYPE_RUN,
    InMemoryScanHistoryStore,
    RocksScanHistoryStore,
    ScanHistoryEntry,
    history_key,
)
from partitionkit.tracking.types import DensityChunk, Partition, ScanResult, ScanStats


def _result(total):
    return ScanResult(
        total_records=total,
        worker_count=1,
        stats=ScanStats(api_calls=3, ranges_scanned=3, non_empty_ranges=1),
        density_map=[DensityChunk(0, 100, total)],
        partitions=[Partition("partition-0", 0, 100, total)],
    )


def _entry(feed, scan_type, total):
    return ScanHistoryEntry(
        feed=feed,
        scan_type=scan_type,
        result=_result(total),
        config={"max_value": 100},
        scanned_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture(params=["memory", "rocks"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryScanHistoryStore()
    else:
        s = RocksScanHistoryStore(tmp_path / "history.db")
        yield s
        s.close()


def test_latest_missing_returns_none(store):
    assert store.latest("feed-a", SCAN_TYPE_RUN) is None
    history = store.history("feed-a")
    assert history.run is None
    assert history.preview is None


def test_last_write_wins(store):
    store.record(_entry("feed-a", SCAN_TYPE_RUN, 10))
    store.record(_entry("feed-a", SCAN_TYPE_RUN, 20))

    assert store.latest("feed-a", SCAN_TYPE_RUN).result.total_records == 20


def test_run_and_preview_are_kept_separately(store):
    store.record(_entry("feed-a", SCAN_TYPE_RUN, 10))
    store.record(_entry("feed-a", SCAN_TYPE_PREVIEW, 5))
    store.record(_entry("feed-b", SCAN_TYPE_RUN, 99))

    history = store.history("feed-a")

    assert history.run.result.total_records == 10
    assert history.preview.result.total_records == 5
    assert store.history("feed-b").preview is None


def test_entry_round_trips(store):
    entry = _entry("feed-a", SCAN_TYPE_PREVIEW, 7)
    store.record(entry)
    assert store.latest("feed-a", SCAN_TYPE_PREVIEW) == entry


def test_unknown_scan_type_is_rejected(store):
    with pytest.raises(ValueError):
        store.latest("feed-a", "nightly")
    with pytest.raises(ValueError):
        _entry("feed-a", "nightly", 1)


def test_rocks_history_survives_reopen(tmp_path):
    path = tmp_path / "history.db"
    with RocksScanHistoryStore(path) as store:
        store.record(_entry("feed-a", SCAN_TYPE_RUN, 42))

    with RocksScanHistoryStore(path) as store:
        entry = store.latest("feed-a", SCAN_TYPE_RUN)

    assert entry.result.total_records == 42
    assert entry.scanned_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_rocks_unreadable_entry_is_discarded(tmp_path, caplog):
    with RocksScanHistoryStore(tmp_path / "history.db") as store:
        store._db[history_key("feed-a", SCAN_TYPE_RUN)] = b"{not json"
        assert store.latest("feed-a", SCAN_TYPE_RUN) is None

    assert "Discarding unreadable" in caplog.text


@pytest.mark.parametrize(
    "stored",
    [
        b"[1, 2, 3]",
        b'"just a string"',
        b'{"feed": "feed-a", "scan_type": "run", "scanned_at": "2024-05-01T12:00:00+00:00", "result": []}',
    ],
)
def test_rocks_non_object_entry_is_discarded(tmp_path, stored):
    with RocksScanHistoryStore(tmp_path / "history.db") as store:
        store._db[history_key("feed-a", SCAN_TYPE_RUN)] = stored
        store.record(_entry("feed-a", SCAN_TYPE_PREVIEW, 3))

        history = store.history("feed-a")

    assert history.run is None
    assert history.preview.result.total_records == 3
