"""
Tests for the leaderboard snapshot stores and the cleanup scheduler.
"""

import threading
import time
from datetime import timedelta

import pytest

from scoreboard.errors import NotFoundError, StorageError
from scoreboard.models import Leaderboard
from scoreboard.storage.scheduler import CleanupScheduler
from scoreboard.storage.snapshots import InMemorySnapshotStore, JsonSnapshotStore


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemorySnapshotStore()
    return JsonSnapshotStore(tmp_path / "snapshots")


class TestSave:
    """Tests for append-only saving."""

    def test_save_then_latest(self, store, make_leaderboard):
        leaderboard = make_leaderboard([("A", 90), ("B", 80)])
        store.save(leaderboard)
        assert store.latest("event-1") == leaderboard

    def test_latest_picks_newest(self, store, make_leaderboard):
        store.save(make_leaderboard([("A", 90)], minutes=10))
        store.save(make_leaderboard([("A", 70)], minutes=5))
        assert store.latest("event-1").id == "lb-event-1-10"

    def test_latest_unknown_event(self, store):
        assert store.latest("missing") is None

    def test_resave_same_snapshot_is_noop(self, store, make_leaderboard):
        leaderboard = make_leaderboard([("A", 90)])
        store.save(leaderboard)
        store.save(leaderboard)
        assert store.count() == 1

    def test_existing_id_not_overwritten(self, store, make_leaderboard):
        store.save(make_leaderboard([("A", 90)], leaderboard_id="same"))
        with pytest.raises(StorageError):
            store.save(make_leaderboard([("A", 10)], leaderboard_id="same"))
        assert store.get("same").entries[0].average_score == 90

    def test_get_missing(self, store):
        with pytest.raises(NotFoundError):
            store.get("nope")

    def test_lock_timeout(self, store, make_leaderboard):
        store._lock.acquire()
        try:
            with pytest.raises(StorageError):
                store.save(make_leaderboard([("A", 90)]), timeout=0.01)
        finally:
            store._lock.release()
        assert store.count() == 0


class TestRange:
    """Tests for range queries."""

    @pytest.fixture
    def filled(self, store, make_leaderboard):
        for minutes in (0, 10, 20, 30):
            store.save(make_leaderboard([("A", 50 + minutes)], minutes=minutes))
        store.save(make_leaderboard([("A", 1)], event_id="event-2", minutes=15))
        return store

    def test_newest_first(self, filled):
        assert [lb.id for lb in filled.range("event-1")] == [
            "lb-event-1-30", "lb-event-1-20", "lb-event-1-10", "lb-event-1-0",
        ]

    def test_inclusive_bounds(self, filled, base_time):
        snapshots = filled.range(
            "event-1", start=base_time + timedelta(minutes=10), end=base_time + timedelta(minutes=20)
        )
        assert [lb.id for lb in snapshots] == ["lb-event-1-20", "lb-event-1-10"]

    def test_limit(self, filled):
        assert len(filled.range("event-1", limit=2)) == 2

    def test_count_by_event(self, filled):
        assert filled.count("event-1") == 4
        assert filled.count("event-2") == 1
        assert filled.count() == 5


class TestPositionHistory:
    """Tests for position_history queries."""

    def test_history_newest_first(self, store, make_leaderboard):
        store.save(make_leaderboard([("A", 90), ("B", 80)], minutes=0))
        store.save(make_leaderboard([("A", 70), ("B", 80)], minutes=10))
        store.save(make_leaderboard([("C", 99)], minutes=20))

        history = store.position_history("A", event_id="event-1")

        assert [(e.position, e.score) for e in history.entries] == [(2, 70), (1, 90)]
        assert history.entries[0].total_teams == 2
        assert history.current_position == 2
        assert history.best_position == 1
        assert history.position_change == -1
        assert history.metadata['total_snapshots'] == 3

    def test_across_events(self, store, make_leaderboard):
        store.save(make_leaderboard([("A", 90)], event_id="event-1"))
        store.save(make_leaderboard([("B", 95), ("A", 90)], event_id="event-2", minutes=1))
        history = store.position_history("A")
        assert [e.event_id for e in history.entries] == ["event-2", "event-1"]

    def test_unknown_team(self, store, make_leaderboard):
        store.save(make_leaderboard([("A", 90)]))
        history = store.position_history("Z")
        assert history.entries == []
        assert history.current_position is None


class TestStatistics:
    """Tests for statistics queries."""

    def test_empty_is_zeroed(self, store):
        stats = store.statistics("event-1")
        assert stats.total_snapshots == 0
        assert stats.average_score == 0.0
        assert stats.highest_score == 0.0
        assert stats.average_team_count == 0.0

    def test_values(self, store, make_leaderboard):
        store.save(make_leaderboard([("A", 90), ("B", 70)], minutes=0))
        store.save(make_leaderboard([("A", 80), ("B", 60), ("C", 50)], minutes=10))

        stats = store.statistics("event-1")

        assert stats.total_snapshots == 2
        assert stats.average_team_count == pytest.approx(2.5)
        assert stats.average_score == pytest.approx(70.0)
        assert stats.highest_score == 90
        assert stats.lowest_score == 50
        assert stats.score_range == 40
        assert stats.metadata['total_scores'] == 5


class TestCleanup:
    """Tests for batched retention cleanup."""

    def test_zero_retention_removes_all(self, store, make_leaderboard):
        for minutes in range(3):
            store.save(make_leaderboard([("A", 90)], minutes=minutes))
        result = store.cleanup(timedelta(0))
        assert result.deleted == 3
        assert store.count() == 0

    def test_empty_store_is_noop(self, store):
        result = store.cleanup(timedelta(0))
        assert result.deleted == 0
        assert result.batches == 0
        assert not result.cancelled

    def test_keeps_recent(self, store, make_leaderboard, base_time):
        for minutes in (0, 30, 60):
            store.save(make_leaderboard([("A", 90)], minutes=minutes))
        result = store.cleanup(timedelta(minutes=45), now=base_time + timedelta(minutes=80))
        assert result.deleted == 2
        assert [lb.id for lb in store.range("event-1")] == ["lb-event-1-60"]

    def test_batches(self, store, make_leaderboard):
        for minutes in range(5):
            store.save(make_leaderboard([("A", 90)], minutes=minutes))
        result = store.cleanup(timedelta(0), batch_size=2)
        assert result.deleted == 5
        assert result.batches == 3

    def test_cancelled(self, store, make_leaderboard):
        store.save(make_leaderboard([("A", 90)]))
        cancel = threading.Event()
        cancel.set()
        result = store.cleanup(timedelta(0), cancel_event=cancel)
        assert result.cancelled
        assert result.deleted == 0
        assert store.count() == 1

    def test_rerun_is_safe(self, store, make_leaderboard):
        store.save(make_leaderboard([("A", 90)]))
        store.cleanup(timedelta(0))
        assert store.cleanup(timedelta(0)).deleted == 0

    def test_invalid_batch_size(self, store):
        with pytest.raises(ValueError):
            store.cleanup(timedelta(0), batch_size=0)


class TestJsonSnapshotStore:
    """Tests specific to the JSON file backend."""

    def test_file_per_snapshot(self, tmp_path, make_leaderboard):
        store = JsonSnapshotStore(tmp_path)
        leaderboard = make_leaderboard([("A", 90)])
        store.save(leaderboard)

        files = list(tmp_path.glob("*.json"))
        assert len(files) == 1
        assert files[0].name.startswith("event-1_")
        assert files[0].name.endswith("_lb-event-1-0.json")
        assert Leaderboard.model_validate_json(files[0].read_text()) == leaderboard

    def test_reopened_store_sees_snapshots(self, tmp_path, make_leaderboard):
        JsonSnapshotStore(tmp_path).save(make_leaderboard([("A", 90), ("B", 85)]))
        latest = JsonSnapshotStore(tmp_path).latest("event-1")
        assert [e.team_id for e in latest.entries] == ["A", "B"]

    def test_missing_folder_is_empty(self, tmp_path):
        assert JsonSnapshotStore(tmp_path / "absent").count() == 0

    def test_corrupt_file(self, tmp_path):
        (tmp_path / "event-1_0000000000000_broken.json").write_text("{not json")
        with pytest.raises(StorageError):
            JsonSnapshotStore(tmp_path).latest("event-1")

    def test_similar_ids_get_separate_files(self, tmp_path, make_leaderboard):
        store = JsonSnapshotStore(tmp_path)
        store.save(make_leaderboard([("A", 90)], leaderboard_id="snap.1"))
        store.save(make_leaderboard([("A", 80)], leaderboard_id="snap_1"))
        store.save(make_leaderboard([("A", 70)], leaderboard_id="snap/1"))

        assert store.count() == 3
        assert store.get("snap.1").entries[0].average_score == 90
        assert store.get("snap_1").entries[0].average_score == 80
        assert len(list(tmp_path.glob("*.json"))) == 3

    def test_similar_event_ids_kept_apart(self, tmp_path, make_leaderboard):
        store = JsonSnapshotStore(tmp_path)
        store.save(make_leaderboard([("A", 90)], event_id="event.1", leaderboard_id="x"))
        store.save(make_leaderboard([("A", 80)], event_id="event_1", leaderboard_id="y"))
        assert store.count("event.1") == 1
        assert store.count("event_1") == 1

    def test_leftover_temp_file_ignored(self, tmp_path, make_leaderboard):
        store = JsonSnapshotStore(tmp_path)
        store.save(make_leaderboard([("A", 90)]))
        (tmp_path / "tmpab12cd.tmp").write_text('{"id": "half')
        (tmp_path / "tmpab12cd.json").write_text('{"id": "half')

        assert store.latest("event-1").id == "lb-event-1-0"
        assert store.count() == 1

    def test_no_temp_files_left_after_save(self, tmp_path, make_leaderboard):
        JsonSnapshotStore(tmp_path).save(make_leaderboard([("A", 90)]))
        assert list(tmp_path.glob("*.tmp")) == []


class TestCleanupScheduler:
    """Tests for CleanupScheduler."""

    def test_run_once(self, make_leaderboard):
        store = InMemorySnapshotStore()
        store.save(make_leaderboard([("A", 90)]))
        scheduler = CleanupScheduler(store, retention=timedelta(0))
        assert scheduler.run_once().deleted == 1

    def test_start_and_stop(self, make_leaderboard):
        store = InMemorySnapshotStore()
        store.save(make_leaderboard([("A", 90)]))
        scheduler = CleanupScheduler(store, retention=timedelta(0), interval=0.01)

        scheduler.start()
        try:
            assert scheduler.running
            with pytest.raises(RuntimeError):
                scheduler.start()
            for _ in range(200):
                if store.count() == 0:
                    break
                time.sleep(0.01)
        finally:
            scheduler.stop(timeout=5)

        assert store.count() == 0
        assert not scheduler.running

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            CleanupScheduler(InMemorySnapshotStore(), interval=0)
