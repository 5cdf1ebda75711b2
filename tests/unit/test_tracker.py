"""Unit tests for the velocity aggregation store."""

import threading
from datetime import date, datetime, timedelta
from unittest.mock import patch

import pytest

from specvelocity.velocity import StateManager, StoreBusyError, VelocityTracker

MONDAY = datetime(2026, 1, 5)
NEXT_MONDAY = datetime(2026, 1, 12)


def _spec_bucket(tracker, week_start):
    store = tracker.snapshot()
    return next((b for b in store.weekly_specs if b.week_start == week_start), None)


class TestRecordTaskCompletion:
    """Test recording task completions."""

    def test_same_week_shares_one_bucket(self, tracker):
        tracker.record_task_completion("specA", "specA:a", True, MONDAY.replace(hour=9))
        tracker.record_task_completion("specA", "specA:b", False, datetime(2026, 1, 11, 22, 0))

        store = tracker.snapshot()

        assert len(store.weekly_tasks) == 1
        bucket = store.weekly_tasks[0]
        assert bucket.week_start == MONDAY
        assert bucket.week_end == datetime(2026, 1, 11)
        assert (bucket.completed, bucket.required, bucket.optional) == (2, 1, 1)

    def test_buckets_stay_sorted_and_unique(self, tracker):
        for when in [NEXT_MONDAY, MONDAY, NEXT_MONDAY + timedelta(days=2), MONDAY - timedelta(days=3)]:
            tracker.record_task_completion("specA", f"specA:{when}", True, when)

        starts = [b.week_start for b in tracker.snapshot().weekly_tasks]

        assert starts == sorted(set(starts))
        assert len(starts) == 3

    def test_completions_are_conserved(self, tracker):
        timestamps = [MONDAY + timedelta(hours=13 * i) for i in range(20)]
        for i, when in enumerate(timestamps):
            tracker.record_task_completion("specA", f"specA:{i}", i % 3 != 0, when)

        store = tracker.snapshot()

        assert sum(b.completed for b in store.weekly_tasks) == len(timestamps)
        assert sum(b.required + b.optional for b in store.weekly_tasks) == len(timestamps)

    def test_day_of_week_and_daily_counts(self, tracker):
        tracker.record_task_completion("specA", "specA:a", True, MONDAY.replace(hour=9))
        tracker.record_task_completion("specA", "specA:b", True, datetime(2026, 1, 11, 9))

        store = tracker.snapshot()

        assert store.day_of_week_tasks.monday == 1
        assert store.day_of_week_tasks.sunday == 1
        assert [d.day for d in store.daily_task_counts] == [date(2026, 1, 5), date(2026, 1, 11)]

    def test_daily_counts_are_pruned(self, tracker):
        tracker.record_task_completion("specA", "specA:old", True, datetime(2025, 6, 2, 9))
        tracker.record_task_completion("specA", "specA:new", True, NEXT_MONDAY)

        store = tracker.snapshot()

        assert [d.day for d in store.daily_task_counts] == [date(2026, 1, 12)]
        assert len(store.weekly_tasks) == 2

    def test_activity_log_is_bounded(self, state_dir, fixed_now):
        tracker = VelocityTracker(StateManager(state_dir), clock=lambda: fixed_now, activity_log_limit=3)

        for i in range(5):
            tracker.record_task_completion("specA", f"specA:{i}", True, MONDAY + timedelta(hours=i))

        log = tracker.snapshot().activity_log
        assert [entry.task_id for entry in log] == ["specA:2", "specA:3", "specA:4"]

    def test_activity_text_is_truncated(self, tracker):
        tracker.record_task_completion("specA", "specA:x", True, MONDAY, text="y" * 80, author="Alice")

        entry = tracker.snapshot().activity_log[0]
        assert entry.text == "y" * 50
        assert entry.author == "Alice"

    def test_default_timestamp_uses_clock(self, tracker, fixed_now):
        tracker.record_task_completion("specA", "specA:a", True)
        assert tracker.snapshot().activity_log[0].timestamp == fixed_now

    def test_spec_activity_window_and_started_week(self, tracker):
        tracker.record_task_completion("specA", "specA:a", True, NEXT_MONDAY)
        tracker.record_task_completion("specA", "specA:b", True, MONDAY)

        activity = tracker.snapshot().spec_activity["specA"]
        assert activity.first_event_at == MONDAY
        assert activity.last_event_at == NEXT_MONDAY
        assert _spec_bucket(tracker, MONDAY).started_specs == 1
        assert _spec_bucket(tracker, NEXT_MONDAY).started_specs == 0


class TestSpecProgress:
    """Test spec completion transitions."""

    def test_completion_is_credited_once(self, tracker):
        when = datetime(2026, 1, 7, 10)
        for completed in range(1, 6):
            tracker.update_spec_progress("specA", 5, completed, timestamp=when)

        activity = tracker.snapshot().spec_activity["specA"]
        assert activity.completed_at == when
        assert _spec_bucket(tracker, MONDAY).completed_specs == 1

        tracker.update_spec_progress("specA", 5, 5, timestamp=when + timedelta(hours=1))

        store = tracker.snapshot()
        assert store.spec_activity["specA"].completed_at == when
        assert _spec_bucket(tracker, MONDAY).completed_specs == 1
        assert [e.event_type for e in store.spec_lifecycle_events] == ["completed"]

    def test_reopening_takes_credit_back(self, tracker):
        when = datetime(2026, 1, 7, 10)
        tracker.update_spec_progress("specA", 5, 5, author="Alice", timestamp=when)

        tracker.update_spec_progress("specA", 5, 4, timestamp=when + timedelta(days=8))

        store = tracker.snapshot()
        assert store.spec_activity["specA"].completed_at is None
        assert _spec_bucket(tracker, MONDAY).completed_specs == 0
        reopened = store.spec_lifecycle_events[-1]
        assert reopened.event_type == "reopened"
        assert reopened.progress == 80

    def test_empty_spec_never_completes(self, tracker):
        tracker.update_spec_progress("specA", 0, 0)

        store = tracker.snapshot()
        assert store.spec_activity["specA"].completed_at is None
        assert store.weekly_specs == []

    def test_recording_twice_moves_credit(self, tracker):
        tracker.record_spec_completion("specA", 3, 3, timestamp=MONDAY)
        tracker.record_spec_completion("specA", 3, 3, timestamp=NEXT_MONDAY)

        assert _spec_bucket(tracker, MONDAY).completed_specs == 0
        assert _spec_bucket(tracker, NEXT_MONDAY).completed_specs == 1
        assert tracker.snapshot().spec_activity["specA"].completed_at == NEXT_MONDAY

    @pytest.mark.parametrize("total, completed", [(5, 3), (0, 0), (3, 4)])
    def test_unfinished_spec_cannot_be_recorded_complete(self, tracker, total, completed):
        with pytest.raises(ValueError, match="not complete"):
            tracker.record_spec_completion("specA", total, completed, timestamp=MONDAY)

        store = tracker.snapshot()
        assert "specA" not in store.spec_activity
        assert store.weekly_specs == []


class TestPersistence:
    """Test persistence through the tracker."""

    def test_changes_are_persisted(self, tracker, state_dir):
        assert tracker.record_task_completion("specA", "specA:a", True, MONDAY)

        reloaded = StateManager(state_dir).load()
        assert reloaded.weekly_tasks[0].completed == 1

    def test_initialize_loads_existing_state(self, tracker, state_dir, fixed_now):
        tracker.record_task_completion("specA", "specA:a", True, MONDAY)

        fresh = VelocityTracker(StateManager(state_dir), clock=lambda: fixed_now)
        store = fresh.initialize()

        assert store.weekly_tasks[0].completed == 1

    def test_persist_failure_keeps_memory_state(self, tracker):
        with patch.object(tracker.state_manager, "save", side_effect=OSError("disk full")):
            persisted = tracker.record_task_completion("specA", "specA:a", True, MONDAY)

        assert not persisted
        assert tracker.last_persist_error == "disk full"
        assert tracker.snapshot().weekly_tasks[0].completed == 1

        assert tracker.record_task_completion("specA", "specA:b", True, MONDAY)
        assert tracker.last_persist_error is None

    def test_reset(self, tracker, state_dir):
        tracker.record_task_completion("specA", "specA:a", True, MONDAY)

        tracker.reset()

        assert tracker.snapshot().weekly_tasks == []
        assert StateManager(state_dir).load().weekly_tasks == []


class TestLocking:
    """Test exclusive access to the store."""

    def test_busy_store_times_out(self, state_dir, fixed_now):
        tracker = VelocityTracker(StateManager(state_dir), clock=lambda: fixed_now, lock_timeout=0.05)
        held = threading.Event()
        release = threading.Event()

        def hold_lock():
            with tracker._lock:
                held.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        held.wait(5)
        try:
            with pytest.raises(StoreBusyError):
                tracker.record_task_completion("specA", "specA:a", True, MONDAY)
        finally:
            release.set()
            holder.join()

    def test_concurrent_writers_are_serialized(self, tracker):
        def worker(n):
            for i in range(10):
                tracker.record_task_completion("specA", f"specA:{n}-{i}", True, MONDAY + timedelta(hours=i))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert tracker.snapshot().weekly_tasks[0].completed == 40


class TestTrackerMetrics:
    """Test metrics computed through the tracker."""

    def test_week_over_week_trend(self, tracker):
        for i in range(2):
            tracker.record_task_completion("specA", f"specA:w1-{i}", True, MONDAY.replace(hour=9 + i))
        for i in range(3):
            tracker.record_task_completion("specA", f"specA:w2-{i}", True, NEXT_MONDAY.replace(hour=9 + i))

        metrics = tracker.calculate_metrics()

        assert metrics.tasks_per_week[-2:] == [2, 3]
        assert metrics.current_week_tasks == 3
        assert metrics.last_week_tasks == 2
        assert metrics.velocity_trend == 50
