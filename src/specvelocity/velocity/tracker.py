"""Write path of the velocity aggregate.

Every mutating call runs under one lock, updates the in-memory store and
then persists the whole store. A failed save is logged and remembered in
``last_persist_error``; the in-memory state stays authoritative.
"""

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator, List, Optional, Sequence

import structlog

from specvelocity.models.velocity import (
    ActivityLogEntry,
    DailyCount,
    Metrics,
    RemainingWork,
    SpecActivityRecord,
    SpecLifecycleEvent,
    VelocityStore,
    WeeklySpecBucket,
    WeeklyTaskBucket,
)
from specvelocity.velocity import dates
from specvelocity.velocity.metrics import calculate_metrics
from specvelocity.velocity.state import StateManager

logger = structlog.get_logger(__name__)

ACTIVITY_TEXT_LENGTH = 50


class StoreBusyError(TimeoutError):
    """Raised when the store lock cannot be acquired in time."""


class VelocityTracker:
    """Owns read-modify-write access to one VelocityStore."""

    def __init__(
        self,
        state_manager: StateManager,
        clock: Callable[[], datetime] = datetime.now,
        activity_log_limit: int = 100,
        daily_retention_days: int = 90,
        lock_timeout: Optional[float] = None,
    ) -> None:
        """Initialize the tracker with an empty store.

        Args:
            state_manager: Persistence backend
            clock: Source of "now" (local naive time)
            activity_log_limit: Entries kept in the activity log
            daily_retention_days: Days of daily counts kept
            lock_timeout: Seconds to wait for the store lock (None waits forever)
        """
        self.state_manager = state_manager
        self.clock = clock
        self.activity_log_limit = activity_log_limit
        self.daily_retention_days = daily_retention_days
        self.lock_timeout = lock_timeout
        self.last_persist_error: Optional[str] = None
        self._store = VelocityStore()
        self._lock = threading.RLock()

    # ============================================================================
    # Lifecycle
    # ============================================================================

    def initialize(self) -> VelocityStore:
        """Load persisted state, falling back to an empty store."""
        with self._exclusive():
            self._store = self.state_manager.load_or_create()
            logger.info(
                "velocity_store_loaded",
                weeks=len(self._store.weekly_tasks),
                specs=len(self._store.spec_activity),
                recovered=self.state_manager.recovered_from_corruption,
            )
            return self._store.model_copy(deep=True)

    def reset(self) -> None:
        """Clear all velocity data and persist the empty store."""
        with self._exclusive():
            self._store = VelocityStore()
            logger.info("velocity_store_reset")
            self._persist()

    def snapshot(self) -> VelocityStore:
        """Return a deep copy of the current store."""
        with self._exclusive():
            return self._store.model_copy(deep=True)

    # ============================================================================
    # Write path
    # ============================================================================

    def record_task_completion(
        self,
        spec_id: str,
        task_key: str,
        is_required: bool,
        timestamp: Optional[datetime] = None,
        author: Optional[str] = None,
        text: Optional[str] = None,
        author_email: Optional[str] = None,
    ) -> bool:
        """Record one task completion.

        Args:
            spec_id: Spec containing the task
            task_key: Task identifier
            is_required: Whether the task is required (not optional)
            timestamp: Completion time (defaults to now)
            author: Who completed the task
            text: Task description (truncated to 50 characters)
            author_email: Email of who completed the task

        Returns:
            True if the store was persisted, False if only memory was updated
        """
        timestamp = dates.to_local(timestamp or self.clock())

        with self._exclusive():
            bucket = self._get_or_create_week(timestamp)
            bucket.completed += 1
            if is_required:
                bucket.required += 1
            else:
                bucket.optional += 1

            self._store.day_of_week_tasks.increment(dates.weekday_name(timestamp))
            self._touch_spec_activity(spec_id, timestamp)
            self._record_daily_count(timestamp, is_required)
            self._append_activity(
                ActivityLogEntry(
                    timestamp=timestamp,
                    spec_id=spec_id,
                    task_id=task_key,
                    text=text[:ACTIVITY_TEXT_LENGTH] if text else None,
                    is_required=is_required,
                    author=author,
                    author_email=author_email,
                )
            )

            logger.debug(
                "task_completion_recorded",
                spec_id=spec_id,
                week_start=bucket.week_start.isoformat(),
                week_completed=bucket.completed,
                required=is_required,
            )
            return self._persist()

    def record_spec_completion(
        self,
        spec_id: str,
        total_tasks: int,
        completed_tasks: int,
        timestamp: Optional[datetime] = None,
        author: Optional[str] = None,
        author_email: Optional[str] = None,
    ) -> bool:
        """Record that a spec reached 100%.

        A spec already marked complete has its earlier credit moved to the
        new week, so each spec is counted at most once.

        Returns:
            True if the store was persisted, False if only memory was updated

        Raises:
            ValueError: If the counts do not describe a finished, non-empty spec
        """
        if total_tasks <= 0 or completed_tasks != total_tasks:
            raise ValueError(
                f"Spec {spec_id} is not complete: {completed_tasks}/{total_tasks} tasks"
            )
        timestamp = dates.to_local(timestamp or self.clock())

        with self._exclusive():
            activity = self._get_or_create_activity(spec_id)
            if activity.completed_at is not None:
                self._uncredit_spec_week(activity.completed_at)
            self._mark_spec_complete(
                activity, total_tasks, completed_tasks, timestamp, author, author_email
            )
            return self._persist()

    def update_spec_progress(
        self,
        spec_id: str,
        total_tasks: int,
        completed_tasks: int,
        author: Optional[str] = None,
        author_email: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """Upsert spec task counts, applying completion transitions once.

        Entering 100% records a spec completion. Leaving 100% clears
        ``completed_at`` and takes the credit back from the week that held it.
        Repeated calls with the same counts change nothing else.

        Returns:
            True if the store was persisted, False if only memory was updated
        """
        timestamp = dates.to_local(timestamp or self.clock())

        with self._exclusive():
            activity = self._get_or_create_activity(spec_id)
            was_completed = activity.completed_at is not None
            is_now_completed = total_tasks > 0 and completed_tasks == total_tasks

            activity.total_tasks = total_tasks
            activity.completed_tasks = completed_tasks

            if is_now_completed and not was_completed:
                self._mark_spec_complete(
                    activity, total_tasks, completed_tasks, timestamp, author, author_email
                )
            elif was_completed and not is_now_completed:
                previous = activity.completed_at
                activity.completed_at = None
                self._uncredit_spec_week(previous)
                self._store.spec_lifecycle_events.append(
                    SpecLifecycleEvent(
                        spec_id=spec_id,
                        event_type="reopened",
                        timestamp=timestamp,
                        progress=_progress(completed_tasks, total_tasks),
                        author=author,
                        author_email=author_email,
                    )
                )
                logger.info(
                    "spec_reopened",
                    spec_id=spec_id,
                    previous_completion=previous.isoformat(),
                )

            return self._persist()

    # ============================================================================
    # Read path
    # ============================================================================

    def calculate_metrics(self, specs: Optional[Sequence[RemainingWork]] = None) -> Metrics:
        """Compute the full metrics surface from a snapshot of the store."""
        return calculate_metrics(self.snapshot(), specs=specs, now=self.clock())

    # ============================================================================
    # Internals
    # ============================================================================

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        timeout = -1 if self.lock_timeout is None else self.lock_timeout
        if not self._lock.acquire(timeout=timeout):
            raise StoreBusyError(f"Velocity store busy for more than {self.lock_timeout}s")
        try:
            yield
        finally:
            self._lock.release()

    def _persist(self) -> bool:
        try:
            self.state_manager.save(self._store)
        except OSError as e:
            self.last_persist_error = str(e)
            logger.warning(
                "velocity_persist_failed",
                path=str(self.state_manager.state_file),
                error=str(e),
            )
            return False
        self.last_persist_error = None
        return True

    def _get_or_create_week(self, timestamp: datetime) -> WeeklyTaskBucket:
        start = dates.week_start(timestamp)
        for bucket in self._store.weekly_tasks:
            if dates.week_start(bucket.week_start) == start:
                return bucket

        bucket = WeeklyTaskBucket(week_start=start, week_end=dates.week_end(start))
        self._store.weekly_tasks.append(bucket)
        self._store.weekly_tasks.sort(key=lambda b: b.week_start)
        return bucket

    def _find_spec_week(self, timestamp: datetime) -> Optional[WeeklySpecBucket]:
        start = dates.week_start(timestamp)
        for bucket in self._store.weekly_specs:
            if dates.week_start(bucket.week_start) == start:
                return bucket
        return None

    def _get_or_create_spec_week(self, timestamp: datetime) -> WeeklySpecBucket:
        bucket = self._find_spec_week(timestamp)
        if bucket is None:
            start = dates.week_start(timestamp)
            bucket = WeeklySpecBucket(week_start=start, week_end=dates.week_end(start))
            self._store.weekly_specs.append(bucket)
            self._store.weekly_specs.sort(key=lambda b: b.week_start)
        return bucket

    def _get_or_create_activity(self, spec_id: str) -> SpecActivityRecord:
        activity = self._store.spec_activity.get(spec_id)
        if activity is None:
            activity = SpecActivityRecord(spec_id=spec_id)
            self._store.spec_activity[spec_id] = activity
        return activity

    def _touch_spec_activity(self, spec_id: str, timestamp: datetime) -> None:
        activity = self._get_or_create_activity(spec_id)
        previous_first = activity.first_event_at

        if previous_first is None or timestamp < previous_first:
            activity.first_event_at = timestamp
            if previous_first is None or not dates.same_week(previous_first, timestamp):
                if previous_first is not None:
                    old_bucket = self._find_spec_week(previous_first)
                    if old_bucket is not None and old_bucket.started_specs > 0:
                        old_bucket.started_specs -= 1
                self._get_or_create_spec_week(timestamp).started_specs += 1

        if activity.last_event_at is None or timestamp > activity.last_event_at:
            activity.last_event_at = timestamp

    def _mark_spec_complete(
        self,
        activity: SpecActivityRecord,
        total_tasks: int,
        completed_tasks: int,
        timestamp: datetime,
        author: Optional[str],
        author_email: Optional[str],
    ) -> None:
        activity.completed_at = timestamp
        activity.total_tasks = total_tasks
        activity.completed_tasks = completed_tasks

        bucket = self._get_or_create_spec_week(timestamp)
        bucket.completed_specs += 1

        self._store.spec_lifecycle_events.append(
            SpecLifecycleEvent(
                spec_id=activity.spec_id,
                event_type="completed",
                timestamp=timestamp,
                progress=100,
                author=author,
                author_email=author_email,
            )
        )
        logger.info(
            "spec_completion_recorded",
            spec_id=activity.spec_id,
            week_start=bucket.week_start.isoformat(),
            author=author,
        )

    def _uncredit_spec_week(self, completed_at: datetime) -> None:
        bucket = self._find_spec_week(completed_at)
        if bucket is not None and bucket.completed_specs > 0:
            bucket.completed_specs -= 1

    def _record_daily_count(self, timestamp: datetime, is_required: bool) -> None:
        day = dates.calendar_day(timestamp)
        daily: Optional[DailyCount] = next(
            (d for d in self._store.daily_task_counts if d.day == day), None
        )
        if daily is None:
            daily = DailyCount(day=day)
            self._store.daily_task_counts.append(daily)

        daily.completed += 1
        if is_required:
            daily.required += 1
        else:
            daily.optional += 1

        cutoff = dates.calendar_day(self.clock()) - timedelta(days=self.daily_retention_days)
        self._store.daily_task_counts = sorted(
            (d for d in self._store.daily_task_counts if d.day >= cutoff),
            key=lambda d: d.day,
        )

    def _append_activity(self, entry: ActivityLogEntry) -> None:
        log: List[ActivityLogEntry] = self._store.activity_log
        log.append(entry)
        if len(log) > self.activity_log_limit:
            del log[: len(log) - self.activity_log_limit]


def _progress(completed: int, total: int) -> int:
    return int(completed * 100 / total + 0.5) if total else 0
