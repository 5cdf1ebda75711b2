"""Data models for checklist history and velocity tracking."""

from specvelocity.models.config import MiningConfig, Settings
from specvelocity.models.task import (
    ChangeEvent,
    CompletionEvent,
    Revision,
    SpecCompletion,
    SpecDocument,
    TaskRecord,
    TaskStats,
)
from specvelocity.models.velocity import (
    ActivityLogEntry,
    DailyCount,
    DayOfWeekHistogram,
    Metrics,
    RemainingWork,
    RequiredVsOptional,
    SpecActivityRecord,
    SpecLifecycleEvent,
    SpecTimeline,
    TimeDistribution,
    VelocityStore,
    WeeklySpecBucket,
    WeeklyTaskBucket,
)

__all__ = [
    "TaskRecord",
    "TaskStats",
    "Revision",
    "ChangeEvent",
    "CompletionEvent",
    "SpecCompletion",
    "SpecDocument",
    "WeeklyTaskBucket",
    "WeeklySpecBucket",
    "SpecActivityRecord",
    "DayOfWeekHistogram",
    "DailyCount",
    "ActivityLogEntry",
    "SpecLifecycleEvent",
    "VelocityStore",
    "TimeDistribution",
    "RequiredVsOptional",
    "SpecTimeline",
    "RemainingWork",
    "Metrics",
    "MiningConfig",
    "Settings",
]
