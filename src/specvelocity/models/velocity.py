"""Data models for the persisted velocity aggregate and its metrics."""

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class WeeklyTaskBucket(BaseModel):
    """Task completions within one Monday-to-Sunday week."""

    week_start: datetime = Field(..., description="Monday 00:00 of the week")
    week_end: datetime = Field(..., description="Sunday 00:00 of the week")
    completed: int = Field(0, description="Tasks completed in the week")
    required: int = Field(0, description="Required tasks completed in the week")
    optional: int = Field(0, description="Optional tasks completed in the week")


class WeeklySpecBucket(BaseModel):
    """Spec completions within one Monday-to-Sunday week."""

    week_start: datetime = Field(..., description="Monday 00:00 of the week")
    week_end: datetime = Field(..., description="Sunday 00:00 of the week")
    completed_specs: int = Field(0, description="Specs that reached 100% in the week")
    started_specs: int = Field(0, description="Specs that saw their first task in the week")


class SpecActivityRecord(BaseModel):
    """Lifetime activity of one spec."""

    spec_id: str = Field(..., description="Spec identifier")
    first_event_at: Optional[datetime] = Field(None, description="Earliest task completion")
    last_event_at: Optional[datetime] = Field(None, description="Latest task completion")
    completed_at: Optional[datetime] = Field(None, description="When the spec reached 100%")
    total_tasks: int = Field(0, description="Task count at the last progress update")
    completed_tasks: int = Field(0, description="Completed count at the last progress update")

    @property
    def is_complete(self) -> bool:
        return self.total_tasks > 0 and self.completed_tasks == self.total_tasks


class DayOfWeekHistogram(BaseModel):
    """Completions per weekday."""

    monday: int = 0
    tuesday: int = 0
    wednesday: int = 0
    thursday: int = 0
    friday: int = 0
    saturday: int = 0
    sunday: int = 0

    def increment(self, weekday: str) -> None:
        setattr(self, weekday, getattr(self, weekday) + 1)


class DailyCount(BaseModel):
    """Task completions on one calendar day."""

    day: date = Field(..., description="Calendar day")
    completed: int = Field(0, description="Tasks completed on the day")
    required: int = Field(0, description="Required tasks completed on the day")
    optional: int = Field(0, description="Optional tasks completed on the day")


class ActivityLogEntry(BaseModel):
    """Recent task completion shown in the activity stream."""

    timestamp: datetime = Field(..., description="Completion time")
    spec_id: str = Field(..., description="Spec identifier")
    task_id: str = Field(..., description="Task identifier")
    text: Optional[str] = Field(None, description="Task description (first 50 chars)")
    is_required: bool = Field(True, description="Whether the task is required")
    author: Optional[str] = Field(None, description="Who completed the task")
    author_email: Optional[str] = Field(None, description="Email of who completed the task")


class SpecLifecycleEvent(BaseModel):
    """Spec-level event: completion or reopening."""

    spec_id: str = Field(..., description="Spec identifier")
    event_type: str = Field(..., description="completed or reopened")
    timestamp: datetime = Field(..., description="When the event happened")
    progress: int = Field(0, description="Progress percentage at the event")
    author: Optional[str] = Field(None, description="Who triggered the event")
    author_email: Optional[str] = Field(None, description="Email of who triggered the event")


class VelocityStore(BaseModel):
    """Root aggregate persisted as a single JSON document."""

    version: str = Field("1.0", description="State file format version")
    weekly_tasks: List[WeeklyTaskBucket] = Field(default_factory=list)
    weekly_specs: List[WeeklySpecBucket] = Field(default_factory=list)
    spec_activity: Dict[str, SpecActivityRecord] = Field(default_factory=dict)
    day_of_week_tasks: DayOfWeekHistogram = Field(default_factory=DayOfWeekHistogram)
    daily_task_counts: List[DailyCount] = Field(default_factory=list)
    activity_log: List[ActivityLogEntry] = Field(default_factory=list)
    spec_lifecycle_events: List[SpecLifecycleEvent] = Field(default_factory=list)


class TimeDistribution(BaseModel):
    """Completed specs bucketed by how long they took."""

    fast: int = Field(0, description="Specs completed within 10 days")
    medium: int = Field(0, description="Specs completed within 11-20 days")
    slow: int = Field(0, description="Specs that took more than 20 days")


class RequiredVsOptional(BaseModel):
    """Cumulative split of completed tasks."""

    required: int = 0
    optional: int = 0


class SpecTimeline(BaseModel):
    """Gantt-style summary of one spec."""

    spec_id: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    progress: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0


class RemainingWork(BaseModel):
    """Snapshot of one spec's outstanding work, used for projections."""

    total_tasks: int = 0
    completed_tasks: int = 0


class Metrics(BaseModel):
    """Full analytics surface computed from a VelocityStore."""

    tasks_per_week: List[int] = Field(default_factory=lambda: [0] * 12)
    current_week_tasks: int = 0
    last_week_tasks: int = 0
    velocity_trend: int = 0
    average_velocity: float = 0.0
    consistency_score: int = 100
    consistency_rating: str = "High"

    specs_per_week: List[int] = Field(default_factory=lambda: [0] * 12)
    current_week_specs: int = 0
    average_specs: float = 0.0
    specs_consistency_score: int = 0
    specs_consistency_rating: str = "Low"

    average_time_to_complete: int = 0
    time_distribution: TimeDistribution = Field(default_factory=TimeDistribution)
    projected_completion_date: Optional[datetime] = None
    remaining_tasks: int = 0
    days_remaining: int = 0
    day_of_week_velocity: DayOfWeekHistogram = Field(default_factory=DayOfWeekHistogram)
    required_vs_optional: RequiredVsOptional = Field(default_factory=RequiredVsOptional)

    daily_activity: List[DailyCount] = Field(default_factory=list)
    recent_events: List[ActivityLogEntry] = Field(default_factory=list)
    spec_timelines: List[SpecTimeline] = Field(default_factory=list)
