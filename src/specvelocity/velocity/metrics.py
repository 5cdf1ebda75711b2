"""Read-side analytics over a VelocityStore.

Every function is pure: it reads a store (and an explicit ``now`` where the
calendar matters) and returns plain values.
"""

import math
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import structlog

from specvelocity.models.velocity import (
    ActivityLogEntry,
    DailyCount,
    Metrics,
    RemainingWork,
    RequiredVsOptional,
    SpecTimeline,
    TimeDistribution,
    VelocityStore,
    WeeklySpecBucket,
    WeeklyTaskBucket,
)
from specvelocity.velocity import dates

logger = structlog.get_logger(__name__)

CONSISTENCY_WINDOW = 8
HIGH_CONSISTENCY = 70
MEDIUM_CONSISTENCY = 40
FAST_SPEC_DAYS = 10
MEDIUM_SPEC_DAYS = 20


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _sorted_task_weeks(store: VelocityStore) -> List[WeeklyTaskBucket]:
    return sorted(store.weekly_tasks, key=lambda b: b.week_start)


def _sorted_spec_weeks(store: VelocityStore) -> List[WeeklySpecBucket]:
    return sorted(store.weekly_specs, key=lambda b: b.week_start)


def _pad_left(values: List[int], length: int) -> List[int]:
    return [0] * (length - len(values)) + values


def _coefficient_score(values: Sequence[int]) -> Optional[int]:
    """100 * (1 - stddev / mean), floored at 0; None when the mean is 0."""
    mean = sum(values) / len(values)
    if mean == 0:
        return None
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    score = 100 * (1 - math.sqrt(variance) / mean)
    return int(max(0, min(100, _round_half_up(score))))


# ============================================================================
# Task throughput
# ============================================================================


def tasks_per_week(store: VelocityStore, weeks: int) -> List[int]:
    """Completions of the last ``weeks`` buckets, oldest first, zero-padded on the left."""
    if weeks <= 0:
        return []
    recent = _sorted_task_weeks(store)[-weeks:]
    return _pad_left([b.completed for b in recent], weeks)


def week_tasks(store: VelocityStore, week_of: datetime) -> int:
    start = dates.week_start(week_of)
    for bucket in store.weekly_tasks:
        if dates.week_start(bucket.week_start) == start:
            return bucket.completed
    return 0


def current_week_tasks(store: VelocityStore, now: datetime) -> int:
    return week_tasks(store, now)


def last_week_tasks(store: VelocityStore, now: datetime) -> int:
    return week_tasks(store, dates.previous_week_start(now))


def trend(current: int, last: int) -> int:
    """Percentage change from last week to the current week."""
    if last == 0:
        return 100 if current > 0 else 0
    return int(_round_half_up((current - last) / last * 100))


def velocity_trend(store: VelocityStore, now: datetime) -> int:
    return trend(current_week_tasks(store, now), last_week_tasks(store, now))


def rolling_average(store: VelocityStore, weeks: int) -> float:
    """Mean completions over the last ``weeks`` existing buckets, one decimal."""
    recent = _sorted_task_weeks(store)[-weeks:] if weeks > 0 else []
    if not recent:
        return 0.0
    return _round_half_up(sum(b.completed for b in recent) / len(recent), 1)


def consistency_score(store: VelocityStore) -> int:
    """Week-over-week stability of the last 8 weeks on a 0-100 scale."""
    score = _coefficient_score(tasks_per_week(store, CONSISTENCY_WINDOW))
    return 100 if score is None else score


def consistency_rating(score: int) -> str:
    if score >= HIGH_CONSISTENCY:
        return "High"
    if score >= MEDIUM_CONSISTENCY:
        return "Medium"
    return "Low"


def required_vs_optional(store: VelocityStore) -> RequiredVsOptional:
    return RequiredVsOptional(
        required=sum(b.required for b in store.weekly_tasks),
        optional=sum(b.optional for b in store.weekly_tasks),
    )


# ============================================================================
# Spec throughput
# ============================================================================


def specs_per_week(store: VelocityStore, weeks: int) -> List[int]:
    if weeks <= 0:
        return []
    recent = _sorted_spec_weeks(store)[-weeks:]
    return _pad_left([b.completed_specs for b in recent], weeks)


def current_week_specs(store: VelocityStore, now: datetime) -> int:
    start = dates.week_start(now)
    for bucket in store.weekly_specs:
        if dates.week_start(bucket.week_start) == start:
            return bucket.completed_specs
    return 0


def average_specs(store: VelocityStore, weeks: int = 4) -> float:
    """Spec completions over the last ``weeks`` buckets divided by ``weeks``."""
    if not store.weekly_specs or weeks <= 0:
        return 0.0
    recent = _sorted_spec_weeks(store)[-weeks:]
    return sum(b.completed_specs for b in recent) / weeks


def specs_consistency_score(store: VelocityStore) -> int:
    if len(store.weekly_specs) < 2:
        return 0
    recent = _sorted_spec_weeks(store)[-CONSISTENCY_WINDOW:]
    score = _coefficient_score([b.completed_specs for b in recent])
    return 0 if score is None else score


# ============================================================================
# Spec durations and projections
# ============================================================================


def _completed_spec_durations(store: VelocityStore) -> List[int]:
    return [
        dates.days_between(activity.first_event_at, activity.completed_at)
        for activity in store.spec_activity.values()
        if activity.first_event_at is not None and activity.completed_at is not None
    ]


def avg_time_to_complete(store: VelocityStore) -> int:
    """Mean whole days from a spec's first task to its completion."""
    durations = _completed_spec_durations(store)
    if not durations:
        return 0
    return int(_round_half_up(sum(durations) / len(durations)))


def time_distribution(store: VelocityStore) -> TimeDistribution:
    distribution = TimeDistribution()
    for days in _completed_spec_durations(store):
        if days <= FAST_SPEC_DAYS:
            distribution.fast += 1
        elif days <= MEDIUM_SPEC_DAYS:
            distribution.medium += 1
        else:
            distribution.slow += 1
    return distribution


def remaining_tasks(specs: Optional[Sequence[RemainingWork]]) -> int:
    if not specs:
        return 0
    return sum(spec.total_tasks - spec.completed_tasks for spec in specs)


def project_completion_date(
    store: VelocityStore, remaining: int, now: datetime
) -> Optional[datetime]:
    """Project when ``remaining`` tasks will be done at the 4-week average pace."""
    velocity = rolling_average(store, 4)
    if remaining <= 0 or velocity == 0:
        return None
    days = math.ceil(remaining / velocity * 7)
    return dates.to_local(now) + timedelta(days=days)


def days_remaining(projected: Optional[datetime], now: datetime) -> int:
    if projected is None:
        return 0
    return dates.days_between(now, projected)


# ============================================================================
# Timeline views
# ============================================================================


def daily_activity(store: VelocityStore, days: int, now: datetime) -> List[DailyCount]:
    """Daily counts for the last ``days`` calendar days, zero-filled, oldest first."""
    by_day = {d.day: d for d in store.daily_task_counts}
    today = dates.calendar_day(now)
    result = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        existing = by_day.get(day)
        result.append(existing.model_copy() if existing else DailyCount(day=day))
    return result


def recent_events(store: VelocityStore, limit: int) -> List[ActivityLogEntry]:
    """Most recent activity entries, newest first."""
    if limit <= 0:
        return []
    return list(reversed(store.activity_log[-limit:]))


def spec_timelines(store: VelocityStore) -> List[SpecTimeline]:
    timelines = []
    for spec_id, activity in store.spec_activity.items():
        progress = 0
        if activity.total_tasks > 0:
            progress = int(_round_half_up(activity.completed_tasks / activity.total_tasks * 100))
        timelines.append(
            SpecTimeline(
                spec_id=spec_id,
                start=activity.first_event_at,
                end=activity.completed_at,
                progress=progress,
                total_tasks=activity.total_tasks,
                completed_tasks=activity.completed_tasks,
            )
        )
    return timelines


# ============================================================================
# Aggregate
# ============================================================================


def calculate_metrics(
    store: VelocityStore,
    specs: Optional[Sequence[RemainingWork]] = None,
    now: Optional[datetime] = None,
) -> Metrics:
    """Compute the full metrics surface.

    Never raises: any failure is logged and yields default metrics.
    """
    now = dates.to_local(now or datetime.now())
    try:
        score = consistency_score(store)
        specs_score = specs_consistency_score(store)
        remaining = remaining_tasks(specs)
        projected = project_completion_date(store, remaining, now)

        return Metrics(
            tasks_per_week=tasks_per_week(store, 12),
            current_week_tasks=current_week_tasks(store, now),
            last_week_tasks=last_week_tasks(store, now),
            velocity_trend=velocity_trend(store, now),
            average_velocity=rolling_average(store, 4),
            consistency_score=score,
            consistency_rating=consistency_rating(score),
            specs_per_week=specs_per_week(store, 12),
            current_week_specs=current_week_specs(store, now),
            average_specs=average_specs(store, 4),
            specs_consistency_score=specs_score,
            specs_consistency_rating=consistency_rating(specs_score),
            average_time_to_complete=avg_time_to_complete(store),
            time_distribution=time_distribution(store),
            projected_completion_date=projected,
            remaining_tasks=remaining,
            days_remaining=days_remaining(projected, now),
            day_of_week_velocity=store.day_of_week_tasks.model_copy(),
            required_vs_optional=required_vs_optional(store),
            daily_activity=daily_activity(store, 84, now),
            recent_events=recent_events(store, 100),
            spec_timelines=spec_timelines(store),
        )
    except Exception as e:
        logger.error("metrics_calculation_failed", error=str(e), exc_info=True)
        return Metrics()
