"""Workload aggregation and daily load classification."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from planner.agenda.models import PlannerTask
from planner.agenda.segments import AgendaBuckets, ms_to_hours


class LoadLevel(str, enum.Enum):
    UNDER = "under"
    NOMINAL = "nominal"
    OVER = "over"


@dataclass(frozen=True)
class LoadThresholds:
    """Daily hour limits used for visual triage only.

    ``hours < under`` is under-loaded, ``hours > over`` is over-loaded and
    anything in between (inclusive) is nominal.
    """

    under: float = 6.5
    over: float = 8.0

    def __post_init__(self) -> None:
        if self.under > self.over:
            raise ValueError(f"under threshold {self.under} exceeds over threshold {self.over}")


DEFAULT_THRESHOLDS = LoadThresholds()


def classify_load(hours: float, thresholds: LoadThresholds = DEFAULT_THRESHOLDS) -> LoadLevel:
    if hours < thresholds.under:
        return LoadLevel.UNDER
    if hours > thresholds.over:
        return LoadLevel.OVER
    return LoadLevel.NOMINAL


def total_hours(tasks: list[PlannerTask]) -> float:
    """Sum of the visible tasks' estimates in hours (null/negative count as 0)."""
    return sum(ms_to_hours(task.time_estimate) for task in tasks)


def hours_per_day(buckets: AgendaBuckets) -> dict[str, float]:
    return {bucket.day.key: bucket.hours for bucket in buckets.days}


def hours_per_person(tasks: list[PlannerTask]) -> dict[str, float]:
    """Estimate hours per assignee id; a task counts fully for each of its assignees."""
    totals: dict[str, float] = {}
    for task in tasks:
        for assignee_id in task.assignee_ids:
            totals[assignee_id] = totals.get(assignee_id, 0.0) + ms_to_hours(task.time_estimate)
    return totals


@dataclass(frozen=True)
class DayLoad:
    key: str
    hours: float
    level: LoadLevel


@dataclass(frozen=True)
class WorkloadSummary:
    total_hours: float
    days: list[DayLoad]
    unplanned_count: int


def summarize_workload(
    tasks: list[PlannerTask],
    buckets: AgendaBuckets,
    thresholds: LoadThresholds = DEFAULT_THRESHOLDS,
) -> WorkloadSummary:
    days = [
        DayLoad(key=key, hours=hours, level=classify_load(hours, thresholds))
        for key, hours in hours_per_day(buckets).items()
    ]
    return WorkloadSummary(
        total_hours=total_hours(tasks),
        days=days,
        unplanned_count=len(buckets.unplanned),
    )
