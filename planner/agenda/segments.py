"""Duration segmentation and day bucketing."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from planner.agenda.days import SprintDay, map_task_to_days
from planner.agenda.models import PlannerTask

MS_PER_HOUR = 3_600_000


def ms_to_hours(value: int | None) -> float:
    """Convert an estimate in ms to hours rounded to one decimal (0 for null/negative)."""
    if not value or value <= 0:
        return 0.0
    return round(value / MS_PER_HOUR, 1)


def hours_to_ms(value: float | None) -> int | None:
    if value is None or not math.isfinite(value):
        return None
    return round(value * MS_PER_HOUR)


@dataclass(frozen=True)
class TaskSegment:
    task: PlannerTask
    day_key: str
    hours: float
    is_start: bool
    is_end: bool


@dataclass
class DayBucket:
    day: SprintDay
    segments: list[TaskSegment] = field(default_factory=list)

    @property
    def hours(self) -> float:
        return sum(segment.hours for segment in self.segments)


@dataclass
class AgendaBuckets:
    """One bucket per sprint day plus the whole tasks with no resolvable day."""

    days: list[DayBucket]
    unplanned: list[PlannerTask]

    def bucket_for(self, key: str) -> DayBucket | None:
        return next((bucket for bucket in self.days if bucket.day.key == key), None)

    def day_keys_of(self, task_id: str) -> list[str]:
        """Day keys a task currently sits on (empty when unplanned or absent)."""
        return [
            bucket.day.key
            for bucket in self.days
            if any(segment.task.id == task_id for segment in bucket.segments)
        ]


def segment_task(task: PlannerTask, day_keys: list[str]) -> list[TaskSegment]:
    """Split a task's estimate evenly across the days it occupies.

    The total is rounded to one decimal before the split; the per-day share
    is not rounded again.
    """
    if not day_keys:
        return []
    total = ms_to_hours(task.time_estimate)
    share = total / len(day_keys)
    last = len(day_keys) - 1
    return [
        TaskSegment(task=task, day_key=key, hours=share, is_start=index == 0, is_end=index == last)
        for index, key in enumerate(day_keys)
    ]


def build_day_buckets(tasks: list[PlannerTask], sprint_days: list[SprintDay]) -> AgendaBuckets:
    """Distribute the visible tasks into day buckets.

    Args:
        tasks: Tasks already filtered for the selected person.
        sprint_days: The sprint window from ``build_sprint_days``.

    Returns:
        An :class:`AgendaBuckets` with exactly one bucket per sprint day and
        the unplanned tasks in their original order.
    """
    buckets = [DayBucket(day=day) for day in sprint_days]
    by_key = {bucket.day.key: bucket for bucket in buckets}
    valid_keys = frozenset(by_key)
    unplanned: list[PlannerTask] = []

    for task in tasks:
        segments = segment_task(task, map_task_to_days(task, valid_keys))
        if not segments:
            unplanned.append(task)
            continue
        for segment in segments:
            by_key[segment.day_key].segments.append(segment)

    return AgendaBuckets(days=buckets, unplanned=unplanned)
