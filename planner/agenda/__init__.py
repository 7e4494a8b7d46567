"""Agenda package: sprint window, day mapping, segmentation and workload.

The optimistic mutation coordinator lives in ``planner.agenda.coordinator``
and is imported from there directly.
"""

from planner.agenda.days import (
    UNPLANNED,
    UNPLANNED_KEY,
    DayAssignment,
    Scheduled,
    SprintDay,
    build_sprint_days,
    day_key,
    key_to_timestamp,
    map_task_to_days,
    parse_day_key,
)
from planner.agenda.models import PlannerTask, Sprint, SprintConfigData, TeamMember
from planner.agenda.segments import build_day_buckets, ms_to_hours, segment_task
from planner.agenda.selection import filter_tasks_for_person, pick_initial_person, pick_initial_sprint
from planner.agenda.workload import LoadLevel, LoadThresholds, classify_load, summarize_workload

__all__ = [
    "UNPLANNED",
    "UNPLANNED_KEY",
    "DayAssignment",
    "LoadLevel",
    "LoadThresholds",
    "PlannerTask",
    "Scheduled",
    "Sprint",
    "SprintConfigData",
    "SprintDay",
    "TeamMember",
    "build_day_buckets",
    "build_sprint_days",
    "classify_load",
    "day_key",
    "filter_tasks_for_person",
    "key_to_timestamp",
    "map_task_to_days",
    "ms_to_hours",
    "parse_day_key",
    "pick_initial_person",
    "pick_initial_sprint",
    "segment_task",
    "summarize_workload",
]
