"""Initial sprint/person selection and the visible-task derivation."""

from __future__ import annotations

from planner.agenda.models import PlannerTask, Sprint, TeamMember


def pick_initial_sprint(sprints: list[Sprint], now_ms: int) -> Sprint | None:
    """Choose the sprint the planner opens on.

    Preference order: a sprint whose ``[startDate, endDate]`` contains *now*,
    else the future sprint with the earliest start, else the past sprint with
    the latest end, else the first sprint as loaded.
    """
    if not sprints:
        return None

    for sprint in sprints:
        if sprint.start_date is not None and sprint.end_date is not None:
            if sprint.start_date <= now_ms <= sprint.end_date:
                return sprint

    future = [s for s in sprints if s.start_date is not None and s.start_date > now_ms]
    if future:
        return min(future, key=lambda s: s.start_date)

    past = [s for s in sprints if s.end_date is not None and s.end_date < now_ms]
    if past:
        return max(past, key=lambda s: s.end_date)

    return sprints[0]


def pick_initial_person(members: list[TeamMember]) -> TeamMember | None:
    """First member in alphabetical (case-insensitive) name order."""
    if not members:
        return None
    return sort_members(members)[0]


def sort_members(members: list[TeamMember]) -> list[TeamMember]:
    return sorted(members, key=lambda m: (m.name.casefold(), m.id))


def sort_sprints(sprints: list[Sprint]) -> list[Sprint]:
    """Newest first by start date; sprints without a start date go last."""
    return sorted(sprints, key=lambda s: s.start_date or 0, reverse=True)


def next_sprint_after(sprints: list[Sprint], current: Sprint) -> Sprint | None:
    """The sprint with the earliest start date strictly after *current*'s."""
    if current.start_date is None:
        return None
    later = [
        s for s in sprints
        if s.id != current.id and s.start_date is not None and s.start_date > current.start_date
    ]
    if not later:
        return None
    return min(later, key=lambda s: s.start_date)


def filter_tasks_for_person(tasks: list[PlannerTask], person_id: str | None) -> list[PlannerTask]:
    """The visible subset: tasks assigned to *person_id* (all tasks when none selected)."""
    if not person_id:
        return list(tasks)
    return [task for task in tasks if task.is_assigned_to(person_id)]
