"""Agenda state holder and optimistic mutation coordinator.

``AgendaPlanner`` owns the "all tasks of the selected sprint" list. It is
replaced by a completed fetch and patched by mutation commits/rollbacks;
nothing else writes to it. Every public coroutine returns an
:class:`Outcome` instead of raising.

A mutation keeps a reference to the task object it replaced (the snapshot)
and to the optimistic object it put in its place. Commit and rollback only
touch the list entry if it still *is* that optimistic object, so a newer
mutation of the same task, or a re-fetch, always wins over an older one
that resolves later.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import math
import time
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Protocol

import httpx

from integrations.clickup import ClickUpError, ConfigurationError, SprintTasks
from planner.agenda.days import (
    UNPLANNED,
    DayAssignment,
    Scheduled,
    Unplanned,
    assignment_to_timestamp,
    build_sprint_days,
    parse_assignment,
    task_assignment,
    week_range_label,
)
from planner.agenda.models import PlannerTask, Sprint, TeamMember
from planner.agenda.segments import AgendaBuckets, build_day_buckets, hours_to_ms, ms_to_hours
from planner.agenda.selection import (
    filter_tasks_for_person,
    next_sprint_after,
    pick_initial_person,
    pick_initial_sprint,
    sort_members,
    sort_sprints,
)
from planner.agenda.workload import (
    DEFAULT_THRESHOLDS,
    LoadThresholds,
    WorkloadSummary,
    hours_per_person,
    summarize_workload,
)

logger = logging.getLogger("planner.agenda.coordinator")

DEFAULT_BANNER_SECONDS = 4.0
INVALID_HOURS_MESSAGE = "Enter a valid number of hours (for example 2 or 2.5)."


class TaskGateway(Protocol):
    async def fetch_sprint_tasks(
        self, sprint_id: str, assignee_id: str | None = None, include_done: bool = False,
    ) -> SprintTasks: ...

    async def update_task(
        self, task_id: str, changes: dict, current_name: str | None = None,
    ) -> PlannerTask: ...

    async def move_task_to_next_sprint(
        self,
        task_id: str,
        current_sprint_list_id: str,
        next_sprint_list_id: str,
        next_sprint_first_monday: int | None,
        current_sprint_start_date: int | None,
        current_sprint_end_date: int | None,
        task_due_date: int | None,
    ) -> PlannerTask: ...


class ErrorKind(str, enum.Enum):
    CONFIGURATION = "configuration"
    REMOTE = "remote"
    INPUT = "input"
    NOT_FOUND = "not_found"
    SUPERSEDED = "superseded"


@dataclass
class Outcome:
    ok: bool
    message: str = ""
    error: ErrorKind | None = None
    field_errors: dict[str, str] = field(default_factory=dict)
    task: PlannerTask | None = None

    @classmethod
    def success(cls, message: str = "", task: PlannerTask | None = None) -> Outcome:
        return cls(ok=True, message=message, task=task)

    @classmethod
    def failure(cls, error: ErrorKind, message: str, **field_errors: str) -> Outcome:
        return cls(ok=False, message=message, error=error, field_errors=dict(field_errors))

    def to_dict(self) -> dict:
        data = {"ok": self.ok, "message": self.message}
        if self.error is not None:
            data["error"] = self.error.value
        if self.field_errors:
            data["fieldErrors"] = dict(self.field_errors)
        if self.task is not None:
            data["task"] = self.task.to_dict()
        return data


class BannerKind(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Banner:
    """A user-facing notice. ``expires_at`` of ``None`` means it stays until dismissed."""

    kind: BannerKind
    message: str
    expires_at: float | None = None


@dataclass(frozen=True)
class TaskEdits:
    """Values submitted from the task edit form.

    ``day`` is a day key, ``"unplanned"`` or a :data:`DayAssignment`;
    ``hours`` is the raw form value (string or number, blank means none).
    """

    name: str
    objective: str = ""
    acceptance_criteria: str = ""
    assignee_id: str | None = None
    day: str | DayAssignment = UNPLANNED
    hours: str | float | None = None


def parse_hours(value) -> float | None:
    """Parse an hours form value.

    Raises:
        ValueError: If *value* is not a finite, non-negative number.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    if isinstance(value, bool):
        raise ValueError(INVALID_HOURS_MESSAGE)
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ValueError(INVALID_HOURS_MESSAGE) from None
    if not math.isfinite(hours) or hours < 0:
        raise ValueError(INVALID_HOURS_MESSAGE)
    return hours


def _as_assignment(value: str | DayAssignment) -> DayAssignment:
    if isinstance(value, (Scheduled, Unplanned)):
        return value
    return parse_assignment(value)


def _error_message(exc: BaseException, fallback: str) -> str:
    if isinstance(exc, ClickUpError) and str(exc):
        return str(exc)
    if isinstance(exc, httpx.HTTPError):
        return f"{fallback} ({exc.__class__.__name__})"
    return fallback


class AgendaPlanner:
    """Sprint agenda for one person, with optimistic task mutations.

    Args:
        gateway: Remote task gateway (see :class:`TaskGateway`).
        sprints: Sprints from the sprint calendar config, in load order.
        members: Team directory entries.
        thresholds: Daily load limits for the workload summary.
        banner_seconds: Lifetime of transient banners.
        clock: Monotonic clock used for banner expiry.
    """

    def __init__(
        self,
        gateway: TaskGateway,
        sprints: list[Sprint],
        members: list[TeamMember],
        *,
        thresholds: LoadThresholds = DEFAULT_THRESHOLDS,
        banner_seconds: float = DEFAULT_BANNER_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.gateway = gateway
        self.loaded_sprints = list(sprints)
        self.sprints = sort_sprints(self.loaded_sprints)
        self.members = sort_members(list(members))
        self.thresholds = thresholds
        self.banner_seconds = banner_seconds
        self.clock = clock

        self.selected_sprint_id: str | None = None
        self.selected_person_id: str | None = None
        self.remote_sprint: Sprint | None = None
        self.loading = False

        self._tasks: list[PlannerTask] = []
        self._generation = 0
        self._pending: dict[str, int] = {}
        self._banner: Banner | None = None
        self._fetch: asyncio.Task | None = None

    # -- derived state ------------------------------------------------------

    @property
    def tasks(self) -> list[PlannerTask]:
        return list(self._tasks)

    @property
    def selected_sprint(self) -> Sprint | None:
        if self.selected_sprint_id is None:
            return None
        return next((s for s in self.sprints if s.id == self.selected_sprint_id), None)

    @property
    def active_sprint(self) -> Sprint | None:
        """Stored metadata of the selected sprint, else what the last fetch resolved."""
        return self.selected_sprint or self.remote_sprint

    @property
    def visible_tasks(self) -> list[PlannerTask]:
        return filter_tasks_for_person(self._tasks, self.selected_person_id)

    @property
    def sprint_days(self):
        return build_sprint_days(self.active_sprint)

    @property
    def buckets(self) -> AgendaBuckets:
        return build_day_buckets(self.visible_tasks, self.sprint_days)

    @property
    def workload(self) -> WorkloadSummary:
        return summarize_workload(self.visible_tasks, self.buckets, self.thresholds)

    @property
    def banner(self) -> Banner | None:
        banner = self._banner
        if banner is not None and banner.expires_at is not None and self.clock() >= banner.expires_at:
            self._banner = None
            return None
        return banner

    def dismiss_banner(self) -> None:
        self._banner = None

    def is_busy(self, task_id: str) -> bool:
        return self._pending.get(task_id, 0) > 0

    def find_task(self, task_id: str) -> PlannerTask | None:
        return next((t for t in self._tasks if t.id == task_id), None)

    # -- selection ----------------------------------------------------------

    async def start(self, now_ms: int | None = None) -> Outcome:
        """Apply the initial sprint/person selection and load the sprint."""
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        if self.selected_person_id is None:
            person = pick_initial_person(self.members)
            self.selected_person_id = person.id if person else None
        sprint = pick_initial_sprint(self.loaded_sprints, now_ms)
        if sprint is None:
            return Outcome.failure(ErrorKind.CONFIGURATION, "No sprints configured. Please sync sprints first.")
        return await self.select_sprint(sprint.id)

    def select_person(self, person_id: str | None) -> None:
        """Change the person filter. Never re-fetches."""
        self.selected_person_id = person_id or None

    async def select_sprint(self, sprint_id: str) -> Outcome:
        """Load all tasks of *sprint_id*, cancelling any fetch still in flight.

        The selection, task list and resolved sprint metadata change together
        and only when this fetch is still the latest one. A failed fetch
        leaves them untouched.
        """
        previous = self._fetch
        if previous is not None and not previous.done():
            logger.info("Cancelling stale task fetch for sprint %s", self.selected_sprint_id)
            previous.cancel()

        fetch = asyncio.ensure_future(self.gateway.fetch_sprint_tasks(sprint_id, include_done=False))
        self._fetch = fetch
        self.loading = True
        try:
            await asyncio.wait({fetch})
        except asyncio.CancelledError:
            fetch.cancel()
            if self._fetch is fetch:
                self._fetch = None
                self.loading = False
            raise

        if fetch is not self._fetch or fetch.cancelled():
            return Outcome.failure(ErrorKind.SUPERSEDED, "Sprint selection changed before tasks loaded.")

        self._fetch = None
        self.loading = False
        exc = fetch.exception()
        if exc is not None:
            logger.error("Failed to load tasks for sprint %s: %s", sprint_id, exc)
            return self._fail(exc, "Could not load the sprint tasks.")

        result: SprintTasks = fetch.result()
        self.selected_sprint_id = sprint_id
        self.remote_sprint = result.sprint if result.sprint_found else None
        self._tasks = list(result.tasks)
        self._generation += 1
        logger.info("Loaded %d tasks for sprint %s", len(self._tasks), sprint_id)
        return Outcome.success(f"Loaded {len(self._tasks)} tasks.")

    # -- mutations ----------------------------------------------------------

    async def move_task(self, task_id: str, target: str | DayAssignment) -> Outcome:
        """Move a task to another day (or to unplanned) as a single-day task."""
        try:
            assignment = _as_assignment(target)
        except ValueError as exc:
            return Outcome.failure(ErrorKind.INPUT, str(exc), day=str(exc))

        task = self.find_task(task_id)
        if task is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, f"Task {task_id} is not in the current sprint.")
        if task_assignment(task).key == assignment.key:
            return Outcome.success("Task already on that day.", task=task)

        timestamp = assignment_to_timestamp(assignment)
        optimistic = replace(task, due_date=timestamp, start_date=timestamp)
        return await self._commit(
            task,
            optimistic,
            lambda: self.gateway.update_task(
                task_id, {"due_date": timestamp, "start_date": timestamp}, current_name=task.name,
            ),
            success_message="Task updated in ClickUp.",
            failure_message="Could not move the task.",
        )

    async def save_task_edits(self, task_id: str, edits: TaskEdits) -> Outcome:
        """Save the edit form of a task.

        Input is validated before anything changes. Name, objective,
        acceptance criteria and estimate are always sent; the day and the
        assignee only when they differ from the task's current values.
        """
        field_errors = {}
        try:
            hours = parse_hours(edits.hours)
        except ValueError as exc:
            field_errors["hours"] = str(exc)
        try:
            assignment = _as_assignment(edits.day)
        except ValueError as exc:
            field_errors["day"] = str(exc)
        name = (edits.name or "").strip()
        if not name:
            field_errors["name"] = "A title is required."
        if field_errors:
            return Outcome(
                ok=False,
                message="Please fix the highlighted fields.",
                error=ErrorKind.INPUT,
                field_errors=field_errors,
            )

        task = self.find_task(task_id)
        if task is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, f"Task {task_id} is not in the current sprint.")

        if hours is not None and hours == ms_to_hours(task.time_estimate) and task.time_estimate:
            estimate_ms = task.time_estimate
        else:
            estimate_ms = hours_to_ms(hours)

        objective = (edits.objective or "").strip()
        acceptance = (edits.acceptance_criteria or "").strip()
        changes = {
            "name": name,
            "objective": objective,
            "acceptance_criteria": acceptance,
            "time_estimate_ms": estimate_ms,
        }
        local = {
            "name": name,
            "objective": objective,
            "acceptance_criteria": acceptance,
            "time_estimate": estimate_ms,
        }

        if task_assignment(task).key != assignment.key:
            timestamp = assignment_to_timestamp(assignment)
            changes["due_date"] = changes["start_date"] = timestamp
            local["due_date"] = local["start_date"] = timestamp

        assignee_id = edits.assignee_id or None
        current_assignee = task.assignee_ids[0] if task.assignee_ids else None
        if assignee_id != current_assignee:
            changes["assignee_id"] = assignee_id
            local["assignee_ids"] = (assignee_id,) if assignee_id else ()

        return await self._commit(
            task,
            replace(task, **local),
            lambda: self.gateway.update_task(task_id, changes, current_name=name),
            success_message="Task edited and synced.",
            failure_message="Could not save the changes.",
        )

    async def advance_task_to_next_sprint(self, task_id: str) -> Outcome:
        """Move a task into the sprint that starts after the selected one."""
        sprint = self.selected_sprint
        if sprint is None:
            return self._configuration_failure("Select a configured sprint first.")
        next_sprint = next_sprint_after(self.sprints, sprint)
        if next_sprint is None:
            return self._configuration_failure(f"No sprint configured after {sprint.name or sprint.id}.")

        task = self.find_task(task_id)
        if task is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, f"Task {task_id} is not in the current sprint.")

        index = self._tasks.index(task)
        generation = self._generation
        del self._tasks[index]
        self._acquire(task_id)
        try:
            moved = await self.gateway.move_task_to_next_sprint(
                task_id,
                sprint.effective_list_id,
                next_sprint.effective_list_id,
                next_sprint.first_monday,
                sprint.start_date,
                sprint.end_date,
                task.due_date,
            )
        except Exception as exc:
            logger.exception("Failed to move task %s to sprint %s", task_id, next_sprint.id)
            if generation == self._generation and self.find_task(task_id) is None:
                self._tasks.insert(min(index, len(self._tasks)), task)
            return self._fail(exc, "Could not move the task to the next sprint.")
        finally:
            self._release(task_id)

        self._notify(BannerKind.SUCCESS, f"Task moved to {next_sprint.name or next_sprint.id}.")
        return Outcome.success(f"Task moved to {next_sprint.name or next_sprint.id}.", task=moved)

    # -- internals ----------------------------------------------------------

    async def _commit(
        self,
        snapshot: PlannerTask,
        optimistic: PlannerTask,
        call: Callable[[], Awaitable[PlannerTask]],
        *,
        success_message: str,
        failure_message: str,
    ) -> Outcome:
        if self.is_busy(snapshot.id):
            logger.warning("Task %s already has a pending change; last write wins", snapshot.id)
        self._replace(snapshot, optimistic)
        self._acquire(snapshot.id)
        try:
            server_task = await call()
        except Exception as exc:
            logger.exception("Update of task %s failed, rolling back", snapshot.id)
            self._replace(optimistic, snapshot)
            return self._fail(exc, failure_message)
        finally:
            self._release(snapshot.id)

        reconciled = self._reconcile(optimistic, server_task)
        self._replace(optimistic, reconciled)
        self._notify(BannerKind.SUCCESS, success_message)
        return Outcome.success(success_message, task=reconciled)

    def _reconcile(self, local: PlannerTask, server: PlannerTask) -> PlannerTask:
        """Trust the server's assignees only if they keep the task in the current view."""
        person = self.selected_person_id
        if server.assignee_ids and (person is None or server.is_assigned_to(person)):
            return server
        return replace(server, assignee_ids=local.assignee_ids)

    def _replace(self, current: PlannerTask, new: PlannerTask) -> bool:
        for index, task in enumerate(self._tasks):
            if task is current:
                self._tasks[index] = new
                return True
        logger.debug("Task %s changed underneath a pending update; keeping newer state", current.id)
        return False

    def _acquire(self, task_id: str) -> None:
        self._pending[task_id] = self._pending.get(task_id, 0) + 1

    def _release(self, task_id: str) -> None:
        remaining = self._pending.get(task_id, 0) - 1
        if remaining > 0:
            self._pending[task_id] = remaining
        else:
            self._pending.pop(task_id, None)

    def _notify(self, kind: BannerKind, message: str, *, sticky: bool = False) -> None:
        expires_at = None if sticky else self.clock() + self.banner_seconds
        self._banner = Banner(kind=kind, message=message, expires_at=expires_at)

    def _configuration_failure(self, message: str) -> Outcome:
        self._notify(BannerKind.ERROR, message, sticky=True)
        return Outcome.failure(ErrorKind.CONFIGURATION, message)

    def _fail(self, exc: BaseException, fallback: str) -> Outcome:
        if isinstance(exc, ConfigurationError):
            return self._configuration_failure(str(exc) or fallback)
        message = _error_message(exc, fallback)
        self._notify(BannerKind.ERROR, message)
        return Outcome.failure(ErrorKind.REMOTE, message)

    # -- serialization ------------------------------------------------------

    def to_dict(self) -> dict:
        """Snapshot of the agenda for the API and the CLI."""
        buckets = self.buckets
        workload = self.workload
        loads = {day.key: day for day in workload.days}
        sprint = self.active_sprint
        banner = self.banner
        return {
            "sprint": sprint.to_dict() if sprint else None,
            "personId": self.selected_person_id,
            "weekRange": week_range_label(self.sprint_days),
            "totalHours": round(workload.total_hours, 1),
            "hoursPerPerson": {
                person_id: round(hours, 1) for person_id, hours in hours_per_person(self._tasks).items()
            },
            "days": [
                {
                    "key": bucket.day.key,
                    "label": bucket.day.label,
                    "hours": round(bucket.hours, 2),
                    "load": loads[bucket.day.key].level.value,
                    "segments": [
                        {
                            "taskId": segment.task.id,
                            "name": segment.task.name,
                            "hours": round(segment.hours, 2),
                            "isStart": segment.is_start,
                            "isEnd": segment.is_end,
                            "busy": self.is_busy(segment.task.id),
                        }
                        for segment in bucket.segments
                    ],
                }
                for bucket in buckets.days
            ],
            "unplanned": [
                {"taskId": task.id, "name": task.name, "hours": ms_to_hours(task.time_estimate)}
                for task in buckets.unplanned
            ],
            "banner": {"kind": banner.kind.value, "message": banner.message} if banner else None,
        }
