"""Shared fixtures: local-time helpers and in-memory fakes for the store and gateway."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import date, datetime, time

import pytest

from integrations.clickup import ClickUpAPIError, SprintTasks
from integrations.store import PendingTask, PendingTaskNotFoundError
from planner.agenda.models import PlannerTask, Sprint, SprintConfigData, TeamMember

HOUR_MS = 3_600_000


def at(day: date, hour: int = 12) -> int:
    """Epoch ms of *day* at *hour* local time."""
    return int(datetime.combine(day, time(hour, 0)).timestamp() * 1000)


def midnight(day: date) -> int:
    return at(day, 0)


class FakeStore:
    def __init__(self, config: SprintConfigData | None = None, members: dict | None = None):
        self.config = config or SprintConfigData()
        self.members = dict(members or {})
        self.corrections: dict[str, str] = {}
        self.saved_corrections: list[tuple[str, str]] = []
        self.saved_configs: list[SprintConfigData] = []
        self.pending: dict[str, PendingTask] = {}
        self.completed: list[tuple[PendingTask, str]] = []

    async def load_sprint_config(self) -> SprintConfigData:
        return self.config

    async def save_sprint_config(self, config: SprintConfigData) -> None:
        self.config = config
        self.saved_configs.append(config)

    async def load_team_members(self) -> dict:
        return dict(self.members)

    async def save_team_members(self, members: dict, last_sync: int) -> None:
        self.members = dict(members)
        self.last_sync = last_sync

    async def load_corrections(self) -> dict[str, str]:
        return dict(self.corrections)

    async def save_corrections(self, pairs) -> None:
        self.saved_corrections.extend(pairs)

    async def delete_correction(self, original: str) -> None:
        self.corrections.pop(original.lower(), None)

    async def add_pending_task(self, text: str) -> PendingTask:
        if not text.strip():
            raise ValueError("Task text is required.")
        task = PendingTask(id=f"-p{len(self.pending) + 1}", text=text.strip(), created_at=len(self.pending))
        self.pending[task.id] = task
        return task

    async def load_pending_tasks(self) -> list[PendingTask]:
        return sorted(self.pending.values(), key=lambda t: t.created_at, reverse=True)

    async def complete_pending_task(self, task_id: str, clickup_task_url: str) -> None:
        if task_id not in self.pending:
            raise PendingTaskNotFoundError(task_id)
        self.completed.append((self.pending.pop(task_id), clickup_task_url))


class FakeGateway:
    """In-memory task service.

    ``update_task`` applies the partial update to its own copy and returns
    it. Set ``fail_with`` to make the next write raise; set ``hold`` to an
    ``asyncio.Event`` to park writes until it is set.
    """

    def __init__(self, tasks: list[PlannerTask] | None = None):
        self.tasks = {task.id: task for task in tasks or []}
        self.calls: list[tuple] = []
        self.fail_with: Exception | None = None
        self.hold: asyncio.Event | None = None
        self.narrow_assignees_to: tuple[str, ...] | None = None
        self.fetch_delays: dict[str, asyncio.Event] = {}
        self.fetch_error: Exception | None = None

    async def fetch_sprint_tasks(self, sprint_id, assignee_id=None, include_done=False):
        self.calls.append(("fetch", sprint_id))
        gate = self.fetch_delays.get(sprint_id)
        if gate is not None:
            await gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        tasks = [t for t in self.tasks.values() if t.list_id in (None, sprint_id)]
        return SprintTasks(
            sprint=Sprint(id=sprint_id),
            sprint_found=False,
            tasks=tasks,
            total_sprint_tasks=len(tasks),
        )

    async def _maybe_fail(self):
        if self.hold is not None:
            await self.hold.wait()
        if self.fail_with is not None:
            exc, self.fail_with = self.fail_with, None
            raise exc

    async def update_task(self, task_id, changes, current_name=None):
        self.calls.append(("update", task_id, dict(changes)))
        await self._maybe_fail()
        task = self.tasks[task_id]
        local = {}
        for key, attr in (
            ("name", "name"),
            ("objective", "objective"),
            ("acceptance_criteria", "acceptance_criteria"),
            ("due_date", "due_date"),
            ("start_date", "start_date"),
            ("time_estimate_ms", "time_estimate"),
        ):
            if key in changes:
                local[attr] = changes[key]
        if "assignee_id" in changes:
            local["assignee_ids"] = (changes["assignee_id"],) if changes["assignee_id"] else ()
        updated = replace(task, **local)
        self.tasks[task_id] = updated
        if self.narrow_assignees_to is not None:
            return replace(updated, assignee_ids=self.narrow_assignees_to)
        return updated

    async def move_task_to_next_sprint(self, task_id, *args):
        self.calls.append(("advance", task_id, args))
        await self._maybe_fail()
        moved = replace(self.tasks[task_id], list_id=args[1])
        self.tasks[task_id] = moved
        return moved


@pytest.fixture
def sprint_week():
    """Sprint anchored on Monday 2025-11-17."""
    return Sprint(
        id="s28",
        name="Sprint 28",
        number=28,
        start_date=midnight(date(2025, 11, 17)),
        end_date=at(date(2025, 11, 23), 23),
        first_monday=midnight(date(2025, 11, 17)),
    )


@pytest.fixture
def next_sprint():
    return Sprint(
        id="s29",
        name="Sprint 29",
        number=29,
        start_date=midnight(date(2025, 11, 24)),
        end_date=at(date(2025, 11, 30), 23),
        first_monday=midnight(date(2025, 11, 24)),
        list_id="list-29",
    )


@pytest.fixture
def members():
    return [
        TeamMember(id="u2", name="zoe Park"),
        TeamMember(id="u1", name="Ana Ruiz"),
    ]


@pytest.fixture
def remote_error():
    return ClickUpAPIError(500, "boom")
