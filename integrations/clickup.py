"""ClickUp API gateway for sprint tasks, partial updates and list membership."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from integrations.description import build_description, parse_description
from planner.agenda.models import PlannerTask, Sprint, SprintConfigData

logger = logging.getLogger("integrations.clickup")

DEFAULT_API_URL = "https://api.clickup.com/api/v2"
DONE_STATUSES = {"done", "complete", "closed"}
MAX_PAGES = 100

# Abstract update vocabulary accepted by ``ClickUpGateway.update_task``.
UPDATE_FIELDS = frozenset({
    "name",
    "objective",
    "acceptance_criteria",
    "assignee_id",
    "due_date",
    "start_date",
    "time_estimate_ms",
})


class ClickUpError(Exception):
    """Base class for gateway failures."""


class ClickUpAPIError(ClickUpError):
    """Raised when the ClickUp API returns a non-2xx response."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"ClickUp API error {status_code}: {detail}")


class ConfigurationError(ClickUpError):
    """Raised when a required identifier or credential is not configured."""


class EmptyUpdateError(ClickUpError, ValueError):
    """Raised when a partial update maps to zero ClickUp fields."""


class SprintConfigSource(Protocol):
    async def load_sprint_config(self) -> SprintConfigData: ...


@dataclass
class SprintTasks:
    """Result of ``fetch_sprint_tasks``.

    ``sprint`` is the stored metadata when found, otherwise a minimal
    ``Sprint(id=sprint_id)`` (``sprint_found`` tells the two apart).
    """

    sprint: Sprint
    sprint_found: bool
    tasks: list[PlannerTask]
    total_sprint_tasks: int

    def sprint_dict(self) -> dict:
        if not self.sprint_found:
            return {"id": self.sprint.id}
        return {
            "id": self.sprint.id,
            "name": self.sprint.name,
            "startDate": self.sprint.start_date,
            "endDate": self.sprint.end_date,
            "firstMonday": self.sprint.first_monday,
        }


# ---------------------------------------------------------------------------
# Task payload helpers
# ---------------------------------------------------------------------------

def _optional_ms(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def map_clickup_task(task: dict) -> PlannerTask:
    """Convert a raw ClickUp task into a :class:`PlannerTask`."""
    parsed = parse_description(task.get("markdown_description") or task.get("description") or "")
    estimate = task.get("time_estimate")
    task_list = task.get("list") or {}
    return PlannerTask(
        id=str(task["id"]),
        name=task.get("name") or "",
        status=(task.get("status") or {}).get("status") or "unknown",
        due_date=_optional_ms(task.get("due_date")),
        start_date=_optional_ms(task.get("start_date")),
        time_estimate=estimate if isinstance(estimate, int) and not isinstance(estimate, bool) else None,
        assignee_ids=tuple(str(user.get("id")) for user in task.get("assignees") or []),
        url=task.get("url") or None,
        description=parsed.raw,
        objective=parsed.objective,
        acceptance_criteria=parsed.acceptance_criteria,
        list_id=str(task_list["id"]) if task_list.get("id") else None,
        list_name=task_list.get("name"),
    )


def is_done(task: dict) -> bool:
    status = task.get("status") or {}
    name = (status.get("status") or "").lower()
    kind = (status.get("type") or "").lower()
    return name in DONE_STATUSES or kind == "done"


def primary_list_id(task: dict) -> str:
    return str((task.get("list") or {}).get("id") or task.get("list_id") or "")


def belongs_to_list(task: dict, list_id: str) -> bool:
    """Check the task's primary list, then its secondary locations."""
    if not list_id:
        return False
    wanted = str(list_id)
    if primary_list_id(task) == wanted:
        return True
    for location in task.get("locations") or []:
        if str(location.get("list_id") or location.get("id") or "") == wanted:
            return True
    return False


def build_update_body(changes: dict, current_name: str | None = None) -> dict:
    """Translate an abstract partial update into the ClickUp update body.

    Presence of a key in *changes* means "set this field"; a ``None`` value
    clears it. ``start_date`` follows ``due_date`` when only the latter is
    given.

    Raises:
        ValueError: If *changes* holds a key outside ``UPDATE_FIELDS``.
        EmptyUpdateError: If the resulting body would be empty.
    """
    unknown = set(changes) - UPDATE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported update fields: {', '.join(sorted(unknown))}")

    body: dict = {}
    name = changes.get("name")
    if isinstance(name, str):
        body["name"] = name.strip()

    if "objective" in changes or "acceptance_criteria" in changes:
        title = name if isinstance(name, str) and name.strip() else current_name or "Task"
        body["markdown_description"] = build_description(
            title,
            changes.get("objective") or "",
            changes.get("acceptance_criteria") or "",
        )

    if "due_date" in changes:
        body["due_date"] = changes["due_date"]

    if "start_date" in changes:
        body["start_date"] = changes["start_date"]
    elif "due_date" in changes:
        body["start_date"] = changes["due_date"]

    if "time_estimate_ms" in changes:
        value = changes["time_estimate_ms"]
        body["time_estimate"] = int(value) if isinstance(value, (int, float)) else None

    if "assignee_id" in changes:
        assignee_id = changes["assignee_id"]
        body["assignees"] = [assignee_id] if assignee_id else []

    if not body:
        raise EmptyUpdateError("No valid fields provided for update.")
    return body


def task_due_within(due_date: int | None, start_date: int | None, end_date: int | None) -> bool:
    if due_date is None or start_date is None or end_date is None:
        return False
    return start_date <= due_date <= end_date


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class ClickUpGateway:
    """Async client for the ClickUp REST API.

    Each operation opens its own :class:`httpx.AsyncClient`, so one gateway
    can serve callers running on different event loops.
    """

    def __init__(
        self,
        token: str,
        store: SprintConfigSource,
        *,
        base_url: str = DEFAULT_API_URL,
        team_id: str = "",
        default_list_id: str = "",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
        max_pages: int = MAX_PAGES,
    ) -> None:
        self.token = token
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.team_id = team_id
        self.default_list_id = default_list_id
        self.timeout = timeout
        self.transport = transport
        self.max_pages = max_pages

    def _client(self) -> httpx.AsyncClient:
        if not self.token:
            raise ConfigurationError("CLICKUP_API_TOKEN is not configured.")
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": self.token},
            timeout=self.timeout,
            transport=self.transport,
        )

    def _require_team_id(self) -> str:
        if not self.team_id:
            raise ConfigurationError("CLICKUP_TEAM_ID is not configured.")
        return self.team_id

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
    ) -> dict:
        response = await client.request(method, path, params=params, json=json)
        if not response.is_success:
            raise ClickUpAPIError(response.status_code, response.text)
        if not response.content:
            return {}
        return response.json()

    async def _load_config(self) -> SprintConfigData:
        try:
            return await self.store.load_sprint_config()
        except Exception:
            logger.exception("Unable to load sprint metadata from the store")
            return SprintConfigData()

    # -- reads --------------------------------------------------------------

    async def _fetch_list_tasks(
        self,
        client: httpx.AsyncClient,
        list_id: str,
        include_closed: bool = True,
    ) -> list[dict]:
        """Fetch every task of a list, one page at a time until an empty page."""
        tasks: list[dict] = []
        for page in range(self.max_pages):
            params = {
                "page": str(page),
                "include_closed": str(include_closed).lower(),
                "subtasks": "true",
                "order_by": "due_date",
            }
            data = await self._request(client, "GET", f"/list/{list_id}/task", params=params)
            batch = data.get("tasks") or []
            if not batch:
                return tasks
            tasks.extend(batch)
        logger.warning("Reached page limit (%d) for list %s", self.max_pages, list_id)
        return tasks

    async def fetch_sprint_tasks(
        self,
        sprint_id: str,
        assignee_id: str | None = None,
        include_done: bool = False,
    ) -> SprintTasks:
        """Fetch every task belonging to a sprint.

        Tasks come from the sprint's own list plus the shared backlog list
        (kept only when the sprint list is their primary list or one of their
        secondary locations), de-duplicated by id.

        Args:
            sprint_id: Sprint id from the sprint calendar config.
            assignee_id: Optional member id to filter on.
            include_done: Keep done/complete/closed tasks.

        Returns:
            A :class:`SprintTasks` with the resolved sprint metadata.

        Raises:
            ConfigurationError: If the backlog list id has not been synced.
            ClickUpAPIError: If ClickUp rejects a page request.
        """
        config = await self._load_config()
        if not config.general_list_id:
            raise ConfigurationError("Backend general list ID not configured. Please sync sprints first.")

        sprint = config.sprints.get(str(sprint_id))
        sprint_list_id = sprint.effective_list_id if sprint else str(sprint_id)
        logger.info(
            "Fetching tasks for sprint %s (list %s, backlog %s)",
            sprint_id, sprint_list_id, config.general_list_id,
        )

        merged: list[dict] = []
        seen: set[str] = set()

        def add(task: dict) -> None:
            task_id = str(task.get("id"))
            if task_id not in seen:
                seen.add(task_id)
                merged.append(task)

        async with self._client() as client:
            direct = await self._fetch_list_tasks(client, sprint_list_id)
            for task in direct:
                add(task)
            backlog = await self._fetch_list_tasks(client, config.general_list_id)
            from_backlog = [t for t in backlog if belongs_to_list(t, sprint_list_id)]
            for task in from_backlog:
                add(task)

        logger.info(
            "Sprint %s: %d direct, %d from backlog, %d unique",
            sprint_id, len(direct), len(from_backlog), len(merged),
        )

        filtered = [t for t in merged if include_done or not is_done(t)]
        if assignee_id:
            wanted = str(assignee_id)
            filtered = [
                t for t in filtered
                if wanted in {str(user.get("id")) for user in t.get("assignees") or []}
            ]

        return SprintTasks(
            sprint=sprint or Sprint(id=str(sprint_id)),
            sprint_found=sprint is not None,
            tasks=[map_clickup_task(t) for t in filtered],
            total_sprint_tasks=len(merged),
        )

    # -- writes -------------------------------------------------------------

    async def update_task(
        self,
        task_id: str,
        changes: dict,
        current_name: str | None = None,
    ) -> PlannerTask:
        """Apply a partial update to a task.

        Args:
            task_id: ClickUp task id.
            changes: Subset of ``UPDATE_FIELDS``; see :func:`build_update_body`.
            current_name: Task name used as the Objective fallback when the
                update rewrites the description without renaming.

        Returns:
            The updated task as returned by ClickUp.

        Raises:
            EmptyUpdateError: If *changes* maps to no ClickUp field.
            ClickUpAPIError: If ClickUp rejects the update.
        """
        body = build_update_body(changes, current_name)
        logger.info("Updating task %s with fields %s", task_id, sorted(body))
        async with self._client() as client:
            data = await self._request(client, "PUT", f"/task/{task_id}", json=body)
        return map_clickup_task(data)

    async def _detach_from_list(self, client: httpx.AsyncClient, list_id: str, task_id: str) -> bool:
        try:
            await self._request(client, "DELETE", f"/list/{list_id}/task/{task_id}")
        except (ClickUpAPIError, httpx.HTTPError) as exc:
            logger.warning("Could not remove task %s from list %s: %s", task_id, list_id, exc)
            return False
        logger.info("Removed task %s from list %s", task_id, list_id)
        return True

    async def move_task_to_next_sprint(
        self,
        task_id: str,
        current_sprint_list_id: str,
        next_sprint_list_id: str,
        next_sprint_first_monday: int | None,
        current_sprint_start_date: int | None,
        current_sprint_end_date: int | None,
        task_due_date: int | None,
    ) -> PlannerTask:
        """Move a task from the current sprint list into the next one.

        The task is added to the next sprint list as a secondary location,
        then detached from the current sprint list. A list cannot be removed
        while it is the task's primary list, so in that case the task is
        first attached to the shared backlog list. Detaching is best effort:
        failures are logged and the already-added membership stays. Dates
        move to the next sprint's first Monday only when the task was due
        inside the current sprint window.

        Returns:
            The task as re-read from ClickUp after the move.

        Raises:
            ClickUpAPIError: If reading the task, adding it to the next list
                or rewriting its dates fails.
        """
        current_list = str(current_sprint_list_id)
        async with self._client() as client:
            current = await self._request(
                client, "GET", f"/task/{task_id}", params={"include_location": "true"},
            )

            await self._request(client, "POST", f"/list/{next_sprint_list_id}/task/{task_id}", json={})
            logger.info("Added task %s to sprint list %s", task_id, next_sprint_list_id)

            if primary_list_id(current) != current_list:
                await self._detach_from_list(client, current_list, task_id)
            else:
                config = await self._load_config()
                if not config.general_list_id:
                    logger.warning(
                        "Task %s has sprint list %s as primary and no backlog list is configured; "
                        "leaving it in place", task_id, current_list,
                    )
                else:
                    try:
                        await self._request(
                            client, "POST", f"/list/{config.general_list_id}/task/{task_id}", json={},
                        )
                    except (ClickUpAPIError, httpx.HTTPError) as exc:
                        logger.warning("Could not re-home task %s to backlog list: %s", task_id, exc)
                    else:
                        await self._detach_from_list(client, current_list, task_id)

            if next_sprint_first_monday is not None and task_due_within(
                task_due_date, current_sprint_start_date, current_sprint_end_date,
            ):
                await self._request(
                    client, "PUT", f"/task/{task_id}",
                    json={"due_date": next_sprint_first_monday, "start_date": next_sprint_first_monday},
                )
                logger.info("Rescheduled task %s to next sprint's first Monday", task_id)
            else:
                logger.info("Task %s is due outside the current sprint; keeping its dates", task_id)

            updated = await self._request(
                client, "GET", f"/task/{task_id}", params={"include_location": "true"},
            )
        return map_clickup_task(updated)

    async def create_task(
        self,
        title: str,
        objective: str,
        acceptance_criteria: str = "",
        list_id: str | None = None,
    ) -> dict:
        """Create a task with the templated description.

        Returns:
            A dict with ``id``, ``name``, ``publicId``, ``url`` and ``listId``.

        Raises:
            ValueError: If *title* or *objective* is blank.
            ConfigurationError: If no target list is configured.
            ClickUpAPIError: If ClickUp rejects the request.
        """
        if not (title or "").strip():
            raise ValueError("A task title is required to create a ClickUp task.")
        if not (objective or "").strip():
            raise ValueError("Objective is required to create a ClickUp task.")
        target = list_id or self.default_list_id
        if not target:
            raise ConfigurationError("CLICKUP_LIST_ID is not configured.")

        body = {
            "name": title.strip(),
            "markdown_description": build_description(
                title, objective, acceptance_criteria, include_title=True,
            ),
            "tags": [],
        }
        async with self._client() as client:
            task = await self._request(client, "POST", f"/list/{target}/task", json=body)

        return {
            "id": task.get("id"),
            "name": task.get("name") or title.strip(),
            "publicId": task.get("custom_id") or task.get("task_id") or task.get("id"),
            "url": task.get("url"),
            "listId": target,
        }

    # -- workspace structure (sync) -----------------------------------------

    async def get_spaces(self, client: httpx.AsyncClient) -> list[dict]:
        data = await self._request(client, "GET", f"/team/{self._require_team_id()}/space")
        return data.get("spaces") or []

    async def get_folders(self, client: httpx.AsyncClient, space_id: str) -> list[dict]:
        try:
            data = await self._request(client, "GET", f"/space/{space_id}/folder")
        except ClickUpAPIError as exc:
            logger.warning("Failed to fetch folders for space %s: %s", space_id, exc)
            return []
        return data.get("folders") or []

    async def get_lists(self, client: httpx.AsyncClient, folder_id: str) -> list[dict]:
        data = await self._request(client, "GET", f"/folder/{folder_id}/list")
        return data.get("lists") or []

    async def _sprints_from_folders(self, client: httpx.AsyncClient) -> list[dict]:
        """Treat every non-archived list inside a folder named "Sprints" as a sprint."""
        sprints: list[dict] = []
        for space in await self.get_spaces(client):
            folders = await self.get_folders(client, space["id"])
            for folder in folders:
                if (folder.get("name") or "").strip().lower() != "sprints":
                    continue
                try:
                    lists = await self.get_lists(client, folder["id"])
                except ClickUpAPIError as exc:
                    logger.warning("Failed to fetch lists of folder %s: %s", folder.get("name"), exc)
                    continue
                for item in lists:
                    if item.get("archived"):
                        continue
                    sprints.append({
                        "id": str(item["id"]),
                        "name": item.get("name") or "",
                        "start_date": None,
                        "end_date": None,
                        "status": "open",
                    })
        logger.info("Found %d sprints via sprint folders", len(sprints))
        return sprints

    async def get_sprints(self) -> list[dict]:
        """Fetch sprints via the team endpoint, falling back to sprint folders."""
        team_id = self._require_team_id()
        async with self._client() as client:
            try:
                data = await self._request(
                    client, "GET", f"/team/{team_id}/sprint", params={"include_closed": "true"},
                )
                sprints = data.get("sprints") or []
            except ClickUpAPIError as exc:
                logger.info("Team sprint endpoint unavailable (%s), walking sprint folders", exc.status_code)
                sprints = []
            if sprints:
                logger.info("Fetched %d sprints via team endpoint", len(sprints))
                return sprints
            return await self._sprints_from_folders(client)

    async def find_general_list(self) -> dict | None:
        """Locate the shared backlog: a "general" list inside a "backend" folder."""
        async with self._client() as client:
            for space in await self.get_spaces(client):
                for folder in await self.get_folders(client, space["id"]):
                    if "backend" not in (folder.get("name") or "").lower():
                        continue
                    for item in await self.get_lists(client, folder["id"]):
                        if "general" in (item.get("name") or "").lower():
                            return {**item, "folder": {"id": folder["id"], "name": folder.get("name")}}
        return None

    async def get_team_members(self) -> list[dict]:
        async with self._client() as client:
            data = await self._request(client, "GET", f"/team/{self._require_team_id()}/member")
        return data.get("members") or []

