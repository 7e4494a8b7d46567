"""Data models for sprints, team members and planner tasks.

Store records use the camelCase keys written by the sync processes; the
``from_dict``/``to_dict`` helpers translate between them and these models.
"""

from __future__ import annotations

from dataclasses import dataclass, field


def _optional_int(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Sprint:
    """A sprint as stored in the sprint calendar config."""

    id: str
    name: str = ""
    number: int | None = None
    start_date: int | None = None
    end_date: int | None = None
    first_monday: int | None = None
    list_id: str | None = None
    created_at: int | None = None
    updated_at: int | None = None

    @property
    def window_anchor(self) -> int | None:
        """Epoch ms the 7-day window starts from (``firstMonday`` else ``startDate``)."""
        if self.first_monday is not None:
            return self.first_monday
        return self.start_date

    @property
    def effective_list_id(self) -> str:
        return self.list_id or self.id

    @classmethod
    def from_dict(cls, data: dict) -> Sprint:
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name") or "",
            number=_optional_int(data.get("number")),
            start_date=_optional_int(data.get("startDate")),
            end_date=_optional_int(data.get("endDate")),
            first_monday=_optional_int(data.get("firstMonday")),
            list_id=str(data["listId"]) if data.get("listId") else None,
            created_at=_optional_int(data.get("createdAt")),
            updated_at=_optional_int(data.get("updatedAt")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "number": self.number,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "firstMonday": self.first_monday,
            "listId": self.list_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class SprintConfigData:
    """The ``sprintConfig`` document: sprints keyed by id plus the backlog list."""

    sprints: dict[str, Sprint] = field(default_factory=dict)
    general_list_id: str | None = None
    last_sync: int | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> SprintConfigData:
        if not isinstance(data, dict):
            return cls()
        raw_sprints = data.get("sprints")
        sprints: dict[str, Sprint] = {}
        if isinstance(raw_sprints, dict):
            for sprint_id, raw in raw_sprints.items():
                if isinstance(raw, dict):
                    sprints[str(sprint_id)] = Sprint.from_dict({"id": sprint_id, **raw})
        return cls(
            sprints=sprints,
            general_list_id=data.get("backEnGeneralListId") or None,
            last_sync=_optional_int(data.get("lastSync")),
        )

    def to_dict(self) -> dict:
        return {
            "sprints": {sprint_id: s.to_dict() for sprint_id, s in self.sprints.items()},
            "backEnGeneralListId": self.general_list_id,
            "lastSync": self.last_sync,
        }


@dataclass(frozen=True)
class TeamMember:
    """A member of the team directory."""

    id: str
    name: str
    email: str = ""
    aliases: tuple[str, ...] = ()
    team: str = "Backend"
    created_at: int | None = None
    updated_at: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> TeamMember:
        aliases = data.get("howToAddress") or []
        if isinstance(aliases, str):
            aliases = [aliases]
        name = data.get("name") or ""
        return cls(
            id=str(data.get("id", "")),
            name=name,
            email=data.get("email") or "",
            aliases=tuple(aliases) or ((name.split(" ")[0],) if name else ()),
            team=data.get("team") or "Backend",
            created_at=_optional_int(data.get("createdAt")),
            updated_at=_optional_int(data.get("updatedAt")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "howToAddress": list(self.aliases),
            "team": self.team,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class PlannerTask:
    """A tracker task as the planner sees it.

    Instances are immutable; local edits produce new instances with
    :func:`dataclasses.replace` so a pre-mutation snapshot can be kept by
    reference.
    """

    id: str
    name: str
    status: str = "unknown"
    due_date: int | None = None
    start_date: int | None = None
    time_estimate: int | None = None
    assignee_ids: tuple[str, ...] = ()
    url: str | None = None
    description: str = ""
    objective: str = ""
    acceptance_criteria: str = ""
    list_id: str | None = None
    list_name: str | None = None

    def is_assigned_to(self, person_id: str | None) -> bool:
        return person_id is not None and str(person_id) in self.assignee_ids

    @classmethod
    def from_dict(cls, data: dict) -> PlannerTask:
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            status=data.get("status") or "unknown",
            due_date=_optional_int(data.get("dueDate")),
            start_date=_optional_int(data.get("startDate")),
            time_estimate=_optional_int(data.get("timeEstimate")),
            assignee_ids=tuple(str(a) for a in data.get("assigneeIds") or ()),
            url=data.get("url") or None,
            description=data.get("description") or "",
            objective=data.get("objective") or "",
            acceptance_criteria=data.get("acceptanceCriteria") or "",
            list_id=data.get("listId"),
            list_name=data.get("listName"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "dueDate": self.due_date,
            "startDate": self.start_date,
            "timeEstimate": self.time_estimate,
            "assigneeIds": list(self.assignee_ids),
            "url": self.url,
            "description": self.description,
            "objective": self.objective,
            "acceptanceCriteria": self.acceptance_criteria,
            "listId": self.list_id,
            "listName": self.list_name,
        }
