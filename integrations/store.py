"""Firebase Realtime Database client for sprint config, team directory, corrections
and the queue of dictated tasks waiting to be turned into ClickUp tasks.

Talks to the database's REST interface (``<db>/<path>.json``). Requests are
authorized with, in order of preference, a legacy database secret, an ID
token obtained by email/password sign-in, or nothing (open rules).
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass

import httpx

from planner.agenda.models import SprintConfigData, TeamMember

logger = logging.getLogger("integrations.store")

SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"

SPRINT_CONFIG_PATH = "sprintConfig"
TEAM_MEMBERS_PATH = "teamMembers"
CORRECTIONS_PATH = "corrections"
PENDING_TASKS_PATH = "tasks"
COMPLETED_TASKS_PATH = "completedTasks"

# Refresh the ID token this many seconds before it expires.
TOKEN_EXPIRY_MARGIN = 60


class StoreError(Exception):
    """Raised when the document store rejects a request."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Store error {status_code}: {detail}")


class PendingTaskNotFoundError(StoreError):
    def __init__(self, task_id: str) -> None:
        super().__init__(404, f"Task with id {task_id} not found")


@dataclass(frozen=True)
class PendingTask:
    """A dictated task queued for later review."""

    id: str
    text: str
    created_at: int
    completed: bool = False

    def to_dict(self) -> dict:
        return {"id": self.id, "text": self.text, "createdAt": self.created_at, "completed": self.completed}


def _now_ms() -> int:
    return int(time.time() * 1000)


def correction_key(original: str) -> str:
    """Store key for a correction: lower-cased, whitespace runs as ``_``."""
    return re.sub(r"\s+", "_", original.lower().strip())


class FirebaseStore:
    def __init__(
        self,
        database_url: str,
        *,
        api_key: str = "",
        email: str = "",
        password: str = "",
        database_secret: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.database_url = database_url.rstrip("/")
        self.api_key = api_key
        self.email = email
        self.password = password
        self.database_secret = database_secret
        self.timeout = timeout
        self.transport = transport
        self._id_token: str | None = None
        self._token_expires_at = 0.0

    def _client(self) -> httpx.AsyncClient:
        if not self.database_url:
            raise StoreError(0, "FIREBASE_DATABASE_URL is not configured.")
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _auth_params(self, client: httpx.AsyncClient) -> dict:
        if self.database_secret:
            return {"auth": self.database_secret}
        if not (self.api_key and self.email and self.password):
            return {}
        if self._id_token and time.monotonic() < self._token_expires_at:
            return {"auth": self._id_token}

        response = await client.post(
            SIGN_IN_URL,
            params={"key": self.api_key},
            json={"email": self.email, "password": self.password, "returnSecureToken": True},
        )
        if not response.is_success:
            raise StoreError(response.status_code, f"Sign-in failed: {response.text}")
        data = response.json()
        self._id_token = data["idToken"]
        lifetime = int(data.get("expiresIn") or 3600)
        self._token_expires_at = time.monotonic() + max(lifetime - TOKEN_EXPIRY_MARGIN, 0)
        logger.info("Signed in to the document store as %s", self.email)
        return {"auth": self._id_token}

    async def _request(self, method: str, path: str, payload=None):
        url = f"{self.database_url}/{path.strip('/')}.json"
        async with self._client() as client:
            params = await self._auth_params(client)
            kwargs = {"params": params}
            if payload is not None:
                kwargs["json"] = payload
            response = await client.request(method, url, **kwargs)
        if not response.is_success:
            raise StoreError(response.status_code, response.text)
        return response.json() if response.content else None

    async def get(self, path: str):
        """Read the value at *path* (``None`` when absent)."""
        return await self._request("GET", path)

    async def put(self, path: str, value) -> None:
        await self._request("PUT", path, value)

    async def post(self, path: str, value) -> str:
        """Append *value* under *path* and return the generated push key."""
        data = await self._request("POST", path, value)
        return (data or {}).get("name") or ""

    async def delete(self, path: str) -> None:
        await self._request("DELETE", path)

    # -- sprint calendar ----------------------------------------------------

    async def load_sprint_config(self) -> SprintConfigData:
        return SprintConfigData.from_dict(await self.get(SPRINT_CONFIG_PATH))

    async def save_sprint_config(self, config: SprintConfigData) -> None:
        await self.put(SPRINT_CONFIG_PATH, config.to_dict())
        logger.info("Saved %d sprints to the store", len(config.sprints))

    # -- team directory -----------------------------------------------------

    async def load_team_members(self) -> dict[str, TeamMember]:
        data = await self.get(TEAM_MEMBERS_PATH) or {}
        members = data.get("members") if isinstance(data, dict) else None
        if not isinstance(members, dict):
            return {}
        return {
            str(member_id): TeamMember.from_dict({"id": member_id, **raw})
            for member_id, raw in members.items()
            if isinstance(raw, dict)
        }

    async def save_team_members(self, members: dict[str, TeamMember], last_sync: int) -> None:
        await self.put(TEAM_MEMBERS_PATH, {
            "members": {member_id: m.to_dict() for member_id, m in members.items()},
            "lastSync": last_sync,
        })
        logger.info("Saved %d team members to the store", len(members))

    # -- transcription corrections ------------------------------------------

    async def load_corrections(self) -> dict[str, str]:
        """Map of lower-cased misheard phrase to its correction."""
        data = await self.get(CORRECTIONS_PATH)
        if not isinstance(data, dict):
            return {}
        corrections = {}
        for entry in data.values():
            if not isinstance(entry, dict):
                continue
            original = (entry.get("original") or "").strip()
            correction = (entry.get("correction") or "").strip()
            if original and correction:
                corrections[original.lower()] = correction
        return corrections

    async def save_corrections(self, pairs: list[tuple[str, str]]) -> None:
        created_at = _now_ms()
        for original, correction in pairs:
            await self.put(f"{CORRECTIONS_PATH}/{correction_key(original)}", {
                "original": original.strip(),
                "correction": correction.strip(),
                "createdAt": created_at,
            })

    async def delete_correction(self, original: str) -> None:
        await self.delete(f"{CORRECTIONS_PATH}/{correction_key(original)}")

    # -- pending task queue -------------------------------------------------

    async def add_pending_task(self, text: str) -> PendingTask:
        """Queue a dictated task.

        Raises:
            ValueError: If *text* is blank.
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Task text is required.")
        created_at = _now_ms()
        task_id = await self.post(PENDING_TASKS_PATH, {"text": text, "createdAt": created_at, "completed": False})
        logger.info("Queued pending task %s", task_id)
        return PendingTask(id=task_id, text=text, created_at=created_at)

    async def load_pending_tasks(self) -> list[PendingTask]:
        """Tasks not yet completed, newest first."""
        data = await self.get(PENDING_TASKS_PATH)
        if not isinstance(data, dict):
            return []
        tasks = [
            PendingTask(
                id=str(task_id),
                text=raw.get("text") or "",
                created_at=int(raw.get("createdAt") or 0),
            )
            for task_id, raw in data.items()
            if isinstance(raw, dict) and not raw.get("completed")
        ]
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    async def complete_pending_task(self, task_id: str, clickup_task_url: str) -> None:
        """Archive a queued task under ``completedTasks`` with its ClickUp URL, then dequeue it.

        Raises:
            PendingTaskNotFoundError: If no queued task has *task_id*.
        """
        raw = await self.get(f"{PENDING_TASKS_PATH}/{task_id}")
        if not isinstance(raw, dict):
            raise PendingTaskNotFoundError(task_id)
        await self.post(COMPLETED_TASKS_PATH, {
            **raw,
            "completed": True,
            "completedAt": _now_ms(),
            "clickupTaskUrl": clickup_task_url,
        })
        await self.delete(f"{PENDING_TASKS_PATH}/{task_id}")
        logger.info("Moved pending task %s to completed", task_id)
