"""Sprint calendar and team directory sync from ClickUp into the document store."""

from __future__ import annotations

import logging
import re
import time
from datetime import date, datetime, timedelta

from integrations.clickup import ClickUpGateway
from integrations.store import FirebaseStore
from planner.agenda.days import local_date, local_midnight_ms
from planner.agenda.models import Sprint, SprintConfigData, TeamMember

logger = logging.getLogger("planner.sync")

_SPRINT_NUMBER_RE = re.compile(r"\b(\d+)\b")
_NAME_DATES_RE = re.compile(r"\((\d{1,2})/(\d{1,2})\s*-\s*(\d{1,2})/(\d{1,2})\)")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _optional_ms(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def extract_sprint_number(name: str) -> int | None:
    """First standalone integer in a sprint name (``"Sprint 28"`` -> 28)."""
    match = _SPRINT_NUMBER_RE.search(name or "")
    return int(match.group(1)) if match else None


def extract_name_dates(name: str, year: int) -> tuple[int, int] | None:
    """Parse a ``(MM/DD - MM/DD)`` suffix into local-midnight start/end timestamps.

    The end date rolls into the next year when it falls before the start
    (a sprint spanning New Year). Invalid calendar dates yield ``None``.
    """
    match = _NAME_DATES_RE.search(name or "")
    if not match:
        return None
    start_month, start_day, end_month, end_day = (int(g) for g in match.groups())
    try:
        start = date(year, start_month, start_day)
        end = date(year, end_month, end_day)
        if end < start:
            end = date(year + 1, end_month, end_day)
    except ValueError:
        logger.warning("Invalid dates in sprint name %r", name)
        return None
    return local_midnight_ms(start), local_midnight_ms(end)


def first_monday_ms(start_ms: int) -> int:
    """Local midnight of the sprint's first Monday.

    A Monday start is its own first Monday; any other day moves forward to
    the following Monday.
    """
    start = local_date(start_ms)
    offset = (7 - start.weekday()) % 7
    return local_midnight_ms(start + timedelta(days=offset))


def build_sprint(raw: dict, now_ms: int) -> Sprint:
    name = raw.get("name") or "Unnamed Sprint"
    start_ms = _optional_ms(raw.get("start_date"))
    end_ms = _optional_ms(raw.get("end_date"))

    year = local_date(start_ms).year if start_ms else datetime.fromtimestamp(now_ms / 1000).year
    from_name = extract_name_dates(name, year)
    if from_name:
        start_ms, end_ms = from_name

    sprint_id = str(raw["id"])
    return Sprint(
        id=sprint_id,
        name=name,
        number=extract_sprint_number(name),
        start_date=start_ms,
        end_date=end_ms,
        first_monday=first_monday_ms(start_ms) if start_ms else None,
        list_id=sprint_id,
        created_at=now_ms,
        updated_at=now_ms,
    )


async def sync_sprint_config(gateway: ClickUpGateway, store: FirebaseStore, now_ms: int | None = None) -> dict:
    """Rebuild the ``sprintConfig`` document from ClickUp.

    Returns:
        A dict with the synced sprints, the backlog list id/name and the
        number of sprints ClickUp returned.
    """
    now_ms = now_ms if now_ms is not None else _now_ms()
    raw_sprints = await gateway.get_sprints()
    if not raw_sprints:
        logger.warning("No sprints found; is the Sprints ClickApp enabled for this workspace?")

    general = await gateway.find_general_list()
    logger.info(
        "Backend general list: %s (%s)",
        general.get("name") if general else "not found",
        general.get("id") if general else "n/a",
    )

    sprints: dict[str, Sprint] = {}
    for raw in raw_sprints:
        if not isinstance(raw, dict) or not raw.get("id"):
            logger.warning("Skipping invalid sprint record: %r", raw)
            continue
        sprint = build_sprint(raw, now_ms)
        sprints[sprint.id] = sprint

    config = SprintConfigData(
        sprints=sprints,
        general_list_id=str(general["id"]) if general else None,
        last_sync=now_ms,
    )
    await store.save_sprint_config(config)
    return {
        "sprints": [s.to_dict() for s in sprints.values()],
        "backEnGeneralListId": config.general_list_id,
        "backEnGeneralListName": general.get("name") if general else None,
        "count": len(raw_sprints),
    }


def member_from_clickup(raw: dict, now_ms: int) -> TeamMember | None:
    user = raw.get("user") or {}
    if not user.get("id"):
        return None
    email = user.get("email") or ""
    name = user.get("username") or email.split("@")[0]
    return TeamMember(
        id=str(user["id"]),
        name=name,
        email=email,
        aliases=(name.split(" ")[0] or name,),
        team="Backend",
        created_at=now_ms,
        updated_at=now_ms,
    )


def merge_team_members(
    stored: dict[str, TeamMember],
    remote: list[TeamMember],
) -> dict[str, TeamMember]:
    """Combine fresh ClickUp members with the stored directory.

    Aliases, team and creation time edited in the store survive a sync, and
    stored members no longer present in ClickUp are kept.
    """
    merged = {member.id: member for member in remote}
    for member_id, existing in stored.items():
        fresh = merged.get(member_id)
        if fresh is None:
            merged[member_id] = existing
            continue
        merged[member_id] = TeamMember(
            id=fresh.id,
            name=fresh.name,
            email=fresh.email,
            aliases=existing.aliases or fresh.aliases,
            team=existing.team or fresh.team,
            created_at=existing.created_at or fresh.created_at,
            updated_at=fresh.updated_at,
        )
    return merged


async def sync_team_members(gateway: ClickUpGateway, store: FirebaseStore, now_ms: int | None = None) -> dict:
    """Refresh the ``teamMembers`` document from the ClickUp workspace."""
    now_ms = now_ms if now_ms is not None else _now_ms()
    remote = [m for m in (member_from_clickup(raw, now_ms) for raw in await gateway.get_team_members()) if m]
    logger.info("Retrieved %d members from ClickUp", len(remote))

    merged = merge_team_members(await store.load_team_members(), remote)
    await store.save_team_members(merged, last_sync=now_ms)
    return {
        "members": [m.to_dict() for m in merged.values()],
        "count": len(merged),
    }
