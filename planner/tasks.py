"""Celery background tasks for the sprint calendar and team directory sync."""

import logging

from asgiref.sync import async_to_sync
from celery import shared_task

from planner.context import get_context
from planner.sync import sync_sprint_config, sync_team_members

logger = logging.getLogger("planner.tasks")


@shared_task
def sync_sprints_task() -> dict:
    """Rebuild the sprint calendar config from ClickUp.

    Returns:
        A dict with the number of synced sprints and the backlog list id.
    """
    ctx = get_context()
    result = async_to_sync(sync_sprint_config)(ctx.gateway, ctx.store)
    logger.info("Synced %d sprints", len(result["sprints"]))
    return {"count": len(result["sprints"]), "backEnGeneralListId": result["backEnGeneralListId"]}


@shared_task
def sync_team_members_task() -> dict:
    """Refresh the team directory from ClickUp.

    Returns:
        A dict with the number of members in the directory.
    """
    ctx = get_context()
    result = async_to_sync(sync_team_members)(ctx.gateway, ctx.store)
    logger.info("Synced %d team members", result["count"])
    return {"count": result["count"]}
