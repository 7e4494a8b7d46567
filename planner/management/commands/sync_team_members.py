"""Management command to refresh the team directory from ClickUp."""

import logging

import httpx
from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from integrations.clickup import ClickUpError
from integrations.store import StoreError
from planner.context import get_context
from planner.sync import sync_team_members

logger = logging.getLogger("planner.management.sync_team_members")


class Command(BaseCommand):
    help = "Sync ClickUp workspace members into the team directory, keeping local aliases and teams."

    def handle(self, *args, **options):
        ctx = get_context()
        try:
            result = async_to_sync(sync_team_members)(ctx.gateway, ctx.store)
        except (ClickUpError, StoreError, httpx.HTTPError) as e:
            logger.exception("Team member sync failed")
            raise CommandError(f"Team member sync failed: {e}") from e

        self.stdout.write(self.style.SUCCESS(f"Synced {result['count']} team members."))
