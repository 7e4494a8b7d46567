"""Management command to rebuild the sprint calendar config from ClickUp.

Run after sprints are created or renamed in ClickUp:
    python manage.py sync_sprints
"""

import logging

import httpx
from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from integrations.clickup import ClickUpError
from integrations.store import StoreError
from planner.context import get_context
from planner.sync import sync_sprint_config

logger = logging.getLogger("planner.management.sync_sprints")


class Command(BaseCommand):
    help = "Sync sprints and the backend general list from ClickUp into the document store."

    def handle(self, *args, **options):
        ctx = get_context()
        try:
            result = async_to_sync(sync_sprint_config)(ctx.gateway, ctx.store)
        except (ClickUpError, StoreError, httpx.HTTPError) as e:
            logger.exception("Sprint sync failed")
            raise CommandError(f"Sprint sync failed: {e}") from e

        for sprint in result["sprints"]:
            self.stdout.write(f"  {sprint['name']} (#{sprint['number']}) list={sprint['listId']}")
        if not result["backEnGeneralListId"]:
            self.stdout.write(self.style.WARNING("Backend general list not found."))
        self.stdout.write(self.style.SUCCESS(f"Synced {len(result['sprints'])} sprints."))
