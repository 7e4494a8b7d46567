"""Management command to print a person's sprint agenda, optionally moving a task first.

    python manage.py agenda --sprint 901 --person 42
    python manage.py agenda --person 42 --move 86abc=2025-11-18
    python manage.py agenda --person 42 --move 86abc=unplanned
    python manage.py agenda --sprint 901 --advance 86abc
"""

import logging

import httpx
from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from integrations.store import StoreError
from planner.context import get_context

logger = logging.getLogger("planner.management.agenda")


class Command(BaseCommand):
    help = "Show the 7-day agenda of a sprint for one person."

    def add_arguments(self, parser):
        parser.add_argument("--sprint", help="Sprint id (defaults to the current sprint).")
        parser.add_argument("--person", help="Team member id (defaults to the first member).")
        parser.add_argument(
            "--move",
            metavar="TASK_ID=DAY",
            help="Move a task to a day key (YYYY-MM-DD) or 'unplanned' before printing.",
        )
        parser.add_argument("--advance", metavar="TASK_ID", help="Move a task into the next sprint before printing.")

    def handle(self, *args, **options):
        move = None
        if options["move"]:
            task_id, sep, target = options["move"].partition("=")
            if not sep or not task_id or not target:
                raise CommandError("--move expects TASK_ID=DAY_KEY or TASK_ID=unplanned")
            move = (task_id, target)
        if move and options["advance"]:
            raise CommandError("--move and --advance cannot be combined")

        try:
            planner, outcome, move_outcome = async_to_sync(self._run)(
                options["sprint"], options["person"], move, options["advance"],
            )
        except (StoreError, httpx.HTTPError) as e:
            logger.exception("Could not load the sprint calendar")
            raise CommandError(f"Could not load the sprint calendar: {e}") from e

        if not outcome.ok:
            raise CommandError(outcome.message)
        if move_outcome is not None:
            style = self.style.SUCCESS if move_outcome.ok else self.style.ERROR
            self.stdout.write(style(move_outcome.message))
            for field, message in move_outcome.field_errors.items():
                self.stdout.write(self.style.ERROR(f"  {field}: {message}"))

        self._print_agenda(planner.to_dict())

    async def _run(self, sprint_id, person_id, move, advance):
        planner = await get_context().build_planner()
        if person_id:
            planner.select_person(person_id)
        outcome = await (planner.select_sprint(sprint_id) if sprint_id else planner.start())
        move_outcome = None
        if outcome.ok and move:
            move_outcome = await planner.move_task(*move)
        elif outcome.ok and advance:
            move_outcome = await planner.advance_task_to_next_sprint(advance)
        return planner, outcome, move_outcome

    def _print_agenda(self, agenda):
        sprint = agenda["sprint"] or {}
        self.stdout.write(f"{sprint.get('name') or sprint.get('id', '?')}  {agenda['weekRange']}")
        self.stdout.write(f"Total: {agenda['totalHours']}h")
        for day in agenda["days"]:
            self.stdout.write(f"\n{day['label']}  {day['hours']}h [{day['load']}]")
            for segment in day["segments"]:
                self.stdout.write(f"  - {segment['name']} ({segment['hours']}h) [{segment['taskId']}]")
        if agenda["unplanned"]:
            self.stdout.write("\nUnplanned")
            for task in agenda["unplanned"]:
                self.stdout.write(f"  - {task['name']} ({task['hours']}h) [{task['taskId']}]")
