"""View functions for health checks, the sprint planner API and dictation helpers."""

import logging

import httpx
from asgiref.sync import async_to_sync
from django.http import JsonResponse
from rest_framework.decorators import api_view
from rest_framework.response import Response

from integrations.clickup import ClickUpAPIError, ConfigurationError, EmptyUpdateError
from integrations.store import PendingTaskNotFoundError, StoreError
from planner.agenda.coordinator import ErrorKind, TaskEdits
from planner.ai.corrections import extract_corrections
from planner.ai.formatter import EmptyCompletionError, edit_field, format_transcript
from planner.ai.llm import LLMNotConfiguredError
from planner.context import get_context
from planner.sync import sync_sprint_config, sync_team_members

logger = logging.getLogger("planner.views")

# camelCase request keys -> gateway update vocabulary
_UPDATE_KEYS = {
    "name": "name",
    "objective": "objective",
    "acceptanceCriteria": "acceptance_criteria",
    "assigneeId": "assignee_id",
    "dueDate": "due_date",
    "startDate": "start_date",
    "timeEstimateMs": "time_estimate_ms",
}

_OUTCOME_STATUS = {
    ErrorKind.CONFIGURATION: 400,
    ErrorKind.INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.REMOTE: 502,
    ErrorKind.SUPERSEDED: 409,
}


def _error(message: str, status: int) -> Response:
    return Response({"ok": False, "message": message}, status=status)


def _truthy(value) -> bool:
    return str(value).lower() in {"1", "true", "yes"}


def _remote_failure(exc: Exception, action: str) -> Response:
    if isinstance(exc, ClickUpAPIError):
        logger.error("ClickUp API error while %s: %s", action, exc)
        return _error(f"ClickUp API error: {exc.detail}", 502)
    if isinstance(exc, StoreError):
        logger.error("Store error while %s: %s", action, exc)
        return _error(f"Store error: {exc.detail}", 502)
    logger.error("Network error while %s: %s", action, exc)
    return _error(f"Could not reach ClickUp while {action}.", 502)


def health_check(request):
    """Simple liveness probe."""
    return JsonResponse({"status": "ok"})


# ---------------------------------------------------------------------------
# Sprint planner (gateway passthrough)
# ---------------------------------------------------------------------------

@api_view(["GET", "PATCH"])
def sprint_planner(request):
    """GET: tasks of a sprint. PATCH: partial update of one task."""
    ctx = get_context()

    if request.method == "GET":
        sprint_id = request.query_params.get("sprintId")
        if not sprint_id:
            return _error("sprintId is required.", 400)
        try:
            result = async_to_sync(ctx.gateway.fetch_sprint_tasks)(
                sprint_id,
                assignee_id=request.query_params.get("assigneeId") or None,
                include_done=_truthy(request.query_params.get("includeDone", "")),
            )
        except ConfigurationError as e:
            return _error(str(e), 400)
        except (ClickUpAPIError, httpx.HTTPError) as e:
            return _remote_failure(e, "fetching sprint tasks")

        return Response({
            "ok": True,
            "sprint": result.sprint_dict(),
            "tasks": [task.to_dict() for task in result.tasks],
            "totalSprintTasks": result.total_sprint_tasks,
        })

    data = request.data or {}
    task_id = data.get("taskId")
    updates = data.get("updates")
    if not task_id or not isinstance(updates, dict):
        return _error("taskId and updates are required.", 400)

    changes = {_UPDATE_KEYS[key]: value for key, value in updates.items() if key in _UPDATE_KEYS}
    try:
        task = async_to_sync(ctx.gateway.update_task)(task_id, changes, current_name=data.get("currentName"))
    except EmptyUpdateError as e:
        return _error(str(e), 400)
    except ConfigurationError as e:
        return _error(str(e), 400)
    except (ClickUpAPIError, httpx.HTTPError) as e:
        return _remote_failure(e, "updating the task")

    return Response({"ok": True, "task": task.to_dict()})


@api_view(["POST"])
def sprint_planner_move(request):
    """Move a task into the next sprint's list."""
    data = request.data or {}
    required = ("taskId", "currentSprintListId", "nextSprintListId")
    missing = [key for key in required if not data.get(key)]
    if missing:
        return _error(f"Missing fields: {', '.join(missing)}.", 400)

    ctx = get_context()
    try:
        task = async_to_sync(ctx.gateway.move_task_to_next_sprint)(
            data["taskId"],
            data["currentSprintListId"],
            data["nextSprintListId"],
            data.get("nextSprintFirstMonday"),
            data.get("currentSprintStartDate"),
            data.get("currentSprintEndDate"),
            data.get("taskDueDate"),
        )
    except ConfigurationError as e:
        return _error(str(e), 400)
    except (ClickUpAPIError, httpx.HTTPError) as e:
        return _remote_failure(e, "moving the task")

    return Response({"ok": True, "task": task.to_dict()})


# ---------------------------------------------------------------------------
# Agenda (coordinator)
# ---------------------------------------------------------------------------

async def _load_agenda(ctx, sprint_id, person_id):
    planner = await ctx.build_planner()
    if person_id:
        planner.select_person(person_id)
    if sprint_id:
        outcome = await planner.select_sprint(sprint_id)
    else:
        outcome = await planner.start()
    return planner, outcome


async def _mutate_agenda(ctx, sprint_id, person_id, mutation):
    planner, outcome = await _load_agenda(ctx, sprint_id, person_id)
    if outcome.ok:
        outcome = await mutation(planner)
    return planner, outcome


def _run_mutation(data, mutation) -> Response:
    ctx = get_context()
    try:
        planner, outcome = async_to_sync(_mutate_agenda)(
            ctx, data.get("sprintId"), data.get("personId"), mutation,
        )
    except (StoreError, httpx.HTTPError) as e:
        return _remote_failure(e, "loading the sprint calendar")

    status = 200 if outcome.ok else _OUTCOME_STATUS.get(outcome.error, 400)
    return Response({**outcome.to_dict(), "agenda": planner.to_dict()}, status=status)


@api_view(["GET"])
def agenda(request):
    """Seven day buckets, unplanned tasks and workload for a sprint and person."""
    ctx = get_context()
    try:
        planner, outcome = async_to_sync(_load_agenda)(
            ctx,
            request.query_params.get("sprintId"),
            request.query_params.get("personId"),
        )
    except (StoreError, httpx.HTTPError) as e:
        return _remote_failure(e, "loading the sprint calendar")

    if not outcome.ok:
        return Response(outcome.to_dict(), status=_OUTCOME_STATUS.get(outcome.error, 400))
    return Response({"ok": True, "agenda": planner.to_dict()})


@api_view(["POST"])
def agenda_move(request):
    """Drop a task on another day (or ``unplanned``) of the agenda."""
    data = request.data or {}
    if not data.get("taskId") or not data.get("target"):
        return _error("taskId and target are required.", 400)

    return _run_mutation(data, lambda planner: planner.move_task(data["taskId"], data["target"]))


@api_view(["POST"])
def agenda_edit(request):
    """Save the edit form of a task; invalid fields come back in ``fieldErrors``."""
    data = request.data or {}
    if not data.get("taskId"):
        return _error("taskId is required.", 400)

    edits = TaskEdits(
        name=data.get("name") or "",
        objective=data.get("objective") or "",
        acceptance_criteria=data.get("acceptanceCriteria") or "",
        assignee_id=data.get("assigneeId") or None,
        day=data.get("day") or "unplanned",
        hours=data.get("hours"),
    )
    return _run_mutation(data, lambda planner: planner.save_task_edits(data["taskId"], edits))


@api_view(["POST"])
def agenda_advance(request):
    """Move a task into the sprint that follows the selected one."""
    data = request.data or {}
    if not data.get("taskId"):
        return _error("taskId is required.", 400)
    return _run_mutation(data, lambda planner: planner.advance_task_to_next_sprint(data["taskId"]))


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------

@api_view(["GET"])
def sprints_sync(request):
    """Rebuild the sprint calendar config from ClickUp."""
    ctx = get_context()
    try:
        result = async_to_sync(sync_sprint_config)(ctx.gateway, ctx.store)
    except ConfigurationError as e:
        return _error(str(e), 500)
    except (ClickUpAPIError, StoreError, httpx.HTTPError) as e:
        return _remote_failure(e, "syncing sprints")
    return Response({"ok": True, **result})


@api_view(["GET"])
def team_members_sync(request):
    """Refresh the team directory from ClickUp."""
    ctx = get_context()
    try:
        result = async_to_sync(sync_team_members)(ctx.gateway, ctx.store)
    except ConfigurationError as e:
        return _error(str(e), 500)
    except (ClickUpAPIError, StoreError, httpx.HTTPError) as e:
        return _remote_failure(e, "syncing team members")
    return Response({"ok": True, **result})


# ---------------------------------------------------------------------------
# Task creation and dictation helpers
# ---------------------------------------------------------------------------

@api_view(["POST"])
def create_task(request):
    """Create a task from title, objective and acceptance criteria."""
    data = request.data or {}
    ctx = get_context()
    try:
        task = async_to_sync(ctx.gateway.create_task)(
            data.get("title") or "",
            data.get("objective") or "",
            data.get("acceptanceCriteria") or "",
            list_id=data.get("listId") or None,
        )
    except ValueError as e:
        return _error(str(e), 400)
    except ConfigurationError as e:
        return _error(str(e), 500)
    except (ClickUpAPIError, httpx.HTTPError) as e:
        return _remote_failure(e, "creating the task")

    return Response({"ok": True, "task": task}, status=201)


def _load_corrections(ctx) -> dict[str, str]:
    try:
        return async_to_sync(ctx.store.load_corrections)()
    except (StoreError, httpx.HTTPError):
        logger.exception("Could not load corrections; formatting without them")
        return {}


@api_view(["POST"])
def format_transcript_view(request):
    """Turn dictated text into the Objective / Acceptance Criteria template."""
    text = (request.data or {}).get("text") or ""
    if not text.strip():
        return _error("No text provided to format.", 400)

    ctx = get_context()
    try:
        formatted, parsed = format_transcript(ctx.llm, text, _load_corrections(ctx))
    except LLMNotConfiguredError as e:
        return _error(str(e), 500)
    except EmptyCompletionError as e:
        return _error(str(e), 502)
    except Exception:
        logger.exception("LLM inference failed while formatting transcript")
        return _error("Unexpected error while formatting the text.", 500)

    return Response({
        "ok": True,
        "received": text,
        "formatted": formatted,
        "objective": parsed.objective,
        "acceptanceCriteria": parsed.acceptance_criteria,
    })


@api_view(["POST"])
def edit_field_view(request):
    """Rewrite one task field following a spoken or typed instruction."""
    data = request.data or {}
    field = {"acceptanceCriteria": "acceptance_criteria"}.get(data.get("field"), data.get("field"))
    context = data.get("context") or {}

    ctx = get_context()
    try:
        new_value = edit_field(
            ctx.llm,
            field,
            data.get("currentValue") or "",
            data.get("instruction") or "",
            {
                "title": context.get("title", ""),
                "objective": context.get("objective", ""),
                "acceptance_criteria": context.get("acceptanceCriteria", ""),
            },
        )
    except ValueError as e:
        return _error(str(e), 400)
    except LLMNotConfiguredError as e:
        return _error(str(e), 500)
    except EmptyCompletionError as e:
        return _error(str(e), 502)
    except Exception:
        logger.exception("LLM inference failed while editing field %s", field)
        return _error("Unexpected error while editing the field.", 500)

    return Response({"ok": True, "newValue": new_value})


@api_view(["POST"])
def extract_corrections_view(request):
    """Learn misheard phrases from a user's manual transcript fixes and store them."""
    data = request.data or {}
    ctx = get_context()
    try:
        pairs = extract_corrections(ctx.llm, data.get("original") or "", data.get("changed") or "")
    except ValueError as e:
        return _error(str(e), 400)

    if pairs:
        try:
            async_to_sync(ctx.store.save_corrections)(pairs)
        except (StoreError, httpx.HTTPError) as e:
            return _remote_failure(e, "saving corrections")

    return Response({
        "ok": True,
        "corrections": [{"original": o, "correction": c} for o, c in pairs],
    })


@api_view(["DELETE"])
def delete_correction_view(request, original):
    """Forget a learned correction."""
    ctx = get_context()
    try:
        async_to_sync(ctx.store.delete_correction)(original)
    except (StoreError, httpx.HTTPError) as e:
        return _remote_failure(e, "deleting the correction")
    return Response({"ok": True})


# ---------------------------------------------------------------------------
# Pending task queue
# ---------------------------------------------------------------------------

@api_view(["GET", "POST"])
def pending_tasks(request):
    """GET: queued dictated tasks, newest first. POST: queue one ``{text}``."""
    ctx = get_context()
    try:
        if request.method == "GET":
            tasks = async_to_sync(ctx.store.load_pending_tasks)()
            return Response({"ok": True, "tasks": [task.to_dict() for task in tasks]})
        task = async_to_sync(ctx.store.add_pending_task)((request.data or {}).get("text") or "")
    except ValueError as e:
        return _error(str(e), 400)
    except (StoreError, httpx.HTTPError) as e:
        return _remote_failure(e, "accessing the pending task queue")
    return Response({"ok": True, "task": task.to_dict()}, status=201)


@api_view(["POST"])
def complete_pending_task(request, task_id):
    """Archive a queued task once it exists in ClickUp."""
    url = (request.data or {}).get("clickupTaskUrl") or ""
    if not url:
        return _error("clickupTaskUrl is required.", 400)

    ctx = get_context()
    try:
        async_to_sync(ctx.store.complete_pending_task)(task_id, url)
    except PendingTaskNotFoundError as e:
        return _error(e.detail, 404)
    except (StoreError, httpx.HTTPError) as e:
        return _remote_failure(e, "completing the pending task")
    return Response({"ok": True})
