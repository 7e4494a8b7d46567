import asyncio
from datetime import date

import pytest

from integrations.clickup import ConfigurationError
from planner.agenda.coordinator import AgendaPlanner, BannerKind, ErrorKind, TaskEdits, parse_hours
from planner.agenda.days import UNPLANNED, key_to_timestamp
from planner.agenda.models import PlannerTask, Sprint
from tests.conftest import HOUR_MS, FakeGateway, at


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class GatedGateway(FakeGateway):
    """Parks each update until its task's gate is opened, so tests control resolution order."""

    def __init__(self, tasks):
        super().__init__(tasks)
        self.gates: dict[tuple[str, int], asyncio.Event] = {}
        self.failures: dict[tuple[str, int], Exception] = {}
        self._seen: dict[str, int] = {}

    async def update_task(self, task_id, changes, current_name=None):
        n = self._seen.get(task_id, 0)
        self._seen[task_id] = n + 1
        gate = self.gates.setdefault((task_id, n), asyncio.Event())
        await gate.wait()
        if (task_id, n) in self.failures:
            self.calls.append(("update", task_id, dict(changes)))
            raise self.failures[(task_id, n)]
        return await super().update_task(task_id, changes, current_name)


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


def make_task(task_id, day=None, hours=2, assignees=("u1",), **kwargs):
    kwargs.setdefault("time_estimate", int(hours * HOUR_MS) if hours is not None else None)
    return PlannerTask(
        id=task_id,
        name=f"Task {task_id}",
        due_date=at(day) if day else None,
        assignee_ids=assignees,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tasks():
    return [
        make_task("a", date(2025, 11, 18)),
        make_task("b", date(2025, 11, 19), hours=3),
        make_task("c", None, hours=1),
        make_task("z", date(2025, 11, 18), assignees=("u2",)),
    ]


@pytest.fixture
def gateway(tasks):
    return FakeGateway(tasks)


@pytest.fixture
def make_planner(sprint_week, next_sprint, members, clock):
    async def factory(gateway, person="u1"):
        planner = AgendaPlanner(gateway, [sprint_week, next_sprint], members, clock=clock)
        planner.select_person(person)
        outcome = await planner.select_sprint(sprint_week.id)
        assert outcome.ok
        return planner

    return factory


# ---------------------------------------------------------------------------
# Loading and selection
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_visible_buckets_for_selected_person(gateway, make_planner):
    planner = await make_planner(gateway)

    assert [t.id for t in planner.visible_tasks] == ["a", "b", "c"]
    buckets = planner.buckets
    assert buckets.day_keys_of("a") == ["2025-11-18"]
    assert buckets.day_keys_of("z") == []
    assert [t.id for t in buckets.unplanned] == ["c"]
    assert planner.workload.total_hours == 6.0


@pytest.mark.asyncio
async def test_select_person_only_refilters(gateway, make_planner):
    planner = await make_planner(gateway)
    fetches = [c for c in gateway.calls if c[0] == "fetch"]

    planner.select_person("u2")

    assert [t.id for t in planner.visible_tasks] == ["z"]
    assert [c for c in gateway.calls if c[0] == "fetch"] == fetches


@pytest.mark.asyncio
async def test_start_picks_current_sprint_and_first_person(gateway, sprint_week, next_sprint, members, clock):
    planner = AgendaPlanner(gateway, [next_sprint, sprint_week], members, clock=clock)
    outcome = await planner.start(now_ms=at(date(2025, 11, 20)))

    assert outcome.ok
    assert planner.selected_sprint_id == "s28"
    assert planner.selected_person_id == "u1"


@pytest.mark.asyncio
async def test_start_without_sprints_is_configuration_error(gateway, members):
    outcome = await AgendaPlanner(gateway, [], members).start()
    assert outcome.error is ErrorKind.CONFIGURATION
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_switching_sprint_cancels_stale_fetch(sprint_week, next_sprint, members, clock):
    gateway = FakeGateway([
        make_task("old", date(2025, 11, 18), list_id="s28"),
        make_task("new", date(2025, 11, 25), list_id="s29"),
    ])
    gateway.fetch_delays["s28"] = asyncio.Event()
    planner = AgendaPlanner(gateway, [sprint_week, next_sprint], members, clock=clock)

    stale = asyncio.create_task(planner.select_sprint("s28"))
    await settle()
    fresh = await planner.select_sprint("s29")
    gateway.fetch_delays["s28"].set()
    stale_outcome = await stale

    assert fresh.ok
    assert stale_outcome.error is ErrorKind.SUPERSEDED
    assert planner.selected_sprint_id == "s29"
    assert [t.id for t in planner.tasks] == ["new"]
    assert [d.key for d in planner.sprint_days][0] == "2025-11-24"


@pytest.mark.asyncio
async def test_failed_fetch_leaves_state_untouched(gateway, make_planner, remote_error):
    planner = await make_planner(gateway)
    before = planner.tasks

    gateway.fetch_error = remote_error
    outcome = await planner.select_sprint("s29")

    assert not outcome.ok
    assert outcome.error is ErrorKind.REMOTE
    assert planner.selected_sprint_id == "s28"
    assert planner.tasks == before
    assert planner.banner.kind is BannerKind.ERROR


@pytest.mark.asyncio
async def test_configuration_error_shows_sticky_banner(gateway, make_planner, clock):
    planner = await make_planner(gateway)
    gateway.fetch_error = ConfigurationError("Backend general list ID not configured.")

    outcome = await planner.select_sprint("s28")
    clock.now += 3600

    assert outcome.error is ErrorKind.CONFIGURATION
    assert planner.banner.message == "Backend general list ID not configured."


# ---------------------------------------------------------------------------
# move_task
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_move_to_unplanned_sends_null_dates(gateway, make_planner):
    planner = await make_planner(gateway)

    outcome = await planner.move_task("a", "unplanned")

    assert outcome.ok
    assert gateway.calls[-1] == ("update", "a", {"due_date": None, "start_date": None})
    assert "a" in [t.id for t in planner.buckets.unplanned]


@pytest.mark.asyncio
async def test_move_to_day_sends_local_noon(gateway, make_planner):
    planner = await make_planner(gateway)

    outcome = await planner.move_task("c", "2025-11-21")

    noon = key_to_timestamp("2025-11-21")
    assert outcome.ok
    assert gateway.calls[-1] == ("update", "c", {"due_date": noon, "start_date": noon})
    assert planner.buckets.day_keys_of("c") == ["2025-11-21"]
    assert planner.banner.kind is BannerKind.SUCCESS


@pytest.mark.asyncio
async def test_move_to_same_day_is_a_no_op(gateway, make_planner):
    planner = await make_planner(gateway)
    calls = list(gateway.calls)

    outcome = await planner.move_task("a", "2025-11-18")
    unplanned_outcome = await planner.move_task("c", UNPLANNED)

    assert outcome.ok and unplanned_outcome.ok
    assert gateway.calls == calls


@pytest.mark.asyncio
async def test_move_rejects_bad_day_key(gateway, make_planner):
    planner = await make_planner(gateway)
    calls = list(gateway.calls)

    outcome = await planner.move_task("a", "2025-13-01")

    assert outcome.error is ErrorKind.INPUT
    assert "day" in outcome.field_errors
    assert gateway.calls == calls


@pytest.mark.asyncio
async def test_move_unknown_task(gateway, make_planner):
    planner = await make_planner(gateway)
    outcome = await planner.move_task("nope", "2025-11-18")
    assert outcome.error is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_failed_move_rolls_back_exactly(gateway, make_planner, remote_error):
    planner = await make_planner(gateway)
    original = planner.find_task("a")
    before = planner.buckets.day_keys_of("a")

    gateway.fail_with = remote_error
    outcome = await planner.move_task("a", "2025-11-21")

    assert not outcome.ok
    assert outcome.error is ErrorKind.REMOTE
    assert planner.buckets.day_keys_of("a") == before
    assert planner.find_task("a") is original
    assert planner.banner.kind is BannerKind.ERROR
    assert not planner.is_busy("a")


@pytest.mark.asyncio
async def test_optimistic_write_happens_before_the_call_resolves(gateway, make_planner):
    planner = await make_planner(gateway)
    gateway.hold = asyncio.Event()

    pending = asyncio.create_task(planner.move_task("a", "2025-11-20"))
    await settle()

    assert planner.is_busy("a")
    assert planner.buckets.day_keys_of("a") == ["2025-11-20"]

    gateway.hold.set()
    assert (await pending).ok
    assert not planner.is_busy("a")


@pytest.mark.asyncio
async def test_banner_expires(gateway, make_planner, clock):
    planner = await make_planner(gateway)
    await planner.move_task("c", "2025-11-21")
    assert planner.banner is not None

    clock.now += 3.9
    assert planner.banner is not None
    clock.now += 0.1
    assert planner.banner is None


# ---------------------------------------------------------------------------
# Assignee reconciliation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_narrowed_server_assignees_are_ignored(gateway, make_planner):
    planner = await make_planner(gateway)
    gateway.narrow_assignees_to = ("u9",)

    await planner.move_task("a", "2025-11-21")

    assert planner.find_task("a").assignee_ids == ("u1",)
    assert "a" in [t.id for t in planner.visible_tasks]


@pytest.mark.asyncio
async def test_empty_server_assignees_are_ignored(gateway, make_planner):
    planner = await make_planner(gateway)
    gateway.narrow_assignees_to = ()

    await planner.move_task("a", "2025-11-21")

    assert planner.find_task("a").assignee_ids == ("u1",)


@pytest.mark.asyncio
async def test_server_assignees_trusted_when_they_keep_the_person(sprint_week, next_sprint, members, clock):
    gateway = FakeGateway([make_task("a", date(2025, 11, 18), assignees=("u1",))])
    planner = AgendaPlanner(gateway, [sprint_week, next_sprint], members, clock=clock)
    planner.select_person("u1")
    await planner.select_sprint("s28")
    gateway.narrow_assignees_to = ("u1", "u2")

    await planner.move_task("a", "2025-11-21")

    assert planner.find_task("a").assignee_ids == ("u1", "u2")


# ---------------------------------------------------------------------------
# save_task_edits
# ---------------------------------------------------------------------------

def _edits_matching(task, **overrides):
    values = dict(
        name=task.name,
        objective=task.objective,
        acceptance_criteria=task.acceptance_criteria,
        assignee_id=task.assignee_ids[0] if task.assignee_ids else None,
        day="2025-11-18",
        hours="2",
    )
    values.update(overrides)
    return TaskEdits(**values)


@pytest.mark.asyncio
async def test_saving_unchanged_values_is_idempotent(gateway, make_planner):
    planner = await make_planner(gateway)
    before = planner.tasks
    buckets_before = planner.buckets.day_keys_of("a")

    outcome = await planner.save_task_edits("a", _edits_matching(planner.find_task("a")))

    assert outcome.ok
    assert planner.tasks == before
    assert planner.buckets.day_keys_of("a") == buckets_before
    sent = gateway.calls[-1][2]
    assert sent == {
        "name": "Task a",
        "objective": "",
        "acceptance_criteria": "",
        "time_estimate_ms": 2 * HOUR_MS,
    }


@pytest.mark.asyncio
async def test_estimate_keeps_original_ms_when_hours_unchanged(sprint_week, members, clock):
    gateway = FakeGateway([make_task("a", date(2025, 11, 18), hours=None, time_estimate=5_000_000)])
    planner = AgendaPlanner(gateway, [sprint_week], members, clock=clock)
    await planner.select_sprint("s28")

    await planner.save_task_edits("a", _edits_matching(planner.find_task("a"), hours="1.4"))

    assert gateway.calls[-1][2]["time_estimate_ms"] == 5_000_000


@pytest.mark.asyncio
async def test_save_changes_day_assignee_and_estimate(gateway, make_planner):
    planner = await make_planner(gateway)
    task = planner.find_task("a")

    outcome = await planner.save_task_edits(
        "a",
        _edits_matching(task, name=" Renamed ", day="unplanned", assignee_id="u2", hours=2.5, objective="Goal"),
    )

    sent = gateway.calls[-1][2]
    assert outcome.ok
    assert sent["name"] == "Renamed"
    assert sent["objective"] == "Goal"
    assert sent["due_date"] is None and sent["start_date"] is None
    assert sent["assignee_id"] == "u2"
    assert sent["time_estimate_ms"] == 9_000_000
    assert planner.find_task("a").assignee_ids == ("u2",)
    assert "a" not in [t.id for t in planner.visible_tasks]


@pytest.mark.asyncio
async def test_blank_hours_clear_the_estimate(gateway, make_planner):
    planner = await make_planner(gateway)
    await planner.save_task_edits("a", _edits_matching(planner.find_task("a"), hours="  "))
    assert gateway.calls[-1][2]["time_estimate_ms"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("hours", ["abc", "-1", "nan", "inf", True])
async def test_invalid_hours_rejected_without_side_effects(gateway, make_planner, hours):
    planner = await make_planner(gateway)
    before = planner.tasks
    calls = list(gateway.calls)

    outcome = await planner.save_task_edits("a", _edits_matching(planner.find_task("a"), hours=hours))

    assert outcome.error is ErrorKind.INPUT
    assert "hours" in outcome.field_errors
    assert planner.tasks == before
    assert gateway.calls == calls
    assert planner.banner is None


@pytest.mark.asyncio
async def test_failed_save_rolls_back(gateway, make_planner, remote_error):
    planner = await make_planner(gateway)
    original = planner.find_task("a")
    gateway.fail_with = remote_error

    outcome = await planner.save_task_edits("a", _edits_matching(original, name="Other", day="2025-11-22"))

    assert not outcome.ok
    assert planner.find_task("a") is original


def test_parse_hours():
    assert parse_hours("2.5") == 2.5
    assert parse_hours(3) == 3.0
    assert parse_hours("") is None
    assert parse_hours(None) is None
    with pytest.raises(ValueError):
        parse_hours("-0.5")


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_independent_mutations_resolve_out_of_order(tasks, make_planner):
    gateway = GatedGateway(tasks)
    for key in (("a", 0), ("b", 0)):
        gateway.gates[key] = asyncio.Event()
    planner = await make_planner(gateway)

    first = asyncio.create_task(planner.move_task("a", "2025-11-20"))
    second = asyncio.create_task(planner.move_task("b", "2025-11-21"))
    await settle()
    assert planner.is_busy("a") and planner.is_busy("b")

    gateway.gates[("b", 0)].set()
    assert (await second).ok
    assert planner.is_busy("a") and not planner.is_busy("b")

    gateway.gates[("a", 0)].set()
    assert (await first).ok
    assert planner.buckets.day_keys_of("a") == ["2025-11-20"]
    assert planner.buckets.day_keys_of("b") == ["2025-11-21"]


@pytest.mark.asyncio
async def test_stale_failure_does_not_undo_newer_write(tasks, make_planner, remote_error):
    gateway = GatedGateway(tasks)
    gateway.failures[("a", 0)] = remote_error
    planner = await make_planner(gateway)

    older = asyncio.create_task(planner.move_task("a", "2025-11-20"))
    await settle()
    newer = asyncio.create_task(planner.move_task("a", "2025-11-22"))
    await settle()
    assert planner.is_busy("a")

    gateway.gates[("a", 1)].set()
    assert (await newer).ok
    gateway.gates[("a", 0)].set()
    assert not (await older).ok

    assert planner.buckets.day_keys_of("a") == ["2025-11-22"]
    assert not planner.is_busy("a")


@pytest.mark.asyncio
async def test_stale_success_does_not_overwrite_newer_write(tasks, make_planner):
    gateway = GatedGateway(tasks)
    planner = await make_planner(gateway)

    older = asyncio.create_task(planner.move_task("a", "2025-11-20"))
    await settle()
    newer = asyncio.create_task(planner.move_task("a", "2025-11-22"))
    await settle()

    gateway.gates[("a", 1)].set()
    await newer
    gateway.gates[("a", 0)].set()
    await older

    assert planner.buckets.day_keys_of("a") == ["2025-11-22"]


# ---------------------------------------------------------------------------
# advance_task_to_next_sprint
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_advance_moves_task_out_of_sprint(gateway, make_planner, sprint_week, next_sprint):
    planner = await make_planner(gateway)
    task = planner.find_task("b")

    outcome = await planner.advance_task_to_next_sprint("b")

    assert outcome.ok
    assert planner.find_task("b") is None
    assert gateway.calls[-1] == (
        "advance",
        "b",
        ("s28", "list-29", next_sprint.first_monday, sprint_week.start_date, sprint_week.end_date, task.due_date),
    )


@pytest.mark.asyncio
async def test_failed_advance_restores_position(gateway, make_planner, remote_error):
    planner = await make_planner(gateway)
    order = [t.id for t in planner.tasks]
    gateway.fail_with = remote_error

    outcome = await planner.advance_task_to_next_sprint("b")

    assert outcome.error is ErrorKind.REMOTE
    assert [t.id for t in planner.tasks] == order


@pytest.mark.asyncio
async def test_advance_without_next_sprint_makes_no_call(gateway, sprint_week, members, clock):
    planner = AgendaPlanner(gateway, [sprint_week], members, clock=clock)
    await planner.select_sprint("s28")
    calls = list(gateway.calls)

    outcome = await planner.advance_task_to_next_sprint("a")

    assert outcome.error is ErrorKind.CONFIGURATION
    assert gateway.calls == calls
    assert planner.find_task("a") is not None
    assert planner.banner.expires_at is None


@pytest.mark.asyncio
async def test_to_dict_snapshot(gateway, make_planner):
    planner = await make_planner(gateway)
    snapshot = planner.to_dict()

    assert snapshot["personId"] == "u1"
    assert snapshot["weekRange"] == "17 Nov - 23 Nov"
    assert len(snapshot["days"]) == 7
    tuesday = snapshot["days"][1]
    assert tuesday["key"] == "2025-11-18"
    assert tuesday["load"] == "under"
    assert tuesday["segments"][0]["taskId"] == "a"
    assert snapshot["unplanned"] == [{"taskId": "c", "name": "Task c", "hours": 1.0}]
    assert snapshot["hoursPerPerson"] == {"u1": 6.0, "u2": 2.0}


@pytest.mark.asyncio
async def test_start_falls_back_to_first_sprint_as_loaded(gateway, members, clock):
    undated = Sprint(id="X", name="Backlog sprint")
    open_ended = Sprint(id="Y", name="Open ended", start_date=1000)
    planner = AgendaPlanner(gateway, [undated, open_ended], members, clock=clock)

    outcome = await planner.start(now_ms=5000)

    assert outcome.ok
    assert planner.selected_sprint_id == "X"
    assert [s.id for s in planner.sprints] == ["Y", "X"]


@pytest.mark.asyncio
async def test_cancelled_selection_clears_loading(sprint_week, members, clock):
    gateway = FakeGateway([])
    gateway.fetch_delays["s28"] = asyncio.Event()
    planner = AgendaPlanner(gateway, [sprint_week], members, clock=clock)

    selecting = asyncio.create_task(planner.select_sprint("s28"))
    await settle()
    assert planner.loading
    selecting.cancel()
    with pytest.raises(asyncio.CancelledError):
        await selecting

    assert planner.loading is False
    assert planner._fetch is None
    assert planner.selected_sprint_id is None
