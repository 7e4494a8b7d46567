"""Sprint window construction and task-to-day mapping.

All calendar arithmetic happens on local dates: epoch milliseconds are
converted with :meth:`datetime.fromtimestamp` (process local time zone) and
day keys are built from the local year/month/day fields, never from UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Union

from planner.agenda.models import PlannerTask, Sprint

WINDOW_DAYS = 7
UNPLANNED_KEY = "unplanned"


@dataclass(frozen=True)
class SprintDay:
    key: str
    label: str
    date: date


@dataclass(frozen=True)
class Scheduled:
    """A concrete calendar day a task is placed on."""

    day: date

    @property
    def key(self) -> str:
        return day_key(self.day)

    def __str__(self) -> str:
        return self.key


class Unplanned:
    """The bucket for tasks without a usable day in the sprint window."""

    _instance: Unplanned | None = None

    def __new__(cls) -> Unplanned:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def key(self) -> str:
        return UNPLANNED_KEY

    def __repr__(self) -> str:
        return "UNPLANNED"

    def __str__(self) -> str:
        return UNPLANNED_KEY


UNPLANNED = Unplanned()

DayAssignment = Union[Scheduled, Unplanned]


def day_key(day: date) -> str:
    """Return the zero-padded ``YYYY-MM-DD`` key of a local calendar day."""
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def parse_day_key(key: str) -> date:
    """Parse a ``YYYY-MM-DD`` key back into a date.

    Raises:
        ValueError: If *key* is not a valid zero-padded day key.
    """
    parts = key.split("-") if isinstance(key, str) else []
    if len(parts) != 3 or len(parts[0]) != 4 or len(parts[1]) != 2 or len(parts[2]) != 2:
        raise ValueError(f"Invalid day key: {key!r}")
    try:
        year, month, day = (int(p) for p in parts)
        return date(year, month, day)
    except ValueError:
        raise ValueError(f"Invalid day key: {key!r}") from None


def parse_assignment(value: str | None) -> DayAssignment:
    """Turn a UI value (day key or ``"unplanned"``) into a :data:`DayAssignment`.

    Raises:
        ValueError: If *value* is neither ``"unplanned"`` nor a day key.
    """
    if value is None or value == UNPLANNED_KEY:
        return UNPLANNED
    return Scheduled(parse_day_key(value))


def local_date(timestamp_ms: int) -> date:
    """Local calendar day of an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000).date()


def local_midnight_ms(day: date) -> int:
    return int(datetime.combine(day, time.min).timestamp() * 1000)


def key_to_timestamp(key: str) -> int | None:
    """Epoch ms for local noon of the day named by *key*.

    Noon keeps the timestamp on the same calendar day across DST shifts.
    Returns ``None`` for the unplanned key.
    """
    if key == UNPLANNED_KEY:
        return None
    day = parse_day_key(key)
    return int(datetime.combine(day, time(12, 0)).timestamp() * 1000)


def assignment_to_timestamp(assignment: DayAssignment) -> int | None:
    if isinstance(assignment, Scheduled):
        return key_to_timestamp(assignment.key)
    return None


def format_day_label(day: date) -> str:
    return f"{day:%a} {day.day} {day:%b}"


def build_sprint_days(sprint: Sprint | None) -> list[SprintDay]:
    """Build the 7 consecutive days of a sprint window.

    The window starts at local midnight of ``firstMonday``, or of
    ``startDate`` when no Monday anchor was stored. A sprint with neither
    has no displayable window and yields an empty list.
    """
    if sprint is None:
        return []
    anchor = sprint.window_anchor
    if anchor is None:
        return []
    start = local_date(anchor)
    days = []
    for offset in range(WINDOW_DAYS):
        current = start + timedelta(days=offset)
        days.append(SprintDay(key=day_key(current), label=format_day_label(current), date=current))
    return days


def week_range_label(days: list[SprintDay]) -> str:
    if not days:
        return "No dates defined"
    first, last = days[0].date, days[-1].date
    return f"{first.day} {first:%b} - {last.day} {last:%b}"


def task_assignment(task: PlannerTask) -> DayAssignment:
    """The single day a task is filed under when moved or edited (its due day)."""
    if task.due_date is None:
        return UNPLANNED
    return Scheduled(local_date(task.due_date))


def map_task_to_days(task: PlannerTask, valid_keys: set[str] | frozenset[str]) -> list[str]:
    """Return the window day keys a task occupies, in chronological order.

    A task with both dates occupies every day from its start day to its due
    day that lies inside the window. A task with only a due date occupies its
    due day. Both cases apply the same clamping rule: keys outside
    *valid_keys* are dropped, so a task entirely outside the window maps to
    an empty list and belongs in the unplanned bucket. An inverted range
    (start after due) falls back to the due day.
    """
    if task.due_date is None:
        return []

    due_day = local_date(task.due_date)
    if task.start_date is not None and valid_keys:
        # Zero-padded keys sort chronologically.
        current = max(local_date(task.start_date), parse_day_key(min(valid_keys)))
        last = min(due_day, parse_day_key(max(valid_keys)))
        keys = []
        while current <= last:
            key = day_key(current)
            if key in valid_keys:
                keys.append(key)
            current += timedelta(days=1)
        if keys:
            return keys

    due_key = day_key(due_day)
    if due_key in valid_keys:
        return [due_key]
    return []
