"""Objective / Acceptance Criteria markdown template used in task descriptions."""

from __future__ import annotations

import re
from dataclasses import dataclass

_OBJECTIVE_RE = re.compile(r"##\s*Objective\s*(.*?)(?=##\s*[A-Za-z]|\Z)", re.IGNORECASE | re.DOTALL)
_ACCEPTANCE_RE = re.compile(
    r"##\s*Acceptance\s+Criteria\s*(.*?)(?=##\s*[A-Za-z]|\Z)", re.IGNORECASE | re.DOTALL
)


@dataclass(frozen=True)
class ParsedDescription:
    objective: str
    acceptance_criteria: str
    raw: str


def build_description(
    title: str,
    objective: str,
    acceptance_criteria: str = "",
    include_title: bool = False,
) -> str:
    """Build the markdown description for a task.

    The Objective section is always present and falls back to the title
    when empty. Acceptance Criteria is only added when provided.

    Args:
        title: Task name, used as the Objective fallback.
        objective: Objective text.
        acceptance_criteria: Acceptance criteria text (usually a ``-`` list).
        include_title: Prefix a ``## Title`` section, as newly created tasks do.

    Returns:
        The markdown description.
    """
    safe_title = (title or "").strip()
    safe_objective = (objective or "").strip()
    safe_acceptance = (acceptance_criteria or "").strip()

    sections: list[str] = []
    if include_title:
        sections += ["## Title", safe_title, ""]
    sections += ["## Objective", safe_objective or safe_title or "Objective pending"]
    if safe_acceptance:
        sections += ["", "## Acceptance Criteria", safe_acceptance]
    return "\n".join(sections)


def parse_description(description: str | None) -> ParsedDescription:
    """Split a description into its Objective and Acceptance Criteria sections.

    Never raises: a description without the template headings is returned
    whole as the objective with empty acceptance criteria.
    """
    if not description or not description.strip():
        return ParsedDescription(objective="", acceptance_criteria="", raw="")

    objective_match = _OBJECTIVE_RE.search(description)
    acceptance_match = _ACCEPTANCE_RE.search(description)

    if objective_match:
        objective = objective_match.group(1).strip()
    elif acceptance_match:
        objective = description[: acceptance_match.start()].strip()
    else:
        objective = description.strip()

    acceptance = acceptance_match.group(1).strip() if acceptance_match else ""
    return ParsedDescription(objective=objective, acceptance_criteria=acceptance, raw=description)
