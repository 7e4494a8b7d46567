"""Transcript formatting and single-field rewriting with the local LLM."""

from __future__ import annotations

import logging

from integrations.description import ParsedDescription, parse_description
from planner.ai.corrections import apply_corrections
from planner.ai.prompts import load_prompt

logger = logging.getLogger("planner.ai.formatter")

FIELD_INSTRUCTIONS = {
    "title": "You are editing the Title field of a task. The title must be a single concise line in English.",
    "objective": "You are editing the Objective field of a task. The objective should be a short paragraph in English.",
    "acceptance_criteria": (
        "You are editing the Acceptance Criteria field of a task. "
        "The acceptance criteria should be a bullet list (use `-`) in English."
    ),
}

FIELD_LABELS = {
    "title": "title",
    "objective": "objective",
    "acceptance_criteria": "acceptance criteria",
}


class EmptyCompletionError(RuntimeError):
    """Raised when the LLM returns nothing usable."""


def format_transcript(llm, text: str, corrections: dict[str, str] | None = None) -> tuple[str, ParsedDescription]:
    """Restructure dictated text into the Objective / Acceptance Criteria template.

    Args:
        llm: Object exposing ``complete(system_prompt, user_message, ...)``.
        text: The raw transcript.
        corrections: Misheard phrase -> correction map applied before formatting.

    Returns:
        The formatted markdown and its parsed sections.

    Raises:
        ValueError: If *text* is blank.
        EmptyCompletionError: If the LLM returns an empty answer.
    """
    if not (text or "").strip():
        raise ValueError("No text provided to format.")

    corrected = apply_corrections(text.strip(), corrections or {})
    formatted = llm.complete(load_prompt("format_transcript"), f"Content to format:\n{corrected}")
    if not formatted:
        raise EmptyCompletionError("The language model returned an empty response.")
    logger.info("Formatted transcript (%d chars -> %d chars)", len(corrected), len(formatted))
    return formatted, parse_description(formatted)


def edit_field(llm, field: str, current_value: str, instruction: str, context: dict) -> str:
    """Rewrite one task field following a free-text instruction.

    Raises:
        ValueError: If *field* is unknown or *instruction* is blank.
        EmptyCompletionError: If the LLM returns an empty answer.
    """
    if field not in FIELD_INSTRUCTIONS:
        raise ValueError("Invalid field. Must be 'title', 'objective', or 'acceptance_criteria'.")
    if not (instruction or "").strip():
        raise ValueError("Instruction is required.")

    label = FIELD_LABELS[field]
    system_prompt = load_prompt("edit_field").format(field_instructions=FIELD_INSTRUCTIONS[field])
    message = (
        f"Current {label}:\n{current_value or ''}\n\n"
        "Full task context:\n"
        f"Title: {context.get('title', '')}\n"
        f"Objective: {context.get('objective', '')}\n"
        f"Acceptance Criteria: {context.get('acceptance_criteria', '')}\n\n"
        f"User instruction:\n{instruction.strip()}\n\n"
        f"Return only the modified {label} value."
    )
    new_value = llm.complete(system_prompt, message, max_tokens=400)
    if not new_value:
        raise EmptyCompletionError("The language model returned an empty response.")
    return new_value
