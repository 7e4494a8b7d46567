"""Dictation corrections: applying stored replacements and learning new ones."""

from __future__ import annotations

import json
import logging
import re

from planner.ai.prompts import load_prompt

logger = logging.getLogger("planner.ai.corrections")


def apply_corrections(text: str, corrections: dict[str, str]) -> str:
    """Replace every misheard phrase with its correction.

    Matching is literal and case-insensitive; replacements are applied in
    dictionary order.
    """
    corrected = text
    for incorrect, correct in corrections.items():
        if not incorrect:
            continue
        pattern = re.compile(re.escape(incorrect), re.IGNORECASE)
        corrected = pattern.sub(lambda _match, value=correct: value, corrected)
    return corrected


def extract_corrections(llm, original: str, changed: str) -> list[tuple[str, str]]:
    """Ask the LLM which phrases the user corrected between two versions of a text.

    Args:
        llm: Object exposing ``complete(system_prompt, user_message, ...)``.
        original: The text as dictated.
        changed: The text after the user's manual fixes.

    Returns:
        ``(original, correction)`` pairs. Empty on any LLM or parse failure.

    Raises:
        ValueError: If either text is blank.
    """
    if not (original or "").strip() or not (changed or "").strip():
        raise ValueError("Both original and changed text are required.")

    message = f'Original text: "{original}"\nCorrected text: "{changed}"'
    try:
        raw = llm.complete(load_prompt("extract_corrections"), message, max_tokens=400, temperature=0.1)
    except Exception:
        logger.exception("LLM inference failed while extracting corrections")
        return []

    # The model may wrap the array in prose; take the first JSON array found.
    decoder = json.JSONDecoder()
    parsed = None
    for match in re.finditer(r"\[", raw):
        try:
            obj, _ = decoder.raw_decode(raw, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(obj, list):
            parsed = obj
            break

    if parsed is None:
        logger.warning("No JSON array found in LLM response: %s", raw)
        return []

    pairs = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        source = str(item.get("original") or "").strip()
        target = str(item.get("correction") or "").strip()
        if source and target and source != target:
            pairs.append((source, target))
    return pairs
