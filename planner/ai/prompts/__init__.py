"""System prompts for the dictation helpers, stored as ``.txt`` files beside this module."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

_PROMPTS_DIR = Path(__file__).resolve().parent


def available_prompts() -> list[str]:
    return sorted(path.stem for path in _PROMPTS_DIR.glob("*.txt"))


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """Read a system prompt once per process.

    Raises:
        KeyError: If no ``<name>.txt`` exists; the message lists the known names.
    """
    path = _PROMPTS_DIR / f"{name}.txt"
    if not path.is_file():
        raise KeyError(f"Unknown prompt {name!r}; expected one of {available_prompts()}")
    return path.read_text(encoding="utf-8").strip()
