"""AI package: public API for transcript formatting, field editing and corrections."""

from planner.ai.corrections import apply_corrections, extract_corrections
from planner.ai.formatter import edit_field, format_transcript
from planner.ai.llm import LocalLLM

__all__ = ["LocalLLM", "apply_corrections", "edit_field", "extract_corrections", "format_transcript"]
