"""Local LLM wrapper and generic completion function."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from llama_cpp import Llama

logger = logging.getLogger("planner.ai.llm")


class LLMNotConfiguredError(RuntimeError):
    """Raised when a completion is requested without a model path."""


class LocalLLM:
    """A llama.cpp model loaded on first use.

    One instance is created per process by the service context; nothing is
    loaded until the first completion.
    """

    def __init__(self, model_path: str, n_ctx: int = 4096, n_threads: int = 4) -> None:
        self.model_path = model_path
        self.n_ctx = n_ctx
        self.n_threads = n_threads
        self._llm: Llama | None = None

    def _get_llm(self) -> Llama:
        if self._llm is None:
            if not self.model_path:
                raise LLMNotConfiguredError("LLM_MODEL_PATH is not configured.")
            from llama_cpp import Llama

            logger.info("Loading LLM from %s", self.model_path)
            self._llm = Llama(
                model_path=self.model_path,
                n_ctx=self.n_ctx,
                n_threads=self.n_threads,
                verbose=False,
            )
            logger.info("LLM loaded successfully")
        return self._llm

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: int = 512,
        temperature: float = 0.2,
    ) -> str:
        """Run a chat completion against the local LLM.

        Args:
            system_prompt: The system prompt to use.
            user_message: The user message to process.
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature.

        Returns:
            The raw text content from the LLM response.
        """
        result = self._get_llm().create_chat_completion(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return (result["choices"][0]["message"]["content"] or "").strip()
