"""Client for the external assessment model, via LiteLLM.

The model id carries the provider prefix (``gemini/gemini-1.5-pro``,
``openai/gpt-4o``, ``anthropic/claude-sonnet-4-20250514`` ...). LiteLLM
reads the matching provider key from the environment.
"""

from __future__ import annotations

import logging
from typing import Any

import litellm

from config.llm_config import LLMConfig
from config.settings import get_settings

logger = logging.getLogger(__name__)


class LLMService:
    """Sends one grading prompt and returns the model's reply text.

    Parameters resolve in layers: settings defaults, then *config*, then
    *model*, then the keyword overrides of a single :meth:`generate` call.
    No retry and no request timeout are applied; provider errors reach the
    caller as raised.
    """

    def __init__(self, config: LLMConfig | None = None, model: str | None = None):
        resolved = get_settings().get_assessment_llm_config()
        for layer in (config, LLMConfig(model=model) if model else None):
            if layer is not None:
                resolved = resolved.merge(layer)
        self.config = resolved

    @property
    def model(self) -> str | None:
        return self.config.model

    def _request(self, prompt: str, overrides: dict[str, Any]) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
            **self.config.to_litellm_kwargs(),
            **overrides,
        }

    async def generate(self, prompt: str, **overrides) -> str:
        """Return the reply text, ``""`` when the model sent no content.

        The reply is free-form; callers must not assume it is structured.
        """
        response = await litellm.acompletion(**self._request(prompt, overrides))
        choice = response.choices[0]
        if choice.finish_reason == "length":
            # A cut-off reply usually loses the closing brace of the JSON block
            logger.warning("Assessment reply from %s hit the token limit", self.model)
        return choice.message.content or ""
