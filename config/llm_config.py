"""Generation parameters for the external assessment model.

Priority chain (low → high):
    .env defaults  →  service-level LLMConfig  →  per-call overrides
"""

from __future__ import annotations

from pydantic import BaseModel, Field

_PASSTHROUGH_FIELDS = ("max_tokens", "temperature", "top_p", "seed", "stop")


class LLMConfig(BaseModel):
    """Model id plus sampling parameters. ``None`` means "model default"."""

    model: str | None = Field(default=None, description="LiteLLM model identifier")
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    seed: int | None = None
    response_format: str | None = Field(
        default=None, description="'json_object' asks the provider for JSON output"
    )
    stop: list[str] | None = None

    def merge(self, overrides: LLMConfig) -> LLMConfig:
        """Return a new config where non-None fields of *overrides* win."""
        merged = self.model_dump(exclude_none=True)
        merged.update(overrides.model_dump(exclude_none=True))
        return LLMConfig(**merged)

    def to_litellm_kwargs(self) -> dict:
        """Keyword arguments for ``litellm.completion`` / ``acompletion``."""
        kw: dict = {
            name: getattr(self, name)
            for name in _PASSTHROUGH_FIELDS
            if getattr(self, name) is not None
        }
        if self.response_format:
            kw["response_format"] = {"type": self.response_format}
        return kw
