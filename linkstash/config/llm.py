"""Model endpoints that enrichment jobs refer to by alias."""

from __future__ import annotations

from pydantic import Field

from linkstash.config.base import BaseConfig
from linkstash.config.utils import resolve_env_reference

STUB_PREFIXES = ("stub://", "http://localhost")


class LLMConfig(BaseConfig):
    """One ``[[llms]]`` entry; ``enrichment.vision_model``/``tag_model`` name it by ``alias``."""

    alias: str = Field(..., description="Name used by the enrichment section to pick this endpoint")
    name: str = Field(..., description="Model identifier handed to LiteLLM, e.g. 'gemini/gemini-2.5-flash'")
    base_url: str = Field(..., description="API base URL; 'stub://' or a localhost URL selects the offline stub")
    api_key: str = Field(..., description="Literal key or 'env:VAR_NAME'")
    temperature: float = Field(0.2, ge=0.0, le=2.0, description="Sampling temperature")
    top_p: float = Field(1.0, ge=0.0, le=1.0, description="Nucleus sampling parameter")
    max_tokens: int = Field(500, ge=1, description="Completion token limit")
    timeout: float = Field(60.0, gt=0, description="Request timeout in seconds")
    reasoning_effort: str | None = Field(None, description="Forwarded to providers that accept it")

    @property
    def is_stub(self) -> bool:
        return self.base_url.strip().lower().startswith(STUB_PREFIXES)

    @property
    def api_key_secret(self) -> str:
        resolved = resolve_env_reference(self.api_key)
        if resolved is None:
            raise EnvironmentError(f"LLM '{self.alias}' has no API key")
        return resolved


__all__ = ["LLMConfig", "STUB_PREFIXES"]
