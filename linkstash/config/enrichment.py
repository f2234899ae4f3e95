"""Background enrichment job configuration models."""

from __future__ import annotations

from pydantic import Field

from linkstash.config.base import BaseConfig
from linkstash.config.utils import resolve_env_reference


class AssemblyAIConfig(BaseConfig):
    """Speech-to-text provider used for X video transcripts."""

    base_url: str = Field("https://api.assemblyai.com/v2", description="AssemblyAI API base URL")
    api_key: str | None = Field(None, description="API key, can use 'env:VAR_NAME' format")
    poll_interval: float = Field(5.0, gt=0, description="Seconds between status polls")
    max_polls: int = Field(120, ge=1, description="Maximum polls before the job times out")
    timeout: float = Field(30.0, gt=0, description="Per-request timeout in seconds")

    @property
    def api_key_secret(self) -> str | None:
        return resolve_env_reference(self.api_key, required=False)


class EnrichmentConfig(BaseConfig):
    """Settings for the background enrichment jobs."""

    auto_generate_transcripts: bool = Field(False, description="Fetch transcripts right after saving videos")
    auto_generate_image_descriptions: bool = Field(
        False,
        description="Describe images right after saving items that carry them",
    )
    auto_generate_tags: bool = Field(False, description="Suggest tags right after saving an item")
    auto_generate_tldr: bool = Field(False, description="Summarize an item right after saving it")
    vision_model: str | None = Field(None, description="LLM alias used for image descriptions")
    tag_model: str | None = Field(None, description="LLM alias used for tag suggestions")
    tldr_model: str | None = Field(None, description="LLM alias used for TLDR summaries, defaults to tag_model")
    caption_languages: list[str] = Field(
        default_factory=lambda: ["en"],
        description="Preferred YouTube caption languages, most preferred first",
    )
    max_workers: int = Field(2, ge=1, description="Worker threads for background enrichment jobs")
    assemblyai: AssemblyAIConfig = Field(default_factory=AssemblyAIConfig)


__all__ = ["AssemblyAIConfig", "EnrichmentConfig"]
