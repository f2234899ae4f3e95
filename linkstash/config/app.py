"""Application-level configuration models."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator

from linkstash.config.base import BaseConfig
from linkstash.config.enrichment import EnrichmentConfig
from linkstash.config.extraction import ExtractionConfig
from linkstash.config.llm import LLMConfig
from linkstash.config.scheduler import SchedulerConfig
from linkstash.config.sync import SyncConfig


class StorageConfig(BaseConfig):
    """Location of the local durable snapshots."""

    snapshot_dir: Path = Field(Path("./store"), description="Snapshot directory (relative to data_root)")


class AppConfig(BaseConfig):
    """Top-level runtime configuration for the entire application."""

    data_root: Path = Field(Path("./data"), description="Root directory for local state")
    logging_level: str = Field("INFO", description="Log level: DEBUG, INFO, WARNING, ERROR")

    storage: StorageConfig = Field(default_factory=StorageConfig, description="Local snapshot storage")
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig, description="Metadata extraction")
    sync: SyncConfig = Field(default_factory=SyncConfig, description="Remote synchronisation")
    scheduler: SchedulerConfig | None = Field(None, description="Scheduler configuration")
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig, description="Enrichment jobs")
    llms: list[LLMConfig] = Field(default_factory=list, description="Available LLM configurations")

    @model_validator(mode="after")
    def _validate_llm_aliases(self) -> "AppConfig":
        aliases = [llm.alias for llm in self.llms]
        if len(set(aliases)) != len(aliases):
            raise ValueError("LLM aliases must be unique.")
        return self

    def resolve_path(self, path: Path) -> Path:
        """Anchor relative paths at ``data_root``."""

        return path if path.is_absolute() else self.data_root / path

    @property
    def snapshot_dir(self) -> Path:
        return self.resolve_path(self.storage.snapshot_dir)

    def get_llm(self, alias: str | None) -> LLMConfig | None:
        if alias is None:
            return None
        return next((llm for llm in self.llms if llm.alias == alias), None)


__all__ = ["AppConfig", "StorageConfig"]
