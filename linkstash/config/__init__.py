"""Configuration namespace for linkstash."""

from __future__ import annotations

from .app import AppConfig, StorageConfig
from .base import BaseConfig, load_config
from .enrichment import AssemblyAIConfig, EnrichmentConfig
from .extraction import (
    ExtractionConfig,
    ReaderConfig,
    RedditExtractorConfig,
    XExtractorConfig,
    YouTubeExtractorConfig,
)
from .llm import LLMConfig
from .scheduler import SchedulerConfig
from .sync import SyncConfig
from .utils import resolve_env_reference

__all__ = [
    "BaseConfig",
    "AppConfig",
    "StorageConfig",
    "load_config",
    "AssemblyAIConfig",
    "EnrichmentConfig",
    "ExtractionConfig",
    "ReaderConfig",
    "RedditExtractorConfig",
    "XExtractorConfig",
    "YouTubeExtractorConfig",
    "LLMConfig",
    "SchedulerConfig",
    "SyncConfig",
    "resolve_env_reference",
]
