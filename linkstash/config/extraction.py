"""Metadata extraction configuration models."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator

from linkstash.config.base import BaseConfig
from linkstash.config.utils import resolve_env_reference

ExtractorName = Literal["youtube", "x", "reddit"]


class YouTubeExtractorConfig(BaseConfig):
    """Settings for the yt-dlp backed YouTube extractor."""

    enabled: bool = Field(True, description="Whether YouTube URLs use the dedicated extractor")
    socket_timeout: float = Field(15.0, gt=0, description="yt-dlp socket timeout in seconds")


class XExtractorConfig(BaseConfig):
    """Settings for the X (Twitter) API v2 extractor."""

    enabled: bool = Field(True, description="Whether X URLs use the dedicated extractor")
    base_url: str = Field("https://api.twitter.com/2", description="X API v2 base URL")
    bearer_token: str | None = Field(None, description="Bearer token, can use 'env:VAR_NAME' format")

    @property
    def bearer_token_secret(self) -> str | None:
        return resolve_env_reference(self.bearer_token, required=False)


class RedditExtractorConfig(BaseConfig):
    """Settings for the public Reddit JSON extractor."""

    enabled: bool = Field(True, description="Whether Reddit URLs use the dedicated extractor")


class ReaderConfig(BaseConfig):
    """Settings for the generic readability service (Jina reader)."""

    base_url: str = Field("https://r.jina.ai", description="Reader service base URL")
    api_key: str | None = Field(None, description="Reader API key, can use 'env:VAR_NAME' format")
    require_api_key: bool = Field(False, description="Fail fast with an error envelope when no key is set")

    @property
    def api_key_secret(self) -> str | None:
        return resolve_env_reference(self.api_key, required=False)


class ExtractionConfig(BaseConfig):
    """Top-level extraction settings shared by every provider."""

    timeout: float = Field(20.0, gt=0, description="HTTP timeout for extractor requests in seconds")
    user_agent: str = Field(
        "linkstash/0.1 (+https://github.com/linkstash/linkstash)",
        description="User-Agent header sent by HTTP extractors",
    )
    extractor_order: list[ExtractorName] = Field(
        default_factory=lambda: ["youtube", "x", "reddit"],
        description="Order in which platform extractors are tried before the generic fallback",
    )
    youtube: YouTubeExtractorConfig = Field(default_factory=YouTubeExtractorConfig)
    x: XExtractorConfig = Field(default_factory=XExtractorConfig)
    reddit: RedditExtractorConfig = Field(default_factory=RedditExtractorConfig)
    reader: ReaderConfig = Field(default_factory=ReaderConfig)

    @field_validator("extractor_order")
    @classmethod
    def _unique_order(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            raise ValueError("extractor_order must not contain duplicates")
        return value


__all__ = [
    "ExtractionConfig",
    "ExtractorName",
    "ReaderConfig",
    "RedditExtractorConfig",
    "XExtractorConfig",
    "YouTubeExtractorConfig",
]
