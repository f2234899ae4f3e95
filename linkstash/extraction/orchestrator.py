"""Classify a URL, run the platform extractor chain and fall back to the reader."""

from __future__ import annotations

from typing import Sequence

from loguru import logger

from linkstash.classifier import classify_url, parse_http_url
from linkstash.config import ExtractionConfig
from linkstash.models import ContentKind, MetadataEnvelope

from .base import ExtractionResult, Extractor, try_extract
from .generic import ReaderExtractor
from .reddit import RedditExtractor
from .twitter import SITE_NAME as X_SITE_NAME, XExtractor
from .youtube import YouTubeExtractor

INVALID_URL_ERROR = "Invalid URL"


class MetadataOrchestrator:
    """Ordered strategy chain: matching platform extractors, then the generic reader.

    Every strategy gets exactly one attempt. :meth:`extract_metadata` never raises.
    """

    def __init__(self, extractors: Sequence[Extractor], fallback: ReaderExtractor) -> None:
        self.extractors = list(extractors)
        self.fallback = fallback

    @classmethod
    def from_config(cls, config: ExtractionConfig) -> "MetadataOrchestrator":
        available: dict[str, Extractor] = {}
        if config.youtube.enabled:
            available["youtube"] = YouTubeExtractor(socket_timeout=config.youtube.socket_timeout)
        if config.x.enabled:
            available["x"] = XExtractor(
                bearer_token=config.x.bearer_token_secret,
                base_url=config.x.base_url,
                timeout=config.timeout,
                user_agent=config.user_agent,
            )
        if config.reddit.enabled:
            available["reddit"] = RedditExtractor(timeout=config.timeout, user_agent=config.user_agent)
        fallback = ReaderExtractor(
            base_url=config.reader.base_url,
            api_key=config.reader.api_key_secret,
            require_api_key=config.reader.require_api_key,
            timeout=config.timeout,
            user_agent=config.user_agent,
        )
        ordered = [available[name] for name in config.extractor_order if name in available]
        return cls(ordered, fallback)

    def chain_for(self, kind: ContentKind) -> list[Extractor]:
        return [extractor for extractor in self.extractors if extractor.supports(kind)]

    def extract_metadata(self, url: str) -> MetadataEnvelope:
        valid = parse_http_url(url)
        if valid is None:
            logger.info("Rejecting malformed URL {!r}", url)
            return MetadataEnvelope(url=url, content_type=ContentKind.NOTE, error=INVALID_URL_ERROR)

        kind = classify_url(valid)
        attempts: list[ExtractionResult] = []
        for extractor in self.chain_for(kind):
            result = try_extract(extractor, valid, kind)
            attempts.append(result)
            if result.envelope is not None:
                return result.envelope

        try:
            envelope = self.fallback.extract(valid, kind)
        except Exception as exc:  # pragma: no cover - the reader returns error envelopes instead
            logger.exception("Reader fallback raised for {}", valid)
            envelope = MetadataEnvelope(url=valid, content_type=kind, extractor=self.fallback.name, error=str(exc))

        if kind is ContentKind.X and not envelope.site_name:
            envelope.site_name = X_SITE_NAME
        if attempts:
            envelope.extra.setdefault("failed_extractors", {r.extractor: r.error for r in attempts})
        logger.debug("Extraction for {} finished via {} (kind={})", valid, envelope.extractor, kind.value)
        return envelope


__all__ = ["INVALID_URL_ERROR", "MetadataOrchestrator"]
