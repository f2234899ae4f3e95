"""Generic extraction through the Jina reader service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote, urlsplit

import requests
from loguru import logger

from linkstash.classifier import classify_url
from linkstash.errors import ExtractionError
from linkstash.models import ContentKind, MetadataEnvelope

from .base import build_session, get_json


def _first(*values: Any) -> Any:
    return next((value for value in values if value), None)


def _pick_image(data: dict[str, Any]) -> str | None:
    images = data.get("images")
    first_image = None
    if isinstance(images, list) and images:
        head = images[0]
        first_image = head.get("url") if isinstance(head, dict) else head
    elif isinstance(images, dict) and images:
        # images summary is a {alt: url} mapping
        first_image = next(iter(images.values()))
    return _first(first_image, data.get("image"), data.get("ogImage"), data.get("screenshot"))


@dataclass(slots=True)
class ReaderExtractor:
    """Readability fallback; never raises, failures come back as error envelopes."""

    base_url: str = "https://r.jina.ai"
    api_key: str | None = None
    require_api_key: bool = False
    timeout: float = 20.0
    user_agent: str = "linkstash/0.1"
    name: str = "reader"
    session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.session = build_session(self.user_agent)

    def supports(self, kind: ContentKind) -> bool:
        return True

    def extract(self, url: str, kind: ContentKind | None = None) -> MetadataEnvelope:
        kind = kind or classify_url(url)
        if self.require_api_key and not self.api_key:
            logger.error("Reader API key is not configured")
            return MetadataEnvelope(url=url, content_type=kind, extractor=self.name, error="Reader API not configured")

        try:
            data = self.fetch(url)
        except ExtractionError as exc:
            logger.warning("Reader extraction failed for {}: {}", url, exc)
            return MetadataEnvelope(url=url, content_type=kind, extractor=self.name, error="Failed to extract metadata")
        return self.to_envelope(url, kind, data)

    def fetch(self, url: str) -> dict[str, Any]:
        headers = {
            "Accept": "application/json",
            "X-With-Images-Summary": "true",
            "X-With-Links-Summary": "true",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = get_json(
            self.session,
            f"{self.base_url.rstrip('/')}/{quote(url, safe='')}",
            extractor=self.name,
            timeout=self.timeout,
            headers=headers,
        )
        if not isinstance(payload, dict):
            raise ExtractionError("Reader returned an unexpected payload", extractor=self.name)
        data = payload.get("data", payload)
        if not isinstance(data, dict):
            raise ExtractionError("Reader returned an unexpected payload", extractor=self.name)
        return data

    def to_envelope(self, url: str, kind: ContentKind, data: dict[str, Any]) -> MetadataEnvelope:
        text = data.get("content") or data.get("text") or ""
        authors = data.get("authors")
        return MetadataEnvelope(
            url=url,
            content_type=kind,
            title=_first(data.get("title"), data.get("ogTitle"), "No title"),
            description=_first(data.get("description"), data.get("excerpt"), data.get("ogDescription"), text[:200] or None),
            image=_pick_image(data),
            site_name=_first(data.get("siteName"), data.get("publisher"), urlsplit(url).hostname),
            favicon=_first(data.get("favicon"), data.get("icon")),
            author=_first(data.get("author"), authors[0] if isinstance(authors, list) and authors else None),
            published_date=_first(data.get("publishedTime"), data.get("datePublished")),
            extractor=self.name,
            extra={"content": text} if text else {},
        )


__all__ = ["ReaderExtractor"]
