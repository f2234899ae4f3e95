"""Extractor protocol and the shared HTTP plumbing used by providers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import requests
from loguru import logger

from linkstash.errors import ExtractionError
from linkstash.models import ContentKind, MetadataEnvelope


class Extractor(Protocol):
    """A provider that turns a URL of a given kind into a metadata envelope."""

    name: str

    def supports(self, kind: ContentKind) -> bool:
        """Return ``True`` when this extractor handles ``kind``."""

    def extract(self, url: str, kind: ContentKind) -> MetadataEnvelope:
        """Return metadata for ``url`` or raise :class:`ExtractionError`."""


@dataclass(slots=True)
class ExtractionResult:
    """Outcome of a single extractor attempt."""

    extractor: str
    envelope: MetadataEnvelope | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.envelope is not None


def try_extract(extractor: Extractor, url: str, kind: ContentKind) -> ExtractionResult:
    """Run one attempt and wrap the outcome; an extractor crash counts as a failed attempt."""

    try:
        envelope = extractor.extract(url, kind)
    except ExtractionError as exc:
        logger.warning("Extractor {} failed for {}: {}", extractor.name, url, exc)
        return ExtractionResult(extractor=extractor.name, error=str(exc))
    except Exception as exc:
        logger.exception("Extractor {} crashed for {}", extractor.name, url)
        return ExtractionResult(extractor=extractor.name, error=f"{type(exc).__name__}: {exc}")
    if envelope.extractor is None:
        envelope.extractor = extractor.name
    logger.debug("Extractor {} succeeded for {}", extractor.name, url)
    return ExtractionResult(extractor=extractor.name, envelope=envelope)


def build_session(user_agent: str) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent})
    return session


def get_json(
    session: requests.Session,
    url: str,
    *,
    extractor: str,
    timeout: float,
    **kwargs: Any,
) -> Any:
    """GET ``url`` and decode JSON, mapping transport and decoding failures to :class:`ExtractionError`."""

    try:
        response = session.get(url, timeout=timeout, **kwargs)
        response.raise_for_status()
        return response.json()
    except requests.Timeout as exc:
        raise ExtractionError(f"Request timed out after {timeout}s", extractor=extractor) from exc
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else "unknown"
        raise ExtractionError(f"HTTP {status} from {extractor}", extractor=extractor) from exc
    except requests.RequestException as exc:
        raise ExtractionError(f"Request failed: {exc}", extractor=extractor) from exc
    except ValueError as exc:
        raise ExtractionError("Response was not valid JSON", extractor=extractor) from exc


__all__ = ["ExtractionResult", "Extractor", "build_session", "get_json", "try_extract"]
