"""Exception hierarchy shared across linkstash."""

from __future__ import annotations


class LinkstashError(Exception):
    """Base class for all linkstash errors."""


class ValidationError(LinkstashError):
    """Raised when input or field edits fail validation rules."""


class NotFoundError(LinkstashError):
    """Raised when an entity cannot be located in the local store."""


class ExtractionError(LinkstashError):
    """Raised by a provider extractor; the orchestrator turns it into a fallback."""

    def __init__(self, message: str, *, extractor: str | None = None) -> None:
        super().__init__(message)
        self.extractor = extractor


class SyncError(LinkstashError):
    """Raised by remote stores; the sync engine logs it and retries later."""


class PersistenceError(LinkstashError):
    """Raised when a local snapshot cannot be written."""


class GenerationError(LinkstashError):
    """Raised when a background enrichment job fails."""


class JobAlreadyRunningError(GenerationError):
    """Raised when a job of the same kind is already running for an item."""

    def __init__(self, kind: str, item_id: str) -> None:
        super().__init__(f"{kind} generation already running for item {item_id}")
        self.kind = kind
        self.item_id = item_id


__all__ = [
    "ExtractionError",
    "GenerationError",
    "JobAlreadyRunningError",
    "LinkstashError",
    "NotFoundError",
    "PersistenceError",
    "SyncError",
    "ValidationError",
]
