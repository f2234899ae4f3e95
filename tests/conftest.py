"""Pytest helpers for path configuration and shared fixtures."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from linkstash.extraction import MetadataOrchestrator  # noqa: E402
from linkstash.models import ContentKind, MetadataEnvelope  # noqa: E402
from linkstash.store import LocalStore, MemorySnapshotStorage  # noqa: E402


@pytest.fixture()
def memory_storage() -> MemorySnapshotStorage:
    return MemorySnapshotStorage()


@pytest.fixture()
def store(memory_storage: MemorySnapshotStorage) -> LocalStore:
    """A local store that never touches the filesystem."""

    return LocalStore(memory_storage)


class CannedReader:
    """Reader fallback that answers from a URL -> envelope fields table."""

    name = "reader"

    def __init__(self) -> None:
        self.pages: dict[str, dict[str, Any]] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []

    def supports(self, kind: ContentKind) -> bool:
        return True

    def extract(self, url: str, kind: ContentKind | None = None) -> MetadataEnvelope:
        self.calls.append(url)
        kind = kind or ContentKind.BOOKMARK
        if url in self.failing:
            return MetadataEnvelope(url=url, content_type=kind, extractor=self.name, error="HTTP 503 from reader")
        fields = self.pages.get(url, {"title": "Untitled page"})
        return MetadataEnvelope(url=url, content_type=kind, extractor=self.name, **fields)


@pytest.fixture()
def reader() -> CannedReader:
    return CannedReader()


@pytest.fixture()
def orchestrator(reader: CannedReader) -> MetadataOrchestrator:
    return MetadataOrchestrator([], reader)  # type: ignore[arg-type]
