from __future__ import annotations

from dataclasses import dataclass, field

from linkstash.config import ExtractionConfig
from linkstash.errors import ExtractionError
from linkstash.extraction import (
    INVALID_URL_ERROR,
    MetadataOrchestrator,
    RedditExtractor,
    XExtractor,
    YouTubeExtractor,
)
from linkstash.models import ContentKind, MetadataEnvelope


@dataclass
class _StubExtractor:
    name: str
    kinds: set[ContentKind]
    fail: bool = False
    calls: list[str] = field(default_factory=list)

    def supports(self, kind: ContentKind) -> bool:
        return kind in self.kinds

    def extract(self, url: str, kind: ContentKind) -> MetadataEnvelope:
        self.calls.append(url)
        if self.fail:
            raise ExtractionError("boom", extractor=self.name)
        return MetadataEnvelope(url=url, content_type=kind, title=f"from {self.name}")


@dataclass
class _StubReader:
    name: str = "reader"
    error: str | None = None
    calls: list[tuple[str, ContentKind]] = field(default_factory=list)

    def supports(self, kind: ContentKind) -> bool:
        return True

    def extract(self, url: str, kind: ContentKind | None = None) -> MetadataEnvelope:
        assert kind is not None
        self.calls.append((url, kind))
        return MetadataEnvelope(url=url, content_type=kind, title="from reader", extractor=self.name, error=self.error)


def test_platform_extractor_wins_when_it_succeeds() -> None:
    youtube = _StubExtractor("youtube", {ContentKind.YOUTUBE})
    reader = _StubReader()
    orchestrator = MetadataOrchestrator([youtube], reader)  # type: ignore[arg-type]

    envelope = orchestrator.extract_metadata("https://youtu.be/dQw4w9WgXcQ")

    assert envelope.title == "from youtube"
    assert envelope.extractor == "youtube"
    assert reader.calls == []


def test_failed_extractor_falls_back_to_reader_once() -> None:
    x = _StubExtractor("x", {ContentKind.X}, fail=True)
    reader = _StubReader()
    orchestrator = MetadataOrchestrator([x], reader)  # type: ignore[arg-type]

    envelope = orchestrator.extract_metadata("https://x.com/jack/status/20")

    assert x.calls == ["https://x.com/jack/status/20"]
    assert reader.calls == [("https://x.com/jack/status/20", ContentKind.X)]
    assert envelope.content_type is ContentKind.X
    assert envelope.site_name == "X (Twitter)"
    assert envelope.extra["failed_extractors"] == {"x": "boom"}


def test_unsupported_kinds_go_straight_to_reader() -> None:
    youtube = _StubExtractor("youtube", {ContentKind.YOUTUBE})
    reader = _StubReader()
    orchestrator = MetadataOrchestrator([youtube], reader)  # type: ignore[arg-type]

    envelope = orchestrator.extract_metadata("https://github.com/pallets/click")

    assert youtube.calls == []
    assert envelope.content_type is ContentKind.GITHUB
    assert "failed_extractors" not in envelope.extra


def test_reader_errors_are_returned_not_raised() -> None:
    orchestrator = MetadataOrchestrator([], _StubReader(error="Failed to extract metadata"))  # type: ignore[arg-type]

    envelope = orchestrator.extract_metadata("https://example.com/post")

    assert envelope.error == "Failed to extract metadata"
    assert envelope.content_type is ContentKind.BOOKMARK


def test_invalid_url_becomes_note_envelope() -> None:
    reader = _StubReader()
    orchestrator = MetadataOrchestrator([], reader)  # type: ignore[arg-type]

    envelope = orchestrator.extract_metadata("remember to buy milk")

    assert envelope.error == INVALID_URL_ERROR
    assert envelope.content_type is ContentKind.NOTE
    assert reader.calls == []


def test_from_config_respects_order_and_enabled_flags() -> None:
    config = ExtractionConfig.model_validate(
        {
            "extractor_order": ["x", "youtube", "reddit"],
            "youtube": {"enabled": False},
            "x": {"bearer_token": "t"},
            "reddit": {"enabled": False},
        }
    )

    orchestrator = MetadataOrchestrator.from_config(config)

    assert len(orchestrator.extractors) == 1
    assert isinstance(orchestrator.extractors[0], XExtractor)
    assert orchestrator.chain_for(ContentKind.YOUTUBE) == []

    default_chain = MetadataOrchestrator.from_config(ExtractionConfig()).extractors
    assert isinstance(default_chain[0], YouTubeExtractor)
    assert isinstance(default_chain[-1], RedditExtractor)


def test_crashing_extractor_counts_as_failed_attempt() -> None:
    class _Crashing(_StubExtractor):
        def extract(self, url: str, kind: ContentKind) -> MetadataEnvelope:
            self.calls.append(url)
            raise AttributeError("'str' object has no attribute 'get'")

    x = _Crashing("x", {ContentKind.X})
    reader = _StubReader()
    orchestrator = MetadataOrchestrator([x], reader)  # type: ignore[arg-type]

    envelope = orchestrator.extract_metadata("https://x.com/jack/status/20")

    assert envelope.title == "from reader"
    assert reader.calls == [("https://x.com/jack/status/20", ContentKind.X)]
    assert envelope.extra["failed_extractors"]["x"].startswith("AttributeError")
