from __future__ import annotations

import pytest

from linkstash.errors import NotFoundError, ValidationError
from linkstash.extraction import MetadataOrchestrator
from linkstash.ingestion import IngestionService, item_metadata_from_envelope, type_metadata_from_envelope
from linkstash.models import ContentKind, MetadataEnvelope, SharedPayload, Space
from linkstash.store import LocalStore

from tests.conftest import CannedReader


@pytest.fixture()
def ingestion(store: LocalStore, orchestrator: MetadataOrchestrator) -> IngestionService:
    return IngestionService(store, orchestrator)


def test_save_url_stores_item_and_side_tables(ingestion: IngestionService, store: LocalStore, reader: CannedReader) -> None:
    url = "https://www.example.com/post"
    reader.pages[url] = {
        "title": "  A post  ",
        "description": "Short summary",
        "image": "https://example.com/cover.png",
        "images": ["https://example.com/cover.png", "https://example.com/2.png"],
        "author": "Ada",
        "site_name": "Example",
        "extra": {"content": "Full body"},
    }
    space = store.add_space(Space(name="Reading"))

    item = ingestion.save_url(url, space_ids=[space.id])

    assert item.title == "A post"
    assert item.content_type is ContentKind.BOOKMARK
    assert item.content == "Full body"
    assert item.thumbnail_url == "https://example.com/cover.png"
    assert store.space_ids_for_item(item.id) == [space.id]
    assert store.get_type_metadata(item.id).image_urls == [  # type: ignore[union-attr]
        "https://example.com/cover.png",
        "https://example.com/2.png",
    ]
    attribution = store.get_item_metadata(item.id)
    assert attribution is not None
    assert attribution.domain == "example.com"
    assert attribution.author == "Ada"


def test_save_url_keeps_partial_metadata(ingestion: IngestionService, store: LocalStore, reader: CannedReader) -> None:
    url = "https://example.com/down"
    reader.failing.add(url)

    item = ingestion.save_url(url)

    assert item.title == url
    assert store.get_item(item.id) is not None


def test_invalid_url_becomes_note(ingestion: IngestionService, reader: CannedReader) -> None:
    item = ingestion.save_url("remember to buy milk")

    assert item.content_type is ContentKind.NOTE
    assert item.title == "remember to buy milk"
    assert reader.calls == []


def test_unknown_space_is_rejected_before_saving(ingestion: IngestionService, store: LocalStore) -> None:
    with pytest.raises(NotFoundError):
        ingestion.save_url("https://example.com", space_ids=["missing"])

    assert store.list_items() == []


def test_save_shared_url_with_text_keeps_notes(ingestion: IngestionService) -> None:
    payload = SharedPayload(url="https://example.com/a", text="worth a read")

    item = ingestion.save_shared(payload)

    assert item.url == "https://example.com/a"
    assert item.notes == "worth a read"


def test_save_shared_images_and_videos(ingestion: IngestionService, store: LocalStore) -> None:
    image = ingestion.save_shared(SharedPayload(images=["file:///a.png", "file:///b.png"]))
    video = ingestion.save_shared(SharedPayload(text="Clip from the trip", videos=["file:///clip.mp4"]))

    assert image.content_type is ContentKind.IMAGE
    assert image.title == "Shared image"
    assert store.get_type_metadata(image.id).image_urls == ["file:///a.png", "file:///b.png"]  # type: ignore[union-attr]
    assert video.content_type is ContentKind.VIDEO
    assert video.title == "Clip from the trip"
    assert store.get_type_metadata(video.id).video_url == "file:///clip.mp4"  # type: ignore[union-attr]


def test_add_note_titles_and_validation(ingestion: IngestionService) -> None:
    long_line = "word " * 30
    note = ingestion.add_note(long_line + "\nsecond line")

    assert note.content_type is ContentKind.NOTE
    assert len(note.title) == 80
    assert note.title.endswith("...")
    assert ingestion.add_note("body", title=" Custom ").title == "Custom"
    with pytest.raises(ValidationError):
        ingestion.add_note("   ")


def test_refresh_metadata_merges_new_fields(ingestion: IngestionService, store: LocalStore, reader: CannedReader) -> None:
    url = "https://example.com/changing"
    item = ingestion.save_url(url)
    store.update_item(item.id, {"notes": "mine"})
    reader.pages[url] = {"title": "New title", "description": "New description"}

    refreshed = ingestion.refresh_metadata(item.id)

    assert refreshed.title == "New title"
    assert refreshed.desc == "New description"
    assert refreshed.notes == "mine"


def test_refresh_metadata_errors(ingestion: IngestionService, store: LocalStore, reader: CannedReader) -> None:
    note = ingestion.add_note("no link here")
    with pytest.raises(ValidationError):
        ingestion.refresh_metadata(note.id)
    with pytest.raises(NotFoundError):
        ingestion.refresh_metadata("missing")

    url = "https://example.com/flaky"
    item = ingestion.save_url(url)
    reader.failing.add(url)
    assert ingestion.refresh_metadata(item.id).title == item.title


def test_envelope_mapping_helpers() -> None:
    envelope = MetadataEnvelope(
        url="https://x.com/jack/status/20",
        content_type=ContentKind.X,
        video_url="https://video.twimg.com/20.mp4",
        username="jack",
        extra={"tweet_id": "20", "metrics": {"likes": 3}},
    )

    type_metadata = type_metadata_from_envelope("item-1", envelope)
    assert type_metadata is not None
    assert type_metadata.data == {
        "video_url": "https://video.twimg.com/20.mp4",
        "tweet_id": "20",
        "metrics": {"likes": 3},
    }
    assert type_metadata_from_envelope("item-1", MetadataEnvelope(url="u", content_type=ContentKind.NOTE)) is None
    assert item_metadata_from_envelope("item-1", envelope).domain == "x.com"
