from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from linkstash.config import AppConfig, SyncConfig
from linkstash.errors import GenerationError
from linkstash.extraction import MetadataOrchestrator
from linkstash.models import ContentKind, Item, JobKind
from linkstash.stash import Stash


@pytest.fixture()
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(data_root=tmp_path / "data")


@pytest.fixture()
def stash(config: AppConfig, orchestrator: MetadataOrchestrator) -> Iterator[Stash]:
    stash = Stash(config, orchestrator=orchestrator)
    yield stash
    stash.close()


def test_save_and_sync_reaches_remote(stash: Stash) -> None:
    space = stash.create_space(" Reading ", color="#FF0000")
    item = stash.save_url("https://example.com/article", space_ids=[space.id])

    assert stash.sync_status().pending > 0
    report = stash.sync_now()

    assert report.failed == 0
    assert stash.sync_status().pending == 0
    assert stash.sync_status().last_sync_time is not None
    assert [row["id"] for row in stash.remote.fetch_all("items")] == [item.id]
    assert stash.remote.fetch_all("spaces")[0]["name"] == "Reading"
    assert stash.remote.fetch_all("item_spaces")[0]["space_id"] == space.id
    assert stash.remote.fetch_all("item_metadata")[0]["item_id"] == item.id


def test_update_and_delete_propagate(stash: Stash) -> None:
    space = stash.create_space("Later")
    item = stash.add_note("Call the dentist", space_ids=[space.id])
    stash.sync_now()

    updated = stash.update_item_with_sync(item.id, {"tags": ["errand", "errand", "health"], "is_archived": True})
    stash.sync_now()
    assert updated.tags == ["errand", "health"]
    assert stash.remote.fetch_all("items")[0]["is_archived"] is True

    assert stash.delete_item_with_sync(item.id) is True
    assert stash.delete_item_with_sync(item.id) is False
    stash.sync_now()

    assert stash.get_item(item.id) is None
    assert stash.remote.fetch_all("items") == []
    assert stash.remote.fetch_all("item_spaces") == []
    assert len(stash.remote.fetch_all("spaces")) == 1


def test_pull_brings_in_remote_rows_without_requeueing(stash: Stash) -> None:
    remote_item = Item(title="Saved on phone", content_type=ContentKind.ARTICLE)
    stash.remote.upsert("items", remote_item.to_record())

    stash.sync_now(pull=True)

    local = stash.get_item(remote_item.id)
    assert local is not None
    assert local.title == "Saved on phone"
    assert stash.sync_status().pending == 0


def test_state_survives_restart(config: AppConfig, orchestrator: MetadataOrchestrator) -> None:
    first = Stash(config, orchestrator=orchestrator)
    note = first.add_note("Persist me")
    first.close()

    second = Stash(config, orchestrator=orchestrator)
    try:
        assert second.get_item(note.id) is not None
        assert second.sync_status().pending == 0
        assert [row["id"] for row in second.remote.fetch_all("items")] == [note.id]
    finally:
        second.close()


def test_disabled_sync_queues_nothing(tmp_path: Path, orchestrator: MetadataOrchestrator) -> None:
    stash = Stash(AppConfig(data_root=tmp_path, sync=SyncConfig(enabled=False)), orchestrator=orchestrator)
    try:
        stash.add_note("Offline only")
        assert stash.sync_status().pending == 0
        assert stash.sync_now().attempted == 0
    finally:
        stash.close()


def test_list_items_filters(stash: Stash) -> None:
    space = stash.create_space("Videos")
    video = stash.save_url("https://youtu.be/dQw4w9WgXcQ", space_ids=[space.id], auto_generate=False)
    stash.add_note("groceries")

    assert [item.id for item in stash.list_items(space_id=space.id)] == [video.id]
    assert [item.content_type for item in stash.list_items(content_type="youtube")] == [ContentKind.YOUTUBE]
    assert [item.title for item in stash.list_items(query="GROCER")] == ["groceries"]


def test_generating_flags_and_missing_models(stash: Stash) -> None:
    note = stash.add_note("Tag me")

    stash.set_generating(JobKind.TAGS, note.id, True)
    assert stash.is_generating(JobKind.TAGS, note.id)
    stash.set_generating(JobKind.TAGS, note.id, False)

    with pytest.raises(GenerationError, match="No tag model"):
        stash.generate_tags(note.id)
    assert Stash.classify("https://x.com/jack/status/20") is ContentKind.X
