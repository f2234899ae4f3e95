from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from linkstash.errors import SyncError
from linkstash.models import Item, Space, VideoTranscript
from linkstash.store import ITEM_SPACES, ITEMS, SPACES, VIDEO_TRANSCRIPTS, LocalStore, MemorySnapshotStorage
from linkstash.sync import LocalRemoteStore, Outbox, SyncEngine
from linkstash.sync.remote import RemoteStore


class FakeRemote(RemoteStore):
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.failing = False
        self.online = True

    def upsert(self, entity: str, record: dict[str, Any]) -> None:
        if self.failing:
            raise SyncError("remote unavailable")
        self.calls.append(("upsert", entity, record))

    def delete(self, entity: str, match: dict[str, Any]) -> None:
        if self.failing:
            raise SyncError("remote unavailable")
        self.calls.append(("delete", entity, match))

    def fetch_all(self, entity: str) -> list[dict[str, Any]]:
        return []

    def ping(self) -> bool:
        return self.online


def _engine(store: LocalStore, remote: RemoteStore, **kwargs: Any) -> SyncEngine:
    engine = SyncEngine(store, Outbox(MemorySnapshotStorage()), remote, **kwargs)
    engine.attach()
    return engine


def test_local_writes_are_queued_and_flushed_in_order(store: LocalStore) -> None:
    remote = FakeRemote()
    engine = _engine(store, remote)

    item = store.add_item(Item(title="First", url="https://example.com"))
    space = store.add_space(Space(name="Inbox"))
    store.add_item_to_space(item.id, space.id)

    report = engine.flush()

    assert report.succeeded == 3
    assert [(op, entity) for op, entity, _ in remote.calls] == [
        ("upsert", ITEMS),
        ("upsert", SPACES),
        ("upsert", ITEM_SPACES),
    ]
    assert len(engine.outbox) == 0
    assert engine.status().last_sync_time is not None


def test_delete_replays_with_match_columns(store: LocalStore) -> None:
    remote = FakeRemote()
    engine = _engine(store, remote)
    item = store.add_item(Item(title="Gone"))
    engine.flush()
    remote.calls.clear()

    store.delete_item(item.id)
    engine.flush()

    assert remote.calls == [("delete", ITEMS, {"id": item.id})]


def test_failure_keeps_local_state_and_retries_with_backoff(store: LocalStore) -> None:
    remote = FakeRemote()
    engine = _engine(store, remote, backoff_base=2, backoff_max=60)
    remote.failing = True
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    item = store.add_item(Item(title="Offline"))
    space = store.add_space(Space(name="Later"))
    store.add_item_to_space(item.id, space.id)
    report = engine.flush(now=now)

    assert report.failed == 2
    assert report.skipped == 1
    assert store.get_item(item.id) is not None
    status = engine.status()
    assert status.pending == 3
    assert status.failed == 2
    assert status.last_error == "remote unavailable"

    remote.failing = False
    assert engine.flush(now=now).attempted == 0

    report = engine.flush(now=now + timedelta(seconds=engine.backoff_for(0) + 1))
    assert report.succeeded == 3
    assert engine.status().pending == 0
    assert engine.status().last_error is None


def test_backoff_grows_exponentially_up_to_cap(store: LocalStore) -> None:
    engine = SyncEngine(store, Outbox(MemorySnapshotStorage()), FakeRemote(), backoff_base=2, backoff_max=20)

    assert [engine.backoff_for(n) for n in range(5)] == [2, 4, 8, 16, 20]


def test_disabled_engine_queues_nothing(store: LocalStore) -> None:
    remote = FakeRemote()
    engine = _engine(store, remote, enabled=False)

    store.add_item(Item(title="Private"))

    assert len(engine.outbox) == 0
    assert engine.flush().attempted == 0


def test_connectivity_recovery_clears_backoff(store: LocalStore) -> None:
    remote = FakeRemote()
    engine = _engine(store, remote)
    remote.failing = True
    store.add_item(Item(title="Waiting"))
    engine.flush()
    assert engine.outbox.due() == []

    remote.online = False
    assert engine.check_connectivity() is False
    remote.online = True
    remote.failing = False
    assert engine.check_connectivity() is True

    assert engine.flush().succeeded == 1


def test_pull_imports_missing_rows_without_requeueing(store: LocalStore, tmp_path: Path) -> None:
    remote = LocalRemoteStore(tmp_path / "remote")
    remote_item = Item(title="From elsewhere", url="https://example.com/remote")
    remote_space = Space(name="Shared")
    remote.upsert(ITEMS, {**remote_item.to_record(), "user_id": "u1"})
    remote.upsert(SPACES, remote_space.to_record())
    remote.upsert(ITEM_SPACES, {"item_id": remote_item.id, "space_id": remote_space.id})
    remote.upsert(ITEM_SPACES, {"item_id": "unknown", "space_id": remote_space.id})
    engine = _engine(store, remote)

    counts = engine.pull()

    assert counts == {ITEMS: 1, SPACES: 1, ITEM_SPACES: 1}
    assert store.get_item(remote_item.id).title == "From elsewhere"  # type: ignore[union-attr]
    assert store.space_ids_for_item(remote_item.id) == [remote_space.id]
    assert len(engine.outbox) == 0
    assert engine.pull() == {ITEMS: 0, SPACES: 0, ITEM_SPACES: 0}


def test_background_worker_flushes_and_drains_on_stop(store: LocalStore) -> None:
    remote = FakeRemote()
    engine = _engine(store, remote, idle_interval=0.05)
    engine.start()
    assert engine.running

    store.add_item(Item(title="Background"))
    engine.stop(drain=True, timeout=2)

    assert not engine.running
    assert len(engine.outbox) == 0
    assert remote.calls[0][1] == ITEMS


class SelectiveRemote(FakeRemote):
    """Rejects writes to the listed entities only."""

    def __init__(self, rejected: set[str]) -> None:
        super().__init__()
        self.rejected = rejected

    def upsert(self, entity: str, record: dict[str, Any]) -> None:
        if entity in self.rejected:
            raise SyncError(f"{entity} rejected")
        super().upsert(entity, record)


def test_artifacts_sync_while_parent_edit_is_failing(store: LocalStore) -> None:
    remote = SelectiveRemote(set())
    engine = _engine(store, remote)
    item = store.add_item(Item(title="Talk", url="https://youtu.be/abc12345678"))
    engine.flush()
    remote.calls.clear()

    remote.rejected = {ITEMS}
    store.update_item(item.id, {"title": "Talk (edited)"})
    store.add_transcript(VideoTranscript(item_id=item.id, transcript="hello", platform="youtube"))
    report = engine.flush()

    assert (report.failed, report.succeeded, report.skipped) == (1, 1, 0)
    assert [(op, entity) for op, entity, _ in remote.calls] == [("upsert", VIDEO_TRANSCRIPTS)]
    assert engine.status().pending == 1


def test_rows_wait_for_a_parent_create_that_never_arrived(store: LocalStore) -> None:
    remote = SelectiveRemote({ITEMS})
    engine = _engine(store, remote)
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    item = store.add_item(Item(title="Fresh"))
    store.add_transcript(VideoTranscript(item_id=item.id, transcript="hi", platform="youtube"))

    report = engine.flush(now=now)
    assert (report.failed, report.skipped) == (1, 1)
    assert engine.flush(now=now).skipped == 1

    remote.rejected = set()
    report = engine.flush(now=now + timedelta(seconds=engine.backoff_for(0) + 1))
    assert report.succeeded == 2
    assert [entity for _, entity, _ in remote.calls] == [ITEMS, VIDEO_TRANSCRIPTS]


def test_edit_during_backoff_is_sent_on_next_flush(store: LocalStore) -> None:
    remote = FakeRemote()
    engine = _engine(store, remote, backoff_base=60, backoff_max=600)
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    item = store.add_item(Item(title="v1"))
    engine.flush(now=now)
    remote.calls.clear()

    remote.failing = True
    store.update_item(item.id, {"title": "v2"})
    engine.flush(now=now)
    engine.flush(now=now + timedelta(seconds=61))

    remote.failing = False
    store.update_item(item.id, {"title": "v3"})
    report = engine.flush(now=now + timedelta(seconds=62))

    assert report.succeeded == 1
    assert remote.calls[-1][2]["title"] == "v3"


def test_failed_flush_marks_engine_offline(store: LocalStore) -> None:
    remote = FakeRemote()
    engine = _engine(store, remote)
    remote.failing = True
    store.add_item(Item(title="Outage"))

    engine.flush()
    assert engine.status().is_online is False

    remote.failing = False
    assert engine.check_connectivity() is True
    assert engine.flush().succeeded == 1
    assert engine.status().is_online is True
