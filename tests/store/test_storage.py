from __future__ import annotations

from pathlib import Path

import pytest

from linkstash.errors import PersistenceError
from linkstash.store import CorruptSnapshotError, JsonSnapshotStorage


def test_json_storage_round_trip_leaves_no_temp_files(tmp_path: Path) -> None:
    storage = JsonSnapshotStorage(tmp_path / "snapshots")

    assert storage.load("items") is None
    storage.save("items", [{"id": "1", "title": "Ünïcode"}])
    storage.save("items", [{"id": "2"}])

    assert storage.load("items") == [{"id": "2"}]
    assert sorted(path.name for path in (tmp_path / "snapshots").iterdir()) == ["items.json"]


def test_json_storage_rejects_non_list_snapshots(tmp_path: Path) -> None:
    storage = JsonSnapshotStorage(tmp_path)
    storage.path_for("items").write_text('{"id": "1"}', encoding="utf-8")

    with pytest.raises(CorruptSnapshotError):
        storage.load("items")

    storage.quarantine("items")
    assert storage.load("items") is None


def test_json_storage_wraps_serialisation_errors(tmp_path: Path) -> None:
    storage = JsonSnapshotStorage(tmp_path)

    with pytest.raises(PersistenceError):
        storage.save("items", [{"bad": object()}])
    assert list(tmp_path.glob("*.tmp")) == []
    assert list(tmp_path.glob(".items.*")) == []
