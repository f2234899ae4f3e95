"""Durable key-value snapshot storage for the local store."""

from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from linkstash.errors import PersistenceError


class CorruptSnapshotError(ValueError):
    """Raised when a stored snapshot cannot be decoded."""


class SnapshotStorage(ABC):
    """Durable storage holding one list of rows per key."""

    @abstractmethod
    def load(self, key: str) -> list[dict[str, Any]] | None:
        """Return stored rows, ``None`` when nothing is stored, or raise :class:`CorruptSnapshotError`."""

    @abstractmethod
    def save(self, key: str, rows: list[dict[str, Any]]) -> None:
        """Replace the rows stored under ``key`` or raise :class:`PersistenceError`."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the rows stored under ``key`` if present."""

    def quarantine(self, key: str) -> None:
        """Move a corrupt snapshot out of the way; default is to delete it."""

        self.delete(key)


class JsonSnapshotStorage(SnapshotStorage):
    """One JSON file per key, written atomically via temp file and rename."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> list[dict[str, Any]] | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CorruptSnapshotError(f"Unreadable snapshot {path}: {exc}") from exc
        if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
            raise CorruptSnapshotError(f"Snapshot {path} is not a list of objects")
        return data

    def save(self, key: str, rows: list[dict[str, Any]]) -> None:
        path = self.path_for(key)
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.directory)
        except OSError as exc:
            raise PersistenceError(f"Failed to write snapshot {path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(rows, handle, ensure_ascii=False, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(f"Failed to write snapshot {path}: {exc}") from exc

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)

    def quarantine(self, key: str) -> None:
        path = self.path_for(key)
        if not path.exists():
            return
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        target = path.with_name(f"{path.name}.corrupt-{stamp}")
        path.replace(target)
        logger.warning("Moved corrupt snapshot {} to {}", path, target)


class MemorySnapshotStorage(SnapshotStorage):
    """In-process storage for tests and throwaway sessions."""

    def __init__(self) -> None:
        self.data: dict[str, list[dict[str, Any]]] = {}

    def load(self, key: str) -> list[dict[str, Any]] | None:
        rows = self.data.get(key)
        return None if rows is None else [dict(row) for row in rows]

    def save(self, key: str, rows: list[dict[str, Any]]) -> None:
        self.data[key] = [dict(row) for row in rows]

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


__all__ = ["CorruptSnapshotError", "JsonSnapshotStorage", "MemorySnapshotStorage", "SnapshotStorage"]
