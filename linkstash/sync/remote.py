"""Remote store abstractions the sync engine replays against."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Any

import requests
from loguru import logger

from linkstash.config.sync import SyncConfig
from linkstash.errors import PersistenceError, SyncError
from linkstash.models import ContentKind, is_uuid
from linkstash.store.storage import CorruptSnapshotError, JsonSnapshotStorage

# Conflict columns per remote table.
ENTITY_KEYS: dict[str, tuple[str, ...]] = {
    "items": ("id",),
    "spaces": ("id",),
    "item_spaces": ("item_id", "space_id"),
    "item_type_metadata": ("item_id",),
    "item_metadata": ("item_id",),
    "video_transcripts": ("item_id",),
    "image_descriptions": ("item_id", "image_url"),
}

_OWNED_ENTITIES = {"items", "spaces"}


def match_for(entity: str, record: dict[str, Any]) -> dict[str, Any]:
    """Return the conflict-column values identifying ``record`` remotely."""

    try:
        columns = ENTITY_KEYS[entity]
    except KeyError as exc:
        raise SyncError(f"Unknown remote entity '{entity}'") from exc
    missing = [column for column in columns if record.get(column) in (None, "")]
    if missing:
        raise SyncError(f"Record for {entity} lacks key columns {missing}")
    return {column: record[column] for column in columns}


def to_remote_record(entity: str, record: dict[str, Any], *, user_id: str | None = None) -> dict[str, Any]:
    """Prepare a local row for the remote schema."""

    row = dict(record)
    if entity == "items":
        if not is_uuid(row.get("id", "")):
            raise SyncError(f"Item id {row.get('id')!r} is not a UUID")
        row["content_type"] = ContentKind.coerce(row.get("content_type")).value
    if user_id and entity in _OWNED_ENTITIES:
        row["user_id"] = user_id
    return row


class RemoteStore(ABC):
    """Remote persistence target; every failure surfaces as :class:`SyncError`."""

    name = "remote"

    @abstractmethod
    def upsert(self, entity: str, record: dict[str, Any]) -> None:
        """Insert or merge ``record`` by the entity's conflict columns."""

    @abstractmethod
    def delete(self, entity: str, match: dict[str, Any]) -> None:
        """Delete rows matching ``match``; deleting a missing row is not an error."""

    @abstractmethod
    def fetch_all(self, entity: str) -> list[dict[str, Any]]:
        """Return every remote row for ``entity``."""

    @abstractmethod
    def ping(self) -> bool:
        """Return ``True`` when the remote is reachable."""


class LocalRemoteStore(RemoteStore):
    """Remote store kept as JSON files in a directory (single machine or shared mount)."""

    name = "local"

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self._storage = JsonSnapshotStorage(self.directory)
        self._lock = Lock()

    def _rows(self, entity: str) -> list[dict[str, Any]]:
        try:
            return self._storage.load(entity) or []
        except CorruptSnapshotError as exc:
            raise SyncError(str(exc)) from exc

    def _write(self, entity: str, rows: list[dict[str, Any]]) -> None:
        try:
            self._storage.save(entity, rows)
        except PersistenceError as exc:
            raise SyncError(str(exc)) from exc

    def upsert(self, entity: str, record: dict[str, Any]) -> None:
        match = match_for(entity, record)
        with self._lock:
            rows = self._rows(entity)
            for index, row in enumerate(rows):
                if all(row.get(column) == value for column, value in match.items()):
                    rows[index] = {**row, **record}
                    break
            else:
                rows.append(dict(record))
            self._write(entity, rows)

    def delete(self, entity: str, match: dict[str, Any]) -> None:
        with self._lock:
            rows = self._rows(entity)
            kept = [row for row in rows if not all(row.get(column) == value for column, value in match.items())]
            if len(kept) != len(rows):
                self._write(entity, kept)

    def fetch_all(self, entity: str) -> list[dict[str, Any]]:
        with self._lock:
            return self._rows(entity)

    def ping(self) -> bool:
        return self.directory.is_dir()


class SupabaseRemoteStore(RemoteStore):
    """PostgREST client for a Supabase project."""

    name = "supabase"

    def __init__(self, base_url: str, api_key: str, *, timeout: float = 15.0, user_id: str | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_id = user_id
        self.session = requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "User-Agent": "linkstash/0.1",
            }
        )

    def _url(self, entity: str) -> str:
        return f"{self.base_url}/rest/v1/{entity}"

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.Timeout as exc:
            raise SyncError(f"{method} {url} timed out after {self.timeout}s") from exc
        except requests.HTTPError as exc:
            body = exc.response.text[:200] if exc.response is not None else ""
            raise SyncError(f"{method} {url} failed: {exc} {body}".strip()) from exc
        except requests.RequestException as exc:
            raise SyncError(f"{method} {url} failed: {exc}") from exc
        return response

    def upsert(self, entity: str, record: dict[str, Any]) -> None:
        columns = ",".join(ENTITY_KEYS.get(entity, ("id",)))
        row = to_remote_record(entity, record, user_id=self.user_id)
        self._request(
            "POST",
            self._url(entity),
            params={"on_conflict": columns},
            json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def delete(self, entity: str, match: dict[str, Any]) -> None:
        params = {column: f"eq.{value}" for column, value in match.items()}
        self._request("DELETE", self._url(entity), params=params, headers={"Prefer": "return=minimal"})

    def fetch_all(self, entity: str) -> list[dict[str, Any]]:
        params = {"select": "*"}
        if self.user_id and entity in _OWNED_ENTITIES:
            params["user_id"] = f"eq.{self.user_id}"
        response = self._request("GET", self._url(entity), params=params)
        try:
            rows = response.json()
        except ValueError as exc:
            raise SyncError(f"Remote returned invalid JSON for {entity}") from exc
        if not isinstance(rows, list):
            raise SyncError(f"Remote returned unexpected payload for {entity}")
        return rows

    def ping(self) -> bool:
        try:
            response = self.session.get(f"{self.base_url}/rest/v1/", timeout=self.timeout)
        except requests.RequestException as exc:
            logger.debug("Remote ping failed: {}", exc)
            return False
        return response.status_code < 500


def create_remote_store(config: SyncConfig, *, data_root: Path | None = None) -> RemoteStore:
    """Instantiate the correct remote store based on configuration."""

    if config.backend == "local":
        directory = config.remote_dir
        if directory is None:  # validated by SyncConfig
            raise ValueError("Local sync backend requires a directory.")
        if data_root is not None and not directory.is_absolute():
            directory = data_root / directory
        return LocalRemoteStore(directory)

    key = config.supabase_key_secret
    if not config.supabase_url or not key:
        raise ValueError("Supabase sync backend requires a URL and key.")
    return SupabaseRemoteStore(config.supabase_url, key, timeout=config.timeout, user_id=config.user_id)


__all__ = [
    "ENTITY_KEYS",
    "LocalRemoteStore",
    "RemoteStore",
    "SupabaseRemoteStore",
    "create_remote_store",
    "match_for",
    "to_remote_record",
]
