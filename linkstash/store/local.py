"""In-memory observable tables backed by durable snapshots."""

from __future__ import annotations

import copy
from dataclasses import dataclass, fields
from threading import RLock
from typing import Any, Callable, Generic, Iterable, TypeVar

from loguru import logger

from linkstash.errors import NotFoundError, PersistenceError, ValidationError
from linkstash.models import (
    ContentKind,
    ImageDescription,
    Item,
    ItemMetadata,
    ItemSpace,
    ItemTypeMetadata,
    Record,
    Space,
    VideoTranscript,
    dedupe_tags,
    image_description_key,
    utc_now,
)

from .storage import CorruptSnapshotError, SnapshotStorage

T = TypeVar("T", bound=Record)

ITEMS = "items"
SPACES = "spaces"
ITEM_SPACES = "item_spaces"
ITEM_TYPE_METADATA = "item_type_metadata"
ITEM_METADATA = "item_metadata"
VIDEO_TRANSCRIPTS = "video_transcripts"
IMAGE_DESCRIPTIONS = "image_descriptions"

TABLES = (
    ITEMS,
    SPACES,
    ITEM_SPACES,
    ITEM_TYPE_METADATA,
    ITEM_METADATA,
    VIDEO_TRANSCRIPTS,
    IMAGE_DESCRIPTIONS,
)

_IMMUTABLE_ITEM_FIELDS = {"id", "created_at"}
_ITEM_FIELDS = {f.name for f in fields(Item)}


@dataclass(slots=True, frozen=True)
class StoreEvent:
    """A committed change to one record."""

    table: str
    op: str  # "upsert" | "delete"
    key: str
    record: dict[str, Any] | None = None
    origin: str = "local"  # "remote" when applied from a pull
    created: bool = False  # upsert of a key the table did not hold before


Subscriber = Callable[[StoreEvent], None]


class _Table(Generic[T]):
    def __init__(self, name: str, record_cls: type[T], key: Callable[[T], str]) -> None:
        self.name = name
        self.record_cls = record_cls
        self.key = key
        self.rows: dict[str, T] = {}

    def load(self, rows: Iterable[dict[str, Any]]) -> None:
        self.rows = {}
        for row in rows:
            record = self.record_cls.from_record(row)
            self.rows[self.key(record)] = record

    def dump(self) -> list[dict[str, Any]]:
        return [record.to_record() for record in self.rows.values()]


class LocalStore:
    """Synchronous, offline-first store of items and their artefacts.

    Reads are served from memory. Each write mutates memory, persists the
    affected table and then publishes a :class:`StoreEvent` to subscribers,
    all while holding the store lock so events arrive in commit order.
    A failed snapshot write is logged and kept in :attr:`last_persistence_error`;
    memory stays authoritative and the next successful write catches up.
    """

    def __init__(self, storage: SnapshotStorage) -> None:
        self.storage = storage
        self._lock = RLock()
        self._subscribers: list[tuple[Subscriber, frozenset[str] | None]] = []
        self.last_persistence_error: PersistenceError | None = None
        self._dirty: set[str] = set()

        self._items: _Table[Item] = _Table(ITEMS, Item, lambda r: r.id)
        self._spaces: _Table[Space] = _Table(SPACES, Space, lambda r: r.id)
        self._item_spaces: _Table[ItemSpace] = _Table(ITEM_SPACES, ItemSpace, lambda r: r.key)
        self._type_metadata: _Table[ItemTypeMetadata] = _Table(ITEM_TYPE_METADATA, ItemTypeMetadata, lambda r: r.item_id)
        self._item_metadata: _Table[ItemMetadata] = _Table(ITEM_METADATA, ItemMetadata, lambda r: r.item_id)
        self._transcripts: _Table[VideoTranscript] = _Table(VIDEO_TRANSCRIPTS, VideoTranscript, lambda r: r.item_id)
        self._descriptions: _Table[ImageDescription] = _Table(IMAGE_DESCRIPTIONS, ImageDescription, lambda r: r.key)
        self._tables: dict[str, _Table[Any]] = {
            table.name: table
            for table in (
                self._items,
                self._spaces,
                self._item_spaces,
                self._type_metadata,
                self._item_metadata,
                self._transcripts,
                self._descriptions,
            )
        }
        self._load_all()

    # ------------------------------------------------------------------
    # Persistence and notification
    def _load_all(self) -> None:
        for name, table in self._tables.items():
            try:
                rows = self.storage.load(name)
                table.load(rows or [])
            except (CorruptSnapshotError, TypeError, ValueError) as exc:
                logger.error("Resetting table {} after corrupt snapshot: {}", name, exc)
                self.storage.quarantine(name)
                table.load([])
            else:
                logger.debug("Loaded {} rows into {}", len(table.rows), name)

    def _persist(self, *names: str) -> None:
        self._dirty.update(names)
        for name in sorted(self._dirty):
            try:
                self.storage.save(name, self._tables[name].dump())
            except PersistenceError as exc:
                logger.error("Local write for {} not persisted: {}", name, exc)
                self.last_persistence_error = exc
                return
            self._dirty.discard(name)
        self.last_persistence_error = None

    def _publish(self, event: StoreEvent) -> None:
        for callback, tables in list(self._subscribers):
            if tables is not None and event.table not in tables:
                continue
            try:
                callback(event)
            except Exception:
                logger.exception("Store subscriber failed for {} {}", event.table, event.key)

    def _commit_upsert(self, table: _Table[T], record: T, *, origin: str = "local") -> T:
        key = table.key(record)
        created = key not in table.rows
        table.rows[key] = record
        self._persist(table.name)
        self._publish(StoreEvent(table.name, "upsert", key, record.to_record(), origin, created))
        return copy.deepcopy(record)

    def _commit_delete(self, table: _Table[Any], key: str) -> bool:
        removed = table.rows.pop(key, None)
        if removed is None:
            return False
        self._persist(table.name)
        self._publish(StoreEvent(table.name, "delete", key, removed.to_record()))
        return True

    def subscribe(self, callback: Subscriber, tables: Iterable[str] | None = None) -> Callable[[], None]:
        """Register ``callback`` for committed changes; returns an unsubscribe function."""

        entry = (callback, frozenset(tables) if tables is not None else None)
        with self._lock:
            self._subscribers.append(entry)

        def _unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return _unsubscribe

    def snapshot(self, table: str) -> list[dict[str, Any]]:
        with self._lock:
            return self._tables[table].dump()

    # ------------------------------------------------------------------
    # Items
    def add_item(self, item: Item) -> Item:
        with self._lock:
            if item.id in self._items.rows:
                raise ValidationError(f"Item {item.id} already exists")
            return self._commit_upsert(self._items, copy.deepcopy(item))

    def put_item(self, item: Item, *, origin: str = "local") -> Item:
        """Insert or replace an item wholesale (used when pulling remote state)."""

        with self._lock:
            return self._commit_upsert(self._items, copy.deepcopy(item), origin=origin)

    def get_item(self, item_id: str) -> Item | None:
        with self._lock:
            item = self._items.rows.get(item_id)
            return copy.deepcopy(item) if item else None

    def require_item(self, item_id: str) -> Item:
        item = self.get_item(item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        return item

    def list_items(
        self,
        *,
        content_type: ContentKind | str | None = None,
        space_id: str | None = None,
        query: str | None = None,
        include_archived: bool = False,
    ) -> list[Item]:
        """Return items newest first, filtered by kind, space membership and a text query."""

        with self._lock:
            items = list(self._items.rows.values())
            if space_id is not None:
                members = set(self.item_ids_in_space(space_id))
                items = [item for item in items if item.id in members]
            if content_type is not None:
                kind = ContentKind(content_type)
                items = [item for item in items if item.content_type is kind]
            if not include_archived:
                items = [item for item in items if not item.is_archived]
            if query:
                needle = query.lower()
                items = [item for item in items if _matches(item, needle)]
            items.sort(key=lambda item: item.created_at, reverse=True)
            return copy.deepcopy(items)

    def update_item(self, item_id: str, changes: dict[str, Any]) -> Item:
        """Merge ``changes`` into an item, dedupe tags and stamp ``updated_at``."""

        with self._lock:
            current = self._items.rows.get(item_id)
            if current is None:
                raise NotFoundError(f"Item {item_id} not found")
            updated = copy.deepcopy(current)
            for name, value in _validated_item_changes(changes).items():
                setattr(updated, name, value)
            updated.updated_at = utc_now()
            return self._commit_upsert(self._items, updated)

    def delete_item(self, item_id: str) -> bool:
        """Remove an item and every row that hangs off it."""

        with self._lock:
            if item_id not in self._items.rows:
                return False
            for key in [key for key, row in self._item_spaces.rows.items() if row.item_id == item_id]:
                self._commit_delete(self._item_spaces, key)
            self._commit_delete(self._type_metadata, item_id)
            self._commit_delete(self._item_metadata, item_id)
            self._commit_delete(self._transcripts, item_id)
            self.remove_image_descriptions(item_id)
            return self._commit_delete(self._items, item_id)

    # ------------------------------------------------------------------
    # Spaces
    def add_space(self, space: Space) -> Space:
        with self._lock:
            if not space.name.strip():
                raise ValidationError("Space name must not be empty")
            if space.id in self._spaces.rows:
                raise ValidationError(f"Space {space.id} already exists")
            return self._commit_upsert(self._spaces, copy.deepcopy(space))

    def put_space(self, space: Space, *, origin: str = "local") -> Space:
        with self._lock:
            return self._commit_upsert(self._spaces, copy.deepcopy(space), origin=origin)

    def get_space(self, space_id: str) -> Space | None:
        with self._lock:
            space = self._spaces.rows.get(space_id)
            return copy.deepcopy(space) if space else None

    def list_spaces(self) -> list[Space]:
        with self._lock:
            return sorted(copy.deepcopy(list(self._spaces.rows.values())), key=lambda space: space.name.lower())

    def update_space(self, space_id: str, changes: dict[str, Any]) -> Space:
        with self._lock:
            current = self._spaces.rows.get(space_id)
            if current is None:
                raise NotFoundError(f"Space {space_id} not found")
            updated = copy.deepcopy(current)
            for name, value in changes.items():
                if name not in {"name", "color", "description"}:
                    raise ValidationError(f"Field '{name}' cannot be changed on a space")
                setattr(updated, name, value)
            updated.updated_at = utc_now()
            return self._commit_upsert(self._spaces, updated)

    def delete_space(self, space_id: str) -> bool:
        with self._lock:
            if space_id not in self._spaces.rows:
                return False
            for key in [key for key, row in self._item_spaces.rows.items() if row.space_id == space_id]:
                self._commit_delete(self._item_spaces, key)
            return self._commit_delete(self._spaces, space_id)

    def add_item_to_space(self, item_id: str, space_id: str) -> ItemSpace:
        with self._lock:
            if item_id not in self._items.rows:
                raise NotFoundError(f"Item {item_id} not found")
            if space_id not in self._spaces.rows:
                raise NotFoundError(f"Space {space_id} not found")
            link = ItemSpace(item_id=item_id, space_id=space_id)
            existing = self._item_spaces.rows.get(link.key)
            if existing is not None:
                return copy.deepcopy(existing)
            return self._commit_upsert(self._item_spaces, link)

    def remove_item_from_space(self, item_id: str, space_id: str) -> bool:
        with self._lock:
            return self._commit_delete(self._item_spaces, ItemSpace(item_id, space_id).key)

    def set_item_spaces(self, item_id: str, space_ids: Iterable[str]) -> list[str]:
        """Make ``space_ids`` the exact membership of ``item_id``."""

        wanted = list(dict.fromkeys(space_ids))
        with self._lock:
            current = set(self.space_ids_for_item(item_id))
            for space_id in current - set(wanted):
                self.remove_item_from_space(item_id, space_id)
            for space_id in wanted:
                if space_id not in current:
                    self.add_item_to_space(item_id, space_id)
            return self.space_ids_for_item(item_id)

    def put_item_space(self, link: ItemSpace, *, origin: str = "local") -> ItemSpace:
        with self._lock:
            return self._commit_upsert(self._item_spaces, copy.deepcopy(link), origin=origin)

    def space_ids_for_item(self, item_id: str) -> list[str]:
        with self._lock:
            return [row.space_id for row in self._item_spaces.rows.values() if row.item_id == item_id]

    def item_ids_in_space(self, space_id: str) -> list[str]:
        with self._lock:
            return [row.item_id for row in self._item_spaces.rows.values() if row.space_id == space_id]

    # ------------------------------------------------------------------
    # Side tables
    def upsert_type_metadata(self, metadata: ItemTypeMetadata) -> ItemTypeMetadata:
        with self._lock:
            existing = self._type_metadata.rows.get(metadata.item_id)
            record = copy.deepcopy(metadata)
            if existing is not None:
                record.id = existing.id
                record.created_at = existing.created_at
            record.updated_at = utc_now()
            return self._commit_upsert(self._type_metadata, record)

    def get_type_metadata(self, item_id: str) -> ItemTypeMetadata | None:
        with self._lock:
            record = self._type_metadata.rows.get(item_id)
            return copy.deepcopy(record) if record else None

    def upsert_item_metadata(self, metadata: ItemMetadata) -> ItemMetadata:
        with self._lock:
            existing = self._item_metadata.rows.get(metadata.item_id)
            record = copy.deepcopy(metadata)
            if existing is not None:
                record.id = existing.id
                record.created_at = existing.created_at
            record.updated_at = utc_now()
            return self._commit_upsert(self._item_metadata, record)

    def get_item_metadata(self, item_id: str) -> ItemMetadata | None:
        with self._lock:
            record = self._item_metadata.rows.get(item_id)
            return copy.deepcopy(record) if record else None

    # ------------------------------------------------------------------
    # Artefacts
    def add_transcript(self, transcript: VideoTranscript) -> VideoTranscript:
        """Store ``transcript`` as the only transcript for its item, replacing any previous one."""

        with self._lock:
            self.require_item(transcript.item_id)
            return self._commit_upsert(self._transcripts, copy.deepcopy(transcript))

    def get_transcript(self, item_id: str) -> VideoTranscript | None:
        with self._lock:
            record = self._transcripts.rows.get(item_id)
            return copy.deepcopy(record) if record else None

    def remove_transcript(self, item_id: str) -> bool:
        with self._lock:
            return self._commit_delete(self._transcripts, item_id)

    def add_image_description(self, description: ImageDescription) -> ImageDescription:
        """Store a description, replacing any existing one for the same (item, image) pair."""

        with self._lock:
            self.require_item(description.item_id)
            return self._commit_upsert(self._descriptions, copy.deepcopy(description))

    def get_image_descriptions(self, item_id: str) -> list[ImageDescription]:
        with self._lock:
            return copy.deepcopy([row for row in self._descriptions.rows.values() if row.item_id == item_id])

    def get_image_description(self, item_id: str, image_url: str) -> ImageDescription | None:
        with self._lock:
            record = self._descriptions.rows.get(image_description_key(item_id, image_url))
            return copy.deepcopy(record) if record else None

    def remove_image_description(self, item_id: str, image_url: str) -> bool:
        with self._lock:
            return self._commit_delete(self._descriptions, image_description_key(item_id, image_url))

    def remove_image_descriptions(self, item_id: str) -> int:
        with self._lock:
            keys = [key for key, row in self._descriptions.rows.items() if row.item_id == item_id]
            for key in keys:
                self._commit_delete(self._descriptions, key)
            return len(keys)

    def counts(self) -> dict[str, int]:
        with self._lock:
            return {name: len(table.rows) for name, table in self._tables.items()}


def _matches(item: Item, needle: str) -> bool:
    haystack = [item.title, item.desc, item.content, item.notes, item.url, *item.tags]
    return any(needle in value.lower() for value in haystack if value)


def _validated_item_changes(changes: dict[str, Any]) -> dict[str, Any]:
    validated: dict[str, Any] = {}
    for name, value in changes.items():
        if name in _IMMUTABLE_ITEM_FIELDS:
            raise ValidationError(f"Field '{name}' cannot be changed")
        if name not in _ITEM_FIELDS:
            raise ValidationError(f"Unknown item field '{name}'")
        if name == "content_type":
            try:
                value = ContentKind(value)
            except ValueError as exc:
                raise ValidationError(f"Unknown content type '{value}'") from exc
        elif name == "tags":
            if value is None:
                value = []
            if isinstance(value, str) or not all(isinstance(tag, str) for tag in value):
                raise ValidationError("Tags must be a list of strings")
            value = dedupe_tags(list(value))
        elif name == "title" and value is None:
            value = ""
        validated[name] = value
    return validated


__all__ = [
    "IMAGE_DESCRIPTIONS",
    "ITEMS",
    "ITEM_METADATA",
    "ITEM_SPACES",
    "ITEM_TYPE_METADATA",
    "LocalStore",
    "SPACES",
    "StoreEvent",
    "Subscriber",
    "TABLES",
    "VIDEO_TRANSCRIPTS",
]
