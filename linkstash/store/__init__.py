"""Local reactive store and its snapshot storage."""

from .local import (
    IMAGE_DESCRIPTIONS,
    ITEM_METADATA,
    ITEM_SPACES,
    ITEM_TYPE_METADATA,
    ITEMS,
    SPACES,
    TABLES,
    VIDEO_TRANSCRIPTS,
    LocalStore,
    StoreEvent,
)
from .storage import CorruptSnapshotError, JsonSnapshotStorage, MemorySnapshotStorage, SnapshotStorage

__all__ = [
    "CorruptSnapshotError",
    "IMAGE_DESCRIPTIONS",
    "ITEMS",
    "ITEM_METADATA",
    "ITEM_SPACES",
    "ITEM_TYPE_METADATA",
    "JsonSnapshotStorage",
    "LocalStore",
    "MemorySnapshotStorage",
    "SPACES",
    "SnapshotStorage",
    "StoreEvent",
    "TABLES",
    "VIDEO_TRANSCRIPTS",
]
