"""Outbox-based synchronisation with a remote store."""

from .engine import FlushReport, SyncEngine, SyncStatus, create_sync_engine
from .outbox import Outbox, SyncOperation
from .remote import (
    ENTITY_KEYS,
    LocalRemoteStore,
    RemoteStore,
    SupabaseRemoteStore,
    create_remote_store,
    match_for,
)
from .scheduler import SyncScheduler

__all__ = [
    "ENTITY_KEYS",
    "FlushReport",
    "LocalRemoteStore",
    "Outbox",
    "RemoteStore",
    "SupabaseRemoteStore",
    "SyncEngine",
    "SyncOperation",
    "SyncScheduler",
    "SyncStatus",
    "create_remote_store",
    "create_sync_engine",
    "match_for",
]
