"""Durable, coalescing queue of pending remote operations."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any

from loguru import logger

from linkstash.errors import PersistenceError
from linkstash.store.storage import CorruptSnapshotError, SnapshotStorage

OUTBOX_KEY = "outbox"


@dataclass(slots=True)
class SyncOperation:
    """One pending upsert or delete for a remote entity."""

    seq: int
    entity: str
    op: str  # "upsert" | "delete"
    key: str
    payload: dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    last_error: str | None = None
    enqueued_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    next_attempt_at: str | None = None
    creates: bool = False  # first upsert of the record, not yet delivered

    @property
    def identity(self) -> tuple[str, str]:
        return (self.entity, self.key)

    def is_due(self, now: datetime) -> bool:
        if self.next_attempt_at is None:
            return True
        return datetime.fromisoformat(self.next_attempt_at) <= now


class Outbox:
    """Ordered operations keyed by ``(entity, key)``.

    Enqueuing for a key that is already pending replaces that operation in
    place: the latest intent wins, the original position is kept and any
    backoff timer is cleared so the new write is attempted on the next flush.
    A pending create stays a create until it is delivered. Every change is
    written to storage before the call returns.
    """

    def __init__(self, storage: SnapshotStorage) -> None:
        self.storage = storage
        self._lock = Lock()
        self._ops: dict[tuple[str, str], SyncOperation] = {}
        self._next_seq = 1
        self._load()

    def _load(self) -> None:
        try:
            rows = self.storage.load(OUTBOX_KEY) or []
            ops = [SyncOperation(**row) for row in rows]
        except (CorruptSnapshotError, TypeError) as exc:
            logger.error("Outbox snapshot unreadable, starting empty: {}", exc)
            self.storage.quarantine(OUTBOX_KEY)
            ops = []
        ops.sort(key=lambda op: op.seq)
        self._ops = {op.identity: op for op in ops}
        self._next_seq = max((op.seq for op in ops), default=0) + 1
        if ops:
            logger.info("Restored {} pending sync operations", len(ops))

    def _save(self) -> None:
        try:
            self.storage.save(OUTBOX_KEY, [asdict(op) for op in self._ops.values()])
        except PersistenceError as exc:
            logger.error("Outbox not persisted: {}", exc)

    def enqueue(
        self,
        entity: str,
        op: str,
        key: str,
        payload: dict[str, Any] | None = None,
        *,
        creates: bool = False,
    ) -> SyncOperation:
        if op not in {"upsert", "delete"}:
            raise ValueError(f"Unsupported sync operation '{op}'")
        with self._lock:
            existing = self._ops.get((entity, key))
            if existing is not None:
                existing.creates = op == "upsert" and (existing.creates or creates)
                existing.op = op
                existing.payload = dict(payload or {})
                existing.next_attempt_at = None
                operation = existing
            else:
                operation = SyncOperation(
                    seq=self._next_seq,
                    entity=entity,
                    op=op,
                    key=key,
                    payload=dict(payload or {}),
                    creates=op == "upsert" and creates,
                )
                self._next_seq += 1
                self._ops[operation.identity] = operation
            self._save()
            return SyncOperation(**asdict(operation))

    def due(self, *, now: datetime | None = None, limit: int | None = None) -> list[SyncOperation]:
        """Return copies of due operations in enqueue order."""

        now = now or datetime.now(timezone.utc)
        with self._lock:
            ready = [SyncOperation(**asdict(op)) for op in self._ops.values() if op.is_due(now)]
        return ready[:limit] if limit is not None else ready

    def complete(self, operation: SyncOperation) -> bool:
        """Drop ``operation`` unless it was superseded while it was in flight."""

        with self._lock:
            current = self._ops.get(operation.identity)
            if current is None:
                return False
            if current.op != operation.op or current.payload != operation.payload:
                if operation.op == "upsert" and current.creates:
                    current.creates = False
                    self._save()
                return False
            del self._ops[operation.identity]
            self._save()
            return True

    def fail(self, operation: SyncOperation, error: str, *, delay_seconds: float, now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            current = self._ops.get(operation.identity)
            if current is None:
                return
            current.attempts += 1
            current.last_error = error
            current.next_attempt_at = (now + timedelta(seconds=delay_seconds)).isoformat()
            self._save()

    def retry_now(self) -> int:
        """Clear backoff timers so every operation is due immediately."""

        with self._lock:
            for op in self._ops.values():
                op.next_attempt_at = None
            self._save()
            return len(self._ops)

    def pending(self) -> list[SyncOperation]:
        with self._lock:
            return [SyncOperation(**asdict(op)) for op in self._ops.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._ops)

    def failed_count(self) -> int:
        with self._lock:
            return sum(1 for op in self._ops.values() if op.attempts > 0)


__all__ = ["OUTBOX_KEY", "Outbox", "SyncOperation"]
