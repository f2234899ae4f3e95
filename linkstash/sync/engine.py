"""Replay the durable outbox against the remote store."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Callable

from loguru import logger

from linkstash.config.sync import SyncConfig
from linkstash.errors import SyncError
from linkstash.models import Item, ItemSpace, Space
from linkstash.store.local import ITEM_SPACES, ITEMS, SPACES, LocalStore, StoreEvent
from linkstash.store.storage import JsonSnapshotStorage

from .outbox import Outbox, SyncOperation
from .remote import RemoteStore, match_for


@dataclass(slots=True)
class FlushReport:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class SyncStatus:
    pending: int
    failed: int
    last_sync_time: str | None
    last_error: str | None
    is_online: bool
    running: bool


class SyncEngine:
    """Turns store events into outbox operations and replays them in order.

    Failures never propagate to callers: they are logged, recorded on the
    operation and retried after an exponential backoff. Local state is never
    rolled back.
    """

    def __init__(
        self,
        store: LocalStore,
        outbox: Outbox,
        remote: RemoteStore,
        *,
        enabled: bool = True,
        backoff_base: float = 2.0,
        backoff_max: float = 300.0,
        max_batch: int = 100,
        idle_interval: float = 30.0,
    ) -> None:
        self.store = store
        self.outbox = outbox
        self.remote = remote
        self.enabled = enabled
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.max_batch = max_batch
        self.idle_interval = idle_interval

        self.last_sync_time: str | None = None
        self.last_error: str | None = None
        self.is_online = True

        self._flush_lock = threading.Lock()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @classmethod
    def from_config(cls, store: LocalStore, outbox: Outbox, remote: RemoteStore, config: SyncConfig) -> "SyncEngine":
        return cls(
            store,
            outbox,
            remote,
            enabled=config.enabled,
            backoff_base=config.backoff_base,
            backoff_max=config.backoff_max,
            max_batch=config.max_batch,
        )

    # ------------------------------------------------------------------
    def attach(self) -> None:
        """Subscribe to the store so every committed local change is queued."""

        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_event)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_event(self, event: StoreEvent) -> None:
        if not self.enabled or event.origin == "remote":
            return
        self.outbox.enqueue(event.table, event.op, event.key, event.record or {}, creates=event.created)
        self.request_flush()

    def backoff_for(self, attempts: int) -> float:
        return min(self.backoff_max, self.backoff_base * (2 ** max(0, attempts)))

    # ------------------------------------------------------------------
    def flush(self, *, now: datetime | None = None) -> FlushReport:
        """Replay due operations once, in enqueue order."""

        report = FlushReport()
        if not self.enabled:
            return report

        now = now or datetime.now(timezone.utc)
        with self._flush_lock:
            # rows referencing an item or space whose create has not reached the remote wait for it
            unsent_parents: set[tuple[str, str]] = set()
            for operation in self.outbox.pending():
                if report.attempted >= self.max_batch:
                    break
                if not operation.is_due(now):
                    if operation.creates:
                        unsent_parents.add(operation.identity)
                    continue
                if _parent_refs(operation) & unsent_parents:
                    report.skipped += 1
                    continue

                report.attempted += 1
                bound = logger.bind(entity=operation.entity, key=operation.key, op=operation.op)
                started = perf_counter()
                try:
                    self._replay(operation)
                except SyncError as exc:
                    delay = self.backoff_for(operation.attempts)
                    self.outbox.fail(operation, str(exc), delay_seconds=delay, now=now)
                    self.last_error = str(exc)
                    report.failed += 1
                    report.errors.append(f"{operation.entity}/{operation.key}: {exc}")
                    self.is_online = False
                    if operation.creates:
                        unsent_parents.add(operation.identity)
                    bound.warning("Sync {} {} failed (attempt {}), retry in {:.0f}s: {}",
                                  operation.op, operation.entity, operation.attempts + 1, delay, exc)
                    continue

                self.outbox.complete(operation)
                report.succeeded += 1
                self.is_online = True
                bound.debug("Synced {} {} in {:.3f}s", operation.op, operation.entity, perf_counter() - started)

            if report.succeeded:
                self.last_sync_time = datetime.now(timezone.utc).isoformat()
            if report.attempted and not report.failed:
                self.last_error = None

        if report.attempted:
            logger.info(
                "Sync flush: {} ok, {} failed, {} deferred, {} pending",
                report.succeeded,
                report.failed,
                report.skipped,
                len(self.outbox),
            )
        return report

    def _replay(self, operation: SyncOperation) -> None:
        if operation.op == "upsert":
            self.remote.upsert(operation.entity, operation.payload)
        else:
            self.remote.delete(operation.entity, match_for(operation.entity, operation.payload))

    # ------------------------------------------------------------------
    def check_connectivity(self) -> bool:
        online = self.remote.ping()
        if online and not self.is_online:
            logger.info("Remote store reachable again, retrying pending operations")
            self.outbox.retry_now()
            self.request_flush()
        self.is_online = online
        return online

    def pull(self) -> dict[str, int]:
        """Bring in remote items, spaces and memberships that are missing locally."""

        if not self.enabled:
            return {}
        counts = {ITEMS: 0, SPACES: 0, ITEM_SPACES: 0}
        for row in self.remote.fetch_all(SPACES):
            if self.store.get_space(row.get("id", "")) is None:
                self.store.put_space(Space.from_record(_local_row(row)), origin="remote")
                counts[SPACES] += 1
        for row in self.remote.fetch_all(ITEMS):
            if self.store.get_item(row.get("id", "")) is None:
                self.store.put_item(Item.from_record(_local_row(row)), origin="remote")
                counts[ITEMS] += 1
        for row in self.remote.fetch_all(ITEM_SPACES):
            item_id, space_id = row.get("item_id"), row.get("space_id")
            if not item_id or not space_id:
                continue
            if space_id in self.store.space_ids_for_item(item_id):
                continue
            if self.store.get_item(item_id) is None or self.store.get_space(space_id) is None:
                continue
            self.store.put_item_space(ItemSpace.from_record(_local_row(row)), origin="remote")
            counts[ITEM_SPACES] += 1
        logger.info("Pulled {} items, {} spaces, {} memberships", counts[ITEMS], counts[SPACES], counts[ITEM_SPACES])
        return counts

    # ------------------------------------------------------------------
    def request_flush(self) -> None:
        self._wake.set()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="linkstash-sync", daemon=True)
        self._thread.start()
        logger.info("Sync worker started")

    def _run(self) -> None:
        while not self._stop.is_set():
            self._wake.wait(timeout=self.idle_interval)
            self._wake.clear()
            if self._stop.is_set():
                break
            try:
                self.flush()
            except Exception:
                logger.exception("Sync worker flush crashed")

    def stop(self, *, drain: bool = True, timeout: float = 10.0) -> None:
        thread = self._thread
        if thread is not None:
            self._stop.set()
            self._wake.set()
            thread.join(timeout=timeout)
            self._thread = None
            logger.info("Sync worker stopped")
        if drain:
            self.flush()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def status(self) -> SyncStatus:
        return SyncStatus(
            pending=len(self.outbox),
            failed=self.outbox.failed_count(),
            last_sync_time=self.last_sync_time,
            last_error=self.last_error,
            is_online=self.is_online,
            running=self.running,
        )


def _parent_refs(operation: SyncOperation) -> set[tuple[str, str]]:
    refs: set[tuple[str, str]] = set()
    if operation.op != "upsert":
        return refs
    for column, entity in (("item_id", ITEMS), ("space_id", SPACES)):
        value = operation.payload.get(column)
        if value:
            refs.add((entity, str(value)))
    return refs


def _local_row(row: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in row.items() if key != "user_id"}


def create_sync_engine(store: LocalStore, config: SyncConfig, remote: RemoteStore, *, outbox_dir: Path) -> SyncEngine:
    """Wire an outbox stored under ``outbox_dir`` to ``store`` and ``remote``."""

    outbox = Outbox(JsonSnapshotStorage(outbox_dir))
    engine = SyncEngine.from_config(store, outbox, remote, config)
    engine.attach()
    return engine


__all__ = ["FlushReport", "SyncEngine", "SyncStatus", "create_sync_engine"]
