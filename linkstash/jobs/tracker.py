"""Per-item "generating" flags for background enrichment jobs."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from loguru import logger

from linkstash.errors import JobAlreadyRunningError
from linkstash.models import JobKind


class GeneratingSet:
    """Set of item ids with a running job of one kind."""

    def __init__(self, kind: JobKind) -> None:
        self.kind = kind
        self._lock = Lock()
        self._items: set[str] = set()

    def set_generating(self, item_id: str, flag: bool) -> None:
        with self._lock:
            if flag:
                self._items.add(item_id)
            else:
                self._items.discard(item_id)

    def is_generating(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._items

    def try_begin(self, item_id: str) -> bool:
        """Atomically mark ``item_id`` as generating; ``False`` if it already was."""

        with self._lock:
            if item_id in self._items:
                return False
            self._items.add(item_id)
            return True

    def items(self) -> set[str]:
        with self._lock:
            return set(self._items)


class JobTracker:
    """One :class:`GeneratingSet` per job kind. Never persisted."""

    def __init__(self) -> None:
        self._sets = {kind: GeneratingSet(kind) for kind in JobKind}

    def __getitem__(self, kind: JobKind) -> GeneratingSet:
        return self._sets[JobKind(kind)]

    def set_generating(self, kind: JobKind, item_id: str, flag: bool) -> None:
        self[kind].set_generating(item_id, flag)

    def is_generating(self, kind: JobKind, item_id: str) -> bool:
        return self[kind].is_generating(item_id)

    @contextmanager
    def track(self, kind: JobKind, item_id: str) -> Iterator[None]:
        """Hold the flag for the duration of the block, clearing it however the block exits."""

        generating = self[kind]
        if not generating.try_begin(item_id):
            raise JobAlreadyRunningError(JobKind(kind).value, item_id)
        logger.debug("{} generation started for {}", JobKind(kind).value, item_id)
        try:
            yield
        finally:
            generating.set_generating(item_id, False)
            logger.debug("{} generation finished for {}", JobKind(kind).value, item_id)

    def snapshot(self) -> dict[str, list[str]]:
        return {kind.value: sorted(self._sets[kind].items()) for kind in JobKind}


__all__ = ["GeneratingSet", "JobTracker"]
