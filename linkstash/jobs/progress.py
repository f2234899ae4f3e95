"""Observable, cancellable progress for long-running transcription."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Condition
from typing import Callable, Generic, TypeVar

from loguru import logger

from linkstash.errors import GenerationError

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class ProgressUpdate:
    status: str  # "queued" | "processing" | "completed" | "error" | "cancelled"
    message: str = ""
    fraction: float | None = None


class ProgressStream(Generic[T]):
    """Status history plus a result slot that observers can subscribe to or wait on.

    Producers call :meth:`publish`, then :meth:`finish` or :meth:`fail`.
    Consumers may :meth:`cancel`; producers check :attr:`cancelled` between steps.
    """

    def __init__(self) -> None:
        self._cond = Condition()
        self._updates: list[ProgressUpdate] = []
        self._observers: list[Callable[[ProgressUpdate], None]] = []
        self._result: T | None = None
        self._error: BaseException | None = None
        self._done = False
        self._cancelled = False

    def subscribe(self, observer: Callable[[ProgressUpdate], None]) -> None:
        with self._cond:
            self._observers.append(observer)
            history = list(self._updates)
        for update in history:
            self._notify(observer, update)

    def publish(self, status: str, message: str = "", fraction: float | None = None) -> None:
        update = ProgressUpdate(status=status, message=message, fraction=fraction)
        with self._cond:
            if self._done:
                return
            self._updates.append(update)
            observers = list(self._observers)
            self._cond.notify_all()
        for observer in observers:
            self._notify(observer, update)

    @staticmethod
    def _notify(observer: Callable[[ProgressUpdate], None], update: ProgressUpdate) -> None:
        try:
            observer(update)
        except Exception:
            logger.exception("Progress observer failed on {}", update.status)

    def finish(self, result: T) -> None:
        self.publish("completed", fraction=1.0)
        with self._cond:
            self._result = result
            self._done = True
            self._cond.notify_all()

    def fail(self, error: BaseException) -> None:
        self.publish("cancelled" if self._cancelled else "error", str(error))
        with self._cond:
            self._error = error
            self._done = True
            self._cond.notify_all()

    def cancel(self) -> None:
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()

    @property
    def cancelled(self) -> bool:
        with self._cond:
            return self._cancelled

    @property
    def done(self) -> bool:
        with self._cond:
            return self._done

    @property
    def updates(self) -> list[ProgressUpdate]:
        with self._cond:
            return list(self._updates)

    def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; returns ``True`` early if cancelled."""

        with self._cond:
            self._cond.wait_for(lambda: self._cancelled, timeout=seconds)
            return self._cancelled

    def result(self, timeout: float | None = None) -> T:
        with self._cond:
            if not self._cond.wait_for(lambda: self._done, timeout=timeout):
                raise GenerationError(f"Timed out after {timeout}s waiting for transcription")
            if self._error is not None:
                raise self._error
            return self._result  # type: ignore[return-value]


__all__ = ["ProgressStream", "ProgressUpdate"]
