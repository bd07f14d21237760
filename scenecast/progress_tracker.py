"""Progress events published by the job controller and their subscribers."""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import AsyncIterator, Callable, Dict, Mapping, Optional, Sequence, Tuple

from scenecast import logging_manager as log_mgr

logger = log_mgr.logger


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable view of one job's progress."""

    completed: int
    total: int
    fraction: float
    elapsed: float


@dataclass(frozen=True)
class ProgressEvent:
    """Structured message emitted whenever a job or sub-job changes state."""

    event_type: str
    job_id: str
    snapshot: ProgressSnapshot
    timestamp: float
    metadata: Mapping[str, object]
    error: Optional[BaseException] = None


ProgressObserver = Callable[[ProgressEvent], None]


class ProgressEventStream:
    """Asynchronous iterator that yields :class:`ProgressEvent` objects."""

    _SENTINEL = object()

    def __init__(self, bus: "ProgressEventBus", loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._closed = False
        self._unsubscribe = bus.register_observer(self._on_event)

    def _on_event(self, event: ProgressEvent) -> None:
        if self._closed:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            self._closed = True

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self

    async def __anext__(self) -> ProgressEvent:
        item = await self._queue.get()
        if item is self._SENTINEL:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def aclose(self) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, self._SENTINEL)
        except RuntimeError:
            return


class ProgressEventBus:
    """Fan progress events out to registered observers.

    Observers run on the publishing thread; an observer that raises is logged
    and skipped so it cannot break the render.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._observers: Sequence[ProgressObserver] = ()

    def register_observer(self, callback: ProgressObserver) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""

        with self._lock:
            self._observers = (*self._observers, callback)

        def _unregister() -> None:
            with self._lock:
                observers = list(self._observers)
                try:
                    observers.remove(callback)
                except ValueError:
                    return
                self._observers = tuple(observers)

        return _unregister

    def events(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> ProgressEventStream:
        """Return an async stream of events delivered on ``loop``."""

        return ProgressEventStream(self, loop or asyncio.get_running_loop())

    def emit(
        self,
        event_type: str,
        *,
        job_id: str,
        snapshot: ProgressSnapshot,
        metadata: Optional[Dict[str, object]] = None,
        error: Optional[BaseException] = None,
    ) -> ProgressEvent:
        event = ProgressEvent(
            event_type=event_type,
            job_id=job_id,
            snapshot=snapshot,
            timestamp=time.time(),
            metadata=MappingProxyType(dict(metadata or {})),
            error=error,
        )
        with self._lock:
            observers: Tuple[ProgressObserver, ...] = tuple(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception:  # pragma: no cover
                logger.exception(
                    "Progress observer failed",
                    extra={"event": "render.progress.observer_failed", "job_id": job_id},
                )
        return event


__all__ = [
    "ProgressEvent",
    "ProgressEventBus",
    "ProgressEventStream",
    "ProgressObserver",
    "ProgressSnapshot",
]
