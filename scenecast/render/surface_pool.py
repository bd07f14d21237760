"""Bounded pool of rendering-surface handles leased one sub-job at a time."""

from __future__ import annotations

import contextlib
import threading
import time
from typing import Any, Iterator, Optional

from scenecast import logging_manager as log_mgr
from scenecast.errors import CaptureError, CaptureTimeoutError, RenderCancelledError
from scenecast.surfaces.base import RenderingSurface, SurfaceTimeoutError

logger = log_mgr.logger


class SurfacePool:
    """Single arbitration point for rendering-surface handles.

    ``size`` is the hard limit on concurrently open handles. A lease opens a
    fresh handle and always closes it and frees the slot on exit, including
    when the body raises.
    """

    def __init__(
        self,
        surface: RenderingSurface,
        size: int,
        *,
        poll_interval: float = 0.05,
    ) -> None:
        if size <= 0:
            raise ValueError("surface pool size must be greater than zero")
        self._surface = surface
        self._size = size
        self._poll_interval = poll_interval
        self._condition = threading.Condition()
        self._leased = 0
        self._peak = 0

    @property
    def surface(self) -> RenderingSurface:
        return self._surface

    @property
    def size(self) -> int:
        return self._size

    @property
    def in_use(self) -> int:
        with self._condition:
            return self._leased

    @property
    def available(self) -> int:
        with self._condition:
            return self._size - self._leased

    @property
    def peak_in_use(self) -> int:
        with self._condition:
            return self._peak

    def wake(self) -> None:
        """Wake blocked waiters so they re-check their cancellation flags."""

        with self._condition:
            self._condition.notify_all()

    def _acquire_slot(
        self, cancel_event: Optional[threading.Event], timeout: Optional[float]
    ) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._condition:
            while self._leased >= self._size:
                if cancel_event is not None and cancel_event.is_set():
                    raise RenderCancelledError("cancelled while waiting for a rendering surface")
                wait_for = self._poll_interval
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise CaptureTimeoutError(
                            "no rendering surface became available", timeout=timeout
                        )
                    wait_for = min(wait_for, remaining)
                self._condition.wait(wait_for)
            if cancel_event is not None and cancel_event.is_set():
                raise RenderCancelledError("cancelled before a rendering surface was leased")
            self._leased += 1
            self._peak = max(self._peak, self._leased)

    def _release_slot(self) -> None:
        with self._condition:
            self._leased -= 1
            self._condition.notify()

    @contextlib.contextmanager
    def lease(
        self,
        *,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Iterator[Any]:
        self._acquire_slot(cancel_event, timeout)
        try:
            handle = self._surface.open()
        except SurfaceTimeoutError as exc:
            self._release_slot()
            raise CaptureTimeoutError(f"rendering surface did not open: {exc}") from exc
        except Exception as exc:
            self._release_slot()
            raise CaptureError(f"rendering surface failed to open: {exc}") from exc

        try:
            yield handle
        finally:
            try:
                self._surface.close(handle)
            except Exception as exc:  # pragma: no cover
                logger.warning(
                    "Rendering surface failed to close cleanly",
                    extra={"event": "surface.pool.close_failed", "attributes": {"error": str(exc)}},
                )
            finally:
                self._release_slot()


__all__ = ["SurfacePool"]
