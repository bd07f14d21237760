"""Capability contract for headless rendering surfaces."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Union, runtime_checkable

from scenecast.media.exceptions import MediaBackendError

FRAME_VARIABLE_MARKERS: tuple[str, ...] = ("--progress", "--frame", "--total-frames")

FrameVariables = Mapping[str, Union[int, float]]


class SurfaceError(MediaBackendError):
    """Raised by surface bindings when loading or capturing fails."""


class SurfaceTimeoutError(SurfaceError):
    """Raised by surface bindings when a call exceeds its time budget."""


def references_frame_variables(markup: str) -> bool:
    """Return ``True`` when ``markup`` reads any injected frame variable."""

    return any(marker in markup for marker in FRAME_VARIABLE_MARKERS)


@runtime_checkable
class RenderingSurface(Protocol):
    """Protocol implemented by rendering surface bindings.

    A handle is used by one worker at a time; bindings need not be thread-safe
    per handle. All operational failures should be raised as
    :class:`SurfaceError` (timeouts as :class:`SurfaceTimeoutError`).
    """

    def open(self) -> Any:
        """Return a fresh handle."""

    def load(
        self,
        handle: Any,
        markup: str,
        *,
        width: int,
        height: int,
        timeout: Optional[float] = None,
    ) -> None:
        """Load ``markup`` into ``handle`` at the given viewport size."""

    def set_variables(
        self,
        handle: Any,
        variables: FrameVariables,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        """Inject ``progress``, ``frame`` and ``totalFrames`` before a capture."""

    def capture_frame(self, handle: Any, *, timeout: Optional[float] = None) -> bytes:
        """Return the current frame as PNG bytes."""

    def close(self, handle: Any) -> None:
        """Release every resource held by ``handle``."""


__all__ = [
    "FRAME_VARIABLE_MARKERS",
    "FrameVariables",
    "RenderingSurface",
    "SurfaceError",
    "SurfaceTimeoutError",
    "references_frame_variables",
]
