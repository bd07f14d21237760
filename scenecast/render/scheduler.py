"""Derive the ordered per-frame animation states for one scene."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterator, Union

from scenecast.timing.plan import TimingPlan


@dataclass(frozen=True, slots=True)
class FrameTask:
    """One (scene, format, frame index) unit of capture work."""

    scene_index: int
    format_name: str
    frame_index: int
    total_frames: int
    progress: float

    def variables(self) -> Dict[str, Union[int, float]]:
        """Return the values injected into the rendering surface before capture."""

        return {
            "progress": self.progress,
            "frame": self.frame_index,
            "totalFrames": self.total_frames,
        }


def frame_count(duration_seconds: float, fps: float) -> int:
    """Return ``round(duration * fps)`` (half-up), never less than one."""

    if fps <= 0:
        raise ValueError("fps must be greater than zero")
    return max(1, int(math.floor(duration_seconds * fps + 0.5)))


def progress_fraction(frame_index: int, total_frames: int) -> float:
    if total_frames <= 1:
        return 1.0
    return min(1.0, max(0.0, frame_index / (total_frames - 1)))


class FrameSchedule:
    """Lazy, restartable sequence of :class:`FrameTask` objects.

    Iterating twice yields identical tasks; nothing here reads the clock.
    """

    __slots__ = ("duration_seconds", "fps", "scene_index", "format_name", "total_frames")

    def __init__(
        self,
        duration_seconds: float,
        fps: float,
        *,
        scene_index: int = 0,
        format_name: str = "",
    ) -> None:
        self.duration_seconds = duration_seconds
        self.fps = fps
        self.scene_index = scene_index
        self.format_name = format_name
        self.total_frames = frame_count(duration_seconds, fps)

    def __len__(self) -> int:
        return self.total_frames

    def __iter__(self) -> Iterator[FrameTask]:
        for index in range(self.total_frames):
            yield self[index]

    def __getitem__(self, index: int) -> FrameTask:
        total = self.total_frames
        if index < 0:
            index += total
        if not 0 <= index < total:
            raise IndexError(index)
        return FrameTask(
            scene_index=self.scene_index,
            format_name=self.format_name,
            frame_index=index,
            total_frames=total,
            progress=progress_fraction(index, total),
        )


def schedule(
    plan: TimingPlan,
    fps: float,
    *,
    scene_index: int = 0,
    format_name: str = "",
) -> FrameSchedule:
    """Return the frame schedule for ``plan`` at ``fps``."""

    return FrameSchedule(
        plan.duration_seconds, fps, scene_index=scene_index, format_name=format_name
    )


__all__ = ["FrameSchedule", "FrameTask", "frame_count", "progress_fraction", "schedule"]
