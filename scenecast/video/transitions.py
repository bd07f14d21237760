"""Scene boundary transitions and the timeline arithmetic they imply."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from scenecast import logging_manager as log_mgr
from scenecast.project.models import Project, Scene

logger = log_mgr.logger

DEFAULT_TRANSITION_DURATION = 0.5


class TransitionType(str, Enum):
    """Transition kinds, valued by their ffmpeg ``xfade`` names."""

    FADE = "fade"
    DISSOLVE = "dissolve"
    SLIDE_LEFT = "slideleft"
    SLIDE_RIGHT = "slideright"
    SLIDE_UP = "slideup"
    SLIDE_DOWN = "slidedown"
    WIPE_LEFT = "wipeleft"
    WIPE_RIGHT = "wiperight"
    ZOOM = "smoothup"
    CIRCLE = "circleopen"


_ALIASES = {
    "fade": TransitionType.FADE,
    "crossfade": TransitionType.FADE,
    "dissolve": TransitionType.DISSOLVE,
    "slide-left": TransitionType.SLIDE_LEFT,
    "slide-right": TransitionType.SLIDE_RIGHT,
    "slide-up": TransitionType.SLIDE_UP,
    "slide-down": TransitionType.SLIDE_DOWN,
    "wipe": TransitionType.WIPE_LEFT,
    "wipe-left": TransitionType.WIPE_LEFT,
    "wipe-right": TransitionType.WIPE_RIGHT,
    "zoom": TransitionType.ZOOM,
    "circle": TransitionType.CIRCLE,
}

_HARD_CUT_NAMES = {"", "none", "cut"}


@dataclass(frozen=True, slots=True)
class Transition:
    """Resolved transition between two adjacent scenes."""

    kind: TransitionType
    duration: float


def parse_transition(name: Optional[str]) -> Optional[TransitionType]:
    """Map a declared transition name to a kind; ``None`` means a hard cut."""

    if name is None:
        return None
    normalized = name.strip().lower().replace("_", "-")
    if normalized in _HARD_CUT_NAMES:
        return None
    if normalized in _ALIASES:
        return _ALIASES[normalized]
    compact = normalized.replace("-", "")
    for kind in TransitionType:
        if kind.value == compact:
            return kind
    logger.warning(
        "Unknown transition '%s', using fade",
        name,
        extra={"event": "assembly.transition.unknown", "attributes": {"name": name}},
    )
    return TransitionType.FADE


def resolve_transition(
    previous: Scene,
    following: Scene,
    *,
    default_name: Optional[str] = None,
    default_duration: float = DEFAULT_TRANSITION_DURATION,
) -> Optional[Transition]:
    """Pick the transition at the boundary between ``previous`` and ``following``.

    The exit transition of the earlier scene wins over the entry transition of
    the later one, which wins over the project default.
    """

    if previous.transition_out is not None:
        declared: Optional[str] = previous.transition_out
    elif following.transition_in is not None:
        declared = following.transition_in
    else:
        declared = default_name
    kind = parse_transition(declared)
    if kind is None:
        return None

    if previous.transition_duration is not None:
        duration = previous.transition_duration
    elif following.transition_duration is not None:
        duration = following.transition_duration
    else:
        duration = default_duration
    return Transition(kind=kind, duration=float(duration))


def resolve_transitions(
    project: Project,
    scene_indices: Sequence[int],
    *,
    default_duration: float = DEFAULT_TRANSITION_DURATION,
) -> List[Optional[Transition]]:
    """Return one entry per boundary between consecutive selected scenes."""

    ordered = sorted(scene_indices)
    return [
        resolve_transition(
            project.scenes[before],
            project.scenes[after],
            default_name=project.default_transition,
            default_duration=default_duration,
        )
        for before, after in zip(ordered, ordered[1:])
    ]


def overlap_seconds(transitions: Sequence[Optional[Transition]]) -> List[float]:
    return [transition.duration if transition is not None else 0.0 for transition in transitions]


def scene_offsets(durations: Sequence[float], overlaps: Sequence[float]) -> List[float]:
    """Start time of each scene once adjacent scenes overlap by ``overlaps``."""

    if len(overlaps) != max(0, len(durations) - 1):
        raise ValueError("expected one overlap per scene boundary")
    offsets: List[float] = []
    cursor = 0.0
    for index, duration in enumerate(durations):
        offsets.append(cursor)
        cursor += duration
        if index < len(overlaps):
            cursor -= overlaps[index]
    return offsets


def timeline_duration(durations: Sequence[float], overlaps: Sequence[float]) -> float:
    """Total length: ``sum(durations) - sum(overlaps)``."""

    if len(overlaps) != max(0, len(durations) - 1):
        raise ValueError("expected one overlap per scene boundary")
    return sum(durations) - sum(overlaps)


__all__ = [
    "DEFAULT_TRANSITION_DURATION",
    "Transition",
    "TransitionType",
    "overlap_seconds",
    "parse_transition",
    "resolve_transition",
    "resolve_transitions",
    "scene_offsets",
    "timeline_duration",
]
