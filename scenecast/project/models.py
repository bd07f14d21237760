"""Immutable in-memory description of a multi-scene render request."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True, slots=True)
class OutputFormat:
    """Named output geometry such as ``landscape`` 1920x1080."""

    name: str
    width: int
    height: int

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True, slots=True)
class VoiceSettings:
    """Voice identifier and speaking-rate multiplier passed to speech engines."""

    voice: str
    speed: float = 1.0


@dataclass(frozen=True, slots=True)
class AutoDuration:
    """Derive the scene length from synthesized speech plus padding."""

    padding_before: float = 0.5
    padding_after: float = 0.5


@dataclass(frozen=True, slots=True)
class ExplicitDuration:
    """Fixed scene length in seconds."""

    seconds: float


DurationPolicy = Union[AutoDuration, ExplicitDuration]


@dataclass(frozen=True, slots=True)
class BackgroundAudio:
    """Audio bed mixed under one scene at ``volume`` (linear gain)."""

    path: Path
    volume: float = 0.3


@dataclass(frozen=True, slots=True)
class Scene:
    """One timed segment of the output video."""

    template: str
    properties: Mapping[str, Any] = field(default_factory=dict)
    script: str = ""
    duration: DurationPolicy = field(default_factory=AutoDuration)
    transition_in: Optional[str] = None
    transition_out: Optional[str] = None
    transition_duration: Optional[float] = None
    format_overrides: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    background_audio: Optional[BackgroundAudio] = None
    voice: Optional[VoiceSettings] = None

    def properties_for(self, format_name: str) -> Dict[str, Any]:
        """Return the property bag with overrides for ``format_name`` applied."""

        merged: Dict[str, Any] = dict(self.properties)
        overrides = self.format_overrides.get(format_name)
        if overrides:
            merged.update(overrides)
        return merged


@dataclass(frozen=True, slots=True)
class Project:
    """Global render settings plus the ordered scene sequence."""

    name: str
    fps: float
    formats: Tuple[OutputFormat, ...]
    scenes: Tuple[Scene, ...]
    voice: VoiceSettings
    output_dir: Path
    default_transition: Optional[str] = None
    captions: bool = False

    @property
    def format_names(self) -> Tuple[str, ...]:
        return tuple(fmt.name for fmt in self.formats)

    @property
    def slug(self) -> str:
        slug = _SLUG_PATTERN.sub("-", self.name.lower()).strip("-")
        return slug or "project"

    def format_named(self, name: str) -> OutputFormat:
        for fmt in self.formats:
            if fmt.name == name:
                return fmt
        raise KeyError(name)

    def voice_for(self, scene: Scene) -> VoiceSettings:
        return scene.voice if scene.voice is not None else self.voice

    def output_path_for(self, format_name: str) -> Path:
        return Path(self.output_dir) / f"{self.slug}-{format_name}.mp4"


__all__ = [
    "AutoDuration",
    "BackgroundAudio",
    "DurationPolicy",
    "ExplicitDuration",
    "OutputFormat",
    "Project",
    "Scene",
    "VoiceSettings",
]
