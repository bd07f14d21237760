"""Resolved timing for one scene."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple


@dataclass(frozen=True, slots=True)
class WordTimestamp:
    """One spoken word positioned in scene time (seconds)."""

    word: str
    start: float
    end: float


@dataclass(frozen=True, slots=True)
class VoiceoverTrack:
    """Synthesized narration stored on disk and its placement in the scene."""

    path: Path
    duration_seconds: float
    offset_seconds: float = 0.0


@dataclass(frozen=True, slots=True)
class TimingPlan:
    """Authoritative scene duration with optional word timing and narration."""

    duration_seconds: float
    word_timestamps: Tuple[WordTimestamp, ...] = ()
    voiceover: Optional[VoiceoverTrack] = None


__all__ = ["TimingPlan", "VoiceoverTrack", "WordTimestamp"]
