"""Mix narration and background beds onto one output timeline with pydub."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from pydub import AudioSegment
from pydub.utils import ratio_to_db

from scenecast.project.models import BackgroundAudio
from scenecast.timing.plan import VoiceoverTrack

AudioLoader = Callable[[str], AudioSegment]


@dataclass(frozen=True, slots=True)
class TimelineEntry:
    """Audio placed for one scene starting at ``start_seconds``."""

    start_seconds: float
    duration_seconds: float
    voiceover: Optional[VoiceoverTrack] = None
    background: Optional[BackgroundAudio] = None


def volume_to_gain_db(volume: float) -> Optional[float]:
    """Convert a linear volume to dB gain; ``None`` means the track is muted."""

    if volume <= 0:
        return None
    return ratio_to_db(volume)


def fit_to_duration(segment: AudioSegment, duration_ms: int) -> AudioSegment:
    """Loop or trim ``segment`` to exactly ``duration_ms`` milliseconds."""

    if duration_ms <= 0:
        return segment[:0]
    if len(segment) == 0:
        return AudioSegment.silent(duration=duration_ms)
    repeats = -(-duration_ms // len(segment))
    looped = segment * repeats if repeats > 1 else segment
    return looped[:duration_ms]


def mix_timeline(
    entries: Sequence[TimelineEntry],
    total_seconds: float,
    *,
    sample_rate: int = 48000,
    loader: AudioLoader = AudioSegment.from_file,
) -> AudioSegment:
    """Return one stereo track of ``total_seconds`` holding every entry."""

    total_ms = int(round(total_seconds * 1000))
    mix = AudioSegment.silent(duration=total_ms, frame_rate=sample_rate).set_channels(2)
    loaded: Dict[str, AudioSegment] = {}

    def load(path: Path) -> AudioSegment:
        key = str(path)
        if key not in loaded:
            loaded[key] = loader(key)
        return loaded[key]

    for entry in entries:
        start_ms = int(round(entry.start_seconds * 1000))
        if entry.background is not None:
            gain = volume_to_gain_db(entry.background.volume)
            if gain is not None:
                bed = fit_to_duration(load(entry.background.path), int(round(entry.duration_seconds * 1000)))
                mix = mix.overlay(bed.apply_gain(gain), position=start_ms)
        if entry.voiceover is not None:
            offset_ms = int(round(entry.voiceover.offset_seconds * 1000))
            span_ms = max(0, int(round(entry.duration_seconds * 1000)) - offset_ms)
            mix = mix.overlay(load(entry.voiceover.path)[:span_ms], position=start_ms + offset_ms)
    return mix


__all__ = ["TimelineEntry", "fit_to_duration", "mix_timeline", "volume_to_gain_db"]
