"""Base interfaces for text-to-speech backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

from pydub import AudioSegment

from scenecast.media.exceptions import MediaBackendError
from scenecast.timing.plan import WordTimestamp


class TTSBackendError(MediaBackendError):
    """Raised when a backend fails to synthesize audio."""


class TTSTimeoutError(TTSBackendError):
    """Raised when a backend exceeds the caller-supplied time budget."""


@dataclass(frozen=True, slots=True)
class VoiceInfo:
    """Voice advertised by a backend."""

    id: str
    language: str
    gender: Optional[str] = None
    name: Optional[str] = None


@dataclass(slots=True)
class SynthesisResult:
    """Synthesized audio plus optional word timing relative to the audio start."""

    audio: AudioSegment
    word_timestamps: Optional[Tuple[WordTimestamp, ...]] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        return len(self.audio) / 1000.0


class BaseTTSBackend(ABC):
    """Abstract base class for concrete TTS backends.

    Implementations surface all operational failures as
    :class:`TTSBackendError` (timeouts as :class:`TTSTimeoutError`) so the
    timing resolver can classify them uniformly.
    """

    name: str = "base"

    def __init__(self, *, executable_path: Optional[str] = None) -> None:
        self._executable_path = executable_path

    @property
    def executable_path(self) -> Optional[str]:
        """Return the user-provided executable path override, if any."""

        return self._executable_path

    @abstractmethod
    def synthesize(
        self,
        *,
        text: str,
        voice: str,
        speed: float,
        timeout: Optional[float] = None,
    ) -> SynthesisResult:
        """Generate speech audio for ``text``."""

    @abstractmethod
    def list_voices(self) -> List[VoiceInfo]:
        """Return the voices this backend can synthesize with."""


__all__ = [
    "BaseTTSBackend",
    "SynthesisResult",
    "TTSBackendError",
    "TTSTimeoutError",
    "VoiceInfo",
]
