"""Resolve authoritative scene durations, synthesizing narration when needed."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional, Tuple

from scenecast import logging_manager as log_mgr
from scenecast.audio.backends.base import BaseTTSBackend, SynthesisResult, TTSTimeoutError
from scenecast.audio.cache import cache_key
from scenecast.errors import SynthesisError, SynthesisTimeoutError, ValidationError
from scenecast.project.models import AutoDuration, ExplicitDuration, Scene, VoiceSettings

from .plan import TimingPlan, VoiceoverTrack
from .timestamps import estimate_word_timestamps, shift_word_timestamps

logger = log_mgr.logger

DEFAULT_FALLBACK_DURATION = 3.0


class TimingResolver:
    """Turn a scene's duration policy into a :class:`TimingPlan`.

    This is the only component that blocks on the speech backend. Narration
    audio is written as WAV into ``audio_dir`` so the encoder and the assembly
    mixer can read it by path.
    """

    def __init__(
        self,
        backend: BaseTTSBackend,
        *,
        audio_dir: Path | str,
        tts_timeout: Optional[float] = None,
        fallback_duration: float = DEFAULT_FALLBACK_DURATION,
        estimate_captions: bool = False,
    ) -> None:
        self._backend = backend
        self._audio_dir = Path(audio_dir)
        self._tts_timeout = tts_timeout
        self._fallback_duration = fallback_duration
        self._estimate_captions = estimate_captions
        self._export_lock = threading.Lock()

    @property
    def backend(self) -> BaseTTSBackend:
        return self._backend

    def resolve(self, scene: Scene, voice: VoiceSettings) -> TimingPlan:
        policy = scene.duration
        if isinstance(policy, ExplicitDuration):
            return self._resolve_explicit(scene, policy, voice)
        if isinstance(policy, AutoDuration):
            return self._resolve_auto(scene, policy, voice)
        raise ValidationError(f"unsupported duration policy {type(policy).__name__}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _synthesize(self, text: str, voice: VoiceSettings) -> Tuple[SynthesisResult, Path]:
        """Synthesize ``text`` and store it as WAV, mapping every failure to ``SynthesisError``."""

        try:
            result = self._backend.synthesize(
                text=text,
                voice=voice.voice,
                speed=voice.speed,
                timeout=self._tts_timeout,
            )
        except TTSTimeoutError as exc:
            raise SynthesisTimeoutError(str(exc), timeout=self._tts_timeout) from exc
        except Exception as exc:
            raise SynthesisError(f"speech synthesis failed: {exc}") from exc

        if result.duration_seconds <= 0:
            raise SynthesisError("speech synthesis produced no audio")

        key = cache_key(self._backend.name, voice.voice, voice.speed, text)
        path = self._audio_dir / f"voice-{key[:24]}.wav"
        try:
            with self._export_lock:
                if not path.exists():
                    self._audio_dir.mkdir(parents=True, exist_ok=True)
                    result.audio.export(path, format="wav")
        except Exception as exc:
            raise SynthesisError(f"could not store narration audio: {exc}") from exc
        return result, path

    def _resolve_explicit(self, scene: Scene, policy: ExplicitDuration, voice: VoiceSettings) -> TimingPlan:
        """Keep the declared length; narrate the script from the scene start when present.

        Narration longer than the scene is cut at the scene end. Word timing is
        only produced for captions and spans the whole declared duration.
        """

        duration = float(policy.seconds)
        text = scene.script.strip()
        if not text:
            return TimingPlan(duration_seconds=duration)

        result, path = self._synthesize(text, voice)
        audio_seconds = result.duration_seconds
        stamps = estimate_word_timestamps(text, 0.0, duration) if self._estimate_captions else ()
        if audio_seconds > duration:
            logger.warning(
                "Narration runs past the explicit scene duration and will be cut",
                extra={
                    "event": "timing.resolve.narration_truncated",
                    "attributes": {"audio_seconds": audio_seconds, "duration_seconds": duration},
                },
            )
        return TimingPlan(
            duration_seconds=duration,
            word_timestamps=stamps,
            voiceover=VoiceoverTrack(path=path, duration_seconds=audio_seconds, offset_seconds=0.0),
        )

    def _resolve_auto(self, scene: Scene, policy: AutoDuration, voice: VoiceSettings) -> TimingPlan:
        """Size the scene to its narration plus padding.

        A scene with no script keeps its padding around the fallback length, so
        ``Auto(before, after)`` always contributes its declared lead-in and tail.
        """

        before = float(policy.padding_before)
        after = float(policy.padding_after)
        text = scene.script.strip()
        if not text:
            return TimingPlan(duration_seconds=self._fallback_duration + before + after)

        result, path = self._synthesize(text, voice)
        audio_seconds = result.duration_seconds
        if result.word_timestamps:
            stamps = shift_word_timestamps(result.word_timestamps, before)
        else:
            stamps = estimate_word_timestamps(text, before, before + audio_seconds)

        plan = TimingPlan(
            duration_seconds=audio_seconds + before + after,
            word_timestamps=stamps,
            voiceover=VoiceoverTrack(path=path, duration_seconds=audio_seconds, offset_seconds=before),
        )
        logger.debug(
            "Resolved automatic scene duration",
            extra={
                "event": "timing.resolve.auto",
                "attributes": {"audio_seconds": audio_seconds, "duration_seconds": plan.duration_seconds},
            },
        )
        return plan


__all__ = ["DEFAULT_FALLBACK_DURATION", "TimingResolver"]
