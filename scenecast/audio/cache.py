"""On-disk cache of synthesized narration keyed by engine, voice, speed and text."""

from __future__ import annotations

import hashlib
import json
import os
import threading
from pathlib import Path
from typing import List, Optional

from pydub import AudioSegment

from scenecast import logging_manager as log_mgr
from scenecast.timing.plan import WordTimestamp

from .backends.base import BaseTTSBackend, SynthesisResult, VoiceInfo

logger = log_mgr.logger


def cache_key(engine: str, voice: str, speed: float, text: str) -> str:
    """Return the hex digest identifying one synthesis request."""

    payload = "\0".join((engine, voice, repr(float(speed)), text))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class SynthesisCache:
    """Store synthesized audio as WAV files with a JSON sidecar."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    def _paths(self, key: str) -> tuple[Path, Path]:
        return self._directory / f"{key}.wav", self._directory / f"{key}.json"

    def get(self, key: str) -> Optional[SynthesisResult]:
        audio_path, meta_path = self._paths(key)
        if not audio_path.is_file() or not meta_path.is_file():
            return None
        try:
            metadata = json.loads(meta_path.read_text(encoding="utf-8"))
            audio = AudioSegment.from_file(audio_path, format="wav")
        except (OSError, ValueError) as exc:
            logger.warning(
                "Ignoring unreadable synthesis cache entry",
                extra={"event": "tts.cache.corrupt", "attributes": {"key": key, "error": str(exc)}},
            )
            return None
        words = metadata.get("word_timestamps")
        stamps = None
        if words is not None:
            stamps = tuple(WordTimestamp(word=w, start=float(s), end=float(e)) for w, s, e in words)
        return SynthesisResult(audio=audio, word_timestamps=stamps, metadata={"cached": True, "key": key})

    def put(self, key: str, result: SynthesisResult) -> None:
        audio_path, meta_path = self._paths(key)
        metadata = {
            "duration_seconds": result.duration_seconds,
            "word_timestamps": (
                [[stamp.word, stamp.start, stamp.end] for stamp in result.word_timestamps]
                if result.word_timestamps is not None
                else None
            ),
        }
        with self._lock:
            self._directory.mkdir(parents=True, exist_ok=True)
            partial_audio = audio_path.with_suffix(".wav.partial")
            result.audio.export(partial_audio, format="wav")
            os.replace(partial_audio, audio_path)
            partial_meta = meta_path.with_suffix(".json.partial")
            partial_meta.write_text(json.dumps(metadata), encoding="utf-8")
            os.replace(partial_meta, meta_path)


class CachedTTSBackend(BaseTTSBackend):
    """Wrap another backend so repeated requests are served from disk."""

    def __init__(self, backend: BaseTTSBackend, cache: SynthesisCache) -> None:
        super().__init__(executable_path=backend.executable_path)
        self._backend = backend
        self._cache = cache
        self.name = backend.name

    @property
    def backend(self) -> BaseTTSBackend:
        return self._backend

    def synthesize(
        self,
        *,
        text: str,
        voice: str,
        speed: float,
        timeout: Optional[float] = None,
    ) -> SynthesisResult:
        key = cache_key(self._backend.name, voice, speed, text)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Synthesis cache hit", extra={"event": "tts.cache.hit", "attributes": {"key": key}})
            return cached
        result = self._backend.synthesize(text=text, voice=voice, speed=speed, timeout=timeout)
        self._cache.put(key, result)
        return result

    def list_voices(self) -> List[VoiceInfo]:
        return self._backend.list_voices()


__all__ = ["CachedTTSBackend", "SynthesisCache", "cache_key"]
