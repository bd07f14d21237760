"""Speech backends driven by local command line synthesizers."""

from __future__ import annotations

import os
import re
import tempfile
from typing import List, Optional, Sequence

from pydub import AudioSegment

from scenecast.media.command_runner import run_command
from scenecast.media.exceptions import CommandExecutionError

from .base import BaseTTSBackend, SynthesisResult, TTSBackendError, TTSTimeoutError, VoiceInfo

BASE_WORDS_PER_MINUTE = 175

_SAY_VOICE_LINE = re.compile(r"^(?P<name>.+?)\s{2,}(?P<locale>[a-z]{2,3}[_-][A-Za-z0-9]+)\s")


class _CommandTTSBackend(BaseTTSBackend):
    """Shared synthesis flow: run the engine into a temp file, load it with pydub."""

    default_executable = ""
    audio_format = "wav"

    def _resolve_executable(self) -> str:
        return self.executable_path or self.default_executable

    def _words_per_minute(self, speed: float) -> int:
        return max(1, int(round(BASE_WORDS_PER_MINUTE * speed)))

    def _build_command(self, *, text: str, voice: str, speed: float, destination: str) -> List[str]:
        raise NotImplementedError

    def _run(self, command: Sequence[str], timeout: Optional[float]):
        try:
            return run_command(command, timeout=timeout)
        except CommandExecutionError as exc:
            if exc.timeout:
                raise TTSTimeoutError(f"{self.name} synthesis timed out after {timeout}s") from exc
            raise TTSBackendError(f"{self.name} synthesis failed: {exc.stderr_text}") from exc

    def synthesize(
        self,
        *,
        text: str,
        voice: str,
        speed: float,
        timeout: Optional[float] = None,
    ) -> SynthesisResult:
        handle = tempfile.NamedTemporaryFile(suffix=f".{self.audio_format}", delete=False)
        destination = handle.name
        handle.close()
        try:
            command = self._build_command(text=text, voice=voice, speed=speed, destination=destination)
            self._run(command, timeout)
            audio = AudioSegment.from_file(destination, format=self.audio_format)
        finally:
            if os.path.exists(destination):
                os.remove(destination)
        return SynthesisResult(audio=audio, metadata={"engine": self.name, "voice": voice})


class MacOSSayBackend(_CommandTTSBackend):
    """Backend using the macOS ``say`` command line utility."""

    name = "macos_say"
    default_executable = "say"
    audio_format = "aiff"

    def _build_command(self, *, text: str, voice: str, speed: float, destination: str) -> List[str]:
        return [
            self._resolve_executable(),
            "-v",
            voice,
            "-r",
            str(self._words_per_minute(speed)),
            "-o",
            destination,
            text,
        ]

    def list_voices(self) -> List[VoiceInfo]:
        result = self._run([self._resolve_executable(), "-v", "?"], None)
        voices: List[VoiceInfo] = []
        for line in str(result.stdout or "").splitlines():
            match = _SAY_VOICE_LINE.match(line)
            if not match:
                continue
            name = match.group("name").strip()
            voices.append(VoiceInfo(id=name, language=match.group("locale").replace("_", "-"), name=name))
        return voices


class EspeakBackend(_CommandTTSBackend):
    """Backend using ``espeak-ng`` (Linux and other platforms)."""

    name = "espeak"
    default_executable = "espeak-ng"
    audio_format = "wav"

    def _build_command(self, *, text: str, voice: str, speed: float, destination: str) -> List[str]:
        return [
            self._resolve_executable(),
            "-v",
            voice,
            "-s",
            str(self._words_per_minute(speed)),
            "-w",
            destination,
            text,
        ]

    def list_voices(self) -> List[VoiceInfo]:
        result = self._run([self._resolve_executable(), "--voices"], None)
        voices: List[VoiceInfo] = []
        for line in str(result.stdout or "").splitlines()[1:]:
            parts = line.split()
            if len(parts) < 4:
                continue
            _, gender = parts[2].rsplit("/", 1) if "/" in parts[2] else ("", parts[2])
            voices.append(
                VoiceInfo(
                    id=parts[1],
                    language=parts[1],
                    gender={"M": "male", "F": "female"}.get(gender.upper()),
                    name=parts[3],
                )
            )
        return voices


__all__ = ["EspeakBackend", "MacOSSayBackend"]
