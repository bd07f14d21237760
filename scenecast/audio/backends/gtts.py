"""gTTS backend implementation."""

from __future__ import annotations

import io
from typing import List, Optional

import requests
from gtts import gTTS, gTTSError
from gtts.lang import tts_langs
from pydub import AudioSegment
from pydub.effects import speedup

from .base import BaseTTSBackend, SynthesisResult, TTSBackendError, TTSTimeoutError, VoiceInfo


def _split_voice(voice: str) -> tuple[str, str]:
    """Split ``en:co.uk`` style identifiers into language and accent domain."""

    lang, _, tld = voice.partition(":")
    return lang.strip() or "en", tld.strip() or "com"


def _caused_by_timeout(exc: BaseException) -> bool:
    current: Optional[BaseException] = exc
    while current is not None:
        if isinstance(current, requests.Timeout):
            return True
        current = current.__cause__ or current.__context__
    return False


class GTTSBackend(BaseTTSBackend):
    """Backend using the Google Text-to-Speech API."""

    name = "gtts"

    def synthesize(
        self,
        *,
        text: str,
        voice: str,
        speed: float,
        timeout: Optional[float] = None,
    ) -> SynthesisResult:
        lang, tld = _split_voice(voice)
        buffer = io.BytesIO()
        try:
            tts = gTTS(text=text, lang=lang, tld=tld, slow=speed < 1.0, timeout=timeout)
            tts.write_to_fp(buffer)
        except (gTTSError, AssertionError, ValueError, requests.RequestException) as exc:
            if _caused_by_timeout(exc):
                raise TTSTimeoutError(f"gTTS synthesis timed out after {timeout}s") from exc
            raise TTSBackendError("gTTS synthesis failed") from exc

        buffer.seek(0)
        audio = AudioSegment.from_file(buffer, format="mp3")
        if speed > 1.0:
            audio = speedup(audio, playback_speed=speed)
        return SynthesisResult(audio=audio, metadata={"engine": self.name, "lang": lang, "tld": tld})

    def list_voices(self) -> List[VoiceInfo]:
        return [
            VoiceInfo(id=code, language=code, name=label)
            for code, label in sorted(tts_langs().items())
        ]


__all__ = ["GTTSBackend"]
