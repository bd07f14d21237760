from __future__ import annotations

from pathlib import Path

from pydub import AudioSegment

from scenecast.audio.backends.base import SynthesisResult
from scenecast.audio.cache import CachedTTSBackend, SynthesisCache, cache_key
from scenecast.timing import WordTimestamp
from tests.helpers.render_stubs import StubTTSBackend


def test_cache_key_distinguishes_every_request_field() -> None:
    base = cache_key("gtts", "en", 1.0, "Hello")

    assert base == cache_key("gtts", "en", 1, "Hello")
    assert base != cache_key("espeak", "en", 1.0, "Hello")
    assert base != cache_key("gtts", "fr", 1.0, "Hello")
    assert base != cache_key("gtts", "en", 1.25, "Hello")
    assert base != cache_key("gtts", "en", 1.0, "Hello!")


def test_cache_round_trips_audio_and_word_timing(tmp_path: Path) -> None:
    cache = SynthesisCache(tmp_path / "tts")
    stamps = (WordTimestamp("Hello", 0.0, 0.4), WordTimestamp("there", 0.45, 0.9))
    key = cache_key("stub", "en", 1.0, "Hello there")

    assert cache.get(key) is None

    cache.put(key, SynthesisResult(audio=AudioSegment.silent(duration=900), word_timestamps=stamps))
    cached = cache.get(key)

    assert cached is not None
    assert len(cached.audio) == 900
    assert cached.word_timestamps == stamps
    assert cached.metadata["cached"] is True
    assert sorted(p.name for p in (tmp_path / "tts").iterdir()) == [f"{key}.json", f"{key}.wav"]


def test_cache_ignores_corrupt_entries(tmp_path: Path) -> None:
    cache = SynthesisCache(tmp_path)
    key = cache_key("stub", "en", 1.0, "broken")
    cache.put(key, SynthesisResult(audio=AudioSegment.silent(duration=100)))
    (tmp_path / f"{key}.json").write_text("{not json", encoding="utf-8")

    assert cache.get(key) is None


def test_cached_backend_synthesizes_each_request_once(tmp_path: Path) -> None:
    stub = StubTTSBackend({"Welcome": 2.0})
    backend = CachedTTSBackend(stub, SynthesisCache(tmp_path))

    first = backend.synthesize(text="Welcome", voice="en", speed=1.0)
    second = backend.synthesize(text="Welcome", voice="en", speed=1.0)
    backend.synthesize(text="Welcome", voice="en", speed=1.5)

    assert backend.name == "stub"
    assert backend.backend is stub
    assert len(first.audio) == len(second.audio) == 2000
    assert second.word_timestamps is None
    assert stub.calls == [("Welcome", "en", 1.0), ("Welcome", "en", 1.5)]
    assert backend.list_voices() == stub.list_voices()
