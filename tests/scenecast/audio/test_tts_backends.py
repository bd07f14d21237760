from __future__ import annotations

import types
from pathlib import Path

import pytest
import requests
from gtts import gTTSError
from pydub import AudioSegment

import scenecast.audio.backends as backends_mod
from scenecast.audio.backends import (
    EspeakBackend,
    GTTSBackend,
    MacOSSayBackend,
    TTSBackendError,
    TTSTimeoutError,
    create_backend,
    get_tts_backend,
    register_backend,
)
from scenecast.audio.cache import CachedTTSBackend
from scenecast.media.exceptions import CommandExecutionError


def test_get_tts_backend_prefers_config_override() -> None:
    backend = get_tts_backend({"tts_backend": "gtts"})
    assert isinstance(backend, GTTSBackend)


def test_get_tts_backend_auto_uses_platform_default(monkeypatch) -> None:
    monkeypatch.setattr("scenecast.audio.backends.sys.platform", "darwin")
    assert isinstance(get_tts_backend({"tts_backend": "auto"}), MacOSSayBackend)

    monkeypatch.setattr("scenecast.audio.backends.sys.platform", "linux")
    assert isinstance(get_tts_backend({}), GTTSBackend)


def test_get_tts_backend_reads_attribute_style_config(tmp_path: Path) -> None:
    settings = types.SimpleNamespace(
        tts_backend="espeak-ng",
        tts_executable_path="/opt/espeak/bin/espeak-ng",
        tts_cache_dir=str(tmp_path / "tts"),
    )

    backend = get_tts_backend(settings)

    assert isinstance(backend, CachedTTSBackend)
    assert isinstance(backend.backend, EspeakBackend)
    assert backend.executable_path == "/opt/espeak/bin/espeak-ng"


@pytest.mark.parametrize(
    "name, expected",
    [("say", MacOSSayBackend), ("macos", MacOSSayBackend), ("ESPEAK", EspeakBackend), ("gtts", GTTSBackend)],
)
def test_create_backend_accepts_aliases(name, expected) -> None:  # noqa: ANN001
    assert isinstance(create_backend(name), expected)


def test_create_backend_rejects_unknown_names() -> None:
    with pytest.raises(KeyError):
        create_backend("festival")


def _fake_engine(calls, *, error: Exception | None = None):  # noqa: ANN001
    def fake_run_command(command, **kwargs):  # noqa: ANN001
        calls.append((list(command), kwargs.get("timeout")))
        if error is not None:
            raise error
        destination = command[command.index("-w") + 1]
        AudioSegment.silent(duration=750).export(destination, format="wav")

    return fake_run_command


def test_espeak_backend_invokes_engine_and_loads_audio(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr("scenecast.audio.backends.command.run_command", _fake_engine(calls))

    result = EspeakBackend(executable_path="/usr/bin/espeak-ng").synthesize(
        text="Hello world", voice="en-gb", speed=1.2, timeout=15.0
    )

    command, timeout = calls[0]
    destination = command[6]
    assert command[:6] == ["/usr/bin/espeak-ng", "-v", "en-gb", "-s", "210", "-w"]
    assert command[-1] == "Hello world"
    assert timeout == 15.0
    assert result.duration_seconds == pytest.approx(0.75)
    assert result.metadata["engine"] == "espeak"
    assert not Path(destination).exists()


def test_command_backend_maps_timeouts(monkeypatch) -> None:
    error = CommandExecutionError(["espeak-ng"], timeout=True)
    monkeypatch.setattr("scenecast.audio.backends.command.run_command", _fake_engine([], error=error))

    with pytest.raises(TTSTimeoutError):
        EspeakBackend().synthesize(text="Hi", voice="en", speed=1.0, timeout=0.1)


def test_command_backend_maps_failures_with_stderr(monkeypatch) -> None:
    error = CommandExecutionError(["say"], returncode=1, stderr="voice not found")
    monkeypatch.setattr("scenecast.audio.backends.command.run_command", _fake_engine([], error=error))

    with pytest.raises(TTSBackendError) as excinfo:
        MacOSSayBackend().synthesize(text="Hi", voice="Nobody", speed=1.0)

    assert not isinstance(excinfo.value, TTSTimeoutError)
    assert "voice not found" in str(excinfo.value)


def test_macos_backend_lists_voices(monkeypatch) -> None:
    listing = (
        "Alex                en_US    # Most people recognize me by my voice.\n"
        "Amelie              fr_CA    # Bonjour, je m'appelle Amelie.\n"
        "garbage\n"
    )
    monkeypatch.setattr(
        "scenecast.audio.backends.command.run_command",
        lambda command, **kwargs: types.SimpleNamespace(stdout=listing),
    )

    voices = MacOSSayBackend().list_voices()

    assert [(voice.id, voice.language) for voice in voices] == [("Alex", "en-US"), ("Amelie", "fr-CA")]


def test_espeak_backend_lists_voices(monkeypatch) -> None:
    listing = (
        "Pty Language       Age/Gender VoiceName          File                 Other Languages\n"
        " 5  af              --/M      Afrikaans          gmw/af\n"
        " 5  en-gb           --/F      English_(Great_Britain) gmw/en\n"
    )
    monkeypatch.setattr(
        "scenecast.audio.backends.command.run_command",
        lambda command, **kwargs: types.SimpleNamespace(stdout=listing),
    )

    voices = EspeakBackend().list_voices()

    assert [(voice.id, voice.gender) for voice in voices] == [("af", "male"), ("en-gb", "female")]


class _FakeGTTS:
    created: list = []
    error: Exception | None = None

    def __init__(self, **kwargs) -> None:
        type(self).created.append(kwargs)

    def write_to_fp(self, fp) -> None:  # noqa: ANN001
        if type(self).error is not None:
            raise type(self).error
        fp.write(b"mp3")


@pytest.fixture
def fake_gtts(monkeypatch):
    engine = type("Engine", (_FakeGTTS,), {"created": [], "error": None})
    monkeypatch.setattr("scenecast.audio.backends.gtts.gTTS", engine)
    return engine


def test_gtts_backend_splits_voice_into_language_and_domain(monkeypatch, fake_gtts) -> None:
    monkeypatch.setattr(
        "scenecast.audio.backends.gtts.AudioSegment.from_file",
        lambda source, format=None: AudioSegment.silent(duration=500),
    )

    result = GTTSBackend().synthesize(text="Bonjour", voice="fr:ca", speed=1.0, timeout=5.0)

    assert fake_gtts.created == [
        {"text": "Bonjour", "lang": "fr", "tld": "ca", "slow": False, "timeout": 5.0}
    ]
    assert result.metadata == {"engine": "gtts", "lang": "fr", "tld": "ca"}
    assert result.duration_seconds == pytest.approx(0.5)


def test_gtts_backend_maps_service_errors(fake_gtts) -> None:
    fake_gtts.error = gTTSError("429 (Too Many Requests)")

    with pytest.raises(TTSBackendError) as excinfo:
        GTTSBackend().synthesize(text="Hi", voice="en", speed=1.0)

    assert not isinstance(excinfo.value, TTSTimeoutError)


def test_gtts_backend_maps_request_timeouts(fake_gtts) -> None:
    fake_gtts.error = requests.ReadTimeout("read timed out")

    with pytest.raises(TTSTimeoutError):
        GTTSBackend().synthesize(text="Hi", voice="en", speed=1.0, timeout=0.5)


def test_register_backend_adds_custom_engines(monkeypatch) -> None:
    class PiperBackend(EspeakBackend):
        name = "piper"

    monkeypatch.setattr(backends_mod, "_BACKENDS", dict(backends_mod._BACKENDS))
    register_backend("Piper", PiperBackend)

    backend = get_tts_backend({"tts_backend": "piper", "tts_executable_path": "/opt/piper"})

    assert isinstance(backend, PiperBackend)
    assert backend.executable_path == "/opt/piper"
