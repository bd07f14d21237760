"""Registry and helpers for TTS backends."""

from __future__ import annotations

import sys
from typing import Any, Mapping, MutableMapping, Optional, Type

from .base import BaseTTSBackend, SynthesisResult, TTSBackendError, TTSTimeoutError, VoiceInfo
from .command import EspeakBackend, MacOSSayBackend
from .gtts import GTTSBackend

_BACKENDS: MutableMapping[str, Type[BaseTTSBackend]] = {
    GTTSBackend.name: GTTSBackend,
    MacOSSayBackend.name: MacOSSayBackend,
    EspeakBackend.name: EspeakBackend,
}

_BACKEND_ALIASES = {
    "macos": MacOSSayBackend.name,
    "say": MacOSSayBackend.name,
    "espeak-ng": EspeakBackend.name,
    "native": MacOSSayBackend.name if sys.platform == "darwin" else EspeakBackend.name,
}


def get_default_backend_name() -> str:
    """Return the platform default backend identifier."""

    return MacOSSayBackend.name if sys.platform == "darwin" else GTTSBackend.name


def register_backend(name: str, backend_cls: Type[BaseTTSBackend]) -> None:
    """Register ``backend_cls`` under ``name``."""

    _BACKENDS[name.lower()] = backend_cls


def _resolve_backend_name(value: Optional[str]) -> str:
    normalized = (value or "").strip().lower()
    if not normalized or normalized == "auto":
        return get_default_backend_name()
    return _BACKEND_ALIASES.get(normalized, normalized)


def create_backend(name: str, *, executable_path: Optional[str] = None) -> BaseTTSBackend:
    """Instantiate the backend registered as ``name`` (aliases accepted)."""

    key = _resolve_backend_name(name)
    backend_cls = _BACKENDS.get(key)
    if backend_cls is None:
        raise KeyError(f"Unknown TTS backend: {name}")
    return backend_cls(executable_path=executable_path)


def _setting(config: Any, key: str) -> Optional[str]:
    if config is None:
        return None
    value = config.get(key) if isinstance(config, Mapping) else getattr(config, key, None)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def get_tts_backend(config: Optional[Any] = None) -> BaseTTSBackend:
    """Return a backend for ``config`` (mapping or ``RenderingConfig``).

    When ``tts_cache_dir`` is configured the backend is wrapped in a
    :class:`~scenecast.audio.cache.CachedTTSBackend`.
    """

    backend = create_backend(
        _setting(config, "tts_backend") or "auto",
        executable_path=_setting(config, "tts_executable_path"),
    )
    cache_dir = _setting(config, "tts_cache_dir")
    if cache_dir:
        from scenecast.audio.cache import CachedTTSBackend, SynthesisCache

        backend = CachedTTSBackend(backend, SynthesisCache(cache_dir))
    return backend


__all__ = [
    "BaseTTSBackend",
    "EspeakBackend",
    "GTTSBackend",
    "MacOSSayBackend",
    "SynthesisResult",
    "TTSBackendError",
    "TTSTimeoutError",
    "VoiceInfo",
    "create_backend",
    "get_default_backend_name",
    "get_tts_backend",
    "register_backend",
]
