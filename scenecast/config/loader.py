"""Rendering configuration loader and validation utilities."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Mapping, MutableMapping, Optional

import yaml

from scenecast.environment import load_environment

_DEFAULT_RENDERING_CONFIG_PATH = (
    Path(__file__).resolve().parent.parent.parent / "conf" / "rendering.yaml"
)

CONFIG_PATH_ENV = "SCENECAST_CONFIG"
ENV_PREFIX = "SCENECAST_"

_DEFAULT_CONFIG: Mapping[str, Any] = {
    "surface_pool_size": 4,
    "worker_threads": 8,
    "max_active_jobs": 2,
    "frame_queue_depth": 8,
    "tts_backend": "gtts",
    "tts_executable_path": None,
    "tts_cache_dir": None,
    "surface_backend": "playwright",
    "surface_settings": {},
    "encoder_executable": "ffmpeg",
    "quality": "standard",
    "encoder_settings": {},
    "tts_timeout": 120.0,
    "capture_timeout": 30.0,
    "encoder_timeout": 120.0,
    "assembly_timeout": 600.0,
    "static_scene_detection": True,
    "auto_fallback_duration": 3.0,
    "default_transition_duration": 0.5,
    "work_dir": None,
    "keep_segments": False,
}

_SCALAR_KEYS = tuple(
    key for key, value in _DEFAULT_CONFIG.items() if not isinstance(value, Mapping)
)


def _coerce_positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a positive integer, not a boolean")
    if isinstance(value, int):
        candidate = value
    elif isinstance(value, str) and value.strip():
        if not value.strip().isdigit():
            raise ValueError(f"{name} must be a positive integer")
        candidate = int(value.strip())
    else:
        raise ValueError(f"{name} must be a positive integer")
    if candidate <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return candidate


def _coerce_positive_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a positive number, not a boolean")
    try:
        candidate = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a positive number") from None
    if candidate <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return candidate


def _coerce_name(name: str, value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ValueError(f"{name} must be a non-empty string")


def _coerce_optional_string(name: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    raise ValueError(f"{name} must be a string")


def _coerce_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    raise ValueError(f"{name} must be a boolean value")


def _coerce_settings_mapping(name: str, value: Any) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{name} must be a mapping of settings")
    result: MutableMapping[str, Any] = {}
    for key, payload in value.items():
        if not isinstance(key, str) or not key.strip():
            raise ValueError(f"{name} keys must be non-empty strings")
        result[key.strip()] = payload
    return result


_QUALITY_PRESETS = ("draft", "standard", "high")


def _coerce_quality(name: str, value: Any) -> str:
    quality = _coerce_name(name, value).lower()
    if quality not in _QUALITY_PRESETS:
        raise ValueError(f"{name} must be one of {', '.join(_QUALITY_PRESETS)}")
    return quality


_COERCERS: Mapping[str, Callable[[str, Any], Any]] = {
    "surface_pool_size": _coerce_positive_int,
    "worker_threads": _coerce_positive_int,
    "max_active_jobs": _coerce_positive_int,
    "frame_queue_depth": _coerce_positive_int,
    "tts_backend": _coerce_name,
    "tts_executable_path": _coerce_optional_string,
    "tts_cache_dir": _coerce_optional_string,
    "surface_backend": _coerce_name,
    "surface_settings": _coerce_settings_mapping,
    "encoder_executable": _coerce_name,
    "quality": _coerce_quality,
    "encoder_settings": _coerce_settings_mapping,
    "tts_timeout": _coerce_positive_float,
    "capture_timeout": _coerce_positive_float,
    "encoder_timeout": _coerce_positive_float,
    "assembly_timeout": _coerce_positive_float,
    "static_scene_detection": _coerce_bool,
    "auto_fallback_duration": _coerce_positive_float,
    "default_transition_duration": _coerce_positive_float,
    "work_dir": _coerce_optional_string,
    "keep_segments": _coerce_bool,
}


def _normalise_payload(data: Mapping[str, Any] | None) -> MutableMapping[str, Any]:
    """Overlay known keys from ``data`` and ``SCENECAST_<KEY>`` variables on the defaults."""

    payload: MutableMapping[str, Any] = dict(_DEFAULT_CONFIG)
    payload.update({key: value for key, value in (data or {}).items() if key in payload})
    for key in _SCALAR_KEYS:
        override = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
        if override is not None and override.strip():
            payload[key] = override
    return payload


@dataclass(frozen=True, slots=True)
class RenderingConfig:
    """Validated render engine configuration values."""

    surface_pool_size: int
    worker_threads: int
    max_active_jobs: int
    frame_queue_depth: int
    tts_backend: str
    tts_executable_path: Optional[str]
    tts_cache_dir: Optional[str]
    surface_backend: str
    surface_settings: Mapping[str, Any]
    encoder_executable: str
    quality: str
    encoder_settings: Mapping[str, Any]
    tts_timeout: float
    capture_timeout: float
    encoder_timeout: float
    assembly_timeout: float
    static_scene_detection: bool
    auto_fallback_duration: float
    default_transition_duration: float
    work_dir: Optional[str]
    keep_segments: bool

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "RenderingConfig":
        normalised = _normalise_payload(payload)
        return cls(**{key: coerce(key, normalised[key]) for key, coerce in _COERCERS.items()})

    def to_dict(self) -> dict[str, Any]:
        payload = {key: getattr(self, key) for key in _COERCERS}
        payload["surface_settings"] = dict(self.surface_settings)
        payload["encoder_settings"] = dict(self.encoder_settings)
        return payload


def load_rendering_config(path: Optional[Path | str] = None) -> RenderingConfig:
    """Load and validate the rendering configuration from disk.

    Dotenv files are loaded first so ``SCENECAST_*`` overrides can live there.
    """

    load_environment()
    explicit = path or os.environ.get(CONFIG_PATH_ENV)
    config_path = Path(explicit) if explicit else _DEFAULT_RENDERING_CONFIG_PATH
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            raw_data = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        raw_data = {}
    if not isinstance(raw_data, Mapping):
        raise ValueError(f"{config_path} must contain a mapping at the top level")
    return RenderingConfig.from_mapping(raw_data)


@lru_cache(maxsize=1)
def get_rendering_config() -> RenderingConfig:
    """Return the cached rendering configuration."""

    return load_rendering_config()


__all__ = ["RenderingConfig", "get_rendering_config", "load_rendering_config"]
