"""Encoder quality presets and opaque per-installation overrides."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, List, Mapping

QUALITY_PRESETS: Mapping[str, Mapping[str, Any]] = {
    "draft": {"crf": 28, "preset": "ultrafast"},
    "standard": {"crf": 23, "preset": "medium"},
    "high": {"crf": 18, "preset": "slow"},
}

DEFAULT_QUALITY = "standard"


@dataclass(frozen=True, slots=True)
class EncoderSettings:
    """Codec parameters shared by segment encoding and final assembly."""

    crf: int = 23
    preset: str = "medium"
    video_codec: str = "libx264"
    pixel_format: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"
    sample_rate: int = 48000

    @classmethod
    def resolve(
        cls,
        quality: str | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> "EncoderSettings":
        name = (quality or DEFAULT_QUALITY).lower()
        if name not in QUALITY_PRESETS:
            raise ValueError(f"Unknown quality preset '{quality}'")
        settings = replace(cls(), **QUALITY_PRESETS[name])
        if overrides:
            known = {key: value for key, value in overrides.items() if key in cls.__slots__}
            unknown = sorted(set(overrides) - set(known))
            if unknown:
                raise ValueError(f"Unknown encoder settings: {', '.join(unknown)}")
            if "crf" in known:
                known["crf"] = int(known["crf"])
            if "sample_rate" in known:
                known["sample_rate"] = int(known["sample_rate"])
            settings = replace(settings, **known)
        return settings

    def video_args(self, fps: float) -> List[str]:
        return [
            "-c:v",
            self.video_codec,
            "-preset",
            self.preset,
            "-crf",
            str(self.crf),
            "-pix_fmt",
            self.pixel_format,
            "-r",
            format_rate(fps),
        ]

    def audio_args(self) -> List[str]:
        return [
            "-c:a",
            self.audio_codec,
            "-b:a",
            self.audio_bitrate,
            "-ar",
            str(self.sample_rate),
        ]


def format_rate(fps: float) -> str:
    """Render a frame rate without a trailing ``.0`` for integral values."""

    return str(int(fps)) if float(fps).is_integer() else f"{fps:.6g}"


__all__ = ["DEFAULT_QUALITY", "EncoderSettings", "QUALITY_PRESETS", "format_rate"]
