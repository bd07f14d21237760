"""Segment encoding, transitions and final output assembly."""

from __future__ import annotations

from typing import Any

from .assembly import AssemblyScene, FFmpegAssembler, Output
from .encoder import (
    EncodedSegment,
    EncoderConfig,
    EncoderSession,
    FFmpegStreamingEncoder,
    StreamingEncoder,
)
from .presets import EncoderSettings
from .transitions import Transition, TransitionType, parse_transition, resolve_transitions


def _encoder_settings(config: Any) -> EncoderSettings:
    return EncoderSettings.resolve(
        getattr(config, "quality", None), getattr(config, "encoder_settings", None)
    )


def create_streaming_encoder(config: Any) -> StreamingEncoder:
    """Instantiate the segment encoder described by a ``RenderingConfig``."""

    return FFmpegStreamingEncoder(
        executable=getattr(config, "encoder_executable", "ffmpeg"),
        settings=_encoder_settings(config),
    )


def create_assembler(config: Any) -> FFmpegAssembler:
    """Instantiate the output assembler described by a ``RenderingConfig``."""

    return FFmpegAssembler(
        executable=getattr(config, "encoder_executable", "ffmpeg"),
        settings=_encoder_settings(config),
        timeout=getattr(config, "assembly_timeout", None),
    )


__all__ = [
    "AssemblyScene",
    "EncodedSegment",
    "EncoderConfig",
    "EncoderSession",
    "EncoderSettings",
    "FFmpegAssembler",
    "FFmpegStreamingEncoder",
    "Output",
    "StreamingEncoder",
    "Transition",
    "TransitionType",
    "create_assembler",
    "create_streaming_encoder",
    "parse_transition",
    "resolve_transitions",
]
