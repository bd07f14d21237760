"""Merge per-scene segments into one output file per format."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError, CouldntEncodeError

from scenecast import logging_manager as log_mgr
from scenecast.audio.mixer import AudioLoader, TimelineEntry, mix_timeline
from scenecast.errors import AssemblyError
from scenecast.media.command_runner import run_command
from scenecast.media.exceptions import CommandExecutionError
from scenecast.project.models import BackgroundAudio
from scenecast.timing.plan import TimingPlan

from .encoder import EncodedSegment
from .presets import EncoderSettings
from .transitions import Transition, overlap_seconds, scene_offsets, timeline_duration

logger = log_mgr.logger


@dataclass(frozen=True, slots=True)
class AssemblyScene:
    """One scene's contribution to an output, in declared scene order."""

    scene_index: int
    plan: TimingPlan
    segment: Optional[EncodedSegment]
    background: Optional[BackgroundAudio] = None


@dataclass(frozen=True, slots=True)
class Output:
    """Final artifact for one format."""

    format_name: str
    path: Path
    duration_seconds: float
    scene_offsets: Tuple[float, ...]


def build_video_filter(
    durations: Sequence[float], transitions: Sequence[Optional[Transition]]
) -> str:
    """Chain segment video streams with ``xfade`` or ``concat`` per boundary."""

    if len(durations) < 2:
        raise ValueError("a filter graph needs at least two segments")
    parts: List[str] = []
    current = "[0:v]"
    length = durations[0]
    last = len(durations) - 1
    for index in range(1, len(durations)):
        label = "[vout]" if index == last else f"[v{index}]"
        transition = transitions[index - 1]
        if transition is None:
            parts.append(f"{current}[{index}:v]concat=n=2:v=1:a=0{label}")
            length += durations[index]
        else:
            offset = length - transition.duration
            parts.append(
                f"{current}[{index}:v]xfade=transition={transition.kind.value}"
                f":duration={transition.duration:.3f}:offset={offset:.3f}{label}"
            )
            length += durations[index] - transition.duration
        current = label
    return ";".join(parts)


class FFmpegAssembler:
    """Concatenate segments with transitions and mux a pydub-mixed audio track."""

    def __init__(
        self,
        *,
        executable: str = "ffmpeg",
        loglevel: str = "error",
        settings: EncoderSettings | None = None,
        timeout: Optional[float] = None,
        command_runner: Callable[..., object] = run_command,
        audio_loader: AudioLoader = AudioSegment.from_file,
    ) -> None:
        self._executable = executable
        self._loglevel = loglevel
        self._settings = settings or EncoderSettings()
        self._timeout = timeout
        self._run_external = command_runner
        self._audio_loader = audio_loader

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def assemble(
        self,
        format_name: str,
        scenes: Sequence[AssemblyScene],
        transitions: Sequence[Optional[Transition]],
        output_path: Path | str,
        *,
        fps: float,
    ) -> Output:
        ordered = sorted(scenes, key=lambda item: item.scene_index)
        if not ordered:
            raise AssemblyError("no scenes to assemble", format_name=format_name)
        missing = [item.scene_index for item in ordered if item.segment is None]
        if missing:
            raise AssemblyError(
                f"missing segments for scenes {missing}", format_name=format_name
            )
        absent = [item.scene_index for item in ordered if not Path(item.segment.path).is_file()]
        if absent:
            raise AssemblyError(
                f"segment files not found for scenes {absent}", format_name=format_name
            )
        if len(transitions) != len(ordered) - 1:
            raise AssemblyError(
                "expected one transition per scene boundary", format_name=format_name
            )

        realized = [item.segment.duration_seconds for item in ordered]
        overlaps = overlap_seconds(transitions)
        for index, overlap in enumerate(overlaps):
            if overlap and overlap >= min(realized[index], realized[index + 1]):
                raise AssemblyError(
                    f"transition of {overlap}s between scenes {ordered[index].scene_index} and "
                    f"{ordered[index + 1].scene_index} is not shorter than both scenes",
                    format_name=format_name,
                )

        planned = [item.plan.duration_seconds for item in ordered]
        offsets = scene_offsets(planned, overlaps)
        total = timeline_duration(planned, overlaps)

        destination = Path(output_path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        mix_path = destination.with_name(f"{destination.stem}.mix.wav")

        logger.info(
            "Assembling %s scene(s) for format %s",
            len(ordered),
            format_name,
            extra={
                "event": "render.assembly.start",
                "attributes": {"format": format_name, "output": str(destination)},
            },
        )
        try:
            self._export_mix(ordered, offsets, total, mix_path)
            command = self._build_command(ordered, transitions, mix_path, destination, total, fps)
            self._run_command(command)
        except CommandExecutionError as exc:
            raise AssemblyError(
                f"ffmpeg assembly failed: {exc.stderr_text or exc}", format_name=format_name
            ) from exc
        except (OSError, ValueError, CouldntDecodeError, CouldntEncodeError) as exc:
            raise AssemblyError(f"audio mix failed: {exc}", format_name=format_name) from exc
        finally:
            self._safe_remove(mix_path)

        logger.info(
            "Output written to %s",
            destination,
            extra={
                "event": "render.assembly.complete",
                "attributes": {"format": format_name, "duration_seconds": total},
            },
        )
        return Output(
            format_name=format_name,
            path=destination,
            duration_seconds=total,
            scene_offsets=tuple(offsets),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _export_mix(
        self,
        ordered: Sequence[AssemblyScene],
        offsets: Sequence[float],
        total: float,
        mix_path: Path,
    ) -> None:
        entries = [
            TimelineEntry(
                start_seconds=offset,
                duration_seconds=item.plan.duration_seconds,
                voiceover=item.plan.voiceover,
                background=item.background,
            )
            for item, offset in zip(ordered, offsets)
        ]
        mix = mix_timeline(
            entries,
            total,
            sample_rate=self._settings.sample_rate,
            loader=self._audio_loader,
        )
        mix.export(mix_path, format="wav")

    def _build_command(
        self,
        ordered: Sequence[AssemblyScene],
        transitions: Sequence[Optional[Transition]],
        mix_path: Path,
        destination: Path,
        total: float,
        fps: float,
    ) -> List[str]:
        command = [self._executable, "-hide_banner", "-loglevel", self._loglevel, "-y"]
        for item in ordered:
            command.extend(["-i", str(item.segment.path)])
        command.extend(["-i", str(mix_path)])
        audio_input = len(ordered)

        if len(ordered) == 1:
            command.extend(["-map", "0:v:0", "-map", f"{audio_input}:a:0", "-c:v", "copy"])
        else:
            durations = [item.segment.duration_seconds for item in ordered]
            command.extend(
                [
                    "-filter_complex",
                    build_video_filter(durations, transitions),
                    "-map",
                    "[vout]",
                    "-map",
                    f"{audio_input}:a:0",
                ]
            )
            command.extend(self._settings.video_args(fps))
        command.extend(self._settings.audio_args())
        command.extend(["-t", f"{total:.3f}", "-movflags", "+faststart", str(destination)])
        return command

    def _run_command(self, command: Sequence[str]) -> None:
        logger.debug(
            "Executing FFmpeg assembly command",
            extra={"event": "render.assembly.ffmpeg", "attributes": {"argc": len(command)}},
        )
        self._run_external(command, timeout=self._timeout)

    @staticmethod
    def _safe_remove(path: Path) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as exc:  # pragma: no cover - best effort cleanup
            logger.debug(
                "Failed to remove temporary file %s: %s",
                path,
                exc,
                extra={"event": "render.assembly.cleanup"},
            )


__all__ = ["AssemblyScene", "FFmpegAssembler", "Output", "build_video_filter"]
