"""Streaming segment encoder: ordered PNG frames in, one encoded segment out."""

from __future__ import annotations

import os
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Callable, List, Optional, Protocol, runtime_checkable

from scenecast import logging_manager as log_mgr
from scenecast.errors import EncodingError, EncodingTimeoutError
from scenecast.timing.plan import VoiceoverTrack

from .presets import EncoderSettings, format_rate

logger = log_mgr.logger

READINESS_PROBE_SECONDS = 0.05


@dataclass(frozen=True, slots=True)
class EncoderConfig:
    """Per sub-job encoder configuration, fixed before the first frame."""

    output_path: Path
    width: int
    height: int
    fps: float
    duration_seconds: float
    audio: Optional[VoiceoverTrack] = None


@dataclass(frozen=True, slots=True)
class EncodedSegment:
    """Encoded output of one (scene, format) sub-job."""

    scene_index: int
    format_name: str
    path: Path
    duration_seconds: float
    frame_count: int


@runtime_checkable
class EncoderSession(Protocol):
    """Push interface for one running encode."""

    def write_frame(self, data: bytes) -> None:
        """Append one frame; frames must arrive in frame-index order."""

    def finish(self, *, timeout: Optional[float] = None) -> Path:
        """Signal end-of-stream and wait for the encoded file."""

    def abort(self) -> None:
        """Stop the encode and discard any partial output."""


@runtime_checkable
class StreamingEncoder(Protocol):
    """Factory for encoder sessions."""

    def start(self, config: EncoderConfig, *, timeout: Optional[float] = None) -> EncoderSession:
        """Configure and launch an encode for ``config``."""


def _read_stderr(handle: IO[bytes]) -> str:
    try:
        handle.seek(0)
        payload = handle.read()
    except (OSError, ValueError):
        return ""
    lines = payload.decode("utf-8", errors="replace").strip().splitlines()
    return "\n".join(lines[-20:])


class FFmpegEncoderSession:
    """Feed PNG frames to an ``ffmpeg`` process through its stdin pipe."""

    def __init__(
        self,
        process: subprocess.Popen,
        config: EncoderConfig,
        stderr_file: IO[bytes],
    ) -> None:
        self._process = process
        self._config = config
        self._stderr_file = stderr_file
        self._frames_written = 0
        self._closed = False

    @property
    def frames_written(self) -> int:
        return self._frames_written

    @property
    def config(self) -> EncoderConfig:
        return self._config

    def _failure(self, reason: str) -> EncodingError:
        detail = _read_stderr(self._stderr_file)
        message = f"{reason}: {detail}" if detail else reason
        return EncodingError(message)

    def ensure_ready(self, timeout: Optional[float]) -> None:
        """Fail if the encoder exits during start-up instead of accepting input."""

        probe = READINESS_PROBE_SECONDS if timeout is None else min(READINESS_PROBE_SECONDS, timeout)
        try:
            returncode = self._process.wait(timeout=probe)
        except subprocess.TimeoutExpired:
            return
        error = self._failure(f"encoder exited during start-up with code {returncode}")
        self._cleanup_files()
        raise error

    def write_frame(self, data: bytes) -> None:
        if self._closed:
            raise EncodingError("encoder input already closed")
        if self._process.poll() is not None:
            raise self._failure(f"encoder exited early with code {self._process.returncode}")
        stdin = self._process.stdin
        if stdin is None:
            raise EncodingError("encoder stdin unavailable")
        try:
            stdin.write(data)
        except (BrokenPipeError, OSError, ValueError) as exc:
            raise self._failure(f"encoder rejected frame {self._frames_written}") from exc
        self._frames_written += 1

    def finish(self, *, timeout: Optional[float] = None) -> Path:
        self._close_stdin()
        try:
            returncode = self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            self.abort()
            raise EncodingTimeoutError(
                f"encoder did not finish within {timeout}s", timeout=timeout
            ) from exc
        if returncode != 0:
            error = self._failure(f"encoder failed with code {returncode}")
            self._cleanup_files()
            raise error
        self._stderr_file.close()
        return self._config.output_path

    def abort(self) -> None:
        self._close_stdin()
        if self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()
        self._cleanup_files()

    def _close_stdin(self) -> None:
        if self._closed:
            return
        self._closed = True
        stdin = self._process.stdin
        if stdin is None:
            return
        try:
            stdin.close()
        except (BrokenPipeError, OSError):
            pass

    def _cleanup_files(self) -> None:
        try:
            os.remove(self._config.output_path)
        except FileNotFoundError:
            pass
        except OSError as exc:  # pragma: no cover - best effort cleanup
            logger.debug(
                "Failed to remove partial segment %s: %s",
                self._config.output_path,
                exc,
                extra={"event": "video.encoder.cleanup"},
            )
        if not self._stderr_file.closed:
            self._stderr_file.close()


class FFmpegStreamingEncoder:
    """Launch one ``ffmpeg`` process per sub-job reading PNG frames from stdin."""

    def __init__(
        self,
        *,
        executable: str = "ffmpeg",
        loglevel: str = "error",
        settings: EncoderSettings | None = None,
        popen_factory: Callable[..., Any] = subprocess.Popen,
    ) -> None:
        self._executable = executable
        self._loglevel = loglevel
        self._settings = settings or EncoderSettings()
        self._popen = popen_factory

    @property
    def settings(self) -> EncoderSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def build_command(self, config: EncoderConfig) -> List[str]:
        settings = self._settings
        duration = f"{config.duration_seconds:.3f}"
        command = [
            self._executable,
            "-hide_banner",
            "-loglevel",
            self._loglevel,
            "-y",
            "-f",
            "image2pipe",
            "-vcodec",
            "png",
            "-framerate",
            format_rate(config.fps),
            "-s",
            f"{config.width}x{config.height}",
            "-i",
            "-",
        ]
        if config.audio is not None:
            delay_ms = int(round(config.audio.offset_seconds * 1000))
            command.extend(["-i", str(config.audio.path)])
            command.extend(
                [
                    "-filter_complex",
                    f"[1:a]adelay={delay_ms}:all=1,apad,atrim=0:{duration}[aout]",
                    "-map",
                    "0:v:0",
                    "-map",
                    "[aout]",
                ]
            )
        else:
            command.extend(
                [
                    "-f",
                    "lavfi",
                    "-t",
                    duration,
                    "-i",
                    f"anullsrc=r={settings.sample_rate}:cl=stereo",
                    "-map",
                    "0:v:0",
                    "-map",
                    "1:a:0",
                ]
            )
        command.extend(settings.video_args(config.fps))
        command.extend(settings.audio_args())
        command.extend(["-shortest", "-movflags", "+faststart", str(config.output_path)])
        return command

    def start(self, config: EncoderConfig, *, timeout: Optional[float] = None) -> FFmpegEncoderSession:
        Path(config.output_path).parent.mkdir(parents=True, exist_ok=True)
        command = self.build_command(config)
        logger.debug(
            "Starting streaming encoder",
            extra={"event": "video.encoder.start", "attributes": {"output": str(config.output_path)}},
        )
        stderr_file = tempfile.TemporaryFile()
        try:
            process = self._popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=stderr_file,
            )
        except OSError as exc:
            stderr_file.close()
            raise EncodingError(f"encoder could not be started: {exc}") from exc
        session = FFmpegEncoderSession(process, config, stderr_file)
        session.ensure_ready(timeout)
        return session


__all__ = [
    "EncodedSegment",
    "EncoderConfig",
    "EncoderSession",
    "FFmpegEncoderSession",
    "FFmpegStreamingEncoder",
    "StreamingEncoder",
]
