"""Capture frames from a rendering surface and stream them into an encoder."""

from __future__ import annotations

import io
import queue
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from PIL import Image, UnidentifiedImageError

from scenecast import logging_manager as log_mgr
from scenecast.errors import (
    CaptureError,
    CaptureTimeoutError,
    EncodingError,
    EncodingTimeoutError,
    RenderCancelledError,
    RenderError,
)
from scenecast.project.models import OutputFormat
from scenecast.surfaces.base import RenderingSurface, SurfaceTimeoutError, references_frame_variables
from scenecast.timing.plan import TimingPlan
from scenecast.video.encoder import EncodedSegment, EncoderConfig, EncoderSession, StreamingEncoder

from .scheduler import schedule

logger = log_mgr.logger

DEFAULT_QUEUE_DEPTH = 8

FrameCallback = Callable[[int, int], None]


@dataclass(frozen=True, slots=True)
class SegmentRequest:
    """Everything needed to render one (scene, format) segment."""

    scene_index: int
    output_format: OutputFormat
    markup: str
    plan: TimingPlan
    fps: float
    output_path: Path


class _FrameWriter(threading.Thread):
    """Consumer side of the bounded frame queue feeding one encoder session."""

    _SENTINEL = object()

    def __init__(self, session: EncoderSession, depth: int, poll_interval: float) -> None:
        super().__init__(name="scenecast-frame-writer", daemon=True)
        self._session = session
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=depth)
        self._poll_interval = poll_interval
        self._error: Optional[BaseException] = None
        self._failed = threading.Event()
        self._discard = threading.Event()
        self.frames_written = 0

    def run(self) -> None:
        while True:
            item = self._queue.get()
            if item is self._SENTINEL:
                return
            if self._failed.is_set() or self._discard.is_set():
                continue
            try:
                self._session.write_frame(item)  # type: ignore[arg-type]
            except Exception as exc:
                self._error = exc
                self._failed.set()
            else:
                self.frames_written += 1

    def raise_if_failed(self) -> None:
        if not self._failed.is_set():
            return
        error = self._error
        if isinstance(error, RenderError):
            raise error
        raise EncodingError(f"encoder input failed: {error}") from error

    def _put(self, item: object, timeout: Optional[float]) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            self.raise_if_failed()
            try:
                self._queue.put(item, timeout=self._poll_interval)
                return
            except queue.Full:
                if deadline is not None and time.monotonic() >= deadline:
                    raise EncodingTimeoutError(
                        f"encoder did not accept frames within {timeout}s", timeout=timeout
                    ) from None

    def push(self, frame: bytes, timeout: Optional[float]) -> None:
        """Enqueue ``frame``, blocking while the queue is full."""

        self._put(frame, timeout)

    def close(self, timeout: Optional[float]) -> None:
        """Enqueue end-of-stream and wait until every frame reached the encoder."""

        self._put(self._SENTINEL, timeout)
        self.join(timeout)
        if self.is_alive():
            raise EncodingTimeoutError(f"encoder did not drain within {timeout}s", timeout=timeout)
        self.raise_if_failed()

    def discard(self) -> None:
        """Drop queued frames and stop after the write in progress completes."""

        self._discard.set()
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        try:
            self._queue.put_nowait(self._SENTINEL)
        except queue.Full:  # pragma: no cover - producer already stopped
            pass


class StreamingPipeline:
    """Drive one surface handle through a frame schedule into one encoder.

    Frames are captured in index order and handed to a writer thread through a
    queue of ``queue_depth`` entries; capture blocks when the queue is full.
    Any failure aborts the encoder so no partial segment survives.
    """

    def __init__(
        self,
        surface: RenderingSurface,
        encoder: StreamingEncoder,
        *,
        queue_depth: int = DEFAULT_QUEUE_DEPTH,
        capture_timeout: Optional[float] = None,
        encoder_timeout: Optional[float] = None,
        static_scene_detection: bool = True,
        poll_interval: float = 0.05,
    ) -> None:
        if queue_depth <= 0:
            raise ValueError("queue_depth must be greater than zero")
        self._surface = surface
        self._encoder = encoder
        self._queue_depth = queue_depth
        self._capture_timeout = capture_timeout
        self._encoder_timeout = encoder_timeout
        self._static_scene_detection = static_scene_detection
        self._poll_interval = poll_interval

    @property
    def queue_depth(self) -> int:
        return self._queue_depth

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(
        self,
        handle: Any,
        request: SegmentRequest,
        *,
        cancel_event: Optional[threading.Event] = None,
        on_frame: Optional[FrameCallback] = None,
        on_encoding: Optional[Callable[[], None]] = None,
    ) -> EncodedSegment:
        fmt = request.output_format
        frames = schedule(
            request.plan,
            request.fps,
            scene_index=request.scene_index,
            format_name=fmt.name,
        )
        total = len(frames)
        self._surface_call(
            "load",
            lambda: self._surface.load(
                handle,
                request.markup,
                width=fmt.width,
                height=fmt.height,
                timeout=self._capture_timeout,
            ),
        )
        static = self._static_scene_detection and not references_frame_variables(request.markup)

        config = EncoderConfig(
            output_path=request.output_path,
            width=fmt.width,
            height=fmt.height,
            fps=request.fps,
            duration_seconds=total / request.fps,
            audio=request.plan.voiceover,
        )
        session = self._encoder.start(config, timeout=self._encoder_timeout)
        writer = _FrameWriter(session, self._queue_depth, self._poll_interval)
        writer.start()

        completed = False
        try:
            reusable_frame: Optional[bytes] = None
            for task in frames:
                if cancel_event is not None and cancel_event.is_set():
                    raise RenderCancelledError(
                        "cancelled between frames",
                        scene_index=request.scene_index,
                        format_name=fmt.name,
                    )
                writer.raise_if_failed()
                if reusable_frame is not None:
                    frame = reusable_frame
                else:
                    variables = task.variables()
                    self._surface_call(
                        "set_variables",
                        lambda: self._surface.set_variables(
                            handle, variables, timeout=self._capture_timeout
                        ),
                    )
                    frame = self._surface_call(
                        "capture_frame",
                        lambda: self._surface.capture_frame(handle, timeout=self._capture_timeout),
                    )
                    if task.frame_index == 0:
                        _check_frame_geometry(frame, fmt)
                        if static:
                            reusable_frame = frame
                writer.push(frame, self._encoder_timeout)
                if on_frame is not None:
                    on_frame(task.frame_index + 1, total)

            if on_encoding is not None:
                on_encoding()
            writer.close(self._encoder_timeout)
            path = session.finish(timeout=self._encoder_timeout)
            completed = True
        finally:
            if not completed:
                writer.discard()
                session.abort()
                writer.join(self._poll_interval * 20)

        logger.debug(
            "Encoded scene segment",
            extra={
                "event": "render.pipeline.segment",
                "attributes": {
                    "scene_index": request.scene_index,
                    "format": fmt.name,
                    "frames": total,
                    "static": static,
                },
            },
        )
        return EncodedSegment(
            scene_index=request.scene_index,
            format_name=fmt.name,
            path=Path(path),
            duration_seconds=total / request.fps,
            frame_count=total,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _surface_call(self, operation: str, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except RenderError:
            raise
        except SurfaceTimeoutError as exc:
            raise CaptureTimeoutError(
                f"surface {operation} timed out: {exc}", timeout=self._capture_timeout
            ) from exc
        except Exception as exc:
            raise CaptureError(f"surface {operation} failed: {exc}") from exc


def _check_frame_geometry(frame: bytes, fmt: OutputFormat) -> None:
    try:
        with Image.open(io.BytesIO(frame)) as image:
            size = image.size
    except (UnidentifiedImageError, OSError) as exc:
        raise CaptureError("captured frame is not a decodable image") from exc
    if size != fmt.size:
        raise CaptureError(
            f"captured frame is {size[0]}x{size[1]}, expected {fmt.width}x{fmt.height}",
            format_name=fmt.name,
        )


__all__ = ["DEFAULT_QUEUE_DEPTH", "SegmentRequest", "StreamingPipeline"]
