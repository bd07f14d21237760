"""Frame scheduling, surface leasing and the capture-to-encode pipeline."""

from .pipeline import DEFAULT_QUEUE_DEPTH, SegmentRequest, StreamingPipeline
from .scheduler import FrameSchedule, FrameTask, frame_count, progress_fraction, schedule
from .surface_pool import SurfacePool

__all__ = [
    "DEFAULT_QUEUE_DEPTH",
    "FrameSchedule",
    "FrameTask",
    "SegmentRequest",
    "StreamingPipeline",
    "SurfacePool",
    "frame_count",
    "progress_fraction",
    "schedule",
]
