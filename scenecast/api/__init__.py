"""Serializable payloads for the protocol layer that fronts the job controller."""

from .schemas import (
    OutputErrorPayload,
    OutputPayload,
    ProgressEventPayload,
    ProgressSnapshotPayload,
    RenderJobStatusResponse,
    SubJobStatusPayload,
    SubmitRenderRequest,
    SubmitRenderResponse,
)

__all__ = [
    "OutputErrorPayload",
    "OutputPayload",
    "ProgressEventPayload",
    "ProgressSnapshotPayload",
    "RenderJobStatusResponse",
    "SubJobStatusPayload",
    "SubmitRenderRequest",
    "SubmitRenderResponse",
]
