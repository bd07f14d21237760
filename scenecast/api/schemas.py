"""Schemas for render submission, job status and progress payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from scenecast.jobs.controller import RenderJobController
from scenecast.jobs.models import OutputFailure, RenderJobSnapshot, SubJobSnapshot
from scenecast.jobs.state import JobState, SubJobState
from scenecast.progress_tracker import ProgressEvent, ProgressSnapshot
from scenecast.project.models import Project
from scenecast.video.assembly import Output


class SubmitRenderRequest(BaseModel):
    """Scene and format subset requested for an already-parsed project."""

    scene_indices: Optional[List[int]] = None
    formats: Optional[List[str]] = None

    @field_validator("scene_indices")
    @classmethod
    def _validate_scene_indices(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is None:
            return value
        if any(index < 0 for index in value):
            raise ValueError("Scene indices must be non-negative")
        return value

    @field_validator("formats")
    @classmethod
    def _validate_formats(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        trimmed = [name.strip() for name in value]
        if any(not name for name in trimmed):
            raise ValueError("Format names cannot be empty")
        return trimmed

    def submit(self, controller: RenderJobController, project: Project) -> "SubmitRenderResponse":
        job_id = controller.submit(project, self.scene_indices, self.formats)
        return SubmitRenderResponse(job_id=job_id)


class SubmitRenderResponse(BaseModel):
    job_id: str


class SubJobStatusPayload(BaseModel):
    """Serializable payload for one (scene, format) sub-job."""

    scene_index: int
    format: str
    state: SubJobState
    frames_done: int
    total_frames: int
    progress: float
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    error_stage: Optional[str] = None
    segment_path: Optional[str] = None

    @classmethod
    def from_snapshot(cls, snapshot: SubJobSnapshot) -> "SubJobStatusPayload":
        return cls(
            scene_index=snapshot.scene_index,
            format=snapshot.format_name,
            state=snapshot.state,
            frames_done=snapshot.frames_done,
            total_frames=snapshot.total_frames,
            progress=snapshot.progress,
            error_kind=snapshot.error_kind.value if snapshot.error_kind else None,
            error_message=snapshot.error_message,
            error_stage=snapshot.error_stage,
            segment_path=str(snapshot.segment_path) if snapshot.segment_path else None,
        )


class OutputPayload(BaseModel):
    format: str
    path: str
    duration_seconds: float
    scene_offsets: List[float] = Field(default_factory=list)

    @classmethod
    def from_output(cls, output: Output) -> "OutputPayload":
        return cls(
            format=output.format_name,
            path=str(output.path),
            duration_seconds=output.duration_seconds,
            scene_offsets=list(output.scene_offsets),
        )


class OutputErrorPayload(BaseModel):
    format: str
    kind: str
    message: str

    @classmethod
    def from_failure(cls, failure: OutputFailure) -> "OutputErrorPayload":
        return cls(format=failure.format_name, kind=failure.kind.value, message=failure.message)


class RenderJobStatusResponse(BaseModel):
    """Response payload returned by status queries."""

    job_id: str
    state: JobState
    progress: float
    scene_indices: List[int]
    formats: List[str]
    sub_jobs: List[SubJobStatusPayload]
    failed_sub_jobs: List[SubJobStatusPayload] = Field(default_factory=list)
    outputs: List[OutputPayload] = Field(default_factory=list)
    output_errors: List[OutputErrorPayload] = Field(default_factory=list)
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, snapshot: RenderJobSnapshot) -> "RenderJobStatusResponse":
        sub_jobs = [SubJobStatusPayload.from_snapshot(sub) for sub in snapshot.sub_jobs]
        return cls(
            job_id=snapshot.job_id,
            state=snapshot.state,
            progress=snapshot.progress,
            scene_indices=list(snapshot.scene_indices),
            formats=list(snapshot.format_names),
            sub_jobs=sub_jobs,
            failed_sub_jobs=[sub for sub in sub_jobs if sub.state is SubJobState.FAILED],
            outputs=[OutputPayload.from_output(output) for output in snapshot.outputs],
            output_errors=[
                OutputErrorPayload.from_failure(failure) for failure in snapshot.output_errors
            ],
            created_at=snapshot.created_at,
            started_at=snapshot.started_at,
            completed_at=snapshot.completed_at,
        )


class ProgressSnapshotPayload(BaseModel):
    """Serializable payload for :class:`ProgressSnapshot`."""

    completed: int
    total: int
    fraction: float
    elapsed: float

    @classmethod
    def from_snapshot(cls, snapshot: ProgressSnapshot) -> "ProgressSnapshotPayload":
        return cls(
            completed=snapshot.completed,
            total=snapshot.total,
            fraction=snapshot.fraction,
            elapsed=snapshot.elapsed,
        )


class ProgressEventPayload(BaseModel):
    """Serializable payload for :class:`ProgressEvent`."""

    event_type: str
    job_id: str
    timestamp: float
    metadata: Dict[str, Any]
    snapshot: ProgressSnapshotPayload
    error: Optional[str] = None

    @classmethod
    def from_event(cls, event: ProgressEvent) -> "ProgressEventPayload":
        error_message = None
        if event.error is not None:
            error_message = str(event.error)
        return cls(
            event_type=event.event_type,
            job_id=event.job_id,
            timestamp=event.timestamp,
            metadata=dict(event.metadata),
            snapshot=ProgressSnapshotPayload.from_snapshot(event.snapshot),
            error=error_message,
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
