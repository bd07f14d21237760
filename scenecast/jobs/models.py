"""In-memory records for render jobs and their immutable status snapshots."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Tuple

from scenecast.errors import ErrorKind
from scenecast.project.models import Project
from scenecast.video.assembly import Output
from scenecast.video.encoder import EncodedSegment

from .state import JobState, SubJobState, is_sub_job_terminal

SubJobKey = Tuple[int, str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class SubJob:
    """Mutable state of one (scene, format) sub-job, owned by the controller."""

    scene_index: int
    format_name: str
    state: SubJobState = SubJobState.PENDING
    frames_done: int = 0
    total_frames: int = 0
    segment: Optional[EncodedSegment] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    error_stage: Optional[str] = None

    @property
    def key(self) -> SubJobKey:
        return self.scene_index, self.format_name

    @property
    def label(self) -> str:
        return f"{self.scene_index}:{self.format_name}"

    def fraction(self) -> float:
        """Settled sub-jobs count as complete; active ones by captured frames."""

        if is_sub_job_terminal(self.state):
            return 1.0
        if self.total_frames <= 0:
            return 0.0
        return min(1.0, self.frames_done / self.total_frames)


@dataclass(frozen=True, slots=True)
class SubJobSnapshot:
    scene_index: int
    format_name: str
    state: SubJobState
    frames_done: int
    total_frames: int
    progress: float
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    error_stage: Optional[str] = None
    segment_path: Optional[Path] = None


@dataclass(frozen=True, slots=True)
class OutputFailure:
    """Assembly outcome for a format that produced no output."""

    format_name: str
    kind: ErrorKind
    message: str


@dataclass(frozen=True, slots=True)
class RenderJobSnapshot:
    """Point-in-time view of a job returned by ``query_status``."""

    job_id: str
    state: JobState
    progress: float
    scene_indices: Tuple[int, ...]
    format_names: Tuple[str, ...]
    sub_jobs: Tuple[SubJobSnapshot, ...]
    outputs: Tuple[Output, ...]
    output_errors: Tuple[OutputFailure, ...]
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def failed_sub_jobs(self) -> Tuple[SubJobKey, ...]:
        """(scene, format) pairs a caller can resubmit."""

        return tuple(
            (sub.scene_index, sub.format_name)
            for sub in self.sub_jobs
            if sub.state is SubJobState.FAILED
        )

    def sub_job(self, scene_index: int, format_name: str) -> SubJobSnapshot:
        for sub in self.sub_jobs:
            if sub.scene_index == scene_index and sub.format_name == format_name:
                return sub
        raise KeyError((scene_index, format_name))


@dataclass(slots=True)
class RenderJob:
    """Controller-owned record of one render request."""

    job_id: str
    project: Project
    scene_indices: Tuple[int, ...]
    format_names: Tuple[str, ...]
    work_dir: Path
    sub_jobs: Dict[SubJobKey, SubJob] = field(default_factory=dict)
    state: JobState = JobState.QUEUED
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    done_event: threading.Event = field(default_factory=threading.Event)
    outputs: Dict[str, Output] = field(default_factory=dict)
    output_errors: Dict[str, OutputFailure] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        job_id: str,
        project: Project,
        scene_indices: Tuple[int, ...],
        format_names: Tuple[str, ...],
        work_dir: Path,
    ) -> "RenderJob":
        job = cls(
            job_id=job_id,
            project=project,
            scene_indices=scene_indices,
            format_names=format_names,
            work_dir=work_dir,
        )
        for scene_index in scene_indices:
            for format_name in format_names:
                job.sub_jobs[(scene_index, format_name)] = SubJob(scene_index, format_name)
        return job

    def sub_jobs_for_format(self, format_name: str) -> Tuple[SubJob, ...]:
        return tuple(
            self.sub_jobs[(scene_index, format_name)] for scene_index in self.scene_indices
        )

    def settled_count(self) -> int:
        return sum(1 for sub in self.sub_jobs.values() if is_sub_job_terminal(sub.state))

    def progress(self) -> float:
        if not self.sub_jobs:
            return 1.0
        return sum(sub.fraction() for sub in self.sub_jobs.values()) / len(self.sub_jobs)

    def snapshot(self) -> RenderJobSnapshot:
        return RenderJobSnapshot(
            job_id=self.job_id,
            state=self.state,
            progress=self.progress(),
            scene_indices=self.scene_indices,
            format_names=self.format_names,
            sub_jobs=tuple(
                SubJobSnapshot(
                    scene_index=sub.scene_index,
                    format_name=sub.format_name,
                    state=sub.state,
                    frames_done=sub.frames_done,
                    total_frames=sub.total_frames,
                    progress=sub.fraction(),
                    error_kind=sub.error_kind,
                    error_message=sub.error_message,
                    error_stage=sub.error_stage,
                    segment_path=sub.segment.path if sub.segment is not None else None,
                )
                for sub in self.sub_jobs.values()
            ),
            outputs=tuple(self.outputs[name] for name in self.format_names if name in self.outputs),
            output_errors=tuple(
                self.output_errors[name] for name in self.format_names if name in self.output_errors
            ),
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )


__all__ = [
    "OutputFailure",
    "RenderJob",
    "RenderJobSnapshot",
    "SubJob",
    "SubJobKey",
    "SubJobSnapshot",
]
