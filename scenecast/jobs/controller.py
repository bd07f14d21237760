"""Fan render jobs out into (scene, format) sub-jobs and track them to completion."""

from __future__ import annotations

import asyncio
import shutil
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from scenecast import logging_manager as log_mgr
from scenecast.audio.backends import get_tts_backend
from scenecast.audio.backends.base import BaseTTSBackend
from scenecast.config import RenderingConfig, get_rendering_config
from scenecast.errors import (
    CaptureError,
    ErrorKind,
    RenderCancelledError,
    RenderError,
    UnknownJobError,
    error_stage,
)
from scenecast.progress_tracker import (
    ProgressEventBus,
    ProgressEventStream,
    ProgressObserver,
    ProgressSnapshot,
)
from scenecast.project.models import OutputFormat, Project, Scene
from scenecast.project.validation import validate_project, validate_selection
from scenecast.render.pipeline import SegmentRequest, StreamingPipeline
from scenecast.render.scheduler import frame_count
from scenecast.render.surface_pool import SurfacePool
from scenecast.surfaces import create_rendering_surface
from scenecast.surfaces.base import RenderingSurface
from scenecast.timing.plan import TimingPlan
from scenecast.timing.resolver import TimingResolver
from scenecast.video import create_assembler, create_streaming_encoder
from scenecast.video.assembly import AssemblyScene, FFmpegAssembler
from scenecast.video.encoder import EncodedSegment, StreamingEncoder
from scenecast.video.transitions import resolve_transitions

from .models import OutputFailure, RenderJob, RenderJobSnapshot, SubJob, utcnow
from .state import (
    JobState,
    SubJobState,
    aggregate_job_state,
    ensure_job_transition,
    ensure_sub_job_transition,
    is_job_terminal,
)

logger = log_mgr.logger

MarkupBuilder = Callable[[Scene, Mapping[str, Any], OutputFormat], str]


@dataclass(slots=True)
class _JobRun:
    """Per-job working state that never leaves the controller."""

    resolver: TimingResolver
    timings: Dict[int, "Future[TimingPlan]"] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)


class RenderJobController:
    """Accept render requests and execute them under a bounded surface pool.

    Every job expands into one sub-job per selected (scene, format) pair. Sub-jobs
    run on ``worker_threads`` threads, but only ``surface_pool_size`` of them may
    hold a rendering surface at once. Narration for a scene is synthesized once
    per job and shared by all of that scene's formats. When every sub-job has
    settled, each format whose sub-jobs all finished is assembled into its output
    file, scenes always in declared order.

    Cancellation is cooperative. In-flight sub-jobs stop between frames and
    discard their partial segment; finished segments are kept until
    :meth:`clear`; no output is assembled for a cancelled job.
    """

    def __init__(
        self,
        *,
        surface: RenderingSurface,
        encoder: StreamingEncoder,
        tts_backend: BaseTTSBackend,
        markup_builder: MarkupBuilder,
        assembler: Optional[FFmpegAssembler] = None,
        config: Optional[RenderingConfig] = None,
        event_bus: Optional[ProgressEventBus] = None,
    ) -> None:
        self._config = config if config is not None else get_rendering_config()
        self._tts_backend = tts_backend
        self._markup_builder = markup_builder
        self._assembler = assembler if assembler is not None else create_assembler(self._config)
        self._pool = SurfacePool(surface, self._config.surface_pool_size)
        self._pipeline = StreamingPipeline(
            surface,
            encoder,
            queue_depth=self._config.frame_queue_depth,
            capture_timeout=self._config.capture_timeout,
            encoder_timeout=self._config.encoder_timeout,
            static_scene_detection=self._config.static_scene_detection,
        )
        self._bus = event_bus or ProgressEventBus()
        self._lock = threading.RLock()
        self._jobs: Dict[str, RenderJob] = {}
        self._runs: Dict[str, _JobRun] = {}
        self._job_executor = ThreadPoolExecutor(
            max_workers=self._config.max_active_jobs, thread_name_prefix="scenecast-job"
        )
        self._subjob_executor = ThreadPoolExecutor(
            max_workers=self._config.worker_threads, thread_name_prefix="scenecast-subjob"
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[RenderingConfig] = None,
        *,
        markup_builder: MarkupBuilder,
    ) -> "RenderJobController":
        """Wire the configured surface, encoder, speech and assembly bindings."""

        resolved = config if config is not None else get_rendering_config()
        return cls(
            surface=create_rendering_surface(resolved.surface_backend, resolved.surface_settings),
            encoder=create_streaming_encoder(resolved),
            tts_backend=get_tts_backend(resolved),
            markup_builder=markup_builder,
            assembler=create_assembler(resolved),
            config=resolved,
        )

    @property
    def config(self) -> RenderingConfig:
        return self._config

    @property
    def pool(self) -> SurfacePool:
        return self._pool

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def submit(
        self,
        project: Project,
        scene_indices: Optional[Sequence[int]] = None,
        formats: Optional[Sequence[str]] = None,
    ) -> str:
        """Validate the request and queue it; returns the new job identifier.

        A malformed project or selection raises :class:`ValidationError`
        before any job is created.
        """

        validate_project(project)
        scenes, format_names = validate_selection(project, scene_indices, formats)

        job_id = str(uuid4())
        work_dir = self._create_work_dir(job_id)
        job = RenderJob.create(job_id, project, scenes, format_names, work_dir)
        run = _JobRun(
            resolver=TimingResolver(
                self._tts_backend,
                audio_dir=work_dir / "audio",
                tts_timeout=self._config.tts_timeout,
                fallback_duration=self._config.auto_fallback_duration,
                estimate_captions=project.captions,
            )
        )

        with self._lock:
            self._jobs[job_id] = job
            self._runs[job_id] = run
            snapshot = self._progress_snapshot(job)

        with log_mgr.log_context(job_id=job_id):
            logger.info(
                "Render job submitted",
                extra={
                    "event": "render.job.submitted",
                    "status": JobState.QUEUED.value,
                    "attributes": {
                        "project": project.name,
                        "scenes": list(scenes),
                        "formats": list(format_names),
                        "sub_jobs": len(job.sub_jobs),
                    },
                },
            )
        self._bus.emit("job.queued", job_id=job_id, snapshot=snapshot)
        self._job_executor.submit(self._execute, job_id)
        return job_id

    def query_status(self, job_id: str) -> RenderJobSnapshot:
        with self._lock:
            return self._get(job_id).snapshot()

    def list_jobs(self) -> Tuple[RenderJobSnapshot, ...]:
        with self._lock:
            return tuple(job.snapshot() for job in self._jobs.values())

    def cancel(self, job_id: str) -> RenderJobSnapshot:
        """Request cancellation; a no-op for jobs that already finished."""

        with self._lock:
            job = self._get(job_id)
            if is_job_terminal(job.state):
                return job.snapshot()
            job.cancel_event.set()
            settled_now = job.state is JobState.QUEUED
            if settled_now:
                for sub in job.sub_jobs.values():
                    ensure_sub_job_transition(sub.label, sub.state, SubJobState.CANCELLED)
                    sub.state = SubJobState.CANCELLED
                ensure_job_transition(job_id, job.state, JobState.CANCELLED)
                job.state = JobState.CANCELLED
                job.completed_at = utcnow()
            snapshot = self._progress_snapshot(job)
            status = job.snapshot()

        self._pool.wake()
        with log_mgr.log_context(job_id=job_id):
            logger.info(
                "Render job cancellation requested",
                extra={"event": "render.job.cancel_requested", "status": status.state.value},
            )
        self._bus.emit("job.cancel_requested", job_id=job_id, snapshot=snapshot)
        if settled_now:
            self._bus.emit(
                "job.completed",
                job_id=job_id,
                snapshot=snapshot,
                metadata={"state": JobState.CANCELLED.value},
            )
            job.done_event.set()
        return status

    def wait(self, job_id: str, timeout: Optional[float] = None) -> RenderJobSnapshot:
        """Block until ``job_id`` reaches a terminal state or ``timeout`` expires.

        The returned snapshot may still be non-terminal when the timeout hits.
        """

        with self._lock:
            job = self._get(job_id)
        job.done_event.wait(timeout)
        return self.query_status(job_id)

    def clear(self, job_id: str) -> None:
        """Forget a finished job and delete its working directory."""

        with self._lock:
            job = self._get(job_id)
            if not is_job_terminal(job.state):
                raise ValueError(f"job {job_id} is {job.state.value}; only finished jobs can be cleared")
            self._jobs.pop(job_id, None)
            self._runs.pop(job_id, None)
        _remove_tree(job.work_dir)
        logger.debug(
            "Render job cleared",
            extra={"event": "render.job.cleared", "job_id": job_id},
        )

    def subscribe(self, observer: ProgressObserver) -> Callable[[], None]:
        """Register a progress observer; returns a callable that unsubscribes it."""

        return self._bus.register_observer(observer)

    def events(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> ProgressEventStream:
        return self._bus.events(loop)

    def shutdown(self, wait: bool = True, *, cancel_jobs: bool = False) -> None:
        if cancel_jobs:
            with self._lock:
                active = [job_id for job_id, job in self._jobs.items() if not is_job_terminal(job.state)]
            for job_id in active:
                self.cancel(job_id)
        self._job_executor.shutdown(wait=wait)
        self._subjob_executor.shutdown(wait=wait)

    def __enter__(self) -> "RenderJobController":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=True, cancel_jobs=exc_info[0] is not None)

    # ------------------------------------------------------------------
    # Job coordination
    # ------------------------------------------------------------------
    def _execute(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            run = self._runs.get(job_id)
            if job is None or run is None or job.state is not JobState.QUEUED:
                return
            ensure_job_transition(job_id, job.state, JobState.RUNNING)
            job.state = JobState.RUNNING
            job.started_at = utcnow()
            snapshot = self._progress_snapshot(job)

        with log_mgr.log_context(job_id=job_id):
            logger.info(
                "Render job started",
                extra={"event": "render.job.started", "status": JobState.RUNNING.value},
            )
            self._bus.emit("job.running", job_id=job_id, snapshot=snapshot)
            try:
                futures = []
                for sub in job.sub_jobs.values():
                    try:
                        futures.append(self._subjob_executor.submit(self._run_sub_job, job, run, sub))
                    except RuntimeError:
                        self._settle_sub_job(job, sub, SubJobState.CANCELLED)
                wait_futures(futures)
                if not job.cancel_event.is_set():
                    self._assemble_outputs(job, run)
                    if not self._config.keep_segments:
                        _remove_tree(job.work_dir / "segments")
                        _remove_tree(job.work_dir / "audio")
            except Exception:  # pragma: no cover
                logger.exception(
                    "Render job coordinator failed",
                    extra={"event": "render.job.error"},
                )
            finally:
                self._finish_job(job)

    def _finish_job(self, job: RenderJob) -> None:
        with self._lock:
            for sub in job.sub_jobs.values():
                if sub.state is SubJobState.PENDING:
                    sub.state = SubJobState.CANCELLED if job.cancel_event.is_set() else SubJobState.FAILED
                    if sub.state is SubJobState.FAILED:
                        sub.error_kind = ErrorKind.INTERNAL
                        sub.error_message = "sub-job never ran"
            target = aggregate_job_state(
                (sub.state for sub in job.sub_jobs.values()),
                cancelled=job.cancel_event.is_set(),
            )
            ensure_job_transition(job.job_id, job.state, target)
            job.state = target
            job.completed_at = utcnow()
            snapshot = self._progress_snapshot(job)
            failed = job.snapshot().failed_sub_jobs

        logger.info(
            "Render job finished",
            extra={
                "event": "render.job.finished",
                "status": target.value,
                "attributes": {
                    "outputs": sorted(job.outputs),
                    "output_errors": sorted(job.output_errors),
                    "failed_sub_jobs": [f"{scene}:{fmt}" for scene, fmt in failed],
                },
            },
        )
        self._bus.emit(
            "job.completed",
            job_id=job.job_id,
            snapshot=snapshot,
            metadata={"state": target.value},
        )
        job.done_event.set()

    def _assemble_outputs(self, job: RenderJob, run: _JobRun) -> None:
        project = job.project
        transitions = resolve_transitions(
            project,
            job.scene_indices,
            default_duration=self._config.default_transition_duration,
        )
        for format_name in job.format_names:
            if job.cancel_event.is_set():
                return
            subs = job.sub_jobs_for_format(format_name)
            unfinished = [sub.scene_index for sub in subs if sub.state is not SubJobState.DONE]
            if unfinished:
                self._record_output_failure(
                    job,
                    OutputFailure(
                        format_name=format_name,
                        kind=ErrorKind.ASSEMBLY,
                        message=f"not assembled; scenes {unfinished} did not finish",
                    ),
                )
                continue

            scenes = [
                AssemblyScene(
                    scene_index=sub.scene_index,
                    plan=run.timings[sub.scene_index].result(),
                    segment=sub.segment,
                    background=project.scenes[sub.scene_index].background_audio,
                )
                for sub in subs
            ]
            try:
                output = self._assembler.assemble(
                    format_name,
                    scenes,
                    transitions,
                    project.output_path_for(format_name),
                    fps=project.fps,
                )
            except RenderError as exc:
                self._record_output_failure(
                    job, OutputFailure(format_name=format_name, kind=exc.kind, message=str(exc))
                )
                continue
            except Exception as exc:
                logger.exception(
                    "Unexpected assembly failure",
                    extra={"event": "render.assembly.error", "attributes": {"format": format_name}},
                )
                self._record_output_failure(
                    job,
                    OutputFailure(format_name=format_name, kind=ErrorKind.INTERNAL, message=str(exc)),
                )
                continue

            with self._lock:
                job.outputs[format_name] = output
                snapshot = self._progress_snapshot(job)
            self._bus.emit(
                "output.completed",
                job_id=job.job_id,
                snapshot=snapshot,
                metadata={"format": format_name, "path": str(output.path)},
            )

    def _record_output_failure(self, job: RenderJob, failure: OutputFailure) -> None:
        with self._lock:
            job.output_errors[failure.format_name] = failure
            snapshot = self._progress_snapshot(job)
        logger.warning(
            "Output for format %s was not produced: %s",
            failure.format_name,
            failure.message,
            extra={
                "event": "render.assembly.failed",
                "attributes": {"format": failure.format_name, "kind": failure.kind.value},
            },
        )
        self._bus.emit(
            "output.failed",
            job_id=job.job_id,
            snapshot=snapshot,
            metadata={"format": failure.format_name, "kind": failure.kind.value},
        )

    # ------------------------------------------------------------------
    # Sub-job execution
    # ------------------------------------------------------------------
    def _run_sub_job(self, job: RenderJob, run: _JobRun, sub: SubJob) -> None:
        with log_mgr.log_context(
            job_id=job.job_id, scene_index=sub.scene_index, format=sub.format_name
        ):
            try:
                segment = self._render_segment(job, run, sub)
            except RenderCancelledError:
                self._settle_sub_job(job, sub, SubJobState.CANCELLED)
            except RenderError as exc:
                self._settle_sub_job(job, sub, SubJobState.FAILED, error=exc)
            except Exception as exc:
                logger.exception(
                    "Unexpected sub-job failure",
                    extra={"event": "render.subjob.error"},
                )
                self._settle_sub_job(job, sub, SubJobState.FAILED, error=exc)
            else:
                self._settle_sub_job(job, sub, SubJobState.DONE, segment=segment)

    def _render_segment(self, job: RenderJob, run: _JobRun, sub: SubJob) -> EncodedSegment:
        project = job.project
        self._raise_if_cancelled(job, sub)
        scene = project.scenes[sub.scene_index]
        fmt = project.format_named(sub.format_name)
        plan = self._timing_for(job, run, sub.scene_index)
        self._raise_if_cancelled(job, sub)
        markup = self._build_markup(scene, fmt, sub)

        with self._lock:
            sub.total_frames = frame_count(plan.duration_seconds, project.fps)

        request = SegmentRequest(
            scene_index=sub.scene_index,
            output_format=fmt,
            markup=markup,
            plan=plan,
            fps=project.fps,
            output_path=job.work_dir
            / "segments"
            / f"scene-{sub.scene_index:03d}-{sub.format_name}.mp4",
        )
        request.output_path.parent.mkdir(parents=True, exist_ok=True)

        with self._pool.lease(cancel_event=job.cancel_event) as handle:
            self._transition_sub_job(job, sub, SubJobState.CAPTURING)
            return self._pipeline.run(
                handle,
                request,
                cancel_event=job.cancel_event,
                on_frame=lambda done, total: self._record_frames(sub, done, total),
                on_encoding=lambda: self._transition_sub_job(job, sub, SubJobState.ENCODING),
            )

    def _timing_for(self, job: RenderJob, run: _JobRun, scene_index: int) -> TimingPlan:
        """Resolve a scene's timing once per job; later callers share the result."""

        with run.lock:
            future = run.timings.get(scene_index)
            owner = future is None
            if owner:
                future = Future()
                run.timings[scene_index] = future
        if owner:
            scene = job.project.scenes[scene_index]
            try:
                plan = run.resolver.resolve(scene, job.project.voice_for(scene))
            except BaseException as exc:
                future.set_exception(exc)
                raise
            future.set_result(plan)
            return plan
        return future.result()

    def _build_markup(self, scene: Scene, fmt: OutputFormat, sub: SubJob) -> str:
        try:
            return self._markup_builder(scene, scene.properties_for(fmt.name), fmt)
        except RenderError:
            raise
        except Exception as exc:
            raise CaptureError(
                f"markup builder failed: {exc}",
                scene_index=sub.scene_index,
                format_name=sub.format_name,
            ) from exc

    @staticmethod
    def _raise_if_cancelled(job: RenderJob, sub: SubJob) -> None:
        if job.cancel_event.is_set():
            raise RenderCancelledError(
                "job cancelled", scene_index=sub.scene_index, format_name=sub.format_name
            )

    def _record_frames(self, sub: SubJob, done: int, total: int) -> None:
        with self._lock:
            sub.frames_done = done
            sub.total_frames = total

    def _transition_sub_job(self, job: RenderJob, sub: SubJob, target: SubJobState) -> None:
        with self._lock:
            ensure_sub_job_transition(sub.label, sub.state, target)
            sub.state = target
            snapshot = self._progress_snapshot(job)
        logger.debug(
            "Sub-job %s is %s",
            sub.label,
            target.value,
            extra={"event": f"render.subjob.{target.value}"},
        )
        self._bus.emit(
            f"subjob.{target.value}",
            job_id=job.job_id,
            snapshot=snapshot,
            metadata={"scene_index": sub.scene_index, "format": sub.format_name},
        )

    def _settle_sub_job(
        self,
        job: RenderJob,
        sub: SubJob,
        target: SubJobState,
        *,
        segment: Optional[EncodedSegment] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        with self._lock:
            ensure_sub_job_transition(sub.label, sub.state, target)
            sub.state = target
            if segment is not None:
                sub.segment = segment
                sub.frames_done = segment.frame_count
                sub.total_frames = segment.frame_count
            if error is not None:
                sub.error_kind = error.kind if isinstance(error, RenderError) else ErrorKind.INTERNAL
                sub.error_message = str(error)
                sub.error_stage = error_stage(error)
            snapshot = self._progress_snapshot(job)

        if target is SubJobState.FAILED:
            logger.warning(
                "Sub-job %s failed: %s",
                sub.label,
                error,
                extra={
                    "event": "render.subjob.failed",
                    "stage": sub.error_stage,
                    "attributes": {"kind": sub.error_kind.value if sub.error_kind else None},
                },
            )
        else:
            logger.info(
                "Sub-job %s is %s",
                sub.label,
                target.value,
                extra={"event": f"render.subjob.{target.value}"},
            )
        metadata: Dict[str, object] = {"scene_index": sub.scene_index, "format": sub.format_name}
        if sub.error_kind is not None:
            metadata["error_kind"] = sub.error_kind.value
        self._bus.emit(
            f"subjob.{target.value}",
            job_id=job.job_id,
            snapshot=snapshot,
            metadata=metadata,
            error=error,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _get(self, job_id: str) -> RenderJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise UnknownJobError(job_id)
        return job

    def _progress_snapshot(self, job: RenderJob) -> ProgressSnapshot:
        start = job.started_at or job.created_at
        return ProgressSnapshot(
            completed=job.settled_count(),
            total=len(job.sub_jobs),
            fraction=job.progress(),
            elapsed=(utcnow() - start).total_seconds(),
        )

    def _create_work_dir(self, job_id: str) -> Path:
        if self._config.work_dir:
            path = Path(self._config.work_dir) / job_id
            path.mkdir(parents=True, exist_ok=True)
            return path
        return Path(tempfile.mkdtemp(prefix=f"scenecast-{job_id[:8]}-"))


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as exc:  # pragma: no cover - best effort cleanup
        logger.debug(
            "Failed to remove %s: %s",
            path,
            exc,
            extra={"event": "render.job.cleanup"},
        )


__all__ = ["MarkupBuilder", "RenderJobController"]
