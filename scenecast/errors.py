"""Error taxonomy shared by the render orchestration components."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence


class ErrorKind(str, Enum):
    """Machine-readable classification surfaced through job status."""

    VALIDATION = "validation"
    SYNTHESIS = "synthesis"
    CAPTURE = "capture"
    ENCODING = "encoding"
    ASSEMBLY = "assembly"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


class RenderError(RuntimeError):
    """Base class for failures raised by the orchestration engine."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        scene_index: Optional[int] = None,
        format_name: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.scene_index = scene_index
        self.format_name = format_name


class ValidationError(RenderError, ValueError):
    """Raised when a project, scene or selection is malformed."""

    kind = ErrorKind.VALIDATION

    def __init__(self, issues: Sequence[str] | str) -> None:
        if isinstance(issues, str):
            issues = [issues]
        self.issues: tuple[str, ...] = tuple(issues)
        super().__init__("; ".join(self.issues) or "invalid render request")


class SynthesisError(RenderError):
    """Raised when the speech collaborator cannot produce audio."""

    kind = ErrorKind.SYNTHESIS


class CaptureError(RenderError):
    """Raised when the rendering surface fails to load or capture a frame."""

    kind = ErrorKind.CAPTURE


class EncodingError(RenderError):
    """Raised when the encoder process fails, exits early or rejects input."""

    kind = ErrorKind.ENCODING


class AssemblyError(RenderError):
    """Raised when per-scene segments cannot be merged into an output."""

    kind = ErrorKind.ASSEMBLY


class RenderTimeoutError(RenderError, TimeoutError):
    """Raised when a collaborator call exceeds its time budget."""

    kind = ErrorKind.TIMEOUT
    stage: str = "collaborator"

    def __init__(
        self,
        message: str,
        *,
        timeout: Optional[float] = None,
        scene_index: Optional[int] = None,
        format_name: Optional[str] = None,
    ) -> None:
        super().__init__(message, scene_index=scene_index, format_name=format_name)
        self.timeout = timeout


class SynthesisTimeoutError(RenderTimeoutError, SynthesisError):
    kind = ErrorKind.TIMEOUT
    stage = "synthesis"


class CaptureTimeoutError(RenderTimeoutError, CaptureError):
    kind = ErrorKind.TIMEOUT
    stage = "capture"


class EncodingTimeoutError(RenderTimeoutError, EncodingError):
    kind = ErrorKind.TIMEOUT
    stage = "encoding"


class RenderCancelledError(RenderError):
    """Raised inside a worker when its job was cancelled; not a failure."""

    kind = ErrorKind.CANCELLED


class UnknownJobError(KeyError):
    """Raised when a job identifier is not tracked by the controller."""

    def __init__(self, job_id: str) -> None:
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Unknown render job: {self.job_id}"


class JobStateTransitionError(ValueError):
    """Raised when a job or sub-job is moved along a forbidden edge."""

    def __init__(self, subject: str, current: str, target: str) -> None:
        super().__init__(f"{subject} cannot transition from {current} to {target}")
        self.subject = subject
        self.current = current
        self.target = target


def error_stage(error: BaseException) -> Optional[str]:
    """Return the collaborator stage recorded on timeout errors."""

    return getattr(error, "stage", None) if isinstance(error, RenderTimeoutError) else None


__all__ = [
    "AssemblyError",
    "CaptureError",
    "CaptureTimeoutError",
    "EncodingError",
    "EncodingTimeoutError",
    "ErrorKind",
    "JobStateTransitionError",
    "RenderCancelledError",
    "RenderError",
    "RenderTimeoutError",
    "SynthesisError",
    "SynthesisTimeoutError",
    "UnknownJobError",
    "ValidationError",
    "error_stage",
]
