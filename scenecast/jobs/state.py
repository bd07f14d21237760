"""Job and sub-job states with their allowed transitions."""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Iterable, Set, Tuple

from scenecast.errors import JobStateTransitionError


class JobState(str, Enum):
    """Lifecycle of a render job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SubJobState(str, Enum):
    """Lifecycle of one (scene, format) sub-job."""

    PENDING = "pending"
    CAPTURING = "capturing"
    ENCODING = "encoding"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATES: FrozenSet[JobState] = frozenset(
    {JobState.SUCCEEDED, JobState.PARTIALLY_FAILED, JobState.FAILED, JobState.CANCELLED}
)

TERMINAL_SUB_JOB_STATES: FrozenSet[SubJobState] = frozenset(
    {SubJobState.DONE, SubJobState.FAILED, SubJobState.CANCELLED}
)

_JOB_TRANSITIONS: Set[Tuple[JobState, JobState]] = {
    (JobState.QUEUED, JobState.RUNNING),
    (JobState.QUEUED, JobState.CANCELLED),
    (JobState.RUNNING, JobState.SUCCEEDED),
    (JobState.RUNNING, JobState.PARTIALLY_FAILED),
    (JobState.RUNNING, JobState.FAILED),
    (JobState.RUNNING, JobState.CANCELLED),
}

_SUB_JOB_TRANSITIONS: Set[Tuple[SubJobState, SubJobState]] = {
    (SubJobState.PENDING, SubJobState.CAPTURING),
    (SubJobState.PENDING, SubJobState.FAILED),
    (SubJobState.PENDING, SubJobState.CANCELLED),
    (SubJobState.CAPTURING, SubJobState.ENCODING),
    (SubJobState.CAPTURING, SubJobState.FAILED),
    (SubJobState.CAPTURING, SubJobState.CANCELLED),
    (SubJobState.ENCODING, SubJobState.DONE),
    (SubJobState.ENCODING, SubJobState.FAILED),
    (SubJobState.ENCODING, SubJobState.CANCELLED),
}


def is_job_terminal(state: JobState) -> bool:
    return state in TERMINAL_JOB_STATES


def is_sub_job_terminal(state: SubJobState) -> bool:
    return state in TERMINAL_SUB_JOB_STATES


def can_transition_job(current: JobState, target: JobState) -> bool:
    return (current, target) in _JOB_TRANSITIONS


def can_transition_sub_job(current: SubJobState, target: SubJobState) -> bool:
    return (current, target) in _SUB_JOB_TRANSITIONS


def ensure_job_transition(job_id: str, current: JobState, target: JobState) -> None:
    if not can_transition_job(current, target):
        raise JobStateTransitionError(f"job {job_id}", current.value, target.value)


def ensure_sub_job_transition(label: str, current: SubJobState, target: SubJobState) -> None:
    if not can_transition_sub_job(current, target):
        raise JobStateTransitionError(f"sub-job {label}", current.value, target.value)


def aggregate_job_state(sub_states: Iterable[SubJobState], *, cancelled: bool) -> JobState:
    """Derive the terminal job state from settled sub-job states.

    A cancellation observed before completion always yields ``CANCELLED``.
    Otherwise: every sub-job done is ``SUCCEEDED``; at least one done and at
    least one not done is ``PARTIALLY_FAILED``; none done is ``FAILED``.
    """

    if cancelled:
        return JobState.CANCELLED
    states = list(sub_states)
    done = sum(1 for state in states if state is SubJobState.DONE)
    if states and done == len(states):
        return JobState.SUCCEEDED
    if done:
        return JobState.PARTIALLY_FAILED
    return JobState.FAILED


__all__ = [
    "JobState",
    "SubJobState",
    "TERMINAL_JOB_STATES",
    "TERMINAL_SUB_JOB_STATES",
    "aggregate_job_state",
    "can_transition_job",
    "can_transition_sub_job",
    "ensure_job_transition",
    "ensure_sub_job_transition",
    "is_job_terminal",
    "is_sub_job_terminal",
]
