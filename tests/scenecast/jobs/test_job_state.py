from __future__ import annotations

from pathlib import Path

import pytest

from scenecast.errors import JobStateTransitionError
from scenecast.jobs.models import RenderJob
from scenecast.jobs.state import (
    JobState,
    SubJobState,
    aggregate_job_state,
    can_transition_job,
    can_transition_sub_job,
    ensure_job_transition,
    ensure_sub_job_transition,
    is_job_terminal,
)
from tests.helpers.render_stubs import LANDSCAPE, PORTRAIT, make_project


@pytest.mark.parametrize(
    "states, expected",
    [
        ([SubJobState.DONE, SubJobState.DONE], JobState.SUCCEEDED),
        ([SubJobState.DONE, SubJobState.FAILED], JobState.PARTIALLY_FAILED),
        ([SubJobState.FAILED, SubJobState.FAILED], JobState.FAILED),
        ([SubJobState.FAILED, SubJobState.CANCELLED], JobState.FAILED),
        ([], JobState.FAILED),
    ],
)
def test_aggregate_job_state(states, expected) -> None:  # noqa: ANN001
    assert aggregate_job_state(states, cancelled=False) is expected


def test_cancellation_wins_over_completed_sub_jobs() -> None:
    states = [SubJobState.DONE, SubJobState.DONE]
    assert aggregate_job_state(states, cancelled=True) is JobState.CANCELLED


def test_sub_job_states_only_move_forward() -> None:
    assert can_transition_sub_job(SubJobState.PENDING, SubJobState.CAPTURING)
    assert can_transition_sub_job(SubJobState.CAPTURING, SubJobState.ENCODING)
    assert can_transition_sub_job(SubJobState.ENCODING, SubJobState.DONE)
    assert not can_transition_sub_job(SubJobState.PENDING, SubJobState.DONE)
    assert not can_transition_sub_job(SubJobState.DONE, SubJobState.FAILED)
    assert not can_transition_sub_job(SubJobState.CANCELLED, SubJobState.PENDING)

    with pytest.raises(JobStateTransitionError) as excinfo:
        ensure_sub_job_transition("0:landscape", SubJobState.FAILED, SubJobState.CAPTURING)
    assert "0:landscape" in str(excinfo.value)


def test_terminal_job_states_are_final() -> None:
    for state in (JobState.SUCCEEDED, JobState.PARTIALLY_FAILED, JobState.FAILED, JobState.CANCELLED):
        assert is_job_terminal(state)
        for target in JobState:
            assert not can_transition_job(state, target)
    assert not is_job_terminal(JobState.RUNNING)

    with pytest.raises(JobStateTransitionError):
        ensure_job_transition("job-1", JobState.QUEUED, JobState.SUCCEEDED)


def test_render_job_expands_selection_into_sub_jobs(tmp_path: Path) -> None:
    project = make_project(tmp_path, formats=(LANDSCAPE, PORTRAIT))

    job = RenderJob.create("job-1", project, (0, 1), ("landscape", "portrait"), tmp_path)

    assert sorted(job.sub_jobs) == [(0, "landscape"), (0, "portrait"), (1, "landscape"), (1, "portrait")]
    assert [sub.scene_index for sub in job.sub_jobs_for_format("portrait")] == [0, 1]
    assert job.progress() == 0.0


def test_progress_weights_active_sub_jobs_by_frames(tmp_path: Path) -> None:
    project = make_project(tmp_path)
    job = RenderJob.create("job-1", project, (0, 1), ("landscape",), tmp_path)
    first, second = job.sub_jobs_for_format("landscape")
    first.state = SubJobState.FAILED
    second.state = SubJobState.CAPTURING
    second.frames_done, second.total_frames = 5, 10

    snapshot = job.snapshot()

    assert job.settled_count() == 1
    assert snapshot.progress == pytest.approx(0.75)
    assert snapshot.failed_sub_jobs == ((0, "landscape"),)
    assert snapshot.sub_job(1, "landscape").progress == pytest.approx(0.5)
    with pytest.raises(KeyError):
        snapshot.sub_job(2, "landscape")
