from __future__ import annotations

from pathlib import Path

import pytest

from scenecast.project import ExplicitDuration, OutputFormat, Project, Scene, VoiceSettings
from scenecast.video import Transition, TransitionType, parse_transition, resolve_transitions
from scenecast.video.transitions import (
    overlap_seconds,
    resolve_transition,
    scene_offsets,
    timeline_duration,
)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("fade", TransitionType.FADE),
        ("Dissolve", TransitionType.DISSOLVE),
        ("slide-left", TransitionType.SLIDE_LEFT),
        ("slide_left", TransitionType.SLIDE_LEFT),
        ("slideleft", TransitionType.SLIDE_LEFT),
        ("wipe", TransitionType.WIPE_LEFT),
        ("zoom", TransitionType.ZOOM),
        ("circle", TransitionType.CIRCLE),
        ("none", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_transition(name, expected) -> None:  # noqa: ANN001
    assert parse_transition(name) == expected


def test_unknown_transition_falls_back_to_fade() -> None:
    assert parse_transition("sparkles") is TransitionType.FADE


def test_exit_transition_wins_over_entry_and_default() -> None:
    previous = Scene(template="a", transition_out="wipe", transition_duration=0.75)
    following = Scene(template="b", transition_in="dissolve", transition_duration=0.25)

    transition = resolve_transition(previous, following, default_name="fade")

    assert transition == Transition(TransitionType.WIPE_LEFT, 0.75)


def test_entry_transition_then_project_default() -> None:
    plain = Scene(template="a")
    entering = Scene(template="b", transition_in="slide-up")

    assert resolve_transition(plain, entering).kind is TransitionType.SLIDE_UP
    assert resolve_transition(plain, plain, default_name="dissolve", default_duration=0.4) == Transition(
        TransitionType.DISSOLVE, 0.4
    )
    assert resolve_transition(plain, plain) is None


def test_explicit_none_is_a_hard_cut_even_with_a_default() -> None:
    previous = Scene(template="a", transition_out="none")

    assert resolve_transition(previous, Scene(template="b"), default_name="fade") is None


def test_resolve_transitions_follows_selected_scene_order(tmp_path: Path) -> None:
    project = Project(
        name="p",
        fps=30,
        formats=(OutputFormat("landscape", 16, 9),),
        scenes=(
            Scene(template="a", transition_out="fade", duration=ExplicitDuration(2)),
            Scene(template="b", transition_out="cut", duration=ExplicitDuration(2)),
            Scene(template="c", duration=ExplicitDuration(2)),
        ),
        voice=VoiceSettings("en"),
        output_dir=tmp_path,
        default_transition="dissolve",
    )

    transitions = resolve_transitions(project, [2, 0, 1], default_duration=0.5)

    assert transitions == [Transition(TransitionType.FADE, 0.5), None]
    assert resolve_transitions(project, [0, 2]) == [Transition(TransitionType.FADE, 0.5)]


def test_timeline_duration_subtracts_overlaps() -> None:
    durations = [4.0, 6.0, 3.0]
    overlaps = overlap_seconds([Transition(TransitionType.FADE, 0.5), None])

    assert overlaps == [0.5, 0.0]
    assert timeline_duration(durations, overlaps) == pytest.approx(12.5)
    assert scene_offsets(durations, overlaps) == pytest.approx([0.0, 3.5, 9.5])


def test_timeline_requires_one_overlap_per_boundary() -> None:
    with pytest.raises(ValueError):
        timeline_duration([1.0, 2.0], [])
