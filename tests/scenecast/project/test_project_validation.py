from __future__ import annotations

from pathlib import Path

import pytest

from scenecast.errors import ValidationError
from scenecast.project import (
    AutoDuration,
    ExplicitDuration,
    OutputFormat,
    Project,
    Scene,
    VoiceSettings,
    project_issues,
    validate_project,
    validate_selection,
)


def _project(tmp_path: Path, **overrides) -> Project:
    payload = dict(
        name="Quarterly Update!",
        fps=30,
        formats=(OutputFormat("landscape", 1920, 1080), OutputFormat("square", 1080, 1080)),
        scenes=(
            Scene(template="title", properties={"title": "Hello"}),
            Scene(template="chart", duration=ExplicitDuration(4.0)),
            Scene(template="outro", duration=ExplicitDuration(2.0)),
        ),
        voice=VoiceSettings("en"),
        output_dir=tmp_path,
    )
    payload.update(overrides)
    return Project(**payload)


def test_valid_project_passes_unchanged(tmp_path: Path) -> None:
    project = _project(tmp_path)

    assert validate_project(project) is project
    assert project_issues(project) == []


def test_project_without_formats_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate_project(_project(tmp_path, formats=()))

    assert "at least one output format is required" in excinfo.value.issues


@pytest.mark.parametrize("seconds", [0, -1.5, float("nan")])
def test_non_positive_explicit_duration_is_rejected(tmp_path: Path, seconds: float) -> None:
    project = _project(tmp_path, scenes=(Scene(template="t", duration=ExplicitDuration(seconds)),))

    issues = project_issues(project)

    assert issues == ["scene 0: explicit duration must be greater than zero"]


def test_negative_padding_is_rejected(tmp_path: Path) -> None:
    scene = Scene(template="t", script="hi", duration=AutoDuration(padding_before=-0.1, padding_after=-1))
    issues = project_issues(_project(tmp_path, scenes=(scene,)))

    assert "scene 0: padding_before must not be negative" in issues
    assert "scene 0: padding_after must not be negative" in issues


def test_override_for_undefined_format_is_rejected(tmp_path: Path) -> None:
    scene = Scene(template="t", format_overrides={"vertical": {"title": "x"}})

    with pytest.raises(ValidationError) as excinfo:
        validate_project(_project(tmp_path, scenes=(scene,)))

    assert excinfo.value.kind.value == "validation"
    assert "undefined format 'vertical'" in str(excinfo.value)


def test_all_issues_are_collected(tmp_path: Path) -> None:
    project = _project(
        tmp_path,
        fps=0,
        voice=VoiceSettings("en", speed=0),
        scenes=(Scene(template=""),),
    )

    issues = project_issues(project)

    assert len(issues) == 3


def test_properties_for_merges_format_overrides(tmp_path: Path) -> None:
    scene = Scene(
        template="t",
        properties={"title": "Wide", "color": "red"},
        format_overrides={"square": {"title": "Tall"}},
    )

    assert scene.properties_for("square") == {"title": "Tall", "color": "red"}
    assert scene.properties_for("landscape") == {"title": "Wide", "color": "red"}


def test_output_path_uses_slugified_name(tmp_path: Path) -> None:
    project = _project(tmp_path)

    assert project.output_path_for("square") == tmp_path / "quarterly-update-square.mp4"


def test_selection_defaults_to_everything(tmp_path: Path) -> None:
    scenes, formats = validate_selection(_project(tmp_path))

    assert scenes == (0, 1, 2)
    assert formats == ("landscape", "square")


def test_selection_is_ordered_and_deduplicated(tmp_path: Path) -> None:
    scenes, formats = validate_selection(_project(tmp_path), [2, 0, 2], ["square", "landscape", "square"])

    assert scenes == (0, 2)
    assert formats == ("landscape", "square")


@pytest.mark.parametrize(
    "scenes, formats, message",
    [
        ([], None, "scene selection must not be empty"),
        ([3], None, "scene index 3 is out of range"),
        (None, ["vertical"], "format 'vertical' is not defined by the project"),
        (None, [], "format selection must not be empty"),
    ],
)
def test_invalid_selection_is_rejected(tmp_path: Path, scenes, formats, message) -> None:  # noqa: ANN001
    with pytest.raises(ValidationError) as excinfo:
        validate_selection(_project(tmp_path), scenes, formats)

    assert message in excinfo.value.issues
