"""Pure validation of projects and render selections."""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Tuple

from scenecast.errors import ValidationError

from .models import AutoDuration, ExplicitDuration, Project, Scene, VoiceSettings


def _is_positive(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


def _is_non_negative(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
    )


def _voice_issues(label: str, voice: VoiceSettings) -> List[str]:
    issues: List[str] = []
    if not isinstance(voice.voice, str) or not voice.voice.strip():
        issues.append(f"{label}: voice must be a non-empty string")
    if not _is_positive(voice.speed):
        issues.append(f"{label}: speed must be greater than zero")
    return issues


def _scene_issues(index: int, scene: Scene, format_names: Sequence[str]) -> List[str]:
    label = f"scene {index}"
    issues: List[str] = []
    if not isinstance(scene.template, str) or not scene.template.strip():
        issues.append(f"{label}: template must be a non-empty string")

    policy = scene.duration
    if isinstance(policy, ExplicitDuration):
        if not _is_positive(policy.seconds):
            issues.append(f"{label}: explicit duration must be greater than zero")
    elif isinstance(policy, AutoDuration):
        if not _is_non_negative(policy.padding_before):
            issues.append(f"{label}: padding_before must not be negative")
        if not _is_non_negative(policy.padding_after):
            issues.append(f"{label}: padding_after must not be negative")
    else:
        issues.append(f"{label}: unsupported duration policy {type(policy).__name__}")

    if scene.transition_duration is not None and not _is_positive(scene.transition_duration):
        issues.append(f"{label}: transition_duration must be greater than zero")

    for override_name in scene.format_overrides:
        if override_name not in format_names:
            issues.append(f"{label}: override references undefined format '{override_name}'")

    if scene.background_audio is not None and not _is_non_negative(scene.background_audio.volume):
        issues.append(f"{label}: background audio volume must not be negative")

    if scene.voice is not None:
        issues.extend(_voice_issues(label, scene.voice))
    return issues


def project_issues(project: Project) -> List[str]:
    """Return every problem found in ``project`` without raising."""

    issues: List[str] = []
    if not isinstance(project.name, str) or not project.name.strip():
        issues.append("project name must be a non-empty string")
    if not _is_positive(project.fps):
        issues.append("frame rate must be greater than zero")

    if not project.formats:
        issues.append("at least one output format is required")
    seen: set[str] = set()
    for fmt in project.formats:
        if not isinstance(fmt.name, str) or not fmt.name.strip():
            issues.append("output format names must be non-empty strings")
            continue
        if fmt.name in seen:
            issues.append(f"duplicate output format name '{fmt.name}'")
        seen.add(fmt.name)
        if not (isinstance(fmt.width, int) and fmt.width > 0) or not (
            isinstance(fmt.height, int) and fmt.height > 0
        ):
            issues.append(f"format '{fmt.name}': width and height must be positive integers")

    if not project.scenes:
        issues.append("at least one scene is required")
    issues.extend(_voice_issues("project voice", project.voice))

    format_names = project.format_names
    for index, scene in enumerate(project.scenes):
        issues.extend(_scene_issues(index, scene, format_names))
    return issues


def validate_project(project: Project) -> Project:
    """Return ``project`` unchanged or raise :class:`ValidationError`."""

    issues = project_issues(project)
    if issues:
        raise ValidationError(issues)
    return project


def _unique(values: Iterable) -> list:
    seen: set = set()
    ordered: list = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


def validate_selection(
    project: Project,
    scene_indices: Optional[Sequence[int]] = None,
    format_names: Optional[Sequence[str]] = None,
) -> Tuple[Tuple[int, ...], Tuple[str, ...]]:
    """Resolve a scene/format subset against ``project``.

    ``None`` selects everything. Scenes come back in declared sequence order and
    formats in project declaration order; duplicates are ignored.
    """

    issues: List[str] = []
    scene_count = len(project.scenes)

    if scene_indices is None:
        scenes = tuple(range(scene_count))
    else:
        requested = _unique(scene_indices)
        if not requested:
            issues.append("scene selection must not be empty")
        for index in requested:
            if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < scene_count:
                issues.append(f"scene index {index!r} is out of range")
        scenes = tuple(sorted(i for i in requested if isinstance(i, int) and 0 <= i < scene_count))

    declared = project.format_names
    if format_names is None:
        formats = declared
    else:
        requested_formats = _unique(format_names)
        if not requested_formats:
            issues.append("format selection must not be empty")
        for name in requested_formats:
            if name not in declared:
                issues.append(f"format '{name}' is not defined by the project")
        formats = tuple(name for name in declared if name in requested_formats)

    if issues:
        raise ValidationError(issues)
    return scenes, formats


__all__ = ["project_issues", "validate_project", "validate_selection"]
