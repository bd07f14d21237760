"""Scene and project model consumed by the render engine."""

from .models import (
    AutoDuration,
    BackgroundAudio,
    DurationPolicy,
    ExplicitDuration,
    OutputFormat,
    Project,
    Scene,
    VoiceSettings,
)
from .validation import project_issues, validate_project, validate_selection

__all__ = [
    "AutoDuration",
    "BackgroundAudio",
    "DurationPolicy",
    "ExplicitDuration",
    "OutputFormat",
    "Project",
    "Scene",
    "VoiceSettings",
    "project_issues",
    "validate_project",
    "validate_selection",
]
