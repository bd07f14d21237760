"""Render job tracking and the multi-job controller."""

from .controller import MarkupBuilder, RenderJobController
from .models import OutputFailure, RenderJob, RenderJobSnapshot, SubJob, SubJobSnapshot
from .state import JobState, SubJobState, aggregate_job_state

__all__ = [
    "JobState",
    "MarkupBuilder",
    "OutputFailure",
    "RenderJob",
    "RenderJobController",
    "RenderJobSnapshot",
    "SubJob",
    "SubJobSnapshot",
    "SubJobState",
    "aggregate_job_state",
]
