"""Rendering surface bindings and factory helpers."""

from __future__ import annotations

from typing import Mapping, Sequence

from .base import (
    FRAME_VARIABLE_MARKERS,
    RenderingSurface,
    SurfaceError,
    SurfaceTimeoutError,
    references_frame_variables,
)

DEFAULT_SURFACE_BACKEND = "playwright"


def create_rendering_surface(
    name: str | None,
    settings: Mapping[str, object] | None = None,
) -> RenderingSurface:
    """Instantiate the configured rendering surface binding."""

    backend = (name or DEFAULT_SURFACE_BACKEND).lower()
    backend_settings = settings or {}

    if backend == "playwright":
        from .playwright_surface import PlaywrightSurface

        return PlaywrightSurface(**_coerce_playwright_settings(backend_settings))

    raise ValueError(f"Unknown rendering surface backend '{backend}'")


def _coerce_playwright_settings(settings: Mapping[str, object]) -> dict[str, object]:
    browser = settings.get("browser")
    launch_args = settings.get("launch_args")
    scale = settings.get("device_scale_factor")

    if launch_args is not None and (
        isinstance(launch_args, (str, bytes)) or not isinstance(launch_args, Sequence)
    ):
        raise ValueError("playwright.launch_args must be a list of strings")

    return {
        "browser": str(browser) if browser else "chromium",
        "launch_args": [str(arg) for arg in launch_args or ()],
        "device_scale_factor": float(scale) if scale else 1.0,
    }


__all__ = [
    "FRAME_VARIABLE_MARKERS",
    "RenderingSurface",
    "SurfaceError",
    "SurfaceTimeoutError",
    "create_rendering_surface",
    "references_frame_variables",
]
