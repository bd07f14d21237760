"""Configuration helpers for the render engine."""

from .loader import RenderingConfig, get_rendering_config, load_rendering_config

__all__ = ["RenderingConfig", "get_rendering_config", "load_rendering_config"]
