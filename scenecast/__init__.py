"""Scene-based video render orchestration engine."""

from .environment import load_environment

# Load .env-style files as soon as the package is imported so ``SCENECAST_*``
# overrides apply before the rendering configuration is read.
load_environment()

__version__ = "0.1.0"

__all__ = ["__version__", "load_environment"]
