"""Load project-level dotenv files before configuration is read."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional, Tuple

from dotenv import load_dotenv

_LOADED_FILES: Tuple[Path, ...] | None = None


def _iter_candidate_files(root: Path) -> Iterable[Path]:
    """Yield dotenv files in order of precedence."""

    explicit_paths = os.environ.get("SCENECAST_ENV_FILE")
    if explicit_paths:
        for value in explicit_paths.split(os.pathsep):
            if value.strip():
                yield Path(value).expanduser().resolve()

    target = os.environ.get("SCENECAST_ENV")
    candidate_names = [".env"]
    if target:
        candidate_names.append(f".env.{target}")
    candidate_names.append(".env.local")

    for name in candidate_names:
        yield (root / name).resolve()


def load_environment(*, root: Optional[Path] = None, force: bool = False) -> Tuple[Path, ...]:
    """Load environment variables from dotenv files under ``root`` (default: cwd).

    Variables already present in the process environment are never overridden.
    """

    global _LOADED_FILES
    if _LOADED_FILES is not None and not force:
        return _LOADED_FILES

    base = Path(root) if root is not None else Path.cwd()
    loaded: list[Path] = []
    seen: set[Path] = set()
    for path in _iter_candidate_files(base):
        if path in seen or not path.is_file():
            continue
        seen.add(path)
        if load_dotenv(path, override=False):
            loaded.append(path)
    _LOADED_FILES = tuple(loaded)
    return _LOADED_FILES


__all__ = ["load_environment"]
