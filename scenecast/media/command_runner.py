"""Run one-shot external commands (speech engines, ffmpeg assembly) consistently."""

from __future__ import annotations

import os
import subprocess
import time
from dataclasses import dataclass
from typing import Any, Mapping, MutableMapping, Sequence

from scenecast import logging_manager as log_mgr

from .exceptions import CommandExecutionError

logger = log_mgr.logger


@dataclass(slots=True)
class CommandResult:
    """Container describing a completed command execution."""

    command: tuple[str, ...]
    returncode: int
    stdout: str | bytes | None
    stderr: str | bytes | None
    duration: float


def _prepare_environment(env: Mapping[str, str] | None) -> Mapping[str, str]:
    merged: MutableMapping[str, str] = os.environ.copy()
    if env:
        merged.update({str(key): str(value) for key, value in env.items()})
    return merged


def _coerce_command(command: Sequence[str] | str) -> tuple[str, ...]:
    if isinstance(command, (str, bytes)):
        return (str(command),)
    return tuple(str(part) for part in command)


def run_command(
    command: Sequence[str] | str,
    *,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    text: bool = True,
    check: bool = True,
    **kwargs: Any,
) -> CommandResult:
    """Execute ``command`` once and return a :class:`CommandResult`.

    Output is always captured. A non-zero exit (when ``check`` is set), an
    expired ``timeout`` or a missing executable raise
    :class:`CommandExecutionError`; there are no retries.
    """

    coerced = _coerce_command(command)
    run_kwargs: dict[str, Any] = dict(kwargs)
    run_kwargs.update(
        cwd=cwd,
        timeout=timeout,
        env=_prepare_environment(env),
        check=False,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=text,
    )

    start = time.monotonic()
    logger.debug(
        "Executing command",
        extra={"event": "media.command.execute", "attributes": {"command": coerced[0]}},
    )
    try:
        completed = subprocess.run(list(coerced), **run_kwargs)
    except subprocess.TimeoutExpired as exc:
        logger.warning(
            "Command timed out after %.3fs",
            time.monotonic() - start,
            extra={"event": "media.command.timeout", "attributes": {"command": coerced[0]}},
        )
        raise CommandExecutionError(
            coerced, stdout=exc.stdout, stderr=exc.stderr, cause=exc, timeout=True
        ) from exc
    except FileNotFoundError as exc:
        logger.error(
            "Command executable not found",
            extra={"event": "media.command.not_found", "attributes": {"command": coerced[0]}},
        )
        raise CommandExecutionError(coerced, cause=exc) from exc
    except OSError as exc:  # pragma: no cover - permission errors
        raise CommandExecutionError(coerced, cause=exc) from exc

    result = CommandResult(
        command=coerced,
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
        duration=time.monotonic() - start,
    )
    if check and completed.returncode != 0:
        logger.warning(
            "Command returned non-zero status %s",
            completed.returncode,
            extra={
                "event": "media.command.failed",
                "attributes": {"command": coerced[0], "returncode": completed.returncode},
            },
        )
        raise CommandExecutionError(
            coerced,
            returncode=completed.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    logger.debug(
        "Command completed in %.3fs",
        result.duration,
        extra={"event": "media.command.success", "attributes": {"command": coerced[0]}},
    )
    return result


__all__ = ["CommandResult", "run_command"]
