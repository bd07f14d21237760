"""Exception hierarchy for collaborator bindings and command execution."""

from __future__ import annotations

from typing import Sequence


class MediaBackendError(RuntimeError):
    """Base exception raised by rendering, speech and encoder bindings."""


class CommandExecutionError(MediaBackendError):
    """Raised when an external command fails to execute successfully."""

    def __init__(
        self,
        command: Sequence[str] | str,
        *,
        returncode: int | None = None,
        stdout: str | bytes | None = None,
        stderr: str | bytes | None = None,
        cause: BaseException | None = None,
        timeout: bool = False,
    ) -> None:
        if isinstance(command, (str, bytes)):
            coerced: tuple[str, ...] = (str(command),)
        else:
            coerced = tuple(str(part) for part in command)

        self.command = coerced
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.cause = cause
        self.timeout = timeout

        detail = []
        if returncode is not None:
            detail.append(f"return code {returncode}")
        if timeout:
            detail.append("timeout")
        if cause and not timeout:
            detail.append(cause.__class__.__name__)
        detail_str = f" ({', '.join(detail)})" if detail else ""
        super().__init__(f"Command execution failed{detail_str}: {coerced[0]}")

    @property
    def stderr_text(self) -> str:
        """Return decoded stderr output, trimmed to the last lines."""

        payload = self.stderr
        if payload is None:
            return ""
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        lines = payload.strip().splitlines()
        return "\n".join(lines[-20:])


__all__ = ["MediaBackendError", "CommandExecutionError"]
