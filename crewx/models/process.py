"""Child process domain models."""

from __future__ import annotations

import shlex
from dataclasses import dataclass


@dataclass(frozen=True)
class CommandSpec:
    """Specification for launching a backend subprocess."""

    program: str
    args: tuple[str, ...] = ()
    env: dict[str, str] | None = None
    cwd: str | None = None

    @property
    def full_command(self) -> str:
        """Return the full command string for display."""
        parts = [self.program, *self.args]
        return " ".join(shlex.quote(p) for p in parts)


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one subprocess run."""

    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    spawn_error: OSError | None = None
    pid: int | None = None

    @property
    def spawned(self) -> bool:
        return self.spawn_error is None
