"""
Remote Command Value Object

Architectural Intent:
- A command is an argument vector, never a hand-assembled shell string
- Every command declares whether re-issuing it is safe, so the retry
  executor can refuse to repeat non-idempotent work
- Quoting happens exactly once, in render()
"""

from __future__ import annotations
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Idempotency(Enum):
    SAFE = "safe"
    UNSAFE = "unsafe"


# Loads nvm in a login shell; the runtime is selected per command.
NVM_PREAMBLE = (
    'export NVM_DIR="${NVM_DIR:-$HOME/.nvm}"; '
    '[ -s "$NVM_DIR/nvm.sh" ] && . "$NVM_DIR/nvm.sh"'
)


@dataclass(frozen=True)
class RemoteCommand:
    argv: tuple[str, ...]
    idempotency: Idempotency = Idempotency.SAFE
    cwd: Optional[str] = None
    env: tuple[tuple[str, str], ...] = ()
    runtime_version: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("RemoteCommand requires at least one argument")
        if any(not isinstance(a, str) for a in self.argv):
            raise TypeError(f"RemoteCommand arguments must be strings: {self.argv!r}")

    @property
    def program(self) -> str:
        return self.argv[0]

    def render(self) -> str:
        cmd = shlex.join(self.argv)
        if self.env:
            assignments = " ".join(f"{k}={shlex.quote(v)}" for k, v in self.env)
            cmd = f"env {assignments} {cmd}"
        if self.cwd:
            cmd = f"cd {shlex.quote(self.cwd)} && {cmd}"
        if self.runtime_version:
            script = (
                f"{NVM_PREAMBLE}; "
                f"nvm use {shlex.quote(self.runtime_version)} >/dev/null && {cmd}"
            )
            cmd = f"bash -lc {shlex.quote(script)}"
        return cmd

    def __str__(self) -> str:
        return shlex.join(self.argv)
