"""Blocking command execution for external build systems.

Every external tool (configure, make, tar, git, patch, mount) is invoked
through a :class:`CommandRunner`. The orchestrator only looks at exit
status; output is either streamed to the terminal (verbose) or spooled to
disk with only its tail kept for error reports (quiet).
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Literal, Protocol

STDERR_EXCERPT = 2000

# stream: inherit the terminal. tail: spool to disk and keep the last
# STDERR_EXCERPT bytes of each stream. capture: keep everything.
OutputMode = Literal["stream", "tail", "capture"]


@dataclass(frozen=True, slots=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command(self) -> str:
        return " ".join(self.argv)

    def stderr_excerpt(self) -> str:
        return self.stderr[-STDERR_EXCERPT:] if self.stderr else ""


class CommandRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run *argv* to completion and return its exit status."""

    def capture(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run *argv* and always capture its output."""

    def prepend_path(self, directory: Path) -> None:
        """Put *directory* in front of the search path for later commands."""


@dataclass(slots=True)
class SubprocessRunner:
    verbose: bool = False
    path_prefix: list[Path] = field(default_factory=list)

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        output: OutputMode = "stream" if self.verbose else "tail"
        return self._execute(argv, cwd=cwd, env=env, output=output)

    def capture(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        return self._execute(argv, cwd=cwd, env=env, output="capture")

    def prepend_path(self, directory: Path) -> None:
        if directory in self.path_prefix:
            self.path_prefix.remove(directory)
        self.path_prefix.insert(0, directory)

    def environment(self, env: Mapping[str, str] | None = None) -> dict[str, str]:
        merged = dict(os.environ)
        merged.update(env or {})
        if self.path_prefix:
            entries = [str(path) for path in self.path_prefix]
            if merged.get("PATH"):
                entries.append(merged["PATH"])
            merged["PATH"] = os.pathsep.join(entries)
        return merged

    def _execute(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        output: OutputMode,
    ) -> CommandResult:
        command = tuple(str(arg) for arg in argv)
        try:
            if output == "tail":
                return self._execute_spooled(command, cwd=cwd, env=env)
            completed = subprocess.run(
                list(command),
                cwd=str(cwd) if cwd is not None else None,
                env=self.environment(env),
                capture_output=output == "capture",
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            # Same status a shell reports for a missing executable.
            return CommandResult(argv=command, returncode=127, stderr=str(exc))
        return CommandResult(
            argv=command,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def _execute_spooled(
        self,
        command: tuple[str, ...],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
    ) -> CommandResult:
        # Build logs run to many megabytes; only the tail is kept in memory.
        with tempfile.TemporaryFile() as stdout, tempfile.TemporaryFile() as stderr:
            completed = subprocess.run(
                list(command),
                cwd=str(cwd) if cwd is not None else None,
                env=self.environment(env),
                stdout=stdout,
                stderr=stderr,
                check=False,
            )
            return CommandResult(
                argv=command,
                returncode=completed.returncode,
                stdout=_tail(stdout),
                stderr=_tail(stderr),
            )


def _tail(handle: BinaryIO, limit: int = STDERR_EXCERPT) -> str:
    size = handle.seek(0, os.SEEK_END)
    handle.seek(max(0, size - limit))
    return handle.read().decode("utf-8", errors="replace")


@dataclass(frozen=True, slots=True)
class RecordedCall:
    argv: tuple[str, ...]
    cwd: Path | None
    path_prefix: tuple[Path, ...] = ()

    @property
    def command(self) -> str:
        return " ".join(self.argv)


Responder = Callable[[RecordedCall], CommandResult | None]


@dataclass(slots=True)
class RecordingRunner:
    """Runner that records commands instead of executing them.

    ``responder`` may simulate side effects or failures; returning ``None``
    from it means the command succeeded with no output.
    """

    responder: Responder | None = None
    calls: list[RecordedCall] = field(default_factory=list)
    path_prefix: list[Path] = field(default_factory=list)

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        call = RecordedCall(
            argv=tuple(str(arg) for arg in argv),
            cwd=cwd,
            path_prefix=tuple(self.path_prefix),
        )
        self.calls.append(call)
        if self.responder is not None:
            result = self.responder(call)
            if result is not None:
                return result
        return CommandResult(argv=call.argv, returncode=0)

    def capture(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        return self.run(argv, cwd=cwd, env=env)

    def prepend_path(self, directory: Path) -> None:
        if directory in self.path_prefix:
            self.path_prefix.remove(directory)
        self.path_prefix.insert(0, directory)

    def commands(self) -> list[str]:
        return [call.command for call in self.calls]

    def count(self, executable: str) -> int:
        return sum(1 for call in self.calls if executable in call.argv)
