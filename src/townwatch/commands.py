"""Command execution for the town's CLI tools (gt, bd, git).

Readers never call ``subprocess`` directly; they go through a
``CommandRunner`` so tests can script responses.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .errors import CommandCancelled, CommandError

_logger = logging.getLogger("townwatch.commands")

_POLL_INTERVAL_SEC = 0.05


@dataclass(frozen=True)
class CommandResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    def run(
        self,
        argv: list[str],
        *,
        cwd: Path | str,
        cancel: threading.Event | None = None,
    ) -> CommandResult:
        """Run *argv* in *cwd*; raise CommandError unless it exits 0."""
        ...


def _command_env() -> dict[str, str]:
    env = os.environ.copy()
    env.setdefault("CI", "1")
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    return env


class SubprocessRunner:
    """Runs commands with ``subprocess.Popen``.

    The child is killed when the cancellation event fires or the optional
    per-call timeout elapses. There is no retry at this layer.
    """

    def __init__(self, *, timeout_sec: float | None = None) -> None:
        self._timeout = timeout_sec if timeout_sec and timeout_sec > 0 else None

    def run(
        self,
        argv: list[str],
        *,
        cwd: Path | str,
        cancel: threading.Event | None = None,
    ) -> CommandResult:
        if not argv:
            raise CommandError([], "no command specified")
        if cancel is not None and cancel.is_set():
            raise CommandCancelled(argv, f"{argv[0]}: cancelled before start")

        try:
            proc = subprocess.Popen(
                argv,
                cwd=str(cwd),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=_command_env(),
            )
        except OSError as exc:
            raise CommandError(argv, f"{argv[0]}: {exc}") from exc

        deadline = time.monotonic() + self._timeout if self._timeout else None
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=_POLL_INTERVAL_SEC)
                break
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    stdout, stderr = _kill(proc)
                    raise CommandCancelled(
                        argv, f"{argv[0]}: cancelled", stdout=stdout, stderr=stderr
                    )
                if deadline is not None and time.monotonic() >= deadline:
                    stdout, stderr = _kill(proc)
                    raise CommandError(
                        argv,
                        f"{argv[0]}: timed out after {self._timeout:g}s",
                        stdout=stdout,
                        stderr=stderr,
                    )

        if proc.returncode != 0:
            _logger.debug(f"{' '.join(argv)} exited {proc.returncode}")
            raise CommandError(
                argv,
                f"{argv[0]}: exit status {proc.returncode}: {stderr.strip()}",
                returncode=proc.returncode,
                stdout=stdout,
                stderr=stderr,
            )
        return CommandResult(argv=list(argv), returncode=0, stdout=stdout, stderr=stderr)


def _kill(proc: subprocess.Popen[str]) -> tuple[str, str]:
    proc.kill()
    stdout, stderr = proc.communicate()
    return stdout or "", stderr or ""
