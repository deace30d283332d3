"""Exceptions raised by townwatch readers and settings helpers."""

from __future__ import annotations


class TownwatchError(RuntimeError):
    """Base class for townwatch failures."""


class CommandError(TownwatchError):
    """An external command could not run or exited non-zero.

    ``returncode`` is None when the process never started or was killed.
    """

    def __init__(
        self,
        argv: list[str],
        message: str,
        *,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class CommandCancelled(CommandError):
    """The cancellation signal fired before or during the command."""


class DecodeError(TownwatchError):
    """Command output was present but did not have the expected shape."""


class SourceError(TownwatchError):
    """A source reader failed; wraps the underlying command or decode error."""


class ValidationError(TownwatchError):
    """Settings rejected before any file is written."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message
