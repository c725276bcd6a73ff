"""Error taxonomy for probing, control dispatch and persistence."""

from __future__ import annotations


class StatusBoardError(Exception):
    """Base class for status board errors."""


class ProbeFailure(StatusBoardError):
    """A liveness probe could not complete; always degrades to inactive."""


class UnsupportedAction(StatusBoardError):
    """No usable identifier or run path for the action on this platform."""

    def __init__(self, message: str = "unsupported") -> None:
        super().__init__(message)


class TargetNotFound(StatusBoardError):
    """No declaration matches the selector."""

    def __init__(self, message: str = "not found") -> None:
        super().__init__(message)


class ActionForbidden(StatusBoardError):
    """A permission flag denies the requested action."""

    def __init__(self, message: str = "forbidden") -> None:
        super().__init__(message)


class CommandFailure(StatusBoardError):
    """An OS command exited non-zero, timed out or could not be started.

    Attributes:
        output: Trimmed combined stdout/stderr, or the launch error
    """

    def __init__(self, output: str) -> None:
        self.output = output.strip()
        super().__init__(self.output)


class PersistenceFailure(StatusBoardError):
    """Writing the snapshot or the action log failed."""
