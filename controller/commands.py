"""Thin adapters around OS command execution.

Everything that shells out goes through a ``CommandRunner`` so probes and
platform actions can be exercised with fakes. Every call carries a timeout.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from controller.errors import CommandFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command.

    Attributes:
        args: Command line that was run
        returncode: Exit status, None if the command timed out or failed to launch
        output: Combined stdout/stderr (or the launch/timeout error)
    """

    args: tuple[str, ...]
    returncode: int | None
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def failure_detail(self) -> str:
        """Describe a failed run as ``exit status N: <trimmed output>``."""
        output = self.output.strip()
        if self.returncode is None:
            return output or "command failed"
        if output:
            return f"exit status {self.returncode}: {output}"
        return f"exit status {self.returncode}"


CommandRunner = Callable[[Sequence[str], float], CommandResult]
ProcessSpawner = Callable[..., int]


def _decode(raw: bytes | str | None) -> str:
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    return raw.decode("utf-8", errors="replace")


def run_command(args: Sequence[str], timeout: float) -> CommandResult:
    """Run a command to completion, killing it after ``timeout`` seconds."""

    argv = tuple(args)
    try:
        completed = subprocess.run(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        logger.warning("command_timeout", extra={"command": list(argv), "timeout_seconds": timeout})
        partial = _decode(exc.output).strip()
        message = f"timed out after {timeout:g}s"
        return CommandResult(argv, None, f"{partial}\n{message}" if partial else message)
    except OSError as exc:
        return CommandResult(argv, None, str(exc))
    return CommandResult(argv, completed.returncode, _decode(completed.stdout))


def check_command(runner: CommandRunner, args: Sequence[str], timeout: float) -> CommandResult:
    """Run a command and raise CommandFailure unless it exits 0."""

    result = runner(args, timeout)
    if not result.ok:
        raise CommandFailure(result.failure_detail())
    return result


def spawn_process(
    args: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
) -> int:
    """Launch a detached process without waiting for it.

    Returns:
        PID of the launched process

    Raises:
        CommandFailure: If the executable could not be started
    """
    creationflags = 0
    if sys.platform == "win32":
        creationflags = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP

    try:
        process = subprocess.Popen(
            list(args),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            start_new_session=sys.platform != "win32",  # Detach from parent process group
            creationflags=creationflags,
        )
    except OSError as exc:
        raise CommandFailure(str(exc)) from exc

    logger.info("process_spawned", extra={"command": list(args), "pid": process.pid, "cwd": cwd})
    return process.pid
