"""Platform capabilities: probe, start and stop a declared service.

One concrete platform is selected at startup from the host OS so the dispatch
path carries no scattered OS conditionals.
"""

from __future__ import annotations

import logging
import os
import platform as host_platform
from typing import ClassVar, Protocol

from controller.commands import (
    CommandRunner,
    ProcessSpawner,
    check_command,
    run_command,
    spawn_process,
)
from controller.contracts import DetectionMethod, ServiceDeclaration
from controller.errors import CommandFailure, UnsupportedAction
from controller.probes import (
    port_active,
    systemd_unit_active,
    windows_process_running,
    windows_service_running,
)

logger = logging.getLogger(__name__)


class Platform(Protocol):
    """Capability interface used by the aggregator and the dispatcher."""

    name: str

    def probe(self, declaration: ServiceDeclaration) -> tuple[bool, DetectionMethod]: ...

    def start(self, declaration: ServiceDeclaration) -> None: ...

    def stop(self, declaration: ServiceDeclaration) -> None: ...


class BasePlatform:
    """Shared probe/start/stop flow; subclasses supply the unit-level verbs.

    Attributes:
        runner: Executes OS commands with a timeout
        spawner: Launches custom run_path executables
        dial_timeout: Loopback connect timeout in seconds
        command_timeout: Timeout for each OS command in seconds
    """

    name: ClassVar[str] = "generic"

    def __init__(
        self,
        *,
        runner: CommandRunner = run_command,
        spawner: ProcessSpawner = spawn_process,
        dial_timeout: float = 0.2,
        command_timeout: float = 5.0,
    ) -> None:
        self.runner = runner
        self.spawner = spawner
        self.dial_timeout = dial_timeout
        self.command_timeout = command_timeout

    def probe(self, declaration: ServiceDeclaration) -> tuple[bool, DetectionMethod]:
        """Return ``(active, method)`` for one declaration."""
        unit = declaration.unit
        if unit:
            unit_result = self.probe_unit(unit)
            if unit_result is not None:
                return unit_result
        if declaration.port > 0:
            return port_active(declaration.port, self.dial_timeout), "port-check"
        return False, "none"

    def start(self, declaration: ServiceDeclaration) -> None:
        """Start the service; returns once launched, not once ready.

        Raises:
            UnsupportedAction: No run_path and no usable unit
            CommandFailure: The launch or service-manager command failed
        """
        if declaration.run_path:
            self._spawn_custom(declaration)
            return
        if not declaration.unit:
            raise UnsupportedAction()
        self.start_unit(declaration.unit)

    def stop(self, declaration: ServiceDeclaration) -> None:
        """Stop the service.

        Raises:
            UnsupportedAction: No run_path and no usable unit
            CommandFailure: The termination or service-manager command failed
        """
        if declaration.run_path:
            self.kill_custom(declaration.run_path)
            return
        if not declaration.unit:
            raise UnsupportedAction()
        self.stop_unit(declaration.unit)

    # ------------------------------------------------------------------
    # Platform hooks
    # ------------------------------------------------------------------

    def probe_unit(self, unit: str) -> tuple[bool, DetectionMethod] | None:
        """Check a unit by name; None means "this platform cannot, use the port"."""
        return None

    def start_unit(self, unit: str) -> None:
        raise UnsupportedAction()

    def stop_unit(self, unit: str) -> None:
        raise UnsupportedAction()

    def kill_custom(self, run_path: str) -> None:
        """Terminate processes launched from ``run_path`` (POSIX)."""
        try:
            self._check(["pkill", "-f", run_path])
        except CommandFailure:
            self._check(["killall", os.path.basename(run_path)])

    # ------------------------------------------------------------------

    def _check(self, args: list[str]) -> None:
        check_command(self.runner, args, self.command_timeout)

    def _spawn_custom(self, declaration: ServiceDeclaration) -> None:
        env = dict(os.environ)
        env.update(declaration.run_env)
        cwd = os.path.dirname(declaration.run_path) or None
        self.spawner([declaration.run_path], cwd=cwd, env=env)


class LinuxPlatform(BasePlatform):
    """systemd units via ``systemctl``."""

    name: ClassVar[str] = "linux"

    def probe_unit(self, unit: str) -> tuple[bool, DetectionMethod] | None:
        return systemd_unit_active(unit, self.runner, self.command_timeout), "systemd"

    def start_unit(self, unit: str) -> None:
        self._check(["systemctl", "start", unit])

    def stop_unit(self, unit: str) -> None:
        self._check(["systemctl", "stop", unit])


class WindowsPlatform(BasePlatform):
    """Service manager (``sc``) with process-list fallback for ``.exe`` targets."""

    name: ClassVar[str] = "windows"

    def probe_unit(self, unit: str) -> tuple[bool, DetectionMethod] | None:
        if windows_service_running(unit, self.runner, self.command_timeout):
            return True, "windows-service"
        if windows_process_running(unit, self.runner, self.command_timeout):
            return True, "windows-process"
        return False, "windows-service"

    def start_unit(self, unit: str) -> None:
        if unit.lower().endswith(".exe"):
            escaped = unit.replace("'", "''")
            self._check(
                ["powershell", "-NoProfile", "-Command", f"Start-Process -FilePath '{escaped}'"]
            )
            return
        self._check(["sc", "start", unit])

    def stop_unit(self, unit: str) -> None:
        if unit.lower().endswith(".exe"):
            self._check(["taskkill", "/IM", unit, "/F"])
            return
        self._check(["sc", "stop", unit])

    def kill_custom(self, run_path: str) -> None:
        self._check(["taskkill", "/IM", os.path.basename(run_path.replace("\\", "/")), "/F"])


class PortOnlyPlatform(BasePlatform):
    """Hosts without a supported service manager: ports and run_path only."""

    name: ClassVar[str] = "port-only"


def select_platform(
    system: str | None = None,
    *,
    runner: CommandRunner = run_command,
    spawner: ProcessSpawner = spawn_process,
    dial_timeout: float = 0.2,
    command_timeout: float = 5.0,
) -> BasePlatform:
    """Pick the platform implementation for the host OS (``platform.system()``)."""

    system_name = system if system is not None else host_platform.system()
    platform_cls: type[BasePlatform]
    if system_name == "Linux":
        platform_cls = LinuxPlatform
    elif system_name == "Windows":
        platform_cls = WindowsPlatform
    else:
        platform_cls = PortOnlyPlatform

    selected = platform_cls(
        runner=runner,
        spawner=spawner,
        dial_timeout=dial_timeout,
        command_timeout=command_timeout,
    )
    logger.info("platform_selected", extra={"system": system_name, "platform": selected.name})
    return selected
