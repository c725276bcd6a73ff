from __future__ import annotations

import socket
from collections.abc import Sequence
from pathlib import Path
from typing import Any, cast

from controller.commands import CommandResult
from controller.contracts import DetectionMethod, ServiceDeclaration
from controller.errors import UnsupportedAction
from core.config import Config


class FakeRunner:
    """CommandRunner double: records calls, answers by command prefix."""

    def __init__(self, responses: dict[tuple[str, ...], tuple[int | None, str]] | None = None):
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, ...]] = []
        self.timeouts: list[float] = []

    def __call__(self, args: Sequence[str], timeout: float) -> CommandResult:
        argv = tuple(args)
        self.calls.append(argv)
        self.timeouts.append(timeout)
        for prefix in sorted(self.responses, key=len, reverse=True):
            if argv[: len(prefix)] == prefix:
                returncode, output = self.responses[prefix]
                return CommandResult(argv, returncode, output)
        return CommandResult(argv, 1, "")


class FakeSpawner:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def __call__(
        self, args: Sequence[str], *, cwd: str | None = None, env: dict[str, str] | None = None
    ) -> int:
        self.calls.append({"args": list(args), "cwd": cwd, "env": env})
        if self.error is not None:
            raise self.error
        return 4242


class FakePlatform:
    """Platform double with scripted liveness and recorded actions."""

    name = "fake"

    def __init__(self) -> None:
        self.active: dict[str, bool] = {}
        self.failing: set[str] = set()
        self.start_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.started: list[str] = []
        self.stopped: list[str] = []

    def probe(self, declaration: ServiceDeclaration) -> tuple[bool, DetectionMethod]:
        if declaration.name in self.failing:
            raise RuntimeError(f"probe exploded for {declaration.name}")
        return self.active.get(declaration.name, False), "port-check"

    def start(self, declaration: ServiceDeclaration) -> None:
        if self.start_error is not None:
            raise self.start_error
        if not declaration.run_path and not declaration.unit:
            raise UnsupportedAction()
        self.started.append(declaration.name)

    def stop(self, declaration: ServiceDeclaration) -> None:
        if self.stop_error is not None:
            raise self.stop_error
        if not declaration.run_path and not declaration.unit:
            raise UnsupportedAction()
        self.stopped.append(declaration.name)


def free_port() -> int:
    """Return a loopback TCP port that is currently unused."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


def make_declaration(name: str = "svc", **kwargs: Any) -> ServiceDeclaration:
    return ServiceDeclaration(name=name, **kwargs)


def build_test_config(root: Path, **overrides: Any) -> Config:
    cfg_dict: dict[str, Any] = {
        "app": {"name": "test", "env": "test"},
        "logging": {"level": "INFO", "format": "json", "log_dir": str(root / "logs")},
        "paths": {
            "services_file": str(root / "services.json"),
            "export_path": str(root / "run"),
            "export_name": "status.json",
            "log_file": str(root / "actions.csv"),
        },
        "monitor": {"status_interval": "50ms", "dial_timeout": "100ms", "command_timeout": "1s"},
        "action_log": {"max_bytes": 0},
        "api": {"enabled": True, "bind_host": "127.0.0.1", "port": 0, "operator": "tester"},
    }
    for section, values in overrides.items():
        cfg_dict[section].update(values)
    return cast(Config, Config.model_validate(cfg_dict))
