from __future__ import annotations

import pytest

from controller.errors import CommandFailure, UnsupportedAction
from controller.platforms import (
    LinuxPlatform,
    PortOnlyPlatform,
    WindowsPlatform,
    select_platform,
)
from tests.utils import FakeRunner, FakeSpawner, free_port, make_declaration


def _linux(runner: FakeRunner, spawner: FakeSpawner | None = None) -> LinuxPlatform:
    return LinuxPlatform(
        runner=runner, spawner=spawner or FakeSpawner(), dial_timeout=0.1, command_timeout=2.0
    )


def _windows(runner: FakeRunner, spawner: FakeSpawner | None = None) -> WindowsPlatform:
    return WindowsPlatform(
        runner=runner, spawner=spawner or FakeSpawner(), dial_timeout=0.1, command_timeout=2.0
    )


@pytest.mark.parametrize(
    ("system", "expected"),
    [
        ("Linux", LinuxPlatform),
        ("Windows", WindowsPlatform),
        ("Darwin", PortOnlyPlatform),
        ("FreeBSD", PortOnlyPlatform),
    ],
)
def test_select_platform(system: str, expected: type) -> None:
    selected = select_platform(system, runner=FakeRunner(), dial_timeout=0.3)

    assert isinstance(selected, expected)
    assert selected.dial_timeout == 0.3


class TestLinuxPlatform:
    def test_probe_uses_systemd_for_units(self) -> None:
        runner = FakeRunner({("systemctl", "is-active"): (0, "")})
        platform = _linux(runner)

        active, method = platform.probe(make_declaration("Web", port=80, systemd_name="nginx"))

        assert (active, method) == (True, "systemd")
        assert runner.calls == [("systemctl", "is-active", "--quiet", "nginx")]
        assert runner.timeouts == [2.0]

    def test_probe_falls_back_to_port(self) -> None:
        platform = _linux(FakeRunner())
        port = free_port()

        assert platform.probe(make_declaration("p", port=port)) == (False, "port-check")
        assert platform.probe(make_declaration("none")) == (False, "none")

    def test_start_stop_unit(self) -> None:
        runner = FakeRunner({("systemctl",): (0, "")})
        platform = _linux(runner)
        decl = make_declaration("Web", service_name="nginx")

        platform.start(decl)
        platform.stop(decl)

        assert runner.calls == [("systemctl", "start", "nginx"), ("systemctl", "stop", "nginx")]

    def test_failed_start_carries_output(self) -> None:
        runner = FakeRunner({("systemctl", "start"): (5, "Unit ghost.service not found.\n")})
        platform = _linux(runner)

        with pytest.raises(CommandFailure) as excinfo:
            platform.start(make_declaration("Ghost", service_name="ghost"))

        assert excinfo.value.output == "exit status 5: Unit ghost.service not found."

    def test_port_only_declaration_is_unsupported(self) -> None:
        platform = _linux(FakeRunner())
        decl = make_declaration("Port", port=8080)

        with pytest.raises(UnsupportedAction):
            platform.start(decl)
        with pytest.raises(UnsupportedAction):
            platform.stop(decl)

    def test_run_path_spawns_with_env_and_cwd(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("INHERITED", "yes")
        spawner = FakeSpawner()
        runner = FakeRunner()
        platform = _linux(runner, spawner)
        decl = make_declaration(
            "Worker", service_name="worker", run_path="/opt/worker/bin/worker", run_env={"MODE": "x"}
        )

        platform.start(decl)

        assert runner.calls == []
        call = spawner.calls[0]
        assert call["args"] == ["/opt/worker/bin/worker"]
        assert call["cwd"] == "/opt/worker/bin"
        assert call["env"]["MODE"] == "x"
        assert call["env"]["INHERITED"] == "yes"

    def test_run_path_spawn_failure(self) -> None:
        spawner = FakeSpawner(error=CommandFailure("No such file or directory"))
        platform = _linux(FakeRunner(), spawner)

        with pytest.raises(CommandFailure, match="No such file"):
            platform.start(make_declaration("Worker", run_path="/missing/worker"))

    def test_run_path_stop_uses_pkill(self) -> None:
        runner = FakeRunner({("pkill",): (0, "")})
        platform = _linux(runner)

        platform.stop(make_declaration("Worker", run_path="/opt/worker/bin/worker"))

        assert runner.calls == [("pkill", "-f", "/opt/worker/bin/worker")]

    def test_run_path_stop_falls_back_to_killall(self) -> None:
        runner = FakeRunner({("pkill",): (1, ""), ("killall",): (0, "")})
        platform = _linux(runner)

        platform.stop(make_declaration("Worker", run_path="/opt/worker/bin/worker"))

        assert runner.calls[-1] == ("killall", "worker")

    def test_run_path_stop_both_fail(self) -> None:
        runner = FakeRunner({("killall",): (1, "worker: no process found")})
        platform = _linux(runner)

        with pytest.raises(CommandFailure, match="no process found"):
            platform.stop(make_declaration("Worker", run_path="/opt/worker/bin/worker"))


class TestWindowsPlatform:
    def test_probe_service_running(self) -> None:
        runner = FakeRunner({("sc", "query"): (0, "STATE : 4 RUNNING")})
        platform = _windows(runner)

        assert platform.probe(make_declaration("Spool", service_name="Spooler")) == (
            True,
            "windows-service",
        )

    def test_probe_process_fallback(self) -> None:
        output = '"grafana-server.exe","1234","Console","1","50,000 K"\n'
        runner = FakeRunner({("tasklist", "/FI"): (0, output)})
        platform = _windows(runner)

        assert platform.probe(make_declaration("Grafana", service_name="grafana-server.exe")) == (
            True,
            "windows-process",
        )

    def test_probe_nothing_running(self) -> None:
        platform = _windows(FakeRunner())

        assert platform.probe(make_declaration("Spool", service_name="Spooler")) == (
            False,
            "windows-service",
        )

    def test_start_stop_service(self) -> None:
        runner = FakeRunner({("sc",): (0, "")})
        platform = _windows(runner)
        decl = make_declaration("Spool", service_name="Spooler")

        platform.start(decl)
        platform.stop(decl)

        assert runner.calls == [("sc", "start", "Spooler"), ("sc", "stop", "Spooler")]

    def test_start_stop_exe(self) -> None:
        runner = FakeRunner({("powershell",): (0, ""), ("taskkill",): (0, "")})
        platform = _windows(runner)
        decl = make_declaration("Tool", service_name="tool.exe")

        platform.start(decl)
        platform.stop(decl)

        assert runner.calls[0] == (
            "powershell",
            "-NoProfile",
            "-Command",
            "Start-Process -FilePath 'tool.exe'",
        )
        assert runner.calls[1] == ("taskkill", "/IM", "tool.exe", "/F")

    def test_run_path_stop_uses_taskkill_basename(self) -> None:
        runner = FakeRunner({("taskkill",): (0, "")})
        platform = _windows(runner)

        platform.stop(make_declaration("Worker", run_path="C:\\tools\\worker.exe"))

        assert runner.calls == [("taskkill", "/IM", "worker.exe", "/F")]


def test_port_only_platform_ignores_units() -> None:
    runner = FakeRunner()
    platform = PortOnlyPlatform(runner=runner, spawner=FakeSpawner(), dial_timeout=0.1)
    decl = make_declaration("Web", port=free_port(), service_name="nginx")

    assert platform.probe(decl) == (False, "port-check")
    with pytest.raises(UnsupportedAction):
        platform.start(decl)
    assert runner.calls == []
