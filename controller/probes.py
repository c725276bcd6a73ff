"""Point-in-time liveness checks.

Each check is a pure query: it returns a bool and treats any failure of the
underlying OS query (missing tool, access denied, timeout) as "not running".
"""

from __future__ import annotations

import logging
import socket

import psutil

from controller.commands import CommandRunner

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"


def port_listening(port: int) -> bool:
    """Return True when listener enumeration shows ``port`` bound locally.

    Counts TCP sockets in LISTEN state and bound UDP sockets. Enumeration can be
    restricted (e.g. AccessDenied on macOS), in which case this reports False.
    """
    if port <= 0:
        return False
    try:
        connections = psutil.net_connections(kind="inet")
    except (psutil.Error, OSError) as exc:
        logger.debug("listener_enumeration_unavailable", extra={"error": str(exc)})
        return False

    for conn in connections:
        if not conn.laddr or conn.laddr.port != port:
            continue
        if conn.type == socket.SOCK_STREAM and conn.status == psutil.CONN_LISTEN:
            return True
        if conn.type == socket.SOCK_DGRAM and not conn.raddr:
            return True
    return False


def port_connectable(port: int, timeout: float, host: str = LOOPBACK_HOST) -> bool:
    """Return True when a TCP connect to ``host:port`` succeeds within ``timeout``."""
    if port <= 0:
        return False
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def port_active(port: int, dial_timeout: float) -> bool:
    """Listener enumeration OR loopback connect; either one is sufficient."""
    if port <= 0:
        return False
    return port_listening(port) or port_connectable(port, dial_timeout)


def systemd_unit_active(unit: str, runner: CommandRunner, timeout: float) -> bool:
    """``systemctl is-active --quiet <unit>``; unknown units and errors are inactive."""
    if not unit:
        return False
    return runner(["systemctl", "is-active", "--quiet", unit], timeout).ok


def windows_service_running(name: str, runner: CommandRunner, timeout: float) -> bool:
    """``sc query <name>`` reports a RUNNING state."""
    if not name:
        return False
    result = runner(["sc", "query", name], timeout)
    if not result.ok:
        return False
    text = result.output.lower()
    return "state" in text and "running" in text


def windows_image_running(name: str, runner: CommandRunner, timeout: float) -> bool:
    """Exact image-name match via ``tasklist /FI``; only for ``.exe`` names."""
    lname = name.lower()
    if not lname.endswith(".exe"):
        return False
    result = runner(
        ["tasklist", "/FI", f"IMAGENAME eq {name}", "/FO", "CSV", "/NH"],
        timeout,
    )
    if not result.ok:
        return False
    prefix = f'"{lname}",'
    return any(
        line.strip().lower().startswith(prefix) for line in result.output.strip().splitlines()
    )


def windows_process_fuzzy(name: str, runner: CommandRunner, timeout: float) -> bool:
    """Substring match across verbose ``tasklist`` rows (window titles included).

    Broad on purpose: common names can match unrelated processes.
    """
    lname = name.lower()
    result = runner(["tasklist", "/V", "/FO", "CSV", "/NH"], timeout)
    if not result.ok:
        return False
    return any(lname in line.lower() for line in result.output.splitlines())


def windows_process_powershell(name: str, runner: CommandRunner, timeout: float) -> bool:
    """``Get-Process`` match on window title, description, path or process name."""
    escaped = name.replace("'", "''")
    script = (
        f"$n='{escaped}'; $p = Get-Process | Where-Object {{ "
        '$_.MainWindowTitle -like "*${n}*" -or $_.Description -like "*${n}*" '
        '-or $_.Path -like "*${n}*" -or $_.ProcessName -like "*${n}*" }; '
        "if ($p) { exit 0 } else { exit 1 }"
    )
    return runner(["powershell", "-NoProfile", "-Command", script], timeout).ok


def windows_process_running(name: str, runner: CommandRunner, timeout: float) -> bool:
    """Exact image name, then fuzzy tasklist, then PowerShell; any match counts."""
    if not name:
        return False
    return (
        windows_image_running(name, runner, timeout)
        or windows_process_fuzzy(name, runner, timeout)
        or windows_process_powershell(name, runner, timeout)
    )
