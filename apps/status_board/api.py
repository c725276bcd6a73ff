"""JSON HTTP control API for the status board."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from controller.action_log import ActionLog
from controller.contracts import ACTION_KINDS, DispatchOutcome, Selector, ServiceStatus
from controller.dispatcher import ActionDispatcher
from controller.snapshot import load_snapshot

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "STATUS_BOARD_TOKEN"
MAX_BODY_BYTES = 64 * 1024

OUTCOME_STATUS_CODES: dict[DispatchOutcome, int] = {
    "ok": 200,
    "unsupported": 400,
    "forbidden": 403,
    "not_found": 404,
    "error": 500,
}

_STATUS_MESSAGES = {
    200: "OK",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    413: "Payload Too Large",
    500: "Internal Server Error",
}


def client_ip(headers: dict[str, str], peer: str) -> str:
    """Origin address: first X-Forwarded-For hop, then X-Real-IP, then the peer."""
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = headers.get("x-real-ip", "")
    if real_ip:
        return real_ip.strip()
    return peer


class ControlApi:
    """Lightweight asyncio HTTP server exposing status, log and control routes.

    Routes:
        GET  /api/status   current snapshot (placeholders if none yet)
        GET  /api/log      action-log rows, newest first
        POST /api/control  start/stop a declared service

    Security:
        - Binds to localhost (127.0.0.1) by default
        - Bearer token via STATUS_BOARD_TOKEN; without it control is refused
    """

    def __init__(
        self,
        dispatcher: ActionDispatcher,
        *,
        snapshot_path: Path,
        fallback_statuses: Callable[[], list[ServiceStatus]],
        action_log: ActionLog | None = None,
        port: int = 8080,
        bind_host: str = "127.0.0.1",
        operator: str = "admin",
        bearer_token: str | None = None,
    ) -> None:
        """Initialize control API.

        Args:
            dispatcher: Dispatcher executing control requests
            snapshot_path: Snapshot file served by /api/status
            fallback_statuses: Statuses served when the snapshot is unreadable
            action_log: Log served by /api/log
            port: HTTP port to bind to
            bind_host: Host to bind to
            operator: Principal recorded for authenticated control requests
            bearer_token: Token (defaults to STATUS_BOARD_TOKEN env var)
        """
        self.dispatcher = dispatcher
        self.snapshot_path = snapshot_path
        self.fallback_statuses = fallback_statuses
        self.action_log = action_log
        self.port = port
        self.bind_host = bind_host
        self.operator = operator
        self._bearer_token = bearer_token if bearer_token is not None else os.getenv(TOKEN_ENV_VAR)
        self._server: asyncio.Server | None = None

    @property
    def bound_port(self) -> int:
        """Actual listening port (useful when started with port 0)."""
        if self._server is None or not self._server.sockets:
            return self.port
        return int(self._server.sockets[0].getsockname()[1])

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, self.bind_host, self.port)
        logger.info(
            "control_api_started",
            extra={
                "bind_host": self.bind_host,
                "port": self.bound_port,
                "auth_enabled": bool(self._bearer_token),
            },
        )

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Handle HTTP client connection."""
        try:
            request_line = await reader.readline()
            if not request_line:
                return

            parts = request_line.decode("utf-8").strip().split()
            if len(parts) < 2:
                await self._send_json(writer, 400, {"error": "bad request"})
                return

            method, path = parts[0].upper(), parts[1].split("?", 1)[0]
            headers = await self._read_headers(reader)
            length = int(headers.get("content-length", "0") or 0)
            if length > MAX_BODY_BYTES:
                await self._send_json(writer, 413, {"error": "payload too large"})
                return
            raw = await reader.readexactly(length) if length > 0 else b""
            authorized = self._is_authorized(headers)

            if self._bearer_token and not authorized:
                await self._send_json(writer, 401, {"error": "unauthorized"})
                return

            if path == "/api/status":
                if method != "GET":
                    await self._send_json(writer, 405, {"error": "method not allowed"})
                    return
                statuses = await asyncio.to_thread(self._current_statuses)
                await self._send_json(writer, 200, [s.to_dict() for s in statuses])
            elif path == "/api/log":
                if method != "GET":
                    await self._send_json(writer, 405, {"error": "method not allowed"})
                    return
                entries = await asyncio.to_thread(self._log_entries)
                await self._send_json(writer, 200, entries)
            elif path == "/api/control":
                if method != "POST":
                    await self._send_json(writer, 405, {"error": "method not allowed"})
                    return
                if not authorized:
                    await self._send_json(writer, 401, {"error": "unauthorized"})
                    return
                peer = writer.get_extra_info("peername")
                ip = client_ip(headers, str(peer[0]) if peer else "")
                await self._handle_control(writer, raw, ip)
            else:
                await self._send_json(writer, 404, {"error": "not found"})

        except Exception:
            logger.exception("control_api_request_error")
            with contextlib.suppress(Exception):
                await self._send_json(writer, 500, {"error": "internal server error"})
        finally:
            with contextlib.suppress(Exception):
                writer.close()
                await writer.wait_closed()

    async def _handle_control(self, writer: asyncio.StreamWriter, raw: bytes, ip: str) -> None:
        try:
            body = json.loads(raw.decode("utf-8") or "{}")
            if not isinstance(body, dict):
                raise ValueError("body must be a JSON object")
            kind = body.get("action")
            if kind not in ACTION_KINDS:
                raise ValueError("action must be 'start' or 'stop'")
            selector = Selector.from_dict(body)
        except (ValueError, TypeError) as exc:
            await self._send_json(writer, 400, {"error": str(exc)})
            return

        result = await asyncio.to_thread(
            self.dispatcher.dispatch, kind, selector, user=self.operator, ip=ip
        )
        await self._send_json(writer, OUTCOME_STATUS_CODES[result.outcome], result.to_dict())

    def _is_authorized(self, headers: dict[str, str]) -> bool:
        if not self._bearer_token:
            return False
        return headers.get("authorization", "") == f"Bearer {self._bearer_token}"

    def _current_statuses(self) -> list[ServiceStatus]:
        try:
            return load_snapshot(self.snapshot_path)
        except (OSError, ValueError, KeyError) as exc:
            logger.debug("snapshot_unavailable", extra={"error": str(exc)})
            return self.fallback_statuses()

    def _log_entries(self) -> list[dict[str, Any]]:
        if self.action_log is None:
            return []
        return [entry.to_dict() for entry in self.action_log.entries()]

    async def _read_headers(self, reader: asyncio.StreamReader) -> dict[str, str]:
        """Read HTTP headers."""
        headers: dict[str, str] = {}
        while True:
            line = await reader.readline()
            if not line or line == b"\r\n":
                break

            header_str = line.decode("utf-8").strip()
            if ":" in header_str:
                key, value = header_str.split(":", 1)
                headers[key.strip().lower()] = value.strip()

        return headers

    async def _send_json(self, writer: asyncio.StreamWriter, status_code: int, payload: Any) -> None:
        """Send HTTP response."""
        body = json.dumps(payload)
        status_message = _STATUS_MESSAGES.get(status_code, "Unknown")
        response = (
            f"HTTP/1.1 {status_code} {status_message}\r\n"
            f"Content-Type: application/json; charset=utf-8\r\n"
            f"Content-Length: {len(body.encode('utf-8'))}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
            f"{body}"
        )
        writer.write(response.encode("utf-8"))
        await writer.drain()
