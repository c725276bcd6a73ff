"""Periodic status monitoring: aggregate -> diff -> snapshot."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from controller.aggregator import aggregate
from controller.contracts import ActionLogEntry, ChangeEvent, ServiceDeclaration, ServiceStatus
from controller.errors import PersistenceFailure
from controller.snapshot import placeholder_statuses, write_snapshot
from controller.tracker import ChangeTracker

if TYPE_CHECKING:
    from controller.action_log import ActionLog
    from controller.platforms import Platform

logger = logging.getLogger(__name__)

MONITOR_USER = "monitor"
MONITOR_IP = "127.0.0.1"


class StatusMonitor:
    """Runs status cycles on a fixed interval and on demand.

    Cycles are serialized with a lock, so a manual check (e.g. after a
    start/stop) never overlaps the scheduled one while touching the tracker or
    the snapshot.

    Attributes:
        declarations: Ordered service declarations
        platform: Platform used for probing
        snapshot_path: Where the JSON snapshot is written
        tracker: Change tracker owned by this monitor
        action_log: Audit log receiving status-change rows (None disables)
        interval_seconds: Delay between scheduled cycles
    """

    def __init__(
        self,
        declarations: Sequence[ServiceDeclaration],
        platform: Platform,
        *,
        snapshot_path: Path,
        tracker: ChangeTracker | None = None,
        action_log: ActionLog | None = None,
        interval_seconds: float = 5.0,
        on_change: Callable[[ChangeEvent], object] | None = None,
    ) -> None:
        self.declarations = list(declarations)
        self.platform = platform
        self.snapshot_path = snapshot_path
        self.tracker = tracker or ChangeTracker()
        self.action_log = action_log
        self.interval_seconds = interval_seconds
        self._on_change = on_change
        self._cycle_lock = threading.Lock()
        self._latest: list[ServiceStatus] = placeholder_statuses(self.declarations)
        self._stop_event: asyncio.Event | None = None
        self._running = False

    @property
    def latest(self) -> list[ServiceStatus]:
        """Most recent status list (placeholders before the first cycle)."""
        return list(self._latest)

    def write_placeholders(self) -> None:
        """Publish an all-inactive snapshot so readers have something at startup."""
        self._write(self._latest)

    def run_cycle(self) -> list[ServiceStatus]:
        """Run one aggregate -> diff -> snapshot pass.

        Returns:
            The freshly aggregated statuses
        """
        with self._cycle_lock:
            statuses = aggregate(self.declarations, self.platform)
            events = self.tracker.diff(statuses)
            for event in events:
                self._handle_change(event)
            self._latest = statuses
            self._write(statuses)
        return statuses

    def request_refresh(self) -> threading.Thread:
        """Run a cycle in a background thread without blocking the caller."""
        thread = threading.Thread(target=self._refresh_safely, name="status-refresh", daemon=True)
        thread.start()
        return thread

    async def run(self) -> None:
        """Poll until :meth:`stop` is called.

        Cycle errors are logged and the loop continues with the next cycle.
        """
        self._stop_event = asyncio.Event()
        self._running = True
        logger.info(
            "status_monitor_started",
            extra={
                "interval_seconds": self.interval_seconds,
                "services": len(self.declarations),
                "snapshot_path": str(self.snapshot_path),
            },
        )
        try:
            while self._running:
                try:
                    await asyncio.to_thread(self.run_cycle)
                except Exception:
                    logger.exception("status_cycle_failed")
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False
            logger.info("status_monitor_stopped")

    def stop(self) -> None:
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

    # ------------------------------------------------------------------

    def _refresh_safely(self) -> None:
        try:
            self.run_cycle()
        except Exception:
            logger.exception("status_refresh_failed")

    def _write(self, statuses: Sequence[ServiceStatus]) -> None:
        try:
            write_snapshot(statuses, self.snapshot_path)
        except PersistenceFailure as exc:
            logger.warning("snapshot_write_failed", extra={"error": str(exc)})

    def _handle_change(self, event: ChangeEvent) -> None:
        logger.info(
            "service_status_changed",
            extra={
                "service": event.name,
                "port": event.port,
                "unit": event.unit,
                "state": event.state,
            },
        )
        if self.action_log is not None:
            self.action_log.record(
                ActionLogEntry(
                    timestamp=datetime.fromtimestamp(event.timestamp_ns / 1e9, tz=timezone.utc),
                    user=MONITOR_USER,
                    ip=MONITOR_IP,
                    action="status",
                    name=event.name,
                    service_name=event.unit,
                    systemd_name=event.unit,
                    port=event.port,
                    result=event.state,
                )
            )
        if self._on_change is not None:
            self._on_change(event)
