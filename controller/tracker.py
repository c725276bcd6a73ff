"""Change detection between consecutive status passes."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable

from controller.contracts import ChangeEvent, ServiceStatus


def status_key(status: ServiceStatus) -> str:
    """Composite identity key ``name|port|unit``."""
    return f"{status.name}|{status.port}|{status.unit}"


def diff_statuses(
    state: dict[str, bool],
    current: Iterable[ServiceStatus],
    *,
    timestamp_ns: int,
) -> list[ChangeEvent]:
    """Diff ``current`` against ``state``, updating ``state`` in place.

    First observation of a key records it without an event. A flip updates the
    entry and emits one event. Keys missing from ``current`` are kept as-is.
    """
    events: list[ChangeEvent] = []
    for status in current:
        key = status_key(status)
        previous = state.get(key)
        if previous is None:
            state[key] = status.active
            continue
        if previous != status.active:
            state[key] = status.active
            events.append(
                ChangeEvent(
                    key=key,
                    name=status.name,
                    port=status.port,
                    unit=status.unit,
                    active=status.active,
                    timestamp_ns=timestamp_ns,
                )
            )
    return events


class ChangeTracker:
    """Owns the last-observed liveness per service identity.

    Created once at startup and shared by the poll loop and manual checks;
    every access goes through an internal lock. Never persisted, so a restart
    starts from an empty map and is not reported as a change.
    """

    def __init__(self, *, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock or time.time_ns
        self._lock = threading.Lock()
        self._state: dict[str, bool] = {}

    def diff(self, current: Iterable[ServiceStatus]) -> list[ChangeEvent]:
        with self._lock:
            return diff_statuses(self._state, current, timestamp_ns=self._clock())

    def snapshot(self) -> dict[str, bool]:
        """Copy of the current key -> active map."""
        with self._lock:
            return dict(self._state)

    def __len__(self) -> int:
        with self._lock:
            return len(self._state)
