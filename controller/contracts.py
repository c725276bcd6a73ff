"""Controller contracts for service declarations, status and control actions.

This module defines the records that flow through the status board: the
operator-authored service declarations, the per-cycle status records, change
events, dispatch selectors/results and action-log rows.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Literal

DetectionMethod = Literal["port-check", "systemd", "windows-service", "windows-process", "none"]
ActionKind = Literal["start", "stop"]
LogActionType = Literal["start", "stop", "status"]
DispatchOutcome = Literal["ok", "forbidden", "not_found", "unsupported", "error"]

DETECTION_METHODS: tuple[DetectionMethod, ...] = (
    "port-check",
    "systemd",
    "windows-service",
    "windows-process",
    "none",
)
ACTION_KINDS: tuple[ActionKind, ...] = ("start", "stop")


@dataclass(frozen=True)
class ServiceDeclaration:
    """Static description of a monitorable/controllable service.

    Attributes:
        name: Display name
        port: TCP port to probe (0 = none)
        service_name: OS service identifier (systemd unit or Windows service/image)
        systemd_name: Alternate identifier, used when service_name is empty
        link: Presentation link
        image: Presentation icon
        show_port: Whether the UI shows the port
        controls: Master switch for start/stop actions
        controls_run: Whether start is allowed
        controls_shut: Whether stop is allowed
        run_path: Executable launched directly instead of the service manager
        run_env: Environment overrides for run_path

    Raises:
        ValueError: If name is empty or port is negative
    """

    name: str
    port: int = 0
    service_name: str = ""
    systemd_name: str = ""
    link: str = ""
    image: str = ""
    show_port: bool = False
    controls: bool = False
    controls_run: bool = False
    controls_shut: bool = False
    run_path: str = ""
    run_env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate ServiceDeclaration configuration."""
        if not self.name:
            raise ValueError("name must not be empty")
        if self.port < 0:
            raise ValueError(f"port must be >= 0, got {self.port}")

    @property
    def unit(self) -> str:
        """Effective OS-service identifier."""
        return self.service_name or self.systemd_name

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary.

        Returns:
            Dictionary representation of ServiceDeclaration
        """
        return {
            "name": self.name,
            "port": self.port,
            "service_name": self.service_name,
            "systemd_name": self.systemd_name,
            "link": self.link,
            "image": self.image,
            "show_port": self.show_port,
            "controls": self.controls,
            "controls_run": self.controls_run,
            "controls_shut": self.controls_shut,
            "run_path": self.run_path,
            "run_env": dict(self.run_env),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ServiceDeclaration:
        """Deserialize from a services-file entry.

        Unknown keys are ignored; missing optional keys take their defaults.

        Args:
            data: Dictionary with declaration data

        Returns:
            ServiceDeclaration instance
        """
        known = {f.name for f in fields(cls)}
        kwargs = {key: value for key, value in data.items() if key in known}
        if "port" in kwargs:
            kwargs["port"] = int(kwargs["port"] or 0)
        if "run_env" in kwargs:
            kwargs["run_env"] = {str(k): str(v) for k, v in (kwargs["run_env"] or {}).items()}
        for key in ("service_name", "systemd_name", "link", "image", "run_path"):
            if key in kwargs and kwargs[key] is None:
                kwargs[key] = ""
        return cls(**kwargs)


@dataclass(frozen=True)
class ServiceStatus:
    """Status of a single declared service for one poll cycle.

    Created fresh on every aggregation pass and never mutated.

    Attributes:
        name: Display name
        port: Declared port
        unit: Effective OS-service identifier
        active: Whether the service was observed running
        detection_method: Which probe produced ``active``
        link: Presentation link
        image: Presentation icon
        show_port: Whether the UI shows the port
        controls: Master switch for start/stop actions
        controls_run: Whether start is allowed
        controls_shut: Whether stop is allowed

    Raises:
        ValueError: If name is empty or detection_method is unknown
    """

    name: str
    port: int
    unit: str
    active: bool
    detection_method: DetectionMethod
    link: str = ""
    image: str = ""
    show_port: bool = False
    controls: bool = False
    controls_run: bool = False
    controls_shut: bool = False

    def __post_init__(self) -> None:
        """Validate ServiceStatus configuration."""
        if not self.name:
            raise ValueError("name must not be empty")
        if self.detection_method not in DETECTION_METHODS:
            raise ValueError(f"unknown detection_method: {self.detection_method!r}")

    @property
    def is_systemd(self) -> bool:
        return self.detection_method == "systemd"

    @classmethod
    def from_declaration(
        cls,
        declaration: ServiceDeclaration,
        *,
        active: bool,
        detection_method: DetectionMethod,
    ) -> ServiceStatus:
        """Build a status record carrying the declaration's identity."""
        return cls(
            name=declaration.name,
            port=declaration.port,
            unit=declaration.unit,
            active=active,
            detection_method=detection_method,
            link=declaration.link,
            image=declaration.image,
            show_port=declaration.show_port,
            controls=declaration.controls,
            controls_run=declaration.controls_run,
            controls_shut=declaration.controls_shut,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary in stable snapshot field order.

        Returns:
            Dictionary representation of ServiceStatus
        """
        return {
            "name": self.name,
            "port": self.port,
            "link": self.link,
            "image": self.image,
            "show_port": self.show_port,
            "systemd_name": self.unit,
            "is_systemd": self.is_systemd,
            "active": self.active,
            "detection_method": self.detection_method,
            "controls": self.controls,
            "controls_run": self.controls_run,
            "controls_shut": self.controls_shut,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ServiceStatus:
        """Deserialize from a snapshot entry.

        Args:
            data: Dictionary with service status data

        Returns:
            ServiceStatus instance
        """
        return cls(
            name=data["name"],
            port=int(data.get("port", 0)),
            unit=data.get("systemd_name", ""),
            active=bool(data["active"]),
            detection_method=data.get("detection_method", "none"),
            link=data.get("link", ""),
            image=data.get("image", ""),
            show_port=bool(data.get("show_port", False)),
            controls=bool(data.get("controls", False)),
            controls_run=bool(data.get("controls_run", False)),
            controls_shut=bool(data.get("controls_shut", False)),
        )


@dataclass(frozen=True)
class ChangeEvent:
    """A flip in a service's active state between two consecutive polls.

    Attributes:
        key: Composite identity key ``name|port|unit``
        name: Display name
        port: Declared port
        unit: Effective OS-service identifier
        active: The newly observed state
        timestamp_ns: Detection timestamp (nanoseconds since epoch)
    """

    key: str
    name: str
    port: int
    unit: str
    active: bool
    timestamp_ns: int

    @property
    def state(self) -> str:
        return "up" if self.active else "down"


@dataclass(frozen=True)
class Selector:
    """Fields a control request may use to pick its target declaration.

    Attributes:
        name: Display name (case-insensitive)
        service_name: OS service identifier (case-insensitive)
        systemd_name: Alternate identifier (case-insensitive)
        port: Declared port (exact)
    """

    name: str = ""
    service_name: str = ""
    systemd_name: str = ""
    port: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.name or self.service_name or self.systemd_name or self.port > 0)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Selector:
        """Deserialize from a control request body."""
        return cls(
            name=str(data.get("name") or ""),
            service_name=str(data.get("service_name") or ""),
            systemd_name=str(data.get("systemd_name") or ""),
            port=int(data.get("port") or 0),
        )


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one start/stop dispatch.

    Attributes:
        outcome: Structured result kind
        kind: Requested action
        selector: Selector the request carried
        target: Resolved declaration, None when resolution failed
        detail: Human-readable detail (command output for errors)
    """

    outcome: DispatchOutcome
    kind: ActionKind
    selector: Selector
    target: ServiceDeclaration | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome == "ok"

    @property
    def log_result(self) -> str:
        """Result column for the action log (``ok`` or ``error: <detail>``)."""
        if self.ok:
            return "ok"
        return f"error: {self.detail or self.outcome}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary.

        Returns:
            Dictionary representation of DispatchResult
        """
        return {
            "outcome": self.outcome,
            "action": self.kind,
            "name": self.target.name if self.target else self.selector.name,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class ActionLogEntry:
    """One row of the CSV action log.

    Attributes:
        timestamp: When the action or change happened
        user: Acting principal
        ip: Origin address
        action: ``start``, ``stop`` or ``status``
        name: Target display name
        service_name: Target service identifier
        systemd_name: Target alternate identifier
        port: Target port
        result: ``ok``, ``error: <detail>``, or ``up``/``down`` for status changes
    """

    timestamp: datetime
    user: str
    ip: str
    action: LogActionType
    name: str
    service_name: str
    systemd_name: str
    port: int
    result: str

    def to_row(self) -> list[str]:
        """Serialize to CSV columns in header order."""
        return [
            self.timestamp.isoformat(timespec="seconds"),
            self.user,
            self.ip,
            self.action,
            self.name,
            self.service_name,
            self.systemd_name,
            str(self.port),
            self.result,
        ]

    @classmethod
    def from_row(cls, row: list[str]) -> ActionLogEntry:
        """Deserialize from CSV columns in header order."""
        if len(row) != 9:
            raise ValueError(f"expected 9 columns, got {len(row)}")
        timestamp = datetime.fromisoformat(row[0].replace("Z", "+00:00"))
        return cls(
            timestamp=timestamp,
            user=row[1],
            ip=row[2],
            action=row[3],  # type: ignore[arg-type]
            name=row[4],
            service_name=row[5],
            systemd_name=row[6],
            port=int(row[7] or 0),
            result=row[8],
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary.

        Returns:
            Dictionary representation of ActionLogEntry
        """
        return {
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "user": self.user,
            "ip": self.ip,
            "action": self.action,
            "name": self.name,
            "service_name": self.service_name,
            "systemd_name": self.systemd_name,
            "port": self.port,
            "result": self.result,
        }


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
