"""Controller package for service status detection and start/stop control."""

from controller.contracts import (
    ActionKind,
    ActionLogEntry,
    ChangeEvent,
    DetectionMethod,
    DispatchOutcome,
    DispatchResult,
    Selector,
    ServiceDeclaration,
    ServiceStatus,
)
from controller.dispatcher import ActionDispatcher
from controller.monitor import StatusMonitor
from controller.platforms import Platform, select_platform
from controller.tracker import ChangeTracker

__all__ = [
    "ActionDispatcher",
    "ActionKind",
    "ActionLogEntry",
    "ChangeEvent",
    "ChangeTracker",
    "DetectionMethod",
    "DispatchOutcome",
    "DispatchResult",
    "Platform",
    "Selector",
    "ServiceDeclaration",
    "ServiceStatus",
    "StatusMonitor",
    "select_platform",
]
