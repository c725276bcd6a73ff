"""Permission-gated start/stop dispatch."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING

from controller.contracts import (
    ACTION_KINDS,
    ActionKind,
    ActionLogEntry,
    DispatchResult,
    Selector,
    ServiceDeclaration,
    utc_now,
)
from controller.errors import ActionForbidden, CommandFailure, TargetNotFound, UnsupportedAction

if TYPE_CHECKING:
    from controller.action_log import ActionLog
    from controller.platforms import Platform

logger = logging.getLogger(__name__)


def resolve_target(
    selector: Selector,
    declarations: Sequence[ServiceDeclaration],
) -> ServiceDeclaration:
    """Find the declaration a selector refers to.

    Fields are tried in order name, service_name, systemd_name, port; for each
    field the declarations are scanned in order and the first match wins.
    Names compare case-insensitively, the port exactly.

    Raises:
        TargetNotFound: If no field matches any declaration
    """
    if selector.name:
        wanted = selector.name.lower()
        for declaration in declarations:
            if declaration.name.lower() == wanted:
                return declaration
    if selector.service_name:
        wanted = selector.service_name.lower()
        for declaration in declarations:
            if declaration.service_name and declaration.service_name.lower() == wanted:
                return declaration
    if selector.systemd_name:
        wanted = selector.systemd_name.lower()
        for declaration in declarations:
            if declaration.systemd_name and declaration.systemd_name.lower() == wanted:
                return declaration
    if selector.port > 0:
        for declaration in declarations:
            if declaration.port == selector.port:
                return declaration
    raise TargetNotFound()


def check_permission(declaration: ServiceDeclaration, kind: ActionKind) -> None:
    """Apply the gate in order: controls, actionability, then the per-kind flag.

    A declaration with neither a unit nor a run_path has nothing to act on, so
    it is reported as unsupported before the per-kind flags are consulted.

    Raises:
        ActionForbidden: If the declaration does not allow ``kind``
        UnsupportedAction: If there is no unit and no run_path
    """
    if not declaration.controls:
        raise ActionForbidden()
    if not declaration.unit and not declaration.run_path:
        raise UnsupportedAction()
    if kind == "start" and not declaration.controls_run:
        raise ActionForbidden()
    if kind == "stop" and not declaration.controls_shut:
        raise ActionForbidden()


class ActionDispatcher:
    """Resolves, authorizes and executes control requests.

    Every call produces exactly one audit entry. A successful start/stop also
    fires ``on_success`` so the snapshot is refreshed before the next poll.

    Attributes:
        declarations: Ordered service declarations
        platform: Platform used to execute start/stop
        action_log: Audit log (None disables auditing)
    """

    def __init__(
        self,
        declarations: Sequence[ServiceDeclaration],
        platform: Platform,
        *,
        action_log: ActionLog | None = None,
        on_success: Callable[[], object] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.declarations = list(declarations)
        self.platform = platform
        self.action_log = action_log
        self._on_success = on_success
        self._clock = clock

    def dispatch(
        self,
        kind: ActionKind,
        selector: Selector,
        *,
        user: str = "",
        ip: str = "",
    ) -> DispatchResult:
        """Execute ``kind`` against the declaration ``selector`` resolves to.

        Args:
            kind: ``start`` or ``stop``
            selector: Target selector
            user: Acting principal, recorded in the audit log
            ip: Origin address, recorded in the audit log

        Returns:
            DispatchResult with outcome ok, forbidden, not_found, unsupported or error

        Raises:
            ValueError: If kind is not ``start`` or ``stop``
        """
        if kind not in ACTION_KINDS:
            raise ValueError(f"unknown action kind: {kind!r}")

        result = self._execute(kind, selector)
        logger.info(
            "dispatch_completed",
            extra={
                "action": kind,
                "service": result.target.name if result.target else selector.name,
                "outcome": result.outcome,
                "detail": result.detail,
                "user": user,
                "ip": ip,
            },
        )
        self._audit(result, user=user, ip=ip)

        if result.ok and self._on_success is not None:
            try:
                self._on_success()
            except Exception as exc:
                logger.warning("post_dispatch_refresh_failed", extra={"error": str(exc)})
        return result

    def _execute(self, kind: ActionKind, selector: Selector) -> DispatchResult:
        target: ServiceDeclaration | None = None
        try:
            target = resolve_target(selector, self.declarations)
            check_permission(target, kind)
            if kind == "start":
                self.platform.start(target)
            else:
                self.platform.stop(target)
        except TargetNotFound as exc:
            return DispatchResult("not_found", kind, selector, None, str(exc))
        except ActionForbidden as exc:
            return DispatchResult("forbidden", kind, selector, target, str(exc))
        except UnsupportedAction as exc:
            return DispatchResult("unsupported", kind, selector, target, str(exc))
        except CommandFailure as exc:
            return DispatchResult("error", kind, selector, target, exc.output or "command failed")
        except Exception as exc:
            logger.exception("dispatch_unexpected_error", extra={"action": kind})
            return DispatchResult("error", kind, selector, target, str(exc) or type(exc).__name__)
        return DispatchResult("ok", kind, selector, target)

    def _audit(self, result: DispatchResult, *, user: str, ip: str) -> None:
        if self.action_log is None:
            return
        target = result.target
        selector = result.selector
        entry = ActionLogEntry(
            timestamp=self._clock(),
            user=user,
            ip=ip,
            action=result.kind,
            name=target.name if target else selector.name,
            service_name=target.service_name if target else selector.service_name,
            systemd_name=target.systemd_name if target else selector.systemd_name,
            port=target.port if target else selector.port,
            result=result.log_result,
        )
        self.action_log.record(entry)
