"""Status aggregation: declarations in, status records out."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from controller.contracts import DetectionMethod, ServiceDeclaration, ServiceStatus

if TYPE_CHECKING:
    from controller.platforms import Platform

logger = logging.getLogger(__name__)


def aggregate(
    declarations: Sequence[ServiceDeclaration],
    platform: Platform,
) -> list[ServiceStatus]:
    """Probe every declaration once, preserving input order.

    A probe that raises degrades only its own entry to inactive; the rest of
    the batch is still evaluated.

    Args:
        declarations: Ordered service declarations
        platform: Platform used for probing

    Returns:
        One fresh ServiceStatus per declaration
    """
    statuses: list[ServiceStatus] = []
    for declaration in declarations:
        active: bool
        method: DetectionMethod
        try:
            active, method = platform.probe(declaration)
        except Exception as exc:
            logger.warning(
                "probe_failed",
                extra={"service": declaration.name, "error": str(exc)},
            )
            active, method = False, "none"
        statuses.append(
            ServiceStatus.from_declaration(declaration, active=active, detection_method=method)
        )
    return statuses
