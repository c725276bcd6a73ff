"""Status snapshot persistence.

The snapshot is a JSON array of status records. It is only ever replaced by an
atomic rename, so readers polling the file never see a partial write.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from pathlib import Path

from controller.contracts import ServiceDeclaration, ServiceStatus
from controller.errors import PersistenceFailure
from core.atomic_write import write_atomic


def serialize_statuses(statuses: Iterable[ServiceStatus]) -> bytes:
    """Encode statuses as indented JSON in stable field order."""
    payload = [status.to_dict() for status in statuses]
    return (json.dumps(payload, indent=2) + "\n").encode("utf-8")


def write_snapshot(statuses: Sequence[ServiceStatus], path: str | Path) -> None:
    """Persist ``statuses`` atomically at ``path``.

    Raises:
        PersistenceFailure: If the temp write or the rename failed; the previous
            snapshot (if any) is left untouched
    """
    data = serialize_statuses(statuses)
    try:
        write_atomic(path, data)
    except OSError as exc:
        raise PersistenceFailure(f"snapshot write to {path} failed: {exc}") from exc


def load_snapshot(path: str | Path) -> list[ServiceStatus]:
    """Read a snapshot back into status records.

    Raises:
        FileNotFoundError: If no snapshot has been written yet
        ValueError: If the file is not a JSON array of status objects
    """
    text = Path(path).read_text(encoding="utf-8")
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError(f"snapshot {path} must hold a JSON array")
    return [ServiceStatus.from_dict(item) for item in data]


def placeholder_statuses(declarations: Iterable[ServiceDeclaration]) -> list[ServiceStatus]:
    """Inactive statuses used until the first live pass has completed."""
    return [
        ServiceStatus.from_declaration(declaration, active=False, detection_method="none")
        for declaration in declarations
    ]
