from __future__ import annotations

import json
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from controller.contracts import ServiceStatus
from controller.errors import PersistenceFailure
from controller.snapshot import (
    load_snapshot,
    placeholder_statuses,
    serialize_statuses,
    write_snapshot,
)
from tests.utils import make_declaration


def _statuses(active: bool, count: int = 20) -> list[ServiceStatus]:
    return [
        ServiceStatus(
            name=f"svc-{index}",
            port=9000 + index,
            unit="",
            active=active,
            detection_method="port-check",
        )
        for index in range(count)
    ]


def test_write_and_load(tmp_path: Path) -> None:
    path = tmp_path / "run" / "status.json"
    statuses = _statuses(True, count=2)

    write_snapshot(statuses, path)

    assert load_snapshot(path) == statuses
    assert not (tmp_path / "run" / "status.json.tmp").exists()


def test_serialized_payload_is_array(tmp_path: Path) -> None:
    data = json.loads(serialize_statuses(_statuses(False, count=1)))

    assert isinstance(data, list)
    assert data[0]["name"] == "svc-0"
    assert data[0]["active"] is False


def test_load_rejects_non_array(tmp_path: Path) -> None:
    path = tmp_path / "status.json"
    path.write_text('{"name": "x"}', encoding="utf-8")

    with pytest.raises(ValueError, match="JSON array"):
        load_snapshot(path)


def test_failed_write_keeps_previous_snapshot(tmp_path: Path) -> None:
    path = tmp_path / "status.json"
    write_snapshot(_statuses(True, count=1), path)
    before = path.read_bytes()

    with patch("core.atomic_write.os.replace", side_effect=OSError("read-only")):
        with pytest.raises(PersistenceFailure, match="read-only"):
            write_snapshot(_statuses(False, count=3), path)

    assert path.read_bytes() == before
    assert not (tmp_path / "status.json.tmp").exists()


def test_readers_never_see_partial_snapshot(tmp_path: Path) -> None:
    path = tmp_path / "status.json"
    write_snapshot(_statuses(False), path)
    stop = threading.Event()
    errors: list[str] = []

    def writer() -> None:
        flag = True
        while not stop.is_set():
            write_snapshot(_statuses(flag), path)
            flag = not flag

    def reader() -> None:
        for _ in range(200):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, FileNotFoundError) as exc:
                errors.append(str(exc))
                continue
            if len(data) != 20:
                errors.append(f"unexpected length {len(data)}")

    writers = [threading.Thread(target=writer) for _ in range(2)]
    for thread in writers:
        thread.start()
    try:
        reader()
    finally:
        stop.set()
        for thread in writers:
            thread.join()

    assert errors == []


def test_placeholder_statuses_inactive() -> None:
    decls = [make_declaration("a", port=1), make_declaration("b", service_name="svc-b")]

    placeholders = placeholder_statuses(decls)

    assert [status.name for status in placeholders] == ["a", "b"]
    assert all(not status.active for status in placeholders)
    assert all(status.detection_method == "none" for status in placeholders)
    assert placeholders[1].unit == "svc-b"
