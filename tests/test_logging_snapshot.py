from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from core.logging import setup_console_logging, setup_json_logging


def read_last_line(path: Path) -> str:
    with path.open("r", encoding="utf-8") as fh:
        lines = fh.readlines()
    return lines[-1].strip()


def _flush() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


def test_json_logging_snapshot(tmp_path: Path) -> None:
    logger = setup_json_logging(str(tmp_path))

    logger.info("hello", k=1)
    _flush()

    payload = json.loads(read_last_line(tmp_path / "status_board.ndjson"))

    assert payload["event"] == "hello"
    assert payload["k"] == 1
    assert payload["level"] == "info"


def test_stdlib_extra_is_flattened(tmp_path: Path) -> None:
    setup_json_logging(str(tmp_path), filename="board.ndjson")

    logging.getLogger("controller.monitor").info(
        "service_status_changed", extra={"service": "Web", "state": "up"}
    )
    _flush()

    payload = json.loads(read_last_line(tmp_path / "board.ndjson"))

    assert payload["event"] == "service_status_changed"
    assert payload["service"] == "Web"
    assert payload["state"] == "up"
    assert payload["logger"] == "controller.monitor"


def test_level_filters_records(tmp_path: Path) -> None:
    setup_json_logging(str(tmp_path), level="warning")

    logging.getLogger("test").info("dropped")
    logging.getLogger("test").warning("kept")
    _flush()

    lines = (tmp_path / "status_board.ndjson").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["event"] for line in lines] == ["kept"]


def test_console_logging(capsys: pytest.CaptureFixture[str]) -> None:
    setup_console_logging("INFO")

    logging.getLogger("test").info("platform_selected", extra={"platform": "linux"})
    _flush()

    err = capsys.readouterr().err
    assert "platform_selected" in err
    assert "linux" in err
