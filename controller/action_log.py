"""Reverse-chronological, size-bounded CSV audit log.

New rows are inserted directly after the header. When a positive byte limit is
configured, rows are dropped from the tail (oldest first) back to a full-line
boundary. Every rewrite goes through a temp file and a rename.
"""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path

from controller.contracts import ActionLogEntry
from controller.errors import PersistenceFailure
from core.atomic_write import path_lock, write_atomic

logger = logging.getLogger(__name__)

LOG_FIELDS = (
    "timestamp",
    "user",
    "ip",
    "action",
    "name",
    "service_name",
    "systemd_name",
    "port",
    "result",
)
LOG_HEADER = ",".join(LOG_FIELDS) + "\n"
_HEADER_BYTES = LOG_HEADER.encode("utf-8")


def format_row(entry: ActionLogEntry) -> str:
    """Encode one entry as a single CSV line.

    Embedded CR/LF are folded to spaces so a row never spans lines; commas and
    quotes are escaped with standard CSV quoting.
    """
    columns = [value.replace("\r", " ").replace("\n", " ") for value in entry.to_row()]
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(columns)
    return buf.getvalue()


def build_content(existing: bytes | None, row: str, max_bytes: int = 0) -> bytes:
    """Return the new file content with ``row`` prepended to the body.

    Content without the expected header is discarded and replaced by a fresh
    header. The header line is always kept, even if it alone exceeds
    ``max_bytes``.
    """
    if existing is None or not existing.startswith(_HEADER_BYTES):
        existing = _HEADER_BYTES

    head = _HEADER_BYTES
    body = row.encode("utf-8") + existing[len(head) :]
    content = head + body
    if max_bytes > 0 and len(content) > max_bytes:
        budget = max(max_bytes - len(head), 0)
        body = body[:budget]
        cut = body.rfind(b"\n")
        body = body[: cut + 1] if cut >= 0 else b""
        content = head + body
    return content


def append_entry(path: str | Path, entry: ActionLogEntry, max_bytes: int = 0) -> None:
    """Insert ``entry`` right after the header of the log at ``path``.

    Raises:
        PersistenceFailure: If the log could not be read or rewritten
    """
    log_path = Path(path)
    row = format_row(entry)
    with path_lock(log_path):
        try:
            existing: bytes | None = log_path.read_bytes()
        except FileNotFoundError:
            existing = None
        except OSError as exc:
            raise PersistenceFailure(f"action log read from {log_path} failed: {exc}") from exc

        content = build_content(existing, row, max_bytes)
        try:
            write_atomic(log_path, content)
        except OSError as exc:
            raise PersistenceFailure(f"action log write to {log_path} failed: {exc}") from exc


def read_entries(path: str | Path) -> list[ActionLogEntry]:
    """Parse the log newest-first; a missing or header-less file yields []."""
    log_path = Path(path)
    try:
        text = log_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    if not text.startswith(LOG_HEADER):
        return []

    entries: list[ActionLogEntry] = []
    for row in csv.reader(io.StringIO(text[len(LOG_HEADER) :])):
        if not row:
            continue
        try:
            entries.append(ActionLogEntry.from_row(row))
        except ValueError as exc:
            logger.warning("action_log_row_skipped", extra={"row": row, "error": str(exc)})
    return entries


class ActionLog:
    """Action log bound to one file and byte limit.

    Attributes:
        path: CSV file location
        max_bytes: Size bound (0 = unbounded)
    """

    def __init__(self, path: str | Path, max_bytes: int = 0) -> None:
        self.path = Path(path)
        self.max_bytes = max_bytes

    def append(self, entry: ActionLogEntry) -> None:
        """Append, raising PersistenceFailure on error."""
        append_entry(self.path, entry, self.max_bytes)

    def record(self, entry: ActionLogEntry) -> bool:
        """Best-effort append: failures are logged, never raised."""
        try:
            self.append(entry)
        except PersistenceFailure as exc:
            logger.warning(
                "action_log_write_failed",
                extra={"path": str(self.path), "error": str(exc), "action": entry.action},
            )
            return False
        return True

    def entries(self) -> list[ActionLogEntry]:
        return read_entries(self.path)
