from __future__ import annotations

import contextlib
import os
import threading
from collections.abc import Iterator
from pathlib import Path

_locks_guard = threading.Lock()
_path_locks: dict[str, threading.RLock] = {}


@contextlib.contextmanager
def path_lock(path: str | Path) -> Iterator[None]:
    """Serialize in-process writers of the same target path (re-entrant)."""

    key = os.path.abspath(path)
    with _locks_guard:
        lock = _path_locks.setdefault(key, threading.RLock())
    with lock:
        yield


def write_atomic(path: str | Path, data: bytes) -> None:
    """Write ``data`` to ``path + ".tmp"`` then rename it over ``path``.

    The rename is the only step that exposes new content. On any failure the
    temporary file is removed and the previous file is left untouched.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_name(target.name + ".tmp")
    with path_lock(target):
        _replace_via(tmp_path, target, data)


def _replace_via(tmp_path: Path, target: Path, data: bytes) -> None:
    try:
        with tmp_path.open("wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, target)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp_path.unlink(missing_ok=True)
        raise
