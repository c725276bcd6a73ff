"""Entry point for status board module."""

from __future__ import annotations

from apps.status_board.main import main

if __name__ == "__main__":
    raise SystemExit(main())
