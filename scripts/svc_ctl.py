from __future__ import annotations

import argparse
import json
from pathlib import Path

from apps.status_board.main import build_board
from controller.contracts import Selector
from core.config import load_config

CLI_USER = "cli"
CLI_IP = "127.0.0.1"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Status board control helper")
    parser.add_argument(
        "--config-root",
        default=".",
        help="Directory containing config/ (defaults to current working directory)",
    )
    parser.add_argument("--services", help="Override the services declarations file")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Run one status pass and print it as JSON")
    for name in ("start", "stop"):
        cmd = sub.add_parser(name)
        cmd.add_argument("--name", default="", help="Service display name")
        cmd.add_argument("--service-name", default="", help="OS service identifier")
        cmd.add_argument("--systemd-name", default="", help="Alternate service identifier")
        cmd.add_argument("--port", type=int, default=0, help="Declared port")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    root = Path(args.config_root)
    cfg = load_config(root)
    board = build_board(
        cfg,
        config_root=root,
        services_file=Path(args.services) if args.services else None,
        background_refresh=False,
    )

    if args.command == "status":
        statuses = board.monitor.run_cycle()
        print(json.dumps([status.to_dict() for status in statuses], indent=2))
        return 0

    selector = Selector(
        name=args.name,
        service_name=args.service_name,
        systemd_name=args.systemd_name,
        port=args.port,
    )
    if selector.is_empty:
        parser.error("a selector is required (--name, --service-name, --systemd-name or --port)")

    result = board.dispatcher.dispatch(args.command, selector, user=CLI_USER, ip=CLI_IP)
    target = result.to_dict()["name"]
    print(f"{result.outcome.upper()} {args.command} {target} {result.detail}".rstrip())
    return 0 if result.ok else 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
