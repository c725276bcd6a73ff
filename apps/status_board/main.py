"""Status board service main entry point.

Loads the service declarations once, runs the status poll loop in the
background and serves the JSON control API until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from apps.status_board.api import ControlApi
from controller.action_log import ActionLog
from controller.dispatcher import ActionDispatcher
from controller.monitor import StatusMonitor
from controller.platforms import BasePlatform, select_platform
from core.config import Config, load_config, load_services
from core.logging import setup_console_logging, setup_json_logging

logger = logging.getLogger(__name__)


@dataclass
class StatusBoard:
    """Wired-up components sharing one platform, tracker and log."""

    config: Config
    platform: BasePlatform
    monitor: StatusMonitor
    dispatcher: ActionDispatcher
    action_log: ActionLog


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(description="Service status board")
    parser.add_argument(
        "--config-root",
        default=".",
        help="Directory containing config/ (defaults to current working directory)",
    )
    parser.add_argument(
        "--services",
        default=None,
        help="Override the services declarations file",
    )
    parser.add_argument("--bind-host", default=None, help="Override api.bind_host")
    parser.add_argument("--port", type=int, default=None, help="Override api.port")
    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Run only the status poll loop",
    )
    return parser


def build_board(
    config: Config,
    *,
    config_root: Path,
    services_file: Path | None = None,
    platform: BasePlatform | None = None,
    background_refresh: bool = True,
) -> StatusBoard:
    """Load declarations and wire monitor, dispatcher and action log together.

    Args:
        config: Loaded configuration
        config_root: Base directory for relative paths
        services_file: Declarations file override
        platform: Platform override (defaults to the host platform)
        background_refresh: Refresh after a successful dispatch in a thread instead
            of inline

    Returns:
        StatusBoard with all components constructed
    """
    services_path = services_file or config.paths.services_file
    if not services_path.is_absolute():
        services_path = config_root / services_path
    declarations = load_services(services_path)

    selected = platform or select_platform(
        dial_timeout=config.monitor.dial_timeout,
        command_timeout=config.monitor.command_timeout,
    )
    action_log = ActionLog(
        _resolve(config_root, config.paths.log_file),
        max_bytes=config.action_log.max_bytes,
    )
    monitor = StatusMonitor(
        declarations,
        selected,
        snapshot_path=_resolve(config_root, config.paths.snapshot_path),
        action_log=action_log,
        interval_seconds=config.monitor.status_interval,
    )
    dispatcher = ActionDispatcher(
        declarations,
        selected,
        action_log=action_log,
        on_success=monitor.request_refresh if background_refresh else monitor.run_cycle,
    )
    logger.info(
        "status_board_configured",
        extra={"services": len(declarations), "platform": selected.name},
    )
    return StatusBoard(config, selected, monitor, dispatcher, action_log)


def _resolve(root: Path, path: Path) -> Path:
    return path if path.is_absolute() else root / path


async def run_board(
    config_root: str,
    *,
    services_file: str | None = None,
    bind_host: str | None = None,
    port: int | None = None,
    api_enabled: bool = True,
) -> None:
    """Run the poll loop and (optionally) the control API until cancelled."""
    root = Path(config_root)
    config = load_config(root)
    if config.logging.format == "json":
        setup_json_logging(str(_resolve(root, config.logging.log_dir)), config.logging.level)
    else:
        setup_console_logging(config.logging.level)

    board = build_board(
        config,
        config_root=root,
        services_file=Path(services_file) if services_file else None,
    )
    board.monitor.write_placeholders()

    api: ControlApi | None = None
    if api_enabled and config.api.enabled:
        api = ControlApi(
            board.dispatcher,
            snapshot_path=_resolve(root, config.paths.import_snapshot_path),
            fallback_statuses=lambda: board.monitor.latest,
            action_log=board.action_log,
            port=port if port is not None else config.api.port,
            bind_host=bind_host or config.api.bind_host,
            operator=config.api.operator,
        )
        await api.start()

    try:
        await board.monitor.run()
    finally:
        board.monitor.stop()
        if api is not None:
            await api.stop()
        logger.info("status_board_shutdown")


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command line arguments

    Returns:
        Exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        asyncio.run(
            run_board(
                args.config_root,
                services_file=args.services,
                bind_host=args.bind_host,
                port=args.port,
                api_enabled=not args.no_api,
            )
        )
    except KeyboardInterrupt:
        return 0

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
