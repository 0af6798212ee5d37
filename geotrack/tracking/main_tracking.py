"""Tracker entry point.

Subcommands:
    run         Start a tracking session and serve the HTTP API until SIGINT/SIGTERM.
    show-path   Print the durable path log.
    clear-path  Erase the durable path log.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Optional

from geotrack.cli.common import (
    add_common_cli_arguments,
    coordinate_pair,
    install_exception_handlers,
    install_signal_handlers,
    log_shutdown,
    log_startup,
    positive_float,
    positive_int,
)
from geotrack.core.api import APIServer
from geotrack.core.config_manager import get_config_manager
from geotrack.core.logging_config import configure_logging
from geotrack.core.logging_utils import get_module_logger
from geotrack.core.paths import (
    CONFIG_FILENAME,
    DEFERRED_SYNC_FILENAME,
    LOG_FILENAME,
    STORE_DIRNAME,
    USER_STATE_DIR,
)

from .api import TrackingAPIController, setup_tracking_routes
from .config import SOURCE_CHOICES, TrackerConfig
from .tracking_core import (
    BackgroundExecutionCoordinator,
    DiagnosticLog,
    JsonFileKeyValueStore,
    PathStore,
    PositionSource,
    SessionSnapshot,
    SessionState,
    StorageFailure,
    SystemBackgroundPlatform,
    TrackingSessionController,
)
from .tracking_core.sources import NMEAPositionSource, ReplayPositionSource, SerialLineTransport

logger = get_module_logger("MainTracking")


# =============================================================================
# Argument parsing
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="geotrack", description="Continuous location tracking")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Track position and serve the HTTP API")
    add_common_cli_arguments(run_parser)
    run_parser.add_argument("--source", choices=SOURCE_CHOICES, default=None, help="Position source")
    run_parser.add_argument("--port", type=str, default=None, help="Serial port of the NMEA receiver")
    run_parser.add_argument("--baud-rate", dest="baud_rate", type=positive_int, default=None, help="Serial baud rate")
    run_parser.add_argument("--replay-file", dest="replay_file", type=Path, default=None, help="Track file for the replay source")
    run_parser.add_argument(
        "--replay-interval",
        dest="replay_interval",
        type=positive_float,
        default=None,
        help="Seconds between replayed fixes",
    )
    run_parser.add_argument("--api-host", dest="api_host", type=str, default=None, help="HTTP API bind address")
    run_parser.add_argument("--api-port", dest="api_port", type=positive_int, default=None, help="HTTP API port")
    run_parser.add_argument("--no-api", dest="no_api", action="store_true", default=False, help="Do not start the HTTP API")
    run_parser.add_argument(
        "--threshold",
        type=positive_float,
        default=None,
        help="Movement threshold in degrees on either axis",
    )
    run_parser.add_argument(
        "--center",
        type=coordinate_pair,
        default=None,
        metavar="LAT,LON",
        help="Map centre reported before the first fix",
    )

    show_parser = subparsers.add_parser("show-path", help="Print the stored path")
    add_common_cli_arguments(show_parser)
    show_parser.add_argument("--limit", type=positive_int, default=None, help="Only print the newest N points")
    show_parser.add_argument("--json", dest="as_json", action="store_true", default=False, help="Print JSON")

    clear_parser = subparsers.add_parser("clear-path", help="Erase the stored path")
    add_common_cli_arguments(clear_parser)
    clear_parser.add_argument("--yes", action="store_true", default=False, help="Do not ask for confirmation")

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def resolve_state_dir(args: argparse.Namespace) -> Path:
    state_dir = getattr(args, "state_dir", None)
    return Path(state_dir).expanduser() if state_dir is not None else USER_STATE_DIR


async def load_tracker_config(args: argparse.Namespace) -> TrackerConfig:
    """Read the config file and apply CLI overrides."""
    state_dir = resolve_state_dir(args)
    config_path = args.config if args.config is not None else state_dir / CONFIG_FILENAME
    values = await get_config_manager().read_config_async(Path(config_path))
    if args.state_dir is not None:
        values.setdefault("store_dir", str(state_dir / STORE_DIRNAME))
    return TrackerConfig.from_config(values, args)


# =============================================================================
# Wiring
# =============================================================================


def build_source(config: TrackerConfig) -> PositionSource:
    if config.source == "replay":
        if config.replay_file is None:
            raise ValueError("The replay source needs a track file (--replay-file or replay_file)")
        return ReplayPositionSource(config.replay_file, config.replay_interval_s, loop=config.replay_loop)

    transport = SerialLineTransport(config.serial_port, config.baud_rate)
    return NMEAPositionSource(transport, reconnect_delay=config.reconnect_delay_s)


def build_path_store(config: TrackerConfig) -> PathStore:
    return PathStore(JsonFileKeyValueStore(config.store_dir))


def build_controller(config: TrackerConfig, state_dir: Path) -> TrackingSessionController:
    coordinator = BackgroundExecutionCoordinator(
        SystemBackgroundPlatform(marker_path=state_dir / DEFERRED_SYNC_FILENAME),
        keep_alive_enabled=config.keep_alive,
        deferred_sync_enabled=config.deferred_sync,
    )
    return TrackingSessionController(
        build_source(config),
        build_path_store(config),
        coordinator,
        threshold_degrees=config.threshold_degrees,
        request=config.position_request,
        diagnostics=DiagnosticLog(config.diagnostic_lines, logger=get_module_logger("Diagnostics")),
        center=config.center,
    )


class _StateChangeLogger:
    """Observer that logs state transitions and new path points."""

    def __init__(self) -> None:
        self._state: Optional[SessionState] = None
        self._points = 0

    def __call__(self, snapshot: SessionSnapshot) -> None:
        if snapshot.state is not self._state:
            self._state = snapshot.state
            logger.info("Session state: %s", snapshot.state.value)
        if len(snapshot.path) != self._points:
            self._points = len(snapshot.path)
            logger.debug("Path now has %d points", self._points)


# =============================================================================
# Commands
# =============================================================================


async def run_tracker(config: TrackerConfig, state_dir: Path) -> int:
    controller = build_controller(config, state_dir)
    controller.add_observer(_StateChangeLogger())

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    remove_signal_handlers = install_signal_handlers(shutdown_event, loop, logger)
    install_exception_handlers(logger, loop)

    api_server: Optional[APIServer] = None
    if config.api_enabled:
        api_server = APIServer(
            TrackingAPIController(controller),
            host=config.api_host,
            port=config.api_port,
            route_setups=[setup_tracking_routes],
        )
        try:
            await api_server.start()
        except OSError as exc:
            logger.error("API server could not bind %s:%d: %s", config.api_host, config.api_port, exc)
            api_server = None

    try:
        await controller.start()
        if controller.state is SessionState.ERROR and api_server is None:
            error = controller.last_error
            logger.error("Tracking could not start: %s", error.message if error else "unknown error")
            return 1
        await shutdown_event.wait()
        logger.info("Shutdown requested")
    finally:
        await controller.close()
        await controller.source.close()
        if api_server is not None:
            await api_server.stop()
        remove_signal_handlers()

    logger.info("Session ended with %d recorded points", len(controller.path))
    return 0


async def show_path(config: TrackerConfig, limit: Optional[int], as_json: bool) -> int:
    path = await build_path_store(config).load_all()
    if limit is not None:
        path = path[-limit:]

    if as_json:
        print(json.dumps([p.to_dict() for p in path], indent=2))
        return 0

    if not path:
        print(f"No stored path in {config.store_dir}")
        return 0
    for index, point in enumerate(path, start=1):
        accuracy = f" ±{point.accuracy:.1f} m" if point.accuracy is not None else ""
        print(f"{index:5d}  {point.timestamp}  {point.latitude:.6f}, {point.longitude:.6f}{accuracy}")
    return 0


async def clear_path(config: TrackerConfig, assume_yes: bool) -> int:
    if not assume_yes:
        answer = input(f"Erase the stored path in {config.store_dir}? [y/N] ")
        if answer.strip().lower() not in {"y", "yes"}:
            print("Aborted")
            return 1
    try:
        await build_path_store(config).clear()
    except StorageFailure as exc:
        logger.error("Could not clear stored path: %s", exc)
        return 1
    print("Stored path cleared")
    return 0


async def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the tracker CLI."""
    args = parse_args(argv)
    state_dir = resolve_state_dir(args)
    config = await load_tracker_config(args)

    log_file = config.log_file
    if log_file is None and args.command == "run":
        log_file = state_dir / LOG_FILENAME
    configure_logging(
        config.log_level,
        force=True,
        console=True,
        log_file=log_file,
        file_level="debug" if log_file is not None else None,
    )

    if args.command == "show-path":
        return await show_path(config, args.limit, args.as_json)
    if args.command == "clear-path":
        return await clear_path(config, args.yes)

    log_startup(
        logger,
        log_file,
        source=config.source,
        store_dir=config.store_dir,
        threshold_degrees=config.threshold_degrees,
        api=f"{config.api_host}:{config.api_port}" if config.api_enabled else "disabled",
    )
    try:
        return await run_tracker(config, state_dir)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2
    finally:
        log_shutdown(logger)


__all__ = [
    "build_parser",
    "parse_args",
    "load_tracker_config",
    "build_source",
    "build_controller",
    "run_tracker",
    "show_path",
    "clear_path",
    "main",
]
