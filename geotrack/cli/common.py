"""Argument types and process plumbing shared by the geotrack commands."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from functools import partial
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

from geotrack.core.logging_utils import LoggerLike, ensure_structured_logger

LOG_LEVELS = ("critical", "error", "warning", "info", "debug")

_BANNER_WIDTH = 72


# =============================================================================
# Arguments
# =============================================================================


def add_common_cli_arguments(parser: argparse.ArgumentParser) -> None:
    """Arguments shared by every subcommand (config, state and logging)."""
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file (key = value lines); defaults to <state-dir>/config.txt",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        default=None,
        help="Directory holding config, stored path and logs (overrides GEOTRACK_STATE_DIR)",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=None, help="Logging verbosity")
    parser.add_argument("--log-file", type=Path, default=None, help="Rotating log file")


def _positive(value: str, typ: type, label: str):
    try:
        parsed = typ(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"'{value}' is not a {label}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"'{value}' must be greater than zero")
    return parsed


def positive_int(value: str) -> int:
    return _positive(value, int, "whole number")


def positive_float(value: str) -> float:
    return _positive(value, float, "number")


def coordinate_pair(value: str) -> Tuple[float, float]:
    """Parse ``"LAT,LON"`` in decimal degrees."""
    lat_text, sep, lon_text = value.partition(",")
    if not sep:
        raise argparse.ArgumentTypeError(f"'{value}' is not LAT,LON")
    try:
        lat, lon = float(lat_text), float(lon_text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"'{value}' is not LAT,LON") from exc
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        raise argparse.ArgumentTypeError(f"'{value}' is outside the valid coordinate range")
    return (lat, lon)


# =============================================================================
# Process plumbing
# =============================================================================


def install_exception_handlers(logger: LoggerLike, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """Route uncaught exceptions (thread and event loop) to ``logger``."""
    log = ensure_structured_logger(logger, fallback_name="CLI")

    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        log.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = handle_exception

    if loop is None:
        return

    def handle_loop_exception(_loop, context):
        exception = context.get("exception")
        message = context.get("message", "Unhandled asyncio exception")
        if exception is not None:
            log.error("Event loop: %s", message, exc_info=exception)
        else:
            log.error("Event loop: %s (%s)", message, context)

    loop.set_exception_handler(handle_loop_exception)


def install_signal_handlers(
    shutdown_event: asyncio.Event,
    loop: asyncio.AbstractEventLoop,
    logger: LoggerLike = None,
) -> Callable[[], None]:
    """Set ``shutdown_event`` on SIGINT/SIGTERM; returns a function removing the handlers.

    Platforms without loop signal support (Windows) keep the default handlers.
    """
    log = ensure_structured_logger(logger, fallback_name="CLI")
    installed = []

    def on_signal(signum: int) -> None:
        if shutdown_event.is_set():
            log.warning("%s received again while shutting down", signal.Signals(signum).name)
            return
        log.info("%s received", signal.Signals(signum).name)
        shutdown_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, partial(on_signal, signum))
            installed.append(signum)

    def remove() -> None:
        for signum in installed:
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                loop.remove_signal_handler(signum)
        installed.clear()

    return remove


def log_startup(logger: LoggerLike, log_file: Optional[Path], **settings: Any) -> None:
    """Log a banner with the effective settings of a run."""
    log = ensure_structured_logger(logger, fallback_name="CLI")
    log.info("=" * _BANNER_WIDTH)
    log.info("geotrack session start")
    log.info("  %-18s %s", "log file", log_file or "(console only)")
    for key in sorted(settings):
        log.info("  %-18s %s", key.replace("_", " "), settings[key])
    log.info("=" * _BANNER_WIDTH)


def log_shutdown(logger: LoggerLike) -> None:
    log = ensure_structured_logger(logger, fallback_name="CLI")
    log.info("geotrack stopped")
    log.info("=" * _BANNER_WIDTH)


__all__ = [
    "LOG_LEVELS",
    "add_common_cli_arguments",
    "positive_int",
    "positive_float",
    "coordinate_pair",
    "install_exception_handlers",
    "install_signal_handlers",
    "log_startup",
    "log_shutdown",
]
