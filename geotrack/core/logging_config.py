"""Root logging setup for the tracker process."""

from __future__ import annotations

import contextlib
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional, Union

from .logging_utils import MODULE_LOGGER_NAMESPACE

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
_DEFAULT_MAX_BYTES = 1024 * 1024  # a day of 1 Hz fixes at debug level
_DEFAULT_BACKUP_COUNT = 3

# aiohttp logs every request at INFO; the API middleware already does at DEBUG
_NOISY_LOGGERS = ("aiohttp.access", "aiohttp.server")

_configured = False

LevelLike = Union[int, str]


def _coerce_level(level: LevelLike) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level '{level}'")
        return resolved
    return int(level)


def _reset_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        root.removeHandler(handler)
        with contextlib.suppress(Exception):
            handler.close()


def _console_handler(level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _file_handler(
    log_file: Union[str, Path],
    level: int,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    log_path = Path(log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: LevelLike = logging.INFO,
    *,
    force: bool = False,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    file_level: Optional[LevelLike] = None,
    max_bytes: int = _DEFAULT_MAX_BYTES,
    backup_count: int = _DEFAULT_BACKUP_COUNT,
    quiet_loggers: Iterable[str] = _NOISY_LOGGERS,
) -> None:
    """Install console and rotating-file handlers on the root logger.

    Args:
        level: Console level, and the file level unless ``file_level`` is set.
        force: Rebuild handlers even when logging was configured before.
        console: Emit to stdout.
        log_file: Path for a rotating log file.
        file_level: Separate level for the log file (e.g. keep fixes at DEBUG
            on disk while the console stays at INFO).
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files to keep.
        quiet_loggers: Third-party loggers limited to WARNING.

    Raises:
        ValueError: ``level`` or ``file_level`` is not a logging level name.
    """
    global _configured
    console_level = _coerce_level(level)
    disk_level = _coerce_level(file_level) if file_level is not None else console_level
    root = logging.getLogger()

    if _configured and not force:
        root.setLevel(min(console_level, disk_level))
        return

    _reset_handlers(root)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if console:
        root.addHandler(_console_handler(console_level, formatter))
    if log_file:
        root.addHandler(_file_handler(log_file, disk_level, formatter, max_bytes, backup_count))
    if not root.handlers:
        root.addHandler(logging.NullHandler())

    root.setLevel(min(console_level, disk_level))
    logging.getLogger(MODULE_LOGGER_NAMESPACE).setLevel(logging.NOTSET)
    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    _configured = True


__all__ = ["configure_logging", "LOG_FORMAT", "LOG_DATEFMT"]
