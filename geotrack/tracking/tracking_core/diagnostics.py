"""Bounded, human-readable record of session events."""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Deque, Optional, Tuple

from geotrack.core.logging_utils import LoggerLike, ensure_structured_logger
from .constants import DEFAULT_DIAGNOSTIC_LINES


class DiagnosticLog:
    """Keeps the most recent diagnostic lines and mirrors them to a logger."""

    def __init__(self, max_lines: int = DEFAULT_DIAGNOSTIC_LINES, logger: LoggerLike = None):
        self._lines: Deque[str] = deque(maxlen=max(1, max_lines))
        self._logger = ensure_structured_logger(logger, fallback_name="Diagnostics")

    def record(self, message: str, level: int = logging.INFO) -> None:
        stamp = time.strftime("%H:%M:%S")
        self._lines.append(f"{stamp} {message}")
        self._logger.log(level, message)

    def lines(self, limit: Optional[int] = None) -> Tuple[str, ...]:
        """Return recorded lines, oldest first; ``limit`` keeps only the newest."""
        if limit is not None and limit > 0:
            return tuple(list(self._lines)[-limit:])
        return tuple(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


__all__ = ["DiagnosticLog"]
