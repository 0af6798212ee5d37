"""Layout of the geotrack state directory.

``GEOTRACK_STATE_DIR`` relocates everything; the default is ``~/.geotrack``.
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "config.txt"
STORE_DIRNAME = "store"
DEFERRED_SYNC_FILENAME = "deferred_sync.json"
LOG_FILENAME = "logs/geotrack.log"

_USER_STATE_ENV = os.environ.get("GEOTRACK_STATE_DIR")
USER_STATE_DIR = Path(_USER_STATE_ENV).expanduser() if _USER_STATE_ENV else (Path.home() / ".geotrack")

STORE_DIR = USER_STATE_DIR / STORE_DIRNAME
DEFERRED_SYNC_FILE = USER_STATE_DIR / DEFERRED_SYNC_FILENAME


__all__ = [
    "CONFIG_FILENAME",
    "STORE_DIRNAME",
    "DEFERRED_SYNC_FILENAME",
    "LOG_FILENAME",
    "USER_STATE_DIR",
    "STORE_DIR",
    "DEFERRED_SYNC_FILE",
]
