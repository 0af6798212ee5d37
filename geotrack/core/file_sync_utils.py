"""
Durable writes for small state files.

``atomic_write_bytes`` writes through a sibling temporary file, fsyncs it and
renames it over the target, so readers see either the old or the new payload.
fsync goes through ``msvcrt._commit`` on Windows and ``os.fsync`` elsewhere.
"""

from __future__ import annotations

import contextlib
import os
import sys
import tempfile
from pathlib import Path
from typing import Optional, Union

from geotrack.core.logging_utils import get_module_logger

logger = get_module_logger("FileSyncUtils")

if sys.platform == "win32":
    import msvcrt as _msvcrt
else:
    _msvcrt = None


def safe_fsync(fd: int) -> bool:
    """Flush ``fd`` to stable storage; failures are logged at DEBUG and reported as False."""
    try:
        if _msvcrt is not None:
            _msvcrt._commit(fd)
        else:
            os.fsync(fd)
        return True
    except OSError as e:
        logger.debug("fsync failed for fd %d: %s", fd, e)
        return False


def fsync_file(file_obj) -> bool:
    try:
        file_obj.flush()
        return safe_fsync(file_obj.fileno())
    except (OSError, AttributeError, ValueError) as e:
        logger.debug("fsync_file failed: %s", e)
        return False


def fsync_directory(path: Union[str, Path]) -> bool:
    """Persist a directory entry after a rename. No-op on Windows."""
    if _msvcrt is not None:
        return False
    try:
        fd = os.open(str(path), os.O_RDONLY)
    except OSError as e:
        logger.debug("fsync_directory could not open %s: %s", path, e)
        return False
    try:
        return safe_fsync(fd)
    finally:
        os.close(fd)


def atomic_write_bytes(path: Union[str, Path], data: bytes, *, sync_directory: bool = True) -> None:
    """Replace ``path`` with ``data`` in a single rename.

    Blocking; call through ``asyncio.to_thread`` from the event loop.

    Raises:
        OSError: The directory could not be created, or the data could not be
            written or flushed to disk.
            The target is left untouched and no temporary file remains.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            "wb",
            dir=str(target.parent),
            prefix=f".{target.stem}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(data)
            if not fsync_file(tmp):
                raise OSError(f"Could not flush {tmp_path} to disk")
        os.replace(tmp_path, target)
        tmp_path = None
        if sync_directory:
            fsync_directory(target.parent)
    finally:
        if tmp_path is not None:
            with contextlib.suppress(FileNotFoundError):
                tmp_path.unlink()


__all__ = ["safe_fsync", "fsync_file", "fsync_directory", "atomic_write_bytes"]
