"""Type coercion helpers for building typed configs from raw config values."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional


def get_cfg_str(values: Mapping[str, Any], key: str, default: str) -> str:
    val = values.get(key)
    return str(val) if val is not None else default


def get_cfg_int(values: Mapping[str, Any], key: str, default: int) -> int:
    val = values.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except (ValueError, TypeError):
        return default


def get_cfg_float(values: Mapping[str, Any], key: str, default: float) -> float:
    val = values.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except (ValueError, TypeError):
        return default


def get_cfg_bool(values: Mapping[str, Any], key: str, default: bool) -> bool:
    val = values.get(key)
    if val is None:
        return default
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() in {"true", "1", "yes", "on"}


def get_cfg_path(values: Mapping[str, Any], key: str, default: Optional[Path]) -> Optional[Path]:
    val = values.get(key)
    if val is None or str(val).strip() == "":
        return default
    return Path(str(val)).expanduser()


__all__ = [
    "get_cfg_str",
    "get_cfg_int",
    "get_cfg_float",
    "get_cfg_bool",
    "get_cfg_path",
]
