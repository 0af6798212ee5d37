"""Typed configuration for the tracker."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from geotrack.core.paths import STORE_DIR
from geotrack.core.typed_config import (
    get_cfg_bool,
    get_cfg_float,
    get_cfg_int,
    get_cfg_path,
    get_cfg_str,
)
from .tracking_core.constants import (
    DEFAULT_BAUD_RATE,
    DEFAULT_CENTER_LAT,
    DEFAULT_CENTER_LON,
    DEFAULT_DIAGNOSTIC_LINES,
    DEFAULT_HIGH_ACCURACY,
    DEFAULT_MAX_AGE_MS,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_REPLAY_INTERVAL_S,
    DEFAULT_THRESHOLD_DEGREES,
    DEFAULT_TIMEOUT_MS,
)
from .tracking_core.types import PositionRequest

SOURCE_CHOICES = ("nmea", "replay")


@dataclass(slots=True)
class TrackerConfig:
    """Typed configuration for a tracking run."""

    # Movement filter and sensor request
    threshold_degrees: float = DEFAULT_THRESHOLD_DEGREES
    high_accuracy: bool = DEFAULT_HIGH_ACCURACY
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_age_ms: int = DEFAULT_MAX_AGE_MS

    # Position source
    source: str = "nmea"
    serial_port: str = "/dev/serial0"
    baud_rate: int = DEFAULT_BAUD_RATE
    reconnect_delay_s: float = DEFAULT_RECONNECT_DELAY
    replay_file: Optional[Path] = None
    replay_interval_s: float = DEFAULT_REPLAY_INTERVAL_S
    replay_loop: bool = False

    # Durable storage and background execution
    store_dir: Path = field(default_factory=lambda: STORE_DIR)
    keep_alive: bool = True
    deferred_sync: bool = True

    # HTTP API
    api_enabled: bool = True
    api_host: str = "127.0.0.1"
    api_port: int = 8765

    # Consumer view
    diagnostic_lines: int = DEFAULT_DIAGNOSTIC_LINES
    center_lat: float = DEFAULT_CENTER_LAT
    center_lon: float = DEFAULT_CENTER_LON

    # Logging
    log_level: str = "info"
    log_file: Optional[Path] = None

    @classmethod
    def from_config(cls, values: Mapping[str, Any], args: Any = None) -> "TrackerConfig":
        """Build config from raw config-file values with optional CLI overrides."""
        defaults = cls()

        source = get_cfg_str(values, "source", defaults.source).strip().lower()
        if source not in SOURCE_CHOICES:
            source = defaults.source

        config = cls(
            # Movement filter and sensor request
            threshold_degrees=get_cfg_float(values, "threshold_degrees", defaults.threshold_degrees),
            high_accuracy=get_cfg_bool(values, "high_accuracy", defaults.high_accuracy),
            timeout_ms=get_cfg_int(values, "timeout_ms", defaults.timeout_ms),
            max_age_ms=get_cfg_int(values, "max_age_ms", defaults.max_age_ms),
            # Position source
            source=source,
            serial_port=get_cfg_str(values, "serial_port", defaults.serial_port),
            baud_rate=get_cfg_int(values, "baud_rate", defaults.baud_rate),
            reconnect_delay_s=get_cfg_float(values, "reconnect_delay_s", defaults.reconnect_delay_s),
            replay_file=get_cfg_path(values, "replay_file", defaults.replay_file),
            replay_interval_s=get_cfg_float(values, "replay_interval_s", defaults.replay_interval_s),
            replay_loop=get_cfg_bool(values, "replay_loop", defaults.replay_loop),
            # Durable storage and background execution
            store_dir=get_cfg_path(values, "store_dir", defaults.store_dir),
            keep_alive=get_cfg_bool(values, "keep_alive", defaults.keep_alive),
            deferred_sync=get_cfg_bool(values, "deferred_sync", defaults.deferred_sync),
            # HTTP API
            api_enabled=get_cfg_bool(values, "api_enabled", defaults.api_enabled),
            api_host=get_cfg_str(values, "api_host", defaults.api_host),
            api_port=get_cfg_int(values, "api_port", defaults.api_port),
            # Consumer view
            diagnostic_lines=get_cfg_int(values, "diagnostic_lines", defaults.diagnostic_lines),
            center_lat=get_cfg_float(values, "center_lat", defaults.center_lat),
            center_lon=get_cfg_float(values, "center_lon", defaults.center_lon),
            # Logging
            log_level=get_cfg_str(values, "log_level", defaults.log_level),
            log_file=get_cfg_path(values, "log_file", defaults.log_file),
        )

        # Apply CLI argument overrides if provided
        if args is not None:
            config = config._apply_args_override(args)

        return config

    def _apply_args_override(self, args: Any) -> "TrackerConfig":
        """Apply CLI argument overrides to config values."""
        values = asdict(self)

        arg_mappings = {
            "source": "source",
            "port": "serial_port",
            "baud_rate": "baud_rate",
            "replay_file": "replay_file",
            "replay_interval": "replay_interval_s",
            "api_host": "api_host",
            "api_port": "api_port",
            "threshold": "threshold_degrees",
            "log_level": "log_level",
            "log_file": "log_file",
        }

        for arg_name, config_key in arg_mappings.items():
            if hasattr(args, arg_name):
                val = getattr(args, arg_name)
                if val is not None:
                    values[config_key] = val

        if getattr(args, "no_api", False):
            values["api_enabled"] = False

        center = getattr(args, "center", None)
        if center is not None:
            values["center_lat"], values["center_lon"] = center

        for key in ("replay_file", "log_file"):
            if values[key] is not None:
                values[key] = Path(values[key]).expanduser()

        return TrackerConfig(**values)

    @property
    def position_request(self) -> PositionRequest:
        return PositionRequest(
            high_accuracy=self.high_accuracy,
            timeout_ms=self.timeout_ms,
            max_age_ms=self.max_age_ms,
        )

    @property
    def center(self) -> tuple[float, float]:
        return (self.center_lat, self.center_lon)

    def to_dict(self) -> dict[str, Any]:
        """Export config values as dictionary."""
        return asdict(self)


__all__ = ["SOURCE_CHOICES", "TrackerConfig"]
