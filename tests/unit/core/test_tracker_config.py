"""Unit tests for config file parsing and the typed tracker config."""

import argparse
import asyncio
from pathlib import Path

import pytest

from geotrack.core.config_manager import ConfigManager, get_config_manager
from geotrack.core.typed_config import get_cfg_bool, get_cfg_float, get_cfg_int, get_cfg_path, get_cfg_str
from geotrack.tracking.config import TrackerConfig
from geotrack.tracking.main_tracking import parse_args


def run_async(coro):
    """Run async coroutine synchronously for testing."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# =============================================================================
# ConfigManager
# =============================================================================


class TestConfigManager:

    def test_parse_lines(self):
        lines = [
            "# comment",
            "",
            "source = replay",
            "serial_port = '/dev/ttyUSB0'  # receiver",
            'log_level = "debug"',
            "not a setting",
            "threshold_degrees=0.0005",
        ]
        assert ConfigManager.parse_config_lines(lines) == {
            "source": "replay",
            "serial_port": "/dev/ttyUSB0",
            "log_level": "debug",
            "threshold_degrees": "0.0005",
        }

    def test_missing_file(self, tmp_path):
        manager = ConfigManager()
        assert manager.read_config(tmp_path / "nope.txt") == {}
        assert run_async(manager.read_config_async(tmp_path / "nope.txt")) == {}

    def test_sync_and_async_agree(self, tmp_path):
        path = tmp_path / "config.txt"
        path.write_text("api_port = 9000\nkeep_alive = false\n", encoding="utf-8")
        manager = ConfigManager()

        assert manager.read_config(path) == run_async(manager.read_config_async(path))
        assert manager.read_config(path)["api_port"] == "9000"

    def test_shared_instance(self):
        assert get_config_manager() is get_config_manager()


# =============================================================================
# Typed coercion
# =============================================================================


class TestTypedConfig:

    def test_defaults_on_missing_or_invalid(self):
        values = {"port": "eighty", "ratio": "n/a"}
        assert get_cfg_int(values, "port", 80) == 80
        assert get_cfg_float(values, "ratio", 0.5) == 0.5
        assert get_cfg_str(values, "absent", "x") == "x"
        assert get_cfg_path(values, "absent", None) is None

    @pytest.mark.parametrize("raw, expected", [("true", True), ("YES", True), ("1", True), ("on", True), ("off", False), ("nope", False)])
    def test_bool(self, raw, expected):
        assert get_cfg_bool({"flag": raw}, "flag", not expected) is expected

    def test_path_expands_user(self):
        path = get_cfg_path({"store_dir": "~/tracks"}, "store_dir", None)
        assert path == Path("~/tracks").expanduser()

    def test_blank_path_uses_default(self):
        assert get_cfg_path({"log_file": "  "}, "log_file", Path("/tmp/x.log")) == Path("/tmp/x.log")


# =============================================================================
# TrackerConfig
# =============================================================================


class TestTrackerConfig:

    def test_defaults(self):
        config = TrackerConfig.from_config({})

        assert config.source == "nmea"
        assert config.threshold_degrees == 0.00001
        assert config.position_request.high_accuracy is True
        assert config.position_request.timeout_ms == 10_000
        assert config.position_request.max_age_ms == 0
        assert config.center == (22.3072, 73.1812)
        assert config.api_enabled is True

    def test_values_from_file(self):
        config = TrackerConfig.from_config({
            "source": "REPLAY",
            "replay_file": "/data/track.csv",
            "threshold_degrees": "0.001",
            "timeout_ms": "2500",
            "high_accuracy": "no",
            "api_port": "9100",
        })

        assert config.source == "replay"
        assert config.replay_file == Path("/data/track.csv")
        assert config.threshold_degrees == 0.001
        assert config.position_request.timeout_ms == 2500
        assert config.position_request.high_accuracy is False
        assert config.api_port == 9100

    def test_unknown_source_falls_back(self):
        assert TrackerConfig.from_config({"source": "carrier-pigeon"}).source == "nmea"

    def test_cli_overrides_file(self):
        args = parse_args([
            "run",
            "--port", "/dev/ttyACM0",
            "--threshold", "0.002",
            "--replay-interval", "0.5",
            "--no-api",
            "--log-level", "debug",
        ])
        config = TrackerConfig.from_config({"serial_port": "/dev/serial0", "threshold_degrees": "0.1"}, args)

        assert config.serial_port == "/dev/ttyACM0"
        assert config.threshold_degrees == 0.002
        assert config.replay_interval_s == 0.5
        assert config.api_enabled is False
        assert config.log_level == "debug"

    def test_center_override(self):
        config = TrackerConfig.from_config({}, parse_args(["run", "--center", "51.5,-0.12"]))
        assert config.center == (51.5, -0.12)

    @pytest.mark.parametrize("value", ["51.5", "north,west", "91,0", "0,181"])
    def test_invalid_center_rejected(self, value):
        with pytest.raises(SystemExit):
            parse_args(["run", "--center", value])

    def test_unset_cli_args_keep_file_values(self):
        args = argparse.Namespace(port=None, threshold=None, no_api=False)
        config = TrackerConfig.from_config({"serial_port": "/dev/ttyUSB1"}, args)

        assert config.serial_port == "/dev/ttyUSB1"
        assert config.api_enabled is True

    def test_to_dict(self):
        data = TrackerConfig.from_config({}).to_dict()
        assert data["source"] == "nmea"
        assert "store_dir" in data
