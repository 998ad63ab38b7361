"""
Tests for configuration models and the JSON loader.
"""
import json
import logging
from logging.handlers import RotatingFileHandler

import pytest

from powerbox_alpaca.config.loader import ConfigurationError, load_config, resolve_config_path, save_config
from powerbox_alpaca.config.models import AppConfig, LoggingConfig, SimulatorConfig
from powerbox_alpaca.protocol.logger import get_protocol_logger
from powerbox_alpaca.utils.logging_setup import setup_logging


class TestModels:

    def test_defaults(self):
        config = AppConfig()
        assert config.server.port == 5000
        assert config.serial.baud == 9600
        assert config.serial.handshake_attempts == 3
        assert config.serial.handshake_retry_delay_seconds == 5.0
        assert config.powerbox.skip_redundant_writes is True
        assert config.simulator.enabled is False

    def test_log_level_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            LoggingConfig(level="LOUD")

    def test_invalid_simulator_signature(self):
        with pytest.raises(ValueError):
            SimulatorConfig(signature="ssx")

    def test_unknown_section_rejected(self):
        with pytest.raises(ValueError):
            AppConfig(focuser={})


class TestLoader:

    def test_missing_file_creates_default(self, tmp_path):
        path = tmp_path / "config.json"

        config = load_config(str(path))

        assert config == AppConfig()
        assert path.exists()
        assert "_comment" in json.loads(path.read_text())

    def test_load_ignores_comment(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "_comment": "hand edited",
            "serial": {"port": "/dev/ttyUSB3", "baud": 19200},
            "simulator": {"signature": "spf"},
        }))

        config = load_config(str(path))

        assert config.serial.port == "/dev/ttyUSB3"
        assert config.serial.baud == 19200
        assert config.simulator.signature == "spf"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")

        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_validation_error_names_field(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"server": {"port": 70000}}))

        with pytest.raises(ConfigurationError) as excinfo:
            load_config(str(path))

        assert "server -> port" in str(excinfo.value)

    def test_save_round_trip(self, tmp_path):
        path = tmp_path / "config.json"
        config = AppConfig()
        config.serial.port = "socket://localhost:4000"

        save_config(config, str(path))

        assert load_config(str(path)).serial.port == "socket://localhost:4000"

    def test_save_keeps_comment(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"_comment": "bench rig", "server": {"port": 6000}}))

        config = load_config(str(path))
        config.serial.port = "/dev/ttyACM0"
        save_config(config, str(path))

        data = json.loads(path.read_text())
        assert data["_comment"] == "bench rig"
        assert data["server"]["port"] == 6000
        assert not (tmp_path / "config.json.tmp").exists()

    def test_path_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "bench.json"
        path.write_text(json.dumps({"server": {"port": 6001}}))
        monkeypatch.setenv("POWERBOX_ALPACA_CONFIG", str(path))

        assert load_config().server.port == 6001

    def test_explicit_path_beats_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("POWERBOX_ALPACA_CONFIG", str(tmp_path / "missing.json"))
        assert resolve_config_path("other.json").name == "other.json"


class TestSetupLogging:

    @pytest.fixture(autouse=True)
    def restore_logging(self):
        """Remove the handlers setup_logging installed and restore the root level."""
        root = logging.getLogger()
        level = root.level
        yield
        for handler in list(root.handlers):
            if type(handler) in (logging.StreamHandler, RotatingFileHandler):
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level)
        logging.getLogger("powerbox_alpaca.protocol").setLevel(logging.NOTSET)

    def test_levels_and_capture(self):
        setup_logging(LoggingConfig(
            level="DEBUG",
            file=None,
            module_levels={"powerbox_alpaca.protocol": "warning"},
            protocol_capture=False,
        ))

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("powerbox_alpaca.protocol").level == logging.WARNING
        assert get_protocol_logger().enabled is False

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "driver.log"
        setup_logging(LoggingConfig(file=str(log_file)))

        logging.getLogger("powerbox_alpaca.test").info("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "hello" in log_file.read_text()

    def test_invalid_module_level(self):
        with pytest.raises(ValueError):
            LoggingConfig(module_levels={"x": "LOUD"})
