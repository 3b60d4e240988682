"""Tests for centralized logging configuration."""

import json
import logging
import os
from unittest.mock import patch

import pytest

from psa_engine.config import PsaEngineConfig
from psa_engine.config.logging_config import (
    JSONFormatter,
    LoggingConfig,
    configure_logging,
    get_logger,
    reset_logging,
)
from psa_engine.models.enums import InvoiceStatus


def _flush():
    for handler in logging.getLogger().handlers:
        handler.flush()


def _json_lines(path):
    return [json.loads(line) for line in path.read_text().strip().splitlines()]


class TestLoggingConfig:
    """Test LoggingConfig class."""

    def test_default_configuration(self):
        """Test default logging configuration."""
        config = LoggingConfig()

        assert config.log_level == "INFO"
        assert config.log_format == "standard"
        assert config.log_file is None
        assert config.enable_console is True
        assert config.enable_file is False
        assert config.max_file_size == 10 * 1024 * 1024
        assert config.backup_count == 5

    def test_level_is_normalized(self):
        """Test lower-case levels are accepted."""
        assert LoggingConfig(log_level="warning").log_level == "WARNING"

    def test_environment_variable_override(self):
        """Test configuration from environment variables."""
        with patch.dict(
            os.environ,
            {
                "LOG_LEVEL": "DEBUG",
                "LOG_FORMAT": "json",
                "LOG_FILE": "/tmp/psa.log",
                "LOG_CONSOLE": "false",
                "LOG_BACKUP_COUNT": "3",
            },
        ):
            config = LoggingConfig.from_env()

        assert config.log_level == "DEBUG"
        assert config.log_format == "json"
        assert config.log_file == "/tmp/psa.log"
        assert config.enable_console is False
        assert config.backup_count == 3

    def test_invalid_log_level(self):
        """Test invalid log level raises error."""
        with pytest.raises(ValueError, match="Invalid log level"):
            LoggingConfig(log_level="CHATTY")

    def test_invalid_log_format(self):
        """Test invalid log format raises error."""
        with pytest.raises(ValueError, match="Invalid log format"):
            LoggingConfig(log_format="xml")

    def test_file_logging_enabled_without_path(self):
        """Test file logging enabled without file path raises error."""
        with pytest.raises(ValueError, match="log_file must be specified"):
            LoggingConfig(enable_file=True, log_file=None)


class TestLoggingForEngine:
    """Test LoggingConfig.for_engine derivation from engine settings."""

    def test_production_logs_json(self):
        settings = PsaEngineConfig(environment="production", log_level="WARNING")

        config = LoggingConfig.for_engine(settings)

        assert config.log_format == "json"
        assert config.log_level == "WARNING"

    def test_debug_flag_forces_debug_level(self):
        settings = PsaEngineConfig(environment="development", debug=True)

        config = LoggingConfig.for_engine(settings)

        assert config.log_level == "DEBUG"
        assert config.log_format == "standard"

    def test_explicit_level_wins(self):
        settings = PsaEngineConfig(environment="testing", debug=True)

        assert LoggingConfig.for_engine(settings, "ERROR").log_level == "ERROR"


class TestConfigureLogging:
    """Test configure_logging function."""

    def teardown_method(self):
        """Reset logging after each test."""
        reset_logging()

    def _file_config(self, tmp_path, **kwargs):
        return LoggingConfig(
            enable_console=False,
            enable_file=True,
            log_file=str(tmp_path / "logs" / "psa.log"),
            **kwargs,
        )

    def test_console_handler_configuration(self):
        """Test a single console handler at the requested level."""
        configure_logging(LoggingConfig(log_level="DEBUG"))

        root_logger = logging.getLogger()
        stream_handlers = [
            h for h in root_logger.handlers if type(h) is logging.StreamHandler
        ]
        assert len(stream_handlers) == 1
        assert root_logger.level == logging.DEBUG

    def test_file_handler_creates_directory(self, tmp_path):
        """Test the log directory is created for file logging."""
        configure_logging(self._file_config(tmp_path))

        get_logger("psa_engine.test").info("Workspace saved")
        _flush()

        log_file = tmp_path / "logs" / "psa.log"
        assert log_file.exists()
        assert "Workspace saved" in log_file.read_text()

    def test_standard_format(self):
        """Test standard format uses a plain formatter."""
        configure_logging(LoggingConfig(log_format="standard"))

        for handler in logging.getLogger().handlers:
            assert handler.formatter is not None
            assert not isinstance(handler.formatter, JSONFormatter)

    def test_json_format_includes_extra_fields(self, tmp_path):
        """Test JSON output carries extra fields, rendering enums by value."""
        configure_logging(self._file_config(tmp_path, log_format="json"))

        get_logger("psa_engine.services").warning(
            "Invoice voided",
            extra={"audit": "invoice_void", "status": InvoiceStatus.VOID},
        )
        _flush()

        entry = _json_lines(tmp_path / "logs" / "psa.log")[0]
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "psa_engine.services"
        assert entry["message"] == "Invoice voided"
        assert entry["audit"] == "invoice_void"
        assert entry["status"] == "Void"

    def test_json_format_includes_exception(self, tmp_path):
        """Test exceptions are serialized into the JSON record."""
        configure_logging(self._file_config(tmp_path, log_format="json"))

        try:
            raise RuntimeError("store unavailable")
        except RuntimeError:
            get_logger("psa_engine.store").error("Save failed", exc_info=True)
        _flush()

        entry = _json_lines(tmp_path / "logs" / "psa.log")[0]
        assert "RuntimeError: store unavailable" in entry["exception"]

    def test_level_filtering(self, tmp_path):
        """Test records below the configured level are dropped."""
        configure_logging(self._file_config(tmp_path, log_level="WARNING"))

        logger = get_logger("psa_engine.test")
        logger.info("quiet")
        logger.warning("loud")
        _flush()

        content = (tmp_path / "logs" / "psa.log").read_text()
        assert "loud" in content
        assert "quiet" not in content

    def test_rotating_file_handler(self, tmp_path):
        """Test the file handler rotates at the size limit."""
        configure_logging(
            self._file_config(tmp_path, max_file_size=100, backup_count=2)
        )

        logger = get_logger("psa_engine.test")
        for i in range(50):
            logger.info(f"Log message {i} with some padding to increase size")
        _flush()

        assert list((tmp_path / "logs").glob("psa.log.*"))

    def test_reconfiguration_replaces_handlers(self):
        """Test calling configure twice does not duplicate handlers."""
        configure_logging(LoggingConfig(log_level="INFO"))
        root_logger = logging.getLogger()
        handler_count = len(root_logger.handlers)

        configure_logging(LoggingConfig(log_level="DEBUG"))

        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == handler_count


class TestGetLogger:
    """Test get_logger function."""

    def test_get_logger_returns_named_logger(self):
        """Test get_logger returns the standard logger instance."""
        logger = get_logger("psa_engine.workflow")
        assert isinstance(logger, logging.Logger)
        assert logger is logging.getLogger("psa_engine.workflow")


class TestResetLogging:
    """Test reset_logging function."""

    def test_reset_removes_handlers_and_restores_level(self):
        """Test reset_logging removes handlers and sets WARNING."""
        configure_logging(LoggingConfig(log_level="DEBUG"))

        reset_logging()

        root_logger = logging.getLogger()
        assert root_logger.handlers == []
        assert root_logger.level == logging.WARNING
