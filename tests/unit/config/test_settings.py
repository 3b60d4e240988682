"""Unit tests for engine configuration."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from psa_engine.config import PsaEngineConfig, get_config, load_config, reload_config


class TestPsaEngineConfig:
    """Test PsaEngineConfig settings model."""

    def test_config_with_valid_env_vars(self, test_config):
        """Test configuration loads from environment variables."""
        assert test_config.environment == "testing"
        assert test_config.debug is True
        assert test_config.log_level == "DEBUG"
        assert test_config.max_revision_cycles == 3

    def test_default_values(self, mock_env):
        """Test defaults apply when variables are unset."""
        with patch.dict(os.environ, {}, clear=True):
            config = PsaEngineConfig(_env_file=None)

        assert config.environment == "development"
        assert config.store_path == "psa_store.json"
        assert config.invoice_number_prefix == "INV"
        assert config.invoice_sequence_width == 5
        assert config.payment_terms_days == 30
        assert config.receipt_required_threshold == 2500
        assert config.max_markup_rate == 0.5
        assert config.budget_warning_threshold == 0.75
        assert config.budget_overrun_threshold == 0.90
        assert config.entry_age_warning_days == 30
        assert config.max_entry_age_days == 90
        assert config.expense_type_limits == {
            "Software": 50_000,
            "Materials": 100_000,
            "Other": 25_000,
        }

    def test_populate_by_field_name(self):
        """Test fields can be passed by name as well as by alias."""
        config = PsaEngineConfig(max_revision_cycles=5, _env_file=None)
        assert config.max_revision_cycles == 5

    @pytest.mark.parametrize("invalid_log_level", ["VERBOSE", "TRACE", "loud"])
    def test_invalid_log_level_validation(self, mock_env, invalid_log_level):
        """Test that an unknown log level is rejected."""
        with patch.dict(os.environ, {"LOG_LEVEL": invalid_log_level}):
            with pytest.raises(ValidationError, match="Log level must be one of"):
                PsaEngineConfig()

    @pytest.mark.parametrize(
        "valid_log_level,expected",
        [("debug", "DEBUG"), ("Info", "INFO"), ("WARNING", "WARNING")],
    )
    def test_valid_log_level_normalization(self, mock_env, valid_log_level, expected):
        """Test that log levels are upper-cased."""
        with patch.dict(os.environ, {"LOG_LEVEL": valid_log_level}):
            config = PsaEngineConfig()
        assert config.log_level == expected

    def test_invalid_environment_validation(self, mock_env):
        """Test that an unknown environment is rejected."""
        with patch.dict(os.environ, {"ENVIRONMENT": "staging"}):
            with pytest.raises(ValidationError, match="Environment must be one of"):
                PsaEngineConfig()

    def test_environment_normalization(self, mock_env):
        """Test that the environment name is lower-cased."""
        with patch.dict(os.environ, {"ENVIRONMENT": "PRODUCTION"}):
            config = PsaEngineConfig()
        assert config.environment == "production"

    def test_warning_threshold_must_be_below_overrun(self, mock_env):
        """Test the budget thresholds are ordered."""
        with patch.dict(
            os.environ,
            {"BUDGET_WARNING_THRESHOLD": "0.95", "BUDGET_OVERRUN_THRESHOLD": "0.90"},
        ):
            with pytest.raises(ValidationError, match="BUDGET_WARNING_THRESHOLD"):
                PsaEngineConfig()

    def test_entry_age_limits_ordered(self, mock_env):
        """Test the age warning cannot start after the admin limit."""
        with patch.dict(
            os.environ, {"ENTRY_AGE_WARNING_DAYS": "60", "MAX_ENTRY_AGE_DAYS": "45"}
        ):
            with pytest.raises(ValidationError, match="ENTRY_AGE_WARNING_DAYS"):
                PsaEngineConfig()

    def test_expense_limits_from_json(self, mock_env):
        """Test policy limits can be replaced through the environment."""
        with patch.dict(
            os.environ, {"EXPENSE_TYPE_LIMITS": '{"Travel": 150000, "Software": 20000}'}
        ):
            config = PsaEngineConfig()
        assert config.expense_type_limits == {"Travel": 150000, "Software": 20000}

    def test_max_revision_cycles_must_be_positive(self, mock_env):
        """Test a zero revision limit is rejected."""
        with patch.dict(os.environ, {"MAX_REVISION_CYCLES": "0"}):
            with pytest.raises(ValidationError):
                PsaEngineConfig()


class TestInvoiceNumberFormat:
    """Test invoice number rendering."""

    def test_default_format(self, test_config):
        """Test the default prefix and padding."""
        assert test_config.format_invoice_number(2024, 1) == "INV-2024-00001"
        assert test_config.format_invoice_number(2024, 123) == "INV-2024-00123"

    def test_custom_prefix_and_width(self, mock_env):
        """Test a custom prefix and sequence width."""
        with patch.dict(
            os.environ, {"INVOICE_NUMBER_PREFIX": "ACME", "INVOICE_SEQUENCE_WIDTH": "3"}
        ):
            config = PsaEngineConfig()
        assert config.format_invoice_number(2025, 7) == "ACME-2025-007"

    def test_sequence_wider_than_padding(self, test_config):
        """Test numbers beyond the padding are not truncated."""
        assert test_config.format_invoice_number(2024, 123456) == "INV-2024-123456"


class TestConfigurationFunctions:
    """Test configuration loading functions."""

    def test_load_config_with_env_file(self, tmp_path, mock_env, monkeypatch):
        """Test loading configuration from a specific env file."""
        monkeypatch.delenv("PAYMENT_TERMS_DAYS", raising=False)
        env_file = tmp_path / ".env.test"
        env_file.write_text("PAYMENT_TERMS_DAYS=14\n")

        config = load_config(str(env_file))

        assert config.payment_terms_days == 14
        assert config.environment == "testing"

    def test_get_config_singleton(self, mock_env):
        """Test that get_config returns a singleton instance."""
        config1 = get_config()
        config2 = get_config()

        assert config1 is config2
        assert config1.environment == "testing"

    def test_reload_config(self, mock_env, monkeypatch):
        """Test configuration reload picks up changed variables."""
        config1 = get_config()
        assert config1.payment_terms_days == 30

        monkeypatch.setenv("PAYMENT_TERMS_DAYS", "45")
        config2 = reload_config()

        assert config2.payment_terms_days == 45
        assert config1 is not config2
        assert get_config() is config2
