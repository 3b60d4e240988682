"""
Configuration management for the PSA engine.
"""

from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PsaEngineConfig(BaseSettings):
    """Configuration settings for the PSA engine."""

    # Application Configuration
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Workspace used by the CLI
    store_path: str = Field(default="psa_store.json", alias="STORE_PATH")

    # Invoicing
    invoice_number_prefix: str = Field(default="INV", alias="INVOICE_NUMBER_PREFIX")
    invoice_sequence_width: int = Field(
        default=5, ge=1, le=10, alias="INVOICE_SEQUENCE_WIDTH"
    )
    payment_terms_days: int = Field(default=30, ge=0, alias="PAYMENT_TERMS_DAYS")

    # Approval rules
    max_revision_cycles: int = Field(default=3, ge=1, alias="MAX_REVISION_CYCLES")
    receipt_required_threshold: int = Field(
        default=2500, ge=0, alias="RECEIPT_REQUIRED_THRESHOLD"
    )
    max_markup_rate: float = Field(default=0.5, ge=0, alias="MAX_MARKUP_RATE")

    # Entry dates, in days before today
    entry_age_warning_days: int = Field(
        default=30, ge=0, alias="ENTRY_AGE_WARNING_DAYS"
    )
    max_entry_age_days: int = Field(default=90, ge=0, alias="MAX_ENTRY_AGE_DAYS")

    # Per-expense policy limits in cents, by expense type; unlisted types
    # have no limit
    expense_type_limits: Dict[str, int] = Field(
        default_factory=lambda: {
            "Software": 50_000,
            "Materials": 100_000,
            "Other": 25_000,
        },
        alias="EXPENSE_TYPE_LIMITS",
    )

    # Budget health
    budget_warning_threshold: float = Field(
        default=0.75, gt=0, alias="BUDGET_WARNING_THRESHOLD"
    )
    budget_overrun_threshold: float = Field(
        default=0.90, gt=0, alias="BUDGET_OVERRUN_THRESHOLD"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Ensure environment is valid."""
        valid_envs = ["development", "testing", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of: {valid_envs}")
        return v.lower()

    @model_validator(mode="after")
    def validate_budget_thresholds(self):
        """Warning threshold must sit below the overrun threshold."""
        if self.budget_warning_threshold >= self.budget_overrun_threshold:
            raise ValueError(
                "BUDGET_WARNING_THRESHOLD must be lower than BUDGET_OVERRUN_THRESHOLD"
            )
        return self

    @model_validator(mode="after")
    def validate_entry_age_limits(self):
        """The age warning must start before entries need an admin."""
        if self.entry_age_warning_days > self.max_entry_age_days:
            raise ValueError(
                "ENTRY_AGE_WARNING_DAYS cannot exceed MAX_ENTRY_AGE_DAYS"
            )
        return self

    def format_invoice_number(self, year: int, sequence: int) -> str:
        """Render an invoice number such as ``INV-2024-00001``."""
        return (
            f"{self.invoice_number_prefix}-{year}-"
            f"{sequence:0{self.invoice_sequence_width}d}"
        )


def load_config(env_file: Optional[str] = None) -> PsaEngineConfig:
    """Load configuration from environment variables and .env file."""
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    return PsaEngineConfig()


# Global configuration instance
_config: Optional[PsaEngineConfig] = None


def get_config() -> PsaEngineConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(env_file: Optional[str] = None) -> PsaEngineConfig:
    """Reload configuration (useful for testing)."""
    global _config
    _config = load_config(env_file)
    return _config
