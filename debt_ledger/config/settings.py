"""
Configuration Management for the Debt Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Retry bounds, validation limits and the storage location are all
visible in one place and validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Key-value persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: str = Field(
        default="file",
        pattern="^(file|memory)$",
        description="Key-value backend: 'file' for local disk, 'memory' for ephemeral use"
    )
    data_dir: Path = Field(
        default=Path("~/.debt_ledger"),
        description="Directory holding the snapshot file"
    )
    storage_key: str = Field(
        default="@debt_manager_transactions",
        min_length=1,
        description="Namespaced key the transaction snapshot is stored under"
    )

    # Retry policy
    max_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per load/save before surfacing a storage error"
    )
    load_retry_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Base backoff delay for load retries"
    )
    save_retry_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Base backoff delay for save retries"
    )
    max_retry_delay_seconds: float = Field(
        default=8.0,
        ge=0.0,
        description="Cap on a single backoff delay"
    )

    @field_validator('data_dir')
    @classmethod
    def expand_data_dir(cls, v: Path) -> Path:
        """Expand ~ so the path is usable as-is."""
        return v.expanduser()


class LedgerRulesSettings(BaseSettings):
    """Validation limits for transaction input."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_RULES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    max_name_length: int = Field(
        default=100,
        ge=1,
        description="Maximum counterparty name length after trimming"
    )
    max_amount: float = Field(
        default=1_000_000_000.0,
        gt=0,
        description="Largest amount accepted for a single transaction"
    )
    amount_tolerance: float = Field(
        default=0.01,
        gt=0,
        description="Rounding tolerance for reconciliation checks"
    )


class LoggingSettings(BaseSettings):
    """structlog output configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum log level"
    )
    json_output: bool = Field(
        default=True,
        description="Render JSON lines (False renders human-readable console output)"
    )

    @field_validator('level', mode='before')
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def rules(self) -> LedgerRulesSettings:
        return LedgerRulesSettings()

    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry for each failure. Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("storage", "rules", "logging"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
