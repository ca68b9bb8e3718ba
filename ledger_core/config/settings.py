"""
Configuration Management for the Ledger Core

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Business rules that users may want to tune (tolerances, default alert
thresholds, the financial month start) are read from one place and
validated at startup.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """
    Ledger behaviour settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency code for new users and accounts"
    )
    default_financial_month_start: int = Field(
        default=1,
        ge=1,
        le=31,
        description="Day of month the financial month starts on for new users"
    )

    # Integrity checks
    balance_tolerance: float = Field(
        default=0.01,
        ge=0.0,
        description="Accepted difference between cached and derived balances"
    )

    # Budgets
    default_alert_thresholds: list[float] = Field(
        default_factory=lambda: [50.0, 80.0, 100.0],
        description="Alert thresholds used when a budget does not configure any"
    )

    # Backups and guest users
    export_version: str = Field(
        default="1.0.0",
        description="Version string written into exported snapshots"
    )
    guest_id_prefix: str = Field(
        default="guest-",
        min_length=1,
        description="Prefix identifying locally created guest user ids"
    )

    # Balance writes
    balance_write_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a balance write that hits a storage conflict"
    )

    @field_validator('default_alert_thresholds')
    @classmethod
    def validate_thresholds(cls, v: list[float]) -> list[float]:
        """Thresholds must be strictly ascending percentages in (0, 100]."""
        for threshold in v:
            if threshold <= 0 or threshold > 100:
                raise ValueError(f"Alert threshold out of range: {threshold}")
        if any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError("Alert thresholds must be strictly ascending")
        return v


class StorageSettings(BaseSettings):
    """Storage backend selection."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: str = Field(
        default="memory",
        description="Name of the registered storage backend to use"
    )

    @field_validator('backend')
    @classmethod
    def normalize_backend(cls, v: str) -> str:
        return v.strip().lower()


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
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()


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

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.ledger
        results["ledger"] = True
    except Exception as e:
        results["ledger"] = False
        results["ledger_error"] = str(e)

    try:
        _ = settings.storage
        results["storage"] = True
    except Exception as e:
        results["storage"] = False
        results["storage_error"] = str(e)

    return results
