"""
Configuration Management for Household Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Ledger rules that depend on configuration (currency symbol, override
tolerance, storage backend) read from one place.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PostgresSettings(BaseSettings):
    """PostgreSQL storage backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_DB_",
        extra="ignore"
    )

    dsn: str = Field(
        ...,
        description="PostgreSQL connection string"
    )
    min_pool_size: int = Field(
        default=1,
        ge=1,
        le=50,
        description="Minimum number of pooled connections"
    )
    max_pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum number of pooled connections"
    )


class LedgerSettings(BaseSettings):
    """
    Main ledger settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Logging
    debug_mode: bool = Field(
        default=False,
        description="Include full before/after snapshots in history log lines"
    )

    # Money presentation
    currency_symbol: str = Field(
        default="€",
        min_length=1,
        max_length=3,
        description="Currency symbol used in error messages"
    )

    # Master budget overrides
    override_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Largest deviation from the master amount that is not an override"
    )

    # Storage
    storage_backend: str = Field(
        default="memory",
        description="Storage backend: 'memory' or 'postgres'"
    )

    @field_validator('storage_backend')
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Only allow known backends."""
        allowed = {"memory", "postgres"}
        if v.lower() not in allowed:
            raise ValueError(f"Unsupported storage backend: {v}. Allowed: {allowed}")
        return v.lower()


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def postgres(self) -> PostgresSettings:
        return PostgresSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings(require_postgres: Optional[bool] = None) -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Postgres settings are only checked when the postgres backend is
    selected, unless require_postgres says otherwise.
    """
    results = {}

    settings = get_settings()

    try:
        ledger = settings.ledger
        results["ledger"] = True
    except Exception as e:
        ledger = None
        results["ledger"] = False
        results["ledger_error"] = str(e)

    if require_postgres is None:
        require_postgres = ledger is not None and ledger.storage_backend == "postgres"

    if require_postgres:
        try:
            _ = settings.postgres
            results["postgres"] = True
        except Exception as e:
            results["postgres"] = False
            results["postgres_error"] = str(e)

    return results
