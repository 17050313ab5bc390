"""Configuration package."""

from household_ledger.config.settings import (
    LedgerSettings,
    PostgresSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "LedgerSettings",
    "PostgresSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
