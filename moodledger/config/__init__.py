"""Configuration package."""

from moodledger.config.settings import (
    GoogleSheetsSettings,
    LedgerSettings,
    Settings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "GoogleSheetsSettings",
    "LedgerSettings",
    "Settings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
