"""Configuration package."""

from settleup.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    SettlementSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "SettlementSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
