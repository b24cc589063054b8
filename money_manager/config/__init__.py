"""Configuration package."""

from money_manager.config.settings import (
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    LoanSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "LoanSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
