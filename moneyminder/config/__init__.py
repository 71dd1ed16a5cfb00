"""Configuration package."""

from moneyminder.config.settings import (
    AppSettings,
    AuthSettings,
    DatabaseSettings,
    EmailSettings,
    GeminiSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "AuthSettings",
    "DatabaseSettings",
    "EmailSettings",
    "GeminiSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
