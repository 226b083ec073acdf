"""Configuration package."""

from pocketbook.config.settings import (
    AppSettings,
    DatabaseSettings,
    GeminiSettings,
    RateLimitSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "GeminiSettings",
    "RateLimitSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
