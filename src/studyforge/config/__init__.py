"""Configuration APIs."""

from studyforge.config.settings import (
    AppSettings,
    DocumentSettings,
    ProviderSettings,
    RuntimeSettings,
    SettingsError,
    load_settings,
    resolve_env_secret,
    settings_summary,
)

__all__ = [
    "AppSettings",
    "DocumentSettings",
    "ProviderSettings",
    "RuntimeSettings",
    "SettingsError",
    "load_settings",
    "resolve_env_secret",
    "settings_summary",
]
