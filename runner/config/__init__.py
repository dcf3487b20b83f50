"""
Settings model and loader.

Usage:
    from runner.config import load_settings, validate_settings

    settings = validate_settings(load_settings())
"""

from runner.config.loader import (
    SettingsLoadResult,
    collect_validation_errors,
    connection_descriptor,
    load_settings,
    resolve_settings_path,
    try_load_settings,
    validate_settings,
)
from runner.config.schema import BrowserEngine, DatabaseProvider, Settings

__all__ = [
    "BrowserEngine",
    "DatabaseProvider",
    "Settings",
    "SettingsLoadResult",
    "collect_validation_errors",
    "connection_descriptor",
    "load_settings",
    "resolve_settings_path",
    "try_load_settings",
    "validate_settings",
]
