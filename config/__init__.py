"""Configuration module for loading and managing application settings"""
from .lib.load_settings_conf import (
    DEFAULTS,
    SettingsError,
    load_settings_conf,
    validate_settings
)

__all__ = ['DEFAULTS', 'SettingsError', 'load_settings_conf', 'validate_settings']
