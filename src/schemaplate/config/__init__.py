"""Configuration management for schemaplate."""

from .settings import HttpSettings, Settings, get_settings, load_settings

__all__ = [
    "HttpSettings",
    "Settings",
    "get_settings",
    "load_settings",
]
