"""Configuration package for davsync."""

from .settings import AppSettings, LoggingSettings, get_settings
from .schema import WebDavConfig, WEBDAV_CONFIG_EXAMPLE, MIN_SYNC_INTERVAL_SECONDS
from .loader import ConfigLoader

__all__ = [
    "AppSettings",
    "LoggingSettings",
    "get_settings",

    "WebDavConfig",
    "WEBDAV_CONFIG_EXAMPLE",
    "MIN_SYNC_INTERVAL_SECONDS",

    "ConfigLoader",
]
