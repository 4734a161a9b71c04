"""Keep local JSON collections in step with a WebDAV store."""

from .config import WebDavConfig, ConfigLoader
from .errors import (
    SyncError,
    NotConfiguredError,
    ConfigurationError,
    LocalIOError,
    RemoteIOError
)
from .core import ConnectionHolder, SyncEngine, SyncResult

__version__ = "0.1.0"

__all__ = [
    "WebDavConfig",
    "ConfigLoader",
    "SyncError",
    "NotConfiguredError",
    "ConfigurationError",
    "LocalIOError",
    "RemoteIOError",
    "ConnectionHolder",
    "SyncEngine",
    "SyncResult",
]
