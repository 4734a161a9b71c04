"""Core sync logic package."""

from .connection import ConnectionHolder
from .sync_engine import (
    SyncEngine,
    SyncResult,
    SyncCounters,
    Collection,
    COLLECTIONS,
    SERVERS,
    HISTORY,
    JSON_SUFFIX
)

__all__ = [
    "ConnectionHolder",
    "SyncEngine",
    "SyncResult",
    "SyncCounters",
    "Collection",
    "COLLECTIONS",
    "SERVERS",
    "HISTORY",
    "JSON_SUFFIX"
]
