"""Error taxonomy shared by the configuration layer and the sync engine."""

from typing import Any, Dict, Optional


class SyncError(Exception):
    """Base class for every failure surfaced by davsync.

    ``operation`` and ``path`` identify what failed so callers can react on
    structured fields instead of parsing the message. ``partial_result`` is
    set by the engine when a sync call aborts after some transfers already
    completed.
    """

    kind = "sync_error"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.path = path
        self.partial_result = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "error": self.kind,
            "message": self.message,
            "operation": self.operation,
            "path": self.path,
        }
        if self.partial_result is not None:
            data["partial_result"] = self.partial_result.to_dict()
        return data


class NotConfiguredError(SyncError):
    """Raised when a remote operation is requested before a connection exists."""

    kind = "not_configured"

    def __init__(self, operation: Optional[str] = None):
        super().__init__("WebDAV is not configured", operation=operation)


class ConfigurationError(SyncError):
    """Raised when connection parameters are invalid or cannot be loaded."""

    kind = "configuration"


class LocalIOError(SyncError):
    """Raised when a local filesystem operation fails."""

    kind = "local_io"


class RemoteIOError(SyncError):
    """Raised when a remote client operation fails during a sync call."""

    kind = "remote_io"
