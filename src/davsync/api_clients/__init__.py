"""Remote document store clients."""

from .base import (
    BaseRemoteClient,
    RemoteClientError,
    RemoteNotFoundError,
    RemoteAuthenticationError,
    RemoteConnectionError
)

from .webdav import WebDavClient, basic_auth_header, parse_http_date

__all__ = [
    # Base classes and exceptions
    "BaseRemoteClient",
    "RemoteClientError",
    "RemoteNotFoundError",
    "RemoteAuthenticationError",
    "RemoteConnectionError",

    # Client implementations
    "WebDavClient",
    "basic_auth_header",
    "parse_http_date"
]
