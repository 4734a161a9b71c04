"""Base remote client interface and common functionality."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from ..config.schema import WebDavConfig
from ..utils.logging import get_logger


class BaseRemoteClient(ABC):
    """Abstract base class for remote document stores.

    Remote paths are relative to the configured remote root and use ``/`` as
    separator. Every operation is atomic from the caller's point of view.
    """

    def __init__(self, config: WebDavConfig, **kwargs):
        """Initialize the remote client.

        Args:
            config: Connection configuration
            **kwargs: Additional configuration parameters
        """
        self.config = config
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    async def test_connection(self) -> None:
        """Check that the server is reachable and credentials are accepted.

        Raises:
            RemoteConnectionError: If the server cannot be reached
            RemoteAuthenticationError: If credentials are rejected
        """

    @abstractmethod
    async def create_directory(self, path: str) -> None:
        """Create a remote directory; an existing one is not an error."""

    @abstractmethod
    async def upload_file(self, local_path: Path, remote_path: str) -> None:
        """Upload a local file, replacing any remote file at ``remote_path``."""

    @abstractmethod
    async def download_file(self, remote_path: str, local_path: Path) -> None:
        """Download a remote file, overwriting ``local_path``."""

    @abstractmethod
    async def list_directory(self, path: str) -> List[str]:
        """List names of the files directly inside a remote directory.

        Raises:
            RemoteNotFoundError: If the directory does not exist
        """

    @abstractmethod
    async def get_last_modified(self, path: str) -> Optional[int]:
        """Return the remote modification time in epoch seconds, if known."""

    async def close(self) -> None:
        """Release transport resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class RemoteClientError(Exception):
    """Raised when a remote operation fails."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RemoteNotFoundError(RemoteClientError):
    """Raised when a remote path does not exist."""


class RemoteAuthenticationError(RemoteClientError):
    """Raised when the server rejects the credentials."""


class RemoteConnectionError(RemoteClientError):
    """Raised when the server cannot be reached."""
