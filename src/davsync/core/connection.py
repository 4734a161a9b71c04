"""Single-slot holder for the live remote connection."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from ..api_clients import BaseRemoteClient, WebDavClient
from ..config.schema import WebDavConfig
from ..errors import ConfigurationError, NotConfiguredError
from ..utils.logging import get_logger


ClientFactory = Callable[[WebDavConfig], BaseRemoteClient]


def build_client(factory: ClientFactory, config: WebDavConfig, operation: str) -> BaseRemoteClient:
    """Call ``factory``, reporting bad parameters as ``ConfigurationError``."""
    try:
        return factory(config)
    except ConfigurationError:
        raise
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Cannot create WebDAV client: {e}", operation=operation) from e


class ConnectionHolder:
    """Owns at most one remote client and serializes every use of it.

    The lock is coarse on purpose: a borrower keeps it for the whole sync
    call, network round trips included, so no two sync operations ever run
    against the remote at the same time.
    """

    def __init__(self, client_factory: ClientFactory = WebDavClient):
        self._client_factory = client_factory
        self._client: Optional[BaseRemoteClient] = None
        self._lock = asyncio.Lock()
        self.logger = get_logger(self.__class__.__name__)

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def configure(self, config: WebDavConfig) -> None:
        """Apply a connection config.

        A disabled config clears the slot. Otherwise a new client replaces
        the held one; if it cannot be built the slot is left untouched.

        Raises:
            ConfigurationError: If the client cannot be constructed
        """
        if not config.enabled:
            await self.clear()
            self.logger.info("Remote sync disabled, connection cleared")
            return

        client = build_client(self._client_factory, config, "configure")
        await self._swap(client)
        self.logger.info("Remote connection configured", server_url=config.server_url)

    async def clear(self) -> None:
        await self._swap(None)

    async def _swap(self, client: Optional[BaseRemoteClient]) -> None:
        async with self._lock:
            previous, self._client = self._client, client
        if previous is not None:
            await previous.close()

    @asynccontextmanager
    async def borrow(self, operation: Optional[str] = None) -> AsyncIterator[BaseRemoteClient]:
        """Hold exclusive use of the client for the duration of the block.

        Raises:
            NotConfiguredError: If no client is configured
        """
        async with self._lock:
            if self._client is None:
                raise NotConfiguredError(operation)
            yield self._client
