"""Sync engine reconciling local and remote JSON collections."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from . import local_fs
from .connection import ConnectionHolder
from ..api_clients import BaseRemoteClient, RemoteClientError, RemoteNotFoundError
from ..config.schema import WebDavConfig
from ..errors import LocalIOError, RemoteIOError, SyncError
from ..utils.logging import get_logger, log_async_execution_time


JSON_SUFFIX = ".json"


@dataclass(frozen=True)
class Collection:
    """A named directory pair: ``<data_dir>/<name>`` and remote ``<name>``."""

    name: str

    def local_dir(self, data_dir: Path) -> Path:
        return data_dir / self.name

    def remote_path(self, filename: Optional[str] = None) -> str:
        if filename is None:
            return self.name
        return f"{self.name}/{filename}"


SERVERS = Collection("servers")
HISTORY = Collection("history")

# Processing order is fixed
COLLECTIONS = (SERVERS, HISTORY)


@dataclass(frozen=True)
class SyncResult:
    """Transfer counts for one push, pull or merge call."""

    servers_uploaded: int = 0
    servers_downloaded: int = 0
    history_uploaded: int = 0
    history_downloaded: int = 0

    @property
    def total_uploaded(self) -> int:
        return self.servers_uploaded + self.history_uploaded

    @property
    def total_downloaded(self) -> int:
        return self.servers_downloaded + self.history_downloaded

    def to_dict(self) -> Dict[str, int]:
        return {
            "servers_uploaded": self.servers_uploaded,
            "servers_downloaded": self.servers_downloaded,
            "history_uploaded": self.history_uploaded,
            "history_downloaded": self.history_downloaded,
            "total_uploaded": self.total_uploaded,
            "total_downloaded": self.total_downloaded,
        }


@dataclass
class SyncCounters:
    """Increment-only counters accumulated during a single call."""

    uploaded: Dict[str, int] = field(default_factory=dict)
    downloaded: Dict[str, int] = field(default_factory=dict)

    def add_upload(self, collection: Collection) -> None:
        self.uploaded[collection.name] = self.uploaded.get(collection.name, 0) + 1

    def add_download(self, collection: Collection) -> None:
        self.downloaded[collection.name] = self.downloaded.get(collection.name, 0) + 1

    def freeze(self) -> SyncResult:
        return SyncResult(
            servers_uploaded=self.uploaded.get(SERVERS.name, 0),
            servers_downloaded=self.downloaded.get(SERVERS.name, 0),
            history_uploaded=self.uploaded.get(HISTORY.name, 0),
            history_downloaded=self.downloaded.get(HISTORY.name, 0),
        )


Strategy = Callable[[BaseRemoteClient, Collection, SyncCounters], Awaitable[None]]


class SyncEngine:
    """Push, pull and timestamp-based merge over the fixed collections."""

    def __init__(self, holder: ConnectionHolder, data_dir: Union[str, Path]):
        """Initialize sync engine.

        Args:
            holder: Connection holder providing the remote client
            data_dir: Local application data root
        """
        self.holder = holder
        self.data_dir = Path(data_dir)
        self.logger = get_logger(self.__class__.__name__)

    async def configure(self, config: WebDavConfig) -> None:
        await self.holder.configure(config)

    async def test_connection(self) -> None:
        async with self.holder.borrow("test_connection") as client:
            await self._remote("test_connection", "/", client.test_connection())

    @log_async_execution_time
    async def push(self) -> SyncResult:
        """Upload every local JSON file, unconditionally."""
        return await self._run("push", self._push_collection)

    @log_async_execution_time
    async def pull(self) -> SyncResult:
        """Download every remote JSON file, overwriting local copies."""
        return await self._run("pull", self._pull_collection)

    @log_async_execution_time
    async def merge(self) -> SyncResult:
        """Reconcile both sides; the newer modification time wins."""
        return await self._run("merge", self._merge_collection)

    async def _run(self, operation: str, strategy: Strategy) -> SyncResult:
        counters = SyncCounters()
        self.logger.info("Starting sync", operation=operation, data_dir=str(self.data_dir))

        try:
            async with self.holder.borrow(operation) as client:
                for collection in COLLECTIONS:
                    await strategy(client, collection, counters)
        except SyncError as e:
            e.partial_result = counters.freeze()
            self.logger.error(
                "Sync aborted",
                operation=operation,
                error_kind=e.kind,
                failed_operation=e.operation,
                path=e.path,
                error=e.message,
                **e.partial_result.to_dict()
            )
            raise

        result = counters.freeze()
        self.logger.info("Sync completed", operation=operation, **result.to_dict())
        return result

    async def _push_collection(
        self,
        client: BaseRemoteClient,
        collection: Collection,
        counters: SyncCounters
    ) -> None:
        local_dir = collection.local_dir(self.data_dir)
        await self._remote("create_directory", collection.remote_path(), client.create_directory(collection.remote_path()))

        if not await self._local("stat", local_dir, local_fs.dir_exists(local_dir)):
            self.logger.debug("No local directory, nothing to push", collection=collection.name)
            return

        filenames = await self._local("read_dir", local_dir, local_fs.list_files(local_dir, JSON_SUFFIX))
        for filename in filenames:
            await self._upload(client, collection, filename, counters)

    async def _pull_collection(
        self,
        client: BaseRemoteClient,
        collection: Collection,
        counters: SyncCounters
    ) -> None:
        local_dir = collection.local_dir(self.data_dir)
        await self._local("create_dir", local_dir, local_fs.ensure_dir(local_dir))

        remote_files = await self._list_remote(client, collection)
        if remote_files is None:
            await self._remote("create_directory", collection.remote_path(), client.create_directory(collection.remote_path()))
            return

        for filename in remote_files:
            if filename.endswith(JSON_SUFFIX):
                await self._download(client, collection, filename, counters)

    async def _merge_collection(
        self,
        client: BaseRemoteClient,
        collection: Collection,
        counters: SyncCounters
    ) -> None:
        local_dir = collection.local_dir(self.data_dir)
        await self._remote("create_directory", collection.remote_path(), client.create_directory(collection.remote_path()))
        await self._local("create_dir", local_dir, local_fs.ensure_dir(local_dir))

        local_files = await self._local("read_dir", local_dir, local_fs.read_mtimes(local_dir, JSON_SUFFIX))

        remote_files = await self._list_remote(client, collection)
        if remote_files is None:
            for filename in sorted(local_files):
                await self._upload(client, collection, filename, counters)
            return

        for filename in remote_files:
            if not filename.endswith(JSON_SUFFIX):
                continue

            remote_path = collection.remote_path(filename)
            remote_time = await self._remote("get_last_modified", remote_path, client.get_last_modified(remote_path))

            if filename not in local_files:
                await self._download(client, collection, filename, counters)
                continue

            local_time = local_files.pop(filename)

            # Unknown remote time: leave both copies alone
            if remote_time is None:
                self.logger.debug("Remote time unknown, skipping", collection=collection.name, filename=filename)
            elif remote_time > local_time:
                await self._download(client, collection, filename, counters)
            elif local_time > remote_time:
                await self._upload(client, collection, filename, counters)

        # Whatever is left exists only locally
        for filename in sorted(local_files):
            await self._upload(client, collection, filename, counters)

    async def _list_remote(self, client: BaseRemoteClient, collection: Collection) -> Optional[list]:
        """Remote file names, or ``None`` when the directory is missing."""
        path = collection.remote_path()
        try:
            return await client.list_directory(path)
        except RemoteNotFoundError:
            self.logger.info("Remote directory missing", collection=collection.name, path=path)
            return None
        except RemoteClientError as e:
            raise RemoteIOError(str(e), operation="list_directory", path=path) from e

    async def _upload(
        self,
        client: BaseRemoteClient,
        collection: Collection,
        filename: str,
        counters: SyncCounters
    ) -> None:
        local_path = collection.local_dir(self.data_dir) / filename
        remote_path = collection.remote_path(filename)
        await self._remote("upload_file", remote_path, client.upload_file(local_path, remote_path))
        counters.add_upload(collection)
        self.logger.debug("Uploaded", collection=collection.name, filename=filename)

    async def _download(
        self,
        client: BaseRemoteClient,
        collection: Collection,
        filename: str,
        counters: SyncCounters
    ) -> None:
        local_path = collection.local_dir(self.data_dir) / filename
        remote_path = collection.remote_path(filename)
        await self._remote("download_file", remote_path, client.download_file(remote_path, local_path))
        counters.add_download(collection)
        self.logger.debug("Downloaded", collection=collection.name, filename=filename)

    async def _remote(self, operation: str, path: str, call: Awaitable[Any]) -> Any:
        """Await a remote client call, translating its failures."""
        try:
            return await call
        except RemoteClientError as e:
            raise RemoteIOError(str(e), operation=operation, path=path) from e
        except OSError as e:
            # Transfers touch local files too
            raise LocalIOError(str(e), operation=operation, path=getattr(e, "filename", None) or path) from e

    async def _local(self, operation: str, path: Path, call: Awaitable[Any]) -> Any:
        try:
            return await call
        except OSError as e:
            raise LocalIOError(str(e), operation=operation, path=str(path)) from e
