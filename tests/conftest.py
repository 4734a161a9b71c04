"""Shared fixtures: an in-memory remote store and local data helpers."""

import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from davsync.api_clients import BaseRemoteClient, RemoteNotFoundError
from davsync.config import WebDavConfig
from davsync.core import ConnectionHolder, SyncEngine


ENABLED_CONFIG = WebDavConfig(
    enabled=True,
    server_url="https://dav.example.com/webdav",
    username="alice",
    password="secret"
)


class FakeRemoteClient(BaseRemoteClient):
    """Remote store kept in memory.

    Uploads keep the local modification time and downloads restore the
    remote one, like a server that preserves mtimes.
    """

    def __init__(self, config: Optional[WebDavConfig] = None):
        super().__init__(config or ENABLED_CONFIG)
        self.directories = set()
        self.files: Dict[str, Tuple[bytes, Optional[int]]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.closed = False

    def put(self, path: str, content: bytes = b"{}", mtime: Optional[int] = 1_700_000_000) -> None:
        self.directories.add(path.rsplit('/', 1)[0])
        self.files[path] = (content, mtime)

    def fail(self, operation: str, path: str, error: Exception) -> None:
        self.failures[(operation, path)] = error

    def _record(self, operation: str, path: str) -> None:
        self.calls.append((operation, path))
        error = self.failures.get((operation, path))
        if error is not None:
            raise error

    def operations(self, operation: str) -> List[str]:
        return [path for op, path in self.calls if op == operation]

    async def test_connection(self) -> None:
        self._record("test_connection", "/")

    async def create_directory(self, path: str) -> None:
        self._record("create_directory", path)
        self.directories.add(path)

    async def upload_file(self, local_path: Path, remote_path: str) -> None:
        self._record("upload_file", remote_path)
        local_path = Path(local_path)
        self.files[remote_path] = (local_path.read_bytes(), int(local_path.stat().st_mtime))

    async def download_file(self, remote_path: str, local_path: Path) -> None:
        self._record("download_file", remote_path)
        content, mtime = self.files[remote_path]
        Path(local_path).write_bytes(content)
        if mtime is not None:
            os.utime(local_path, (mtime, mtime))

    async def list_directory(self, path: str) -> List[str]:
        self._record("list_directory", path)
        if path not in self.directories:
            raise RemoteNotFoundError(f"PROPFIND {path}: not found", 404)
        prefix = path + '/'
        return sorted(p[len(prefix):] for p in self.files if p.startswith(prefix))

    async def get_last_modified(self, path: str) -> Optional[int]:
        self._record("get_last_modified", path)
        return self.files[path][1]

    async def close(self) -> None:
        self.closed = True


def write_local(data_dir: Path, collection: str, name: str, content: str = "{}", mtime: Optional[int] = None) -> Path:
    directory = data_dir / collection
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(content, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def remote() -> FakeRemoteClient:
    return FakeRemoteClient()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def engine(remote, data_dir) -> SyncEngine:
    """Engine whose holder hands out ``remote``; still needs ``configure``."""
    holder = ConnectionHolder(client_factory=lambda config: remote)
    return SyncEngine(holder, data_dir)
