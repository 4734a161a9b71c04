"""Tests for the WebDAV client against an in-process DAV server."""

import base64
import os
import socket
import time
from email.utils import formatdate
from urllib.parse import quote

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from davsync.api_clients import (
    RemoteAuthenticationError,
    RemoteConnectionError,
    RemoteNotFoundError,
    WebDavClient,
    basic_auth_header,
    parse_http_date
)
from davsync.config import WebDavConfig
from davsync.core import ConnectionHolder, SyncEngine, SyncResult
from davsync.errors import ConfigurationError

from conftest import write_local


T = 1_700_000_000


class FakeDavServer:
    """Just enough WebDAV for the client: PROPFIND, MKCOL, PUT, GET."""

    def __init__(self, username="alice", password="secret", honour_mtime=True):
        self.auth_header = "Basic " + base64.b64encode(f"{username}:{password}".encode()).decode()
        self.honour_mtime = honour_mtime
        self.collections = {"/dav/"}
        self.files = {}
        self.methods = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self.handle)
        return app

    async def handle(self, request: web.Request) -> web.Response:
        self.methods.append((request.method, request.path))
        if request.headers.get("Authorization") != self.auth_header:
            return web.Response(status=401)

        handler = getattr(self, f"_{request.method.lower()}", None)
        if handler is None:
            return web.Response(status=405)
        return await handler(request)

    @staticmethod
    def _parent(path: str) -> str:
        return path.rstrip('/').rsplit('/', 1)[0] + '/'

    async def _mkcol(self, request):
        path = request.path.rstrip('/') + '/'
        if path in self.collections:
            return web.Response(status=405)
        if self._parent(path) not in self.collections:
            return web.Response(status=409)
        self.collections.add(path)
        return web.Response(status=201)

    async def _put(self, request):
        path = request.path
        if self._parent(path) not in self.collections:
            return web.Response(status=409)
        mtime = int(time.time())
        if self.honour_mtime and "X-OC-Mtime" in request.headers:
            mtime = int(request.headers["X-OC-Mtime"])
        self.files[path] = (await request.read(), mtime)
        return web.Response(status=201)

    async def _get(self, request):
        if request.path not in self.files:
            return web.Response(status=404)
        body, mtime = self.files[request.path]
        return web.Response(body=body, headers={"Last-Modified": formatdate(mtime, usegmt=True)})

    async def _propfind(self, request):
        path = request.path
        depth = request.headers.get("Depth", "1")
        entries = []

        if path in self.files:
            entries.append(self._file_entry(path))
        elif path.rstrip('/') + '/' in self.collections:
            directory = path.rstrip('/') + '/'
            entries.append(self._collection_entry(directory))
            if depth == "1":
                for child in sorted(self.collections):
                    if child != directory and self._parent(child) == directory:
                        entries.append(self._collection_entry(child))
                for child in sorted(self.files):
                    if self._parent(child) == directory:
                        entries.append(self._file_entry(child))
        else:
            return web.Response(status=404)

        body = (
            '<?xml version="1.0" encoding="utf-8"?>'
            '<d:multistatus xmlns:d="DAV:">' + ''.join(entries) + '</d:multistatus>'
        )
        return web.Response(status=207, body=body.encode(), content_type="application/xml")

    def _collection_entry(self, path):
        return (
            f'<d:response><d:href>{quote(path)}</d:href><d:propstat><d:prop>'
            '<d:resourcetype><d:collection/></d:resourcetype>'
            '</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>'
        )

    def _file_entry(self, path):
        mtime = self.files[path][1]
        return (
            f'<d:response><d:href>{quote(path)}</d:href><d:propstat><d:prop>'
            '<d:resourcetype/>'
            f'<d:getlastmodified>{formatdate(mtime, usegmt=True)}</d:getlastmodified>'
            '</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>'
        )


def make_config(server: TestServer, **overrides) -> WebDavConfig:
    values = {
        "enabled": True,
        "server_url": str(server.make_url("/dav")),
        "username": "alice",
        "password": "secret",
    }
    values.update(overrides)
    return WebDavConfig(**values)


class TestParseHttpDate:
    """Test last-modified parsing."""

    def test_rfc1123(self):
        assert parse_http_date("Tue, 14 Nov 2023 22:13:20 GMT") == T

    def test_garbage(self):
        assert parse_http_date("yesterday") is None
        assert parse_http_date("") is None


class TestWebDavClient:
    """Test client operations against the fake server."""

    def setup_method(self):
        """Set up test fixtures."""
        self.dav = FakeDavServer()

    def test_rejects_invalid_url(self):
        config = WebDavConfig(server_url="dav.example.com")

        with pytest.raises(ConfigurationError) as exc_info:
            WebDavClient(config)

        assert exc_info.value.operation == "create_client"

    def test_rejects_colon_in_username(self):
        config = WebDavConfig(
            enabled=True,
            server_url="https://dav.example.com",
            username="alice:admin",
            password="secret"
        )

        with pytest.raises(ConfigurationError):
            WebDavClient(config)

    def test_basic_auth_header(self):
        assert basic_auth_header("alice", "secret") == "Basic YWxpY2U6c2VjcmV0"

    @pytest.mark.asyncio
    async def test_connection_creates_remote_root(self):
        async with TestServer(self.dav.app()) as server:
            async with WebDavClient(make_config(server)) as client:
                await client.test_connection()

        assert "/dav/ai-chat-sync/" in self.dav.collections

    @pytest.mark.asyncio
    async def test_wrong_password(self):
        async with TestServer(self.dav.app()) as server:
            async with WebDavClient(make_config(server, password="wrong")) as client:
                with pytest.raises(RemoteAuthenticationError) as exc_info:
                    await client.test_connection()

        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_create_directory_is_idempotent(self):
        async with TestServer(self.dav.app()) as server:
            async with WebDavClient(make_config(server)) as client:
                await client.create_directory("servers")
                await client.create_directory("servers")

        assert "/dav/ai-chat-sync/servers/" in self.dav.collections

    @pytest.mark.asyncio
    async def test_upload_list_and_download(self, tmp_path):
        source = write_local(tmp_path, "servers", "my server.json", '{"name": "x"}', mtime=T)
        target = tmp_path / "copy.json"

        async with TestServer(self.dav.app()) as server:
            async with WebDavClient(make_config(server)) as client:
                await client.create_directory("servers")
                await client.create_directory("servers/archive")
                await client.upload_file(source, "servers/my server.json")

                names = await client.list_directory("servers")
                remote_time = await client.get_last_modified("servers/my server.json")
                await client.download_file("servers/my server.json", target)

        assert names == ["my server.json"]
        assert remote_time == T
        assert target.read_text() == '{"name": "x"}'
        assert int(os.stat(target).st_mtime) == T

    @pytest.mark.asyncio
    async def test_upload_adopts_server_time(self, tmp_path):
        dav = FakeDavServer(honour_mtime=False)
        source = write_local(tmp_path, "servers", "a.json", mtime=T)

        async with TestServer(dav.app()) as server:
            async with WebDavClient(make_config(server)) as client:
                await client.create_directory("servers")
                await client.upload_file(source, "servers/a.json")
                remote_time = await client.get_last_modified("servers/a.json")

        assert remote_time != T
        assert int(os.stat(source).st_mtime) == remote_time

    @pytest.mark.asyncio
    async def test_missing_directory(self):
        async with TestServer(self.dav.app()) as server:
            async with WebDavClient(make_config(server)) as client:
                with pytest.raises(RemoteNotFoundError):
                    await client.list_directory("history")

    @pytest.mark.asyncio
    async def test_missing_file_download(self, tmp_path):
        async with TestServer(self.dav.app()) as server:
            async with WebDavClient(make_config(server)) as client:
                await client.create_directory("history")
                with pytest.raises(RemoteNotFoundError):
                    await client.download_file("history/none.json", tmp_path / "none.json")

        assert not (tmp_path / "none.json").exists()

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        with socket.socket() as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]

        config = WebDavConfig(
            enabled=True,
            server_url=f"http://127.0.0.1:{port}/dav",
            username="alice",
            password="secret",
            timeout_seconds=5
        )

        async with WebDavClient(config) as client:
            with pytest.raises(RemoteConnectionError):
                await client.test_connection()


@pytest.mark.integration
class TestEngineOverWebDav:
    """Run the engine end to end through the WebDAV client."""

    @pytest.mark.asyncio
    async def test_merge_converges(self, tmp_path):
        dav = FakeDavServer()
        data_dir = tmp_path / "data"
        write_local(data_dir, "servers", "a.json", mtime=T)
        write_local(data_dir, "history", "h.json", mtime=T)

        async with TestServer(dav.app()) as server:
            dav.collections.add("/dav/ai-chat-sync/")
            dav.collections.add("/dav/ai-chat-sync/history/")
            dav.files["/dav/ai-chat-sync/history/remote.json"] = (b'{"r": 1}', T + 60)

            engine = SyncEngine(ConnectionHolder(), data_dir)
            await engine.configure(make_config(server))
            try:
                first = await engine.merge()
                second = await engine.merge()
            finally:
                await engine.holder.clear()

        assert first == SyncResult(servers_uploaded=1, history_uploaded=1, history_downloaded=1)
        assert second == SyncResult()
        assert (data_dir / "history" / "remote.json").read_bytes() == b'{"r": 1}'
        assert "/dav/ai-chat-sync/servers/a.json" in dav.files

    @pytest.mark.asyncio
    async def test_merge_settles_when_server_ignores_mtime(self, tmp_path):
        dav = FakeDavServer(honour_mtime=False)
        data_dir = tmp_path / "data"
        write_local(data_dir, "servers", "a.json", mtime=T)

        async with TestServer(dav.app()) as server:
            engine = SyncEngine(ConnectionHolder(), data_dir)
            await engine.configure(make_config(server))
            try:
                first = await engine.merge()
                second = await engine.merge()
            finally:
                await engine.holder.clear()

        assert first == SyncResult(servers_uploaded=1)
        assert second == SyncResult()
