"""WebDAV remote client implementation."""

import asyncio
import base64
import os
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import List, Mapping, Optional, Tuple
from urllib.parse import quote, unquote, urlparse
from xml.etree import ElementTree

import aiohttp

from .base import (
    BaseRemoteClient,
    RemoteClientError,
    RemoteNotFoundError,
    RemoteAuthenticationError,
    RemoteConnectionError
)
from ..config.schema import WebDavConfig
from ..errors import ConfigurationError


DAV_NS = "{DAV:}"

PROPFIND_LAST_MODIFIED = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop><d:getlastmodified/></d:prop></d:propfind>'
)

PROPFIND_LISTING = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop><d:resourcetype/></d:prop></d:propfind>'
)


class WebDavClient(BaseRemoteClient):
    """WebDAV client over aiohttp with HTTP basic authentication."""

    def __init__(self, config: WebDavConfig, **kwargs):
        """Initialize WebDAV client.

        Args:
            config: Connection configuration

        Raises:
            ConfigurationError: If the server URL or credentials are unusable
        """
        super().__init__(config, **kwargs)

        parsed = urlparse(config.server_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(
                f"Invalid WebDAV server URL: {config.server_url!r}",
                operation="create_client",
                path=config.server_url
            )
        if not config.username:
            raise ConfigurationError("WebDAV username is required", operation="create_client")
        if ':' in config.username:
            raise ConfigurationError("WebDAV username must not contain ':'", operation="create_client")

        self.server_url = config.server_url.rstrip('/')
        self.remote_root = config.remote_root.strip('/')
        self.headers = {"Authorization": basic_auth_header(config.username, config.password)}
        self.timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)
        self.session: Optional[aiohttp.ClientSession] = None

        self.logger.info(
            "WebDAV client initialized",
            server_url=self.server_url,
            remote_root=self.remote_root,
            username=config.username
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            connector = aiohttp.TCPConnector(ssl=self.config.verify_ssl)
            self.session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=self.timeout,
                connector=connector
            )
        return self.session

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    def _url(self, path: str = "", directory: bool = False) -> str:
        """Build the absolute URL for a path under the remote root."""
        segments = [s for s in f"{self.remote_root}/{path}".split('/') if s]
        url = self.server_url + '/' + '/'.join(quote(s) for s in segments)
        if directory and not url.endswith('/'):
            url += '/'
        return url

    async def _request(
        self,
        method: str,
        url: str,
        path: str,
        **kwargs
    ) -> Tuple[int, bytes, Mapping[str, str]]:
        session = await self._get_session()
        try:
            async with session.request(method, url, **kwargs) as response:
                body = await response.read()
                return response.status, body, response.headers.copy()
        except asyncio.TimeoutError as e:
            raise RemoteConnectionError(f"{method} {path} timed out") from e
        except aiohttp.ClientError as e:
            raise RemoteConnectionError(f"{method} {path} failed: {e}") from e

    def _check_status(self, status: int, method: str, path: str, body: bytes) -> None:
        if 200 <= status < 300:
            return
        if status in (401, 403):
            raise RemoteAuthenticationError(f"{method} {path} rejected: HTTP {status}", status)
        if status == 404:
            raise RemoteNotFoundError(f"{method} {path}: not found", status)
        detail = body[:200].decode('utf-8', errors='replace')
        raise RemoteClientError(f"{method} {path} failed: HTTP {status} {detail}".rstrip(), status)

    async def test_connection(self) -> None:
        status, body, _ = await self._request(
            "PROPFIND",
            self.server_url + '/',
            "/",
            headers={"Depth": "0"}
        )
        self._check_status(status, "PROPFIND", "/", body)

        if self.remote_root:
            await self.create_directory("")

        self.logger.info("WebDAV connection test passed", server_url=self.server_url)

    async def create_directory(self, path: str) -> None:
        # MKCOL only creates the last segment, so walk down from the root
        segments = [s for s in f"{self.remote_root}/{path}".split('/') if s]
        for depth in range(1, len(segments) + 1):
            partial = '/'.join(segments[:depth])
            url = self.server_url + '/' + '/'.join(quote(s) for s in segments[:depth]) + '/'
            status, body, _ = await self._request("MKCOL", url, partial)
            # 405: collection already exists
            if status == 405:
                continue
            self._check_status(status, "MKCOL", partial, body)
            self.logger.debug("Created remote directory", path=partial)

    async def upload_file(self, local_path: Path, remote_path: str) -> None:
        data, mtime = await asyncio.to_thread(_read_with_mtime, Path(local_path))
        status, body, _ = await self._request(
            "PUT",
            self._url(remote_path),
            remote_path,
            data=data,
            headers={
                "Content-Type": "application/json",
                # Honoured by Nextcloud/ownCloud, ignored elsewhere
                "X-OC-Mtime": str(mtime)
            }
        )
        self._check_status(status, "PUT", remote_path, body)

        # Servers that ignore X-OC-Mtime stamp the upload time; adopt it locally
        remote_time = await self.get_last_modified(remote_path)
        if remote_time is not None and remote_time != mtime:
            await asyncio.to_thread(os.utime, local_path, (remote_time, remote_time))

        self.logger.debug(
            "Uploaded file",
            local_path=str(local_path),
            remote_path=remote_path,
            size=len(data),
            remote_time=remote_time
        )

    async def download_file(self, remote_path: str, local_path: Path) -> None:
        status, body, headers = await self._request("GET", self._url(remote_path), remote_path)
        self._check_status(status, "GET", remote_path, body)

        mtime = parse_http_date(headers.get("Last-Modified", ""))
        await asyncio.to_thread(_write_with_mtime, Path(local_path), body, mtime)
        self.logger.debug("Downloaded file", remote_path=remote_path, local_path=str(local_path), size=len(body))

    async def list_directory(self, path: str) -> List[str]:
        url = self._url(path, directory=True)
        status, body, _ = await self._request(
            "PROPFIND",
            url,
            path,
            data=PROPFIND_LISTING,
            headers={"Depth": "1", "Content-Type": "application/xml"}
        )
        self._check_status(status, "PROPFIND", path, body)

        names = []
        for response in self._parse_multistatus(body, path):
            if response.find(f".//{DAV_NS}resourcetype/{DAV_NS}collection") is not None:
                continue
            href = response.findtext(f"{DAV_NS}href", default="")
            name = unquote(href.rstrip('/').rsplit('/', 1)[-1])
            if name:
                names.append(name)
        return names

    async def get_last_modified(self, path: str) -> Optional[int]:
        status, body, _ = await self._request(
            "PROPFIND",
            self._url(path),
            path,
            data=PROPFIND_LAST_MODIFIED,
            headers={"Depth": "0", "Content-Type": "application/xml"}
        )
        self._check_status(status, "PROPFIND", path, body)

        for response in self._parse_multistatus(body, path):
            value = response.findtext(f".//{DAV_NS}getlastmodified")
            if value:
                return parse_http_date(value)
        return None

    def _parse_multistatus(self, body: bytes, path: str) -> List[ElementTree.Element]:
        try:
            root = ElementTree.fromstring(body)
        except ElementTree.ParseError as e:
            raise RemoteClientError(f"PROPFIND {path}: malformed response: {e}") from e
        return root.findall(f"{DAV_NS}response")


def basic_auth_header(username: str, password: str) -> str:
    """Value of an HTTP basic ``Authorization`` header."""
    credentials = f"{username}:{password}"
    return f"Basic {base64.b64encode(credentials.encode()).decode()}"


def parse_http_date(value: str) -> Optional[int]:
    """Parse an RFC 1123 date into whole epoch seconds."""
    try:
        return int(parsedate_to_datetime(value.strip()).timestamp())
    except (TypeError, ValueError):
        return None


def _read_with_mtime(path: Path) -> Tuple[bytes, int]:
    return path.read_bytes(), int(path.stat().st_mtime)


def _write_with_mtime(path: Path, data: bytes, mtime: Optional[int]) -> None:
    path.write_bytes(data)
    # Keep the remote time so the next merge sees both sides as equal
    if mtime is not None:
        os.utime(path, (mtime, mtime))
