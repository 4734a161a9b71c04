"""Main application entry point."""

import asyncio
import json
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from aiohttp import web

from .api_clients import RemoteClientError, WebDavClient
from .config import AppSettings, ConfigLoader, WebDavConfig, get_settings
from .config.schema import PASSWORD_MASK
from .core import ConnectionHolder, SyncEngine
from .core.connection import ClientFactory, build_client
from .errors import (
    ConfigurationError,
    LocalIOError,
    NotConfiguredError,
    RemoteIOError,
    SyncError
)
from .scheduler import AutoSyncScheduler
from .utils.logging import get_logger, setup_logging


ERROR_STATUS = {
    NotConfiguredError: 409,
    ConfigurationError: 400,
    RemoteIOError: 502,
    LocalIOError: 500,
}


def error_status(error: SyncError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


@web.middleware
async def sync_error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except SyncError as e:
        return web.json_response(e.to_dict(), status=error_status(e))


class DavSyncApp:
    """Desktop-side sync service exposing its commands over local HTTP."""

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        client_factory: ClientFactory = WebDavClient
    ):
        self.settings = settings or get_settings()
        self.logger = get_logger("DavSync")
        self.client_factory = client_factory

        self.loader = ConfigLoader(self.settings.config_path)
        self.holder = ConnectionHolder(client_factory)
        self.engine = SyncEngine(self.holder, self.settings.data_dir)
        self.scheduler = AutoSyncScheduler(self.engine)
        self.config = WebDavConfig()

        self.running = False
        self.started_at: Optional[datetime] = None
        self.web_app = self.create_web_app()

    def create_web_app(self) -> web.Application:
        app = web.Application(middlewares=[sync_error_middleware])

        app.router.add_get('/health', self._health_handler)
        app.router.add_get('/config', self._get_config_handler)
        app.router.add_put('/config', self._put_config_handler)
        app.router.add_post('/test', self._test_handler)
        app.router.add_post('/sync/push', self._push_handler)
        app.router.add_post('/sync/pull', self._pull_handler)
        app.router.add_post('/sync/merge', self._merge_handler)

        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def startup(self) -> None:
        self.logger.info(
            "Starting davsync",
            version=self.settings.version,
            data_dir=str(self.settings.data_dir)
        )

        self.settings.data_dir.mkdir(parents=True, exist_ok=True)

        try:
            self.config = self.loader.load()
            await self.holder.configure(self.config)
        except ConfigurationError as e:
            # A bad stored config leaves sync unconfigured until it is fixed
            self.logger.warning("Stored WebDAV config unusable", error=e.message)
            self.config = WebDavConfig()

        self.scheduler.start()
        self.scheduler.apply(self.config)

        self.running = True
        self.started_at = datetime.now(timezone.utc)
        self.logger.info("davsync started", configured=self.holder.is_configured)

    async def shutdown(self) -> None:
        self.logger.info("Shutting down davsync")
        self.running = False
        await self.scheduler.stop()
        await self.holder.clear()
        self.logger.info("davsync stopped")

    async def apply_config(self, config: WebDavConfig) -> None:
        """Reconfigure the connection, persist the config and reschedule.

        If the config cannot be saved the previous connection is restored.
        """
        await self.holder.configure(config)
        try:
            self.loader.save(config)
        except ConfigurationError:
            await self.holder.configure(self.config)
            raise
        self.config = config
        if self.scheduler.running:
            self.scheduler.apply(config)

    async def _on_startup(self, app: web.Application) -> None:
        await self.startup()

    async def _on_cleanup(self, app: web.Application) -> None:
        await self.shutdown()

    async def _read_config_body(self, request: web.Request, **overrides) -> WebDavConfig:
        try:
            data = await request.json()
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Request body is not valid JSON: {e}", operation="parse_request") from e
        if not isinstance(data, dict):
            raise ConfigurationError("Request body must be a JSON object", operation="parse_request")

        # The UI echoes the masked password back when it was not changed
        if data.get("password") == PASSWORD_MASK:
            data["password"] = self.config.password
        data.update(overrides)
        return self.loader.load_from_dict(data)

    async def _health_handler(self, request: web.Request) -> web.Response:
        health_data = {
            "status": "healthy" if self.running else "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": self.settings.version,
            "configured": self.holder.is_configured,
            "auto_sync": self.scheduler.job_active,
            "auto_sync_stats": _jsonable(self.scheduler.stats)
        }
        return web.json_response(health_data, status=200 if self.running else 503)

    async def _get_config_handler(self, request: web.Request) -> web.Response:
        return web.json_response(self.config.masked())

    async def _put_config_handler(self, request: web.Request) -> web.Response:
        config = await self._read_config_body(request)
        await self.apply_config(config)
        return web.json_response(config.masked())

    async def _test_handler(self, request: web.Request) -> web.Response:
        if not request.can_read_body:
            await self.engine.test_connection()
            return web.json_response({"ok": True})

        # Test the posted parameters without storing them
        config = await self._read_config_body(request, enabled=True)
        client = build_client(self.client_factory, config, "test_connection")
        try:
            await client.test_connection()
        except RemoteClientError as e:
            raise RemoteIOError(str(e), operation="test_connection", path=config.server_url) from e
        finally:
            await client.close()
        return web.json_response({"ok": True})

    async def _push_handler(self, request: web.Request) -> web.Response:
        result = await self.engine.push()
        return web.json_response(result.to_dict())

    async def _pull_handler(self, request: web.Request) -> web.Response:
        result = await self.engine.pull()
        return web.json_response(result.to_dict())

    async def _merge_handler(self, request: web.Request) -> web.Response:
        result = await self.engine.merge()
        return web.json_response(result.to_dict())

    async def run(self) -> None:
        """Serve until SIGINT or SIGTERM."""
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, stop_event.set)
            except NotImplementedError:
                # Windows event loops lack signal handlers
                pass

        runner = web.AppRunner(self.web_app)
        await runner.setup()
        site = web.TCPSite(runner, self.settings.host, self.settings.port)
        await site.start()
        self.logger.info(
            "Command API listening",
            url=f"http://{self.settings.host}:{self.settings.port}"
        )

        try:
            await stop_event.wait()
        finally:
            await runner.cleanup()


def _jsonable(stats: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in stats.items()
    }


async def main():
    """Main entry point."""
    setup_logging()

    app = DavSyncApp()
    await app.run()


def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    cli()
