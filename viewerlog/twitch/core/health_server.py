"""HTTP health check server"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from aiohttp import web

if TYPE_CHECKING:
    from viewerlog.shared.database import DatabaseManager
    from viewerlog.twitch.core.bot import Bot

logger = logging.getLogger("Bot.Health")

SERVICE_NAME = "viewerlog-twitch"


class HealthCheckServer:
    """HTTP health check server"""

    def __init__(
        self,
        bot: "Bot | None" = None,
        database: "DatabaseManager | None" = None,
        host: str = "0.0.0.0",
        port: int = 4344,
    ):
        self.bot: Any = bot
        self.database = database
        self.host = host
        self.port = port
        self.app = web.Application()
        self.runner: web.AppRunner | None = None
        self._start_time: float = time.time()
        self._heartbeat_task: asyncio.Task | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/", self.handle_root)
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/status", self.handle_status)
        self.app.router.add_get("/ping", self.handle_ping)

    async def handle_root(self, request: web.Request) -> web.Response:
        return web.json_response({"service": SERVICE_NAME, "status": "running"})

    async def handle_health(self, request: web.Request) -> web.Response:
        """Liveness check, always 200"""
        ready = self.bot is not None and self.bot.bot_id is not None
        return web.json_response(
            {"status": "healthy" if ready else "starting", "ready": ready},
        )

    async def handle_status(self, request: web.Request) -> web.Response:
        """Stream tracking and poller state"""
        database_ok = await self.database.check_health() if self.database else None
        return web.json_response(
            {
                "service": SERVICE_NAME,
                "bot_id": self.bot.bot_id if self.bot else None,
                "uptime_seconds": int(time.time() - self._start_time),
                "database": database_ok,
                "stream": self.bot.tracker.status() if self.bot else None,
                "drift_poller": self.bot.drift_poller.status() if self.bot else None,
            }
        )

    async def handle_ping(self, request: web.Request) -> web.Response:
        return web.Response(text="pong")

    async def _heartbeat(self) -> None:
        """Log uptime and the tracked stream every 5 minutes"""
        while True:
            await asyncio.sleep(300)
            uptime = int(time.time() - self._start_time)
            stream_id = self.bot.tracker.get_current_stream_id() if self.bot else None
            logger.info(f"Heartbeat: uptime={uptime}s, stream={stream_id}")

    async def start(self) -> None:
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()

            site = web.TCPSite(self.runner, self.host, self.port)
            await site.start()

            self._heartbeat_task = asyncio.create_task(self._heartbeat())

            logger.info(f"Health server started on {self.host}:{self.port}")
            logger.info(f"  GET http://{self.host}:{self.port}/health - Health check")
            logger.info(f"  GET http://{self.host}:{self.port}/status - Stream tracking status")

        except Exception as e:
            logger.exception(f"Failed to start health server: {e}")
            raise

    async def stop(self) -> None:
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
        if self.runner:
            try:
                await self.runner.cleanup()
                logger.info("Health server stopped")
            except Exception as e:
                logger.exception(f"Error stopping health server: {e}")
